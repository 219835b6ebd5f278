"""
Per-match Glicko-2 rating updates.

A confirmed match updates every participant in each mode the match counts
toward: always 'overall', plus 'singles' or 'doubles' depending on the match
type. Within a mode:

1. Each side is collapsed into one virtual opponent with combine_team()
2. Every participant is updated against the opposing side's combined state,
   scoring 1 for a win and 0 for a loss
3. The new state, win/loss counter, last-played time and a history row are
   written for that participant and mode

All updates are computed from the pre-match states before anything is
written, so the order participants are processed in never matters. The caller
owns the transaction: commit after apply_ratings_for_match() returns, roll
back if it raises.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Sequence

from sqlalchemy import and_, or_, select
from sqlalchemy.orm import Session

from pongleague.db.models import Match, PlayerRating, RatingHistory
from pongleague.exceptions import PreconditionError
from pongleague.rating.constants import DEFAULT_MAX_RD, DEFAULT_TAU
from pongleague.rating.glicko2 import (
    OpponentResult,
    RatingState,
    RatingUpdate,
    combine_team,
    glicko2_update,
)
from pongleague.statuses import MATCH_CONFIRMED, OVERALL, modes_for_match_type

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RatingChange:
    """One participant's rating movement in one mode."""
    player_id: int
    mode: str
    before: RatingState
    after: RatingUpdate
    won: bool

    @property
    def rating_change(self) -> float:
        return self.after.rating - self.before.rating


@dataclass
class MatchRatingResult:
    """Everything apply_ratings_for_match() changed for one match."""
    match_id: int
    modes: tuple[str, ...]
    changes: list[RatingChange] = field(default_factory=list)

    def get(self, player_id: int, mode: str) -> RatingChange:
        for change in self.changes:
            if change.player_id == player_id and change.mode == mode:
                return change
        raise KeyError((player_id, mode))


def rate_sides(
    team1: Sequence[RatingState],
    team2: Sequence[RatingState],
    team1_won: bool,
    tau: float = DEFAULT_TAU,
    max_rd: float = DEFAULT_MAX_RD,
) -> tuple[list[RatingUpdate], list[RatingUpdate]]:
    """
    Rate both sides of a match in a single mode.

    Pure function: takes the participants' current states in side order and
    returns their new states in the same order.

    Raises:
        PreconditionError: if either side is empty
    """
    team1_state = combine_team(team1, max_rd=max_rd)
    team2_state = combine_team(team2, max_rd=max_rd)
    score1 = 1.0 if team1_won else 0.0
    score2 = 1.0 - score1

    vs_team2 = [OpponentResult(team2_state.rating, team2_state.rd, score1)]
    vs_team1 = [OpponentResult(team1_state.rating, team1_state.rd, score2)]

    updates1 = [glicko2_update(state, vs_team2, tau=tau, max_rd=max_rd) for state in team1]
    updates2 = [glicko2_update(state, vs_team1, tau=tau, max_rd=max_rd) for state in team2]
    return updates1, updates2


class RatingEngine:
    """
    Applies confirmed matches to the persisted rating tables.

    Usage:
        engine = RatingEngine.from_settings()
        with get_session() as session:
            match = session.get(Match, match_id)
            result = engine.apply_ratings_for_match(session, match)
    """

    def __init__(self, tau: float = DEFAULT_TAU, max_rd: float = DEFAULT_MAX_RD):
        self.tau = tau
        self.max_rd = max_rd

    @classmethod
    def from_settings(cls) -> "RatingEngine":
        from pongleague.config import settings

        return cls(tau=settings.glicko_tau, max_rd=settings.glicko_max_rd)

    def apply_ratings_for_match(self, session: Session, match: Match) -> MatchRatingResult:
        """
        Rate a confirmed match in every mode it counts toward.

        Args:
            session: Active SQLAlchemy session. Caller is responsible for commit.
            match: A validated, confirmed match with its participants loaded

        Returns:
            MatchRatingResult listing every (player, mode) change

        Raises:
            PreconditionError: if the match is not confirmed, a side has no
                participants, or a participant already has a later result
                in one of the match's modes
        """
        if match.status != MATCH_CONFIRMED:
            raise PreconditionError(
                f"Match {match.id} must be confirmed before ratings apply (status={match.status!r})"
            )

        team1_ids = match.team_player_ids(1)
        team2_ids = match.team_player_ids(2)
        if not team1_ids or not team2_ids:
            raise PreconditionError(f"Match {match.id} is missing participants for one of the teams")

        modes = modes_for_match_type(match.match_type)
        ratings = self._load_ratings(session, team1_ids + team2_ids, modes)

        for (player_id, mode), row in ratings.items():
            if row.last_match_at is not None and row.last_match_at > match.played_at:
                raise PreconditionError(
                    f"Match {match.id} played at {match.played_at} is older than player "
                    f"{player_id}'s last {mode} result; recompute the league instead"
                )

        team1_won = match.team1_won
        result = MatchRatingResult(match_id=match.id, modes=modes)

        # Compute everything first, write afterwards
        for mode in modes:
            before1 = [ratings[(pid, mode)].to_state() for pid in team1_ids]
            before2 = [ratings[(pid, mode)].to_state() for pid in team2_ids]
            after1, after2 = rate_sides(before1, before2, team1_won, tau=self.tau, max_rd=self.max_rd)

            for pid, before, after in zip(team1_ids, before1, after1):
                result.changes.append(RatingChange(pid, mode, before, after, won=team1_won))
            for pid, before, after in zip(team2_ids, before2, after2):
                result.changes.append(RatingChange(pid, mode, before, after, won=not team1_won))

        snapshots = {p.player_id: p for p in match.participants}
        for change in result.changes:
            row = ratings[(change.player_id, change.mode)]
            row.rating = change.after.rating
            row.rd = change.after.rd
            row.volatility = change.after.volatility
            if change.won:
                row.wins += 1
            else:
                row.losses += 1
            row.last_match_at = match.played_at

            session.add(RatingHistory(
                player_id=change.player_id,
                match_id=match.id,
                mode=change.mode,
                rating=change.after.rating,
                rd=change.after.rd,
                volatility=change.after.volatility,
                delta_mu=change.after.delta_mu,
                delta_sigma=change.after.delta_sigma,
                played_at=match.played_at,
            ))

            if change.mode == OVERALL:
                participant = snapshots[change.player_id]
                participant.rating_before = change.before.rating
                participant.rating_after = change.after.rating
                participant.rd_before = change.before.rd
                participant.rd_after = change.after.rd

        session.flush()
        logger.debug(
            "Rated match %s (%s): %d rating changes",
            match.id, ", ".join(modes), len(result.changes),
        )
        return result

    def is_out_of_order(self, session: Session, match: Match) -> bool:
        """
        Whether any participant already has a result that replays after this match.

        Replay order is (played_at, match id), so a result at the same time
        from a higher-id match counts as later. Such a match cannot be applied
        incrementally; Glicko-2 is path dependent, so the league has to be
        replayed instead.
        """
        player_ids = [p.player_id for p in match.participants]
        if not player_ids:
            return False
        later = session.execute(
            select(RatingHistory.id)
            .where(RatingHistory.player_id.in_(player_ids))
            .where(RatingHistory.mode.in_(modes_for_match_type(match.match_type)))
            .where(RatingHistory.match_id != match.id)
            .where(or_(
                RatingHistory.played_at > match.played_at,
                and_(RatingHistory.played_at == match.played_at, RatingHistory.match_id > match.id),
            ))
            .limit(1)
        ).first()
        return later is not None

    @staticmethod
    def _load_ratings(
        session: Session,
        player_ids: Sequence[int],
        modes: Sequence[str],
    ) -> dict[tuple[int, str], PlayerRating]:
        """Lock and return rating rows, creating baseline rows where missing."""
        rows = session.execute(
            select(PlayerRating)
            .where(PlayerRating.player_id.in_(sorted(player_ids)))
            .where(PlayerRating.mode.in_(modes))
            .order_by(PlayerRating.player_id, PlayerRating.mode)
            .with_for_update()
        ).scalars().all()
        by_key = {(row.player_id, row.mode): row for row in rows}

        created = False
        for player_id in player_ids:
            for mode in modes:
                if (player_id, mode) not in by_key:
                    row = PlayerRating(player_id=player_id, mode=mode)
                    row.reset()
                    session.add(row)
                    by_key[(player_id, mode)] = row
                    created = True
        if created:
            session.flush()
        return by_key
