"""
Match lifecycle service: submission, confirmation, disputes, edits and cancellations.

Ratings only ever move for confirmed matches:

1. **Submit** (submit_match): creates a pending match, or a confirmed one
   that is rated immediately when the submitter is trusted.
2. **Confirm** (confirm_match): pending or disputed -> confirmed, then rated.
   A backdated match that lands before a participant's latest result cannot
   be applied incrementally, so the whole league is recomputed instead.
3. **Dispute** (dispute_match): pending -> disputed. No rating change.
4. **Edit / cancel** (edit_match, cancel_match): rewrite history, so both
   end with a full recompute.

The read side (get_leaderboard, get_recent_matches, get_player_profile)
only ever looks at confirmed matches.

Every function works inside the caller's session and leaves the commit to
the caller, so one request is one transaction.

Usage:
    from pongleague.db import get_session
    from pongleague.services.matches import confirm_match, submit_match

    with get_session() as session:
        match = submit_match(session, submission)
        confirm_match(session, match.id)
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Union

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from pongleague.db.models import Match, MatchParticipant, Player, PlayerRating, RatingHistory, utcnow
from pongleague.exceptions import PreconditionError
from pongleague.rating.engine import MatchRatingResult, RatingEngine
from pongleague.rating.recompute import RecomputeResult, recompute_league
from pongleague.statuses import (
    CONFIRMABLE_MATCH_STATUSES,
    MATCH_CANCELLED,
    MATCH_CONFIRMED,
    MATCH_DISPUTED,
    MATCH_PENDING,
    OVERALL,
    RATING_MODES,
    SINGLES,
)
from pongleague.tasks.locks import rating_write_lock
from pongleague.validation import MAX_NOTE_LENGTH, MatchSubmission

logger = logging.getLogger(__name__)


@dataclass
class LeaderboardEntry:
    """One row of a mode leaderboard."""
    rank: int
    player_id: int
    username: str
    display_name: str
    rating: float
    rd: float
    volatility: float
    wins: int
    losses: int
    last_match_at: Optional[datetime]


@dataclass
class RatingPoint:
    """A player's rating right after one match, with what happened in it."""
    played_at: datetime
    match_id: int
    rating: float
    rd: float
    result: str  # 'win' or 'loss'
    score: str
    match_type: str
    opponents: list[str] = field(default_factory=list)
    teammates: list[str] = field(default_factory=list)


@dataclass
class HeadToHeadRecord:
    """A player's record against one opponent."""
    opponent_id: int
    username: str
    display_name: str
    wins: int = 0
    losses: int = 0
    singles_wins: int = 0
    singles_losses: int = 0
    last_played_at: Optional[datetime] = None


@dataclass
class PlayerProfile:
    """Rating, timeline, recent matches and head-to-head for one player in one mode."""
    player: Player
    mode: str
    rating: Optional[PlayerRating]
    timeline: list[RatingPoint] = field(default_factory=list)
    matches: list[Match] = field(default_factory=list)
    head_to_head: list[HeadToHeadRecord] = field(default_factory=list)


def get_match(session: Session, match_id: int) -> Match:
    """Load a match or raise PreconditionError."""
    match = session.get(Match, match_id)
    if match is None:
        raise PreconditionError(f"Match {match_id} not found")
    return match


def _ensure_players_exist(session: Session, player_ids: list[int]) -> None:
    found = set(session.execute(select(Player.id).where(Player.id.in_(player_ids))).scalars())
    missing = sorted(set(player_ids) - found)
    if missing:
        raise PreconditionError(f"Unknown players: {missing}")


def _set_participants(match: Match, submission: MatchSubmission) -> None:
    for team_no, team in ((1, submission.team1), (2, submission.team2)):
        for player_id in team:
            match.participants.append(MatchParticipant(player_id=player_id, team_no=team_no))


def rate_confirmed_match(
    session: Session,
    match: Match,
    engine: Optional[RatingEngine] = None,
) -> Optional[MatchRatingResult]:
    """
    Apply a freshly confirmed match to the ratings.

    Returns:
        The MatchRatingResult, or None when the match was out of order and
        the league was recomputed instead
    """
    engine = engine or RatingEngine.from_settings()
    with rating_write_lock(session):
        if engine.is_out_of_order(session, match):
            logger.info("Match %s predates a participant's latest result, recomputing league", match.id)
            recompute_league(session, engine=engine)
            return None
        return engine.apply_ratings_for_match(session, match)


def submit_match(
    session: Session,
    submission: MatchSubmission,
    confirmed: bool = False,
    engine: Optional[RatingEngine] = None,
) -> Match:
    """
    Record a new match result.

    Args:
        session: Active SQLAlchemy session. Caller is responsible for commit.
        submission: Validated result
        confirmed: Skip the confirmation step and rate straight away

    Returns:
        The new Match (flushed, so it has an id)

    Raises:
        PreconditionError: if any listed player does not exist
    """
    _ensure_players_exist(session, submission.player_ids)

    now = utcnow()
    match = Match(
        match_type=submission.match_type,
        status=MATCH_CONFIRMED if confirmed else MATCH_PENDING,
        team1_score=submission.team1_score,
        team2_score=submission.team2_score,
        target_points=submission.target_points,
        win_by_margin=submission.win_by_margin,
        played_at=submission.played_at or now,
        location=submission.location,
        note=submission.note,
        confirmed_at=now if confirmed else None,
    )
    _set_participants(match, submission)
    session.add(match)
    session.flush()

    logger.info(
        "Submitted %s match %s: %s vs %s (%d-%d, %s)",
        match.match_type, match.id, submission.team1, submission.team2,
        match.team1_score, match.team2_score, match.status,
    )

    if confirmed:
        rate_confirmed_match(session, match, engine)
    return match


def confirm_match(
    session: Session,
    match_id: int,
    engine: Optional[RatingEngine] = None,
) -> Optional[MatchRatingResult]:
    """
    Confirm a pending or disputed match and rate it.

    Raises:
        PreconditionError: if the match does not exist or cannot be confirmed
    """
    match = get_match(session, match_id)
    if match.status not in CONFIRMABLE_MATCH_STATUSES:
        raise PreconditionError(f"Match {match_id} cannot be confirmed from status {match.status!r}")

    match.status = MATCH_CONFIRMED
    match.confirmed_at = utcnow()
    match.dispute_reason = None
    session.flush()

    logger.info("Confirmed match %s", match.id)
    return rate_confirmed_match(session, match, engine)


def dispute_match(session: Session, match_id: int, reason: Optional[str] = None) -> Match:
    """
    Flag a pending match as disputed.

    Raises:
        PreconditionError: if the match does not exist or is not pending
    """
    match = get_match(session, match_id)
    if match.status != MATCH_PENDING:
        raise PreconditionError(f"Only pending matches can be disputed (match {match_id} is {match.status!r})")

    match.status = MATCH_DISPUTED
    match.dispute_reason = reason[:MAX_NOTE_LENGTH] if reason else None
    session.flush()

    logger.info("Match %s disputed%s", match.id, f": {reason}" if reason else "")
    return match


def edit_match(
    session: Session,
    match_id: int,
    submission: MatchSubmission,
    engine: Optional[RatingEngine] = None,
) -> RecomputeResult:
    """
    Rewrite a match result and rebuild the league.

    The edited match is confirmed (any dispute is settled by the edit) and
    keeps its original played_at unless the submission gives a new one.

    Raises:
        PreconditionError: if the match or any listed player does not exist
    """
    match = get_match(session, match_id)
    _ensure_players_exist(session, submission.player_ids)

    match.match_type = submission.match_type
    match.status = MATCH_CONFIRMED
    match.team1_score = submission.team1_score
    match.team2_score = submission.team2_score
    match.target_points = submission.target_points
    match.win_by_margin = submission.win_by_margin
    match.played_at = submission.played_at or match.played_at
    match.location = submission.location
    match.note = submission.note
    match.confirmed_at = utcnow()
    match.cancelled_at = None
    match.dispute_reason = None

    # Old seats must be gone before the new ones hit the unique constraint
    match.participants.clear()
    session.flush()
    _set_participants(match, submission)
    session.flush()

    logger.info("Edited match %s, recomputing league", match.id)
    return recompute_league(session, engine=engine)


def cancel_match(
    session: Session,
    match_id: int,
    engine: Optional[RatingEngine] = None,
) -> Optional[RecomputeResult]:
    """
    Cancel a match and rebuild the league.

    Returns:
        The RecomputeResult, or None if the match was already cancelled
    """
    match = get_match(session, match_id)
    if match.status == MATCH_CANCELLED:
        logger.info("Match %s already cancelled", match.id)
        return None

    match.status = MATCH_CANCELLED
    match.cancelled_at = utcnow()
    session.flush()

    logger.info("Cancelled match %s, recomputing league", match.id)
    return recompute_league(session, engine=engine)


def get_leaderboard(
    session: Session,
    mode: str = OVERALL,
    active_only: bool = True,
    limit: Optional[int] = None,
) -> list[LeaderboardEntry]:
    """
    Rated players in one mode, best first.

    Ordered by rating (descending) then display name. Players who have
    never been rated in the mode are left out.
    """
    if mode not in RATING_MODES:
        raise PreconditionError(f"Unknown rating mode: {mode!r}")

    stmt = (
        select(Player, PlayerRating)
        .join(PlayerRating, PlayerRating.player_id == Player.id)
        .where(PlayerRating.mode == mode)
        .order_by(PlayerRating.rating.desc(), Player.display_name)
    )
    if active_only:
        stmt = stmt.where(Player.active.is_(True))
    if limit is not None:
        stmt = stmt.limit(limit)

    return [
        LeaderboardEntry(
            rank=index,
            player_id=player.id,
            username=player.username,
            display_name=player.display_name,
            rating=row.rating,
            rd=row.rd,
            volatility=row.volatility,
            wins=row.wins,
            losses=row.losses,
            last_match_at=row.last_match_at,
        )
        for index, (player, row) in enumerate(session.execute(stmt).all(), start=1)
    ]


def get_recent_matches(session: Session, limit: int = 50) -> list[Match]:
    """Latest confirmed matches, newest first, with participants and players loaded."""
    stmt = (
        select(Match)
        .where(Match.status == MATCH_CONFIRMED)
        .options(selectinload(Match.participants).selectinload(MatchParticipant.player))
        .order_by(Match.played_at.desc(), Match.id.desc())
        .limit(limit)
    )
    return list(session.execute(stmt).scalars())


def _sides_for(match: Match, player_id: int) -> tuple[list[MatchParticipant], list[MatchParticipant], bool]:
    """Split a match into (teammates, opponents, won) from one player's seat."""
    team_no = next(p.team_no for p in match.participants if p.player_id == player_id)
    teammates = [p for p in match.participants if p.team_no == team_no and p.player_id != player_id]
    opponents = [p for p in match.participants if p.team_no != team_no]
    won = match.team1_won if team_no == 1 else not match.team1_won
    return teammates, opponents, won


def get_player_profile(
    session: Session,
    identifier: Union[int, str],
    mode: str = OVERALL,
    timeline_limit: int = 200,
    match_limit: int = 100,
) -> Optional[PlayerProfile]:
    """
    Everything a player page shows for one rating mode.

    The timeline is built from the player's rating history in ``mode``
    (the most recent ``timeline_limit`` points, oldest first). Matches and
    head-to-head records cover the latest ``match_limit`` confirmed matches
    that count toward ``mode``; overall counts every match type.

    Args:
        session: Active SQLAlchemy session
        identifier: Player id (int) or username (str)
        mode: 'overall', 'singles' or 'doubles'

    Returns:
        The PlayerProfile, or None if no such player exists

    Raises:
        PreconditionError: if the mode is unknown
    """
    if mode not in RATING_MODES:
        raise PreconditionError(f"Unknown rating mode: {mode!r}")

    if isinstance(identifier, int):
        player = session.get(Player, identifier)
    else:
        player = session.execute(
            select(Player).where(Player.username == identifier)
        ).scalar_one_or_none()
    if player is None:
        return None

    rating = session.execute(
        select(PlayerRating).where(PlayerRating.player_id == player.id, PlayerRating.mode == mode)
    ).scalar_one_or_none()

    history = session.execute(
        select(RatingHistory, Match)
        .join(Match, Match.id == RatingHistory.match_id)
        .where(RatingHistory.player_id == player.id, RatingHistory.mode == mode)
        .options(selectinload(Match.participants).selectinload(MatchParticipant.player))
        .order_by(RatingHistory.played_at.desc(), RatingHistory.match_id.desc())
        .limit(timeline_limit)
    ).all()

    timeline = []
    for entry, match in reversed(history):
        teammates, opponents, won = _sides_for(match, player.id)
        timeline.append(RatingPoint(
            played_at=entry.played_at,
            match_id=match.id,
            rating=entry.rating,
            rd=entry.rd,
            result="win" if won else "loss",
            score=f"{match.team1_score}-{match.team2_score}",
            match_type=match.match_type,
            opponents=[p.player.display_name for p in opponents],
            teammates=[p.player.display_name for p in teammates],
        ))

    stmt = (
        select(Match)
        .join(MatchParticipant, MatchParticipant.match_id == Match.id)
        .where(MatchParticipant.player_id == player.id)
        .where(Match.status == MATCH_CONFIRMED)
        .options(selectinload(Match.participants).selectinload(MatchParticipant.player))
        .order_by(Match.played_at.desc(), Match.id.desc())
        .limit(match_limit)
    )
    if mode != OVERALL:
        stmt = stmt.where(Match.match_type == mode)
    matches = list(session.execute(stmt).scalars())

    records: dict[int, HeadToHeadRecord] = {}
    for match in matches:
        _, opponents, won = _sides_for(match, player.id)
        singles = match.match_type == SINGLES
        for seat in opponents:
            record = records.get(seat.player_id)
            if record is None:
                # Matches arrive newest first
                record = records[seat.player_id] = HeadToHeadRecord(
                    opponent_id=seat.player_id,
                    username=seat.player.username,
                    display_name=seat.player.display_name,
                    last_played_at=match.played_at,
                )
            if won:
                record.wins += 1
                record.singles_wins += int(singles)
            else:
                record.losses += 1
                record.singles_losses += int(singles)

    return PlayerProfile(
        player=player,
        mode=mode,
        rating=rating,
        timeline=timeline,
        matches=matches,
        head_to_head=sorted(records.values(), key=lambda r: (r.display_name, r.opponent_id)),
    )
