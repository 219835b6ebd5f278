"""
League recompute: rebuilds every rating by replaying match history.

Glicko-2 updates are path dependent, so there is no way to "undo" one
historical match. Any retroactive edit, cancellation or backdated
confirmation is repaired by:

1. Resetting every player to baseline in all three modes
   (1500 / 350 / 0.06, zero wins and losses, no last-played time)
2. Clearing participant rating snapshots and deleting all rating history
3. Replaying confirmed matches in ascending played_at order (ties by id)
   through the RatingEngine

Replaying the same match set always produces the same tables.

The whole run holds the rating write lock; interleaving a normal rating
update with the reset would corrupt the rebuilt state.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session, selectinload

from pongleague.db.models import Match, MatchParticipant, Player, PlayerRating, RatingHistory
from pongleague.rating.engine import RatingEngine
from pongleague.statuses import MATCH_CONFIRMED, RATING_MODES
from pongleague.tasks.locks import rating_write_lock

logger = logging.getLogger(__name__)


@dataclass
class RecomputeResult:
    """Summary returned by recompute_league()."""
    players_reset: int = 0
    history_deleted: int = 0
    matches_replayed: int = 0
    from_date: Optional[datetime] = None


def load_matches_for_replay(session: Session, from_date: Optional[datetime] = None) -> list[Match]:
    """
    Load confirmed matches in replay order.

    Args:
        session: SQLAlchemy session
        from_date: Only matches played at or after this time, if given

    Returns:
        Matches sorted by (played_at, id) with participants eagerly loaded
    """
    stmt = (
        select(Match)
        .options(selectinload(Match.participants))
        .where(Match.status == MATCH_CONFIRMED)
        .order_by(Match.played_at, Match.id)
    )
    if from_date is not None:
        stmt = stmt.where(Match.played_at >= from_date)
    return list(session.execute(stmt).scalars().all())


def reset_league_ratings(session: Session) -> tuple[int, int]:
    """
    Put every player back at baseline and delete all rating history.

    Returns:
        Tuple of (players reset, history rows deleted)
    """
    history_deleted = session.execute(delete(RatingHistory)).rowcount or 0

    session.execute(
        update(MatchParticipant).values(
            rating_before=None,
            rating_after=None,
            rd_before=None,
            rd_after=None,
        )
    )

    player_ids = session.execute(select(Player.id).order_by(Player.id)).scalars().all()
    existing = {
        (row.player_id, row.mode): row
        for row in session.execute(select(PlayerRating)).scalars()
    }

    for player_id in player_ids:
        for mode in RATING_MODES:
            row = existing.get((player_id, mode))
            if row is None:
                row = PlayerRating(player_id=player_id, mode=mode)
                session.add(row)
            row.reset()

    session.flush()
    return len(player_ids), history_deleted


def recompute_league(
    session: Session,
    from_date: Optional[datetime] = None,
    engine: Optional[RatingEngine] = None,
) -> RecomputeResult:
    """
    Rebuild all ratings from a clean baseline.

    Args:
        session: Active SQLAlchemy session. Caller is responsible for commit.
        from_date: Replay only matches played at or after this time. Every
                   player is still reset, so earlier matches stop counting.
        engine: RatingEngine to replay with (defaults to settings)

    Returns:
        RecomputeResult with counts
    """
    engine = engine or RatingEngine.from_settings()
    result = RecomputeResult(from_date=from_date)

    with rating_write_lock(session):
        matches = load_matches_for_replay(session, from_date)
        logger.info(
            "Recomputing league ratings: %d confirmed matches%s",
            len(matches),
            f" since {from_date.isoformat()}" if from_date else "",
        )

        result.players_reset, result.history_deleted = reset_league_ratings(session)

        for match in matches:
            engine.apply_ratings_for_match(session, match)
            result.matches_replayed += 1

    logger.info(
        "Recompute finished: %d players reset, %d history rows replaced by %d replayed matches",
        result.players_reset, result.history_deleted, result.matches_replayed,
    )
    return result
