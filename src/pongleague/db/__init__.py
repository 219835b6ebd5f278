"""
Database module for pongleague.

Provides SQLAlchemy ORM models and session management.

Usage:
    from pongleague.db import get_session, Player, Match

    with get_session() as session:
        players = session.query(Player).all()
"""

from pongleague.db.models import (
    Base,
    Player,
    PlayerRating,
    Match,
    MatchParticipant,
    RatingHistory,
    Tournament,
    TournamentGroup,
    TournamentParticipant,
    TournamentMatch,
)
from pongleague.db.session import get_session, get_engine, SessionLocal

__all__ = [
    # Base
    "Base",
    # Models
    "Player",
    "PlayerRating",
    "Match",
    "MatchParticipant",
    "RatingHistory",
    "Tournament",
    "TournamentGroup",
    "TournamentParticipant",
    "TournamentMatch",
    # Session
    "get_session",
    "get_engine",
    "SessionLocal",
]
