"""
Shared fixtures: an in-memory league database, a rolled-back session per
test, and small factories for players and matches.
"""

from datetime import datetime, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from pongleague.db.models import Base, Match, MatchParticipant, Player
from pongleague.statuses import MATCH_CONFIRMED, SINGLES


@pytest.fixture(scope="session")
def test_engine():
    """
    Create a test database engine.

    Uses SQLite in-memory; the rating lock falls back to a process lock
    there, and FOR UPDATE is ignored.
    """
    engine = create_engine(
        "sqlite:///:memory:",
        echo=False,
    )
    return engine


@pytest.fixture(scope="session")
def tables(test_engine):
    """Create the league schema once per test run."""
    Base.metadata.create_all(test_engine)
    yield
    Base.metadata.drop_all(test_engine)


@pytest.fixture
def db_session(test_engine, tables):
    """
    Session bound to an outer transaction that is rolled back afterwards,
    so nothing a test writes leaks into the next one.
    """
    connection = test_engine.connect()
    transaction = connection.begin()

    Session = sessionmaker(bind=connection)
    session = Session()

    yield session

    session.close()
    transaction.rollback()
    connection.close()


@pytest.fixture
def make_player(db_session):
    """Factory for league players: make_player("alice")."""
    def _make(username: str, display_name: str | None = None, active: bool = True) -> Player:
        player = Player(username=username, display_name=display_name or username.title(), active=active)
        db_session.add(player)
        db_session.flush()
        return player
    return _make


@pytest.fixture
def base_time():
    return datetime(2026, 1, 5, 18, 0, 0)


@pytest.fixture
def make_match(db_session, base_time):
    """
    Factory for matches with participants.

    make_match([a.id], [b.id], 11, 7, minutes=10) creates a confirmed
    singles match played 10 minutes after base_time.
    """
    def _make(
        team1: list[int],
        team2: list[int],
        team1_score: int = 11,
        team2_score: int = 7,
        minutes: int = 0,
        status: str = MATCH_CONFIRMED,
        match_type: str | None = None,
    ) -> Match:
        match = Match(
            match_type=match_type or (SINGLES if len(team1) == 1 else "doubles"),
            status=status,
            team1_score=team1_score,
            team2_score=team2_score,
            played_at=base_time + timedelta(minutes=minutes),
        )
        for team_no, team in ((1, team1), (2, team2)):
            for player_id in team:
                match.participants.append(MatchParticipant(player_id=player_id, team_no=team_no))
        db_session.add(match)
        db_session.flush()
        return match
    return _make
