"""Unit tests for the league recompute driver."""

from datetime import timedelta

import pytest
from sqlalchemy import func, select

from pongleague.db.models import PlayerRating, RatingHistory
from pongleague.rating.engine import RatingEngine
from pongleague.rating.glicko2 import OpponentResult, RatingState, glicko2_update
from pongleague.rating.recompute import load_matches_for_replay, recompute_league
from pongleague.statuses import DOUBLES, MATCH_CANCELLED, MATCH_PENDING, OVERALL, RATING_MODES, SINGLES


@pytest.fixture
def engine():
    return RatingEngine(tau=0.5, max_rd=350.0)


def _snapshot(session, modes=RATING_MODES):
    """Rating rows in the given modes as comparable tuples."""
    rows = session.execute(
        select(PlayerRating)
        .where(PlayerRating.mode.in_(modes))
        .order_by(PlayerRating.player_id, PlayerRating.mode)
    ).scalars().all()
    return [
        (r.player_id, r.mode, r.rating, r.rd, r.volatility, r.wins, r.losses, r.last_match_at)
        for r in rows
    ]


def _history(session):
    rows = session.execute(
        select(RatingHistory).order_by(RatingHistory.match_id, RatingHistory.player_id, RatingHistory.mode)
    ).scalars().all()
    return [(r.player_id, r.match_id, r.mode, r.rating, r.rd, r.volatility) for r in rows]


def _row(session, player_id, mode):
    return session.execute(
        select(PlayerRating).where(PlayerRating.player_id == player_id, PlayerRating.mode == mode)
    ).scalar_one()


@pytest.fixture
def league(db_session, engine, make_player, make_match):
    """Three players and three confirmed matches, rated as they happened."""
    alice = make_player("alice")
    bob = make_player("bob")
    cara = make_player("cara")
    matches = [
        make_match([alice.id], [bob.id], 11, 7, minutes=0),
        make_match([cara.id], [alice.id], 11, 9, minutes=10),
        make_match([bob.id], [cara.id], 12, 10, minutes=20),
    ]
    for match in matches:
        engine.apply_ratings_for_match(db_session, match)
    return alice, bob, cara, matches


class TestRecomputeLeague:
    """Tests for recompute_league()."""

    def test_replay_matches_incremental_result(self, db_session, engine, league):
        # Nobody has played doubles, so only those rows are new after a reset
        before = _snapshot(db_session, modes=(OVERALL, SINGLES))
        history_before = _history(db_session)

        result = recompute_league(db_session, engine=engine)

        assert result.matches_replayed == 3
        assert result.players_reset == 3
        assert result.history_deleted == 12
        assert _snapshot(db_session, modes=(OVERALL, SINGLES)) == before
        assert _history(db_session) == history_before

    def test_idempotent(self, db_session, engine, league):
        recompute_league(db_session, engine=engine)
        first = _snapshot(db_session)
        first_history = _history(db_session)

        recompute_league(db_session, engine=engine)

        assert _snapshot(db_session) == first
        assert _history(db_session) == first_history

    def test_resets_all_three_modes(self, db_session, engine, league):
        alice, _, _, _ = league

        recompute_league(db_session, engine=engine)

        doubles = _row(db_session, alice.id, DOUBLES)
        assert (doubles.rating, doubles.rd, doubles.volatility) == (1500.0, 350.0, 0.06)
        assert (doubles.wins, doubles.losses, doubles.last_match_at) == (0, 0, None)
        modes = set(db_session.execute(
            select(PlayerRating.mode).where(PlayerRating.player_id == alice.id)
        ).scalars())
        assert modes == set(RATING_MODES)

    def test_cancelled_match_drops_out(self, db_session, engine, league):
        alice, bob, cara, matches = league
        matches[0].status = MATCH_CANCELLED
        db_session.flush()

        recompute_league(db_session, engine=engine)

        # Alice's only remaining game is the loss to Cara from a fresh baseline
        expected = glicko2_update(RatingState(), [OpponentResult(1500.0, 350.0, 0)])
        alice_overall = _row(db_session, alice.id, OVERALL)
        assert alice_overall.rating == pytest.approx(expected.rating)
        assert (alice_overall.wins, alice_overall.losses) == (0, 1)

        history_matches = set(db_session.execute(select(RatingHistory.match_id)).scalars())
        assert matches[0].id not in history_matches

    def test_pending_matches_ignored(self, db_session, engine, make_player, make_match):
        alice = make_player("alice")
        bob = make_player("bob")
        make_match([alice.id], [bob.id], status=MATCH_PENDING)

        result = recompute_league(db_session, engine=engine)

        assert result.matches_replayed == 0
        assert _row(db_session, alice.id, OVERALL).rating == 1500.0

    def test_from_date_replays_later_matches_only(self, db_session, engine, league, base_time):
        alice, bob, cara, matches = league

        result = recompute_league(db_session, from_date=base_time + timedelta(minutes=5), engine=engine)

        assert result.matches_replayed == 2
        replayed = set(db_session.execute(select(RatingHistory.match_id)).scalars())
        assert replayed == {matches[1].id, matches[2].id}

        seat = next(p for p in matches[0].participants if p.player_id == alice.id)
        assert seat.rating_before is None
        assert seat.rating_after is None

        # Everyone was reset, so Alice's first-match win no longer counts
        assert _row(db_session, alice.id, SINGLES).wins == 0

    def test_history_count_after_replay(self, db_session, engine, league):
        recompute_league(db_session, engine=engine)

        count = db_session.execute(select(func.count(RatingHistory.id))).scalar()
        assert count == 12


def test_replay_order_breaks_ties_by_id(db_session, make_player, make_match):
    alice = make_player("alice")
    bob = make_player("bob")
    second = make_match([alice.id], [bob.id], minutes=5)
    first = make_match([bob.id], [alice.id], minutes=0)
    tied = make_match([alice.id], [bob.id], minutes=5)

    ordered = load_matches_for_replay(db_session)

    assert [m.id for m in ordered] == [first.id, second.id, tied.id]
