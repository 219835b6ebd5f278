"""
Unit tests for the Glicko-2 math.

Tests the pure rating functions to ensure:
- Reference values from Glickman's worked example are reproduced
- Winners gain and losers lose symmetrically between equal players
- RD never exceeds the configured ceiling
- Team combination and RD inflation follow the league formulas
- The volatility solver fails loudly instead of looping forever
"""

import math

import pytest

from pongleague.exceptions import ConvergenceError, PreconditionError
from pongleague.rating import glicko2
from pongleague.rating.glicko2 import (
    OpponentResult,
    RatingState,
    combine_team,
    expected_score,
    glicko2_update,
    inflate_rd,
)


class TestGlicko2Update:
    """Tests for glicko2_update()."""

    def test_glickman_reference_example(self):
        """
        The worked example from the Glicko-2 paper.

        A 1500/200/0.06 player beats a 1400/30, loses to a 1550/100 and
        loses to a 1700/300 in one period.
        """
        update = glicko2_update(
            RatingState(1500, 200, 0.06),
            [
                OpponentResult(1400, 30, 1),
                OpponentResult(1550, 100, 0),
                OpponentResult(1700, 300, 0),
            ],
        )

        assert update.rating == pytest.approx(1464.06, abs=0.05)
        assert update.rd == pytest.approx(151.52, abs=0.05)
        assert update.volatility == pytest.approx(0.05999, abs=1e-5)

    def test_even_players_winner(self):
        update = glicko2_update(RatingState(), [OpponentResult(1500, 350, 1)])

        assert update.rating == pytest.approx(1662.3, abs=0.5)
        assert update.rd == pytest.approx(290.3, abs=0.5)
        assert update.delta_mu > 0

    def test_even_players_symmetric(self):
        """Between identical players the winner's gain is the loser's loss."""
        winner = glicko2_update(RatingState(), [OpponentResult(1500, 350, 1)])
        loser = glicko2_update(RatingState(), [OpponentResult(1500, 350, 0)])

        assert winner.rating + loser.rating == pytest.approx(3000.0)
        assert winner.rd == pytest.approx(loser.rd)

    def test_upset_gains_more_than_expected_win(self):
        favourite_win = glicko2_update(RatingState(1700, 100), [OpponentResult(1500, 100, 1)])
        underdog_win = glicko2_update(RatingState(1500, 100), [OpponentResult(1700, 100, 1)])

        assert favourite_win.rating - 1700 < underdog_win.rating - 1500

    def test_no_games_only_grows_rd(self):
        update = glicko2_update(RatingState(1620, 200, 0.06), [])

        assert update.rating == pytest.approx(1620)
        assert update.volatility == 0.06
        assert 200 < update.rd < 201
        assert update.delta_mu == 0.0
        assert update.delta_sigma == 0.0

    def test_rd_clamped_to_max(self):
        update = glicko2_update(RatingState(1500, 350, 0.06), [])
        assert update.rd == 350.0

        lowered = glicko2_update(RatingState(), [OpponentResult(1500, 350, 1)], max_rd=200)
        assert lowered.rd <= 200

    def test_results_are_finite(self):
        update = glicko2_update(RatingState(2400, 30, 0.03), [OpponentResult(800, 350, 0)])

        assert math.isfinite(update.rating)
        assert math.isfinite(update.rd)
        assert update.rating < 2400

    def test_solver_iteration_cap_raises(self, monkeypatch):
        monkeypatch.setattr(glicko2, "MAX_SOLVER_ITERATIONS", 1)

        with pytest.raises(ConvergenceError):
            glicko2_update(RatingState(), [OpponentResult(1500, 350, 1)])


class TestCombineTeam:
    """Tests for combine_team()."""

    def test_empty_team_raises(self):
        with pytest.raises(PreconditionError):
            combine_team([])

    def test_single_member_unchanged(self):
        member = RatingState(1620, 120, 0.05)
        combined = combine_team([member])

        assert combined.rating == pytest.approx(1620)
        assert combined.rd == pytest.approx(120)
        assert combined.volatility == pytest.approx(0.05)

    def test_pair_halves_rms_rd(self):
        combined = combine_team([RatingState(1600, 350, 0.06), RatingState(1400, 350, 0.08)])

        assert combined.rating == pytest.approx(1500)
        assert combined.rd == pytest.approx(175)
        assert combined.volatility == pytest.approx(0.07)

    def test_pair_uses_root_mean_square(self):
        combined = combine_team([RatingState(1500, 300), RatingState(1500, 100)])

        expected = math.sqrt((300 ** 2 + 100 ** 2) / 2) / 2
        assert combined.rd == pytest.approx(expected)


class TestInflateRd:
    """Tests for inflate_rd()."""

    def test_rating_untouched(self):
        inflated = inflate_rd(RatingState(1700, 80, 0.06), periods=4)

        assert inflated.rating == 1700
        assert inflated.volatility == 0.06
        assert inflated.rd > 80

    def test_more_periods_more_uncertainty(self):
        one = inflate_rd(RatingState(1500, 80, 0.06), periods=1)
        ten = inflate_rd(RatingState(1500, 80, 0.06), periods=10)

        assert ten.rd > one.rd

    def test_clamped_to_max_rd(self):
        inflated = inflate_rd(RatingState(1500, 340, 0.5), periods=50)
        assert inflated.rd == 350.0


def test_expected_score():
    assert expected_score(RatingState(), RatingState()) == pytest.approx(0.5)
    assert expected_score(RatingState(1700, 50), RatingState(1500, 50)) > 0.5
    assert expected_score(RatingState(1500, 50), RatingState(1700, 50)) < 0.5
