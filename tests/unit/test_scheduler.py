"""
Unit tests for the tournament scheduler.

Tests the pure scheduling functions to ensure:
- Groups are contiguous rating bands with the remainder up front
- Round robins cover every pairing exactly once
- Budget-limited schedules stay balanced and within budget
- Doubles pairings respect the per-player cap and never repeat a matchup
- Competitive schedules repeat with sides swapped
"""

import logging
import random
from collections import Counter
from itertools import combinations

import pytest

from pongleague.exceptions import PreconditionError
from pongleague.scheduling.scheduler import (
    SeededParticipant,
    _round_robin_rounds,
    distribute_into_groups,
    generate_competitive_doubles_schedule,
    generate_competitive_singles_schedule,
    generate_doubles_pairings,
    generate_singles_pairings,
    match_limit_for_group,
    plan_tournament,
)
from pongleague.statuses import DOUBLES, FORMAT_COMPETITIVE, SINGLES, TOTAL_MATCHES


def _roster(count, top=2000.0, step=25.0):
    return [SeededParticipant(player_id=i + 1, rating=top - i * step) for i in range(count)]


def _appearances(matches):
    return Counter(pid for m in matches for pid in m.player_ids)


class TestDistributeIntoGroups:
    """Tests for distribute_into_groups()."""

    def test_nine_players_two_groups(self):
        roster = list(reversed(_roster(9)))

        groups = distribute_into_groups(roster, ["A", "B"])

        assert [g.label for g in groups] == ["A", "B"]
        assert [len(g.participants) for g in groups] == [5, 4]
        assert groups[0].player_ids == [1, 2, 3, 4, 5]
        assert groups[1].player_ids == [6, 7, 8, 9]

    def test_remainder_goes_to_earliest_groups(self):
        groups = distribute_into_groups(_roster(11), ["A", "B", "C"])
        assert [len(g.participants) for g in groups] == [4, 4, 3]

    def test_bands_are_contiguous(self):
        groups = distribute_into_groups(_roster(10), ["A", "B", "C"])

        for upper, lower in zip(groups, groups[1:]):
            assert min(p.rating for p in upper.participants) >= max(p.rating for p in lower.participants)

    def test_ties_keep_input_order(self):
        roster = [SeededParticipant(pid, 1500.0) for pid in (7, 3, 9, 1)]
        groups = distribute_into_groups(roster, ["A", "B"])
        assert groups[0].player_ids == [7, 3]

    def test_more_labels_than_players(self):
        groups = distribute_into_groups(_roster(2), ["A", "B", "C"])
        assert [len(g.participants) for g in groups] == [1, 1, 0]

    def test_empty_labels_raise(self):
        with pytest.raises(PreconditionError):
            distribute_into_groups(_roster(4), [])

    def test_duplicate_labels_raise(self):
        with pytest.raises(PreconditionError):
            distribute_into_groups(_roster(4), ["A", "A"])


class TestRoundRobin:
    """Tests for the circle-method round robin."""

    @pytest.mark.parametrize("count", [2, 3, 4, 5, 6, 7, 8])
    def test_every_pair_once(self, count):
        ids = list(range(1, count + 1))
        rounds = _round_robin_rounds(ids)

        pairs = [frozenset(pair) for r in rounds for pair in r]
        assert len(pairs) == len(set(pairs))
        assert set(pairs) == {frozenset(p) for p in combinations(ids, 2)}

    def test_round_count_and_size(self):
        assert len(_round_robin_rounds(list(range(6)))) == 5
        assert all(len(r) == 3 for r in _round_robin_rounds(list(range(6))))

        odd = _round_robin_rounds([1, 2, 3, 4, 5])
        assert len(odd) == 5
        assert all(len(r) == 2 for r in odd)

    def test_nobody_plays_twice_in_a_round(self):
        for round_pairs in _round_robin_rounds(list(range(1, 9))):
            seated = [pid for pair in round_pairs for pid in pair]
            assert len(seated) == len(set(seated))

    def test_single_player_has_no_rounds(self):
        assert _round_robin_rounds([1]) == []

    def test_five_player_rotation(self):
        rounds = _round_robin_rounds([1, 2, 3, 4, 5])
        assert rounds[0] == [(2, 5), (3, 4)]
        assert rounds[1] == [(1, 2), (4, 5)]
        assert rounds[2] == [(1, 3), (4, 2)]


class TestSinglesPairings:
    """Tests for generate_singles_pairings()."""

    def test_full_round_robin_when_budget_allows(self):
        matches = generate_singles_pairings([1, 2, 3, 4], limit=10)

        assert len(matches) == 6
        assert {frozenset(m.player_ids) for m in matches} == {frozenset(p) for p in combinations([1, 2, 3, 4], 2)}

    def test_overflow_round_filled_greedily(self):
        matches = generate_singles_pairings([1, 2, 3, 4, 5], limit=7)

        assert len(matches) == 7
        # Rounds 1-3 whole, then the pairing of the two least-played players
        assert matches[6].team1 == (5,)
        assert matches[6].team2 == (3,)
        counts = _appearances(matches)
        assert max(counts.values()) - min(counts.values()) <= 1

    def test_even_roster_stays_balanced(self):
        matches = generate_singles_pairings([1, 2, 3, 4, 5, 6], limit=7)

        counts = _appearances(matches)
        assert len(matches) == 7
        assert max(counts.values()) - min(counts.values()) <= 1

    def test_no_repeated_pairings(self):
        matches = generate_singles_pairings(list(range(1, 9)), limit=12)
        pairs = [frozenset(m.player_ids) for m in matches]
        assert len(pairs) == len(set(pairs))

    def test_degenerate_inputs_return_empty(self):
        assert generate_singles_pairings([1], limit=5) == []
        assert generate_singles_pairings([1, 2, 3], limit=0) == []
        assert generate_singles_pairings([1, 2, 3], limit=-1) == []

    def test_all_matches_are_first_iteration(self):
        assert {m.iteration for m in generate_singles_pairings([1, 2, 3, 4], limit=6)} == {1}


class TestDoublesPairings:
    """Tests for generate_doubles_pairings()."""

    def test_cap_and_uniqueness(self):
        ids = list(range(1, 9))
        limit = 6
        matches = generate_doubles_pairings(ids, limit, rng=random.Random(42))

        cap = 3  # ceil(6 * 4 / 8)
        assert 1 <= len(matches) <= limit
        assert max(_appearances(matches).values()) <= cap

        keys = set()
        for m in matches:
            assert len(set(m.player_ids)) == 4
            key = frozenset([frozenset(m.team1), frozenset(m.team2)])
            assert key not in keys
            keys.add(key)

    def test_same_seed_same_schedule(self):
        first = generate_doubles_pairings(list(range(1, 11)), 5, rng=random.Random(7))
        second = generate_doubles_pairings(list(range(1, 11)), 5, rng=random.Random(7))
        assert first == second

    def test_short_schedule_logs_warning(self, caplog):
        # Four players can only be split into three distinct matchups
        with caplog.at_level(logging.WARNING, logger="pongleague.scheduling.scheduler"):
            matches = generate_doubles_pairings([1, 2, 3, 4], 10, rng=random.Random(1))

        assert len(matches) == 3
        assert "short" in caplog.text

    def test_degenerate_inputs_return_empty(self):
        assert generate_doubles_pairings([1, 2, 3], 4) == []
        assert generate_doubles_pairings([1, 2, 3, 4], 0) == []


class TestCompetitiveSchedules:
    """Tests for the competitive round-robin variants."""

    def test_singles_repeats_with_sides_swapped(self):
        matches = generate_competitive_singles_schedule([1, 2, 3, 4], iterations=2)

        first = [m for m in matches if m.iteration == 1]
        second = [m for m in matches if m.iteration == 2]
        assert len(first) == len(second) == 6
        for a, b in zip(first, second):
            assert (a.team1, a.team2) == (b.team2, b.team1)

    def test_singles_third_iteration_matches_first(self):
        matches = generate_competitive_singles_schedule([1, 2, 3], iterations=3)

        first = [(m.team1, m.team2) for m in matches if m.iteration == 1]
        third = [(m.team1, m.team2) for m in matches if m.iteration == 3]
        assert first == third

    def test_singles_degenerate(self):
        assert generate_competitive_singles_schedule([1], 2) == []
        assert generate_competitive_singles_schedule([1, 2], 0) == []

    def test_doubles_pairs_strongest_with_weakest(self):
        roster = [
            SeededParticipant(10, 1600.0),
            SeededParticipant(11, 1800.0),
            SeededParticipant(12, 1500.0),
            SeededParticipant(13, 1700.0),
        ]

        matches = generate_competitive_doubles_schedule(roster, iterations=2)

        assert len(matches) == 2
        assert matches[0].team1 == (11, 12)
        assert matches[0].team2 == (13, 10)
        assert (matches[1].team1, matches[1].team2) == (matches[0].team2, matches[0].team1)
        assert matches[1].iteration == 2

    def test_doubles_teams_play_round_robin(self):
        matches = generate_competitive_doubles_schedule(_roster(8), iterations=1)

        # Four fixed teams meet each other once
        assert len(matches) == 6
        teams = {m.team1 for m in matches} | {m.team2 for m in matches}
        assert teams == {(1, 8), (2, 7), (3, 6), (4, 5)}

    @pytest.mark.parametrize("count", [2, 3, 5, 7])
    def test_doubles_bad_roster_raises(self, count):
        with pytest.raises(PreconditionError):
            generate_competitive_doubles_schedule(_roster(count), iterations=1)


class TestMatchLimit:
    """Tests for match_limit_for_group()."""

    def test_singles_per_player(self):
        assert match_limit_for_group(SINGLES, 5, matches_per_player=3) == 7
        assert match_limit_for_group(SINGLES, 4, matches_per_player=10) == 6

    def test_singles_total(self):
        assert match_limit_for_group(SINGLES, 4, TOTAL_MATCHES, games_per_group=20) == 6
        assert match_limit_for_group(SINGLES, 6, TOTAL_MATCHES, games_per_group=8) == 8

    def test_doubles_per_player(self):
        assert match_limit_for_group(DOUBLES, 6, matches_per_player=3) == 5
        assert match_limit_for_group(DOUBLES, 8, matches_per_player=2) == 4

    def test_doubles_total(self):
        assert match_limit_for_group(DOUBLES, 5, TOTAL_MATCHES, games_per_group=9) == 9

    def test_unknown_count_mode(self):
        with pytest.raises(PreconditionError):
            match_limit_for_group(SINGLES, 4, "whatever")


class TestPlanTournament:
    """Tests for plan_tournament()."""

    def test_standard_singles_plan(self):
        plans = plan_tournament(_roster(9), ["A", "B"], mode=SINGLES, matches_per_player=3)

        assert [p.label for p in plans] == ["A", "B"]
        assert [len(p.matchups) for p in plans] == [7, 6]
        for plan in plans:
            for matchup in plan.matchups:
                assert set(matchup.player_ids) <= set(plan.participant_ids)

    def test_standard_doubles_plan(self):
        plans = plan_tournament(
            _roster(8), ["A"], mode=DOUBLES, matches_per_player=2, rng=random.Random(3)
        )

        assert len(plans[0].matchups) <= 4
        assert all(len(m.team1) == 2 and len(m.team2) == 2 for m in plans[0].matchups)

    def test_competitive_singles_plan(self):
        plans = plan_tournament(_roster(4), ["A"], mode=SINGLES, format=FORMAT_COMPETITIVE, iterations=2)
        assert len(plans[0].matchups) == 12

    def test_competitive_singles_group_too_small(self):
        with pytest.raises(PreconditionError):
            plan_tournament(_roster(3), ["A", "B"], mode=SINGLES, format=FORMAT_COMPETITIVE)

    def test_competitive_doubles_odd_group(self):
        with pytest.raises(PreconditionError):
            plan_tournament(_roster(5), ["A"], mode=DOUBLES, format=FORMAT_COMPETITIVE)

    def test_unknown_format(self):
        with pytest.raises(PreconditionError):
            plan_tournament(_roster(4), ["A"], mode=SINGLES, format="monthly")
