"""Unit tests for group placements."""

from pongleague.scheduling.placements import MatchupRecord, calculate_placements_for_group
from pongleague.statuses import (
    DOUBLES,
    SINGLES,
    TOURNAMENT_MATCH_CANCELLED,
    TOURNAMENT_MATCH_PLAYED,
    TOURNAMENT_MATCH_SCHEDULED,
)


def _played(team1, team2, score1, score2):
    return MatchupRecord(team1, team2, TOURNAMENT_MATCH_PLAYED, score1, score2)


def _by_team(placements):
    return {p.team_ids: p for p in placements}


class TestSinglesPlacements:
    """Singles groups: one entry per participant."""

    def test_everyone_listed_before_any_result(self):
        placements = calculate_placements_for_group(SINGLES, [3, 1, 2], [])

        assert [p.team_ids for p in placements] == [(1,), (2,), (3,)]
        assert all(p.rank == 1 for p in placements)
        assert all(p.matches_played == 0 for p in placements)

    def test_records_accumulate(self):
        placements = calculate_placements_for_group(
            SINGLES,
            [1, 2, 3],
            [
                _played([1], [2], 11, 5),
                _played([3], [1], 11, 9),
                _played([2], [3], 4, 11),
            ],
        )
        teams = _by_team(placements)

        assert (teams[(3,)].wins, teams[(3,)].losses) == (2, 0)
        assert teams[(3,)].points_for == 22
        assert teams[(3,)].points_against == 13
        assert teams[(3,)].point_differential == 9
        assert teams[(1,)].matches_played == 2
        assert [p.team_ids for p in placements] == [(3,), (1,), (2,)]
        assert [p.rank for p in placements] == [1, 2, 3]

    def test_ties_share_rank_and_skip(self):
        placements = calculate_placements_for_group(
            SINGLES,
            [1, 2, 3, 4],
            [
                _played([1], [2], 11, 5),
                _played([3], [4], 11, 5),
            ],
        )

        assert [p.team_ids for p in placements] == [(1,), (3,), (2,), (4,)]
        assert [p.rank for p in placements] == [1, 1, 3, 3]

    def test_differential_beats_points_for(self):
        placements = calculate_placements_for_group(
            SINGLES,
            [1, 2, 3, 4],
            [
                _played([1], [2], 11, 2),   # +9, 11 points
                _played([3], [4], 15, 13),  # +2, 15 points
            ],
        )

        assert placements[0].team_ids == (1,)
        assert placements[1].team_ids == (3,)
        assert placements[1].rank == 2

    def test_unplayed_and_cancelled_matchups_ignored(self):
        placements = calculate_placements_for_group(
            SINGLES,
            [1, 2],
            [
                MatchupRecord([1], [2], TOURNAMENT_MATCH_SCHEDULED),
                MatchupRecord([1], [2], TOURNAMENT_MATCH_CANCELLED, 11, 3),
                MatchupRecord([1], [2], TOURNAMENT_MATCH_PLAYED),
            ],
        )

        assert all(p.matches_played == 0 for p in placements)
        assert all(p.rank == 1 for p in placements)


class TestDoublesPlacements:
    """Doubles groups: one entry per team that appears in a matchup."""

    def test_team_identity_ignores_order(self):
        placements = calculate_placements_for_group(
            DOUBLES,
            [1, 2, 3, 4],
            [
                _played([2, 1], [3, 4], 11, 8),
                _played([4, 3], [1, 2], 11, 6),
            ],
        )
        teams = _by_team(placements)

        assert set(teams) == {(1, 2), (3, 4)}
        assert (teams[(1, 2)].wins, teams[(1, 2)].losses) == (1, 1)
        assert teams[(3, 4)].point_differential == 2
        assert placements[0].team_ids == (3, 4)

    def test_participants_without_matchups_not_listed(self):
        placements = calculate_placements_for_group(
            DOUBLES,
            [1, 2, 3, 4, 5, 6],
            [MatchupRecord([1, 2], [3, 4])],
        )

        assert [p.team_ids for p in placements] == [(1, 2), (3, 4)]
        assert [p.rank for p in placements] == [1, 1]
