"""
Group standings for tournaments.

Placements are recomputed from the group's matchups on every read; nothing
is stored. A team is identified by its sorted player ids, so a doubles pair
accumulates one record no matter which side it was listed on.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

from pongleague.statuses import SINGLES, TOURNAMENT_MATCH_PLAYED, TOURNAMENT_MATCH_SCHEDULED


@dataclass
class MatchupRecord:
    """A matchup as the ranker sees it: the two teams and, if reported, the score."""
    team1_ids: Sequence[int]
    team2_ids: Sequence[int]
    status: str = TOURNAMENT_MATCH_SCHEDULED
    team1_score: Optional[int] = None
    team2_score: Optional[int] = None

    @property
    def has_result(self) -> bool:
        return self.team1_score is not None and self.team2_score is not None


@dataclass
class Placement:
    """One team's line in the group table."""
    team_ids: tuple[int, ...]
    wins: int = 0
    losses: int = 0
    matches_played: int = 0
    points_for: int = 0
    points_against: int = 0
    rank: int = 0

    @property
    def point_differential(self) -> int:
        return self.points_for - self.points_against

    @property
    def team_key(self) -> str:
        return "|".join(str(pid) for pid in self.team_ids)

    def _signature(self) -> tuple[int, int, int]:
        return (self.wins, self.point_differential, self.points_for)


def calculate_placements_for_group(
    mode: str,
    participant_ids: Sequence[int],
    matchups: Sequence[MatchupRecord],
) -> list[Placement]:
    """
    Rank the teams in one group.

    In singles every participant appears even with no matchups. Every team
    named in a matchup appears too, but only played matchups with a score
    count toward the record.

    Ordering: wins, then point differential, then points scored (all
    descending), then the joined team ids. Teams level on wins, differential
    and points scored share a rank; the next team down is ranked by its
    position, so ranks go 1, 2, 2, 4.

    Args:
        mode: Tournament mode ('singles' or 'doubles')
        participant_ids: Players in the group
        matchups: The group's matchups

    Returns:
        Placements in rank order
    """
    stats: dict[tuple[int, ...], Placement] = {}

    def ensure(ids: Sequence[int]) -> Placement:
        key = tuple(sorted(ids))
        if key not in stats:
            stats[key] = Placement(team_ids=key)
        return stats[key]

    if mode == SINGLES:
        for pid in participant_ids:
            ensure([pid])

    for matchup in matchups:
        team1 = ensure(matchup.team1_ids)
        team2 = ensure(matchup.team2_ids)
        if matchup.status != TOURNAMENT_MATCH_PLAYED or not matchup.has_result:
            continue

        score1, score2 = matchup.team1_score, matchup.team2_score
        team1.matches_played += 1
        team2.matches_played += 1
        team1.points_for += score1
        team1.points_against += score2
        team2.points_for += score2
        team2.points_against += score1

        if score1 > score2:
            team1.wins += 1
            team2.losses += 1
        elif score2 > score1:
            team2.wins += 1
            team1.losses += 1

    placements = sorted(
        stats.values(),
        key=lambda p: (-p.wins, -p.point_differential, -p.points_for, p.team_key),
    )

    previous = None
    for index, placement in enumerate(placements):
        signature = placement._signature()
        if previous is not None and signature == previous._signature():
            placement.rank = previous.rank
        else:
            placement.rank = index + 1
        previous = placement

    return placements
