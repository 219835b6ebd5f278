"""
Tournament scheduling: group distribution, matchup generation and placements.

Everything in this package is pure; the tournament service persists the results.
"""

from pongleague.scheduling.placements import MatchupRecord, Placement, calculate_placements_for_group
from pongleague.scheduling.scheduler import (
    GroupAssignment,
    GroupPlan,
    ScheduledMatch,
    SeededParticipant,
    distribute_into_groups,
    generate_competitive_doubles_schedule,
    generate_competitive_singles_schedule,
    generate_doubles_pairings,
    generate_singles_pairings,
    match_limit_for_group,
    plan_tournament,
)

__all__ = [
    "GroupAssignment",
    "GroupPlan",
    "MatchupRecord",
    "Placement",
    "ScheduledMatch",
    "SeededParticipant",
    "calculate_placements_for_group",
    "distribute_into_groups",
    "generate_competitive_doubles_schedule",
    "generate_competitive_singles_schedule",
    "generate_doubles_pairings",
    "generate_singles_pairings",
    "match_limit_for_group",
    "plan_tournament",
]
