"""
Tournament structure generator.

Runs once when a tournament is created and is completely pure: it takes the
roster (with each player's rating in the tournament mode) and the tournament
options, and returns the groups and their matchups. Persisting the plan is
the caller's job.

Two formats are supported:

- standard: every group gets a match budget derived from the quota
  (matches per player, or games per group). Singles groups play circle-method
  round-robin rounds until the budget runs out; doubles groups draw random
  non-repeating pairings with a per-player cap.
- competitive: full round robins repeated `iterations` times, with sides
  swapped on even iterations. Doubles groups play as fixed teams pairing the
  strongest remaining player with the weakest.

Usage:
    plans = plan_tournament(
        participants=[SeededParticipant(1, 1620.0), ...],
        labels=["Table A", "Table B"],
        mode=SINGLES,
        matches_per_player=3,
    )
    for plan in plans:
        print(plan.label, len(plan.matchups))
"""

from __future__ import annotations

import logging
import math
import random
from dataclasses import dataclass, field
from typing import Optional, Sequence

from pongleague.exceptions import PreconditionError
from pongleague.rating.constants import DEFAULT_RATING
from pongleague.statuses import (
    DOUBLES,
    FORMAT_COMPETITIVE,
    FORMAT_STANDARD,
    MATCH_COUNT_MODES,
    PER_PLAYER,
    SINGLES,
    TOURNAMENT_FORMATS,
)

logger = logging.getLogger(__name__)

# Placeholder seat that pads odd rosters in the circle method
_BYE = None

# Random doubles search gives up after this many shuffles per requested match
DOUBLES_ATTEMPTS_PER_MATCH = 30

DEFAULT_MATCHES_PER_PLAYER = 3
DEFAULT_GAMES_PER_GROUP = 8
MAX_COMPETITIVE_ITERATIONS = 5


@dataclass(frozen=True)
class SeededParticipant:
    """A roster entry with the rating used for seeding."""
    player_id: int
    rating: float = DEFAULT_RATING
    display_name: str = ""


@dataclass
class GroupAssignment:
    """One group's label and its members, strongest first."""
    label: str
    participants: list[SeededParticipant] = field(default_factory=list)

    @property
    def player_ids(self) -> list[int]:
        return [p.player_id for p in self.participants]


@dataclass(frozen=True)
class ScheduledMatch:
    """A generated matchup. Teams hold one player id for singles, two for doubles."""
    team1: tuple[int, ...]
    team2: tuple[int, ...]
    iteration: int = 1

    @property
    def player_ids(self) -> tuple[int, ...]:
        return self.team1 + self.team2


@dataclass
class GroupPlan:
    """Everything the scheduler decided for one group."""
    label: str
    participant_ids: list[int]
    matchups: list[ScheduledMatch] = field(default_factory=list)


# =============================================================================
# Groups
# =============================================================================

def distribute_into_groups(
    participants: Sequence[SeededParticipant],
    labels: Sequence[str],
) -> list[GroupAssignment]:
    """
    Split the roster into rating bands, one per label.

    Participants are sorted by rating (highest first, stable for ties) and
    cut into contiguous slices. When the roster does not divide evenly, the
    earliest groups take one extra player each, so 9 players over 2 labels
    gives groups of 5 and 4.

    Args:
        participants: Roster with seeding ratings
        labels: Group labels, in order

    Returns:
        One GroupAssignment per label, in label order

    Raises:
        PreconditionError: if labels is empty or contains duplicates
    """
    if not labels:
        raise PreconditionError("Provide at least one group label")
    if len(set(labels)) != len(labels):
        raise PreconditionError("Group labels must be unique")

    ordered = sorted(participants, key=lambda p: p.rating, reverse=True)
    base_size, remainder = divmod(len(ordered), len(labels))

    groups = []
    cursor = 0
    for index, label in enumerate(labels):
        size = base_size + (1 if index < remainder else 0)
        groups.append(GroupAssignment(label=label, participants=ordered[cursor:cursor + size]))
        cursor += size
    return groups


# =============================================================================
# Round robin
# =============================================================================

def _round_robin_rounds(player_ids: Sequence[int]) -> list[list[tuple[int, int]]]:
    """
    Circle-method round robin.

    The first seat stays fixed while the rest rotate one place per round.
    Odd rosters are padded with a bye and pairings against it are dropped,
    so each player sits out exactly one round.

    Returns:
        n-1 rounds (n after padding), each a list of (home, away) pairs
    """
    seats = list(player_ids)
    if len(seats) <= 1:
        return []
    if len(seats) % 2 == 1:
        seats.append(_BYE)

    half = len(seats) // 2
    rotation = seats[1:]
    rounds = []

    for _ in range(len(seats) - 1):
        left = [seats[0]] + rotation[:half - 1]
        right = list(reversed(rotation[half - 1:]))
        rounds.append([
            (home, away)
            for home, away in zip(left, right)
            if home is not _BYE and away is not _BYE
        ])
        rotation.append(rotation.pop(0))

    return rounds


def generate_singles_pairings(player_ids: Sequence[int], limit: int) -> list[ScheduledMatch]:
    """
    Budget-limited singles schedule.

    Whole round-robin rounds are taken while they fit in the budget. The
    round that would overflow is filled greedily: the pairing whose busier
    player has played least goes first, then the pairing with the fewest
    combined matches, then by the home player's roster position. This keeps
    per-player match counts within one of each other.

    Returns:
        At most `limit` matches (and never more than a full round robin).
        Empty when there are fewer than 2 players or limit <= 0.
    """
    if len(player_ids) < 2 or limit <= 0:
        return []

    rounds = _round_robin_rounds(player_ids)
    position = {pid: index for index, pid in enumerate(player_ids)}
    counts = {pid: 0 for pid in player_ids}
    max_matches = min(limit, sum(len(r) for r in rounds))
    matches: list[ScheduledMatch] = []

    def take(home: int, away: int) -> None:
        matches.append(ScheduledMatch(team1=(home,), team2=(away,)))
        counts[home] += 1
        counts[away] += 1

    for round_pairs in rounds:
        if len(matches) >= max_matches:
            break
        if not round_pairs:
            continue

        if len(round_pairs) <= max_matches - len(matches):
            for home, away in round_pairs:
                take(home, away)
            continue

        available = list(round_pairs)
        while len(matches) < max_matches and available:
            available.sort(key=lambda pair: (
                max(counts[pair[0]], counts[pair[1]]),
                counts[pair[0]] + counts[pair[1]],
                position[pair[0]],
            ))
            home, away = available.pop(0)
            take(home, away)

    return matches


def generate_doubles_pairings(
    player_ids: Sequence[int],
    limit: int,
    rng: Optional[random.Random] = None,
) -> list[ScheduledMatch]:
    """
    Budget-limited doubles schedule built by random search.

    Each attempt shuffles the roster and cuts it into blocks of four
    (two teams of two). A block is kept when nobody in it has reached the
    per-player cap of max(1, ceil(4 * limit / n)) and the same two teams
    have not already met, in either orientation. The search stops once the
    budget is met or after 30 attempts per requested match.

    Args:
        player_ids: Group roster
        limit: Requested number of matches
        rng: Random source; pass a seeded random.Random for reproducible schedules

    Returns:
        At most `limit` matches; may be fewer when the search runs out.
        Empty when there are fewer than 4 players or limit <= 0.
    """
    ids = list(player_ids)
    if len(ids) < 4 or limit <= 0:
        return []

    rng = rng or random.Random()
    max_per_player = max(1, math.ceil(limit * 4 / len(ids)))
    counts = {pid: 0 for pid in ids}
    seen: set[tuple[tuple[int, ...], tuple[int, ...]]] = set()
    matches: list[ScheduledMatch] = []
    attempts = 0

    while len(matches) < limit and attempts < limit * DOUBLES_ATTEMPTS_PER_MATCH:
        attempts += 1
        shuffled = list(ids)
        rng.shuffle(shuffled)

        for i in range(0, len(shuffled) - 3, 4):
            if len(matches) >= limit:
                break
            team1 = (shuffled[i], shuffled[i + 1])
            team2 = (shuffled[i + 2], shuffled[i + 3])
            if any(counts[pid] >= max_per_player for pid in team1 + team2):
                continue

            key = tuple(sorted((tuple(sorted(team1)), tuple(sorted(team2)))))
            if key in seen:
                continue
            seen.add(key)

            for pid in team1 + team2:
                counts[pid] += 1
            matches.append(ScheduledMatch(team1=team1, team2=team2))

    if len(matches) < limit:
        logger.warning(
            "Doubles schedule short: %d of %d matches for %d players after %d attempts",
            len(matches), limit, len(ids), attempts,
        )
    return matches


def generate_competitive_singles_schedule(
    player_ids: Sequence[int],
    iterations: int,
) -> list[ScheduledMatch]:
    """
    Full singles round robin played `iterations` times.

    Even iterations swap home and away so the rematch flips sides.
    """
    ids = [pid for pid in player_ids if pid is not None]
    if len(ids) < 2 or iterations < 1:
        return []

    rounds = _round_robin_rounds(ids)
    matches = []
    for iteration in range(1, iterations + 1):
        swap = iteration % 2 == 0
        for round_pairs in rounds:
            for home, away in round_pairs:
                if swap:
                    home, away = away, home
                matches.append(ScheduledMatch(team1=(home,), team2=(away,), iteration=iteration))
    return matches


def generate_competitive_doubles_schedule(
    participants: Sequence[SeededParticipant],
    iterations: int,
) -> list[ScheduledMatch]:
    """
    Fixed-team doubles round robin played `iterations` times.

    Teams pair the i-th strongest player with the i-th weakest, then the
    teams play a round robin with sides swapped on even iterations.

    Raises:
        PreconditionError: if the roster is odd or has fewer than 4 players
    """
    if len(participants) < 4 or len(participants) % 2 != 0:
        raise PreconditionError(
            "Competitive doubles requires an even number of participants (minimum four), "
            f"got {len(participants)}"
        )
    if iterations < 1:
        return []

    ordered = sorted(participants, key=lambda p: p.rating, reverse=True)
    teams = [
        (ordered[i].player_id, ordered[-1 - i].player_id)
        for i in range(len(ordered) // 2)
    ]

    rounds = _round_robin_rounds(list(range(len(teams))))
    matches = []
    for iteration in range(1, iterations + 1):
        swap = iteration % 2 == 0
        for round_pairs in rounds:
            for home, away in round_pairs:
                if swap:
                    home, away = away, home
                matches.append(ScheduledMatch(team1=teams[home], team2=teams[away], iteration=iteration))
    return matches


# =============================================================================
# Tournament planning
# =============================================================================

def match_limit_for_group(
    mode: str,
    group_size: int,
    match_count_mode: str = PER_PLAYER,
    matches_per_player: int = DEFAULT_MATCHES_PER_PLAYER,
    games_per_group: int = DEFAULT_GAMES_PER_GROUP,
) -> int:
    """
    Match budget for one standard-format group.

    Singles can never exceed one full round robin, C(n, 2). A per-player
    quota of m gives floor(m * n / 2) singles matches or ceil(m * n / 4)
    doubles matches, since each match seats two or four players.
    """
    if match_count_mode not in MATCH_COUNT_MODES:
        raise PreconditionError(f"Unknown match count mode: {match_count_mode!r}")

    if mode == SINGLES:
        combos = group_size * (group_size - 1) // 2
        if match_count_mode == PER_PLAYER:
            return min(combos, (matches_per_player * group_size) // 2)
        return min(combos, games_per_group)

    if mode == DOUBLES:
        if match_count_mode == PER_PLAYER:
            return max(0, math.ceil(matches_per_player * group_size / 4))
        return games_per_group

    raise PreconditionError(f"Unknown tournament mode: {mode!r}")


def plan_tournament(
    participants: Sequence[SeededParticipant],
    labels: Sequence[str],
    mode: str,
    format: str = FORMAT_STANDARD,
    match_count_mode: str = PER_PLAYER,
    matches_per_player: int = DEFAULT_MATCHES_PER_PLAYER,
    games_per_group: int = DEFAULT_GAMES_PER_GROUP,
    iterations: int = 1,
    rng: Optional[random.Random] = None,
) -> list[GroupPlan]:
    """
    Distribute the roster into groups and schedule every group.

    Args:
        participants: Roster with ratings in the tournament mode
        labels: Group labels
        mode: 'singles' or 'doubles'
        format: 'standard' or 'competitive'
        match_count_mode: 'per_player' or 'total_matches' (standard format)
        matches_per_player: Per-player quota
        games_per_group: Per-group quota
        iterations: Round-robin repetitions (competitive format)
        rng: Random source for doubles pairings

    Returns:
        One GroupPlan per label, participants in seed order

    Raises:
        PreconditionError: on bad labels, or a competitive group that
            cannot be scheduled
    """
    if format not in TOURNAMENT_FORMATS:
        raise PreconditionError(f"Unknown tournament format: {format!r}")

    plans = []
    for group in distribute_into_groups(participants, labels):
        ids = group.player_ids

        if format == FORMAT_COMPETITIVE:
            if mode == SINGLES:
                if len(ids) < 2:
                    raise PreconditionError(
                        f"Competitive singles group {group.label!r} needs at least two participants"
                    )
                matchups = generate_competitive_singles_schedule(ids, iterations)
            else:
                matchups = generate_competitive_doubles_schedule(group.participants, iterations)
        else:
            limit = match_limit_for_group(
                mode,
                len(ids),
                match_count_mode,
                matches_per_player=matches_per_player,
                games_per_group=games_per_group,
            )
            if mode == SINGLES:
                matchups = generate_singles_pairings(ids, limit)
            else:
                matchups = generate_doubles_pairings(ids, limit, rng=rng)

        logger.debug("Planned group %s: %d players, %d matchups", group.label, len(ids), len(matchups))
        plans.append(GroupPlan(label=group.label, participant_ids=ids, matchups=matchups))

    return plans
