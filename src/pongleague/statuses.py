"""Shared status and mode definitions.

This module is the single source of truth for the string vocabularies used
by the models, the rating engine and the tournament services.
"""

from __future__ import annotations

from pongleague.exceptions import PreconditionError

# =============================================================================
# Match types and rating modes
# =============================================================================

SINGLES = "singles"
DOUBLES = "doubles"
MATCH_TYPES: tuple[str, ...] = (SINGLES, DOUBLES)

# Required players per side for each match type.
TEAM_SIZES: dict[str, int] = {SINGLES: 1, DOUBLES: 2}

OVERALL = "overall"
RATING_MODES: tuple[str, ...] = (OVERALL, SINGLES, DOUBLES)

# Modes updated by a match of each type. Overall always comes first.
_MODES_BY_MATCH_TYPE: dict[str, tuple[str, ...]] = {
    SINGLES: (OVERALL, SINGLES),
    DOUBLES: (OVERALL, DOUBLES),
}


def modes_for_match_type(match_type: str) -> tuple[str, ...]:
    """Return the rating modes a match of ``match_type`` updates."""
    try:
        return _MODES_BY_MATCH_TYPE[match_type]
    except KeyError:
        raise PreconditionError(f"Unknown match type: {match_type!r}") from None


# =============================================================================
# Match statuses
# =============================================================================

MATCH_PENDING = "pending"
MATCH_CONFIRMED = "confirmed"
MATCH_DISPUTED = "disputed"
MATCH_CANCELLED = "cancelled"

ALL_MATCH_STATUSES: tuple[str, ...] = (
    MATCH_PENDING,
    MATCH_CONFIRMED,
    MATCH_DISPUTED,
    MATCH_CANCELLED,
)

# Statuses from which a match may still be confirmed.
CONFIRMABLE_MATCH_STATUSES: tuple[str, ...] = (MATCH_PENDING, MATCH_DISPUTED)

# =============================================================================
# Tournament statuses
# =============================================================================

TOURNAMENT_SCHEDULED = "scheduled"
TOURNAMENT_ACTIVE = "active"
TOURNAMENT_COMPLETED = "completed"
TOURNAMENT_CANCELLED = "cancelled"

ALL_TOURNAMENT_STATUSES: tuple[str, ...] = (
    TOURNAMENT_SCHEDULED,
    TOURNAMENT_ACTIVE,
    TOURNAMENT_COMPLETED,
    TOURNAMENT_CANCELLED,
)

TERMINAL_TOURNAMENT_STATUSES: tuple[str, ...] = (
    TOURNAMENT_COMPLETED,
    TOURNAMENT_CANCELLED,
)

_TOURNAMENT_TRANSITIONS: dict[str, tuple[str, ...]] = {
    TOURNAMENT_SCHEDULED: (TOURNAMENT_ACTIVE, TOURNAMENT_CANCELLED),
    TOURNAMENT_ACTIVE: (TOURNAMENT_COMPLETED, TOURNAMENT_CANCELLED),
    TOURNAMENT_COMPLETED: (),
    TOURNAMENT_CANCELLED: (),
}


def can_transition_tournament(current: str, target: str) -> bool:
    """Whether a tournament in ``current`` status may move to ``target``."""
    return target in _TOURNAMENT_TRANSITIONS.get(current, ())


def assert_tournament_transition(current: str, target: str) -> None:
    """Raise PreconditionError unless ``current -> target`` is a legal move."""
    if target not in ALL_TOURNAMENT_STATUSES:
        raise PreconditionError(f"Unknown tournament status: {target!r}")
    if not can_transition_tournament(current, target):
        raise PreconditionError(
            f"Tournament cannot move from {current!r} to {target!r}"
        )


# =============================================================================
# Tournament formats and match-count modes
# =============================================================================

FORMAT_STANDARD = "standard"
FORMAT_COMPETITIVE = "competitive"
TOURNAMENT_FORMATS: tuple[str, ...] = (FORMAT_STANDARD, FORMAT_COMPETITIVE)

PER_PLAYER = "per_player"
TOTAL_MATCHES = "total_matches"
MATCH_COUNT_MODES: tuple[str, ...] = (PER_PLAYER, TOTAL_MATCHES)

# =============================================================================
# Tournament match statuses
# =============================================================================

TOURNAMENT_MATCH_SCHEDULED = "scheduled"
TOURNAMENT_MATCH_PLAYED = "played"
TOURNAMENT_MATCH_CANCELLED = "cancelled"

ALL_TOURNAMENT_MATCH_STATUSES: tuple[str, ...] = (
    TOURNAMENT_MATCH_SCHEDULED,
    TOURNAMENT_MATCH_PLAYED,
    TOURNAMENT_MATCH_CANCELLED,
)
