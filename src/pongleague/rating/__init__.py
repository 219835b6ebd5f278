"""
Glicko-2 rating system module.

Implements league ratings with:
- Standard Glicko-2 single-period updates (Illinois volatility solver)
- Team combination so doubles sides rate as one opponent
- RD inflation for inactive players
- Three independent tracks per player: overall, singles, doubles

The database-facing pieces live in submodules and are imported from there:
    from pongleague.rating.engine import RatingEngine
    from pongleague.rating.recompute import recompute_league
"""

from pongleague.rating.constants import GLICKO_SCALE
from pongleague.rating.glicko2 import (
    OpponentResult,
    RatingState,
    RatingUpdate,
    combine_team,
    expected_score,
    glicko2_update,
    inflate_rd,
)

__all__ = [
    "GLICKO_SCALE",
    "OpponentResult",
    "RatingState",
    "RatingUpdate",
    "combine_team",
    "expected_score",
    "glicko2_update",
    "inflate_rd",
]
