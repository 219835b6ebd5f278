"""
pongleague - Table Tennis League Engine

Tracks a table-tennis league: players, matches and tournaments, with
Glicko-2 skill ratings updated after every confirmed result.

Main components:
- rating: Glicko-2 math, per-match rating engine, league recompute
- scheduling: tournament group distribution, pairings, placements
- services: match lifecycle and tournament persistence on top of the engine
- db: SQLAlchemy models and session management
- tasks: single-writer locking for rating mutations
"""

__version__ = "1.0.0"
