"""Exceptions raised by the league engine.

Three families:

- ``PreconditionError``: the caller broke a contract (rating an unconfirmed
  match, combining an empty team, bad tournament setup). Never retried.
- ``MatchValidationError``: a submitted result is not a legal table-tennis
  score or roster. Reported back to whoever submitted it.
- ``ConvergenceError``: the Glicko-2 volatility solver ran out of
  iterations. Indicates a modelling bug rather than bad data.
"""


class LeagueError(Exception):
    """Base exception for all pongleague errors."""


class PreconditionError(LeagueError, ValueError):
    """Raised when a caller violates an operation's precondition."""


class MatchValidationError(LeagueError, ValueError):
    """Raised when a match submission has an invalid score or roster."""


class ConvergenceError(LeagueError, RuntimeError):
    """Raised when the volatility root finder exceeds its iteration cap."""
