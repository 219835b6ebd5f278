"""
Match submission validation.

Table-tennis results are only accepted when they describe a game that could
have finished: no draws, the winner reached the target score, and the winner
leads by at least the win-by margin (11-9 and 13-11 are fine, 11-10 is not).

The score and roster rules are plain functions so tournament reporting can
share them; MatchSubmission wraps them in a pydantic model for new results.

Usage:
    submission = MatchSubmission(
        match_type="singles",
        team1=[alice.id],
        team2=[bob.id],
        team1_score=11,
        team2_score=7,
    )
"""

from datetime import datetime, timezone
from typing import Literal, Optional, Sequence

from pydantic import BaseModel, Field, field_validator, model_validator

from pongleague.exceptions import MatchValidationError
from pongleague.statuses import TEAM_SIZES

DEFAULT_TARGET_POINTS = 11
DEFAULT_WIN_BY_MARGIN = 2

MAX_LOCATION_LENGTH = 120
MAX_NOTE_LENGTH = 280


def validate_score(
    team1_score: int,
    team2_score: int,
    target_points: int = DEFAULT_TARGET_POINTS,
    win_by_margin: int = DEFAULT_WIN_BY_MARGIN,
) -> None:
    """
    Check that a final score is a legal finished game.

    Raises:
        MatchValidationError: describing the first rule the score breaks
    """
    for score in (team1_score, team2_score):
        if isinstance(score, bool) or not isinstance(score, int) or score < 0:
            raise MatchValidationError("Scores must be non-negative integers.")
    if team1_score == team2_score:
        raise MatchValidationError("Matches cannot end in a draw.")

    winner = max(team1_score, team2_score)
    loser = min(team1_score, team2_score)
    if winner < target_points:
        raise MatchValidationError(f"Winner must reach at least {target_points} points.")
    if winner - loser < win_by_margin:
        raise MatchValidationError(f"Winner must lead by at least {win_by_margin} points.")


def validate_teams(match_type: str, team1: Sequence[int], team2: Sequence[int]) -> None:
    """
    Check team sizes for the match type and that no player is listed twice.

    Raises:
        MatchValidationError: on a wrong team size or a repeated player
    """
    size = TEAM_SIZES.get(match_type)
    if size is None:
        raise MatchValidationError(f"Unknown match type: {match_type!r}")
    if len(team1) != size or len(team2) != size:
        noun = "player" if size == 1 else "players"
        raise MatchValidationError(
            f"{match_type.capitalize()} matches must have exactly {size} {noun} per team."
        )
    if set(team1) & set(team2):
        raise MatchValidationError("Players cannot appear on both teams.")
    if len(set(team1)) != len(team1) or len(set(team2)) != len(team2):
        raise MatchValidationError("A player cannot fill two seats on the same team.")


class MatchSubmission(BaseModel):
    """A new or edited match result, validated on construction."""

    match_type: Literal["singles", "doubles"]
    team1: list[int] = Field(min_length=1)
    team2: list[int] = Field(min_length=1)
    team1_score: int = Field(ge=0)
    team2_score: int = Field(ge=0)
    target_points: int = Field(default=DEFAULT_TARGET_POINTS, ge=1, le=21)
    win_by_margin: int = Field(default=DEFAULT_WIN_BY_MARGIN, ge=1, le=5)
    played_at: Optional[datetime] = None
    location: Optional[str] = Field(default=None, max_length=MAX_LOCATION_LENGTH)
    note: Optional[str] = Field(default=None, max_length=MAX_NOTE_LENGTH)

    @field_validator("played_at")
    @classmethod
    def normalise_played_at(cls, v: Optional[datetime]) -> Optional[datetime]:
        """Store timestamps as naive UTC."""
        if v is not None and v.tzinfo is not None:
            v = v.astimezone(timezone.utc).replace(tzinfo=None)
        return v

    @model_validator(mode="after")
    def check_result(self) -> "MatchSubmission":
        validate_score(self.team1_score, self.team2_score, self.target_points, self.win_by_margin)
        validate_teams(self.match_type, self.team1, self.team2)
        return self

    @property
    def player_ids(self) -> list[int]:
        return self.team1 + self.team2

