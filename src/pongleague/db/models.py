"""
SQLAlchemy ORM models for pongleague.

The schema is the persistence side of the rating and tournament engine.
Ratings are stored per (player, mode) so the three tracks (overall, singles,
doubles) evolve independently, and every rated match leaves one immutable
history row per player per mode.

Tables:
- players: League members
- player_ratings: Current Glicko-2 state per player and mode
- matches: Submitted results (pending -> confirmed/disputed/cancelled)
- match_participants: Which players played on which side of a match
- rating_history: Per-match, per-mode rating snapshots
- tournaments: Tournament configuration and lifecycle
- tournament_groups: Rating bands within a tournament
- tournament_participants: Roster and group assignment
- tournament_matches: Scheduled matchups generated at creation time
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from pongleague.rating.constants import DEFAULT_RATING, DEFAULT_RD, DEFAULT_VOLATILITY
from pongleague.rating.glicko2 import RatingState
from pongleague.statuses import (
    FORMAT_STANDARD,
    MATCH_PENDING,
    PER_PLAYER,
    TOURNAMENT_MATCH_SCHEDULED,
    TOURNAMENT_SCHEDULED,
)


def utcnow() -> datetime:
    """Naive UTC timestamp, matching how DateTime columns are stored."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


# =============================================================================
# Player Models
# =============================================================================

class Player(Base):
    """A league member."""
    __tablename__ = "players"

    id: Mapped[int] = mapped_column(primary_key=True)
    username: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    display_name: Mapped[str] = mapped_column(String(120), nullable=False)

    # Inactive players stay in history but drop off the default leaderboard
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    ratings: Mapped[list["PlayerRating"]] = relationship(
        back_populates="player", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Player(id={self.id}, username='{self.username}')>"


class PlayerRating(Base):
    """
    Current Glicko-2 state for one player in one mode.

    Rows are created at baseline the first time a player is rated in a mode
    and reset to baseline by a league recompute.
    """
    __tablename__ = "player_ratings"

    id: Mapped[int] = mapped_column(primary_key=True)
    player_id: Mapped[int] = mapped_column(ForeignKey("players.id", ondelete="CASCADE"), nullable=False)

    # 'overall', 'singles' or 'doubles'
    mode: Mapped[str] = mapped_column(String(10), nullable=False)

    rating: Mapped[float] = mapped_column(Float, nullable=False, default=DEFAULT_RATING)
    rd: Mapped[float] = mapped_column(Float, nullable=False, default=DEFAULT_RD)
    volatility: Mapped[float] = mapped_column(Float, nullable=False, default=DEFAULT_VOLATILITY)

    wins: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    losses: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_match_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    player: Mapped["Player"] = relationship(back_populates="ratings")

    __table_args__ = (
        UniqueConstraint("player_id", "mode", name="uq_player_rating_mode"),
        CheckConstraint("rd >= 0", name="ck_player_rating_rd_non_negative"),
    )

    def to_state(self) -> RatingState:
        return RatingState(rating=self.rating, rd=self.rd, volatility=self.volatility)

    def reset(self) -> None:
        """Return to the baseline state of a player with no history."""
        self.rating = DEFAULT_RATING
        self.rd = DEFAULT_RD
        self.volatility = DEFAULT_VOLATILITY
        self.wins = 0
        self.losses = 0
        self.last_match_at = None

    def __repr__(self) -> str:
        return (
            f"<PlayerRating(player_id={self.player_id}, mode='{self.mode}', "
            f"rating={self.rating:.1f}, rd={self.rd:.1f})>"
        )


# =============================================================================
# Match Models
# =============================================================================

class Match(Base):
    """
    A single table-tennis game between two sides.

    Status lifecycle:
    - 'pending': Submitted, awaiting confirmation by a participant
    - 'confirmed': Counts toward ratings
    - 'disputed': A participant challenged the result
    - 'cancelled': Removed from the ledger (ratings recomputed)
    """
    __tablename__ = "matches"

    id: Mapped[int] = mapped_column(primary_key=True)

    # 'singles' or 'doubles'
    match_type: Mapped[str] = mapped_column(String(10), nullable=False)
    status: Mapped[str] = mapped_column(String(12), nullable=False, default=MATCH_PENDING)

    team1_score: Mapped[int] = mapped_column(Integer, nullable=False)
    team2_score: Mapped[int] = mapped_column(Integer, nullable=False)
    target_points: Mapped[int] = mapped_column(Integer, nullable=False, default=11)
    win_by_margin: Mapped[int] = mapped_column(Integer, nullable=False, default=2)

    played_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, index=True)
    location: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    note: Mapped[Optional[str]] = mapped_column(String(280), nullable=True)
    dispute_reason: Mapped[Optional[str]] = mapped_column(String(280), nullable=True)

    confirmed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    # Set when this match is the reported result of a tournament matchup
    tournament_match_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("tournament_matches.id"), nullable=True, unique=True
    )

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    participants: Mapped[list["MatchParticipant"]] = relationship(
        back_populates="match",
        cascade="all, delete-orphan",
        order_by="MatchParticipant.id",
    )
    tournament_match: Mapped[Optional["TournamentMatch"]] = relationship(back_populates="result_match")

    __table_args__ = (
        CheckConstraint("team1_score >= 0 AND team2_score >= 0", name="ck_match_scores_non_negative"),
        Index("idx_matches_status_played_at", "status", "played_at"),
    )

    def team_player_ids(self, team_no: int) -> list[int]:
        return [p.player_id for p in self.participants if p.team_no == team_no]

    @property
    def team1_won(self) -> bool:
        return self.team1_score > self.team2_score

    def __repr__(self) -> str:
        return (
            f"<Match(id={self.id}, type='{self.match_type}', "
            f"score={self.team1_score}-{self.team2_score}, status='{self.status}')>"
        )


class MatchParticipant(Base):
    """
    One player's seat in a match.

    The before/after columns snapshot the overall-mode rating change and are
    cleared when the league is recomputed.
    """
    __tablename__ = "match_participants"

    id: Mapped[int] = mapped_column(primary_key=True)
    match_id: Mapped[int] = mapped_column(ForeignKey("matches.id", ondelete="CASCADE"), nullable=False)
    player_id: Mapped[int] = mapped_column(ForeignKey("players.id"), nullable=False)
    team_no: Mapped[int] = mapped_column(Integer, nullable=False)

    rating_before: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    rating_after: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    rd_before: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    rd_after: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    match: Mapped["Match"] = relationship(back_populates="participants")
    player: Mapped["Player"] = relationship()

    __table_args__ = (
        UniqueConstraint("match_id", "player_id", name="uq_match_participant"),
        CheckConstraint("team_no IN (1, 2)", name="ck_match_participant_team_no"),
    )

    def __repr__(self) -> str:
        return f"<MatchParticipant(match_id={self.match_id}, player_id={self.player_id}, team={self.team_no})>"


class RatingHistory(Base):
    """Rating snapshot for one player, one match and one mode."""
    __tablename__ = "rating_history"

    id: Mapped[int] = mapped_column(primary_key=True)
    player_id: Mapped[int] = mapped_column(ForeignKey("players.id", ondelete="CASCADE"), nullable=False)
    match_id: Mapped[int] = mapped_column(ForeignKey("matches.id", ondelete="CASCADE"), nullable=False)
    mode: Mapped[str] = mapped_column(String(10), nullable=False)

    rating: Mapped[float] = mapped_column(Float, nullable=False)
    rd: Mapped[float] = mapped_column(Float, nullable=False)
    volatility: Mapped[float] = mapped_column(Float, nullable=False)
    delta_mu: Mapped[float] = mapped_column(Float, nullable=False)
    delta_sigma: Mapped[float] = mapped_column(Float, nullable=False)

    played_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    __table_args__ = (
        UniqueConstraint("player_id", "match_id", "mode", name="uq_rating_history_player_match_mode"),
        Index("idx_rating_history_player_mode_played", "player_id", "mode", "played_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<RatingHistory(player_id={self.player_id}, match_id={self.match_id}, "
            f"mode='{self.mode}', rating={self.rating:.1f})>"
        )


# =============================================================================
# Tournament Models
# =============================================================================

class Tournament(Base):
    """
    A scheduled competition split into rating-balanced groups.

    Status lifecycle: 'scheduled' -> 'active' -> 'completed', with
    'cancelled' reachable from either non-terminal state.
    """
    __tablename__ = "tournaments"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)

    # 'singles' or 'doubles'
    mode: Mapped[str] = mapped_column(String(10), nullable=False)
    # 'standard' or 'competitive'
    format: Mapped[str] = mapped_column(String(15), nullable=False, default=FORMAT_STANDARD)
    status: Mapped[str] = mapped_column(String(12), nullable=False, default=TOURNAMENT_SCHEDULED)

    # 'per_player' or 'total_matches'; only one of the two quotas is stored
    match_count_mode: Mapped[str] = mapped_column(String(15), nullable=False, default=PER_PLAYER)
    matches_per_player: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    games_per_group: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    round_robin_iterations: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    start_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    end_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    groups: Mapped[list["TournamentGroup"]] = relationship(
        back_populates="tournament",
        cascade="all, delete-orphan",
        order_by="TournamentGroup.id",
    )
    participants: Mapped[list["TournamentParticipant"]] = relationship(
        back_populates="tournament", cascade="all, delete-orphan"
    )
    matches: Mapped[list["TournamentMatch"]] = relationship(
        back_populates="tournament",
        cascade="all, delete-orphan",
        order_by="TournamentMatch.id",
    )

    __table_args__ = (
        CheckConstraint("end_at > start_at", name="ck_tournament_end_after_start"),
    )

    def __repr__(self) -> str:
        return f"<Tournament(id={self.id}, name='{self.name}', status='{self.status}')>"


class TournamentGroup(Base):
    """A named, table-labelled rating band within a tournament."""
    __tablename__ = "tournament_groups"

    id: Mapped[int] = mapped_column(primary_key=True)
    tournament_id: Mapped[int] = mapped_column(ForeignKey("tournaments.id", ondelete="CASCADE"), nullable=False)
    name: Mapped[str] = mapped_column(String(60), nullable=False)
    table_label: Mapped[str] = mapped_column(String(60), nullable=False)

    tournament: Mapped["Tournament"] = relationship(back_populates="groups")
    participants: Mapped[list["TournamentParticipant"]] = relationship(
        back_populates="group", order_by="TournamentParticipant.seed"
    )
    matchups: Mapped[list["TournamentMatch"]] = relationship(
        back_populates="group", order_by="TournamentMatch.id"
    )

    __table_args__ = (
        UniqueConstraint("tournament_id", "name", name="uq_tournament_group_name"),
    )

    def __repr__(self) -> str:
        return f"<TournamentGroup(id={self.id}, name='{self.name}')>"


class TournamentParticipant(Base):
    """A player registered in a tournament, with their group and seed."""
    __tablename__ = "tournament_participants"

    id: Mapped[int] = mapped_column(primary_key=True)
    tournament_id: Mapped[int] = mapped_column(ForeignKey("tournaments.id", ondelete="CASCADE"), nullable=False)
    player_id: Mapped[int] = mapped_column(ForeignKey("players.id"), nullable=False)
    group_id: Mapped[Optional[int]] = mapped_column(ForeignKey("tournament_groups.id"), nullable=True)

    # 1 = strongest in the group at creation time
    seed: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    tournament: Mapped["Tournament"] = relationship(back_populates="participants")
    group: Mapped[Optional["TournamentGroup"]] = relationship(back_populates="participants")
    player: Mapped["Player"] = relationship()

    __table_args__ = (
        UniqueConstraint("tournament_id", "player_id", name="uq_tournament_participant"),
    )

    def __repr__(self) -> str:
        return f"<TournamentParticipant(tournament_id={self.tournament_id}, player_id={self.player_id})>"


class TournamentMatch(Base):
    """
    A matchup generated when the tournament was created.

    team1_ids/team2_ids hold player ids (one each for singles, two for
    doubles). Once reported, result_match points at the confirmed Match in
    the general ledger; the tournament does not own that match.
    """
    __tablename__ = "tournament_matches"

    id: Mapped[int] = mapped_column(primary_key=True)
    tournament_id: Mapped[int] = mapped_column(ForeignKey("tournaments.id", ondelete="CASCADE"), nullable=False)
    group_id: Mapped[int] = mapped_column(ForeignKey("tournament_groups.id"), nullable=False)

    team1_ids: Mapped[list] = mapped_column(JSON, nullable=False)
    team2_ids: Mapped[list] = mapped_column(JSON, nullable=False)

    # Round-robin repetition this matchup belongs to (1-based)
    iteration: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    status: Mapped[str] = mapped_column(String(12), nullable=False, default=TOURNAMENT_MATCH_SCHEDULED)
    scheduled_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    tournament: Mapped["Tournament"] = relationship(back_populates="matches")
    group: Mapped["TournamentGroup"] = relationship(back_populates="matchups")
    result_match: Mapped[Optional["Match"]] = relationship(back_populates="tournament_match")

    __table_args__ = (
        Index("idx_tournament_matches_tournament_status", "tournament_id", "status"),
    )

    def __repr__(self) -> str:
        return (
            f"<TournamentMatch(id={self.id}, {self.team1_ids} vs {self.team2_ids}, "
            f"iteration={self.iteration}, status='{self.status}')>"
        )
