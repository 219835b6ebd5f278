"""Create league, rating and tournament tables

Revision ID: 5d1e0a7c3b92
Revises:
Create Date: 2026-03-01 12:00:00.000000+00:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# Revision identifiers, used by Alembic.
revision: str = "5d1e0a7c3b92"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "players",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("username", sa.String(length=64), nullable=False),
        sa.Column("display_name", sa.String(length=120), nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(), nullable=True, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("username"),
    )

    op.create_table(
        "player_ratings",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("player_id", sa.Integer(), nullable=False),
        sa.Column("mode", sa.String(length=10), nullable=False),
        sa.Column("rating", sa.Float(), nullable=False, server_default="1500"),
        sa.Column("rd", sa.Float(), nullable=False, server_default="350"),
        sa.Column("volatility", sa.Float(), nullable=False, server_default="0.06"),
        sa.Column("wins", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("losses", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_match_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.ForeignKeyConstraint(["player_id"], ["players.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("player_id", "mode", name="uq_player_rating_mode"),
        sa.CheckConstraint("rd >= 0", name="ck_player_rating_rd_non_negative"),
    )

    op.create_table(
        "tournaments",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("mode", sa.String(length=10), nullable=False),
        sa.Column("format", sa.String(length=15), nullable=False, server_default="standard"),
        sa.Column("status", sa.String(length=12), nullable=False, server_default="scheduled"),
        sa.Column("match_count_mode", sa.String(length=15), nullable=False, server_default="per_player"),
        sa.Column("matches_per_player", sa.Integer(), nullable=True),
        sa.Column("games_per_group", sa.Integer(), nullable=True),
        sa.Column("round_robin_iterations", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("start_at", sa.DateTime(), nullable=False),
        sa.Column("end_at", sa.DateTime(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=True, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("end_at > start_at", name="ck_tournament_end_after_start"),
    )

    op.create_table(
        "tournament_groups",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tournament_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=60), nullable=False),
        sa.Column("table_label", sa.String(length=60), nullable=False),
        sa.ForeignKeyConstraint(["tournament_id"], ["tournaments.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tournament_id", "name", name="uq_tournament_group_name"),
    )

    op.create_table(
        "tournament_participants",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tournament_id", sa.Integer(), nullable=False),
        sa.Column("player_id", sa.Integer(), nullable=False),
        sa.Column("group_id", sa.Integer(), nullable=True),
        sa.Column("seed", sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(["tournament_id"], ["tournaments.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["player_id"], ["players.id"]),
        sa.ForeignKeyConstraint(["group_id"], ["tournament_groups.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tournament_id", "player_id", name="uq_tournament_participant"),
    )

    op.create_table(
        "tournament_matches",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tournament_id", sa.Integer(), nullable=False),
        sa.Column("group_id", sa.Integer(), nullable=False),
        sa.Column("team1_ids", sa.JSON(), nullable=False),
        sa.Column("team2_ids", sa.JSON(), nullable=False),
        sa.Column("iteration", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("status", sa.String(length=12), nullable=False, server_default="scheduled"),
        sa.Column("scheduled_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.ForeignKeyConstraint(["tournament_id"], ["tournaments.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["group_id"], ["tournament_groups.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "idx_tournament_matches_tournament_status",
        "tournament_matches",
        ["tournament_id", "status"],
    )

    op.create_table(
        "matches",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("match_type", sa.String(length=10), nullable=False),
        sa.Column("status", sa.String(length=12), nullable=False, server_default="pending"),
        sa.Column("team1_score", sa.Integer(), nullable=False),
        sa.Column("team2_score", sa.Integer(), nullable=False),
        sa.Column("target_points", sa.Integer(), nullable=False, server_default="11"),
        sa.Column("win_by_margin", sa.Integer(), nullable=False, server_default="2"),
        sa.Column("played_at", sa.DateTime(), nullable=False),
        sa.Column("location", sa.String(length=120), nullable=True),
        sa.Column("note", sa.String(length=280), nullable=True),
        sa.Column("dispute_reason", sa.String(length=280), nullable=True),
        sa.Column("confirmed_at", sa.DateTime(), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(), nullable=True),
        sa.Column("tournament_match_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.ForeignKeyConstraint(["tournament_match_id"], ["tournament_matches.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tournament_match_id"),
        sa.CheckConstraint("team1_score >= 0 AND team2_score >= 0", name="ck_match_scores_non_negative"),
    )
    op.create_index("ix_matches_played_at", "matches", ["played_at"])
    op.create_index("idx_matches_status_played_at", "matches", ["status", "played_at"])

    op.create_table(
        "match_participants",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("match_id", sa.Integer(), nullable=False),
        sa.Column("player_id", sa.Integer(), nullable=False),
        sa.Column("team_no", sa.Integer(), nullable=False),
        sa.Column("rating_before", sa.Float(), nullable=True),
        sa.Column("rating_after", sa.Float(), nullable=True),
        sa.Column("rd_before", sa.Float(), nullable=True),
        sa.Column("rd_after", sa.Float(), nullable=True),
        sa.ForeignKeyConstraint(["match_id"], ["matches.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["player_id"], ["players.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("match_id", "player_id", name="uq_match_participant"),
        sa.CheckConstraint("team_no IN (1, 2)", name="ck_match_participant_team_no"),
    )

    op.create_table(
        "rating_history",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("player_id", sa.Integer(), nullable=False),
        sa.Column("match_id", sa.Integer(), nullable=False),
        sa.Column("mode", sa.String(length=10), nullable=False),
        sa.Column("rating", sa.Float(), nullable=False),
        sa.Column("rd", sa.Float(), nullable=False),
        sa.Column("volatility", sa.Float(), nullable=False),
        sa.Column("delta_mu", sa.Float(), nullable=False),
        sa.Column("delta_sigma", sa.Float(), nullable=False),
        sa.Column("played_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["player_id"], ["players.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["match_id"], ["matches.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("player_id", "match_id", "mode", name="uq_rating_history_player_match_mode"),
    )
    op.create_index(
        "idx_rating_history_player_mode_played",
        "rating_history",
        ["player_id", "mode", "played_at"],
    )


def downgrade() -> None:
    op.drop_index("idx_rating_history_player_mode_played", table_name="rating_history")
    op.drop_table("rating_history")
    op.drop_table("match_participants")
    op.drop_index("idx_matches_status_played_at", table_name="matches")
    op.drop_index("ix_matches_played_at", table_name="matches")
    op.drop_table("matches")
    op.drop_index("idx_tournament_matches_tournament_status", table_name="tournament_matches")
    op.drop_table("tournament_matches")
    op.drop_table("tournament_participants")
    op.drop_table("tournament_groups")
    op.drop_table("tournaments")
    op.drop_table("player_ratings")
    op.drop_table("players")
