"""initial_schema

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-01 00:00:00.000000 UTC

Creates the three tracking tables:
  visitor_sessions      one row per visitor fingerprint, cached persona label
  behavior_logs         raw events, 7-day retention
  aggregated_behaviors  one row per session, 30-day retention on updated_at
"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "visitor_sessions",
        sa.Column("id", sa.String(36), nullable=False, comment="Opaque session handle"),
        sa.Column(
            "fingerprint_hash", sa.String(64), nullable=False,
            comment="Salted SHA-256 hex of the client session id",
        ),
        sa.Column("device_type", sa.String(10), nullable=False, server_default="desktop"),
        sa.Column("consent_given", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("persona", sa.String(20), nullable=True),
        sa.Column("confidence", sa.Float(), nullable=True),
        sa.Column("mood", sa.String(20), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_seen", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("fingerprint_hash", name="uq_visitor_sessions_fingerprint_hash"),
    )

    op.create_table(
        "behavior_logs",
        sa.Column("id", sa.String(36), nullable=False, comment="UUID row identifier"),
        sa.Column("session_id", sa.String(36), nullable=False),
        sa.Column("event_type", sa.String(20), nullable=False),
        sa.Column(
            "payload", postgresql.JSONB(astext_type=sa.Text()), nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["session_id"], ["visitor_sessions.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_behavior_logs_session_id", "behavior_logs", ["session_id"], unique=False)
    op.create_index("ix_behavior_logs_timestamp", "behavior_logs", ["timestamp"], unique=False)

    op.create_table(
        "aggregated_behaviors",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("session_id", sa.String(36), nullable=False),
        sa.Column("time_on_homepage", sa.Float(), nullable=False, server_default="0"),
        sa.Column("scroll_depth", sa.Float(), nullable=False, server_default="0"),
        sa.Column("clicked_resume", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("opened_code_samples_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("visited_projects_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("opened_design_showcase", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("played_demos_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("opened_ai_intake_form", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("interacted_with_animations", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("idle_time", sa.Float(), nullable=False, server_default="0"),
        sa.Column("navigation_speed", sa.Float(), nullable=False, server_default="0"),
        sa.Column(
            "hovered_keywords", postgresql.JSONB(astext_type=sa.Text()), nullable=False,
            server_default=sa.text("'[]'::jsonb"),
        ),
        sa.Column(
            "navigation_path", postgresql.JSONB(astext_type=sa.Text()), nullable=False,
            server_default=sa.text("'[]'::jsonb"),
        ),
        sa.Column(
            "behavior_vector", postgresql.JSONB(astext_type=sa.Text()), nullable=False,
            server_default=sa.text("'[]'::jsonb"),
        ),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["session_id"], ["visitor_sessions.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_aggregated_behaviors_session_id", "aggregated_behaviors", ["session_id"], unique=True,
    )
    op.create_index(
        "ix_aggregated_behaviors_updated_at", "aggregated_behaviors", ["updated_at"], unique=False,
    )


def downgrade() -> None:
    op.drop_index("ix_aggregated_behaviors_updated_at", table_name="aggregated_behaviors")
    op.drop_index("ix_aggregated_behaviors_session_id", table_name="aggregated_behaviors")
    op.drop_table("aggregated_behaviors")
    op.drop_index("ix_behavior_logs_timestamp", table_name="behavior_logs")
    op.drop_index("ix_behavior_logs_session_id", table_name="behavior_logs")
    op.drop_table("behavior_logs")
    op.drop_table("visitor_sessions")
