"""initial schema

Revision ID: 0001_initial
Revises: 
Create Date: 2026-10-19
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "coach_plans",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_key", sa.String(length=128), nullable=False),
        sa.Column("plan_json", sa.Text(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_coach_plans_user_key", "coach_plans", ["user_key"], unique=True)

    op.create_table(
        "chat_events",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_key", sa.String(length=128), nullable=False),
        sa.Column("event_id", sa.String(length=64), nullable=False, unique=True),
        sa.Column("role", sa.String(length=16), nullable=False),
        sa.Column("type", sa.String(length=16), nullable=False),
        sa.Column("ts", sa.BigInteger(), nullable=False),
        sa.Column("payload_json", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_chat_events_user_key", "chat_events", ["user_key"])
    op.create_index("ix_chat_events_user_ts", "chat_events", ["user_key", "ts"])


def downgrade() -> None:
    op.drop_index("ix_chat_events_user_ts", table_name="chat_events")
    op.drop_index("ix_chat_events_user_key", table_name="chat_events")
    op.drop_table("chat_events")
    op.drop_index("ix_coach_plans_user_key", table_name="coach_plans")
    op.drop_table("coach_plans")
