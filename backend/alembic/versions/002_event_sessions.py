"""Event sessions: host, DJ and guest presence per event.

Revision ID: 002
Revises: 001
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "event_sessions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("event_code", sa.String(16), nullable=False),
        sa.Column("session_key", sa.String(160), nullable=False),
        sa.Column("session_type", sa.String(10), nullable=False),
        sa.Column("user_id", sa.String(128), nullable=False, server_default=sa.text("'anonymous'")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("last_activity", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        # Upsert target: one row per (event, type, user)
        sa.UniqueConstraint("event_code", "session_key", name="uq_event_session"),
        sa.CheckConstraint("session_type IN ('host', 'dj', 'guest')", name="check_session_type"),
    )
    op.create_index("ix_event_sessions_event_code", "event_sessions", ["event_code"])


def downgrade() -> None:
    op.drop_index("ix_event_sessions_event_code", table_name="event_sessions")
    op.drop_table("event_sessions")
