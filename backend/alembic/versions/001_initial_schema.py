"""Initial schema: events, preferences, song counters, requests, votes, quotas,
settings and metrics with indexes and constraints.

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    # Events table
    op.create_table(
        "events",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("theme", sa.String(100), nullable=False),
        sa.Column("description", sa.String(1000), nullable=False, server_default=sa.text("''")),
        sa.Column("code", sa.String(16), nullable=False),
        sa.Column("date", sa.Date(), nullable=True),
        sa.Column("time", sa.Time(), nullable=True),
        sa.Column("location", sa.String(255), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
    )
    # Every guest-facing lookup is by code; unique so code generation can
    # insert blind and treat a violation as a collision
    op.create_index("ix_events_code", "events", ["code"], unique=True)

    # Guest preferences
    op.create_table(
        "guest_preferences",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("event_code", sa.String(16), nullable=False),
        sa.Column("guest_id", sa.String(128), nullable=False),
        sa.Column("artists", sa.JSON(), nullable=False),
        sa.Column("genres", sa.JSON(), nullable=False),
        sa.Column("recent_tracks", sa.JSON(), nullable=False),
        sa.Column("playlists", sa.JSON(), nullable=False),
        sa.Column("tracks_data", sa.JSON(), nullable=False),
        sa.Column("stats", sa.JSON(), nullable=False),
        sa.Column("source", sa.String(20), nullable=False, server_default=sa.text("'manual'")),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("event_code", "guest_id", name="uq_preference_event_guest"),
    )
    op.create_index("ix_guest_preferences_event_code", "guest_preferences", ["event_code"])

    # Song frequency counters
    op.create_table(
        "event_songs",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("event_code", sa.String(16), nullable=False),
        sa.Column("song_key", sa.String(1024), nullable=False),
        sa.Column("track_id", sa.String(128), nullable=False, server_default=sa.text("''")),
        sa.Column("track_name", sa.String(500), nullable=False),
        sa.Column("artist_name", sa.String(500), nullable=False),
        sa.Column("album_name", sa.String(500), nullable=True),
        sa.Column("popularity", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("preview_url", sa.String(1000), nullable=True),
        sa.Column("frequency", sa.Integer(), nullable=False, server_default=sa.text("1")),
        *_timestamps(),
        sa.UniqueConstraint("event_code", "song_key", name="uq_event_song"),
        sa.CheckConstraint("frequency > 0", name="check_frequency_positive"),
    )
    # Ranked reads: WHERE event_code = ? ORDER BY frequency DESC, popularity DESC
    op.create_index("ix_event_songs_rank", "event_songs", ["event_code", "frequency", "popularity"])

    # Song requests
    op.create_table(
        "song_requests",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("event_code", sa.String(16), nullable=False),
        sa.Column("guest_id", sa.String(128), nullable=False),
        sa.Column("spotify_track_id", sa.String(128), nullable=True),
        sa.Column("track_name", sa.String(500), nullable=False),
        sa.Column("artist_name", sa.String(500), nullable=False),
        sa.Column("album_name", sa.String(500), nullable=True),
        sa.Column("preview_url", sa.String(1000), nullable=True),
        sa.Column("duration_ms", sa.Integer(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("vote_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("downvote_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("tip_amount", sa.Float(), nullable=False, server_default=sa.text("0")),
        sa.Column("requester_name", sa.String(255), nullable=True),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("played_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("track_metadata", sa.JSON(), nullable=False),
        sa.Column("dedupe_key", sa.String(1024), nullable=False),
        *_timestamps(),
        # Same guest, same track (case-insensitive) rejected at the database
        sa.UniqueConstraint("event_code", "guest_id", "dedupe_key", name="uq_request_guest_track"),
        sa.CheckConstraint("vote_count >= 0", name="check_vote_count_non_negative"),
        sa.CheckConstraint("downvote_count >= 0", name="check_downvote_count_non_negative"),
        sa.CheckConstraint(
            "status IN ('pending', 'accepted', 'rejected', 'queued', 'played')",
            name="check_request_status",
        ),
    )
    op.create_index("ix_song_requests_event_status", "song_requests", ["event_code", "status"])
    op.create_index("ix_song_requests_event_guest", "song_requests", ["event_code", "guest_id"])

    # Votes: one live vote per guest per request
    op.create_table(
        "request_votes",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("event_code", sa.String(16), nullable=False),
        sa.Column("request_id", sa.String(64), sa.ForeignKey("song_requests.id"), nullable=False),
        sa.Column("guest_id", sa.String(128), nullable=False),
        sa.Column("vote_type", sa.String(10), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("request_id", "guest_id", name="uq_vote_request_guest"),
        sa.CheckConstraint("vote_type IN ('upvote', 'downvote')", name="check_vote_type"),
    )
    op.create_index("ix_request_votes_request_id", "request_votes", ["request_id"])

    # Per-guest request counters, bumped with a conditional UPDATE
    op.create_table(
        "guest_request_quotas",
        sa.Column("event_code", sa.String(16), primary_key=True),
        sa.Column("guest_id", sa.String(128), primary_key=True),
        sa.Column("request_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.CheckConstraint("request_count >= 0", name="check_request_count_non_negative"),
    )

    # Request settings
    op.create_table(
        "request_settings",
        sa.Column("event_code", sa.String(16), primary_key=True),
        sa.Column("requests_enabled", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("voting_enabled", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("paid_requests_enabled", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("genre_restrictions", sa.JSON(), nullable=False),
        sa.Column("artist_restrictions", sa.JSON(), nullable=False),
        sa.Column("open_time", sa.String(5), nullable=True),
        sa.Column("close_time", sa.String(5), nullable=True),
        sa.Column("min_vote_threshold", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("auto_accept_threshold", sa.Integer(), nullable=False, server_default=sa.text("5")),
        sa.Column("max_requests_per_guest", sa.Integer(), nullable=False, server_default=sa.text("10")),
        *_timestamps(),
        sa.CheckConstraint("max_requests_per_guest > 0", name="check_max_requests_positive"),
    )

    # Analytics rows
    op.create_table(
        "request_metrics",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("event_code", sa.String(16), nullable=False),
        sa.Column("metric_name", sa.String(64), nullable=False),
        sa.Column("metric_value", sa.Float(), nullable=False, server_default=sa.text("1")),
        sa.Column("details", sa.JSON(), nullable=False),
        sa.Column("recorded_at", sa.DateTime(timezone=True), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_request_metrics_event_name", "request_metrics", ["event_code", "metric_name"])


def downgrade() -> None:
    op.drop_table("request_metrics")
    op.drop_table("request_settings")
    op.drop_table("guest_request_quotas")
    op.drop_table("request_votes")
    op.drop_table("song_requests")
    op.drop_table("event_songs")
    op.drop_table("guest_preferences")
    op.drop_table("events")
