"""
Song request, vote and per-guest quota models.

Key design decisions:
- `vote_count`/`downvote_count` are denormalized tallies; they change only in
  the same transaction as the RequestVote row they reflect
- Unique constraint on (request_id, guest_id) allows one live vote per guest
- Unique constraint on (event_code, guest_id, dedupe_key) rejects a guest
  requesting the same track twice, case-insensitively
- GuestRequestQuota is a counter row incremented with a conditional UPDATE,
  so the quota check and the increment are a single statement
"""

from sqlalchemy import (
    Column, Integer, String, Float, DateTime, JSON, ForeignKey,
    UniqueConstraint, CheckConstraint, Index,
)

from qrate.db.base import Base, TimestampMixin

REQUEST_STATUSES = ("pending", "accepted", "rejected", "queued", "played")
VOTE_TYPES = ("upvote", "downvote")


class SongRequest(Base, TimestampMixin):
    __tablename__ = "song_requests"

    id = Column(String(64), primary_key=True)
    event_code = Column(String(16), nullable=False)
    guest_id = Column(String(128), nullable=False)
    spotify_track_id = Column(String(128), nullable=True)
    track_name = Column(String(500), nullable=False)
    artist_name = Column(String(500), nullable=False)
    album_name = Column(String(500), nullable=True)
    preview_url = Column(String(1000), nullable=True)
    duration_ms = Column(Integer, nullable=True)
    status = Column(String(20), nullable=False, default="pending")
    vote_count = Column(Integer, nullable=False, default=0)
    downvote_count = Column(Integer, nullable=False, default=0)
    tip_amount = Column(Float, nullable=False, default=0)
    requester_name = Column(String(255), nullable=True)
    submitted_at = Column(DateTime(timezone=True), nullable=False)
    played_at = Column(DateTime(timezone=True), nullable=True)
    track_metadata = Column(JSON, nullable=False, default=dict)
    dedupe_key = Column(String(1024), nullable=False)

    __table_args__ = (
        UniqueConstraint("event_code", "guest_id", "dedupe_key", name="uq_request_guest_track"),
        CheckConstraint("vote_count >= 0", name="check_vote_count_non_negative"),
        CheckConstraint("downvote_count >= 0", name="check_downvote_count_non_negative"),
        CheckConstraint(
            "status IN ('pending', 'accepted', 'rejected', 'queued', 'played')",
            name="check_request_status",
        ),
        Index("ix_song_requests_event_status", "event_code", "status"),
        Index("ix_song_requests_event_guest", "event_code", "guest_id"),
    )

    def __repr__(self) -> str:
        return f"<SongRequest(id={self.id}, track={self.track_name}, status={self.status})>"


class RequestVote(Base, TimestampMixin):
    __tablename__ = "request_votes"

    id = Column(String(64), primary_key=True)
    event_code = Column(String(16), nullable=False)
    request_id = Column(String(64), ForeignKey("song_requests.id"), nullable=False, index=True)
    guest_id = Column(String(128), nullable=False)
    vote_type = Column(String(10), nullable=False)

    __table_args__ = (
        UniqueConstraint("request_id", "guest_id", name="uq_vote_request_guest"),
        CheckConstraint("vote_type IN ('upvote', 'downvote')", name="check_vote_type"),
    )

    def __repr__(self) -> str:
        return f"<RequestVote(request={self.request_id}, guest={self.guest_id}, type={self.vote_type})>"


class GuestRequestQuota(Base):
    __tablename__ = "guest_request_quotas"

    event_code = Column(String(16), primary_key=True)
    guest_id = Column(String(128), primary_key=True)
    request_count = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        CheckConstraint("request_count >= 0", name="check_request_count_non_negative"),
    )
