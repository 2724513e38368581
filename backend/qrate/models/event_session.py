"""
Event presence: who (host, DJ or guest) has opened an event, and when last.

Key design decisions:
- One row per (event, session type, user); `session_key` flattens the last
  two so the (event_code, session_key) unique constraint arbitrates upserts
- Rows are touched on every visit, never deleted
"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, UniqueConstraint, CheckConstraint

from qrate.db.base import Base, TimestampMixin

SESSION_TYPES = ("host", "dj", "guest")


class EventSession(Base, TimestampMixin):
    __tablename__ = "event_sessions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    event_code = Column(String(16), nullable=False, index=True)
    session_key = Column(String(160), nullable=False)
    session_type = Column(String(10), nullable=False)
    user_id = Column(String(128), nullable=False, default="anonymous")
    is_active = Column(Boolean, nullable=False, default=True)
    last_activity = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint("event_code", "session_key", name="uq_event_session"),
        CheckConstraint("session_type IN ('host', 'dj', 'guest')", name="check_session_type"),
    )

    def __repr__(self) -> str:
        return f"<EventSession(event={self.event_code}, type={self.session_type}, user={self.user_id})>"
