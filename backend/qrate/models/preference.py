"""
Guest preference model: one row per (event, guest).

Resubmitting replaces the row. The raw track list is kept as submitted so
the aggregation fallback can recount it.
"""

from sqlalchemy import Column, Integer, String, DateTime, JSON, UniqueConstraint

from qrate.db.base import Base, TimestampMixin


class GuestPreference(Base, TimestampMixin):
    __tablename__ = "guest_preferences"

    id = Column(Integer, primary_key=True, autoincrement=True)
    event_code = Column(String(16), nullable=False, index=True)
    guest_id = Column(String(128), nullable=False)
    artists = Column(JSON, nullable=False, default=list)
    genres = Column(JSON, nullable=False, default=list)
    recent_tracks = Column(JSON, nullable=False, default=list)
    playlists = Column(JSON, nullable=False, default=list)
    tracks_data = Column(JSON, nullable=False, default=list)
    stats = Column(JSON, nullable=False, default=dict)
    source = Column(String(20), nullable=False, default="manual")
    submitted_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint("event_code", "guest_id", name="uq_preference_event_guest"),
    )

    def __repr__(self) -> str:
        return f"<GuestPreference(event={self.event_code}, guest={self.guest_id}, source={self.source})>"
