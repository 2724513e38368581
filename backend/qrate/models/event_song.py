"""
EventSong aggregate: how often a track appears across guests' submitted lists.

Key design decisions:
- Track identity is (track id, name, primary artist), flattened into
  `song_key` so the (event_code, song_key) unique constraint can arbitrate
  concurrent first inserts
- `frequency` only ever grows; there is no removal path
- Composite index serves the ranked reads (frequency, then popularity)
"""

from sqlalchemy import Column, Integer, String, UniqueConstraint, CheckConstraint, Index

from qrate.db.base import Base, TimestampMixin


class EventSong(Base, TimestampMixin):
    __tablename__ = "event_songs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    event_code = Column(String(16), nullable=False)
    song_key = Column(String(1024), nullable=False)
    track_id = Column(String(128), nullable=False, default="")
    track_name = Column(String(500), nullable=False)
    artist_name = Column(String(500), nullable=False)
    album_name = Column(String(500), nullable=True)
    popularity = Column(Integer, nullable=False, default=0)
    preview_url = Column(String(1000), nullable=True)
    frequency = Column(Integer, nullable=False, default=1)

    __table_args__ = (
        UniqueConstraint("event_code", "song_key", name="uq_event_song"),
        CheckConstraint("frequency > 0", name="check_frequency_positive"),
        Index("ix_event_songs_rank", "event_code", "frequency", "popularity"),
    )

    def __repr__(self) -> str:
        return f"<EventSong(event={self.event_code}, track={self.track_name}, frequency={self.frequency})>"
