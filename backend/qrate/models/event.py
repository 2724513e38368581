"""
Event model: one party/session, addressed by a short shareable code.

Key design decisions:
- `code` carries a unique constraint; code generation relies on it rather than
  on a read-then-insert check
- `code` is never updated after insert
- `date`/`time` are kept separate because hosts enter them separately
"""

from sqlalchemy import Column, String, Date, Time, Boolean

from qrate.db.base import Base, TimestampMixin


class Event(Base, TimestampMixin):
    __tablename__ = "events"

    id = Column(String(64), primary_key=True)
    name = Column(String(255), nullable=False)
    theme = Column(String(100), nullable=False)
    description = Column(String(1000), nullable=False, default="")
    code = Column(String(16), nullable=False, unique=True, index=True)
    date = Column(Date, nullable=True)
    time = Column(Time, nullable=True)
    location = Column(String(255), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<Event(id={self.id}, code={self.code}, name={self.name})>"
