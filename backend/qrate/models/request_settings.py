"""
Per-event request settings. A missing row means "defaults", see
qrate.services.settings_service.
"""

from sqlalchemy import Column, Integer, String, Boolean, JSON, CheckConstraint

from qrate.db.base import Base, TimestampMixin


class RequestSettings(Base, TimestampMixin):
    __tablename__ = "request_settings"

    event_code = Column(String(16), primary_key=True)
    requests_enabled = Column(Boolean, nullable=False, default=True)
    voting_enabled = Column(Boolean, nullable=False, default=True)
    paid_requests_enabled = Column(Boolean, nullable=False, default=False)
    # Stored for the host UI; not enforced on submit
    genre_restrictions = Column(JSON, nullable=False, default=list)
    artist_restrictions = Column(JSON, nullable=False, default=list)
    open_time = Column(String(5), nullable=True)
    close_time = Column(String(5), nullable=True)
    # Schema-only thresholds, not wired into the lifecycle
    min_vote_threshold = Column(Integer, nullable=False, default=0)
    auto_accept_threshold = Column(Integer, nullable=False, default=5)
    max_requests_per_guest = Column(Integer, nullable=False, default=10)

    __table_args__ = (
        CheckConstraint("max_requests_per_guest > 0", name="check_max_requests_positive"),
    )
