"""
Append-only analytics rows (request_submitted, request_played, ...).
"""

from sqlalchemy import Column, String, Float, DateTime, JSON, Index

from qrate.db.base import Base, TimestampMixin


class RequestMetric(Base, TimestampMixin):
    __tablename__ = "request_metrics"

    id = Column(String(64), primary_key=True)
    event_code = Column(String(16), nullable=False)
    metric_name = Column(String(64), nullable=False)
    metric_value = Column(Float, nullable=False, default=1)
    details = Column(JSON, nullable=False, default=dict)
    recorded_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("ix_request_metrics_event_name", "event_code", "metric_name"),
    )
