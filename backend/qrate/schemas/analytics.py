"""
Pydantic schemas for the per-event request analytics summary.
"""

from qrate.schemas.common import CamelModel, Envelope


class TrackRequestCount(CamelModel):
    track_name: str
    artist_name: str
    count: int
    votes: int


class RequestAnalytics(CamelModel):
    total_requests: int
    status_breakdown: dict[str, int]
    total_upvotes: int
    total_downvotes: int
    avg_wait_time_minutes: float = 0.0
    top_requested_tracks: list[TrackRequestCount]
    genre_distribution: dict[str, int]


class AnalyticsEnvelope(Envelope):
    analytics: RequestAnalytics
