"""
Pydantic schemas for song requests, votes and next-track recommendations.
"""

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import Field

from qrate.schemas.common import CamelModel, Envelope

RequestStatus = Literal["pending", "accepted", "rejected", "queued", "played"]


class TrackFeatures(CamelModel):
    """Deterministic stand-in for audio analysis, see recommendation_service."""

    bpm: int
    key: str
    energy: float
    danceability: float
    genre: list[str]


class SongRequestCreate(CamelModel):
    # Required fields are checked in the service so they answer 400
    guest_id: Optional[str] = Field(None, max_length=128)
    spotify_track_id: Optional[str] = Field(None, max_length=128)
    track_name: Optional[str] = Field(None, max_length=500)
    artist_name: Optional[str] = Field(None, max_length=500)
    album_name: Optional[str] = Field(None, max_length=500)
    preview_url: Optional[str] = Field(None, max_length=1000)
    duration_ms: Optional[int] = Field(None, ge=0)
    requester_name: Optional[str] = Field(None, max_length=255)
    track_metadata: Optional[dict[str, Any]] = Field(None, alias="metadata")


class SongRequestUpdate(CamelModel):
    status: Optional[RequestStatus] = None
    track_metadata: Optional[dict[str, Any]] = Field(None, alias="metadata")
    tip_amount: Optional[float] = Field(None, ge=0)
    played_at: Optional[datetime] = None


class SongRequestRecord(CamelModel):
    id: str
    event_code: str
    guest_id: str
    spotify_track_id: Optional[str] = None
    track_name: str
    artist_name: str
    album_name: Optional[str] = None
    preview_url: Optional[str] = None
    duration_ms: Optional[int] = None
    status: RequestStatus = "pending"
    vote_count: int = 0
    downvote_count: int = 0
    tip_amount: float = 0
    requester_name: Optional[str] = None
    submitted_at: datetime
    played_at: Optional[datetime] = None
    track_metadata: dict[str, Any] = Field(default_factory=dict, alias="metadata")


class RequestEnvelope(Envelope):
    request: SongRequestRecord


class RequestListEnvelope(Envelope):
    requests: list[SongRequestRecord]


class VoteCast(CamelModel):
    # Checked in the service so a missing or unknown type answers 400
    guest_id: Optional[str] = Field(None, max_length=128)
    vote_type: Optional[str] = None


class VoteTally(CamelModel):
    id: str
    vote_count: int
    downvote_count: int


class VoteEnvelope(Envelope):
    request: VoteTally


class NextTrack(CamelModel):
    request_id: str
    track_name: str
    artist_name: str
    vote_count: int
    compatibility_score: float
    total_score: float
    reason: str
    reasons: list[str]
    analysis: TrackFeatures


class NextTrackEnvelope(Envelope):
    recommendation: Optional[NextTrack] = None
