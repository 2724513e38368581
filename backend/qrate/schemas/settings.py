"""
Pydantic schemas for per-event request settings.
"""

from datetime import datetime
from typing import Optional

from pydantic import Field

from qrate.schemas.common import CamelModel, Envelope

_CLOCK = r"^([01]\d|2[0-3]):[0-5]\d$"


class RequestSettingsUpdate(CamelModel):
    """Full replacement; omitted fields fall back to defaults."""

    requests_enabled: Optional[bool] = None
    voting_enabled: Optional[bool] = None
    paid_requests_enabled: Optional[bool] = None
    genre_restrictions: Optional[list[str]] = None
    artist_restrictions: Optional[list[str]] = None
    open_time: Optional[str] = Field(None, pattern=_CLOCK)
    close_time: Optional[str] = Field(None, pattern=_CLOCK)
    min_vote_threshold: Optional[int] = Field(None, ge=0)
    max_requests_per_guest: Optional[int] = Field(None, gt=0, le=1000)
    auto_accept_threshold: Optional[int] = Field(None, ge=0)


class RequestSettingsRecord(CamelModel):
    event_code: str
    requests_enabled: bool = True
    voting_enabled: bool = True
    paid_requests_enabled: bool = False
    genre_restrictions: list[str] = []
    artist_restrictions: list[str] = []
    open_time: Optional[str] = None
    close_time: Optional[str] = None
    min_vote_threshold: int = 0
    max_requests_per_guest: int
    auto_accept_threshold: int
    updated_at: Optional[datetime] = None


class SettingsEnvelope(Envelope):
    settings: RequestSettingsRecord
