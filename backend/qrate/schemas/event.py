"""
Pydantic schemas for event-related request/response validation.
"""

from datetime import date as date_type, datetime, time as time_type
from typing import Literal, Optional

from pydantic import Field

from qrate.schemas.common import CamelModel, Envelope
from qrate.schemas.preference import GuestPreferenceRecord


class EventCreate(CamelModel):
    # Presence of name/theme is checked in the service so it answers 400
    name: Optional[str] = Field(None, max_length=255)
    theme: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = Field(None, max_length=1000)
    date: Optional[date_type] = None
    time: Optional[time_type] = None
    location: Optional[str] = Field(None, max_length=255)
    code: Optional[str] = Field(None, max_length=16)


class EventRecord(CamelModel):
    id: str
    name: str
    theme: str
    description: str = ""
    code: str
    date: Optional[date_type] = None
    time: Optional[time_type] = None
    location: Optional[str] = None
    is_active: bool = True
    created_at: Optional[datetime] = None


class EventDetail(EventRecord):
    preferences: list[GuestPreferenceRecord] = []
    # Active sessions per type (host, dj, guest)
    sessions: dict[str, int] = {}


SessionType = Literal["host", "dj", "guest"]


class EventSessionRecord(CamelModel):
    session_type: SessionType
    user_id: str
    is_active: bool = True
    last_activity: datetime


class EventEnvelope(Envelope):
    event: EventRecord


class EventDetailEnvelope(Envelope):
    event: EventDetail
