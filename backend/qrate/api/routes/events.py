"""
Event endpoints: creation, lookup, guest preferences and crowd aggregates.
"""

from fastapi import APIRouter, Depends, Query, status

from qrate.api.deps import event_code_param, get_gateway
from qrate.schemas.event import EventCreate, EventDetailEnvelope, EventEnvelope, SessionType
from qrate.schemas.preference import (
    InsightsEnvelope, PreferenceAccepted, PreferenceSubmit, SongListEnvelope,
)
from qrate.services.aggregation_service import event_insights, session_pool, top_songs
from qrate.services.event_service import create_event, get_event_detail
from qrate.services.interfaces.store import Store
from qrate.services.preference_service import submit_preferences

router = APIRouter(prefix="/events", tags=["Events"])


@router.post("", response_model=EventEnvelope, status_code=status.HTTP_201_CREATED)
async def create_event_endpoint(
    event_data: EventCreate,
    store: Store = Depends(get_gateway),
):
    """Create an event. Reusing an existing code returns that event."""
    event = await create_event(store, event_data)
    return EventEnvelope(event=event)


@router.get("/{code}", response_model=EventDetailEnvelope)
async def get_event_endpoint(
    code: str = Depends(event_code_param),
    session_type: SessionType = Query("guest"),
    user_id: str = Query("anonymous", max_length=128),
    store: Store = Depends(get_gateway),
):
    """Event details with every guest's submitted preferences. Records the visit."""
    return EventDetailEnvelope(event=await get_event_detail(store, code, session_type, user_id))


@router.post("/{code}/preferences", response_model=PreferenceAccepted)
async def submit_preferences_endpoint(
    data: PreferenceSubmit,
    code: str = Depends(event_code_param),
    store: Store = Depends(get_gateway),
):
    """Replace a guest's preferences and count their tracks."""
    guest_id = await submit_preferences(store, code, data)
    return PreferenceAccepted(guest_id=guest_id)


@router.get("/{code}/top-songs", response_model=SongListEnvelope)
async def top_songs_endpoint(
    code: str = Depends(event_code_param),
    store: Store = Depends(get_gateway),
):
    return SongListEnvelope(songs=await top_songs(store, code))


@router.get("/{code}/session-pool", response_model=SongListEnvelope)
async def session_pool_endpoint(
    code: str = Depends(event_code_param),
    store: Store = Depends(get_gateway),
):
    """Random distinct draw from the top of the ranking. Differs per call."""
    return SongListEnvelope(songs=await session_pool(store, code))


@router.get("/{code}/insights", response_model=InsightsEnvelope)
async def insights_endpoint(
    code: str = Depends(event_code_param),
    store: Store = Depends(get_gateway),
):
    return InsightsEnvelope(insights=await event_insights(store, code))
