"""
Song request endpoints: settings, submission, queue management, voting,
next-track recommendation and analytics.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from qrate.api.deps import event_code_param, get_gateway
from qrate.schemas.analytics import AnalyticsEnvelope
from qrate.schemas.request import (
    NextTrackEnvelope, RequestEnvelope, RequestListEnvelope, RequestStatus,
    SongRequestCreate, SongRequestUpdate, VoteCast, VoteEnvelope,
)
from qrate.schemas.settings import RequestSettingsUpdate, SettingsEnvelope
from qrate.services.analytics_service import request_analytics
from qrate.services.interfaces.store import Store
from qrate.services.recommendation_service import best_next_track
from qrate.services.request_service import list_requests, submit_request, update_request
from qrate.services.settings_service import get_request_settings, replace_request_settings
from qrate.services.vote_service import cast_vote

router = APIRouter(prefix="/events/{code}", tags=["Requests"])


@router.get("/request-settings", response_model=SettingsEnvelope)
async def get_settings_endpoint(
    code: str = Depends(event_code_param),
    store: Store = Depends(get_gateway),
):
    """Stored settings, or defaults if the host never saved any."""
    return SettingsEnvelope(settings=await get_request_settings(store, code))


@router.put("/request-settings", response_model=SettingsEnvelope)
async def put_settings_endpoint(
    data: RequestSettingsUpdate,
    code: str = Depends(event_code_param),
    store: Store = Depends(get_gateway),
):
    return SettingsEnvelope(settings=await replace_request_settings(store, code, data))


@router.post("/requests", response_model=RequestEnvelope, status_code=status.HTTP_201_CREATED)
async def submit_request_endpoint(
    data: SongRequestCreate,
    code: str = Depends(event_code_param),
    store: Store = Depends(get_gateway),
):
    return RequestEnvelope(request=await submit_request(store, code, data))


@router.get("/requests", response_model=RequestListEnvelope)
async def list_requests_endpoint(
    code: str = Depends(event_code_param),
    status_filter: Optional[RequestStatus] = Query(None, alias="status"),
    guest_id: Optional[str] = Query(None, alias="guestId"),
    store: Store = Depends(get_gateway),
):
    """Queue order: upvotes desc, downvotes asc, oldest first."""
    requests = await list_requests(store, code, status_filter, guest_id)
    return RequestListEnvelope(requests=requests)


@router.get("/requests/best-next", response_model=NextTrackEnvelope)
async def best_next_endpoint(
    code: str = Depends(event_code_param),
    current_track_id: Optional[str] = Query(None),
    store: Store = Depends(get_gateway),
):
    recommendation = await best_next_track(store, code, current_track_id)
    return NextTrackEnvelope(recommendation=recommendation)


@router.put("/requests/{request_id}", response_model=RequestEnvelope)
async def update_request_endpoint(
    request_id: str,
    data: SongRequestUpdate,
    code: str = Depends(event_code_param),
    store: Store = Depends(get_gateway),
):
    return RequestEnvelope(request=await update_request(store, code, request_id, data))


@router.post("/requests/{request_id}/vote", response_model=VoteEnvelope)
async def vote_endpoint(
    request_id: str,
    data: VoteCast,
    code: str = Depends(event_code_param),
    store: Store = Depends(get_gateway),
):
    return VoteEnvelope(request=await cast_vote(store, code, request_id, data))


@router.get("/request-analytics", response_model=AnalyticsEnvelope)
async def analytics_endpoint(
    code: str = Depends(event_code_param),
    store: Store = Depends(get_gateway),
):
    return AnalyticsEnvelope(analytics=await request_analytics(store, code))
