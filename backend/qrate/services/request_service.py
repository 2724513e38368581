"""
Request lifecycle: submitting, listing and updating song requests.

Submission order of checks:
  1. track, artist and guest present            -> 400
  2. requests enabled for the event             -> 403
  3. guest below max_requests_per_guest         -> 400
  4. guest hasn't requested this track already  -> 409

Checks 3 and 4 and the insert run as one atomic store operation
(Store.submit_request), so two concurrent submissions from the same guest
can't both squeeze under the quota or both pass the duplicate check.

Status transitions are free by default (hosts fix mistakes by moving a
request back). With ENFORCE_STATUS_TRANSITIONS only the forward workflow is
allowed; the same status is always accepted.
"""

from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from fastapi import HTTPException, status

from qrate.core.config import get_settings
from qrate.core.logging import get_logger
from qrate.core.metrics import record_song_request, record_status_change
from qrate.schemas.request import SongRequestCreate, SongRequestRecord, SongRequestUpdate
from qrate.services.analytics_service import record_metric
from qrate.services.event_service import get_event
from qrate.services.interfaces.store import (
    DuplicateRequestError, Entity, QuotaExceededError, Store,
)
from qrate.services.settings_service import get_request_settings
from qrate.services.track_features import derive_synthetic_features

logger = get_logger(__name__)

ALLOWED_TRANSITIONS = {
    "pending": {"accepted", "rejected", "queued"},
    "accepted": {"queued"},
    "queued": {"played"},
    "rejected": set(),
    "played": set(),
}


def sort_requests(requests: list[SongRequestRecord]) -> list[SongRequestRecord]:
    """Most upvoted first, then fewest downvotes, then oldest."""
    return sorted(requests, key=lambda r: (-r.vote_count, r.downvote_count, r.submitted_at))


def _clean(value: Optional[str]) -> str:
    return (value or "").strip()


async def submit_request(store: Store, event_code: str, data: SongRequestCreate) -> SongRequestRecord:
    track_name = _clean(data.track_name)
    artist_name = _clean(data.artist_name)
    guest_id = _clean(data.guest_id)
    if not track_name or not artist_name or not guest_id:
        record_song_request("invalid")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Track name, artist name, and guest ID are required",
        )

    await get_event(store, event_code)
    settings = await get_request_settings(store, event_code)
    if not settings.requests_enabled:
        record_song_request("disabled")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Requests are disabled for this event",
        )

    metadata = derive_synthetic_features(track_name, artist_name).model_dump()
    metadata.update(data.track_metadata or {})

    request = SongRequestRecord(
        id=f"req_{uuid4().hex[:16]}",
        event_code=event_code,
        guest_id=guest_id,
        spotify_track_id=data.spotify_track_id,
        track_name=track_name,
        artist_name=artist_name,
        album_name=data.album_name,
        preview_url=data.preview_url,
        duration_ms=data.duration_ms,
        requester_name=data.requester_name,
        submitted_at=datetime.now(timezone.utc),
        track_metadata=metadata,
    )

    try:
        stored = await store.submit_request(request.model_dump(), settings.max_requests_per_guest)
    except QuotaExceededError as e:
        record_song_request("quota")
        logger.info("request_quota_reached", event_code=event_code, guest_id=guest_id, limit=e.limit)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e),
        )
    except DuplicateRequestError as e:
        record_song_request("duplicate")
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(e),
        )

    record_song_request("submitted")
    logger.info(
        "request_submitted",
        event_code=event_code,
        request_id=request.id,
        guest_id=guest_id,
        track=track_name,
    )
    await record_metric(store, event_code, "request_submitted", {
        "requestId": request.id,
        "guestId": guest_id,
        "trackName": track_name,
        "artistName": artist_name,
    })
    return SongRequestRecord.model_validate(stored)


async def list_requests(
    store: Store,
    event_code: str,
    status_filter: Optional[str] = None,
    guest_id: Optional[str] = None,
) -> list[SongRequestRecord]:
    where = {}
    if status_filter:
        where["status"] = status_filter
    if guest_id:
        where["guest_id"] = guest_id
    records = await store.query(Entity.REQUEST, event_code, where or None)
    return sort_requests([SongRequestRecord.model_validate(r) for r in records])


async def get_request(store: Store, event_code: str, request_id: str) -> SongRequestRecord:
    record = await store.get(Entity.REQUEST, event_code, request_id)
    if record is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Request not found",
        )
    return SongRequestRecord.model_validate(record)


async def update_request(
    store: Store, event_code: str, request_id: str, data: SongRequestUpdate
) -> SongRequestRecord:
    changes = data.model_dump(exclude_none=True)
    if not changes:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No fields to update",
        )

    current = await get_request(store, event_code, request_id)

    if data.status and get_settings().ENFORCE_STATUS_TRANSITIONS:
        if data.status != current.status and data.status not in ALLOWED_TRANSITIONS[current.status]:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"Cannot move a {current.status} request to {data.status}",
            )

    if data.status == "played" and data.played_at is None:
        changes["played_at"] = datetime.now(timezone.utc)

    updated = await store.update(Entity.REQUEST, event_code, request_id, changes)
    if updated is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Request not found",
        )

    if data.status:
        record_status_change(data.status)
    metric_name = f"request_{data.status}" if data.status else "request_updated"
    logger.info("request_updated", event_code=event_code, request_id=request_id, fields=sorted(changes))
    await record_metric(store, event_code, metric_name, {
        "requestId": request_id,
        "previousStatus": current.status,
    })
    return SongRequestRecord.model_validate(updated)
