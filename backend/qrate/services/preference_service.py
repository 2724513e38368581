"""
Guest preference intake.

A submission replaces the guest's previous one and then adds one occurrence
per submitted track to the event's song counters. Counters only grow:
resubmitting the same list counts those tracks again, the same way a second
guest with that list would.
"""

from datetime import datetime, timezone
from uuid import uuid4

from qrate.core.logging import get_logger
from qrate.schemas.preference import GuestPreferenceRecord, PreferenceSubmit, SubmittedTrack
from qrate.services.event_service import get_event
from qrate.services.interfaces.store import Entity, Store
from qrate.services.session_service import touch_session

logger = get_logger(__name__)


def track_occurrence(track: SubmittedTrack) -> dict:
    return {
        "track_id": track.id,
        "track_name": track.name,
        "artist_name": track.primary_artist,
        "album_name": track.album,
        "popularity": track.popularity,
        "preview_url": track.preview_url,
    }


async def submit_preferences(store: Store, event_code: str, data: PreferenceSubmit) -> str:
    """Store the guest's preferences. Returns the guest id, generated if absent."""
    await get_event(store, event_code)

    guest_id = data.guest_id or f"guest_{uuid4().hex[:12]}"
    await touch_session(store, event_code, "guest", guest_id)
    tracks = [t for t in data.submitted_tracks if t.id or t.name]

    preference = GuestPreferenceRecord(
        guest_id=guest_id,
        artists=data.artists,
        genres=data.genres,
        recent_tracks=data.recent_tracks,
        playlists=data.playlists,
        tracks_data=tracks,
        stats=data.stats,
        source=data.source,
        submitted_at=datetime.now(timezone.utc),
    )
    await store.put(Entity.PREFERENCE, event_code, guest_id, preference.model_dump())
    await store.increment_songs(event_code, [track_occurrence(t) for t in tracks])

    logger.info(
        "preferences_submitted",
        event_code=event_code,
        guest_id=guest_id,
        source=data.source,
        tracks=len(tracks),
    )
    return guest_id
