"""
Event presence tracking.

Opening an event (host, DJ or guest) and submitting preferences touch an
EventSession row. Presence is a side channel: a failed write is logged and
dropped, and the caller's request goes on.
"""

from collections import Counter
from datetime import datetime, timezone

from qrate.core.logging import get_logger
from qrate.schemas.event import EventSessionRecord, SessionType
from qrate.services.interfaces.store import Entity, Store, StoreError, session_key

logger = get_logger(__name__)

ANONYMOUS_USER = "anonymous"


async def touch_session(
    store: Store,
    event_code: str,
    session_type: SessionType = "guest",
    user_id: str = ANONYMOUS_USER,
) -> None:
    """Mark `user_id` active in the event now, creating the row on first visit."""
    user_id = user_id or ANONYMOUS_USER
    key = session_key(session_type, user_id)
    record = EventSessionRecord(
        session_type=session_type,
        user_id=user_id,
        is_active=True,
        last_activity=datetime.now(timezone.utc),
    )
    try:
        await store.put(Entity.SESSION, event_code, key, {**record.model_dump(), "session_key": key})
    except StoreError as e:
        logger.warning("session_tracking_failed", event_code=event_code, session_type=session_type, error=str(e))


async def active_sessions(store: Store, event_code: str) -> dict[str, int]:
    """Active session count per type. Every type is present, zeros included."""
    records = await store.query(Entity.SESSION, event_code, {"is_active": True})
    counts = Counter(EventSessionRecord.model_validate(r).session_type for r in records)
    return {session_type: counts.get(session_type, 0) for session_type in ("host", "dj", "guest")}
