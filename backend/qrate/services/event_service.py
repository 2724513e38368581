"""
Event service: creating events with shareable codes and reading them back.

Codes are 6 random characters from [A-Z0-9]. Uniqueness is enforced by the
store (unique column / SET NX), not by a lookup: a generated code is inserted
directly and a DuplicateKeyError means "draw again".
"""

import random
import string
from datetime import datetime, timezone
from uuid import uuid4

from fastapi import HTTPException, status

from qrate.core.config import get_settings
from qrate.core.logging import get_logger
from qrate.schemas.event import EventCreate, EventDetail, EventRecord, SessionType
from qrate.schemas.preference import GuestPreferenceRecord
from qrate.services.interfaces.store import DuplicateKeyError, Entity, Store
from qrate.services.session_service import ANONYMOUS_USER, active_sessions, touch_session

logger = get_logger(__name__)

CODE_ALPHABET = string.ascii_uppercase + string.digits


def generate_event_code(length: int) -> str:
    return "".join(random.choices(CODE_ALPHABET, k=length))


def normalize_code(code: str) -> str:
    return code.strip().upper()


async def create_event(store: Store, event_data: EventCreate) -> EventRecord:
    """
    Create an event. A host-supplied code that already exists returns the
    existing event, so a retried create is harmless.
    """
    name = (event_data.name or "").strip()
    theme = (event_data.theme or "").strip()
    if not name or not theme:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Event name and theme are required",
        )

    requested_code = normalize_code(event_data.code) if event_data.code else None
    if requested_code:
        existing = await store.get(Entity.EVENT, requested_code)
        if existing is not None:
            logger.info("event_code_reused", code=requested_code)
            return EventRecord.model_validate(existing)

    now = datetime.now(timezone.utc)
    settings = get_settings()
    attempts = 1 if requested_code else settings.EVENT_CODE_MAX_ATTEMPTS

    for attempt in range(1, attempts + 1):
        code = requested_code or generate_event_code(settings.EVENT_CODE_LENGTH)
        event = EventRecord(
            id=f"event_{uuid4().hex[:16]}",
            name=name,
            theme=theme,
            description=event_data.description or "",
            code=code,
            date=event_data.date or now.date(),
            time=event_data.time or now.time().replace(second=0, microsecond=0),
            location=event_data.location,
            created_at=now,
        )
        try:
            stored = await store.insert(Entity.EVENT, code, None, event.model_dump())
        except DuplicateKeyError:
            if requested_code:
                # Lost a race with a create for the same code
                existing = await store.get(Entity.EVENT, requested_code)
                if existing is not None:
                    return EventRecord.model_validate(existing)
                break
            logger.info("event_code_collision", code=code, attempt=attempt)
            continue

        logger.info("event_created", event_id=event.id, code=code, name=name)
        return EventRecord.model_validate(stored)

    logger.error("event_code_exhausted", attempts=attempts)
    raise HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="Could not allocate a unique event code",
    )


async def get_event(store: Store, code: str) -> EventRecord:
    record = await store.get(Entity.EVENT, code)
    if record is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Event not found",
        )
    return EventRecord.model_validate(record)


async def get_event_detail(
    store: Store,
    code: str,
    session_type: SessionType = "guest",
    user_id: str = ANONYMOUS_USER,
) -> EventDetail:
    """
    The event plus every guest's submitted preferences.

    Opening an event counts as a visit by `user_id` in the given role. Unknown
    codes are not tracked.
    """
    event = await get_event(store, code)
    await touch_session(store, code, session_type, user_id)
    preferences = await store.query(Entity.PREFERENCE, code)
    return EventDetail(
        **event.model_dump(),
        preferences=[GuestPreferenceRecord.model_validate(p) for p in preferences],
        sessions=await active_sessions(store, code),
    )
