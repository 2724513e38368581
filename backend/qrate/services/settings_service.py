"""
Per-event request settings. An event without a stored row runs on defaults;
nothing is written until a host saves settings.
"""

from datetime import datetime, timezone

from qrate.core.config import get_settings
from qrate.core.logging import get_logger
from qrate.schemas.settings import RequestSettingsRecord, RequestSettingsUpdate
from qrate.services.interfaces.store import Entity, Store

logger = get_logger(__name__)


def default_request_settings(event_code: str) -> RequestSettingsRecord:
    settings = get_settings()
    return RequestSettingsRecord(
        event_code=event_code,
        max_requests_per_guest=settings.DEFAULT_MAX_REQUESTS_PER_GUEST,
        auto_accept_threshold=settings.DEFAULT_AUTO_ACCEPT_THRESHOLD,
    )


async def get_request_settings(store: Store, event_code: str) -> RequestSettingsRecord:
    record = await store.get(Entity.SETTINGS, event_code)
    if record is None:
        return default_request_settings(event_code)
    return RequestSettingsRecord.model_validate(record)


async def replace_request_settings(
    store: Store, event_code: str, data: RequestSettingsUpdate
) -> RequestSettingsRecord:
    """Replace the event's settings. Fields left out revert to defaults."""
    settings = default_request_settings(event_code).model_copy(
        update={
            **data.model_dump(exclude_none=True),
            "updated_at": datetime.now(timezone.utc),
        }
    )
    stored = await store.put(Entity.SETTINGS, event_code, None, settings.model_dump())

    logger.info(
        "request_settings_saved",
        event_code=event_code,
        requests_enabled=settings.requests_enabled,
        voting_enabled=settings.voting_enabled,
        max_requests_per_guest=settings.max_requests_per_guest,
    )
    return RequestSettingsRecord.model_validate(stored)
