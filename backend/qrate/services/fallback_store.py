"""
Persistence gateway: a primary store with a best-effort key-value fallback.

Fallback Pattern:
  Writes go to the primary first. If the primary fails for any reason, the
  same operation is replayed against the fallback and its result returned.
  If the primary succeeds, the operation is replayed against the fallback as
  a mirror; a failed mirror is logged and counted, never retried, and never
  rolls back the primary write.

  Reads go to the primary first and fall back only when the primary fails or
  returns nothing. The two sources are never merged in one read.

  Tradeoff: this is not a two-phase commit. The stores can diverge (a write
  that landed only in the fallback is invisible while the primary answers
  with data; a mirror that failed is missing from the fallback). Nothing
  reconciles them. Availability is preferred over consistency here: a party
  keeps taking requests while the database is down.

  Domain errors (quota, duplicate, conflict) are answers, not failures, and
  are raised straight from the primary without touching the fallback.
"""

from typing import Any, Optional

from qrate.core.logging import get_logger
from qrate.core.metrics import record_store_fallback, record_mirror_failure
from qrate.services.interfaces.store import (
    Entity, Store, BackendUnavailableError, StorageUnavailableError,
)

logger = get_logger(__name__)


class FallbackStore(Store):
    name = "gateway"

    def __init__(self, primary: Store, fallback: Optional[Store] = None):
        self.primary = primary
        self.fallback = fallback

    async def _write(self, operation: str, *args):
        try:
            result = await getattr(self.primary, operation)(*args)
        except BackendUnavailableError as e:
            return await self._fall_back(operation, e, *args)

        await self._mirror(operation, *args)
        return result

    async def _fall_back(self, operation: str, error: BackendUnavailableError, *args):
        if self.fallback is None:
            raise StorageUnavailableError(operation) from error
        logger.warning("store_fallback_write", operation=operation, error=str(error.cause))
        record_store_fallback(operation)
        try:
            return await getattr(self.fallback, operation)(*args)
        except BackendUnavailableError as fallback_error:
            logger.error("store_unavailable", operation=operation, error=str(fallback_error.cause))
            raise StorageUnavailableError(operation) from fallback_error

    async def _mirror(self, operation: str, *args) -> None:
        if self.fallback is None:
            return
        try:
            await getattr(self.fallback, operation)(*args)
        except Exception as e:
            # Divergence is accepted; see module docstring
            logger.warning("store_mirror_failed", operation=operation, error=str(e))
            record_mirror_failure(operation)

    async def _read(self, operation: str, *args):
        primary_error = None
        result = None
        try:
            result = await getattr(self.primary, operation)(*args)
            if result:
                return result
        except BackendUnavailableError as e:
            primary_error = e
            logger.warning("store_primary_read_failed", operation=operation, error=str(e.cause))

        if self.fallback is None:
            if primary_error is not None:
                raise StorageUnavailableError(operation) from primary_error
            return result

        try:
            fallback_result = await getattr(self.fallback, operation)(*args)
        except BackendUnavailableError as e:
            if primary_error is not None:
                logger.error("store_unavailable", operation=operation, error=str(e.cause))
                raise StorageUnavailableError(operation) from e
            # Primary answered "nothing"; an unreachable fallback doesn't change that
            logger.warning("store_fallback_read_failed", operation=operation, error=str(e.cause))
            return result

        if fallback_result:
            logger.info("store_fallback_read", operation=operation)
            record_store_fallback(operation)
        return fallback_result

    async def get(self, entity: Entity, event_code: str, ident: Optional[str] = None) -> Optional[dict]:
        return await self._read("get", entity, event_code, ident)

    async def query(self, entity: Entity, event_code: str, where: Optional[dict] = None) -> list[dict]:
        return await self._read("query", entity, event_code, where)

    async def insert(self, entity: Entity, event_code: str, ident: Optional[str], value: dict) -> dict:
        try:
            record = await self.primary.insert(entity, event_code, ident, value)
        except BackendUnavailableError as e:
            return await self._fall_back("insert", e, entity, event_code, ident, value)
        # The mirror is an overwrite so a stale fallback key can't block it
        await self._mirror("put", entity, event_code, ident, value)
        return record

    async def put(self, entity: Entity, event_code: str, ident: Optional[str], value: dict) -> dict:
        return await self._write("put", entity, event_code, ident, value)

    async def update(
        self, entity: Entity, event_code: str, ident: Optional[str], changes: dict[str, Any]
    ) -> Optional[dict]:
        return await self._write("update", entity, event_code, ident, changes)

    async def submit_request(self, record: dict, max_per_guest: int) -> dict:
        return await self._write("submit_request", record, max_per_guest)

    async def apply_vote(
        self, event_code: str, request_id: str, guest_id: str, vote_type: str
    ) -> Optional[dict]:
        return await self._write("apply_vote", event_code, request_id, guest_id, vote_type)

    async def increment_songs(self, event_code: str, tracks: list[dict]) -> None:
        await self._write("increment_songs", event_code, tracks)

    async def ping(self) -> bool:
        return await self.primary.ping()

    async def health(self) -> dict:
        return {
            "primary": "connected" if await self.primary.ping() else "unavailable",
            "fallback": (
                "disabled" if self.fallback is None
                else "connected" if await self.fallback.ping() else "unavailable"
            ),
        }
