"""
Key-value fallback store on Redis.

Records are JSON documents under `<entity>:<eventCode>[:<guestOrId>]`. Reads
by event are prefix scans (`SCAN MATCH <entity>:<code>:*`); at party scale a
keyspace holds a few thousand keys, so SCAN stays cheap.

Compound writes use optimistic transactions: WATCH the keys involved, read,
decide, then MULTI/EXEC. EXEC aborts with WatchError if another client touched
a watched key in between, and the whole read-decide-write is retried.

  - submit_request watches the guest's `request_index` hash, which maps each
    dedupe key to a request id. HLEN is the quota count, HEXISTS the
    duplicate check.
  - apply_vote watches the request document and the guest's vote document.
  - increment_songs watches every song key in the batch.
"""

import json
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional
from uuid import uuid4

import redis.asyncio as redis
from redis.exceptions import WatchError

from qrate.core.config import get_settings
from qrate.core.logging import get_logger
from qrate.core.metrics import record_store_operation
from qrate.services.interfaces.store import (
    Entity, Store, StoreError, BackendUnavailableError, DuplicateKeyError,
    QuotaExceededError, DuplicateRequestError, ConcurrentUpdateError,
    request_dedupe_key, song_key, stamp_keys,
)

logger = get_logger(__name__)

_GLOB_SPECIAL = "*?[]\\"
_TALLY_FIELDS = {"upvote": "vote_count", "downvote": "downvote_count"}


def make_key(entity: str, event_code: str, ident: Optional[str] = None) -> str:
    key = f"{entity}:{event_code}"
    return f"{key}:{ident}" if ident is not None else key


def _escape_glob(value: str) -> str:
    return "".join(f"\\{ch}" if ch in _GLOB_SPECIAL else ch for ch in value)


def _encode(value: dict) -> str:
    return json.dumps(value, default=str)


def _decode(raw: Optional[str]) -> Optional[dict]:
    return json.loads(raw) if raw else None


class RedisStore(Store):
    name = "fallback"

    def __init__(self, client: redis.Redis, max_attempts: Optional[int] = None):
        self._client = client
        self._max_attempts = max_attempts or get_settings().STORE_MAX_RETRY_ATTEMPTS

    @asynccontextmanager
    async def _guard(self, operation: str) -> AsyncIterator[None]:
        try:
            yield
        except StoreError:
            record_store_operation(self.name, operation, ok=True)
            raise
        except Exception as e:
            record_store_operation(self.name, operation, ok=False)
            raise BackendUnavailableError(self.name, operation, e) from e
        else:
            record_store_operation(self.name, operation, ok=True)

    async def _transact(self, operation: str, keys: list[str], fn):
        """Run fn(pipe) with `keys` watched, retrying when EXEC is aborted."""
        for attempt in range(1, self._max_attempts + 1):
            async with self._guard(operation):
                async with self._client.pipeline(transaction=True) as pipe:
                    try:
                        await pipe.watch(*keys)
                        return await fn(pipe)
                    except WatchError:
                        logger.info("store_retry", store=self.name, operation=operation, attempt=attempt)
        raise ConcurrentUpdateError(f"{operation} gave up after {self._max_attempts} attempts")

    async def get(self, entity: Entity, event_code: str, ident: Optional[str] = None) -> Optional[dict]:
        async with self._guard("get"):
            return _decode(await self._client.get(make_key(entity.value, event_code, ident)))

    async def query(self, entity: Entity, event_code: str, where: Optional[dict] = None) -> list[dict]:
        pattern = f"{entity.value}:{_escape_glob(event_code)}:*"
        async with self._guard("query"):
            keys = [key async for key in self._client.scan_iter(match=pattern, count=100)]
            if not keys:
                return []
            records = [_decode(raw) for raw in await self._client.mget(keys)]

        matches = []
        for record in records:
            if record is None:
                continue
            if all(record.get(field) == expected for field, expected in (where or {}).items()):
                matches.append(record)
        return matches

    async def insert(self, entity: Entity, event_code: str, ident: Optional[str], value: dict) -> dict:
        record = stamp_keys(entity, event_code, ident, value)
        async with self._guard("insert"):
            created = await self._client.set(make_key(entity.value, event_code, ident), _encode(record), nx=True)
        if not created:
            raise DuplicateKeyError(f"{entity.value}:{event_code}:{ident} already exists")
        return record

    async def put(self, entity: Entity, event_code: str, ident: Optional[str], value: dict) -> dict:
        record = stamp_keys(entity, event_code, ident, value)
        async with self._guard("put"):
            await self._client.set(make_key(entity.value, event_code, ident), _encode(record))
        return record

    async def update(
        self, entity: Entity, event_code: str, ident: Optional[str], changes: dict[str, Any]
    ) -> Optional[dict]:
        key = make_key(entity.value, event_code, ident)

        async def merge(pipe) -> Optional[dict]:
            current = _decode(await pipe.get(key))
            if current is None:
                return None
            merged = {**current, **changes}
            pipe.multi()
            pipe.set(key, _encode(merged))
            await pipe.execute()
            return merged

        return await self._transact("update", [key], merge)

    async def submit_request(self, record: dict, max_per_guest: int) -> dict:
        code, guest_id, request_id = record["event_code"], record["guest_id"], record["id"]
        dedupe_key = request_dedupe_key(record["track_name"], record["artist_name"])
        stored = stamp_keys(Entity.REQUEST, code, request_id, {**record, "dedupe_key": dedupe_key})
        index_key = make_key("request_index", code, guest_id)
        request_key = make_key(Entity.REQUEST.value, code, request_id)

        async def submit(pipe) -> dict:
            if await pipe.hlen(index_key) >= max_per_guest:
                raise QuotaExceededError(max_per_guest)
            if await pipe.hexists(index_key, dedupe_key):
                raise DuplicateRequestError("You have already requested this song")
            pipe.multi()
            pipe.set(request_key, _encode(stored))
            pipe.hset(index_key, dedupe_key, request_id)
            await pipe.execute()
            return stored

        return await self._transact("submit_request", [index_key], submit)

    async def apply_vote(
        self, event_code: str, request_id: str, guest_id: str, vote_type: str
    ) -> Optional[dict]:
        request_key = make_key(Entity.REQUEST.value, event_code, request_id)
        vote_key = make_key(Entity.VOTE.value, event_code, f"{request_id}:{guest_id}")

        async def vote(pipe) -> Optional[dict]:
            request = _decode(await pipe.get(request_key))
            if request is None:
                return None
            existing = _decode(await pipe.get(vote_key))
            new_field = _TALLY_FIELDS[vote_type]

            if existing is None:
                existing = {
                    "id": f"vote_{uuid4().hex}",
                    "event_code": event_code,
                    "request_id": request_id,
                    "guest_id": guest_id,
                }
                request[new_field] = (request.get(new_field) or 0) + 1
                outcome = "created"
            elif existing["vote_type"] == vote_type:
                outcome = "unchanged"
            else:
                old_field = _TALLY_FIELDS[existing["vote_type"]]
                request[old_field] = max(0, (request.get(old_field) or 0) - 1)
                request[new_field] = (request.get(new_field) or 0) + 1
                outcome = "switched"

            if outcome != "unchanged":
                existing["vote_type"] = vote_type
                pipe.multi()
                pipe.set(request_key, _encode(request))
                pipe.set(vote_key, _encode(existing))
                await pipe.execute()

            return {
                "id": request_id,
                "vote_count": request.get("vote_count") or 0,
                "downvote_count": request.get("downvote_count") or 0,
                "outcome": outcome,
            }

        return await self._transact("apply_vote", [request_key, vote_key], vote)

    async def increment_songs(self, event_code: str, tracks: list[dict]) -> None:
        if not tracks:
            return
        keyed = [
            (make_key(Entity.EVENT_SONG.value, event_code,
                      song_key(t["track_id"], t["track_name"], t["artist_name"])), t)
            for t in tracks
        ]
        keys = list(dict.fromkeys(key for key, _ in keyed))

        async def increment(pipe) -> None:
            current = dict(zip(keys, [_decode(raw) for raw in await pipe.mget(keys)]))
            for key, track in keyed:
                song = current.get(key)
                if song is None:
                    song = {
                        "event_code": event_code,
                        "song_key": song_key(track["track_id"], track["track_name"], track["artist_name"]),
                        "track_id": track["track_id"],
                        "track_name": track["track_name"],
                        "artist_name": track["artist_name"],
                        "album_name": track.get("album_name"),
                        "popularity": track.get("popularity") or 0,
                        "preview_url": track.get("preview_url"),
                        "frequency": 0,
                    }
                song["frequency"] += 1
                current[key] = song
            pipe.multi()
            for key in keys:
                pipe.set(key, _encode(current[key]))
            await pipe.execute()

        await self._transact("increment_songs", keys, increment)

    async def ping(self) -> bool:
        try:
            return bool(await self._client.ping())
        except Exception as e:
            logger.warning("store_ping_failed", store=self.name, error=str(e))
            return False
