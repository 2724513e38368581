"""
Relational primary store on SQLAlchemy's async ORM.

CONCURRENCY STRATEGY
====================

Each Store call is one transaction. Multi-step checks never read-then-write
across statements without a constraint backing them:

  - Quota: a GuestRequestQuota counter row is bumped with
      UPDATE ... SET request_count = request_count + 1
      WHERE ... AND request_count < :max
    Zero rows affected means the guest is at quota.
  - Duplicates: unique constraint (event_code, guest_id, dedupe_key) on
    song_requests. The violation rolls back the counter bump with it.
  - Votes: the request row is locked (SELECT ... FOR UPDATE, a no-op on
    SQLite which serializes writers anyway), new votes are guarded by the
    (request_id, guest_id) unique constraint and type switches by a
    conditional UPDATE on the old type. Tallies move with SQL expressions.
    A lost race rolls back and retries the whole transaction.
  - Frequencies and upserts: single INSERT ... ON CONFLICT statements.

Driver errors of any kind surface as BackendUnavailableError so the gateway
can fall back; domain errors pass through untouched.
"""

from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Optional
from uuid import uuid4

from sqlalchemy import select, update, insert, case, func
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from qrate.core.config import get_settings
from qrate.core.logging import get_logger
from qrate.core.metrics import record_store_operation
from qrate.models import (
    Event, GuestPreference, EventSong, EventSession, SongRequest, RequestVote,
    GuestRequestQuota, RequestSettings, RequestMetric,
)
from qrate.services.interfaces.store import (
    Entity, KEY_FIELDS, Store, StoreError, BackendUnavailableError, DuplicateKeyError,
    QuotaExceededError, DuplicateRequestError, ConcurrentUpdateError,
    request_dedupe_key, song_key, stamp_keys,
)

logger = get_logger(__name__)


@dataclass(frozen=True)
class _Table:
    model: type
    conflict: tuple[str, ...]


_TABLES = {
    Entity.EVENT: _Table(Event, ("code",)),
    Entity.PREFERENCE: _Table(GuestPreference, ("event_code", "guest_id")),
    Entity.EVENT_SONG: _Table(EventSong, ("event_code", "song_key")),
    Entity.SESSION: _Table(EventSession, ("event_code", "session_key")),
    Entity.SETTINGS: _Table(RequestSettings, ("event_code",)),
    Entity.REQUEST: _Table(SongRequest, ("id",)),
    Entity.VOTE: _Table(RequestVote, ("request_id", "guest_id")),
    Entity.METRIC: _Table(RequestMetric, ("id",)),
}

_TALLY_COLUMNS = {"upvote": "vote_count", "downvote": "downvote_count"}


class _RaceLost(StoreError):
    """Internal: the transaction lost a race and should be retried."""


def _columns(model: type) -> set[str]:
    return {attr.key for attr in sa_inspect(model).column_attrs}


def _to_dict(obj: Any) -> dict:
    return {attr.key: getattr(obj, attr.key) for attr in sa_inspect(obj).mapper.column_attrs}


def _dialect_insert(session: AsyncSession, model: type):
    dialect = session.bind.dialect.name
    if dialect == "postgresql":
        return postgresql.insert(model)
    if dialect == "sqlite":
        return sqlite.insert(model)
    raise NotImplementedError(f"Upserts are not implemented for {dialect}")


class SqlStore(Store):
    name = "primary"

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], max_attempts: Optional[int] = None):
        self._session_factory = session_factory
        self._max_attempts = max_attempts or get_settings().STORE_MAX_RETRY_ATTEMPTS

    @asynccontextmanager
    async def _transaction(self, operation: str) -> AsyncIterator[AsyncSession]:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    yield session
        except StoreError:
            record_store_operation(self.name, operation, ok=True)
            raise
        except Exception as e:
            record_store_operation(self.name, operation, ok=False)
            raise BackendUnavailableError(self.name, operation, e) from e
        else:
            record_store_operation(self.name, operation, ok=True)

    async def _retrying(self, operation: str, fn):
        for attempt in range(1, self._max_attempts + 1):
            try:
                async with self._transaction(operation) as session:
                    return await fn(session)
            except _RaceLost:
                logger.info("store_retry", store=self.name, operation=operation, attempt=attempt)
        raise ConcurrentUpdateError(f"{operation} gave up after {self._max_attempts} attempts")

    def _conditions(self, entity: Entity, event_code: str, ident: Optional[str]) -> list:
        model = _TABLES[entity].model
        code_field, ident_field = KEY_FIELDS[entity]
        conditions = [getattr(model, code_field) == event_code]
        if ident_field and ident is not None:
            conditions.append(getattr(model, ident_field) == ident)
        return conditions

    def _row(self, entity: Entity, event_code: str, ident: Optional[str], value: dict) -> dict:
        allowed = _columns(_TABLES[entity].model)
        row = {k: v for k, v in stamp_keys(entity, event_code, ident, value).items() if k in allowed}
        if row.get("id") is None:
            row.pop("id", None)
        return row

    async def _fetch(self, session: AsyncSession, entity: Entity, event_code: str, ident: Optional[str]):
        model = _TABLES[entity].model
        result = await session.execute(select(model).where(*self._conditions(entity, event_code, ident)))
        return result.scalar_one_or_none()

    async def get(self, entity: Entity, event_code: str, ident: Optional[str] = None) -> Optional[dict]:
        async with self._transaction("get") as session:
            obj = await self._fetch(session, entity, event_code, ident)
            return _to_dict(obj) if obj is not None else None

    async def query(self, entity: Entity, event_code: str, where: Optional[dict] = None) -> list[dict]:
        model = _TABLES[entity].model
        conditions = self._conditions(entity, event_code, None)
        for column, expected in (where or {}).items():
            conditions.append(getattr(model, column) == expected)
        async with self._transaction("query") as session:
            result = await session.execute(select(model).where(*conditions))
            return [_to_dict(obj) for obj in result.scalars().all()]

    async def insert(self, entity: Entity, event_code: str, ident: Optional[str], value: dict) -> dict:
        model = _TABLES[entity].model
        async with self._transaction("insert") as session:
            obj = model(**self._row(entity, event_code, ident, value))
            session.add(obj)
            try:
                await session.flush()
            except IntegrityError as e:
                raise DuplicateKeyError(f"{entity.value}:{event_code}:{ident} already exists") from e
            await session.refresh(obj)
            return _to_dict(obj)

    async def put(self, entity: Entity, event_code: str, ident: Optional[str], value: dict) -> dict:
        table = _TABLES[entity]
        row = self._row(entity, event_code, ident, value)
        changes = {k: v for k, v in row.items() if k not in table.conflict and k != "created_at"}
        changes["updated_at"] = func.now()
        async with self._transaction("put") as session:
            stmt = _dialect_insert(session, table.model).values(**row)
            if changes:
                stmt = stmt.on_conflict_do_update(index_elements=list(table.conflict), set_=changes)
            else:
                stmt = stmt.on_conflict_do_nothing(index_elements=list(table.conflict))
            await session.execute(stmt)
            obj = await self._fetch(session, entity, event_code, ident)
            return _to_dict(obj)

    async def update(
        self, entity: Entity, event_code: str, ident: Optional[str], changes: dict[str, Any]
    ) -> Optional[dict]:
        model = _TABLES[entity].model
        allowed = _columns(model)
        values = {k: v for k, v in changes.items() if k in allowed}
        async with self._transaction("update") as session:
            conditions = self._conditions(entity, event_code, ident)
            if values:
                result = await session.execute(update(model).where(*conditions).values(**values))
                if result.rowcount == 0:
                    return None
            obj = await self._fetch(session, entity, event_code, ident)
            if obj is None:
                return None
            return _to_dict(obj)

    async def submit_request(self, record: dict, max_per_guest: int) -> dict:
        row = self._row(Entity.REQUEST, record["event_code"], record["id"], record)
        row["dedupe_key"] = request_dedupe_key(row["track_name"], row["artist_name"])
        code, guest_id = row["event_code"], row["guest_id"]

        async with self._transaction("submit_request") as session:
            await session.execute(
                _dialect_insert(session, GuestRequestQuota)
                .values(event_code=code, guest_id=guest_id, request_count=0)
                .on_conflict_do_nothing(index_elements=["event_code", "guest_id"])
            )
            bumped = await session.execute(
                update(GuestRequestQuota)
                .where(
                    GuestRequestQuota.event_code == code,
                    GuestRequestQuota.guest_id == guest_id,
                    GuestRequestQuota.request_count < max_per_guest,
                )
                .values(request_count=GuestRequestQuota.request_count + 1)
            )
            if bumped.rowcount == 0:
                raise QuotaExceededError(max_per_guest)

            obj = SongRequest(**row)
            session.add(obj)
            try:
                await session.flush()
            except IntegrityError as e:
                raise DuplicateRequestError("You have already requested this song") from e
            await session.refresh(obj)
            return _to_dict(obj)

    async def apply_vote(
        self, event_code: str, request_id: str, guest_id: str, vote_type: str
    ) -> Optional[dict]:
        new_column = _TALLY_COLUMNS[vote_type]

        async def vote(session: AsyncSession) -> Optional[dict]:
            locked = await session.execute(
                select(SongRequest.id)
                .where(SongRequest.id == request_id, SongRequest.event_code == event_code)
                .with_for_update()
            )
            if locked.scalar_one_or_none() is None:
                return None

            existing = (await session.execute(
                select(RequestVote.id, RequestVote.vote_type)
                .where(RequestVote.request_id == request_id, RequestVote.guest_id == guest_id)
            )).one_or_none()

            if existing is None:
                try:
                    await session.execute(insert(RequestVote).values(
                        id=f"vote_{uuid4().hex}",
                        event_code=event_code,
                        request_id=request_id,
                        guest_id=guest_id,
                        vote_type=vote_type,
                    ))
                except IntegrityError as e:
                    raise _RaceLost() from e
                tallies = {new_column: getattr(SongRequest, new_column) + 1}
                outcome = "created"
            elif existing.vote_type == vote_type:
                tallies = {}
                outcome = "unchanged"
            else:
                switched = await session.execute(
                    update(RequestVote)
                    .where(RequestVote.id == existing.id, RequestVote.vote_type == existing.vote_type)
                    .values(vote_type=vote_type)
                )
                if switched.rowcount == 0:
                    raise _RaceLost()
                old = getattr(SongRequest, _TALLY_COLUMNS[existing.vote_type])
                tallies = {
                    _TALLY_COLUMNS[existing.vote_type]: case((old > 0, old - 1), else_=0),
                    new_column: getattr(SongRequest, new_column) + 1,
                }
                outcome = "switched"

            if tallies:
                await session.execute(
                    update(SongRequest).where(SongRequest.id == request_id).values(**tallies)
                )
            counts = (await session.execute(
                select(SongRequest.vote_count, SongRequest.downvote_count).where(SongRequest.id == request_id)
            )).one()
            return {
                "id": request_id,
                "vote_count": counts.vote_count,
                "downvote_count": counts.downvote_count,
                "outcome": outcome,
            }

        return await self._retrying("apply_vote", vote)

    async def increment_songs(self, event_code: str, tracks: list[dict]) -> None:
        if not tracks:
            return
        frequency = EventSong.__table__.c.frequency
        async with self._transaction("increment_songs") as session:
            for track in tracks:
                values = {
                    "event_code": event_code,
                    "song_key": song_key(track["track_id"], track["track_name"], track["artist_name"]),
                    "track_id": track["track_id"],
                    "track_name": track["track_name"],
                    "artist_name": track["artist_name"],
                    "album_name": track.get("album_name"),
                    "popularity": track.get("popularity") or 0,
                    "preview_url": track.get("preview_url"),
                    "frequency": 1,
                }
                await session.execute(
                    _dialect_insert(session, EventSong)
                    .values(**values)
                    .on_conflict_do_update(
                        index_elements=["event_code", "song_key"],
                        set_={"frequency": frequency + 1},
                    )
                )

    async def ping(self) -> bool:
        try:
            async with self._session_factory() as session:
                await session.execute(select(1))
            return True
        except Exception as e:
            logger.warning("store_ping_failed", store=self.name, error=str(e))
            return False
