"""
Store interface for the persistence gateway.

Every component reads and writes through a Store. Two implementations back
it (SqlStore, RedisStore) and FallbackStore composes them. Records cross the
interface as plain dicts whose keys are the column names of the matching ORM
model, so both stores hold the same logical shape.

Key-value addressing is `<entity>:<eventCode>[:<guestOrId>]`; the relational
store maps the same triple onto (table, event column, identity column).
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Optional


class Entity(str, Enum):
    EVENT = "event"
    PREFERENCE = "preferences"
    EVENT_SONG = "event_song"
    SESSION = "event_session"
    SETTINGS = "request_settings"
    REQUEST = "request"
    VOTE = "vote"
    METRIC = "request_metric"


# (event column, identity column) carried by each entity's records
KEY_FIELDS: dict[Entity, tuple[str, Optional[str]]] = {
    Entity.EVENT: ("code", None),
    Entity.PREFERENCE: ("event_code", "guest_id"),
    Entity.EVENT_SONG: ("event_code", "song_key"),
    Entity.SESSION: ("event_code", "session_key"),
    Entity.SETTINGS: ("event_code", None),
    Entity.REQUEST: ("event_code", "id"),
    # Votes are read by query; their key-value ident is "<requestId>:<guestId>"
    Entity.VOTE: ("event_code", None),
    Entity.METRIC: ("event_code", "id"),
}


class StoreError(Exception):
    """Base class for store errors."""


class BackendUnavailableError(StoreError):
    """A single backing store failed. Triggers fallback in the gateway."""

    def __init__(self, store: str, operation: str, cause: Optional[BaseException] = None):
        self.store = store
        self.operation = operation
        self.cause = cause
        super().__init__(f"{store} store failed during {operation}: {cause}")


class StorageUnavailableError(StoreError):
    """Both the primary and the fallback store failed."""

    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(f"No store could serve {operation}")


class DuplicateKeyError(StoreError):
    pass


class QuotaExceededError(StoreError):
    def __init__(self, limit: int):
        self.limit = limit
        super().__init__(f"Maximum {limit} requests per guest")


class DuplicateRequestError(StoreError):
    pass


class ConcurrentUpdateError(StoreError):
    """An optimistic write kept losing races and gave up."""


def stamp_keys(entity: Entity, event_code: str, ident: Optional[str], value: dict) -> dict:
    """Copy `value` with its event and identity fields set from the address."""
    code_field, ident_field = KEY_FIELDS[entity]
    record = dict(value)
    record[code_field] = event_code
    if ident_field and ident is not None:
        record[ident_field] = ident
    return record


def song_key(track_id: str, track_name: str, artist_name: str) -> str:
    return f"{track_id}|{track_name}|{artist_name}"


def session_key(session_type: str, user_id: str) -> str:
    return f"{session_type}:{user_id}"


def request_dedupe_key(track_name: str, artist_name: str) -> str:
    return f"{track_name.strip().lower()}\x1f{artist_name.strip().lower()}"


class Store(ABC):
    """
    Uniform read/write contract over one backing store.

    Implementations translate their own driver failures into
    BackendUnavailableError and raise the domain errors above unchanged.
    """

    name: str = "store"

    @abstractmethod
    async def get(self, entity: Entity, event_code: str, ident: Optional[str] = None) -> Optional[dict]:
        """Fetch one record, or None."""

    @abstractmethod
    async def query(self, entity: Entity, event_code: str, where: Optional[dict] = None) -> list[dict]:
        """All records of `entity` for an event, filtered by equality on `where`."""

    @abstractmethod
    async def insert(self, entity: Entity, event_code: str, ident: Optional[str], value: dict) -> dict:
        """Insert a new record. Raises DuplicateKeyError if the key exists."""

    @abstractmethod
    async def put(self, entity: Entity, event_code: str, ident: Optional[str], value: dict) -> dict:
        """Insert or replace a record."""

    @abstractmethod
    async def update(
        self, entity: Entity, event_code: str, ident: Optional[str], changes: dict[str, Any]
    ) -> Optional[dict]:
        """Apply `changes` in place. Returns the updated record, or None if missing."""

    @abstractmethod
    async def submit_request(self, record: dict, max_per_guest: int) -> dict:
        """
        Atomically enforce the guest quota and the duplicate rule, then insert.

        Raises QuotaExceededError (checked first) or DuplicateRequestError.
        """

    @abstractmethod
    async def apply_vote(
        self, event_code: str, request_id: str, guest_id: str, vote_type: str
    ) -> Optional[dict]:
        """
        Record or switch a guest's vote and adjust tallies in one transaction.

        Returns {"id", "vote_count", "downvote_count", "outcome"} or None when
        the request does not exist. Outcome is created, unchanged or switched.
        """

    @abstractmethod
    async def increment_songs(self, event_code: str, tracks: list[dict]) -> None:
        """Add one occurrence per entry of `tracks` to the EventSong counters."""

    @abstractmethod
    async def ping(self) -> bool:
        pass
