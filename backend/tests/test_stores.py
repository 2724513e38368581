"""
Tests for the persistence gateway: fallback on primary failure, best-effort
mirroring, and the key-value store's atomic compound writes.
"""

import asyncio
from datetime import datetime, timezone

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

from qrate.main import app
from qrate.api.deps import get_gateway
from qrate.db.session import build_engine, build_session_factory
from qrate.infrastructure.redis_store import RedisStore
from qrate.infrastructure.sql_store import SqlStore
from qrate.services.fallback_store import FallbackStore
from qrate.services.interfaces.store import (
    BackendUnavailableError, ConcurrentUpdateError, Entity, QuotaExceededError,
    DuplicateRequestError, StorageUnavailableError,
)
from tests.conftest import EVENT_CODE


def request_record(request_id: str, guest_id: str, track: str, artist: str = "Band") -> dict:
    return {
        "id": request_id,
        "event_code": EVENT_CODE,
        "guest_id": guest_id,
        "track_name": track,
        "artist_name": artist,
        "status": "pending",
        "vote_count": 0,
        "downvote_count": 0,
        "tip_amount": 0,
        "submitted_at": datetime.now(timezone.utc),
        "track_metadata": {},
    }


@pytest_asyncio.fixture
async def broken_sql_store(tmp_path):
    """A primary whose database file can never be opened."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'missing' / 'nowhere.db'}")
    yield SqlStore(build_session_factory(engine))
    await engine.dispose()


async def client_for(gateway):
    app.dependency_overrides[get_gateway] = lambda: gateway
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


@pytest.mark.asyncio
async def test_requests_served_from_fallback_when_primary_down(broken_sql_store, redis_store):
    gateway = FallbackStore(broken_sql_store, redis_store)
    async with await client_for(gateway) as client:
        response = await client.post("/api/v1/events", json={"name": "Outage", "theme": "Rock", "code": EVENT_CODE})
        assert response.status_code == 201

        response = await client.post(f"/api/v1/events/{EVENT_CODE}/requests", json={
            "guestId": "g2", "trackName": "Song B", "artistName": "Artist Y",
        })
        assert response.status_code == 201
        request_id = response.json()["request"]["id"]

        for vote_type in ("upvote", "downvote"):
            response = await client.post(
                f"/api/v1/events/{EVENT_CODE}/requests/{request_id}/vote",
                json={"guestId": "h1", "voteType": vote_type},
            )
            assert response.status_code == 200
        assert response.json()["request"] == {"id": request_id, "voteCount": 0, "downvoteCount": 1}

        response = await client.post(f"/api/v1/events/{EVENT_CODE}/requests", json={
            "guestId": "g2", "trackName": "song b", "artistName": "artist y",
        })
        assert response.status_code == 409

        listed = (await client.get(f"/api/v1/events/{EVENT_CODE}/requests")).json()["requests"]
        assert [r["id"] for r in listed] == [request_id]

        health = (await client.get("/health")).json()
        assert health["stores"] == {"primary": "unavailable", "fallback": "connected"}
    app.dependency_overrides.clear()


@pytest.mark.asyncio
async def test_storage_unavailable_without_fallback(broken_sql_store):
    gateway = FallbackStore(broken_sql_store, None)
    async with await client_for(gateway) as client:
        response = await client.post("/api/v1/events", json={"name": "Outage", "theme": "Rock"})
        assert response.status_code == 503
        assert response.json() == {"error": "Storage unavailable"}
    app.dependency_overrides.clear()


@pytest.mark.asyncio
async def test_both_stores_down_raises(broken_sql_store, redis_store, mocker):
    mocker.patch.object(
        redis_store, "put",
        side_effect=BackendUnavailableError("fallback", "put", ConnectionError("refused")),
    )
    gateway = FallbackStore(broken_sql_store, redis_store)
    with pytest.raises(StorageUnavailableError):
        await gateway.put(Entity.SETTINGS, EVENT_CODE, None, {"max_requests_per_guest": 3})


@pytest.mark.asyncio
async def test_mirror_failure_does_not_fail_write(sql_store, redis_store, mocker):
    mocker.patch.object(
        redis_store, "put",
        side_effect=BackendUnavailableError("fallback", "put", ConnectionError("refused")),
    )
    gateway = FallbackStore(sql_store, redis_store)
    stored = await gateway.put(Entity.SETTINGS, EVENT_CODE, None, {
        "max_requests_per_guest": 3,
        "auto_accept_threshold": 5,
    })
    assert stored["max_requests_per_guest"] == 3
    assert (await sql_store.get(Entity.SETTINGS, EVENT_CODE))["max_requests_per_guest"] == 3


@pytest.mark.asyncio
async def test_successful_write_is_mirrored(gateway, redis_store):
    await gateway.put(Entity.SETTINGS, EVENT_CODE, None, {"max_requests_per_guest": 4, "auto_accept_threshold": 5})
    mirrored = await redis_store.get(Entity.SETTINGS, EVENT_CODE)
    assert mirrored["max_requests_per_guest"] == 4
    assert mirrored["event_code"] == EVENT_CODE


@pytest.mark.asyncio
async def test_read_falls_back_when_primary_empty(gateway, redis_store):
    await redis_store.put(Entity.SETTINGS, EVENT_CODE, None, {"max_requests_per_guest": 7})
    record = await gateway.get(Entity.SETTINGS, EVENT_CODE)
    assert record["max_requests_per_guest"] == 7


@pytest.mark.asyncio
async def test_reads_are_not_merged(gateway, sql_store, redis_store):
    await sql_store.submit_request(request_record("req_sql", "g1", "From SQL"), 10)
    await redis_store.submit_request(request_record("req_kv", "g1", "From KV"), 10)
    records = await gateway.query(Entity.REQUEST, EVENT_CODE)
    assert [r["id"] for r in records] == ["req_sql"]


@pytest.mark.asyncio
async def test_domain_errors_skip_fallback(gateway, redis_store, mocker):
    spy = mocker.spy(redis_store, "submit_request")
    await gateway.submit_request(request_record("req_1", "g1", "Song"), 1)
    assert spy.call_count == 1  # mirror

    with pytest.raises(QuotaExceededError):
        await gateway.submit_request(request_record("req_2", "g1", "Other Song"), 1)
    assert spy.call_count == 1


@pytest.mark.asyncio
async def test_sql_duplicate_request_rejected_case_insensitively(sql_store):
    await sql_store.submit_request(request_record("req_1", "g1", "Song B", "Artist Y"), 10)
    with pytest.raises(DuplicateRequestError):
        await sql_store.submit_request(request_record("req_2", "g1", " SONG B", "artist y "), 10)


@pytest.mark.asyncio
async def test_sql_failed_duplicate_does_not_consume_quota(sql_store):
    await sql_store.submit_request(request_record("req_1", "g1", "Song"), 2)
    with pytest.raises(DuplicateRequestError):
        await sql_store.submit_request(request_record("req_2", "g1", "Song"), 2)
    # The rolled-back duplicate left room for one more
    await sql_store.submit_request(request_record("req_3", "g1", "Another"), 2)


@pytest.mark.asyncio
async def test_redis_quota_holds_under_concurrency(redis_client):
    store = RedisStore(redis_client, max_attempts=50)
    results = await asyncio.gather(
        *(store.submit_request(request_record(f"req_{i}", "g1", f"Song {i}"), 10) for i in range(15)),
        return_exceptions=True,
    )
    stored = [r for r in results if isinstance(r, dict)]
    errors = [r for r in results if isinstance(r, Exception)]

    assert 0 < len(stored) <= 10
    assert all(isinstance(e, (QuotaExceededError, ConcurrentUpdateError)) for e in errors)
    assert len(await store.query(Entity.REQUEST, EVENT_CODE)) == len(stored)
    assert await redis_client.hlen(f"request_index:{EVENT_CODE}:g1") == len(stored)


@pytest.mark.asyncio
async def test_redis_duplicate_request(redis_store):
    await redis_store.submit_request(request_record("req_1", "g1", "Song B", "Artist Y"), 10)
    with pytest.raises(DuplicateRequestError):
        await redis_store.submit_request(request_record("req_2", "g1", "song b", "ARTIST Y"), 10)


@pytest.mark.asyncio
async def test_redis_vote_switch_and_repeat(redis_store):
    await redis_store.submit_request(request_record("req_1", "g2", "Song B"), 10)

    first = await redis_store.apply_vote(EVENT_CODE, "req_1", "h1", "upvote")
    again = await redis_store.apply_vote(EVENT_CODE, "req_1", "h1", "upvote")
    switched = await redis_store.apply_vote(EVENT_CODE, "req_1", "h1", "downvote")

    assert (first["vote_count"], first["downvote_count"], first["outcome"]) == (1, 0, "created")
    assert (again["vote_count"], again["outcome"]) == (1, "unchanged")
    assert (switched["vote_count"], switched["downvote_count"], switched["outcome"]) == (0, 1, "switched")
    assert await redis_store.apply_vote(EVENT_CODE, "req_missing", "h1", "upvote") is None


@pytest.mark.asyncio
async def test_votes_readable_from_both_stores(gateway, sql_store, redis_store):
    await gateway.submit_request(request_record("req_1", "g2", "Song B"), 10)
    await gateway.apply_vote(EVENT_CODE, "req_1", "h1", "upvote")
    await gateway.apply_vote(EVENT_CODE, "req_1", "h2", "downvote")

    for store in (sql_store, redis_store):
        votes = await store.query(Entity.VOTE, EVENT_CODE, {"request_id": "req_1"})
        assert sorted((v["guest_id"], v["vote_type"]) for v in votes) == [
            ("h1", "upvote"), ("h2", "downvote"),
        ]
        assert await store.query(Entity.VOTE, EVENT_CODE, {"guest_id": "nobody"}) == []


@pytest.mark.asyncio
async def test_increment_songs_counts_each_occurrence(gateway, sql_store, redis_store):
    track = {"track_id": "t1", "track_name": "Song A", "artist_name": "X", "popularity": 40}
    await gateway.increment_songs(EVENT_CODE, [track, track])
    await gateway.increment_songs(EVENT_CODE, [track])

    for store in (sql_store, redis_store):
        (song,) = await store.query(Entity.EVENT_SONG, EVENT_CODE)
        assert song["frequency"] == 3
