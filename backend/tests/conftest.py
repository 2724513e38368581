"""
Pytest fixtures for the stores, the gateway and the HTTP client.

Each test gets its own SQLite file as the primary store and its own fake
Redis server as the fallback, so tests never share state.
"""

from typing import AsyncGenerator

import pytest_asyncio
from fakeredis import FakeServer
from fakeredis.aioredis import FakeRedis
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncEngine

from qrate.main import app
from qrate.api.deps import get_gateway
from qrate.db.session import build_engine, build_session_factory, create_tables
from qrate.infrastructure.redis_store import RedisStore
from qrate.infrastructure.sql_store import SqlStore
from qrate.services.fallback_store import FallbackStore

EVENT_CODE = "ABCD12"


@pytest_asyncio.fixture
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """Fresh SQLite database file with all tables."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'qrate_test.db'}")
    assert await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def redis_client() -> AsyncGenerator[FakeRedis, None]:
    client = FakeRedis(server=FakeServer(), decode_responses=True)
    yield client
    await client.aclose()


@pytest_asyncio.fixture
async def sql_store(engine: AsyncEngine) -> SqlStore:
    return SqlStore(build_session_factory(engine))


@pytest_asyncio.fixture
async def redis_store(redis_client: FakeRedis) -> RedisStore:
    return RedisStore(redis_client)


@pytest_asyncio.fixture
async def gateway(sql_store: SqlStore, redis_store: RedisStore) -> FallbackStore:
    return FallbackStore(sql_store, redis_store)


@pytest_asyncio.fixture
async def client(gateway: FallbackStore) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client that overrides the gateway dependency with the test stores."""
    app.dependency_overrides[get_gateway] = lambda: gateway

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def test_event(client: AsyncClient) -> dict:
    """Event ABCD12 with default request settings."""
    response = await client.post("/api/v1/events", json={
        "name": "Launch Party",
        "theme": "Disco",
        "location": "Warehouse",
        "code": EVENT_CODE,
    })
    assert response.status_code == 201
    return response.json()["event"]


async def submit_song_request(client: AsyncClient, guest_id: str, track: str, artist: str, **extra):
    return await client.post(f"/api/v1/events/{EVENT_CODE}/requests", json={
        "guestId": guest_id,
        "trackName": track,
        "artistName": artist,
        **extra,
    })
