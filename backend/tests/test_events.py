"""
Tests for event creation and lookup.
"""

import pytest
from httpx import AsyncClient

from qrate.services.interfaces.store import Entity, StorageUnavailableError
from tests.conftest import EVENT_CODE


@pytest.mark.asyncio
async def test_create_event_generates_code(client: AsyncClient):
    """A new event gets a 6-character uppercase alphanumeric code."""
    response = await client.post("/api/v1/events", json={
        "name": "Rooftop Sunset",
        "theme": "House",
        "description": "Bring sunglasses",
    })
    assert response.status_code == 201
    data = response.json()
    assert data["success"] is True
    code = data["event"]["code"]
    assert len(code) == 6
    assert code == code.upper()
    assert code.isalnum()
    assert data["event"]["id"].startswith("event_")
    assert data["event"]["description"] == "Bring sunglasses"
    # Date and time default to now
    assert data["event"]["date"] is not None
    assert data["event"]["time"] is not None


@pytest.mark.asyncio
async def test_create_event_requires_name_and_theme(client: AsyncClient):
    response = await client.post("/api/v1/events", json={"name": "No Theme"})
    assert response.status_code == 400
    assert response.json() == {"error": "Event name and theme are required"}


@pytest.mark.asyncio
async def test_create_event_with_existing_code_returns_existing(client: AsyncClient, test_event):
    """Re-creating with a known code is idempotent."""
    response = await client.post("/api/v1/events", json={
        "name": "Different Name",
        "theme": "Different Theme",
        "code": EVENT_CODE.lower(),
    })
    assert response.status_code == 201
    event = response.json()["event"]
    assert event["id"] == test_event["id"]
    assert event["name"] == "Launch Party"


@pytest.mark.asyncio
async def test_create_event_retries_code_collision(client: AsyncClient, test_event, mocker):
    """A generated code that's taken is redrawn."""
    mocker.patch(
        "qrate.services.event_service.generate_event_code",
        side_effect=[EVENT_CODE, "ZZZZ99"],
    )
    response = await client.post("/api/v1/events", json={"name": "Second", "theme": "Funk"})
    assert response.status_code == 201
    assert response.json()["event"]["code"] == "ZZZZ99"


@pytest.mark.asyncio
async def test_create_event_gives_up_after_max_attempts(client: AsyncClient, test_event, mocker):
    mocker.patch("qrate.services.event_service.generate_event_code", return_value=EVENT_CODE)
    response = await client.post("/api/v1/events", json={"name": "Unlucky", "theme": "Funk"})
    assert response.status_code == 500
    assert response.json() == {"error": "Could not allocate a unique event code"}


@pytest.mark.asyncio
async def test_get_event_is_case_insensitive(client: AsyncClient, test_event):
    response = await client.get(f"/api/v1/events/{EVENT_CODE.lower()}")
    assert response.status_code == 200
    data = response.json()
    assert data["event"]["code"] == EVENT_CODE
    assert data["event"]["preferences"] == []


@pytest.mark.asyncio
async def test_get_event_includes_preferences(client: AsyncClient, test_event):
    await client.post(f"/api/v1/events/{EVENT_CODE}/preferences", json={
        "guestId": "g1",
        "artists": ["Artist X"],
        "genres": ["Pop"],
    })
    response = await client.get(f"/api/v1/events/{EVENT_CODE}")
    preferences = response.json()["event"]["preferences"]
    assert len(preferences) == 1
    assert preferences[0]["guestId"] == "g1"
    assert preferences[0]["genres"] == ["Pop"]


@pytest.mark.asyncio
async def test_get_nonexistent_event(client: AsyncClient):
    response = await client.get("/api/v1/events/NOPE00")
    assert response.status_code == 404
    assert response.json() == {"error": "Event not found"}


@pytest.mark.asyncio
async def test_health_reports_both_stores(client: AsyncClient):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["stores"] == {"primary": "connected", "fallback": "connected"}


@pytest.mark.asyncio
async def test_get_event_tracks_sessions(client: AsyncClient, sql_store, redis_store, test_event):
    """Host, DJ and guest visits each leave one session row per user."""
    await client.post(f"/api/v1/events/{EVENT_CODE}/preferences", json={"guestId": "g1"})
    await client.get(f"/api/v1/events/{EVENT_CODE}", params={"session_type": "dj", "user_id": "d1"})
    await client.get(f"/api/v1/events/{EVENT_CODE}", params={"session_type": "host", "user_id": "h1"})
    response = await client.get(f"/api/v1/events/{EVENT_CODE}", params={"session_type": "host", "user_id": "h1"})

    assert response.status_code == 200
    assert response.json()["event"]["sessions"] == {"host": 1, "dj": 1, "guest": 1}
    for store in (sql_store, redis_store):
        sessions = await store.query(Entity.SESSION, EVENT_CODE)
        assert sorted((s["session_type"], s["user_id"]) for s in sessions) == [
            ("dj", "d1"), ("guest", "g1"), ("host", "h1"),
        ]


@pytest.mark.asyncio
async def test_get_event_defaults_to_anonymous_guest(client: AsyncClient, gateway, test_event):
    response = await client.get(f"/api/v1/events/{EVENT_CODE}")
    assert response.json()["event"]["sessions"] == {"host": 0, "dj": 0, "guest": 1}

    (session,) = await gateway.query(Entity.SESSION, EVENT_CODE)
    assert session["user_id"] == "anonymous"
    assert session["is_active"] is True


@pytest.mark.asyncio
async def test_unknown_event_is_not_tracked(client: AsyncClient, gateway):
    response = await client.get("/api/v1/events/NOPE00", params={"session_type": "host", "user_id": "h1"})
    assert response.status_code == 404
    assert await gateway.query(Entity.SESSION, "NOPE00") == []


@pytest.mark.asyncio
async def test_session_write_failure_does_not_fail_lookup(client: AsyncClient, gateway, test_event, mocker):
    mocker.patch.object(gateway, "put", side_effect=StorageUnavailableError("put"))

    response = await client.get(f"/api/v1/events/{EVENT_CODE}", params={"session_type": "dj"})
    assert response.status_code == 200
    assert response.json()["event"]["code"] == EVENT_CODE


@pytest.mark.asyncio
async def test_get_event_rejects_unknown_session_type(client: AsyncClient, test_event):
    response = await client.get(f"/api/v1/events/{EVENT_CODE}", params={"session_type": "bouncer"})
    assert response.status_code == 422
