"""
Tests for the song request lifecycle: settings, submission rules, listing
and host updates.
"""

import pytest
from httpx import AsyncClient

from qrate.core.config import get_settings
from qrate.services.interfaces.store import Entity
from qrate.services.track_features import derive_synthetic_features
from tests.conftest import EVENT_CODE, submit_song_request

BASE = f"/api/v1/events/{EVENT_CODE}"


async def set_settings(client: AsyncClient, **settings):
    response = await client.put(f"{BASE}/request-settings", json=settings)
    assert response.status_code == 200
    return response.json()["settings"]


@pytest.mark.asyncio
async def test_default_settings(client: AsyncClient, test_event):
    response = await client.get(f"{BASE}/request-settings")
    assert response.status_code == 200
    settings = response.json()["settings"]
    assert settings["requestsEnabled"] is True
    assert settings["votingEnabled"] is True
    assert settings["paidRequestsEnabled"] is False
    assert settings["maxRequestsPerGuest"] == 10


@pytest.mark.asyncio
async def test_put_settings_replaces_whole_record(client: AsyncClient, test_event):
    await set_settings(client, votingEnabled=False, maxRequestsPerGuest=3, genreRestrictions=["Jazz"])
    settings = await set_settings(client, maxRequestsPerGuest=5)

    assert settings["maxRequestsPerGuest"] == 5
    assert settings["votingEnabled"] is True  # omitted, back to default
    assert settings["genreRestrictions"] == []

    stored = (await client.get(f"{BASE}/request-settings")).json()["settings"]
    assert stored["maxRequestsPerGuest"] == 5


@pytest.mark.asyncio
async def test_put_settings_rejects_zero_quota(client: AsyncClient, test_event):
    response = await client.put(f"{BASE}/request-settings", json={"maxRequestsPerGuest": 0})
    assert response.status_code == 422
    assert "error" in response.json()


@pytest.mark.asyncio
async def test_submit_request(client: AsyncClient, test_event):
    response = await submit_song_request(client, "g2", "Song B", "Artist Y", albumName="Album")
    assert response.status_code == 201
    request = response.json()["request"]

    assert request["id"].startswith("req_")
    assert request["status"] == "pending"
    assert request["voteCount"] == 0
    assert request["downvoteCount"] == 0
    assert request["tipAmount"] == 0
    assert request["playedAt"] is None

    features = derive_synthetic_features("Song B", "Artist Y")
    assert request["metadata"]["bpm"] == features.bpm
    assert request["metadata"]["key"] == features.key
    assert request["metadata"]["genre"] == features.genre


@pytest.mark.asyncio
async def test_submit_request_metadata_override(client: AsyncClient, test_event):
    response = await submit_song_request(client, "g1", "Song B", "Artist Y", metadata={"bpm": 128, "mood": "hype"})
    metadata = response.json()["request"]["metadata"]
    assert metadata["bpm"] == 128
    assert metadata["mood"] == "hype"
    assert metadata["key"] == derive_synthetic_features("Song B", "Artist Y").key


@pytest.mark.asyncio
@pytest.mark.parametrize("body", [
    {"trackName": "Song", "artistName": "Artist"},
    {"guestId": "g1", "artistName": "Artist"},
    {"guestId": "g1", "trackName": "   ", "artistName": "Artist"},
])
async def test_submit_request_missing_fields(client: AsyncClient, test_event, body):
    response = await client.post(f"{BASE}/requests", json=body)
    assert response.status_code == 400
    assert response.json() == {"error": "Track name, artist name, and guest ID are required"}


@pytest.mark.asyncio
async def test_submit_request_unknown_event(client: AsyncClient):
    response = await client.post("/api/v1/events/NOPE00/requests", json={
        "guestId": "g1", "trackName": "Song", "artistName": "Artist",
    })
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_submit_request_when_disabled(client: AsyncClient, test_event):
    await set_settings(client, requestsEnabled=False)
    response = await submit_song_request(client, "g1", "Song", "Artist")
    assert response.status_code == 403
    assert response.json() == {"error": "Requests are disabled for this event"}


@pytest.mark.asyncio
async def test_quota_allows_exactly_max(client: AsyncClient, test_event):
    await set_settings(client, maxRequestsPerGuest=2)
    for i in range(2):
        assert (await submit_song_request(client, "g1", f"Song {i}", "Artist")).status_code == 201

    response = await submit_song_request(client, "g1", "One Too Many", "Artist")
    assert response.status_code == 400
    assert response.json() == {"error": "Maximum 2 requests per guest"}

    # Another guest is unaffected
    assert (await submit_song_request(client, "g2", "One Too Many", "Artist")).status_code == 201


@pytest.mark.asyncio
async def test_default_quota_is_ten(client: AsyncClient, test_event):
    for i in range(10):
        assert (await submit_song_request(client, "g1", f"Song {i}", "Artist")).status_code == 201
    response = await submit_song_request(client, "g1", "Song 10", "Artist")
    assert response.status_code == 400
    assert response.json()["error"] == "Maximum 10 requests per guest"


@pytest.mark.asyncio
async def test_duplicate_request_case_insensitive(client: AsyncClient, test_event):
    assert (await submit_song_request(client, "g1", "Song B", "Artist Y")).status_code == 201

    response = await submit_song_request(client, "g1", "  song b ", "ARTIST Y")
    assert response.status_code == 409
    assert response.json() == {"error": "You have already requested this song"}

    # Same song from a different guest is fine
    assert (await submit_song_request(client, "g2", "Song B", "Artist Y")).status_code == 201


@pytest.mark.asyncio
async def test_quota_checked_before_duplicate(client: AsyncClient, test_event):
    await set_settings(client, maxRequestsPerGuest=1)
    await submit_song_request(client, "g1", "Song B", "Artist Y")
    response = await submit_song_request(client, "g1", "Song B", "Artist Y")
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_list_requests_sorted(client: AsyncClient, test_event):
    ids = {}
    for title in ("Oldest", "Middle", "Newest", "Disliked"):
        ids[title] = (await submit_song_request(client, f"guest_{title}", title, "Band")).json()["request"]["id"]

    async def vote(title, guest, vote_type):
        response = await client.post(
            f"{BASE}/requests/{ids[title]}/vote", json={"guestId": guest, "voteType": vote_type}
        )
        assert response.status_code == 200

    await vote("Newest", "v1", "upvote")
    await vote("Newest", "v2", "upvote")
    await vote("Middle", "v1", "upvote")
    await vote("Disliked", "v1", "downvote")

    response = await client.get(f"{BASE}/requests")
    assert response.status_code == 200
    titles = [r["trackName"] for r in response.json()["requests"]]
    assert titles == ["Newest", "Middle", "Oldest", "Disliked"]


@pytest.mark.asyncio
async def test_list_requests_filters(client: AsyncClient, test_event):
    first = (await submit_song_request(client, "g1", "Song A", "X")).json()["request"]
    await submit_song_request(client, "g1", "Song B", "X")
    await submit_song_request(client, "g2", "Song C", "X")
    await client.put(f"{BASE}/requests/{first['id']}", json={"status": "accepted"})

    by_guest = (await client.get(f"{BASE}/requests", params={"guestId": "g1"})).json()["requests"]
    assert {r["trackName"] for r in by_guest} == {"Song A", "Song B"}

    accepted = (await client.get(f"{BASE}/requests", params={"status": "accepted"})).json()["requests"]
    assert [r["id"] for r in accepted] == [first["id"]]


@pytest.mark.asyncio
async def test_update_to_played_stamps_played_at(client: AsyncClient, test_event):
    request = (await submit_song_request(client, "g1", "Song", "Artist")).json()["request"]

    response = await client.put(f"{BASE}/requests/{request['id']}", json={"status": "played"})
    assert response.status_code == 200
    updated = response.json()["request"]
    assert updated["status"] == "played"
    assert updated["playedAt"] is not None


@pytest.mark.asyncio
async def test_update_metadata_and_tip(client: AsyncClient, test_event):
    request = (await submit_song_request(client, "g1", "Song", "Artist")).json()["request"]
    response = await client.put(f"{BASE}/requests/{request['id']}", json={
        "metadata": {"bpm": 99},
        "tipAmount": 2.5,
    })
    assert response.status_code == 200
    updated = response.json()["request"]
    assert updated["metadata"] == {"bpm": 99}
    assert updated["tipAmount"] == 2.5
    assert updated["status"] == "pending"


@pytest.mark.asyncio
async def test_update_free_form_by_default(client: AsyncClient, test_event):
    """Without enforcement a played request can go back to pending."""
    request = (await submit_song_request(client, "g1", "Song", "Artist")).json()["request"]
    await client.put(f"{BASE}/requests/{request['id']}", json={"status": "played"})
    response = await client.put(f"{BASE}/requests/{request['id']}", json={"status": "pending"})
    assert response.status_code == 200
    assert response.json()["request"]["status"] == "pending"


@pytest.mark.asyncio
async def test_update_enforced_transitions(client: AsyncClient, test_event, monkeypatch):
    monkeypatch.setattr(get_settings(), "ENFORCE_STATUS_TRANSITIONS", True)
    request = (await submit_song_request(client, "g1", "Song", "Artist")).json()["request"]
    url = f"{BASE}/requests/{request['id']}"

    response = await client.put(url, json={"status": "played"})
    assert response.status_code == 409
    assert response.json() == {"error": "Cannot move a pending request to played"}

    assert (await client.put(url, json={"status": "pending"})).status_code == 200
    assert (await client.put(url, json={"status": "accepted"})).status_code == 200
    assert (await client.put(url, json={"status": "queued"})).status_code == 200
    assert (await client.put(url, json={"status": "played"})).status_code == 200
    assert (await client.put(url, json={"status": "pending"})).status_code == 409


@pytest.mark.asyncio
async def test_update_invalid_status(client: AsyncClient, test_event):
    request = (await submit_song_request(client, "g1", "Song", "Artist")).json()["request"]
    response = await client.put(f"{BASE}/requests/{request['id']}", json={"status": "skipped"})
    assert response.status_code == 422
    assert "status" in response.json()["error"]


@pytest.mark.asyncio
async def test_update_without_fields(client: AsyncClient, test_event):
    request = (await submit_song_request(client, "g1", "Song", "Artist")).json()["request"]
    response = await client.put(f"{BASE}/requests/{request['id']}", json={})
    assert response.status_code == 400
    assert response.json() == {"error": "No fields to update"}


@pytest.mark.asyncio
async def test_update_unknown_request(client: AsyncClient, test_event):
    response = await client.put(f"{BASE}/requests/req_missing", json={"status": "accepted"})
    assert response.status_code == 404
    assert response.json() == {"error": "Request not found"}


@pytest.mark.asyncio
async def test_submit_and_update_write_metric_rows(client: AsyncClient, gateway, test_event):
    request = (await submit_song_request(client, "g1", "Song", "Artist")).json()["request"]
    await client.put(f"{BASE}/requests/{request['id']}", json={"status": "played"})
    await client.put(f"{BASE}/requests/{request['id']}", json={"tipAmount": 1})

    metrics = await gateway.query(Entity.METRIC, EVENT_CODE)
    names = sorted(m["metric_name"] for m in metrics)
    assert names == ["request_played", "request_submitted", "request_updated"]
