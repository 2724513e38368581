"""
Tests for the request analytics summary.
"""

from datetime import datetime, timedelta, timezone

import pytest
from httpx import AsyncClient

from qrate.schemas.request import SongRequestRecord
from qrate.services.analytics_service import summarize_requests
from qrate.services.track_features import derive_synthetic_features
from tests.conftest import EVENT_CODE, submit_song_request

BASE = f"/api/v1/events/{EVENT_CODE}"


def make_request(track: str, status: str = "pending", wait_minutes=None, votes: int = 0, **extra):
    submitted = datetime(2026, 10, 19, 21, 0, tzinfo=timezone.utc)
    return SongRequestRecord(
        id=f"req_{track}_{status}",
        event_code=EVENT_CODE,
        guest_id="g1",
        track_name=track,
        artist_name="Band",
        status=status,
        vote_count=votes,
        submitted_at=submitted,
        played_at=submitted + timedelta(minutes=wait_minutes) if wait_minutes is not None else None,
        **extra,
    )


def test_average_wait_over_played_only():
    summary = summarize_requests([
        make_request("A", "played", wait_minutes=10),
        make_request("B", "played", wait_minutes=15),
        make_request("C", "queued"),
    ])
    assert summary.avg_wait_time_minutes == 12.5
    assert summary.status_breakdown["played"] == 2
    assert summary.status_breakdown["queued"] == 1
    assert summary.status_breakdown["rejected"] == 0


def test_average_wait_rounded_to_one_decimal():
    summary = summarize_requests([
        make_request("A", "played", wait_minutes=1),
        make_request("B", "played", wait_minutes=1),
        make_request("C", "played", wait_minutes=2),
    ])
    assert summary.avg_wait_time_minutes == 1.3


def test_naive_and_aware_timestamps_mix():
    request = make_request("A", "played", wait_minutes=5)
    request.submitted_at = request.submitted_at.replace(tzinfo=None)
    assert summarize_requests([request]).avg_wait_time_minutes == 5.0


def test_top_tracks_by_count_then_votes():
    summary = summarize_requests([
        make_request("Solo", votes=9),
        make_request("Twice", votes=1),
        make_request("Twice", status="accepted", votes=0),
        make_request("Also Twice", votes=3),
        make_request("Also Twice", status="accepted", votes=0),
    ])
    assert [(t.track_name, t.count, t.votes) for t in summary.top_requested_tracks] == [
        ("Also Twice", 2, 3),
        ("Twice", 2, 1),
        ("Solo", 1, 9),
    ]


def test_empty_event():
    summary = summarize_requests([])
    assert summary.total_requests == 0
    assert summary.avg_wait_time_minutes == 0
    assert summary.top_requested_tracks == []
    assert summary.genre_distribution == {}


@pytest.mark.asyncio
async def test_analytics_endpoint(client: AsyncClient, test_event):
    first = (await submit_song_request(client, "g1", "Song A", "X")).json()["request"]
    second = (await submit_song_request(client, "g2", "Song B", "Y")).json()["request"]
    await client.post(f"{BASE}/requests/{first['id']}/vote", json={"guestId": "h1", "voteType": "upvote"})
    await client.post(f"{BASE}/requests/{second['id']}/vote", json={"guestId": "h1", "voteType": "downvote"})
    await client.put(f"{BASE}/requests/{first['id']}", json={"status": "played"})

    response = await client.get(f"{BASE}/request-analytics")
    assert response.status_code == 200
    analytics = response.json()["analytics"]

    assert analytics["totalRequests"] == 2
    assert analytics["statusBreakdown"]["played"] == 1
    assert analytics["statusBreakdown"]["pending"] == 1
    assert analytics["totalUpvotes"] == 1
    assert analytics["totalDownvotes"] == 1
    assert analytics["avgWaitTimeMinutes"] is not None
    assert analytics["topRequestedTracks"][0]["trackName"] == "Song A"

    expected = {}
    for track, artist in (("Song A", "X"), ("Song B", "Y")):
        for genre in derive_synthetic_features(track, artist).genre:
            expected[genre] = expected.get(genre, 0) + 1
    assert analytics["genreDistribution"] == expected
