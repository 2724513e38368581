"""
Request analytics: append-only metric rows and the per-event summary.

Metric rows are best-effort. A failed write is logged and dropped; it never
fails the request it describes.
"""

from collections import Counter, defaultdict
from datetime import datetime, timezone
from typing import Any, Optional
from uuid import uuid4

from qrate.core.logging import get_logger
from qrate.schemas.analytics import RequestAnalytics, TrackRequestCount
from qrate.schemas.request import SongRequestRecord
from qrate.services.interfaces.store import Entity, Store, StoreError

logger = get_logger(__name__)

TOP_TRACKS_LIMIT = 10
STATUSES = ("pending", "accepted", "rejected", "queued", "played")


async def record_metric(
    store: Store,
    event_code: str,
    metric_name: str,
    details: Optional[dict[str, Any]] = None,
    value: float = 1,
) -> None:
    metric_id = f"metric_{uuid4().hex[:16]}"
    try:
        await store.insert(Entity.METRIC, event_code, metric_id, {
            "id": metric_id,
            "metric_name": metric_name,
            "metric_value": value,
            "details": details or {},
            "recorded_at": datetime.now(timezone.utc),
        })
    except StoreError as e:
        logger.warning("request_metric_dropped", event_code=event_code, metric=metric_name, error=str(e))


def _as_utc(moment: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is written in UTC
    return moment if moment.tzinfo else moment.replace(tzinfo=timezone.utc)


def summarize_requests(requests: list[SongRequestRecord]) -> RequestAnalytics:
    status_breakdown = {s: 0 for s in STATUSES}
    status_breakdown.update(Counter(r.status for r in requests))

    waits = [
        (_as_utc(r.played_at) - _as_utc(r.submitted_at)).total_seconds() / 60
        for r in requests
        if r.status == "played" and r.played_at is not None
    ]

    tracks: dict[tuple[str, str], dict] = defaultdict(lambda: {"count": 0, "votes": 0})
    for r in requests:
        entry = tracks[(r.track_name, r.artist_name)]
        entry["count"] += 1
        entry["votes"] += r.vote_count
    top_tracks = sorted(tracks.items(), key=lambda item: (-item[1]["count"], -item[1]["votes"]))

    genres: Counter = Counter()
    for r in requests:
        genre = r.track_metadata.get("genre") or []
        genres.update(genre if isinstance(genre, list) else [genre])

    return RequestAnalytics(
        total_requests=len(requests),
        status_breakdown=status_breakdown,
        total_upvotes=sum(r.vote_count for r in requests),
        total_downvotes=sum(r.downvote_count for r in requests),
        avg_wait_time_minutes=round(sum(waits) / len(waits), 1) if waits else 0.0,
        top_requested_tracks=[
            TrackRequestCount(track_name=track, artist_name=artist, **counts)
            for (track, artist), counts in top_tracks[:TOP_TRACKS_LIMIT]
        ],
        genre_distribution=dict(genres.most_common()),
    )


async def request_analytics(store: Store, event_code: str) -> RequestAnalytics:
    records = await store.query(Entity.REQUEST, event_code)
    return summarize_requests([SongRequestRecord.model_validate(r) for r in records])
