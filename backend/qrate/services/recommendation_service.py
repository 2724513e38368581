"""
Recommendation scorer: picks the best next track from the live request queue.

    compatibility = clamp(100 - 0.5 * |Δbpm| - 0.3 * |Δenergy|, 0, 100)
    total         = compatibility + min(vote_count * 5, 20)

Candidates are scored on features derived from their names (see
track_features). The current track uses its stored metadata where present,
so a host-corrected tempo steers the pick. With no current track every
candidate is fully compatible and votes decide.
"""

from typing import Optional

from pydantic import ValidationError

from qrate.core.logging import get_logger
from qrate.core.metrics import recommendation_latency
from qrate.schemas.request import NextTrack, SongRequestRecord, TrackFeatures
from qrate.services.interfaces.store import Entity, Store
from qrate.services.request_service import sort_requests
from qrate.services.track_features import derive_synthetic_features

logger = get_logger(__name__)

CANDIDATE_STATUSES = ("pending", "accepted")
VOTE_BONUS = 5
MAX_VOTE_BONUS = 20
PERFECT_MATCH_THRESHOLD = 80
SIMILAR_TEMPO_BPM = 5
DEFAULT_REASON = "Good fit for current vibe"


def features_for(request: SongRequestRecord) -> TrackFeatures:
    """Stored metadata wins over derived features, field by field."""
    derived = derive_synthetic_features(request.track_name, request.artist_name)
    merged = derived.model_dump()
    for field in merged:
        if request.track_metadata.get(field) is not None:
            merged[field] = request.track_metadata[field]
    try:
        return TrackFeatures.model_validate(merged)
    except ValidationError:
        logger.warning("track_metadata_invalid", request_id=request.id)
        return derived


def compatibility_score(current: Optional[TrackFeatures], candidate: TrackFeatures) -> float:
    if current is None:
        return 100.0
    score = 100 - abs(current.bpm - candidate.bpm) * 0.5 - abs(current.energy - candidate.energy) * 0.3
    return max(0.0, min(100.0, score))


def score_candidate(current: Optional[TrackFeatures], request: SongRequestRecord) -> NextTrack:
    analysis = derive_synthetic_features(request.track_name, request.artist_name)
    compatibility = compatibility_score(current, analysis)
    total = compatibility + min(request.vote_count * VOTE_BONUS, MAX_VOTE_BONUS)

    reasons = []
    if compatibility >= PERFECT_MATCH_THRESHOLD:
        reasons.append("Perfect musical match")
    if request.vote_count > 0:
        reasons.append(f"{request.vote_count} crowd votes")
    if current is not None and abs(current.bpm - analysis.bpm) <= SIMILAR_TEMPO_BPM:
        reasons.append("Similar tempo")

    return NextTrack(
        request_id=request.id,
        track_name=request.track_name,
        artist_name=request.artist_name,
        vote_count=request.vote_count,
        compatibility_score=compatibility,
        total_score=total,
        reason=", ".join(reasons) or DEFAULT_REASON,
        reasons=reasons,
        analysis=analysis,
    )


async def best_next_track(
    store: Store,
    event_code: str,
    current_track_id: Optional[str] = None,
) -> Optional[NextTrack]:
    """
    Highest-scoring pending or accepted request, or None when there is none.

    The current track stays in the pool if it is still pending or accepted.
    An unknown current track id is treated as nothing playing.
    """
    with recommendation_latency.time():
        records = await store.query(Entity.REQUEST, event_code)
        requests = sort_requests([SongRequestRecord.model_validate(r) for r in records])

        current = None
        if current_track_id:
            playing = next((r for r in requests if r.id == current_track_id), None)
            if playing is not None:
                current = features_for(playing)

        candidates = [r for r in requests if r.status in CANDIDATE_STATUSES]
        if not candidates:
            return None

        # sorted() is stable, so queue order breaks score ties
        best = sorted(
            (score_candidate(current, r) for r in candidates),
            key=lambda s: s.total_score,
            reverse=True,
        )[0]

    logger.info(
        "best_next_selected",
        event_code=event_code,
        request_id=best.request_id,
        total_score=round(best.total_score, 2),
        candidates=len(candidates),
    )
    return best
