"""
Voting: one live vote per guest per request.

Repeating a vote is a no-op; voting the other way moves the guest's vote
from one tally to the other. The vote row and both tallies change in one
store transaction, so vote_count and downvote_count always equal the number
of live upvotes and downvotes.
"""

from fastapi import HTTPException, status

from qrate.core.logging import get_logger
from qrate.core.metrics import record_vote
from qrate.models.song_request import VOTE_TYPES
from qrate.schemas.request import VoteCast, VoteTally
from qrate.services.interfaces.store import ConcurrentUpdateError, Store
from qrate.services.settings_service import get_request_settings

logger = get_logger(__name__)


async def cast_vote(store: Store, event_code: str, request_id: str, data: VoteCast) -> VoteTally:
    guest_id = (data.guest_id or "").strip()
    if not guest_id or data.vote_type not in VOTE_TYPES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Guest ID and vote type (upvote/downvote) are required",
        )

    settings = await get_request_settings(store, event_code)
    if not settings.voting_enabled:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Voting is disabled for this event",
        )

    try:
        result = await store.apply_vote(event_code, request_id, guest_id, data.vote_type)
    except ConcurrentUpdateError:
        logger.warning("vote_conflict", event_code=event_code, request_id=request_id, guest_id=guest_id)
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Vote conflicted with a concurrent update, please retry",
        )

    if result is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Request not found",
        )

    record_vote(data.vote_type, result["outcome"])
    logger.info(
        "vote_recorded",
        event_code=event_code,
        request_id=request_id,
        guest_id=guest_id,
        vote_type=data.vote_type,
        outcome=result["outcome"],
    )
    return VoteTally.model_validate(result)
