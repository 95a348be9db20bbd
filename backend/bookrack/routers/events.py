"""
Engagement event endpoints for client-side events.
"""
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from typing import Optional
import logging

from bookrack.database import get_db
from bookrack.core.auth import get_optional_user_id
from bookrack.models import EngagementEventType
from bookrack.schemas.engagement import EngagementEventCreate, ImpressionBatchRequest
from bookrack.services.engagement_service import record_engagement, record_engagement_best_effort

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/events", tags=["events"])


@router.post("/engagement", status_code=status.HTTP_204_NO_CONTENT)
def log_engagement(
    payload: EngagementEventCreate,
    user_id: Optional[int] = Depends(get_optional_user_id),
    db: Session = Depends(get_db),
):
    """
    Record a hover, card click, referral click, view or impression for a book.

    Authentication is optional - if the user is known, we log their user_id.
    """
    event = record_engagement(
        db,
        book_id=payload.book_id,
        event_type=payload.event_type,
        user_id=user_id,
        source=payload.source,
    )
    if event is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Book not found",
        )
    db.commit()
    return None


@router.post("/impressions", status_code=status.HTTP_204_NO_CONTENT)
def log_impressions(
    payload: ImpressionBatchRequest,
    user_id: Optional[int] = Depends(get_optional_user_id),
):
    """
    Record impressions for a batch of rendered books.

    Uses best-effort logging that never breaks the request path; unknown book
    ids are skipped.
    """
    recorded = 0
    for book_id in dict.fromkeys(payload.book_ids):
        if record_engagement_best_effort(
            book_id,
            EngagementEventType.IMPRESSION,
            user_id=user_id,
            source=payload.source,
        ):
            recorded += 1

    logger.debug(f"Recorded {recorded} of {len(payload.book_ids)} impressions")
    return None
