"""
Engagement event recording.

Events go to the append-only engagement_events log (the popularity scorer's
input) and bump the book's impression / click-through counters.
"""
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import OperationalError, ProgrammingError
from sqlalchemy.orm import Session

from bookrack.database import SessionLocal
from bookrack.models import Book, EngagementEvent, EngagementEventType
from bookrack.services.popularity_service import event_weight

logger = logging.getLogger(__name__)

IMPRESSION_EVENT_TYPES = {EngagementEventType.IMPRESSION, EngagementEventType.VIEW}
CLICK_THROUGH_EVENT_TYPES = {EngagementEventType.CARD_CLICK, EngagementEventType.REFERRAL_CLICK}


def record_engagement(
    db: Session,
    book_id: int,
    event_type: EngagementEventType,
    user_id: Optional[int] = None,
    source: Optional[str] = None,
    occurred_at: Optional[datetime] = None,
) -> Optional[EngagementEvent]:
    """
    Record an engagement event for a book.

    Returns None if the book does not exist.

    Note: This function does NOT commit the transaction. The caller should commit.
    It does flush() to ensure the event is persisted within the caller's transaction.
    """
    event_type = EngagementEventType(event_type)
    occurred_at = occurred_at or datetime.utcnow()

    book = db.query(Book).filter(Book.id == book_id).first()
    if book is None:
        logger.debug(f"Engagement for unknown book ignored: book_id={book_id}, type={event_type.value}")
        return None

    event = EngagementEvent(
        book_id=book_id,
        user_id=user_id,
        event_type=event_type,
        weight=event_weight(event_type),
        source=source,
        created_at=occurred_at,
    )
    db.add(event)

    if event_type in IMPRESSION_EVENT_TYPES:
        book.impression_count = (book.impression_count or 0) + 1
        book.last_impression_at = occurred_at
    elif event_type in CLICK_THROUGH_EVENT_TYPES:
        book.click_through_count = (book.click_through_count or 0) + 1
        book.last_click_through_at = occurred_at

    db.flush()
    logger.debug(
        "engagement_recorded",
        extra={
            "book_id": book_id,
            "user_id": user_id,
            "event_type": event_type.value,
            "source": source,
        },
    )
    return event


def record_engagement_best_effort(
    book_id: int,
    event_type: EngagementEventType,
    user_id: Optional[int] = None,
    source: Optional[str] = None,
) -> bool:
    """
    Record an engagement event in its own session and commit it.

    Tracking must never break the request that triggered it, so failures are
    logged as warnings and reported as False.
    """
    db = None
    try:
        db = SessionLocal()
        event = record_engagement(db, book_id, event_type, user_id=user_id, source=source)
        db.commit()
        return event is not None
    except (OperationalError, ProgrammingError) as e:
        logger.warning(
            "Failed to record engagement (database error): book_id=%s, event_type=%s, error=%s",
            book_id,
            event_type,
            str(e),
            exc_info=True,
        )
        if db:
            db.rollback()
        return False
    except Exception as e:
        logger.warning(
            "Failed to record engagement: book_id=%s, event_type=%s, error=%s",
            book_id,
            event_type,
            str(e),
            exc_info=True,
        )
        if db:
            db.rollback()
        return False
    finally:
        if db:
            db.close()
