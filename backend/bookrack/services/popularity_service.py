"""
Popularity scoring.

Each book's popularity score is the weighted count of its engagement events
over a trailing window. Weights are fixed:

    view / impression       0.0  (not counted)
    hover / detail expand   0.25
    card click              0.5
    referral link click     1.0

A run rewrites the whole popular_books table in a single transaction, so
readers see either the previous ranking or the new one, never a mix. A run
that fails is rolled back and the previous ranking stays in place.
"""
import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from bookrack.models import Book, EngagementEvent, EngagementEventType, PopularBook
from bookrack.utils.timing import now_ms

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_DAYS = 30

EVENT_WEIGHTS: dict[EngagementEventType, float] = {
    EngagementEventType.IMPRESSION: 0.0,
    EngagementEventType.VIEW: 0.0,
    EngagementEventType.HOVER: 0.25,
    EngagementEventType.DETAIL_EXPAND: 0.25,
    EngagementEventType.CARD_CLICK: 0.5,
    EngagementEventType.REFERRAL_CLICK: 1.0,
}

WEIGHTED_EVENT_TYPES = [event_type for event_type, weight in EVENT_WEIGHTS.items() if weight > 0]


def event_weight(event_type: EngagementEventType) -> float:
    return EVENT_WEIGHTS[EngagementEventType(event_type)]


def compute_popularity_scores(
    db: Session,
    window_days: int = DEFAULT_WINDOW_DAYS,
    now: Optional[datetime] = None,
) -> dict[int, float]:
    """
    Sum event weights per book over the trailing window.

    Only books with a positive score are returned.
    """
    if window_days < 1:
        raise ValueError(f"window_days must be >= 1, got {window_days}")

    now = now or datetime.utcnow()
    cutoff = now - timedelta(days=window_days)

    rows = (
        db.query(
            EngagementEvent.book_id,
            EngagementEvent.event_type,
            func.count(EngagementEvent.id).label("event_count"),
        )
        .filter(
            EngagementEvent.created_at >= cutoff,
            EngagementEvent.created_at <= now,
            EngagementEvent.event_type.in_(WEIGHTED_EVENT_TYPES),
        )
        .group_by(EngagementEvent.book_id, EngagementEvent.event_type)
        .all()
    )

    scores: dict[int, float] = {}
    for book_id, event_type, event_count in rows:
        scores[book_id] = scores.get(book_id, 0.0) + event_count * event_weight(event_type)

    return {book_id: score for book_id, score in scores.items() if score > 0}


def recompute_scores(
    db: Session,
    window_days: int = DEFAULT_WINDOW_DAYS,
    now: Optional[datetime] = None,
) -> int:
    """
    Recompute every book's popularity score and replace the stored ranking.

    Ranking is by score descending, ties broken by book id. Books that were
    already ranked keep their first_ranked_at. Commits once; on any error the
    session is rolled back and the error is re-raised.

    Returns:
        Number of books in the new ranking
    """
    started = now_ms()
    now = now or datetime.utcnow()

    try:
        scores = compute_popularity_scores(db, window_days=window_days, now=now)

        # Events can reference books that have since been removed
        existing_ids = set()
        if scores:
            existing_ids = {
                row.id for row in db.query(Book.id).filter(Book.id.in_(list(scores))).all()
            }

        previous = {row.book_id: row for row in db.query(PopularBook).all()}

        ranked = sorted(
            ((book_id, score) for book_id, score in scores.items() if book_id in existing_ids),
            key=lambda item: (-item[1], item[0]),
        )
        ranked_ids = {book_id for book_id, _ in ranked}

        for book_id, row in previous.items():
            if book_id not in ranked_ids:
                db.delete(row)

        for position, (book_id, score) in enumerate(ranked, start=1):
            row = previous.get(book_id)
            if row is None:
                row = PopularBook(book_id=book_id, first_ranked_at=now)
                db.add(row)
            row.score = score
            row.rank = position
            row.window_days = window_days
            row.calculated_at = now

        db.commit()
    except Exception:
        db.rollback()
        logger.exception(f"Popularity recompute failed (window_days={window_days}); previous ranking kept")
        raise

    logger.info(
        f"Popularity recompute ranked {len(ranked)} books "
        f"(window_days={window_days}) in {now_ms() - started:.2f}ms"
    )
    return len(ranked)


def get_popularity_score(db: Session, book_id: int) -> float:
    """Current popularity score of a book; 0.0 when it is not ranked."""
    row = db.query(PopularBook.score).filter(PopularBook.book_id == book_id).first()
    return row.score if row else 0.0


def get_popular_books(db: Session, limit: int = 10) -> list[tuple[PopularBook, Book]]:
    """Top ranked books with their ranking rows, best first."""
    return (
        db.query(PopularBook, Book)
        .join(Book, Book.id == PopularBook.book_id)
        .order_by(PopularBook.rank)
        .limit(limit)
        .all()
    )
