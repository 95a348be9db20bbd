from fastapi import APIRouter, Depends, Query, HTTPException
from sqlalchemy.orm import Session
from typing import Optional, List
import logging
import random

from bookrack.database import get_db
from bookrack.core.auth import require_admin
from bookrack.core.config import settings
from bookrack.schemas.popularity import PopularBookResponse, RecomputeResponse
from bookrack.services.popularity_service import get_popular_books, recompute_scores

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/popular-books", tags=["popular-books"])

RANDOM_POOL_SIZE = 50
RANDOM_PICK_COUNT = 5


@router.get("", response_model=List[PopularBookResponse])
def list_popular_books(
    limit: Optional[int] = Query(None, ge=1, le=100, description="Result size, or the pool size when random=true"),
    randomize: bool = Query(False, alias="random", description="Pick `count` random books from the top `limit`"),
    count: int = Query(RANDOM_PICK_COUNT, ge=1, le=100),
    db: Session = Depends(get_db),
):
    """
    Top books by popularity score from the latest recompute.

    With random=true, `limit` (default 50) is the pool of top books and
    `count` of them are returned in random order, for home page carousels.
    """
    if limit is None:
        limit = RANDOM_POOL_SIZE if randomize else settings.POPULAR_BOOKS_LIMIT

    try:
        rows = get_popular_books(db, limit=limit)
    except Exception:
        logger.exception("Failed to fetch popular books", extra={"limit": limit})
        raise HTTPException(
            status_code=500,
            detail="Failed to retrieve popular books"
        )

    if randomize:
        rows = random.sample(rows, min(count, len(rows)))

    return [
        PopularBookResponse(
            book_id=book.id,
            title=book.title,
            author_id=book.author_id,
            score=popular.score,
            popular_rank=popular.rank,
            first_ranked_at=popular.first_ranked_at,
            calculated_at=popular.calculated_at,
        )
        for popular, book in rows
    ]


@router.post("/calculate", response_model=RecomputeResponse, dependencies=[Depends(require_admin)])
def calculate_popular_books(
    window_days: Optional[int] = Query(None, ge=1, le=365),
    db: Session = Depends(get_db),
):
    """Admin endpoint to trigger a manual popularity recompute."""
    window = window_days or settings.POPULARITY_WINDOW_DAYS
    try:
        ranked = recompute_scores(db, window_days=window)
    except Exception:
        # recompute_scores already rolled back and logged the failure
        raise HTTPException(
            status_code=500,
            detail="Failed to calculate popular books"
        )

    return RecomputeResponse(
        success=True,
        ranked_books=ranked,
        window_days=window,
        message="Popular books calculation completed",
    )
