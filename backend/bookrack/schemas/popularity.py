from pydantic import BaseModel
from typing import Optional
from datetime import datetime


class PopularBookResponse(BaseModel):
    book_id: int
    title: str
    author_id: int
    score: float
    popular_rank: int
    first_ranked_at: datetime
    calculated_at: datetime


class RecomputeResponse(BaseModel):
    success: bool
    ranked_books: int
    window_days: int
    message: Optional[str] = None
