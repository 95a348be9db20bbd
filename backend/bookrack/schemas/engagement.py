from pydantic import BaseModel, Field
from typing import Optional, List
from bookrack.models import EngagementEventType


class EngagementEventCreate(BaseModel):
    """Request body for a single engagement event."""
    book_id: int
    event_type: EngagementEventType
    source: Optional[str] = None


class ImpressionBatchRequest(BaseModel):
    """Books rendered together (e.g. one carousel) reported in one call."""
    book_ids: List[int] = Field(..., min_length=1, max_length=100)
    source: Optional[str] = None
