from pydantic import BaseModel, Field
from datetime import datetime
from bookrack.models import BlockType


class BlockCreate(BaseModel):
    block_type: BlockType
    block_id: int = Field(..., ge=1)
    block_name: str = Field(..., min_length=1)


class BlockResponse(BaseModel):
    id: int
    user_id: int
    block_type: BlockType
    block_id: int
    block_name: str
    created_at: datetime

    class Config:
        from_attributes = True
