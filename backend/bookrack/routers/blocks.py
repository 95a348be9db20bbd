"""
Content block management for the current user.
"""
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session
from typing import Optional, List
import logging

from bookrack.database import get_db
from bookrack.core.auth import get_current_user_id
from bookrack.models import BlockType
from bookrack.schemas.block import BlockCreate, BlockResponse
from bookrack.services import block_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/blocks", tags=["blocks"])


@router.get("", response_model=List[BlockResponse])
def get_blocks(
    block_type: Optional[BlockType] = Query(None, description="Only blocks of this type"),
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """List the current user's blocks, oldest first."""
    return block_service.list_blocks(db, user_id, block_type=block_type)


@router.post("", response_model=BlockResponse, status_code=status.HTTP_201_CREATED)
def create_block(
    payload: BlockCreate,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Block an author, book, publisher or taxonomy. Re-blocking is a no-op."""
    return block_service.add_block(
        db,
        user_id=user_id,
        block_type=payload.block_type,
        block_id=payload.block_id,
        block_name=payload.block_name,
    )


@router.delete("/{block_type}/{block_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_block(
    block_type: BlockType,
    block_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Remove one of the current user's blocks."""
    if not block_service.remove_block(db, user_id, block_type, block_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Block not found",
        )
    return None
