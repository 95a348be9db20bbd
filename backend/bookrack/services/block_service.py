"""
User content blocks: per-user exclusion rules against authors, books,
publishers and taxonomies.
"""
import logging
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from bookrack.models import BlockType, UserBlock

logger = logging.getLogger(__name__)


@dataclass
class BlockSets:
    """A user's blocks partitioned by block type."""
    book_ids: set[int] = field(default_factory=set)
    author_ids: set[int] = field(default_factory=set)
    publisher_ids: set[int] = field(default_factory=set)
    taxonomy_ids: set[int] = field(default_factory=set)

    def is_empty(self) -> bool:
        return not (self.book_ids or self.author_ids or self.publisher_ids or self.taxonomy_ids)

    def total(self) -> int:
        return len(self.book_ids) + len(self.author_ids) + len(self.publisher_ids) + len(self.taxonomy_ids)


def list_blocks(
    db: Session,
    user_id: int,
    block_type: Optional[BlockType] = None,
) -> list[UserBlock]:
    query = db.query(UserBlock).filter(UserBlock.user_id == user_id)
    if block_type is not None:
        query = query.filter(UserBlock.block_type == block_type)
    return query.order_by(UserBlock.created_at, UserBlock.id).all()


def get_user_blocks(db: Session, user_id: int) -> BlockSets:
    """Load a user's blocks. An unknown user simply has no blocks."""
    blocks = BlockSets()
    rows = (
        db.query(UserBlock.block_type, UserBlock.block_id)
        .filter(UserBlock.user_id == user_id)
        .all()
    )
    for block_type, block_id in rows:
        if block_type == BlockType.BOOK:
            blocks.book_ids.add(block_id)
        elif block_type == BlockType.AUTHOR:
            blocks.author_ids.add(block_id)
        elif block_type == BlockType.PUBLISHER:
            blocks.publisher_ids.add(block_id)
        elif block_type == BlockType.TAXONOMY:
            blocks.taxonomy_ids.add(block_id)
    return blocks


def add_block(
    db: Session,
    user_id: int,
    block_type: BlockType,
    block_id: int,
    block_name: str,
) -> UserBlock:
    """
    Add a block for a user.

    Adding a block that already exists returns the existing row; the
    (user_id, block_type, block_id) triple is unique.
    """
    existing = db.query(UserBlock).filter(
        UserBlock.user_id == user_id,
        UserBlock.block_type == block_type,
        UserBlock.block_id == block_id,
    ).first()
    if existing:
        logger.debug(f"Duplicate block ignored: user_id={user_id}, type={block_type}, id={block_id}")
        return existing

    block = UserBlock(
        user_id=user_id,
        block_type=block_type,
        block_id=block_id,
        block_name=block_name,
    )
    db.add(block)
    try:
        db.commit()
    except IntegrityError:
        # Inserted concurrently between the check and our insert
        db.rollback()
        logger.debug(f"Duplicate block (race condition): user_id={user_id}, type={block_type}, id={block_id}")
        return db.query(UserBlock).filter(
            UserBlock.user_id == user_id,
            UserBlock.block_type == block_type,
            UserBlock.block_id == block_id,
        ).one()

    db.refresh(block)
    logger.info(f"Block added: user_id={user_id}, type={block_type.value}, id={block_id}")
    return block


def remove_block(db: Session, user_id: int, block_type: BlockType, block_id: int) -> bool:
    deleted = db.query(UserBlock).filter(
        UserBlock.user_id == user_id,
        UserBlock.block_type == block_type,
        UserBlock.block_id == block_id,
    ).delete(synchronize_session=False)
    db.commit()
    return deleted > 0
