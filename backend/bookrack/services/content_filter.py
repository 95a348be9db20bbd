"""
Content filtering and backfill for discovery lists.

Given candidate book ids, a user's blocks and a target count, produce the list
of book ids to show:

- candidates are ordered by ascending book id so repeated calls (and pages)
  are deterministic;
- a book blocked directly, by author, by taxonomy, or by an active contract
  between its author and a blocked publisher is never returned;
- when blocking leaves fewer than target_count books, more books tagged with
  the same taxonomies are pulled in, in bounded passes, and filtered with the
  same rules.

Under-fill is not an error. Storage errors are not caught here: a failed query
fails the whole call rather than returning a partially filtered list.
"""
import logging
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from bookrack.core.config import settings
from bookrack.models import AuthorshipContract, Book, BookTaxonomyAssignment
from bookrack.services.block_service import BlockSets, get_user_blocks

logger = logging.getLogger(__name__)


def find_blocked_books(
    db: Session,
    book_ids: list[int],
    blocks: BlockSets,
    now: Optional[datetime] = None,
) -> set[int]:
    """
    Return the subset of book_ids excluded by any of the user's blocks.

    Dimensions are checked in a fixed order: taxonomy, book, author, publisher.
    A book matched by several rules is simply in the set once.
    """
    if not book_ids or blocks.is_empty():
        return set()

    now = now or datetime.utcnow()
    blocked: set[int] = set()

    if blocks.taxonomy_ids:
        # Blocks on a taxonomy hold even if the taxonomy was later soft-deleted
        rows = (
            db.query(BookTaxonomyAssignment.book_id)
            .filter(
                BookTaxonomyAssignment.taxonomy_id.in_(blocks.taxonomy_ids),
                BookTaxonomyAssignment.book_id.in_(book_ids),
            )
            .distinct()
            .all()
        )
        by_taxonomy = {row.book_id for row in rows}
        if by_taxonomy:
            logger.debug(f"Filtering out {len(by_taxonomy)} books with blocked taxonomies")
        blocked |= by_taxonomy

    if blocks.book_ids:
        direct = blocks.book_ids.intersection(book_ids)
        if direct:
            logger.debug(f"Filtering out {len(direct)} directly blocked books")
        blocked |= direct

    if blocks.author_ids:
        rows = (
            db.query(Book.id)
            .filter(
                Book.id.in_(book_ids),
                Book.author_id.in_(blocks.author_ids),
            )
            .all()
        )
        by_author = {row.id for row in rows}
        if by_author:
            logger.debug(f"Filtering out {len(by_author)} books by blocked authors")
        blocked |= by_author

    if blocks.publisher_ids:
        rows = (
            db.query(Book.id)
            .join(AuthorshipContract, AuthorshipContract.author_id == Book.author_id)
            .filter(
                Book.id.in_(book_ids),
                AuthorshipContract.publisher_id.in_(blocks.publisher_ids),
                AuthorshipContract.active_at(now),
            )
            .distinct()
            .all()
        )
        by_publisher = {row.id for row in rows}
        if by_publisher:
            logger.debug(f"Filtering out {len(by_publisher)} books from blocked publishers")
        blocked |= by_publisher

    return blocked


def _fetch_backfill_pool(
    db: Session,
    taxonomy_ids: list[int],
    exclude: set[int],
    after_id: Optional[int],
    limit: int,
) -> list[int]:
    """Next batch of books tagged with the taxonomies, ascending by id, past after_id."""
    query = (
        db.query(BookTaxonomyAssignment.book_id)
        .filter(BookTaxonomyAssignment.taxonomy_id.in_(taxonomy_ids))
    )
    if exclude:
        query = query.filter(BookTaxonomyAssignment.book_id.notin_(exclude))
    if after_id is not None:
        query = query.filter(BookTaxonomyAssignment.book_id > after_id)
    rows = (
        query.distinct()
        .order_by(BookTaxonomyAssignment.book_id)
        .limit(limit)
        .all()
    )
    return [row.book_id for row in rows]


def filter_and_fill(
    db: Session,
    candidate_ids: Iterable[int],
    user_id: Optional[int],
    target_count: int,
    taxonomy_ids: Optional[list[int]] = None,
    batch_size: Optional[int] = None,
    max_passes: Optional[int] = None,
    now: Optional[datetime] = None,
) -> list[int]:
    """
    Filter candidate_ids against the user's blocks and backfill up to target_count.

    Args:
        db: Database session
        candidate_ids: Candidate book ids (any iterable; duplicates are ignored)
        user_id: Requesting user, or None for anonymous requests (no filtering)
        target_count: Maximum number of ids to return
        taxonomy_ids: Taxonomies the candidates came from; backfill draws from
            books tagged with these. Without them no backfill is attempted.
        batch_size: Books fetched per backfill pass (default: settings.BACKFILL_BATCH_SIZE)
        max_passes: Optional cap on backfill passes (default: settings.BACKFILL_MAX_PASSES,
            which is unset, so paging continues until the pool is exhausted)
        now: Reference time for contract activity (default: utcnow)

    Returns:
        At most target_count book ids: surviving candidates in ascending id order,
        followed by backfilled books in ascending id order.
    """
    if target_count <= 0:
        return []

    ordered = sorted(set(candidate_ids))

    if user_id is None:
        return ordered[:target_count]

    blocks = get_user_blocks(db, user_id)
    if blocks.is_empty():
        return ordered[:target_count]

    logger.debug(f"User {user_id} has {blocks.total()} blocks")

    now = now or datetime.utcnow()
    blocked = find_blocked_books(db, ordered, blocks, now)
    survivors = [book_id for book_id in ordered if book_id not in blocked]

    if len(survivors) >= target_count:
        return survivors[:target_count]

    if not taxonomy_ids:
        return survivors

    batch_size = batch_size or settings.BACKFILL_BATCH_SIZE
    if max_passes is None:
        max_passes = settings.BACKFILL_MAX_PASSES

    result = list(survivors)
    # Original candidates (blocked or not) are never reconsidered
    exclude = set(ordered)
    cursor: Optional[int] = None
    pass_number = 0

    # The cursor strictly advances, so paging ends at the first short page
    while max_passes is None or pass_number < max_passes:
        pass_number += 1
        shortfall = target_count - len(result)
        pool = _fetch_backfill_pool(db, taxonomy_ids, exclude, cursor, batch_size)
        if not pool:
            break

        cursor = pool[-1]
        pool_blocked = find_blocked_books(db, pool, blocks, now)
        new_survivors = [book_id for book_id in pool if book_id not in pool_blocked]
        result.extend(new_survivors[:shortfall])

        logger.debug(
            f"Backfill pass {pass_number}: pool={len(pool)}, blocked={len(pool_blocked)}, "
            f"added={min(len(new_survivors), shortfall)}"
        )

        if len(result) >= target_count:
            break
        if len(pool) < batch_size:
            # Pool exhausted
            break

    if len(result) < target_count:
        logger.info(
            f"Returning {len(result)} of {target_count} requested books for user {user_id} after filtering"
        )

    return result
