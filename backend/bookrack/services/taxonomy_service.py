"""
Taxonomy store: reads over genres/subgenres/themes/tropes and the book-to-taxonomy
assignments, plus the importance weight derived from an assignment's rank.

Soft-deleted taxonomies are filtered here with Taxonomy.not_deleted(); callers
never re-check deleted_at themselves.
"""
import logging
import math
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from bookrack.models import BookTaxonomyAssignment, Taxonomy, TaxonomyType

logger = logging.getLogger(__name__)


def compute_importance(rank: int) -> float:
    """
    Importance of a taxonomy for a book given its 1-based rank among the book's tags.

    importance(1) == 1 and importance(rank) == 1 / (1 + ln(rank)) afterwards, so the
    value is always in (0, 1] and strictly decreasing in rank.
    """
    if rank < 1:
        raise ValueError(f"rank must be >= 1, got {rank}")
    if rank == 1:
        return 1.0
    return 1.0 / (1.0 + math.log(rank))


def list_taxonomies(
    db: Session,
    taxonomy_type: Optional[TaxonomyType] = None,
    parent_id: Optional[int] = None,
) -> list[Taxonomy]:
    query = db.query(Taxonomy).filter(Taxonomy.not_deleted())

    if taxonomy_type is not None:
        query = query.filter(Taxonomy.type == taxonomy_type)

    if parent_id is not None:
        query = query.filter(Taxonomy.parent_id == parent_id)
    elif taxonomy_type == TaxonomyType.SUBGENRE:
        # Orphaned subgenres are not shown
        query = query.filter(Taxonomy.parent_id.isnot(None))

    return query.order_by(Taxonomy.name, Taxonomy.id).all()


def get_taxonomy(db: Session, taxonomy_id: int) -> Optional[Taxonomy]:
    return (
        db.query(Taxonomy)
        .filter(Taxonomy.id == taxonomy_id, Taxonomy.not_deleted())
        .first()
    )


def create_taxonomy(
    db: Session,
    name: str,
    taxonomy_type: TaxonomyType,
    parent_id: Optional[int] = None,
    description: Optional[str] = None,
) -> Taxonomy:
    """Create a taxonomy. Subgenres need a parent; genres cannot have one."""
    if taxonomy_type == TaxonomyType.SUBGENRE and parent_id is None:
        raise ValueError("subgenre taxonomies require a parent_id")
    if taxonomy_type == TaxonomyType.GENRE and parent_id is not None:
        raise ValueError("top-level genres cannot have a parent_id")

    taxonomy = Taxonomy(
        name=name,
        type=taxonomy_type,
        parent_id=parent_id,
        description=description,
    )
    db.add(taxonomy)
    db.commit()
    db.refresh(taxonomy)
    return taxonomy


def soft_delete_taxonomy(db: Session, taxonomy_id: int) -> bool:
    """Mark a taxonomy deleted. The row is kept for audit."""
    taxonomy = get_taxonomy(db, taxonomy_id)
    if taxonomy is None:
        return False
    taxonomy.deleted_at = datetime.utcnow()
    db.commit()
    logger.info(f"Soft-deleted taxonomy {taxonomy_id} ({taxonomy.name})")
    return True


def assign_book_taxonomies(
    db: Session,
    book_id: int,
    taxonomy_ids: Iterable[int],
) -> list[BookTaxonomyAssignment]:
    """
    Replace a book's taxonomy assignments.

    Ranks are numbered from 1 in the given order, separately for each taxonomy
    type, and each row stores the importance computed from its rank. Unknown or
    soft-deleted taxonomy ids are skipped.
    """
    ordered_ids = list(dict.fromkeys(taxonomy_ids))
    taxonomies = {
        t.id: t
        for t in db.query(Taxonomy)
        .filter(Taxonomy.id.in_(ordered_ids), Taxonomy.not_deleted())
        .all()
    } if ordered_ids else {}

    skipped = [tid for tid in ordered_ids if tid not in taxonomies]
    if skipped:
        logger.warning(f"Skipping unknown or deleted taxonomies for book {book_id}: {skipped}")

    db.query(BookTaxonomyAssignment).filter(
        BookTaxonomyAssignment.book_id == book_id
    ).delete(synchronize_session=False)

    next_rank_by_type: dict[TaxonomyType, int] = {}
    assignments = []
    for taxonomy_id in ordered_ids:
        taxonomy = taxonomies.get(taxonomy_id)
        if taxonomy is None:
            continue
        rank = next_rank_by_type.get(taxonomy.type, 1)
        next_rank_by_type[taxonomy.type] = rank + 1
        assignment = BookTaxonomyAssignment(
            book_id=book_id,
            taxonomy_id=taxonomy_id,
            rank=rank,
            importance=compute_importance(rank),
        )
        db.add(assignment)
        assignments.append(assignment)

    db.commit()
    return assignments


def rerank_assignment(
    db: Session,
    assignment: BookTaxonomyAssignment,
    rank: int,
) -> BookTaxonomyAssignment:
    """Change an assignment's rank; importance is recomputed in the same write."""
    assignment.importance = compute_importance(rank)
    assignment.rank = rank
    db.commit()
    db.refresh(assignment)
    return assignment
