"""
Genre view resolution: a view aggregates an ordered list of taxonomies and
resolves to every book tagged with at least one of them.

A view that does not exist and a view with no taxonomies both resolve to an
empty result; neither is an error at this layer.
"""
import logging
from typing import Optional

from sqlalchemy.orm import Session

from bookrack.models import BookTaxonomyAssignment, GenreView, Taxonomy, ViewTaxonomy

logger = logging.getLogger(__name__)


def get_view(db: Session, view_id: int) -> Optional[GenreView]:
    return db.query(GenreView).filter(GenreView.id == view_id).first()


def list_views(db: Session, default_only: bool = False) -> list[GenreView]:
    query = db.query(GenreView)
    if default_only:
        query = query.filter(GenreView.is_default.is_(True))
    return query.order_by(GenreView.rank, GenreView.id).all()


def get_view_taxonomy_ids(db: Session, view_id: int) -> list[int]:
    """Taxonomy ids of a view in priority order (rank, then insertion order)."""
    rows = (
        db.query(ViewTaxonomy.taxonomy_id)
        .join(Taxonomy, Taxonomy.id == ViewTaxonomy.taxonomy_id)
        .filter(ViewTaxonomy.view_id == view_id, Taxonomy.not_deleted())
        .order_by(ViewTaxonomy.rank, ViewTaxonomy.id)
        .all()
    )
    # A taxonomy listed twice keeps its first (highest priority) position
    return list(dict.fromkeys(row.taxonomy_id for row in rows))


def get_view_taxonomies(db: Session, view_id: int) -> list[dict]:
    """View taxonomy rows joined with the taxonomy's name and category."""
    rows = (
        db.query(ViewTaxonomy, Taxonomy)
        .join(Taxonomy, Taxonomy.id == ViewTaxonomy.taxonomy_id)
        .filter(ViewTaxonomy.view_id == view_id, Taxonomy.not_deleted())
        .order_by(ViewTaxonomy.rank, ViewTaxonomy.id)
        .all()
    )
    return [
        {
            "id": view_taxonomy.id,
            "view_id": view_taxonomy.view_id,
            "taxonomy_id": view_taxonomy.taxonomy_id,
            "type": view_taxonomy.type,
            "rank": view_taxonomy.rank,
            "name": taxonomy.name,
            "category": taxonomy.type,
        }
        for view_taxonomy, taxonomy in rows
    ]


def get_books_for_taxonomies(db: Session, taxonomy_ids: list[int]) -> set[int]:
    """Union of book ids tagged with any of the given taxonomies."""
    if not taxonomy_ids:
        return set()
    rows = (
        db.query(BookTaxonomyAssignment.book_id)
        .filter(BookTaxonomyAssignment.taxonomy_id.in_(taxonomy_ids))
        .distinct()
        .all()
    )
    return {row.book_id for row in rows}


def resolve_view(db: Session, view_id: int) -> set[int]:
    """Resolve a view to the set of book ids tagged with any of its taxonomies."""
    taxonomy_ids = get_view_taxonomy_ids(db, view_id)
    if not taxonomy_ids:
        logger.debug(f"View {view_id} has no active taxonomies")
        return set()

    book_ids = get_books_for_taxonomies(db, taxonomy_ids)
    logger.debug(
        f"View {view_id} resolved {len(taxonomy_ids)} taxonomies to {len(book_ids)} books"
    )
    return book_ids
