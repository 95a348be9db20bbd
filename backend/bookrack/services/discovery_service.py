"""
Discovery pipeline for genre views: resolve the view to candidate books,
apply the user's content filters (with backfill), then hydrate the surviving
ids with book, author and image data in the filtered order.
"""
import logging
from typing import Any, Optional

from sqlalchemy.orm import Session

from bookrack.models import Author, Book, BookImage
from bookrack.services.content_filter import filter_and_fill
from bookrack.services.view_service import get_books_for_taxonomies, get_view_taxonomy_ids
from bookrack.utils.timing import time_operation

logger = logging.getLogger(__name__)


def hydrate_books(db: Session, book_ids: list[int]) -> list[dict[str, Any]]:
    """Load books with author name and images, preserving the order of book_ids."""
    if not book_ids:
        return []

    rows = (
        db.query(Book, Author)
        .outerjoin(Author, Author.id == Book.author_id)
        .filter(Book.id.in_(book_ids))
        .all()
    )
    books_by_id = {book.id: (book, author) for book, author in rows}

    images_by_book_id: dict[int, list[dict[str, str]]] = {}
    for image in db.query(BookImage).filter(BookImage.book_id.in_(book_ids)).order_by(BookImage.id):
        images_by_book_id.setdefault(image.book_id, []).append({
            "image_url": image.image_url,
            "image_type": image.image_type,
        })

    result = []
    for book_id in book_ids:
        if book_id not in books_by_id:
            # Assignment rows can outlive their book
            logger.warning(f"Book {book_id} selected for display but not found")
            continue
        book, author = books_by_id[book_id]
        result.append({
            "id": book.id,
            "title": book.title,
            "description": book.description,
            "author_id": book.author_id,
            "author_name": author.author_name if author else None,
            "author_image_url": author.author_image_url if author else None,
            "published_date": book.published_date,
            "impression_count": book.impression_count,
            "click_through_count": book.click_through_count,
            "last_impression_at": book.last_impression_at,
            "last_click_through_at": book.last_click_through_at,
            "images": images_by_book_id.get(book_id, []),
        })
    return result


def get_view_book_ids(
    db: Session,
    view_id: int,
    user_id: Optional[int],
    count: int,
) -> list[int]:
    """Filtered, backfilled book ids for a view."""
    taxonomy_ids = get_view_taxonomy_ids(db, view_id)
    if not taxonomy_ids:
        return []

    candidate_ids = get_books_for_taxonomies(db, taxonomy_ids)
    if not candidate_ids:
        return []

    return filter_and_fill(
        db,
        candidate_ids,
        user_id,
        count,
        taxonomy_ids=taxonomy_ids,
    )


def get_view_books(
    db: Session,
    view_id: int,
    user_id: Optional[int],
    count: int,
) -> list[dict[str, Any]]:
    """Books to display for a genre view, filtered for the user."""
    with time_operation(f"view {view_id} book selection", log_fn=logger.debug):
        book_ids = get_view_book_ids(db, view_id, user_id, count)

    with time_operation(f"view {view_id} hydration", log_fn=logger.debug):
        books = hydrate_books(db, book_ids)

    logger.info(f"View {view_id}: returning {len(books)} of {count} requested books")
    return books
