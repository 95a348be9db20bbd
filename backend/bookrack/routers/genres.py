from fastapi import APIRouter, Depends, Query, HTTPException, status
from sqlalchemy.orm import Session
from typing import Optional, List
import logging
from bookrack.database import get_db
from bookrack.models import TaxonomyType
from bookrack.schemas.genre import (
    TaxonomyCreate,
    TaxonomyResponse,
    GenreViewResponse,
    ViewTaxonomyResponse,
    ViewBookResponse,
)
from bookrack.core.auth import get_optional_user_id, require_admin
from bookrack.core.config import settings
from bookrack.services import taxonomy_service, view_service
from bookrack.services.discovery_service import get_view_books

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/genres", tags=["genres"])


@router.get("", response_model=List[TaxonomyResponse])
def get_genres(
    type: Optional[TaxonomyType] = Query(None, description="Filter by taxonomy type"),
    parent_id: Optional[int] = Query(None, description="Filter by parent taxonomy"),
    db: Session = Depends(get_db),
):
    """Get all active genres, subgenres, themes and tropes."""
    try:
        return taxonomy_service.list_taxonomies(db, taxonomy_type=type, parent_id=parent_id)
    except Exception:
        logger.exception("Failed to fetch genres", extra={"type": type, "parent_id": parent_id})
        raise HTTPException(
            status_code=500,
            detail="Failed to fetch genres"
        )


@router.get("/views", response_model=List[GenreViewResponse])
def get_genre_views(
    default_only: bool = Query(False, description="Only return default views"),
    db: Session = Depends(get_db),
):
    """Get genre views ordered by rank."""
    try:
        return view_service.list_views(db, default_only=default_only)
    except Exception:
        logger.exception("Failed to fetch genre views")
        raise HTTPException(
            status_code=500,
            detail="Failed to fetch genre views"
        )


@router.get("/view/{view_id}", response_model=List[ViewBookResponse])
def get_view_book_list(
    view_id: int,
    count: int = Query(settings.DEFAULT_VIEW_COUNT, ge=1, le=settings.MAX_VIEW_COUNT),
    user_id: Optional[int] = Depends(get_optional_user_id),
    db: Session = Depends(get_db),
):
    """
    Get books for a genre view, used by the home page sections.

    Books blocked by the user (directly, by author, publisher or taxonomy) are
    removed and replaced from the view's taxonomies where possible. Fewer than
    `count` books are returned when not enough unblocked books exist.
    """
    try:
        return get_view_books(db, view_id, user_id, count)
    except Exception:
        logger.exception("Failed to fetch books for genre view", extra={
            "view_id": view_id,
            "count": count,
            "user_id": user_id,
        })
        raise HTTPException(
            status_code=500,
            detail="Failed to fetch books for genre view"
        )


@router.get("/view-info/{view_id}", response_model=GenreViewResponse)
def get_view_info(view_id: int, db: Session = Depends(get_db)):
    """Get the name and details of a genre view."""
    view = view_service.get_view(db, view_id)
    if not view:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Genre view not found",
        )
    return view


@router.get("/view-taxonomies/{view_id}", response_model=List[ViewTaxonomyResponse])
def get_view_taxonomies(view_id: int, db: Session = Depends(get_db)):
    """Get the taxonomies a genre view aggregates, in priority order."""
    try:
        return view_service.get_view_taxonomies(db, view_id)
    except Exception:
        logger.exception("Failed to fetch view taxonomies", extra={"view_id": view_id})
        raise HTTPException(
            status_code=500,
            detail="Failed to fetch view taxonomies"
        )


@router.get("/{taxonomy_id}", response_model=TaxonomyResponse)
def get_genre(taxonomy_id: int, db: Session = Depends(get_db)):
    """Get a specific genre by ID."""
    taxonomy = taxonomy_service.get_taxonomy(db, taxonomy_id)
    if not taxonomy:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Genre not found",
        )
    return taxonomy


@router.post(
    "",
    response_model=TaxonomyResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_admin)],
)
def create_genre(payload: TaxonomyCreate, db: Session = Depends(get_db)):
    """Admin endpoint to add a genre, subgenre, theme or trope."""
    if payload.parent_id is not None and taxonomy_service.get_taxonomy(db, payload.parent_id) is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Parent genre not found",
        )
    try:
        return taxonomy_service.create_taxonomy(
            db,
            name=payload.name,
            taxonomy_type=payload.type,
            parent_id=payload.parent_id,
            description=payload.description,
        )
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e),
        )
