from pydantic import BaseModel, model_validator
from typing import Optional, List
from datetime import datetime
from bookrack.models import TaxonomyType


class TaxonomyResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    type: TaxonomyType
    parent_id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class TaxonomyCreate(BaseModel):
    name: str
    description: Optional[str] = None
    type: TaxonomyType
    parent_id: Optional[int] = None

    @model_validator(mode="after")
    def check_parent(self):
        if self.type == TaxonomyType.SUBGENRE and self.parent_id is None:
            raise ValueError("subgenre taxonomies require a parent_id")
        if self.type == TaxonomyType.GENRE and self.parent_id is not None:
            raise ValueError("top-level genres cannot have a parent_id")
        return self


class GenreViewResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    rank: int
    is_default: bool

    class Config:
        from_attributes = True


class ViewTaxonomyResponse(BaseModel):
    id: int
    view_id: int
    taxonomy_id: int
    type: TaxonomyType
    rank: int
    name: str
    category: TaxonomyType


class BookImageResponse(BaseModel):
    image_url: str
    image_type: str


class ViewBookResponse(BaseModel):
    id: int
    title: str
    description: Optional[str] = None
    author_id: int
    author_name: Optional[str] = None
    author_image_url: Optional[str] = None
    published_date: Optional[datetime] = None
    impression_count: int = 0
    click_through_count: int = 0
    last_impression_at: Optional[datetime] = None
    last_click_through_at: Optional[datetime] = None
    images: List[BookImageResponse] = []
