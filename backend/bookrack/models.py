from sqlalchemy import Column, String, Integer, Text, Boolean, DateTime, ForeignKey, Enum as SQLEnum, Float, UniqueConstraint
from sqlalchemy.orm import relationship
from datetime import datetime
import enum
import sqlalchemy as sa
from bookrack.database import Base


class TaxonomyType(str, enum.Enum):
    GENRE = "genre"
    SUBGENRE = "subgenre"
    THEME = "theme"
    TROPE = "trope"


class BlockType(str, enum.Enum):
    AUTHOR = "author"
    BOOK = "book"
    PUBLISHER = "publisher"
    TAXONOMY = "taxonomy"


class EngagementEventType(str, enum.Enum):
    IMPRESSION = "impression"
    VIEW = "view"
    HOVER = "hover"
    DETAIL_EXPAND = "detail_expand"
    CARD_CLICK = "card_click"
    REFERRAL_CLICK = "referral_click"


def _enum_column(enum_cls, name):
    return SQLEnum(
        enum_cls,
        name=name,
        values_callable=lambda enum: [e.value for e in enum],
    )


class Taxonomy(Base):
    __tablename__ = "genre_taxonomies"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    type = Column(_enum_column(TaxonomyType, "taxonomytype"), nullable=False, index=True)
    parent_id = Column(Integer, ForeignKey("genre_taxonomies.id"), nullable=True, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    deleted_at = Column(DateTime, nullable=True)

    # Relationships
    parent = relationship("Taxonomy", remote_side=[id])
    book_assignments = relationship("BookTaxonomyAssignment", back_populates="taxonomy")

    @classmethod
    def not_deleted(cls):
        """Filter clause excluding soft-deleted taxonomies. Every taxonomy read goes through this."""
        return cls.deleted_at.is_(None)


class Author(Base):
    __tablename__ = "authors"

    id = Column(Integer, primary_key=True, autoincrement=True)
    author_name = Column(String, nullable=False)
    author_image_url = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    books = relationship("Book", back_populates="author")
    contracts = relationship("AuthorshipContract", back_populates="author")


class Publisher(Base):
    __tablename__ = "publishers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    contracts = relationship("AuthorshipContract", back_populates="publisher")


class AuthorshipContract(Base):
    """
    Links an author to a publisher. A contract is active while contract_end is
    NULL or still in the future; only active contracts count for publisher blocks.
    """
    __tablename__ = "publishers_authors"

    id = Column(Integer, primary_key=True, autoincrement=True)
    publisher_id = Column(Integer, ForeignKey("publishers.id"), nullable=False, index=True)
    author_id = Column(Integer, ForeignKey("authors.id"), nullable=False, index=True)
    contract_start = Column(DateTime, default=datetime.utcnow, nullable=False)
    contract_end = Column(DateTime, nullable=True)

    # Relationships
    publisher = relationship("Publisher", back_populates="contracts")
    author = relationship("Author", back_populates="contracts")

    @classmethod
    def active_at(cls, moment: datetime):
        return sa.or_(cls.contract_end.is_(None), cls.contract_end > moment)


class Book(Base):
    __tablename__ = "books"

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    author_id = Column(Integer, ForeignKey("authors.id"), nullable=False, index=True)
    published_date = Column(DateTime, nullable=True)
    impression_count = Column(Integer, nullable=False, default=0)
    click_through_count = Column(Integer, nullable=False, default=0)
    last_impression_at = Column(DateTime, nullable=True)
    last_click_through_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    author = relationship("Author", back_populates="books")
    images = relationship("BookImage", back_populates="book")
    taxonomy_assignments = relationship("BookTaxonomyAssignment", back_populates="book")
    popularity = relationship("PopularBook", uselist=False, back_populates="book")


class BookImage(Base):
    __tablename__ = "book_images"

    id = Column(Integer, primary_key=True, autoincrement=True)
    book_id = Column(Integer, ForeignKey("books.id"), nullable=False, index=True)
    image_url = Column(String, nullable=False)
    image_type = Column(String, nullable=False, default="book-card")

    # Relationships
    book = relationship("Book", back_populates="images")


class BookTaxonomyAssignment(Base):
    """
    A book tagged with a taxonomy. rank is 1-based per book per taxonomy type and
    importance is stored at write time from rank (see services.taxonomy_service).
    """
    __tablename__ = "book_genre_taxonomies"

    id = Column(Integer, primary_key=True, autoincrement=True)
    book_id = Column(Integer, ForeignKey("books.id"), nullable=False, index=True)
    taxonomy_id = Column(Integer, ForeignKey("genre_taxonomies.id"), nullable=False, index=True)
    rank = Column(Integer, nullable=False, default=1)
    importance = Column(Float, nullable=False, default=1.0)

    # Relationships
    book = relationship("Book", back_populates="taxonomy_assignments")
    taxonomy = relationship("Taxonomy", back_populates="book_assignments")

    __table_args__ = (
        UniqueConstraint('book_id', 'taxonomy_id', name='uq_book_genre_taxonomies_book_taxonomy'),
    )


class GenreView(Base):
    __tablename__ = "genre_views"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    rank = Column(Integer, nullable=False, default=0)
    is_default = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    taxonomies = relationship("ViewTaxonomy", back_populates="view", order_by="ViewTaxonomy.rank")


class ViewTaxonomy(Base):
    __tablename__ = "view_genres"

    id = Column(Integer, primary_key=True, autoincrement=True)
    view_id = Column(Integer, ForeignKey("genre_views.id"), nullable=False, index=True)
    taxonomy_id = Column(Integer, ForeignKey("genre_taxonomies.id"), nullable=False)
    type = Column(_enum_column(TaxonomyType, "taxonomytype"), nullable=False)
    rank = Column(Integer, nullable=False, default=0)

    # Relationships
    view = relationship("GenreView", back_populates="taxonomies")
    taxonomy = relationship("Taxonomy")


class UserBlock(Base):
    """
    A user's exclusion rule. block_name is a display snapshot of the blocked entity.
    """
    __tablename__ = "user_blocks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, nullable=False, index=True)
    block_type = Column(_enum_column(BlockType, "blocktype"), nullable=False)
    block_id = Column(Integer, nullable=False)
    block_name = Column(String, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint('user_id', 'block_type', 'block_id', name='uq_user_blocks_user_type_block'),
    )


class EngagementEvent(Base):
    """
    Append-only engagement log. Rows are never updated; the popularity scorer
    only aggregates them.
    """
    __tablename__ = "engagement_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    book_id = Column(Integer, ForeignKey("books.id"), nullable=False, index=True)
    user_id = Column(Integer, nullable=True, index=True)
    event_type = Column(_enum_column(EngagementEventType, "engagementeventtype"), nullable=False, index=True)
    weight = Column(Float, nullable=False, default=0.0)
    source = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)


class PopularBook(Base):
    """
    Current popularity ranking. The whole table is replaced by each scorer run;
    a book without a row has a score of 0.
    """
    __tablename__ = "popular_books"

    book_id = Column(Integer, ForeignKey("books.id"), primary_key=True)
    score = Column(Float, nullable=False)
    rank = Column(Integer, nullable=False, index=True)
    window_days = Column(Integer, nullable=False)
    first_ranked_at = Column(DateTime, nullable=False)
    calculated_at = Column(DateTime, nullable=False)

    # Relationships
    book = relationship("Book", back_populates="popularity")
