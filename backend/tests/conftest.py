"""Pytest configuration for backend tests."""
import sys
import os
from datetime import datetime
from pathlib import Path
from typing import Optional
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

# Add backend directory to Python path
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

# Never start the real background scheduler from tests
os.environ.setdefault("SCHEDULER_ENABLED", "false")

# Import database components
from bookrack.database import Base, get_db

# Import the entire models module to ensure all models are registered with Base.metadata
# This must happen before create_all() so that all table definitions are available
import bookrack.models  # noqa: F401
from bookrack.models import (
    Author,
    AuthorshipContract,
    BlockType,
    Book,
    BookImage,
    BookTaxonomyAssignment,
    GenreView,
    Publisher,
    Taxonomy,
    TaxonomyType,
    UserBlock,
    ViewTaxonomy,
)
from bookrack.services.taxonomy_service import compute_importance


# In-memory SQLite by default; set TEST_DATABASE_URL to run against a Postgres test database
TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL", "sqlite://")


@pytest.fixture(scope="function")
def engine():
    """
    Create a fresh test database for each test.

    All tables are created up front and dropped afterwards, so services under
    test can commit and roll back exactly as they do in production.
    """
    if TEST_DATABASE_URL.startswith("sqlite"):
        test_engine = create_engine(
            TEST_DATABASE_URL,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        test_engine = create_engine(TEST_DATABASE_URL, pool_pre_ping=True, echo=False)

    # Debug assertion: verify tables are registered
    if not Base.metadata.tables:
        raise RuntimeError(
            "No tables registered in Base.metadata. "
            "Did you import bookrack.models? All model classes must be imported before create_all()."
        )

    Base.metadata.create_all(bind=test_engine)

    yield test_engine

    Base.metadata.drop_all(bind=test_engine)
    test_engine.dispose()


@pytest.fixture(scope="function")
def session_factory(engine):
    """Session factory bound to the test engine (matches production settings)."""
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture(scope="function")
def db(session_factory) -> Session:
    """Database session for each test."""
    session = session_factory()
    yield session
    session.close()


@pytest.fixture(scope="function")
def client(session_factory):
    """TestClient whose get_db dependency uses the test database."""
    from fastapi.testclient import TestClient
    from bookrack.main import app

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    # Not used as a context manager: startup hooks (init_db, scheduler) stay off
    yield TestClient(app)
    app.dependency_overrides.clear()


class CatalogFactory:
    """Small helpers for building catalog rows in tests."""

    def __init__(self, db: Session):
        self.db = db

    def author(self, author_id: Optional[int] = None, name: str = "Test Author") -> Author:
        author = Author(id=author_id, author_name=name)
        self.db.add(author)
        self.db.commit()
        return author

    def taxonomy(
        self,
        taxonomy_id: Optional[int] = None,
        name: str = "Cozy Mystery",
        taxonomy_type: TaxonomyType = TaxonomyType.GENRE,
        parent_id: Optional[int] = None,
        deleted: bool = False,
    ) -> Taxonomy:
        taxonomy = Taxonomy(
            id=taxonomy_id,
            name=name,
            type=taxonomy_type,
            parent_id=parent_id,
            deleted_at=datetime.utcnow() if deleted else None,
        )
        self.db.add(taxonomy)
        self.db.commit()
        return taxonomy

    def book(
        self,
        book_id: Optional[int] = None,
        author: Optional[Author] = None,
        taxonomy_ids: tuple = (),
        title: Optional[str] = None,
    ) -> Book:
        author = author or self.author()
        book = Book(
            id=book_id,
            title=title or f"Book {book_id}",
            author_id=author.id,
        )
        self.db.add(book)
        self.db.flush()
        for rank, taxonomy_id in enumerate(taxonomy_ids, start=1):
            self.db.add(BookTaxonomyAssignment(
                book_id=book.id,
                taxonomy_id=taxonomy_id,
                rank=rank,
                importance=compute_importance(rank),
            ))
        self.db.commit()
        return book

    def image(self, book: Book, url: str = "https://img.example/cover.jpg", image_type: str = "book-card") -> BookImage:
        image = BookImage(book_id=book.id, image_url=url, image_type=image_type)
        self.db.add(image)
        self.db.commit()
        return image

    def view(
        self,
        taxonomy_ids: tuple = (),
        view_id: Optional[int] = None,
        name: str = "cozy-mysteries",
        rank: int = 0,
        is_default: bool = True,
    ) -> GenreView:
        view = GenreView(id=view_id, name=name, rank=rank, is_default=is_default)
        self.db.add(view)
        self.db.flush()
        for position, taxonomy_id in enumerate(taxonomy_ids, start=1):
            taxonomy = self.db.get(Taxonomy, taxonomy_id)
            self.db.add(ViewTaxonomy(
                view_id=view.id,
                taxonomy_id=taxonomy_id,
                type=taxonomy.type if taxonomy else TaxonomyType.GENRE,
                rank=position,
            ))
        self.db.commit()
        return view

    def contract(
        self,
        publisher: Publisher,
        author: Author,
        contract_end: Optional[datetime] = None,
    ) -> AuthorshipContract:
        contract = AuthorshipContract(
            publisher_id=publisher.id,
            author_id=author.id,
            contract_end=contract_end,
        )
        self.db.add(contract)
        self.db.commit()
        return contract

    def publisher(self, publisher_id: Optional[int] = None, name: str = "Big Press") -> Publisher:
        publisher = Publisher(id=publisher_id, name=name)
        self.db.add(publisher)
        self.db.commit()
        return publisher

    def block(self, user_id: int, block_type: BlockType, block_id: int, block_name: str = "blocked") -> UserBlock:
        block = UserBlock(
            user_id=user_id,
            block_type=block_type,
            block_id=block_id,
            block_name=block_name,
        )
        self.db.add(block)
        self.db.commit()
        return block


@pytest.fixture(scope="function")
def factory(db: Session) -> CatalogFactory:
    return CatalogFactory(db)
