"""Tests for content filtering and backfill."""
from datetime import datetime, timedelta

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from bookrack.core.config import settings
from bookrack.models import BlockType, Book, BookTaxonomyAssignment, TaxonomyType
from bookrack.services import content_filter
from bookrack.services.block_service import BlockSets
from bookrack.services.content_filter import filter_and_fill, find_blocked_books

USER_ID = 7


@pytest.fixture
def cozy_catalog(factory):
    """
    Taxonomy 5 (genre) and 9 (theme). Books 101, 102, 104 are tagged 5;
    103 is tagged only 9. Book 102 has its own author.
    """
    factory.taxonomy(5, "Cozy Mystery")
    factory.taxonomy(9, "Small Town", TaxonomyType.THEME)
    shared_author = factory.author(name="Agatha")
    other_author = factory.author(name="Dorothy")
    books = {
        101: factory.book(101, author=shared_author, taxonomy_ids=(5,)),
        102: factory.book(102, author=other_author, taxonomy_ids=(5,)),
        103: factory.book(103, author=shared_author, taxonomy_ids=(9,)),
        104: factory.book(104, author=shared_author, taxonomy_ids=(5,)),
    }
    return {"shared_author": shared_author, "other_author": other_author, "books": books}


def test_anonymous_request_returns_first_candidates_in_id_order(db: Session, cozy_catalog):
    assert filter_and_fill(db, {104, 101, 103, 102}, None, 3) == [101, 102, 103]


def test_user_without_blocks_gets_plain_truncation(db: Session, cozy_catalog):
    assert filter_and_fill(db, [104, 102, 101], USER_ID, 2) == [101, 102]


def test_zero_target_returns_empty_list(db: Session, cozy_catalog):
    assert filter_and_fill(db, [101, 102], USER_ID, 0) == []


def test_blocked_book_is_removed(db: Session, factory, cozy_catalog):
    factory.block(USER_ID, BlockType.BOOK, 102)

    assert filter_and_fill(db, [101, 102, 103, 104], USER_ID, 10) == [101, 103, 104]


def test_blocked_author_removes_all_their_books(db: Session, factory, cozy_catalog):
    factory.block(USER_ID, BlockType.AUTHOR, cozy_catalog["shared_author"].id)

    assert filter_and_fill(db, [101, 102, 103, 104], USER_ID, 10) == [102]


def test_blocked_taxonomy_removes_tagged_books(db: Session, factory, cozy_catalog):
    factory.block(USER_ID, BlockType.TAXONOMY, 9)

    assert filter_and_fill(db, [101, 102, 103, 104], USER_ID, 10) == [101, 102, 104]


def test_blocked_publisher_removes_books_of_contracted_authors(db: Session, factory, cozy_catalog):
    publisher = factory.publisher(name="Big Press")
    factory.contract(publisher, cozy_catalog["other_author"])
    factory.block(USER_ID, BlockType.PUBLISHER, publisher.id)

    assert filter_and_fill(db, [101, 102, 103, 104], USER_ID, 10) == [101, 103, 104]


def test_expired_contract_does_not_block(db: Session, factory, cozy_catalog):
    publisher = factory.publisher(name="Former Press")
    factory.contract(
        publisher,
        cozy_catalog["other_author"],
        contract_end=datetime.utcnow() - timedelta(days=1),
    )
    factory.block(USER_ID, BlockType.PUBLISHER, publisher.id)

    assert filter_and_fill(db, [101, 102, 103, 104], USER_ID, 10) == [101, 102, 103, 104]


def test_book_blocked_by_several_rules_is_excluded_once(db: Session, factory, cozy_catalog):
    factory.block(USER_ID, BlockType.BOOK, 103)
    factory.block(USER_ID, BlockType.TAXONOMY, 9)
    factory.block(USER_ID, BlockType.AUTHOR, cozy_catalog["shared_author"].id)

    assert filter_and_fill(db, [101, 102, 103, 104], USER_ID, 10) == [102]


def test_cozy_mysteries_scenario_backfills_one_book(db: Session, factory, cozy_catalog):
    """Blocking 102's author and taxonomy 9 leaves 101 and 104; 105 fills the gap."""
    factory.book(105, author=cozy_catalog["shared_author"], taxonomy_ids=(5,))
    factory.block(USER_ID, BlockType.AUTHOR, cozy_catalog["other_author"].id)
    factory.block(USER_ID, BlockType.TAXONOMY, 9)

    result = filter_and_fill(db, {101, 102, 103, 104}, USER_ID, 3, taxonomy_ids=[5, 9])

    assert result == [101, 104, 105]


def test_cozy_mysteries_scenario_without_replacement_under_fills(db: Session, factory, cozy_catalog):
    factory.block(USER_ID, BlockType.AUTHOR, cozy_catalog["other_author"].id)
    factory.block(USER_ID, BlockType.TAXONOMY, 9)

    result = filter_and_fill(db, {101, 102, 103, 104}, USER_ID, 3, taxonomy_ids=[5, 9])

    assert result == [101, 104]


def test_backfill_applies_every_block_dimension(db: Session, factory, cozy_catalog):
    other_author = cozy_catalog["other_author"]
    publisher = factory.publisher(name="Big Press")
    contracted_author = factory.author(name="Contracted")
    factory.contract(publisher, contracted_author)

    factory.book(201, author=other_author, taxonomy_ids=(5,))          # blocked author
    factory.book(202, taxonomy_ids=(5, 9))                             # blocked taxonomy
    factory.book(203, taxonomy_ids=(5,))                               # blocked book
    factory.book(204, author=contracted_author, taxonomy_ids=(5,))     # blocked publisher
    factory.book(205, taxonomy_ids=(5,))                               # clean

    factory.block(USER_ID, BlockType.AUTHOR, other_author.id)
    factory.block(USER_ID, BlockType.TAXONOMY, 9)
    factory.block(USER_ID, BlockType.BOOK, 203)
    factory.block(USER_ID, BlockType.PUBLISHER, publisher.id)

    result = filter_and_fill(db, [101, 102, 103, 104], USER_ID, 10, taxonomy_ids=[5, 9])

    assert result == [101, 104, 205]


def test_backfill_uses_multiple_bounded_passes(db: Session, factory, cozy_catalog):
    factory.block(USER_ID, BlockType.BOOK, 102)
    for book_id in range(301, 306):
        factory.book(book_id, taxonomy_ids=(5,))

    result = filter_and_fill(
        db, [101, 102], USER_ID, 4, taxonomy_ids=[5], batch_size=1, max_passes=10
    )

    # 101 survives; 103 (tag 9 only) is not in the pool for [5]; 104, 301, 302 are pulled in
    assert result == [101, 104, 301, 302]


def test_backfill_pages_past_a_batch_of_only_blocked_books(db: Session, factory, cozy_catalog):
    blocked_author = factory.author(name="Blocked")
    factory.book(301, author=blocked_author, taxonomy_ids=(5,))
    factory.book(302, author=blocked_author, taxonomy_ids=(5,))
    factory.book(303, taxonomy_ids=(5,))
    factory.block(USER_ID, BlockType.AUTHOR, blocked_author.id)

    result = filter_and_fill(
        db, [101, 102, 104], USER_ID, 5, taxonomy_ids=[5], batch_size=2, max_passes=10
    )

    # Page 1 is [301, 302], both blocked; page 2 reaches 303
    assert result == [101, 102, 104, 303]


def test_backfill_with_default_settings_reaches_books_behind_a_long_blocked_run(
    db: Session, factory, cozy_catalog
):
    """A prolific blocked author fills more than one default-sized page."""
    blocked_author = factory.author(name="Prolific")
    for book_id in range(1000, 1000 + 2 * settings.BACKFILL_BATCH_SIZE + 1):
        db.add(Book(id=book_id, title=f"Book {book_id}", author_id=blocked_author.id))
        db.add(BookTaxonomyAssignment(book_id=book_id, taxonomy_id=5, rank=1, importance=1.0))
    db.commit()
    factory.book(5000, taxonomy_ids=(5,))
    factory.block(USER_ID, BlockType.AUTHOR, blocked_author.id)
    factory.block(USER_ID, BlockType.BOOK, 102)
    factory.block(USER_ID, BlockType.BOOK, 104)

    result = filter_and_fill(db, [101], USER_ID, 2, taxonomy_ids=[5])

    assert result == [101, 5000]


def test_backfill_respects_pass_limit(db: Session, factory, cozy_catalog):
    for book_id in range(301, 310):
        factory.book(book_id, taxonomy_ids=(5,))
    factory.block(USER_ID, BlockType.BOOK, 101)

    result = filter_and_fill(
        db, [101], USER_ID, 9, taxonomy_ids=[5], batch_size=1, max_passes=2
    )

    assert result == [102, 104]


def test_backfill_terminates_when_pool_is_smaller_than_target(db: Session, factory, cozy_catalog):
    factory.block(USER_ID, BlockType.TAXONOMY, 9)

    result = filter_and_fill(db, [101, 103], USER_ID, 50, taxonomy_ids=[5, 9], batch_size=2)

    assert result == [101, 102, 104]


def test_filter_and_fill_is_idempotent(db: Session, factory, cozy_catalog):
    factory.book(105, taxonomy_ids=(5,))
    factory.block(USER_ID, BlockType.TAXONOMY, 9)
    factory.block(USER_ID, BlockType.BOOK, 101)

    first = filter_and_fill(db, {101, 103, 104}, USER_ID, 3, taxonomy_ids=[5, 9])
    second = filter_and_fill(db, {104, 103, 101}, USER_ID, 3, taxonomy_ids=[5, 9])

    assert first == second == [104, 102, 105]


def test_blocks_on_deleted_taxonomy_still_apply(db: Session, factory):
    factory.taxonomy(5, "Cozy Mystery")
    factory.taxonomy(9, "Retired", TaxonomyType.THEME, deleted=True)
    factory.book(101, taxonomy_ids=(5, 9))
    factory.book(102, taxonomy_ids=(5,))
    factory.block(USER_ID, BlockType.TAXONOMY, 9)

    assert filter_and_fill(db, [101, 102], USER_ID, 5) == [102]


def test_find_blocked_books_with_empty_inputs(db: Session):
    assert find_blocked_books(db, [], BlockSets(book_ids={1})) == set()
    assert find_blocked_books(db, [1, 2], BlockSets()) == set()


def test_storage_errors_during_backfill_propagate(db: Session, factory, cozy_catalog, monkeypatch):
    factory.block(USER_ID, BlockType.BOOK, 101)

    def broken_pool(*args, **kwargs):
        raise OperationalError("SELECT ...", {}, Exception("connection lost"))

    monkeypatch.setattr(content_filter, "_fetch_backfill_pool", broken_pool)

    with pytest.raises(OperationalError):
        filter_and_fill(db, [101, 102], USER_ID, 5, taxonomy_ids=[5])
