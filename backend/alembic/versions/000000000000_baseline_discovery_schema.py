"""baseline discovery schema

Revision ID: 000000000000
Revises:
Create Date: 2026-10-18

Creates the taxonomy, view, block, engagement and popularity tables.
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = "000000000000"
down_revision = None
branch_labels = None
depends_on = None

TAXONOMY_TYPES = ("genre", "subgenre", "theme", "trope")
BLOCK_TYPES = ("author", "book", "publisher", "taxonomy")
ENGAGEMENT_EVENT_TYPES = ("impression", "view", "hover", "detail_expand", "card_click", "referral_click")


def upgrade() -> None:
    taxonomy_type = sa.Enum(*TAXONOMY_TYPES, name="taxonomytype")
    block_type = sa.Enum(*BLOCK_TYPES, name="blocktype")
    event_type = sa.Enum(*ENGAGEMENT_EVENT_TYPES, name="engagementeventtype")

    op.create_table(
        "genre_taxonomies",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("type", taxonomy_type, nullable=False),
        sa.Column("parent_id", sa.Integer(), sa.ForeignKey("genre_taxonomies.id"), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.Column("deleted_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_genre_taxonomies_type", "genre_taxonomies", ["type"])
    op.create_index("ix_genre_taxonomies_parent_id", "genre_taxonomies", ["parent_id"])

    op.create_table(
        "authors",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("author_name", sa.String(), nullable=False),
        sa.Column("author_image_url", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
    )

    op.create_table(
        "publishers",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=True),
    )

    op.create_table(
        "publishers_authors",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("publisher_id", sa.Integer(), sa.ForeignKey("publishers.id"), nullable=False),
        sa.Column("author_id", sa.Integer(), sa.ForeignKey("authors.id"), nullable=False),
        sa.Column("contract_start", sa.DateTime(), nullable=False),
        sa.Column("contract_end", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_publishers_authors_publisher_id", "publishers_authors", ["publisher_id"])
    op.create_index("ix_publishers_authors_author_id", "publishers_authors", ["author_id"])

    op.create_table(
        "books",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("author_id", sa.Integer(), sa.ForeignKey("authors.id"), nullable=False),
        sa.Column("published_date", sa.DateTime(), nullable=True),
        sa.Column("impression_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("click_through_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_impression_at", sa.DateTime(), nullable=True),
        sa.Column("last_click_through_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_books_author_id", "books", ["author_id"])

    op.create_table(
        "book_images",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("book_id", sa.Integer(), sa.ForeignKey("books.id"), nullable=False),
        sa.Column("image_url", sa.String(), nullable=False),
        sa.Column("image_type", sa.String(), nullable=False),
    )
    op.create_index("ix_book_images_book_id", "book_images", ["book_id"])

    op.create_table(
        "book_genre_taxonomies",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("book_id", sa.Integer(), sa.ForeignKey("books.id"), nullable=False),
        sa.Column("taxonomy_id", sa.Integer(), sa.ForeignKey("genre_taxonomies.id"), nullable=False),
        sa.Column("rank", sa.Integer(), nullable=False),
        sa.Column("importance", sa.Float(), nullable=False),
        sa.UniqueConstraint("book_id", "taxonomy_id", name="uq_book_genre_taxonomies_book_taxonomy"),
    )
    op.create_index("ix_book_genre_taxonomies_book_id", "book_genre_taxonomies", ["book_id"])
    op.create_index("ix_book_genre_taxonomies_taxonomy_id", "book_genre_taxonomies", ["taxonomy_id"])

    op.create_table(
        "genre_views",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("rank", sa.Integer(), nullable=False),
        sa.Column("is_default", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
    )

    op.create_table(
        "view_genres",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("view_id", sa.Integer(), sa.ForeignKey("genre_views.id"), nullable=False),
        sa.Column("taxonomy_id", sa.Integer(), sa.ForeignKey("genre_taxonomies.id"), nullable=False),
        # Reuse the enum type created for genre_taxonomies
        sa.Column("type", postgresql.ENUM(*TAXONOMY_TYPES, name="taxonomytype", create_type=False), nullable=False),
        sa.Column("rank", sa.Integer(), nullable=False),
    )
    op.create_index("ix_view_genres_view_id", "view_genres", ["view_id"])

    op.create_table(
        "user_blocks",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("block_type", block_type, nullable=False),
        sa.Column("block_id", sa.Integer(), nullable=False),
        sa.Column("block_name", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("user_id", "block_type", "block_id", name="uq_user_blocks_user_type_block"),
    )
    op.create_index("ix_user_blocks_user_id", "user_blocks", ["user_id"])

    op.create_table(
        "engagement_events",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("book_id", sa.Integer(), sa.ForeignKey("books.id"), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("event_type", event_type, nullable=False),
        sa.Column("weight", sa.Float(), nullable=False),
        sa.Column("source", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_engagement_events_book_id", "engagement_events", ["book_id"])
    op.create_index("ix_engagement_events_user_id", "engagement_events", ["user_id"])
    op.create_index("ix_engagement_events_event_type", "engagement_events", ["event_type"])
    op.create_index("ix_engagement_events_created_at", "engagement_events", ["created_at"])

    op.create_table(
        "popular_books",
        sa.Column("book_id", sa.Integer(), sa.ForeignKey("books.id"), primary_key=True),
        sa.Column("score", sa.Float(), nullable=False),
        sa.Column("rank", sa.Integer(), nullable=False),
        sa.Column("window_days", sa.Integer(), nullable=False),
        sa.Column("first_ranked_at", sa.DateTime(), nullable=False),
        sa.Column("calculated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_popular_books_rank", "popular_books", ["rank"])


def downgrade() -> None:
    op.drop_index("ix_popular_books_rank", table_name="popular_books")
    op.drop_table("popular_books")
    op.drop_table("engagement_events")
    op.drop_table("user_blocks")
    op.drop_table("view_genres")
    op.drop_table("genre_views")
    op.drop_table("book_genre_taxonomies")
    op.drop_table("book_images")
    op.drop_table("books")
    op.drop_table("publishers_authors")
    op.drop_table("publishers")
    op.drop_table("authors")
    op.drop_table("genre_taxonomies")
    sa.Enum(name="engagementeventtype").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="blocktype").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="taxonomytype").drop(op.get_bind(), checkfirst=True)
