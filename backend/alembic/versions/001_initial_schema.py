"""Initial OurBookmark schema

Revision ID: 001
Revises: None
Create Date: 2026-10-18 00:00:00.000000+00:00

What:  Accounts, the tracker tables, the shared book catalog, reading rooms
       and the migration ledger.

Rollback: downgrade() drops every table (all data lost).
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at",
        sa.DateTime(timezone=True),
        server_default=sa.text("CURRENT_TIMESTAMP"),
        nullable=False,
    )


def _updated_at() -> sa.Column:
    return sa.Column(
        "updated_at",
        sa.DateTime(timezone=True),
        server_default=sa.text("CURRENT_TIMESTAMP"),
        nullable=False,
    )


def _user_fk(primary_key: bool = False) -> sa.Column:
    return sa.Column(
        "user_id",
        sa.Uuid(),
        sa.ForeignKey("users.id", ondelete="CASCADE"),
        primary_key=primary_key,
        nullable=False,
    )


def upgrade() -> None:
    # ── Accounts ──────────────────────────────────────────────────────────
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("email", sa.String(320), nullable=False, unique=True),
        sa.Column("password_hash", sa.String(255), nullable=False),
        _created_at(),
    )
    op.create_table(
        "auth_sessions",
        sa.Column("token_hash", sa.String(64), primary_key=True),
        _user_fk(),
        _created_at(),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("idx_auth_sessions_user", "auth_sessions", ["user_id"])

    # ── Catalog ───────────────────────────────────────────────────────────
    op.create_table(
        "books",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("author", sa.String(300), nullable=True),
        sa.Column("cover_url", sa.Text(), nullable=True),
        sa.Column("isbn_13", sa.String(13), nullable=True),
        sa.Column("isbn_10", sa.String(10), nullable=True),
        sa.Column("google_books_id", sa.String(64), nullable=True),
        _created_at(),
    )
    op.create_index("idx_books_title", "books", ["title"])

    # ── Tracker ───────────────────────────────────────────────────────────
    op.create_table(
        "children",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _user_fk(),
        sa.Column("name", sa.String(50), nullable=False),
        sa.Column("grade", sa.String(50), nullable=True),
        sa.Column("child_type", sa.String(30), nullable=False, server_default="student"),
        sa.Column("goal_minutes", sa.Integer(), nullable=False, server_default="20"),
        sa.Column("goal_days", sa.Integer(), nullable=False, server_default="5"),
        sa.Column("goal_is_custom", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("milestones", sa.JSON(), nullable=False),
        sa.Column("archived", sa.Boolean(), nullable=False, server_default=sa.false()),
        _created_at(),
    )
    op.create_index("idx_children_user", "children", ["user_id", "created_at"])

    op.create_table(
        "reading_logs",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _user_fk(),
        sa.Column(
            "child_id", sa.Uuid(), sa.ForeignKey("children.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column(
            "book_id", sa.Uuid(), sa.ForeignKey("books.id", ondelete="SET NULL"), nullable=True
        ),
        sa.Column("book_title", sa.String(500), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("minutes", sa.Integer(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("loved", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("reading_type", sa.String(30), nullable=False, server_default="independent"),
        sa.Column("subject", sa.String(100), nullable=True),
        sa.Column("genre", sa.String(100), nullable=True),
        sa.Column("times_read", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("is_finished", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("chapter_current", sa.Integer(), nullable=True),
        sa.Column("chapter_total", sa.Integer(), nullable=True),
        sa.Column("rating", sa.Integer(), nullable=True),
        sa.Column("cover_url", sa.Text(), nullable=True),
        _created_at(),
        sa.CheckConstraint("minutes > 0 AND minutes <= 1440", name="ck_reading_logs_minutes"),
    )
    op.create_index("idx_reading_logs_user_date", "reading_logs", ["user_id", "date"])
    op.create_index("idx_reading_logs_child", "reading_logs", ["child_id"])

    op.create_table(
        "family_profiles",
        _user_fk(primary_key=True),
        sa.Column("family_name", sa.String(100), nullable=True),
        sa.Column("baby_emoji", sa.String(16), nullable=False),
        sa.Column("data", sa.JSON(), nullable=False),
        _updated_at(),
    )
    op.create_table(
        "user_documents",
        _user_fk(primary_key=True),
        sa.Column("key", sa.String(50), primary_key=True),
        sa.Column("data", sa.JSON(), nullable=False),
        _updated_at(),
    )

    # ── Reading Rooms ─────────────────────────────────────────────────────
    op.create_table(
        "profiles",
        sa.Column(
            "id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
        ),
        sa.Column("username", sa.String(40), nullable=True, unique=True),
        sa.Column("display_name", sa.String(100), nullable=True),
        sa.Column("bio", sa.Text(), nullable=True),
        sa.Column("avatar_url", sa.Text(), nullable=True),
        sa.Column("header_widgets", sa.JSON(), nullable=False),
        sa.Column("affiliate_amazon", sa.String(64), nullable=True),
        sa.Column("affiliate_bookshop", sa.String(64), nullable=True),
        sa.Column("room_is_public", sa.Boolean(), nullable=False, server_default=sa.false()),
        _created_at(),
    )
    op.create_table(
        "shelves",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _user_fk(),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_visible", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("display_order", sa.Integer(), nullable=False, server_default="0"),
        _created_at(),
    )
    op.create_index("idx_shelves_user_order", "shelves", ["user_id", "display_order"])
    op.create_table(
        "shelf_books",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "shelf_id", sa.Uuid(), sa.ForeignKey("shelves.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column(
            "book_id", sa.Uuid(), sa.ForeignKey("books.id", ondelete="CASCADE"), nullable=False
        ),
        _user_fk(),
        sa.Column("display_order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("curator_note", sa.Text(), nullable=True),
        _created_at(),
        sa.UniqueConstraint("shelf_id", "book_id", name="uq_shelf_books_shelf_book"),
    )
    op.create_index("idx_shelf_books_shelf_order", "shelf_books", ["shelf_id", "display_order"])

    # ── Migration Ledger ──────────────────────────────────────────────────
    op.create_table(
        "migration_runs",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _user_fk(),
        sa.Column("device_id", sa.String(64), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "started_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.UniqueConstraint("user_id", "device_id", name="uq_migration_runs_user_device"),
    )
    op.create_table(
        "migration_records",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "run_id",
            sa.Uuid(),
            sa.ForeignKey("migration_runs.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("collection", sa.String(30), nullable=False),
        sa.Column("local_key", sa.String(600), nullable=False),
        sa.Column("state", sa.String(10), nullable=False),
        sa.Column("remote_id", sa.String(64), nullable=True),
        sa.Column("error", sa.Text(), nullable=True),
        _updated_at(),
        sa.UniqueConstraint("run_id", "collection", "local_key", name="uq_migration_records_key"),
    )


def downgrade() -> None:
    op.drop_table("migration_records")
    op.drop_table("migration_runs")
    op.drop_index("idx_shelf_books_shelf_order", table_name="shelf_books")
    op.drop_table("shelf_books")
    op.drop_index("idx_shelves_user_order", table_name="shelves")
    op.drop_table("shelves")
    op.drop_table("profiles")
    op.drop_table("user_documents")
    op.drop_table("family_profiles")
    op.drop_index("idx_reading_logs_child", table_name="reading_logs")
    op.drop_index("idx_reading_logs_user_date", table_name="reading_logs")
    op.drop_table("reading_logs")
    op.drop_index("idx_children_user", table_name="children")
    op.drop_table("children")
    op.drop_index("idx_books_title", table_name="books")
    op.drop_table("books")
    op.drop_index("idx_auth_sessions_user", table_name="auth_sessions")
    op.drop_table("auth_sessions")
    op.drop_table("users")
