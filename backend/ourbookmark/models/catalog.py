"""
OurBookmark Backend: Book Catalog Model
========================================

What:  The shared `books` table referenced by reading logs and shelf books.
How:   Rows are deduplicated by exact-title lookup-or-insert (see
       CatalogService.get_or_create_by_title). There is no unique constraint
       on title: two different books can share one, and the first row wins.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import DateTime, Index, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from ourbookmark.database import Base


class Book(Base):
    __tablename__ = "books"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    author: Mapped[str | None] = mapped_column(String(300), nullable=True)
    cover_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    isbn_13: Mapped[str | None] = mapped_column(String(13), nullable=True)
    isbn_10: Mapped[str | None] = mapped_column(String(10), nullable=True)
    google_books_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (Index("idx_books_title", "title"),)

    def __repr__(self) -> str:
        return f"<Book(id={self.id}, title='{self.title}')>"
