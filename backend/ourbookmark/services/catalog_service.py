"""
OurBookmark Backend: Book Catalog Service
==========================================

What:  Lookup-or-insert for the shared `books` table, plus the admin cover
       tools (list, upload, set, clear).
Who:   AccountTrackerStore (new logs), MigrationService (book phase),
       ReadingRoomService (shelf books), admin routes.

Deduplication rule:
    A book is identified by its exact title. The first row with that title
    is reused; metadata from later callers is only used to fill columns the
    existing row has empty. This keeps lookups a single indexed query.
"""

import logging
import uuid
from typing import Optional, Tuple

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ourbookmark.exceptions import NotFoundError, ValidationError
from ourbookmark.models.catalog import Book
from ourbookmark.schemas.admin import AdminBook, AdminBookList
from ourbookmark.services.file_service import file_service

logger = logging.getLogger(__name__)


class CatalogService:
    """Stateless; every method receives the request's session."""

    async def find_by_title(self, db: AsyncSession, title: str) -> Optional[Book]:
        result = await db.execute(
            select(Book).where(Book.title == title).order_by(Book.created_at).limit(1)
        )
        return result.scalars().first()

    async def get_or_create_by_title(
        self,
        db: AsyncSession,
        title: str,
        author: Optional[str] = None,
        cover_url: Optional[str] = None,
        isbn_13: Optional[str] = None,
        isbn_10: Optional[str] = None,
        google_books_id: Optional[str] = None,
    ) -> Tuple[Book, bool]:
        """
        Returns:
            (book, created) where created is True for a new row.
        """
        clean_title = (title or "").strip()
        if not clean_title:
            raise ValidationError(message="Book title is required", field="title")

        existing = await self.find_by_title(db, clean_title)
        if existing is not None:
            if cover_url and not existing.cover_url:
                existing.cover_url = cover_url
            if author and not existing.author:
                existing.author = author
            return existing, False

        book = Book(
            title=clean_title,
            author=author or None,
            cover_url=cover_url or None,
            isbn_13=isbn_13 or None,
            isbn_10=isbn_10 or None,
            google_books_id=google_books_id or None,
        )
        db.add(book)
        await db.flush()
        logger.debug("Catalog: inserted book %s '%s'", book.id, clean_title)
        return book, True

    # ── Admin Cover Tools ─────────────────────────────────────────────────

    async def list_books(
        self,
        db: AsyncSession,
        missing_covers_only: bool = False,
        search: Optional[str] = None,
        limit: int = 100,
    ) -> AdminBookList:
        missing = or_(Book.cover_url.is_(None), Book.cover_url == "")

        query = select(Book)
        if missing_covers_only:
            query = query.where(missing)
        if search and search.strip():
            pattern = f"%{search.strip().lower()}%"
            query = query.where(
                or_(func.lower(Book.title).like(pattern), func.lower(Book.author).like(pattern))
            )

        result = await db.execute(query.order_by(Book.title).limit(limit))
        books = result.scalars().all()

        total = (await db.execute(select(func.count()).select_from(Book))).scalar() or 0
        missing_count = (
            await db.execute(select(func.count()).select_from(Book).where(missing))
        ).scalar() or 0

        return AdminBookList(
            books=[AdminBook.model_validate(b) for b in books],
            total_count=total,
            missing_covers=missing_count,
        )

    async def _get(self, db: AsyncSession, book_id: uuid.UUID) -> Book:
        book = await db.get(Book, book_id)
        if book is None:
            raise NotFoundError(resource="book", resource_id=str(book_id))
        return book

    async def set_cover_url(self, db: AsyncSession, book_id: uuid.UUID, cover_url: str) -> AdminBook:
        url = cover_url.strip()
        if not url.startswith(("https://", "http://", "/")):
            raise ValidationError(message="Cover URL must be an http(s) URL", field="cover_url")
        book = await self._get(db, book_id)
        book.cover_url = url
        await db.flush()
        logger.info("Admin: cover set for book %s", book_id)
        return AdminBook.model_validate(book)

    async def clear_cover(self, db: AsyncSession, book_id: uuid.UUID) -> AdminBook:
        book = await self._get(db, book_id)
        book.cover_url = None
        await db.flush()
        logger.info("Admin: cover cleared for book %s", book_id)
        return AdminBook.model_validate(book)

    async def upload_cover(
        self,
        db: AsyncSession,
        book_id: uuid.UUID,
        filename: str,
        content: bytes,
        content_length: Optional[int] = None,
    ) -> AdminBook:
        book = await self._get(db, book_id)
        relative_path = await file_service.store_image(
            folder="covers",
            key=str(book.id),
            filename=filename,
            content=content,
            content_length=content_length,
        )
        book.cover_url = file_service.public_url(relative_path)
        await db.flush()
        logger.info("Admin: cover uploaded for book %s", book_id)
        return AdminBook.model_validate(book)


catalog_service = CatalogService()
