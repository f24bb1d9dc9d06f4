"""
OurBookmark Backend: Admin Cover Routes
========================================

What:  Cover-art maintenance for the shared `books` catalog.
Who:   The admin page, behind the X-Admin-Password header.

The per-IP limiter in middleware/rate_limit.py covers these paths so the
password cannot be guessed quickly.
"""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, File, Query, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from ourbookmark.database import get_db_session
from ourbookmark.dependencies import require_admin
from ourbookmark.schemas.admin import AdminBook, AdminBookList, CoverUpdate
from ourbookmark.schemas.common import ErrorResponse
from ourbookmark.services.catalog_service import catalog_service

router = APIRouter(
    prefix="/api/admin",
    tags=["Admin"],
    dependencies=[Depends(require_admin)],
    responses={
        401: {"description": "Password missing", "model": ErrorResponse},
        403: {"description": "Wrong password", "model": ErrorResponse},
    },
)


@router.get("/books", response_model=AdminBookList)
async def list_books(
    missing_covers: bool = Query(default=False, alias="missingCovers"),
    search: Optional[str] = Query(default=None),
    limit: int = Query(default=100, ge=1, le=500),
    db: AsyncSession = Depends(get_db_session),
) -> AdminBookList:
    return await catalog_service.list_books(
        db, missing_covers_only=missing_covers, search=search, limit=limit
    )


@router.post("/books/{book_id}/cover", response_model=AdminBook, summary="Upload a cover image")
async def upload_cover(
    book_id: uuid.UUID,
    file: UploadFile = File(...),
    db: AsyncSession = Depends(get_db_session),
) -> AdminBook:
    content = await file.read()
    return await catalog_service.upload_cover(
        db,
        book_id,
        filename=file.filename or "cover",
        content=content,
        content_length=file.size,
    )


@router.put("/books/{book_id}/cover", response_model=AdminBook, summary="Point at a cover URL")
async def set_cover_url(
    book_id: uuid.UUID, payload: CoverUpdate, db: AsyncSession = Depends(get_db_session)
) -> AdminBook:
    return await catalog_service.set_cover_url(db, book_id, payload.cover_url)


@router.delete("/books/{book_id}/cover", response_model=AdminBook)
async def clear_cover(book_id: uuid.UUID, db: AsyncSession = Depends(get_db_session)) -> AdminBook:
    return await catalog_service.clear_cover(db, book_id)
