"""
OurBookmark Backend: Book Lookup Routes
========================================

What:  Friendly lookups built on the upstream book APIs.

    GET /api/books/search?q=         log-form search (ISBNdb → Google Books)
    GET /api/books/cover?title=      best cover for an already-logged title
    GET /api/books/room-search?q=&mode=title|author|any
                                     shelf-builder search for reading rooms

Unlike the raw proxy these never relay upstream failures: a source that
is down is skipped and the caller may get an empty list.
"""

from fastapi import APIRouter, Query

from ourbookmark.schemas.books import BookCandidateList, BookSearchResponse, CoverLookupResponse
from ourbookmark.services.book_search_service import book_search_service

router = APIRouter(prefix="/api/books", tags=["Books"])


@router.get("/search", response_model=BookSearchResponse)
async def search_books(
    q: str = Query(default=""),
    max_results: int = Query(default=8, alias="maxResults", ge=1, le=40),
) -> BookSearchResponse:
    return await book_search_service.search(q, max_results)


@router.get("/cover", response_model=CoverLookupResponse)
async def cover_for_title(title: str = Query(default="")) -> CoverLookupResponse:
    return await book_search_service.cover_for_title(title)


@router.get("/room-search", response_model=BookCandidateList)
async def room_search(
    q: str = Query(default=""),
    mode: str = Query(default="title", pattern="^(title|author|any)$"),
) -> BookCandidateList:
    return await book_search_service.room_search(q, mode)
