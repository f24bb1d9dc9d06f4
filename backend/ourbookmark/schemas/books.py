"""OurBookmark Backend: Book Search Schemas"""

from typing import List, Optional

from pydantic import BaseModel


class BookResult(BaseModel):
    title: str
    author: str = ""
    cover: Optional[str] = None
    description: str = ""
    isbn13: Optional[str] = None
    isbn10: Optional[str] = None
    google_books_id: Optional[str] = None
    source: str


class BookSearchResponse(BaseModel):
    query: str
    results: List[BookResult]


class CoverLookupResponse(BaseModel):
    title: str
    cover_url: Optional[str] = None


class BookCandidate(BaseModel):
    """A Google Books hit offered when adding a book to a shelf."""

    google_books_id: Optional[str] = None
    title: str
    author: str = ""
    cover_url: Optional[str] = None
    isbn_13: Optional[str] = None
    isbn_10: Optional[str] = None


class BookCandidateList(BaseModel):
    query: str
    mode: str
    results: List[BookCandidate]
