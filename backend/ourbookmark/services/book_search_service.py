"""
OurBookmark Backend: Book Search Service
=========================================

What:  Book lookup for the log form, cover lookup for existing logs, and
       the shelf-builder search of the reading room.
How:   ISBNdb (through IsbndbProxy) first, then the public Google Books and
       Open Library APIs over httpx.
Who:   /api/books routes.

Fallback chain (unified search):

    ISBNdb /books/{q} ──(empty)──▶ ISBNdb /author/{q} ──(empty)──▶ Google Books
                                   only for "First Last"
                                   style queries

Each step that fails is logged and the next one is tried; the caller gets
an empty list rather than an error when every source is down.
"""

import logging
from typing import Any, List, Optional
from urllib.parse import quote

import httpx

from ourbookmark.config import settings
from ourbookmark.exceptions import OurBookmarkError
from ourbookmark.schemas.books import (
    BookCandidate,
    BookCandidateList,
    BookResult,
    BookSearchResponse,
    CoverLookupResponse,
)
from ourbookmark.services.book_text import (
    best_cover,
    dedupe_by_title,
    is_junk_edition,
    looks_like_author,
    title_only,
)
from ourbookmark.services.isbndb_proxy import IsbndbProxy, isbndb_proxy

logger = logging.getLogger(__name__)

DESCRIPTION_LIMIT = 120
ROOM_RESULT_LIMIT = 8
ROOM_FETCH_SIZE = 20
QUICK_FETCH_SIZE = 6


def _identifier(volume: dict, kind: str) -> Optional[str]:
    for ident in volume.get("industryIdentifiers") or []:
        if ident.get("type") == kind:
            return ident.get("identifier")
    return None


def _https(url: Optional[str]) -> Optional[str]:
    return url.replace("http:", "https:", 1) if url else None


class BookSearchService:
    """
    Args:
        proxy: IsbndbProxy used for ISBNdb calls.
        transport: Optional httpx transport for Google Books / Open Library.
    """

    def __init__(
        self,
        proxy: Optional[IsbndbProxy] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.proxy = proxy or isbndb_proxy
        self.transport = transport

    # ── Upstream Calls ────────────────────────────────────────────────────

    async def _isbndb_books(self, path: str, page_size: int) -> List[dict]:
        try:
            reply = await self.proxy.forward(
                path, [("pageSize", str(page_size)), ("language", "en")]
            )
        except OurBookmarkError as e:
            logger.warning("ISBNdb lookup %s failed: %s", path, e.message)
            return []
        if reply.status_code != 200 or not isinstance(reply.body, dict):
            return []
        books = reply.body.get("books")
        return books if isinstance(books, list) else []

    async def _get_json(self, url: str, params: dict, service: str) -> Any:
        try:
            async with httpx.AsyncClient(
                timeout=settings.upstream_timeout_seconds, transport=self.transport
            ) as client:
                response = await client.get(url, params=params)
        except httpx.HTTPError as e:
            logger.warning("%s request failed: %s", service, str(e))
            return None
        if response.status_code != 200:
            logger.info("%s answered %d", service, response.status_code)
            return None
        try:
            return response.json()
        except ValueError:
            logger.warning("%s returned a non-JSON body", service)
            return None

    async def _google_volumes(self, q: str, max_results: int, **extra: str) -> List[dict]:
        params = {"q": q, "maxResults": str(max_results), **extra}
        if settings.google_books_api_key:
            params["key"] = settings.google_books_api_key
        data = await self._get_json(
            f"{settings.google_books_host}/volumes", params, "Google Books"
        )
        items = data.get("items") if isinstance(data, dict) else None
        return items if isinstance(items, list) else []

    # ══════════════════════════════════════════════════════════════════════
    # Unified Search (log form)
    # ══════════════════════════════════════════════════════════════════════

    def _from_isbndb(self, b: dict) -> BookResult:
        return BookResult(
            title=b.get("title") or "Unknown",
            author=(b.get("authors") or [""])[0] or "",
            cover=best_cover(b.get("image"), b.get("isbn13"), b.get("isbn")),
            description=(b.get("synopsis") or b.get("overview") or "")[:DESCRIPTION_LIMIT],
            isbn13=b.get("isbn13") or None,
            isbn10=b.get("isbn") or None,
            source="isbndb",
        )

    def _from_google(self, item: dict) -> BookResult:
        v = item.get("volumeInfo") or {}
        isbn13 = _identifier(v, "ISBN_13")
        isbn10 = _identifier(v, "ISBN_10")
        return BookResult(
            title=v.get("title") or "Unknown",
            author=(v.get("authors") or [""])[0] or "",
            cover=best_cover(_https((v.get("imageLinks") or {}).get("thumbnail")), isbn13, isbn10),
            description=(v.get("description") or "")[:DESCRIPTION_LIMIT],
            isbn13=isbn13,
            isbn10=isbn10,
            google_books_id=item.get("id"),
            source="google_books",
        )

    async def search(self, query: str, max_results: int = 8) -> BookSearchResponse:
        q = (query or "").strip()
        if not q:
            return BookSearchResponse(query=q, results=[])

        books = await self._isbndb_books(f"/books/{quote(q, safe='')}", max_results)
        if not books and looks_like_author(q):
            books = await self._isbndb_books(f"/author/{quote(q, safe='')}", max_results)
        if books:
            return BookSearchResponse(query=q, results=[self._from_isbndb(b) for b in books])

        items = await self._google_volumes(q, max_results, printType="books")
        return BookSearchResponse(query=q, results=[self._from_google(i) for i in items])

    # ══════════════════════════════════════════════════════════════════════
    # Cover Lookup
    # ══════════════════════════════════════════════════════════════════════

    async def cover_for_title(self, book_title: str) -> CoverLookupResponse:
        """
        Best cover for a logged title ("Title by Author" is trimmed to Title).

        ISBNdb first; then Open Library, preferring editions with an ISBN,
        then the newest first-publish year, then one with a cover id.
        """
        title = title_only(book_title)
        if not title:
            return CoverLookupResponse(title="", cover_url=None)

        books = await self._isbndb_books(f"/books/{quote(title, safe='')}", 1)
        if books:
            b = books[0]
            cover = best_cover(b.get("image"), b.get("isbn13"), b.get("isbn"))
            if cover:
                return CoverLookupResponse(title=title, cover_url=cover)

        data = await self._get_json(
            f"{settings.open_library_host}/search.json",
            {"title": title, "limit": "10"},
            "Open Library",
        )
        docs = data.get("docs") if isinstance(data, dict) else None
        if not docs:
            return CoverLookupResponse(title=title, cover_url=None)

        candidates = [
            d for d in docs
            if isinstance(d, dict)
            and (d.get("cover_i") or d.get("isbn") or d.get("edition_key") or d.get("key"))
        ]
        candidates.sort(
            key=lambda d: (
                -(1 if d.get("isbn") else 0),
                -(d.get("first_publish_year") or 0),
                -(1 if d.get("cover_i") else 0),
            )
        )
        best = candidates[0] if candidates else docs[0]
        covers = settings.open_library_covers_host

        cover_url = None
        if best.get("isbn"):
            cover_url = f"{covers}/b/isbn/{best['isbn'][0]}-M.jpg"
        elif best.get("cover_i"):
            cover_url = f"{covers}/b/id/{best['cover_i']}-M.jpg"
        elif best.get("edition_key"):
            cover_url = f"{covers}/b/olid/{best['edition_key'][0]}-M.jpg"
        return CoverLookupResponse(title=title, cover_url=cover_url)

    # ══════════════════════════════════════════════════════════════════════
    # Reading-Room Shelf Builder
    # ══════════════════════════════════════════════════════════════════════

    async def room_search(self, query: str, mode: str = "title") -> BookCandidateList:
        """
        Google Books search for shelf curation.

        mode "title" / "author": intitle:"q" or inauthor:"q", English only,
            junk editions removed, deduplicated, top 8.
        mode "any": the quick search on the room page, 6 raw hits with
            hi-res thumbnails.
        """
        q = (query or "").strip()
        if not q:
            return BookCandidateList(query=q, mode=mode, results=[])

        if mode == "any":
            items = await self._google_volumes(q, QUICK_FETCH_SIZE)
            results = []
            for item in items:
                v = item.get("volumeInfo") or {}
                thumb = _https((v.get("imageLinks") or {}).get("thumbnail"))
                results.append(
                    BookCandidate(
                        google_books_id=item.get("id"),
                        title=v.get("title") or "Untitled",
                        author=", ".join(v.get("authors") or []),
                        cover_url=thumb.replace("zoom=1", "zoom=0") if thumb else None,
                        isbn_13=_identifier(v, "ISBN_13"),
                        isbn_10=_identifier(v, "ISBN_10"),
                    )
                )
            return BookCandidateList(query=q, mode=mode, results=results)

        prefix = "inauthor" if mode == "author" else "intitle"
        items = await self._google_volumes(
            f'{prefix}:"{q}"', ROOM_FETCH_SIZE, printType="books", langRestrict="en"
        )

        kept = []
        for item in items:
            v = item.get("volumeInfo") or {}
            if v.get("language") != "en":
                continue
            label = f"{v.get('title') or ''} {v.get('subtitle') or ''}"
            if is_junk_edition(label, v.get("categories") or []):
                continue
            isbn13 = _identifier(v, "ISBN_13")
            isbn10 = _identifier(v, "ISBN_10")
            cover = _https((v.get("imageLinks") or {}).get("thumbnail"))
            if not cover and (isbn13 or isbn10):
                cover = f"{settings.open_library_covers_host}/b/isbn/{isbn13 or isbn10}-M.jpg?default=false"
            kept.append(
                {
                    "google_books_id": item.get("id"),
                    "title": v.get("title") or "Untitled",
                    "author": ", ".join(v.get("authors") or []),
                    "cover_url": cover,
                    "isbn_13": isbn13,
                    "isbn_10": isbn10,
                }
            )

        unique = dedupe_by_title(kept)[:ROOM_RESULT_LIMIT]
        return BookCandidateList(
            query=q, mode=mode, results=[BookCandidate(**c) for c in unique]
        )


book_search_service = BookSearchService()
