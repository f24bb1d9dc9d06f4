"""
OurBookmark Backend: Book Search Tests
=======================================

What:  The log-form search, cover lookup and reading-room shelf search.
How:   One httpx.MockTransport plays ISBNdb, Google Books and Open Library,
       routing on the request host.

Test Strategy:
    ✅ ISBNdb titles first, author lookup for "First Last" queries
    ✅ Google Books when ISBNdb is empty or down
    ✅ Placeholder covers replaced by Open Library ISBN covers
    ✅ Shelf search drops study guides and duplicates
"""

import httpx
import pytest

from ourbookmark.services.book_search_service import BookSearchService
from ourbookmark.services.isbndb_proxy import IsbndbProxy


def _volume(volume_id, title, language="en", **extra):
    info = {"title": title, "authors": ["Roald Dahl"], "language": language}
    info.update(extra)
    return {"id": volume_id, "volumeInfo": info}


class Upstreams:
    """Answers per host; records the paths each upstream was asked for."""

    def __init__(self, isbndb=None, google=None, open_library=None, isbndb_down=False):
        self.isbndb = isbndb or {}
        self.google = google or {"items": []}
        self.open_library = open_library or {"docs": []}
        self.isbndb_down = isbndb_down
        self.calls = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        host = request.url.host
        self.calls.append((host, request.url.path))
        if host == "api2.isbndb.com":
            if self.isbndb_down:
                raise httpx.ConnectError("down")
            body = self.isbndb.get(request.url.path)
            if body is None:
                return httpx.Response(404, json={"errorMessage": "Not Found"})
            return httpx.Response(200, json=body)
        if host == "www.googleapis.com":
            return httpx.Response(200, json=self.google)
        return httpx.Response(200, json=self.open_library)


def _service(upstreams: Upstreams) -> BookSearchService:
    transport = httpx.MockTransport(upstreams)
    return BookSearchService(proxy=IsbndbProxy(transport=transport), transport=transport)


class TestUnifiedSearch:
    @pytest.mark.asyncio
    async def test_isbndb_results(self):
        upstreams = Upstreams(
            isbndb={
                "/books/matilda": {
                    "books": [
                        {"title": "Matilda", "authors": ["Roald Dahl"],
                         "image": "https://images.isbndb.com/matilda.jpg",
                         "isbn13": "9780142410370", "synopsis": "x" * 300},
                    ]
                }
            }
        )

        response = await _service(upstreams).search("matilda")

        assert [r.title for r in response.results] == ["Matilda"]
        result = response.results[0]
        assert result.source == "isbndb"
        assert result.cover == "https://images.isbndb.com/matilda.jpg"
        assert len(result.description) == 120
        assert all(host != "www.googleapis.com" for host, _ in upstreams.calls)

    @pytest.mark.asyncio
    async def test_author_lookup_for_name_queries(self):
        upstreams = Upstreams(
            isbndb={
                "/author/Roald Dahl": {
                    "books": [{"title": "The BFG", "image": "https://images.isbndb.com/image_not_available.png",
                               "isbn13": "9780142410387"}]
                }
            }
        )

        response = await _service(upstreams).search("Roald Dahl")

        assert [path for _, path in upstreams.calls] == ["/books/Roald Dahl", "/author/Roald Dahl"]
        assert response.results[0].cover == (
            "https://covers.openlibrary.org/b/isbn/9780142410387-M.jpg"
        )

    @pytest.mark.asyncio
    async def test_google_books_when_isbndb_down(self):
        upstreams = Upstreams(
            isbndb_down=True,
            google={
                "items": [
                    _volume(
                        "g1", "Holes",
                        imageLinks={"thumbnail": "http://books.google.com/holes?zoom=1"},
                        industryIdentifiers=[{"type": "ISBN_13", "identifier": "9780440414803"}],
                    )
                ]
            },
        )

        response = await _service(upstreams).search("holes")

        result = response.results[0]
        assert result.source == "google_books"
        assert result.google_books_id == "g1"
        assert result.isbn13 == "9780440414803"
        assert result.cover.startswith("https://books.google.com/")

    @pytest.mark.asyncio
    async def test_blank_query(self):
        upstreams = Upstreams()
        response = await _service(upstreams).search("   ")
        assert response.results == []
        assert upstreams.calls == []


class TestCoverLookup:
    @pytest.mark.asyncio
    async def test_open_library_fallback_prefers_isbn(self):
        upstreams = Upstreams(
            open_library={
                "docs": [
                    {"key": "/works/1", "cover_i": 111, "first_publish_year": 1999},
                    {"key": "/works/2", "isbn": ["9780142410370"], "first_publish_year": 1988},
                ]
            }
        )

        response = await _service(upstreams).cover_for_title("Matilda by Roald Dahl")

        assert response.title == "Matilda"
        assert response.cover_url == "https://covers.openlibrary.org/b/isbn/9780142410370-M.jpg"

    @pytest.mark.asyncio
    async def test_no_cover_found(self):
        response = await _service(Upstreams()).cover_for_title("Nothing Here")
        assert response.cover_url is None


class TestRoomSearch:
    @pytest.mark.asyncio
    async def test_title_mode_filters_and_dedupes(self):
        upstreams = Upstreams(
            google={
                "items": [
                    _volume("a", "Matilda",
                            industryIdentifiers=[{"type": "ISBN_13", "identifier": "9780142410370"}]),
                    _volume("b", "matilda "),
                    _volume("c", "Matilda", subtitle="A Study Guide"),
                    _volume("d", "Matilda", language="fr"),
                ]
            }
        )

        response = await _service(upstreams).room_search("Matilda", mode="title")

        assert [c.google_books_id for c in response.results] == ["a"]
        assert response.results[0].cover_url == (
            "https://covers.openlibrary.org/b/isbn/9780142410370-M.jpg?default=false"
        )

    @pytest.mark.asyncio
    async def test_any_mode_uses_hi_res_thumbnails(self):
        upstreams = Upstreams(
            google={
                "items": [
                    _volume("a", "Matilda",
                            imageLinks={"thumbnail": "http://books.google.com/m?zoom=1"}),
                ]
            }
        )

        response = await _service(upstreams).room_search("matilda", mode="any")

        assert response.results[0].cover_url == "https://books.google.com/m?zoom=0"
