"""
OurBookmark Backend: ISBNdb Proxy Tests
========================================

What:  The server-side ISBNdb relay, at service level and through the
       /api/isbndb routes.
How:   httpx.MockTransport stands in for api2.isbndb.com, so every request
       the proxy makes is captured and answered in-process.

Test Strategy:
    ✅ Key sent as the Authorization header, endpoint used as the path
    ✅ Upstream status relayed unchanged (200, 404, 502)
    ✅ Non-JSON bodies relayed as text
    ✅ Network failure → UpstreamServiceError → 500 JSON body
    ✅ Missing key → ConfigurationError → 500
    ✅ Search shortcut picks /books or /author
"""

from unittest.mock import patch

import httpx
import pytest

from ourbookmark.config import settings
from ourbookmark.exceptions import ConfigurationError, UpstreamServiceError, ValidationError
from ourbookmark.services.isbndb_proxy import IsbndbProxy, isbndb_proxy, strip_param


class Recorder:
    """MockTransport handler that remembers requests and replays one answer."""

    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return self.response


class TestIsbndbProxyService:
    def _proxy(self, recorder: Recorder) -> IsbndbProxy:
        return IsbndbProxy(transport=httpx.MockTransport(recorder))

    @pytest.mark.asyncio
    async def test_forward_sends_key_and_path(self):
        recorder = Recorder(httpx.Response(200, json={"books": [{"title": "Matilda"}]}))

        reply = await self._proxy(recorder).forward("/books/matilda", [("pageSize", "8")])

        assert reply.status_code == 200
        assert reply.is_json is True
        assert reply.body == {"books": [{"title": "Matilda"}]}
        sent = recorder.requests[0]
        assert sent.url.path == "/books/matilda"
        assert sent.url.params["pageSize"] == "8"
        assert sent.headers["Authorization"] == settings.isbndb_api_key

    @pytest.mark.asyncio
    async def test_endpoint_without_leading_slash(self):
        recorder = Recorder(httpx.Response(200, json={}))
        await self._proxy(recorder).forward("book/9780142410370")
        assert recorder.requests[0].url.path == "/book/9780142410370"

    @pytest.mark.asyncio
    async def test_upstream_404_is_relayed(self):
        recorder = Recorder(httpx.Response(404, json={"errorMessage": "Not Found"}))

        reply = await self._proxy(recorder).forward("/book/0000000000")

        assert reply.status_code == 404
        assert reply.body == {"errorMessage": "Not Found"}

    @pytest.mark.asyncio
    async def test_text_body_falls_back_to_text(self):
        recorder = Recorder(httpx.Response(502, text="Bad Gateway"))

        reply = await self._proxy(recorder).forward("/books/matilda")

        assert reply.status_code == 502
        assert reply.is_json is False
        assert reply.body == "Bad Gateway"

    @pytest.mark.asyncio
    async def test_network_error_raises_upstream_error(self):
        recorder = Recorder(error=httpx.ConnectError("Name or service not known"))

        with pytest.raises(UpstreamServiceError) as exc_info:
            await self._proxy(recorder).forward("/books/matilda")
        assert exc_info.value.service == "isbndb"
        assert "Name or service not known" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_missing_key(self):
        recorder = Recorder(httpx.Response(200, json={}))
        with patch.object(settings, "isbndb_api_key", ""):
            with pytest.raises(ConfigurationError, match="ISBNDB_API_KEY not set"):
                await self._proxy(recorder).forward("/books/matilda")
        assert recorder.requests == []

    @pytest.mark.asyncio
    async def test_missing_endpoint(self):
        with pytest.raises(ValidationError, match="Missing endpoint param"):
            await self._proxy(Recorder()).forward(None)

    @pytest.mark.asyncio
    async def test_search_by_author(self):
        recorder = Recorder(httpx.Response(200, json={"authors": []}))

        await self._proxy(recorder).search("roald dahl", page_size=5, search_type="author")

        sent = recorder.requests[0]
        assert sent.url.raw_path.decode().startswith("/author/roald%20dahl")
        assert sent.url.params["pageSize"] == "5"

    @pytest.mark.asyncio
    async def test_search_requires_query(self):
        with pytest.raises(ValidationError, match=r"Missing \?q= parameter"):
            await self._proxy(Recorder()).search("")

    @pytest.mark.asyncio
    async def test_missing_query_reported_before_missing_key(self):
        with patch.object(settings, "isbndb_api_key", ""):
            with pytest.raises(ValidationError, match=r"Missing \?q= parameter"):
                await self._proxy(Recorder()).search(None)

    def test_strip_param(self):
        params = [("endpoint", "/books/x"), ("pageSize", "8"), ("page", "2")]
        assert strip_param(params, "endpoint") == [("pageSize", "8"), ("page", "2")]


class TestIsbndbProxyRoutes:
    """Same relay through FastAPI: status codes and bodies as the browser sees them."""

    @pytest.mark.asyncio
    async def test_endpoint_param_forwarded(self, test_client):
        recorder = Recorder(httpx.Response(200, json={"total": 1}))
        with patch.object(isbndb_proxy, "transport", httpx.MockTransport(recorder)):
            response = await test_client.get(
                "/api/isbndb", params={"endpoint": "/books/matilda", "pageSize": "8"}
            )

        assert response.status_code == 200
        assert response.json() == {"total": 1}
        sent = recorder.requests[0]
        assert sent.url.path == "/books/matilda"
        assert "endpoint" not in sent.url.params

    @pytest.mark.asyncio
    async def test_upstream_status_relayed(self, test_client):
        recorder = Recorder(httpx.Response(404, json={"errorMessage": "Not Found"}))
        with patch.object(isbndb_proxy, "transport", httpx.MockTransport(recorder)):
            response = await test_client.get("/api/isbndb/book/0000000000")

        assert response.status_code == 404
        assert response.json() == {"errorMessage": "Not Found"}
        assert recorder.requests[0].url.path == "/book/0000000000"

    @pytest.mark.asyncio
    async def test_text_relayed_as_text(self, test_client):
        recorder = Recorder(httpx.Response(503, text="Service Unavailable"))
        with patch.object(isbndb_proxy, "transport", httpx.MockTransport(recorder)):
            response = await test_client.get("/api/isbndb/search", params={"q": "matilda"})

        assert response.status_code == 503
        assert response.text == "Service Unavailable"
        assert response.headers["content-type"].startswith("text/plain")
        assert recorder.requests[0].url.path == "/books/matilda"

    @pytest.mark.asyncio
    async def test_network_error_is_500_json(self, test_client):
        recorder = Recorder(error=httpx.ConnectTimeout("timed out"))
        with patch.object(isbndb_proxy, "transport", httpx.MockTransport(recorder)):
            response = await test_client.get("/api/isbndb/books/matilda")

        assert response.status_code == 500
        body = response.json()
        assert body["error"] == "upstream_error"
        assert body["message"] == "timed out"
        assert body["details"] == {"service": "isbndb"}

    @pytest.mark.asyncio
    async def test_missing_key_is_500(self, test_client):
        with patch.object(settings, "isbndb_api_key", ""):
            response = await test_client.get("/api/isbndb/search", params={"q": "matilda"})

        assert response.status_code == 500
        assert response.json()["message"] == "ISBNDB_API_KEY not set"

    @pytest.mark.asyncio
    async def test_missing_endpoint_is_400(self, test_client):
        response = await test_client.get("/api/isbndb")
        assert response.status_code == 400
        assert response.json()["message"] == "Missing endpoint param"
