"""
OurBookmark Backend: ISBNdb Proxy
==================================

What:  Forwards book-metadata requests to ISBNdb with the server-held key.
How:   One httpx.AsyncClient per call against ISBNDB_HOST; the key goes in
       the Authorization header. The upstream status is relayed unchanged,
       the body as JSON when it parses and as text otherwise.
Who:   /api/isbndb routes and BookSearchService.

    Browser ──▶ /api/isbndb?endpoint=/books/matilda&pageSize=8
                    │  + Authorization: <ISBNDB_API_KEY>
                    ▼
               api2.isbndb.com/books/matilda?pageSize=8
                    │
    Browser ◀── same status, same body

Errors:
    key not configured        → ConfigurationError    (500)
    endpoint / q missing      → ValidationError       (400)
    DNS, connect, timeout...  → UpstreamServiceError  (500)
    upstream 4xx / 5xx        → relayed as-is, not an error here

Stateless: no retry, no rate limiting, no caching.
"""

import logging
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence, Tuple
from urllib.parse import quote

import httpx

from ourbookmark.config import settings
from ourbookmark.exceptions import ConfigurationError, UpstreamServiceError, ValidationError

logger = logging.getLogger(__name__)

QueryParams = Sequence[Tuple[str, str]]


@dataclass
class ProxyResponse:
    status_code: int
    body: Any
    is_json: bool


class IsbndbProxy:
    """
    Args:
        transport: Optional httpx transport; tests pass httpx.MockTransport.
    """

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.transport = transport

    def _api_key(self) -> str:
        if not settings.isbndb_api_key:
            raise ConfigurationError(message="ISBNDB_API_KEY not set", setting="ISBNDB_API_KEY")
        return settings.isbndb_api_key

    @property
    def configured(self) -> bool:
        return bool(settings.isbndb_api_key)

    async def forward(self, endpoint: Optional[str], params: QueryParams = ()) -> ProxyResponse:
        """
        GET `{ISBNDB_HOST}{endpoint}?{params}` and relay the answer.

        The endpoint is always treated as a path on the ISBNdb host.
        """
        key = self._api_key()
        if not endpoint:
            raise ValidationError(message="Missing endpoint param", field="endpoint")
        path = "/" + endpoint.lstrip("/")

        try:
            async with httpx.AsyncClient(
                base_url=settings.isbndb_host,
                timeout=settings.upstream_timeout_seconds,
                transport=self.transport,
            ) as client:
                response = await client.get(
                    path, params=list(params), headers={"Authorization": key}
                )
        except httpx.HTTPError as e:
            logger.error("ISBNdb request to %s failed: %s", path, str(e))
            raise UpstreamServiceError(
                message=str(e) or "The book service could not be reached. Please try again.",
                service="isbndb",
                context={"endpoint": path},
            )

        if response.status_code >= 400:
            logger.info("ISBNdb %s answered %d", path, response.status_code)

        try:
            return ProxyResponse(response.status_code, response.json(), True)
        except ValueError:
            return ProxyResponse(response.status_code, response.text, False)

    async def search(
        self, q: Optional[str], page_size: int = 8, search_type: str = "books"
    ) -> ProxyResponse:
        """`type=author` searches /author/{q}; anything else /books/{q}."""
        if not q:
            raise ValidationError(message="Missing ?q= parameter", field="q")
        self._api_key()
        kind = "author" if search_type == "author" else "books"
        return await self.forward(f"/{kind}/{quote(q, safe='')}", [("pageSize", str(page_size))])

    async def rewrite(self, path: str, params: QueryParams = ()) -> ProxyResponse:
        """Path-style variant: /api/isbndb/books/matilda → /books/matilda."""
        return await self.forward(path or None, params)


def strip_param(params: QueryParams, name: str) -> List[Tuple[str, str]]:
    return [(k, v) for k, v in params if k != name]


isbndb_proxy = IsbndbProxy()
