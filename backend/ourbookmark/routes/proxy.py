"""
OurBookmark Backend: ISBNdb Proxy Routes
=========================================

What:  Three ways for the browser to reach ISBNdb without seeing the key.

    GET /api/isbndb?endpoint=/books/matilda&pageSize=8   explicit endpoint
    GET /api/isbndb/search?q=matilda&type=author         search shortcut
    GET /api/isbndb/books/matilda?pageSize=8             path rewrite

Responses carry the upstream status code unchanged. JSON bodies are
relayed as JSON, anything else as text/plain. The search shortcut is
registered before the catch-all so "search" is never read as a path.
"""

import logging

from fastapi import APIRouter, Query, Request, Response
from fastapi.responses import JSONResponse

from ourbookmark.services.isbndb_proxy import ProxyResponse, isbndb_proxy, strip_param

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/isbndb", tags=["ISBNdb Proxy"])


def _relay(reply: ProxyResponse) -> Response:
    if reply.is_json:
        return JSONResponse(status_code=reply.status_code, content=reply.body)
    return Response(
        status_code=reply.status_code,
        content=reply.body,
        media_type="text/plain; charset=utf-8",
    )


@router.get("", summary="Forward ?endpoint= to ISBNdb")
async def forward(request: Request) -> Response:
    params = request.query_params.multi_items()
    endpoint = request.query_params.get("endpoint")
    reply = await isbndb_proxy.forward(endpoint, strip_param(params, "endpoint"))
    return _relay(reply)


@router.get("/search", summary="Search ISBNdb books or authors")
async def search(
    q: str = Query(default=""),
    page_size: int = Query(default=8, alias="pageSize", ge=1, le=1000),
    search_type: str = Query(default="books", alias="type"),
) -> Response:
    reply = await isbndb_proxy.search(q, page_size=page_size, search_type=search_type)
    return _relay(reply)


@router.get("/{path:path}", summary="Forward /api/isbndb/<path> to ISBNdb /<path>")
async def rewrite(path: str, request: Request) -> Response:
    reply = await isbndb_proxy.rewrite(path, request.query_params.multi_items())
    return _relay(reply)
