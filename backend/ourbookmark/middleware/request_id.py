"""
OurBookmark Backend: Request ID Middleware
===========================================

What:  Assigns a short correlation id to each request and echoes it back.
How:   Reuses a client-supplied X-Request-ID when present, otherwise makes a
       new one; stores it in a ContextVar and on request.state.
Who:   Read by the access logger and by every exception handler, which put
       it in the error body so a parent can quote it when reporting a bug.
"""

import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

# Coroutine-local: concurrent requests on one thread each see their own id
request_id_var: ContextVar[str] = ContextVar("request_id", default="")


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Middleware that tags each request with an id for tracing."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        rid = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:8]

        request_id_var.set(rid)
        request.state.request_id = rid

        response = await call_next(request)
        response.headers["X-Request-ID"] = rid
        return response
