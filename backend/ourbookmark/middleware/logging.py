"""
OurBookmark Backend: Request Logging Middleware
================================================

What:  One structured access-log line per HTTP request.
How:   Measures wall time around the downstream app and logs method, path,
       status, duration, request id and which data scope served the call.

Scope field:
    "account" when an Authorization header is present, "device" when only
    X-Device-ID is sent, "-" otherwise. Token and device id values are
    never logged.

What we do NOT log: request bodies (children's names, notes), auth headers,
device ids, or query strings (search terms, proxy endpoints).
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from ourbookmark.middleware.request_id import request_id_var

logger = logging.getLogger("ourbookmark.access")

QUIET_PATHS = {"/health"}


def _scope_label(request: Request) -> str:
    if request.headers.get("Authorization"):
        return "account"
    if request.headers.get("X-Device-ID"):
        return "device"
    return "-"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Logs each request at a level chosen by the response status:
    5xx → ERROR, 4xx → WARNING, everything else → INFO.
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if request.url.path in QUIET_PATHS:
            return await call_next(request)

        start_time = time.perf_counter()
        client_ip = request.client.host if request.client else "unknown"
        method = request.method
        path = request.url.path
        scope = _scope_label(request)

        response = await call_next(request)

        duration_ms = (time.perf_counter() - start_time) * 1000
        rid = request_id_var.get("")
        status = response.status_code
        if status >= 500:
            log_level = logging.ERROR
        elif status >= 400:
            log_level = logging.WARNING
        else:
            log_level = logging.INFO

        logger.log(
            log_level,
            "%s %s %d %.1fms [%s] scope=%s from %s",
            method,
            path,
            status,
            duration_ms,
            rid,
            scope,
            client_ip,
            extra={
                "request_id": rid,
                "method": method,
                "path": path,
                "status": status,
                "duration_ms": round(duration_ms, 2),
                "scope": scope,
                "client_ip": client_ip,
            },
        )

        return response
