"""
OurBookmark Backend: Auth Rate Limiting Middleware
===================================================

What:  Per-IP sliding window limit on the credential endpoints.
Why:   Sign-in, sign-up and the admin password gate accept guesses; the
       rest of the API (tracker, proxies, public rooms) is not throttled.
How:   Keeps a list of request timestamps per (IP, path prefix) in memory,
       drops those older than the window, rejects with 429 once the window
       holds `rate_limit_requests` entries.

Single-process only. Several workers each keep their own window.
"""

import logging
import time
from collections import defaultdict
from typing import Dict, List, Optional, Tuple

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from ourbookmark.config import settings
from ourbookmark.exceptions import RateLimitExceededError

logger = logging.getLogger(__name__)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    In-memory sliding window limiter for credential endpoints.

    Configuration (from settings):
        rate_limit_requests: Max attempts per window
        rate_limit_window:   Window duration in seconds
    """

    PROTECTED_PREFIXES = ("/api/auth/", "/api/admin/")

    def __init__(self, app, **kwargs):
        super().__init__(app, **kwargs)
        self._requests: Dict[Tuple[str, str], List[float]] = defaultdict(list)

    def _protected_prefix(self, path: str) -> Optional[str]:
        for prefix in self.PROTECTED_PREFIXES:
            if path.startswith(prefix):
                return prefix
        return None

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        prefix = self._protected_prefix(request.url.path)
        if prefix is None:
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        key = (client_ip, prefix)

        now = time.time()
        window_start = now - settings.rate_limit_window

        # ── Sliding Window: Clean old entries ─────────────────────────────
        self._requests[key] = [ts for ts in self._requests[key] if ts > window_start]

        # ── Check rate limit ──────────────────────────────────────────────
        if len(self._requests[key]) >= settings.rate_limit_requests:
            oldest = self._requests[key][0]
            retry_after = int(oldest + settings.rate_limit_window - now) + 1

            logger.warning(
                "Rate limit exceeded for IP %s on %s: %d requests in %ds window",
                client_ip,
                prefix,
                len(self._requests[key]),
                settings.rate_limit_window,
            )

            exc = RateLimitExceededError(retry_after=retry_after)
            return JSONResponse(
                status_code=429,
                content={
                    "error": "rate_limit_exceeded",
                    "message": exc.message,
                    "details": exc.context,
                },
                headers={"Retry-After": str(exc.retry_after)},
            )

        self._requests[key].append(now)

        # ── Periodic cleanup of inactive keys ─────────────────────────────
        if sum(len(v) for v in self._requests.values()) % 1000 == 0:
            self._cleanup_inactive(window_start)

        return await call_next(request)

    def _cleanup_inactive(self, window_start: float) -> None:
        """Forget keys with no request inside the current window."""
        inactive = [
            key for key, timestamps in self._requests.items()
            if not timestamps or max(timestamps) < window_start
        ]
        for key in inactive:
            del self._requests[key]

        if inactive:
            logger.debug("Cleaned up %d inactive rate-limit entries", len(inactive))
