"""
Income Records Backend: Rate Limiting Middleware
===================================================

What:  Per-IP sliding window rate limiter for the /api/ routes.
How:   Keeps the timestamps of each client's recent requests in memory.
Who:   Configured in create_app() from Settings.rate_limit_requests and
       Settings.rate_limit_window.

Algorithm: Sliding Window Log
    1. Each IP gets a deque of request timestamps
    2. On each request, drop timestamps older than the window
    3. If the remaining count >= limit, reject with 429
    4. Otherwise record the current timestamp and pass the request on

    Unlike a fixed window, a client cannot burst 2x the limit across a
    window boundary.

Scope:
    State lives in the process. Each uvicorn worker enforces its own limit.
"""

import logging
import time
from collections import deque
from typing import Callable, Deque, Dict

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.types import ASGIApp

from app.exceptions import RateLimitExceededError
from app.middleware.request_id import request_id_var

logger = logging.getLogger(__name__)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    In-memory sliding window rate limiter.

    Args:
        max_requests:   requests allowed per client within the window
        window_seconds: window length
        path_prefix:    only paths starting with this prefix are limited
        clock:          monotonic time source in seconds

    Response on rate limit:
        HTTP 429 with a Retry-After header (seconds until the oldest
        request leaves the window) and the standard error body.
    """

    # Every N recorded requests, forget clients idle for a whole window
    CLEANUP_EVERY = 1000

    def __init__(
        self,
        app: ASGIApp,
        max_requests: int = 200,
        window_seconds: int = 900,
        path_prefix: str = "/api/",
        clock: Callable[[], float] = time.monotonic,
    ):
        super().__init__(app)
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.path_prefix = path_prefix
        self._clock = clock
        self._requests: Dict[str, Deque[float]] = {}
        self._recorded = 0

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if not request.url.path.startswith(self.path_prefix):
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        now = self._clock()
        window_start = now - self.window_seconds

        timestamps = self._requests.setdefault(client_ip, deque())
        while timestamps and timestamps[0] <= window_start:
            timestamps.popleft()

        if len(timestamps) >= self.max_requests:
            retry_after = int(timestamps[0] + self.window_seconds - now) + 1
            logger.warning(
                "Rate limit exceeded for IP %s: %d requests in %ds window",
                client_ip,
                len(timestamps),
                self.window_seconds,
            )
            exc = RateLimitExceededError(retry_after=retry_after)
            return JSONResponse(
                status_code=exc.status_code,
                content={
                    "status": exc.status,
                    "error": exc.error_code,
                    "message": exc.message,
                    "details": exc.context,
                    "request_id": request_id_var.get(""),
                },
                headers={"Retry-After": str(retry_after)},
            )

        timestamps.append(now)
        self._recorded += 1
        if self._recorded % self.CLEANUP_EVERY == 0:
            self._cleanup_inactive_ips(window_start)

        return await call_next(request)

    def _cleanup_inactive_ips(self, window_start: float) -> None:
        """Drop clients with no request inside the current window."""
        inactive_ips = [
            ip for ip, timestamps in self._requests.items()
            if not timestamps or timestamps[-1] <= window_start
        ]
        for ip in inactive_ips:
            del self._requests[ip]

        if inactive_ips:
            logger.debug("Cleaned up %d inactive IP entries", len(inactive_ips))
