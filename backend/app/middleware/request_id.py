"""
Income Records Backend: Request ID Middleware
================================================

What:  Assigns a short unique ID to each incoming request and returns it
       in the X-Request-ID response header.
How:   Reuses a client-provided X-Request-ID when present, otherwise
       generates one; stores it in a ContextVar so loggers and exception
       handlers can include it.
"""

import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

# Coroutine-local: concurrent requests on one event loop each see their own ID
request_id_var: ContextVar[str] = ContextVar("request_id", default="")


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Middleware that assigns a unique ID to each request for tracing.

    Behavior:
        1. Use the client's X-Request-ID header if sent
        2. Otherwise generate an 8-character ID from a UUID4
        3. Store in request_id_var and request.state.request_id
        4. Echo it back in the X-Request-ID response header
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        rid = request.headers.get("X-Request-ID") or str(uuid.uuid4())[:8]

        request_id_var.set(rid)
        request.state.request_id = rid

        response = await call_next(request)
        response.headers["X-Request-ID"] = rid
        return response
