"""
Income Records Backend: HTTP Hardening Middleware
====================================================

What:  Security response headers and a request body size limit.
How:   Two small Starlette middlewares registered in create_app().

SecurityHeadersMiddleware sets a conservative header set on every response:
    X-Content-Type-Options: nosniff
    X-Frame-Options: SAMEORIGIN
    Referrer-Policy: no-referrer
    Cross-Origin-Resource-Policy: same-origin
    X-DNS-Prefetch-Control: off
    Strict-Transport-Security: max-age=15552000; includeSubDomains

BodySizeLimitMiddleware rejects requests whose Content-Length exceeds the
configured limit with 413 before the body is read.
"""

import logging
from typing import Dict, Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.types import ASGIApp

from app.exceptions import PayloadTooLargeError, ValidationError
from app.middleware.request_id import request_id_var

logger = logging.getLogger(__name__)

DEFAULT_SECURITY_HEADERS: Dict[str, str] = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "SAMEORIGIN",
    "Referrer-Policy": "no-referrer",
    "Cross-Origin-Resource-Policy": "same-origin",
    "X-DNS-Prefetch-Control": "off",
    "Strict-Transport-Security": "max-age=15552000; includeSubDomains",
}


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Adds DEFAULT_SECURITY_HEADERS (or `headers`) unless a route already set them."""

    def __init__(self, app: ASGIApp, headers: Optional[Dict[str, str]] = None):
        super().__init__(app)
        self.headers = headers if headers is not None else DEFAULT_SECURITY_HEADERS

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        response = await call_next(request)
        for name, value in self.headers.items():
            response.headers.setdefault(name, value)
        return response


class BodySizeLimitMiddleware(BaseHTTPMiddleware):
    """
    Rejects requests declaring a body larger than `max_bytes`.

    Only Content-Length is inspected; chunked uploads are bounded by the
    server's own limits.
    """

    def __init__(self, app: ASGIApp, max_bytes: int = 10_240):
        super().__init__(app)
        self.max_bytes = max_bytes

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        declared = request.headers.get("content-length")
        if declared is None:
            return await call_next(request)

        try:
            size = int(declared)
        except ValueError:
            return self._error(ValidationError(message="Invalid Content-Length header"))

        if size > self.max_bytes:
            logger.warning(
                "Rejected %s %s: body of %d bytes exceeds %d",
                request.method,
                request.url.path,
                size,
                self.max_bytes,
            )
            return self._error(PayloadTooLargeError(max_bytes=self.max_bytes))

        return await call_next(request)

    @staticmethod
    def _error(exc) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "status": exc.status,
                "error": exc.error_code,
                "message": exc.message,
                "details": exc.context or None,
                "request_id": request_id_var.get(""),
            },
        )
