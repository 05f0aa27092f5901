"""
Income Records Backend: Custom Exception Hierarchy
=====================================================

What:  Application-specific exceptions for the different error scenarios.
How:   Each exception class carries a message and optional context dict.
       Global exception handlers (registered in main.py) catch these and
       return structured JSON error responses with correct HTTP status codes.
Who:   Raised by services and middleware; caught by global handlers.

Exception Hierarchy:
    IncomeRecordsError (base)
    ├── ValidationError          → 400 Bad Request (client can fix)
    ├── NotFoundError            → 404 Not Found
    ├── PayloadTooLargeError     → 413 Payload Too Large
    ├── RateLimitExceededError   → 429 Too Many Requests
    └── StoreError               → 500 Internal Server Error

Every error body carries a `status` field: "fail" for 4xx (the client
can fix it), "error" for 5xx.
"""

from typing import Any, Dict, Optional


class IncomeRecordsError(Exception):
    """
    Base exception for all application errors.

    Attributes:
        message:      User-facing error description (safe to return in API response)
        context:      Additional debug info
        status_code:  HTTP status the global handler responds with
        error_code:   Machine-readable error code for the response body
    """

    status_code: int = 500
    error_code: str = "server_error"

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)

    @property
    def status(self) -> str:
        return "fail" if self.status_code < 500 else "error"


class ValidationError(IncomeRecordsError):
    """
    Raised when client input fails validation.

    When:    Missing/invalid record fields, unknown filter operators,
             unknown sort fields, uncoercible filter values.
    HTTP:    400 Bad Request

    Example response:
        {
            "status": "fail",
            "error": "validation_error",
            "message": "amount: Input should be greater than or equal to 0",
            "details": {"field": "amount"}
        }
    """

    status_code = 400
    error_code = "validation_error"

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class NotFoundError(IncomeRecordsError):
    """
    Raised when a requested resource does not exist.

    When:    DELETE /api/records/{id} for an id with no stored record
             (including a malformed id).
    HTTP:    404 Not Found
    """

    status_code = 404
    error_code = "not_found"

    def __init__(
        self,
        message: str = "No record found with that ID",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)


class PayloadTooLargeError(IncomeRecordsError):
    """
    Raised when a request body exceeds the configured size limit.

    HTTP:    413 Payload Too Large
    """

    status_code = 413
    error_code = "payload_too_large"

    def __init__(self, max_bytes: int, context: Optional[Dict[str, Any]] = None):
        ctx = context or {}
        ctx["max_bytes"] = max_bytes
        super().__init__(
            message=f"Request body exceeds the {max_bytes} byte limit",
            context=ctx,
        )
        self.max_bytes = max_bytes


class StoreError(IncomeRecordsError):
    """
    Raised when the record store fails (connectivity or query failure).

    HTTP:    500 Internal Server Error

    Security Note:
        The message returned to the client is always generic.
        Driver details (SQL, constraint names) are logged server-side only.
    """

    status_code = 500
    error_code = "server_error"

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class RateLimitExceededError(IncomeRecordsError):
    """
    Raised when a client exceeds the per-IP request rate limit.

    When:    After rate_limit_requests within rate_limit_window seconds.
    HTTP:    429 Too Many Requests, with a Retry-After header.
    """

    status_code = 429
    error_code = "rate_limit_exceeded"

    def __init__(
        self,
        retry_after: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            "Too many requests from this IP, please try again later "
            f"(retry in {retry_after} seconds)."
        )
        ctx = context or {}
        ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after
