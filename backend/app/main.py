"""
Income Records Backend: FastAPI Application Factory
======================================================

What:  Creates and configures the FastAPI application instance.
How:   Factory pattern: create_app(settings) returns a configured FastAPI
       instance whose engine, session factory and RecordService are built
       from that explicit Settings object and kept on `app.state`.
Who:   Called by uvicorn (`uvicorn app.main:app`) and by the test suite.

Application Architecture:
    ┌──────────────────────────────────────────────────────────┐
    │                      FastAPI App                         │
    │                                                          │
    │  Middleware Chain:                                       │
    │  CORS → Security → Rate Limit → Req ID → Logging         │
    │       → Body Size → GZip                                 │
    │                                                          │
    │  Routes:                                                 │
    │  POST/GET /api/records · GET /api/records/stats          │
    │  DELETE /api/records/{id} · GET /health                  │
    │                                                          │
    │  Exception Handlers:                                     │
    │  Validation→400 │ NotFound→404 │ Store→500 │ other→500   │
    └──────────────────────────────────────────────────────────┘

Lifecycle:
    Startup:
    1. Initialize logging
    2. Ping the record store; failure aborts startup
    3. Optionally create the schema (DB_CREATE_SCHEMA=true)
    4. Install the event-loop crash handler

    Shutdown (SIGTERM / SIGINT handled by uvicorn):
    1. Restore the previous event-loop exception handler
    2. Dispose the database engine
"""

import asyncio
import logging
import os
import signal
import sys
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app import __version__
from app.config import Settings
from app.database import (
    build_engine,
    build_session_factory,
    create_schema,
    dispose_engine,
    ping_database,
)
from app.exceptions import (
    IncomeRecordsError,
    NotFoundError,
    StoreError,
    ValidationError,
)
from app.middleware.logging import RequestLoggingMiddleware
from app.middleware.rate_limit import RateLimitMiddleware
from app.middleware.request_id import RequestIDMiddleware, request_id_var
from app.middleware.security import BodySizeLimitMiddleware, SecurityHeadersMiddleware
from app.routes import health, records
from app.services.record_service import RecordService

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging(log_level: str = "INFO") -> None:
    """
    Configure logging for the entire application.

    Format: %(asctime)s [%(levelname)s] %(name)s: %(message)s
    Output: stdout (collected by the container runtime)
    """
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # Per-request noise from third-party libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Crash Handling
# ══════════════════════════════════════════════════════════════════════════

def make_crash_handler():
    """
    Build an asyncio exception handler for failures nobody awaited
    (e.g. an exception in a fire-and-forget task).

    The process must not keep serving in an unknown state: the handler
    logs the failure and sends SIGTERM to itself, so uvicorn stops
    accepting requests, drains in-flight ones and runs the shutdown half
    of the lifespan.
    """

    def handle_unhandled_error(loop: asyncio.AbstractEventLoop, context: Dict[str, Any]) -> None:
        exc = context.get("exception")
        logger.critical(
            "UNHANDLED ASYNC ERROR! Shutting down... %s",
            context.get("message", "no message"),
            exc_info=exc,
        )
        os.kill(os.getpid(), signal.SIGTERM)

    return handle_unhandled_error


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan (Startup & Shutdown)
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Startup and shutdown procedures.

    A store that cannot be reached at startup is fatal: StoreError is
    raised out of the lifespan, uvicorn reports "Application startup
    failed" and exits without serving traffic.
    """
    settings: Settings = app.state.settings
    engine = app.state.engine

    # ── Startup ───────────────────────────────────────────────────────────
    setup_logging(settings.log_level)
    logger.info("Income records API %s starting up...", __version__)

    try:
        await ping_database(engine)
    except Exception as e:
        logger.critical("Record store connection failed: %s", str(e))
        await dispose_engine(engine)
        raise StoreError(
            message="Record store is unreachable; refusing to start.",
            context={"error_type": type(e).__name__},
        ) from e
    logger.info("Connected to the record store")

    if settings.db_create_schema:
        await create_schema(engine)
        logger.info("Database schema ensured")

    loop = asyncio.get_running_loop()
    previous_handler = loop.get_exception_handler()
    loop.set_exception_handler(make_crash_handler())

    logger.info("Server ready at http://%s:%d", settings.backend_host, settings.backend_port)

    yield

    # ── Shutdown ──────────────────────────────────────────────────────────
    logger.info("Income records API shutting down...")
    loop.set_exception_handler(previous_handler)
    await dispose_engine(engine)
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def error_body(
    status: str,
    error: str,
    message: str,
    details: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    body: Dict[str, Any] = {
        "status": status,
        "error": error,
        "message": message,
        "request_id": request_id_var.get(""),
    }
    if details:
        body["details"] = details
    return body


def register_exception_handlers(app: FastAPI) -> None:
    """
    Map exception types to HTTP status codes and the standard error body.

    Handler hierarchy:
        ValidationError         → 400
        RequestValidationError  → 400 (FastAPI's own parameter/body checks)
        NotFoundError           → 404
        HTTPException           → its status (unknown routes → 404)
        StoreError              → 500, generic message
        IncomeRecordsError      → its status_code
        Exception               → 500, generic message

    Stack traces and driver messages are logged, never returned.
    """

    @app.exception_handler(ValidationError)
    async def handle_validation_error(request: Request, exc: ValidationError):
        logger.warning("[%s] Validation error: %s", request_id_var.get(""), exc.message)
        return JSONResponse(
            status_code=400,
            content=error_body(exc.status, exc.error_code, exc.message, exc.context),
        )

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation_error(request: Request, exc: RequestValidationError):
        errors = [
            {
                "field": ".".join(str(p) for p in err["loc"] if p not in ("body", "query", "path")),
                "message": err["msg"],
            }
            for err in exc.errors()
        ]
        first = errors[0] if errors else {"field": "", "message": "Invalid request"}
        message = f"{first['field']}: {first['message']}" if first["field"] else first["message"]
        logger.warning("[%s] Request validation error: %s", request_id_var.get(""), message)
        return JSONResponse(
            status_code=400,
            content=error_body("fail", "validation_error", message, {"errors": errors}),
        )

    @app.exception_handler(NotFoundError)
    async def handle_not_found(request: Request, exc: NotFoundError):
        return JSONResponse(
            status_code=404,
            content=error_body(exc.status, exc.error_code, exc.message),
        )

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404:
            message = f"Can't find {request.url.path} on this server!"
        else:
            message = str(exc.detail)
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(
                "fail" if exc.status_code < 500 else "error",
                "not_found" if exc.status_code == 404 else "http_error",
                message,
            ),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(StoreError)
    async def handle_store_error(request: Request, exc: StoreError):
        rid = request_id_var.get("")
        logger.error("[%s] Store error: %s | Context: %s", rid, exc.message, exc.context)
        return JSONResponse(
            status_code=500,
            content=error_body(
                "error",
                exc.error_code,
                "An internal error occurred. Please try again later.",
            ),
        )

    @app.exception_handler(IncomeRecordsError)
    async def handle_app_error(request: Request, exc: IncomeRecordsError):
        logger.warning("[%s] %s: %s", request_id_var.get(""), type(exc).__name__, exc.message)
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(exc.status, exc.error_code, exc.message, exc.context),
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.error(
            "[%s] Unexpected error: %s",
            request_id_var.get(""),
            str(exc),
            exc_info=True,
        )
        return JSONResponse(
            status_code=500,
            content=error_body(
                "error",
                "internal_server_error",
                "An unexpected error occurred. Please try again later.",
            ),
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        settings: explicit configuration; read from the environment when omitted.

    Returns:
        FastAPI instance with `state.settings`, `state.engine`,
        `state.session_factory` and `state.record_service` populated.
        No database connection is opened until startup or the first request.
    """
    settings = settings or Settings()

    app = FastAPI(
        title="Income Records API",
        description="Create, list, filter, delete and summarize income records.",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    engine = build_engine(settings)
    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = build_session_factory(engine)
    app.state.record_service = RecordService(default_limit=settings.default_page_size)

    # ── Register Middleware ───────────────────────────────────────────────
    # Middleware executes in REVERSE order of addition: the last one added
    # (CORS) sees the request first, so 413 and 429 responses carry CORS
    # and security headers too.
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(BodySizeLimitMiddleware, max_bytes=settings.max_body_size)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(
        RateLimitMiddleware,
        max_requests=settings.rate_limit_requests,
        window_seconds=settings.rate_limit_window,
    )
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "X-Total-Count", "Retry-After"],
    )

    # ── Register Exception Handlers ───────────────────────────────────────
    register_exception_handlers(app)

    # ── Register Routes ───────────────────────────────────────────────────
    app.include_router(records.router)
    app.include_router(health.router)

    return app


# uvicorn expects `app.main:app` to be importable
app = create_app()


def run() -> None:
    """Console entry point: serve `app` with uvicorn on the configured host/port."""
    import uvicorn

    settings: Settings = app.state.settings
    uvicorn.run(
        "app.main:app",
        host=settings.backend_host,
        port=settings.backend_port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
