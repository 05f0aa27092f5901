"""
Income Records Backend: Health Check Route
=============================================

What:  Liveness endpoint with a store connectivity probe.
How:   Runs `SELECT 1` through the app's engine and reports the result.
       The endpoint itself always answers 200 with status "running";
       `database` tells monitors whether the store is reachable.
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Request

from app import __version__
from app.database import ping_database
from app.schemas.record import HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
)
async def health_check(request: Request) -> HealthResponse:
    db_status = "connected"
    try:
        await ping_database(request.app.state.engine)
    except Exception as e:
        db_status = "disconnected"
        logger.warning("Health check: database unreachable: %s", str(e))

    return HealthResponse(
        status="running",
        message="Income records API is running",
        timestamp=datetime.now(timezone.utc),
        version=__version__,
        database=db_status,
    )
