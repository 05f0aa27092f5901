"""
Income Records Backend: Record Route Handlers
===============================================

What:  HTTP surface of the RecordService.
How:   Extracts body / query / path values, calls the service held on
       app.state, and returns the enveloped response models.
Who:   Called by the browser client and any API consumer.

Status codes:
    201 created · 200 list/stats · 204 deleted
    400 invalid input · 404 unknown id · 429 rate limited · 500 store failure
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Query, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db_session
from app.schemas.record import (
    ErrorResponse,
    RecordCreatedResponse,
    RecordData,
    RecordListResponse,
    StatsResponse,
)
from app.services.record_service import RecordService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Records"])


def get_record_service(request: Request) -> RecordService:
    """The RecordService built by create_app() for this application."""
    return request.app.state.record_service


@router.post(
    "/records",
    status_code=201,
    response_model=RecordCreatedResponse,
    responses={
        400: {"description": "Invalid record fields", "model": ErrorResponse},
        413: {"description": "Request body too large", "model": ErrorResponse},
        500: {"description": "Store error", "model": ErrorResponse},
    },
    summary="Create an income record",
)
async def create_record(
    payload: Dict[str, Any] = Body(
        ...,
        examples=[{"description": "Freelance gig", "amount": 250, "category": "Freelance"}],
    ),
    db: AsyncSession = Depends(get_db_session),
    service: RecordService = Depends(get_record_service),
) -> RecordCreatedResponse:
    """
    Create a record from `{description, amount, date?, category?}`.

    Validation happens in RecordService so the same rules apply to every
    caller; failures surface as 400 with the offending field.
    """
    record = await service.create_record(db, payload)
    return RecordCreatedResponse(data=RecordData(record=record))


@router.get(
    "/records",
    response_model=RecordListResponse,
    responses={
        400: {"description": "Invalid filter, sort or pagination value", "model": ErrorResponse},
        500: {"description": "Store error", "model": ErrorResponse},
    },
    summary="List records with filtering, sorting and pagination",
    description=(
        "Any other query parameter is a filter on a record field: `category=Salary`, "
        "`amount[gte]=100`, `date__lt=2024-01-01`. Supported range operators: "
        "gte, gt, lte, lt."
    ),
)
async def list_records(
    request: Request,
    response: Response,
    sort: Optional[str] = Query(
        default=None,
        description="Comma-separated fields, '-' prefix for descending. Default: -date",
    ),
    page: int = Query(default=1, ge=1, description="1-based page number"),
    limit: Optional[int] = Query(default=None, ge=1, description="Page size (default 10)"),
    db: AsyncSession = Depends(get_db_session),
    service: RecordService = Depends(get_record_service),
) -> RecordListResponse:
    result = await service.list_records(
        db,
        params=request.query_params.multi_items(),
        sort=sort,
        page=page,
        limit=limit,
    )
    response.headers["X-Total-Count"] = str(result.total)
    return result


@router.get(
    "/records/stats",
    response_model=StatsResponse,
    responses={500: {"description": "Store error", "model": ErrorResponse}},
    summary="Aggregate statistics over all records",
)
async def record_stats(
    db: AsyncSession = Depends(get_db_session),
    service: RecordService = Depends(get_record_service),
) -> StatsResponse:
    return await service.get_stats(db)


@router.delete(
    "/records/{record_id}",
    status_code=204,
    response_class=Response,
    responses={
        404: {"description": "No record with that ID", "model": ErrorResponse},
        500: {"description": "Store error", "model": ErrorResponse},
    },
    summary="Delete a record permanently",
)
async def delete_record(
    record_id: str,
    db: AsyncSession = Depends(get_db_session),
    service: RecordService = Depends(get_record_service),
) -> Response:
    """
    Delete is not idempotent in its outcome: the first call returns 204,
    any later call for the same id returns 404.
    """
    await service.delete_record(db, record_id)
    return Response(status_code=204)
