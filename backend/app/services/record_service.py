"""
Income Records Backend: Record Service (Business Logic)
==========================================================

What:  The four record operations: create, list, delete, stats.
How:   Each method receives the request's AsyncSession, runs one or two
       statements, and translates driver failures into StoreError.
Who:   Called by the route handlers in app.routes.records.

Design Decision:
    RecordService holds no per-request state; the only configuration it
    keeps is the default page size handed over by create_app(). Sessions
    are passed per call so tests can substitute a mock session.

Error Handling Strategy:
    - pydantic validation failures → ValidationError (400)
    - delete of a missing id      → NotFoundError (404)
    - any SQLAlchemyError         → StoreError (500), details logged only
    Application exceptions raised inside a method propagate unchanged.
"""

import logging
import math
import uuid
from datetime import datetime, timezone
from typing import Any, Iterable, List, Mapping, Optional, Tuple

import pydantic
from sqlalchemy import delete, desc, asc, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import NotFoundError, StoreError, ValidationError
from app.models.record import DEFAULT_CATEGORY, IncomeRecord
from app.schemas.record import (
    CategoryStats,
    RecordCreate,
    RecordListData,
    RecordListResponse,
    RecordResponse,
    StatsResponse,
)
from app.services.query_builder import (
    build_order_by,
    build_where,
    parse_filters,
    parse_sort,
)

logger = logging.getLogger(__name__)

# LIMIT / OFFSET are bound as signed 64-bit integers by every supported driver
MAX_SQL_INTEGER = 2**63 - 1


def _validation_error_from_pydantic(exc: pydantic.ValidationError) -> ValidationError:
    """Convert pydantic's error list into our field-level ValidationError."""
    errors = exc.errors()
    first = errors[0]
    field = ".".join(str(part) for part in first["loc"]) or "body"
    if first["type"] == "missing":
        message = f"{field.capitalize()} is required"
    else:
        message = f"{field}: {first['msg'].removeprefix('Value error, ')}"
    return ValidationError(
        message=message,
        field=field,
        context={
            "errors": [
                {"field": ".".join(str(p) for p in e["loc"]), "message": e["msg"]}
                for e in errors
            ]
        },
    )


class RecordService:
    """
    Business logic layer for income records.

    Responsibilities:
        - create_record(): validate, default, persist
        - list_records(): filter, sort, paginate, count
        - delete_record(): permanent delete by id
        - get_stats(): totals, average and per-category breakdown
    """

    def __init__(self, default_limit: int = 10):
        self.default_limit = default_limit

    # ── Create ────────────────────────────────────────────────────────────

    async def create_record(
        self, db: AsyncSession, payload: Mapping[str, Any]
    ) -> RecordResponse:
        """
        Validate `payload` and store a new record.

        Defaults:
            date     → now (UTC) when omitted
            category → "Other" when omitted or null

        Raises:
            ValidationError: invalid/missing description, amount, date or category
            StoreError: insert failed
        """
        try:
            data = RecordCreate.model_validate(payload)
        except pydantic.ValidationError as e:
            raise _validation_error_from_pydantic(e)

        now = datetime.now(timezone.utc)
        record = IncomeRecord(
            id=uuid.uuid4(),
            description=data.description,
            amount=data.amount,
            date=data.date or now,
            category=data.category or DEFAULT_CATEGORY,
            created_at=now,
            updated_at=now,
        )

        try:
            db.add(record)
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error("Database error creating record: %s", str(e), exc_info=True)
            raise StoreError(
                message="Could not save the record. Please try again.",
                context={"error_type": type(e).__name__},
            )

        logger.info(
            "Record created: %s (%s, %.2f)", record.id, record.category, record.amount
        )
        return RecordResponse.from_model(record)

    # ── List ──────────────────────────────────────────────────────────────

    async def list_records(
        self,
        db: AsyncSession,
        params: Iterable[Tuple[str, str]] = (),
        sort: Optional[str] = None,
        page: int = 1,
        limit: Optional[int] = None,
    ) -> RecordListResponse:
        """
        Return one page of records matching `params`.

        Pagination:
            page and limit below 1 are clamped to 1
            LIMIT or OFFSET beyond a 64-bit integer → ValidationError
            skip = (page - 1) * limit
            totalPages = ceil(total / limit)

        Query plan:
            SELECT ... WHERE <predicates> ORDER BY <sort>, id LIMIT :limit OFFSET :skip
            SELECT count(*) ... WHERE <predicates>

        Raises:
            ValidationError: bad filter operator/value or sort field
            StoreError: query failed
        """
        page = max(1, page)
        limit = max(1, limit if limit is not None else self.default_limit)
        skip = (page - 1) * limit
        if limit > MAX_SQL_INTEGER or skip > MAX_SQL_INTEGER:
            raise ValidationError(
                message="page or limit is out of range",
                field="limit" if limit > MAX_SQL_INTEGER else "page",
            )

        where = build_where(parse_filters(params))
        order_by = build_order_by(parse_sort(sort))

        query = select(IncomeRecord)
        count_query = select(func.count()).select_from(IncomeRecord)
        if where is not None:
            query = query.where(where)
            count_query = count_query.where(where)
        query = query.order_by(*order_by).offset(skip).limit(limit)

        try:
            result = await db.execute(query)
            records = list(result.scalars().all())
            count_result = await db.execute(count_query)
            total = count_result.scalar() or 0
        except SQLAlchemyError as e:
            logger.error("Database error listing records: %s", str(e), exc_info=True)
            raise StoreError(
                message="Could not retrieve records. Please try again.",
                context={"error_type": type(e).__name__},
            )

        return RecordListResponse(
            results=len(records),
            total=total,
            total_pages=math.ceil(total / limit),
            current_page=page,
            data=RecordListData(records=[RecordResponse.from_model(r) for r in records]),
        )

    # ── Delete ────────────────────────────────────────────────────────────

    async def delete_record(self, db: AsyncSession, record_id: str) -> None:
        """
        Permanently delete the record with `record_id`.

        A single DELETE statement decides the outcome through its row count,
        so of two concurrent deletes of the same id only one succeeds.

        Raises:
            NotFoundError: no such record (also for malformed ids)
            StoreError: delete failed
        """
        try:
            parsed_id = uuid.UUID(str(record_id))
        except ValueError:
            raise NotFoundError(resource_id=str(record_id))

        try:
            result = await db.execute(
                delete(IncomeRecord).where(IncomeRecord.id == parsed_id)
            )
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error("Database error deleting record %s: %s", parsed_id, str(e))
            raise StoreError(
                message="Could not delete the record. Please try again.",
                context={"record_id": str(parsed_id)},
            )

        if not result.rowcount:
            raise NotFoundError(resource_id=str(parsed_id))
        logger.info("Record deleted: %s", parsed_id)

    # ── Stats ─────────────────────────────────────────────────────────────

    async def get_stats(self, db: AsyncSession) -> StatsResponse:
        """
        Aggregate the whole collection.

        Query plan:
            SELECT count(*), coalesce(sum(amount), 0) FROM income_records
            SELECT category, sum(amount), count(*) FROM income_records
                GROUP BY category ORDER BY sum(amount) DESC, category ASC

        Raises:
            StoreError: aggregation failed
        """
        category_total = func.sum(IncomeRecord.amount).label("total")
        try:
            totals = await db.execute(
                select(
                    func.count(IncomeRecord.id),
                    func.coalesce(func.sum(IncomeRecord.amount), 0.0),
                )
            )
            count, total_amount = totals.one()

            grouped = await db.execute(
                select(
                    IncomeRecord.category,
                    category_total,
                    func.count(IncomeRecord.id).label("count"),
                )
                .group_by(IncomeRecord.category)
                .order_by(desc(category_total), asc(IncomeRecord.category))
            )
            rows = grouped.all()
        except SQLAlchemyError as e:
            logger.error("Database error computing stats: %s", str(e), exc_info=True)
            raise StoreError(
                message="Could not compute statistics. Please try again.",
                context={"error_type": type(e).__name__},
            )

        count = int(count or 0)
        total_amount = float(total_amount or 0)
        categories: List[CategoryStats] = [
            CategoryStats(category=row[0], total=round(float(row[1] or 0), 2), count=int(row[2]))
            for row in rows
        ]
        return StatsResponse(
            total_amount=round(total_amount, 2),
            count=count,
            average=round(total_amount / count, 2) if count else 0.0,
            categories=categories,
        )
