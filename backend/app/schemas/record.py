"""
Income Records Backend: Pydantic Request/Response Schemas
============================================================

What:  Pydantic models defining the API contract between clients and backend.
How:   RecordService validates raw JSON bodies with `RecordCreate`; route
       handlers return the response models, which FastAPI serializes and
       documents in the OpenAPI schema.

Response shapes:
    POST   /api/records        → {status, data: {record}}
    GET    /api/records        → {status, results, total, totalPages, currentPage, data: {records}}
    GET    /api/records/stats  → {totalAmount, count, average, categories: [...]}
    errors                     → {status, error, message, details?, request_id}
"""

from datetime import datetime, timezone
from typing import Any, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.models.record import CATEGORIES, DESCRIPTION_MAX_LENGTH, IncomeRecord


def _as_utc(value: datetime) -> datetime:
    # Naive values come back from SQLite and from clients omitting an offset
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# ══════════════════════════════════════════════════════════════════════════
# Request Models
# ══════════════════════════════════════════════════════════════════════════


class RecordCreate(BaseModel):
    """
    What:  Validated body of POST /api/records.
    How:   RecordService calls `RecordCreate.model_validate(payload)` and turns
           pydantic errors into a field-level ValidationError (400).

    Rules:
        description: required, trimmed, 1-100 characters
        amount:      required, numeric, finite, >= 0 (0 is accepted)
        date:        optional ISO 8601; normalized to UTC
        category:    optional; must be one of CATEGORIES when given
                     (null or "" means "not given" and becomes "Other")
    """

    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    description: str = Field(min_length=1, max_length=DESCRIPTION_MAX_LENGTH)
    amount: float = Field(ge=0, allow_inf_nan=False)
    date: Optional[datetime] = None
    category: Optional[str] = None

    @field_validator("amount", mode="before")
    @classmethod
    def reject_boolean_amount(cls, v: Any) -> Any:
        # JSON true/false are not amounts
        if isinstance(v, bool):
            raise ValueError("Input should be a valid number")
        return v

    @field_validator("date", "category", mode="before")
    @classmethod
    def blank_as_missing(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("date")
    @classmethod
    def normalize_date(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(v) if v is not None else None

    @field_validator("category")
    @classmethod
    def validate_category(cls, v: Optional[str]) -> Optional[str]:
        """Rejects categories outside the closed set (case-sensitive)."""
        if v is not None and v not in CATEGORIES:
            raise ValueError(
                f"'{v}' is not a valid category. Must be one of: {', '.join(CATEGORIES)}"
            )
        return v


# ══════════════════════════════════════════════════════════════════════════
# Response Models
# ══════════════════════════════════════════════════════════════════════════


class RecordResponse(BaseModel):
    """
    What:  JSON representation of a stored income record.
    Who:   Embedded in create and list responses.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: UUID = Field(description="Unique record identifier")
    description: str
    amount: float
    date: datetime = Field(description="When the income was received (UTC ISO 8601)")
    category: str
    created_at: datetime = Field(alias="createdAt")
    updated_at: datetime = Field(alias="updatedAt")

    @field_validator("date", "created_at", "updated_at")
    @classmethod
    def ensure_utc(cls, v: datetime) -> datetime:
        return _as_utc(v)

    @classmethod
    def from_model(cls, record: IncomeRecord) -> "RecordResponse":
        return cls(
            id=record.id,
            description=record.description,
            amount=record.amount,
            date=record.date,
            category=record.category,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )


class RecordData(BaseModel):
    record: RecordResponse


class RecordCreatedResponse(BaseModel):
    """Returned by POST /api/records with HTTP 201."""

    status: str = "success"
    data: RecordData


class RecordListData(BaseModel):
    records: List[RecordResponse]


class RecordListResponse(BaseModel):
    """
    What:  Page of records plus pagination metadata.
    Who:   Returned by GET /api/records.

    Fields:
        results:     number of records in this page
        total:       number of records matching the filters (ignoring pagination)
        totalPages:  ceil(total / limit)
        currentPage: the (clamped) page that was served
    """

    model_config = ConfigDict(populate_by_name=True)

    status: str = "success"
    results: int
    total: int
    total_pages: int = Field(alias="totalPages")
    current_page: int = Field(alias="currentPage")
    data: RecordListData


class CategoryStats(BaseModel):
    category: str
    total: float
    count: int


class StatsResponse(BaseModel):
    """
    What:  Aggregates over the whole collection.
    Who:   Returned by GET /api/records/stats.

    `average` is totalAmount / count rounded to 2 decimals, and 0 for an
    empty collection. Categories are ordered by total (desc), then name.
    """

    model_config = ConfigDict(populate_by_name=True)

    total_amount: float = Field(alias="totalAmount")
    count: int
    average: float
    categories: List[CategoryStats]


class ErrorResponse(BaseModel):
    """
    What:  Standardized error response format for all API errors.

    Example:
        {
            "status": "fail",
            "error": "not_found",
            "message": "No record found with that ID",
            "request_id": "1f3a9c2e"
        }
    """

    status: str = Field(description="'fail' for client errors, 'error' for server errors")
    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error description")
    details: Optional[dict] = Field(default=None, description="Additional error context")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class HealthResponse(BaseModel):
    """Returned by GET /health."""

    status: str = Field(description="Always 'running' while the process serves traffic")
    message: str
    timestamp: datetime
    version: str
    database: str = Field(description="Store connectivity: connected, disconnected")
