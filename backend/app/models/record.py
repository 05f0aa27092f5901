"""
Income Records Backend: IncomeRecord SQLAlchemy Model
=======================================================

What:  ORM model representing the `income_records` table.
How:   Inherits from the shared DeclarativeBase; Alembic reads this for migrations.
Who:   Used by RecordService for create/list/delete/stats queries.

Table Design:
    - UUID primary key generated in Python (portable across PostgreSQL and SQLite)
    - amount: float, CHECK amount >= 0 enforced by the database as well
    - category: short string constrained to the closed category set
    - date / created_at / updated_at: timezone-aware timestamps stored in UTC

Indexes:
    idx_income_records_date      → default "newest first" listing, date range filters
    idx_income_records_category  → category filters and the stats GROUP BY
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import CheckConstraint, DateTime, Float, Index, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base

# Closed category set; order is the one offered to clients
CATEGORIES = ("Salary", "Freelance", "Investment", "Bonus", "Other")
DEFAULT_CATEGORY = "Other"

DESCRIPTION_MAX_LENGTH = 100


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class IncomeRecord(Base):
    """
    A single income entry.

    Lifecycle:
        1. Created by POST /api/records
        2. Never updated in place
        3. Deleted permanently by DELETE /api/records/{id}
    """

    __tablename__ = "income_records"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
        comment="Unique record identifier",
    )

    description: Mapped[str] = mapped_column(
        String(DESCRIPTION_MAX_LENGTH),
        nullable=False,
        comment="What the income was for (trimmed, 1-100 characters)",
    )

    amount: Mapped[float] = mapped_column(
        Float,
        nullable=False,
        comment="Income amount, never negative",
    )

    date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        comment="When the income was received (defaults to creation time)",
    )

    category: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=DEFAULT_CATEGORY,
        comment="One of: Salary, Freelance, Investment, Bonus, Other",
    )

    # ── Bookkeeping Timestamps ────────────────────────────────────────────
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        comment="When this record was stored (UTC)",
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
        comment="Last write to this row (UTC)",
    )

    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_income_records_amount_non_negative"),
        Index("idx_income_records_date", "date"),
        Index("idx_income_records_category", "category"),
    )

    def __repr__(self) -> str:
        return (
            f"<IncomeRecord(id={self.id}, amount={self.amount}, "
            f"category='{self.category}', date='{self.date}')>"
        )
