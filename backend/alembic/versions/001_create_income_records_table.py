"""Create income_records table

Revision ID: 001
Revises: None
Create Date: 2024-01-15 00:00:00.000000+00:00

What:  Creates the `income_records` table and its two lookup indexes.
How:   Portable column types (sa.Uuid, timezone-aware DateTime) so the same
       migration runs on PostgreSQL and SQLite.

Rollback: downgrade() drops the table and every stored record with it.
"""

from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

# revision identifiers
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create income_records; see app/models/record.py for column docs."""
    op.create_table(
        "income_records",

        # Generated by the application (uuid4), not by the database
        sa.Column(
            "id",
            sa.Uuid(),
            nullable=False,
            comment="Unique record identifier",
        ),

        sa.Column(
            "description",
            sa.String(100),
            nullable=False,
            comment="What the income was for (trimmed, 1-100 characters)",
        ),

        sa.Column(
            "amount",
            sa.Float(),
            nullable=False,
            comment="Income amount, never negative",
        ),

        sa.Column(
            "date",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
            comment="When the income was received (defaults to creation time)",
        ),

        sa.Column(
            "category",
            sa.String(20),
            nullable=False,
            server_default=sa.text("'Other'"),
            comment="One of: Salary, Freelance, Investment, Bonus, Other",
        ),

        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
            comment="When this record was stored (UTC)",
        ),

        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
            comment="Last write to this row (UTC)",
        ),

        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("amount >= 0", name="ck_income_records_amount_non_negative"),
    )

    # Default listing is ORDER BY date DESC; date range filters hit it too
    op.create_index("idx_income_records_date", "income_records", ["date"])

    # Category filters and the stats GROUP BY
    op.create_index("idx_income_records_category", "income_records", ["category"])


def downgrade() -> None:
    """Drop income_records. Destructive: all records are lost."""
    op.drop_index("idx_income_records_category", table_name="income_records")
    op.drop_index("idx_income_records_date", table_name="income_records")
    op.drop_table("income_records")
