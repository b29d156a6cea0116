"""create users and fuel records

Revision ID: 5e2f9c1a7b3d
Revises:
Create Date: 2026-10-17

"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "5e2f9c1a7b3d"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
            onupdate=sa.func.now(),
        ),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, index=True),
        sa.Column("email", sa.String(255), nullable=False, unique=True, index=True),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("name", sa.String(255), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "fuel_records",
        sa.Column("id", sa.Integer(), primary_key=True, index=True),
        sa.Column(
            "user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("station_name", sa.String(255), nullable=True),
        sa.Column("station_brand", sa.String(100), nullable=True),
        sa.Column("fuel_type", sa.String(50), nullable=True),
        sa.Column("amount", sa.Numeric(10, 2), nullable=True),
        sa.Column("liters", sa.Numeric(10, 3), nullable=True),
        sa.Column("price_per_liter", sa.Numeric(10, 3), nullable=True),
        sa.Column("extracted_data", sa.Text(), nullable=True),
        sa.Column("receipt_image_url", sa.String(1024), nullable=True),
        sa.Column("location", sa.String(500), nullable=True),
        sa.Column("purchase_date", sa.DateTime(), nullable=True),
        *_timestamps(),
    )
    # Listing is always per owner, newest first
    op.create_index(
        "ix_fuel_records_user_id_created_at", "fuel_records", ["user_id", "created_at"]
    )


def downgrade() -> None:
    op.drop_index("ix_fuel_records_user_id_created_at", table_name="fuel_records")
    op.drop_table("fuel_records")
    op.drop_table("users")
