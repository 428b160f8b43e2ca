"""create net worth, recurring transaction and auto-import tables

Revision ID: 7c1e2d9a4b10
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "7c1e2d9a4b10"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


RECURRING_FREQUENCIES = ("WEEKLY", "BIWEEKLY", "MONTHLY", "QUARTERLY", "YEARLY")
AUTO_IMPORT_FREQUENCIES = ("DAILY", "WEEKLY", "MONTHLY")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "user",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("email", sa.String(length=320), nullable=False, unique=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )

    op.create_table(
        "assetcategory",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=100), nullable=False, unique=True),
        sa.Column("description", sa.String(length=255), nullable=True),
        sa.Column("color", sa.String(length=9), nullable=True),
        sa.Column("is_liability", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
    )

    op.create_table(
        "asset",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("asset_category_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("color", sa.String(length=9), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["user_id"], ["user.id"], ),
        sa.ForeignKeyConstraint(["asset_category_id"], ["assetcategory.id"], ),
    )
    op.create_index("ix_asset_user", "asset", ["user_id"], unique=False)

    op.create_table(
        "assetsnapshot",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("asset_id", sa.Integer(), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("balance", sa.Numeric(18, 4), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["asset_id"], ["asset.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("asset_id", "date", name="uq_asset_snapshot_date"),
    )
    op.create_index("ix_asset_snapshot_asset_date", "assetsnapshot", ["asset_id", "date"], unique=False)

    op.create_table(
        "expense",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("amount", sa.Numeric(18, 4), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["user_id"], ["user.id"], ),
    )
    op.create_index("ix_expense_user_date", "expense", ["user_id", "date"], unique=False)

    op.create_table(
        "recurringtransaction",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("asset_id", sa.Integer(), nullable=False),
        sa.Column("description", sa.String(length=200), nullable=False),
        sa.Column("amount", sa.Numeric(18, 4), nullable=False),
        sa.Column("interest_rate", sa.Numeric(9, 4), nullable=True),
        sa.Column("is_compounding", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("frequency", sa.Enum(*RECURRING_FREQUENCIES, name="recurringfrequency"), nullable=False),
        sa.Column("day_of_week", sa.Integer(), nullable=True),
        sa.Column("day_of_month", sa.Integer(), nullable=True),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("next_run_date", sa.Date(), nullable=False),
        sa.Column("last_run_date", sa.Date(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.ForeignKeyConstraint(["asset_id"], ["asset.id"], ondelete="CASCADE"),
        sa.CheckConstraint("next_run_date >= start_date", name="ck_recurring_next_after_start"),
        sa.CheckConstraint(
            "day_of_month IS NULL OR (day_of_month >= 1 AND day_of_month <= 31)",
            name="ck_recurring_day_of_month",
        ),
        sa.CheckConstraint(
            "day_of_week IS NULL OR (day_of_week >= 0 AND day_of_week <= 6)",
            name="ck_recurring_day_of_week",
        ),
    )
    op.create_index("ix_recurring_due", "recurringtransaction", ["is_active", "next_run_date"], unique=False)

    op.create_table(
        "autoimportschedule",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("group_id", sa.BigInteger(), nullable=False),
        sa.Column("group_name", sa.String(length=200), nullable=False),
        sa.Column("member_id", sa.BigInteger(), nullable=False),
        sa.Column("member_name", sa.String(length=200), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("frequency", sa.Enum(*AUTO_IMPORT_FREQUENCIES, name="autoimportfrequency"), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("next_run_at", sa.DateTime(), nullable=False),
        sa.Column("last_run_at", sa.DateTime(), nullable=True),
        sa.Column("last_run_imported_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_run_error", sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["user_id"], ["user.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("user_id", "group_id", "member_id", name="uq_auto_import_group_member"),
    )
    op.create_index("ix_auto_import_due", "autoimportschedule", ["is_active", "next_run_at"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_auto_import_due", table_name="autoimportschedule")
    op.drop_table("autoimportschedule")
    op.drop_index("ix_recurring_due", table_name="recurringtransaction")
    op.drop_table("recurringtransaction")
    op.drop_index("ix_expense_user_date", table_name="expense")
    op.drop_table("expense")
    op.drop_index("ix_asset_snapshot_asset_date", table_name="assetsnapshot")
    op.drop_table("assetsnapshot")
    op.drop_index("ix_asset_user", table_name="asset")
    op.drop_table("asset")
    op.drop_table("assetcategory")
    op.drop_table("user")
