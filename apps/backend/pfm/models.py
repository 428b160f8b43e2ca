from __future__ import annotations

from datetime import date, datetime
from zoneinfo import ZoneInfo
from enum import Enum

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Index,
    Boolean,
    BigInteger,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .core.config import settings
from .core.database import Base


try:
    LOCAL_ZONE = ZoneInfo(getattr(settings, "TIMEZONE", "UTC"))
except Exception:
    LOCAL_ZONE = ZoneInfo("UTC")


def now_local_naive() -> datetime:
    """Return naive datetime normalized to configured local timezone."""
    return datetime.now(LOCAL_ZONE).replace(tzinfo=None)


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(DateTime, default=now_local_naive, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=now_local_naive, onupdate=now_local_naive, nullable=False)


class User(Base, TimestampMixin):
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    email: Mapped[str] = mapped_column(String(320), unique=True, nullable=False)
    is_active: Mapped[bool] = mapped_column(default=True, nullable=False)

    assets: Mapped[list["Asset"]] = relationship(back_populates="user")


class AssetCategory(Base, TimestampMixin):
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    description: Mapped[str | None] = mapped_column(String(255))
    color: Mapped[str | None] = mapped_column(String(9))
    is_liability: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    assets: Mapped[list["Asset"]] = relationship(back_populates="category")


class Asset(Base, TimestampMixin):
    """A tracked account. Liability balances are stored as positive owed amounts."""

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("user.id"), nullable=False)
    asset_category_id: Mapped[int] = mapped_column(ForeignKey("assetcategory.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    color: Mapped[str | None] = mapped_column(String(9))

    user: Mapped[User] = relationship(back_populates="assets")
    category: Mapped[AssetCategory] = relationship(back_populates="assets")
    snapshots: Mapped[list["AssetSnapshot"]] = relationship(
        back_populates="asset",
        cascade="all, delete-orphan",
        order_by="AssetSnapshot.date",
    )
    recurring_transactions: Mapped[list["RecurringTransaction"]] = relationship(
        back_populates="asset",
        cascade="all, delete-orphan",
    )

    @property
    def is_liability(self) -> bool:
        return bool(self.category and self.category.is_liability)

    @property
    def category_name(self) -> str | None:
        return self.category.name if self.category is not None else None

    @property
    def latest_snapshot(self) -> "AssetSnapshot | None":
        # snapshots는 date 순으로 로드됨
        return self.snapshots[-1] if self.snapshots else None

    @property
    def current_balance(self) -> float | None:
        snap = self.latest_snapshot
        return float(snap.balance) if snap is not None else None

    @property
    def last_updated(self) -> date | None:
        snap = self.latest_snapshot
        return snap.date if snap is not None else None

    __table_args__ = (Index("ix_asset_user", "user_id"),)


class AssetSnapshot(Base, TimestampMixin):
    """Point-in-time balance for an asset; one effective value per (asset, date)."""

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    asset_id: Mapped[int] = mapped_column(ForeignKey("asset.id", ondelete="CASCADE"), nullable=False)
    date: Mapped[date] = mapped_column(Date, nullable=False)
    balance: Mapped[float] = mapped_column(Numeric(18, 4), nullable=False, default=0)
    notes: Mapped[str | None] = mapped_column(Text)

    asset: Mapped[Asset] = relationship(back_populates="snapshots")

    __table_args__ = (
        UniqueConstraint("asset_id", "date", name="uq_asset_snapshot_date"),
        Index("ix_asset_snapshot_asset_date", "asset_id", "date"),
    )


class Expense(Base, TimestampMixin):
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("user.id"), nullable=False)
    date: Mapped[date] = mapped_column(Date, nullable=False)
    amount: Mapped[float] = mapped_column(Numeric(18, 4), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)

    __table_args__ = (Index("ix_expense_user_date", "user_id", "date"),)


class RecurringFrequency(str, Enum):
    WEEKLY = "WEEKLY"
    BIWEEKLY = "BIWEEKLY"
    MONTHLY = "MONTHLY"
    QUARTERLY = "QUARTERLY"
    YEARLY = "YEARLY"


class RecurringTransaction(Base, TimestampMixin):
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    asset_id: Mapped[int] = mapped_column(ForeignKey("asset.id", ondelete="CASCADE"), nullable=False)
    description: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    # 양수 = 입금, 음수 = 출금. 이자형 스케줄은 0으로 저장하고 사용하지 않음
    amount: Mapped[float] = mapped_column(Numeric(18, 4), nullable=False, default=0)
    # 연 이율(%). 값이 있으면 잔액 기준 이자 발생
    interest_rate: Mapped[float | None] = mapped_column(Numeric(9, 4), nullable=True)
    is_compounding: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    frequency: Mapped[RecurringFrequency] = mapped_column(SAEnum(RecurringFrequency), nullable=False)
    day_of_week: Mapped[int | None] = mapped_column(Integer)  # 0=Mon .. 6=Sun
    day_of_month: Mapped[int | None] = mapped_column(Integer)  # 1-31, 월말 보정
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date | None] = mapped_column(Date)
    next_run_date: Mapped[date] = mapped_column(Date, nullable=False)
    last_run_date: Mapped[date | None] = mapped_column(Date)
    is_active: Mapped[bool] = mapped_column(default=True, nullable=False)

    asset: Mapped[Asset] = relationship(back_populates="recurring_transactions")

    @property
    def is_interest_based(self) -> bool:
        return self.interest_rate is not None and float(self.interest_rate) > 0

    @property
    def asset_name(self) -> str | None:
        return self.asset.name if self.asset is not None else None

    __table_args__ = (
        CheckConstraint("next_run_date >= start_date", name="ck_recurring_next_after_start"),
        CheckConstraint(
            "day_of_month IS NULL OR (day_of_month >= 1 AND day_of_month <= 31)",
            name="ck_recurring_day_of_month",
        ),
        CheckConstraint(
            "day_of_week IS NULL OR (day_of_week >= 0 AND day_of_week <= 6)",
            name="ck_recurring_day_of_week",
        ),
        Index("ix_recurring_due", "is_active", "next_run_date"),
    )


class AutoImportFrequency(str, Enum):
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"


class AutoImportSchedule(Base, TimestampMixin):
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("user.id", ondelete="CASCADE"), nullable=False)
    # 외부 서비스 식별자 (내부에서는 해석하지 않음)
    group_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    group_name: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    member_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    member_name: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    frequency: Mapped[AutoImportFrequency] = mapped_column(SAEnum(AutoImportFrequency), nullable=False)
    is_active: Mapped[bool] = mapped_column(default=True, nullable=False)
    next_run_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=now_local_naive)
    last_run_at: Mapped[datetime | None] = mapped_column(DateTime)
    last_run_imported_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_run_error: Mapped[str | None] = mapped_column(Text)

    __table_args__ = (
        UniqueConstraint("user_id", "group_id", "member_id", name="uq_auto_import_group_member"),
        Index("ix_auto_import_due", "is_active", "next_run_at"),
    )
