from __future__ import annotations

import math
import datetime as dt
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .models import AutoImportFrequency, RecurringFrequency
from .services.auto_import_service import AutoImportStatus
from .services.recurring_service import ProcessStatus


def _finite(v: float | None, name: str) -> float | None:
    if v is None:
        return v
    if not math.isfinite(v):
        raise ValueError(f"{name} must be finite")
    return v


# ---- Asset categories / assets --------------------------------------------


class AssetCategoryCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=255)
    color: Optional[str] = Field(default=None, max_length=9)
    is_liability: bool = False
    sort_order: int = 0


class AssetCategoryUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=255)
    color: Optional[str] = Field(default=None, max_length=9)
    is_liability: Optional[bool] = None
    sort_order: Optional[int] = None


class AssetCategoryOut(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    color: Optional[str] = None
    is_liability: bool
    sort_order: int
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AssetCreate(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    description: Optional[str] = None
    color: Optional[str] = Field(default=None, max_length=9)
    asset_category_id: int
    initial_balance: Optional[float] = None

    @field_validator("initial_balance")
    def initial_balance_finite(cls, v: float | None):
        return _finite(v, "initial_balance")


class AssetUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=120)
    description: Optional[str] = None
    color: Optional[str] = Field(default=None, max_length=9)
    asset_category_id: Optional[int] = None


class AssetOut(BaseModel):
    id: int
    user_id: int
    name: str
    description: Optional[str] = None
    color: Optional[str] = None
    asset_category_id: int
    category_name: Optional[str] = None
    is_liability: bool
    current_balance: Optional[float] = None
    last_updated: Optional[date] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


# ---- Snapshots -------------------------------------------------------------


class SnapshotCreate(BaseModel):
    date: date
    balance: float
    notes: Optional[str] = Field(default=None, max_length=500)

    @field_validator("balance")
    def balance_finite(cls, v: float):
        return _finite(v, "balance")


class SnapshotUpdate(BaseModel):
    date: Optional[dt.date] = None
    balance: Optional[float] = None
    notes: Optional[str] = Field(default=None, max_length=500)

    @field_validator("balance")
    def balance_finite(cls, v: float | None):
        return _finite(v, "balance")


class SnapshotOut(BaseModel):
    id: int
    asset_id: int
    date: date
    balance: float
    notes: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


# ---- Recurring transactions ------------------------------------------------


class RecurringTransactionCreate(BaseModel):
    asset_id: int
    description: str = Field(default="", max_length=200)
    amount: float = 0
    interest_rate: Optional[float] = None
    is_compounding: bool = False
    frequency: RecurringFrequency
    day_of_week: Optional[int] = None
    day_of_month: Optional[int] = None
    start_date: date
    end_date: Optional[date] = None
    is_active: bool = True

    @field_validator("amount")
    def amount_finite(cls, v: float):
        return _finite(v, "amount")

    @field_validator("interest_rate")
    def rate_range(cls, v: float | None):
        v = _finite(v, "interest_rate")
        if v is not None and v < 0:
            raise ValueError("interest_rate must not be negative")
        return v

    @field_validator("day_of_month")
    def validate_day(cls, v: int | None):
        if v is not None and not (1 <= v <= 31):
            raise ValueError("day_of_month must be between 1 and 31")
        return v

    @field_validator("day_of_week")
    def validate_weekday(cls, v: int | None):
        if v is not None and not (0 <= v <= 6):
            raise ValueError("day_of_week must be between 0 and 6")
        return v

    @model_validator(mode="after")
    def validate_dates(self):
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class RecurringTransactionUpdate(BaseModel):
    description: Optional[str] = Field(default=None, max_length=200)
    amount: Optional[float] = None
    interest_rate: Optional[float] = None
    is_compounding: Optional[bool] = None
    frequency: Optional[RecurringFrequency] = None
    day_of_week: Optional[int] = None
    day_of_month: Optional[int] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    is_active: Optional[bool] = None

    @field_validator("amount")
    def amount_finite(cls, v: float | None):
        return _finite(v, "amount")

    @field_validator("interest_rate")
    def rate_range(cls, v: float | None):
        v = _finite(v, "interest_rate")
        if v is not None and v < 0:
            raise ValueError("interest_rate must not be negative")
        return v

    @field_validator("day_of_month")
    def validate_day(cls, v: int | None):
        if v is not None and not (1 <= v <= 31):
            raise ValueError("day_of_month must be between 1 and 31")
        return v

    @field_validator("day_of_week")
    def validate_weekday(cls, v: int | None):
        if v is not None and not (0 <= v <= 6):
            raise ValueError("day_of_week must be between 0 and 6")
        return v


class RecurringTransactionOut(BaseModel):
    id: int
    asset_id: int
    asset_name: Optional[str] = None
    description: str
    amount: float
    interest_rate: Optional[float] = None
    is_compounding: bool
    is_interest_based: bool
    frequency: RecurringFrequency
    day_of_week: Optional[int] = None
    day_of_month: Optional[int] = None
    start_date: date
    end_date: Optional[date] = None
    next_run_date: date
    last_run_date: Optional[date] = None
    is_active: bool
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ProcessOutcomeOut(BaseModel):
    schedule_id: int
    status: ProcessStatus
    occurrence: Optional[date] = None
    amount: float = 0
    next_run_date: Optional[date] = None
    reason: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


# ---- Auto-import schedules -------------------------------------------------


class AutoImportCreate(BaseModel):
    group_id: int
    group_name: str = Field(default="", max_length=200)
    member_id: int
    member_name: str = Field(default="", max_length=200)
    start_date: date
    frequency: AutoImportFrequency


class AutoImportUpdate(BaseModel):
    start_date: Optional[date] = None
    frequency: Optional[AutoImportFrequency] = None
    is_active: Optional[bool] = None


class AutoImportOut(BaseModel):
    id: int
    user_id: int
    group_id: int
    group_name: str
    member_id: int
    member_name: str
    start_date: date
    frequency: AutoImportFrequency
    is_active: bool
    next_run_at: datetime
    last_run_at: Optional[datetime] = None
    last_run_imported_count: int
    last_run_error: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AutoImportRunOut(BaseModel):
    schedule_id: int
    status: AutoImportStatus
    imported_count: int = 0
    duplicates_found: int = 0
    next_run_at: Optional[datetime] = None
    error: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


# ---- Net worth ---------------------------------------------------------------


class AssetBalanceOut(BaseModel):
    asset_id: int
    asset_name: str
    color: Optional[str] = None
    balance: float
    last_updated: Optional[date] = None

    model_config = ConfigDict(from_attributes=True)


class CategoryBalanceOut(BaseModel):
    category_id: int
    category_name: str
    color: Optional[str] = None
    is_liability: bool
    total_balance: float
    assets: list[AssetBalanceOut]

    model_config = ConfigDict(from_attributes=True)


class NetWorthSummaryOut(BaseModel):
    total_assets: float
    total_liabilities: float
    net_worth: float
    change_from_last_period: float
    change_percent: float
    assets_by_category: list[CategoryBalanceOut]

    model_config = ConfigDict(from_attributes=True)


class NetWorthHistoryPointOut(BaseModel):
    date: date
    total_assets: float
    total_liabilities: float
    net_worth: float
    total_expenses: Optional[float] = None

    model_config = ConfigDict(from_attributes=True)


class ExpenseHistoryPointOut(BaseModel):
    date: date
    total_expenses: float

    model_config = ConfigDict(from_attributes=True)


class NetWorthComparisonOut(BaseModel):
    net_worth_history: list[NetWorthHistoryPointOut]
    expense_history: list[ExpenseHistoryPointOut]

    model_config = ConfigDict(from_attributes=True)


class CustomProjectionItem(BaseModel):
    description: str = Field(default="", max_length=200)
    amount: float
    date: Optional[dt.date] = None
    is_recurring: bool = False
    frequency: Optional[RecurringFrequency] = None

    @field_validator("amount")
    def amount_finite(cls, v: float):
        return _finite(v, "amount")


class ProjectionRequest(BaseModel):
    goal_amount: Optional[float] = None
    projection_months: int = Field(default=12, ge=1, le=120)
    include_recurring_transfers: bool = True
    include_average_expenses: bool = False
    custom_items: list[CustomProjectionItem] = Field(default_factory=list)

    @field_validator("goal_amount")
    def goal_finite(cls, v: float | None):
        return _finite(v, "goal_amount")


class ProjectionPointOut(BaseModel):
    date: date
    projected_net_worth: float
    is_historical: bool

    model_config = ConfigDict(from_attributes=True)


class RecurringTransferSummaryOut(BaseModel):
    id: int
    description: str
    asset_name: str
    amount: float
    frequency: str
    monthly_equivalent: float
    interest_rate: Optional[float] = None
    is_compounding: bool
    is_interest_based: bool

    model_config = ConfigDict(from_attributes=True)


class GoalEstimateOut(BaseModel):
    goal_amount: float
    is_achievable: bool
    months_to_goal: Optional[int] = None
    estimated_goal_date: Optional[date] = None

    model_config = ConfigDict(from_attributes=True)


class ProjectionOut(BaseModel):
    current_net_worth: float
    average_monthly_expenses: float
    average_monthly_net_change: float
    recurring_transfers_monthly_total: float
    custom_items_monthly_total: float
    projected_monthly_change: float
    includes_recurring_transfers: bool
    includes_average_expenses: bool
    projected_history: list[ProjectionPointOut]
    recurring_transfers: list[RecurringTransferSummaryOut]
    goal: Optional[GoalEstimateOut] = None

    model_config = ConfigDict(from_attributes=True)


class PayoffSettingIn(BaseModel):
    asset_id: int
    monthly_payment: Optional[float] = Field(default=None, ge=0)
    interest_rate: Optional[float] = Field(default=None, ge=0)


class PayoffRequest(BaseModel):
    settings: list[PayoffSettingIn] = Field(default_factory=list)


class PayoffPointOut(BaseModel):
    date: date
    balance: float
    payment: float
    interest: float
    principal: float

    model_config = ConfigDict(from_attributes=True)


class LiabilityPayoffItemOut(BaseModel):
    asset_id: int
    name: str
    color: Optional[str] = None
    current_balance: float
    monthly_payment: float
    interest_rate: float
    estimated_payoff_date: Optional[date] = None
    months_to_payoff: Optional[int] = None
    total_interest_paid: float
    payoff_schedule: list[PayoffPointOut]
    has_recurring_payment: bool

    model_config = ConfigDict(from_attributes=True)


class LiabilityPayoffOut(BaseModel):
    liabilities: list[LiabilityPayoffItemOut]
    total_liabilities: float
    total_monthly_payment: float
    overall_payoff_date: Optional[date] = None
    months_to_payoff: Optional[int] = None

    model_config = ConfigDict(from_attributes=True)
