from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Iterable, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session, selectinload

from pfm import models
from pfm.core.config import settings
from pfm.models import now_local_naive
from pfm.services.projection_calculator import (
    CustomItem,
    ExpenseEntry,
    HistoryPoint,
    LiabilityInput,
    PayoffResult,
    PayoffSettings,
    ProjectionResult,
    ScheduleContribution,
    compute_liability_payoff,
    compute_net_worth_projection,
    monthly_equivalent,
    month_start,
)
from pfm.services.schedule_calculator import add_months


logger = logging.getLogger(__name__)

GROUP_BY_OPTIONS = ("day", "week", "month", "quarter", "year")
SUMMARY_COMPARISON_DAYS = 30


@dataclass
class AssetBalance:
    asset_id: int
    asset_name: str
    color: Optional[str]
    balance: float
    last_updated: Optional[date]


@dataclass
class CategoryBalance:
    category_id: int
    category_name: str
    color: Optional[str]
    is_liability: bool
    total_balance: float
    assets: list[AssetBalance] = field(default_factory=list)


@dataclass
class NetWorthSummary:
    total_assets: float
    total_liabilities: float
    net_worth: float
    change_from_last_period: float
    change_percent: float
    assets_by_category: list[CategoryBalance]


@dataclass
class NetWorthHistoryPoint:
    date: date
    total_assets: float
    total_liabilities: float
    net_worth: float
    total_expenses: Optional[float] = None


@dataclass
class ExpenseHistoryPoint:
    date: date
    total_expenses: float


@dataclass
class NetWorthComparison:
    net_worth_history: list[NetWorthHistoryPoint]
    expense_history: list[ExpenseHistoryPoint]


def period_start(value: date, group_by: str) -> date:
    if group_by == "day":
        return value
    if group_by == "week":
        return value - timedelta(days=value.weekday())
    if group_by == "quarter":
        return date(value.year, ((value.month - 1) // 3) * 3 + 1, 1)
    if group_by == "year":
        return date(value.year, 1, 1)
    return month_start(value)


def next_period(value: date, group_by: str) -> date:
    if group_by == "day":
        return value + timedelta(days=1)
    if group_by == "week":
        return value + timedelta(days=7)
    if group_by == "quarter":
        return add_months(value, 3)
    if group_by == "year":
        return add_months(value, 12)
    return add_months(value, 1)


class NetWorthService:
    """
    Net worth 조회/예측 서비스.

    DB에서 자산, 스냅샷, 지출, 반복 거래를 읽어 순수 계산기
    (:mod:`pfm.services.projection_calculator`)에 넘기는 역할만 한다.
    """

    def __init__(self, db: Session) -> None:
        self.db = db

    # ---- loading ---------------------------------------------------------

    def _assets(self, user_id: int) -> list[models.Asset]:
        return (
            self.db.query(models.Asset)
            .options(selectinload(models.Asset.category), selectinload(models.Asset.snapshots))
            .filter(models.Asset.user_id == user_id)
            .order_by(models.Asset.id)
            .all()
        )

    @staticmethod
    def _latest_snapshot(asset: models.Asset, on_or_before: date | None = None) -> models.AssetSnapshot | None:
        latest = None
        for snap in asset.snapshots:
            if on_or_before is not None and snap.date > on_or_before:
                continue
            if latest is None or snap.date >= latest.date:
                latest = snap
        return latest

    def _net_worth_on(self, assets: Iterable[models.Asset], on: date) -> tuple[float, float]:
        total_assets = 0.0
        total_liabilities = 0.0
        for asset in assets:
            snap = self._latest_snapshot(asset, on)
            if snap is None:
                continue
            if asset.is_liability:
                total_liabilities += float(snap.balance)
            else:
                total_assets += float(snap.balance)
        return total_assets, total_liabilities

    def _first_snapshot_date(self, user_id: int) -> date | None:
        return (
            self.db.query(func.min(models.AssetSnapshot.date))
            .join(models.Asset, models.Asset.id == models.AssetSnapshot.asset_id)
            .filter(models.Asset.user_id == user_id)
            .scalar()
        )

    def _active_schedules(self, user_id: int) -> list[models.RecurringTransaction]:
        RT = models.RecurringTransaction
        return (
            self.db.query(RT)
            .join(models.Asset, models.Asset.id == RT.asset_id)
            .options(selectinload(RT.asset).selectinload(models.Asset.category))
            .filter(models.Asset.user_id == user_id, RT.is_active.is_(True))
            .order_by(RT.id)
            .all()
        )

    # ---- summary / history -----------------------------------------------

    def get_summary(self, user_id: int, as_of: date | None = None) -> NetWorthSummary:
        target = as_of or now_local_naive().date()
        assets = self._assets(user_id)

        by_category: dict[int, CategoryBalance] = {}
        total_assets = 0.0
        total_liabilities = 0.0
        for asset in assets:
            category = asset.category
            bucket = by_category.get(category.id)
            if bucket is None:
                bucket = CategoryBalance(
                    category_id=category.id,
                    category_name=category.name,
                    color=category.color,
                    is_liability=category.is_liability,
                    total_balance=0.0,
                )
                by_category[category.id] = bucket
            snap = self._latest_snapshot(asset, target)
            balance = float(snap.balance) if snap else 0.0
            bucket.assets.append(
                AssetBalance(asset.id, asset.name, asset.color, round(balance, 2), snap.date if snap else None)
            )
            bucket.total_balance = round(bucket.total_balance + balance, 2)
            if category.is_liability:
                total_liabilities += balance
            else:
                total_assets += balance

        previous_assets, previous_liabilities = self._net_worth_on(
            assets, target - timedelta(days=SUMMARY_COMPARISON_DAYS)
        )
        previous = previous_assets - previous_liabilities
        current = total_assets - total_liabilities
        change = current - previous
        change_percent = (change / abs(previous) * 100) if previous else 0.0

        categories = sorted(by_category.values(), key=lambda c: (c.is_liability, c.category_name))
        return NetWorthSummary(
            total_assets=round(total_assets, 2),
            total_liabilities=round(total_liabilities, 2),
            net_worth=round(current, 2),
            change_from_last_period=round(change, 2),
            change_percent=round(change_percent, 2),
            assets_by_category=categories,
        )

    def get_history(
        self,
        user_id: int,
        start: date,
        end: date,
        group_by: str = "month",
    ) -> list[NetWorthHistoryPoint]:
        """One point per period; each uses the latest snapshot per asset up to the period end."""
        group_by = (group_by or "month").lower()
        if group_by not in GROUP_BY_OPTIONS:
            raise ValueError(f"group_by must be one of {', '.join(GROUP_BY_OPTIONS)}")
        if end < start:
            raise ValueError("end must not be before start")

        assets = self._assets(user_id)
        points: list[NetWorthHistoryPoint] = []
        current = period_start(start, group_by)
        while current <= end:
            period_end = min(next_period(current, group_by) - timedelta(days=1), end)
            total_assets, total_liabilities = self._net_worth_on(assets, period_end)
            points.append(
                NetWorthHistoryPoint(
                    date=current,
                    total_assets=round(total_assets, 2),
                    total_liabilities=round(total_liabilities, 2),
                    net_worth=round(total_assets - total_liabilities, 2),
                )
            )
            current = next_period(current, group_by)
        return points

    def get_comparison(
        self,
        user_id: int,
        start: date,
        end: date,
        group_by: str = "month",
    ) -> NetWorthComparison:
        """Net worth history side by side with the expenses spent in each period."""
        history = self.get_history(user_id, start, end, group_by)
        group_by = (group_by or "month").lower()

        rows = (
            self.db.query(models.Expense.date, models.Expense.amount)
            .filter(
                models.Expense.user_id == user_id,
                models.Expense.date >= period_start(start, group_by),
                models.Expense.date <= end,
            )
            .all()
        )
        totals: dict[date, float] = defaultdict(float)
        for spent_on, amount in rows:
            totals[period_start(spent_on, group_by)] += float(amount)

        expense_history = []
        for point in history:
            spent = round(totals.get(point.date, 0.0), 2)
            point.total_expenses = spent
            expense_history.append(ExpenseHistoryPoint(point.date, spent))
        return NetWorthComparison(net_worth_history=history, expense_history=expense_history)

    # ---- projection ------------------------------------------------------

    def _schedule_contributions(self, user_id: int, today: date) -> list[ScheduleContribution]:
        contributions: list[ScheduleContribution] = []
        for row in self._active_schedules(user_id):
            if row.end_date is not None and row.end_date <= today:
                continue
            asset = row.asset
            snap = self._latest_snapshot(asset) if asset is not None else None
            balance = float(snap.balance) if snap else 0.0
            amount = float(row.amount or 0)
            # 부채 자산은 잔액이 곧 빚이므로 순자산 기준으로 부호를 뒤집음
            if asset is not None and asset.is_liability:
                amount = -amount
                balance = -balance
            contributions.append(
                ScheduleContribution(
                    id=row.id,
                    asset_id=row.asset_id,
                    description=row.description,
                    amount=amount,
                    frequency=row.frequency,
                    end_date=row.end_date,
                    interest_rate=float(row.interest_rate) if row.interest_rate is not None else None,
                    is_compounding=bool(row.is_compounding),
                    asset_name=asset.name if asset is not None else "Unknown",
                    balance=balance,
                )
            )
        return contributions

    def get_projection(
        self,
        user_id: int,
        goal_amount: float | None = None,
        projection_months: int = 12,
        include_recurring: bool = True,
        include_average_expenses: bool = False,
        custom_items: Iterable[CustomItem] = (),
        today: date | None = None,
    ) -> ProjectionResult:
        today = today or now_local_naive().date()
        lookback_start = add_months(today, -settings.PROJECTION_LOOKBACK_MONTHS)

        # 첫 스냅샷 이전 달은 0이 아니라 "기록 없음"이므로 추세 계산에서 제외
        tracked_from = self._first_snapshot_date(user_id)
        history = [
            HistoryPoint(p.date, p.net_worth)
            for p in self.get_history(user_id, lookback_start, today, "month")
            if tracked_from is not None and p.date >= month_start(tracked_from)
        ]
        expenses = [
            ExpenseEntry(row.date, float(row.amount))
            for row in self.db.query(models.Expense)
            .filter(
                models.Expense.user_id == user_id,
                models.Expense.date >= lookback_start,
                models.Expense.date <= today,
            )
            .all()
        ]
        summary = self.get_summary(user_id, today)

        result = compute_net_worth_projection(
            history,
            self._schedule_contributions(user_id, today),
            include_recurring,
            goal_amount,
            current_net_worth=summary.net_worth,
            today=today,
            expenses=expenses,
            include_average_expenses=include_average_expenses,
            projection_months=projection_months,
            custom_items=custom_items,
            recent_history_months=settings.PROJECTION_RECENT_HISTORY_MONTHS,
        )
        logger.debug(
            "Projection for user %s: monthly change %.2f over %d months",
            user_id,
            result.projected_monthly_change,
            projection_months,
        )
        return result

    # ---- liability payoff ------------------------------------------------

    def get_liability_payoff(
        self,
        user_id: int,
        payoff_settings: Iterable[PayoffSettings] | None = None,
        today: date | None = None,
    ) -> PayoffResult:
        today = today or now_local_naive().date()
        liabilities = [a for a in self._assets(user_id) if a.is_liability]
        liability_ids = {a.id for a in liabilities}

        payments: dict[int, float] = defaultdict(float)
        rates: dict[int, float] = {}
        with_schedule: set[int] = set()
        for row in self._active_schedules(user_id):
            if row.asset_id not in liability_ids:
                continue
            with_schedule.add(row.asset_id)
            if row.is_interest_based:
                rates.setdefault(row.asset_id, float(row.interest_rate))
            else:
                payments[row.asset_id] += abs(monthly_equivalent(float(row.amount or 0), row.frequency))

        inputs = []
        for asset in liabilities:
            snap = self._latest_snapshot(asset)
            inputs.append(
                LiabilityInput(
                    asset_id=asset.id,
                    name=asset.name,
                    current_balance=float(snap.balance) if snap else 0.0,
                    implied_payment=payments.get(asset.id, 0.0),
                    implied_rate=rates.get(asset.id),
                    has_recurring_payment=asset.id in with_schedule,
                    color=asset.color,
                )
            )

        # 첫 상환은 다음 달 1일
        start_month = add_months(month_start(today), 1)
        return compute_liability_payoff(inputs, payoff_settings, start_month)
