"""
Amortization and net-worth projection math.

Everything here is a pure function over plain dataclasses so projection
requests from concurrent sessions can share it freely. Business outcomes such
as "this debt is never paid off" or "this goal is out of reach" come back as
explicit results (``None`` dates, ``is_achievable=False``), never as
exceptions.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date
from typing import Iterable, Optional

from pfm.models import RecurringFrequency
from pfm.services.schedule_calculator import add_months


# 월 환산 계수 (한 달 평균 주 수 기반 근사치)
WEEKS_PER_MONTH = 4.33
BIWEEKLY_PERIODS_PER_MONTH = 2.167
QUARTERLY_PERIODS_PER_MONTH = 1 / 3
YEARLY_PERIODS_PER_MONTH = 1 / 12

DAYS_PER_YEAR = 365
AVERAGE_DAYS_PER_MONTH = DAYS_PER_YEAR / 12

MAX_PAYOFF_MONTHS = 360
MAX_PROJECTION_MONTHS = 120

_MONTHLY_MULTIPLIERS = {
    RecurringFrequency.WEEKLY: WEEKS_PER_MONTH,
    RecurringFrequency.BIWEEKLY: BIWEEKLY_PERIODS_PER_MONTH,
    RecurringFrequency.MONTHLY: 1.0,
    RecurringFrequency.QUARTERLY: QUARTERLY_PERIODS_PER_MONTH,
    RecurringFrequency.YEARLY: YEARLY_PERIODS_PER_MONTH,
}


# ---- Inputs ---------------------------------------------------------------


@dataclass
class HistoryPoint:
    date: date
    net_worth: float


@dataclass
class ExpenseEntry:
    date: date
    amount: float


@dataclass
class ScheduleContribution:
    """An active recurring transaction as seen by the projection."""

    id: int
    asset_id: int
    description: str
    amount: float
    frequency: RecurringFrequency
    end_date: Optional[date] = None
    interest_rate: Optional[float] = None
    is_compounding: bool = False
    asset_name: str = "Unknown"
    # 이자형 스케줄의 기준 잔액 (자산 최신 스냅샷)
    balance: float = 0.0

    @property
    def is_interest_based(self) -> bool:
        return self.interest_rate is not None and self.interest_rate > 0


@dataclass
class CustomItem:
    description: str
    amount: float
    date: Optional[date] = None
    is_recurring: bool = False
    frequency: Optional[str] = None


@dataclass
class LiabilityInput:
    asset_id: int
    name: str
    current_balance: float
    implied_payment: float = 0.0
    implied_rate: Optional[float] = None
    has_recurring_payment: bool = False
    color: Optional[str] = None


@dataclass
class PayoffSettings:
    asset_id: int
    monthly_payment: Optional[float] = None
    interest_rate: Optional[float] = None


# ---- Outputs --------------------------------------------------------------


@dataclass
class PayoffPoint:
    date: date
    balance: float
    payment: float
    interest: float
    principal: float


@dataclass
class PayoffSchedule:
    payoff_date: Optional[date]
    months_to_payoff: Optional[int]
    total_interest_paid: float
    points: list[PayoffPoint] = field(default_factory=list)


@dataclass
class LiabilityPayoffItem:
    asset_id: int
    name: str
    color: Optional[str]
    current_balance: float
    monthly_payment: float
    interest_rate: float
    estimated_payoff_date: Optional[date]
    months_to_payoff: Optional[int]
    total_interest_paid: float
    payoff_schedule: list[PayoffPoint]
    has_recurring_payment: bool


@dataclass
class PayoffResult:
    liabilities: list[LiabilityPayoffItem]
    total_liabilities: float
    total_monthly_payment: float
    overall_payoff_date: Optional[date]
    months_to_payoff: Optional[int]


@dataclass
class ProjectionPoint:
    date: date
    projected_net_worth: float
    is_historical: bool


@dataclass
class RecurringTransferSummary:
    id: int
    description: str
    asset_name: str
    amount: float
    frequency: str
    monthly_equivalent: float
    interest_rate: Optional[float]
    is_compounding: bool
    is_interest_based: bool


@dataclass
class GoalEstimate:
    goal_amount: float
    is_achievable: bool
    months_to_goal: Optional[int]
    estimated_goal_date: Optional[date]


@dataclass
class ProjectionResult:
    current_net_worth: float
    average_monthly_expenses: float
    average_monthly_net_change: float
    recurring_transfers_monthly_total: float
    custom_items_monthly_total: float
    projected_monthly_change: float
    includes_recurring_transfers: bool
    includes_average_expenses: bool
    projected_history: list[ProjectionPoint]
    recurring_transfers: list[RecurringTransferSummary]
    goal: Optional[GoalEstimate] = None


# ---- Primitives -----------------------------------------------------------


def accrue_interest(balance: float, annual_rate_percent: float, days: float, compounding: bool) -> float:
    """Interest accrued on ``balance`` over ``days``.

    APR (``compounding=False``) is simple interest ``balance * r * days/365``;
    APY compounds daily ``balance * ((1 + r/365) ** days - 1)``. Non-positive
    day counts accrue nothing.
    """
    if days <= 0 or not balance or not annual_rate_percent:
        return 0.0
    rate = float(annual_rate_percent) / 100.0
    if compounding:
        return float(balance) * ((1 + rate / DAYS_PER_YEAR) ** days - 1)
    return float(balance) * rate * days / DAYS_PER_YEAR


def monthly_equivalent(amount: float, frequency: RecurringFrequency | str) -> float:
    try:
        freq = RecurringFrequency(frequency.upper() if isinstance(frequency, str) else frequency)
    except ValueError:
        # 알 수 없는 주기는 월 단위로 간주
        return float(amount)
    return float(amount) * _MONTHLY_MULTIPLIERS[freq]


def interest_monthly_equivalent(balance: float, annual_rate_percent: float, compounding: bool) -> float:
    return round(accrue_interest(balance, annual_rate_percent, AVERAGE_DAYS_PER_MONTH, compounding), 2)


def month_start(value: date) -> date:
    return date(value.year, value.month, 1)


def months_between(start: date, end: date) -> int:
    return (end.year - start.year) * 12 + (end.month - start.month)


def average_monthly_expenses(expenses: Iterable[ExpenseEntry]) -> float:
    """Average of per-month expense totals over the months that have expenses."""
    totals: dict[tuple[int, int], float] = {}
    for item in expenses:
        key = (item.date.year, item.date.month)
        totals[key] = totals.get(key, 0.0) + float(item.amount)
    if not totals:
        return 0.0
    return sum(totals.values()) / len(totals)


def average_monthly_net_change(history: list[HistoryPoint]) -> float:
    if len(history) < 2:
        return 0.0
    ordered = sorted(history, key=lambda p: p.date)
    deltas = [ordered[i].net_worth - ordered[i - 1].net_worth for i in range(1, len(ordered))]
    return sum(deltas) / len(deltas)


# ---- Liability payoff -----------------------------------------------------


def build_payoff_schedule(
    current_balance: float,
    monthly_payment: float,
    annual_rate: float,
    start_month: date,
    max_months: int = MAX_PAYOFF_MONTHS,
) -> PayoffSchedule:
    """Simulate month-by-month repayment of a liability.

    A payment that does not exceed the first month's interest never reduces
    the principal, so the schedule is reported as not payable without
    iterating.
    """
    balance = float(current_balance or 0)
    payment = float(monthly_payment or 0)
    monthly_rate = float(annual_rate or 0) / 100.0 / 12.0

    if balance <= 0:
        return PayoffSchedule(payoff_date=None, months_to_payoff=0, total_interest_paid=0.0)
    if payment <= 0 or payment <= balance * monthly_rate:
        return PayoffSchedule(payoff_date=None, months_to_payoff=None, total_interest_paid=0.0)

    points: list[PayoffPoint] = []
    total_interest = 0.0
    for month in range(max_months):
        point_date = add_months(start_month, month)
        interest = balance * monthly_rate
        paid = min(payment, balance + interest)
        principal = paid - interest
        balance = max(0.0, balance - principal)
        total_interest += interest
        points.append(
            PayoffPoint(
                date=point_date,
                balance=round(balance, 2),
                payment=round(paid, 2),
                interest=round(interest, 2),
                principal=round(principal, 2),
            )
        )
        if balance <= 0:
            return PayoffSchedule(
                payoff_date=point_date,
                months_to_payoff=month + 1,
                total_interest_paid=round(total_interest, 2),
                points=points,
            )

    # 상한(30년) 내 상환 불가
    return PayoffSchedule(
        payoff_date=None,
        months_to_payoff=None,
        total_interest_paid=round(total_interest, 2),
        points=points,
    )


def compute_liability_payoff(
    liabilities: Iterable[LiabilityInput],
    settings_overrides: Iterable[PayoffSettings] | None,
    start_month: date,
) -> PayoffResult:
    """Payoff estimates for every liability with an outstanding balance.

    Explicit settings win; otherwise the payment implied by the liability's
    recurring transactions and the rate of its interest schedule are used.
    """
    overrides = {s.asset_id: s for s in (settings_overrides or [])}
    items: list[LiabilityPayoffItem] = []
    total_liabilities = 0.0
    total_payment = 0.0
    overall: Optional[date] = None

    for liability in liabilities:
        balance = float(liability.current_balance or 0)
        if balance <= 0:
            continue
        total_liabilities += balance

        setting = overrides.get(liability.asset_id)
        if setting is not None and setting.monthly_payment is not None:
            payment = max(0.0, float(setting.monthly_payment))
        else:
            payment = abs(float(liability.implied_payment or 0))
        if setting is not None and setting.interest_rate is not None:
            rate = max(0.0, float(setting.interest_rate))
        else:
            rate = float(liability.implied_rate or 0)
        total_payment += payment

        schedule = build_payoff_schedule(balance, payment, rate, start_month)
        if schedule.payoff_date is not None and (overall is None or schedule.payoff_date > overall):
            overall = schedule.payoff_date

        items.append(
            LiabilityPayoffItem(
                asset_id=liability.asset_id,
                name=liability.name,
                color=liability.color,
                current_balance=round(balance, 2),
                monthly_payment=round(payment, 2),
                interest_rate=rate,
                estimated_payoff_date=schedule.payoff_date,
                months_to_payoff=schedule.months_to_payoff,
                total_interest_paid=schedule.total_interest_paid,
                payoff_schedule=schedule.points,
                has_recurring_payment=liability.has_recurring_payment,
            )
        )

    overall_months = None
    if overall is not None:
        # start_month 자체가 첫 상환 월
        overall_months = months_between(start_month, overall) + 1

    return PayoffResult(
        liabilities=items,
        total_liabilities=round(total_liabilities, 2),
        total_monthly_payment=round(total_payment, 2),
        overall_payoff_date=overall,
        months_to_payoff=overall_months,
    )


# ---- Net worth projection -------------------------------------------------


def _ended_before(end: Optional[date], month: date) -> bool:
    return end is not None and (end.year, end.month) < (month.year, month.month)


def _custom_monthly_equivalent(item: CustomItem) -> float:
    if not item.is_recurring:
        return 0.0
    if not item.frequency:
        return float(item.amount)
    return monthly_equivalent(item.amount, item.frequency)


def estimate_goal(
    goal_amount: float,
    current_net_worth: float,
    projected: list[ProjectionPoint],
    projected_monthly_change: float,
    today: date,
) -> GoalEstimate:
    goal = float(goal_amount)
    if current_net_worth >= goal:
        return GoalEstimate(goal, True, 0, today)

    future = [p for p in projected if not p.is_historical]
    for index, point in enumerate(future):
        if point.projected_net_worth >= goal:
            return GoalEstimate(goal, True, index + 1, point.date)

    if projected_monthly_change > 0:
        last_value = future[-1].projected_net_worth if future else current_net_worth
        last_date = future[-1].date if future else month_start(today)
        additional = math.ceil((goal - last_value) / projected_monthly_change)
        return GoalEstimate(goal, True, len(future) + additional, add_months(last_date, additional))

    return GoalEstimate(goal, False, None, None)


def compute_net_worth_projection(
    history: list[HistoryPoint],
    active_schedules: list[ScheduleContribution],
    include_recurring: bool = True,
    goal_amount: Optional[float] = None,
    *,
    current_net_worth: float,
    today: date,
    expenses: Iterable[ExpenseEntry] = (),
    include_average_expenses: bool = False,
    projection_months: int = 12,
    custom_items: Iterable[CustomItem] = (),
    recent_history_months: int = 6,
) -> ProjectionResult:
    """Forecast net worth month by month from the current value.

    The base monthly change is the historical average change; recurring
    transfers (monthly equivalents) and average expenses are layered on when
    requested. Interest schedules compound on their projected balances and
    fixed schedules stop after their end month.
    """
    months = max(1, min(int(projection_months), MAX_PROJECTION_MONTHS))
    custom = list(custom_items)
    avg_expenses = average_monthly_expenses(expenses)
    avg_net_change = average_monthly_net_change(history)

    summaries: list[RecurringTransferSummary] = []
    recurring_total = 0.0
    for schedule in active_schedules:
        if schedule.is_interest_based:
            equivalent = interest_monthly_equivalent(schedule.balance, schedule.interest_rate, schedule.is_compounding)
        else:
            equivalent = monthly_equivalent(schedule.amount, schedule.frequency)
        recurring_total += equivalent
        summaries.append(
            RecurringTransferSummary(
                id=schedule.id,
                description=schedule.description,
                asset_name=schedule.asset_name,
                amount=float(schedule.amount),
                frequency=getattr(schedule.frequency, "value", str(schedule.frequency)),
                monthly_equivalent=round(equivalent, 2),
                interest_rate=schedule.interest_rate,
                is_compounding=schedule.is_compounding,
                is_interest_based=schedule.is_interest_based,
            )
        )

    custom_monthly = sum(_custom_monthly_equivalent(item) for item in custom)

    projected_monthly_change = avg_net_change + custom_monthly
    if include_recurring:
        projected_monthly_change += recurring_total
    if include_average_expenses:
        projected_monthly_change -= avg_expenses

    points: list[ProjectionPoint] = []
    ordered_history = sorted(history, key=lambda p: p.date)
    if recent_history_months > 0:
        for point in ordered_history[-recent_history_months:]:
            points.append(ProjectionPoint(point.date, round(point.net_worth, 2), True))

    projection_start = add_months(month_start(today), 1)
    balances = {s.asset_id: float(s.balance) for s in active_schedules if s.is_interest_based}
    running = float(current_net_worth)

    for i in range(months):
        month = add_months(projection_start, i)
        change = avg_net_change + custom_monthly
        if include_recurring:
            for schedule in active_schedules:
                if _ended_before(schedule.end_date, month):
                    continue
                if schedule.is_interest_based:
                    balance = balances.get(schedule.asset_id, 0.0)
                    interest = interest_monthly_equivalent(balance, schedule.interest_rate, schedule.is_compounding)
                    balances[schedule.asset_id] = balance + interest
                    change += interest
                else:
                    change += monthly_equivalent(schedule.amount, schedule.frequency)
        if include_average_expenses:
            change -= avg_expenses
        for item in custom:
            if item.is_recurring:
                continue
            if item.date is not None:
                if (item.date.year, item.date.month) == (month.year, month.month):
                    change += float(item.amount)
            elif i == 0:
                change += float(item.amount)
        running += change
        points.append(ProjectionPoint(month, round(running, 2), False))

    goal = None
    if goal_amount is not None:
        goal = estimate_goal(goal_amount, float(current_net_worth), points, projected_monthly_change, today)

    return ProjectionResult(
        current_net_worth=round(float(current_net_worth), 2),
        average_monthly_expenses=round(avg_expenses, 2),
        average_monthly_net_change=round(avg_net_change, 2),
        recurring_transfers_monthly_total=round(recurring_total, 2),
        custom_items_monthly_total=round(custom_monthly, 2),
        projected_monthly_change=round(projected_monthly_change, 2),
        includes_recurring_transfers=include_recurring,
        includes_average_expenses=include_average_expenses,
        projected_history=points,
        recurring_transfers=summaries,
        goal=goal,
    )
