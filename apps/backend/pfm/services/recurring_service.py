from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Optional

from sqlalchemy.orm import Session

from pfm import models
from pfm.core.database import session_scope
from pfm.models import now_local_naive
from pfm.repositories import SnapshotBalanceMutator, SqlRecurringScheduleStore
from pfm.services.interfaces import BalanceMutator, RecurringScheduleStore
from pfm.services.projection_calculator import accrue_interest
from pfm.services.schedule_calculator import first_occurrence, next_occurrence


logger = logging.getLogger(__name__)

_CADENCE_FIELDS = ("frequency", "day_of_week", "day_of_month", "start_date")


class ProcessStatus(str, Enum):
    APPLIED = "applied"
    FAILED = "failed"


@dataclass
class ProcessOutcome:
    schedule_id: int
    status: ProcessStatus
    occurrence: Optional[date] = None
    amount: float = 0.0
    next_run_date: Optional[date] = None
    reason: Optional[str] = None

    @property
    def applied(self) -> bool:
        return self.status == ProcessStatus.APPLIED


def compute_occurrence_amount(schedule: models.RecurringTransaction, balance: float) -> float:
    """Balance delta for the schedule's current ``next_run_date`` occurrence."""
    if not schedule.is_interest_based:
        return float(schedule.amount or 0)
    since = schedule.last_run_date or schedule.start_date
    days = (schedule.next_run_date - since).days
    accrued = accrue_interest(balance, float(schedule.interest_rate), days, bool(schedule.is_compounding))
    return round(accrued, 2)


class RecurringTransactionProcessor:
    """Apply every due recurring transaction once per poll.

    Items are processed one at a time; a failure rolls back that item only and
    leaves its ``next_run_date`` untouched so the next poll retries it.
    """

    def __init__(self, store: RecurringScheduleStore, balances: BalanceMutator) -> None:
        self.store = store
        self.balances = balances

    def process_due(self, now: datetime | None = None) -> list[ProcessOutcome]:
        as_of = now or now_local_naive()
        outcomes: list[ProcessOutcome] = []
        for schedule in self.store.find_due(as_of):
            outcomes.append(self._process_one(schedule))
        applied = sum(1 for o in outcomes if o.applied)
        if applied:
            logger.info("Processed %d recurring transactions", applied)
        return outcomes

    def _process_one(self, schedule: models.RecurringTransaction) -> ProcessOutcome:
        schedule_id = schedule.id
        occurrence = schedule.next_run_date
        try:
            if schedule.end_date is not None and occurrence > schedule.end_date:
                raise ValueError(f"occurrence {occurrence} is past end date {schedule.end_date}")

            balance = self.balances.current_balance(schedule.asset_id) if schedule.is_interest_based else 0.0
            amount = compute_occurrence_amount(schedule, balance)
            if amount:
                self.balances.apply_delta(
                    schedule.asset_id,
                    amount,
                    occurrence,
                    notes=f"Recurring: {schedule.description}",
                )

            schedule.last_run_date = occurrence
            schedule.next_run_date = next_occurrence(
                schedule.frequency,
                occurrence,
                schedule.day_of_week,
                schedule.day_of_month,
                origin=schedule.start_date,
            )
            if self.store.save(schedule) is None:
                raise LookupError(f"recurring transaction {schedule_id} no longer exists")
        except Exception as exc:
            self.store.rollback()
            logger.exception("Error processing recurring transaction %s", schedule_id)
            return ProcessOutcome(schedule_id, ProcessStatus.FAILED, occurrence=occurrence, reason=str(exc))

        return ProcessOutcome(
            schedule_id,
            ProcessStatus.APPLIED,
            occurrence=occurrence,
            amount=amount,
            next_run_date=schedule.next_run_date,
        )


class RecurringTransactionService:
    """User-facing operations on recurring transactions."""

    def __init__(self, db: Session) -> None:
        self.db = db
        self.store = SqlRecurringScheduleStore(db)

    def _owned_asset(self, asset_id: int, user_id: int) -> models.Asset | None:
        return (
            self.db.query(models.Asset)
            .filter(models.Asset.id == asset_id, models.Asset.user_id == user_id)
            .first()
        )

    def get(self, schedule_id: int, user_id: int) -> models.RecurringTransaction | None:
        row = self.store.get(schedule_id)
        if row is None or row.asset is None or row.asset.user_id != user_id:
            return None
        return row

    def list_for_user(self, user_id: int) -> list[models.RecurringTransaction]:
        return self.store.list_for_user(user_id)

    def list_for_asset(self, asset_id: int, user_id: int) -> list[models.RecurringTransaction]:
        if self._owned_asset(asset_id, user_id) is None:
            return []
        return self.store.list_for_asset(asset_id)

    def create(self, payload: dict, *, user_id: int, today: date | None = None) -> models.RecurringTransaction:
        if self._owned_asset(payload["asset_id"], user_id) is None:
            raise LookupError("Asset not found or does not belong to user")
        row = models.RecurringTransaction(**payload)
        if row.is_interest_based:
            row.amount = 0
        row.next_run_date = first_occurrence(
            row.frequency,
            row.start_date,
            row.day_of_week,
            row.day_of_month,
            not_before=today or now_local_naive().date(),
        )
        return self.store.add(row)

    def update(
        self, row: models.RecurringTransaction, patch: dict, *, today: date | None = None
    ) -> models.RecurringTransaction:
        if not patch:
            return row
        recalculate = any(key in patch for key in _CADENCE_FIELDS)
        for key, value in patch.items():
            setattr(row, key, value)
        if row.is_interest_based:
            row.amount = 0
        if recalculate:
            if row.last_run_date is not None and row.last_run_date >= row.start_date:
                row.next_run_date = next_occurrence(
                    row.frequency,
                    row.last_run_date,
                    row.day_of_week,
                    row.day_of_month,
                    origin=row.start_date,
                )
            else:
                # 시작일이 바뀐 경우에도 지난 회차를 소급 실행하지 않음
                row.next_run_date = first_occurrence(
                    row.frequency,
                    row.start_date,
                    row.day_of_week,
                    row.day_of_month,
                    not_before=today or now_local_naive().date(),
                )
        return self.store.save(row) or row

    def delete(self, row: models.RecurringTransaction) -> None:
        self.store.delete(row)


def run_recurring_tick(session_factory, now: datetime | None = None) -> list[ProcessOutcome]:
    """One poll: open a session, process everything due, close the session."""
    with session_scope(session_factory) as db:
        processor = RecurringTransactionProcessor(SqlRecurringScheduleStore(db), SnapshotBalanceMutator(db))
        return processor.process_due(now)
