"""Collaborator contracts consumed by the pollers.

SQLAlchemy-backed implementations live in :mod:`pfm.repositories`; tests
substitute in-memory fakes where a failure needs to be injected.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional, Protocol, Sequence

from pfm import models


class RecurringScheduleStore(Protocol):
    def find_due(self, as_of: datetime) -> Sequence[models.RecurringTransaction]:
        ...

    def save(self, schedule: models.RecurringTransaction) -> Optional[models.RecurringTransaction]:
        """Persist the schedule (and pending balance changes); ``None`` if it no longer exists."""
        ...

    def rollback(self) -> None:
        ...


class AutoImportScheduleStore(Protocol):
    def find_due(self, as_of: datetime) -> Sequence[models.AutoImportSchedule]:
        ...

    def save(self, schedule: models.AutoImportSchedule) -> Optional[models.AutoImportSchedule]:
        ...

    def rollback(self) -> None:
        ...


class BalanceMutator(Protocol):
    def apply_delta(self, asset_id: int, amount: float, on: date, notes: str | None = None) -> None:
        ...

    def current_balance(self, asset_id: int) -> float:
        ...


@dataclass
class ImportRunParams:
    schedule_id: int
    user_id: int
    group_id: int
    member_id: int
    start_date: date
    end_date: date


@dataclass
class ImportRunResult:
    success: bool
    imported_count: int = 0
    duplicates_found: int = 0
    error_message: Optional[str] = None


class ExternalImportWorkflow(Protocol):
    @property
    def is_configured(self) -> bool:
        ...

    def run(self, params: ImportRunParams) -> ImportRunResult:
        ...


class UnconfiguredImportWorkflow:
    """Default capability when no expense-sharing client is wired in."""

    @property
    def is_configured(self) -> bool:
        return False

    def run(self, params: ImportRunParams) -> ImportRunResult:
        return ImportRunResult(success=False, error_message="External import service is not configured")
