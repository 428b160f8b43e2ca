from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Optional

from sqlalchemy.orm import Session

from pfm import models
from pfm.core.database import session_scope
from pfm.models import now_local_naive
from pfm.repositories import SqlAutoImportScheduleStore
from pfm.services.interfaces import (
    AutoImportScheduleStore,
    ExternalImportWorkflow,
    ImportRunParams,
    ImportRunResult,
    UnconfiguredImportWorkflow,
)
from pfm.services.schedule_calculator import next_auto_import_run


logger = logging.getLogger(__name__)


class AutoImportStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class AutoImportOutcome:
    schedule_id: int
    status: AutoImportStatus
    imported_count: int = 0
    duplicates_found: int = 0
    next_run_at: Optional[datetime] = None
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == AutoImportStatus.SUCCEEDED


class AutoImportProcessor:
    """
    Run due auto-import schedules against the external import workflow.

    - 외부 서비스가 설정되지 않았으면 아무것도 조회하지 않음
    - 스케줄 하나가 실패해도 나머지는 계속 진행
    - 실패한 실행도 ``next_run_at``을 전진시켜 같은 오류로 매 폴링마다 재시도하지 않음
    """

    def __init__(
        self,
        store: AutoImportScheduleStore,
        workflow: ExternalImportWorkflow,
        clock: Callable[[], datetime] = now_local_naive,
    ) -> None:
        self.store = store
        self.workflow = workflow
        self.clock = clock

    def process_due(self, now: datetime | None = None) -> list[AutoImportOutcome]:
        if not self.workflow.is_configured:
            logger.debug("External import service is not configured; skipping auto-import poll")
            return []
        as_of = now or self.clock()
        due = list(self.store.find_due(as_of))
        if due:
            logger.info("Found %d auto-import schedules due", len(due))
        return [self.run_schedule(schedule, as_of) for schedule in due]

    def run_schedule(self, schedule: models.AutoImportSchedule, now: datetime | None = None) -> AutoImportOutcome:
        """Run one schedule; run times are stamped when the import finishes."""
        schedule_id = schedule.id
        started = now or self.clock()
        frequency = schedule.frequency
        params = ImportRunParams(
            schedule_id=schedule_id,
            user_id=schedule.user_id,
            group_id=schedule.group_id,
            member_id=schedule.member_id,
            start_date=schedule.start_date,
            end_date=started.date(),
        )
        try:
            result = self.workflow.run(params)
            self._record_result(schedule, result, self.clock())
            if self.store.save(schedule) is None:
                raise LookupError(f"auto-import schedule {schedule_id} no longer exists")
        except Exception as exc:
            logger.exception("Error processing auto-import schedule %s", schedule_id)
            return self._record_failure(schedule_id, schedule, frequency, str(exc), self.clock())

        if result.success:
            logger.info(
                "Auto-import %s completed: %d imported, %d duplicates",
                schedule_id,
                result.imported_count,
                result.duplicates_found,
            )
            status = AutoImportStatus.SUCCEEDED
        else:
            logger.warning("Auto-import %s failed: %s", schedule_id, result.error_message)
            status = AutoImportStatus.FAILED
        return AutoImportOutcome(
            schedule_id,
            status,
            imported_count=result.imported_count,
            duplicates_found=result.duplicates_found,
            next_run_at=schedule.next_run_at,
            error=result.error_message if not result.success else None,
        )

    def _record_result(
        self, schedule: models.AutoImportSchedule, result: ImportRunResult, finished: datetime
    ) -> None:
        schedule.last_run_at = finished
        schedule.next_run_at = next_auto_import_run(schedule.frequency, finished)
        if result.success:
            schedule.last_run_imported_count = result.imported_count
            schedule.last_run_error = None
        else:
            schedule.last_run_imported_count = 0
            schedule.last_run_error = result.error_message or "Import failed"

    def _record_failure(
        self,
        schedule_id: int,
        schedule: models.AutoImportSchedule,
        frequency: models.AutoImportFrequency,
        message: str,
        finished: datetime,
    ) -> AutoImportOutcome:
        next_run_at = next_auto_import_run(frequency, finished)
        try:
            self.store.rollback()
            schedule.last_run_at = finished
            schedule.last_run_imported_count = 0
            schedule.last_run_error = message
            schedule.next_run_at = next_run_at
            self.store.save(schedule)
        except Exception:
            # 오류 기록 실패는 로그만 남기고 다음 스케줄로 진행
            logger.exception("Failed to record error for auto-import schedule %s", schedule_id)
            self.store.rollback()
        return AutoImportOutcome(schedule_id, AutoImportStatus.FAILED, next_run_at=next_run_at, error=message)


class AutoImportService:
    """CRUD and manual trigger for a user's auto-import schedules."""

    def __init__(
        self,
        db: Session,
        workflow: ExternalImportWorkflow | None = None,
        clock: Callable[[], datetime] = now_local_naive,
    ) -> None:
        self.db = db
        self.store = SqlAutoImportScheduleStore(db)
        self.workflow = workflow or UnconfiguredImportWorkflow()
        self.clock = clock

    def list_for_user(self, user_id: int) -> list[models.AutoImportSchedule]:
        return self.store.list_for_user(user_id)

    def get(self, schedule_id: int, user_id: int) -> models.AutoImportSchedule | None:
        return self.store.get_for_user(schedule_id, user_id)

    def create(self, payload: dict, *, user_id: int, now: datetime | None = None) -> models.AutoImportSchedule:
        existing = self.store.find_by_group_and_member(user_id, payload["group_id"], payload["member_id"])
        if existing is not None:
            raise ValueError("An auto-import schedule already exists for this group and member")
        row = models.AutoImportSchedule(user_id=user_id, **payload)
        row.is_active = True
        row.next_run_at = now or self.clock()
        return self.store.add(row)

    def update(self, row: models.AutoImportSchedule, patch: dict) -> models.AutoImportSchedule:
        for key, value in patch.items():
            setattr(row, key, value)
        return self.store.save(row) or row

    def delete(self, row: models.AutoImportSchedule) -> None:
        self.store.delete(row)

    def run_now(self, schedule_id: int, user_id: int) -> AutoImportOutcome | None:
        row = self.get(schedule_id, user_id)
        if row is None:
            return None
        if not self.workflow.is_configured:
            raise RuntimeError("External import service is not configured")
        processor = AutoImportProcessor(self.store, self.workflow, self.clock)
        return processor.run_schedule(row)


def run_auto_import_tick(
    session_factory,
    workflow: ExternalImportWorkflow | None = None,
    now: datetime | None = None,
) -> list[AutoImportOutcome]:
    with session_scope(session_factory) as db:
        processor = AutoImportProcessor(SqlAutoImportScheduleStore(db), workflow or UnconfiguredImportWorkflow())
        return processor.process_due(now)
