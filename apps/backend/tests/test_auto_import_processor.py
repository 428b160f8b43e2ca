"""
AutoImportProcessor 테스트 (in-memory store / workflow)
"""

from __future__ import annotations

from datetime import date, datetime, timedelta

import pytest

from pfm import models
from pfm.models import AutoImportFrequency
from pfm.services.auto_import_service import AutoImportProcessor, AutoImportService, AutoImportStatus
from pfm.services.interfaces import ImportRunParams, ImportRunResult


NOW = datetime(2025, 3, 10, 8, 0)


def _schedule(schedule_id: int, frequency=AutoImportFrequency.DAILY, member_id: int = 20) -> models.AutoImportSchedule:
    return models.AutoImportSchedule(
        id=schedule_id,
        user_id=1,
        group_id=10,
        group_name="Roommates",
        member_id=member_id,
        member_name="Alex",
        start_date=date(2025, 1, 1),
        frequency=frequency,
        is_active=True,
        next_run_at=NOW - timedelta(minutes=5),
        last_run_imported_count=0,
    )


class FakeStore:
    def __init__(self, schedules, fail_saves: bool = False):
        self.schedules = list(schedules)
        self.fail_saves = fail_saves
        self.find_calls = 0
        self.saved: list[int] = []
        self.rollbacks = 0

    def find_due(self, as_of):
        self.find_calls += 1
        return [s for s in self.schedules if s.is_active and s.next_run_at <= as_of]

    def save(self, schedule):
        if self.fail_saves:
            raise RuntimeError("database is locked")
        self.saved.append(schedule.id)
        return schedule

    def rollback(self):
        self.rollbacks += 1


class FakeWorkflow:
    def __init__(self, results=None, configured: bool = True):
        self.results = results or {}
        self.configured = configured
        self.calls: list[ImportRunParams] = []

    @property
    def is_configured(self) -> bool:
        return self.configured

    def run(self, params: ImportRunParams) -> ImportRunResult:
        self.calls.append(params)
        result = self.results.get(params.schedule_id, ImportRunResult(success=True))
        if isinstance(result, Exception):
            raise result
        return result


def _fixed_clock() -> datetime:
    return NOW


def _processor(store, workflow) -> AutoImportProcessor:
    return AutoImportProcessor(store, workflow, clock=_fixed_clock)


class SteppingClock:
    def __init__(self, start: datetime, step: timedelta):
        self.current = start
        self.step = step

    def __call__(self) -> datetime:
        return self.current

    def advance(self) -> None:
        self.current += self.step


class SlowWorkflow(FakeWorkflow):
    """각 실행마다 시계를 앞으로 돌리는 workflow"""

    def __init__(self, clock: SteppingClock, results=None):
        super().__init__(results)
        self.clock = clock

    def run(self, params: ImportRunParams) -> ImportRunResult:
        self.clock.advance()
        return super().run(params)


class TestAutoImportProcessor:
    def test_run_times_come_from_completion_not_poll_start(self):
        clock = SteppingClock(NOW, timedelta(minutes=10))
        first = _schedule(1)
        second = _schedule(2, member_id=21)
        workflow = SlowWorkflow(clock, {2: RuntimeError("timeout")})

        outcomes = AutoImportProcessor(FakeStore([first, second]), workflow, clock=clock).process_due()

        assert [o.status for o in outcomes] == [AutoImportStatus.SUCCEEDED, AutoImportStatus.FAILED]
        assert first.last_run_at == NOW + timedelta(minutes=10)
        assert first.next_run_at == NOW + timedelta(days=1, minutes=10)
        assert second.last_run_at == NOW + timedelta(minutes=20)
        assert second.next_run_at == NOW + timedelta(days=1, minutes=20)
        # 조회 구간의 끝은 실행 시작 시점 기준
        assert [p.end_date for p in workflow.calls] == [NOW.date(), NOW.date()]

    def test_unconfigured_workflow_skips_without_querying(self):
        store = FakeStore([_schedule(1)])
        outcomes = _processor(store, FakeWorkflow(configured=False)).process_due(NOW)
        assert outcomes == []
        assert store.find_calls == 0

    def test_success_records_counts_and_advances(self):
        schedule = _schedule(1, AutoImportFrequency.WEEKLY)
        workflow = FakeWorkflow({1: ImportRunResult(success=True, imported_count=3, duplicates_found=1)})

        outcomes = _processor(FakeStore([schedule]), workflow).process_due(NOW)

        assert outcomes[0].status == AutoImportStatus.SUCCEEDED
        assert outcomes[0].imported_count == 3
        assert schedule.last_run_at == NOW
        assert schedule.last_run_imported_count == 3
        assert schedule.last_run_error is None
        assert schedule.next_run_at == NOW + timedelta(days=7)
        params = workflow.calls[0]
        assert (params.group_id, params.member_id) == (10, 20)
        assert params.start_date == date(2025, 1, 1)
        assert params.end_date == NOW.date()

    def test_exception_is_isolated_and_still_advances(self):
        broken = _schedule(1, AutoImportFrequency.DAILY)
        healthy = _schedule(2, AutoImportFrequency.MONTHLY, member_id=21)
        store = FakeStore([broken, healthy])
        workflow = FakeWorkflow({1: RuntimeError("upstream 500"), 2: ImportRunResult(success=True, imported_count=2)})

        outcomes = _processor(store, workflow).process_due(NOW)

        assert [o.status for o in outcomes] == [AutoImportStatus.FAILED, AutoImportStatus.SUCCEEDED]
        assert broken.last_run_error == "upstream 500"
        assert broken.last_run_at == NOW
        assert broken.next_run_at == NOW + timedelta(days=1)
        assert healthy.last_run_imported_count == 2
        assert healthy.next_run_at == datetime(2025, 4, 10, 8, 0)
        assert store.rollbacks == 1
        assert store.saved == [1, 2]

    def test_unsuccessful_result_records_error(self):
        schedule = _schedule(1)
        workflow = FakeWorkflow({1: ImportRunResult(success=False, error_message="rate limited")})

        outcomes = _processor(FakeStore([schedule]), workflow).process_due(NOW)

        assert outcomes[0].status == AutoImportStatus.FAILED
        assert outcomes[0].error == "rate limited"
        assert schedule.last_run_error == "rate limited"
        assert schedule.next_run_at == NOW + timedelta(days=1)

    def test_persistence_failure_does_not_stop_the_poll(self):
        store = FakeStore([_schedule(1), _schedule(2, member_id=21)], fail_saves=True)
        workflow = FakeWorkflow()

        outcomes = _processor(store, workflow).process_due(NOW)

        assert [o.status for o in outcomes] == [AutoImportStatus.FAILED, AutoImportStatus.FAILED]
        assert all("locked" in o.error for o in outcomes)
        assert len(workflow.calls) == 2

    def test_not_due_schedules_are_left_alone(self):
        later = _schedule(1)
        later.next_run_at = NOW + timedelta(hours=1)
        workflow = FakeWorkflow()
        assert _processor(FakeStore([later]), workflow).process_due(NOW) == []
        assert workflow.calls == []


class TestAutoImportService:
    payload = {
        "group_id": 10,
        "group_name": "Roommates",
        "member_id": 20,
        "member_name": "Alex",
        "start_date": date(2025, 1, 1),
        "frequency": AutoImportFrequency.WEEKLY,
    }

    def test_create_runs_on_next_poll(self, db_session, user):
        row = AutoImportService(db_session, clock=_fixed_clock).create(dict(self.payload), user_id=user.id)
        assert row.next_run_at == NOW
        assert row.is_active
        assert row.last_run_error is None

    def test_duplicate_group_member_rejected(self, db_session, user):
        service = AutoImportService(db_session, clock=_fixed_clock)
        service.create(dict(self.payload), user_id=user.id)
        with pytest.raises(ValueError):
            service.create(dict(self.payload), user_id=user.id)

    def test_run_now_applies_bookkeeping(self, db_session, user):
        workflow = FakeWorkflow()
        service = AutoImportService(db_session, workflow, clock=_fixed_clock)
        row = service.create(dict(self.payload), user_id=user.id)
        workflow.results[row.id] = ImportRunResult(success=True, imported_count=5)

        outcome = service.run_now(row.id, user.id)

        assert outcome.succeeded
        db_session.refresh(row)
        assert row.last_run_imported_count == 5
        assert row.next_run_at == NOW + timedelta(days=7)

    def test_run_now_requires_configured_workflow(self, db_session, user):
        service = AutoImportService(db_session, clock=_fixed_clock)
        row = service.create(dict(self.payload), user_id=user.id)
        with pytest.raises(RuntimeError):
            service.run_now(row.id, user.id)

    def test_run_now_unknown_schedule(self, db_session, user):
        assert AutoImportService(db_session, FakeWorkflow(), clock=_fixed_clock).run_now(12345, user.id) is None
