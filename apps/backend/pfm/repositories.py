from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session, selectinload

from pfm import models


class SqlRecurringScheduleStore:
    def __init__(self, db: Session) -> None:
        self.db = db

    def find_due(self, as_of: datetime) -> list[models.RecurringTransaction]:
        as_of_date = as_of.date() if isinstance(as_of, datetime) else as_of
        RT = models.RecurringTransaction
        return (
            self.db.query(RT)
            .options(selectinload(RT.asset))
            .filter(
                RT.is_active.is_(True),
                RT.next_run_date <= as_of_date,
                or_(
                    RT.end_date.is_(None),
                    and_(RT.end_date >= as_of_date, RT.next_run_date <= RT.end_date),
                ),
            )
            .order_by(RT.next_run_date, RT.id)
            .all()
        )

    def get(self, schedule_id: int) -> models.RecurringTransaction | None:
        return self.db.get(models.RecurringTransaction, schedule_id)

    def list_for_user(self, user_id: int, *, active_only: bool = False) -> list[models.RecurringTransaction]:
        RT = models.RecurringTransaction
        q = (
            self.db.query(RT)
            .join(models.Asset, models.Asset.id == RT.asset_id)
            .options(selectinload(RT.asset))
            .filter(models.Asset.user_id == user_id)
        )
        if active_only:
            q = q.filter(RT.is_active.is_(True))
        return q.order_by(RT.next_run_date, RT.id).all()

    def list_for_asset(self, asset_id: int) -> list[models.RecurringTransaction]:
        RT = models.RecurringTransaction
        return self.db.query(RT).filter(RT.asset_id == asset_id).order_by(RT.next_run_date, RT.id).all()

    def add(self, schedule: models.RecurringTransaction) -> models.RecurringTransaction:
        self.db.add(schedule)
        self.db.commit()
        self.db.refresh(schedule)
        return schedule

    def save(self, schedule: models.RecurringTransaction) -> Optional[models.RecurringTransaction]:
        if schedule.id is not None and self.db.get(models.RecurringTransaction, schedule.id) is None:
            return None
        self.db.add(schedule)
        self.db.commit()
        self.db.refresh(schedule)
        return schedule

    def delete(self, schedule: models.RecurringTransaction) -> None:
        self.db.delete(schedule)
        self.db.commit()

    def rollback(self) -> None:
        self.db.rollback()


class SqlAutoImportScheduleStore:
    def __init__(self, db: Session) -> None:
        self.db = db

    def find_due(self, as_of: datetime) -> list[models.AutoImportSchedule]:
        AI = models.AutoImportSchedule
        return (
            self.db.query(AI)
            .filter(AI.is_active.is_(True), AI.next_run_at <= as_of)
            .order_by(AI.next_run_at, AI.id)
            .all()
        )

    def get_for_user(self, schedule_id: int, user_id: int) -> models.AutoImportSchedule | None:
        AI = models.AutoImportSchedule
        return self.db.query(AI).filter(AI.id == schedule_id, AI.user_id == user_id).first()

    def find_by_group_and_member(self, user_id: int, group_id: int, member_id: int) -> models.AutoImportSchedule | None:
        AI = models.AutoImportSchedule
        return (
            self.db.query(AI)
            .filter(AI.user_id == user_id, AI.group_id == group_id, AI.member_id == member_id)
            .first()
        )

    def list_for_user(self, user_id: int) -> list[models.AutoImportSchedule]:
        AI = models.AutoImportSchedule
        return self.db.query(AI).filter(AI.user_id == user_id).order_by(AI.created_at.desc(), AI.id.desc()).all()

    def add(self, schedule: models.AutoImportSchedule) -> models.AutoImportSchedule:
        self.db.add(schedule)
        self.db.commit()
        self.db.refresh(schedule)
        return schedule

    def save(self, schedule: models.AutoImportSchedule) -> Optional[models.AutoImportSchedule]:
        if schedule.id is not None and self.db.get(models.AutoImportSchedule, schedule.id) is None:
            return None
        self.db.add(schedule)
        self.db.commit()
        self.db.refresh(schedule)
        return schedule

    def delete(self, schedule: models.AutoImportSchedule) -> None:
        self.db.delete(schedule)
        self.db.commit()

    def rollback(self) -> None:
        self.db.rollback()


class SnapshotBalanceMutator:
    """Balance changes expressed as snapshots; flushes only, the caller commits."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def latest_snapshot(self, asset_id: int, *, on_or_before: date | None = None) -> models.AssetSnapshot | None:
        q = self.db.query(models.AssetSnapshot).filter(models.AssetSnapshot.asset_id == asset_id)
        if on_or_before is not None:
            q = q.filter(models.AssetSnapshot.date <= on_or_before)
        return q.order_by(models.AssetSnapshot.date.desc(), models.AssetSnapshot.id.desc()).first()

    def current_balance(self, asset_id: int) -> float:
        snap = self.latest_snapshot(asset_id)
        return float(snap.balance or 0) if snap else 0.0

    def record(self, asset_id: int, balance: float, on: date, notes: str | None = None) -> models.AssetSnapshot:
        """Upsert the effective balance for (asset, date)."""
        snap = (
            self.db.query(models.AssetSnapshot)
            .filter(models.AssetSnapshot.asset_id == asset_id, models.AssetSnapshot.date == on)
            .first()
        )
        if snap is None:
            snap = models.AssetSnapshot(asset_id=asset_id, date=on, balance=balance, notes=notes)
            self.db.add(snap)
        else:
            snap.balance = balance
            if notes:
                snap.notes = notes
        self.db.flush()
        return snap

    def apply_delta(self, asset_id: int, amount: float, on: date, notes: str | None = None) -> None:
        """Move the balance by ``amount`` from ``on`` onwards.

        The new value at ``on`` is based on the balance in effect on that day,
        and snapshots dated after ``on`` (recorded before a late poll caught up)
        are shifted by the same amount so the current balance includes it.
        """
        delta = float(amount)
        base = self.latest_snapshot(asset_id, on_or_before=on)
        start = float(base.balance or 0) if base else 0.0
        self.record(asset_id, round(start + delta, 4), on, notes)

        later = (
            self.db.query(models.AssetSnapshot)
            .filter(models.AssetSnapshot.asset_id == asset_id, models.AssetSnapshot.date > on)
            .all()
        )
        for snap in later:
            snap.balance = round(float(snap.balance or 0) + delta, 4)
        if later:
            self.db.flush()
