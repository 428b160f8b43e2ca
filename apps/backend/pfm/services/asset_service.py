from __future__ import annotations

from datetime import date
from typing import Optional

from sqlalchemy.orm import Session, selectinload

from pfm import models
from pfm.models import now_local_naive
from pfm.repositories import SnapshotBalanceMutator


class AssetCategoryService:
    """Shared asset categories (liability flag decides how balances count toward net worth)."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def get_all(self) -> list[models.AssetCategory]:
        return (
            self.db.query(models.AssetCategory)
            .order_by(models.AssetCategory.sort_order, models.AssetCategory.name)
            .all()
        )

    def get_by_id(self, category_id: int) -> models.AssetCategory | None:
        return self.db.get(models.AssetCategory, category_id)

    def _name_taken(self, name: str, exclude_id: int | None = None) -> bool:
        q = self.db.query(models.AssetCategory).filter(models.AssetCategory.name == name)
        if exclude_id is not None:
            q = q.filter(models.AssetCategory.id != exclude_id)
        return q.first() is not None

    def create(self, payload: dict) -> models.AssetCategory:
        if self._name_taken(payload["name"]):
            raise ValueError("An asset category with this name already exists")
        row = models.AssetCategory(**payload)
        self.db.add(row)
        self.db.commit()
        self.db.refresh(row)
        return row

    def update(self, row: models.AssetCategory, patch: dict) -> models.AssetCategory:
        if not patch:
            return row
        if "name" in patch and self._name_taken(patch["name"], exclude_id=row.id):
            raise ValueError("An asset category with this name already exists")
        for key, value in patch.items():
            setattr(row, key, value)
        self.db.commit()
        self.db.refresh(row)
        return row

    def delete(self, row: models.AssetCategory) -> None:
        in_use = (
            self.db.query(models.Asset.id)
            .filter(models.Asset.asset_category_id == row.id)
            .first()
        )
        if in_use is not None:
            raise ValueError("Asset category is still used by assets")
        self.db.delete(row)
        self.db.commit()


class AssetService:
    """
    사용자 자산 CRUD.

    - 초기 잔액이 주어지면 오늘 날짜 스냅샷을 함께 생성
    - 삭제 시 스냅샷과 반복 거래도 함께 삭제 (ORM cascade)
    """

    def __init__(self, db: Session) -> None:
        self.db = db

    def _query(self, user_id: int):
        return (
            self.db.query(models.Asset)
            .options(selectinload(models.Asset.category), selectinload(models.Asset.snapshots))
            .filter(models.Asset.user_id == user_id)
        )

    def get_all(self, *, user_id: int, category_id: Optional[int] = None) -> list[models.Asset]:
        q = self._query(user_id)
        if category_id is not None:
            q = q.filter(models.Asset.asset_category_id == category_id)
        return q.order_by(models.Asset.id).all()

    def get_by_id(self, user_id: int, asset_id: int) -> models.Asset | None:
        return self._query(user_id).filter(models.Asset.id == asset_id).first()

    def _require_category(self, category_id: int) -> None:
        if self.db.get(models.AssetCategory, category_id) is None:
            raise LookupError("Asset category not found")

    def create(
        self,
        payload: dict,
        *,
        user_id: int,
        initial_balance: float | None = None,
        today: date | None = None,
    ) -> models.Asset:
        if self.db.get(models.User, user_id) is None:
            raise LookupError("User not found")
        self._require_category(payload["asset_category_id"])
        row = models.Asset(user_id=user_id, **payload)
        self.db.add(row)
        self.db.flush()
        if initial_balance is not None:
            SnapshotBalanceMutator(self.db).record(
                row.id, initial_balance, today or now_local_naive().date(), "Initial balance"
            )
        self.db.commit()
        self.db.refresh(row)
        return row

    def update(self, row: models.Asset, patch: dict) -> models.Asset:
        if not patch:
            return row
        if "asset_category_id" in patch:
            self._require_category(patch["asset_category_id"])
        for key, value in patch.items():
            setattr(row, key, value)
        self.db.commit()
        self.db.refresh(row)
        return row

    def delete(self, row: models.Asset) -> None:
        self.db.delete(row)
        self.db.commit()


class SnapshotService:
    """Single-snapshot reads and edits; same-day writes go through :class:`SnapshotBalanceMutator`."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def get_for_user(self, snapshot_id: int, user_id: int) -> models.AssetSnapshot | None:
        return (
            self.db.query(models.AssetSnapshot)
            .join(models.Asset, models.Asset.id == models.AssetSnapshot.asset_id)
            .filter(models.AssetSnapshot.id == snapshot_id, models.Asset.user_id == user_id)
            .first()
        )

    def latest(self, asset_id: int) -> models.AssetSnapshot | None:
        return SnapshotBalanceMutator(self.db).latest_snapshot(asset_id)

    def update(self, row: models.AssetSnapshot, patch: dict) -> models.AssetSnapshot:
        if not patch:
            return row
        new_date = patch.get("date")
        if new_date is not None and new_date != row.date:
            clash = (
                self.db.query(models.AssetSnapshot.id)
                .filter(
                    models.AssetSnapshot.asset_id == row.asset_id,
                    models.AssetSnapshot.date == new_date,
                    models.AssetSnapshot.id != row.id,
                )
                .first()
            )
            if clash is not None:
                raise ValueError("A snapshot already exists for this asset on that date")
        for key, value in patch.items():
            setattr(row, key, value)
        self.db.commit()
        self.db.refresh(row)
        return row

    def delete(self, row: models.AssetSnapshot) -> None:
        self.db.delete(row)
        self.db.commit()
