from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from .core.database import get_db
from . import models
from .models import now_local_naive
from .repositories import SnapshotBalanceMutator, SqlRecurringScheduleStore
from .schemas import (
    AssetCategoryCreate,
    AssetCategoryOut,
    AssetCategoryUpdate,
    AssetCreate,
    AssetOut,
    AssetUpdate,
    AutoImportCreate,
    AutoImportOut,
    AutoImportRunOut,
    AutoImportUpdate,
    LiabilityPayoffOut,
    NetWorthComparisonOut,
    NetWorthHistoryPointOut,
    NetWorthSummaryOut,
    PayoffRequest,
    ProcessOutcomeOut,
    ProjectionOut,
    ProjectionRequest,
    RecurringTransactionCreate,
    RecurringTransactionOut,
    RecurringTransactionUpdate,
    SnapshotCreate,
    SnapshotOut,
    SnapshotUpdate,
)
from .services.asset_service import AssetCategoryService, AssetService, SnapshotService
from .services.auto_import_service import AutoImportService
from .services.net_worth_service import GROUP_BY_OPTIONS, NetWorthService
from .services.projection_calculator import CustomItem, PayoffSettings
from .services.recurring_service import RecurringTransactionProcessor, RecurringTransactionService
from .services.schedule_calculator import add_months


router = APIRouter()


def _owned_asset_or_404(db: Session, asset_id: int, user_id: int) -> models.Asset:
    asset = (
        db.query(models.Asset)
        .filter(models.Asset.id == asset_id, models.Asset.user_id == user_id)
        .first()
    )
    if not asset:
        raise HTTPException(status_code=404, detail="Asset not found")
    return asset


# ---- Asset categories ------------------------------------------------------


@router.get("/asset-categories", response_model=list[AssetCategoryOut])
def list_asset_categories(db: Session = Depends(get_db)):
    return AssetCategoryService(db).get_all()


@router.get("/asset-categories/{category_id}", response_model=AssetCategoryOut)
def get_asset_category(category_id: int, db: Session = Depends(get_db)):
    row = AssetCategoryService(db).get_by_id(category_id)
    if not row:
        raise HTTPException(status_code=404, detail="Asset category not found")
    return row


@router.post("/asset-categories", response_model=AssetCategoryOut, status_code=201)
def create_asset_category(payload: AssetCategoryCreate, db: Session = Depends(get_db)):
    try:
        return AssetCategoryService(db).create(payload.model_dump())
    except ValueError as exc:
        raise HTTPException(status_code=409, detail=str(exc))


@router.patch("/asset-categories/{category_id}", response_model=AssetCategoryOut)
def update_asset_category(category_id: int, payload: AssetCategoryUpdate, db: Session = Depends(get_db)):
    service = AssetCategoryService(db)
    row = service.get_by_id(category_id)
    if not row:
        raise HTTPException(status_code=404, detail="Asset category not found")
    changes = {k: v for k, v in payload.model_dump(exclude_unset=True).items() if v is not None}
    try:
        return service.update(row, changes)
    except ValueError as exc:
        raise HTTPException(status_code=409, detail=str(exc))


@router.delete("/asset-categories/{category_id}", status_code=204)
def delete_asset_category(category_id: int, db: Session = Depends(get_db)):
    service = AssetCategoryService(db)
    row = service.get_by_id(category_id)
    if not row:
        raise HTTPException(status_code=404, detail="Asset category not found")
    try:
        service.delete(row)
    except ValueError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    return None


# ---- Assets ----------------------------------------------------------------


@router.get("/assets", response_model=list[AssetOut])
def list_assets(
    user_id: int = Query(..., ge=1),
    category_id: int | None = Query(None),
    db: Session = Depends(get_db),
):
    return AssetService(db).get_all(user_id=user_id, category_id=category_id)


@router.post("/assets", response_model=AssetOut, status_code=201)
def create_asset(payload: AssetCreate, user_id: int = Query(..., ge=1), db: Session = Depends(get_db)):
    data = payload.model_dump()
    initial_balance = data.pop("initial_balance")
    try:
        return AssetService(db).create(data, user_id=user_id, initial_balance=initial_balance)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc))


@router.get("/assets/{asset_id}", response_model=AssetOut)
def get_asset(asset_id: int, user_id: int = Query(..., ge=1), db: Session = Depends(get_db)):
    row = AssetService(db).get_by_id(user_id, asset_id)
    if not row:
        raise HTTPException(status_code=404, detail="Asset not found")
    return row


@router.patch("/assets/{asset_id}", response_model=AssetOut)
def update_asset(
    asset_id: int,
    payload: AssetUpdate,
    user_id: int = Query(..., ge=1),
    db: Session = Depends(get_db),
):
    service = AssetService(db)
    row = service.get_by_id(user_id, asset_id)
    if not row:
        raise HTTPException(status_code=404, detail="Asset not found")
    changes = {k: v for k, v in payload.model_dump(exclude_unset=True).items() if v is not None}
    try:
        return service.update(row, changes)
    except LookupError as exc:
        raise HTTPException(status_code=400, detail=str(exc))


@router.delete("/assets/{asset_id}", status_code=204)
def delete_asset(asset_id: int, user_id: int = Query(..., ge=1), db: Session = Depends(get_db)):
    service = AssetService(db)
    row = service.get_by_id(user_id, asset_id)
    if not row:
        raise HTTPException(status_code=404, detail="Asset not found")
    service.delete(row)
    return None


# ---- Balance snapshots -----------------------------------------------------


@router.post("/assets/{asset_id}/snapshots", response_model=SnapshotOut, status_code=201)
def record_snapshot(
    asset_id: int,
    payload: SnapshotCreate,
    user_id: int = Query(..., ge=1),
    db: Session = Depends(get_db),
):
    _owned_asset_or_404(db, asset_id, user_id)
    snap = SnapshotBalanceMutator(db).record(asset_id, payload.balance, payload.date, payload.notes)
    db.commit()
    db.refresh(snap)
    return snap


@router.get("/assets/{asset_id}/snapshots", response_model=list[SnapshotOut])
def list_snapshots(
    asset_id: int,
    user_id: int = Query(..., ge=1),
    start: date | None = Query(None),
    end: date | None = Query(None),
    db: Session = Depends(get_db),
):
    _owned_asset_or_404(db, asset_id, user_id)
    q = db.query(models.AssetSnapshot).filter(models.AssetSnapshot.asset_id == asset_id)
    if start is not None:
        q = q.filter(models.AssetSnapshot.date >= start)
    if end is not None:
        q = q.filter(models.AssetSnapshot.date <= end)
    return q.order_by(models.AssetSnapshot.date.desc()).all()


@router.get("/assets/{asset_id}/snapshots/latest", response_model=SnapshotOut)
def latest_snapshot(asset_id: int, user_id: int = Query(..., ge=1), db: Session = Depends(get_db)):
    _owned_asset_or_404(db, asset_id, user_id)
    snap = SnapshotService(db).latest(asset_id)
    if not snap:
        raise HTTPException(status_code=404, detail="No snapshots for asset")
    return snap


@router.patch("/snapshots/{snapshot_id}", response_model=SnapshotOut)
def update_snapshot(
    snapshot_id: int,
    payload: SnapshotUpdate,
    user_id: int = Query(..., ge=1),
    db: Session = Depends(get_db),
):
    service = SnapshotService(db)
    row = service.get_for_user(snapshot_id, user_id)
    if not row:
        raise HTTPException(status_code=404, detail="Snapshot not found")
    changes = payload.model_dump(exclude_unset=True)
    if changes.get("date", row.date) is None or changes.get("balance", row.balance) is None:
        raise HTTPException(status_code=400, detail="date and balance cannot be cleared")
    try:
        return service.update(row, changes)
    except ValueError as exc:
        raise HTTPException(status_code=409, detail=str(exc))


@router.delete("/snapshots/{snapshot_id}", status_code=204)
def delete_snapshot(snapshot_id: int, user_id: int = Query(..., ge=1), db: Session = Depends(get_db)):
    service = SnapshotService(db)
    row = service.get_for_user(snapshot_id, user_id)
    if not row:
        raise HTTPException(status_code=404, detail="Snapshot not found")
    service.delete(row)
    return None


# ---- Recurring transactions ------------------------------------------------


@router.get("/recurring-transactions", response_model=list[RecurringTransactionOut])
def list_recurring_transactions(user_id: int = Query(..., ge=1), db: Session = Depends(get_db)):
    return RecurringTransactionService(db).list_for_user(user_id)


@router.get("/assets/{asset_id}/recurring-transactions", response_model=list[RecurringTransactionOut])
def list_asset_recurring_transactions(
    asset_id: int,
    user_id: int = Query(..., ge=1),
    db: Session = Depends(get_db),
):
    _owned_asset_or_404(db, asset_id, user_id)
    return RecurringTransactionService(db).list_for_asset(asset_id, user_id)


@router.post("/recurring-transactions", response_model=RecurringTransactionOut, status_code=201)
def create_recurring_transaction(
    payload: RecurringTransactionCreate,
    user_id: int = Query(..., ge=1),
    db: Session = Depends(get_db),
):
    try:
        return RecurringTransactionService(db).create(payload.model_dump(), user_id=user_id)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc))


# 수동 실행은 /{rt_id} 경로보다 먼저 등록
@router.post("/recurring-transactions/process", response_model=list[ProcessOutcomeOut])
def process_recurring_transactions(db: Session = Depends(get_db)):
    processor = RecurringTransactionProcessor(SqlRecurringScheduleStore(db), SnapshotBalanceMutator(db))
    return processor.process_due(now_local_naive())


@router.get("/recurring-transactions/{rt_id}", response_model=RecurringTransactionOut)
def get_recurring_transaction(rt_id: int, user_id: int = Query(..., ge=1), db: Session = Depends(get_db)):
    row = RecurringTransactionService(db).get(rt_id, user_id)
    if not row:
        raise HTTPException(status_code=404, detail="Recurring transaction not found")
    return row


@router.patch("/recurring-transactions/{rt_id}", response_model=RecurringTransactionOut)
def update_recurring_transaction(
    rt_id: int,
    payload: RecurringTransactionUpdate,
    user_id: int = Query(..., ge=1),
    db: Session = Depends(get_db),
):
    service = RecurringTransactionService(db)
    row = service.get(rt_id, user_id)
    if not row:
        raise HTTPException(status_code=404, detail="Recurring transaction not found")

    changes = payload.model_dump(exclude_unset=True)
    start = changes.get("start_date", row.start_date)
    end = changes.get("end_date", row.end_date)
    if start is None:
        raise HTTPException(status_code=400, detail="start_date cannot be cleared")
    if end is not None and end < start:
        raise HTTPException(status_code=400, detail="end_date must not be before start_date")
    if "frequency" in changes and changes["frequency"] is None:
        raise HTTPException(status_code=400, detail="frequency cannot be cleared")
    return service.update(row, changes)


@router.delete("/recurring-transactions/{rt_id}", status_code=204)
def delete_recurring_transaction(rt_id: int, user_id: int = Query(..., ge=1), db: Session = Depends(get_db)):
    service = RecurringTransactionService(db)
    row = service.get(rt_id, user_id)
    if not row:
        raise HTTPException(status_code=404, detail="Recurring transaction not found")
    service.delete(row)
    return None


# ---- Auto-import schedules -------------------------------------------------


@router.get("/auto-imports", response_model=list[AutoImportOut])
def list_auto_imports(user_id: int = Query(..., ge=1), db: Session = Depends(get_db)):
    return AutoImportService(db).list_for_user(user_id)


@router.post("/auto-imports", response_model=AutoImportOut, status_code=201)
def create_auto_import(
    payload: AutoImportCreate,
    user_id: int = Query(..., ge=1),
    db: Session = Depends(get_db),
):
    try:
        return AutoImportService(db).create(payload.model_dump(), user_id=user_id)
    except ValueError as exc:
        raise HTTPException(status_code=409, detail=str(exc))


@router.patch("/auto-imports/{schedule_id}", response_model=AutoImportOut)
def update_auto_import(
    schedule_id: int,
    payload: AutoImportUpdate,
    user_id: int = Query(..., ge=1),
    db: Session = Depends(get_db),
):
    service = AutoImportService(db)
    row = service.get(schedule_id, user_id)
    if not row:
        raise HTTPException(status_code=404, detail="Auto-import schedule not found")
    changes = {k: v for k, v in payload.model_dump(exclude_unset=True).items() if v is not None}
    return service.update(row, changes)


@router.delete("/auto-imports/{schedule_id}", status_code=204)
def delete_auto_import(schedule_id: int, user_id: int = Query(..., ge=1), db: Session = Depends(get_db)):
    service = AutoImportService(db)
    row = service.get(schedule_id, user_id)
    if not row:
        raise HTTPException(status_code=404, detail="Auto-import schedule not found")
    service.delete(row)
    return None


@router.post("/auto-imports/{schedule_id}/run", response_model=AutoImportRunOut)
def run_auto_import(schedule_id: int, user_id: int = Query(..., ge=1), db: Session = Depends(get_db)):
    try:
        outcome = AutoImportService(db).run_now(schedule_id, user_id)
    except RuntimeError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    if outcome is None:
        raise HTTPException(status_code=404, detail="Auto-import schedule not found")
    return outcome


# ---- Net worth -------------------------------------------------------------


@router.get("/net-worth/summary", response_model=NetWorthSummaryOut)
def net_worth_summary(
    user_id: int = Query(..., ge=1),
    as_of: date | None = Query(None),
    db: Session = Depends(get_db),
):
    return NetWorthService(db).get_summary(user_id, as_of)


@router.get("/net-worth/history", response_model=list[NetWorthHistoryPointOut])
def net_worth_history(
    user_id: int = Query(..., ge=1),
    start: date | None = Query(None),
    end: date | None = Query(None),
    group_by: str = Query("month"),
    db: Session = Depends(get_db),
):
    if group_by.lower() not in GROUP_BY_OPTIONS:
        raise HTTPException(status_code=400, detail=f"group_by must be one of {', '.join(GROUP_BY_OPTIONS)}")
    end = end or now_local_naive().date()
    start = start or add_months(end, -12)
    if end < start:
        raise HTTPException(status_code=400, detail="end must not be before start")
    return NetWorthService(db).get_history(user_id, start, end, group_by)


@router.get("/net-worth/comparison", response_model=NetWorthComparisonOut)
def net_worth_comparison(
    user_id: int = Query(..., ge=1),
    start: date | None = Query(None),
    end: date | None = Query(None),
    group_by: str = Query("month"),
    db: Session = Depends(get_db),
):
    end = end or now_local_naive().date()
    start = start or add_months(end, -12)
    try:
        return NetWorthService(db).get_comparison(user_id, start, end, group_by)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))


def _projection(db: Session, user_id: int, request: ProjectionRequest):
    custom = [
        CustomItem(
            description=item.description,
            amount=item.amount,
            date=item.date,
            is_recurring=item.is_recurring,
            frequency=item.frequency.value if item.frequency else None,
        )
        for item in request.custom_items
    ]
    return NetWorthService(db).get_projection(
        user_id,
        goal_amount=request.goal_amount,
        projection_months=request.projection_months,
        include_recurring=request.include_recurring_transfers,
        include_average_expenses=request.include_average_expenses,
        custom_items=custom,
    )


@router.get("/net-worth/projection", response_model=ProjectionOut)
def net_worth_projection(
    user_id: int = Query(..., ge=1),
    goal_amount: float | None = Query(None),
    projection_months: int = Query(12, ge=1, le=120),
    include_recurring_transfers: bool = Query(True),
    include_average_expenses: bool = Query(False),
    db: Session = Depends(get_db),
):
    request = ProjectionRequest(
        goal_amount=goal_amount,
        projection_months=projection_months,
        include_recurring_transfers=include_recurring_transfers,
        include_average_expenses=include_average_expenses,
    )
    return _projection(db, user_id, request)


@router.post("/net-worth/projection", response_model=ProjectionOut)
def net_worth_projection_custom(
    payload: ProjectionRequest,
    user_id: int = Query(..., ge=1),
    db: Session = Depends(get_db),
):
    return _projection(db, user_id, payload)


@router.get("/net-worth/liability-payoff", response_model=LiabilityPayoffOut)
def liability_payoff(user_id: int = Query(..., ge=1), db: Session = Depends(get_db)):
    return NetWorthService(db).get_liability_payoff(user_id)


@router.post("/net-worth/liability-payoff", response_model=LiabilityPayoffOut)
def liability_payoff_with_settings(
    payload: PayoffRequest,
    user_id: int = Query(..., ge=1),
    db: Session = Depends(get_db),
):
    overrides = [PayoffSettings(s.asset_id, s.monthly_payment, s.interest_rate) for s in payload.settings]
    return NetWorthService(db).get_liability_payoff(user_id, overrides)
