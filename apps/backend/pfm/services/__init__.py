"""
Services 패키지

자산/카테고리/스냅샷 관리, 스케줄 계산, 반복 거래/자동 가져오기 처리, 순자산 예측 서비스를 제공합니다.
"""

from .asset_service import AssetCategoryService, AssetService, SnapshotService
from .auto_import_service import AutoImportProcessor, AutoImportService, run_auto_import_tick
from .background import PollingWorker
from .net_worth_service import NetWorthService
from .recurring_service import RecurringTransactionProcessor, RecurringTransactionService, run_recurring_tick

__all__ = [
    "AssetCategoryService",
    "AssetService",
    "AutoImportProcessor",
    "AutoImportService",
    "NetWorthService",
    "PollingWorker",
    "RecurringTransactionProcessor",
    "RecurringTransactionService",
    "SnapshotService",
    "run_auto_import_tick",
    "run_recurring_tick",
]
