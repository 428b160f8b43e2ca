from __future__ import annotations

import pytest
from pydantic import ValidationError
from sqlalchemy import text

from pfm.core.config import Settings
from pfm.core.database import build_engine, is_sqlite_url


def test_log_level_is_normalized():
    assert Settings(LOG_LEVEL="debug").LOG_LEVEL == "DEBUG"


def test_unknown_log_level_rejected():
    with pytest.raises(ValidationError):
        Settings(LOG_LEVEL="chatty")


@pytest.mark.parametrize(
    "field,value",
    [
        ("RECURRING_POLL_INTERVAL_SECONDS", 0),
        ("AUTO_IMPORT_POLL_INTERVAL_SECONDS", -5),
        ("AUTO_IMPORT_STARTUP_DELAY_SECONDS", -1),
        ("PROJECTION_LOOKBACK_MONTHS", 0),
    ],
)
def test_invalid_scheduler_settings_rejected(field, value):
    with pytest.raises(ValidationError):
        Settings(**{field: value})


def test_env_prefix(monkeypatch):
    monkeypatch.setenv("PFM_TIMEZONE", "Asia/Seoul")
    assert Settings().TIMEZONE == "Asia/Seoul"


def test_sqlite_engine_enforces_foreign_keys():
    assert is_sqlite_url("sqlite:///:memory:")
    assert not is_sqlite_url("postgresql://localhost/pfm")

    eng = build_engine("sqlite:///:memory:")
    try:
        with eng.connect() as conn:
            assert conn.execute(text("PRAGMA foreign_keys")).scalar() == 1
    finally:
        eng.dispose()
