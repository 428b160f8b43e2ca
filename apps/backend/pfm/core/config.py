from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# apps/backend (CWD와 무관하게 기본 DB 위치 고정)
BACKEND_DIR = Path(__file__).resolve().parents[2]

_LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


class Settings(BaseSettings):
    """Runtime settings, read from ``PFM_*`` environment variables or ``.env``."""

    APP_NAME: str = "PFM Net Worth Backend"
    ENV: str = "dev"

    DATABASE_URL: str = f"sqlite:///{BACKEND_DIR / 'db.sqlite3'}"
    SQLITE_BUSY_TIMEOUT_SECONDS: float = 15

    CORS_ORIGINS: list[str] = ["*"]
    # 날짜 경계(반복 거래 회차, 스냅샷 날짜)를 판단하는 기준 시간대
    TIMEZONE: str = "UTC"
    LOG_LEVEL: str = "INFO"

    # Background pollers
    SCHEDULER_ENABLED: bool = True
    RECURRING_POLL_INTERVAL_SECONDS: float = 3600
    RECURRING_STARTUP_DELAY_SECONDS: float = 30
    AUTO_IMPORT_POLL_INTERVAL_SECONDS: float = 900
    AUTO_IMPORT_STARTUP_DELAY_SECONDS: float = 60

    # Projection windows
    PROJECTION_LOOKBACK_MONTHS: int = 12
    PROJECTION_RECENT_HISTORY_MONTHS: int = 6

    model_config = SettingsConfigDict(env_file=(".env",), env_prefix="PFM_", case_sensitive=False)

    @field_validator("LOG_LEVEL")
    def normalize_log_level(cls, v: str) -> str:
        level = (v or "INFO").upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"LOG_LEVEL must be one of {', '.join(_LOG_LEVELS)}")
        return level

    @field_validator("RECURRING_POLL_INTERVAL_SECONDS", "AUTO_IMPORT_POLL_INTERVAL_SECONDS")
    def positive_interval(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("poll intervals must be positive")
        return v

    @field_validator("RECURRING_STARTUP_DELAY_SECONDS", "AUTO_IMPORT_STARTUP_DELAY_SECONDS")
    def non_negative_delay(cls, v: float) -> float:
        if v < 0:
            raise ValueError("startup delays must not be negative")
        return v

    @field_validator("PROJECTION_LOOKBACK_MONTHS")
    def lookback_at_least_one_month(cls, v: int) -> int:
        if v < 1:
            raise ValueError("PROJECTION_LOOKBACK_MONTHS must be at least 1")
        return v


settings = Settings()
