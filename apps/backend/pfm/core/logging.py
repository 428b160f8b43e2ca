from __future__ import annotations

from logging.config import dictConfig

from .config import settings


def configure_logging(level: str | None = None) -> None:
    """Install the process-wide logging configuration.

    Module loggers (``logging.getLogger(__name__)``) propagate to the ``pfm``
    logger, so the background pollers and request handlers share one format.
    """
    resolved = (level or settings.LOG_LEVEL or "INFO").upper()
    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {
                    "format": "%(asctime)s %(levelname)-7s [%(name)s] %(message)s",
                },
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                },
            },
            "loggers": {
                "pfm": {"handlers": ["console"], "level": resolved, "propagate": False},
            },
        }
    )
