from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .core.config import settings
from .core.database import SessionLocal
from .core.logging import configure_logging
from .routers import router
from .services.auto_import_service import run_auto_import_tick
from .services.background import PollingWorker
from .services.recurring_service import run_recurring_tick


logger = logging.getLogger(__name__)

app = FastAPI(title=settings.APP_NAME, version="0.1.0")

# CORS (프론트엔드 연결 준비)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def build_workers() -> list[PollingWorker]:
    return [
        PollingWorker(
            "recurring-transaction-processor",
            lambda: run_recurring_tick(SessionLocal),
            interval=settings.RECURRING_POLL_INTERVAL_SECONDS,
            startup_delay=settings.RECURRING_STARTUP_DELAY_SECONDS,
        ),
        PollingWorker(
            "auto-import-processor",
            lambda: run_auto_import_tick(SessionLocal),
            interval=settings.AUTO_IMPORT_POLL_INTERVAL_SECONDS,
            startup_delay=settings.AUTO_IMPORT_STARTUP_DELAY_SECONDS,
        ),
    ]


@app.on_event("startup")
async def on_startup() -> None:
    configure_logging()
    app.state.workers = []
    if not settings.SCHEDULER_ENABLED:
        logger.info("Background pollers disabled")
        return
    for worker in build_workers():
        worker.start()
        app.state.workers.append(worker)


@app.on_event("shutdown")
async def on_shutdown() -> None:
    for worker in getattr(app.state, "workers", []):
        await worker.stop()
    app.state.workers = []


@app.get("/health")
def health():
    return {"status": "ok"}


app.include_router(router, prefix="/api")
