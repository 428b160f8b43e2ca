from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Optional


logger = logging.getLogger(__name__)


class PollingWorker:
    """Run ``tick`` on a fixed interval in a worker thread.

    The first tick happens after ``startup_delay`` seconds. ``stop()`` wakes
    any pending sleep immediately; a tick already running is allowed to
    finish.
    """

    def __init__(
        self,
        name: str,
        tick: Callable[[], Any],
        interval: float,
        startup_delay: float = 0.0,
    ) -> None:
        self.name = name
        self.tick = tick
        self.interval = max(0.0, float(interval))
        self.startup_delay = max(0.0, float(startup_delay))
        self._stop_event: Optional[asyncio.Event] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _sleep(self, seconds: float) -> bool:
        """Sleep up to ``seconds``; True when a stop was requested meanwhile."""
        assert self._stop_event is not None
        if seconds <= 0:
            return self._stop_event.is_set()
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return False
        return True

    async def run(self) -> None:
        if self._stop_event is None:
            self._stop_event = asyncio.Event()
        logger.info("%s started (interval=%ss, delay=%ss)", self.name, self.interval, self.startup_delay)
        if await self._sleep(self.startup_delay):
            logger.info("%s stopped before first run", self.name)
            return
        while not self._stop_event.is_set():
            try:
                await asyncio.to_thread(self.tick)
            except Exception:
                logger.exception("%s tick failed", self.name)
            if await self._sleep(self.interval):
                break
        logger.info("%s stopped", self.name)

    def start(self) -> asyncio.Task:
        if self.running:
            return self._task
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self.run(), name=self.name)
        return self._task

    async def stop(self) -> None:
        if self._stop_event is not None:
            self._stop_event.set()
        if self._task is not None:
            await self._task
            self._task = None
