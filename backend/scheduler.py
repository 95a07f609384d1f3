"""Safewatch Backend — Background jobs

Expiry sweep every 24h, pattern detection every hour. Each job runs in a
worker thread behind its own run lock: a tick that finds the previous run
still going is skipped, so a job never overlaps itself.
"""

import asyncio
import logging
import threading
from typing import Any, Callable, Optional

from config import SWEEP_INTERVAL_SECONDS, PATTERN_INTERVAL_SECONDS

logger = logging.getLogger("safewatch.scheduler")


class ScheduledJob:
    def __init__(self, name: str, func: Callable[[], Any], interval_seconds: float):
        self.name = name
        self.func = func
        self.interval_seconds = interval_seconds
        self._run_lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._run_lock.locked()

    def run_once(self) -> Optional[Any]:
        """Run the job now unless it is already running. Returns None when skipped."""
        if not self._run_lock.acquire(blocking=False):
            logger.warning(f"{self.name}: previous run still in progress, skipping")
            return None
        try:
            return self.func()
        finally:
            self._run_lock.release()

    async def loop(self):
        while True:
            try:
                result = await asyncio.to_thread(self.run_once)
                logger.info(f"{self.name} finished: {result}")
            except asyncio.CancelledError:
                raise
            except Exception:
                # The next tick starts from scratch; nothing partial is kept
                logger.exception(f"{self.name} failed")
            await asyncio.sleep(self.interval_seconds)


class Scheduler:
    def __init__(self, engine,
                 sweep_interval: float = SWEEP_INTERVAL_SECONDS,
                 pattern_interval: float = PATTERN_INTERVAL_SECONDS):
        self.sweep = ScheduledJob("expiry-sweep", engine.reports.sweep_expired, sweep_interval)
        self.patterns = ScheduledJob("pattern-detection", engine.patterns.run, pattern_interval)
        self._tasks: list[asyncio.Task] = []

    @property
    def jobs(self) -> list[ScheduledJob]:
        return [self.sweep, self.patterns]

    def start(self):
        if self._tasks:
            return
        loop = asyncio.get_running_loop()
        self._tasks = [loop.create_task(job.loop()) for job in self.jobs]
        logger.info(f"Scheduler started: sweep every {self.sweep.interval_seconds / 3600:.0f}h, "
                    f"patterns every {self.patterns.interval_seconds / 3600:.0f}h")

    async def stop(self):
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
