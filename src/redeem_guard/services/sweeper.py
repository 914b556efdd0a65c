"""Background task that expires stale fraud-guard state."""

from __future__ import annotations

import asyncio
import logging

from redeem_guard.core.settings import settings
from redeem_guard.services.guard import FraudGuard

logger = logging.getLogger(__name__)


class CacheSweepWorker:
    """Periodically sweeps the guard's window counters and suspicious records."""

    def __init__(self, guard: FraudGuard, interval_seconds: float | None = None) -> None:
        self.guard = guard
        self.interval_seconds = max(
            0.01,
            float(settings.sweep_interval_seconds if interval_seconds is None else interval_seconds),
        )
        self._task: asyncio.Task[None] | None = None
        self._stopping = asyncio.Event()
        self.sweeps = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Start the background sweep loop."""
        if self._task is None or self._task.done():
            self._stopping.clear()
            self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        """Stop the background sweep loop."""
        if self._task is None:
            return

        self._stopping.set()
        await self._task
        self._task = None

    async def _run(self) -> None:
        while not self._stopping.is_set():
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=self.interval_seconds)
                return
            except TimeoutError:
                pass

            try:
                self.guard.sweep()
            except (RuntimeError, ValueError) as e:
                logger.error("CacheSweepWorker sweep failed: %s", e, exc_info=True)
            self.sweeps += 1
