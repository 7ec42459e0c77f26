# connex/services/scheduler.py
from __future__ import annotations

import asyncio
from typing import Optional

from ..log import get_logger, trace_ctx
from .order_types import SweepResult
from .orders import OrderLifecycle

logger = get_logger(__name__)


class PickupSweepScheduler:
    """Runs the pickup sweep in one background task on a fixed interval."""

    def __init__(self, engine: OrderLifecycle, interval_seconds: float = 3600, run_at_start: bool = True):
        self.engine = engine
        self.interval = max(1.0, float(interval_seconds))
        self.run_at_start = run_at_start
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self) -> Optional[SweepResult]:
        with trace_ctx():
            try:
                return await self.engine.sweep_ready_orders()
            except Exception:
                # next tick retries; the sweep's own updates are conditional
                logger.exception("pickup sweep failed")
                return None

    async def _loop(self) -> None:
        if not self.run_at_start:
            await asyncio.sleep(self.interval)
        while True:
            await self.run_once()
            await asyncio.sleep(self.interval)

    def start(self) -> asyncio.Task:
        if not self.running:
            self._task = asyncio.create_task(self._loop(), name="pickup-sweep")
            logger.info("pickup sweep scheduled every %ss", self.interval)
        return self._task

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
