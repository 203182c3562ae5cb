"""
Idle-time memory maintenance.

A periodic heartbeat that consolidates working memory once the agent has
been idle for a while. The tier manager never schedules itself; run this
loop (or call run_once from your own scheduler) to get background
consolidation.
"""

import asyncio
import logging
import time
from typing import Callable, Optional

from .manager import TierManager
from .schemas import OperationResult

logger = logging.getLogger(__name__)


class MaintenanceLoop:
    """
    Heartbeat driving consolidation during idle periods.

    Args:
        manager: Tier manager to maintain
        interval_sec: Seconds between heartbeats
        max_idle_sec: Idle time after which maintenance may run
        clock: Monotonic time source
    """

    def __init__(
        self,
        manager: TierManager,
        interval_sec: float = 60.0,
        max_idle_sec: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.manager = manager
        self.interval_sec = interval_sec
        self.max_idle_sec = max_idle_sec
        self._clock = clock
        self._last_interaction = clock()
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def record_interaction(self) -> None:
        """Mark user activity; maintenance waits for the next idle period."""
        self._last_interaction = self._clock()

    def idle_seconds(self) -> float:
        return self._clock() - self._last_interaction

    async def run_once(self) -> Optional[OperationResult]:
        """
        One heartbeat.

        Returns:
            The consolidation result, or None when the agent is not idle or
            working memory does not need consolidation
        """
        if self.idle_seconds() <= self.max_idle_sec:
            return None
        if not self.manager.should_consolidate():
            logger.debug("Heartbeat: working memory does not need consolidation")
            return None

        logger.info(f"Heartbeat: idle for {self.idle_seconds():.0f}s, consolidating working memory")
        result = await self.manager.consolidate()
        if not result.success:
            logger.warning(f"Heartbeat consolidation failed: {result.message}")
        return result

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval_sec)
            try:
                await self.run_once()
            except Exception as e:
                logger.error(f"Error in memory heartbeat: {e}")

    async def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop())
        logger.info(f"Memory maintenance started (every {self.interval_sec:g}s)")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Memory maintenance stopped")
