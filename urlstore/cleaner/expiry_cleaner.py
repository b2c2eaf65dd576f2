"""
Expiry Cleaner

Background task that periodically removes expired links from storages
that support batch deletion.

Architecture:
- One long-lived asyncio task per storage
- Sleeps on a stop event with a timeout, so stop() wakes it immediately
- A failed sweep is logged and retried on the next tick
- The owner keeps the task handle and awaits it before closing the storage
"""

import asyncio
import logging
from typing import Optional

from urlstore.storage.strategies import LinkStorageStrategy

logger = logging.getLogger(__name__)


class ExpiryCleaner:
    """
    Periodic expired-link sweeper.

    The cleaner borrows the storage and never closes it. Call stop() (and
    let it return) before closing the storage so no sweep runs against a
    closed connection.
    """

    def __init__(self, storage: LinkStorageStrategy, interval: float = 3600.0):
        """
        Initialize cleaner.

        Args:
            storage: Storage to sweep; must support clean_expired()
            interval: Seconds between sweeps
        """
        if not storage.supports_clean_expired:
            raise ValueError(f"Storage '{storage.name}' does not support expired items cleanup")
        if interval <= 0:
            raise ValueError("Cleaner interval must be positive")

        self.storage = storage
        self.interval = interval
        self.task: Optional[asyncio.Task] = None
        self.tick_count = 0
        self.failed_tick_count = 0
        self.deleted_count = 0
        self._stop_event: Optional[asyncio.Event] = None

    @property
    def running(self) -> bool:
        return self.task is not None and not self.task.done()

    def start(self) -> asyncio.Task:
        """
        Start sweeping in the running event loop.

        Returns:
            The background task handle
        """
        if self.running:
            return self.task

        self._stop_event = asyncio.Event()
        self.task = asyncio.create_task(self._run(), name="expiry-cleaner")
        return self.task

    async def _run(self):
        logger.info("Started expired items cleaner (interval %ss)", self.interval)
        try:
            while True:
                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval)
                    break
                except asyncio.TimeoutError:
                    await self.run_once()
        except asyncio.CancelledError:
            logger.info("Expired items cleaner cancelled")
            raise
        finally:
            logger.info("Stopped expired items cleaner")

    async def run_once(self) -> int:
        """
        Run a single sweep.

        Returns:
            Number of deleted items (0 when the sweep failed)
        """
        self.tick_count += 1
        try:
            deleted = await self.storage.clean_expired()
        except Exception as e:
            self.failed_tick_count += 1
            logger.error("Can't clean expired items: %s", e, exc_info=True)
            return 0

        self.deleted_count += deleted
        logger.debug("Expired items sweep removed %d items", deleted)
        return deleted

    async def stop(self):
        """Signal the task to stop and wait for an in-flight sweep to finish"""
        if self.task is None:
            return

        self._stop_event.set()
        try:
            await self.task
        finally:
            self.task = None
