# app/sweeper.py

import asyncio
import logging
from contextlib import suppress
from app.config import CACHE_CHECK_PERIOD_SECONDS
from app.services.cache import Cache

logger = logging.getLogger(__name__)

class CacheSweeper:
    """Periodic background worker that drops expired response-cache entries."""

    def __init__(self, cache: Cache, interval_seconds: int | None = None) -> None:
        # interval_seconds: how often to sweep; lookups already treat expired entries as absent
        self.cache = cache
        self.interval_seconds = interval_seconds or CACHE_CHECK_PERIOD_SECONDS
        self._task: asyncio.Task | None = None
        self._stop = asyncio.Event()

    async def start(self) -> None:
        """Start the background worker task."""
        if self._task is not None:
            return  # Already started
        self._stop.clear()
        logger.info("Starting CacheSweeper worker (interval=%s sec)...", self.interval_seconds)
        self._task = asyncio.create_task(self._run(), name="cache-sweeper")

    async def stop(self) -> None:
        """Signal the worker to stop and wait for it to finish."""
        logger.info("Stopping CacheSweeper worker...")
        self._stop.set()
        if self._task:
            try:
                await asyncio.wait_for(self._task, timeout=5)
            except asyncio.TimeoutError:
                logger.warning("Cache sweeper did not stop in time; cancelling...")
                self._task.cancel()
                with suppress(asyncio.CancelledError):
                    await self._task
            finally:
                self._task = None
        logger.info("CacheSweeper worker stopped.")

    async def _run(self) -> None:
        """Main loop: sweep periodically until stop is requested."""
        try:
            while not self._stop.is_set():
                try:
                    await asyncio.wait_for(self._stop.wait(), timeout=self.interval_seconds)
                except asyncio.TimeoutError:
                    pass
                if self._stop.is_set():
                    break
                try:
                    removed = self.sweep_once()
                    logger.debug("Cache sweep finished. Expired entries removed: %s", removed)
                except Exception:
                    logger.exception("Cache sweep failed with an exception.")
        finally:
            logger.info("CacheSweeper loop exiting.")

    def sweep_once(self) -> int:
        """One sweep cycle; in-memory only, so it runs on the loop without a thread hop."""
        return self.cache.sweep_expired()
