"""
Periodic cache sweeper.
Uses APScheduler to evict expired cache entries and settled ledger entries.
"""

from datetime import timedelta

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from loguru import logger

from stockkeeper.services.cache import CacheStore
from stockkeeper.services.ledger import OptimisticLedger


class CacheSweeper:
    """Background sweep owned by an InventorySession."""

    def __init__(
        self,
        cache: CacheStore,
        ledger: OptimisticLedger | None = None,
        interval: timedelta = timedelta(seconds=60),
    ):
        self.scheduler = AsyncIOScheduler()
        self.cache = cache
        self.ledger = ledger
        self.interval = interval
        self._is_running = False

    async def sweep_job(self) -> dict[str, int]:
        """Sweep task."""
        removed = {
            "cache": self.cache.sweep(),
            "ledger": self.ledger.prune() if self.ledger is not None else 0,
        }
        if any(removed.values()):
            logger.debug(
                f"Cache sweep removed {removed['cache']} cache entries, "
                f"{removed['ledger']} ledger entries"
            )
        return removed

    def start(self) -> None:
        """Start the scheduler. Needs a running event loop."""
        if self._is_running:
            logger.warning("Cache sweeper is already running")
            return

        self.scheduler.add_job(
            self.sweep_job,
            trigger="interval",
            seconds=self.interval.total_seconds(),
            id="cache_sweep_job",
            name="Cache Sweeper",
            replace_existing=True,
        )
        self.scheduler.start()
        self._is_running = True

        logger.info(
            f"Cache sweeper started: sweeping every {self.interval.total_seconds():g}s"
        )

    def stop(self) -> None:
        """Stop the scheduler."""
        if not self._is_running:
            return

        self.scheduler.shutdown(wait=False)
        self._is_running = False
        logger.info("Cache sweeper stopped")

    def is_running(self) -> bool:
        return self._is_running
