"""
Poll scheduler - periodic cache sweep and backend health polling.
"""

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from loguru import logger

from lmsapi.pollers.health import HealthMonitor
from lmsapi.services.cache import TTLCache


class PollScheduler:
    """Runs the interval jobs that keep the cache bounded and health fresh."""

    def __init__(
        self,
        cache: TTLCache,
        health: HealthMonitor | None = None,
        sweep_interval_seconds: int = 60,
        health_interval_seconds: int = 120,
    ):
        self.scheduler = AsyncIOScheduler()
        self._cache = cache
        self._health = health
        self._sweep_interval = sweep_interval_seconds
        self._health_interval = health_interval_seconds
        self._is_running = False

    # ── Job handlers ─────────────────────────────────────────────────────────

    async def _sweep_job(self) -> None:
        try:
            removed = self._cache.cleanup_expired()
            if removed:
                logger.debug(f"Cache sweep: {removed} expired entries removed")
        except Exception as e:
            logger.error(f"Cache sweep failed: {e}")

    async def _health_job(self) -> None:
        if not self._health:
            return
        try:
            status = await self._health.check()
            logger.debug(f"Health poll: {status.message}")
        except Exception as e:
            logger.error(f"Health poll failed: {e}")

    # ── Lifecycle ────────────────────────────────────────────────────────────

    def start(self) -> None:
        """Start the scheduler (must be called with a running event loop)."""
        if self._is_running:
            logger.warning("PollScheduler is already running")
            return

        self.scheduler.add_job(
            self._sweep_job,
            trigger="interval",
            seconds=self._sweep_interval,
            id="cache_sweep",
            name="Cache Sweep",
            replace_existing=True,
        )

        if self._health:
            self.scheduler.add_job(
                self._health_job,
                trigger="interval",
                seconds=self._health_interval,
                id="health_poll",
                name="Backend Health Poll",
                replace_existing=True,
            )

        self.scheduler.start()
        self._is_running = True
        logger.info(
            f"PollScheduler started: sweep every {self._sweep_interval}s"
            + (f", health every {self._health_interval}s" if self._health else "")
        )

    def stop(self) -> None:
        """Stop the scheduler."""
        if not self._is_running:
            logger.warning("PollScheduler is not running")
            return

        self.scheduler.shutdown(wait=False)
        self._is_running = False
        logger.info("PollScheduler stopped")

    @property
    def is_running(self) -> bool:
        return self._is_running
