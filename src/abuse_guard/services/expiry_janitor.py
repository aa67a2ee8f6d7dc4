"""
Expiry Janitor

Periodically evicts rate-limit records whose window has elapsed so the
in-memory store stays bounded. Runs on an APScheduler interval job,
independent of request traffic, and is started and stopped explicitly
from the application lifespan.
"""

from datetime import timezone

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from abuse_guard.core.config import settings
from abuse_guard.services.rate_limiter import WindowedRateLimiter

logger = structlog.get_logger(__name__)

JOB_ID = "rate_limit_expiry"


class ExpiryJanitor:
    """Background sweeper for a ``WindowedRateLimiter``'s store."""

    def __init__(self, limiter: WindowedRateLimiter, interval_minutes: float | None = None):
        self.limiter = limiter
        self.interval_minutes = (
            interval_minutes if interval_minutes is not None else settings.JANITOR_INTERVAL_MINUTES
        )
        if self.interval_minutes <= 0:
            raise ValueError("interval_minutes must be positive")
        self._scheduler: AsyncIOScheduler | None = None

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    async def run_once(self) -> int:
        """Sweep expired records now. Returns the number evicted."""
        try:
            removed = await self.limiter.sweep_expired()
        except Exception as e:
            logger.error("rate_limit_sweep_failed", error=str(e), exc_info=True)
            return 0

        logger.info("rate_limit_sweep_completed", removed=removed)
        return removed

    def start(self) -> None:
        """
        Start the interval job. Must be called from within a running event loop.

        Calling ``start`` on a running janitor is a no-op.
        """
        if self.running:
            logger.info("expiry_janitor_already_running")
            return

        scheduler = AsyncIOScheduler(timezone=timezone.utc)
        scheduler.add_job(
            self.run_once,
            trigger=IntervalTrigger(minutes=self.interval_minutes),
            id=JOB_ID,
            name="Rate Limit Expiry",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        scheduler.start()
        self._scheduler = scheduler
        logger.info("expiry_janitor_started", interval_minutes=self.interval_minutes)

    def stop(self) -> None:
        """Stop the interval job. Safe to call when not running."""
        if self._scheduler is not None and self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("expiry_janitor_stopped")
        self._scheduler = None
