"""
Fixed-window rate limiter.

Counts attempts per identifier inside a fixed window. When the window
elapses the count starts over from one; partial counts never carry into the
next window.
"""

import time
from typing import Callable, Optional

import structlog

from abuse_guard.schemas.assessment import RateLimitResult
from abuse_guard.services.rate_limit_store import InMemoryRateLimitStore, RateLimitRecord, RateLimitStore

logger = structlog.get_logger(__name__)


def epoch_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


class WindowedRateLimiter:
    """
    Windowed attempt counter over a pluggable ``RateLimitStore``.

    Usage:
        limiter = WindowedRateLimiter()
        result = await limiter.check("203.0.113.7", max_attempts=3, window_ms=900_000)
        if not result.allowed:
            ...
    """

    def __init__(
        self,
        store: Optional[RateLimitStore] = None,
        clock: Callable[[], int] = epoch_ms,
    ):
        self.store = store if store is not None else InMemoryRateLimitStore()
        self._clock = clock

    def now(self) -> int:
        return self._clock()

    async def check(self, identifier: str, max_attempts: int, window_ms: int) -> RateLimitResult:
        """
        Record one attempt for ``identifier`` and report whether it is allowed.

        A denied attempt does not touch the stored record.
        """
        if max_attempts <= 0 or window_ms <= 0:
            raise ValueError("max_attempts and window_ms must be positive")

        async with self.store.lock(identifier):
            now = self.now()
            record = await self.store.get(identifier)

            if record is None or record.is_expired(now):
                record = RateLimitRecord(
                    identifier=identifier,
                    attempts=1,
                    window_reset_at=now + window_ms,
                )
                await self.store.set(record)
                return RateLimitResult(
                    allowed=True,
                    remaining=max_attempts - 1,
                    reset_at=record.window_reset_at,
                    limit=max_attempts,
                )

            if record.attempts >= max_attempts:
                logger.info(
                    "rate_limit_exceeded",
                    identifier=identifier,
                    attempts=record.attempts,
                    reset_at=record.window_reset_at,
                )
                return RateLimitResult(
                    allowed=False,
                    remaining=0,
                    reset_at=record.window_reset_at,
                    limit=max_attempts,
                )

            record = record.model_copy(update={"attempts": record.attempts + 1})
            await self.store.set(record)
            return RateLimitResult(
                allowed=True,
                remaining=max_attempts - record.attempts,
                reset_at=record.window_reset_at,
                limit=max_attempts,
            )

    async def reset(self, identifier: str) -> None:
        """Forget all attempts recorded for ``identifier``."""
        async with self.store.lock(identifier):
            await self.store.delete(identifier)

    async def sweep_expired(self) -> int:
        """Evict records whose window has already elapsed."""
        return await self.store.sweep(self.now())
