"""
Rate-limit record storage.

The limiter never touches a dict directly; it goes through a
``RateLimitStore`` so a shared, atomically-incrementable backend can replace
the in-process map when the service runs as more than one instance.
"""

import asyncio
from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import AsyncIterator, Optional

import structlog
from pydantic import BaseModel, Field

logger = structlog.get_logger(__name__)


class RateLimitRecord(BaseModel):
    """Attempt counter for one identifier inside one fixed window."""

    identifier: str
    attempts: int = Field(1, ge=0)
    window_reset_at: int  # epoch milliseconds

    def is_expired(self, now_ms: int) -> bool:
        return now_ms >= self.window_reset_at


class RateLimitStore(ABC):
    """Abstract storage backend for rate-limit records."""

    @abstractmethod
    async def get(self, identifier: str) -> Optional[RateLimitRecord]:
        """Return the record for ``identifier`` or None."""

    @abstractmethod
    async def set(self, record: RateLimitRecord) -> None:
        """Create or replace the record keyed by ``record.identifier``."""

    @abstractmethod
    async def delete(self, identifier: str) -> None:
        """Remove the record for ``identifier`` if present."""

    @abstractmethod
    async def sweep(self, now_ms: int) -> int:
        """Delete every record whose window has elapsed; return how many."""

    @abstractmethod
    def lock(self, identifier: str) -> AbstractAsyncContextManager[None]:
        """
        Serialize read-modify-write on one identifier.

        Callers must hold this around any get-then-set sequence.
        """


class _KeyLock:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = asyncio.Lock()
        self.users = 0


class InMemoryRateLimitStore(RateLimitStore):
    """
    Process-local store backed by a dict.

    Suitable for single-instance deployments only. Each identifier gets its
    own ``asyncio.Lock`` while somebody is using it, so unrelated callers
    never wait on each other and idle identifiers hold no lock at all.
    """

    def __init__(self) -> None:
        self._records: dict[str, RateLimitRecord] = {}
        self._locks: dict[str, _KeyLock] = {}

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, identifier: object) -> bool:
        return identifier in self._records

    async def get(self, identifier: str) -> Optional[RateLimitRecord]:
        return self._records.get(identifier)

    async def set(self, record: RateLimitRecord) -> None:
        self._records[record.identifier] = record

    async def delete(self, identifier: str) -> None:
        self._records.pop(identifier, None)

    @asynccontextmanager
    async def lock(self, identifier: str) -> AsyncIterator[None]:
        entry = self._locks.get(identifier)
        if entry is None:
            entry = self._locks[identifier] = _KeyLock()
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0 and self._locks.get(identifier) is entry:
                del self._locks[identifier]

    async def sweep(self, now_ms: int) -> int:
        removed = 0
        for identifier in list(self._records):
            # A check is in flight on this key and will refresh the record itself
            if identifier in self._locks:
                continue

            async with self.lock(identifier):
                record = self._records.get(identifier)
                if record is not None and record.is_expired(now_ms):
                    del self._records[identifier]
                    removed += 1

        if removed:
            logger.debug("rate_limit_records_swept", removed=removed, remaining=len(self._records))
        return removed
