"""Per-key mutual exclusion for room-scoped critical sections."""

import asyncio
import logging
import time
from collections.abc import AsyncIterator, Hashable
from contextlib import asynccontextmanager

from .observability import metrics_collector

logger = logging.getLogger(__name__)


class LockTimeoutError(Exception):
    """Raised when a lock cannot be acquired within the allowed wait."""

    def __init__(self, key: Hashable, timeout: float):
        self.key = key
        self.timeout = timeout
        super().__init__(f"Timed out after {timeout}s waiting for lock {key!r}")


class RoomLockManager:
    """
    Hands out one ``asyncio.Lock`` per key.

    Keys are acquired in sorted order so that callers locking several rooms
    (transfers) cannot deadlock against each other. Different keys never
    contend.
    """

    def __init__(self, timeout: float):
        self.timeout = timeout
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock_for(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    def locked(self, key: Hashable) -> bool:
        lock = self._locks.get(str(key))
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def acquire(self, *keys: Hashable, timeout: float | None = None) -> AsyncIterator[None]:
        """
        Hold the locks for all ``keys`` for the duration of the block.

        Raises:
            LockTimeoutError: If any lock is not acquired within ``timeout``
                seconds; locks already taken are released first
        """
        wait = self.timeout if timeout is None else timeout
        ordered = sorted({str(key) for key in keys})
        held: list[asyncio.Lock] = []
        started = time.perf_counter()
        deadline = started + wait

        try:
            for key in ordered:
                lock = self._lock_for(key)
                remaining = max(deadline - time.perf_counter(), 0)
                try:
                    await asyncio.wait_for(lock.acquire(), timeout=remaining)
                except asyncio.TimeoutError:
                    logger.warning(
                        "Lock acquisition timed out",
                        extra={"lock_key": key, "timeout": wait}
                    )
                    raise LockTimeoutError(key, wait)
                held.append(lock)

            metrics_collector.observe_lock_wait(time.perf_counter() - started)
            yield
        finally:
            for lock in reversed(held):
                lock.release()
