"""
Per-key async locks.

Every order transition runs under the lock for its order id so that a
timer firing, a webhook and an administrator action on the same order are
applied one at a time. Orders never share a lock.

Usage:
    >>> locks = KeyedLockManager()
    >>> async with locks.acquire(order_id):
    ...     order = await repo.load(order_id)
    ...     order.mark_paid("webhook")
    ...     await repo.save(order)
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Hashable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import UTC, datetime

from fulfillment.exceptions import LockTimeoutError
from fulfillment.observability import Tracer, create_tracer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LockInfo:
    """
    Information about an acquired lock.

    Attributes:
        key: The key the lock guards
        acquired_at: When the lock was acquired
    """

    key: Hashable
    acquired_at: datetime


class _Entry:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = asyncio.Lock()
        self.users = 0


class KeyedLockManager:
    """
    One asyncio.Lock per key, created on demand and dropped once unused.

    Locks are not reentrant: acquiring the same key twice from one task
    deadlocks (or times out when a timeout is given).
    """

    def __init__(
        self,
        *,
        default_timeout: float | None = None,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._enable_tracing = self._tracer.enabled
        self._default_timeout = default_timeout
        self._entries: dict[Hashable, _Entry] = {}

    def locked(self, key: Hashable) -> bool:
        entry = self._entries.get(key)
        return entry is not None and entry.lock.locked()

    def __len__(self) -> int:
        return len(self._entries)

    @asynccontextmanager
    async def acquire(
        self,
        key: Hashable,
        *,
        timeout: float | None = None,
    ) -> AsyncIterator[LockInfo]:
        """
        Hold the lock for ``key`` for the duration of the block.

        Raises:
            LockTimeoutError: If the lock is not acquired within ``timeout``
        """
        if timeout is None:
            timeout = self._default_timeout

        entry = self._entries.get(key)
        if entry is None:
            entry = self._entries[key] = _Entry()
        entry.users += 1

        try:
            with self._tracer.span("fulfillment.lock.acquire", {"fulfillment.lock.key": str(key)}):
                if timeout is None:
                    await entry.lock.acquire()
                else:
                    try:
                        await asyncio.wait_for(entry.lock.acquire(), timeout)
                    except TimeoutError as e:
                        logger.warning("Timed out waiting for lock %r", key)
                        raise LockTimeoutError(key, timeout) from e

            try:
                yield LockInfo(key=key, acquired_at=datetime.now(UTC))
            finally:
                entry.lock.release()
        finally:
            entry.users -= 1
            if entry.users == 0 and self._entries.get(key) is entry:
                del self._entries[key]


__all__ = ["KeyedLockManager", "LockInfo"]
