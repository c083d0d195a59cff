"""Per-key mutual exclusion for upload finalization."""

import asyncio
import threading
from collections.abc import AsyncIterator, Iterator
from contextlib import asynccontextmanager, contextmanager
from typing import final


@final
class KeyedLock:
    """Lock that serializes work per key, e.g. per file id.

    Locks are created on first use and dropped when the last holder
    or waiter for a key releases it. Threads use :meth:`hold`,
    coroutines use :meth:`ahold`; the two registries are independent.
    """

    def __init__(self) -> None:
        """Initialize empty lock registries."""
        self._guard = threading.Lock()
        self._locks: dict[str, tuple[threading.Lock, list[int]]] = {}
        self._async_locks: dict[str, tuple[asyncio.Lock, list[int]]] = {}

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        """Hold the thread lock for ``key``.

        Args:
            key: Key to serialize on.

        Yields:
            Nothing; the lock is held inside the ``with`` block.
        """
        with self._guard:
            lock, users = self._locks.setdefault(key, (threading.Lock(), [0]))
            users[0] += 1
        try:
            with lock:
                yield
        finally:
            with self._guard:
                users[0] -= 1
                if not users[0]:
                    del self._locks[key]

    @asynccontextmanager
    async def ahold(self, key: str) -> AsyncIterator[None]:
        """Hold the coroutine lock for ``key``.

        Args:
            key: Key to serialize on.

        Yields:
            Nothing; the lock is held inside the ``async with`` block.
        """
        lock, users = self._async_locks.setdefault(
            key,
            (asyncio.Lock(), [0]),
        )
        users[0] += 1
        try:
            async with lock:
                yield
        finally:
            users[0] -= 1
            if not users[0]:
                del self._async_locks[key]
