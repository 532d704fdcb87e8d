"""
Request coalescing.

Concurrent callers asking for the same key share one in-flight task instead
of each issuing their own request.  The shared task is only cancelled when
every caller waiting on it has been cancelled; a caller that goes away while
others still wait leaves the request running for them.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Hashable
from functools import partial
from typing import Generic, TypeVar

K = TypeVar("K", bound=Hashable)
T = TypeVar("T")


class InflightRequests(Generic[K, T]):
    """Map of key -> running task, with per-key waiter counts."""

    def __init__(self) -> None:
        self._tasks: dict[K, asyncio.Task[T]] = {}
        self._waiters: dict[K, int] = {}

    def __contains__(self, key: object) -> bool:
        return key in self._tasks

    def __len__(self) -> int:
        return len(self._tasks)

    async def run(self, key: K, factory: Callable[[], Awaitable[T]]) -> T:
        """Await the task for ``key``, starting it with ``factory()`` if none is running."""
        task = self._tasks.get(key)
        if task is None:
            task = asyncio.ensure_future(factory())
            self._tasks[key] = task
            self._waiters[key] = 0
            task.add_done_callback(partial(self._forget, key))

        self._waiters[key] += 1
        try:
            return await asyncio.shield(task)
        finally:
            if self._tasks.get(key) is task:
                self._waiters[key] -= 1
                if self._waiters[key] == 0 and not task.done():
                    # Forget it now so a new caller starts fresh instead of
                    # joining a task that is being torn down.
                    del self._tasks[key]
                    del self._waiters[key]
                    task.cancel()

    def _forget(self, key: K, task: asyncio.Task[T]) -> None:
        if self._tasks.get(key) is task:
            del self._tasks[key]
            del self._waiters[key]
        if not task.cancelled():
            # Mark the exception as retrieved; waiters re-raise it themselves.
            task.exception()
