"""Coalescing of concurrent identical resolutions.

When several callers miss the cache for the same key at once, only the
first starts an upstream resolution; the rest await the same task.
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import structlog

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class InFlightRegistry:
    """Map of cache key to the task currently resolving it.

    Each waiter is shielded, so cancelling one caller does not cancel
    the shared resolution for the others.

    Example:
        registry = InFlightRegistry()
        result = await registry.run(key, lambda: resolve_upstream(key))
    """

    def __init__(self) -> None:
        self._tasks: dict[str, asyncio.Task[Any]] = {}
        self._coalesced = 0

    def __len__(self) -> int:
        return len(self._tasks)

    def __contains__(self, key: object) -> bool:
        return key in self._tasks

    @property
    def coalesced(self) -> int:
        """Number of callers that joined an existing resolution."""
        return self._coalesced

    async def run(self, key: str, factory: Callable[[], Awaitable[T]]) -> T:
        """Run ``factory`` for ``key`` unless a resolution is already pending.

        Args:
            key: Cache key being resolved.
            factory: Creates the resolution coroutine; called at most once
                per pending key.

        Returns:
            Result of the shared resolution.
        """
        task = self._tasks.get(key)
        if task is None:
            task = asyncio.ensure_future(factory())
            self._tasks[key] = task
            task.add_done_callback(lambda done: self._release(key, done))
        else:
            self._coalesced += 1
            logger.debug("resolution_coalesced", key=key)

        return await asyncio.shield(task)

    def _release(self, key: str, task: asyncio.Task[Any]) -> None:
        if self._tasks.get(key) is task:
            del self._tasks[key]
        # Mark the exception retrieved even if every waiter was cancelled
        if not task.cancelled():
            task.exception()
