"""
Concurrency limits for exchanges.

At most max_concurrent exchanges run at once, and exchanges sharing a key
(the user) run one after another in arrival order. Each exchange is its own
task, so cancelling one leaves the others running.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Dict, Hashable, Optional, Set, TypeVar

from parley.config import get_settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ExchangeExecutor:
    def __init__(self, max_concurrent: Optional[int] = None) -> None:
        limit = max_concurrent or get_settings().max_concurrent_exchanges
        self._semaphore = asyncio.Semaphore(limit)
        self._locks: Dict[Hashable, asyncio.Lock] = {}
        self._waiting: Dict[Hashable, int] = {}
        self._tasks: Set[asyncio.Task] = set()

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    def active_keys(self) -> Set[Hashable]:
        return set(self._locks)

    async def run(self, key: Hashable, job: Callable[[], Awaitable[T]]) -> T:
        """Run job() under the per-key lock and the global limit."""
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._waiting[key] = self._waiting.get(key, 0) + 1
        try:
            async with lock:
                async with self._semaphore:
                    return await job()
        finally:
            self._waiting[key] -= 1
            if not self._waiting[key]:
                del self._waiting[key]
                self._locks.pop(key, None)

    def submit(self, key: Hashable, job: Callable[[], Awaitable[T]]) -> "asyncio.Task[T]":
        """Schedule job() as an independent task and return it."""
        task = asyncio.create_task(self.run(key, job))
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.info("Exchange task cancelled")
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Exchange task failed", exc_info=exc)

    async def shutdown(self) -> None:
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)


_executor: Optional[ExchangeExecutor] = None


def get_executor() -> ExchangeExecutor:
    global _executor
    if _executor is None:
        _executor = ExchangeExecutor()
    return _executor
