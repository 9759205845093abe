"""In-flight request deduplication.

Concurrent callers asking for the same key share one running task instead of
issuing duplicate remote calls. Entries live only while the task runs, and
a shared task is cancelled once every caller waiting on it has been cancelled.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RequestDeduplicator:
    """Collapses concurrent identical requests onto a single task."""

    def __init__(self):
        self._pending: Dict[str, "asyncio.Future[Any]"] = {}
        self._waiters: Dict["asyncio.Future[Any]", int] = {}
        self.hits = 0
        self.misses = 0

    async def execute(self, key: str, factory: Callable[[], Awaitable[T]]) -> T:
        """Runs ``factory`` unless a call for ``key`` is already in flight.

        Args:
            key: Identity of the request (e.g. ``"search:tasks"``).
            factory: Produces the awaitable to run when nothing is pending.

        Returns:
            The shared result. Failures propagate to every waiting caller.
        """
        existing = self._pending.get(key)
        if existing is not None:
            self.hits += 1
            logger.debug(f"Joining in-flight request for key: {key}")
            return await self._wait(key, existing)

        self.misses += 1
        task = asyncio.ensure_future(factory())
        self._pending[key] = task
        task.add_done_callback(lambda done: self._forget(key, done))
        return await self._wait(key, task)

    def _forget(self, key: str, task: "asyncio.Future[Any]") -> None:
        if self._pending.get(key) is task:
            del self._pending[key]

    async def _wait(self, key: str, task: "asyncio.Future[T]") -> T:
        self._waiters[task] = self._waiters.get(task, 0) + 1
        try:
            # Shielded so one cancelled waiter does not cancel the others
            return await asyncio.shield(task)
        finally:
            self._waiters[task] -= 1
            if not self._waiters[task]:
                del self._waiters[task]
                if not task.done():
                    logger.debug(f"Last waiter for key {key} left; cancelling in-flight request.")
                    self._forget(key, task)
                    task.cancel()

    @property
    def pending(self) -> int:
        return len(self._pending)

    def stats(self) -> Dict[str, int]:
        return {"hits": self.hits, "misses": self.misses, "pending": self.pending}

    def clear(self) -> None:
        """Forgets pending requests and resets counters. Running tasks are not cancelled."""
        self._pending.clear()
        self.hits = 0
        self.misses = 0
