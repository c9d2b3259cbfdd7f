"""Request-scoped background persistence — spawn now, join before closing.

Persistence writes (message appends, summary recomputes) must not block
token delivery, yet the HTTP response must not end while any of them is
still in flight.  :class:`BackgroundTaskGroup` gives each request a small
structured task group:

- ``spawn(coro, label)`` starts the write immediately and tracks it;
- every task is guarded so a failure is logged and swallowed, never
  propagated to the stream or to sibling tasks;
- ``join_all()`` waits until every tracked task has settled, including tasks
  spawned by other tasks while joining (e.g. append → recompute chains).

Persistence is at-most-once: failed writes are not retried.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Coroutine

logger = logging.getLogger(__name__)


class BackgroundTaskGroup:
    """Fire-and-track task group with per-task failure isolation."""

    def __init__(self, name: str = "request") -> None:
        self._name = name
        self._tasks: list[asyncio.Task[None]] = []
        self._failures: list[str] = []

    def spawn(self, coro: Coroutine[Any, Any, Any], label: str) -> asyncio.Task[None]:
        """Schedule *coro*; its result is discarded and its failure only logged.

        The returned task can be awaited safely: it never raises (except
        when cancelled).
        """
        task = asyncio.create_task(self._guard(coro, label), name=f"{self._name}:{label}")
        self._tasks.append(task)
        return task

    async def _guard(self, coro: Coroutine[Any, Any, Any], label: str) -> None:
        try:
            await coro
        except asyncio.CancelledError:
            logger.warning("Background task cancelled: %s (%s)", label, self._name)
            raise
        except Exception:
            self._failures.append(label)
            logger.exception("Background persistence error: %s (%s)", label, self._name)

    async def join_all(self) -> None:
        """Wait for every tracked task to settle, whatever the outcome."""
        while True:
            pending = [task for task in self._tasks if not task.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    @property
    def pending_count(self) -> int:
        return sum(1 for task in self._tasks if not task.done())

    @property
    def failures(self) -> list[str]:
        """Labels of tasks that failed, in failure order."""
        return list(self._failures)

    def __len__(self) -> int:
        return len(self._tasks)
