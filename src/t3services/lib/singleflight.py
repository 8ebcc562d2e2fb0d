"""Coalescing of concurrent calls into one in-flight task.

While a call is running, further callers await the same task instead of
starting their own. Once it finishes (successfully or not) the next call
starts fresh. Waiters are shielded from each other: cancelling one waiter
does not cancel the shared task.

The in-flight task is tracked per event loop so an instance can outlive
``asyncio.run`` calls; the entry is dropped as soon as the task finishes.

Example:
    refresh_once = SingleFlight()

    async def refresh() -> Snapshot:
        return await refresh_once.run(fetch_snapshot)
"""

import asyncio
import logging
from collections.abc import Callable, Coroutine
from typing import Any, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SingleFlight(Generic[T]):
    """Share one running coroutine between concurrent callers."""

    def __init__(self) -> None:
        self._tasks: dict[int, asyncio.Task[T]] = {}

    @property
    def in_flight(self) -> bool:
        """Whether a shared task is currently running on this loop."""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return False
        task = self._tasks.get(id(loop))
        return task is not None and not task.done()

    async def run(self, factory: Callable[[], Coroutine[Any, Any, T]]) -> T:
        """Await the in-flight task, starting one from ``factory`` if idle."""
        loop_id = id(asyncio.get_running_loop())
        task = self._tasks.get(loop_id)
        if task is None or task.done():
            task = asyncio.create_task(factory())
            self._tasks[loop_id] = task
            task.add_done_callback(lambda t: self._finished(loop_id, t))
        else:
            logger.debug("Joining in-flight %s", task.get_name())
        return await asyncio.shield(task)

    def _finished(self, loop_id: int, task: asyncio.Task[T]) -> None:
        if self._tasks.get(loop_id) is task:
            del self._tasks[loop_id]
        # Marks the outcome retrieved when every waiter was cancelled
        if not task.cancelled() and task.exception() is not None:
            logger.debug("%s failed: %r", task.get_name(), task.exception())
