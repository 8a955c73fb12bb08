"""Fire-and-forget background tasks detached from the request lifecycle.

Key features:
- ``fire_and_forget`` schedules a coroutine and returns immediately
- Strong references are kept until the task finishes (asyncio only keeps weak
  ones, so an unreferenced task may be garbage collected mid-flight)
- Failures are logged and dropped: never awaited, never retried, never
  reported back to the request that spawned them
- ``drain`` waits for in-flight tasks on shutdown (and in tests)
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

import structlog


if TYPE_CHECKING:
    from collections.abc import Coroutine


logger = structlog.get_logger(__name__)


class BackgroundTasks:
    """Registry of detached asyncio tasks."""

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[Any]] = set()
        self._spawned = 0
        self._failed = 0

    def fire_and_forget(self, coro: Coroutine[Any, Any, Any], name: str) -> asyncio.Task[Any]:
        """Schedule ``coro`` without awaiting it.

        The caller gets the task back only for introspection; it must not await
        it. Exceptions raised by the coroutine are logged in the done callback.

        Args:
            coro: Coroutine to run
            name: Task name used in logs

        Returns:
            The scheduled task
        """
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        self._spawned += 1
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)

        if task.cancelled():
            logger.warning("background_task_cancelled", task_name=task.get_name())
            return

        error = task.exception()
        if error is not None:
            self._failed += 1
            logger.error(
                "background_task_failed",
                task_name=task.get_name(),
                error=str(error),
                error_type=type(error).__name__,
            )

    async def drain(self, timeout: float | None = None) -> None:
        """Wait for every in-flight task to finish.

        Tasks spawned while draining are waited for as well.
        """
        while self._tasks:
            pending = list(self._tasks)
            done, not_done = await asyncio.wait(pending, timeout=timeout)
            if not_done:
                logger.warning("background_drain_timeout", pending=len(not_done))
                return
            # done callbacks may not have run yet for the finished tasks
            for task in done:
                self._tasks.discard(task)

    @property
    def pending(self) -> int:
        """Number of tasks still running."""
        return len(self._tasks)

    def get_stats(self) -> dict[str, int]:
        """Get task counters for monitoring."""
        return {
            "pending": len(self._tasks),
            "spawned": self._spawned,
            "failed": self._failed,
        }
