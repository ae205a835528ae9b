"""Cancelable one-shot scheduled tasks owned by the component that starts them."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)

__all__ = ["ScheduledTask", "TaskState"]


class TaskState(str, Enum):
    """Lifecycle of a scheduled task."""

    SCHEDULED = "scheduled"
    RUNNING = "running"
    DONE = "done"
    FAILED = "failed"
    CANCELLED = "cancelled"


class ScheduledTask:
    """
    Run ``action`` once after ``delay`` seconds unless cancelled first.

    Cancellation only applies while the task is still waiting; once the
    action has started it runs to completion. A failure inside the action is
    logged and re-raised from ``wait()``.
    """

    def __init__(
        self,
        delay: float,
        action: Callable[[], Awaitable[None]],
        name: Optional[str] = None,
    ) -> None:
        if delay < 0:
            raise ValueError(f"delay must be >= 0. Got: {delay}")
        self.delay = delay
        self.name = name or "scheduled-task"
        self.state = TaskState.SCHEDULED
        self.error: Optional[BaseException] = None
        self._action = action
        self._task = asyncio.create_task(self._run(), name=self.name)

    @property
    def pending(self) -> bool:
        """True while the task has not started its action yet."""
        return self.state == TaskState.SCHEDULED

    @property
    def finished(self) -> bool:
        return self.state in (TaskState.DONE, TaskState.FAILED, TaskState.CANCELLED)

    async def _run(self) -> None:
        try:
            await asyncio.sleep(self.delay)
        except asyncio.CancelledError:
            self.state = TaskState.CANCELLED
            return

        self.state = TaskState.RUNNING
        try:
            await self._action()
        except Exception as exc:
            self.state = TaskState.FAILED
            self.error = exc
            logger.error("%s failed: %s", self.name, exc, exc_info=True)
            return
        self.state = TaskState.DONE

    def cancel(self) -> bool:
        """Cancel a task that has not started yet. Returns True if cancelled."""
        if self.state != TaskState.SCHEDULED:
            return False
        self.state = TaskState.CANCELLED
        self._task.cancel()
        return True

    async def wait(self) -> None:
        """Wait for the task to settle; re-raises an action failure."""
        if not self._task.done():
            await asyncio.wait({self._task})
        if self.error is not None:
            raise self.error
