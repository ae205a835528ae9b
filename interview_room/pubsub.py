"""
Real-time Pub/Sub for participant notifications.

Replaces UI toasts with notification events that a view layer (or a test)
subscribes to. Speech capture, the completion flow and the code writer
publish here instead of talking to any presentation code.

There is no module-level publisher: create one per participant view and pass
it to the components that need it.

Example usage:
    publisher = NotificationPublisher()
    queue = await publisher.subscribe()
    await publisher.publish_error(
        "Microphone unavailable",
        "Another application is using the microphone.",
        actions=(NotificationAction.SWITCH_TO_TEXT,),
    )
    note = await queue.get()
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from enum import Enum

from interview_room.store import utc_timestamp

logger = logging.getLogger(__name__)

__all__ = [
    "Notification",
    "NotificationAction",
    "NotificationLevel",
    "NotificationPublisher",
]


class NotificationLevel(str, Enum):
    """
    Severity of a notification.

    Attributes:
        INFO: Neutral status change.
        SUCCESS: An operation completed.
        ERROR: An operation failed or needs attention.
    """

    INFO = "info"
    SUCCESS = "success"
    ERROR = "error"


class NotificationAction(str, Enum):
    """Remediation actions a notification can offer."""

    SWITCH_TO_TEXT = "switch_to_text_mode"
    RETRY = "retry"


@dataclass
class Notification:
    """
    A single user-facing notification.

    Attributes:
        level: Severity.
        title: Short headline.
        message: Longer description.
        source: Component that raised it (speech, completion, code_sync).
        actions: Remediation actions offered with the message.
        timestamp: UTC timestamp when the notification was created.
    """

    level: NotificationLevel
    title: str
    message: str = ""
    source: str | None = None
    actions: tuple[NotificationAction, ...] = ()
    timestamp: str = field(default_factory=utc_timestamp)

    def to_dict(self) -> dict[str, object]:
        return {
            "level": self.level.value,
            "title": self.title,
            "message": self.message,
            "source": self.source,
            "actions": [action.value for action in self.actions],
            "timestamp": self.timestamp,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())


class NotificationPublisher:
    """
    Broadcasts notifications to subscriber queues.

    New subscribers receive the retained history first.

    Attributes:
        max_history: Maximum number of notifications to retain.
    """

    def __init__(self, max_history: int = 100) -> None:
        self._subscribers: list[asyncio.Queue[Notification]] = []
        self._history: list[Notification] = []
        self._max_history = max_history
        self._lock = asyncio.Lock()
        logger.debug("NotificationPublisher initialized with max_history=%d", max_history)

    async def subscribe(self) -> asyncio.Queue[Notification]:
        """
        Subscribe to notifications.

        Caller is responsible for calling unsubscribe when done.
        """
        queue: asyncio.Queue[Notification] = asyncio.Queue()
        async with self._lock:
            self._subscribers.append(queue)
            for notification in self._history:
                queue.put_nowait(notification)
        logger.debug("New subscriber added. Total: %d", len(self._subscribers))
        return queue

    async def unsubscribe(self, queue: asyncio.Queue[Notification]) -> None:
        async with self._lock:
            if queue in self._subscribers:
                self._subscribers.remove(queue)
        logger.debug("Subscriber removed. Total: %d", len(self._subscribers))

    async def publish(self, notification: Notification) -> None:
        """Publish to all subscribers and record in history."""
        async with self._lock:
            self._history.append(notification)
            if len(self._history) > self._max_history:
                self._history = self._history[-self._max_history :]
            for queue in self._subscribers:
                queue.put_nowait(notification)

        logger.debug(
            "Published %s notification: %s", notification.level.value, notification.title
        )

    async def publish_info(self, title: str, message: str = "", *, source: str | None = None) -> None:
        await self.publish(Notification(NotificationLevel.INFO, title, message, source))

    async def publish_success(
        self, title: str, message: str = "", *, source: str | None = None
    ) -> None:
        await self.publish(Notification(NotificationLevel.SUCCESS, title, message, source))

    async def publish_error(
        self,
        title: str,
        message: str = "",
        *,
        source: str | None = None,
        actions: tuple[NotificationAction, ...] = (),
    ) -> None:
        await self.publish(
            Notification(NotificationLevel.ERROR, title, message, source, actions)
        )

    async def get_history(self) -> list[Notification]:
        """Copy of the retained notifications."""
        async with self._lock:
            return list(self._history)

    async def clear_history(self) -> None:
        async with self._lock:
            self._history.clear()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)
