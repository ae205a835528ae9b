"""
Shared code editor synchronization.

Two cooperating pieces keep both participants' editors in step through the
room document:

    DebouncedWriter
        Coalesces a burst of local edits into one tagged merge write
        ``{code, lastUpdatedBy, timestamp}`` once the editor has been quiet
        for the debounce interval. A newer edit or teardown discards the
        pending write, so the last value in a burst wins.

    EchoSuppressingSubscriber
        Receives every snapshot of the room document. Snapshots tagged with
        the subscriber's own role are echoes of its own writes and are
        ignored; peer values replace the local view. The first snapshot is
        the stored value and seeds the view whatever its tag. While a remote value
        is being applied the field is in ``APPLYING_REMOTE`` and local
        change events are not turned into writes.

``CodeSync`` composes both into the editor view model.

Snapshots carry no sequence number: a delayed delivery of an older peer
value after a newer one regresses the view until the next write.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any, Optional, Union

from interview_room.models import ParticipantRole
from interview_room.pubsub import NotificationPublisher
from interview_room.scheduling import ScheduledTask
from interview_room.store import (
    SERVER_TIMESTAMP,
    DocumentSnapshot,
    DocumentStore,
    Subscription,
    room_path,
)

logger = logging.getLogger(__name__)

__all__ = [
    "CodeSync",
    "DEFAULT_DEBOUNCE_SECONDS",
    "DebouncedWriter",
    "EchoSuppressingSubscriber",
    "SyncState",
]


DEFAULT_DEBOUNCE_SECONDS = 0.5

ErrorCallback = Callable[[Exception], Union[Awaitable[None], None]]
RemoteValueCallback = Callable[[Any, Optional[str]], Union[Awaitable[None], None]]


async def _call(callback: Callable[..., Any], *args: Any) -> None:
    result = callback(*args)
    if inspect.isawaitable(result):
        await result


class SyncState(str, Enum):
    """Re-entrancy guard for one synchronized field."""

    IDLE = "idle"
    APPLYING_REMOTE = "applying_remote"


class DebouncedWriter:
    """
    At most one remote write per quiet interval.

    Args:
        store: Document store to write to.
        path: Document path, normally the room document.
        role: Tag written as ``lastUpdatedBy``.
        field: Name of the synchronized field.
        interval: Quiet period in seconds before a pending value is flushed.
        guard: Checked at flush time; a False result skips the write.
        on_error: Called with the exception when a flush fails.
    """

    def __init__(
        self,
        store: DocumentStore,
        path: str,
        role: ParticipantRole,
        *,
        field: str = "code",
        interval: float = DEFAULT_DEBOUNCE_SECONDS,
        guard: Optional[Callable[[], bool]] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> None:
        if interval < 0:
            raise ValueError(f"interval must be >= 0. Got: {interval}")
        self.store = store
        self.path = path
        self.role = ParticipantRole(role)
        self.field = field
        self.interval = interval
        self._guard = guard
        self._on_error = on_error
        self._pending: Optional[ScheduledTask] = None
        self._closed = False
        self.writes_issued = 0
        self.writes_skipped = 0
        self.write_failures = 0
        self.last_error: Optional[Exception] = None

    @property
    def has_pending(self) -> bool:
        return self._pending is not None and self._pending.pending

    @property
    def is_writing(self) -> bool:
        return self._pending is not None and not self._pending.pending and not self._pending.finished

    def submit(self, value: Any) -> None:
        """Schedule ``value`` for writing, superseding any pending value."""
        if self._closed:
            logger.debug("Ignoring submit on closed writer for %s", self.path)
            return
        self.cancel()
        self._pending = ScheduledTask(
            self.interval,
            lambda: self._flush(value),
            name=f"debounce:{self.path}:{self.field}",
        )

    def cancel(self) -> bool:
        """Discard the pending write, if it has not started."""
        if self._pending is None:
            return False
        return self._pending.cancel()

    async def drain(self) -> None:
        """Wait for the current pending or in-flight write to settle."""
        if self._pending is not None:
            await self._pending.wait()

    def close(self) -> None:
        """Teardown: drop the pending write and refuse new ones."""
        self.cancel()
        self._closed = True

    async def _flush(self, value: Any) -> None:
        if self._guard is not None and not self._guard():
            self.writes_skipped += 1
            logger.debug("Skipped flush for %s while applying remote value", self.path)
            return

        payload = {
            self.field: value,
            "lastUpdatedBy": self.role.value,
            "timestamp": SERVER_TIMESTAMP,
        }
        try:
            await self.store.set(self.path, payload, merge=True)
        except Exception as exc:
            self.write_failures += 1
            self.last_error = exc
            logger.warning("Write to %s failed: %s", self.path, exc, exc_info=True)
            if self._on_error is not None and not self._closed:
                await _call(self._on_error, exc)
            return

        self.writes_issued += 1
        logger.debug("Flushed %s.%s as %s", self.path, self.field, self.role.value)


class EchoSuppressingSubscriber:
    """
    Applies peer values of one field and ignores echoes of our own writes.

    Args:
        store: Document store to subscribe to.
        path: Document path.
        role: Our own role; snapshots tagged with it are echoes.
        field: Name of the synchronized field.
        on_remote_value: Receives ``(value, tag)`` for every applied peer value.
        accept_initial: Checked when the first snapshot carries our own tag.
            That snapshot is the stored value from before this subscription,
            not an echo, and is applied unless this returns False.
    """

    def __init__(
        self,
        store: DocumentStore,
        path: str,
        role: ParticipantRole,
        *,
        field: str = "code",
        on_remote_value: Optional[RemoteValueCallback] = None,
        accept_initial: Optional[Callable[[], bool]] = None,
    ) -> None:
        self.store = store
        self.path = path
        self.role = ParticipantRole(role)
        self.field = field
        self._on_remote_value = on_remote_value
        self._accept_initial = accept_initial
        self._awaiting_initial = False
        self._subscription: Optional[Subscription] = None
        self.state = SyncState.IDLE
        self.value: Any = None
        self.last_updated_by: Optional[str] = None
        self.applied_count = 0
        self.suppressed_count = 0

    @property
    def applying_remote(self) -> bool:
        return self.state is SyncState.APPLYING_REMOTE

    async def start(self) -> None:
        if self._subscription is None:
            self._awaiting_initial = True
            self._subscription = await self.store.subscribe(self.path, self._on_snapshot)

    def stop(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None

    def _initial_accepted(self) -> bool:
        return self._accept_initial is None or self._accept_initial()

    async def _on_snapshot(self, snapshot: DocumentSnapshot) -> None:
        if self._subscription is None or not self._subscription.active:
            return
        initial = self._awaiting_initial
        self._awaiting_initial = False
        if not snapshot.exists or self.field not in snapshot.data:
            return

        tag = snapshot.get("lastUpdatedBy")
        if tag == self.role.value and not (initial and self._initial_accepted()):
            self.suppressed_count += 1
            return

        self.state = SyncState.APPLYING_REMOTE
        try:
            self.value = snapshot.get(self.field)
            self.last_updated_by = tag
            self.applied_count += 1
            if self._on_remote_value is not None:
                await _call(self._on_remote_value, self.value, tag)
        finally:
            self.state = SyncState.IDLE


class CodeSync:
    """
    View model of the shared code editor for one participant.

    Example:
        sync = CodeSync(store, "abc123", ParticipantRole.CANDIDATE)
        await sync.start()
        sync.handle_local_change("print('hi')")
        ...
        await sync.close()

    Args:
        store: Document store holding the room.
        room_id: Room token.
        role: Local participant role.
        interval: Debounce interval in seconds.
        publisher: Receives a notification when a write fails.
        on_code_change: Called with each applied peer value, e.g. to update
            an editor widget. Change events it triggers are ignored.
    """

    def __init__(
        self,
        store: DocumentStore,
        room_id: str,
        role: ParticipantRole,
        *,
        interval: float = DEFAULT_DEBOUNCE_SECONDS,
        publisher: Optional[NotificationPublisher] = None,
        on_code_change: Optional[Callable[[str], Union[Awaitable[None], None]]] = None,
    ) -> None:
        self.room_id = room_id
        self.role = ParticipantRole(role)
        self._publisher = publisher
        self._on_code_change = on_code_change
        self._code = ""
        self._edited = False
        self._closed = False
        path = room_path(room_id)
        self.subscriber = EchoSuppressingSubscriber(
            store,
            path,
            self.role,
            on_remote_value=self._apply_remote,
            accept_initial=lambda: not self._edited,
        )
        self.writer = DebouncedWriter(
            store,
            path,
            self.role,
            interval=interval,
            guard=lambda: not self.subscriber.applying_remote,
            on_error=self._report_write_error,
        )

    @property
    def code(self) -> str:
        return self._code

    @property
    def is_updating(self) -> bool:
        """True while a remote value is being applied or a write is in flight."""
        return self.subscriber.applying_remote or self.writer.is_writing

    async def start(self) -> None:
        await self.subscriber.start()

    def handle_local_change(self, value: str) -> bool:
        """
        Record a local edit. Returns False when the change was ignored
        because it came from applying a peer value.
        """
        if self._closed or self.subscriber.applying_remote:
            return False
        self._code = value
        self._edited = True
        self.writer.submit(value)
        return True

    async def close(self) -> None:
        self._closed = True
        self.writer.close()
        self.subscriber.stop()

    async def _apply_remote(self, value: Any, tag: Optional[str]) -> None:
        if self._closed:
            return
        self._code = "" if value is None else str(value)
        logger.debug("Applied remote code from %s in room %s", tag, self.room_id)
        if self._on_code_change is not None:
            await _call(self._on_code_change, self._code)

    async def _report_write_error(self, exc: Exception) -> None:
        if self._publisher is None:
            return
        await self._publisher.publish_error(
            "Code sync failed",
            f"Your latest changes could not be saved: {exc}",
            source="code_sync",
        )
