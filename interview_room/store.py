"""
Remote document store abstraction and the in-memory implementation.

Documents live at slash-separated paths that alternate collection and
document segments (``interviews/{roomId}``, ``interviews/{roomId}/answers/{qid}``).
Writes are all-or-nothing merges; every subscriber of a path receives the
current snapshot on subscription and then one snapshot per change, in write
order.

The in-memory store fans out through one asyncio queue and one pump task per
subscriber, so a slow subscriber never blocks writers or other subscribers.

Example usage:
    store = InMemoryDocumentStore()
    sub = await store.subscribe(room_path("abc"), on_snapshot)
    await store.set(room_path("abc"), {"code": "x", "timestamp": SERVER_TIMESTAMP})
    sub.unsubscribe()
"""

from __future__ import annotations

import asyncio
import copy
import inspect
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional, Protocol, Union

logger = logging.getLogger(__name__)

__all__ = [
    "SERVER_TIMESTAMP",
    "DocumentSnapshot",
    "DocumentStore",
    "DocumentStoreError",
    "InMemoryDocumentStore",
    "InvalidPathError",
    "SnapshotCallback",
    "SubscriberChannel",
    "Subscription",
    "answer_path",
    "answers_collection",
    "consent_path",
    "feedback_path",
    "room_path",
    "summary_path",
    "template_path",
    "utc_timestamp",
    "validate_collection_path",
    "validate_document_path",
]


ROOMS_COLLECTION = "interviews"
TEMPLATES_COLLECTION = "templates"


def utc_timestamp() -> str:
    """Current UTC time as ISO 8601 with a 'Z' suffix."""
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class _ServerTimestamp:
    """Write-time placeholder replaced by the store's own clock."""

    _instance: Optional["_ServerTimestamp"] = None

    def __new__(cls) -> "_ServerTimestamp":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"

    def __deepcopy__(self, memo: dict) -> "_ServerTimestamp":
        return self


SERVER_TIMESTAMP = _ServerTimestamp()


# =============================================================================
# Errors and paths
# =============================================================================


class DocumentStoreError(Exception):
    """Raised when a store operation cannot be completed."""


class InvalidPathError(DocumentStoreError, ValueError):
    """Raised for malformed document or collection paths."""


def _split_path(path: str) -> list[str]:
    if not isinstance(path, str) or not path.strip("/"):
        raise InvalidPathError(f"Path must be a non-empty string. Got: {path!r}")
    segments = path.strip("/").split("/")
    if any(not segment.strip() for segment in segments):
        raise InvalidPathError(f"Path contains an empty segment: {path!r}")
    return segments


def validate_document_path(path: str) -> str:
    """Normalize a document path; documents have an even number of segments."""
    segments = _split_path(path)
    if len(segments) % 2 != 0:
        raise InvalidPathError(
            f"Document path must have an even number of segments. Got: {path!r}"
        )
    return "/".join(segments)


def validate_collection_path(path: str) -> str:
    """Normalize a collection path; collections have an odd number of segments."""
    segments = _split_path(path)
    if len(segments) % 2 != 1:
        raise InvalidPathError(
            f"Collection path must have an odd number of segments. Got: {path!r}"
        )
    return "/".join(segments)


def room_path(room_id: str) -> str:
    return validate_document_path(f"{ROOMS_COLLECTION}/{room_id}")


def answers_collection(room_id: str) -> str:
    return validate_collection_path(f"{ROOMS_COLLECTION}/{room_id}/answers")


def answer_path(room_id: str, question_id: str) -> str:
    return validate_document_path(f"{ROOMS_COLLECTION}/{room_id}/answers/{question_id}")


def summary_path(room_id: str) -> str:
    return validate_document_path(f"{ROOMS_COLLECTION}/{room_id}/summary/final")


def consent_path(room_id: str) -> str:
    return validate_document_path(f"{ROOMS_COLLECTION}/{room_id}/consent/candidate")


def feedback_path(room_id: str) -> str:
    return validate_document_path(f"{ROOMS_COLLECTION}/{room_id}/feedback/candidate")


def template_path(template_id: str) -> str:
    return validate_document_path(f"{TEMPLATES_COLLECTION}/{template_id}")


# =============================================================================
# Snapshots and subscriptions
# =============================================================================


@dataclass(frozen=True)
class DocumentSnapshot:
    """
    Point-in-time view of one document.

    Attributes:
        path: Normalized document path.
        exists: False when the document has never been written or was deleted.
        data: Copy of the document fields (empty when missing).
        update_time: Store clock value of the write that produced this snapshot.
    """

    path: str
    exists: bool
    data: dict[str, Any] = field(default_factory=dict)
    update_time: Optional[str] = None

    @property
    def id(self) -> str:
        return self.path.rsplit("/", 1)[-1]

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "exists": self.exists,
            "data": self.data,
            "update_time": self.update_time,
        }


SnapshotCallback = Callable[[DocumentSnapshot], Union[Awaitable[None], None]]


class Subscription:
    """Handle returned by ``subscribe``; ``unsubscribe`` is idempotent."""

    def __init__(self, path: str, release: Callable[[], None]) -> None:
        self.path = path
        self._release: Optional[Callable[[], None]] = release

    @property
    def active(self) -> bool:
        return self._release is not None

    def unsubscribe(self) -> None:
        release, self._release = self._release, None
        if release is not None:
            release()


class DocumentStore(Protocol):
    """Operations every document store backend provides."""

    async def get(self, path: str) -> DocumentSnapshot: ...

    async def set(
        self, path: str, data: Mapping[str, Any], merge: bool = True
    ) -> None: ...

    async def delete(self, path: str) -> None: ...

    async def subscribe(self, path: str, callback: SnapshotCallback) -> Subscription: ...

    async def list_collection(self, path: str) -> list[DocumentSnapshot]: ...

    async def close(self) -> None: ...


# =============================================================================
# Helpers
# =============================================================================


def _resolve_sentinels(value: Any, now: str) -> Any:
    if value is SERVER_TIMESTAMP:
        return now
    if isinstance(value, Mapping):
        return {str(key): _resolve_sentinels(item, now) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_resolve_sentinels(item, now) for item in value]
    return value


def _deep_merge(current: dict[str, Any], incoming: dict[str, Any]) -> dict[str, Any]:
    merged = copy.deepcopy(current)
    for key, value in incoming.items():
        existing = merged.get(key)
        if isinstance(existing, dict) and isinstance(value, dict):
            merged[key] = _deep_merge(existing, value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


async def deliver_snapshot(callback: SnapshotCallback, snapshot: DocumentSnapshot) -> None:
    """Invoke a sync or async snapshot callback."""
    result = callback(snapshot)
    if inspect.isawaitable(result):
        await result


class SubscriberChannel:
    """Per-subscriber queue drained by its own pump task."""

    def __init__(self, path: str, callback: SnapshotCallback) -> None:
        self.path = path
        self.callback = callback
        self.queue: asyncio.Queue[Optional[DocumentSnapshot]] = asyncio.Queue()
        self.closed = False
        self.delivering = False
        self.task = asyncio.create_task(self._pump(), name=f"store-subscriber:{path}")

    @property
    def pending(self) -> bool:
        return self.delivering or not self.queue.empty()

    def push(self, snapshot: DocumentSnapshot) -> None:
        if not self.closed:
            self.queue.put_nowait(snapshot)

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self.queue.put_nowait(None)

    async def _pump(self) -> None:
        while True:
            snapshot = await self.queue.get()
            if snapshot is None:
                return
            if self.closed:
                continue
            self.delivering = True
            try:
                await deliver_snapshot(self.callback, snapshot)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.error(
                    "Subscriber callback failed for %s", self.path, exc_info=True
                )
            finally:
                self.delivering = False


# =============================================================================
# In-memory store
# =============================================================================


class InMemoryDocumentStore:
    """
    Process-local document store with snapshot fan-out.

    All mutations run under one asyncio lock and enqueue the resulting
    snapshot to every subscriber before the lock is released, which keeps
    per-subscriber delivery in write order.

    Args:
        clock: Source of server timestamps. Defaults to UTC wall time.
    """

    def __init__(self, clock: Callable[[], str] = utc_timestamp) -> None:
        self._clock = clock
        self._documents: dict[str, dict[str, Any]] = {}
        self._update_times: dict[str, str] = {}
        self._channels: dict[str, list[SubscriberChannel]] = {}
        self._lock = asyncio.Lock()
        self._closed = False
        self.write_count = 0

    @property
    def subscriber_count(self) -> int:
        return sum(len(channels) for channels in self._channels.values())

    def _snapshot(self, path: str) -> DocumentSnapshot:
        data = self._documents.get(path)
        if data is None:
            return DocumentSnapshot(path=path, exists=False)
        return DocumentSnapshot(
            path=path,
            exists=True,
            data=copy.deepcopy(data),
            update_time=self._update_times.get(path),
        )

    def _check_open(self) -> None:
        if self._closed:
            raise DocumentStoreError("Document store is closed.")

    def _broadcast(self, path: str) -> None:
        channels = self._channels.get(path)
        if not channels:
            return
        snapshot = self._snapshot(path)
        for channel in channels:
            channel.push(snapshot)

    async def get(self, path: str) -> DocumentSnapshot:
        path = validate_document_path(path)
        async with self._lock:
            return self._snapshot(path)

    async def set(self, path: str, data: Mapping[str, Any], merge: bool = True) -> None:
        """
        Write fields to a document.

        With ``merge`` nested maps are merged and other values replaced;
        without it the document is overwritten. ``SERVER_TIMESTAMP`` values
        are replaced by the store clock.

        Raises:
            InvalidPathError: If the path is not a document path.
            DocumentStoreError: If the store is closed or data is not a mapping.
        """
        path = validate_document_path(path)
        if not isinstance(data, Mapping):
            raise DocumentStoreError(f"Document data must be a mapping. Got: {type(data).__name__}")
        self._check_open()

        async with self._lock:
            now = self._clock()
            incoming = _resolve_sentinels(data, now)
            current = self._documents.get(path)
            if merge and current is not None:
                self._documents[path] = _deep_merge(current, incoming)
            else:
                self._documents[path] = copy.deepcopy(incoming)
            self._update_times[path] = now
            self.write_count += 1
            self._broadcast(path)

        logger.debug("Stored %s (merge=%s)", path, merge)

    async def delete(self, path: str) -> None:
        path = validate_document_path(path)
        self._check_open()
        async with self._lock:
            if self._documents.pop(path, None) is None:
                return
            self._update_times.pop(path, None)
            self._broadcast(path)

    async def subscribe(self, path: str, callback: SnapshotCallback) -> Subscription:
        """
        Subscribe to one document.

        The callback receives the current snapshot first (``exists=False``
        when the document is missing), then every change.
        """
        path = validate_document_path(path)
        self._check_open()
        async with self._lock:
            channel = SubscriberChannel(path, callback)
            channel.push(self._snapshot(path))
            self._channels.setdefault(path, []).append(channel)

        def _release() -> None:
            channels = self._channels.get(path)
            if channels and channel in channels:
                channels.remove(channel)
                if not channels:
                    del self._channels[path]
            channel.close()

        logger.debug("Subscribed to %s", path)
        return Subscription(path, _release)

    async def list_collection(self, path: str) -> list[DocumentSnapshot]:
        """Return snapshots of the direct children of a collection, sorted by id."""
        path = validate_collection_path(path)
        prefix = f"{path}/"
        async with self._lock:
            return [
                self._snapshot(doc_path)
                for doc_path in sorted(self._documents)
                if doc_path.startswith(prefix) and "/" not in doc_path[len(prefix):]
            ]

    async def wait_for_deliveries(self) -> None:
        """
        Block until every queued snapshot has been handled by its subscriber.

        Callbacks that write again are followed until the store is quiet.
        """
        while True:
            channels = [c for group in self._channels.values() for c in group]
            if not any(channel.pending for channel in channels):
                return
            await asyncio.sleep(0)

    async def close(self) -> None:
        """Release all subscribers and reject further writes."""
        self._closed = True
        channels = [channel for group in self._channels.values() for channel in group]
        self._channels.clear()
        for channel in channels:
            channel.close()
        if channels:
            await asyncio.gather(*(channel.task for channel in channels), return_exceptions=True)
