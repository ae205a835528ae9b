"""
Document store over a WebSocket.

The room service exposes its store at ``/ws/rooms/{roomId}/documents``.
Frames are JSON objects with an ``op`` field:

    client → service
        {"op": "get",         "id": 1, "path": ...}
        {"op": "set",         "id": 2, "path": ..., "data": {...}, "merge": true}
        {"op": "delete",      "id": 3, "path": ...}
        {"op": "list",        "id": 4, "path": <collection>}
        {"op": "subscribe",   "id": 5, "path": ..., "subscription": "s1"}
        {"op": "unsubscribe", "id": 6, "subscription": "s1"}

    service → client
        {"op": "ack",      "id": ...}
        {"op": "result",   "id": ..., "snapshot": {...}} / {"snapshots": [...]}
        {"op": "snapshot", "subscription": "s1", "snapshot": {...}}
        {"op": "error",    "id": ..., "error": "...", "error_code": "..."}

``SERVER_TIMESTAMP`` travels as ``{"__sentinel__": "server_timestamp"}``.
Subscription ids are chosen by the client so the initial snapshot can
never arrive before the client is ready for it.

``DocumentSocketHandler`` is the service half; ``RemoteDocumentStore`` is
the client half and implements the ``DocumentStore`` protocol.
"""

from __future__ import annotations

import asyncio
import itertools
import json
import logging
from collections.abc import Awaitable, Callable, Mapping
from typing import Any, Optional, Protocol

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from interview_room.store import (
    SERVER_TIMESTAMP,
    DocumentSnapshot,
    DocumentStore,
    DocumentStoreError,
    InvalidPathError,
    SnapshotCallback,
    SubscriberChannel,
    Subscription,
    validate_collection_path,
    validate_document_path,
)

logger = logging.getLogger(__name__)

__all__ = [
    "DocumentSocketHandler",
    "RemoteDocumentStore",
    "decode_data",
    "encode_data",
    "snapshot_from_dict",
]


_SENTINEL_KEY = "__sentinel__"
_SERVER_TIMESTAMP_TAG = "server_timestamp"


def encode_data(value: Any) -> Any:
    """Make document data JSON-safe, encoding SERVER_TIMESTAMP."""
    if value is SERVER_TIMESTAMP:
        return {_SENTINEL_KEY: _SERVER_TIMESTAMP_TAG}
    if isinstance(value, Mapping):
        return {str(key): encode_data(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [encode_data(item) for item in value]
    return value


def decode_data(value: Any) -> Any:
    """Inverse of ``encode_data``."""
    if isinstance(value, dict):
        if value.get(_SENTINEL_KEY) == _SERVER_TIMESTAMP_TAG and len(value) == 1:
            return SERVER_TIMESTAMP
        return {key: decode_data(item) for key, item in value.items()}
    if isinstance(value, list):
        return [decode_data(item) for item in value]
    return value


def snapshot_from_dict(payload: Mapping[str, Any]) -> DocumentSnapshot:
    return DocumentSnapshot(
        path=str(payload["path"]),
        exists=bool(payload.get("exists")),
        data=dict(payload.get("data") or {}),
        update_time=payload.get("update_time"),
    )


# =============================================================================
# Service side
# =============================================================================


SendFrame = Callable[[dict[str, Any]], Awaitable[None]]


class DocumentSocketHandler:
    """
    Serves one WebSocket connection against a local store.

    Args:
        store: The authoritative store.
        send: Sends one frame to the client.
        scope: Document path every requested path must equal or sit under.
    """

    def __init__(self, store: DocumentStore, send: SendFrame, scope: str) -> None:
        self.store = store
        self._send = send
        self.scope = validate_document_path(scope)
        self._subscriptions: dict[str, Subscription] = {}
        self.frames_handled = 0
        self.writes = 0

    def _in_scope(self, path: str) -> bool:
        return path == self.scope or path.startswith(self.scope + "/")

    def _document_path(self, frame: Mapping[str, Any]) -> str:
        path = validate_document_path(str(frame.get("path") or ""))
        if not self._in_scope(path):
            raise PermissionError(f"Path '{path}' is outside '{self.scope}'.")
        return path

    async def _error(self, request_id: Any, message: str, error_code: str) -> None:
        await self._send(
            {"op": "error", "id": request_id, "error": message, "error_code": error_code}
        )

    async def handle(self, frame: Any) -> None:
        """Handle one decoded client frame. Never raises for bad input."""
        self.frames_handled += 1
        if not isinstance(frame, dict):
            await self._error(None, "Frame must be a JSON object.", "INVALID_FRAME")
            return

        request_id = frame.get("id")
        op = frame.get("op")
        try:
            if op == "get":
                snapshot = await self.store.get(self._document_path(frame))
                await self._send({"op": "result", "id": request_id, "snapshot": snapshot.to_dict()})
            elif op == "set":
                data = frame.get("data")
                if not isinstance(data, dict):
                    raise DocumentStoreError("'data' must be an object.")
                await self.store.set(
                    self._document_path(frame),
                    decode_data(data),
                    merge=bool(frame.get("merge", True)),
                )
                self.writes += 1
                await self._send({"op": "ack", "id": request_id})
            elif op == "delete":
                await self.store.delete(self._document_path(frame))
                await self._send({"op": "ack", "id": request_id})
            elif op == "list":
                path = validate_collection_path(str(frame.get("path") or ""))
                if not path.startswith(self.scope + "/"):
                    raise PermissionError(f"Path '{path}' is outside '{self.scope}'.")
                snapshots = await self.store.list_collection(path)
                await self._send(
                    {
                        "op": "result",
                        "id": request_id,
                        "snapshots": [snapshot.to_dict() for snapshot in snapshots],
                    }
                )
            elif op == "subscribe":
                await self._subscribe(request_id, frame)
            elif op == "unsubscribe":
                subscription = self._subscriptions.pop(str(frame.get("subscription")), None)
                if subscription is not None:
                    subscription.unsubscribe()
                await self._send({"op": "ack", "id": request_id})
            else:
                await self._error(request_id, f"Unknown op '{op}'.", "UNKNOWN_OP")
        except InvalidPathError as exc:
            await self._error(request_id, str(exc), "INVALID_PATH")
        except PermissionError as exc:
            await self._error(request_id, str(exc), "FORBIDDEN_PATH")
        except DocumentStoreError as exc:
            await self._error(request_id, str(exc), "STORE_ERROR")

    async def _subscribe(self, request_id: Any, frame: Mapping[str, Any]) -> None:
        subscription_id = str(frame.get("subscription") or "")
        if not subscription_id:
            await self._error(request_id, "'subscription' id is required.", "INVALID_FRAME")
            return
        if subscription_id in self._subscriptions:
            await self._error(request_id, f"Subscription '{subscription_id}' exists.", "DUPLICATE")
            return

        path = self._document_path(frame)

        async def _forward(snapshot: DocumentSnapshot) -> None:
            if subscription_id in self._subscriptions:
                await self._send(
                    {
                        "op": "snapshot",
                        "subscription": subscription_id,
                        "snapshot": snapshot.to_dict(),
                    }
                )

        self._subscriptions[subscription_id] = await self.store.subscribe(path, _forward)
        await self._send({"op": "ack", "id": request_id})

    def close(self) -> None:
        for subscription in self._subscriptions.values():
            subscription.unsubscribe()
        self._subscriptions.clear()


# =============================================================================
# Client side
# =============================================================================


class FrameConnection(Protocol):
    """The subset of a websockets client connection the store uses."""

    async def send(self, message: str) -> None: ...

    async def close(self) -> None: ...

    def __aiter__(self) -> Any: ...


class RemoteDocumentStore:
    """
    ``DocumentStore`` backed by the room service.

    Example:
        store = await RemoteDocumentStore.connect("ws://localhost:8780/ws/rooms/abc/documents")
        sub = await store.subscribe("interviews/abc", on_snapshot)
        ...
        await store.close()

    Args:
        connection: An open connection (normally from ``websockets.connect``).
        request_timeout: Seconds to wait for a reply to each request.
    """

    def __init__(self, connection: FrameConnection, *, request_timeout: float = 10.0) -> None:
        self._connection = connection
        self.request_timeout = request_timeout
        self._ids = itertools.count(1)
        self._subscription_ids = itertools.count(1)
        self._pending: dict[int, asyncio.Future[dict[str, Any]]] = {}
        self._channels: dict[str, SubscriberChannel] = {}
        self._background: set[asyncio.Task[None]] = set()
        self._closed = False
        self._reader = asyncio.create_task(self._read_loop(), name="remote-store-reader")

    @classmethod
    async def connect(
        cls, url: str, *, open_timeout: float = 20.0, request_timeout: float = 10.0
    ) -> "RemoteDocumentStore":
        try:
            connection = await websockets.connect(url, open_timeout=open_timeout, max_size=2**22)
        except (OSError, asyncio.TimeoutError, WebSocketException) as exc:
            raise DocumentStoreError(f"Cannot connect to {url}: {exc}") from exc
        logger.info("Connected document store to %s", url)
        return cls(connection, request_timeout=request_timeout)

    async def __aenter__(self) -> "RemoteDocumentStore":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def _read_loop(self) -> None:
        try:
            async for raw in self._connection:
                try:
                    frame = json.loads(raw)
                except json.JSONDecodeError:
                    logger.warning("Dropping non-JSON frame from document service")
                    continue
                self._dispatch(frame)
        except ConnectionClosed as exc:
            logger.info("Document service connection closed: %s", exc)
        finally:
            self._fail_pending(DocumentStoreError("Document service connection closed."))

    def _dispatch(self, frame: Any) -> None:
        if not isinstance(frame, dict):
            return
        op = frame.get("op")
        if op == "snapshot":
            channel = self._channels.get(str(frame.get("subscription")))
            if channel is not None:
                channel.push(snapshot_from_dict(frame["snapshot"]))
            return

        future = self._pending.pop(frame.get("id"), None)
        if future is None or future.done():
            return
        if op == "error":
            message = str(frame.get("error") or "Document service error")
            if frame.get("error_code") == "INVALID_PATH":
                future.set_exception(InvalidPathError(message))
            else:
                future.set_exception(DocumentStoreError(message))
        else:
            future.set_result(frame)

    def _fail_pending(self, error: Exception) -> None:
        pending, self._pending = self._pending, {}
        for future in pending.values():
            if not future.done():
                future.set_exception(error)

    async def _call(self, frame: dict[str, Any]) -> dict[str, Any]:
        if self._closed:
            raise DocumentStoreError("Document store is closed.")
        request_id = next(self._ids)
        future: asyncio.Future[dict[str, Any]] = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        try:
            await self._connection.send(json.dumps({**frame, "id": request_id}))
            return await asyncio.wait_for(future, timeout=self.request_timeout)
        except ConnectionClosed as exc:
            raise DocumentStoreError(f"Document service connection closed: {exc}") from exc
        except asyncio.TimeoutError as exc:
            raise DocumentStoreError(f"No reply to '{frame.get('op')}' within {self.request_timeout}s.") from exc
        finally:
            self._pending.pop(request_id, None)

    async def get(self, path: str) -> DocumentSnapshot:
        reply = await self._call({"op": "get", "path": validate_document_path(path)})
        return snapshot_from_dict(reply["snapshot"])

    async def set(self, path: str, data: Mapping[str, Any], merge: bool = True) -> None:
        if not isinstance(data, Mapping):
            raise DocumentStoreError(f"Document data must be a mapping. Got: {type(data).__name__}")
        await self._call(
            {
                "op": "set",
                "path": validate_document_path(path),
                "data": encode_data(data),
                "merge": merge,
            }
        )

    async def delete(self, path: str) -> None:
        await self._call({"op": "delete", "path": validate_document_path(path)})

    async def list_collection(self, path: str) -> list[DocumentSnapshot]:
        reply = await self._call({"op": "list", "path": validate_collection_path(path)})
        return [snapshot_from_dict(item) for item in reply.get("snapshots", [])]

    async def subscribe(self, path: str, callback: SnapshotCallback) -> Subscription:
        path = validate_document_path(path)
        subscription_id = f"s{next(self._subscription_ids)}"
        channel = SubscriberChannel(path, callback)
        self._channels[subscription_id] = channel
        try:
            await self._call({"op": "subscribe", "path": path, "subscription": subscription_id})
        except DocumentStoreError:
            self._channels.pop(subscription_id, None)
            channel.close()
            raise

        def _release() -> None:
            self._channels.pop(subscription_id, None)
            channel.close()
            if not self._closed:
                task = asyncio.create_task(self._send_unsubscribe(subscription_id))
                self._background.add(task)
                task.add_done_callback(self._background.discard)

        return Subscription(path, _release)

    async def _send_unsubscribe(self, subscription_id: str) -> None:
        try:
            await self._call({"op": "unsubscribe", "subscription": subscription_id})
        except DocumentStoreError as exc:
            logger.warning("Unsubscribe %s failed: %s", subscription_id, exc)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        channels = list(self._channels.values())
        self._channels.clear()
        for channel in channels:
            channel.close()
        await self._connection.close()
        if not self._reader.done():
            self._reader.cancel()
            await asyncio.gather(self._reader, return_exceptions=True)
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)
