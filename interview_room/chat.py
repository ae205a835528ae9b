"""
Room-scoped chat relay.

Each room keeps its open connections. A valid chat frame is stamped
with an id and server timestamp and sent to every connection in the room,
the sender included. Rooms disappear with their last connection.
"""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from typing import Any, Optional, Protocol

from pydantic import ValidationError

from interview_room.models import ChatMessage
from interview_room.store import utc_timestamp

logger = logging.getLogger(__name__)

__all__ = ["ChatConnection", "ChatHub"]


class ChatConnection(Protocol):
    async def send_json(self, data: Any) -> None:
        ...


class ChatHub:
    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        # Connections are keyed by identity; WebSocket objects are not hashable.
        self._rooms: dict[str, dict[int, ChatConnection]] = {}
        self.messages_relayed = 0
        self.frames_rejected = 0

    @property
    def room_count(self) -> int:
        return len(self._rooms)

    def participant_count(self, room_id: str) -> int:
        return len(self._rooms.get(room_id, ()))

    async def join(self, room_id: str, connection: ChatConnection) -> None:
        if not room_id:
            raise ValueError("room_id is required to join a chat room.")
        async with self._lock:
            self._rooms.setdefault(room_id, {})[id(connection)] = connection
        logger.info("Chat join room=%s participants=%d", room_id, self.participant_count(room_id))

    async def leave(self, room_id: str, connection: ChatConnection) -> None:
        async with self._lock:
            members = self._rooms.get(room_id)
            if not members:
                return
            members.pop(id(connection), None)
            if not members:
                self._rooms.pop(room_id, None)
        logger.info("Chat leave room=%s participants=%d", room_id, self.participant_count(room_id))

    def stamp(self, payload: dict[str, Any]) -> ChatMessage:
        """Validate a client frame and add id and server timestamp."""
        message = ChatMessage.model_validate(payload)
        return message.model_copy(update={"id": uuid.uuid4().hex, "timestamp": utc_timestamp()})

    async def broadcast(self, room_id: str, message: ChatMessage) -> int:
        """Send to every connection in the room. Returns the delivery count."""
        async with self._lock:
            members = list(self._rooms.get(room_id, {}).values())

        frame = message.to_document()
        delivered = 0
        stale: list[ChatConnection] = []
        for connection in members:
            try:
                await connection.send_json(frame)
                delivered += 1
            except Exception as exc:
                logger.warning("Chat send failed in room %s: %s", room_id, exc)
                stale.append(connection)

        for connection in stale:
            await self.leave(room_id, connection)
        self.messages_relayed += 1
        return delivered

    async def handle_frame(self, room_id: str, raw: str) -> Optional[ChatMessage]:
        """
        Relay one raw text frame.

        Frames that are not JSON, not a ``chat_message`` or fail validation
        are logged and dropped.
        """
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError:
            self.frames_rejected += 1
            logger.warning("Dropping non-JSON chat frame in room %s", room_id)
            return None

        if not isinstance(payload, dict) or payload.get("type") != "chat_message":
            self.frames_rejected += 1
            logger.debug("Ignoring non-chat frame in room %s", room_id)
            return None

        try:
            message = self.stamp(payload)
        except ValidationError as exc:
            self.frames_rejected += 1
            logger.warning("Invalid chat frame in room %s: %s", room_id, exc)
            return None

        await self.broadcast(room_id, message)
        return message
