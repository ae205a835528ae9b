"""Tests for the room-scoped chat relay."""

from __future__ import annotations

import json
from typing import Any

import pytest

from interview_room.chat import ChatHub


class FakeWebSocket:
    """Records frames; optionally fails every send."""

    def __init__(self, fail: bool = False) -> None:
        self.sent: list[dict[str, Any]] = []
        self.fail = fail

    async def send_json(self, data: Any) -> None:
        if self.fail:
            raise ConnectionError("socket closed")
        self.sent.append(data)


def chat_frame(message: str = "Can you hear me?", role: str = "interviewer") -> str:
    return json.dumps(
        {"type": "chat_message", "message": message, "sender": "Alex Rivera", "role": role}
    )


class TestChatHub:
    """Tests for ChatHub."""

    @pytest.mark.asyncio
    async def test_broadcast_includes_sender(self):
        """Every connection in the room gets the stamped frame, sender included."""
        hub = ChatHub()
        interviewer, candidate = FakeWebSocket(), FakeWebSocket()
        await hub.join("room1", interviewer)
        await hub.join("room1", candidate)

        message = await hub.handle_frame("room1", chat_frame())

        assert message is not None
        assert message.id and message.timestamp
        assert interviewer.sent == candidate.sent
        assert interviewer.sent[0]["message"] == "Can you hear me?"
        assert interviewer.sent[0]["type"] == "chat_message"
        assert hub.messages_relayed == 1

    @pytest.mark.asyncio
    async def test_rooms_are_isolated(self):
        """Frames never cross rooms."""
        hub = ChatHub()
        here, elsewhere = FakeWebSocket(), FakeWebSocket()
        await hub.join("room1", here)
        await hub.join("room2", elsewhere)

        await hub.handle_frame("room1", chat_frame())

        assert len(here.sent) == 1
        assert elsewhere.sent == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "raw",
        [
            "not json",
            json.dumps(["chat_message"]),
            json.dumps({"type": "typing"}),
            json.dumps({"type": "chat_message", "message": "", "sender": "A", "role": "candidate"}),
            json.dumps({"type": "chat_message", "message": "hi", "sender": "A", "role": "observer"}),
        ],
    )
    async def test_invalid_frames_dropped(self, raw):
        """Malformed, foreign and invalid frames are counted and dropped."""
        hub = ChatHub()
        socket = FakeWebSocket()
        await hub.join("room1", socket)

        assert await hub.handle_frame("room1", raw) is None
        assert socket.sent == []
        assert hub.frames_rejected == 1

    @pytest.mark.asyncio
    async def test_failed_connection_removed(self):
        """A connection that fails to receive is dropped from the room."""
        hub = ChatHub()
        healthy, broken = FakeWebSocket(), FakeWebSocket(fail=True)
        await hub.join("room1", healthy)
        await hub.join("room1", broken)

        delivered = await hub.broadcast("room1", hub.stamp(json.loads(chat_frame())))

        assert delivered == 1
        assert hub.participant_count("room1") == 1

    @pytest.mark.asyncio
    async def test_room_removed_with_last_connection(self):
        """Leaving empties and removes the room."""
        hub = ChatHub()
        socket = FakeWebSocket()
        await hub.join("room1", socket)
        await hub.leave("room1", socket)
        await hub.leave("room1", socket)

        assert hub.room_count == 0

    @pytest.mark.asyncio
    async def test_join_requires_room(self):
        """An empty room id is rejected."""
        with pytest.raises(ValueError):
            await ChatHub().join("", FakeWebSocket())
