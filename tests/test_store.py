"""
Tests for the document store and scheduled tasks.

Covers path validation, merge writes, server timestamps, subscription
delivery order and teardown of InMemoryDocumentStore, plus ScheduledTask
cancellation semantics.

Last Grunted: 10/17/2026
"""

from __future__ import annotations

import asyncio

import pytest

from interview_room.scheduling import ScheduledTask, TaskState
from interview_room.store import (
    SERVER_TIMESTAMP,
    DocumentSnapshot,
    DocumentStoreError,
    InMemoryDocumentStore,
    InvalidPathError,
    answer_path,
    answers_collection,
    room_path,
    summary_path,
    validate_collection_path,
    validate_document_path,
)


def fixed_clock() -> str:
    return "2026-10-17T12:00:00Z"


# =============================================================================
# Paths
# =============================================================================


class TestPaths:
    """Tests for path helpers and validation."""

    def test_room_paths(self):
        """Room helpers build the documented layout."""
        assert room_path("abc") == "interviews/abc"
        assert answer_path("abc", "q1") == "interviews/abc/answers/q1"
        assert answers_collection("abc") == "interviews/abc/answers"
        assert summary_path("abc") == "interviews/abc/summary/final"

    def test_document_path_normalized(self):
        """Leading and trailing slashes are stripped."""
        assert validate_document_path("/interviews/abc/") == "interviews/abc"

    @pytest.mark.parametrize("path", ["", "/", "interviews", "interviews/abc/answers", "a//b"])
    def test_invalid_document_paths(self, path):
        """Odd segment counts and empty segments are rejected."""
        with pytest.raises(InvalidPathError):
            validate_document_path(path)

    def test_invalid_collection_path(self):
        """Collections need an odd number of segments."""
        with pytest.raises(InvalidPathError):
            validate_collection_path("interviews/abc")

    def test_invalid_path_is_value_error(self):
        """InvalidPathError doubles as ValueError for callers."""
        with pytest.raises(ValueError):
            room_path("")


# =============================================================================
# In-memory store
# =============================================================================


class TestInMemoryDocumentStore:
    """Tests for InMemoryDocumentStore."""

    @pytest.mark.asyncio
    async def test_get_missing_document(self):
        """Missing documents return exists=False with empty data."""
        store = InMemoryDocumentStore()
        snapshot = await store.get("interviews/nope")
        assert snapshot.exists is False
        assert snapshot.data == {}
        assert snapshot.id == "nope"

    @pytest.mark.asyncio
    async def test_set_merge_and_overwrite(self):
        """Merge keeps untouched fields; merge=False replaces the document."""
        store = InMemoryDocumentStore(clock=fixed_clock)
        await store.set("interviews/abc", {"code": "x", "meta": {"a": 1}})
        await store.set("interviews/abc", {"lastUpdatedBy": "candidate", "meta": {"b": 2}})

        snapshot = await store.get("interviews/abc")
        assert snapshot.data == {
            "code": "x",
            "lastUpdatedBy": "candidate",
            "meta": {"a": 1, "b": 2},
        }

        await store.set("interviews/abc", {"code": "y"}, merge=False)
        assert (await store.get("interviews/abc")).data == {"code": "y"}
        assert store.write_count == 3

    @pytest.mark.asyncio
    async def test_server_timestamp_resolved(self):
        """SERVER_TIMESTAMP is replaced by the store clock, nested values included."""
        store = InMemoryDocumentStore(clock=fixed_clock)
        await store.set("interviews/abc", {"timestamp": SERVER_TIMESTAMP, "nested": [SERVER_TIMESTAMP]})

        snapshot = await store.get("interviews/abc")
        assert snapshot.data["timestamp"] == "2026-10-17T12:00:00Z"
        assert snapshot.data["nested"] == ["2026-10-17T12:00:00Z"]
        assert snapshot.update_time == "2026-10-17T12:00:00Z"

    @pytest.mark.asyncio
    async def test_snapshots_are_copies(self):
        """Mutating a snapshot never changes the stored document."""
        store = InMemoryDocumentStore()
        await store.set("interviews/abc", {"questions": [{"text": "q"}]})
        snapshot = await store.get("interviews/abc")
        snapshot.data["questions"].append({"text": "mutated"})
        assert len((await store.get("interviews/abc")).data["questions"]) == 1

    @pytest.mark.asyncio
    async def test_rejects_non_mapping_data(self):
        """Document data must be a mapping."""
        store = InMemoryDocumentStore()
        with pytest.raises(DocumentStoreError):
            await store.set("interviews/abc", ["not", "a", "dict"])  # type: ignore[arg-type]

    @pytest.mark.asyncio
    async def test_subscribe_receives_initial_then_changes_in_order(self):
        """Subscribers get the current snapshot first, then each write in order."""
        store = InMemoryDocumentStore()
        received: list[DocumentSnapshot] = []

        subscription = await store.subscribe("interviews/abc", received.append)
        for value in ("a", "ab", "abc"):
            await store.set("interviews/abc", {"code": value})
        await store.wait_for_deliveries()

        assert [s.exists for s in received] == [False, True, True, True]
        assert [s.get("code") for s in received[1:]] == ["a", "ab", "abc"]
        subscription.unsubscribe()

    @pytest.mark.asyncio
    async def test_unsubscribe_stops_delivery(self):
        """No snapshots arrive after unsubscribe; unsubscribe is idempotent."""
        store = InMemoryDocumentStore()
        received: list[DocumentSnapshot] = []

        subscription = await store.subscribe("interviews/abc", received.append)
        await store.wait_for_deliveries()
        subscription.unsubscribe()
        subscription.unsubscribe()
        await store.set("interviews/abc", {"code": "late"})
        await store.wait_for_deliveries()

        assert len(received) == 1
        assert subscription.active is False
        assert store.subscriber_count == 0

    @pytest.mark.asyncio
    async def test_failing_subscriber_does_not_block_others(self):
        """A callback that raises is logged; other subscribers keep receiving."""
        store = InMemoryDocumentStore()
        healthy: list[DocumentSnapshot] = []

        def broken(snapshot: DocumentSnapshot) -> None:
            raise RuntimeError("boom")

        await store.subscribe("interviews/abc", broken)
        await store.subscribe("interviews/abc", healthy.append)
        await store.set("interviews/abc", {"code": "x"})
        await store.wait_for_deliveries()

        assert healthy[-1].get("code") == "x"

    @pytest.mark.asyncio
    async def test_async_callbacks_supported(self):
        """Coroutine callbacks are awaited."""
        store = InMemoryDocumentStore()
        seen: list[str] = []

        async def on_snapshot(snapshot: DocumentSnapshot) -> None:
            await asyncio.sleep(0)
            seen.append(snapshot.get("code", ""))

        await store.subscribe("interviews/abc", on_snapshot)
        await store.set("interviews/abc", {"code": "async"})
        await store.wait_for_deliveries()
        assert seen == ["", "async"]

    @pytest.mark.asyncio
    async def test_delete_notifies_subscribers(self):
        """Deleting a document delivers a missing snapshot."""
        store = InMemoryDocumentStore()
        await store.set("templates/t1", {"name": "Backend"})
        received: list[DocumentSnapshot] = []
        await store.subscribe("templates/t1", received.append)

        await store.delete("templates/t1")
        await store.delete("templates/t1")
        await store.wait_for_deliveries()

        assert [s.exists for s in received] == [True, False]

    @pytest.mark.asyncio
    async def test_list_collection_direct_children_only(self):
        """Listing returns direct children sorted by id, not nested documents."""
        store = InMemoryDocumentStore()
        await store.set("interviews/b", {"roomId": "b"})
        await store.set("interviews/a", {"roomId": "a"})
        await store.set("interviews/a/answers/q1", {"transcript": "hi"})

        rooms = await store.list_collection("interviews")
        answers = await store.list_collection("interviews/a/answers")

        assert [s.id for s in rooms] == ["a", "b"]
        assert [s.id for s in answers] == ["q1"]

    @pytest.mark.asyncio
    async def test_close_rejects_writes(self):
        """After close, writes and subscriptions fail and channels are released."""
        store = InMemoryDocumentStore()
        await store.subscribe("interviews/abc", lambda snapshot: None)
        await store.close()

        assert store.subscriber_count == 0
        with pytest.raises(DocumentStoreError):
            await store.set("interviews/abc", {"code": "x"})
        with pytest.raises(DocumentStoreError):
            await store.subscribe("interviews/abc", lambda snapshot: None)


# =============================================================================
# Scheduled tasks
# =============================================================================


class TestScheduledTask:
    """Tests for ScheduledTask."""

    @pytest.mark.asyncio
    async def test_runs_after_delay(self):
        """The action runs once after the delay."""
        calls: list[int] = []

        async def action() -> None:
            calls.append(1)

        task = ScheduledTask(0.01, action)
        assert task.pending
        await task.wait()

        assert calls == [1]
        assert task.state is TaskState.DONE

    @pytest.mark.asyncio
    async def test_cancel_before_start(self):
        """A waiting task can be cancelled and never runs."""
        calls: list[int] = []

        async def action() -> None:
            calls.append(1)

        task = ScheduledTask(10, action)
        assert task.cancel() is True
        await task.wait()

        assert calls == []
        assert task.state is TaskState.CANCELLED
        assert task.cancel() is False

    @pytest.mark.asyncio
    async def test_failure_reraised_from_wait(self):
        """Action failures are recorded and re-raised from wait()."""

        async def action() -> None:
            raise RuntimeError("write failed")

        task = ScheduledTask(0, action)
        with pytest.raises(RuntimeError, match="write failed"):
            await task.wait()
        assert task.state is TaskState.FAILED

    def test_negative_delay_rejected(self):
        """Negative delays are invalid."""

        async def action() -> None:
            return None

        with pytest.raises(ValueError):
            ScheduledTask(-1, action)
