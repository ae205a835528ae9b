"""
Tests for speech capture and transcript assembly.

Drives SpeechCapture with the scripted recognition engine for both role
profiles: transcript accumulation, completion on stop and question change,
network retry, terminal and unsupported errors, manual answers and the
interviewer-side TranscriptListener.

Last Grunted: 10/17/2026
"""

from __future__ import annotations

import pytest
import pytest_asyncio

from interview_room.models import AnswerSource
from interview_room.pubsub import NotificationAction, NotificationPublisher
from interview_room.session import InterviewRoomManager
from interview_room.speech import (
    CaptureState,
    RecognitionErrorKind,
    ScriptedEvent,
    ScriptedRecognitionEngine,
    SpeechCapture,
    TranscriptListener,
    classify_recognition_error,
)
from interview_room.store import InMemoryDocumentStore, answer_path
from role_profiles import load_role_profile
from tests.mock_data import ANSWER_SEGMENTS, generate_answer_session, generate_room_details


ROOM_ID = "k3v9x2m1qa"


@pytest_asyncio.fixture
async def store():
    store = InMemoryDocumentStore()
    yield store
    await store.close()


@pytest_asyncio.fixture
async def publisher():
    return NotificationPublisher()


def make_capture(store, role, engine, publisher=None, **kwargs) -> SpeechCapture:
    return SpeechCapture(
        store,
        ROOM_ID,
        load_role_profile(role),
        engine,
        publisher=publisher,
        retry_delay=kwargs.pop("retry_delay", 0.01),
        **kwargs,
    )


async def stored_answer(store, question_id: str) -> dict:
    snapshot = await store.get(answer_path(ROOM_ID, question_id))
    return snapshot.data if snapshot.exists else {}


# =============================================================================
# Error classification
# =============================================================================


class TestClassifyRecognitionError:
    """Tests for classify_recognition_error."""

    @pytest.mark.parametrize(
        "code, kind",
        [
            ("not-allowed", RecognitionErrorKind.PERMISSION_DENIED),
            ("audio-capture", RecognitionErrorKind.DEVICE_BUSY),
            ("no-speech", RecognitionErrorKind.NO_SPEECH),
            ("network", RecognitionErrorKind.NETWORK),
            ("aborted", RecognitionErrorKind.ABORTED),
            ("language-not-supported", RecognitionErrorKind.UNSUPPORTED),
            (" NETWORK ", RecognitionErrorKind.NETWORK),
            ("bad-grammar", RecognitionErrorKind.UNKNOWN),
            ("", RecognitionErrorKind.UNKNOWN),
        ],
    )
    def test_codes(self, code, kind):
        """Engine codes map to their kinds; anything else is UNKNOWN."""
        assert classify_recognition_error(code) is kind


# =============================================================================
# Transcript assembly
# =============================================================================


class TestTranscriptAssembly:
    """Tests for final/interim handling and persistence."""

    @pytest.mark.asyncio
    async def test_candidate_auto_starts_and_appends_finals(self, store):
        """Finals are appended with a trailing space and persisted incomplete."""
        segments = ANSWER_SEGMENTS[0]
        events = generate_answer_session(segments) + [ScriptedEvent.interim("and then")]
        engine = ScriptedRecognitionEngine([events])
        capture = make_capture(store, "candidate", engine)

        await capture.activate_question("q1")
        await engine.wait_idle()

        expected = "".join(segment + " " for segment in segments)
        assert capture.state is CaptureState.LISTENING
        assert capture.transcript == expected
        assert capture.interim == "and then"
        assert capture.display_transcript == expected + "and then"

        answer = await stored_answer(store, "q1")
        assert answer["transcript"] == expected
        assert answer["isComplete"] is False
        assert answer["source"] == AnswerSource.SPEECH.value
        assert engine.languages == ["en-US"]
        await capture.close()

    @pytest.mark.asyncio
    async def test_interim_only_persists_nothing(self, store):
        """Interim results never reach the store."""
        engine = ScriptedRecognitionEngine([[ScriptedEvent.interim("um so")]])
        capture = make_capture(store, "candidate", engine)

        await capture.activate_question("q1")
        await engine.wait_idle()

        assert await stored_answer(store, "q1") == {}
        await capture.close()

    @pytest.mark.asyncio
    async def test_stop_completes_exactly_once(self, store):
        """Stopping marks the answer complete; a second stop does nothing."""
        engine = ScriptedRecognitionEngine([[ScriptedEvent.final("hash map plus list")]])
        capture = make_capture(store, "candidate", engine)

        await capture.activate_question("q1")
        await engine.wait_idle()
        await capture.stop()
        await capture.stop()

        answer = await stored_answer(store, "q1")
        assert answer["isComplete"] is True
        assert answer["transcript"] == "hash map plus list "
        assert capture.completions == 1
        assert capture.state is CaptureState.IDLE
        assert engine.stop_calls == 1

    @pytest.mark.asyncio
    async def test_question_change_completes_previous_answer(self, store):
        """A new question completes the old answer (even when silent) and restarts capture."""
        engine = ScriptedRecognitionEngine([[], [ScriptedEvent.final("second answer")]])
        capture = make_capture(store, "candidate", engine)

        await capture.activate_question("q1")
        await capture.activate_question("q2")
        await engine.wait_idle()

        first = await stored_answer(store, "q1")
        assert first["isComplete"] is True
        assert first["transcript"] == ""
        assert capture.question_id == "q2"
        assert capture.transcript == "second answer "
        assert engine.start_calls == 2
        await capture.close()

    @pytest.mark.asyncio
    async def test_interviewer_does_not_auto_start(self, store):
        """The interviewer profile starts capture only on request."""
        engine = ScriptedRecognitionEngine([[ScriptedEvent.final("let me rephrase")]])
        capture = make_capture(store, "interviewer", engine)

        assert await capture.start() is False
        await capture.activate_question("q1")
        assert capture.state is CaptureState.IDLE
        assert engine.start_calls == 0

        assert await capture.start() is True
        await engine.wait_idle()
        assert capture.transcript == "let me rephrase "
        await capture.close()

    @pytest.mark.asyncio
    async def test_engine_end_leaves_answer_open(self, store):
        """An engine that ends on its own returns to idle without completing."""
        engine = ScriptedRecognitionEngine([[ScriptedEvent.final("hello"), ScriptedEvent.end()]])
        capture = make_capture(store, "candidate", engine)

        await capture.activate_question("q1")
        await engine.wait_idle()

        assert capture.state is CaptureState.IDLE
        assert (await stored_answer(store, "q1"))["isComplete"] is False
        assert capture.completions == 0

        await capture.stop()
        assert (await stored_answer(store, "q1"))["isComplete"] is True


# =============================================================================
# Errors
# =============================================================================


class TestRecognitionErrors:
    """Tests for retry, terminal errors and unsupported engines."""

    @pytest.mark.asyncio
    async def test_network_error_retried_once(self, store):
        """One network failure restarts the engine; capture stays listening."""
        engine = ScriptedRecognitionEngine(
            [
                [ScriptedEvent.final("first part"), ScriptedEvent.error("network")],
                [ScriptedEvent.final("second part")],
            ]
        )
        capture = make_capture(store, "candidate", engine)

        await capture.activate_question("q1")
        await engine.wait_idle()
        assert capture.state is CaptureState.LISTENING
        assert capture.retry_pending

        await capture.wait_for_retry()
        await engine.wait_idle()

        assert engine.start_calls == 2
        assert capture.state is CaptureState.LISTENING
        assert capture.transcript == "first part second part "
        assert capture.last_error is None
        await capture.close()

    @pytest.mark.asyncio
    async def test_second_network_error_is_terminal(self, store, publisher):
        """After the retry is used up the interviewer is notified with actions."""
        engine = ScriptedRecognitionEngine(
            [[ScriptedEvent.error("network")], [ScriptedEvent.error("network")]]
        )
        capture = make_capture(store, "interviewer", engine, publisher, retry_delay=0)
        queue = await publisher.subscribe()

        await capture.activate_question("q1")
        await capture.start()
        await engine.wait_idle()
        await capture.wait_for_retry()
        await engine.wait_idle()

        assert capture.state is CaptureState.IDLE
        assert capture.last_error is RecognitionErrorKind.NETWORK
        notification = queue.get_nowait()
        assert notification.title == "Speech recognition disconnected"
        assert NotificationAction.RETRY in notification.actions
        assert notification.source == "speech"

    @pytest.mark.asyncio
    async def test_candidate_errors_are_silent(self, store, publisher):
        """The candidate's capture stops without any notification."""
        engine = ScriptedRecognitionEngine([[ScriptedEvent.error("not-allowed")]])
        capture = make_capture(store, "candidate", engine, publisher)

        await capture.activate_question("q1")
        await engine.wait_idle()

        assert capture.state is CaptureState.IDLE
        assert capture.last_error is RecognitionErrorKind.PERMISSION_DENIED
        assert await publisher.get_history() == []

    @pytest.mark.asyncio
    async def test_permission_denied_offers_text_mode(self, store, publisher):
        """Interviewer permission errors offer switching to text mode."""
        engine = ScriptedRecognitionEngine([[ScriptedEvent.error("not-allowed")]])
        capture = make_capture(store, "interviewer", engine, publisher)

        await capture.activate_question("q1")
        await capture.start()
        await engine.wait_idle()

        history = await publisher.get_history()
        assert history[-1].title == "Microphone access denied"
        assert history[-1].actions == (NotificationAction.SWITCH_TO_TEXT,)

    @pytest.mark.asyncio
    async def test_unsupported_engine_enters_error_state(self, store, publisher):
        """Unsupported recognition is detected once and never retried."""
        engine = ScriptedRecognitionEngine(supported=False)
        capture = make_capture(store, "interviewer", engine, publisher)

        await capture.activate_question("q1")
        assert await capture.start() is False
        assert capture.state is CaptureState.ERROR
        assert capture.supported is False
        assert capture.text_mode is True

        await capture.activate_question("q2")
        assert await capture.start() is False
        assert engine.start_calls == 0

        history = await publisher.get_history()
        assert [n.title for n in history] == ["Speech recognition not supported"]

    @pytest.mark.asyncio
    async def test_unsupported_mid_session(self, store):
        """An unsupported-language error moves to the error state."""
        engine = ScriptedRecognitionEngine([[ScriptedEvent.error("language-not-supported")]])
        capture = make_capture(store, "candidate", engine)

        await capture.activate_question("q1")
        await engine.wait_idle()

        assert capture.state is CaptureState.ERROR
        assert capture.last_error is RecognitionErrorKind.UNSUPPORTED


# =============================================================================
# Manual answers and text mode
# =============================================================================


class TestManualAnswers:
    """Tests for typed answers."""

    @pytest.mark.asyncio
    async def test_manual_answer_replaces_capture(self, store):
        """A typed answer aborts the engine and is stored complete."""
        engine = ScriptedRecognitionEngine([[ScriptedEvent.final("partial thought")]])
        capture = make_capture(store, "candidate", engine)

        await capture.activate_question("q1")
        await engine.wait_idle()
        await capture.submit_manual_answer("  I would use a token bucket.  ")

        answer = await stored_answer(store, "q1")
        assert answer["transcript"] == "I would use a token bucket."
        assert answer["isComplete"] is True
        assert answer["source"] == AnswerSource.MANUAL.value
        assert engine.abort_calls == 1
        assert capture.state is CaptureState.IDLE

        await capture.stop()
        assert capture.completions == 1

    @pytest.mark.asyncio
    async def test_manual_answer_validation(self, store):
        """Typed answers need an active question and some text."""
        capture = make_capture(store, "interviewer", ScriptedRecognitionEngine())

        with pytest.raises(ValueError):
            await capture.submit_manual_answer("answer")

        await capture.activate_question("q1")
        with pytest.raises(ValueError):
            await capture.submit_manual_answer("   ")

    @pytest.mark.asyncio
    async def test_text_mode_disables_auto_start(self, store):
        """After switching to text mode new questions do not start capture."""
        engine = ScriptedRecognitionEngine([[], []])
        capture = make_capture(store, "candidate", engine)

        await capture.activate_question("q1")
        await capture.switch_to_text_mode()
        await capture.activate_question("q2")

        assert capture.state is CaptureState.IDLE
        assert engine.start_calls == 1
        assert (await stored_answer(store, "q1"))["isComplete"] is True


# =============================================================================
# Room following and transcript listener
# =============================================================================


class TestRoomFollowing:
    """Tests for follow_room and TranscriptListener."""

    @pytest.mark.asyncio
    async def test_capture_follows_current_question(self, store):
        """Sending and ending questions drives the candidate capture."""
        manager = InterviewRoomManager(store, token_factory=lambda: ROOM_ID)
        await manager.create_room(**generate_room_details())
        engine = ScriptedRecognitionEngine([[ScriptedEvent.final("I'd use a deque")]])
        capture = make_capture(store, "candidate", engine)
        await capture.follow_room()

        question = await manager.send_question(ROOM_ID, "Implement a sliding window maximum.")
        await store.wait_for_deliveries()
        await engine.wait_idle()

        assert capture.question_id == question.question_id
        assert capture.transcript == "I'd use a deque "

        await manager.end_current_question(ROOM_ID)
        await store.wait_for_deliveries()

        assert capture.question_id is None
        answer = await stored_answer(store, question.question_id)
        assert answer["isComplete"] is True
        await capture.close()

    @pytest.mark.asyncio
    async def test_transcript_listener_tracks_active_answer(self, store):
        """The listener shows the active answer and resets on question change."""
        updates: list[str] = []
        listener = TranscriptListener(store, ROOM_ID, on_update=lambda view: updates.append(view.transcript))

        await listener.listen("q1")
        assert listener.loading is True
        await store.wait_for_deliveries()
        assert listener.loading is False
        assert listener.transcript == ""

        await store.set(answer_path(ROOM_ID, "q1"), {"transcript": "first ", "isComplete": False})
        await store.set(answer_path(ROOM_ID, "q1"), {"transcript": "first second ", "isComplete": True})
        await store.wait_for_deliveries()
        assert listener.transcript == "first second "
        assert listener.is_complete is True

        await listener.listen("q2")
        await store.wait_for_deliveries()
        assert listener.question_id == "q2"
        assert listener.transcript == ""
        assert updates[-1] == ""

        await listener.listen(None)
        assert listener.loading is False
        listener.close()

    @pytest.mark.asyncio
    async def test_transcript_listener_resets_when_record_removed(self, store):
        """A deleted answer record clears the shown transcript."""
        listener = TranscriptListener(store, ROOM_ID)
        await listener.listen("q1")
        await store.set(answer_path(ROOM_ID, "q1"), {"transcript": "partial answer ", "isComplete": True})
        await store.wait_for_deliveries()
        assert listener.transcript == "partial answer "

        await store.delete(answer_path(ROOM_ID, "q1"))
        await store.wait_for_deliveries()

        assert listener.transcript == ""
        assert listener.is_complete is False
        listener.close()
