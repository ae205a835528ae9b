"""
Speech capture and transcript assembly.

``SpeechCapture`` drives a pluggable recognition engine for the active
question and persists the answer transcript to
``interviews/{roomId}/answers/{questionId}``.

State machine:

    idle ──start()/question activated (auto-start roles)──▶ listening
    listening ──stop()/question ended/terminal error──▶ idle
    any ──recognition unsupported──▶ error   (detected once, never retried)

Transcript rules:
    - interim segments are kept locally and never persisted
    - each final segment is appended as ``segment + " "`` and persisted
      with ``isComplete=False``
    - ending a capture (explicit stop or question change) marks the record
      complete exactly once, even when nothing was said

Errors:
    - network: one automatic restart after a fixed delay; the capture stays
      ``listening`` through the retry window. A second failure is terminal.
    - unsupported: ``error`` state, manual entry only
    - everything else: terminal, back to ``idle``

How errors reach the user is decided by the role profile: the interviewer
gets actionable notifications, the candidate's capture stops silently.

Last Grunted: 10/14/2026
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Literal, Optional, Protocol, Union

from interview_room.models import AnswerSource
from interview_room.pubsub import NotificationPublisher
from interview_room.scheduling import ScheduledTask
from interview_room.store import (
    SERVER_TIMESTAMP,
    DocumentSnapshot,
    DocumentStore,
    Subscription,
    answer_path,
    room_path,
)

if TYPE_CHECKING:
    from role_profiles.base import RoleProfile

logger = logging.getLogger(__name__)

__all__ = [
    "CaptureState",
    "RecognitionEngine",
    "RecognitionErrorKind",
    "RecognitionListener",
    "RecognitionSegment",
    "RecognitionUnavailableError",
    "ScriptedEvent",
    "ScriptedRecognitionEngine",
    "SpeechCapture",
    "TranscriptListener",
    "classify_recognition_error",
]


DEFAULT_LANGUAGE = "en-US"
DEFAULT_RETRY_DELAY_SECONDS = 1.0
DEFAULT_MAX_NETWORK_RETRIES = 1


class CaptureState(str, Enum):
    IDLE = "idle"
    LISTENING = "listening"
    ERROR = "error"


class RecognitionErrorKind(str, Enum):
    """Classified recognition failures."""

    PERMISSION_DENIED = "permission_denied"
    DEVICE_BUSY = "device_busy"
    NO_SPEECH = "no_speech"
    NETWORK = "network"
    ABORTED = "aborted"
    UNSUPPORTED = "unsupported"
    UNKNOWN = "unknown"


_ERROR_CODES: dict[str, RecognitionErrorKind] = {
    "not-allowed": RecognitionErrorKind.PERMISSION_DENIED,
    "service-not-allowed": RecognitionErrorKind.PERMISSION_DENIED,
    "audio-capture": RecognitionErrorKind.DEVICE_BUSY,
    "no-speech": RecognitionErrorKind.NO_SPEECH,
    "network": RecognitionErrorKind.NETWORK,
    "aborted": RecognitionErrorKind.ABORTED,
    "language-not-supported": RecognitionErrorKind.UNSUPPORTED,
    "unsupported": RecognitionErrorKind.UNSUPPORTED,
}


def classify_recognition_error(code: str) -> RecognitionErrorKind:
    """Map an engine error code to its kind; unrecognized codes are UNKNOWN."""
    return _ERROR_CODES.get((code or "").strip().lower(), RecognitionErrorKind.UNKNOWN)


class RecognitionUnavailableError(RuntimeError):
    """Raised by an engine that cannot recognize speech in this environment."""


@dataclass(frozen=True)
class RecognitionSegment:
    text: str
    is_final: bool
    confidence: Optional[float] = None


class RecognitionListener(Protocol):
    async def on_result(self, segment: RecognitionSegment) -> None: ...

    async def on_error(self, code: str) -> None: ...

    async def on_end(self) -> None: ...


class RecognitionEngine(Protocol):
    """
    Acoustic recognition backend.

    ``start`` begins one recognition session delivering events to the
    listener. ``stop`` ends it gracefully, ``abort`` immediately; both end
    with ``on_end``.
    """

    @property
    def supported(self) -> bool: ...

    async def start(self, listener: RecognitionListener, language: str) -> None: ...

    async def stop(self) -> None: ...

    async def abort(self) -> None: ...


# =============================================================================
# Scripted engine
# =============================================================================


@dataclass(frozen=True)
class ScriptedEvent:
    """One step of a scripted recognition session."""

    kind: Literal["interim", "final", "error", "end"]
    value: str = ""

    @classmethod
    def interim(cls, text: str) -> "ScriptedEvent":
        return cls("interim", text)

    @classmethod
    def final(cls, text: str) -> "ScriptedEvent":
        return cls("final", text)

    @classmethod
    def error(cls, code: str) -> "ScriptedEvent":
        return cls("error", code)

    @classmethod
    def end(cls) -> "ScriptedEvent":
        return cls("end")


class ScriptedRecognitionEngine:
    """
    Plays back scripted recognition sessions.

    Each ``start`` consumes the next session script. A session that runs
    out of events stays open until stopped, like a live microphone in a
    silent room. An ``error`` event is followed by ``on_end``.

    Args:
        sessions: One event sequence per expected ``start`` call.
        supported: False makes ``start`` raise RecognitionUnavailableError.
        event_delay: Seconds between events.
    """

    def __init__(
        self,
        sessions: Sequence[Sequence[ScriptedEvent]] = (),
        *,
        supported: bool = True,
        event_delay: float = 0.0,
    ) -> None:
        self._sessions: deque[list[ScriptedEvent]] = deque(list(s) for s in sessions)
        self._supported = supported
        self.event_delay = event_delay
        self._task: Optional[asyncio.Task[None]] = None
        self._listener: Optional[RecognitionListener] = None
        self.start_calls = 0
        self.stop_calls = 0
        self.abort_calls = 0
        self.languages: list[str] = []

    @property
    def supported(self) -> bool:
        return self._supported

    @property
    def running(self) -> bool:
        return self._listener is not None

    def queue_session(self, events: Sequence[ScriptedEvent]) -> None:
        self._sessions.append(list(events))

    async def start(self, listener: RecognitionListener, language: str) -> None:
        if not self._supported:
            raise RecognitionUnavailableError("Speech recognition is not supported.")
        await self._halt(notify=False)
        self.start_calls += 1
        self.languages.append(language)
        events = self._sessions.popleft() if self._sessions else []
        self._listener = listener
        self._task = asyncio.create_task(self._play(listener, events), name="scripted-recognition")

    async def stop(self) -> None:
        self.stop_calls += 1
        await self._halt(notify=True)

    async def abort(self) -> None:
        self.abort_calls += 1
        await self._halt(notify=True)

    async def wait_idle(self) -> None:
        """Wait until the current script has been played out."""
        if self._task is not None and not self._task.done():
            await asyncio.wait({self._task})

    async def _halt(self, notify: bool) -> None:
        task, listener = self._task, self._listener
        self._task, self._listener = None, None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
            await asyncio.wait({task})
        if notify and listener is not None:
            await listener.on_end()

    async def _play(self, listener: RecognitionListener, events: list[ScriptedEvent]) -> None:
        for event in events:
            await asyncio.sleep(self.event_delay)
            if event.kind == "interim":
                await listener.on_result(RecognitionSegment(event.value, is_final=False))
            elif event.kind == "final":
                await listener.on_result(RecognitionSegment(event.value, is_final=True))
            elif event.kind == "error":
                await listener.on_error(event.value)
                await self._finish(listener)
                return
            elif event.kind == "end":
                await self._finish(listener)
                return

    async def _finish(self, listener: RecognitionListener) -> None:
        if self._listener is listener:
            self._listener = None
            self._task = None
        await listener.on_end()


# =============================================================================
# Capture
# =============================================================================


class _SessionListener:
    """Routes engine events to the capture, tagged with the session generation."""

    def __init__(self, capture: "SpeechCapture", generation: int) -> None:
        self._capture = capture
        self._generation = generation

    async def on_result(self, segment: RecognitionSegment) -> None:
        if self._capture._is_current(self._generation):
            await self._capture._handle_result(segment)

    async def on_error(self, code: str) -> None:
        if self._capture._is_current(self._generation):
            await self._capture._handle_error(code)

    async def on_end(self) -> None:
        if self._capture._is_current(self._generation):
            await self._capture._handle_end()


class SpeechCapture:
    """
    Speech-to-text capture for one participant.

    Args:
        store: Document store holding the room.
        room_id: Room token.
        profile: Role profile of the local participant.
        engine: Recognition backend.
        publisher: Receives user-facing error notifications.
        language: Recognition language tag.
        retry_delay: Seconds before the automatic network retry.
        max_network_retries: Automatic restarts allowed per capture.
    """

    def __init__(
        self,
        store: DocumentStore,
        room_id: str,
        profile: "RoleProfile",
        engine: RecognitionEngine,
        *,
        publisher: Optional[NotificationPublisher] = None,
        language: str = DEFAULT_LANGUAGE,
        retry_delay: float = DEFAULT_RETRY_DELAY_SECONDS,
        max_network_retries: int = DEFAULT_MAX_NETWORK_RETRIES,
    ) -> None:
        self.store = store
        self.room_id = room_id
        self.profile = profile
        self.engine = engine
        self._publisher = publisher
        self.language = language
        self.retry_delay = retry_delay
        self.max_network_retries = max_network_retries

        self.state = CaptureState.IDLE
        self.question_id: Optional[str] = None
        self.transcript = ""
        self.interim = ""
        self.last_error: Optional[RecognitionErrorKind] = None
        self.text_mode = False

        self._generation = 0
        self._retries_used = 0
        self._retry: Optional[ScheduledTask] = None
        self._completion_pending = False
        self._room_subscription: Optional[Subscription] = None
        self._closed = False
        self.completions = 0
        self.persist_failures = 0

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def is_listening(self) -> bool:
        return self.state is CaptureState.LISTENING

    @property
    def supported(self) -> bool:
        return self.state is not CaptureState.ERROR

    @property
    def retry_pending(self) -> bool:
        return self._retry is not None and self._retry.pending

    @property
    def display_transcript(self) -> str:
        """Final text followed by the current interim segment."""
        return f"{self.transcript}{self.interim}"

    def _is_current(self, generation: int) -> bool:
        return not self._closed and generation == self._generation

    # -------------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------------

    async def start(self) -> bool:
        """
        Begin capturing for the active question.

        Returns:
            True if capture is listening afterwards.
        """
        if self._closed or self.state is CaptureState.ERROR:
            return False
        if self.question_id is None:
            logger.info("Capture not started in room %s: no active question", self.room_id)
            return False
        if self.state is CaptureState.LISTENING:
            return True
        if not self.engine.supported:
            await self._mark_unsupported()
            return False

        self.transcript = ""
        self.interim = ""
        self.last_error = None
        self._retries_used = 0
        self._completion_pending = True
        await self._start_engine()
        return self.state is CaptureState.LISTENING

    async def stop(self) -> None:
        """End the capture and mark the answer complete."""
        self._cancel_retry()
        if self.state is CaptureState.LISTENING:
            self._generation += 1
            self.state = CaptureState.IDLE
            self.interim = ""
            await self.engine.stop()
        await self._mark_complete()

    async def activate_question(self, question_id: Optional[str]) -> None:
        """
        Make ``question_id`` the active question.

        A capture running for the previous question is stopped and that
        answer marked complete first. Roles with auto-start begin capturing
        for the new question.
        """
        if question_id == self.question_id:
            return
        if self.state is CaptureState.LISTENING or self._completion_pending:
            await self.stop()

        self.question_id = question_id
        self.transcript = ""
        self.interim = ""
        if self.state is not CaptureState.ERROR:
            self.last_error = None

        if (
            question_id is not None
            and self.profile.capabilities.auto_start_capture
            and not self.text_mode
        ):
            await self.start()

    async def submit_manual_answer(self, text: str) -> None:
        """
        Persist a typed answer for the active question.

        Available to both roles and in every state. Replaces whatever was
        captured so far and completes the answer.
        """
        if self.question_id is None:
            raise ValueError("No active question to answer.")
        answer = (text or "").strip()
        if not answer:
            raise ValueError("Answer text is empty.")

        self._cancel_retry()
        if self.state is CaptureState.LISTENING:
            self._generation += 1
            self.state = CaptureState.IDLE
            self.interim = ""
            await self.engine.abort()

        self.transcript = answer
        self._completion_pending = False
        await self._persist(is_complete=True, source=AnswerSource.MANUAL)
        self.completions += 1

    async def switch_to_text_mode(self) -> None:
        """Stop speech capture for good; answers are typed from now on."""
        self.text_mode = True
        if self.state is CaptureState.LISTENING:
            await self.stop()

    async def follow_room(self) -> None:
        """Track the room's current question pointer."""
        if self._room_subscription is None:
            self._room_subscription = await self.store.subscribe(
                room_path(self.room_id), self._on_room_snapshot
            )

    async def close(self) -> None:
        """Teardown: release the room subscription and end any capture."""
        if self._room_subscription is not None:
            self._room_subscription.unsubscribe()
            self._room_subscription = None
        self._cancel_retry()
        if self.state is CaptureState.LISTENING:
            self._generation += 1
            self.state = CaptureState.IDLE
            await self.engine.abort()
        self._closed = True

    async def wait_for_retry(self) -> None:
        if self._retry is not None:
            await self._retry.wait()

    # -------------------------------------------------------------------------
    # Engine events
    # -------------------------------------------------------------------------

    async def _start_engine(self) -> None:
        self._generation += 1
        generation = self._generation
        self.state = CaptureState.LISTENING
        self.interim = ""
        try:
            await self.engine.start(_SessionListener(self, generation), self.language)
        except RecognitionUnavailableError:
            await self._mark_unsupported()
        except Exception as exc:
            logger.warning("Recognition start failed in room %s: %s", self.room_id, exc)
            if generation == self._generation:
                await self._handle_error(getattr(exc, "code", "unknown"))

    async def _handle_result(self, segment: RecognitionSegment) -> None:
        if self.state is not CaptureState.LISTENING:
            return
        if not segment.is_final:
            self.interim = segment.text
            return
        self.interim = ""
        self.transcript += segment.text + " "
        await self._persist(is_complete=False, source=AnswerSource.SPEECH)

    async def _handle_error(self, code: str) -> None:
        kind = classify_recognition_error(code)
        # the engine session that failed is finished either way
        self._generation += 1
        logger.info("Recognition error in room %s: %s (%s)", self.room_id, code, kind.value)

        if kind is RecognitionErrorKind.UNSUPPORTED:
            await self._mark_unsupported()
            return

        if kind is RecognitionErrorKind.NETWORK and self._retries_used < self.max_network_retries:
            self._retries_used += 1
            self.interim = ""
            self._retry = ScheduledTask(
                self.retry_delay,
                self._retry_start,
                name=f"speech-retry:{self.room_id}",
            )
            return

        self.state = CaptureState.IDLE
        self.interim = ""
        self.last_error = kind
        await self._notify(kind)

    async def _handle_end(self) -> None:
        # engine ended on its own (e.g. silence timeout); the answer stays open
        if self.state is CaptureState.LISTENING and not self.retry_pending:
            self.state = CaptureState.IDLE
            self.interim = ""

    async def _retry_start(self) -> None:
        if self._closed or self.state is not CaptureState.LISTENING:
            return
        logger.info("Retrying speech recognition in room %s", self.room_id)
        await self._start_engine()

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _cancel_retry(self) -> None:
        if self._retry is not None:
            self._retry.cancel()
            self._retry = None

    async def _mark_unsupported(self) -> None:
        self._cancel_retry()
        self.state = CaptureState.ERROR
        self.last_error = RecognitionErrorKind.UNSUPPORTED
        self.text_mode = True
        self.interim = ""
        await self._notify(RecognitionErrorKind.UNSUPPORTED)

    async def _mark_complete(self) -> None:
        if not self._completion_pending or self.question_id is None:
            return
        self._completion_pending = False
        await self._persist(is_complete=True, source=AnswerSource.SPEECH, allow_empty=True)
        self.completions += 1

    async def _persist(
        self, *, is_complete: bool, source: AnswerSource, allow_empty: bool = False
    ) -> None:
        if self.question_id is None:
            return
        if not self.transcript.strip() and not allow_empty:
            return
        payload = {
            "questionId": self.question_id,
            "transcript": self.transcript,
            "isComplete": is_complete,
            "source": source.value,
            "timestamp": SERVER_TIMESTAMP,
        }
        try:
            await self.store.set(answer_path(self.room_id, self.question_id), payload, merge=True)
        except Exception as exc:
            self.persist_failures += 1
            logger.warning(
                "Failed to save transcript for %s/%s: %s",
                self.room_id,
                self.question_id,
                exc,
                exc_info=True,
            )

    async def _notify(self, kind: RecognitionErrorKind) -> None:
        if self._publisher is None or not self.profile.capabilities.surfaces_speech_errors:
            return
        notice = self.profile.describe_speech_error(kind)
        if notice is None:
            return
        await self._publisher.publish_error(
            notice.title, notice.message, source="speech", actions=notice.actions
        )

    async def _on_room_snapshot(self, snapshot: DocumentSnapshot) -> None:
        if self._closed or not snapshot.exists:
            return
        await self.activate_question(snapshot.get("currentQuestionId"))


# =============================================================================
# Interviewer-side transcript view
# =============================================================================


class TranscriptListener:
    """
    Read model of one question's answer record.

    Call ``listen(question_id)`` whenever the active question changes; the
    previous subscription is released first.
    """

    def __init__(
        self,
        store: DocumentStore,
        room_id: str,
        on_update: Optional[Callable[["TranscriptListener"], Union[Awaitable[None], None]]] = None,
    ) -> None:
        self.store = store
        self.room_id = room_id
        self._on_update = on_update
        self._subscription: Optional[Subscription] = None
        self.question_id: Optional[str] = None
        self.transcript = ""
        self.is_complete = False
        self.loading = False

    async def listen(self, question_id: Optional[str]) -> None:
        self.close()
        self.question_id = question_id
        self.transcript = ""
        self.is_complete = False
        if question_id is None:
            self.loading = False
            return
        self.loading = True
        self._subscription = await self.store.subscribe(
            answer_path(self.room_id, question_id), self._on_snapshot
        )

    def close(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None

    async def _on_snapshot(self, snapshot: DocumentSnapshot) -> None:
        if snapshot.id != self.question_id:
            return
        self.loading = False
        if snapshot.exists:
            self.transcript = snapshot.get("transcript", "") or ""
            self.is_complete = bool(snapshot.get("isComplete", False))
        else:
            self.transcript = ""
            self.is_complete = False
        if self._on_update is not None:
            result = self._on_update(self)
            if asyncio.iscoroutine(result):
                await result
