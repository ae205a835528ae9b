"""
Interview Room Manager.

Owns the room lifecycle on top of a document store: creation with a short
opaque token, the current question pointer and question history, consent,
the dashboard listing, the one-time final summary, templates and candidate
exit feedback.

Concurrency:
    The manager runs on one event loop. The final summary check-then-write
    is serialized by an asyncio lock, which covers a single service process.

Last Grunted: 10/14/2026
"""

import asyncio
import logging
import secrets
import string
from typing import Any, Callable, Optional, Union

from pydantic import ValidationError

from .models import (
    AnswerRecord,
    CandidateFeedback,
    ConsentRecord,
    Difficulty,
    FinalSummaryRecord,
    HiringDecision,
    InterviewMaterial,
    InterviewRoomDocument,
    InterviewTemplate,
    ParticipantRole,
    QuestionRecord,
    QuestionType,
    RoomStatus,
)
from .store import (
    ROOMS_COLLECTION,
    SERVER_TIMESTAMP,
    TEMPLATES_COLLECTION,
    DocumentStore,
    answers_collection,
    consent_path,
    feedback_path,
    room_path,
    summary_path,
    template_path,
    utc_timestamp,
)


__all__ = [
    "InterviewRoomManager",
    "RoomClosedError",
    "RoomNotFoundError",
    "SummaryAlreadySubmittedError",
    "TemplateNotFoundError",
    "generate_room_id",
]


logger = logging.getLogger(__name__)


ROOM_TOKEN_LENGTH = 10
_TOKEN_ALPHABET = string.ascii_lowercase + string.digits


def generate_room_id(length: int = ROOM_TOKEN_LENGTH) -> str:
    """Short opaque room token, safe in URLs and document paths."""
    return "".join(secrets.choice(_TOKEN_ALPHABET) for _ in range(length))


class RoomNotFoundError(LookupError):
    """Raised when a room token does not name a room."""

    def __init__(self, room_id: str) -> None:
        self.room_id = room_id
        super().__init__(f"Interview room '{room_id}' not found.")


class RoomClosedError(Exception):
    """Raised when a completed room is asked to change."""

    def __init__(self, room_id: str) -> None:
        self.room_id = room_id
        super().__init__(f"Interview room '{room_id}' is already completed.")


class SummaryAlreadySubmittedError(Exception):
    """Raised on a second final summary submission."""

    def __init__(self, room_id: str) -> None:
        self.room_id = room_id
        super().__init__(f"Final summary for room '{room_id}' was already submitted.")


class TemplateNotFoundError(LookupError):
    def __init__(self, template_id: str) -> None:
        self.template_id = template_id
        super().__init__(f"Interview template '{template_id}' not found.")


class InterviewRoomManager:
    """
    Room operations over a document store.

    Example:
        >>> manager = InterviewRoomManager(InMemoryDocumentStore())
        >>> room = await manager.create_room(candidate_name="Sarah Chen", job_title="Backend Engineer")
        >>> await manager.send_question(room.room_id, "Implement an LRU cache.")
    """

    def __init__(
        self,
        store: DocumentStore,
        token_factory: Callable[[], str] = generate_room_id,
    ) -> None:
        self.store = store
        self._token_factory = token_factory
        self._summary_lock = asyncio.Lock()

    # -------------------------------------------------------------------------
    # Rooms
    # -------------------------------------------------------------------------

    async def create_room(self, **details: Any) -> InterviewRoomDocument:
        """
        Create a room with a fresh token.

        Args:
            **details: Optional room fields by name or stored alias
                (candidate_name, interviewer_name, job_title, tech_stack...).

        Returns:
            The stored room document.
        """
        for _ in range(5):
            room_id = self._token_factory()
            existing = await self.store.get(room_path(room_id))
            if not existing.exists:
                break
        else:
            raise RuntimeError("Could not allocate a unique room token.")

        room = InterviewRoomDocument.model_validate({**details, "roomId": room_id})
        document = room.to_document()
        document["createdAt"] = SERVER_TIMESTAMP
        document["timestamp"] = SERVER_TIMESTAMP
        await self.store.set(room_path(room_id), document, merge=False)
        logger.info("Interview room created: %s (candidate=%s)", room_id, room.candidate_name)
        return await self.get_room(room_id)

    async def get_room(self, room_id: str) -> InterviewRoomDocument:
        snapshot = await self.store.get(room_path(room_id))
        if not snapshot.exists:
            raise RoomNotFoundError(room_id)
        return InterviewRoomDocument.model_validate(snapshot.data)

    async def room_exists(self, room_id: str) -> bool:
        return (await self.store.get(room_path(room_id))).exists

    async def list_rooms(self) -> list[InterviewRoomDocument]:
        """All rooms for the dashboard, newest first."""
        rooms = []
        for snapshot in await self.store.list_collection(ROOMS_COLLECTION):
            try:
                rooms.append(InterviewRoomDocument.model_validate(snapshot.data))
            except ValidationError as e:
                logger.warning("Skipping malformed room %s: %s", snapshot.id, e)
        rooms.sort(key=lambda room: room.created_at or "", reverse=True)
        return rooms

    # -------------------------------------------------------------------------
    # Questions
    # -------------------------------------------------------------------------

    async def send_question(
        self,
        room_id: str,
        text: str,
        question_type: Optional[Union[QuestionType, str]] = None,
        difficulty: Optional[Union[Difficulty, str]] = None,
    ) -> QuestionRecord:
        """
        Make a new question the room's current question.

        The previous active question is marked completed in the history.

        Raises:
            RoomNotFoundError: Unknown room.
            RoomClosedError: Room already completed.
            ValueError: Empty question text.
        """
        if not text or not text.strip():
            raise ValueError("Question text is empty.")
        room = await self.get_room(room_id)
        if room.status is RoomStatus.COMPLETED:
            raise RoomClosedError(room_id)

        question = QuestionRecord(
            question_id=f"q_{len(room.questions) + 1}_{secrets.token_hex(3)}",
            text=text.strip(),
            question_type=question_type or room.default_question_type,
            difficulty=difficulty or room.default_difficulty,
            asked_at=utc_timestamp(),
        )
        history = [
            previous.model_copy(update={"status": "completed"}) for previous in room.questions
        ]
        history.append(question)

        await self.store.set(
            room_path(room_id),
            {
                "currentQuestionId": question.question_id,
                "currentQuestion": question.text,
                "questionType": question.question_type.value if question.question_type else None,
                "difficulty": question.difficulty.value if question.difficulty else None,
                "questions": [item.to_document() for item in history],
                "timestamp": SERVER_TIMESTAMP,
            },
        )
        logger.info("Question %s sent in room %s", question.question_id, room_id)
        return question

    async def end_current_question(self, room_id: str) -> Optional[str]:
        """Clear the current question pointer. Returns the ended question id."""
        room = await self.get_room(room_id)
        if room.current_question_id is None:
            return None
        history = [
            previous.model_copy(update={"status": "completed"}) for previous in room.questions
        ]
        await self.store.set(
            room_path(room_id),
            {
                "currentQuestionId": None,
                "currentQuestion": None,
                "questions": [item.to_document() for item in history],
                "timestamp": SERVER_TIMESTAMP,
            },
        )
        return room.current_question_id

    # -------------------------------------------------------------------------
    # Consent
    # -------------------------------------------------------------------------

    async def record_consent(
        self, room_id: str, consent_given: bool, timestamp: Optional[str] = None
    ) -> ConsentRecord:
        await self.get_room(room_id)
        record = ConsentRecord(
            room_id=room_id,
            consent_given=consent_given,
            timestamp=timestamp,
            recorded_at=utc_timestamp(),
        )
        await self.store.set(consent_path(room_id), record.to_document(), merge=False)
        await self.store.set(
            room_path(room_id),
            {"consentGiven": consent_given, "consentAt": record.recorded_at},
        )
        logger.info("Consent %s for room %s", "given" if consent_given else "declined", room_id)
        return record

    async def get_consent(self, room_id: str) -> Optional[ConsentRecord]:
        await self.get_room(room_id)
        snapshot = await self.store.get(consent_path(room_id))
        if not snapshot.exists:
            return None
        return ConsentRecord.model_validate(snapshot.data)

    # -------------------------------------------------------------------------
    # Answers, summary and material
    # -------------------------------------------------------------------------

    async def get_answers(self, room_id: str) -> dict[str, AnswerRecord]:
        answers: dict[str, AnswerRecord] = {}
        for snapshot in await self.store.list_collection(answers_collection(room_id)):
            data = {"questionId": snapshot.id, **snapshot.data}
            answers[snapshot.id] = AnswerRecord.model_validate(data)
        return answers

    async def get_summary(self, room_id: str) -> Optional[FinalSummaryRecord]:
        snapshot = await self.store.get(summary_path(room_id))
        if not snapshot.exists:
            return None
        return FinalSummaryRecord.model_validate(snapshot.data)

    async def collect_interview_material(self, room_id: str) -> InterviewMaterial:
        """Room, answers and final summary in one object."""
        room = await self.get_room(room_id)
        return InterviewMaterial(
            room=room,
            answers=await self.get_answers(room_id),
            summary=await self.get_summary(room_id),
        )

    async def submit_final_summary(
        self,
        room_id: str,
        *,
        final_summary: str,
        interviewer_notes: str,
        final_decision: Union[HiringDecision, str],
        completed_by: ParticipantRole = ParticipantRole.INTERVIEWER,
    ) -> FinalSummaryRecord:
        """
        Write the final summary record once and mark the room completed.

        Raises:
            RoomNotFoundError: Unknown room.
            SummaryAlreadySubmittedError: A record already exists.
            ValueError: Decision outside hire/maybe/no_hire.
        """
        decision = HiringDecision(final_decision)
        async with self._summary_lock:
            await self.get_room(room_id)
            if await self.get_summary(room_id) is not None:
                raise SummaryAlreadySubmittedError(room_id)

            record = FinalSummaryRecord(
                final_summary=final_summary,
                interviewer_notes=interviewer_notes,
                final_decision=decision,
                completed_at=utc_timestamp(),
                completed_by=completed_by,
            )
            await self.store.set(summary_path(room_id), record.to_document(), merge=False)
            await self.store.set(
                room_path(room_id),
                {"status": RoomStatus.COMPLETED.value, "timestamp": SERVER_TIMESTAMP},
            )

        logger.info("Final summary stored for room %s: %s", room_id, decision.value)
        return record

    # -------------------------------------------------------------------------
    # Templates
    # -------------------------------------------------------------------------

    async def clone_to_template(
        self, interview_id: str, name: str, description: str = ""
    ) -> InterviewTemplate:
        """Save a room's configuration as a reusable template."""
        room = await self.get_room(interview_id)
        question_type = room.default_question_type or room.question_type
        difficulty = room.default_difficulty or room.difficulty
        template = InterviewTemplate.model_validate(
            {
                "name": name,
                "description": description,
                "jobTitle": room.job_title or "Software Engineer",
                "seniorityLevel": room.seniority_level,
                "roleType": room.role_type,
                "techStack": room.tech_stack,
                "department": room.department,
                "defaultQuestionType": question_type,
                "defaultDifficulty": difficulty,
            }
        )
        return await self.create_template(template)

    async def create_template(self, template: InterviewTemplate) -> InterviewTemplate:
        template_id = template.template_id or f"tpl_{secrets.token_hex(6)}"
        stored = template.model_copy(
            update={"template_id": template_id, "created_at": utc_timestamp()}
        )
        await self.store.set(template_path(template_id), stored.to_document(), merge=False)
        logger.info("Template %s saved (%s)", template_id, stored.name)
        return stored

    async def record_template_use(self, template_id: str) -> InterviewTemplate:
        """Increment ``usageCount`` in place; other fields keep their values."""
        path = template_path(template_id)
        snapshot = await self.store.get(path)
        if not snapshot.exists:
            raise TemplateNotFoundError(template_id)
        template = InterviewTemplate.model_validate(snapshot.data)
        usage_count = template.usage_count + 1
        await self.store.set(path, {"usageCount": usage_count})
        return template.model_copy(update={"usage_count": usage_count})

    async def list_templates(self) -> list[InterviewTemplate]:
        snapshots = await self.store.list_collection(TEMPLATES_COLLECTION)
        templates = [InterviewTemplate.model_validate(s.data) for s in snapshots]
        templates.sort(key=lambda template: template.created_at or "", reverse=True)
        return templates

    async def delete_template(self, template_id: str) -> None:
        path = template_path(template_id)
        if not (await self.store.get(path)).exists:
            raise TemplateNotFoundError(template_id)
        await self.store.delete(path)
        logger.info("Template %s deleted", template_id)

    # -------------------------------------------------------------------------
    # Candidate exit feedback
    # -------------------------------------------------------------------------

    async def submit_candidate_feedback(
        self, room_id: str, feedback: CandidateFeedback
    ) -> CandidateFeedback:
        await self.get_room(room_id)
        stored = feedback.model_copy(update={"submitted_at": utc_timestamp()})
        await self.store.set(feedback_path(room_id), stored.to_document(), merge=False)
        logger.info("Candidate feedback stored for room %s", room_id)
        return stored

    async def get_candidate_feedback(self, room_id: str) -> Optional[CandidateFeedback]:
        snapshot = await self.store.get(feedback_path(room_id))
        if not snapshot.exists:
            return None
        return CandidateFeedback.model_validate(snapshot.data)
