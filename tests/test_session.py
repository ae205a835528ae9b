"""
Tests for InterviewRoomManager.

Covers room creation, the question pointer and history, consent, the
one-time final summary, templates and candidate exit feedback.

Last Grunted: 10/17/2026
"""

from __future__ import annotations

import asyncio
import itertools

import pytest
import pytest_asyncio

from interview_room.models import (
    AnswerSource,
    HiringDecision,
    InterviewTemplate,
    QuestionType,
    RoomStatus,
)
from interview_room.session import (
    InterviewRoomManager,
    RoomClosedError,
    RoomNotFoundError,
    SummaryAlreadySubmittedError,
    TemplateNotFoundError,
    generate_room_id,
)
from interview_room.store import InMemoryDocumentStore, answer_path
from tests.mock_data import generate_candidate_feedback, generate_room_details


@pytest_asyncio.fixture
async def store():
    store = InMemoryDocumentStore()
    yield store
    await store.close()


@pytest_asyncio.fixture
async def manager(store):
    return InterviewRoomManager(store)


# =============================================================================
# Rooms
# =============================================================================


class TestRooms:
    """Tests for room creation and lookup."""

    def test_generate_room_id(self):
        """Tokens are short, lowercase alphanumeric and distinct."""
        tokens = {generate_room_id() for _ in range(50)}
        assert len(tokens) == 50
        assert all(len(token) == 10 and token.isalnum() and token == token.lower() for token in tokens)

    @pytest.mark.asyncio
    async def test_create_room(self, manager):
        """Created rooms are active, timestamped and normalize the tech stack."""
        room = await manager.create_room(**generate_room_details(candidateName="Sarah Chen"))

        assert room.candidate_name == "Sarah Chen"
        assert room.status is RoomStatus.ACTIVE
        assert room.tech_stack == ["Python", "FastAPI", "PostgreSQL"]
        assert room.code == ""
        assert room.created_at is not None
        assert await manager.room_exists(room.room_id)

    @pytest.mark.asyncio
    async def test_create_room_retries_token_collision(self, store):
        """A token that is already taken is replaced by a fresh one."""
        tokens = itertools.chain(["taken00001", "taken00001"], ["fresh00002"])
        manager = InterviewRoomManager(store, token_factory=lambda: next(tokens))

        first = await manager.create_room(candidateName="A")
        second = await manager.create_room(candidateName="B")

        assert first.room_id == "taken00001"
        assert second.room_id == "fresh00002"

    @pytest.mark.asyncio
    async def test_get_missing_room(self, manager):
        """Unknown tokens raise RoomNotFoundError."""
        with pytest.raises(RoomNotFoundError):
            await manager.get_room("missing123")
        assert await manager.room_exists("missing123") is False

    @pytest.mark.asyncio
    async def test_list_rooms_newest_first(self):
        """The dashboard lists rooms by creation time, newest first."""
        clock = iter(f"2026-10-17T10:00:0{i}Z" for i in range(10))
        timed = InMemoryDocumentStore(clock=lambda: next(clock))
        manager = InterviewRoomManager(timed)

        older = await manager.create_room(candidateName="Older")
        newer = await manager.create_room(candidateName="Newer")

        assert [room.room_id for room in await manager.list_rooms()] == [newer.room_id, older.room_id]
        await timed.close()


# =============================================================================
# Questions
# =============================================================================


class TestQuestions:
    """Tests for the current question pointer."""

    @pytest.mark.asyncio
    async def test_send_question_sets_pointer_and_history(self, manager):
        """Each new question becomes current; the previous one is completed."""
        room = await manager.create_room(**generate_room_details())

        first = await manager.send_question(room.room_id, "Implement an LRU cache.")
        second = await manager.send_question(
            room.room_id, "Design a rate limiter.", question_type="System Design", difficulty="Hard"
        )

        stored = await manager.get_room(room.room_id)
        assert stored.current_question_id == second.question_id
        assert stored.current_question == "Design a rate limiter."
        assert stored.question_type is QuestionType.SYSTEM_DESIGN
        assert [q.status for q in stored.questions] == ["completed", "active"]
        assert stored.find_question(first.question_id).text == "Implement an LRU cache."
        assert first.question_id != second.question_id

    @pytest.mark.asyncio
    async def test_room_defaults_apply(self, manager):
        """Questions without type or difficulty use the room defaults."""
        room = await manager.create_room(**generate_room_details(defaultDifficulty="Easy"))
        question = await manager.send_question(room.room_id, "Reverse a linked list.")

        assert question.question_type is QuestionType.CODING
        assert question.difficulty.value == "Easy"

    @pytest.mark.asyncio
    async def test_empty_question_rejected(self, manager):
        """Blank question text is a ValueError."""
        room = await manager.create_room(**generate_room_details())
        with pytest.raises(ValueError):
            await manager.send_question(room.room_id, "   ")

    @pytest.mark.asyncio
    async def test_end_current_question(self, manager):
        """Ending clears the pointer and completes the history."""
        room = await manager.create_room(**generate_room_details())
        question = await manager.send_question(room.room_id, "Explain CAP theorem.")

        assert await manager.end_current_question(room.room_id) == question.question_id
        assert await manager.end_current_question(room.room_id) is None

        stored = await manager.get_room(room.room_id)
        assert stored.current_question_id is None
        assert stored.questions[0].status == "completed"


# =============================================================================
# Consent, answers and summary
# =============================================================================


class TestCompletion:
    """Tests for consent, material gathering and the final summary."""

    @pytest.mark.asyncio
    async def test_record_consent(self, manager):
        """Consent is stored and mirrored on the room document."""
        room = await manager.create_room(**generate_room_details())
        assert await manager.get_consent(room.room_id) is None

        record = await manager.record_consent(room.room_id, True, "2026-10-17T09:59:00Z")

        assert record.consent_given is True
        assert (await manager.get_consent(room.room_id)).timestamp == "2026-10-17T09:59:00Z"
        assert (await manager.get_room(room.room_id)).consent_given is True

    @pytest.mark.asyncio
    async def test_collect_material(self, manager, store):
        """Material gathers the room and its answer records."""
        room = await manager.create_room(**generate_room_details())
        question = await manager.send_question(room.room_id, "Implement an LRU cache.")
        await store.set(
            answer_path(room.room_id, question.question_id),
            {"transcript": "hash map and list ", "isComplete": True, "source": "speech"},
        )

        material = await manager.collect_interview_material(room.room_id)

        assert material.answers[question.question_id].transcript == "hash map and list "
        assert material.answers[question.question_id].source is AnswerSource.SPEECH
        assert material.summary is None
        assert material.has_answers is True
        assert material.has_code is False

    @pytest.mark.asyncio
    async def test_final_summary_written_once(self, manager):
        """The first submission wins; later ones are rejected."""
        room = await manager.create_room(**generate_room_details())

        record = await manager.submit_final_summary(
            room.room_id,
            final_summary="Solid.",
            interviewer_notes="",
            final_decision="hire",
        )
        with pytest.raises(SummaryAlreadySubmittedError):
            await manager.submit_final_summary(
                room.room_id,
                final_summary="Changed my mind.",
                interviewer_notes="",
                final_decision="no_hire",
            )

        assert record.final_decision is HiringDecision.HIRE
        assert (await manager.get_summary(room.room_id)).final_summary == "Solid."
        assert (await manager.get_room(room.room_id)).status is RoomStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_concurrent_submissions_store_one_record(self, manager):
        """Two racing submissions produce exactly one record."""
        room = await manager.create_room(**generate_room_details())

        results = await asyncio.gather(
            *(
                manager.submit_final_summary(
                    room.room_id,
                    final_summary=f"Attempt {i}",
                    interviewer_notes="",
                    final_decision="maybe",
                )
                for i in range(2)
            ),
            return_exceptions=True,
        )

        errors = [r for r in results if isinstance(r, SummaryAlreadySubmittedError)]
        assert len(errors) == 1

    @pytest.mark.asyncio
    async def test_invalid_decision(self, manager):
        """Decisions outside hire/maybe/no_hire are rejected."""
        room = await manager.create_room(**generate_room_details())
        with pytest.raises(ValueError):
            await manager.submit_final_summary(
                room.room_id, final_summary="x", interviewer_notes="", final_decision="strong_hire"
            )

    @pytest.mark.asyncio
    async def test_completed_room_rejects_questions(self, manager):
        """No questions can be sent once the summary is stored."""
        room = await manager.create_room(**generate_room_details())
        await manager.submit_final_summary(
            room.room_id, final_summary="Done.", interviewer_notes="", final_decision="maybe"
        )
        with pytest.raises(RoomClosedError):
            await manager.send_question(room.room_id, "One more thing...")


# =============================================================================
# Templates and exit feedback
# =============================================================================


class TestTemplates:
    """Tests for interview templates."""

    @pytest.mark.asyncio
    async def test_clone_room_to_template(self, manager):
        """A room's configuration becomes a reusable template."""
        room = await manager.create_room(**generate_room_details(jobTitle="Platform Engineer"))

        template = await manager.clone_to_template(room.room_id, "Platform loop", "Standard onsite")

        assert template.template_id.startswith("tpl_")
        assert template.job_title == "Platform Engineer"
        assert template.tech_stack == ["Python", "FastAPI", "PostgreSQL"]
        assert [t.template_id for t in await manager.list_templates()] == [template.template_id]

    @pytest.mark.asyncio
    async def test_create_and_delete_template(self, manager):
        """Templates can be created directly and deleted once."""
        stored = await manager.create_template(
            InterviewTemplate(name="Frontend", job_title="Frontend Engineer", tech_stack="React, TypeScript")
        )
        assert stored.tech_stack == ["React", "TypeScript"]
        assert stored.created_at is not None

        await manager.delete_template(stored.template_id)
        with pytest.raises(TemplateNotFoundError):
            await manager.delete_template(stored.template_id)
        assert await manager.list_templates() == []

    @pytest.mark.asyncio
    async def test_record_template_use_keeps_created_at(self, manager):
        """Using a template bumps the count without touching the rest."""
        stored = await manager.create_template(
            InterviewTemplate(name="Backend", job_title="Backend Engineer", description="Onsite")
        )

        used = await manager.record_template_use(stored.template_id)
        await manager.record_template_use(stored.template_id)
        (listed,) = await manager.list_templates()

        assert used.usage_count == 1
        assert listed.usage_count == 2
        assert listed.created_at == stored.created_at
        assert listed.description == "Onsite"
        with pytest.raises(TemplateNotFoundError):
            await manager.record_template_use("tpl_missing")


class TestCandidateFeedback:
    """Tests for exit-interview feedback."""

    @pytest.mark.asyncio
    async def test_submit_and_read_feedback(self, manager):
        """Feedback is stamped and stored for the room."""
        room = await manager.create_room(**generate_room_details())
        feedback = generate_candidate_feedback(overallExperience=5)

        stored = await manager.submit_candidate_feedback(room.room_id, feedback)

        assert stored.submitted_at is not None
        assert (await manager.get_candidate_feedback(room.room_id)).overall_experience == 5

    @pytest.mark.asyncio
    async def test_feedback_for_missing_room(self, manager):
        """Feedback needs an existing room."""
        with pytest.raises(RoomNotFoundError):
            await manager.submit_candidate_feedback("missing123", generate_candidate_feedback())

    def test_feedback_ratings_validated(self):
        """Ratings outside 1-5 are rejected."""
        with pytest.raises(ValueError):
            generate_candidate_feedback(overallExperience=6)
