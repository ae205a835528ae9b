"""
Interview completion flow.

Three-step wizard run by the interviewer at the end of an interview:

    confirm     explicit opt-in to end the interview
    generating  one summarization round trip
    review      edit the narrative, add notes, pick a decision, submit

Stage transitions:

    closed ──open()──▶ confirm ──confirm()──▶ generating ──ok──▶ review
                          ▲                        │
                          └──────── failure ───────┘
    review ──submit()──▶ submitting ──ok──▶ completed
       ▲                     │
       └────── failure ──────┘

Nothing is persisted unless submit succeeds. Submitting without a decision
is rejected locally with a notification and no request. Completion unlocks
the report download; the fetched report is cached.

Requests are never cancelled. If the flow was cancelled or reopened while a
request was in flight, its result is discarded.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import TYPE_CHECKING, Optional, Protocol, Union

from interview_room.models import FinalSummaryRecord, HiringDecision, InterviewReport
from interview_room.pubsub import NotificationPublisher

if TYPE_CHECKING:
    from role_profiles.base import RoleProfile

logger = logging.getLogger(__name__)

__all__ = [
    "CompletionBackend",
    "CompletionError",
    "CompletionFlow",
    "CompletionNotAllowedError",
    "CompletionStage",
    "InvalidStageError",
]


class CompletionStage(str, Enum):
    CLOSED = "closed"
    CONFIRM = "confirm"
    GENERATING = "generating"
    REVIEW = "review"
    SUBMITTING = "submitting"
    COMPLETED = "completed"


class CompletionError(Exception):
    """Base exception for completion flow errors."""


class CompletionNotAllowedError(CompletionError):
    """Raised when the local role may not complete interviews."""


class InvalidStageError(CompletionError):
    """Raised when an operation is called in the wrong stage."""

    def __init__(self, operation: str, stage: CompletionStage) -> None:
        self.operation = operation
        self.stage = stage
        super().__init__(f"Cannot {operation} while completion flow is '{stage.value}'.")


class CompletionBackend(Protocol):
    """Server operations the flow depends on."""

    async def generate_summary(self, room_id: str) -> str: ...

    async def submit_feedback(
        self,
        room_id: str,
        *,
        interviewer_notes: str,
        final_decision: HiringDecision,
        ai_summary: str,
    ) -> FinalSummaryRecord: ...

    async def fetch_report(self, room_id: str) -> InterviewReport: ...


class CompletionFlow:
    """
    View model of the completion wizard.

    Args:
        backend: Summary, submission and report operations.
        room_id: Room token.
        profile: Role profile of the local participant.
        publisher: Receives error and success notifications.
    """

    def __init__(
        self,
        backend: CompletionBackend,
        room_id: str,
        profile: "RoleProfile",
        *,
        publisher: Optional[NotificationPublisher] = None,
    ) -> None:
        self.backend = backend
        self.room_id = room_id
        self.profile = profile
        self._publisher = publisher
        self.stage = CompletionStage.CLOSED
        self.summary = ""
        self.notes = ""
        self.decision: Optional[HiringDecision] = None
        self.record: Optional[FinalSummaryRecord] = None
        self.last_error: Optional[str] = None
        self._report: Optional[InterviewReport] = None
        self._attempt = 0

    @property
    def report_available(self) -> bool:
        return (
            self.stage is CompletionStage.COMPLETED
            and self.profile.capabilities.can_download_report
        )

    @property
    def post_interview_route(self) -> str:
        return self.profile.post_interview_route

    def _require(self, operation: str, *stages: CompletionStage) -> None:
        if self.stage not in stages:
            raise InvalidStageError(operation, self.stage)

    def open(self) -> None:
        if not self.profile.capabilities.can_complete_interview:
            raise CompletionNotAllowedError(
                f"Role '{self.profile.role.value}' cannot complete interviews."
            )
        self._require("open", CompletionStage.CLOSED)
        self._attempt += 1
        self.stage = CompletionStage.CONFIRM
        self.last_error = None

    def cancel(self) -> None:
        """Close the wizard. In-flight results will be discarded."""
        if self.stage is CompletionStage.COMPLETED:
            raise InvalidStageError("cancel", self.stage)
        self._attempt += 1
        self.stage = CompletionStage.CLOSED
        self.summary = ""
        self.notes = ""
        self.decision = None

    def back(self) -> None:
        self._require("go back", CompletionStage.REVIEW)
        self.stage = CompletionStage.CONFIRM

    async def confirm(self) -> bool:
        """
        Run summary generation. Returns True when the review step is reached.

        On failure the flow returns to ``confirm`` with an error notification.
        """
        self._require("confirm", CompletionStage.CONFIRM)
        self._attempt += 1
        attempt = self._attempt
        self.stage = CompletionStage.GENERATING
        self.last_error = None

        try:
            summary = await self.backend.generate_summary(self.room_id)
            if not summary or not summary.strip():
                raise CompletionError("Summary generation returned no text.")
        except Exception as exc:
            if attempt != self._attempt:
                logger.debug("Discarding stale summary failure for room %s", self.room_id)
                return False
            logger.warning("Summary generation failed for room %s: %s", self.room_id, exc)
            self.stage = CompletionStage.CONFIRM
            self.last_error = str(exc)
            await self._publish_error(
                "Failed to generate summary", "Please try again in a moment."
            )
            return False

        if attempt != self._attempt:
            logger.debug("Discarding stale summary for room %s", self.room_id)
            return False

        self.summary = summary
        self.stage = CompletionStage.REVIEW
        return True

    def edit_summary(self, text: str) -> None:
        self._require("edit summary", CompletionStage.REVIEW)
        self.summary = text

    def set_notes(self, text: str) -> None:
        self._require("edit notes", CompletionStage.REVIEW)
        self.notes = text

    def select_decision(self, decision: Union[HiringDecision, str, None]) -> None:
        self._require("select decision", CompletionStage.REVIEW)
        self.decision = None if decision is None else HiringDecision(decision)

    async def submit(self) -> Optional[FinalSummaryRecord]:
        """
        Persist the final summary record.

        Returns:
            The stored record, or None if the submission was rejected or failed.
        """
        self._require("submit", CompletionStage.REVIEW)
        if self.decision is None:
            await self._publish_error("Decision required", "Please select a final decision.")
            return None

        attempt = self._attempt
        self.stage = CompletionStage.SUBMITTING
        self.last_error = None
        try:
            record = await self.backend.submit_feedback(
                self.room_id,
                interviewer_notes=self.notes,
                final_decision=self.decision,
                ai_summary=self.summary,
            )
        except Exception as exc:
            if attempt != self._attempt:
                return None
            logger.warning("Feedback submission failed for room %s: %s", self.room_id, exc)
            self.stage = CompletionStage.REVIEW
            self.last_error = str(exc)
            await self._publish_error("Failed to save feedback", str(exc))
            return None

        if attempt != self._attempt:
            return None

        self.record = record
        self.stage = CompletionStage.COMPLETED
        logger.info("Interview %s completed with decision %s", self.room_id, self.decision.value)
        if self._publisher is not None:
            await self._publisher.publish_success(
                "Interview completed",
                "Final summary saved. The report is ready to download.",
                source="completion",
            )
        return record

    async def download_report(self) -> InterviewReport:
        """Fetch the report once; later calls return the cached copy."""
        self._require("download report", CompletionStage.COMPLETED)
        if not self.profile.capabilities.can_download_report:
            raise CompletionNotAllowedError(
                f"Role '{self.profile.role.value}' cannot download reports."
            )
        if self._report is None:
            self._report = await self.backend.fetch_report(self.room_id)
        return self._report

    async def _publish_error(self, title: str, message: str) -> None:
        if self._publisher is not None:
            await self._publisher.publish_error(title, message, source="completion")
