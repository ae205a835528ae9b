"""
HTTP client for the room service.

Wraps every endpoint a participant view calls and implements the completion
backend used by ``CompletionFlow``. Non-2xx responses raise
``InterviewApiError`` carrying the service's error message and code.
"""

from __future__ import annotations

import logging
from typing import Any, Optional, Union

import httpx

from interview_room.models import (
    CandidateFeedback,
    ConsentRecord,
    Difficulty,
    FinalSummaryRecord,
    HiringDecision,
    InterviewReport,
    InterviewRoomDocument,
    InterviewTemplate,
    QuestionRecord,
    QuestionType,
)

logger = logging.getLogger(__name__)

__all__ = ["InterviewApiClient", "InterviewApiError"]


class InterviewApiError(Exception):
    """Raised when a service call fails or returns an error status."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        error_code: Optional[str] = None,
    ) -> None:
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        super().__init__(message if status_code is None else f"HTTP {status_code}: {message}")


def _enum_value(value: Union[str, QuestionType, Difficulty, None]) -> Optional[str]:
    return getattr(value, "value", value)


class InterviewApiClient:
    """
    Async client for the room service.

    Example:
        async with InterviewApiClient("http://localhost:8780") as api:
            created = await api.create_interview(candidateName="Sarah Chen", ...)

    Args:
        base_url: Service root URL.
        timeout_seconds: Per-request timeout.
        transport: Optional httpx transport (e.g. ASGITransport in tests).
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout_seconds: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout_seconds,
            transport=transport,
        )

    async def __aenter__(self) -> "InterviewApiClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            logger.warning("%s %s failed: %s", method, path, exc)
            raise InterviewApiError(f"Request to {path} failed: {exc}") from exc

        if response.status_code >= 400:
            message = response.text[:200]
            error_code = None
            try:
                body = response.json()
            except ValueError:
                body = None
            if isinstance(body, dict):
                message = str(body.get("error") or body.get("detail") or message)
                error_code = body.get("error_code")
            raise InterviewApiError(message, status_code=response.status_code, error_code=error_code)

        return response.json()

    # -------------------------------------------------------------------------
    # Service
    # -------------------------------------------------------------------------

    async def health(self) -> dict[str, Any]:
        return await self._request("GET", "/health")

    async def stats(self) -> dict[str, Any]:
        return await self._request("GET", "/stats")

    async def platform_settings(self) -> dict[str, Any]:
        """Active platform settings: sync, speech, summarizer, report and routes."""
        return await self._request("GET", "/platform/settings")

    # -------------------------------------------------------------------------
    # Rooms
    # -------------------------------------------------------------------------

    async def create_interview(self, **details: Any) -> dict[str, Any]:
        """Create a room. Returns ``{roomId, room, links}``."""
        return await self._request("POST", "/api/interviews", json=details)

    async def list_interviews(self) -> list[InterviewRoomDocument]:
        body = await self._request("GET", "/api/interviews")
        return [InterviewRoomDocument.model_validate(item) for item in body["interviews"]]

    async def get_interview(self, room_id: str) -> InterviewRoomDocument:
        body = await self._request("GET", f"/api/interviews/{room_id}")
        return InterviewRoomDocument.model_validate(body["room"])

    async def send_question(
        self,
        room_id: str,
        question: str,
        question_type: Union[QuestionType, str, None] = None,
        difficulty: Union[Difficulty, str, None] = None,
    ) -> QuestionRecord:
        body = await self._request(
            "POST",
            f"/api/interviews/{room_id}/questions",
            json={
                "question": question,
                "questionType": _enum_value(question_type),
                "difficulty": _enum_value(difficulty),
            },
        )
        return QuestionRecord.model_validate(body["question"])

    async def end_question(self, room_id: str) -> Optional[str]:
        """End the current question. Returns its id, or None if none was active."""
        body = await self._request("POST", f"/api/interviews/{room_id}/questions/end")
        return body.get("endedQuestionId")

    async def generate_question(
        self,
        topic: str,
        question_type: Union[QuestionType, str, None] = None,
        difficulty: Union[Difficulty, str, None] = None,
    ) -> str:
        body = await self._request(
            "POST",
            "/api/generate-question",
            json={
                "topic": topic,
                "questionType": _enum_value(question_type),
                "difficulty": _enum_value(difficulty),
            },
        )
        return body["question"]

    # -------------------------------------------------------------------------
    # Consent
    # -------------------------------------------------------------------------

    async def record_consent(
        self, room_id: str, consent_given: bool, timestamp: Optional[str] = None
    ) -> ConsentRecord:
        body = await self._request(
            "POST",
            "/api/interviews/consent",
            json={"roomId": room_id, "consentGiven": consent_given, "timestamp": timestamp},
        )
        return ConsentRecord.model_validate(body["consent"])

    async def get_consent(self, room_id: str) -> Optional[ConsentRecord]:
        body = await self._request("GET", f"/api/interviews/{room_id}/consent")
        consent = body.get("consent")
        return None if consent is None else ConsentRecord.model_validate(consent)

    # -------------------------------------------------------------------------
    # Completion backend
    # -------------------------------------------------------------------------

    async def generate_summary(self, room_id: str) -> str:
        body = await self._request("POST", "/api/complete-interview", json={"roomId": room_id})
        return body["summary"]

    async def submit_feedback(
        self,
        room_id: str,
        *,
        interviewer_notes: str,
        final_decision: HiringDecision,
        ai_summary: str,
    ) -> FinalSummaryRecord:
        body = await self._request(
            "POST",
            "/api/submit-interview-feedback",
            json={
                "roomId": room_id,
                "interviewerNotes": interviewer_notes,
                "finalDecision": HiringDecision(final_decision).value,
                "aiSummary": ai_summary,
            },
        )
        return FinalSummaryRecord.model_validate(body["record"])

    async def fetch_report(self, room_id: str) -> InterviewReport:
        body = await self._request("GET", f"/api/interviews/{room_id}/download-report")
        return InterviewReport.model_validate(body)

    async def get_review(self, interview_id: str) -> dict[str, Any]:
        return await self._request("GET", f"/api/interviews/{interview_id}/review")

    # -------------------------------------------------------------------------
    # Transcript AI
    # -------------------------------------------------------------------------

    async def summarize_transcript(self, transcript: str, question: Optional[str] = None) -> str:
        body = await self._request(
            "POST",
            "/api/summarize-transcript",
            json={"transcript": transcript, "question": question},
        )
        return body["summary"]

    async def analyze_transcript(
        self, transcript: str, question: Optional[str] = None
    ) -> dict[str, Any]:
        body = await self._request(
            "POST",
            "/api/analyze-transcript",
            json={"transcript": transcript, "question": question},
        )
        return body["analysis"]

    # -------------------------------------------------------------------------
    # Templates and exit feedback
    # -------------------------------------------------------------------------

    async def clone_interview(
        self, interview_id: str, name: str, description: str = ""
    ) -> InterviewTemplate:
        body = await self._request(
            "POST",
            "/api/clone-interview",
            json={"interviewId": interview_id, "name": name, "description": description},
        )
        return InterviewTemplate.model_validate(body["template"])

    async def list_templates(self) -> list[InterviewTemplate]:
        body = await self._request("GET", "/api/templates")
        return [InterviewTemplate.model_validate(item) for item in body["templates"]]

    async def create_template(self, template: InterviewTemplate) -> InterviewTemplate:
        body = await self._request("POST", "/api/templates", json=template.to_document())
        return InterviewTemplate.model_validate(body["template"])

    async def delete_template(self, template_id: str) -> None:
        await self._request("DELETE", f"/api/templates/{template_id}")

    async def submit_candidate_feedback(
        self, room_id: str, feedback: CandidateFeedback
    ) -> dict[str, Any]:
        """Submit the exit interview. Returns ``{feedback, redirect}``."""
        return await self._request(
            "POST",
            f"/api/interviews/{room_id}/candidate-feedback",
            json=feedback.to_document(),
        )
