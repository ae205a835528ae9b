"""
Interview Room Service

Hosts the shared room documents both participants subscribe to, the chat side
channel, and the HTTP endpoints for room management, consent, summaries,
reports, templates and exit feedback.

Endpoints:
    POST /api/interviews                         - Create interview room
    GET  /api/interviews                         - Dashboard list
    GET  /api/interviews/{roomId}                - Room document
    POST /api/interviews/{roomId}/questions      - Send question
    POST /api/interviews/{roomId}/questions/end  - End the current question
    POST /api/generate-question                  - Generate a question
    POST /api/interviews/consent                 - Record candidate consent
    GET  /api/interviews/{roomId}/consent        - Read candidate consent
    POST /api/complete-interview                 - Generate final summary draft
    POST /api/submit-interview-feedback          - Store final summary record
    POST /api/summarize-transcript               - Summarize one answer
    POST /api/analyze-transcript                 - Live answer analysis
    GET  /api/interviews/{roomId}/download-report - Report markup and metadata
    GET  /api/interviews/{id}/review             - Review data
    POST /api/clone-interview                    - Save room as template
    GET  /api/templates                          - List templates
    POST /api/templates                          - Create template
    DELETE /api/templates/{templateId}           - Delete template
    POST /api/interviews/{roomId}/candidate-feedback - Exit interview
    WS   /ws/chat/{roomId}                       - Chat fan-out
    WS   /ws/rooms/{roomId}/documents            - Room document subscribe/set
    GET  /health, /stats, /platform/settings     - Service status

Internal binding: configured by ROOM_SERVICE_HOST/ROOM_SERVICE_PORT (default 0.0.0.0:8780)
"""

from __future__ import annotations

import json
import logging
import os
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Annotated, Any, AsyncIterator, Optional, TypedDict

import uvicorn
from fastapi import Depends, FastAPI, Request, WebSocket, WebSocketDisconnect, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from starlette.requests import HTTPConnection

from interview_room import session as rooms
from interview_room.archive import ArchiveReadError, ArchiveWriteError, RoomArchiveWriter
from interview_room.chat import ChatHub
from interview_room.models import (
    CandidateFeedback,
    Difficulty,
    HiringDecision,
    InterviewMaterial,
    InterviewTemplate,
    ParticipantRole,
    QuestionType,
    RoleType,
    SeniorityLevel,
)
from interview_room.remote_store import DocumentSocketHandler
from interview_room.report import build_report
from interview_room.session import InterviewRoomManager
from interview_room.store import InMemoryDocumentStore, room_path
from interview_room.summarizer import InterviewSummarizer, SummaryGenerationError, Summarizer
from room_platform import PLATFORM_NAME, PlatformSettings, load_platform_settings

# =============================================================================
# Logging Configuration
# =============================================================================

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


SERVICE_VERSION = "0.3.0"


# =============================================================================
# Configuration
# =============================================================================

DEFAULT_CORS_ORIGINS = (
    "http://localhost:3000",
    "http://localhost:5173",
)


@dataclass(frozen=True)
class RuntimeConfig:
    """Runtime config for one room service instance."""

    platform_settings_path: str
    instance_id: str
    host: str
    port: int
    archive_dir: Path
    cors_origins: tuple[str, ...]


def load_runtime_config() -> RuntimeConfig:
    """Load runtime config from environment with strict validation."""
    platform_settings_path = (os.environ.get("PLATFORM_SETTINGS_PATH") or "").strip()
    if not platform_settings_path:
        raise RuntimeError(
            "PLATFORM_SETTINGS_PATH is required. Provide a platform settings path at runtime."
        )

    instance_id = (os.environ.get("INSTANCE_ID", "default") or "").strip()
    if not instance_id:
        raise RuntimeError("INSTANCE_ID resolved to empty value.")

    host = (os.environ.get("ROOM_SERVICE_HOST", "0.0.0.0") or "").strip()
    if not host:
        raise RuntimeError("ROOM_SERVICE_HOST resolved to empty value.")

    port_raw = (os.environ.get("ROOM_SERVICE_PORT", "8780") or "").strip()
    if not port_raw:
        raise RuntimeError("ROOM_SERVICE_PORT resolved to empty value.")

    try:
        port = int(port_raw)
    except ValueError as exc:
        raise RuntimeError(f"ROOM_SERVICE_PORT must be an integer. Got: {port_raw}") from exc

    if port < 1 or port > 65535:
        raise RuntimeError(f"ROOM_SERVICE_PORT must be in range 1-65535. Got: {port}.")

    archive_override = os.environ.get("ARCHIVE_DIR")
    if archive_override:
        archive_dir = Path(archive_override).expanduser()
    elif "INSTANCE_ID" in os.environ:
        archive_dir = Path(__file__).parent / "archive" / instance_id
    else:
        archive_dir = Path(__file__).parent / "archive"

    cors_raw = os.environ.get("CORS_ORIGINS")
    if cors_raw is None:
        cors_origins = DEFAULT_CORS_ORIGINS
    else:
        cors_origins = tuple(origin.strip() for origin in cors_raw.split(",") if origin.strip())

    return RuntimeConfig(
        platform_settings_path=platform_settings_path,
        instance_id=instance_id,
        host=host,
        port=port,
        archive_dir=archive_dir,
        cors_origins=cors_origins,
    )


RUNTIME_CONFIG = load_runtime_config()
PLATFORM_SETTINGS, PLATFORM_SETTINGS_PATH = load_platform_settings(
    RUNTIME_CONFIG.platform_settings_path
)


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


# =============================================================================
# Request Models
# =============================================================================


class ApiModel(BaseModel):
    """Request bodies use the camelCase names of the web client."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class CreateInterviewRequest(ApiModel):
    """Request to create a new interview room."""

    candidate_name: str = Field(..., alias="candidateName", min_length=1)
    interviewer_name: Optional[str] = Field(default=None, alias="interviewerName")
    job_title: Optional[str] = Field(default=None, alias="jobTitle")
    seniority_level: Optional[SeniorityLevel] = Field(default=None, alias="seniorityLevel")
    role_type: Optional[RoleType] = Field(default=None, alias="roleType")
    tech_stack: Optional[list[str] | str] = Field(default=None, alias="techStack")
    department: Optional[str] = None
    default_question_type: Optional[QuestionType] = Field(
        default=None, alias="defaultQuestionType"
    )
    default_difficulty: Optional[Difficulty] = Field(default=None, alias="defaultDifficulty")
    template_id: Optional[str] = Field(
        default=None,
        alias="templateId",
        description="Fill unset fields from this template",
    )


class SendQuestionRequest(ApiModel):
    question: str = Field(..., min_length=1)
    question_type: Optional[QuestionType] = Field(default=None, alias="questionType")
    difficulty: Optional[Difficulty] = None


class GenerateQuestionRequest(ApiModel):
    topic: str = Field(..., min_length=1)
    question_type: Optional[QuestionType] = Field(default=None, alias="questionType")
    difficulty: Optional[Difficulty] = None


class ConsentRequest(ApiModel):
    room_id: str = Field(..., alias="roomId", min_length=1)
    consent_given: bool = Field(..., alias="consentGiven")
    timestamp: Optional[str] = None


class CompleteInterviewRequest(ApiModel):
    room_id: str = Field(..., alias="roomId", min_length=1)


class SubmitFeedbackRequest(ApiModel):
    """Interviewer's review step: edited summary, notes and decision."""

    room_id: str = Field(..., alias="roomId", min_length=1)
    interviewer_notes: str = Field(default="", alias="interviewerNotes")
    final_decision: HiringDecision = Field(..., alias="finalDecision")
    ai_summary: str = Field(..., alias="aiSummary", min_length=1)


class TranscriptRequest(ApiModel):
    transcript: str = Field(..., min_length=1)
    question: Optional[str] = None


class CloneInterviewRequest(ApiModel):
    interview_id: str = Field(..., alias="interviewId", min_length=1)
    name: str = Field(..., min_length=1)
    description: str = ""


# =============================================================================
# Response Models
# =============================================================================


class ErrorResponse(BaseModel):
    """Standard error response."""

    ok: bool = Field(default=False)
    error: str = Field(..., description="Error description")
    error_code: str | None = Field(default=None, description="Machine-readable error code")


class RoomLinks(BaseModel):
    interviewer: str
    candidate: str


class CreateInterviewResponse(BaseModel):
    ok: bool = True
    room_id: str = Field(..., serialization_alias="roomId")
    room: dict[str, Any]
    links: RoomLinks


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(..., description="Service health status")
    service: str = Field(..., description="Service name")
    version: str = Field(..., description="Service version")
    timestamp: str = Field(..., description="Current server timestamp")
    platform_id: str = Field(..., description="Active platform id")
    instance_id: str = Field(..., description="Active instance ID")


class StatsResponse(BaseModel):
    """Statistics response."""

    stats: dict[str, Any] = Field(..., description="Service statistics")
    document_writes: int = Field(..., description="Writes applied to the document store")
    document_subscribers: int = Field(..., description="Live document subscriptions")
    chat_rooms: int = Field(..., description="Rooms with an open chat connection")
    archive_directory: str = Field(..., description="Interview archive directory path")
    instance_id: str = Field(..., description="Active instance ID")


class PlatformSettingsResponse(BaseModel):
    """Public summary of active platform settings."""

    platform: str
    platform_id: str
    display_name: str
    settings_path: str
    sync: dict[str, Any]
    speech: dict[str, Any]
    summarizer: dict[str, Any]
    report: dict[str, Any]
    routes: dict[str, str]


# =============================================================================
# Application State (Type-safe Lifespan State)
# =============================================================================


class AppStats(TypedDict):
    """Application statistics tracking."""

    rooms_created: int
    questions_sent: int
    questions_generated: int
    summaries_generated: int
    summary_failures: int
    summaries_submitted: int
    reports_built: int
    transcript_requests: int
    templates_saved: int
    candidate_feedback: int
    chat_connections: int
    document_connections: int
    errors: int
    started_at: str


class AppState(TypedDict):
    """Type-safe application state managed by lifespan."""

    store: InMemoryDocumentStore
    room_manager: InterviewRoomManager
    chat_hub: ChatHub
    archive_writer: RoomArchiveWriter
    summarizer: Summarizer
    settings: PlatformSettings
    stats: AppStats


def get_initial_stats() -> AppStats:
    """Create initial statistics dictionary."""
    return AppStats(
        rooms_created=0,
        questions_sent=0,
        questions_generated=0,
        summaries_generated=0,
        summary_failures=0,
        summaries_submitted=0,
        reports_built=0,
        transcript_requests=0,
        templates_saved=0,
        candidate_feedback=0,
        chat_connections=0,
        document_connections=0,
        errors=0,
        started_at=_utc_now(),
    )


# =============================================================================
# Custom Exceptions
# =============================================================================


class RoomServiceError(Exception):
    """Base exception for room service errors."""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        error_code: str | None = None,
    ) -> None:
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        super().__init__(message)


class RoomNotFoundError(RoomServiceError):
    """Raised when a room (or template) does not exist."""

    def __init__(self, message: str = "Interview room not found.") -> None:
        super().__init__(
            message=message,
            status_code=status.HTTP_404_NOT_FOUND,
            error_code="NOT_FOUND",
        )


class SummaryAlreadySubmittedError(RoomServiceError):
    """Raised on a second final summary submission."""

    def __init__(self, message: str = "Final summary already submitted.") -> None:
        super().__init__(
            message=message,
            status_code=status.HTTP_409_CONFLICT,
            error_code="SUMMARY_ALREADY_SUBMITTED",
        )


class SummaryGenerationFailedError(RoomServiceError):
    """Raised when the summarizer fails or returns nothing usable."""

    def __init__(self, message: str = "Failed to generate summary.") -> None:
        super().__init__(
            message=message,
            status_code=status.HTTP_502_BAD_GATEWAY,
            error_code="SUMMARY_GENERATION_FAILED",
        )


class InvalidRequestError(RoomServiceError):
    """Raised when a request is well-formed but not acceptable."""

    def __init__(self, message: str) -> None:
        super().__init__(
            message=message,
            status_code=status.HTTP_400_BAD_REQUEST,
            error_code="INVALID_REQUEST",
        )


# =============================================================================
# Dependencies
# =============================================================================


def get_app_state(connection: HTTPConnection) -> AppState:
    """
    Dependency to retrieve application state from a request or WebSocket.

    Raises:
        RuntimeError: If state is not properly initialized.
    """
    state = getattr(connection, "state", None)
    if state is None:
        raise RuntimeError("Application state not initialized")
    return AppState(
        store=state.store,
        room_manager=state.room_manager,
        chat_hub=state.chat_hub,
        archive_writer=state.archive_writer,
        summarizer=state.summarizer,
        settings=state.settings,
        stats=state.stats,
    )


# Type alias for dependency injection
AppStateDep = Annotated[AppState, Depends(get_app_state)]


# =============================================================================
# Helpers
# =============================================================================


def build_summarizer(settings: PlatformSettings) -> Summarizer:
    """Create the summarizer from platform settings."""
    return InterviewSummarizer(
        model=settings.summarizer.model,
        reasoning_effort=settings.summarizer.reasoning_effort,
        instructions=settings.summarizer.instructions,
    )


async def load_material(state: AppState, room_id: str) -> InterviewMaterial:
    """Live room material, falling back to the archive once a room is gone."""
    try:
        return await state["room_manager"].collect_interview_material(room_id)
    except rooms.RoomNotFoundError:
        pass

    try:
        archived = await state["archive_writer"].load_archive(room_id)
    except ArchiveReadError as e:
        logger.error("Archive for room %s is unreadable: %s", room_id, e)
        archived = None
    if archived is None:
        raise RoomNotFoundError(f"Interview room '{room_id}' not found.")
    return archived


def room_links(settings: PlatformSettings, room_id: str) -> RoomLinks:
    return RoomLinks(
        interviewer=settings.routes.build_route(
            "interview", role=ParticipantRole.INTERVIEWER.value, room_id=room_id
        ),
        candidate=settings.routes.build_route(
            "interview", role=ParticipantRole.CANDIDATE.value, room_id=room_id
        ),
    )


# =============================================================================
# Exception Handlers
# =============================================================================


async def room_service_error_handler(request: Request, exc: RoomServiceError) -> JSONResponse:
    """Render RoomServiceError as the standard error body."""
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            ok=False,
            error=exc.message,
            error_code=exc.error_code,
        ).model_dump(),
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions."""
    logger.error("Unhandled exception: %s", exc, exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=ErrorResponse(
            ok=False,
            error="Internal server error",
            error_code="INTERNAL_ERROR",
        ).model_dump(),
    )


# =============================================================================
# FastAPI App Lifespan
# =============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[dict[str, Any]]:
    """
    Manage application lifespan with type-safe state.

    Initializes all shared resources on startup and cleans up on shutdown.

    Yields:
        Dictionary of application state to be attached to requests.
    """
    logger.info("Starting Interview Room Service")
    logger.info(
        "Runtime: platform=%s settings=%s instance=%s host=%s port=%d",
        PLATFORM_NAME,
        PLATFORM_SETTINGS.platform_id,
        RUNTIME_CONFIG.instance_id,
        RUNTIME_CONFIG.host,
        RUNTIME_CONFIG.port,
    )
    logger.info("Platform settings path: %s", PLATFORM_SETTINGS_PATH)

    archive_writer = RoomArchiveWriter(RUNTIME_CONFIG.archive_dir)
    logger.info("Interview archive directory: %s", RUNTIME_CONFIG.archive_dir)

    store = InMemoryDocumentStore()
    state = {
        "store": store,
        "room_manager": InterviewRoomManager(store),
        "chat_hub": ChatHub(),
        "archive_writer": archive_writer,
        "summarizer": build_summarizer(PLATFORM_SETTINGS),
        "settings": PLATFORM_SETTINGS,
        "stats": get_initial_stats(),
    }

    yield state

    # Shutdown
    logger.info("Shutting down...")
    await store.close()


# =============================================================================
# FastAPI Application
# =============================================================================


app = FastAPI(
    title=f"Interview Room Service ({PLATFORM_SETTINGS.platform_id})",
    version=SERVICE_VERSION,
    description="Shared interview rooms: live documents, chat, summaries and reports",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(RUNTIME_CONFIG.cors_origins),
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type"],
    max_age=3600,
)

app.add_exception_handler(RoomServiceError, room_service_error_handler)
app.add_exception_handler(Exception, generic_exception_handler)


# =============================================================================
# Rooms
# =============================================================================


@app.post("/api/interviews", response_model=CreateInterviewResponse)
async def create_interview(
    request: CreateInterviewRequest,
    state: AppStateDep,
) -> CreateInterviewResponse:
    """Create a room and return its participant links."""
    room_manager = state["room_manager"]
    details = request.model_dump(by_alias=True, exclude_none=True, exclude={"template_id"})

    if request.template_id:
        try:
            template = await room_manager.record_template_use(request.template_id)
        except rooms.TemplateNotFoundError as e:
            raise RoomNotFoundError(str(e)) from e
        details = {**template.to_document(), **details}
        for key in ("templateId", "name", "description", "createdAt", "usageCount"):
            details.pop(key, None)

    room = await room_manager.create_room(**details)
    state["stats"]["rooms_created"] += 1

    return CreateInterviewResponse(
        room_id=room.room_id,
        room=room.to_document(),
        links=room_links(state["settings"], room.room_id),
    )


@app.get("/api/interviews")
async def list_interviews(state: AppStateDep) -> dict[str, Any]:
    """Dashboard list, newest first."""
    interviews = await state["room_manager"].list_rooms()
    return {"ok": True, "interviews": [room.to_document() for room in interviews]}


@app.get("/api/interviews/{room_id}")
async def get_interview(room_id: str, state: AppStateDep) -> dict[str, Any]:
    try:
        room = await state["room_manager"].get_room(room_id)
    except rooms.RoomNotFoundError as e:
        raise RoomNotFoundError(str(e)) from e
    return {"ok": True, "room": room.to_document()}


@app.post("/api/interviews/{room_id}/questions")
async def send_question(
    room_id: str,
    request: SendQuestionRequest,
    state: AppStateDep,
) -> dict[str, Any]:
    """Make a question the room's current question."""
    try:
        question = await state["room_manager"].send_question(
            room_id,
            request.question,
            question_type=request.question_type,
            difficulty=request.difficulty,
        )
    except rooms.RoomNotFoundError as e:
        raise RoomNotFoundError(str(e)) from e
    except (rooms.RoomClosedError, ValueError) as e:
        raise InvalidRequestError(str(e)) from e

    state["stats"]["questions_sent"] += 1
    return {"ok": True, "question": question.to_document()}


@app.post("/api/interviews/{room_id}/questions/end")
async def end_question(room_id: str, state: AppStateDep) -> dict[str, Any]:
    """Clear the current question; capture on the candidate side stops and completes."""
    try:
        ended = await state["room_manager"].end_current_question(room_id)
    except rooms.RoomNotFoundError as e:
        raise RoomNotFoundError(str(e)) from e
    return {"ok": True, "endedQuestionId": ended}


@app.post("/api/generate-question")
async def generate_question(request: GenerateQuestionRequest, state: AppStateDep) -> dict[str, Any]:
    try:
        question = await state["summarizer"].generate_question(
            request.topic,
            question_type=request.question_type.value if request.question_type else None,
            difficulty=request.difficulty.value if request.difficulty else None,
        )
    except SummaryGenerationError as e:
        raise SummaryGenerationFailedError(f"Failed to generate question: {e}") from e

    state["stats"]["questions_generated"] += 1
    return {"ok": True, "question": question}


# =============================================================================
# Consent
# =============================================================================


@app.post("/api/interviews/consent")
async def record_consent(request: ConsentRequest, state: AppStateDep) -> dict[str, Any]:
    try:
        consent = await state["room_manager"].record_consent(
            request.room_id, request.consent_given, request.timestamp
        )
    except rooms.RoomNotFoundError as e:
        raise RoomNotFoundError(str(e)) from e
    return {"ok": True, "consent": consent.to_document()}


@app.get("/api/interviews/{room_id}/consent")
async def get_consent(room_id: str, state: AppStateDep) -> dict[str, Any]:
    try:
        consent = await state["room_manager"].get_consent(room_id)
    except rooms.RoomNotFoundError as e:
        raise RoomNotFoundError(str(e)) from e
    return {"ok": True, "consent": consent.to_document() if consent else None}


# =============================================================================
# Completion
# =============================================================================


@app.post("/api/complete-interview")
async def complete_interview(request: CompleteInterviewRequest, state: AppStateDep) -> dict[str, Any]:
    """Generate the summary draft the interviewer reviews."""
    stats = state["stats"]
    try:
        material = await state["room_manager"].collect_interview_material(request.room_id)
    except rooms.RoomNotFoundError as e:
        raise RoomNotFoundError(str(e)) from e

    try:
        summary = await state["summarizer"].summarize_interview(material)
    except SummaryGenerationError as e:
        stats["summary_failures"] += 1
        logger.warning("Summary generation failed for room %s: %s", request.room_id, e)
        raise SummaryGenerationFailedError() from e

    if not summary.strip():
        stats["summary_failures"] += 1
        raise SummaryGenerationFailedError("Summary generation returned no text.")

    stats["summaries_generated"] += 1
    return {"ok": True, "summary": summary}


@app.post("/api/submit-interview-feedback")
async def submit_interview_feedback(request: SubmitFeedbackRequest, state: AppStateDep) -> dict[str, Any]:
    """Store the final summary record once, then archive the interview."""
    room_manager = state["room_manager"]
    try:
        record = await room_manager.submit_final_summary(
            request.room_id,
            final_summary=request.ai_summary,
            interviewer_notes=request.interviewer_notes,
            final_decision=request.final_decision,
        )
    except rooms.RoomNotFoundError as e:
        raise RoomNotFoundError(str(e)) from e
    except rooms.SummaryAlreadySubmittedError as e:
        raise SummaryAlreadySubmittedError(str(e)) from e

    state["stats"]["summaries_submitted"] += 1

    try:
        material = await room_manager.collect_interview_material(request.room_id)
        await state["archive_writer"].write_archive(material)
    except ArchiveWriteError as e:
        state["stats"]["errors"] += 1
        logger.error("Failed to archive room %s: %s", request.room_id, e)

    return {
        "ok": True,
        "record": record.to_document(),
        "redirect": state["settings"].routes.build_route(
            "review", role=ParticipantRole.INTERVIEWER.value, room_id=request.room_id
        ),
    }


@app.get("/api/interviews/{room_id}/download-report")
async def download_report(room_id: str, state: AppStateDep) -> dict[str, Any]:
    """Self-contained report markup plus metadata."""
    material = await load_material(state, room_id)
    report_settings = state["settings"].report
    report = build_report(
        material,
        title=report_settings.title,
        include_code=report_settings.include_code,
        include_transcripts=report_settings.include_transcripts,
    )
    state["stats"]["reports_built"] += 1
    return report.to_document()


@app.get("/api/interviews/{interview_id}/review")
async def get_review(interview_id: str, state: AppStateDep) -> dict[str, Any]:
    material = await load_material(state, interview_id)
    try:
        feedback = await state["room_manager"].get_candidate_feedback(interview_id)
    except rooms.RoomNotFoundError:
        feedback = None

    return {
        "ok": True,
        "room": material.room.to_document(),
        "answers": {
            question_id: answer.to_document()
            for question_id, answer in material.answers.items()
        },
        "summary": material.summary.to_document() if material.summary else None,
        "candidateFeedback": feedback.to_document() if feedback else None,
    }


# =============================================================================
# Transcript AI
# =============================================================================


@app.post("/api/summarize-transcript")
async def summarize_transcript(request: TranscriptRequest, state: AppStateDep) -> dict[str, Any]:
    state["stats"]["transcript_requests"] += 1
    try:
        summary = await state["summarizer"].summarize_transcript(
            request.transcript, request.question
        )
    except SummaryGenerationError as e:
        raise SummaryGenerationFailedError(f"Failed to summarize transcript: {e}") from e
    return {"ok": True, "summary": summary}


@app.post("/api/analyze-transcript")
async def analyze_transcript(request: TranscriptRequest, state: AppStateDep) -> dict[str, Any]:
    state["stats"]["transcript_requests"] += 1
    try:
        analysis = await state["summarizer"].analyze_transcript(
            request.transcript, request.question
        )
    except SummaryGenerationError as e:
        raise SummaryGenerationFailedError(f"Failed to analyze transcript: {e}") from e
    return {"ok": True, "analysis": analysis.model_dump(mode="json")}


# =============================================================================
# Templates
# =============================================================================


@app.post("/api/clone-interview")
async def clone_interview(request: CloneInterviewRequest, state: AppStateDep) -> dict[str, Any]:
    try:
        template = await state["room_manager"].clone_to_template(
            request.interview_id, request.name, request.description
        )
    except rooms.RoomNotFoundError as e:
        raise RoomNotFoundError(str(e)) from e
    state["stats"]["templates_saved"] += 1
    return {"ok": True, "template": template.to_document()}


@app.get("/api/templates")
async def list_templates(state: AppStateDep) -> dict[str, Any]:
    templates = await state["room_manager"].list_templates()
    return {"ok": True, "templates": [template.to_document() for template in templates]}


@app.post("/api/templates")
async def create_template(template: InterviewTemplate, state: AppStateDep) -> dict[str, Any]:
    stored = await state["room_manager"].create_template(template)
    state["stats"]["templates_saved"] += 1
    return {"ok": True, "template": stored.to_document()}


@app.delete("/api/templates/{template_id}")
async def delete_template(template_id: str, state: AppStateDep) -> dict[str, Any]:
    try:
        await state["room_manager"].delete_template(template_id)
    except rooms.TemplateNotFoundError as e:
        raise RoomNotFoundError(str(e)) from e
    return {"ok": True}


# =============================================================================
# Candidate exit interview
# =============================================================================


@app.post("/api/interviews/{room_id}/candidate-feedback")
async def submit_candidate_feedback(
    room_id: str,
    feedback: CandidateFeedback,
    state: AppStateDep,
) -> dict[str, Any]:
    try:
        stored = await state["room_manager"].submit_candidate_feedback(room_id, feedback)
    except rooms.RoomNotFoundError as e:
        raise RoomNotFoundError(str(e)) from e

    state["stats"]["candidate_feedback"] += 1
    return {
        "ok": True,
        "feedback": stored.to_document(),
        "redirect": state["settings"].routes.build_route(
            "thank_you", role=ParticipantRole.CANDIDATE.value, room_id=room_id
        ),
    }


# =============================================================================
# WebSockets
# =============================================================================


ROOM_NOT_FOUND_CLOSE_CODE = 4404


@app.websocket("/ws/chat/{room_id}")
async def chat_socket(websocket: WebSocket, room_id: str, state: AppStateDep) -> None:
    """Relay chat frames to everyone in the room."""
    if not await state["room_manager"].room_exists(room_id):
        await websocket.close(code=ROOM_NOT_FOUND_CLOSE_CODE)
        return

    await websocket.accept()
    chat_hub = state["chat_hub"]
    await chat_hub.join(room_id, websocket)
    state["stats"]["chat_connections"] += 1

    try:
        while True:
            raw = await websocket.receive_text()
            await chat_hub.handle_frame(room_id, raw)
    except WebSocketDisconnect:
        logger.debug("Chat socket closed for room %s", room_id)
    finally:
        await chat_hub.leave(room_id, websocket)


@app.websocket("/ws/rooms/{room_id}/documents")
async def document_socket(websocket: WebSocket, room_id: str, state: AppStateDep) -> None:
    """Serve the room's document subtree to an out-of-process client."""
    if not await state["room_manager"].room_exists(room_id):
        await websocket.close(code=ROOM_NOT_FOUND_CLOSE_CODE)
        return

    await websocket.accept()
    handler = DocumentSocketHandler(state["store"], websocket.send_json, room_path(room_id))
    state["stats"]["document_connections"] += 1
    logger.info("Document socket opened for room %s", room_id)

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                frame = json.loads(raw)
            except json.JSONDecodeError:
                await websocket.send_json(
                    {"op": "error", "id": None, "error": "Frame must be JSON", "error_code": "INVALID_FRAME"}
                )
                continue
            await handler.handle(frame)
    except WebSocketDisconnect:
        logger.info("Document socket closed for room %s", room_id)
    finally:
        handler.close()


# =============================================================================
# Service
# =============================================================================


@app.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(
        status="healthy",
        service="Interview Room Service",
        version=SERVICE_VERSION,
        timestamp=_utc_now(),
        platform_id=PLATFORM_SETTINGS.platform_id,
        instance_id=RUNTIME_CONFIG.instance_id,
    )


@app.get("/stats", response_model=StatsResponse)
async def get_stats(state: AppStateDep) -> StatsResponse:
    """Get current statistics."""
    store = state["store"]
    return StatsResponse(
        stats=dict(state["stats"]),
        document_writes=store.write_count,
        document_subscribers=store.subscriber_count,
        chat_rooms=state["chat_hub"].room_count,
        archive_directory=str(state["archive_writer"].archive_dir),
        instance_id=RUNTIME_CONFIG.instance_id,
    )


@app.get("/platform/settings", response_model=PlatformSettingsResponse)
async def get_platform_settings() -> PlatformSettingsResponse:
    """Return active platform settings for client contract discovery."""
    settings = PLATFORM_SETTINGS
    return PlatformSettingsResponse(
        platform=PLATFORM_NAME,
        platform_id=settings.platform_id,
        display_name=settings.display_name,
        settings_path=str(PLATFORM_SETTINGS_PATH),
        sync=settings.sync.model_dump(),
        speech=settings.speech.model_dump(),
        summarizer={
            "model": settings.summarizer.model,
            "reasoning_effort": settings.summarizer.reasoning_effort,
            "has_custom_instructions": bool(settings.summarizer.instructions),
        },
        report=settings.report.model_dump(),
        routes=dict(settings.routes.templates),
    )


# =============================================================================
# Main Entry Point
# =============================================================================

if __name__ == "__main__":
    logger.info("=" * 60)
    logger.info("Interview Room Service")
    logger.info("=" * 60)
    logger.info("Binding to: http://%s:%d", RUNTIME_CONFIG.host, RUNTIME_CONFIG.port)
    logger.info(
        "Platform: %s, Settings: %s (%s), Instance: %s",
        PLATFORM_NAME,
        PLATFORM_SETTINGS.platform_id,
        PLATFORM_SETTINGS.display_name,
        RUNTIME_CONFIG.instance_id,
    )
    logger.info("Platform settings path: %s", PLATFORM_SETTINGS_PATH)
    logger.info("Archive: %s", RUNTIME_CONFIG.archive_dir)
    logger.info("=" * 60)

    uvicorn.run(
        app,
        host=RUNTIME_CONFIG.host,
        port=RUNTIME_CONFIG.port,
        log_level="info",
    )
