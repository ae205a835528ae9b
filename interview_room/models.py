"""
Pydantic models for interview rooms.

Defines the shared room document, per-question answer records, the final
summary record, chat frames, consent, exit-interview feedback and interview
templates.

Stored documents keep camelCase field names (``lastUpdatedBy``,
``isComplete``...). Every model accepts either the Python field name or the
stored alias, and ``to_document()`` always dumps the stored form.

Last Grunted: 10/12/2026
"""

from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ParticipantRole(str, Enum):
    """The two parties of an interview room."""

    INTERVIEWER = "interviewer"
    CANDIDATE = "candidate"


class RoomStatus(str, Enum):
    """Room lifecycle status."""

    ACTIVE = "active"
    COMPLETED = "completed"


class HiringDecision(str, Enum):
    """Final decision recorded by the interviewer."""

    HIRE = "hire"
    MAYBE = "maybe"
    NO_HIRE = "no_hire"


class AnswerSource(str, Enum):
    """How an answer transcript was produced."""

    SPEECH = "speech"
    MANUAL = "manual"


class QuestionType(str, Enum):
    CODING = "Coding"
    ALGORITHM = "Algorithm"
    SYSTEM_DESIGN = "System Design"
    DATA_STRUCTURES = "Data Structures"
    BEHAVIORAL = "Behavioral"
    PSYCHOMETRIC = "Psychometric"
    SITUATIONAL = "Situational"
    TECHNICAL_KNOWLEDGE = "Technical Knowledge"


class Difficulty(str, Enum):
    EASY = "Easy"
    MEDIUM = "Medium"
    HARD = "Hard"


class SeniorityLevel(str, Enum):
    ENTRY = "Entry"
    MID = "Mid"
    SENIOR = "Senior"
    STAFF = "Staff"
    PRINCIPAL = "Principal"


class RoleType(str, Enum):
    FRONTEND = "Frontend"
    BACKEND = "Backend"
    FULLSTACK = "Fullstack"
    DEVOPS = "DevOps"
    DATA_SCIENCE = "Data Science"
    MOBILE = "Mobile"
    QA = "QA"
    PRODUCT_MANAGER = "Product Manager"


def split_tech_stack(value: Any) -> Any:
    """Accept "Python, FastAPI" as well as a list."""
    if value is None:
        return []
    if isinstance(value, str):
        return [item.strip() for item in value.split(",") if item.strip()]
    return value


class StoredModel(BaseModel):
    """Base for models persisted as documents under their camelCase names."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    def to_document(self, exclude_none: bool = True) -> dict[str, Any]:
        """Dump using stored field names, JSON-compatible values."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=exclude_none)


class QuestionRecord(StoredModel):
    """
    One question sent by the interviewer.

    The room keeps the full history; exactly one entry is ``active`` at a time
    and the room's current question pointer names it.
    """
    question_id: str = Field(..., alias="questionId", min_length=1)
    text: str = Field(..., min_length=1, description="Question text shown to the candidate")
    question_type: Optional[QuestionType] = Field(default=None, alias="questionType")
    difficulty: Optional[Difficulty] = None
    status: Literal["active", "completed"] = "active"
    asked_at: Optional[str] = Field(default=None, alias="askedAt")


class InterviewRoomDocument(StoredModel):
    """
    The shared room document at ``interviews/{roomId}``.

    ``code`` and ``lastUpdatedBy`` are written together by the debounced code
    writer; readers compare ``lastUpdatedBy`` against their own role to
    decide whether a value is an echo of their own write.
    """
    room_id: str = Field(..., alias="roomId", min_length=1)
    code: str = ""
    last_updated_by: Optional[ParticipantRole] = Field(default=None, alias="lastUpdatedBy")
    current_question_id: Optional[str] = Field(default=None, alias="currentQuestionId")
    current_question: Optional[str] = Field(default=None, alias="currentQuestion")
    question_type: Optional[QuestionType] = Field(default=None, alias="questionType")
    difficulty: Optional[Difficulty] = None
    questions: list[QuestionRecord] = Field(default_factory=list)
    candidate_name: Optional[str] = Field(default=None, alias="candidateName")
    interviewer_name: Optional[str] = Field(default=None, alias="interviewerName")
    job_title: Optional[str] = Field(default=None, alias="jobTitle")
    seniority_level: Optional[SeniorityLevel] = Field(default=None, alias="seniorityLevel")
    role_type: Optional[RoleType] = Field(default=None, alias="roleType")
    tech_stack: list[str] = Field(default_factory=list, alias="techStack")
    department: Optional[str] = None
    default_question_type: Optional[QuestionType] = Field(default=None, alias="defaultQuestionType")
    default_difficulty: Optional[Difficulty] = Field(default=None, alias="defaultDifficulty")
    status: RoomStatus = RoomStatus.ACTIVE
    consent_given: Optional[bool] = Field(default=None, alias="consentGiven")
    consent_at: Optional[str] = Field(default=None, alias="consentAt")
    created_at: Optional[str] = Field(default=None, alias="createdAt")
    timestamp: Optional[str] = None

    @field_validator("tech_stack", mode="before")
    @classmethod
    def normalize_tech_stack(cls, value: Any) -> Any:
        return split_tech_stack(value)

    def find_question(self, question_id: str) -> Optional[QuestionRecord]:
        for question in self.questions:
            if question.question_id == question_id:
                return question
        return None


class AnswerRecord(StoredModel):
    """Answer transcript at ``interviews/{roomId}/answers/{questionId}``."""

    question_id: str = Field(..., alias="questionId", min_length=1)
    transcript: str = ""
    is_complete: bool = Field(default=False, alias="isComplete")
    source: AnswerSource = AnswerSource.SPEECH
    timestamp: Optional[str] = None


class FinalSummaryRecord(StoredModel):
    """
    Immutable outcome at ``interviews/{roomId}/summary/final``.

    Written exactly once when the interviewer submits the review step.
    """
    final_summary: str = Field(..., alias="finalSummary")
    interviewer_notes: str = Field(default="", alias="interviewerNotes")
    final_decision: HiringDecision = Field(..., alias="finalDecision")
    completed_at: Optional[str] = Field(default=None, alias="completedAt")
    completed_by: ParticipantRole = Field(
        default=ParticipantRole.INTERVIEWER, alias="completedBy"
    )


class ChatMessage(StoredModel):
    """
    A chat frame on the room side channel.

    Clients send ``type``, ``message``, ``sender`` and ``role``; the hub
    stamps ``id`` and ``timestamp`` before fan-out.
    """
    type: Literal["chat_message"] = "chat_message"
    message: str = Field(..., min_length=1)
    sender: str = Field(..., min_length=1)
    role: ParticipantRole
    id: Optional[str] = None
    timestamp: Optional[str] = None


class ConsentRecord(StoredModel):
    """Candidate recording consent at ``interviews/{roomId}/consent/candidate``."""

    room_id: str = Field(..., alias="roomId", min_length=1)
    consent_given: bool = Field(..., alias="consentGiven")
    timestamp: Optional[str] = Field(default=None, description="Client-side consent time")
    recorded_at: Optional[str] = Field(default=None, alias="recordedAt")


class CandidateFeedback(StoredModel):
    """Exit-interview form at ``interviews/{roomId}/feedback/candidate``."""

    overall_experience: int = Field(..., alias="overallExperience", ge=1, le=5)
    interview_difficulty: Literal["too-easy", "just-right", "too-hard"] = Field(
        ..., alias="interviewDifficulty"
    )
    platform_usability: int = Field(..., alias="platformUsability", ge=1, le=5)
    technical_issues: bool = Field(default=False, alias="technicalIssues")
    technical_issues_description: str = Field(default="", alias="technicalIssuesDescription")
    interviewer_rating: int = Field(..., alias="interviewerRating", ge=1, le=5)
    questions_relevant: bool = Field(default=True, alias="questionsRelevant")
    questions_quality: int = Field(..., alias="questionsQuality", ge=1, le=5)
    improvement_suggestions: str = Field(default="", alias="improvementSuggestions")
    would_recommend: bool = Field(default=True, alias="wouldRecommend")
    additional_comments: str = Field(default="", alias="additionalComments")
    submitted_at: Optional[str] = Field(default=None, alias="submittedAt")


class InterviewTemplate(StoredModel):
    """Reusable interview template at ``templates/{templateId}``."""

    template_id: Optional[str] = Field(default=None, alias="templateId")
    name: str = Field(..., min_length=1)
    description: str = ""
    job_title: str = Field(..., alias="jobTitle", min_length=1)
    seniority_level: SeniorityLevel = Field(default=SeniorityLevel.MID, alias="seniorityLevel")
    role_type: RoleType = Field(default=RoleType.FULLSTACK, alias="roleType")
    tech_stack: list[str] = Field(default_factory=list, alias="techStack")
    department: str = "Engineering"
    default_question_type: QuestionType = Field(
        default=QuestionType.CODING, alias="defaultQuestionType"
    )
    default_difficulty: Difficulty = Field(default=Difficulty.MEDIUM, alias="defaultDifficulty")
    created_at: Optional[str] = Field(default=None, alias="createdAt")
    usage_count: int = Field(default=0, alias="usageCount", ge=0)

    @field_validator("tech_stack", mode="before")
    @classmethod
    def normalize_tech_stack(cls, value: Any) -> Any:
        return split_tech_stack(value)


class ReportMetadata(StoredModel):
    """Summary flags returned alongside report markup."""

    question_count: int = Field(..., alias="questionCount", ge=0)
    has_code: bool = Field(..., alias="hasCode")
    has_answers: bool = Field(..., alias="hasAnswers")


class InterviewReport(StoredModel):
    """Downloadable report: self-contained HTML plus metadata."""

    success: bool = True
    html_content: str = Field(..., alias="htmlContent")
    candidate_name: str = Field(..., alias="candidateName")
    report_data: ReportMetadata = Field(..., alias="reportData")


class InterviewMaterial(BaseModel):
    """
    Everything gathered from a room for summarization and reporting.

    Answers are keyed by question id; questions without an answer record
    are simply absent from the mapping.
    """
    room: InterviewRoomDocument
    answers: dict[str, AnswerRecord] = Field(default_factory=dict)
    summary: Optional[FinalSummaryRecord] = None

    @property
    def has_code(self) -> bool:
        return bool(self.room.code.strip())

    @property
    def has_answers(self) -> bool:
        return any(answer.transcript.strip() for answer in self.answers.values())
