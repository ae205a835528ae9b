"""
Interview Room Package.

Shared-state collaboration between an interviewer and a candidate: a live
room document both parties edit, spoken answers captured per question, and
the completion flow that turns a room into a final summary record.

Components:
    - InMemoryDocumentStore / RemoteDocumentStore: Document store with live subscriptions
    - CodeSync: Debounced code writer plus echo-suppressing subscriber
    - SpeechCapture / TranscriptListener: Per-question answer capture and display
    - CompletionFlow: Confirm, generate, review and submit state machine
    - InterviewRoomManager: Room, question, consent, summary and template operations
    - InterviewSummarizer: Generative text on the OpenAI Agents SDK
    - ChatHub: Room-scoped chat fan-out
    - RoomArchiveWriter: Persists completed interviews to JSON files
    - NotificationPublisher: Transient user notifications
    - InterviewApiClient: HTTP client for the room service

Example:
    >>> from interview_room import CodeSync, InMemoryDocumentStore, ParticipantRole
    >>>
    >>> store = InMemoryDocumentStore()
    >>> sync = CodeSync(store, "k3v9x2m1qa", ParticipantRole.CANDIDATE)
    >>> await sync.start()
    >>> sync.handle_local_change("def solve():\\n    return 42\\n")

Last Grunted: 10/17/2026
"""

from .models import (
    AnswerRecord,
    AnswerSource,
    CandidateFeedback,
    ChatMessage,
    ConsentRecord,
    Difficulty,
    FinalSummaryRecord,
    HiringDecision,
    InterviewMaterial,
    InterviewReport,
    InterviewRoomDocument,
    InterviewTemplate,
    ParticipantRole,
    QuestionRecord,
    QuestionType,
    ReportMetadata,
    RoleType,
    RoomStatus,
    SeniorityLevel,
)

from .store import (
    SERVER_TIMESTAMP,
    DocumentSnapshot,
    DocumentStore,
    DocumentStoreError,
    InMemoryDocumentStore,
    InvalidPathError,
    Subscription,
)

from .remote_store import DocumentSocketHandler, RemoteDocumentStore

from .scheduling import ScheduledTask, TaskState

from .pubsub import (
    Notification,
    NotificationAction,
    NotificationLevel,
    NotificationPublisher,
)

from .code_sync import CodeSync, DebouncedWriter, EchoSuppressingSubscriber, SyncState

from .speech import (
    CaptureState,
    RecognitionErrorKind,
    ScriptedEvent,
    ScriptedRecognitionEngine,
    SpeechCapture,
    TranscriptListener,
)

from .completion import (
    CompletionError,
    CompletionFlow,
    CompletionNotAllowedError,
    CompletionStage,
)

from .session import (
    InterviewRoomManager,
    RoomClosedError,
    RoomNotFoundError,
    SummaryAlreadySubmittedError,
    TemplateNotFoundError,
)

from .summarizer import InterviewSummarizer, SummaryGenerationError

from .report import build_report

from .archive import RoomArchiveWriter

from .chat import ChatHub

from .api_client import InterviewApiClient, InterviewApiError


__all__ = [
    # Models
    "AnswerRecord",
    "AnswerSource",
    "CandidateFeedback",
    "ChatMessage",
    "ConsentRecord",
    "Difficulty",
    "FinalSummaryRecord",
    "HiringDecision",
    "InterviewMaterial",
    "InterviewReport",
    "InterviewRoomDocument",
    "InterviewTemplate",
    "ParticipantRole",
    "QuestionRecord",
    "QuestionType",
    "ReportMetadata",
    "RoleType",
    "RoomStatus",
    "SeniorityLevel",
    # Store
    "SERVER_TIMESTAMP",
    "DocumentSnapshot",
    "DocumentStore",
    "DocumentStoreError",
    "InMemoryDocumentStore",
    "InvalidPathError",
    "Subscription",
    "DocumentSocketHandler",
    "RemoteDocumentStore",
    # Scheduling
    "ScheduledTask",
    "TaskState",
    # Notifications
    "Notification",
    "NotificationAction",
    "NotificationLevel",
    "NotificationPublisher",
    # Code sync
    "CodeSync",
    "DebouncedWriter",
    "EchoSuppressingSubscriber",
    "SyncState",
    # Speech
    "CaptureState",
    "RecognitionErrorKind",
    "ScriptedEvent",
    "ScriptedRecognitionEngine",
    "SpeechCapture",
    "TranscriptListener",
    # Completion
    "CompletionError",
    "CompletionFlow",
    "CompletionNotAllowedError",
    "CompletionStage",
    # Rooms
    "InterviewRoomManager",
    "RoomClosedError",
    "RoomNotFoundError",
    "SummaryAlreadySubmittedError",
    "TemplateNotFoundError",
    # Summaries and reports
    "InterviewSummarizer",
    "SummaryGenerationError",
    "build_report",
    "RoomArchiveWriter",
    # Chat
    "ChatHub",
    # Client
    "InterviewApiClient",
    "InterviewApiError",
]

__version__ = "0.3.0"
