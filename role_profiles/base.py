"""
Role profile contract.

A role profile is the capability set of one party in a room. Components ask
the profile instead of branching on the role string: whether capture starts
on its own, whether speech errors are shown, which routes follow the
interview.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar, Optional, Protocol

from interview_room.models import ParticipantRole
from interview_room.pubsub import NotificationAction
from interview_room.speech import RecognitionErrorKind


@dataclass(frozen=True)
class RoleCapabilities:
    """What a participant may do in a room."""

    can_send_questions: bool
    can_complete_interview: bool
    can_download_report: bool
    requires_consent: bool
    auto_start_capture: bool
    surfaces_speech_errors: bool


@dataclass(frozen=True)
class SpeechErrorNotice:
    """User-facing description of a recognition failure."""

    title: str
    message: str
    actions: tuple[NotificationAction, ...] = ()


class RoleProfile(Protocol):
    role: ParticipantRole
    display_name: str
    capabilities: RoleCapabilities
    post_interview_route: str

    def describe_speech_error(self, kind: RecognitionErrorKind) -> Optional[SpeechErrorNotice]:
        ...


class BaseRoleProfile:
    """Defaults shared by both profiles: no notices, no extra capabilities."""

    role: ClassVar[ParticipantRole]
    display_name: ClassVar[str]
    capabilities: ClassVar[RoleCapabilities]
    post_interview_route: ClassVar[str]

    def describe_speech_error(self, kind: RecognitionErrorKind) -> Optional[SpeechErrorNotice]:
        return None

    def __repr__(self) -> str:
        return f"{type(self).__name__}(role={self.role.value!r})"
