"""
Interviewer role profile.
"""

from __future__ import annotations

from typing import Optional

from interview_room.models import ParticipantRole
from interview_room.pubsub import NotificationAction
from interview_room.speech import RecognitionErrorKind
from role_profiles.base import BaseRoleProfile, RoleCapabilities, SpeechErrorNotice


_SWITCH = (NotificationAction.SWITCH_TO_TEXT,)

_SPEECH_NOTICES: dict[RecognitionErrorKind, SpeechErrorNotice] = {
    RecognitionErrorKind.PERMISSION_DENIED: SpeechErrorNotice(
        "Microphone access denied",
        "Allow microphone access in your browser settings, or switch to text mode.",
        _SWITCH,
    ),
    RecognitionErrorKind.DEVICE_BUSY: SpeechErrorNotice(
        "Microphone unavailable",
        "Another application may be using the microphone. Close it or switch to text mode.",
        _SWITCH,
    ),
    RecognitionErrorKind.NETWORK: SpeechErrorNotice(
        "Speech recognition disconnected",
        "The recognition service could not be reached after retrying.",
        (NotificationAction.RETRY, NotificationAction.SWITCH_TO_TEXT),
    ),
    RecognitionErrorKind.NO_SPEECH: SpeechErrorNotice(
        "No speech detected",
        "Check that the microphone is not muted, then start again.",
        (NotificationAction.RETRY,),
    ),
    RecognitionErrorKind.UNSUPPORTED: SpeechErrorNotice(
        "Speech recognition not supported",
        "This browser cannot transcribe speech. Answers can be typed instead.",
        _SWITCH,
    ),
    RecognitionErrorKind.UNKNOWN: SpeechErrorNotice(
        "Speech recognition failed",
        "Start capture again or switch to text mode.",
        (NotificationAction.RETRY, NotificationAction.SWITCH_TO_TEXT),
    ),
}


class InterviewerProfile(BaseRoleProfile):
    """Runs the room: questions, completion, reports. Sees every speech error."""

    role = ParticipantRole.INTERVIEWER
    display_name = "Interviewer"
    capabilities = RoleCapabilities(
        can_send_questions=True,
        can_complete_interview=True,
        can_download_report=True,
        requires_consent=False,
        auto_start_capture=False,
        surfaces_speech_errors=True,
    )
    post_interview_route = "review"

    def describe_speech_error(self, kind: RecognitionErrorKind) -> Optional[SpeechErrorNotice]:
        # aborted is always self-inflicted
        return _SPEECH_NOTICES.get(kind)
