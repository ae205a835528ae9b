"""
Candidate role profile.
"""

from __future__ import annotations

from interview_room.models import ParticipantRole
from role_profiles.base import BaseRoleProfile, RoleCapabilities


class CandidateProfile(BaseRoleProfile):
    """Answers questions. Capture follows the active question; errors stay quiet."""

    role = ParticipantRole.CANDIDATE
    display_name = "Candidate"
    capabilities = RoleCapabilities(
        can_send_questions=False,
        can_complete_interview=False,
        can_download_report=False,
        requires_consent=True,
        auto_start_capture=True,
        surfaces_speech_errors=False,
    )
    post_interview_route = "exit_interview"
