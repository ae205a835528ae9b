"""
Role profile registry.
"""

from __future__ import annotations

from role_profiles.base import RoleProfile
from role_profiles.candidate import CandidateProfile
from role_profiles.interviewer import InterviewerProfile


def _build_registry() -> dict[str, RoleProfile]:
    profiles: tuple[RoleProfile, ...] = (
        InterviewerProfile(),
        CandidateProfile(),
    )
    return {profile.role.value: profile for profile in profiles}


_REGISTRY = _build_registry()


def available_roles() -> tuple[str, ...]:
    """Return all supported role ids."""
    return tuple(sorted(_REGISTRY.keys()))


def load_role_profile(role: object) -> RoleProfile:
    """Load the profile for a role id or ParticipantRole."""
    raw = getattr(role, "value", role)
    normalized = str(raw or "").strip().lower()
    if not normalized:
        raise ValueError("Role is empty. Pass 'interviewer' or 'candidate'.")

    profile = _REGISTRY.get(normalized)
    if profile is None:
        supported = ", ".join(available_roles())
        raise ValueError(f"Unknown role '{raw}'. Supported roles: {supported}.")
    return profile
