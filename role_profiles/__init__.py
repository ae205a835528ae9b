"""
Role profile entrypoints.
"""

from role_profiles.base import (
    BaseRoleProfile,
    RoleCapabilities,
    RoleProfile,
    SpeechErrorNotice,
)
from role_profiles.registry import available_roles, load_role_profile

__all__ = [
    "BaseRoleProfile",
    "RoleCapabilities",
    "RoleProfile",
    "SpeechErrorNotice",
    "available_roles",
    "load_role_profile",
]
