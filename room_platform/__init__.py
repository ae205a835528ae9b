"""Interview room platform settings package."""

from room_platform.settings_loader import (
    DEFAULT_SETTINGS_PATH,
    PLATFORM_NAME,
    load_platform_settings,
)
from room_platform.settings_models import (
    PlatformSettings,
    ReportSettings,
    RouteSettings,
    SpeechSettings,
    SummarizerSettings,
    SyncSettings,
)

__all__ = [
    "load_platform_settings",
    "DEFAULT_SETTINGS_PATH",
    "PLATFORM_NAME",
    "PlatformSettings",
    "ReportSettings",
    "RouteSettings",
    "SpeechSettings",
    "SummarizerSettings",
    "SyncSettings",
]
