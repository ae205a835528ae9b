"""Load and validate platform settings."""

from __future__ import annotations

import json
import os
from pathlib import Path

from pydantic import ValidationError

from room_platform.settings_models import PlatformSettings


PLATFORM_NAME = "Interview Room"

DEFAULT_SETTINGS_PATH = Path(__file__).parent / "settings" / "default.json"


def resolve_settings_path(settings_path: str | None = None) -> Path:
    """Resolve explicit path or PLATFORM_SETTINGS_PATH. Settings are required."""
    raw_path = (settings_path or os.environ.get("PLATFORM_SETTINGS_PATH") or "").strip()
    if not raw_path:
        raise RuntimeError(
            "Platform settings path is required. "
            "Set PLATFORM_SETTINGS_PATH or pass --platform-settings."
        )
    return Path(raw_path).expanduser()


def load_platform_settings(
    settings_path: str | None = None,
) -> tuple[PlatformSettings, Path]:
    """Load platform settings JSON from disk with strict validation."""
    resolved_path = resolve_settings_path(settings_path).resolve()
    if not resolved_path.exists():
        raise RuntimeError(
            f"Platform settings file not found at '{resolved_path}'. "
            "Set PLATFORM_SETTINGS_PATH or provide a valid --platform-settings path."
        )

    try:
        with open(resolved_path, "r", encoding="utf-8") as settings_file:
            raw_settings = json.load(settings_file)
    except OSError as exc:
        raise RuntimeError(
            f"Failed to read platform settings '{resolved_path}': {exc}"
        ) from exc
    except json.JSONDecodeError as exc:
        raise RuntimeError(
            f"Platform settings at '{resolved_path}' are not valid JSON: {exc}"
        ) from exc

    try:
        return PlatformSettings.model_validate(raw_settings), resolved_path
    except ValidationError as exc:
        raise RuntimeError(
            f"Platform settings validation failed for '{resolved_path}': {exc}"
        ) from exc
