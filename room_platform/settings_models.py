"""Platform settings models for the interview room service."""

from __future__ import annotations

import string
from typing import Any

from pydantic import BaseModel, Field, model_validator


class SyncSettings(BaseModel):
    """Shared editor synchronization."""

    debounce_ms: int = Field(default=500, ge=0, le=10_000)

    @property
    def debounce_seconds(self) -> float:
        return self.debounce_ms / 1000.0

    model_config = {"extra": "forbid"}


class SpeechSettings(BaseModel):
    """Speech capture defaults."""

    language: str = Field(default="en-US", min_length=2)
    network_retry_delay_ms: int = Field(default=1000, ge=0)
    max_network_retries: int = Field(default=1, ge=0, le=5)

    @property
    def network_retry_delay_seconds(self) -> float:
        return self.network_retry_delay_ms / 1000.0

    model_config = {"extra": "forbid"}


class SummarizerSettings(BaseModel):
    """Agent parameterization for summaries and generated questions."""

    model: str | None = None
    reasoning_effort: str | None = None
    instructions: str | None = None

    @model_validator(mode="after")
    def validate_effort(self) -> "SummarizerSettings":
        if self.reasoning_effort not in (None, "low", "medium", "high"):
            raise ValueError("summarizer.reasoning_effort must be low, medium or high")
        return self

    model_config = {"extra": "forbid"}


class ReportSettings(BaseModel):
    """Downloadable report content."""

    title: str = Field(default="Interview Report", min_length=1)
    include_code: bool = True
    include_transcripts: bool = True

    model_config = {"extra": "forbid"}


REQUIRED_ROUTES = (
    "home",
    "dashboard",
    "interview",
    "review",
    "exit_interview",
    "thank_you",
)


class RouteSettings(BaseModel):
    """Web navigation targets. Templates use ``{room_id}`` placeholders."""

    templates: dict[str, str] = Field(
        default_factory=lambda: {
            "home": "/",
            "dashboard": "/dashboard",
            "interview": "/interview/{room_id}",
            "review": "/interview/{room_id}/review",
            "exit_interview": "/candidate/{room_id}/exit-interview",
            "thank_you": "/candidate/{room_id}/thank-you",
        }
    )

    @model_validator(mode="after")
    def validate_templates(self) -> "RouteSettings":
        missing = [name for name in REQUIRED_ROUTES if name not in self.templates]
        if missing:
            raise ValueError(f"routes.templates is missing: {', '.join(missing)}")
        for name, template in self.templates.items():
            if not template.startswith("/"):
                raise ValueError(f"routes.templates.{name} must start with '/'")
            fields = {field for _, field, _, _ in string.Formatter().parse(template) if field}
            if not fields <= {"room_id"}:
                raise ValueError(f"routes.templates.{name} may only use {{room_id}}")
        return self

    def build_route(self, name: str, role: str | None = None, **params: Any) -> str:
        """Render a named route, appending ``?role=`` when a role is given."""
        try:
            template = self.templates[name]
        except KeyError as exc:
            raise ValueError(f"Unknown route '{name}'") from exc
        try:
            path = template.format(**params)
        except KeyError as exc:
            raise ValueError(f"Route '{name}' requires parameter {exc}") from exc
        return f"{path}?role={role}" if role else path

    model_config = {"extra": "forbid"}


class PlatformSettings(BaseModel):
    """Canonical configuration for one interview room deployment."""

    platform_id: str = Field(..., min_length=1)
    display_name: str = Field(..., min_length=1)
    sync: SyncSettings = Field(default_factory=SyncSettings)
    speech: SpeechSettings = Field(default_factory=SpeechSettings)
    summarizer: SummarizerSettings = Field(default_factory=SummarizerSettings)
    report: ReportSettings = Field(default_factory=ReportSettings)
    routes: RouteSettings = Field(default_factory=RouteSettings)

    model_config = {"extra": "forbid"}
