"""Tests for platform settings loading, route building and role profiles."""

from __future__ import annotations

import json

import pytest

from interview_room.models import ParticipantRole
from interview_room.pubsub import NotificationAction
from interview_room.speech import RecognitionErrorKind
from role_profiles import available_roles, load_role_profile
from room_platform import DEFAULT_SETTINGS_PATH, PlatformSettings, load_platform_settings
from room_platform.settings_models import RouteSettings


def test_load_default_settings_from_explicit_path() -> None:
    """Bundled settings load and carry the documented defaults."""
    settings, loaded_path = load_platform_settings(str(DEFAULT_SETTINGS_PATH))

    assert settings.platform_id == "interview-room"
    assert loaded_path == DEFAULT_SETTINGS_PATH.resolve()
    assert settings.sync.debounce_ms == 500
    assert settings.sync.debounce_seconds == 0.5
    assert settings.speech.max_network_retries == 1
    assert settings.speech.network_retry_delay_seconds == 1.0


def test_settings_path_is_required(monkeypatch) -> None:
    """Settings path must be provided via arg or PLATFORM_SETTINGS_PATH."""
    monkeypatch.delenv("PLATFORM_SETTINGS_PATH", raising=False)
    with pytest.raises(RuntimeError, match="required"):
        load_platform_settings()


def test_settings_path_from_environment(monkeypatch) -> None:
    """PLATFORM_SETTINGS_PATH is used when no explicit path is passed."""
    monkeypatch.setenv("PLATFORM_SETTINGS_PATH", str(DEFAULT_SETTINGS_PATH))
    settings, _ = load_platform_settings()
    assert settings.display_name == "Interview Room"


def test_missing_settings_file(tmp_path) -> None:
    """A path that does not exist fails fast."""
    with pytest.raises(RuntimeError, match="not found"):
        load_platform_settings(str(tmp_path / "absent.json"))


def test_invalid_json(tmp_path) -> None:
    """Malformed JSON is reported as a RuntimeError."""
    settings_path = tmp_path / "broken.json"
    settings_path.write_text("{not json", encoding="utf-8")
    with pytest.raises(RuntimeError, match="not valid JSON"):
        load_platform_settings(str(settings_path))


def test_unknown_fields_rejected(tmp_path) -> None:
    """Settings validation forbids unknown keys."""
    raw = json.loads(DEFAULT_SETTINGS_PATH.read_text(encoding="utf-8"))
    raw["sync"]["debounce_seconds"] = 1
    settings_path = tmp_path / "extra.json"
    settings_path.write_text(json.dumps(raw), encoding="utf-8")

    with pytest.raises(RuntimeError, match="validation failed"):
        load_platform_settings(str(settings_path))


def test_invalid_reasoning_effort() -> None:
    """Reasoning effort is limited to low, medium and high."""
    with pytest.raises(ValueError):
        PlatformSettings.model_validate(
            {
                "platform_id": "x",
                "display_name": "X",
                "summarizer": {"reasoning_effort": "extreme"},
            }
        )


def test_route_templates_require_every_route() -> None:
    """All navigation targets must be configured."""
    with pytest.raises(ValueError, match="missing"):
        RouteSettings(templates={"home": "/"})


def test_route_templates_only_allow_room_id() -> None:
    """Templates may only use the room_id placeholder."""
    templates = dict(RouteSettings().templates)
    templates["review"] = "/review/{interview}"
    with pytest.raises(ValueError, match="room_id"):
        RouteSettings(templates=templates)


def test_build_route() -> None:
    """Routes render the room id and an optional role query."""
    routes = RouteSettings()

    assert routes.build_route("interview", role="candidate", room_id="abc") == "/interview/abc?role=candidate"
    assert routes.build_route("dashboard") == "/dashboard"
    with pytest.raises(ValueError, match="Unknown route"):
        routes.build_route("settings")
    with pytest.raises(ValueError, match="requires parameter"):
        routes.build_route("review")


# =============================================================================
# Role profiles
# =============================================================================


def test_available_roles() -> None:
    """Exactly two roles are registered."""
    assert available_roles() == ("candidate", "interviewer")


@pytest.mark.parametrize("role", ["interviewer", " Interviewer ", ParticipantRole.INTERVIEWER])
def test_load_interviewer_profile(role) -> None:
    """Role ids are normalized and enum values accepted."""
    profile = load_role_profile(role)

    assert profile.role is ParticipantRole.INTERVIEWER
    assert profile.capabilities.can_complete_interview is True
    assert profile.capabilities.auto_start_capture is False
    assert profile.capabilities.surfaces_speech_errors is True
    assert profile.post_interview_route == "review"


def test_candidate_profile() -> None:
    """The candidate answers, consents and stays quiet about speech errors."""
    profile = load_role_profile("candidate")

    assert profile.capabilities.auto_start_capture is True
    assert profile.capabilities.requires_consent is True
    assert profile.capabilities.can_download_report is False
    assert profile.describe_speech_error(RecognitionErrorKind.NETWORK) is None
    assert profile.post_interview_route == "exit_interview"


def test_interviewer_speech_notices() -> None:
    """Every surfaced error has a notice; aborted is never shown."""
    profile = load_role_profile("interviewer")

    busy = profile.describe_speech_error(RecognitionErrorKind.DEVICE_BUSY)
    assert busy is not None
    assert NotificationAction.SWITCH_TO_TEXT in busy.actions
    assert profile.describe_speech_error(RecognitionErrorKind.ABORTED) is None


@pytest.mark.parametrize("role", ["", None, "observer"])
def test_unknown_role_rejected(role) -> None:
    """Empty and unknown roles raise ValueError."""
    with pytest.raises(ValueError):
        load_role_profile(role)
