"""Tests for runtime settings and environment overrides."""

from __future__ import annotations

import logging

import pytest

from codepair.services.settings import Settings, is_placeholder_api_key, redact_secret


def test_defaults() -> None:
    settings = Settings()

    assert settings.max_tool_rounds == 5
    assert settings.max_context_tokens == 4000
    assert settings.has_api_key is False


def test_env_overrides_are_typed() -> None:
    environ = {
        "CODEPAIR_API_KEY": "sk-live",
        "CODEPAIR_MODEL": "tiny",
        "CODEPAIR_MAX_TOOL_ROUNDS": "7",
        "CODEPAIR_TEMPERATURE": "0.2",
        "CODEPAIR_STREAMING": "off",
        "CODEPAIR_DEBUG_LOGGING": "yes",
    }

    settings = Settings.from_env(environ)

    assert settings.api_key == "sk-live"
    assert settings.model == "tiny"
    assert settings.max_tool_rounds == 7
    assert settings.temperature == pytest.approx(0.2)
    assert settings.streaming_enabled is False
    assert settings.debug_logging is True
    assert settings.has_api_key is True


def test_environment_wins_over_runtime_overrides() -> None:
    settings = Settings.from_env({"CODEPAIR_MODEL": "from-env"}, model="from-code", turn_timeout=12.0)

    assert settings.model == "from-env"
    assert settings.turn_timeout == 12.0


def test_invalid_numbers_are_ignored_with_warning(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.WARNING, logger="codepair.services.settings"):
        settings = Settings.from_env({"CODEPAIR_MAX_ATTEMPTS": "many", "CODEPAIR_TOOL_TIMEOUT": "soon"})

    assert settings.max_attempts == Settings().max_attempts
    assert settings.tool_timeout == Settings().tool_timeout
    assert "CODEPAIR_MAX_ATTEMPTS" in caplog.text
    assert "CODEPAIR_TOOL_TIMEOUT" in caplog.text


def test_unknown_runtime_overrides_are_ignored() -> None:
    assert Settings.from_env({}, not_a_setting=1) == Settings()


@pytest.mark.parametrize(
    ("value", "expected"),
    [(None, True), ("", True), ("API_KEY_NOT_SET", True), (" your-api-key ", True), ("sk-real", False)],
)
def test_placeholder_detection(value: str | None, expected: bool) -> None:
    assert is_placeholder_api_key(value) is expected


def test_redact_secret() -> None:
    assert redact_secret("") == ""
    assert redact_secret("abc") == "***"
    assert redact_secret("sk-123456") == "sk*****56"
