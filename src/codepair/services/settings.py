"""Runtime settings for the orchestration core.

Persisting settings (and credentials) is the host's job; this module only
holds the defaults and layers ``CODEPAIR_*`` environment overrides on top.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields, replace
from typing import Any, Dict, Mapping

__all__ = [
    "Settings",
    "PLACEHOLDER_API_KEYS",
    "is_placeholder_api_key",
    "redact_secret",
]

LOGGER = logging.getLogger(__name__)

_ENV_OVERRIDES: Mapping[str, str] = {
    "CODEPAIR_API_KEY": "api_key",
    "CODEPAIR_BASE_URL": "base_url",
    "CODEPAIR_MODEL": "model",
    "CODEPAIR_STRONG_MODEL": "strong_model",
    "CODEPAIR_ORGANIZATION": "organization",
    "CODEPAIR_RULES_PATH": "rules_path",
    "CODEPAIR_LOG_DIR": "log_dir",
}
_BOOL_ENV_OVERRIDES: Mapping[str, str] = {
    "CODEPAIR_DEBUG_LOGGING": "debug_logging",
    "CODEPAIR_STREAMING": "streaming_enabled",
    "CODEPAIR_ENABLE_SUMMARIZATION": "enable_summarization",
}
_FLOAT_ENV_OVERRIDES: Mapping[str, str] = {
    "CODEPAIR_TEMPERATURE": "temperature",
    "CODEPAIR_REQUEST_TIMEOUT": "request_timeout",
    "CODEPAIR_CONNECT_TIMEOUT": "connect_timeout",
    "CODEPAIR_TURN_TIMEOUT": "turn_timeout",
    "CODEPAIR_TOOL_TIMEOUT": "tool_timeout",
    "CODEPAIR_RETRY_DELAY": "initial_retry_delay",
    "CODEPAIR_RETRY_BACKOFF": "retry_backoff_multiplier",
}
_INT_ENV_OVERRIDES: Mapping[str, str] = {
    "CODEPAIR_MAX_TOOL_ROUNDS": "max_tool_rounds",
    "CODEPAIR_MAX_TOOL_DEPTH": "max_tool_depth",
    "CODEPAIR_MAX_ATTEMPTS": "max_attempts",
    "CODEPAIR_MAX_OUTPUT_TOKENS": "max_output_tokens",
    "CODEPAIR_MAX_CONTEXT_TOKENS": "max_context_tokens",
    "CODEPAIR_RESERVED_OUTPUT_TOKENS": "reserved_output_tokens",
    "CODEPAIR_HISTORY_MAX_ENTRIES": "history_max_entries",
    "CODEPAIR_HISTORY_MAX_TOKENS": "history_max_tokens",
}
_TRUE_VALUES = {"1", "true", "yes", "on", "debug"}

PLACEHOLDER_API_KEYS: frozenset[str] = frozenset(
    {"", "api_key_not_set", "your-api-key", "your_api_key", "changeme", "sk-xxx"}
)


@dataclass(slots=True)
class Settings:
    """Knobs consumed by the gateway, router, optimizer and orchestrator."""

    base_url: str = "https://api.x.ai/v1"
    api_key: str = ""
    model: str = "grok-3-mini"
    strong_model: str = "grok-3"
    organization: str | None = None
    temperature: float = 0.7
    max_output_tokens: int = 4096
    request_timeout: float = 60.0
    connect_timeout: float = 10.0
    turn_timeout: float = 300.0
    max_attempts: int = 2
    initial_retry_delay: float = 0.5
    retry_backoff_multiplier: float = 2.0
    min_response_length: int = 10
    max_response_bytes: int = 100_000
    max_tool_rounds: int = 5
    max_tool_depth: int = 5
    loop_repeat_threshold: int = 2
    tool_timeout: float = 30.0
    max_context_tokens: int = 4000
    reserved_output_tokens: int = 1000
    min_messages_to_keep: int = 5
    enable_summarization: bool = True
    history_max_entries: int = 100
    history_max_tokens: int = 10_000
    length_routing_threshold: int = 1000
    streaming_enabled: bool = True
    rules_path: str = ".codepair/rules.md"
    max_file_bytes: int = 200_000
    debug_logging: bool = False
    log_dir: str | None = None

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None, **overrides: Any) -> "Settings":
        """Build settings from defaults, explicit overrides, then the environment."""

        settings = cls()
        if overrides:
            settings = _apply_overrides(settings, overrides, source="runtime")
        return settings.apply_env_overrides(environ)

    def apply_env_overrides(self, environ: Mapping[str, str] | None = None) -> "Settings":
        env = os.environ if environ is None else environ
        overrides: Dict[str, Any] = {}
        for env_name, field_name in _ENV_OVERRIDES.items():
            value = env.get(env_name)
            if value is not None:
                overrides[field_name] = value
        for env_name, field_name in _BOOL_ENV_OVERRIDES.items():
            value = env.get(env_name)
            if value is not None:
                overrides[field_name] = value.strip().lower() in _TRUE_VALUES
        for env_name, field_name in _INT_ENV_OVERRIDES.items():
            value = env.get(env_name)
            if value is None:
                continue
            try:
                overrides[field_name] = int(value, 10)
            except ValueError:
                LOGGER.warning(
                    "Environment override %s=%s is not a valid integer",
                    env_name,
                    value,
                )
        for env_name, field_name in _FLOAT_ENV_OVERRIDES.items():
            value = env.get(env_name)
            if value is None:
                continue
            try:
                overrides[field_name] = float(value)
            except ValueError:
                LOGGER.warning(
                    "Environment override %s=%s is not a valid float", env_name, value
                )
        if not overrides:
            return self
        return _apply_overrides(self, overrides, source="environment")

    @property
    def has_api_key(self) -> bool:
        return not is_placeholder_api_key(self.api_key)


def _apply_overrides(settings: Settings, overrides: Mapping[str, Any], *, source: str) -> Settings:
    allowed = {field.name for field in fields(Settings)}
    filtered = {key: value for key, value in overrides.items() if key in allowed and value is not None}
    unknown = sorted(set(overrides) - allowed)
    if unknown:
        LOGGER.debug("Ignoring unknown %s settings: %s", source, unknown)
    if filtered:
        LOGGER.debug("Applying %s settings overrides: %s", source, sorted(filtered))
        settings = replace(settings, **filtered)
    return settings


def is_placeholder_api_key(value: str | None) -> bool:
    """Return ``True`` when ``value`` is missing or an obvious placeholder."""

    return (value or "").strip().lower() in PLACEHOLDER_API_KEYS


def redact_secret(value: str) -> str:
    stripped = (value or "").strip()
    if not stripped:
        return ""
    if len(stripped) <= 4:
        return "*" * len(stripped)
    return f"{stripped[:2]}{'*' * (len(stripped) - 4)}{stripped[-2:]}"
