"""Host-facing services (configuration)."""

from .settings import PLACEHOLDER_API_KEYS, Settings, is_placeholder_api_key, redact_secret

__all__ = ["Settings", "PLACEHOLDER_API_KEYS", "is_placeholder_api_key", "redact_secret"]
