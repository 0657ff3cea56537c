"""Error hierarchy for the orchestration core.

Every error carries a machine-readable ``error_code`` and serializes to a
dictionary so it can be surfaced to the model (tool results) or the host UI
(warning turns) in the same shape.
"""

from __future__ import annotations

from typing import Any, ClassVar, Mapping

__all__ = [
    "ErrorCode",
    "CodepairError",
    "ConfigurationError",
    "GatewayError",
    "TransientGatewayError",
    "ResponseValidationError",
    "RoutingError",
    "ToolExecutionError",
    "LoopDetectedError",
    "RecursionLimitError",
    "MaxRoundsExceededError",
    "PatchMatchError",
    "TurnCancelledError",
]


class ErrorCode:
    """Constants for error codes carried by :class:`CodepairError`."""

    CONFIGURATION = "configuration"
    GATEWAY = "gateway"
    GATEWAY_TRANSIENT = "gateway_transient"
    INVALID_RESPONSE = "invalid_response"
    ROUTING = "routing"
    TOOL_FAILED = "tool_failed"
    LOOP_DETECTED = "loop_detected"
    RECURSION_LIMIT = "recursion_limit"
    MAX_ROUNDS = "max_rounds"
    PATCH_MATCH = "patch_match"
    CANCELLED = "cancelled"


class CodepairError(Exception):
    """Base class for all errors raised by the orchestration core."""

    error_code: ClassVar[str] = "internal_error"
    retryable: ClassVar[bool] = False

    def __init__(
        self,
        message: str,
        *,
        details: Mapping[str, Any] | None = None,
        suggestion: str = "",
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details: dict[str, Any] = dict(details or {})
        self.suggestion = suggestion

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"error": self.error_code, "message": self.message}
        if self.details:
            result["details"] = dict(self.details)
        if self.suggestion:
            result["suggestion"] = self.suggestion
        return result

    def __str__(self) -> str:
        return self.message


class ConfigurationError(CodepairError):
    """Missing or placeholder credentials and other unusable settings."""

    error_code = ErrorCode.CONFIGURATION


class GatewayError(CodepairError):
    """Upstream failure that is not worth retrying (4xx, malformed payloads)."""

    error_code = ErrorCode.GATEWAY

    def __init__(self, message: str, *, status_code: int | None = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.status_code = status_code
        if status_code is not None:
            self.details.setdefault("status_code", status_code)


class TransientGatewayError(GatewayError):
    """5xx, 429, timeouts and connection failures."""

    error_code = ErrorCode.GATEWAY_TRANSIENT
    retryable = True


class ResponseValidationError(CodepairError):
    """The model answered, but the reply is unusable."""

    error_code = ErrorCode.INVALID_RESPONSE
    retryable = True

    def __init__(self, message: str, *, reason: str, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.reason = reason
        self.details.setdefault("reason", reason)


class RoutingError(CodepairError):
    """A routing strategy failed; the router skips it."""

    error_code = ErrorCode.ROUTING


class ToolExecutionError(CodepairError):
    """A tool call failed. Captured as a failed result, never fatal to a turn."""

    error_code = ErrorCode.TOOL_FAILED

    def __init__(self, message: str, *, tool_name: str, call_id: str | None = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.tool_name = tool_name
        self.call_id = call_id
        self.details.setdefault("tool_name", tool_name)


class LoopDetectedError(CodepairError):
    """The model kept issuing an identical round of tool calls."""

    error_code = ErrorCode.LOOP_DETECTED

    def __init__(self, signature: str, repeats: int) -> None:
        super().__init__(
            f"Infinite loop detected: {signature} called {repeats + 1} times with identical "
            "parameters. Stopping tool execution.",
            details={"signature": signature, "repeats": repeats},
            suggestion="Rephrase the request or provide the missing information directly.",
        )
        self.signature = signature
        self.repeats = repeats


class RecursionLimitError(CodepairError):
    """Nested tool expansion went deeper than allowed."""

    error_code = ErrorCode.RECURSION_LIMIT

    def __init__(self, message: str, *, limit: int, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.limit = limit
        self.details.setdefault("limit", limit)


class MaxRoundsExceededError(RecursionLimitError):
    """The model asked for more tool rounds than a turn allows."""

    error_code = ErrorCode.MAX_ROUNDS

    def __init__(self, limit: int) -> None:
        super().__init__(
            "Maximum tool execution rounds reached. Stopping to prevent infinite loops.",
            limit=limit,
        )


class PatchMatchError(CodepairError):
    """Raised when search text cannot be located in the target file."""

    error_code = ErrorCode.PATCH_MATCH

    def __init__(self, message: str, *, path: str, search: str = "", **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.path = path
        self.search = search
        self.details.setdefault("path", path)
        if search:
            self.details.setdefault("search", _preview(search))


class TurnCancelledError(CodepairError):
    """The host cancelled the turn; nothing is committed."""

    error_code = ErrorCode.CANCELLED


def _preview(text: str, limit: int = 120) -> str:
    compact = text.strip()
    if len(compact) <= limit:
        return compact
    return compact[: limit - 3] + "..."
