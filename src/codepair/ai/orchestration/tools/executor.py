"""Tool executor: resolve, validate, invoke and normalize a single tool call.

Every failure mode (unknown tool, schema violation, timeout, exception
inside the tool) surfaces as :class:`ToolExecutionError`, which the
scheduler turns into a failed result for the model to read.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Mapping

from jsonschema import Draft7Validator, ValidationError

from ...errors import ToolExecutionError, TurnCancelledError
from ..types import ToolCall
from .registry import ToolRegistry
from .types import Tool, ToolExpansion, ToolOutput, ToolReturn

__all__ = ["ExecutorConfig", "ToolExecutor"]

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class ExecutorConfig:
    """Configuration for :class:`ToolExecutor`.

    Attributes:
        default_timeout: Per-call timeout in seconds (``None`` disables it).
        validate_arguments: Check arguments against the tool's JSON schema.
        log_arguments: Include arguments in debug logs.
        log_results: Include results in debug logs.
    """

    default_timeout: float | None = 30.0
    validate_arguments: bool = True
    log_arguments: bool = False
    log_results: bool = False


class ToolExecutor:
    """Invoke registered tools on behalf of the tool scheduler."""

    def __init__(self, registry: ToolRegistry, config: ExecutorConfig | None = None) -> None:
        self._registry = registry
        self._config = config or ExecutorConfig()
        self._validators: dict[str, tuple[Tool, Draft7Validator]] = {}

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    @property
    def config(self) -> ExecutorConfig:
        return self._config

    async def execute(self, call: ToolCall, *, timeout: float | None = None) -> ToolOutput | ToolExpansion:
        """Run ``call`` and return its normalized output.

        Raises:
            ToolExecutionError: If the call cannot be completed.
        """
        if self._config.log_arguments:
            LOGGER.debug(
                "Executing tool %s (call_id=%s) with arguments: %s",
                call.name,
                call.call_id,
                call.arguments,
            )
        else:
            LOGGER.debug("Executing tool %s (call_id=%s)", call.name, call.call_id)

        tool = self._registry.get(call.name)
        if tool is None:
            raise ToolExecutionError(
                f"Unknown tool '{call.name}'",
                tool_name=call.name,
                call_id=call.call_id,
                suggestion=f"Available tools: {', '.join(sorted(self._registry.names())) or 'none'}",
            )

        if self._config.validate_arguments:
            self._validate(tool, call)

        effective_timeout = timeout if timeout is not None else self._config.default_timeout
        start_time = time.perf_counter()
        try:
            if effective_timeout is not None and effective_timeout > 0:
                raw = await asyncio.wait_for(tool.execute(call.arguments), timeout=effective_timeout)
            else:
                raw = await tool.execute(call.arguments)
        except asyncio.TimeoutError as exc:
            duration_ms = (time.perf_counter() - start_time) * 1000
            LOGGER.warning(
                "Tool %s timed out after %.1fms (timeout=%.1fs)",
                call.name,
                duration_ms,
                effective_timeout,
            )
            raise ToolExecutionError(
                f"Tool '{call.name}' timed out after {effective_timeout:.1f}s",
                tool_name=call.name,
                call_id=call.call_id,
            ) from exc
        except (ToolExecutionError, TurnCancelledError):
            raise
        except Exception as exc:
            duration_ms = (time.perf_counter() - start_time) * 1000
            LOGGER.warning("Tool %s failed after %.1fms: %s", call.name, duration_ms, exc)
            raise ToolExecutionError(
                str(exc) or exc.__class__.__name__,
                tool_name=call.name,
                call_id=call.call_id,
            ) from exc

        duration_ms = (time.perf_counter() - start_time) * 1000
        result = _normalize(raw)
        if self._config.log_results:
            LOGGER.debug("Tool %s completed in %.1fms with result: %s", call.name, duration_ms, result)
        else:
            LOGGER.debug("Tool %s completed in %.1fms", call.name, duration_ms)
        return result

    def _validate(self, tool: Tool, call: ToolCall) -> None:
        cached = self._validators.get(call.name)
        if cached is None or cached[0] is not tool:
            validator = Draft7Validator(tool.definition.json_schema())
            self._validators[call.name] = (tool, validator)
        else:
            validator = cached[1]
        try:
            validator.validate(dict(call.arguments))
        except ValidationError as error:
            raise ToolExecutionError(
                f"Invalid arguments for '{call.name}': {_format_validation_error(error)}",
                tool_name=call.name,
                call_id=call.call_id,
                suggestion="Check the tool's parameter schema and retry.",
            ) from error


def _normalize(raw: ToolReturn) -> ToolOutput | ToolExpansion:
    if isinstance(raw, (ToolOutput, ToolExpansion)):
        return raw
    if raw is None:
        return ToolOutput.ok()
    if isinstance(raw, str):
        return ToolOutput.ok(raw)
    if isinstance(raw, Mapping):
        if "success" in raw:
            return ToolOutput.from_mapping(raw)
        return ToolOutput(success=True, output=_serialize(raw), data=raw)
    return ToolOutput.ok(_serialize(raw))


def _serialize(value: Any) -> str:
    try:
        return json.dumps(value, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        return str(value)


def _format_validation_error(error: ValidationError) -> str:
    path = ".".join(str(part) for part in error.path)
    if path:
        return f"{path}: {error.message}"
    return error.message
