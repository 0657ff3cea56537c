"""Tool scheduling: bounded tool rounds, nested expansion and loop detection.

A *round* is the batch of tool calls carried by one model response. The
scheduler executes a round's calls strictly in emission order, turns every
failure into a failed :class:`ToolResult` for the model to read, and guards
the turn with three limits:

* ``max_rounds``: more rounds than this raises :class:`MaxRoundsExceededError`.
* ``loop_repeat_threshold``: that many consecutive repeats of an identical
  round (same names, same raw arguments) raises :class:`LoopDetectedError`
  before the repeated round runs.
* ``max_depth``: nested :class:`ToolExpansion` levels beyond this raise
  :class:`RecursionLimitError` before the deeper level starts.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Protocol, Sequence

from ..errors import (
    LoopDetectedError,
    MaxRoundsExceededError,
    RecursionLimitError,
    ToolExecutionError,
    TurnCancelledError,
)
from .tools.types import ToolExpansion, ToolOutput
from .types import Message, ModelResponse, ToolCall, ToolResult

__all__ = [
    "SchedulerConfig",
    "ToolInvoker",
    "ToolScheduler",
    "round_signature",
]

LOGGER = logging.getLogger(__name__)

ToolStartCallback = Callable[[ToolCall], None]
ToolResultCallback = Callable[[ToolCall, ToolResult], None]


class ToolInvoker(Protocol):
    """The scheduler's view of tool execution (see ``tools.executor``)."""

    async def execute(self, call: ToolCall, *, timeout: float | None = None) -> ToolOutput | ToolExpansion:
        ...


@dataclass(slots=True, frozen=True)
class SchedulerConfig:
    max_rounds: int = 5
    max_depth: int = 5
    loop_repeat_threshold: int = 2
    tool_timeout: float | None = 30.0


def round_signature(calls: Sequence[ToolCall]) -> str:
    """``name(arguments)`` of every call in the round, joined with ``;``."""
    return ";".join(call.signature for call in calls)


class ToolScheduler:
    """Per-turn tool loop state. Call :meth:`reset` at the start of each turn."""

    def __init__(
        self,
        invoker: ToolInvoker,
        config: SchedulerConfig | None = None,
        *,
        on_tool_start: ToolStartCallback | None = None,
        on_tool_result: ToolResultCallback | None = None,
    ) -> None:
        self._invoker = invoker
        self._config = config or SchedulerConfig()
        self._on_tool_start = on_tool_start
        self._on_tool_result = on_tool_result
        self._rounds = 0
        self._last_signature = ""
        self._repeat_count = 0

    @property
    def config(self) -> SchedulerConfig:
        return self._config

    @property
    def rounds(self) -> int:
        return self._rounds

    @property
    def repeat_count(self) -> int:
        return self._repeat_count

    @property
    def last_signature(self) -> str:
        return self._last_signature

    def reset(self) -> None:
        self._rounds = 0
        self._last_signature = ""
        self._repeat_count = 0

    def begin_round(self, calls: Sequence[ToolCall]) -> str:
        """Account for a new round and run the round/loop guards.

        Returns the round's signature.

        Raises:
            MaxRoundsExceededError: ``max_rounds`` rounds already ran this turn.
            LoopDetectedError: The round repeats the previous one too often.
        """
        if self._rounds >= self._config.max_rounds:
            LOGGER.warning("Maximum tool rounds (%s) reached", self._config.max_rounds)
            raise MaxRoundsExceededError(self._config.max_rounds)

        signature = round_signature(calls)
        if signature and signature == self._last_signature:
            self._repeat_count += 1
            LOGGER.debug("Tool round repeated (%s consecutive): %s", self._repeat_count, signature)
            if self._repeat_count >= self._config.loop_repeat_threshold:
                LOGGER.warning("Tool loop detected after %s repeats: %s", self._repeat_count, signature)
                raise LoopDetectedError(signature, self._repeat_count)
        else:
            self._repeat_count = 0
            self._last_signature = signature

        self._rounds += 1
        return signature

    async def run_round(
        self,
        calls: Sequence[ToolCall],
        *,
        deadline: float | None = None,
    ) -> tuple[ToolResult, ...]:
        """Execute ``calls`` in order; one result per call, same order.

        ``deadline`` is a ``time.monotonic()`` instant bounding the whole
        turn; each call's timeout shrinks to fit what is left of it.
        """
        LOGGER.debug("Running tool round %s with %s call(s)", self._rounds, len(calls))
        results: list[ToolResult] = []
        for call in calls:
            if self._on_tool_start is not None:
                self._on_tool_start(call)
            result = await self._execute(call, depth=1, deadline=deadline)
            results.append(result)
            if self._on_tool_result is not None:
                self._on_tool_result(call, result)
        return tuple(results)

    async def _execute(self, call: ToolCall, *, depth: int, deadline: float | None) -> ToolResult:
        timeout = self._call_timeout(deadline)
        if timeout is not None and timeout <= 0:
            return ToolResult.from_error(call, "Turn time budget exhausted before the tool could run")

        started = time.perf_counter()
        try:
            outcome = await self._invoker.execute(call, timeout=timeout)
        except ToolExecutionError as exc:
            LOGGER.warning("Tool %s failed: %s", call.name, exc.message)
            return ToolResult.from_error(call, exc.message, duration_ms=_elapsed_ms(started))
        except (asyncio.CancelledError, TurnCancelledError, RecursionLimitError):
            raise
        except Exception as exc:
            LOGGER.warning("Tool %s raised %s: %s", call.name, exc.__class__.__name__, exc)
            return ToolResult.from_error(call, str(exc) or exc.__class__.__name__, duration_ms=_elapsed_ms(started))

        if isinstance(outcome, ToolExpansion):
            return await self._expand(call, outcome, depth=depth, deadline=deadline, started=started)

        duration_ms = _elapsed_ms(started)
        if outcome.success:
            return ToolResult.from_success(call, outcome.output, data=outcome.data, duration_ms=duration_ms)
        return ToolResult.from_error(
            call, outcome.error or "Tool reported failure", data=outcome.data, duration_ms=duration_ms
        )

    async def _expand(
        self,
        parent: ToolCall,
        expansion: ToolExpansion,
        *,
        depth: int,
        deadline: float | None,
        started: float,
    ) -> ToolResult:
        if depth >= self._config.max_depth:
            LOGGER.warning("Tool %s exceeded the nesting limit of %s", parent.name, self._config.max_depth)
            raise RecursionLimitError(
                f"Tool '{parent.name}' exceeded the maximum nesting depth of {self._config.max_depth}",
                limit=self._config.max_depth,
            )
        LOGGER.debug("Tool %s expanded into %s nested call(s) at depth %s", parent.name, len(expansion.calls), depth + 1)
        children: list[ToolResult] = []
        for child in expansion.calls:
            children.append(await self._execute(child, depth=depth + 1, deadline=deadline))

        lines = [expansion.summary] if expansion.summary else []
        lines.extend(f"[{child.tool_name}] {child.content}" for child in children)
        data: dict[str, Any] = {
            "children": [
                {"call_id": child.call_id, "tool": child.tool_name, "success": child.success}
                for child in children
            ]
        }
        duration_ms = _elapsed_ms(started)
        if all(child.success for child in children):
            return ToolResult.from_success(parent, "\n".join(lines), data=data, duration_ms=duration_ms)
        failed = [child.tool_name for child in children if not child.success]
        return ToolResult(
            call_id=parent.call_id,
            tool_name=parent.name,
            success=False,
            output="\n".join(lines),
            error=f"Nested call(s) failed: {', '.join(failed)}",
            data=data,
            duration_ms=duration_ms,
        )

    def _call_timeout(self, deadline: float | None) -> float | None:
        timeout = self._config.tool_timeout
        if deadline is None:
            return timeout
        remaining = deadline - time.monotonic()
        if timeout is None:
            return remaining
        return min(timeout, remaining)

    @staticmethod
    def round_messages(response: ModelResponse, results: Sequence[ToolResult]) -> tuple[Message, ...]:
        """The assistant tool-call message followed by its tool results."""
        return (response.to_message(), *(result.to_message() for result in results))


def _elapsed_ms(started: float) -> float:
    return (time.perf_counter() - started) * 1000.0
