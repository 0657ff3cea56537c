"""Incremental assembly of streamed model replies.

Merge rules: content fragments are appended in arrival order; tool-call
fragments are keyed by their server-assigned index and merged into a list
that grows on demand (name and arguments are appended, the id is taken from
the first fragment that carries one). A ``stop``/``tool_calls`` finish
reason, or the end of the stream, completes the reply.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field

from .types import ModelResponse, ToolCall

__all__ = ["StreamDelta", "StreamAccumulator", "TERMINAL_FINISH_REASONS"]

LOGGER = logging.getLogger(__name__)

TERMINAL_FINISH_REASONS: frozenset[str] = frozenset({"stop", "tool_calls"})


@dataclass(slots=True, frozen=True)
class StreamDelta:
    """One normalized streaming fragment.

    Attributes:
        content: Text fragment to append to the reply.
        tool_index: Index of the tool call this fragment belongs to.
        tool_call_id: Tool call id, usually only on the first fragment.
        tool_name: Tool name fragment.
        arguments: Partial JSON argument fragment.
        finish_reason: Set on the final choice delta.
        prompt_tokens: Usage record, usually on a trailing chunk.
        completion_tokens: Usage record, usually on a trailing chunk.
    """

    content: str | None = None
    tool_index: int | None = None
    tool_call_id: str | None = None
    tool_name: str | None = None
    arguments: str | None = None
    finish_reason: str | None = None
    prompt_tokens: int | None = None
    completion_tokens: int | None = None


@dataclass(slots=True)
class _PartialToolCall:
    call_id: str = ""
    name_parts: list[str] = field(default_factory=list)
    argument_parts: list[str] = field(default_factory=list)

    @property
    def name(self) -> str:
        return "".join(self.name_parts)

    @property
    def arguments(self) -> str:
        return "".join(self.argument_parts)


class StreamAccumulator:
    """State machine that folds :class:`StreamDelta` values into a reply."""

    def __init__(self) -> None:
        self._content: list[str] = []
        self._tool_calls: list[_PartialToolCall | None] = []
        self._finish_reason: str | None = None
        self._prompt_tokens: int | None = None
        self._completion_tokens: int | None = None
        self._complete = False

    @property
    def complete(self) -> bool:
        return self._complete

    @property
    def text(self) -> str:
        return "".join(self._content)

    @property
    def finish_reason(self) -> str | None:
        return self._finish_reason

    def feed(self, delta: StreamDelta) -> str | None:
        """Merge ``delta``; returns the content fragment to forward, if any."""
        if delta.prompt_tokens is not None:
            self._prompt_tokens = delta.prompt_tokens
        if delta.completion_tokens is not None:
            self._completion_tokens = delta.completion_tokens

        if self._complete:
            if delta.content or delta.tool_index is not None:
                LOGGER.debug("Ignoring stream fragment received after completion")
            return None

        fragment = delta.content or None
        if fragment:
            self._content.append(fragment)

        if delta.tool_index is not None:
            self._merge_tool_fragment(delta)

        if delta.finish_reason:
            self._finish_reason = delta.finish_reason
            if delta.finish_reason in TERMINAL_FINISH_REASONS:
                self._complete = True
        return fragment

    def _merge_tool_fragment(self, delta: StreamDelta) -> None:
        index = delta.tool_index
        if index is None or index < 0:
            return
        if index >= len(self._tool_calls):
            self._tool_calls.extend([None] * (index + 1 - len(self._tool_calls)))
        partial = self._tool_calls[index]
        if partial is None:
            partial = _PartialToolCall()
            self._tool_calls[index] = partial
        if delta.tool_call_id and not partial.call_id:
            partial.call_id = delta.tool_call_id
        if delta.tool_name:
            partial.name_parts.append(delta.tool_name)
        if delta.arguments:
            partial.argument_parts.append(delta.arguments)

    def finish(self, *, model: str | None = None) -> ModelResponse:
        """Close the stream (end-of-stream counts as terminal) and build the reply."""
        self._complete = True
        tool_calls: list[ToolCall] = []
        for index, partial in enumerate(self._tool_calls):
            if partial is None:
                continue
            if not partial.name:
                LOGGER.warning("Dropping streamed tool call %s with no name", index)
                continue
            call_id = partial.call_id or f"call_{uuid.uuid4().hex[:24]}"
            tool_calls.append(ToolCall.from_raw(call_id, partial.name, partial.arguments, index=len(tool_calls)))
        return ModelResponse(
            text=self.text,
            tool_calls=tuple(tool_calls),
            finish_reason=self._finish_reason or ("tool_calls" if tool_calls else "stop"),
            prompt_tokens=self._prompt_tokens,
            completion_tokens=self._completion_tokens,
            model=model,
        )
