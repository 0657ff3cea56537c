"""Core type definitions for the orchestration pipeline.

Everything that crosses a stage boundary is a frozen dataclass so a turn's
intermediate state can be shared with the host UI without defensive copies.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal, Mapping, Sequence

from openai.types.chat import ChatCompletionMessageParam

from .intents import ChatIntent, Intent

__all__ = [
    # Messages
    "Message",
    "MessageRole",
    # Tool protocol
    "ToolCall",
    "ToolResult",
    # Model interaction
    "ModelResponse",
    # Context budgeting
    "TokenUsage",
    "OptimizedContext",
    # History
    "Turn",
    "TurnStatus",
]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# -----------------------------------------------------------------------------
# Tool Calls
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class ToolCall:
    """A tool invocation requested by the model.

    Attributes:
        call_id: Identifier assigned by the model (or generated locally).
        name: Name of the tool to invoke.
        arguments: Parsed argument map.
        raw_arguments: The argument string exactly as the model emitted it.
        index: Position of the call within its round.
    """

    call_id: str
    name: str
    arguments: Mapping[str, Any] = field(default_factory=dict)
    raw_arguments: str = ""
    index: int = 0

    @property
    def signature(self) -> str:
        """``name(arguments)`` as used by loop detection."""
        raw = self.raw_arguments
        if not raw and self.arguments:
            raw = json.dumps(dict(self.arguments), sort_keys=True, ensure_ascii=False)
        return f"{self.name}({raw})"

    def to_chat_param(self) -> dict[str, Any]:
        raw = self.raw_arguments or json.dumps(dict(self.arguments), ensure_ascii=False)
        return {
            "id": self.call_id,
            "type": "function",
            "function": {"name": self.name, "arguments": raw},
        }

    @classmethod
    def from_raw(cls, call_id: str, name: str, raw_arguments: str | None, index: int = 0) -> ToolCall:
        """Build a call from the model's raw argument string.

        Arguments that are not a JSON object are kept under ``"input"`` so the
        tool still sees what the model sent.
        """
        raw = (raw_arguments or "").strip()
        arguments: dict[str, Any] = {}
        if raw:
            try:
                parsed = json.loads(raw)
            except json.JSONDecodeError:
                arguments = {"input": raw}
            else:
                arguments = parsed if isinstance(parsed, dict) else {"input": parsed}
        return cls(call_id=call_id, name=name, arguments=arguments, raw_arguments=raw, index=index)


@dataclass(slots=True, frozen=True)
class ToolResult:
    """Outcome of one tool call, correlated to it by ``call_id``."""

    call_id: str
    tool_name: str
    success: bool
    output: str | None = None
    error: str | None = None
    data: Mapping[str, Any] | None = None
    duration_ms: float = 0.0

    @classmethod
    def from_success(
        cls,
        call: ToolCall,
        output: str | None,
        *,
        data: Mapping[str, Any] | None = None,
        duration_ms: float = 0.0,
    ) -> ToolResult:
        return cls(
            call_id=call.call_id,
            tool_name=call.name,
            success=True,
            output=output,
            data=data,
            duration_ms=duration_ms,
        )

    @classmethod
    def from_error(
        cls,
        call: ToolCall,
        error: str,
        *,
        data: Mapping[str, Any] | None = None,
        duration_ms: float = 0.0,
    ) -> ToolResult:
        return cls(
            call_id=call.call_id,
            tool_name=call.name,
            success=False,
            error=error,
            data=data,
            duration_ms=duration_ms,
        )

    @property
    def content(self) -> str:
        """Text fed back to the model as the tool-role message."""
        if self.success:
            return self.output if self.output else "Success"
        message = f"Error: {self.error}" if self.error else "Error occurred"
        return f"{message}\n{self.output}" if self.output else message

    def to_message(self) -> Message:
        return Message.tool(self.content, tool_call_id=self.call_id, name=self.tool_name)


# -----------------------------------------------------------------------------
# Messages
# -----------------------------------------------------------------------------

MessageRole = Literal["system", "user", "assistant", "tool"]


@dataclass(slots=True, frozen=True)
class Message:
    """Immutable role-tagged chat message.

    Attributes:
        role: The role of the message sender.
        content: Text content of the message.
        name: Tool name for tool-role messages.
        tool_call_id: Identifier linking a tool result to its call.
        tool_calls: Calls requested by an assistant message.
        metadata: Host-side annotations, never sent upstream.
    """

    role: MessageRole
    content: str
    name: str | None = None
    tool_call_id: str | None = None
    tool_calls: tuple[ToolCall, ...] = ()
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def to_chat_param(self) -> ChatCompletionMessageParam:
        payload: dict[str, Any] = {"role": self.role, "content": self.content}
        if self.role == "tool" and self.tool_call_id is not None:
            payload["tool_call_id"] = self.tool_call_id
        if self.tool_calls:
            payload["tool_calls"] = [call.to_chat_param() for call in self.tool_calls]
            if not self.content:
                payload["content"] = None
        return payload  # type: ignore[return-value]

    @classmethod
    def system(cls, content: str, **metadata: Any) -> Message:
        return cls(role="system", content=content, metadata=metadata)

    @classmethod
    def user(cls, content: str, **metadata: Any) -> Message:
        return cls(role="user", content=content, metadata=metadata)

    @classmethod
    def assistant(cls, content: str, tool_calls: Sequence[ToolCall] = (), **metadata: Any) -> Message:
        return cls(role="assistant", content=content, tool_calls=tuple(tool_calls), metadata=metadata)

    @classmethod
    def tool(cls, content: str, *, tool_call_id: str, name: str | None = None) -> Message:
        return cls(role="tool", content=content, tool_call_id=tool_call_id, name=name)


# -----------------------------------------------------------------------------
# Model Response
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class ModelResponse:
    """A complete (non-streamed or fully accumulated) model reply."""

    text: str
    tool_calls: tuple[ToolCall, ...] = ()
    finish_reason: str | None = None
    prompt_tokens: int | None = None
    completion_tokens: int | None = None
    model: str | None = None

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)

    def to_message(self) -> Message:
        return Message.assistant(self.text, self.tool_calls)


# -----------------------------------------------------------------------------
# Context Budgeting
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class TokenUsage:
    """Estimated token cost of an optimized context."""

    system_tokens: int = 0
    messages_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.system_tokens + self.messages_tokens


@dataclass(slots=True, frozen=True)
class OptimizedContext:
    """The message list actually sent upstream for one model call.

    Attributes:
        messages: Kept messages in chronological order (system first).
        token_usage: Estimated cost of ``messages``.
        was_truncated: Whether older messages were dropped.
        dropped_count: Number of dropped non-system messages.
        oversized: A single kept message alone exceeds the budget.
    """

    messages: tuple[Message, ...]
    token_usage: TokenUsage
    was_truncated: bool = False
    dropped_count: int = 0
    oversized: bool = False

    def to_chat_params(self) -> list[ChatCompletionMessageParam]:
        return [message.to_chat_param() for message in self.messages]


# -----------------------------------------------------------------------------
# Turns
# -----------------------------------------------------------------------------

TurnStatus = Literal[
    "completed",
    "command",
    "loop_detected",
    "max_rounds",
    "recursion_limit",
    "error",
]


@dataclass(slots=True, frozen=True)
class Turn:
    """One closed user-message-to-final-reply cycle.

    ``messages`` is the exchange exactly as the model saw it (user message,
    assistant tool-call messages, tool results, final reply) so the history
    can be replayed upstream without orphaned tool calls. ``warnings`` are
    rendered as system-role entries for the host.
    """

    sequence: int
    user_input: str
    reply: str
    tool_calls: tuple[ToolCall, ...] = ()
    tool_results: tuple[ToolResult, ...] = ()
    messages: tuple[Message, ...] = ()
    intent: Intent = field(default_factory=ChatIntent)
    status: TurnStatus = "completed"
    warnings: tuple[str, ...] = ()
    model: str | None = None
    tool_rounds: int = 0
    created_at: datetime = field(default_factory=_utcnow)

    @property
    def succeeded(self) -> bool:
        return self.status in ("completed", "command")

    def to_messages(self) -> tuple[Message, ...]:
        """Flattened role-tagged log for this turn, warnings included."""
        base = self.messages or self._default_messages()
        if not self.warnings:
            return base
        return base + tuple(Message.system(text, warning=True) for text in self.warnings)

    def _default_messages(self) -> tuple[Message, ...]:
        messages = [Message.user(self.user_input)]
        if self.reply:
            messages.append(Message.assistant(self.reply))
        return tuple(messages)
