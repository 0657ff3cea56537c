"""Context window optimization: fit a message list into the token budget.

Token counts are a cheap approximation (``ceil(words * 1.3)``), not a real
tokenizer. The optimizer is a pure function of its inputs.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Sequence

from .types import Message, OptimizedContext, TokenUsage

__all__ = [
    "ContextConfig",
    "ContextWindowOptimizer",
    "estimate_tokens",
    "estimate_message_tokens",
    "summary_text",
]

LOGGER = logging.getLogger(__name__)

_TOKENS_PER_WORD = 1.3


def estimate_tokens(text: str) -> int:
    """Approximate token count: 1.3 tokens per whitespace-separated word."""
    if not text:
        return 0
    return math.ceil(len(text.split()) * _TOKENS_PER_WORD)


def estimate_message_tokens(message: Message) -> int:
    tokens = estimate_tokens(message.content)
    for call in message.tool_calls:
        tokens += estimate_tokens(f"{call.name} {call.raw_arguments}")
    return tokens


def summary_text(dropped: int) -> str:
    return (
        f"[Previous {dropped} messages summarized: Contains {dropped // 2} user and "
        "assistant exchanges covering various topics]"
    )


@dataclass(slots=True, frozen=True)
class ContextConfig:
    """Budget knobs for :class:`ContextWindowOptimizer`.

    ``min_messages_to_keep`` protects recent messages from being dropped to
    make room for the summary; it never overrides the token budget itself.
    """

    max_tokens: int = 4000
    reserved_output_tokens: int = 1000
    min_messages_to_keep: int = 5
    enable_summarization: bool = True

    @property
    def available_tokens(self) -> int:
        return max(0, self.max_tokens - self.reserved_output_tokens)


class ContextWindowOptimizer:
    """Keep system messages plus as many recent messages as the budget allows."""

    def __init__(self, config: ContextConfig | None = None) -> None:
        self._config = config or ContextConfig()

    @property
    def config(self) -> ContextConfig:
        return self._config

    def optimize(self, messages: Sequence[Message]) -> OptimizedContext:
        budget = self._config.available_tokens
        system_messages = [message for message in messages if message.role == "system"]
        conversation = [message for message in messages if message.role != "system"]

        system_tokens = sum(estimate_message_tokens(message) for message in system_messages)
        oversized = system_tokens > budget
        running = system_tokens

        kept: list[Message] = []
        kept_tokens: list[int] = []
        for message in reversed(conversation):
            tokens = estimate_message_tokens(message)
            if running + tokens > budget:
                if any(older.role != "tool" for older in kept):
                    break
                # The newest message (plus the call its tool results answer) is always sent, flagged.
                oversized = True
            kept.append(message)
            kept_tokens.append(tokens)
            running += tokens
        kept.reverse()
        kept_tokens.reverse()

        # Tool results whose assistant tool-call message was dropped cannot be sent alone.
        while kept and kept[0].role == "tool" and len(kept) < len(conversation):
            kept.pop(0)
            running -= kept_tokens.pop(0)

        dropped = len(conversation) - len(kept)
        was_truncated = dropped > 0
        summary: Message | None = None
        if was_truncated and dropped and self._config.enable_summarization:
            summary, dropped = self._fit_summary(kept, kept_tokens, running, budget, dropped)

        result_messages = list(system_messages)
        if summary is not None:
            result_messages.append(summary)
            system_tokens += estimate_message_tokens(summary)
        result_messages.extend(kept)

        usage = TokenUsage(system_tokens=system_tokens, messages_tokens=sum(kept_tokens))
        if was_truncated:
            LOGGER.debug(
                "Context truncated: kept %s of %s message(s), ~%s/%s tokens",
                len(result_messages),
                len(messages),
                usage.total_tokens,
                budget,
            )
        if oversized:
            LOGGER.warning(
                "Context contains a message larger than the %s token budget (~%s tokens)",
                budget,
                usage.total_tokens,
            )
        return OptimizedContext(
            messages=tuple(result_messages),
            token_usage=usage,
            was_truncated=was_truncated,
            dropped_count=dropped,
            oversized=oversized,
        )

    def _fit_summary(
        self,
        kept: list[Message],
        kept_tokens: list[int],
        running: int,
        budget: int,
        dropped: int,
    ) -> tuple[Message | None, int]:
        summary_tokens = estimate_tokens(summary_text(dropped))
        floor = max(1, self._config.min_messages_to_keep)
        while running + summary_tokens > budget:
            if len(kept) <= floor:
                LOGGER.debug("No room for a history summary without dropping recent messages")
                return None, dropped
            kept.pop(0)
            running -= kept_tokens.pop(0)
            dropped += 1
            while kept and kept[0].role == "tool":
                kept.pop(0)
                running -= kept_tokens.pop(0)
                dropped += 1
        return Message.system(summary_text(dropped), summary=True), dropped

    def stats(self, messages: Sequence[Message]) -> TokenUsage:
        """Estimated usage of ``messages`` as-is, without trimming."""
        system_tokens = sum(estimate_message_tokens(m) for m in messages if m.role == "system")
        messages_tokens = sum(estimate_message_tokens(m) for m in messages if m.role != "system")
        return TokenUsage(system_tokens=system_tokens, messages_tokens=messages_tokens)

    def needs_optimization(self, messages: Sequence[Message]) -> bool:
        return self.stats(messages).total_tokens > self._config.available_tokens
