"""Bounded conversation history shared between the orchestrator and the UI."""

from __future__ import annotations

import logging
import threading
from collections import deque
from typing import Iterator

from .context_optimizer import estimate_message_tokens
from .types import Message, Turn

__all__ = ["ConversationHistory"]

LOGGER = logging.getLogger(__name__)


class ConversationHistory:
    """Ring buffer of closed :class:`Turn` objects.

    Bounded by ``max_entries`` turns and ``max_tokens`` estimated tokens
    across all retained turns; either limit evicts oldest turns first. The
    newest turn is always retained, even when it alone exceeds ``max_tokens``.

    Only the orchestrator writes. Readers get immutable snapshots, so a UI
    thread can render history while a turn is in flight.
    """

    def __init__(self, max_entries: int = 100, max_tokens: int = 10_000) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self._max_entries = max_entries
        self._max_tokens = max(0, max_tokens)
        self._turns: deque[tuple[Turn, int]] = deque()
        self._total_tokens = 0
        self._next_sequence = 1
        self._lock = threading.RLock()

    @property
    def max_entries(self) -> int:
        return self._max_entries

    @property
    def max_tokens(self) -> int:
        return self._max_tokens

    @property
    def total_tokens(self) -> int:
        with self._lock:
            return self._total_tokens

    def next_sequence(self) -> int:
        """Sequence number the next appended turn should carry."""
        with self._lock:
            return self._next_sequence

    def append(self, turn: Turn) -> tuple[Turn, ...]:
        """Append ``turn`` and return the turns evicted to make room."""
        cost = sum(estimate_message_tokens(message) for message in turn.to_messages())
        evicted: list[Turn] = []
        with self._lock:
            self._turns.append((turn, cost))
            self._total_tokens += cost
            self._next_sequence = max(self._next_sequence, turn.sequence + 1)
            while len(self._turns) > self._max_entries or (
                self._total_tokens > self._max_tokens and len(self._turns) > 1
            ):
                old_turn, old_cost = self._turns.popleft()
                self._total_tokens -= old_cost
                evicted.append(old_turn)
        if evicted:
            LOGGER.debug(
                "Evicted %s turn(s) from history (sequences %s..%s)",
                len(evicted),
                evicted[0].sequence,
                evicted[-1].sequence,
            )
        return tuple(evicted)

    def clear(self) -> int:
        """Drop every turn; returns how many were removed."""
        with self._lock:
            removed = len(self._turns)
            self._turns.clear()
            self._total_tokens = 0
        LOGGER.debug("Cleared %s turn(s) from history", removed)
        return removed

    def turns(self) -> tuple[Turn, ...]:
        with self._lock:
            return tuple(turn for turn, _ in self._turns)

    def messages(self) -> tuple[Message, ...]:
        """Flattened role-tagged log of every retained turn, oldest first."""
        with self._lock:
            snapshot = [turn for turn, _ in self._turns]
        flattened: list[Message] = []
        for turn in snapshot:
            flattened.extend(turn.to_messages())
        return tuple(flattened)

    def last(self) -> Turn | None:
        with self._lock:
            return self._turns[-1][0] if self._turns else None

    def __len__(self) -> int:
        with self._lock:
            return len(self._turns)

    def __iter__(self) -> Iterator[Turn]:
        return iter(self.turns())
