"""Model routing: choose which upstream model serves a turn."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Protocol, Sequence, runtime_checkable

from ..errors import RoutingError
from .intents import CodeReviewIntent, DebugIntent, Intent

__all__ = [
    "RoutingDecision",
    "RoutingStrategy",
    "IntentBasedStrategy",
    "LengthBasedStrategy",
    "ModelRouter",
]

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class RoutingDecision:
    """Selected model plus observability fields (never used for control flow)."""

    model: str
    source: str
    reason: str
    latency_ms: float = 0.0

    @property
    def metadata(self) -> dict[str, Any]:
        return {"source": self.source, "reasoning": self.reason, "latency_ms": self.latency_ms}


@runtime_checkable
class RoutingStrategy(Protocol):
    """A strategy returns a decision, ``None`` to decline, or raises ``RoutingError``."""

    name: str

    def select(self, intent: Intent, text: str) -> RoutingDecision | None:
        ...


class IntentBasedStrategy:
    """Send review and debug work to the strong model, everything else to the fast one."""

    name = "intent"

    def __init__(self, *, strong_model: str, fast_model: str) -> None:
        self.strong_model = strong_model
        self.fast_model = fast_model

    def select(self, intent: Intent, text: str) -> RoutingDecision | None:
        if isinstance(intent, (CodeReviewIntent, DebugIntent)):
            return RoutingDecision(
                model=self.strong_model,
                source=self.name,
                reason=f"{intent.kind} intent needs deeper reasoning",
            )
        return RoutingDecision(
            model=self.fast_model,
            source=self.name,
            reason=f"{intent.kind} intent handled by the fast model",
        )


class LengthBasedStrategy:
    """Escalate long inputs to the strong model; decline short ones."""

    name = "length"

    def __init__(self, *, strong_model: str, threshold: int = 1000) -> None:
        self.strong_model = strong_model
        self.threshold = threshold

    def select(self, intent: Intent, text: str) -> RoutingDecision | None:
        length = len(text or "")
        if length <= self.threshold:
            return None
        return RoutingDecision(
            model=self.strong_model,
            source=self.name,
            reason=f"input length {length} exceeds {self.threshold} characters",
        )


class ModelRouter:
    """Try strategies in order; the first decision wins, else the default model."""

    def __init__(self, strategies: Sequence[RoutingStrategy], *, default_model: str) -> None:
        self._strategies = list(strategies)
        self._default_model = default_model

    @property
    def strategies(self) -> tuple[RoutingStrategy, ...]:
        return tuple(self._strategies)

    def add_strategy(self, strategy: RoutingStrategy, *, first: bool = False) -> None:
        if first:
            self._strategies.insert(0, strategy)
        else:
            self._strategies.append(strategy)

    def route(self, intent: Intent, text: str) -> RoutingDecision:
        started = time.perf_counter()
        for strategy in self._strategies:
            try:
                decision = strategy.select(intent, text)
            except RoutingError as exc:
                LOGGER.warning("Routing strategy %s failed: %s", getattr(strategy, "name", strategy), exc)
                continue
            if decision is None:
                continue
            decision = _with_latency(decision, started)
            LOGGER.debug(
                "Routed %s intent to %s via %s (%s)",
                intent.kind,
                decision.model,
                decision.source,
                decision.reason,
            )
            return decision
        return _with_latency(
            RoutingDecision(model=self._default_model, source="default", reason="Default model"),
            started,
        )


def _with_latency(decision: RoutingDecision, started: float) -> RoutingDecision:
    latency_ms = (time.perf_counter() - started) * 1000.0
    return RoutingDecision(
        model=decision.model,
        source=decision.source,
        reason=decision.reason,
        latency_ms=latency_ms,
    )
