"""Tests for model routing."""

from __future__ import annotations

from codepair.ai.errors import RoutingError
from codepair.ai.orchestration.intents import ChatIntent, CodeReviewIntent, DebugIntent
from codepair.ai.orchestration.router import (
    IntentBasedStrategy,
    LengthBasedStrategy,
    ModelRouter,
    RoutingDecision,
)


class _FailingStrategy:
    name = "failing"

    def select(self, intent, text):
        raise RoutingError("strategy backend unavailable")


def _router() -> ModelRouter:
    return ModelRouter(
        [
            LengthBasedStrategy(strong_model="strong", threshold=20),
            IntentBasedStrategy(strong_model="strong", fast_model="fast"),
        ],
        default_model="default",
    )


def test_review_and_debug_go_to_strong_model() -> None:
    router = _router()

    assert router.route(CodeReviewIntent(focus="review"), "review").model == "strong"
    assert router.route(DebugIntent(issue="why"), "why").model == "strong"


def test_chat_goes_to_fast_model() -> None:
    decision = _router().route(ChatIntent(query="hi"), "hi")

    assert decision.model == "fast"
    assert decision.source == "intent"


def test_long_input_escalates_before_intent() -> None:
    text = "x" * 21

    decision = _router().route(ChatIntent(query=text), text)

    assert decision.model == "strong"
    assert decision.source == "length"


def test_length_strategy_declines_short_input() -> None:
    strategy = LengthBasedStrategy(strong_model="strong", threshold=20)

    assert strategy.select(ChatIntent(), "x" * 20) is None


def test_falls_back_to_default_model() -> None:
    router = ModelRouter([LengthBasedStrategy(strong_model="strong")], default_model="default")

    decision = router.route(ChatIntent(query="hi"), "hi")

    assert decision.model == "default"
    assert decision.source == "default"
    assert decision.reason == "Default model"


def test_failing_strategy_is_skipped() -> None:
    router = ModelRouter([_FailingStrategy()], default_model="default")
    router.add_strategy(IntentBasedStrategy(strong_model="strong", fast_model="fast"))

    assert router.route(ChatIntent(), "").model == "fast"


def test_add_strategy_first_takes_priority() -> None:
    router = _router()

    class _Pinned:
        name = "pinned"

        def select(self, intent, text):
            return RoutingDecision(model="pinned", source=self.name, reason="pinned by user")

    router.add_strategy(_Pinned(), first=True)

    assert router.route(ChatIntent(), "").model == "pinned"
