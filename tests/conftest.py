"""Shared pytest fixtures."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Mapping, Sequence

import pytest

from codepair.ai.orchestration.retry import RetryConfig, RetryController
from codepair.ai.orchestration.types import Message, ModelResponse, ToolCall
from codepair.editor.matcher import CodeMatcher
from codepair.services.settings import Settings


class FakeGateway:
    """Scripted model gateway: returns (or raises) queued items in order.

    Once the script runs out, the last item is repeated.
    """

    def __init__(self, script: Sequence[ModelResponse | BaseException]) -> None:
        self.script = list(script)
        self.calls: list[dict[str, Any]] = []

    async def generate(
        self,
        messages: Sequence[Message],
        *,
        model: str | None = None,
        tools: Sequence[Mapping[str, Any]] | None = None,
        on_content: Callable[[str], None] | None = None,
    ) -> ModelResponse:
        self.calls.append({"messages": list(messages), "model": model, "tools": tools})
        item = self.script[min(len(self.calls) - 1, len(self.script) - 1)]
        if isinstance(item, BaseException):
            raise item
        if on_content is not None and item.text:
            on_content(item.text)
        return item


def reply(text: str) -> ModelResponse:
    return ModelResponse(text=text, finish_reason="stop")


def tool_reply(*calls: tuple[str, str], text: str = "") -> ModelResponse:
    """A response carrying ``(name, raw_arguments)`` tool calls."""
    return ModelResponse(
        text=text,
        tool_calls=tuple(
            ToolCall.from_raw(f"call_{index}", name, raw, index=index) for index, (name, raw) in enumerate(calls)
        ),
        finish_reason="tool_calls",
    )


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "app.py").write_text("def greet():\n    return 'hello'\n", encoding="utf-8")
    return tmp_path


@pytest.fixture
def matcher(workspace: Path) -> CodeMatcher:
    return CodeMatcher(workspace)


@pytest.fixture
def settings() -> Settings:
    return Settings(api_key="sk-test-key", model="fast-model", strong_model="strong-model")


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def fast_retry(sleeps: list[float]) -> RetryController:
    async def _sleep(seconds: float) -> None:
        sleeps.append(seconds)

    return RetryController(RetryConfig(max_attempts=3, initial_delay=0.5, backoff_multiplier=2.0), sleep=_sleep)


@pytest.fixture
def make_gateway() -> Callable[..., FakeGateway]:
    def _factory(*script: ModelResponse | BaseException) -> FakeGateway:
        return FakeGateway(script)

    return _factory


@pytest.fixture
def make_reply() -> Callable[[str], ModelResponse]:
    return reply


@pytest.fixture
def make_tool_reply() -> Callable[..., ModelResponse]:
    return tool_reply
