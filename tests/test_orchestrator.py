"""End-to-end tests for the conversation orchestrator state machine."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any, Callable

import pytest

from codepair.ai.errors import ConfigurationError, GatewayError, TurnCancelledError
from codepair.ai.orchestration import (
    ConversationHistory,
    ConversationOrchestrator,
    OrchestratorConfig,
    OrchestratorState,
    RetryController,
    SchedulerConfig,
    recognize_intent,
)
from codepair.ai.orchestration.tools import ToolDefinition, ToolParameter, ToolRegistry
from codepair.ai.orchestration.types import ModelResponse
from codepair.editor.matcher import CodeDiff, CodeMatcher
from codepair.editor.pending import Decision
from codepair.runtime import create_orchestrator, create_router
from codepair.services.settings import Settings

GREETING = "Hello! How can I help with your code?"


class _FileOperations:
    def __init__(self) -> None:
        self.applied: list[CodeDiff] = []

    def apply(self, diff: CodeDiff) -> None:
        self.applied.append(diff)


@pytest.fixture
def registry() -> ToolRegistry:
    registry = ToolRegistry()
    registry.register_function(
        ToolDefinition(
            name="read_file",
            description="Read a file",
            parameters=(ToolParameter("path", "string", "File path", required=True),),
        ),
        lambda args: f"contents of {args['path']}",
    )
    return registry


@pytest.fixture
def build(
    matcher: CodeMatcher, registry: ToolRegistry, fast_retry: RetryController
) -> Callable[..., ConversationOrchestrator]:
    def _factory(gateway: Any, **kwargs: Any) -> ConversationOrchestrator:
        kwargs.setdefault("registry", registry)
        kwargs.setdefault("retry", fast_retry)
        return ConversationOrchestrator(gateway, matcher, **kwargs)

    return _factory


@pytest.mark.asyncio
async def test_plain_reply_closes_one_turn(build, make_gateway, make_reply) -> None:
    gateway = make_gateway(make_reply(GREETING))
    orchestrator = build(gateway)
    streamed: list[str] = []

    outcome = await orchestrator.process("hello there friend", on_content=streamed.append)

    assert outcome.reply == GREETING
    assert outcome.turn.status == "completed"
    assert outcome.pending.is_empty()
    assert orchestrator.state is OrchestratorState.CLOSED
    assert orchestrator.pending is None
    assert len(orchestrator.history) == 1
    assert [message.role for message in outcome.turn.messages] == ["user", "assistant"]
    assert streamed == [GREETING]
    assert gateway.calls[0]["messages"][0].role == "system"
    assert gateway.calls[0]["tools"][0]["function"]["name"] == "read_file"


@pytest.mark.asyncio
async def test_tool_round_feeds_results_back(build, make_gateway, make_reply, make_tool_reply) -> None:
    gateway = make_gateway(
        make_tool_reply(("read_file", '{"path": "src/app.py"}')),
        make_reply("The greet function returns 'hello'."),
    )
    started: list[str] = []
    orchestrator = build(gateway, on_tool_start=lambda call: started.append(call.name))

    outcome = await orchestrator.process("what does greet do")

    turn = outcome.turn
    assert turn.tool_rounds == 1
    assert [result.output for result in turn.tool_results] == ["contents of src/app.py"]
    assert [message.role for message in turn.messages] == ["user", "assistant", "tool", "assistant"]
    second_call = gateway.calls[1]["messages"]
    assert second_call[-1].role == "tool"
    assert second_call[-1].tool_call_id == "call_0"
    assert started == ["read_file"]


@pytest.mark.asyncio
async def test_repeated_round_stops_with_loop_warning(build, make_gateway, make_tool_reply) -> None:
    gateway = make_gateway(make_tool_reply(("read_file", '{"path": "a.py"}'), text="Checking the file again."))
    orchestrator = build(gateway)

    outcome = await orchestrator.process("look at the file")

    assert outcome.turn.status == "loop_detected"
    assert len(gateway.calls) == 3
    assert outcome.turn.tool_rounds == 2
    assert outcome.reply == "Checking the file again."
    assert any("identical parameters" in warning for warning in outcome.warnings)
    assert outcome.turn.messages[-1].tool_calls == ()
    assert orchestrator.state is OrchestratorState.CLOSED


@pytest.mark.asyncio
async def test_round_limit_stops_turn(build, make_gateway, make_tool_reply) -> None:
    gateway = make_gateway(
        *(make_tool_reply(("read_file", json.dumps({"path": f"{index}.py"}))) for index in range(5))
    )
    orchestrator = build(gateway, scheduler_config=SchedulerConfig(max_rounds=2))

    outcome = await orchestrator.process("read every file")

    assert outcome.turn.status == "max_rounds"
    assert outcome.turn.tool_rounds == 2
    assert len(gateway.calls) == 3
    assert outcome.turn.warnings == (
        "Maximum tool execution rounds reached. Stopping to prevent infinite loops.",
    )


@pytest.mark.asyncio
async def test_gateway_error_becomes_error_turn(build, make_gateway) -> None:
    gateway = make_gateway(GatewayError("Model request rejected (400): bad", status_code=400))
    orchestrator = build(gateway)

    outcome = await orchestrator.process("hello there friend")

    assert outcome.turn.status == "error"
    assert outcome.reply == ""
    assert outcome.turn.warnings == ("Model request rejected (400): bad",)
    assert len(gateway.calls) == 1
    assert len(orchestrator.history) == 1
    assert orchestrator.state is OrchestratorState.CLOSED


@pytest.mark.asyncio
async def test_short_replies_are_retried_then_reported(build, make_gateway, make_reply, sleeps) -> None:
    gateway = make_gateway(make_reply("ok"))
    orchestrator = build(gateway)

    outcome = await orchestrator.process("hello there friend")

    assert outcome.turn.status == "error"
    assert len(gateway.calls) == 3
    assert len(sleeps) == 2


@pytest.mark.asyncio
async def test_detected_create_waits_for_confirmation(workspace: Path, build, make_gateway, make_reply) -> None:
    gateway = make_gateway(make_reply("Create file `notes/todo.md`:\n\n```markdown\n- ship it\n```"))
    orchestrator = build(gateway)

    outcome = await orchestrator.process("make a todo list")

    assert orchestrator.state is OrchestratorState.AWAITING_CONFIRMATION
    assert orchestrator.pending is outcome.pending
    (change,) = outcome.pending
    assert change.diff.operation == "create"
    assert not (workspace / "notes").exists()

    file_operations = _FileOperations()
    report = await orchestrator.resolve_pending(Decision.CONFIRM, file_operations)

    assert [diff.new_content for diff in report.applied] == ["- ship it"]
    assert file_operations.applied == report.applied
    assert orchestrator.state is OrchestratorState.CLOSED
    with pytest.raises(RuntimeError):
        await orchestrator.resolve_pending(Decision.CONFIRM, file_operations)


@pytest.mark.asyncio
async def test_unmatched_modification_is_reported_as_warning(build, make_gateway, make_reply) -> None:
    reply = (
        "Modify `src/app.py`:\n```python\n<<<<<<< SEARCH\nclass Missing:\n=======\n"
        "class Found:\n>>>>>>> REPLACE\n```"
    )
    orchestrator = build(make_gateway(make_reply(reply)))

    outcome = await orchestrator.process("rename the class")

    assert len(outcome.pending.failures) == 1
    assert outcome.pending.is_empty()
    assert orchestrator.state is OrchestratorState.CLOSED
    assert orchestrator.pending is None
    assert any("Skipped modify of src/app.py" in warning for warning in outcome.turn.warnings)


@pytest.mark.asyncio
async def test_rejected_attempts_are_not_streamed(build, make_gateway, make_reply) -> None:
    gateway = make_gateway(make_reply("ok"), make_reply("A proper long answer here."))
    orchestrator = build(gateway)
    streamed: list[str] = []

    outcome = await orchestrator.process("hello there friend", on_content=streamed.append)

    assert len(gateway.calls) == 2
    assert streamed == ["A proper long answer here."]
    assert "".join(streamed) == outcome.reply


@pytest.mark.asyncio
async def test_new_turn_abandons_unresolved_changes(build, make_gateway, make_reply) -> None:
    gateway = make_gateway(
        make_reply("Delete `src/app.py` since nothing uses it."),
        make_reply("Sure, what would you like instead?"),
    )
    orchestrator = build(gateway)

    first = await orchestrator.process("clean up the project")
    await orchestrator.process("never mind")

    assert first.pending.decision is Decision.ABANDON
    assert orchestrator.pending is None
    assert orchestrator.state is OrchestratorState.CLOSED


@pytest.mark.asyncio
async def test_clear_command_resets_history(build, make_gateway, make_reply) -> None:
    gateway = make_gateway(make_reply(GREETING))
    orchestrator = build(gateway)
    await orchestrator.process("hello there friend")

    outcome = await orchestrator.process("/clear")

    assert outcome.turn.status == "command"
    assert outcome.reply == "Conversation history cleared."
    assert [turn.status for turn in orchestrator.history] == ["command"]
    assert len(gateway.calls) == 1


@pytest.mark.asyncio
async def test_configuration_error_propagates_without_turn(build, make_gateway) -> None:
    orchestrator = build(make_gateway(ConfigurationError("No API key set. Please configure your API key.")))

    with pytest.raises(ConfigurationError):
        await orchestrator.process("hello there friend")

    assert len(orchestrator.history) == 0
    assert orchestrator.state is OrchestratorState.IDLE


@pytest.mark.asyncio
async def test_cancelled_turn_records_nothing(build, make_gateway, make_reply) -> None:
    gateway = make_gateway(make_reply(GREETING))
    orchestrator = build(gateway)
    cancel_event = asyncio.Event()
    cancel_event.set()

    with pytest.raises(TurnCancelledError):
        await orchestrator.process("hello there friend", cancel_event=cancel_event)

    assert gateway.calls == []
    assert len(orchestrator.history) == 0


@pytest.mark.asyncio
async def test_turn_timeout_becomes_error_turn(matcher: CodeMatcher) -> None:
    class _SlowGateway:
        async def generate(self, messages: Any, **_kwargs: Any) -> ModelResponse:
            await asyncio.sleep(5)
            return ModelResponse(text="too late to matter")

    orchestrator = ConversationOrchestrator(
        _SlowGateway(), matcher, config=OrchestratorConfig(turn_timeout=0.05)
    )

    outcome = await orchestrator.process("hello there friend")

    assert outcome.turn.status == "error"
    assert outcome.turn.warnings == ("The request timed out after 0.05 seconds.",)
    assert not orchestrator.is_busy


@pytest.mark.asyncio
async def test_token_stats_reflect_history(build, make_gateway, make_reply) -> None:
    orchestrator = build(make_gateway(make_reply(GREETING)), history=ConversationHistory(max_entries=10))
    await orchestrator.process("hello there friend")

    stats = orchestrator.token_stats()

    assert stats["message_count"] == 2
    assert stats["turn_count"] == 1
    assert stats["total_tokens"] > 0
    assert stats["available_tokens"] == 3000
    assert stats["needs_optimization"] is False


# ---------------------------------------------------------------------------
# Runtime wiring
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_str_replace_editor_proposals_join_pending_set(
    workspace: Path, settings: Settings, make_gateway, make_reply, make_tool_reply
) -> None:
    arguments = {"path": "src/app.py", "old_str": "return 'hello'", "new_str": "return 'hi'"}
    gateway = make_gateway(
        make_tool_reply(("str_replace_editor", json.dumps(arguments))),
        make_reply("I proposed a change to greet for you."),
    )
    orchestrator = create_orchestrator(settings, workspace=workspace, gateway=gateway)

    outcome = await orchestrator.process("rename the greeting")

    assert outcome.turn.tool_results[0].success is True
    (change,) = outcome.pending
    assert change.diff.new_content == "def greet():\n    return 'hi'\n"
    assert orchestrator.state is OrchestratorState.AWAITING_CONFIRMATION
    assert (workspace / "src" / "app.py").read_text(encoding="utf-8") == "def greet():\n    return 'hello'\n"

    await orchestrator.resolve_pending("cancel")
    assert orchestrator.state is OrchestratorState.CLOSED


@pytest.mark.asyncio
async def test_review_requests_use_strong_model_and_file_context(
    workspace: Path, settings: Settings, make_gateway, make_reply
) -> None:
    gateway = make_gateway(make_reply("The function looks fine to me overall."))
    orchestrator = create_orchestrator(settings, workspace=workspace, gateway=gateway)

    outcome = await orchestrator.process("please review src/app.py")

    assert outcome.routing is not None
    assert outcome.routing.model == "strong-model"
    assert gateway.calls[0]["model"] == "strong-model"
    assert "def greet():" in gateway.calls[0]["messages"][-1].content


def test_length_routing_wins_over_intent(settings: Settings) -> None:
    long_text = "tell me a story " * 100

    decision = create_router(settings).route(recognize_intent(long_text), long_text)

    assert decision.model == "strong-model"
    assert decision.source == "length"
