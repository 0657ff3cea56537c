"""Conversation orchestrator: one user message in, one closed Turn out.

The orchestrator wires the pipeline stages together for a single turn:

    Idle -> IntentRecognized -> ContextBuilt -> AwaitingModel
         -> (ToolRound -> AwaitingModel)* -> ResponseFinal
         -> ModificationsDetected -> AwaitingConfirmation | Closed

Loop, round and recursion limits jump straight to ResponseFinal with a
warning. Every path that finishes a turn appends exactly one
:class:`Turn` to the history; a cancelled turn appends nothing.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Mapping, Sequence

from ...editor.matcher import CodeMatcher
from ...editor.modifications import detect_modifications
from ...editor.pending import ApplyReport, Decision, FileOperations, PendingChangeSet
from ..errors import (
    GatewayError,
    LoopDetectedError,
    MaxRoundsExceededError,
    RecursionLimitError,
    ResponseValidationError,
    TurnCancelledError,
)
from .context import ContextBuilder, ConversationContext
from .context_optimizer import ContextWindowOptimizer
from .gateway import ContentCallback, ModelGateway
from .history import ConversationHistory
from .intents import CommandIntent, Intent, recognize_intent
from .retry import RetryController
from .router import ModelRouter, RoutingDecision
from .tool_scheduler import SchedulerConfig, ToolScheduler
from .tools.edit_tools import EditProposals
from .tools.executor import ExecutorConfig, ToolExecutor
from .tools.registry import ToolRegistry
from .types import Message, ModelResponse, TokenUsage, ToolCall, ToolResult, Turn, TurnStatus

__all__ = [
    "ConversationOrchestrator",
    "OrchestratorConfig",
    "OrchestratorState",
    "TurnOutcome",
]

LOGGER = logging.getLogger(__name__)

ToolStartCallback = Callable[[ToolCall], None]
ToolResultCallback = Callable[[ToolCall, ToolResult], None]

CLEAR_COMMAND = "clear"
CLEARED_REPLY = "Conversation history cleared."


class OrchestratorState(str, Enum):
    IDLE = "idle"
    INTENT_RECOGNIZED = "intent_recognized"
    CONTEXT_BUILT = "context_built"
    AWAITING_MODEL = "awaiting_model"
    TOOL_ROUND = "tool_round"
    RESPONSE_FINAL = "response_final"
    MODIFICATIONS_DETECTED = "modifications_detected"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    CLOSED = "closed"


@dataclass(slots=True, frozen=True)
class OrchestratorConfig:
    """Turn-level limits.

    Attributes:
        turn_timeout: Seconds allowed for a whole turn, tools included.
            ``None`` disables the limit.
        detect_modifications: Scan final replies for file operations.
    """

    turn_timeout: float | None = 300.0
    detect_modifications: bool = True


@dataclass(slots=True)
class TurnOutcome:
    """What :meth:`ConversationOrchestrator.process` hands back to the host."""

    turn: Turn
    pending: PendingChangeSet = field(default_factory=PendingChangeSet)
    usage: TokenUsage | None = None
    routing: RoutingDecision | None = None
    context: ConversationContext | None = None
    advisories: tuple[str, ...] = ()

    @property
    def reply(self) -> str:
        return self.turn.reply

    @property
    def warnings(self) -> tuple[str, ...]:
        return self.turn.warnings + self.advisories


@dataclass(slots=True)
class _TurnDraft:
    """Mutable accumulator for the turn in flight."""

    text: str
    intent: Intent | None = None
    model: str | None = None
    exchange: list[Message] = field(default_factory=list)
    tool_calls: list[ToolCall] = field(default_factory=list)
    tool_results: list[ToolResult] = field(default_factory=list)
    rounds: int = 0
    usage: TokenUsage | None = None
    routing: RoutingDecision | None = None
    context: ConversationContext | None = None


class ConversationOrchestrator:
    """Drive one conversation through the turn state machine.

    Turns on the same orchestrator are serialized. The history, the pending
    change set and the current state may be read from the host at any time.
    """

    def __init__(
        self,
        gateway: ModelGateway,
        matcher: CodeMatcher,
        *,
        registry: ToolRegistry | None = None,
        history: ConversationHistory | None = None,
        optimizer: ContextWindowOptimizer | None = None,
        router: ModelRouter | None = None,
        retry: RetryController | None = None,
        context_builder: ContextBuilder | None = None,
        proposals: EditProposals | None = None,
        scheduler_config: SchedulerConfig | None = None,
        executor_config: ExecutorConfig | None = None,
        config: OrchestratorConfig | None = None,
        on_tool_start: ToolStartCallback | None = None,
        on_tool_result: ToolResultCallback | None = None,
    ) -> None:
        self._gateway = gateway
        self._matcher = matcher
        self._registry = registry or ToolRegistry()
        self._history = history or ConversationHistory()
        self._optimizer = optimizer or ContextWindowOptimizer()
        self._router = router
        self._retry = retry or RetryController()
        self._context_builder = context_builder or ContextBuilder(matcher)
        self._proposals = proposals
        self._config = config or OrchestratorConfig()
        self._executor = ToolExecutor(self._registry, executor_config)
        self._scheduler = ToolScheduler(
            self._executor,
            scheduler_config,
            on_tool_start=on_tool_start,
            on_tool_result=on_tool_result,
        )
        self._lock = asyncio.Lock()
        self._state = OrchestratorState.IDLE
        self._pending: PendingChangeSet | None = None

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------
    @property
    def state(self) -> OrchestratorState:
        return self._state

    @property
    def history(self) -> ConversationHistory:
        return self._history

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    @property
    def pending(self) -> PendingChangeSet | None:
        return self._pending

    @property
    def is_busy(self) -> bool:
        return self._lock.locked()

    def token_stats(self) -> dict[str, Any]:
        """Estimated token usage of the retained history against the budget."""
        messages = self._history.messages()
        usage = self._optimizer.stats(messages)
        available = self._optimizer.config.available_tokens
        return {
            "message_count": len(messages),
            "turn_count": len(self._history),
            "system_tokens": usage.system_tokens,
            "messages_tokens": usage.messages_tokens,
            "total_tokens": usage.total_tokens,
            "available_tokens": available,
            "usage_percent": round(100.0 * usage.total_tokens / available, 1) if available else 0.0,
            "needs_optimization": usage.total_tokens > available,
        }

    # ------------------------------------------------------------------
    # Turn processing
    # ------------------------------------------------------------------
    async def process(
        self,
        text: str,
        *,
        cancel_event: asyncio.Event | None = None,
        on_content: ContentCallback | None = None,
    ) -> TurnOutcome:
        """Run one turn for ``text`` and return its outcome.

        Raises:
            ConfigurationError: No usable credential is configured.
            TurnCancelledError: ``cancel_event`` was set mid-turn.
        """
        async with self._lock:
            self._abandon_pending()
            self._transition(OrchestratorState.IDLE)
            draft = _TurnDraft(text=text)
            timeout = self._config.turn_timeout
            deadline = time.monotonic() + timeout if timeout else None
            try:
                run = self._run_turn(draft, deadline=deadline, cancel_event=cancel_event, on_content=on_content)
                if timeout:
                    return await asyncio.wait_for(run, timeout=timeout)
                return await run
            except asyncio.TimeoutError:
                LOGGER.warning("Turn timed out after %.1fs", timeout)
                return self._commit(
                    draft,
                    reply="",
                    status="error",
                    warnings=(f"The request timed out after {timeout:g} seconds.",),
                )
            except BaseException:
                self._transition(OrchestratorState.IDLE)
                raise

    async def _run_turn(
        self,
        draft: _TurnDraft,
        *,
        deadline: float | None,
        cancel_event: asyncio.Event | None,
        on_content: ContentCallback | None,
    ) -> TurnOutcome:
        if self._proposals is not None:
            self._proposals.drain()

        intent = recognize_intent(draft.text)
        draft.intent = intent
        self._transition(OrchestratorState.INTENT_RECOGNIZED)
        if isinstance(intent, CommandIntent) and intent.name == CLEAR_COMMAND:
            return self._clear(draft)

        context = self._context_builder.build(draft.text, intent)
        draft.context = context
        history_messages = self._history.messages()
        system_message = context.system_message(len(history_messages))
        draft.exchange.append(context.user_message())
        self._transition(OrchestratorState.CONTEXT_BUILT)

        if self._router is not None:
            draft.routing = self._router.route(intent, draft.text)
            draft.model = draft.routing.model
        tools = self._registry.to_openai_tools() or None
        self._scheduler.reset()

        status: TurnStatus = "completed"
        warnings: list[str] = []
        while True:
            _raise_if_cancelled(cancel_event)
            optimized = self._optimizer.optimize([system_message, *history_messages, *draft.exchange])
            draft.usage = optimized.token_usage
            if optimized.oversized:
                warnings.append("The conversation context exceeds the token budget even after trimming.")

            self._transition(OrchestratorState.AWAITING_MODEL)
            try:
                response = await self._call_model(
                    optimized.messages,
                    model=draft.model,
                    tools=tools,
                    cancel_event=cancel_event,
                    on_content=on_content,
                )
            except (GatewayError, ResponseValidationError) as exc:
                LOGGER.warning("Model call failed: %s", exc.message)
                return self._commit(draft, reply="", status="error", warnings=(*warnings, exc.message))

            if not response.has_tool_calls:
                break

            self._transition(OrchestratorState.TOOL_ROUND)
            try:
                self._scheduler.begin_round(response.tool_calls)
                results = await self._scheduler.run_round(response.tool_calls, deadline=deadline)
            except LoopDetectedError as exc:
                status, message = "loop_detected", exc.message
            except MaxRoundsExceededError as exc:
                status, message = "max_rounds", exc.message
            except RecursionLimitError as exc:
                status, message = "recursion_limit", exc.message
            else:
                draft.exchange.extend(ToolScheduler.round_messages(response, results))
                draft.tool_calls.extend(response.tool_calls)
                draft.tool_results.extend(results)
                draft.rounds = self._scheduler.rounds
                continue

            # The interrupted round's calls never ran, so only its text is kept.
            warnings.append(message)
            response = ModelResponse(text=response.text, finish_reason=response.finish_reason, model=response.model)
            break

        self._transition(OrchestratorState.RESPONSE_FINAL)
        reply = response.text
        if reply:
            draft.exchange.append(Message.assistant(reply))
        advisories = self._retry.validator.assess(response).warnings if status == "completed" else ()

        pending = self._collect_changes(reply)
        for failure in pending.failures:
            warnings.append(f"Skipped {failure.operation.kind} of {failure.operation.path}: {failure.message}")
        outcome = self._commit(draft, reply=reply, status=status, warnings=tuple(warnings), pending=pending)
        outcome.advisories = advisories
        return outcome

    async def _call_model(
        self,
        messages: Sequence[Message],
        *,
        model: str | None,
        tools: Sequence[Mapping[str, Any]] | None,
        cancel_event: asyncio.Event | None,
        on_content: ContentCallback | None,
    ) -> ModelResponse:
        """Validated model call; only the accepted attempt's fragments reach ``on_content``."""
        fragments: list[str] = []

        def attempt() -> Awaitable[ModelResponse]:
            fragments.clear()
            return self._gateway.generate(
                messages,
                model=model,
                tools=tools,
                on_content=fragments.append if on_content is not None else None,
            )

        response = await self._retry.run(attempt, cancel_event=cancel_event)
        if on_content is not None:
            for fragment in fragments:
                on_content(fragment)
        return response

    def _collect_changes(self, reply: str) -> PendingChangeSet:
        proposed = self._proposals.drain() if self._proposals is not None else ()
        operations = detect_modifications(reply) if self._config.detect_modifications and reply else []
        detected = PendingChangeSet.build(operations, self._matcher)
        pending = PendingChangeSet((*proposed, *detected.changes), detected.failures)
        if operations or proposed:
            self._transition(OrchestratorState.MODIFICATIONS_DETECTED)
            LOGGER.info(
                "Prepared %s pending change(s) (%s failed)", len(pending), len(pending.failures)
            )
        return pending

    def _clear(self, draft: _TurnDraft) -> TurnOutcome:
        removed = self._history.clear()
        LOGGER.info("Cleared %s turn(s) from the conversation history", removed)
        return self._commit(draft, reply=CLEARED_REPLY, status="command")

    def _commit(
        self,
        draft: _TurnDraft,
        *,
        reply: str,
        status: TurnStatus,
        warnings: Sequence[str] = (),
        pending: PendingChangeSet | None = None,
    ) -> TurnOutcome:
        if not draft.exchange:
            draft.exchange.append(Message.user(draft.text))
        if status == "command":
            draft.exchange.append(Message.assistant(reply))
        turn = Turn(
            sequence=self._history.next_sequence(),
            user_input=draft.text,
            reply=reply,
            tool_calls=tuple(draft.tool_calls),
            tool_results=tuple(draft.tool_results),
            messages=tuple(draft.exchange),
            intent=draft.intent or recognize_intent(draft.text),
            status=status,
            warnings=tuple(warnings),
            model=draft.model,
            tool_rounds=draft.rounds,
        )
        self._history.append(turn)
        for warning in turn.warnings:
            LOGGER.warning("Turn %s: %s", turn.sequence, warning)

        if pending is None:
            pending = PendingChangeSet()
        if pending:
            self._pending = pending
            self._transition(OrchestratorState.AWAITING_CONFIRMATION)
        else:
            self._transition(OrchestratorState.CLOSED)
        return TurnOutcome(
            turn=turn,
            pending=pending,
            usage=draft.usage,
            routing=draft.routing,
            context=draft.context,
        )

    # ------------------------------------------------------------------
    # Confirmation
    # ------------------------------------------------------------------
    async def resolve_pending(
        self,
        decision: Decision | str,
        file_operations: FileOperations | None = None,
    ) -> ApplyReport:
        """Apply the host's decision to the pending change set."""
        pending = self._pending
        if pending is None or not pending.is_pending:
            raise RuntimeError("There are no pending changes to resolve")
        self._pending = None
        report = await pending.decide(decision, file_operations)
        if self._state is OrchestratorState.AWAITING_CONFIRMATION:
            self._transition(OrchestratorState.CLOSED)
        return report

    def clear_history(self) -> int:
        return self._history.clear()

    def _abandon_pending(self) -> None:
        pending, self._pending = self._pending, None
        if pending is not None and pending.is_pending:
            LOGGER.info("Abandoning %s unconfirmed change(s)", len(pending))
            pending.abandon()

    def _transition(self, state: OrchestratorState) -> None:
        if state is self._state:
            return
        LOGGER.debug("Orchestrator state %s -> %s", self._state.value, state.value)
        self._state = state


def _raise_if_cancelled(cancel_event: asyncio.Event | None) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise TurnCancelledError("Turn cancelled")
