"""Factory that wires a ready-to-use orchestrator from :class:`Settings`."""

from __future__ import annotations

import logging
from pathlib import Path

from .ai.client import AIClient, ClientSettings
from .ai.orchestration.context import ContextBuilder
from .ai.orchestration.context_optimizer import ContextConfig, ContextWindowOptimizer
from .ai.orchestration.gateway import ModelGateway
from .ai.orchestration.history import ConversationHistory
from .ai.orchestration.orchestrator import ConversationOrchestrator, OrchestratorConfig
from .ai.orchestration.retry import ResponseValidator, RetryConfig, RetryController
from .ai.orchestration.router import IntentBasedStrategy, LengthBasedStrategy, ModelRouter
from .ai.orchestration.tool_scheduler import SchedulerConfig
from .ai.orchestration.tools.edit_tools import EditProposals, register_edit_tools
from .ai.orchestration.tools.executor import ExecutorConfig
from .ai.orchestration.tools.registry import ToolRegistry
from .editor.matcher import CodeMatcher
from .services.settings import Settings
from .utils.logging import configure_logging

__all__ = ["create_orchestrator", "create_router"]

LOGGER = logging.getLogger(__name__)


def create_router(settings: Settings) -> ModelRouter:
    """Long inputs go to the strong model first, then intent decides."""

    return ModelRouter(
        [
            LengthBasedStrategy(strong_model=settings.strong_model, threshold=settings.length_routing_threshold),
            IntentBasedStrategy(strong_model=settings.strong_model, fast_model=settings.model),
        ],
        default_model=settings.model,
    )


def create_orchestrator(
    settings: Settings | None = None,
    *,
    workspace: Path | str = ".",
    registry: ToolRegistry | None = None,
    gateway: ModelGateway | None = None,
    enable_edit_tools: bool = True,
) -> ConversationOrchestrator:
    """Create a :class:`ConversationOrchestrator` for ``workspace``.

    Args:
        settings: Runtime settings; defaults to ``Settings.from_env()``.
        workspace: Root directory all file paths resolve against.
        registry: Tool registry to advertise; a new one is created otherwise.
        gateway: Model gateway override (tests, alternative providers).
        enable_edit_tools: Register the ``str_replace_editor`` proposal tool.

    Example:
        >>> orchestrator = create_orchestrator(Settings(api_key="sk-live"), workspace="~/src/app")
        >>> outcome = await orchestrator.process("explain @main.py")
    """
    settings = settings or Settings.from_env()
    if settings.debug_logging:
        LOGGER.info("Debug logging enabled; writing to %s", configure_logging(settings))
    matcher = CodeMatcher(workspace, max_file_bytes=settings.max_file_bytes)
    registry = registry or ToolRegistry()

    proposals: EditProposals | None = None
    if enable_edit_tools and not registry.has("str_replace_editor"):
        proposals = register_edit_tools(registry, matcher)

    if gateway is None:
        gateway = AIClient(ClientSettings.from_settings(settings))
        if not settings.has_api_key:
            LOGGER.warning("No API key configured; model calls will fail until one is set")

    retry = RetryController(
        RetryConfig(
            max_attempts=settings.max_attempts,
            initial_delay=settings.initial_retry_delay,
            backoff_multiplier=settings.retry_backoff_multiplier,
        ),
        validator=ResponseValidator(
            min_length=settings.min_response_length,
            max_bytes=settings.max_response_bytes,
        ),
    )
    optimizer = ContextWindowOptimizer(
        ContextConfig(
            max_tokens=settings.max_context_tokens,
            reserved_output_tokens=settings.reserved_output_tokens,
            min_messages_to_keep=settings.min_messages_to_keep,
            enable_summarization=settings.enable_summarization,
        )
    )
    LOGGER.debug("Creating orchestrator for workspace %s (model=%s)", matcher.root, settings.model)
    return ConversationOrchestrator(
        gateway,
        matcher,
        registry=registry,
        history=ConversationHistory(settings.history_max_entries, settings.history_max_tokens),
        optimizer=optimizer,
        router=create_router(settings),
        retry=retry,
        context_builder=ContextBuilder(matcher, rules_path=settings.rules_path),
        proposals=proposals,
        scheduler_config=SchedulerConfig(
            max_rounds=settings.max_tool_rounds,
            max_depth=settings.max_tool_depth,
            loop_repeat_threshold=settings.loop_repeat_threshold,
            tool_timeout=settings.tool_timeout,
        ),
        executor_config=ExecutorConfig(default_timeout=settings.tool_timeout),
        config=OrchestratorConfig(turn_timeout=settings.turn_timeout),
    )
