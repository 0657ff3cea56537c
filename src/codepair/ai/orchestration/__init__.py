"""Conversation orchestration pipeline."""

from .types import (
    Message,
    MessageRole,
    ModelResponse,
    OptimizedContext,
    TokenUsage,
    ToolCall,
    ToolResult,
    Turn,
    TurnStatus,
)

# Intents and context assembly
from .intents import (
    ChatIntent,
    CodeGenerationIntent,
    CodeReviewIntent,
    CommandIntent,
    DebugIntent,
    FileMentionIntent,
    Intent,
    recognize_intent,
)
from .context import ContextBuilder, ConversationContext, FileContent, intent_metadata
from .context_optimizer import (
    ContextConfig,
    ContextWindowOptimizer,
    estimate_message_tokens,
    estimate_tokens,
)
from .history import ConversationHistory

# Model interaction
from .gateway import ContentCallback, ModelGateway
from .router import IntentBasedStrategy, LengthBasedStrategy, ModelRouter, RoutingDecision, RoutingStrategy
from .retry import ResponseValidator, RetryConfig, RetryController, RetryState, ValidationOutcome
from .streaming import StreamAccumulator, StreamDelta

# Tools
from .tool_scheduler import SchedulerConfig, ToolScheduler, round_signature

# Orchestrator facade
from .orchestrator import (
    ConversationOrchestrator,
    OrchestratorConfig,
    OrchestratorState,
    TurnOutcome,
)

__all__ = [
    # types.py
    "Message",
    "MessageRole",
    "ModelResponse",
    "OptimizedContext",
    "TokenUsage",
    "ToolCall",
    "ToolResult",
    "Turn",
    "TurnStatus",
    # intents.py
    "ChatIntent",
    "CodeGenerationIntent",
    "CodeReviewIntent",
    "CommandIntent",
    "DebugIntent",
    "FileMentionIntent",
    "Intent",
    "recognize_intent",
    # context.py
    "ContextBuilder",
    "ConversationContext",
    "FileContent",
    "intent_metadata",
    # context_optimizer.py
    "ContextConfig",
    "ContextWindowOptimizer",
    "estimate_message_tokens",
    "estimate_tokens",
    # history.py
    "ConversationHistory",
    # gateway.py
    "ContentCallback",
    "ModelGateway",
    # router.py
    "IntentBasedStrategy",
    "LengthBasedStrategy",
    "ModelRouter",
    "RoutingDecision",
    "RoutingStrategy",
    # retry.py
    "ResponseValidator",
    "RetryConfig",
    "RetryController",
    "RetryState",
    "ValidationOutcome",
    # streaming.py
    "StreamAccumulator",
    "StreamDelta",
    # tool_scheduler.py
    "SchedulerConfig",
    "ToolScheduler",
    "round_signature",
    # orchestrator.py
    "ConversationOrchestrator",
    "OrchestratorConfig",
    "OrchestratorState",
    "TurnOutcome",
]
