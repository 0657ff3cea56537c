"""The orchestrator's view of the model provider."""

from __future__ import annotations

from typing import Any, Callable, Mapping, Protocol, Sequence, runtime_checkable

from .types import Message, ModelResponse

__all__ = ["ContentCallback", "ModelGateway"]

ContentCallback = Callable[[str], None]


@runtime_checkable
class ModelGateway(Protocol):
    """Turn a message list into a complete :class:`ModelResponse`.

    Implementations forward streamed text to ``on_content`` in arrival order
    and raise :class:`~codepair.ai.errors.GatewayError` subclasses on failure.
    """

    async def generate(
        self,
        messages: Sequence[Message],
        *,
        model: str | None = None,
        tools: Sequence[Mapping[str, Any]] | None = None,
        on_content: ContentCallback | None = None,
    ) -> ModelResponse:
        ...
