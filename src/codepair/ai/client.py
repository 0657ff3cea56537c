"""Async model gateway built around OpenAI-compatible chat endpoints."""

from __future__ import annotations

import inspect
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Sequence

import httpx
from openai import (
    APIConnectionError,
    APIError,
    APIStatusError,
    APITimeoutError,
    AsyncOpenAI,
    RateLimitError,
)

from ..services.settings import Settings, is_placeholder_api_key, redact_secret
from .errors import ConfigurationError, GatewayError, TransientGatewayError
from .orchestration.gateway import ContentCallback
from .orchestration.streaming import StreamAccumulator, StreamDelta
from .orchestration.types import Message, ModelResponse, ToolCall

__all__ = [
    "ClientSettings",
    "AIClient",
    "MISSING_API_KEY_MESSAGE",
    "classify_error",
]

LOGGER = logging.getLogger(__name__)

MISSING_API_KEY_MESSAGE = "No API key set. Please configure your API key."


@dataclass(slots=True)
class ClientSettings:
    """Subset of settings required to configure the gateway."""

    base_url: str
    api_key: str
    model: str
    organization: str | None = None
    request_timeout: float = 60.0
    connect_timeout: float = 10.0
    temperature: float | None = 0.7
    max_tokens: int | None = 4096
    stream: bool = True
    default_headers: Mapping[str, str] | None = None
    debug_logging: bool = False

    @classmethod
    def from_settings(cls, settings: Settings) -> ClientSettings:
        return cls(
            base_url=settings.base_url,
            api_key=settings.api_key,
            model=settings.model,
            organization=settings.organization,
            request_timeout=settings.request_timeout,
            connect_timeout=settings.connect_timeout,
            temperature=settings.temperature,
            max_tokens=settings.max_output_tokens,
            stream=settings.streaming_enabled,
            debug_logging=settings.debug_logging,
        )


class AIClient:
    """Gateway to an OpenAI-compatible endpoint.

    Retries are owned by the retry controller, so the underlying SDK client
    is created with ``max_retries=0`` and every failure is translated into
    :class:`TransientGatewayError` (worth retrying) or :class:`GatewayError`.
    """

    def __init__(self, settings: ClientSettings, *, client: AsyncOpenAI | None = None) -> None:
        self._settings = settings
        self._client = client

    @property
    def settings(self) -> ClientSettings:
        return self._settings

    async def generate(
        self,
        messages: Sequence[Message],
        *,
        model: str | None = None,
        tools: Sequence[Mapping[str, Any]] | None = None,
        on_content: ContentCallback | None = None,
    ) -> ModelResponse:
        """Run one chat completion, streamed when enabled."""

        self.ensure_credentials()
        payload = self._build_chat_payload(messages, model=model, tools=tools)
        LOGGER.debug(
            "Starting chat completion via %s with %s message(s) (stream=%s)",
            payload["model"],
            len(payload["messages"]),
            self._settings.stream,
        )
        if self._settings.debug_logging:
            self._log_prompt_payload(payload)

        try:
            if self._settings.stream:
                return await self._generate_streaming(payload, on_content)
            return await self._generate_once(payload, on_content)
        except (GatewayError, ConfigurationError):
            raise
        except Exception as exc:
            translated = classify_error(exc)
            if translated is None:
                raise
            raise translated from exc

    def ensure_credentials(self) -> None:
        if is_placeholder_api_key(self._settings.api_key):
            raise ConfigurationError(
                MISSING_API_KEY_MESSAGE,
                suggestion="Set CODEPAIR_API_KEY or configure the key in settings.",
            )

    async def _generate_streaming(
        self, payload: Dict[str, Any], on_content: ContentCallback | None
    ) -> ModelResponse:
        accumulator = StreamAccumulator()
        stream = await self._get_client().chat.completions.create(stream=True, **payload)
        async for chunk in stream:
            for delta in self._normalize_chunk(chunk):
                fragment = accumulator.feed(delta)
                if fragment and on_content is not None:
                    on_content(fragment)
        return accumulator.finish(model=payload["model"])

    async def _generate_once(self, payload: Dict[str, Any], on_content: ContentCallback | None) -> ModelResponse:
        response = await self._get_client().chat.completions.create(**payload)
        choices = getattr(response, "choices", None) or []
        if not choices:
            raise GatewayError("Model returned no choices")
        choice = choices[0]
        message = choice.message
        text = message.content or ""
        tool_calls = tuple(
            ToolCall.from_raw(call.id, call.function.name, call.function.arguments, index=index)
            for index, call in enumerate(getattr(message, "tool_calls", None) or [])
        )
        usage = getattr(response, "usage", None)
        if text and on_content is not None:
            on_content(text)
        return ModelResponse(
            text=text,
            tool_calls=tool_calls,
            finish_reason=getattr(choice, "finish_reason", None),
            prompt_tokens=getattr(usage, "prompt_tokens", None),
            completion_tokens=getattr(usage, "completion_tokens", None),
            model=getattr(response, "model", None) or payload["model"],
        )

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = self._build_client(self._settings)
        return self._client

    def _build_client(self, settings: ClientSettings) -> AsyncOpenAI:
        headers = dict(settings.default_headers) if settings.default_headers else None
        LOGGER.debug(
            "Creating model client for %s (key=%s)", settings.base_url, redact_secret(settings.api_key)
        )
        return AsyncOpenAI(
            api_key=settings.api_key,
            base_url=settings.base_url,
            organization=settings.organization,
            timeout=httpx.Timeout(settings.request_timeout, connect=settings.connect_timeout),
            max_retries=0,
            default_headers=headers,
        )

    def _build_chat_payload(
        self,
        messages: Sequence[Message],
        *,
        model: str | None,
        tools: Sequence[Mapping[str, Any]] | None,
    ) -> Dict[str, Any]:
        if not messages:
            raise ValueError("At least one message is required to start a chat")
        payload: Dict[str, Any] = {
            "model": model or self._settings.model,
            "messages": [message.to_chat_param() for message in messages],
        }
        if tools:
            payload["tools"] = list(tools)
            payload["tool_choice"] = "auto"
        if self._settings.temperature is not None:
            payload["temperature"] = self._settings.temperature
        if self._settings.max_tokens is not None:
            payload["max_tokens"] = self._settings.max_tokens
        return payload

    @staticmethod
    def _normalize_chunk(chunk: Any) -> list[StreamDelta]:
        deltas: list[StreamDelta] = []
        for choice in getattr(chunk, "choices", None) or []:
            delta = getattr(choice, "delta", None)
            content = getattr(delta, "content", None) if delta is not None else None
            tool_fragments = (getattr(delta, "tool_calls", None) or []) if delta is not None else []
            finish_reason = getattr(choice, "finish_reason", None)
            if content:
                deltas.append(StreamDelta(content=content))
            for fragment in tool_fragments:
                function = getattr(fragment, "function", None)
                deltas.append(
                    StreamDelta(
                        tool_index=getattr(fragment, "index", None) or 0,
                        tool_call_id=getattr(fragment, "id", None),
                        tool_name=getattr(function, "name", None),
                        arguments=getattr(function, "arguments", None),
                    )
                )
            if finish_reason:
                deltas.append(StreamDelta(finish_reason=finish_reason))
        usage = getattr(chunk, "usage", None)
        if usage is not None:
            deltas.append(
                StreamDelta(
                    prompt_tokens=getattr(usage, "prompt_tokens", None),
                    completion_tokens=getattr(usage, "completion_tokens", None),
                )
            )
        return deltas

    def _log_prompt_payload(self, payload: Mapping[str, Any]) -> None:
        try:
            serialized = json.dumps(payload, ensure_ascii=False, indent=2)
        except (TypeError, ValueError):
            LOGGER.debug("Prompt payload (unserializable): %s", payload)
        else:
            LOGGER.debug("Prompt payload:\n%s", serialized)

    async def aclose(self) -> None:
        """Close the underlying SDK client to release network resources."""

        if self._client is None:
            return
        close = getattr(self._client, "close", None)
        if close is None:
            return
        result = close()
        if inspect.isawaitable(result):
            await result


def classify_error(exc: BaseException) -> GatewayError | None:
    """Map SDK/transport exceptions onto the gateway error hierarchy.

    Returns ``None`` for exceptions that are not gateway failures at all.
    """

    if isinstance(exc, RateLimitError):
        return TransientGatewayError("Rate limited by the model provider", status_code=429)
    if isinstance(exc, APIStatusError):
        status = exc.status_code
        if status == 429 or status >= 500:
            return TransientGatewayError(f"Model provider error ({status}): {exc.message}", status_code=status)
        return GatewayError(f"Model request rejected ({status}): {exc.message}", status_code=status)
    if isinstance(exc, (APITimeoutError, httpx.TimeoutException)):
        return TransientGatewayError(f"Model request timed out: {exc}")
    if isinstance(exc, (APIConnectionError, httpx.TransportError)):
        return TransientGatewayError(f"Could not reach the model provider: {exc}")
    if isinstance(exc, APIError):
        return GatewayError(f"Model provider returned an invalid response: {exc.message}")
    if isinstance(exc, (json.JSONDecodeError, httpx.DecodingError)):
        return GatewayError(f"Could not parse the model response: {exc}")
    return None
