"""Response validation and bounded retry around a single upstream call."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable

from tenacity import AsyncRetrying, RetryCallState, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..errors import ResponseValidationError, TransientGatewayError, TurnCancelledError
from .types import ModelResponse

__all__ = [
    "ValidationOutcome",
    "ResponseValidator",
    "RetryConfig",
    "RetryState",
    "RetryController",
]

LOGGER = logging.getLogger(__name__)

SleepFunction = Callable[[float], Awaitable[None]]


# -----------------------------------------------------------------------------
# Validation
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class ValidationOutcome:
    valid: bool
    reason: str | None = None
    message: str = ""
    warnings: tuple[str, ...] = ()


class ResponseValidator:
    """Reject unusable replies; everything else passes.

    Hard rejections: empty text, text shorter than ``min_length`` and text
    larger than ``max_bytes``. A reply that carries tool calls may have empty
    text. Content heuristics only add warnings.
    """

    def __init__(self, *, min_length: int = 10, max_bytes: int = 100_000) -> None:
        self.min_length = max(0, min_length)
        self.max_bytes = max_bytes

    def assess(self, response: ModelResponse) -> ValidationOutcome:
        text = response.text or ""
        stripped = text.strip()
        if len(text.encode("utf-8", errors="ignore")) > self.max_bytes:
            return ValidationOutcome(
                valid=False,
                reason="oversized",
                message=f"Model reply exceeds {self.max_bytes} bytes",
            )
        if response.has_tool_calls:
            return ValidationOutcome(valid=True)
        if not stripped:
            return ValidationOutcome(valid=False, reason="empty", message="Model returned an empty reply")
        if len(stripped) < self.min_length:
            return ValidationOutcome(
                valid=False,
                reason="too_short",
                message=f"Model reply is shorter than {self.min_length} characters",
            )
        return ValidationOutcome(valid=True, warnings=self._advisories(stripped))

    def check(self, response: ModelResponse) -> ValidationOutcome:
        """Like :meth:`assess` but raises for rejected replies."""
        outcome = self.assess(response)
        if not outcome.valid:
            raise ResponseValidationError(outcome.message, reason=outcome.reason or "invalid")
        return outcome

    @staticmethod
    def _advisories(text: str) -> tuple[str, ...]:
        lowered = text.lower()
        warnings: list[str] = []
        if "error" in lowered and "error handling" not in lowered:
            warnings.append("Reply mentions an error; double-check the result.")
        if lowered.count("```") % 2 == 1:
            warnings.append("Reply contains an unterminated code block.")
        return tuple(warnings)


# -----------------------------------------------------------------------------
# Retry
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class RetryConfig:
    """Backoff policy. ``max_attempts`` counts the first try."""

    max_attempts: int = 2
    initial_delay: float = 0.5
    backoff_multiplier: float = 2.0
    max_delay: float = 30.0


@dataclass(slots=True)
class RetryState:
    """Observable state of one retried call."""

    attempt: int = 0
    last_error: BaseException | None = None
    delay: float = 0.0
    delays: list[float] = field(default_factory=list)


class RetryController:
    """Run an upstream call, validating and retrying per :class:`RetryConfig`.

    Retries transient gateway failures and rejected replies. Anything else
    (including configuration errors) propagates on the first occurrence.
    Backoff sleeps end early with :class:`TurnCancelledError` when the
    ``cancel_event`` is set.
    """

    def __init__(
        self,
        config: RetryConfig | None = None,
        *,
        validator: ResponseValidator | None = None,
        sleep: SleepFunction | None = None,
    ) -> None:
        self._config = config or RetryConfig()
        self._validator = validator or ResponseValidator()
        self._sleep = sleep or asyncio.sleep
        self.last_state = RetryState()

    @property
    def config(self) -> RetryConfig:
        return self._config

    @property
    def validator(self) -> ResponseValidator:
        return self._validator

    async def run(
        self,
        operation: Callable[[], Awaitable[ModelResponse]],
        *,
        cancel_event: asyncio.Event | None = None,
        on_retry: Callable[[RetryState], None] | None = None,
    ) -> ModelResponse:
        state = RetryState()
        self.last_state = state
        response: ModelResponse | None = None

        async for attempt in self._retrying(state, cancel_event, on_retry):
            with attempt:
                if cancel_event is not None and cancel_event.is_set():
                    raise TurnCancelledError("Turn cancelled before the model call")
                state.attempt = attempt.retry_state.attempt_number
                response = await operation()
                self._validator.check(response)
        if response is None:  # pragma: no cover - tenacity always runs one attempt
            raise RuntimeError("Retry loop finished without a response")
        if state.attempt > 1:
            LOGGER.info("Model call succeeded on attempt %s", state.attempt)
        return response

    def _retrying(
        self,
        state: RetryState,
        cancel_event: asyncio.Event | None,
        on_retry: Callable[[RetryState], None] | None,
    ) -> AsyncRetrying:
        config = self._config

        def before_sleep(retry_state: RetryCallState) -> None:
            outcome = retry_state.outcome
            error = outcome.exception() if outcome is not None else None
            next_action = retry_state.next_action
            delay = next_action.sleep if next_action is not None else 0.0
            state.last_error = error
            state.delay = delay
            state.delays.append(delay)
            LOGGER.warning(
                "Model call attempt %s/%s failed (%s); retrying in %.2fs",
                retry_state.attempt_number,
                config.max_attempts,
                error,
                delay,
            )
            if on_retry is not None:
                on_retry(state)

        async def sleep(seconds: float) -> None:
            if cancel_event is None:
                await self._sleep(seconds)
                return
            if cancel_event.is_set():
                raise TurnCancelledError("Turn cancelled during retry backoff")
            try:
                await asyncio.wait_for(cancel_event.wait(), timeout=seconds)
            except asyncio.TimeoutError:
                return
            raise TurnCancelledError("Turn cancelled during retry backoff")

        return AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(max(1, config.max_attempts)),
            wait=wait_exponential(
                multiplier=config.initial_delay,
                exp_base=config.backoff_multiplier,
                max=config.max_delay,
            ),
            retry=retry_if_exception_type((TransientGatewayError, ResponseValidationError)),
            before_sleep=before_sleep,
            sleep=sleep,
        )
