"""LLM-backed task breakdown generation with retries and a deterministic fallback."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar, Union

from pydantic import BaseModel, Field, field_validator

from microsteps.core.config import Settings
from microsteps.core.context import get_request_id
from microsteps.observability.client import ObservabilitySink
from microsteps.observability.tracing import TraceHandle, trace
from microsteps.services.breakdown_fallback import multi_day_fallback, single_day_fallback
from microsteps.services.breakdown_prompts import multi_day_messages, single_day_messages
from microsteps.services.breakdown_validator import validate_multi_day, validate_single_day
from microsteps.services.errors import BreakdownTimeoutError
from microsteps.services.openrouter_transport import (
    ChatCompletionRequest,
    ChatMessage,
    ChatTransport,
    build_transport,
)
from microsteps.services.retry_policy import RetryState

logger = logging.getLogger(__name__)

MultiDayBreakdown = Dict[str, List[str]]
Breakdown = Union[List[str], MultiDayBreakdown]
T = TypeVar("T", List[str], MultiDayBreakdown)

MAX_DURATION_DAYS = 365


class GenerationRequest(BaseModel):
    """One breakdown request; ``duration_days == 1`` selects the single-day shape."""

    title: str = Field(..., min_length=1)
    duration_days: int = Field(default=1, ge=1, le=MAX_DURATION_DAYS)
    user_id: str = Field(..., min_length=1)

    @field_validator("title")
    @classmethod
    def _strip_title(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("title must not be blank")
        return stripped

    @property
    def is_multi_day(self) -> bool:
        return self.duration_days > 1


class BreakdownClient:
    """Generates breakdowns through a chat transport and never raises to the caller.

    Each request runs ``max_retries + 1`` attempts at most. Transport failures
    are retried after ``2 ** attempt`` seconds; timeouts and invalid payloads
    stop the loop at once. Whenever the loop ends without a valid payload the
    deterministic fallback is returned instead.
    """

    def __init__(
        self,
        transport: Optional[ChatTransport],
        sink: Optional[ObservabilitySink] = None,
        *,
        model: str = "moonshotai/kimi-k2-0905",
        temperature: float = 0.7,
        timeout_seconds: float = 10.0,
        max_retries: int = 2,
        provider: str = "openrouter",
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._transport = transport
        self._sink = sink or ObservabilitySink.disabled()
        self.model = model
        self.temperature = temperature
        self.timeout_seconds = timeout_seconds
        self.max_retries = max_retries
        self.provider = provider
        self._sleep = sleep

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        sink: ObservabilitySink,
        transport: Optional[ChatTransport] = None,
    ) -> "BreakdownClient":
        return cls(
            transport if transport is not None else build_transport(settings),
            sink,
            model=settings.openrouter_model,
            temperature=settings.openrouter_temperature,
            timeout_seconds=settings.openrouter_timeout_seconds,
            max_retries=settings.openrouter_max_retries,
        )

    @property
    def configured(self) -> bool:
        return self._transport is not None

    async def aclose(self) -> None:
        close = getattr(self._transport, "aclose", None)
        if close is not None:
            await close()

    async def generate_breakdown(self, request: GenerationRequest, max_retries: Optional[int] = None) -> Breakdown:
        if request.is_multi_day:
            return await self.generate_multi_day_breakdown(
                request.title, request.duration_days, request.user_id, max_retries
            )
        return await self.generate_single_day_breakdown(request.title, request.user_id, max_retries)

    async def generate_single_day_breakdown(
        self,
        title: str,
        user_id: str,
        max_retries: Optional[int] = None,
    ) -> List[str]:
        """Return a flat list of steps for a one-day task."""
        return await self._generate(
            span_name="openrouter-single-day",
            metadata={"task_title": title, "task_type": "single-day"},
            user_id=user_id,
            messages=single_day_messages(title),
            validate=validate_single_day,
            fallback=lambda: single_day_fallback(title),
            max_retries=max_retries,
        )

    async def generate_multi_day_breakdown(
        self,
        title: str,
        duration_days: int,
        user_id: str,
        max_retries: Optional[int] = None,
    ) -> MultiDayBreakdown:
        """Return ``day_<n>`` step lists for a habit spanning ``duration_days``."""
        return await self._generate(
            span_name="openrouter-multi-day",
            metadata={"task_title": title, "task_type": "multi-day", "duration_days": duration_days},
            user_id=user_id,
            messages=multi_day_messages(title, duration_days),
            validate=lambda content: validate_multi_day(content, duration_days),
            fallback=lambda: multi_day_fallback(title, duration_days),
            max_retries=max_retries,
        )

    async def _generate(
        self,
        *,
        span_name: str,
        metadata: Dict[str, Any],
        user_id: str,
        messages: List[ChatMessage],
        validate: Callable[[str], T],
        fallback: Callable[[], T],
        max_retries: Optional[int],
    ) -> T:
        retries = self.max_retries if max_retries is None else max_retries
        state = RetryState(max_retries=max(0, retries))

        with trace(
            self._sink,
            "task-breakdown",
            metadata=metadata,
            user_id=user_id,
            request_id=get_request_id(),
        ) as handle:
            if self._transport is None:
                return self._use_fallback(handle, fallback, "OpenRouter API key not configured", attempts=0)

            request = ChatCompletionRequest(
                model=self.model,
                messages=messages,
                temperature=self.temperature,
            )

            while True:
                attempt_metadata = {"provider": self.provider, "attempt": state.attempt + 1}
                try:
                    response = await asyncio.wait_for(
                        self._transport.complete(request),
                        timeout=self.timeout_seconds,
                    )
                    result = validate(response.content)
                except asyncio.TimeoutError:
                    error: Exception = BreakdownTimeoutError(
                        f"OpenRouter API request timed out after {self.timeout_seconds:g}s"
                    )
                except Exception as exc:
                    error = exc
                else:
                    handle.span(
                        span_name,
                        input={"messages": [message.model_dump() for message in messages]},
                        output={"breakdown": result},
                        metadata=attempt_metadata,
                        usage=response.usage.model_dump() if response.usage else None,
                        model=response.model or self.model,
                        provider=self.provider,
                    )
                    return result

                state.record(error)
                logger.warning(
                    "Breakdown attempt %s/%s failed (%s): %s",
                    state.attempt + 1,
                    state.total_attempts,
                    type(error).__name__,
                    error,
                )
                handle.span(
                    f"{span_name}-error",
                    input={"task_title": metadata.get("task_title")},
                    metadata={**attempt_metadata, "error_type": type(error).__name__},
                    model=self.model,
                    provider=self.provider,
                    error=error,
                )

                if not state.should_retry():
                    break
                await self._sleep(state.next_delay())
                state.advance()

            reason = str(state.last_error) if state.last_error else "unknown error"
            return self._use_fallback(handle, fallback, reason, attempts=state.attempt + 1)

    def _use_fallback(self, handle: TraceHandle, fallback: Callable[[], T], reason: str, *, attempts: int) -> T:
        logger.error("Breakdown generation failed after %s attempt(s), using fallback: %s", attempts, reason)
        result = fallback()
        handle.event(
            "fallback-breakdown-used",
            metadata={"reason": reason, "attempts": attempts, "fallback": result},
        )
        return result
