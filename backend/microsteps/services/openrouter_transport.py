"""OpenRouter chat-completion transport built on the OpenAI SDK."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Literal, Optional, Protocol

import openai
from pydantic import BaseModel, Field

from microsteps.core.config import Settings
from microsteps.services.errors import BreakdownTimeoutError, BreakdownTransportError

logger = logging.getLogger(__name__)


class ChatMessage(BaseModel):
    role: Literal["system", "user", "assistant"]
    content: str


class ChatCompletionRequest(BaseModel):
    """Payload sent to the provider for one attempt."""

    model: str
    messages: List[ChatMessage]
    temperature: float = 0.7
    response_format: Dict[str, str] = Field(default_factory=lambda: {"type": "json_object"})
    stream: bool = False


class TokenUsage(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class ChatCompletionResponse(BaseModel):
    """The part of a provider response the breakdown flow consumes."""

    content: str
    usage: Optional[TokenUsage] = None
    model: Optional[str] = None
    id: Optional[str] = None


class ChatTransport(Protocol):
    async def complete(self, request: ChatCompletionRequest) -> ChatCompletionResponse:
        """Send one request and return the assistant message.

        Raises BreakdownTimeoutError when the provider does not answer in time
        and BreakdownTransportError for network failures or non-2xx replies.
        """
        ...


class OpenRouterTransport:
    """Sends chat completions to OpenRouter's OpenAI-compatible endpoint."""

    def __init__(self, client: Any, provider: str = "openrouter") -> None:
        self._client = client
        self.provider = provider

    @classmethod
    def from_settings(cls, settings: Settings) -> "OpenRouterTransport":
        client = openai.AsyncOpenAI(
            api_key=settings.openrouter_api_key,
            base_url=settings.openrouter_base_url,
            timeout=settings.openrouter_timeout_seconds,
            # Retries are owned by BreakdownClient.
            max_retries=0,
        )
        return cls(client)

    async def complete(self, request: ChatCompletionRequest) -> ChatCompletionResponse:
        try:
            completion = await self._client.chat.completions.create(
                model=request.model,
                messages=[message.model_dump() for message in request.messages],
                temperature=request.temperature,
                response_format=request.response_format,
                stream=request.stream,
            )
        except openai.APITimeoutError as exc:
            raise BreakdownTimeoutError("OpenRouter API request timed out") from exc
        except openai.APIStatusError as exc:
            raise BreakdownTransportError(
                f"OpenRouter API error: {exc.status_code} {exc.message}",
                status_code=exc.status_code,
            ) from exc
        except openai.APIConnectionError as exc:
            raise BreakdownTransportError(f"OpenRouter connection failed: {exc}") from exc
        except openai.APIError as exc:
            raise BreakdownTransportError(f"OpenRouter API error: {exc}") from exc

        choices = getattr(completion, "choices", None) or []
        content = choices[0].message.content if choices else None
        if not content:
            raise BreakdownTransportError("Empty response from OpenRouter API")

        usage = None
        if getattr(completion, "usage", None) is not None:
            usage = TokenUsage(
                prompt_tokens=completion.usage.prompt_tokens or 0,
                completion_tokens=completion.usage.completion_tokens or 0,
                total_tokens=completion.usage.total_tokens or 0,
            )
        return ChatCompletionResponse(
            content=content,
            usage=usage,
            model=getattr(completion, "model", None),
            id=getattr(completion, "id", None),
        )

    async def aclose(self) -> None:
        close = getattr(self._client, "close", None)
        if close is not None:
            await close()


def build_transport(settings: Settings) -> Optional[OpenRouterTransport]:
    """Return a transport, or None when no API key is configured."""
    if not settings.openrouter_api_key:
        logger.warning("OPENROUTER_API_KEY missing; breakdowns will use the fallback generator.")
        return None
    return OpenRouterTransport.from_settings(settings)
