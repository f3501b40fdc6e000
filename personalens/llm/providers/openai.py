"""OpenAI provider implementation.

Flat ``messages`` list with bearer authentication (Chat Completions API).
This is the reference shape the other providers are normalized into.
"""

import os
import time
from typing import Any

import httpx
from openai import APIConnectionError, APIStatusError, APITimeoutError, AsyncOpenAI

from ..errors import (
    AuthenticationError,
    ProviderError,
    QuotaExhaustedError,
    TimeoutError,
    body_error_message,
    error_from_status,
    parse_retry_after,
)
from ..models import ChatMessage, ChatRequest, ChatResponse, Choice, Usage
from .base import LLMProvider


class OpenAIProvider(LLMProvider):
    """OpenAI Chat Completions API provider."""

    DEFAULT_MODEL = "gpt-4o-mini"

    def __init__(
        self,
        api_key: str | None = None,
        timeout: float = 60.0,
        default_model: str = DEFAULT_MODEL,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize OpenAI provider.

        Args:
            api_key: OpenAI API key. Defaults to OPENAI_API_KEY env var.
            timeout: Request timeout in seconds.
            default_model: Model used when the request does not name one.
            transport: Optional httpx transport for the SDK client (tests).
        """
        super().__init__(api_key or os.environ.get("OPENAI_API_KEY"), timeout, default_model)
        self._transport = transport
        self._client: AsyncOpenAI | None = None

    @property
    def name(self) -> str:
        """Provider identifier."""
        return "openai"

    @property
    def client(self) -> AsyncOpenAI:
        """Lazy-initialized OpenAI client."""
        if self._client is None:
            if not self._api_key:
                raise AuthenticationError(
                    "OpenAI API key not configured. Set OPENAI_API_KEY environment variable.",
                    provider=self.name,
                )
            # retries belong to the resilience layer
            http_client = (
                httpx.AsyncClient(transport=self._transport, timeout=self._timeout)
                if self._transport is not None
                else None
            )
            self._client = AsyncOpenAI(
                api_key=self._api_key,
                timeout=self._timeout,
                max_retries=0,
                http_client=http_client,
            )
        return self._client

    async def generate(self, request: ChatRequest) -> ChatResponse:
        """Send a completion request to OpenAI."""
        start_time = time.perf_counter()
        openai_request = self._build_request(request)

        try:
            response = await self.client.chat.completions.create(**openai_request)
        except APITimeoutError as e:
            raise TimeoutError(
                f"OpenAI request timed out after {self._timeout}s",
                provider=self.name,
            ) from e
        except APIConnectionError as e:
            raise ProviderError(
                f"Failed to connect to OpenAI: {e}",
                provider=self.name,
                code="NETWORK_ERROR",
            ) from e
        except APIStatusError as e:
            raise self._map_api_error(e) from e

        latency_ms = int((time.perf_counter() - start_time) * 1000)
        return self._parse_response(response, latency_ms)

    def _build_request(self, request: ChatRequest) -> dict[str, Any]:
        """Convert ChatRequest to OpenAI API format."""
        return {
            "model": request.model or self._default_model,
            "messages": [{"role": msg.role, "content": msg.content} for msg in request.messages],
            "temperature": request.temperature,
            "max_tokens": request.max_tokens,
            "stream": False,
        }

    def _parse_response(self, response: Any, latency_ms: int) -> ChatResponse:
        """Convert an OpenAI ChatCompletion to ChatResponse."""
        if not response.choices:
            raise ProviderError(
                "No choices in OpenAI response",
                provider=self.name,
                code="INVALID_RESPONSE",
                raw_body=response.model_dump() if hasattr(response, "model_dump") else None,
            )

        choices = [
            Choice(
                index=choice.index or 0,
                message=ChatMessage(role="assistant", content=choice.message.content or ""),
                finish_reason=choice.finish_reason or "stop",
            )
            for choice in response.choices
        ]
        usage = response.usage

        return ChatResponse(
            id=response.id or f"openai-{int(time.time() * 1000)}",
            model=response.model or self._default_model,
            created=response.created or int(time.time()),
            choices=choices,
            usage=Usage(
                prompt_tokens=getattr(usage, "prompt_tokens", 0) or 0,
                completion_tokens=getattr(usage, "completion_tokens", 0) or 0,
            ),
            provider=self.name,
            latency_ms=latency_ms,
        )

    def _map_api_error(self, error: APIStatusError) -> Exception:
        """Convert OpenAI API errors to LLMError types."""
        status_code = error.status_code
        request_id = getattr(error, "request_id", None)
        raw_body = getattr(error, "body", None)
        # the SDK message embeds the raw body
        message = body_error_message(raw_body, status_code)

        if status_code == 429 and getattr(error, "code", None) == "insufficient_quota":
            return QuotaExhaustedError(
                f"OpenAI quota exhausted: {message}",
                provider=self.name,
                request_id=request_id,
                raw_body=raw_body,
            )

        if status_code == 401:
            return AuthenticationError(
                "Invalid OpenAI API key",
                provider=self.name,
                request_id=request_id,
                raw_body=raw_body,
            )

        response = getattr(error, "response", None)
        return error_from_status(
            status_code,
            message,
            provider=self.name,
            request_id=request_id,
            raw_body=raw_body,
            retry_after=parse_retry_after(response.headers if response is not None else None),
        )
