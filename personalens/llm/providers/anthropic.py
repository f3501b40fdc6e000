"""Anthropic provider implementation.

Messages API: system prompt travels in a dedicated top-level ``system``
field, the SDK sends the ``x-api-key`` and ``anthropic-version`` headers.
"""

import os
import time
from typing import Any

from anthropic import APIConnectionError, APIStatusError, APITimeoutError, AsyncAnthropic

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

# Map Anthropic stop reasons to the OpenAI vocabulary
FINISH_REASON_MAP = {
    "end_turn": "stop",
    "max_tokens": "length",
    "stop_sequence": "stop",
}


class AnthropicProvider(LLMProvider):
    """Anthropic Messages API provider."""

    DEFAULT_MODEL = "claude-3-5-sonnet-latest"

    def __init__(
        self,
        api_key: str | None = None,
        timeout: float = 60.0,
        default_model: str = DEFAULT_MODEL,
    ):
        """Initialize Anthropic provider.

        Args:
            api_key: Anthropic API key. Defaults to ANTHROPIC_API_KEY env var.
            timeout: Request timeout in seconds.
            default_model: Model used when the request does not name one.
        """
        super().__init__(api_key or os.environ.get("ANTHROPIC_API_KEY"), timeout, default_model)
        self._client: AsyncAnthropic | None = None

    @property
    def name(self) -> str:
        """Provider identifier."""
        return "anthropic"

    @property
    def client(self) -> AsyncAnthropic:
        """Lazy-initialized Anthropic client."""
        if self._client is None:
            if not self._api_key:
                raise AuthenticationError(
                    "Anthropic API key not configured. Set ANTHROPIC_API_KEY environment variable.",
                    provider=self.name,
                )
            self._client = AsyncAnthropic(api_key=self._api_key, timeout=self._timeout, max_retries=0)
        return self._client

    async def generate(self, request: ChatRequest) -> ChatResponse:
        """Send a completion request to Anthropic."""
        start_time = time.perf_counter()
        anthropic_request = self._build_request(request)

        try:
            response = await self.client.messages.create(**anthropic_request)
        except APITimeoutError as e:
            raise TimeoutError(
                f"Anthropic request timed out after {self._timeout}s",
                provider=self.name,
            ) from e
        except APIConnectionError as e:
            raise ProviderError(
                f"Failed to connect to Anthropic: {e}",
                provider=self.name,
                code="NETWORK_ERROR",
            ) from e
        except APIStatusError as e:
            raise self._map_api_error(e) from e

        latency_ms = int((time.perf_counter() - start_time) * 1000)
        return self._parse_response(response, latency_ms)

    def _build_request(self, request: ChatRequest) -> dict[str, Any]:
        """Convert ChatRequest to Anthropic API format."""
        system_parts = [msg.content for msg in request.messages if msg.role == "system"]
        messages = [
            {"role": msg.role, "content": msg.content}
            for msg in request.messages
            if msg.role != "system"
        ]

        anthropic_request: dict[str, Any] = {
            "model": request.model or self._default_model,
            "messages": messages,
            "max_tokens": request.max_tokens,
            "temperature": request.temperature,
        }
        if system_parts:
            anthropic_request["system"] = "\n\n".join(system_parts)

        return anthropic_request

    def _parse_response(self, response: Any, latency_ms: int) -> ChatResponse:
        """Convert an Anthropic Message to ChatResponse."""
        text_parts = [
            block.text
            for block in (response.content or [])
            if getattr(block, "type", None) == "text"
        ]
        if not text_parts:
            raise ProviderError(
                "No text content in Anthropic response",
                provider=self.name,
                code="INVALID_RESPONSE",
                raw_body=response.model_dump() if hasattr(response, "model_dump") else None,
            )

        stop_reason = response.stop_reason or "end_turn"
        usage = response.usage

        return ChatResponse(
            id=response.id or f"anthropic-{int(time.time() * 1000)}",
            model=response.model or self._default_model,
            created=int(time.time()),
            choices=[
                Choice(
                    index=0,
                    message=ChatMessage(role="assistant", content="".join(text_parts)),
                    finish_reason=FINISH_REASON_MAP.get(stop_reason, stop_reason),
                )
            ],
            usage=Usage(
                prompt_tokens=getattr(usage, "input_tokens", 0) or 0,
                completion_tokens=getattr(usage, "output_tokens", 0) or 0,
            ),
            provider=self.name,
            latency_ms=latency_ms,
        )

    def _map_api_error(self, error: APIStatusError) -> Exception:
        """Convert Anthropic API errors to LLMError types."""
        status_code = error.status_code
        request_id = getattr(error, "request_id", None)
        raw_body = getattr(error, "body", None)
        # the SDK message embeds the raw body
        message = body_error_message(raw_body, status_code)

        # Billing problems come back as 400 with a credit balance message
        if status_code in (400, 402) and "credit balance" in message.lower():
            return QuotaExhaustedError(
                f"Anthropic credit balance exhausted: {message}",
                provider=self.name,
                request_id=request_id,
                raw_body=raw_body,
            )

        if status_code == 401:
            return AuthenticationError(
                "Invalid Anthropic API key",
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
