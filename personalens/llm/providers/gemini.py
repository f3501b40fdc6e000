"""Gemini provider implementation.

Talks to the Generative Language REST API directly with httpx.
The backend has no system role, so system messages are merged into the
first user turn; ``assistant`` turns are sent with the ``model`` role.
"""

import os
import time
from typing import Any

import httpx

from ..errors import (
    AuthenticationError,
    LLMError,
    ProviderError,
    QuotaExhaustedError,
    TimeoutError,
    body_error_message,
    error_from_status,
    parse_retry_after,
)
from ..models import ChatMessage, ChatRequest, ChatResponse, Choice, Usage
from .base import LLMProvider

FINISH_REASON_MAP = {
    "STOP": "stop",
    "MAX_TOKENS": "length",
    "SAFETY": "content_filter",
    "RECITATION": "content_filter",
}


class GeminiProvider(LLMProvider):
    """Google Gemini generateContent provider."""

    DEFAULT_MODEL = "gemini-2.0-flash"
    DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"

    def __init__(
        self,
        api_key: str | None = None,
        timeout: float = 60.0,
        default_model: str = DEFAULT_MODEL,
        base_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize Gemini provider.

        Args:
            api_key: Gemini API key. Defaults to GEMINI_API_KEY env var.
            timeout: Request timeout in seconds.
            default_model: Model used when the request does not name one.
            base_url: API root. Defaults to GEMINI_API_URL or the public endpoint.
            transport: Optional httpx transport (tests inject a MockTransport).
        """
        super().__init__(api_key or os.environ.get("GEMINI_API_KEY"), timeout, default_model)
        self._base_url = (base_url or os.environ.get("GEMINI_API_URL") or self.DEFAULT_BASE_URL).rstrip("/")
        self._transport = transport

    @property
    def name(self) -> str:
        """Provider identifier."""
        return "gemini"

    def _endpoint(self, model: str) -> str:
        return f"{self._base_url}/models/{model}:generateContent"

    async def generate(self, request: ChatRequest) -> ChatResponse:
        """Send a generateContent request to Gemini."""
        if not self._api_key:
            raise AuthenticationError(
                "Gemini API key not configured. Set GEMINI_API_KEY environment variable.",
                provider=self.name,
            )

        model = request.model or self._default_model
        payload = self._build_request(request)
        headers = {"Content-Type": "application/json", "X-goog-api-key": self._api_key}
        start_time = time.perf_counter()

        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                res = await client.post(self._endpoint(model), json=payload, headers=headers)
        except httpx.TimeoutException as e:
            raise TimeoutError(
                f"Gemini request timed out after {self._timeout}s",
                provider=self.name,
            ) from e
        except httpx.TransportError as e:
            raise ProviderError(
                f"Failed to connect to Gemini: {type(e).__name__}",
                provider=self.name,
                code="NETWORK_ERROR",
            ) from e

        if res.status_code >= 400:
            raise self._map_status_error(res)

        try:
            data = res.json()
        except ValueError as e:
            raise ProviderError(
                "Gemini returned a non-JSON body",
                provider=self.name,
                code="INVALID_RESPONSE",
                raw_body=res.text,
            ) from e

        latency_ms = int((time.perf_counter() - start_time) * 1000)
        return self._parse_response(data, latency_ms, model=model)

    def _build_request(self, request: ChatRequest) -> dict[str, Any]:
        """Convert ChatRequest to the generateContent body."""
        system_prompt = "\n".join(msg.content for msg in request.messages if msg.role == "system")
        conversation = [msg for msg in request.messages if msg.role != "system"]

        if system_prompt:
            if conversation:
                first = conversation[0]
                conversation[0] = ChatMessage(
                    role=first.role,
                    content=f"{system_prompt}\n\n{first.content}",
                )
            else:
                conversation = [ChatMessage(role="user", content=system_prompt)]

        contents = [
            {
                "role": "model" if msg.role == "assistant" else "user",
                "parts": [{"text": msg.content}],
            }
            for msg in conversation
        ]

        return {
            "contents": contents,
            "generationConfig": {
                "temperature": request.temperature,
                "maxOutputTokens": request.max_tokens,
            },
        }

    def _parse_response(self, data: dict[str, Any], latency_ms: int, model: str | None = None) -> ChatResponse:
        """Convert a generateContent body to ChatResponse."""
        candidates = data.get("candidates") or []
        if not candidates:
            raise ProviderError(
                "No candidates in Gemini response",
                provider=self.name,
                code="INVALID_RESPONSE",
                raw_body=data,
            )

        choices = []
        for index, candidate in enumerate(candidates):
            parts = (candidate.get("content") or {}).get("parts") or []
            text = "".join(part.get("text", "") for part in parts)
            finish_reason = candidate.get("finishReason") or "STOP"
            choices.append(
                Choice(
                    index=candidate.get("index", index),
                    message=ChatMessage(role="assistant", content=text),
                    finish_reason=FINISH_REASON_MAP.get(finish_reason, finish_reason.lower()),
                )
            )

        usage = data.get("usageMetadata") or {}
        now_ms = int(time.time() * 1000)

        return ChatResponse(
            id=data.get("responseId") or f"gemini-{now_ms}",
            model=data.get("modelVersion") or model or self._default_model,
            created=now_ms // 1000,
            choices=choices,
            usage=Usage(
                prompt_tokens=usage.get("promptTokenCount", 0),
                completion_tokens=usage.get("candidatesTokenCount", 0),
            ),
            provider=self.name,
            latency_ms=latency_ms,
        )

    def _map_status_error(self, res: httpx.Response) -> LLMError:
        """Convert a non-2xx Gemini response to an LLMError."""
        try:
            body = res.json()
        except ValueError:
            body = res.text
        error = body.get("error") if isinstance(body, dict) else None
        details = error.get("details") if isinstance(error, dict) else None
        details = [d for d in details if isinstance(d, dict)] if isinstance(details, list) else []
        message = body_error_message(body, res.status_code)

        # Gemini reports a bad key as 400 INVALID_ARGUMENT
        if res.status_code == 400 and "api key" in message.lower():
            return AuthenticationError("Invalid Gemini API key", provider=self.name, raw_body=body)

        # every 429 is RESOURCE_EXHAUSTED; only daily or billing caps are final
        if res.status_code == 429 and _is_hard_quota(message, details):
            return QuotaExhaustedError(
                f"Gemini quota exhausted: {message}",
                provider=self.name,
                raw_body=body,
            )

        return error_from_status(
            res.status_code,
            message,
            provider=self.name,
            raw_body=body,
            retry_after=parse_retry_after(res.headers) or _retry_delay(details),
        )


def _is_hard_quota(message: str, details: list[dict[str, Any]]) -> bool:
    """True for a billing problem or an exhausted per-day quota."""
    if "billing" in message.lower():
        return True
    for detail in details:
        if not str(detail.get("@type", "")).endswith("QuotaFailure"):
            continue
        for violation in detail.get("violations") or []:
            if isinstance(violation, dict) and "PerDay" in str(violation.get("quotaId", "")):
                return True
    return False


def _retry_delay(details: list[dict[str, Any]]) -> float | None:
    """Seconds from a ``RetryInfo`` detail such as ``{"retryDelay": "37s"}``."""
    for detail in details:
        if not str(detail.get("@type", "")).endswith("RetryInfo"):
            continue
        delay = str(detail.get("retryDelay", ""))
        if delay.endswith("s"):
            try:
                return float(delay[:-1])
            except ValueError:
                return None
    return None
