"""High-level LLM client with rate limiting, retry and provider fallback.

One LLMClient is built at application startup and shared by every
request. It owns one provider adapter and one rate limiter per backend;
each provider attempt runs through that provider's limiter and the
retry policy, and failures fall through to the next configured provider.
"""

import asyncio
import logging
import os
import uuid
from dataclasses import dataclass
from functools import partial
from typing import Any, Awaitable, Callable, Iterable

from .errors import LLMError
from .models import (
    ChatMessage,
    ChatRequest,
    ChatResponse,
    RateLimitConfig,
    RateLimitStatus,
    RetryConfig,
)
from .providers import AnthropicProvider, GeminiProvider, LLMProvider, OpenAIProvider
from .rate_limiter import RateLimiter
from .retry import OnRetry, RetryPolicy

logger = logging.getLogger(__name__)

INSIGHTS_SYSTEM_PROMPT = """You are a market research expert specializing in cultural analysis and persona development.
Generate detailed insights about target audiences based on cultural patterns, taste profiles, and behavioral nuances.
Focus on actionable insights that go beyond basic demographics."""

INSIGHTS_USER_PROMPT = """Analyze this target audience: "{target_description}"
{context}
Provide insights on:
1. Cultural values and lifestyle preferences
2. Decision-making patterns and motivations
3. Communication and media consumption habits
4. Brand affinities and taste profiles
5. Marketing and engagement recommendations

Format the response as structured insights with specific, actionable recommendations."""


@dataclass
class FallbackResult:
    """Outcome of generate_with_fallback.

    ``attempts`` counts every provider invocation, ``retries`` only the
    re-invocations triggered by the retry policy.
    """

    success: bool
    provider: str | None = None
    response: ChatResponse | None = None
    value: Any = None
    error: str | None = None
    last_error: Exception | None = None
    attempts: int = 0
    retries: int = 0


class LLMClient:
    """Provider registry with retry and fallback.

    Features:
    - One rate limiter per provider key, shared by all requests
    - Automatic retry with exponential backoff + jitter
    - Provider fallback (preferred -> gemini -> openai -> anthropic)
    - Correlation ID tracking across attempts

    Configuration (env vars):
    - LLM_DEFAULT_PROVIDER: Preferred provider (default: "gemini")
    - LLM_TIMEOUT_SECONDS: Request timeout (default: 60)
    - LLM_MAX_RETRIES: Retries per provider (default: 3)
    - LLM_REQUESTS_PER_MINUTE / LLM_REQUESTS_PER_HOUR / LLM_BURST_LIMIT:
      Admission limits per provider (default: 20 / 100 / 5)
    """

    DEFAULT_PROVIDER = "gemini"
    DEFAULT_TIMEOUT = 60.0
    DEFAULT_MAX_RETRIES = 3
    CONNECTION_TEST_TIMEOUT = 10.0
    FALLBACK_ORDER = ["gemini", "openai", "anthropic"]

    def __init__(
        self,
        providers: Iterable[LLMProvider] | None = None,
        default_provider: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        rate_limit: RateLimitConfig | None = None,
        retry: RetryConfig | None = None,
        sleep: Callable[[float], Awaitable[None]] | None = None,
        dispatch_interval: float = RateLimiter.DEFAULT_DISPATCH_INTERVAL,
    ):
        """Initialize LLM client.

        Args:
            providers: Provider adapters. Defaults to OpenAI, Anthropic and
                Gemini configured from the environment.
            default_provider: Preferred provider name. Defaults to LLM_DEFAULT_PROVIDER env var.
            timeout: Request timeout in seconds. Defaults to LLM_TIMEOUT_SECONDS env var.
            max_retries: Retries per provider. Defaults to LLM_MAX_RETRIES env var.
            rate_limit: Limits applied to each provider. Defaults to LLM_* env vars.
            retry: Full backoff configuration. Overrides max_retries.
            sleep: Coroutine used for every wait (tests pass an AsyncMock).
            dispatch_interval: Pause after each dispatch, per limiter.
        """
        self._default_provider = (
            default_provider
            or os.environ.get("LLM_DEFAULT_PROVIDER", self.DEFAULT_PROVIDER)
        )
        self._timeout = (
            timeout
            if timeout is not None
            else float(os.environ.get("LLM_TIMEOUT_SECONDS", self.DEFAULT_TIMEOUT))
        )

        if retry is None:
            retry = RetryConfig(
                max_retries=(
                    max_retries
                    if max_retries is not None
                    else int(os.environ.get("LLM_MAX_RETRIES", self.DEFAULT_MAX_RETRIES))
                )
            )
        self._retry = RetryPolicy(retry, sleep=sleep)

        if providers is None:
            providers = [
                OpenAIProvider(timeout=self._timeout),
                AnthropicProvider(timeout=self._timeout),
                GeminiProvider(timeout=self._timeout),
            ]
        self._providers: dict[str, LLMProvider] = {p.name: p for p in providers}

        rate_limit = rate_limit or self._rate_limit_from_env()
        self._limiters: dict[str, RateLimiter] = {
            name: RateLimiter(rate_limit, sleep=sleep, dispatch_interval=dispatch_interval, name=name)
            for name in self._providers
        }

        for name, provider in self._providers.items():
            if not provider.is_configured:
                logger.warning(
                    "Provider %s has no API key configured and will be skipped",
                    name,
                    extra={"provider": name},
                )

    @staticmethod
    def _rate_limit_from_env() -> RateLimitConfig:
        defaults = RateLimitConfig()
        return RateLimitConfig(
            requests_per_minute=int(os.environ.get("LLM_REQUESTS_PER_MINUTE", defaults.requests_per_minute)),
            requests_per_hour=int(os.environ.get("LLM_REQUESTS_PER_HOUR", defaults.requests_per_hour)),
            burst_limit=int(os.environ.get("LLM_BURST_LIMIT", defaults.burst_limit)),
        )

    @property
    def default_provider(self) -> str:
        return self._default_provider

    @property
    def retry_config(self) -> RetryConfig:
        return self._retry.config

    def get_provider(self, name: str) -> LLMProvider:
        """Get a specific provider by name.

        Raises:
            ValueError: If provider name is not registered.
        """
        if name not in self._providers:
            raise ValueError(f"Unknown provider: {name}. Available: {list(self._providers.keys())}")
        return self._providers[name]

    def is_provider_available(self, name: str) -> bool:
        """True if the provider is registered and has credentials."""
        provider = self._providers.get(name)
        return provider is not None and provider.is_configured

    def available_providers(self) -> list[str]:
        return [name for name in self._providers if self.is_provider_available(name)]

    def provider_order(self, preferred_provider: str | None = None) -> list[str]:
        """Preferred provider first, then the fixed fallback order."""
        preferred = preferred_provider or self._default_provider
        return [preferred] + [p for p in self.FALLBACK_ORDER if p != preferred]

    async def generate(self, request: ChatRequest, provider: str | None = None) -> ChatResponse:
        """Call one provider through its limiter and the retry policy.

        Raises:
            ValueError: Unknown provider name.
            LLMError: The provider failed after retries.
        """
        name = provider or self._default_provider
        adapter = self.get_provider(name)
        limiter = self._limiters[name]

        response = await self._retry.run(partial(limiter.schedule, partial(adapter.generate, request)))
        self._log_success(response, correlation_id=None)
        return response

    async def generate_with_fallback(
        self,
        request: ChatRequest,
        preferred_provider: str | None = None,
        *,
        parse: Callable[[str], Any] | None = None,
        max_retries: int | None = None,
        correlation_id: str | None = None,
        on_retry: OnRetry | None = None,
    ) -> FallbackResult:
        """Try each configured provider in order until one succeeds.

        Args:
            request: Chat request. Its model is only sent to the preferred provider.
            preferred_provider: Provider tried first. Defaults to the client default.
            parse: Optional parser applied to the response text inside the retried
                operation; parse errors are retried like transport errors.
            max_retries: Retries per provider. Defaults to the client policy.
            correlation_id: Optional ID for tracking across attempts.
            on_retry: Optional callback forwarded every retry, called as it happens.

        Returns:
            FallbackResult. Provider and parse failures never raise; any
            exception ends that provider's turn and the next one is tried.
        """
        correlation_id = correlation_id or str(uuid.uuid4())
        order = self.provider_order(preferred_provider)
        preferred = order[0]
        result = FallbackResult(success=False)

        def count_retry(attempt: int, error: Exception, delay: float) -> None:
            result.retries += 1
            if on_retry is not None:
                on_retry(attempt, error, delay)

        for name in order:
            if not self.is_provider_available(name):
                logger.debug(
                    "Provider %s not available, skipping",
                    name,
                    extra={"correlation_id": correlation_id, "provider": name},
                )
                continue

            adapter = self._providers[name]
            limiter = self._limiters[name]
            provider_request = request if name == preferred else request.model_copy(update={"model": None})

            async def attempt() -> tuple[ChatResponse, Any]:
                result.attempts += 1
                response = await limiter.schedule(partial(adapter.generate, provider_request))
                value = parse(response.text) if parse is not None else None
                return response, value

            try:
                response, value = await self._retry.run(attempt, max_retries=max_retries, on_retry=count_retry)
            except LLMError as e:
                e.correlation_id = correlation_id
                result.last_error = e
                logger.warning(
                    "Provider %s failed: %s. Trying fallback.",
                    name,
                    e.message,
                    extra={
                        "correlation_id": correlation_id,
                        "provider": name,
                        "error_type": type(e).__name__,
                        "attempts": result.attempts,
                    },
                )
                continue
            except Exception as e:
                result.last_error = e
                logger.warning(
                    "Provider %s raised unexpected %s. Trying fallback.",
                    name,
                    type(e).__name__,
                    exc_info=True,
                    extra={
                        "correlation_id": correlation_id,
                        "provider": name,
                        "error_type": type(e).__name__,
                        "attempts": result.attempts,
                    },
                )
                continue

            self._log_success(response, correlation_id)
            result.success = True
            result.provider = name
            result.response = response
            result.value = value
            return result

        if result.last_error is None:
            result.error = "No LLM providers are configured"
        else:
            error = result.last_error
            message = error.message if isinstance(error, LLMError) else f"unexpected {type(error).__name__}"
            result.error = f"All providers failed. Last error: {message}"

        logger.error(
            result.error,
            extra={"correlation_id": correlation_id, "attempts": result.attempts},
        )
        return result

    async def generate_persona_insights(
        self,
        target_description: str,
        cultural_context: str | None = None,
        business_context: str | None = None,
        preferred_provider: str | None = None,
    ) -> FallbackResult:
        """Free-text audience insights with provider fallback.

        ``result.value`` holds the insight text on success.
        """
        context_lines = []
        if cultural_context:
            context_lines.append(f"Cultural context: {cultural_context}")
        if business_context:
            context_lines.append(f"Business context: {business_context}")

        request = ChatRequest(
            messages=[
                ChatMessage(role="system", content=INSIGHTS_SYSTEM_PROMPT),
                ChatMessage(
                    role="user",
                    content=INSIGHTS_USER_PROMPT.format(
                        target_description=target_description,
                        context="\n".join(context_lines) + "\n" if context_lines else "",
                    ),
                ),
            ],
        )
        return await self.generate_with_fallback(request, preferred_provider, parse=str)

    async def test_connections(self) -> dict[str, bool]:
        """Test every provider connection concurrently.

        Returns:
            ``{"openai": bool, "anthropic": bool, "gemini": bool, "overall": bool}``
            where overall is true if any provider answered.
        """
        names = ["openai", "anthropic", "gemini"]
        results = await asyncio.gather(*(self._check_connection(name) for name in names))
        status = dict(zip(names, results))
        status["overall"] = any(results)
        return status

    async def _check_connection(self, name: str) -> bool:
        provider = self._providers.get(name)
        if provider is None:
            return False
        try:
            # connection tests count against the same quota as real requests
            return await asyncio.wait_for(
                provider.test_connection(schedule=self._limiters[name].schedule),
                timeout=self.CONNECTION_TEST_TIMEOUT,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Connection test for %s timed out after %.0fs",
                name,
                self.CONNECTION_TEST_TIMEOUT,
                extra={"provider": name},
            )
        except Exception:
            logger.exception("Connection test for %s raised", name, extra={"provider": name})
        return False

    def get_rate_limit_status(self) -> dict[str, RateLimitStatus]:
        """Admission status per provider."""
        return {name: limiter.get_status() for name, limiter in self._limiters.items()}

    def _log_success(self, response: ChatResponse, correlation_id: str | None) -> None:
        logger.info(
            "LLM request succeeded",
            extra={
                "correlation_id": correlation_id,
                "provider": response.provider,
                "model": response.model,
                "latency_ms": response.latency_ms,
                "prompt_tokens": response.usage.prompt_tokens,
                "completion_tokens": response.usage.completion_tokens,
                "finish_reason": response.choices[0].finish_reason,
            },
        )
