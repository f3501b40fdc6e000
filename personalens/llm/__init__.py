"""LLM provider abstraction layer.

This module provides a vendor-neutral interface for interacting with LLM providers
(OpenAI, Anthropic, Gemini) with rate limiting, retry and automatic fallback.
"""

from .client import FallbackResult, LLMClient
from .errors import (
    AuthenticationError,
    InvalidOutputError,
    InvalidRequestError,
    LLMError,
    ModelNotFoundError,
    ProviderError,
    QuotaExhaustedError,
    RateLimitError,
    TimeoutError,
    is_retryable,
)
from .models import (
    PRODUCTION_RATE_LIMITS,
    PRODUCTION_RETRY,
    ChatMessage,
    ChatRequest,
    ChatResponse,
    Choice,
    RateLimitConfig,
    RateLimitStatus,
    RetryConfig,
    Usage,
)
from .rate_limiter import RateLimiter
from .retry import RetryPolicy, retrying

__all__ = [
    "LLMClient",
    "FallbackResult",
    "RateLimiter",
    "RetryPolicy",
    "retrying",
    "ChatMessage",
    "ChatRequest",
    "ChatResponse",
    "Choice",
    "Usage",
    "RateLimitConfig",
    "RateLimitStatus",
    "RetryConfig",
    "PRODUCTION_RATE_LIMITS",
    "PRODUCTION_RETRY",
    "LLMError",
    "AuthenticationError",
    "QuotaExhaustedError",
    "RateLimitError",
    "TimeoutError",
    "InvalidRequestError",
    "ModelNotFoundError",
    "ProviderError",
    "InvalidOutputError",
    "is_retryable",
]
