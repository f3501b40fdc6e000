"""LLM error hierarchy.

Custom exceptions for LLM operations with provider context.
Used by the retry policy, provider fallback and user-facing error messages.
"""

from typing import Any


class LLMError(Exception):
    """Base exception for LLM operations."""

    default_code = "LLM_ERROR"

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        request_id: str | None = None,
        correlation_id: str | None = None,
        code: str | None = None,
        raw_body: Any = None,
    ):
        super().__init__(message)
        self.message = message
        self.provider = provider
        self.request_id = request_id
        self.correlation_id = correlation_id
        self.code = code or self.default_code
        self.raw_body = raw_body

    def __str__(self) -> str:
        parts = [super().__str__()]
        if self.provider:
            parts.append(f"provider={self.provider}")
        if self.request_id:
            parts.append(f"request_id={self.request_id}")
        return " ".join(parts)


class AuthenticationError(LLMError):
    """401/403 - Invalid or missing API key.

    Non-retryable. Check API key configuration.
    """

    default_code = "INVALID_API_KEY"


class QuotaExhaustedError(AuthenticationError):
    """Account quota or credit balance exhausted.

    Non-retryable. Waiting does not help until billing changes.
    """

    default_code = "INSUFFICIENT_QUOTA"


class RateLimitError(LLMError):
    """429 - Rate limit exceeded.

    Retryable with exponential backoff. Respect retry_after if provided.
    """

    default_code = "RATE_LIMITED"

    def __init__(
        self,
        message: str,
        retry_after: float | None = None,
        provider: str | None = None,
        request_id: str | None = None,
        correlation_id: str | None = None,
        code: str | None = None,
        raw_body: Any = None,
    ):
        super().__init__(message, provider, request_id, correlation_id, code, raw_body)
        self.retry_after = retry_after


class TimeoutError(LLMError):
    """Request exceeded timeout threshold.

    Retryable.
    """

    default_code = "TIMEOUT"


class InvalidRequestError(LLMError):
    """400 - Malformed request.

    Non-retryable. Fix the request parameters.
    Examples: too many tokens, unsupported parameter values.
    """

    default_code = "INVALID_REQUEST"


class ModelNotFoundError(LLMError):
    """Model identifier not recognized.

    Non-retryable. Check model name.
    """

    default_code = "MODEL_NOT_FOUND"


class ProviderError(LLMError):
    """Transport failure, 5xx, or an unusable response body.

    Retryable. May be transient server or network issues.
    """

    default_code = "PROVIDER_ERROR"


class InvalidOutputError(LLMError):
    """Model answered, but the content could not be parsed as expected.

    Retryable: a second sample frequently produces valid JSON.
    """

    default_code = "INVALID_OUTPUT"


# Error classification for retry logic
NON_RETRYABLE_ERRORS = (AuthenticationError, InvalidRequestError, ModelNotFoundError)
RETRYABLE_ERRORS = (RateLimitError, TimeoutError, ProviderError, InvalidOutputError)


def is_retryable(error: BaseException) -> bool:
    """Return True unless the error can never succeed on a retry.

    Unknown exception types are treated as transient.
    """
    return not isinstance(error, NON_RETRYABLE_ERRORS)


def error_from_status(
    status_code: int,
    message: str,
    provider: str,
    request_id: str | None = None,
    raw_body: Any = None,
    retry_after: float | None = None,
) -> LLMError:
    """Map an HTTP status to the matching LLMError subclass.

    Providers apply their own quota and credential checks first; this
    covers the status codes every backend shares.
    """
    context = {"provider": provider, "request_id": request_id, "raw_body": raw_body}

    if status_code in (401, 403):
        return AuthenticationError(f"{provider} rejected credentials: {message}", **context)

    if status_code == 404:
        return ModelNotFoundError(f"Model not found: {message}", **context)

    if status_code == 429:
        return RateLimitError(
            f"{provider} rate limit exceeded: {message}",
            retry_after=retry_after,
            **context,
        )

    if status_code in (400, 413, 422):
        return InvalidRequestError(f"Invalid request to {provider}: {message}", **context)

    return ProviderError(
        f"{provider} error ({status_code}): {message}",
        code=f"HTTP_{status_code}",
        **context,
    )


def parse_retry_after(headers: Any) -> float | None:
    """Read a numeric retry-after header, if present."""
    if not headers:
        return None
    value = headers.get("retry-after")
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def body_error_message(body: Any, status_code: int) -> str:
    """Human-readable message from a provider error body.

    Accepts both the wrapped ``{"error": {"message": ...}}`` shape and the
    already unwrapped inner object. Anything else becomes a generic status
    line so raw bodies stay out of error messages.
    """
    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        body = body["error"]
    message = body.get("message") if isinstance(body, dict) else None
    if isinstance(message, str) and message.strip():
        return message.strip()
    return f"Request failed with status {status_code}"
