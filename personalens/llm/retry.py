"""Retry with exponential backoff and jitter.

Wraps any zero-argument coroutine function. Non-retryable errors
(bad credentials, exhausted quota, malformed requests, unknown models)
propagate on the first failure; everything else is retried until the
budget runs out, after which the last error is re-raised unchanged.
"""

import asyncio
import logging
import random
from typing import Awaitable, Callable, TypeVar

from .errors import RateLimitError, is_retryable
from .models import RetryConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")

OnRetry = Callable[[int, Exception, float], None]


class RetryPolicy:
    """Exponential backoff policy.

    Args:
        config: Backoff parameters. Defaults to RetryConfig().
        sleep: Coroutine used to wait between attempts. Defaults to asyncio.sleep.
        rng: Callable returning a float in [0, 1) used for jitter.
    """

    def __init__(
        self,
        config: RetryConfig | None = None,
        sleep: Callable[[float], Awaitable[None]] | None = None,
        rng: Callable[[], float] | None = None,
    ):
        self.config = config or RetryConfig()
        self._sleep = sleep
        self._rng = rng or random.random

    def backoff_delay(self, retry_number: int) -> float:
        """Deterministic part of the delay before retry ``retry_number`` (0-indexed)."""
        delay = self.config.base_delay * (self.config.exponential_base ** retry_number)
        return min(delay, self.config.max_delay)

    def compute_delay(self, retry_number: int, error: Exception | None = None) -> float:
        """Backoff delay with positive jitter.

        A retry-after hint from a 429 response is honoured as a floor,
        capped at max_delay.
        """
        delay = self.backoff_delay(retry_number)
        delay *= 1 + self.config.jitter_factor * self._rng()

        if isinstance(error, RateLimitError) and error.retry_after:
            delay = max(delay, min(error.retry_after, self.config.max_delay))

        return delay

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        max_retries: int | None = None,
        on_retry: OnRetry | None = None,
    ) -> T:
        """Invoke ``operation`` until it succeeds or the retry budget is spent.

        Args:
            operation: Zero-argument coroutine function. Called once per attempt.
            max_retries: Overrides config.max_retries for this call.
            on_retry: Called as ``on_retry(attempt, error, delay)`` before each wait.

        Returns:
            The operation's result.

        Raises:
            Exception: The first non-retryable error, or the last error once
                retries are exhausted.
        """
        retries = self.config.max_retries if max_retries is None else max_retries
        attempt = 0

        while True:
            try:
                return await operation()
            except Exception as e:
                if not is_retryable(e):
                    logger.debug(
                        "Non-retryable error, giving up: %s",
                        type(e).__name__,
                        extra={"attempt": attempt + 1, "error_type": type(e).__name__},
                    )
                    raise
                if attempt >= retries:
                    raise

                delay = self.compute_delay(attempt, e)
                attempt += 1
                logger.warning(
                    "Retryable error on attempt %d/%d: %s. Retrying in %.2fs",
                    attempt,
                    retries + 1,
                    str(e),
                    delay,
                    extra={
                        "attempt": attempt,
                        "error_type": type(e).__name__,
                        "provider": getattr(e, "provider", None),
                    },
                )
                if on_retry is not None:
                    on_retry(attempt, e, delay)
                await (self._sleep or asyncio.sleep)(delay)


async def retrying(
    operation: Callable[[], Awaitable[T]],
    config: RetryConfig | None = None,
    *,
    max_retries: int | None = None,
    on_retry: OnRetry | None = None,
    sleep: Callable[[float], Awaitable[None]] | None = None,
) -> T:
    """Run ``operation`` under a one-off RetryPolicy."""
    return await RetryPolicy(config, sleep=sleep).run(operation, max_retries=max_retries, on_retry=on_retry)
