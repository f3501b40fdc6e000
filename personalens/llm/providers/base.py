"""Abstract base class for LLM providers.

Defines the interface that all LLM providers must implement.
"""

import logging
from abc import ABC, abstractmethod
from functools import partial
from typing import Any, Awaitable, Callable

from ..errors import LLMError
from ..models import ChatMessage, ChatRequest, ChatResponse

logger = logging.getLogger(__name__)

CONNECTION_TEST_PROMPT = 'Hello, please respond with "Connection successful" to test the API.'


class LLMProvider(ABC):
    """Base interface for LLM providers.

    Each provider owns one wire format: it translates a ChatRequest into
    the backend's request body and the backend's response into a
    ChatResponse. The client, retry policy and persona pipeline only
    depend on this interface.
    """

    def __init__(self, api_key: str | None, timeout: float, default_model: str):
        self._api_key = api_key
        self._timeout = timeout
        self._default_model = default_model

    def __repr__(self) -> str:
        # never include the key
        return f"{type(self).__name__}(model={self._default_model!r}, configured={self.is_configured})"

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider identifier: 'openai', 'anthropic', 'gemini'."""
        ...

    @property
    def is_configured(self) -> bool:
        """True when an API key is available."""
        return bool(self._api_key)

    @property
    def default_model(self) -> str:
        return self._default_model

    @abstractmethod
    async def generate(self, request: ChatRequest) -> ChatResponse:
        """Send a chat request and return the normalized response.

        Args:
            request: Vendor-neutral chat request.

        Returns:
            Vendor-neutral chat response with at least one choice.

        Raises:
            AuthenticationError: Invalid or missing API key.
            QuotaExhaustedError: Account quota exhausted.
            RateLimitError: Rate limit exceeded (retryable).
            TimeoutError: Request timed out (retryable).
            InvalidRequestError: Malformed request (non-retryable).
            ProviderError: Transport, 5xx or empty response (retryable).
        """
        ...

    @abstractmethod
    def _build_request(self, request: ChatRequest) -> dict[str, Any]:
        """Convert a ChatRequest into the backend's request body."""
        ...

    async def test_connection(
        self,
        schedule: Callable[[Callable[[], Awaitable[ChatResponse]]], Awaitable[ChatResponse]] | None = None,
    ) -> bool:
        """Send a tiny request and report whether the backend answered.

        Args:
            schedule: Optional admission wrapper, usually the provider's
                ``RateLimiter.schedule``, so the check is counted like any
                other request.
        """
        if not self.is_configured:
            return False
        request = ChatRequest(
            messages=[ChatMessage(role="user", content=CONNECTION_TEST_PROMPT)],
            max_tokens=50,
        )
        try:
            if schedule is None:
                await self.generate(request)
            else:
                await schedule(partial(self.generate, request))
        except LLMError as e:
            logger.info(
                "Connection test failed for %s: %s",
                self.name,
                e.code,
                extra={"provider": self.name, "error_type": type(e).__name__},
            )
            return False
        return True
