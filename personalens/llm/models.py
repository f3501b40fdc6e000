"""LLM data models.

Vendor-neutral request and response models for LLM interactions.
Every provider translates to and from these shapes.
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ChatMessage(BaseModel):
    """A single message in the conversation."""

    model_config = ConfigDict(frozen=True)

    role: Literal["system", "user", "assistant"]
    content: str


class ChatRequest(BaseModel):
    """Vendor-neutral chat completion request."""

    messages: list[ChatMessage] = Field(min_length=1)
    model: str | None = None  # provider default when unset
    temperature: float = Field(default=0.7, ge=0.0, le=1.0)
    max_tokens: int = Field(default=1000, gt=0)
    stream: Literal[False] = False


class Usage(BaseModel):
    """Token usage statistics."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    @model_validator(mode="after")
    def _sum_total(self) -> "Usage":
        self.total_tokens = self.prompt_tokens + self.completion_tokens
        return self


class Choice(BaseModel):
    """One candidate completion."""

    index: int = 0
    message: ChatMessage
    finish_reason: str = "stop"


class ChatResponse(BaseModel):
    """Canonical response every provider normalizes into."""

    id: str
    model: str
    created: int
    choices: list[Choice] = Field(min_length=1)
    usage: Usage = Field(default_factory=Usage)
    provider: str
    latency_ms: int = 0

    @property
    def text(self) -> str:
        """Content of the first choice."""
        return self.choices[0].message.content


class RateLimitConfig(BaseModel):
    """Admission-control quota for one provider key."""

    requests_per_minute: int = Field(default=20, gt=0)
    requests_per_hour: int = Field(default=100, gt=0)
    burst_limit: int = Field(default=5, gt=0)


class RetryConfig(BaseModel):
    """Backoff policy. Delays are in seconds."""

    max_retries: int = Field(default=3, ge=0)
    base_delay: float = Field(default=1.0, ge=0.0)
    max_delay: float = Field(default=30.0, ge=0.0)
    exponential_base: float = Field(default=2.0, ge=1.0)
    jitter_factor: float = Field(default=0.1, ge=0.0)


# Conservative presets for shared production keys
PRODUCTION_RATE_LIMITS = RateLimitConfig(requests_per_minute=10, requests_per_hour=50, burst_limit=3)
PRODUCTION_RETRY = RetryConfig(
    max_retries=5,
    base_delay=2.0,
    max_delay=60.0,
    exponential_base=2.5,
    jitter_factor=0.2,
)


class RateLimitStatus(BaseModel):
    """Snapshot of one limiter's admission state."""

    requests_in_last_minute: int
    requests_in_last_hour: int
    can_make_request: bool
    next_available_time: float | None = None  # unix seconds
    queue_length: int = 0
