"""Custom exception classes for the API."""

from typing import Any


class ValidationError(Exception):
    """Raised when input validation fails."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ExternalServiceError(Exception):
    """Raised when a third-party API (other than an LLM) fails."""

    def __init__(
        self,
        service: str,
        message: str,
        status_code: int | None = None,
        raw_body: Any = None,
    ):
        self.service = service
        self.message = message
        self.status_code = status_code
        self.raw_body = raw_body
        super().__init__(f"{service}: {message}")
