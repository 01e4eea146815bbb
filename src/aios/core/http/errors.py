from __future__ import annotations


class AiosHTTPError(RuntimeError):
    """Base error for shared HTTP client operations."""


class AiosHTTPStatusError(AiosHTTPError):
    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class AiosHTTPNetworkError(AiosHTTPError):
    """Raised for transport errors that are not worth retrying."""


class AiosHTTPTimeoutError(AiosHTTPError):
    """Raised when retryable failures exhaust the attempt ceiling."""

    def __init__(self, message: str, attempts: int = 0, last_reason: str | None = None) -> None:
        super().__init__(message)
        self.attempts = attempts
        self.last_reason = last_reason


class LLMOutputError(AiosHTTPError):
    """Raised when a successful response body cannot be decoded."""
