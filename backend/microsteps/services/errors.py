"""Error taxonomy for breakdown generation and quota checks."""
from __future__ import annotations


class BreakdownError(Exception):
    """Base class for failures inside the breakdown generation loop."""


class BreakdownTransportError(BreakdownError):
    """Network failure or non-2xx response from the LLM provider. Retryable."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class BreakdownTimeoutError(BreakdownError):
    """The provider call exceeded the configured timeout. Terminal."""


class BreakdownValidationError(BreakdownError):
    """The model answered, but the payload is malformed or incomplete. Terminal."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class RateLimitExceeded(Exception):
    """A user spent their breakdown quota for the current window."""

    def __init__(self, retry_after: int) -> None:
        super().__init__(f"Rate limit exceeded; retry after {retry_after}s")
        self.retry_after = retry_after
