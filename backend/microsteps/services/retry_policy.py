"""Retry classification and backoff for provider calls."""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Optional

from microsteps.services.errors import BreakdownTimeoutError, BreakdownValidationError

TERMINAL_ERRORS = (BreakdownValidationError, BreakdownTimeoutError, asyncio.TimeoutError)


def is_retryable(error: BaseException) -> bool:
    """Malformed output and timeouts are terminal; every other failure may be retried."""
    return not isinstance(error, TERMINAL_ERRORS)


def backoff_delay(attempt: int) -> float:
    """Seconds to wait after the failed 0-indexed ``attempt``: 1, 2, 4, ..."""
    if attempt < 0:
        raise ValueError("attempt must be >= 0")
    return float(2**attempt)


@dataclass
class RetryState:
    """Tracks one generation request through its attempts."""

    max_retries: int
    attempt: int = 0
    last_error: Optional[BaseException] = None

    @property
    def total_attempts(self) -> int:
        return self.max_retries + 1

    def record(self, error: BaseException) -> None:
        self.last_error = error

    def should_retry(self) -> bool:
        """True when the last error is retryable and attempts remain."""
        if self.last_error is not None and not is_retryable(self.last_error):
            return False
        return self.attempt < self.max_retries

    def next_delay(self) -> float:
        return backoff_delay(self.attempt)

    def advance(self) -> None:
        self.attempt += 1
