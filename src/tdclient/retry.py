"""Retry decisions and exponential backoff.

Delays are in milliseconds, matching the configuration.  The delay before
attempt ``n`` (0-based; attempt 0 never waits) is::

    min(2 ** n * base_delay_ms, max_backoff_ms)

With ``jitter`` enabled the delay is scaled to a random point between 50%
and 100% of that value.
"""

from __future__ import annotations

import random
from dataclasses import dataclass

import httpx

DEFAULT_MAX_RETRIES = 10
DEFAULT_BASE_DELAY_MS = 300
DEFAULT_MAX_BACKOFF_MS = 30_000

RETRYABLE_STATUSES: frozenset[int] = frozenset({500, 503})

# Network-level failures during send/wait.
RETRYABLE_EXCEPTIONS: tuple[type[BaseException], ...] = (
    httpx.TransportError,
    OSError,
)


@dataclass(frozen=True)
class RetryPolicy:
    """How many times to retry and how long to wait in between.

    ``max_retries`` counts retries, not sends: a call makes at most
    ``max_retries + 1`` attempts.
    """

    max_retries: int = DEFAULT_MAX_RETRIES
    base_delay_ms: int = DEFAULT_BASE_DELAY_MS
    max_backoff_ms: int = DEFAULT_MAX_BACKOFF_MS
    jitter: bool = False

    def __post_init__(self):
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {self.max_retries}")
        if self.base_delay_ms < 0 or self.max_backoff_ms < 0:
            raise ValueError("backoff delays must be >= 0")

    def can_retry(self, attempt: int) -> bool:
        """True if a failure of attempt *attempt* (0-based) may be retried."""
        return attempt < self.max_retries

    def is_retryable_status(self, status: int) -> bool:
        return status in RETRYABLE_STATUSES

    def is_retryable_exception(self, exc: BaseException) -> bool:
        return isinstance(exc, RETRYABLE_EXCEPTIONS)

    def backoff_ms(self, attempt: int) -> int:
        """Delay before sending attempt *attempt*; 0 for the first attempt."""
        if attempt <= 0:
            return 0
        delay = min((2**attempt) * self.base_delay_ms, self.max_backoff_ms)
        if self.jitter:
            delay = int(delay * (0.5 + random.random() * 0.5))
        return delay
