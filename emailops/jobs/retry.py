"""Retry policy for queued jobs."""

from dataclasses import dataclass, field
from typing import Callable, Optional

from emailops.core.config import RetryConfig
from emailops.core.constants import (
    DEFAULT_BACKOFF_MULTIPLIER,
    DEFAULT_BACKOFF_SECONDS,
    DEFAULT_MAX_ATTEMPTS,
    MAX_BACKOFF_SECONDS,
)
from emailops.core.exceptions import RateLimitError

BackoffFn = Callable[[int], float]


def exponential_backoff(
    base_seconds: float = DEFAULT_BACKOFF_SECONDS,
    multiplier: float = DEFAULT_BACKOFF_MULTIPLIER,
    max_seconds: float = MAX_BACKOFF_SECONDS,
) -> BackoffFn:
    """Backoff function yielding base, base*m, base*m^2 ... capped at ``max_seconds``.

    The returned callable takes the number of the attempt that just failed
    (1-indexed).
    """

    def backoff(attempt: int) -> float:
        return min(base_seconds * (multiplier ** (max(attempt, 1) - 1)), max_seconds)

    return backoff


@dataclass
class RetryPolicy:
    """How many times a job runs and how long to wait between runs.

    Attributes:
        max_attempts: Total attempts including the first run
        backoff_fn: Delay in seconds after a given failed attempt
    """
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    backoff_fn: BackoffFn = field(default_factory=exponential_backoff)

    @classmethod
    def from_config(cls, config: RetryConfig) -> "RetryPolicy":
        config.validate()
        return cls(
            max_attempts=config.max_attempts,
            backoff_fn=exponential_backoff(
                config.backoff_seconds, config.backoff_multiplier, config.max_backoff_seconds
            ),
        )

    def should_retry(self, attempts_made: int) -> bool:
        return attempts_made < self.max_attempts

    def next_delay(self, attempts_made: int, error: Optional[BaseException] = None) -> float:
        """Delay before the next attempt; a vendor rate-limit hint is a floor."""
        delay = self.backoff_fn(attempts_made)
        if isinstance(error, RateLimitError) and error.retry_after_seconds:
            delay = max(delay, float(error.retry_after_seconds))
        return delay
