"""Retry policy for failed repository commits.

Retries are unbounded: a failed amount is always re-queued, because
dropping it would break count conservation. The policy only decides how
long a repeatedly failing name waits in the live buffer before the next
drain picks it up again.
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from .models import EventName


class RetryStrategy(str, Enum):
    """Backoff patterns between attempts for the same name."""

    IMMEDIATE = "immediate"  # Retry on the next drain
    FIXED_DELAY = "fixed_delay"  # Constant: 1s, 1s, 1s...
    LINEAR_BACKOFF = "linear_backoff"  # Linear: 1s, 2s, 3s...
    EXPONENTIAL_BACKOFF = "exponential_backoff"  # Exponential: 1s, 2s, 4s...


class RetryPolicy(BaseModel):
    """Backoff configuration for re-queued commits.

    Attributes:
        strategy: Backoff strategy to use
        base_delay_seconds: Base delay in seconds (0-60)
        max_delay_seconds: Maximum delay cap in seconds (0-600)
        backoff_multiplier: Multiplier for exponential backoff (1.0-10.0)
        jitter_factor: Random jitter factor (0.0-1.0)
    """

    strategy: RetryStrategy = RetryStrategy.IMMEDIATE
    base_delay_seconds: float = Field(default=0.5, ge=0.0, le=60.0)
    max_delay_seconds: float = Field(default=10.0, ge=0.0, le=600.0)
    backoff_multiplier: float = Field(default=2.0, ge=1.0, le=10.0)
    jitter_factor: float = Field(default=0.0, ge=0.0, le=1.0)

    def calculate_delay(self, attempt: int, rng: Optional[random.Random] = None) -> float:
        """Calculate the wait before retrying.

        Args:
            attempt: Consecutive failure number (0-indexed)
            rng: Optional random source for jitter

        Returns:
            Delay in seconds, zero for the immediate strategy
        """
        if self.strategy == RetryStrategy.EXPONENTIAL_BACKOFF:
            delay = self.base_delay_seconds * (self.backoff_multiplier**attempt)
        elif self.strategy == RetryStrategy.LINEAR_BACKOFF:
            delay = self.base_delay_seconds * (attempt + 1)
        elif self.strategy == RetryStrategy.FIXED_DELAY:
            delay = self.base_delay_seconds
        else:  # IMMEDIATE
            delay = 0.0

        delay = min(delay, self.max_delay_seconds)

        if self.jitter_factor > 0 and delay > 0:
            jitter_amount = delay * self.jitter_factor
            delay = max(0.0, delay + (rng or random).uniform(-jitter_amount, jitter_amount))

        return delay


@dataclass
class RetryBudget:
    """Tracks consecutive commit failures for one event name.

    Attributes:
        name: Event name this budget belongs to
        consecutive_failures: Failures since the last successful commit
        total_failures: Failures over the engine lifetime
        last_failure_at: Monotonic timestamp of the most recent failure
        next_attempt_at: Monotonic timestamp before which the name is held back
    """

    name: EventName
    consecutive_failures: int = 0
    total_failures: int = 0
    last_failure_at: Optional[float] = None
    next_attempt_at: float = 0.0

    def record_failure(self, policy: RetryPolicy, now: float) -> float:
        """Register a failure and return the delay before the next attempt."""
        delay = policy.calculate_delay(self.consecutive_failures)
        self.consecutive_failures += 1
        self.total_failures += 1
        self.last_failure_at = now
        self.next_attempt_at = now + delay
        return delay

    def record_success(self) -> None:
        self.consecutive_failures = 0
        self.next_attempt_at = 0.0

    def is_eligible(self, now: float) -> bool:
        return now >= self.next_attempt_at
