"""Delayed, failure-prone counter repository.

Simulates a persistence backend reached over an unreliable link: every
commit pays a bounded random latency and may be rejected. Rejections are
reported through ``CommitResult`` rather than raised, so callers treat
them as an expected outcome.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from collections import defaultdict
from typing import Dict, Optional

from .exceptions import TransientCommitError
from .models import CommitResult, EventName
from .stats import EventStatistics

logger = logging.getLogger(__name__)


class EventDelayedRepository:
    """Counter store whose updates are asynchronous and may fail.

    Assumes a single writer. The addition to the stored total happens in
    one step after the latency suspension, so it is race-free on the event
    loop, but two engines committing the same name would still interleave
    their commits.
    """

    def __init__(
        self,
        *,
        latency_min_seconds: float = 0.0,
        latency_max_seconds: float = 0.0,
        failure_rate: float = 0.0,
        rng: Optional[random.Random] = None,
        stats: Optional[EventStatistics] = None,
    ) -> None:
        if latency_min_seconds < 0 or latency_max_seconds < latency_min_seconds:
            raise ValueError("latency bounds must satisfy 0 <= min <= max")
        if not 0.0 <= failure_rate <= 1.0:
            raise ValueError("failure_rate must be within [0.0, 1.0]")
        self._latency_min = latency_min_seconds
        self._latency_max = latency_max_seconds
        self._failure_rate = failure_rate
        self._rng = rng or random.Random()
        self._stats = stats or EventStatistics()
        self._scripted_failures: Dict[EventName, int] = defaultdict(int)
        self._active_commits = 0

        self.commit_calls = 0
        self.failed_commits = 0
        self.max_concurrent_commits = 0

    def read_stats(self, name: EventName) -> int:
        return self._stats.get_stats(name)

    def inject_failure(self, name: EventName, times: int = 1) -> None:
        """Force the next ``times`` commits for ``name`` to fail."""
        if times < 1:
            raise ValueError("times must be at least 1")
        self._scripted_failures[name] += times

    async def commit(self, name: EventName, count: int) -> CommitResult:
        """Add ``count`` to the stored total for ``name``.

        Returns:
            A succeeded result once the total includes ``count``, or a failed
            result with the total untouched.
        """
        if count <= 0:
            raise ValueError(f"commit count must be positive, got {count}")

        self.commit_calls += 1
        self._active_commits += 1
        self.max_concurrent_commits = max(self.max_concurrent_commits, self._active_commits)
        start = time.perf_counter()
        try:
            await self._delay()
            self._save(name, count)
        except TransientCommitError as exc:
            self.failed_commits += 1
            return CommitResult.failure(
                name, count, str(exc), latency_seconds=time.perf_counter() - start
            )
        finally:
            self._active_commits -= 1

        logger.debug(
            "Committed events",
            extra={"event_name": name.value, "event_count": count, "event_total": self.read_stats(name)},
        )
        return CommitResult.success(name, count, latency_seconds=time.perf_counter() - start)

    async def _delay(self) -> None:
        if self._latency_max <= 0:
            # Still yield so callers observe a real suspension point.
            await asyncio.sleep(0)
            return
        await asyncio.sleep(self._rng.uniform(self._latency_min, self._latency_max))

    def _save(self, name: EventName, count: int) -> None:
        if self._scripted_failures.get(name, 0) > 0:
            self._scripted_failures[name] -= 1
            raise TransientCommitError(f"Injected failure saving {count} events for {name.value}")
        if self._failure_rate and self._rng.random() < self._failure_rate:
            raise TransientCommitError(f"Backend rejected {count} events for {name.value}")
        self._stats.increment(name, count)
