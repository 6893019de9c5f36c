"""Buffering sync engine between the event emitter and the delayed repository.

Every event is counted locally right away and added to a pending buffer.
The buffer is drained into the repository on a fixed interval, or as soon
as one name's pending count reaches the threshold. Drains are single-flight:
a trigger that arrives while a drain runs is dropped, not queued.

At any instant, for every name:

    read_stats(name) == repository total + pending(name) + in_flight(name)
"""

from __future__ import annotations

import asyncio
import functools
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional, Set, Tuple

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from .emitter import EventEmitter
from .exceptions import EngineStateError
from .metrics import SyncTelemetry
from .models import EVENT_NAMES, CommitResult, EventName
from .repository import EventDelayedRepository
from .retry_policy import RetryBudget, RetryPolicy
from .stats import EventStatistics

logger = logging.getLogger(__name__)

DEFAULT_BUFFER_THRESHOLD = 150
DEFAULT_FLUSH_INTERVAL_SECONDS = 0.3


@dataclass
class DrainReport:
    """Outcome of one drain invocation."""

    trigger: str
    skipped: bool = False
    results: List[CommitResult] = field(default_factory=list)
    duration_seconds: float = 0.0

    @property
    def committed(self) -> Dict[EventName, int]:
        return {result.name: result.count for result in self.results if result.ok}

    @property
    def requeued(self) -> Dict[EventName, int]:
        return {result.name: result.count for result in self.results if not result.ok}


class EventSyncEngine:
    """Counts emitted events locally and syncs them to a repository in batches."""

    def __init__(
        self,
        *,
        emitter: EventEmitter,
        repository: EventDelayedRepository,
        buffer_threshold: int = DEFAULT_BUFFER_THRESHOLD,
        flush_interval_seconds: float = DEFAULT_FLUSH_INTERVAL_SECONDS,
        retry_policy: Optional[RetryPolicy] = None,
        telemetry: Optional[SyncTelemetry] = None,
        follow_up_on_threshold: bool = True,
        event_names: Iterable[EventName] = EVENT_NAMES,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if buffer_threshold < 1:
            raise ValueError("buffer_threshold must be at least 1")
        if flush_interval_seconds <= 0:
            raise ValueError("flush_interval_seconds must be greater than zero")

        self._event_names: Tuple[EventName, ...] = tuple(event_names)
        self._repository = repository
        self._buffer_threshold = buffer_threshold
        self._flush_interval = flush_interval_seconds
        self._retry_policy = retry_policy or RetryPolicy()
        self._telemetry = telemetry or SyncTelemetry()
        self._follow_up = follow_up_on_threshold
        self._clock = clock

        self._stats = EventStatistics(self._event_names)
        self._buffer: Dict[EventName, int] = {}
        self._in_flight: Dict[EventName, int] = {name: 0 for name in self._event_names}
        self._committed: Dict[EventName, int] = {name: 0 for name in self._event_names}
        self._budgets: Dict[EventName, RetryBudget] = {
            name: RetryBudget(name=name) for name in self._event_names
        }
        self._flushing = False
        # Set whenever no drain holds the flushing flag.
        self._idle = asyncio.Event()
        self._idle.set()
        self._scheduled_task: Optional[asyncio.Task] = None
        self._tasks: Set[asyncio.Task] = set()
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._running = False
        self._closed = False

        # Instrumentation for the single-flight guarantee.
        self._active_drains = 0
        self.max_concurrent_drains = 0
        self.drains_started = 0
        self.drains_skipped = 0

        self._unsubscribers = [
            emitter.subscribe(name, functools.partial(self.on_event, name))
            for name in self._event_names
        ]

    # ------------------------------------------------------------------
    # Event path
    # ------------------------------------------------------------------

    def on_event(self, name: EventName) -> None:
        """Count one occurrence of ``name``. Never suspends."""
        if name not in self._budgets:
            logger.debug("Ignoring event for unsynced name", extra={"event_name": name})
            return
        self._stats.increment(name)
        self._buffer[name] = self._buffer.get(name, 0) + 1
        self._check_threshold(name)

    def read_stats(self, name: EventName) -> int:
        return self._stats.get_stats(name)

    def pending(self, name: EventName) -> int:
        return self._buffer.get(name, 0)

    def pending_snapshot(self) -> Dict[EventName, int]:
        return {name: self.pending(name) for name in self._event_names}

    def in_flight(self, name: EventName) -> int:
        return self._in_flight.get(name, 0)

    def committed_total(self, name: EventName) -> int:
        """Sum of amounts accepted by the repository through this engine."""
        return self._committed.get(name, 0)

    def retry_budget(self, name: EventName) -> RetryBudget:
        return self._budgets[name]

    @property
    def event_names(self) -> Tuple[EventName, ...]:
        return self._event_names

    @property
    def is_flushing(self) -> bool:
        return self._flushing

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def telemetry(self) -> SyncTelemetry:
        return self._telemetry

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the periodic flush on the running event loop."""
        if self._running:
            return
        if self._closed:
            raise EngineStateError("Engine has been shut down and cannot be restarted")
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError as exc:
            raise EngineStateError("start() must be called from a running event loop") from exc

        self._scheduler = AsyncIOScheduler(event_loop=loop)
        self._scheduler.add_job(
            self._periodic_flush,
            trigger=IntervalTrigger(seconds=self._flush_interval),
            id="eventsync-periodic-flush",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self._scheduler.start()
        self._running = True
        logger.info(
            "Sync engine started",
            extra={
                "flush_interval_seconds": self._flush_interval,
                "buffer_threshold": self._buffer_threshold,
            },
        )

    async def shutdown(self, *, flush: bool = True, timeout_seconds: Optional[float] = None) -> bool:
        """Stop the periodic flush and wait for outstanding drains.

        Args:
            flush: Drain whatever is still pending before returning
            timeout_seconds: Upper bound for the final flush

        Returns:
            True if nothing is left pending or in flight
        """
        if self._scheduler is not None:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None
        self._running = False
        self._closed = True

        await self._await_drain_tasks()

        drained = True
        if flush:
            drained = await self.flush_until_empty(timeout_seconds=timeout_seconds)
            await self._await_drain_tasks()

        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []
        logger.info("Sync engine stopped", extra={"fully_drained": drained})
        return drained

    async def _await_drain_tasks(self) -> None:
        # A finishing drain may schedule a follow-up, so loop until quiet.
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    async def flush_until_empty(self, timeout_seconds: Optional[float] = None) -> bool:
        """Drain repeatedly until nothing is pending or in flight.

        Returns:
            False if ``timeout_seconds`` elapsed first
        """
        try:
            await asyncio.wait_for(self._drain_until_empty(), timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning(
                "Timed out waiting for buffer to drain",
                extra={"pending": self._pending_total(), "in_flight": self._in_flight_total()},
            )
            return False
        return True

    async def _drain_until_empty(self) -> None:
        while self._pending_total() or self._in_flight_total():
            if self._flushing:
                await self._idle.wait()
                continue
            now = self._clock()
            if not self._eligible_names(now):
                await asyncio.sleep(max(self._next_eligible_at() - now, 0.001))
                continue
            await self.drain(trigger="flush")

    # ------------------------------------------------------------------
    # Drain
    # ------------------------------------------------------------------

    async def drain(self, trigger: str = "manual") -> DrainReport:
        """Move pending counts into the repository.

        A call made while another drain is running returns a skipped report
        without touching the buffer.
        """
        if self._scheduled_task is asyncio.current_task():
            self._scheduled_task = None
        if self._flushing:
            self._record_skip(trigger)
            return DrainReport(trigger=trigger, skipped=True)

        self._flushing = True
        self._idle.clear()
        self._active_drains += 1
        self.max_concurrent_drains = max(self.max_concurrent_drains, self._active_drains)
        self.drains_started += 1
        start = time.perf_counter()
        report = DrainReport(trigger=trigger)
        try:
            batch = self._take_snapshot()
            logger.debug(
                "Draining buffer",
                extra={"trigger": trigger, "batch": {name.value: count for name, count in batch}},
            )
            for index, (name, count) in enumerate(batch):
                try:
                    result = await self._repository.commit(name, count)
                except BaseException:
                    # Cancellation or an unexpected backend error: put back
                    # everything not yet resolved so no count is lost.
                    for pending_name, pending_count in batch[index:]:
                        self._in_flight[pending_name] -= pending_count
                        self._requeue(pending_name, pending_count)
                    raise
                self._in_flight[name] -= count
                self._handle_result(result)
                report.results.append(result)
        finally:
            report.duration_seconds = time.perf_counter() - start
            self._active_drains -= 1
            self._flushing = False
            self._idle.set()

        self._telemetry.record_drain(trigger, report.results, report.duration_seconds)
        if self._follow_up and self._threshold_reached():
            self._schedule_drain("follow_up")
        return report

    def _take_snapshot(self) -> List[Tuple[EventName, int]]:
        # Copy and clear in one synchronous step; names in retry backoff stay
        # in the live buffer.
        eligible = set(self._eligible_names(self._clock()))
        batch = [
            (name, self._buffer.pop(name))
            for name in self._event_names
            if name in eligible and self._buffer.get(name, 0) > 0
        ]
        for name, count in batch:
            self._in_flight[name] += count
        return batch

    def _handle_result(self, result: CommitResult) -> None:
        budget = self._budgets[result.name]
        if result.ok:
            self._committed[result.name] += result.count
            budget.record_success()
            return

        delay = budget.record_failure(self._retry_policy, self._clock())
        logger.warning(
            "Failed to save events, re-queued for retry",
            extra={
                "event_name": result.name.value,
                "event_count": result.count,
                "error": result.error,
                "consecutive_failures": budget.consecutive_failures,
                "retry_delay_seconds": round(delay, 3),
            },
        )
        self._requeue(result.name, result.count)

    def _requeue(self, name: EventName, count: int) -> None:
        self._buffer[name] = self._buffer.get(name, 0) + count
        self._check_threshold(name)

    # ------------------------------------------------------------------
    # Triggers
    # ------------------------------------------------------------------

    def _check_threshold(self, name: EventName) -> None:
        if self._buffer.get(name, 0) < self._buffer_threshold:
            return
        if not self._budgets[name].is_eligible(self._clock()):
            return
        self._schedule_drain("threshold")

    async def _periodic_flush(self) -> None:
        if not self._eligible_names(self._clock()):
            return
        self._schedule_drain("periodic")

    def _schedule_drain(self, trigger: str) -> Optional[asyncio.Task]:
        if self._scheduled_task is not None or self._closed:
            return None
        if self._flushing:
            self._record_skip(trigger)
            return None
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # Outside the loop the counts simply wait for the next periodic
            # tick or explicit drain.
            logger.debug("No running event loop, drain deferred", extra={"trigger": trigger})
            return None
        task = loop.create_task(self.drain(trigger=trigger))
        self._scheduled_task = task
        self._tasks.add(task)
        task.add_done_callback(self._on_drain_task_done)
        return task

    def _on_drain_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        # A task cancelled before it ran never cleared the slot itself.
        if self._scheduled_task is task:
            self._scheduled_task = None

    def _record_skip(self, trigger: str) -> None:
        self.drains_skipped += 1
        self._telemetry.record_skip(trigger)
        logger.debug("Drain already in progress, trigger dropped", extra={"trigger": trigger})

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _eligible_names(self, now: float) -> List[EventName]:
        return [
            name
            for name in self._event_names
            if self._buffer.get(name, 0) > 0 and self._budgets[name].is_eligible(now)
        ]

    def _threshold_reached(self) -> bool:
        now = self._clock()
        return any(
            self._buffer.get(name, 0) >= self._buffer_threshold
            for name in self._eligible_names(now)
        )

    def _next_eligible_at(self) -> float:
        waiting = [
            self._budgets[name].next_attempt_at
            for name in self._event_names
            if self._buffer.get(name, 0) > 0
        ]
        return min(waiting) if waiting else self._clock()

    def _pending_total(self) -> int:
        return sum(self._buffer.values())

    def _in_flight_total(self) -> int:
        return sum(self._in_flight.values())
