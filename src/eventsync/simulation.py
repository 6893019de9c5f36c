"""Wires emitter, repository, engine and observer into one simulated run."""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Optional

from rich.console import Console

from .config import SyncConfig
from .emitter import EventEmitter, trigger_randomly
from .engine import EventSyncEngine
from .metrics import SyncTelemetry
from .models import EVENT_NAMES
from .observer import ConvergenceObserver, ConvergenceReport
from .repository import EventDelayedRepository

logger = logging.getLogger(__name__)


@dataclass
class Simulation:
    config: SyncConfig
    emitter: EventEmitter
    repository: EventDelayedRepository
    engine: EventSyncEngine
    observer: ConvergenceObserver
    rng: random.Random


def build_simulation(config: SyncConfig) -> Simulation:
    rng = random.Random(config.simulation.seed)
    emitter = EventEmitter()
    repository = EventDelayedRepository(
        latency_min_seconds=config.repository.latency_min_seconds,
        latency_max_seconds=config.repository.latency_max_seconds,
        failure_rate=config.repository.failure_rate,
        rng=random.Random(rng.random()),
    )
    engine = EventSyncEngine(
        emitter=emitter,
        repository=repository,
        buffer_threshold=config.engine.buffer_threshold,
        flush_interval_seconds=config.engine.flush_interval_seconds,
        retry_policy=config.retry.to_policy(),
        telemetry=SyncTelemetry(output_dir=config.telemetry_dir),
        follow_up_on_threshold=config.engine.follow_up_on_threshold,
    )
    observer = ConvergenceObserver(
        event_names=EVENT_NAMES,
        emitter=emitter,
        engine=engine,
        repository=repository,
    )
    return Simulation(
        config=config,
        emitter=emitter,
        repository=repository,
        engine=engine,
        observer=observer,
        rng=rng,
    )


async def run_simulation(
    config: SyncConfig,
    *,
    console: Optional[Console] = None,
    simulation: Optional[Simulation] = None,
) -> ConvergenceReport:
    """Fire ``max_events`` per name, then wait for both counters to converge.

    Returns:
        The final convergence report; ``report.converged`` is False if the
        settle timeout elapsed first
    """
    sim = simulation or build_simulation(config)
    settings = config.simulation

    sim.engine.start()
    progress: Optional[asyncio.Task] = None
    if console is not None:
        progress = asyncio.create_task(
            sim.observer.watch(
                settings.report_interval_seconds,
                until_converged=False,
                console=console,
            )
        )

    producers = [
        trigger_randomly(
            lambda name=name: sim.emitter.emit(name),
            settings.max_events,
            max_delay_seconds=settings.max_trigger_delay_seconds,
            rng=random.Random(sim.rng.random()),
        )
        for name in EVENT_NAMES
    ]
    try:
        await asyncio.gather(*producers)
        logger.info(
            "Event production finished",
            extra={"max_events": settings.max_events, "event_names": [n.value for n in EVENT_NAMES]},
        )
        drained = await sim.engine.shutdown(timeout_seconds=settings.settle_timeout_seconds)
    finally:
        if progress is not None:
            progress.cancel()
            try:
                await progress
            except asyncio.CancelledError:
                pass

    report = sim.observer.collect()
    if console is not None:
        console.print(sim.observer.render(report))
    if not drained or not report.converged:
        logger.warning("Counters did not converge", extra={"report": report.to_dict()})
    return report
