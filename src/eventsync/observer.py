"""Read-only convergence reporting across emitter, engine and repository."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

from rich.console import Console
from rich.table import Table

from .emitter import EventEmitter
from .engine import EventSyncEngine
from .models import EventName
from .repository import EventDelayedRepository


@dataclass
class NameStats:
    name: EventName
    fired: int
    handler: int
    repository: int
    pending: int

    @property
    def converged(self) -> bool:
        return self.fired == self.handler == self.repository

    @property
    def conservation_holds(self) -> bool:
        return self.handler >= self.repository

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name.value,
            "fired": self.fired,
            "handler": self.handler,
            "repository": self.repository,
            "pending": self.pending,
            "converged": self.converged,
        }


@dataclass
class ConvergenceReport:
    rows: List[NameStats] = field(default_factory=list)
    elapsed_seconds: float = 0.0

    @property
    def converged(self) -> bool:
        return all(row.converged for row in self.rows)

    @property
    def conservation_holds(self) -> bool:
        return all(row.conservation_holds for row in self.rows)

    def row(self, name: EventName) -> NameStats:
        for row in self.rows:
            if row.name == name:
                return row
        raise KeyError(name)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "converged": self.converged,
            "elapsed_seconds": round(self.elapsed_seconds, 3),
            "names": [row.to_dict() for row in self.rows],
        }


class ConvergenceObserver:
    """Polls both counters and the true fired totals. Never writes."""

    def __init__(
        self,
        *,
        event_names: Iterable[EventName],
        emitter: EventEmitter,
        engine: EventSyncEngine,
        repository: EventDelayedRepository,
    ) -> None:
        self._event_names: Tuple[EventName, ...] = tuple(event_names)
        self._emitter = emitter
        self._engine = engine
        self._repository = repository
        self._started = time.perf_counter()

    def collect(self) -> ConvergenceReport:
        rows = [
            NameStats(
                name=name,
                fired=self._emitter.fired_count(name),
                handler=self._engine.read_stats(name),
                repository=self._repository.read_stats(name),
                pending=self._engine.pending(name),
            )
            for name in self._event_names
        ]
        return ConvergenceReport(rows=rows, elapsed_seconds=time.perf_counter() - self._started)

    @staticmethod
    def render(report: ConvergenceReport) -> Table:
        table = Table(title=f"Event totals after {report.elapsed_seconds:.1f}s")
        table.add_column("Event", style="cyan")
        table.add_column("Fired", justify="right")
        table.add_column("Handler", justify="right")
        table.add_column("Repository", justify="right")
        table.add_column("Pending", justify="right")
        table.add_column("Status")
        for row in report.rows:
            status = "[green]in sync[/green]" if row.converged else "[yellow]syncing[/yellow]"
            table.add_row(
                row.name.value,
                str(row.fired),
                str(row.handler),
                str(row.repository),
                str(row.pending),
                status,
            )
        return table

    async def watch(
        self,
        interval_seconds: float,
        *,
        until_converged: bool = True,
        timeout_seconds: Optional[float] = None,
        console: Optional[Console] = None,
    ) -> ConvergenceReport:
        """Print a report every ``interval_seconds``.

        Stops once the counters converge (when ``until_converged``) or when
        ``timeout_seconds`` has elapsed, and returns the last report.
        """
        deadline = None if timeout_seconds is None else time.perf_counter() + timeout_seconds
        while True:
            report = self.collect()
            if console is not None:
                console.print(self.render(report))
            if until_converged and report.converged:
                return report
            if deadline is not None and time.perf_counter() >= deadline:
                return report
            await asyncio.sleep(interval_seconds)
