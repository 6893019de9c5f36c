"""Telemetry recorder for drain cycles.

Aggregates drain and commit outcomes in memory and, when given an output
directory, persists one JSON line per drain plus a rolling summary that
operators can inspect locally.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

from .models import CommitResult


def _empty_name_stats() -> Dict[str, float]:
    return {
        "succeeded": 0,
        "failed": 0,
        "committed": 0,
        "requeued": 0,
        "latency": 0.0,
    }


@dataclass
class SyncTelemetry:
    output_dir: Optional[Path] = None
    metrics_file: str = "telemetry.log"
    summary_file: str = "telemetry_summary.json"
    drains: int = 0
    skipped_drains: int = 0
    _names: Dict[str, Dict[str, float]] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.output_dir is not None:
            self.output_dir.mkdir(parents=True, exist_ok=True)

    def record_skip(self, trigger: str) -> None:
        self.skipped_drains += 1

    def record_drain(
        self,
        trigger: str,
        results: Iterable[CommitResult],
        duration: float,
    ) -> None:
        results = list(results)
        self.drains += 1
        for result in results:
            stats = self._names.setdefault(result.name.value, _empty_name_stats())
            stats["latency"] += result.latency_seconds
            if result.ok:
                stats["succeeded"] += 1
                stats["committed"] += result.count
            else:
                stats["failed"] += 1
                stats["requeued"] += result.count

        if self.output_dir is None:
            return

        entry = {
            "trigger": trigger,
            "duration": duration,
            "timestamp": datetime.utcnow().isoformat(),
            "commits": [
                {
                    "event_name": result.name.value,
                    "count": result.count,
                    "status": result.status.value,
                    "error": result.error,
                }
                for result in results
            ],
        }
        path = self.output_dir / self.metrics_file
        with path.open("a", encoding="utf-8") as fp:
            fp.write(json.dumps(entry) + "\n")

        summary_path = self.output_dir / self.summary_file
        summary_path.write_text(json.dumps(self.summary(), indent=2))

    def summary(self) -> Dict[str, Any]:
        names: Dict[str, Any] = {}
        total_commits = 0
        total_failed = 0
        for name, stats in sorted(self._names.items()):
            attempts = int(stats["succeeded"] + stats["failed"])
            names[name] = {
                "commits_succeeded": int(stats["succeeded"]),
                "commits_failed": int(stats["failed"]),
                "events_committed": int(stats["committed"]),
                "events_requeued": int(stats["requeued"]),
                "avg_commit_latency": round(stats["latency"] / attempts, 4) if attempts else 0.0,
            }
            total_commits += attempts
            total_failed += int(stats["failed"])

        return {
            "overall": {
                "drains": self.drains,
                "skipped_drains": self.skipped_drains,
                "commits": total_commits,
                "failure_ratio": round(total_failed / total_commits, 4) if total_commits else 0.0,
            },
            "names": names,
        }
