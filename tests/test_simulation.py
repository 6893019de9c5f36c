"""End-to-end tests for the simulated event run."""

from __future__ import annotations

import io

import pytest
from rich.console import Console

from eventsync.config import SyncConfig
from eventsync.models import EVENT_NAMES
from eventsync.simulation import build_simulation, run_simulation


def _config(**simulation) -> SyncConfig:
    simulation.setdefault("max_events", 60)
    simulation.setdefault("max_trigger_delay_seconds", 0.001)
    simulation.setdefault("report_interval_seconds", 0.05)
    simulation.setdefault("settle_timeout_seconds", 5.0)
    simulation.setdefault("seed", 7)
    return SyncConfig(
        engine={"flush_interval_seconds": 0.02, "buffer_threshold": 10},
        repository={"latency_min_seconds": 0.0, "latency_max_seconds": 0.002, "failure_rate": 0.2},
        simulation=simulation,
    )


def test_build_simulation_wires_components() -> None:
    sim = build_simulation(_config())
    for name in EVENT_NAMES:
        assert sim.emitter.subscriber_count(name) == 1
    assert not sim.engine.is_running


@pytest.mark.asyncio()
async def test_run_converges() -> None:
    config = _config()
    sim = build_simulation(config)

    report = await run_simulation(config, simulation=sim)

    assert report.converged
    for row in report.rows:
        assert row.fired == row.handler == row.repository == 60
        assert row.pending == 0
    assert sim.engine.max_concurrent_drains == 1


@pytest.mark.asyncio()
async def test_run_prints_progress() -> None:
    output = io.StringIO()
    report = await run_simulation(_config(max_events=20), console=Console(file=output, width=120))

    assert report.converged
    assert "Event totals" in output.getvalue()


@pytest.mark.asyncio()
async def test_run_writes_telemetry(tmp_path) -> None:
    config = _config(max_events=15)
    config.telemetry_dir = tmp_path / "telemetry"

    await run_simulation(config)

    assert (tmp_path / "telemetry" / "telemetry_summary.json").exists()
