"""Buffered synchronisation of in-process event counts to a delayed repository."""

from .config import ConfigurationError, ConfigurationManager, SyncConfig
from .emitter import EventEmitter, trigger_randomly
from .engine import DrainReport, EventSyncEngine
from .exceptions import EngineStateError, TransientCommitError
from .metrics import SyncTelemetry
from .models import EVENT_NAMES, CommitResult, CommitStatus, EventName
from .observer import ConvergenceObserver, ConvergenceReport, NameStats
from .repository import EventDelayedRepository
from .retry_policy import RetryBudget, RetryPolicy, RetryStrategy
from .simulation import Simulation, build_simulation, run_simulation
from .stats import EventStatistics

__all__ = [
    "EVENT_NAMES",
    "EventName",
    "CommitResult",
    "CommitStatus",
    "EventStatistics",
    "EventEmitter",
    "trigger_randomly",
    "EventDelayedRepository",
    "EventSyncEngine",
    "DrainReport",
    "RetryPolicy",
    "RetryStrategy",
    "RetryBudget",
    "SyncTelemetry",
    "ConvergenceObserver",
    "ConvergenceReport",
    "NameStats",
    "Simulation",
    "build_simulation",
    "run_simulation",
    "SyncConfig",
    "ConfigurationManager",
    "ConfigurationError",
    "EngineStateError",
    "TransientCommitError",
]
