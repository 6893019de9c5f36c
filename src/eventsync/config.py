"""Sync engine configuration with validation and YAML persistence.

All tunables are static for the lifetime of a run: flush interval, buffer
threshold, repository fault simulation, retry backoff and the simulation
driver. Files are YAML; every field is validated by Pydantic.
"""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from .retry_policy import RetryPolicy, RetryStrategy


class EngineConfig(BaseModel):
    """Buffering and flush configuration.

    Attributes:
        flush_interval_seconds: Period of the background drain (0.01-3600)
        buffer_threshold: Pending count per name that forces a drain (1-1000000)
        follow_up_on_threshold: Drain again right away if a finished drain
            leaves a name at or above the threshold
    """

    flush_interval_seconds: float = Field(
        default=0.3,
        ge=0.01,
        le=3600.0,
        description="Period of the background drain"
    )
    buffer_threshold: int = Field(
        default=150,
        ge=1,
        le=1_000_000,
        description="Pending count per name that forces a drain"
    )
    follow_up_on_threshold: bool = Field(
        default=True,
        description="Drain again right away when a drain leaves the threshold exceeded"
    )


class RepositoryConfig(BaseModel):
    """Latency and fault simulation for the delayed repository.

    Attributes:
        latency_min_seconds: Lower bound of commit latency
        latency_max_seconds: Upper bound of commit latency
        failure_rate: Probability that a commit is rejected (0.0-1.0)
    """

    latency_min_seconds: float = Field(default=0.01, ge=0.0, le=60.0)
    latency_max_seconds: float = Field(default=0.1, ge=0.0, le=60.0)
    failure_rate: float = Field(default=0.1, ge=0.0, le=1.0)

    @model_validator(mode="after")
    def check_latency_bounds(self) -> "RepositoryConfig":
        if self.latency_max_seconds < self.latency_min_seconds:
            raise ValueError("latency_max_seconds must be >= latency_min_seconds")
        return self


class RetryConfig(BaseModel):
    """Backoff applied to names whose commits keep failing.

    Attributes:
        strategy: Backoff strategy
        base_delay_seconds: Base delay in seconds (0-60)
        max_delay_seconds: Maximum delay cap in seconds (0-600)
        backoff_multiplier: Exponential backoff multiplier (1.0-10.0)
        jitter_factor: Random jitter factor (0.0-1.0)
    """

    strategy: RetryStrategy = RetryStrategy.IMMEDIATE
    base_delay_seconds: float = Field(default=0.5, ge=0.0, le=60.0)
    max_delay_seconds: float = Field(default=10.0, ge=0.0, le=600.0)
    backoff_multiplier: float = Field(default=2.0, ge=1.0, le=10.0)
    jitter_factor: float = Field(default=0.0, ge=0.0, le=1.0)

    def to_policy(self) -> RetryPolicy:
        return RetryPolicy(**self.model_dump())


class SimulationConfig(BaseModel):
    """Event production and reporting for a simulated run.

    Attributes:
        max_events: Events fired per name
        max_trigger_delay_seconds: Upper bound of the random pause between events
        report_interval_seconds: How often the observer prints progress
        settle_timeout_seconds: How long to wait for convergence once production stops
        seed: Optional random seed for reproducible runs
    """

    max_events: int = Field(default=1000, ge=0, le=10_000_000)
    max_trigger_delay_seconds: float = Field(default=0.005, ge=0.0, le=10.0)
    report_interval_seconds: float = Field(default=1.0, gt=0.0, le=3600.0)
    settle_timeout_seconds: float = Field(default=30.0, gt=0.0, le=86400.0)
    seed: Optional[int] = None


class SyncConfig(BaseModel):
    """Top-level configuration.

    Attributes:
        version: Configuration schema version
        engine: Buffering and flush configuration
        repository: Repository fault simulation
        retry: Retry backoff
        simulation: Event production and reporting
        telemetry_dir: Optional directory for drain telemetry files
    """

    model_config = ConfigDict(validate_assignment=True, extra="forbid")

    version: int = Field(default=1, description="Configuration schema version")
    engine: EngineConfig = Field(default_factory=EngineConfig)
    repository: RepositoryConfig = Field(default_factory=RepositoryConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    simulation: SimulationConfig = Field(default_factory=SimulationConfig)
    telemetry_dir: Optional[Path] = None


class ConfigurationError(Exception):
    """Raised when configuration is invalid or cannot be loaded."""
    pass


def _format_errors(exc: ValidationError) -> List[str]:
    return [
        f"{'.'.join(str(loc) for loc in err['loc'])}: {err['msg']}"
        for err in exc.errors()
    ]


class ConfigurationManager:
    """Loads, saves and validates ``SyncConfig`` YAML files."""

    def __init__(self, config_path: Optional[Path] = None) -> None:
        self._config_path = config_path

    @property
    def config_path(self) -> Optional[Path]:
        return self._config_path

    def load(self) -> SyncConfig:
        """Load and validate configuration.

        Returns defaults when no path is configured or the file is missing.

        Raises:
            ConfigurationError: If the file is not valid YAML or fails validation
        """
        if self._config_path is None or not self._config_path.exists():
            return SyncConfig()

        data = self._read_yaml(self._config_path)
        try:
            return SyncConfig(**data)
        except ValidationError as exc:
            raise ConfigurationError(
                f"Invalid configuration: {'; '.join(_format_errors(exc))}"
            ) from exc

    def save(self, config: SyncConfig) -> None:
        if self._config_path is None:
            raise ConfigurationError("No configuration path set")
        self._config_path.parent.mkdir(parents=True, exist_ok=True)
        data = config.model_dump(mode="json")
        with open(self._config_path, "w", encoding="utf-8") as f:
            yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)

    def validate(self, config_path: Optional[Path] = None) -> List[str]:
        """Validate a configuration file.

        Returns:
            List of validation errors (empty if valid)
        """
        path = config_path or self._config_path
        if path is None or not path.exists():
            return [f"Configuration file not found: {path}"]

        try:
            SyncConfig(**self._read_yaml(path))
        except ValidationError as exc:
            return _format_errors(exc)
        except ConfigurationError as exc:
            return [str(exc)]
        return []

    @staticmethod
    def _read_yaml(path: Path) -> dict:
        try:
            with open(path, encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Invalid YAML configuration: {exc}") from exc
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigurationError("Configuration root must be a mapping")
        return data


__all__ = [
    "EngineConfig",
    "RepositoryConfig",
    "RetryConfig",
    "SimulationConfig",
    "SyncConfig",
    "ConfigurationManager",
    "ConfigurationError",
]
