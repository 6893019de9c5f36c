"""Domain models shared by the emitter, engine and repository."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple


class EventName(str, Enum):
    EVENT_A = "A"
    EVENT_B = "B"


# Subscription and reporting iterate this tuple, never dynamic keys.
EVENT_NAMES: Tuple[EventName, ...] = (EventName.EVENT_A, EventName.EVENT_B)


class CommitStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class CommitResult:
    """Outcome of a single repository commit.

    Failures are values, not exceptions: the caller decides whether to
    re-buffer the amount.
    """

    name: EventName
    count: int
    status: CommitStatus
    error: Optional[str] = None
    latency_seconds: float = 0.0

    @property
    def ok(self) -> bool:
        return self.status == CommitStatus.SUCCEEDED

    @classmethod
    def success(cls, name: EventName, count: int, *, latency_seconds: float = 0.0) -> "CommitResult":
        return cls(name=name, count=count, status=CommitStatus.SUCCEEDED, latency_seconds=latency_seconds)

    @classmethod
    def failure(
        cls,
        name: EventName,
        count: int,
        error: str,
        *,
        latency_seconds: float = 0.0,
    ) -> "CommitResult":
        return cls(
            name=name,
            count=count,
            status=CommitStatus.FAILED,
            error=error,
            latency_seconds=latency_seconds,
        )
