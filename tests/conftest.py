"""Shared fixtures for sync engine tests."""

from __future__ import annotations

from typing import Callable

import pytest

from eventsync.emitter import EventEmitter
from eventsync.engine import EventSyncEngine
from eventsync.repository import EventDelayedRepository


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 0.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def emitter() -> EventEmitter:
    return EventEmitter()


@pytest.fixture
def repository() -> EventDelayedRepository:
    return EventDelayedRepository()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_engine(emitter: EventEmitter, repository: EventDelayedRepository) -> Callable[..., EventSyncEngine]:
    def factory(**kwargs) -> EventSyncEngine:
        kwargs.setdefault("emitter", emitter)
        kwargs.setdefault("repository", repository)
        kwargs.setdefault("flush_interval_seconds", 10.0)
        return EventSyncEngine(**kwargs)

    return factory
