"""Tests for the per-name counter store."""

from __future__ import annotations

import pytest

from eventsync.models import EVENT_NAMES, EventName
from eventsync.stats import EventStatistics


class TestEventStatistics:
    def test_every_name_starts_at_zero(self) -> None:
        stats = EventStatistics()
        for name in EVENT_NAMES:
            assert stats.get_stats(name) == 0
        assert stats.snapshot() == {EventName.EVENT_A: 0, EventName.EVENT_B: 0}

    def test_set_and_get(self) -> None:
        stats = EventStatistics()
        stats.set_stats(EventName.EVENT_A, 7)
        assert stats.get_stats(EventName.EVENT_A) == 7
        assert stats.get_stats(EventName.EVENT_B) == 0

    def test_increment_returns_new_value(self) -> None:
        stats = EventStatistics()
        assert stats.increment(EventName.EVENT_B) == 1
        assert stats.increment(EventName.EVENT_B, 4) == 5
        assert stats.total() == 5

    def test_value_never_decreases(self) -> None:
        """Lowering a count is rejected and leaves the value untouched."""
        stats = EventStatistics()
        stats.set_stats(EventName.EVENT_A, 3)
        with pytest.raises(ValueError, match="cannot decrease"):
            stats.set_stats(EventName.EVENT_A, 2)
        assert stats.get_stats(EventName.EVENT_A) == 3

    def test_negative_values_rejected(self) -> None:
        stats = EventStatistics()
        with pytest.raises(ValueError, match="negative"):
            stats.set_stats(EventName.EVENT_A, -1)

    def test_instances_do_not_share_state(self) -> None:
        first = EventStatistics()
        second = EventStatistics()
        first.increment(EventName.EVENT_A)
        assert second.get_stats(EventName.EVENT_A) == 0
