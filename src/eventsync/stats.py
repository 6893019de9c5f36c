"""Per-event-name counter store."""

from __future__ import annotations

from typing import Dict, Iterable, Optional

from .models import EVENT_NAMES, EventName


class EventStatistics:
    """Monotonic mapping from event name to a non-negative count.

    Every name starts at zero. Values only grow; attempting to lower or
    negate a count is a programming error and raises ``ValueError``.
    """

    def __init__(self, event_names: Optional[Iterable[EventName]] = None) -> None:
        self._event_names = tuple(event_names or EVENT_NAMES)
        self._stats: Dict[EventName, int] = {name: 0 for name in self._event_names}

    def get_stats(self, name: EventName) -> int:
        return self._stats.get(name, 0)

    def set_stats(self, name: EventName, value: int) -> None:
        if value < 0:
            raise ValueError(f"Count for {name.value} cannot be negative: {value}")
        current = self.get_stats(name)
        if value < current:
            raise ValueError(
                f"Count for {name.value} cannot decrease from {current} to {value}"
            )
        self._stats[name] = value

    def increment(self, name: EventName, amount: int = 1) -> int:
        value = self.get_stats(name) + amount
        self.set_stats(name, value)
        return value

    def snapshot(self) -> Dict[EventName, int]:
        snapshot = {name: 0 for name in self._event_names}
        snapshot.update(self._stats)
        return snapshot

    def total(self) -> int:
        return sum(self._stats.values())
