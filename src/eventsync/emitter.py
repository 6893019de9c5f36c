"""In-process publish/subscribe event source and its random driver."""

from __future__ import annotations

import asyncio
import logging
import random
from collections import defaultdict
from typing import Callable, Dict, List, Optional

from .models import EventName

logger = logging.getLogger(__name__)

Callback = Callable[[], None]


class EventEmitter:
    """Synchronous fan-out of named events to their subscribers.

    Subscribers are called in subscription order, with no payload; the
    name is bound when subscribing. The emitter also counts every emit per
    name, which is the ground truth the observer compares against.
    """

    def __init__(self) -> None:
        self._subscribers: Dict[EventName, List[Callback]] = defaultdict(list)
        self._fired: Dict[EventName, int] = defaultdict(int)

    def subscribe(self, name: EventName, callback: Callback) -> Callable[[], None]:
        """Register ``callback`` for ``name`` and return an unsubscribe handle."""
        self._subscribers[name].append(callback)
        logger.debug(
            "Subscribed to event",
            extra={"event_name": name.value, "subscribers": len(self._subscribers[name])},
        )

        def unsubscribe() -> None:
            callbacks = self._subscribers.get(name, [])
            if callback in callbacks:
                callbacks.remove(callback)

        return unsubscribe

    def emit(self, name: EventName) -> None:
        self._fired[name] += 1
        # Copy so a callback may unsubscribe itself mid-delivery.
        for callback in list(self._subscribers.get(name, [])):
            callback()

    def fired_count(self, name: EventName) -> int:
        return self._fired.get(name, 0)

    def subscriber_count(self, name: EventName) -> int:
        return len(self._subscribers.get(name, []))


async def trigger_randomly(
    callback: Callback,
    max_events: int,
    *,
    max_delay_seconds: float = 0.01,
    rng: Optional[random.Random] = None,
) -> int:
    """Invoke ``callback`` ``max_events`` times at random intervals.

    Args:
        callback: Zero-argument function to fire, usually ``emitter.emit`` bound
            to one event name
        max_events: Total number of invocations
        max_delay_seconds: Upper bound of the uniform pause between invocations
        rng: Optional random source for reproducible runs

    Returns:
        Number of invocations performed
    """
    if max_events < 0:
        raise ValueError("max_events must be non-negative")
    rng = rng or random.Random()
    fired = 0
    for _ in range(max_events):
        await asyncio.sleep(rng.uniform(0, max_delay_seconds))
        callback()
        fired += 1
    return fired
