"""
Memory Events - Observer registry for learning lifecycle notifications

WHAT: Typed events plus a subscription-handle registry for listeners
WHERE: sona/runtime/memory/events.py - shared by stores and orchestrator
WHO: External listeners (dashboards, policy schedulers, tests)
TIME: Emission O(listeners), synchronous, registration order

Listeners are invoked synchronously in registration order. A listener that
raises is logged and skipped; emission continues to the remaining listeners.
Subscriptions are identified by integer handles so removal is well defined
even when the same callable is registered twice.
"""

from __future__ import annotations

import itertools
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Optional, Tuple

from .models import utcnow

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    TRAJECTORY_STARTED = "trajectory_started"
    TRAJECTORY_COMPLETED = "trajectory_completed"
    PATTERN_MATCHED = "pattern_matched"
    PATTERN_EVOLVED = "pattern_evolved"
    LEARNING_TRIGGERED = "learning_triggered"
    LEARNING_COMPLETED = "learning_completed"
    MODE_CHANGED = "mode_changed"
    MEMORY_CONSOLIDATED = "memory_consolidated"


@dataclass(frozen=True, slots=True)
class MemoryEvent:
    type: EventType
    payload: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=utcnow)

    def __getitem__(self, key: str) -> Any:
        return self.payload[key]


Listener = Callable[[MemoryEvent], None]


@dataclass(frozen=True, slots=True)
class _Subscription:
    handle: int
    listener: Listener
    types: Optional[FrozenSet[EventType]]


class EventBus:
    """Registry of listeners keyed by subscription handle."""

    def __init__(self) -> None:
        self._subscriptions: Dict[int, _Subscription] = {}
        self._counter = itertools.count(1)
        self._lock = threading.Lock()

    def subscribe(
        self,
        listener: Listener,
        event_types: Optional[Iterable[EventType | str]] = None,
    ) -> int:
        """Register ``listener``; returns the handle used to unsubscribe.

        ``event_types`` limits delivery to the given types (all types if None).
        """
        types = None
        if event_types is not None:
            types = frozenset(EventType(t) for t in event_types)
        with self._lock:
            handle = next(self._counter)
            self._subscriptions[handle] = _Subscription(handle, listener, types)
        return handle

    def unsubscribe(self, handle: int) -> bool:
        with self._lock:
            return self._subscriptions.pop(handle, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._subscriptions.clear()

    def __len__(self) -> int:
        return len(self._subscriptions)

    def emit(self, event_type: EventType | str, **payload: Any) -> MemoryEvent:
        event = MemoryEvent(type=EventType(event_type), payload=payload)
        self.publish(event)
        return event

    def publish(self, event: MemoryEvent) -> int:
        """Deliver ``event``; returns how many listeners completed without error."""
        with self._lock:
            # dicts keep insertion order, which is registration order
            subscriptions: Tuple[_Subscription, ...] = tuple(self._subscriptions.values())

        delivered = 0
        for sub in subscriptions:
            if sub.types is not None and event.type not in sub.types:
                continue
            try:
                sub.listener(event)
                delivered += 1
            except Exception:
                logger.exception(
                    f"Listener {sub.handle} failed while handling {event.type.value}"
                )
        return delivered


class EventRecorder:
    """Listener that keeps every event it receives."""

    def __init__(self) -> None:
        self.events: List[MemoryEvent] = []

    def __call__(self, event: MemoryEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: EventType | str) -> List[MemoryEvent]:
        wanted = EventType(event_type)
        return [e for e in self.events if e.type is wanted]


__all__ = [
    "EventType",
    "MemoryEvent",
    "Listener",
    "EventBus",
    "EventRecorder",
]
