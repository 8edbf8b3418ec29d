"""
Bounded History - Fixed-capacity ring buffers for pattern statistics

WHAT: Append-only history that drops its oldest entry once full
WHERE: sona/runtime/memory/history.py - used by Pattern quality/evolution logs
WHO: Pattern store when recording observations and evolution records
TIME: append O(1), no per-append copies
"""

from __future__ import annotations

from collections import deque
from typing import Deque, Generic, Iterable, Iterator, List, Optional, TypeVar

T = TypeVar("T")

QUALITY_HISTORY_CAPACITY = 100
EVOLUTION_HISTORY_CAPACITY = 50


class BoundedHistory(Generic[T]):
    """Circular buffer keeping the most recent ``capacity`` entries."""

    __slots__ = ("_items",)

    def __init__(self, capacity: int, items: Optional[Iterable[T]] = None) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self._items: Deque[T] = deque(items or (), maxlen=capacity)

    @property
    def capacity(self) -> int:
        return self._items.maxlen or 0

    def append(self, item: T) -> None:
        self._items.append(item)

    def extend(self, items: Iterable[T]) -> None:
        self._items.extend(items)

    def clear(self) -> None:
        self._items.clear()

    def last(self) -> Optional[T]:
        return self._items[-1] if self._items else None

    def to_list(self) -> List[T]:
        return list(self._items)

    def copy(self) -> "BoundedHistory[T]":
        return BoundedHistory(self.capacity, self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[T]:
        return iter(self._items)

    def __getitem__(self, index: int) -> T:
        return self._items[index]

    def __bool__(self) -> bool:
        return bool(self._items)

    def __repr__(self) -> str:
        return f"BoundedHistory(capacity={self.capacity}, size={len(self._items)})"


def mean(values: Iterable[float], default: float = 0.0) -> float:
    data = list(values)
    return sum(data) / len(data) if data else default


__all__ = [
    "BoundedHistory",
    "QUALITY_HISTORY_CAPACITY",
    "EVOLUTION_HISTORY_CAPACITY",
    "mean",
]
