from __future__ import annotations

from typing import Generic, Iterator, List, Optional, TypeVar

T = TypeVar("T")


class RingBuffer(Generic[T]):
    """Fixed-capacity history. Appending past capacity overwrites the oldest slot."""

    __slots__ = ("_slots", "_cursor", "_size")

    def __init__(self, capacity: int) -> None:
        if capacity <= 0:
            raise ValueError(f"capacity must be positive, got {capacity}")
        self._slots: List[Optional[T]] = [None] * capacity
        self._cursor = 0
        self._size = 0

    @property
    def capacity(self) -> int:
        return len(self._slots)

    def append(self, item: T) -> None:
        self._slots[self._cursor] = item
        self._cursor = (self._cursor + 1) % len(self._slots)
        if self._size < len(self._slots):
            self._size += 1

    def clear(self) -> None:
        for index in range(len(self._slots)):
            self._slots[index] = None
        self._cursor = 0
        self._size = 0

    def latest(self) -> Optional[T]:
        if self._size == 0:
            return None
        return self._slots[(self._cursor - 1) % len(self._slots)]

    def __len__(self) -> int:
        return self._size

    def __iter__(self) -> Iterator[T]:
        capacity = len(self._slots)
        start = (self._cursor - self._size) % capacity
        for offset in range(self._size):
            yield self._slots[(start + offset) % capacity]  # type: ignore[misc]

    def to_list(self) -> List[T]:
        return list(self)
