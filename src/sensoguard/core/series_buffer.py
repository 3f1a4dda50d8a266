from __future__ import annotations

import threading
from collections import deque
from collections.abc import Iterable, Iterator
from typing import Deque, Optional

from .models import SensorReading

DEFAULT_CAPACITY = 100


class SeriesBuffer:
    """Bounded, id-ordered window of the latest sensor readings.

    Readings are kept strictly ascending by ``id`` with no duplicates. When
    the window is full, appending evicts from the front (oldest). The RLock
    lets transport threads append while the GUI thread takes snapshots.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self._capacity = int(capacity)
        self._readings: Deque[SensorReading] = deque()
        self._ids: set[int] = set()
        self._lock = threading.RLock()
        self._version = 0

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def version(self) -> int:
        """Counter bumped on every change; lets views skip redundant redraws."""
        with self._lock:
            return self._version

    def install(self, readings: Iterable[SensorReading]) -> int:
        """Replace the contents with ``readings`` (ascending), returning the count kept.

        Duplicates and out-of-order entries are skipped, then the newest
        ``capacity`` entries are retained.
        """
        ordered: list[SensorReading] = []
        seen: set[int] = set()
        for reading in readings:
            if reading.id in seen:
                continue
            if ordered and reading.id < ordered[-1].id:
                continue
            ordered.append(reading)
            seen.add(reading.id)
        ordered = ordered[-self._capacity:]

        with self._lock:
            self._readings = deque(ordered)
            self._ids = {r.id for r in ordered}
            self._version += 1
            return len(self._readings)

    def append(self, reading: SensorReading) -> bool:
        """Append ``reading`` if it is new and newer than the tail.

        Returns ``True`` when the buffer changed.
        """
        with self._lock:
            if reading.id in self._ids:
                return False
            if self._readings and reading.id < self._readings[-1].id:
                return False
            self._readings.append(reading)
            self._ids.add(reading.id)
            while len(self._readings) > self._capacity:
                evicted = self._readings.popleft()
                self._ids.discard(evicted.id)
            self._version += 1
            return True

    def contains(self, reading_id: int) -> bool:
        with self._lock:
            return reading_id in self._ids

    def last_id(self) -> Optional[int]:
        with self._lock:
            if not self._readings:
                return None
            return self._readings[-1].id

    def snapshot(self) -> tuple[SensorReading, ...]:
        """Return an immutable copy of the logical contents."""
        with self._lock:
            return tuple(self._readings)

    def clear(self) -> None:
        with self._lock:
            self._readings.clear()
            self._ids.clear()
            self._version += 1

    def __len__(self) -> int:
        with self._lock:
            return len(self._readings)

    def __iter__(self) -> Iterator[SensorReading]:
        return iter(self.snapshot())
