"""
Bounded, insertion-ordered history of recent call outcomes.
"""

import threading
from collections import deque
from typing import Callable, Deque, Generic, List, TypeVar

from ..errors import ConfigurationError

T = TypeVar('T')


class BoundedHistory(Generic[T]):
    """
    Fixed-capacity FIFO of records.

    Adding to a full history evicts the oldest record first. Every read
    returns a copy, oldest record first.
    """

    def __init__(self, capacity: int):
        if isinstance(capacity, bool) or not isinstance(capacity, int) or capacity <= 0:
            raise ConfigurationError(f"capacity must be a positive integer, got {capacity!r}")

        self._capacity = capacity
        self._records: Deque[T] = deque(maxlen=capacity)
        self._lock = threading.Lock()

    def add(self, record: T) -> None:
        """Append a record, evicting the oldest one when full."""
        with self._lock:
            self._records.append(record)

    def all(self) -> List[T]:
        """Return every record, oldest first."""
        with self._lock:
            return list(self._records)

    def recent(self, count: int) -> List[T]:
        """Return the last ``count`` records, oldest first."""
        if count <= 0:
            return []

        with self._lock:
            records = list(self._records)
        return records[-count:]

    def filter(self, predicate: Callable[[T], bool]) -> List[T]:
        """Return the records matching predicate, oldest first."""
        return [record for record in self.all() if predicate(record)]

    def size(self) -> int:
        with self._lock:
            return len(self._records)

    def capacity(self) -> int:
        return self._capacity

    def clear(self) -> None:
        with self._lock:
            self._records.clear()

    def __len__(self) -> int:
        return self.size()
