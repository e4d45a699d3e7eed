"""Timestamp-ordered buffer of sensor samples."""

from __future__ import annotations

import bisect
from typing import Generic, Iterator, TypeVar

T = TypeVar("T")


class TimeKeyedBuffer(Generic[T]):
    """Ordered mapping from timestamp (seconds) to sample value.

    Producers emit samples in time order, so insertion is an append in the
    common case. Positions returned by lower_bound() are plain integer
    indices; len(buffer) plays the role of the end-of-sequence sentinel.

    The buffer also remembers its eviction horizon: the newest key that has
    been removed from the front. Samples at or before the horizon are gone
    for good, which lets readers tell "evicted" apart from "not yet seen".

    Not thread-safe. The owner is responsible for locking.
    """

    def __init__(self, max_size: int | None = None) -> None:
        """Initialize an empty buffer.

        Args:
            max_size: Optional cap on retained samples. When exceeded, the
                oldest samples are evicted.
        """
        if max_size is not None and max_size < 2:
            raise ValueError(f"max_size must be at least 2, got {max_size}")
        self._keys: list[float] = []  # For fast binary search
        self._values: list[T] = []
        self._max_size = max_size
        self._horizon: float | None = None

    def insert(self, timestamp: float, value: T) -> None:
        """Insert a sample.

        Appends when timestamp is not older than the newest key. A repeated
        timestamp replaces the stored value. Out-of-order samples are placed
        at their sorted position.
        """
        timestamp = float(timestamp)
        if not self._keys or timestamp > self._keys[-1]:
            self._keys.append(timestamp)
            self._values.append(value)
        else:
            idx = bisect.bisect_left(self._keys, timestamp)
            if idx < len(self._keys) and self._keys[idx] == timestamp:
                self._values[idx] = value
            else:
                self._keys.insert(idx, timestamp)
                self._values.insert(idx, value)

        if self._max_size is not None and len(self._keys) > self._max_size:
            self.erase_prefix_before(len(self._keys) - self._max_size)

    def lower_bound(self, timestamp: float) -> int:
        """Return the index of the first sample with key >= timestamp.

        Returns len(self) if every key is older than timestamp.
        """
        return bisect.bisect_left(self._keys, timestamp)

    def erase_prefix_before(self, index: int) -> int:
        """Remove every sample strictly before index.

        Returns:
            Number of samples removed
        """
        index = max(0, min(index, len(self._keys)))
        if index == 0:
            return 0

        newest_removed = self._keys[index - 1]
        if self._horizon is None or newest_removed > self._horizon:
            self._horizon = newest_removed
        del self._keys[:index]
        del self._values[:index]
        return index

    def key_at(self, index: int) -> float:
        """Return the timestamp stored at index."""
        return self._keys[index]

    def value_at(self, index: int) -> T:
        """Return the value stored at index."""
        return self._values[index]

    def clear(self) -> None:
        """Drop all samples and forget the eviction horizon."""
        self._keys.clear()
        self._values.clear()
        self._horizon = None

    @property
    def first_key(self) -> float | None:
        """Oldest retained timestamp, or None if empty."""
        return self._keys[0] if self._keys else None

    @property
    def last_key(self) -> float | None:
        """Newest retained timestamp, or None if empty."""
        return self._keys[-1] if self._keys else None

    @property
    def horizon(self) -> float | None:
        """Newest timestamp ever evicted, or None if nothing was evicted."""
        return self._horizon

    @property
    def max_size(self) -> int | None:
        """Cap on retained samples."""
        return self._max_size

    def keys(self) -> list[float]:
        """Return a copy of the retained timestamps."""
        return list(self._keys)

    def __iter__(self) -> Iterator[tuple[float, T]]:
        """Iterate over (timestamp, value) pairs in time order."""
        return iter(zip(list(self._keys), list(self._values)))

    def __len__(self) -> int:
        """Number of retained samples."""
        return len(self._keys)

    def __bool__(self) -> bool:
        """Return True if the buffer holds any sample."""
        return bool(self._keys)
