"""Resolve a sensor value at an arbitrary timestamp from a TimeKeyedBuffer."""

from __future__ import annotations

import numpy as np

from .time_buffer import TimeKeyedBuffer


def is_fresh(buffer: TimeKeyedBuffer, timestamp: float) -> bool:
    """Return True if the buffer's history reaches the query timestamp.

    A buffer that is empty, or whose newest sample is older than the query,
    has not caught up with the image yet and must not be interpolated.
    """
    last = buffer.last_key
    return last is not None and last >= timestamp


def resolve(
    buffer: TimeKeyedBuffer[np.ndarray], timestamp: float
) -> tuple[np.ndarray | None, bool]:
    """Resolve the sample value at timestamp.

    Uses linear interpolation between the two samples bracketing the query,
    the exact sample when the query hits a key, or the first sample when the
    query precedes all history that was ever seen. Queries that fall at or
    before the buffer's eviction horizon are rejected: that history has
    been consumed.

    After a fresh query, every sample before the first key >= timestamp is
    evicted, whether or not a value was produced. The look-back window is
    therefore at most one inter-arrival gap. A stale buffer is left untouched.

    Args:
        buffer: Time-ordered samples (vectors of equal length)
        timestamp: Query time in seconds

    Returns:
        Tuple of (value, ok). value is None when ok is False.
    """
    if not is_fresh(buffer, timestamp):
        return None, False

    b = buffer.lower_bound(timestamp)
    key_b = buffer.key_at(b)
    value: np.ndarray | None = None

    if timestamp == key_b:
        value = np.array(buffer.value_at(b), dtype=np.float64)
    elif b == 0:
        horizon = buffer.horizon
        if horizon is None or timestamp > horizon:
            # Nothing older was ever seen: nearest sample
            value = np.array(buffer.value_at(b), dtype=np.float64)
    else:
        key_a = buffer.key_at(b - 1)
        if key_a < timestamp < key_b:
            value_a = np.asarray(buffer.value_at(b - 1), dtype=np.float64)
            value_b = np.asarray(buffer.value_at(b), dtype=np.float64)
            alpha = (timestamp - key_a) / (key_b - key_a)
            value = value_a + alpha * (value_b - value_a)

    buffer.erase_prefix_before(b)
    return value, value is not None
