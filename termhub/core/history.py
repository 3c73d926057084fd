"""Fixed-capacity byte ring that keeps recent session output for replay."""

from __future__ import annotations

import threading

from .constants import HISTORY_LIMIT


class HistoryBuffer:
    """Retain the most recent ``capacity`` bytes of terminal output.

    The backing store is allocated once and never grows. Once full, every
    append evicts the oldest bytes by exactly the amount that overflowed.
    """

    def __init__(self, capacity: int = HISTORY_LIMIT) -> None:
        if capacity <= 0:
            raise ValueError("History capacity must be positive")
        self._capacity = capacity
        self._buffer = bytearray(capacity)
        self._start = 0
        self._length = 0
        self._lock = threading.Lock()

    @property
    def capacity(self) -> int:
        return self._capacity

    def append(self, data: bytes) -> None:
        """Add a chunk of output, evicting the oldest bytes if needed."""
        size = len(data)
        if not size:
            return

        capacity = self._capacity
        with self._lock:
            if size >= capacity:
                self._buffer[:] = data[size - capacity :]
                self._start = 0
                self._length = capacity
                return

            free = capacity - self._length
            if size > free:
                self._start = (self._start + (size - free)) % capacity
                self._length = capacity
            else:
                self._length += size

            write_pos = (self._start + self._length - size) % capacity
            first = min(size, capacity - write_pos)
            self._buffer[write_pos : write_pos + first] = data[:first]
            if first < size:
                self._buffer[: size - first] = data[first:]

    def snapshot(self) -> bytes:
        """Return the buffered output in chronological order as a copy."""
        with self._lock:
            if not self._length:
                return b""
            end = self._start + self._length
            if end <= self._capacity:
                return bytes(self._buffer[self._start : end])
            return bytes(self._buffer[self._start :]) + bytes(
                self._buffer[: end - self._capacity]
            )

    def clear(self) -> None:
        with self._lock:
            self._start = 0
            self._length = 0

    def __len__(self) -> int:
        return self._length


__all__ = ["HistoryBuffer"]
