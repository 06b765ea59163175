"""
voiceturn - Ring Buffer
=======================

Rolling window of the most recent audio samples.

The volume meters only ever look at the newest ``capacity`` samples, so a
push never fails: once the window is full each new sample replaces the
oldest one.
"""

import numpy as np


class RingBuffer:
    """
    Fixed-size sliding window over an audio stream.

    Usage:
        window = RingBuffer(capacity=256)
        window.push(frame)
        samples = window.get_all()  # newest <= 256 samples, oldest first
    """

    def __init__(self, capacity: int, dtype=np.float32):
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self.dtype = dtype
        self._data = np.zeros(capacity, dtype=dtype)
        self._head = 0   # next slot to write
        self._count = 0

    def push(self, data: np.ndarray) -> int:
        """
        Append samples, dropping the oldest ones beyond capacity.

        Returns:
            Number of samples retained from ``data``
        """
        data = np.asarray(data, dtype=self.dtype).ravel()[-self.capacity:]
        n = data.size
        if n == 0:
            return 0

        idx = (self._head + np.arange(n)) % self.capacity
        self._data[idx] = data
        self._head = (self._head + n) % self.capacity
        self._count = min(self.capacity, self._count + n)
        return n

    def get_all(self) -> np.ndarray:
        """Copy of the current window, oldest sample first."""
        if self._count == 0:
            return np.zeros(0, dtype=self.dtype)
        idx = (self._head - self._count + np.arange(self._count)) % self.capacity
        return self._data[idx]

    def clear(self) -> None:
        self._head = 0
        self._count = 0

    @property
    def size(self) -> int:
        """Number of samples currently held."""
        return self._count

    @property
    def is_empty(self) -> bool:
        return self._count == 0
