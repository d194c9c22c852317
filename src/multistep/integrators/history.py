"""Bounded, newest-first history of accepted derivative evaluations.

Published Classes
-----------------
:class:`HistoryEntry`
    Read-only ``(time, derivative)`` pair.

:class:`HistoryBuffer`
    Fixed-capacity ring buffer of entries.

    >>> import numpy as np
    >>> history = HistoryBuffer(capacity=2, n=1)
    >>> history.push(0.0, np.array([1.0]))
    >>> history.push(0.5, np.array([2.0]))
    >>> history.push(1.0, np.array([3.0]))
    >>> history.times()
    array([1. , 0.5])
"""

from typing import Iterator, Optional

import attrs
import numpy as np
from numpy.typing import ArrayLike

from multistep._utils import PrecisionDType, get_readonly_view


@attrs.define(frozen=True)
class HistoryEntry:
    """One accepted derivative evaluation."""

    time: float
    derivative: np.ndarray = attrs.field(eq=False)


class HistoryBuffer:
    """Ring buffer of derivative samples, newest first.

    Storage is preallocated as ``(capacity, n)``; pushing overwrites the slot
    of the oldest sample once the buffer is full, so no arrays are allocated
    while stepping.

    Parameters
    ----------
    capacity
        Maximum number of samples retained; the integrator sizes this to
        its maximum order.
    n
        Length of each derivative vector.
    precision
        Floating point type of the stored samples.
    """

    def __init__(
        self,
        capacity: int,
        n: int,
        precision: PrecisionDType = np.float64,
    ) -> None:
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        if n < 0:
            raise ValueError(f"n must be >= 0, got {n}")
        self._precision = precision
        self._times = np.zeros(capacity, dtype=np.float64)
        self._derivatives = np.zeros((capacity, n), dtype=precision)
        self._head = -1
        self._size = 0

    @property
    def capacity(self) -> int:
        return self._times.shape[0]

    @property
    def n(self) -> int:
        return self._derivatives.shape[1]

    @property
    def size(self) -> int:
        """Number of samples currently held."""
        return self._size

    def __len__(self) -> int:
        return self._size

    def _slot(self, index: int) -> int:
        if index < 0:
            index += self._size
        if not 0 <= index < self._size:
            raise IndexError(
                f"history index {index} out of range for size {self._size}"
            )
        return (self._head - index) % self.capacity

    def push(self, time: float, derivative: ArrayLike) -> None:
        """Insert a new newest sample, evicting the oldest when full.

        Raises
        ------
        ValueError
            If ``time`` does not follow the current newest sample or the
            derivative has the wrong length.
        """
        derivative = np.asarray(derivative)
        if derivative.shape != (self.n,):
            raise ValueError(
                f"derivative shape {derivative.shape} != ({self.n},)"
            )
        if self._size and not time > self._times[self._head]:
            raise ValueError(
                f"history times must increase: {time} after "
                f"{self._times[self._head]}"
            )
        self._head = (self._head + 1) % self.capacity
        self._times[self._head] = time
        self._derivatives[self._head, :] = derivative
        self._size = min(self._size + 1, self.capacity)

    def truncate_to(self, count: int) -> None:
        """Keep only the ``count`` newest samples."""
        if count < 0:
            raise ValueError(f"count must be >= 0, got {count}")
        self._size = min(self._size, count)
        if self._size == 0:
            self._head = -1

    def clear(self) -> None:
        self.truncate_to(0)

    def _indices(self, count: Optional[int]) -> np.ndarray:
        if count is None:
            count = self._size
        if count > self._size:
            raise ValueError(
                f"requested {count} samples, history holds {self._size}"
            )
        return (self._head - np.arange(count)) % self.capacity

    def times(self, count: Optional[int] = None) -> np.ndarray:
        """Return the ``count`` newest sample times, newest first."""
        return self._times[self._indices(count)]

    def derivatives(self, count: Optional[int] = None) -> np.ndarray:
        """Return the ``count`` newest derivatives as ``(count, n)``."""
        return self._derivatives[self._indices(count)]

    def offsets(self, count: Optional[int] = None) -> np.ndarray:
        """Return sample times relative to the newest sample."""
        times = self.times(count)
        return times - times[0] if times.size else times

    @property
    def newest(self) -> HistoryEntry:
        return self[0]

    def __getitem__(self, index: int) -> HistoryEntry:
        slot = self._slot(index)
        return HistoryEntry(
            time=float(self._times[slot]),
            derivative=get_readonly_view(self._derivatives[slot]),
        )

    def __iter__(self) -> Iterator[HistoryEntry]:
        for index in range(self._size):
            yield self[index]

    def __repr__(self) -> str:
        return (
            f"HistoryBuffer(size={self._size}, capacity={self.capacity}, "
            f"n={self.n})"
        )
