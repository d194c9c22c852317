"""Ordered collections of monitor callbacks.

Output monitors are called as ``monitor(time, iteration, nout)`` when an
output time is reached; timestep monitors as ``monitor(time, dt)`` after
each accepted internal step. A monitor returning anything other than zero
or None asks the solver to stop.
"""

from typing import Callable, Iterator, Tuple

OutputMonitor = Callable[[float, int, int], int]
TimestepMonitor = Callable[[float, float], int]

_POSITIONS = ("front", "back")


class MonitorList:
    """Callbacks called in order; the first non-zero status stops the pass.

    New monitors go to the front by default, so the most recently added
    runs first.
    """

    def __init__(self) -> None:
        self._monitors: list[Callable[..., int]] = []

    def add(self, monitor: Callable[..., int], position: str = "front") -> None:
        """Register ``monitor`` at the ``"front"`` or ``"back"``."""
        if not callable(monitor):
            raise TypeError(f"monitor must be callable, got {monitor!r}")
        position = position.lower()
        if position not in _POSITIONS:
            raise ValueError(
                f"position must be one of {_POSITIONS}, got '{position}'"
            )
        if position == "front":
            self._monitors.insert(0, monitor)
        else:
            self._monitors.append(monitor)

    def remove(self, monitor: Callable[..., int]) -> None:
        """Remove every registration of ``monitor``.

        Raises
        ------
        ValueError
            If ``monitor`` was never added.
        """
        if monitor not in self._monitors:
            raise ValueError(f"{monitor!r} is not a registered monitor")
        self._monitors = [m for m in self._monitors if m is not monitor]

    def call(self, *args) -> int:
        """Call monitors in order and return the first non-zero status.

        Exceptions raised by a monitor propagate unchanged.
        """
        for monitor in self._monitors:
            status = monitor(*args)
            if status:
                return int(status)
        return 0

    def __len__(self) -> int:
        return len(self._monitors)

    def __iter__(self) -> Iterator[Callable[..., int]]:
        return iter(tuple(self._monitors))

    def __contains__(self, monitor) -> bool:
        return monitor in self._monitors

    def as_tuple(self) -> Tuple[Callable[..., int], ...]:
        return tuple(self._monitors)
