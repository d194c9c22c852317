"""Event logging for integrator runs.

The solver reports the run, each output interval and, at ``debug``
verbosity, every attempted internal step. Events are kept in memory so
callers can query durations and step statistics after the run.
"""

import time
from typing import Any, Optional

import attrs

_VERBOSITY_LEVELS = {"default", "verbose", "debug"}


@attrs.define(frozen=True)
class TimingEvent:
    """Record of a single logged event.

    Attributes
    ----------
    name : str
        Identifier for the event (e.g. ``'run'``, ``'interval'``).
    event_type : str
        Type of event: ``'start'``, ``'stop'`` or ``'progress'``.
    timestamp : float
        Wall-clock time from ``time.perf_counter()``.
    metadata : dict
        Optional metadata (simulated time, dt, order, ...).
    """
    name: str = attrs.field(validator=attrs.validators.instance_of(str))
    event_type: str = attrs.field(
        validator=attrs.validators.in_({'start', 'stop', 'progress'})
    )
    timestamp: float = attrs.field(
        validator=attrs.validators.instance_of(float)
    )
    metadata: dict = attrs.field(factory=dict)


def _normalise_verbosity(verbosity):
    if verbosity is None or verbosity == 'None':
        return None
    if verbosity not in _VERBOSITY_LEVELS:
        raise ValueError(
            f"verbosity must be None, 'default', 'verbose', or 'debug', "
            f"got '{verbosity}'"
        )
    return verbosity


class TimeLogger:
    """Callback-style event log for a solver instance.

    Parameters
    ----------
    verbosity : str or None, default=None
        Output verbosity level. Options:
        - None: record nothing
        - 'default': record events, print a summary on request
        - 'verbose': also print interval durations as they complete
        - 'debug': also print every event, including step attempts

    Notes
    -----
    Create one instance per solver.
    """

    def __init__(self, verbosity: Optional[str] = None) -> None:
        self.verbosity = _normalise_verbosity(verbosity)
        self.events: list[TimingEvent] = []
        self._active_starts: dict[str, float] = {}

    def set_verbosity(self, verbosity: Optional[str]) -> None:
        self.verbosity = _normalise_verbosity(verbosity)

    @property
    def enabled(self) -> bool:
        return self.verbosity is not None

    def start_event(self, event_name: str, **metadata: Any) -> None:
        """Record the start of a timed operation."""
        if not event_name:
            raise ValueError("event_name cannot be empty")
        if not self.enabled:
            return

        timestamp = time.perf_counter()
        self.events.append(
            TimingEvent(
                name=event_name,
                event_type='start',
                timestamp=timestamp,
                metadata=metadata,
            )
        )
        self._active_starts[event_name] = timestamp

        if self.verbosity == 'debug':
            print(f"[DEBUG] Started: {event_name} {metadata}")

    def stop_event(self, event_name: str, **metadata: Any) -> None:
        """Record the end of a timed operation.

        A stop without a matching start is stored anyway so the orphan can
        be inspected.
        """
        if not event_name:
            raise ValueError("event_name cannot be empty")
        if not self.enabled:
            return

        timestamp = time.perf_counter()
        self.events.append(
            TimingEvent(
                name=event_name,
                event_type='stop',
                timestamp=timestamp,
                metadata=metadata,
            )
        )

        start = self._active_starts.pop(event_name, None)
        if start is None:
            if self.verbosity == 'debug':
                print(f"[DEBUG] Warning: stop_event('{event_name}') "
                      "without matching start")
            return
        duration = timestamp - start
        if self.verbosity == 'debug':
            print(f"[DEBUG] Stopped: {event_name} ({duration:.3f}s) "
                  f"{metadata}")
        elif self.verbosity == 'verbose':
            print(f"{event_name}: {duration:.3f}s {metadata}")

    def progress(
        self, event_name: str, message: str, **metadata: Any
    ) -> None:
        """Record a progress update; printed only in debug mode."""
        if not event_name:
            raise ValueError("event_name cannot be empty")
        if not self.enabled:
            return

        metadata_with_msg = dict(metadata)
        metadata_with_msg['message'] = message
        self.events.append(
            TimingEvent(
                name=event_name,
                event_type='progress',
                timestamp=time.perf_counter(),
                metadata=metadata_with_msg,
            )
        )

        if self.verbosity == 'debug':
            print(f"[DEBUG] Progress: {event_name} - {message}")

    def get_event_duration(self, event_name: str) -> Optional[float]:
        """Return the duration of the most recent completed ``event_name``.

        Returns
        -------
        float or None
            Duration in seconds, or None if no start/stop pair exists.
        """
        start_time = None
        stop_time = None

        for event in reversed(self.events):
            if event.name != event_name:
                continue
            if event.event_type == 'stop' and stop_time is None:
                stop_time = event.timestamp
            elif event.event_type == 'start' and stop_time is not None:
                start_time = event.timestamp
                break

        if start_time is not None and stop_time is not None:
            return stop_time - start_time
        return None

    def get_aggregate_durations(self) -> dict[str, float]:
        """Sum completed durations per event name."""
        durations: dict[str, float] = {}
        event_starts: dict[str, float] = {}

        for event in self.events:
            if event.event_type == 'start':
                event_starts[event.name] = event.timestamp
            elif event.event_type == 'stop' and event.name in event_starts:
                duration = event.timestamp - event_starts.pop(event.name)
                durations[event.name] = (
                    durations.get(event.name, 0.0) + duration
                )
        return durations

    def count_progress(self, event_name: str, **match: Any) -> int:
        """Count progress events whose metadata contains ``match``."""
        count = 0
        for event in self.events:
            if event.name != event_name or event.event_type != 'progress':
                continue
            if all(event.metadata.get(k) == v for k, v in match.items()):
                count += 1
        return count

    def print_summary(self) -> None:
        """Print aggregate durations; only in 'default' mode.

        'verbose' and 'debug' already printed as events arrived.
        """
        if self.verbosity != 'default':
            return
        durations = self.get_aggregate_durations()
        if durations:
            print("\nTiming Summary:")
            for name, duration in sorted(durations.items()):
                print(f"  {name}: {duration:.3f}s")
