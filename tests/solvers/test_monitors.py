"""Tests for multistep.solvers.monitors."""

from __future__ import annotations

import pytest

from multistep.solvers import MonitorList


def recorder(log, name, status=0):
    def _monitor(*args):
        log.append(name)
        return status
    return _monitor


def test_front_insertion_runs_newest_first():
    log = []
    monitors = MonitorList()
    monitors.add(recorder(log, "a"))
    monitors.add(recorder(log, "b"))
    monitors.add(recorder(log, "c"), position="back")
    assert monitors.call(0.0, 0, 1) == 0
    assert log == ["b", "a", "c"]
    assert len(monitors) == 3


def test_first_non_zero_status_stops_pass():
    log = []
    monitors = MonitorList()
    monitors.add(recorder(log, "late"), position="back")
    monitors.add(recorder(log, "stop", status=3))
    assert monitors.call(0.0, 0, 1) == 3
    assert log == ["stop"]


def test_none_status_continues():
    log = []
    monitors = MonitorList()
    monitors.add(recorder(log, "a", status=None), position="back")
    monitors.add(recorder(log, "b"), position="back")
    assert monitors.call(1.0, 2.0) == 0
    assert log == ["a", "b"]


def test_remove():
    log = []
    first = recorder(log, "first")
    monitors = MonitorList()
    monitors.add(first)
    assert first in monitors
    monitors.remove(first)
    assert first not in monitors
    with pytest.raises(ValueError):
        monitors.remove(first)


def test_invalid_arguments():
    monitors = MonitorList()
    with pytest.raises(TypeError):
        monitors.add("not callable")
    with pytest.raises(ValueError, match="position"):
        monitors.add(lambda *args: 0, position="middle")


def test_exceptions_propagate():
    def broken(*args):
        raise RuntimeError("monitor failed")

    monitors = MonitorList()
    monitors.add(broken)
    with pytest.raises(RuntimeError, match="monitor failed"):
        monitors.call(0.0, 0, 1)
