from typing import Any, Callable, Dict, Optional

import numpy as np
import pytest

from multistep.integrators.history import HistoryBuffer
from multistep.solvers import AdamsBashforthSolver

np.set_printoptions(linewidth=120, precision=12)


# --------------------------------------------------------------------------- #
#                              Derivative models                              #
# --------------------------------------------------------------------------- #
class CountingDerivative:
    """Wrap a derivative function and record every call."""

    def __init__(self, function: Callable[[np.ndarray, float], Any]):
        self.function = function
        self.times = []

    def __call__(self, state, time):
        self.times.append(time)
        return self.function(state, time)

    @property
    def calls(self) -> int:
        return len(self.times)


def decay(state, time):
    return -state


def oscillator(state, time):
    return np.array([state[1], -state[0]])


@pytest.fixture(scope="function")
def decay_derivative():
    return CountingDerivative(decay)


@pytest.fixture(scope="function")
def oscillator_derivative():
    return CountingDerivative(oscillator)


# --------------------------------------------------------------------------- #
#                                   Solvers                                   #
# --------------------------------------------------------------------------- #
@pytest.fixture(scope="function")
def solver_settings_override(request):
    """Override for solver settings, if provided."""
    return request.param if hasattr(request, "param") else {}


@pytest.fixture(scope="function")
def solver_settings(solver_settings_override) -> Dict[str, Any]:
    defaults = {
        "atol": 1e-10,
        "rtol": 1e-8,
        "mxstep": 5000,
    }
    defaults.update(solver_settings_override)
    return defaults


@pytest.fixture(scope="function")
def make_solver(solver_settings):
    """Factory building an initialised solver for a derivative model."""

    def _make(
        derivative,
        initial_state,
        nout: int = 1,
        tstep: float = 1.0,
        settings: Optional[Dict[str, Any]] = None,
        **kwargs,
    ) -> AdamsBashforthSolver:
        merged = dict(solver_settings)
        if settings is not None:
            merged.update(settings)
        solver = AdamsBashforthSolver(
            derivative, np.asarray(initial_state, dtype=np.float64),
            settings=merged, **kwargs,
        )
        solver.init(nout=nout, tstep=tstep)
        return solver

    return _make


# --------------------------------------------------------------------------- #
#                                   History                                   #
# --------------------------------------------------------------------------- #
@pytest.fixture(scope="function")
def filled_history():
    """History with samples at t = 0, 0.1, 0.3, 0.6 of f = (t, -t)."""
    history = HistoryBuffer(capacity=4, n=2)
    for time in (0.0, 0.1, 0.3, 0.6):
        history.push(time, np.array([time, -time]))
    return history
