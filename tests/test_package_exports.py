"""Tests for the public surface of the multistep package."""

import numpy as np
import pytest

import multistep
from multistep.errors import (
    ConfigurationError,
    ConvergenceFailure,
    ExternalFailure,
    MultistepError,
    NumericalAnomalyWarning,
)
from multistep.integrators import IntegratorReturnCodes


@pytest.mark.parametrize("name", multistep.__all__)
def test_all_names_importable(name):
    assert hasattr(multistep, name)


def test_version_is_string():
    assert isinstance(multistep.__version__, str)


def test_return_code_values():
    assert IntegratorReturnCodes.SUCCESS == 0
    assert IntegratorReturnCodes.MONITOR_REQUESTED_STOP != 0
    codes = [code.value for code in IntegratorReturnCodes]
    assert len(codes) == len(set(codes))


def test_error_hierarchy():
    assert issubclass(ConfigurationError, MultistepError)
    assert issubclass(ConfigurationError, ValueError)
    assert issubclass(ConvergenceFailure, MultistepError)
    assert issubclass(ConvergenceFailure, RuntimeError)
    assert issubclass(ExternalFailure, MultistepError)
    assert issubclass(NumericalAnomalyWarning, RuntimeWarning)


def test_convergence_failure_carries_code():
    failure = ConvergenceFailure(
        "too many steps",
        code=IntegratorReturnCodes.MAX_LOOP_ITERS_EXCEEDED,
    )
    assert str(failure) == "too many steps"
    assert failure.code == IntegratorReturnCodes.MAX_LOOP_ITERS_EXCEEDED
    assert failure.snapshot is None


def test_external_failure_propagates_from_derivative():
    def derivative(state, time):
        if time > 0.0:
            raise ExternalFailure("model diverged")
        return -state

    solver = multistep.AdamsBashforthSolver(
        derivative, np.ones(1), atol=1e-8, rtol=1e-6
    )
    solver.init(nout=1, tstep=1.0)
    with pytest.raises(ExternalFailure, match="model diverged"):
        solver.run()
    assert solver.simtime == 0.0
    assert solver.n_accepted == 0
