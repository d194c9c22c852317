"""
Building blocks of the adaptive Adams-Bashforth integrator.

The module contains:
- The derivative history ring buffer
- Extrapolation coefficients on non-uniform step histories
- The Adams-Bashforth step, producing primary and companion candidates
- Step controllers deciding acceptance, step size and order

Examples
--------
The pieces are normally driven by
:class:`~multistep.solvers.AdamsBashforthSolver`, but can be used directly:

>>> import numpy as np
>>> from multistep.integrators import CoefficientSolver
>>> CoefficientSolver().solve(0.1, np.array([0.0, -0.1]), 2).coefficients
array([ 1.5, -0.5])
"""
from multistep.integrators.return_codes import IntegratorReturnCodes
from multistep.integrators.history import HistoryBuffer, HistoryEntry
from multistep.integrators.coefficients import (
    CoefficientSet,
    CoefficientSolver,
)
from multistep.integrators.norms import ScaledNorm, scaled_rms_norm
from multistep.integrators.algorithms import (
    AdamsBashforthStep,
    StepResult,
)
from multistep.integrators.step_control import (
    AdaptiveController,
    ControllerDecision,
    FixedStepController,
    get_controller,
)

__all__ = [
    "IntegratorReturnCodes",
    "HistoryBuffer",
    "HistoryEntry",
    "CoefficientSet",
    "CoefficientSolver",
    "ScaledNorm",
    "scaled_rms_norm",
    "AdamsBashforthStep",
    "StepResult",
    "AdaptiveController",
    "ControllerDecision",
    "FixedStepController",
    "get_controller",
]
