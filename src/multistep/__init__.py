"""
multistep: adaptive-order, adaptive-step Adams-Bashforth integration
"""

from importlib.metadata import PackageNotFoundError, version

from multistep.errors import (
    ConfigurationError,
    ConvergenceFailure,
    ExternalFailure,
    MultistepError,
    NumericalAnomalyWarning,
)
from multistep.integrators import *  # noqa
from multistep.solvers import *  # noqa
from multistep.time_logger import TimeLogger  # noqa

__all__ = [
    "AdamsBashforthSolver",
    "SolverConfig",
    "get_solver",
    "HistoryBuffer",
    "CoefficientSolver",
    "AdamsBashforthStep",
    "get_controller",
    "IntegratorReturnCodes",
    "ConfigurationError",
    "ConvergenceFailure",
    "ExternalFailure",
    "MultistepError",
    "NumericalAnomalyWarning",
    "TimeLogger",
]

try:
    __version__ = version("multistep")
except PackageNotFoundError:
    # Package is not installed
    __version__ = "unknown"
