"""User-facing solvers and the registry used to look them up by name."""

from typing import Any, Dict, Mapping, Optional, Type

from multistep.solvers.adams_bashforth import AdamsBashforthSolver
from multistep.solvers.monitors import MonitorList
from multistep.solvers.solver_config import OPTION_ALIASES, SolverConfig
from multistep.solvers.solver_state import IntegratorState

__all__ = [
    "AdamsBashforthSolver",
    "IntegratorState",
    "MonitorList",
    "OPTION_ALIASES",
    "SolverConfig",
    "get_solver",
]

_SOLVER_REGISTRY: Dict[str, Type[AdamsBashforthSolver]] = {
    "adams-bashforth": AdamsBashforthSolver,
    "adams_bashforth": AdamsBashforthSolver,
    "ab": AdamsBashforthSolver,
}


def get_solver(
    kind: str,
    derivative,
    initial_state,
    settings: Optional[Mapping[str, Any]] = None,
    **kwargs: Any,
) -> AdamsBashforthSolver:
    """Return a solver instance based on ``kind``.

    Parameters
    ----------
    kind
        Solver name, case-insensitive; ``"adams-bashforth"`` or one of
        its short forms.
    derivative, initial_state, settings, **kwargs
        Forwarded to the solver constructor.

    Raises
    ------
    ValueError
        Raised when ``kind`` does not match a known solver.
    """
    try:
        solver_type = _SOLVER_REGISTRY[kind.lower()]
    except KeyError as exc:
        raise ValueError(f"Unknown solver type: {kind}") from exc
    return solver_type(derivative, initial_state, settings=settings, **kwargs)
