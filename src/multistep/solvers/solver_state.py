"""Mutable state owned by a solver between and during runs."""

from copy import deepcopy

import attrs
import numpy as np

from multistep.integrators.history import HistoryBuffer


@attrs.define
class IntegratorState:
    """Everything the solver mutates while integrating.

    Attributes
    ----------
    state
        Last accepted state.
    time
        Simulated time of ``state``.
    order
        Order of the last accepted step (1 before any step).
    dt
        Size of the last accepted step (0 before any step).
    history
        Accepted derivative samples, newest at ``time``.
    n_accepted, n_rejected
        Step counts since ``init``.
    n_rhs
        Derivative function evaluations since ``init``.
    iteration
        Output intervals completed since ``init``.
    """

    state: np.ndarray = attrs.field(eq=False)
    time: float
    history: HistoryBuffer = attrs.field(eq=False)
    order: int = 1
    dt: float = 0.0
    n_accepted: int = 0
    n_rejected: int = 0
    n_rhs: int = 0
    iteration: int = 0

    def snapshot(self) -> "IntegratorState":
        """Return an independent copy, history included."""
        return attrs.evolve(
            self,
            state=self.state.copy(),
            history=deepcopy(self.history),
        )
