"""Variable-step Adams-Bashforth step with an embedded companion order."""

from typing import Optional

import attrs
import numpy as np
from numba import njit

from multistep.errors import ConfigurationError
from multistep.integrators.coefficients import CoefficientSolver
from multistep.integrators.history import HistoryBuffer


@njit(cache=True)
def _extrapolate(state, dt, coefficients, derivatives, out):
    """Store ``state + dt * sum_i c_i * f_i`` into ``out``."""
    n = state.shape[0]
    order = coefficients.shape[0]
    for index in range(n):
        increment = 0.0
        for i in range(order):
            increment += coefficients[i] * derivatives[i, index]
        out[index] = state[index] + dt * increment


@attrs.define
class StepResult:
    """Container describing the candidates produced by one step attempt.

    Attributes
    ----------
    state
        Candidate reported as the new state if the step is accepted.
    primary
        Candidate at ``order``.
    secondary
        Candidate at ``companion_order``, or None when no companion was
        computed.
    order
        Effective primary order (may be below the requested order while the
        history is shallow).
    companion_order
        Order of ``secondary``, or None.
    dt
        Step size used.
    """

    state: np.ndarray
    primary: np.ndarray
    secondary: Optional[np.ndarray]
    order: int
    companion_order: Optional[int]
    dt: float

    @property
    def low_order(self) -> int:
        if self.companion_order is None:
            return self.order
        return min(self.order, self.companion_order)

    @property
    def high_order(self) -> int:
        if self.companion_order is None:
            return self.order
        return max(self.order, self.companion_order)

    @property
    def error(self) -> Optional[np.ndarray]:
        """Difference between the two candidates, if both exist."""
        if self.secondary is None:
            return None
        return self.primary - self.secondary


class AdamsBashforthStep:
    """Explicit multistep update from a :class:`HistoryBuffer`.

    Parameters
    ----------
    maximum_order
        Highest order the step may use, for the primary or the companion.
    coefficient_solver
        Source of extrapolation weights; a fresh
        :class:`~multistep.integrators.coefficients.CoefficientSolver` by
        default.

    Notes
    -----
    The step never evaluates the derivative function. The newest history
    entry must be the derivative at the step start, which the caller
    evaluated when it reached that state; both candidates reuse it.
    """

    def __init__(
        self,
        maximum_order: int,
        coefficient_solver: Optional[CoefficientSolver] = None,
    ) -> None:
        if isinstance(maximum_order, bool) or not isinstance(
            maximum_order, (int, np.integer)
        ) or maximum_order < 1:
            raise ConfigurationError(
                f"maximum_order must be an int >= 1, got {maximum_order!r}"
            )
        self.maximum_order = int(maximum_order)
        if coefficient_solver is None:
            coefficient_solver = CoefficientSolver()
        self.coefficient_solver = coefficient_solver

    def effective_order(self, order: int, history: HistoryBuffer) -> int:
        """Clamp ``order`` to ``[1, min(maximum_order, len(history))]``."""
        return max(1, min(order, self.maximum_order, len(history)))

    def companion_order(
        self,
        order: int,
        depth: int,
        follow_high_order: bool = True,
    ) -> Optional[int]:
        """Return the adjacent order used for the error estimate.

        The higher neighbour is preferred when ``follow_high_order`` is set,
        the lower one otherwise; whichever is not available falls back to
        the other. Returns None when neither exists, which only happens
        while the history holds a single sample.
        """
        ceiling = min(self.maximum_order, depth)
        up = order + 1 if order + 1 <= ceiling else None
        down = order - 1 if order > 1 else None
        if follow_high_order:
            return up if up is not None else down
        return down if down is not None else up

    def step(
        self,
        state: np.ndarray,
        history: HistoryBuffer,
        dt: float,
        order: int,
        *,
        adaptive: bool = True,
        follow_high_order: bool = True,
    ) -> StepResult:
        """Form the candidate state(s) for a step of size ``dt``.

        Parameters
        ----------
        state
            State at the newest history time.
        history
            Accepted derivative samples; must not be empty.
        dt
            Step size.
        order
            Requested primary order; reduced to the history depth.
        adaptive
            Also compute the companion candidate for error estimation.
        follow_high_order
            Report the higher-order candidate when both exist, and prefer
            ``order + 1`` as companion.

        Returns
        -------
        StepResult
            Primary and (when adaptive) companion candidates.
        """
        if len(history) == 0:
            raise ValueError("Cannot step from an empty history.")
        order = self.effective_order(order, history)
        companion = None
        if adaptive:
            companion = self.companion_order(
                order, len(history), follow_high_order
            )

        depth = order if companion is None else max(order, companion)
        derivatives = history.derivatives(depth)

        primary = self._candidate(state, dt, history, derivatives, order)
        secondary = None
        if companion is not None:
            secondary = self._candidate(
                state, dt, history, derivatives, companion
            )

        reported = primary
        if secondary is not None:
            high_is_secondary = companion > order
            if follow_high_order == high_is_secondary:
                reported = secondary

        return StepResult(
            state=reported,
            primary=primary,
            secondary=secondary,
            order=order,
            companion_order=companion,
            dt=float(dt),
        )

    def _candidate(self, state, dt, history, derivatives, order):
        weights = self.coefficient_solver.from_history(history, dt, order)
        out = np.empty(state.shape[0], dtype=state.dtype)
        _extrapolate(
            np.asarray(state, dtype=np.float64),
            float(dt),
            weights.coefficients,
            np.ascontiguousarray(derivatives[:order], dtype=np.float64),
            out,
        )
        return out
