"""Adams-Bashforth weights for non-uniformly spaced derivative samples.

For samples at offsets ``s_0 = 0 > s_1 > ... > s_{p-1}`` (relative to the
step start ``t_n``) the explicit update

    y_{n+1} = y_n + dt * sum_i c_i * f_i

integrates any polynomial derivative of degree < p exactly when

    c_i = (1 / dt) * integral_0^dt L_i(s) ds

with ``L_i`` the Lagrange basis polynomial of node ``i``. The integral is
evaluated analytically after scaling time by ``dt`` (``u = s / dt``), which
keeps the polynomial coefficients of order one whatever the step size.

References
----------
Hairer, E., Norsett, S. P., & Wanner, G. (1993). "Solving Ordinary
Differential Equations I: Non-stiff Problems", Section III.5.
"""

from typing import Optional

import attrs
import numpy as np
from numba import njit
from numpy.typing import ArrayLike

from multistep.integrators.history import HistoryBuffer


@njit(cache=True)
def _lagrange_integral_weights(nodes):
    """Return ``integral_0^1 L_i(u) du`` for each node ``u_i``."""
    order = nodes.shape[0]
    weights = np.empty(order, dtype=np.float64)
    poly = np.empty(order, dtype=np.float64)
    for i in range(order):
        for k in range(order):
            poly[k] = 0.0
        poly[0] = 1.0
        degree = 0
        denominator = 1.0
        for j in range(order):
            if j == i:
                continue
            # poly *= (u - nodes[j])
            for k in range(degree + 1, 0, -1):
                poly[k] = poly[k - 1] - nodes[j] * poly[k]
            poly[0] = -nodes[j] * poly[0]
            degree += 1
            denominator *= nodes[i] - nodes[j]
        total = 0.0
        for k in range(degree + 1):
            total += poly[k] / (k + 1)
        weights[i] = total / denominator
    return weights


@attrs.define(frozen=True)
class CoefficientSet:
    """Extrapolation weights valid for one exact step and sample layout.

    Attributes
    ----------
    coefficients
        Weights ``c_i``, newest sample first.
    order
        Number of samples used; may be below the requested order when the
        history was shallower.
    dt
        Step size the weights were built for.
    offsets
        Sample offsets relative to the step start, newest first.
    """

    coefficients: np.ndarray = attrs.field(eq=False)
    order: int
    dt: float
    offsets: np.ndarray = attrs.field(eq=False)

    def __len__(self) -> int:
        return self.order


class CoefficientSolver:
    """Build Adams-Bashforth weights for arbitrary sample spacing."""

    def solve(
        self,
        dt: float,
        offsets: ArrayLike,
        order: Optional[int] = None,
    ) -> CoefficientSet:
        """Return the weights of an ``order``-point explicit step.

        Parameters
        ----------
        dt
            Step about to be taken. Must be positive.
        offsets
            Times of the available samples minus the step start, newest
            first. ``offsets[0]`` must be zero and the sequence strictly
            decreasing.
        order
            Requested number of samples. Defaults to all offsets; values
            above ``len(offsets)`` are reduced to it.

        Returns
        -------
        CoefficientSet
            Weights for ``min(order, len(offsets))`` samples.

        Raises
        ------
        ValueError
            If ``dt`` is not positive, no samples are given, or the
            offsets are not strictly decreasing from zero.
        """
        offsets = np.asarray(offsets, dtype=np.float64)
        if not dt > 0.0:
            raise ValueError(f"dt must be positive, got {dt}")
        if offsets.ndim != 1 or offsets.size == 0:
            raise ValueError("At least one sample offset is required.")
        if order is None:
            order = offsets.size
        if order < 1:
            raise ValueError(f"order must be >= 1, got {order}")
        order = min(order, offsets.size)
        offsets = offsets[:order]
        if offsets[0] != 0.0:
            raise ValueError(
                f"offsets must start at the step start, got {offsets[0]}"
            )
        if order > 1 and np.any(np.diff(offsets) >= 0.0):
            raise ValueError("offsets must be strictly decreasing.")

        if order == 1:
            coefficients = np.ones(1, dtype=np.float64)
        else:
            coefficients = _lagrange_integral_weights(offsets / dt)
        return CoefficientSet(
            coefficients=coefficients,
            order=order,
            dt=float(dt),
            offsets=offsets.copy(),
        )

    def from_history(
        self,
        history: HistoryBuffer,
        dt: float,
        order: int,
    ) -> CoefficientSet:
        """Return weights for the ``order`` newest samples of ``history``."""
        count = min(order, len(history))
        return self.solve(dt, history.offsets(count), count)
