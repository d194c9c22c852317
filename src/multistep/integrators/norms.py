"""Tolerance-scaled error norm used for step acceptance.

Published Classes
-----------------
:class:`ScaledNorm`
    Attrs container holding ``atol``/``rtol`` and evaluating the norm.

    >>> import numpy as np
    >>> norm = ScaledNorm(atol=1e-6, rtol=1e-3)
    >>> float(norm(np.full(3, 1e-6), np.zeros(3), np.zeros(3)))
    1.0
"""

from math import inf

import numpy as np
from attrs import define, field
from numba import njit
from numpy.typing import ArrayLike

from multistep._utils import positive_array_validator, tol_converter


@njit(cache=True)
def _scaled_rms_norm_impl(error, state, candidate, atol, rtol):
    n = error.shape[0]
    if n == 0:
        return 0.0
    scalar_atol = atol.shape[0] == 1
    scalar_rtol = rtol.shape[0] == 1
    total = 0.0
    for i in range(n):
        a = atol[0] if scalar_atol else atol[i]
        r = rtol[0] if scalar_rtol else rtol[i]
        scale = a + r * max(abs(state[i]), abs(candidate[i]))
        ratio = error[i] / scale
        total += ratio * ratio
    return np.sqrt(total / n)


def scaled_rms_norm(
    error: ArrayLike,
    state: ArrayLike,
    candidate: ArrayLike,
    atol: ArrayLike,
    rtol: ArrayLike,
) -> float:
    """Return the RMS of ``error / (atol + rtol * max(|state|, |candidate|))``.

    ``atol`` and ``rtol`` are scalars or arrays matching the state length.
    Any non-finite input yields ``inf`` so callers can treat it as a failed
    step rather than comparing against NaN.
    """
    error = np.asarray(error, dtype=np.float64)
    state = np.asarray(state, dtype=np.float64)
    candidate = np.asarray(candidate, dtype=np.float64)
    atol = tol_converter(atol)
    rtol = tol_converter(rtol)
    n = error.shape[0]
    for name, tol in (("atol", atol), ("rtol", rtol)):
        if tol.shape[0] not in (1, n):
            raise ValueError(
                f"{name} has {tol.shape[0]} entries for a state of length {n}"
            )
    if not (np.all(np.isfinite(candidate)) and np.all(np.isfinite(error))):
        return inf
    value = _scaled_rms_norm_impl(error, state, candidate, atol, rtol)
    return value if np.isfinite(value) else inf


@define
class ScaledNorm:
    """Absolute and relative tolerances with the norm they define.

    Attributes
    ----------
    atol : ndarray
        Absolute tolerance, scalar or per component.
    rtol : ndarray
        Relative tolerance, scalar or per component.
    """

    atol: np.ndarray = field(
        default=1e-12,
        converter=tol_converter,
        validator=positive_array_validator,
    )
    rtol: np.ndarray = field(
        default=1e-5,
        converter=tol_converter,
        validator=positive_array_validator,
    )

    def __call__(
        self,
        error: ArrayLike,
        state: ArrayLike,
        candidate: ArrayLike,
    ) -> float:
        return scaled_rms_norm(error, state, candidate, self.atol, self.rtol)
