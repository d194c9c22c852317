"""Adaptive step-size and order controller.

Published Classes
-----------------
:class:`AdaptiveStepControlConfig`
    Attrs configuration for the adaptive controller.

    >>> config = AdaptiveStepControlConfig(atol=1e-8, rtol=1e-6)
    >>> config.is_adaptive
    True

:class:`AdaptiveController`
    Accepts or rejects steps on the scaled difference between two
    neighbouring orders, and picks the next step size and order.

Notes
-----
With a candidate pair of orders ``(p, p + 1)`` the difference estimates the
local error of the order ``p`` result, which scales as ``dt**(p + 1)``. The
next step is therefore

    dt_new = dt * clamp(dt_fac * norm**(-1 / (p + 1)), min_gain, max_gain)

clipped to ``[dt_min, dt_max]``. Rejected steps use ``rejection_factor`` as
the upper clamp so every retry is strictly shorter.
"""

from collections import deque
from math import inf, isfinite
from typing import Optional
from warnings import warn

import numpy as np
from attrs import define, field

from multistep._utils import (
    getype_validator,
    gttype_validator,
    inrangetype_validator,
    positive_array_validator,
    tol_converter,
)
from multistep.errors import (
    ConfigurationError,
    ConvergenceFailure,
    NumericalAnomalyWarning,
)
from multistep.integrators.algorithms import StepResult
from multistep.integrators.norms import ScaledNorm
from multistep.integrators.return_codes import IntegratorReturnCodes
from multistep.integrators.step_control.base_step_controller import (
    BaseStepController,
    BaseStepControllerConfig,
    ControllerDecision,
)


@define
class AdaptiveStepControlConfig(BaseStepControllerConfig):
    """Configuration for adaptive step and order control.

    Parameters
    ----------
    atol, rtol
        Absolute and relative tolerances, scalar or per component.
    dt_fac
        Safety factor applied to the optimal step estimate.
    min_gain, max_gain
        Bounds on the step change factor of an accepted step.
    rejection_factor
        Upper bound on the step change factor of a rejected step.
    max_rejections
        Consecutive rejections tolerated before giving up.
    adaptive_order
        Let the controller raise and lower the order.
    order_window
        Accepted steps considered when judging the error trend.
    order_increase_threshold
        Raise the order when every norm in the window is at or below this.
    order_decrease_threshold
        Lower the order when every norm in the window is at or above this.
    reduce_order_on_reject
        Drop the order by one whenever a step is rejected.
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
    dt_fac: float = field(
        default=0.75, validator=inrangetype_validator(float, 1e-6, 1.0)
    )
    min_gain: float = field(
        default=0.2, validator=inrangetype_validator(float, 1e-6, 1.0)
    )
    max_gain: float = field(default=2.0, validator=getype_validator(float, 1))
    rejection_factor: float = field(
        default=0.5, validator=inrangetype_validator(float, 1e-6, 0.999)
    )
    max_rejections: int = field(default=50, validator=getype_validator(int, 1))
    adaptive_order: bool = field(default=True)
    order_window: int = field(default=3, validator=getype_validator(int, 1))
    order_increase_threshold: float = field(
        default=0.75, validator=gttype_validator(float, 0)
    )
    order_decrease_threshold: float = field(
        default=0.95, validator=gttype_validator(float, 0)
    )
    reduce_order_on_reject: bool = field(default=False)

    def _validate_config(self) -> None:
        super()._validate_config()
        if self.order_increase_threshold > self.order_decrease_threshold:
            raise ConfigurationError(
                "order_increase_threshold "
                f"({self.order_increase_threshold}) must not exceed "
                "order_decrease_threshold "
                f"({self.order_decrease_threshold})."
            )
        if self.rejection_factor < self.min_gain:
            raise ConfigurationError(
                f"rejection_factor ({self.rejection_factor}) < min_gain "
                f"({self.min_gain})."
            )

    @property
    def is_adaptive(self) -> bool:
        """Return ``True`` because the controller adapts step size."""
        return True


class AdaptiveController(BaseStepController):
    """Error-based step size and order controller."""

    _config_class = AdaptiveStepControlConfig

    def __init__(
        self,
        precision: type = np.float64,
        dt: Optional[float] = None,
        order: int = 1,
        maximum_order: int = 4,
        dt_min: float = 1e-12,
        dt_max: float = inf,
        atol=1e-12,
        rtol=1e-5,
        dt_fac: float = 0.75,
        min_gain: float = 0.2,
        max_gain: float = 2.0,
        rejection_factor: float = 0.5,
        max_rejections: int = 50,
        adaptive_order: bool = True,
        order_window: int = 3,
        order_increase_threshold: float = 0.75,
        order_decrease_threshold: float = 0.95,
        reduce_order_on_reject: bool = False,
    ) -> None:
        """Initialise an adaptive controller.

        Parameters
        ----------
        precision
            Precision of the state.
        dt
            Initial step size; defaults to ``dt_max`` when finite,
            otherwise one.
        order
            Initial order. Fixed for the whole run unless
            ``adaptive_order``.
        maximum_order, dt_min, dt_max, atol, rtol, dt_fac, min_gain,
        max_gain, rejection_factor, max_rejections, adaptive_order,
        order_window, order_increase_threshold, order_decrease_threshold,
        reduce_order_on_reject
            See :class:`AdaptiveStepControlConfig`.
        """
        config = AdaptiveStepControlConfig(
            precision=precision,
            maximum_order=maximum_order,
            dt_min=dt_min,
            dt_max=dt_max,
            atol=atol,
            rtol=rtol,
            dt_fac=dt_fac,
            min_gain=min_gain,
            max_gain=max_gain,
            rejection_factor=rejection_factor,
            max_rejections=max_rejections,
            adaptive_order=adaptive_order,
            order_window=order_window,
            order_increase_threshold=order_increase_threshold,
            order_decrease_threshold=order_decrease_threshold,
            reduce_order_on_reject=reduce_order_on_reject,
        )
        super().__init__(config)
        if dt is not None:
            self.dt = dt
        self.order = order
        self.consecutive_rejections = 0
        self._norms = deque(maxlen=config.order_window)

    def reset(self, dt: float, order: int) -> None:
        super().reset(dt, order)
        self.consecutive_rejections = 0
        self._norms = deque(maxlen=self.compile_settings.order_window)

    @property
    def atol(self) -> np.ndarray:
        return self.compile_settings.atol

    @property
    def rtol(self) -> np.ndarray:
        return self.compile_settings.rtol

    @property
    def recent_norms(self) -> tuple:
        """Norms of the accepted steps in the current order window."""
        return tuple(self._norms)

    @property
    def scaled_norm(self) -> ScaledNorm:
        """Norm defined by the current tolerances."""
        return ScaledNorm(atol=self.atol, rtol=self.rtol)

    def error_norm(self, result: StepResult, state: np.ndarray) -> float:
        """Scaled RMS size of the candidate difference."""
        return self.scaled_norm(result.error, state, result.state)

    def gain(self, norm: float, low_order: int, accept: bool) -> float:
        """Return the factor applied to dt after a step of error ``norm``."""
        settings = self.compile_settings
        upper = settings.max_gain if accept else settings.rejection_factor
        if norm == 0.0:
            return upper
        if not isfinite(norm):
            return settings.min_gain
        raw = settings.dt_fac * norm ** (-1.0 / (low_order + 1))
        return min(upper, max(settings.min_gain, raw))

    def propose(
        self,
        result: StepResult,
        state: np.ndarray,
        available_order: int,
    ) -> ControllerDecision:
        """Accept or reject ``result`` and set the next dt and order.

        Parameters
        ----------
        result
            Candidates from the step.
        state
            State the step started from.
        available_order
            Deepest order the history supports after this step is
            accepted; order increases stop there.

        Returns
        -------
        ControllerDecision
            The decision and the dt/order for the next attempt.

        Raises
        ------
        ConvergenceFailure
            After ``max_rejections`` consecutive rejections, or when a
            retry would need a step below ``dt_min``.
        """
        settings = self.compile_settings
        anomaly = not np.all(np.isfinite(result.state))

        if result.error is None:
            # Single-sample history: nothing to compare against.
            norm = inf if anomaly else None
        else:
            norm = self.error_norm(result, state)
            anomaly = anomaly or not isfinite(norm)

        if anomaly:
            warn(
                f"Non-finite candidate at dt={result.dt}; rejecting step.",
                NumericalAnomalyWarning,
            )
            norm = inf

        accept = norm is None or norm <= 1.0
        if accept:
            self._accept(result, norm, available_order)
        else:
            self._reject(result, norm)

        return ControllerDecision(
            accept=accept,
            dt=self.dt,
            order=self.order,
            norm=norm,
            anomaly=anomaly,
        )

    def _accept(self, result, norm, available_order):
        settings = self.compile_settings
        self.n_accepted += 1
        self.consecutive_rejections = 0
        if norm is None:
            return
        new_dt = result.dt * self.gain(norm, result.low_order, True)
        self.dt = min(settings.dt_max, max(settings.dt_min, new_dt))
        if settings.adaptive_order:
            self._norms.append(norm)
            self._adapt_order(available_order)

    def _adapt_order(self, available_order):
        settings = self.compile_settings
        if len(self._norms) < settings.order_window:
            return
        ceiling = min(settings.maximum_order, available_order)
        if (all(n <= settings.order_increase_threshold for n in self._norms)
                and self.order < ceiling):
            self.order = self.order + 1
            self._norms.clear()
        elif (all(n >= settings.order_decrease_threshold
                  for n in self._norms)
                and self.order > 1):
            self.order = self.order - 1
            self._norms.clear()

    def _reject(self, result, norm):
        settings = self.compile_settings
        self.n_rejected += 1
        self.consecutive_rejections += 1
        if self.consecutive_rejections > settings.max_rejections:
            raise ConvergenceFailure(
                f"{self.consecutive_rejections} consecutive step "
                f"rejections (last dt={result.dt}, norm={norm}).",
                code=IntegratorReturnCodes.MAX_REJECTIONS_EXCEEDED,
            )
        new_dt = result.dt * self.gain(norm, result.low_order, False)
        if new_dt < settings.dt_min:
            raise ConvergenceFailure(
                f"Step size {new_dt} fell below dt_min={settings.dt_min}.",
                code=IntegratorReturnCodes.STEP_TOO_SMALL,
            )
        self.dt = new_dt
        if settings.reduce_order_on_reject and self.order > 1:
            self.order = self.order - 1
            self._norms.clear()
