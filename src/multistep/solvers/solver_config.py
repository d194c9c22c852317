"""User-facing options of the Adams-Bashforth solver.

Published Classes
-----------------
:class:`SolverConfig`
    Attrs container validating every recognised option.

    >>> config = SolverConfig.from_settings({"dtFac": 0.8}, rtol=1e-8)
    >>> config.dt_fac
    0.8
"""

from math import inf
from typing import Any, Mapping, Optional

import numpy as np
from attrs import define, field, validators

from multistep._utils import (
    PrecisionDType,
    finitetype_validator,
    getype_validator,
    gttype_validator,
    inrangetype_validator,
    merge_kwargs_into_settings,
    opt_gttype_validator,
    positive_array_validator,
    precision_converter,
    precision_validator,
    split_applicable_settings,
    tol_converter,
)
from multistep.config_base import MultistepConfigBase
from multistep.errors import ConfigurationError

# Option names as they appear in option files written for other front ends.
OPTION_ALIASES = {
    "dtFac": "dt_fac",
    "followHighOrder": "follow_high_order",
    "adaptiveOrder": "adaptive_order",
    "maximumOrder": "maximum_order",
    "maxTimestep": "max_timestep",
    "mxStep": "mxstep",
}

_bool = validators.instance_of(bool)


@define
class SolverConfig(MultistepConfigBase):
    """Options of :class:`~multistep.solvers.AdamsBashforthSolver`.

    Parameters
    ----------
    atol, rtol
        Absolute and relative tolerances, scalar or per component.
    max_timestep
        Largest internal step; negative means unbounded. Must be finite.
    timestep
        Initial internal step. In adaptive mode the unchecked first step
        is further limited by an error-based estimate. When None the solver
        uses that estimate (adaptive) or the output step (fixed).
    mxstep
        Internal step attempts allowed per output interval.
    adaptive
        Adapt the step size from the error estimate.
    adaptive_order
        Adapt the order as well; starts at one.
    maximum_order
        Highest order used; also the history depth.
    dt_fac
        Safety factor on the step estimate, below one.
    follow_high_order
        Keep the higher-order candidate as the new state.
    dt_min
        Smallest internal step; defaults to ``1e-12 * tstep``.
    min_gain, max_gain, rejection_factor, max_rejections, order_window,
    order_increase_threshold, order_decrease_threshold,
    reduce_order_on_reject
        Controller tuning, see
        :class:`~multistep.integrators.step_control.AdaptiveStepControlConfig`.
    precision
        Floating point type of the state.
    verbosity
        :class:`~multistep.time_logger.TimeLogger` verbosity.
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
    max_timestep: float = field(
        default=-1.0, validator=finitetype_validator(float)
    )
    timestep: Optional[float] = field(
        default=None, validator=opt_gttype_validator(float, 0)
    )
    mxstep: int = field(default=500, validator=getype_validator(int, 1))
    adaptive: bool = field(default=True, validator=_bool)
    adaptive_order: bool = field(default=True, validator=_bool)
    maximum_order: int = field(default=4, validator=getype_validator(int, 1))
    dt_fac: float = field(
        default=0.75, validator=inrangetype_validator(float, 1e-6, 1.0)
    )
    follow_high_order: bool = field(default=True, validator=_bool)
    dt_min: Optional[float] = field(
        default=None, validator=opt_gttype_validator(float, 0)
    )
    min_gain: float = field(
        default=0.2, validator=inrangetype_validator(float, 1e-6, 1.0)
    )
    max_gain: float = field(default=2.0, validator=getype_validator(float, 1))
    rejection_factor: float = field(
        default=0.5, validator=inrangetype_validator(float, 1e-6, 0.999)
    )
    max_rejections: int = field(default=50, validator=getype_validator(int, 1))
    order_window: int = field(default=3, validator=getype_validator(int, 1))
    order_increase_threshold: float = field(
        default=0.75, validator=gttype_validator(float, 0)
    )
    order_decrease_threshold: float = field(
        default=0.95, validator=gttype_validator(float, 0)
    )
    reduce_order_on_reject: bool = field(default=False, validator=_bool)
    precision: PrecisionDType = field(
        default=np.float64,
        converter=precision_converter,
        validator=precision_validator,
    )
    verbosity: Optional[str] = field(default=None)

    def __attrs_post_init__(self) -> None:
        super().__attrs_post_init__()
        self._validate_config()

    def _validate_config(self) -> None:
        if self.max_timestep == 0.0:
            raise ConfigurationError(
                "max_timestep must be positive, or negative for unbounded."
            )
        if self.order_increase_threshold > self.order_decrease_threshold:
            raise ConfigurationError(
                "order_increase_threshold must not exceed "
                "order_decrease_threshold."
            )
        if self.rejection_factor < self.min_gain:
            raise ConfigurationError(
                f"rejection_factor ({self.rejection_factor}) < min_gain "
                f"({self.min_gain})."
            )

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Mapping[str, Any]] = None,
        warn_on_unused: bool = True,
        **kwargs: Any,
    ) -> "SolverConfig":
        """Build a config from a mapping and/or keywords, resolving aliases.

        Keywords override ``settings``; unknown names are dropped with a
        warning.
        """
        merged = merge_kwargs_into_settings(
            settings, aliases=OPTION_ALIASES, **kwargs
        )
        filtered, _, _ = split_applicable_settings(
            cls, merged, warn_on_unused=warn_on_unused
        )
        return cls(**filtered)

    def update(self, updates_dict: dict = None, **kwargs):
        """As :meth:`MultistepConfigBase.update`, resolving aliases."""
        merged = merge_kwargs_into_settings(
            updates_dict, aliases=OPTION_ALIASES, **kwargs
        )
        return super().update(merged)

    @property
    def dt_max(self) -> float:
        """Step ceiling; ``inf`` when ``max_timestep`` is negative."""
        return inf if self.max_timestep < 0 else float(self.max_timestep)

    def validate_for_output(self, tstep: float) -> None:
        """Check the options against the output step ``tstep``.

        Raises
        ------
        ConfigurationError
            If ``tstep`` is not positive, a finite ``max_timestep`` exceeds
            it, or ``dt_min`` is not below it.
        """
        if not tstep > 0.0:
            raise ConfigurationError(f"tstep must be positive, got {tstep}")
        if self.dt_max < inf and self.dt_max > tstep:
            raise ConfigurationError(
                f"max_timestep ({self.max_timestep}) exceeds the output "
                f"step ({tstep})."
            )
        if self.dt_min is not None and self.dt_min >= min(tstep, self.dt_max):
            raise ConfigurationError(
                f"dt_min ({self.dt_min}) must be below the output step and "
                "max_timestep."
            )

    def resolved_dt_min(self, tstep: float) -> float:
        if self.dt_min is not None:
            return float(self.dt_min)
        return 1e-12 * tstep

    def controller_settings(self, tstep: float) -> dict:
        """Keyword arguments for the step controller for output step ``tstep``."""
        settings = {
            "precision": self.precision,
            "maximum_order": self.maximum_order,
            "dt_min": self.resolved_dt_min(tstep),
            "dt_max": self.dt_max,
        }
        if self.adaptive:
            settings.update(
                atol=self.atol,
                rtol=self.rtol,
                dt_fac=self.dt_fac,
                min_gain=self.min_gain,
                max_gain=self.max_gain,
                rejection_factor=self.rejection_factor,
                max_rejections=self.max_rejections,
                adaptive_order=self.adaptive_order,
                order_window=self.order_window,
                order_increase_threshold=self.order_increase_threshold,
                order_decrease_threshold=self.order_decrease_threshold,
                reduce_order_on_reject=self.reduce_order_on_reject,
            )
        return settings
