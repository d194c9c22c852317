"""Base classes shared by the step controllers.

Published Classes
-----------------
:class:`BaseStepControllerConfig`
    Attrs configuration shared by every controller.

:class:`ControllerDecision`
    Outcome of judging one step attempt.

:class:`BaseStepController`
    Abstract controller holding the current step size and order.
"""

from abc import ABC, abstractmethod
from math import inf
from typing import Optional

import attrs
import numpy as np
from attrs import define, field

from multistep._utils import (
    PrecisionDType,
    getype_validator,
    gttype_validator,
    precision_converter,
    precision_validator,
)
from multistep.config_base import MultistepConfigBase
from multistep.errors import ConfigurationError
from multistep.integrators.algorithms import StepResult

# Every keyword any controller accepts; used to filter solver settings.
ALL_STEP_CONTROLLER_PARAMETERS = {
    "precision", "dt", "dt_min", "dt_max", "order", "maximum_order",
    "atol", "rtol", "dt_fac", "min_gain", "max_gain", "rejection_factor",
    "max_rejections", "adaptive_order", "order_window",
    "order_increase_threshold", "order_decrease_threshold",
    "reduce_order_on_reject",
}


@define
class BaseStepControllerConfig(MultistepConfigBase, ABC):
    """Settings common to fixed and adaptive controllers.

    Parameters
    ----------
    precision
        Floating point type of the state.
    maximum_order
        Highest method order the controller may select.
    dt_min
        Smallest step the controller may request.
    dt_max
        Largest step the controller may request; ``inf`` for unbounded.
    """

    precision: PrecisionDType = field(
        default=np.float64,
        converter=precision_converter,
        validator=precision_validator,
    )
    maximum_order: int = field(default=4, validator=getype_validator(int, 1))
    _dt_min: float = field(default=1e-12, validator=gttype_validator(float, 0))
    _dt_max: float = field(default=inf, validator=gttype_validator(float, 0))

    def __attrs_post_init__(self) -> None:
        super().__attrs_post_init__()
        self._validate_config()

    def _validate_config(self) -> None:
        if self._dt_max < self._dt_min:
            raise ConfigurationError(
                f"dt_max ({self._dt_max}) < dt_min ({self._dt_min})."
            )

    @property
    def dt_min(self) -> float:
        return float(self._dt_min)

    @property
    def dt_max(self) -> float:
        return float(self._dt_max)

    @property
    @abstractmethod
    def is_adaptive(self) -> bool:
        """Returns whether the step controller is adaptive."""
        raise NotImplementedError


@attrs.define(frozen=True)
class ControllerDecision:
    """Judgement on one step attempt.

    Attributes
    ----------
    accept
        Whether the candidate becomes the new state.
    dt
        Step size to use for the next attempt (retry or next step).
    order
        Order to request for the next attempt.
    norm
        Scaled error norm, or None when no estimate was available.
    anomaly
        The candidate contained non-finite values.
    """

    accept: bool
    dt: float
    order: int
    norm: Optional[float] = None
    anomaly: bool = False


class BaseStepController(ABC):
    """Hold the step size and order, and judge step attempts.

    Subclasses implement :meth:`propose`.
    """

    _config_class = BaseStepControllerConfig

    def __init__(self, config: BaseStepControllerConfig) -> None:
        self.compile_settings = config
        self._dt = float(config.dt_max if config.dt_max < inf else 1.0)
        self._order = 1
        self.n_accepted = 0
        self.n_rejected = 0

    @abstractmethod
    def propose(
        self,
        result: StepResult,
        state: np.ndarray,
        available_order: int,
    ) -> ControllerDecision:
        """Judge ``result`` and update the step size and order.

        Parameters
        ----------
        result
            Candidates produced by the step.
        state
            State the step started from.
        available_order
            Deepest order the history will support for the next step if
            this one is accepted.
        """
        raise NotImplementedError

    def reset(self, dt: float, order: int) -> None:
        """Start over with ``dt`` and ``order``, forgetting any trend."""
        self.dt = dt
        self.order = order

    @property
    def precision(self) -> type:
        return self.compile_settings.precision

    @property
    def is_adaptive(self) -> bool:
        return self.compile_settings.is_adaptive

    @property
    def maximum_order(self) -> int:
        return self.compile_settings.maximum_order

    @property
    def dt_min(self) -> float:
        return self.compile_settings.dt_min

    @property
    def dt_max(self) -> float:
        return self.compile_settings.dt_max

    @property
    def dt(self) -> float:
        """Step size the next attempt should use."""
        return self._dt

    @dt.setter
    def dt(self, value: float) -> None:
        if not value > 0.0:
            raise ValueError(f"dt must be positive, got {value}")
        self._dt = float(min(value, self.dt_max))

    @property
    def order(self) -> int:
        """Order the next attempt should request."""
        return self._order

    @order.setter
    def order(self, value: int) -> None:
        self._order = int(max(1, min(value, self.maximum_order)))

    def set_dt_max(self, dt_max: float) -> None:
        """Change the step ceiling and clip the current step to it."""
        self.update(dt_max=dt_max)
        self._dt = min(self._dt, self.dt_max)

    def update(self,
               updates_dict: Optional[dict] = None,
               silent: bool = False,
               **kwargs):
        """
        Pass updates to the controller settings.

        Parameters
        ----------
        updates_dict
            Dictionary of parameters to update.
        silent
            If True, suppress errors about unrecognized parameters.
        **kwargs
            Parameter updates to apply as keyword arguments.

        Returns
        -------
        set
            Set of parameter names that were recognized and updated.
        """
        if updates_dict is None:
            updates_dict = {}
        updates_dict = dict(updates_dict)
        if kwargs:
            updates_dict.update(kwargs)
        if updates_dict == {}:
            return set()

        recognised, _ = self.compile_settings.update(updates_dict)

        unrecognised = set(updates_dict.keys()) - recognised
        if not silent and unrecognised:
            raise KeyError(
                f"Unrecognized parameters in update: {unrecognised}. "
                "These parameters were not updated.",
            )
        return recognised
