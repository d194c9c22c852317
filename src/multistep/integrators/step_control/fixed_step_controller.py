"""Fixed step-size controller implementations."""

import numpy as np
from attrs import define

from multistep.errors import ConvergenceFailure
from multistep.integrators.algorithms import StepResult
from multistep.integrators.return_codes import IntegratorReturnCodes
from multistep.integrators.step_control.base_step_controller import (
    BaseStepController,
    BaseStepControllerConfig,
    ControllerDecision,
)


@define
class FixedStepControlConfig(BaseStepControllerConfig):
    """Configuration for fixed-step integration."""

    @property
    def is_adaptive(self) -> bool:
        """Returns whether the step controller is adaptive."""
        return False


class FixedStepController(BaseStepController):
    """Controller that accepts every step and never changes dt or order."""

    _config_class = FixedStepControlConfig

    def __init__(
        self,
        precision: type = np.float64,
        dt: float = 1e-3,
        order: int = 4,
        maximum_order: int = 4,
        dt_min: float = 1e-12,
        dt_max: float = np.inf,
    ) -> None:
        """Initialise the fixed step controller.

        Parameters
        ----------
        precision
            Precision of the state.
        dt
            Step size used for every step.
        order
            Requested method order; the step reduces it while the history
            is shallow.
        maximum_order
            Upper bound on ``order``.
        dt_min, dt_max
            Bounds applied to ``dt``.
        """
        config = FixedStepControlConfig(
            precision=precision,
            maximum_order=maximum_order,
            dt_min=dt_min,
            dt_max=dt_max,
        )
        super().__init__(config)
        self.dt = dt
        self.order = order

    def propose(
        self,
        result: StepResult,
        state: np.ndarray,
        available_order: int,
    ) -> ControllerDecision:
        """Accept ``result`` unless it is not finite.

        Raises
        ------
        ConvergenceFailure
            When the candidate holds NaN or inf; a fixed step cannot retry
            with a smaller step.
        """
        if not np.all(np.isfinite(result.state)):
            self.n_rejected += 1
            raise ConvergenceFailure(
                f"Non-finite state produced by fixed step dt={result.dt}.",
                code=IntegratorReturnCodes.NON_FINITE_STATE,
            )
        self.n_accepted += 1
        return ControllerDecision(
            accept=True,
            dt=self.dt,
            order=self.order,
        )
