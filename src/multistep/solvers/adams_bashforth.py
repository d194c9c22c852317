"""Adaptive-order, adaptive-step Adams-Bashforth solver.

The solver advances a flat state vector between equally spaced output
times. Each internal step extrapolates from the history of accepted
derivative samples, so the derivative function is called once per accepted
step (plus once to prime the history); rejected attempts are retried from
the same history without calling it again.

References
----------
Hairer, E., Norsett, S. P., & Wanner, G. (1993). "Solving Ordinary
Differential Equations I: Non-stiff Problems", Sections II.4 and III.5.
"""

from math import inf, sqrt
from typing import Any, Callable, Mapping, Optional, Union

import numpy as np
from numpy.typing import ArrayLike

from multistep._utils import merge_kwargs_into_settings
from multistep.errors import ConfigurationError, ConvergenceFailure
from multistep.integrators.algorithms import AdamsBashforthStep
from multistep.integrators.history import HistoryBuffer
from multistep.integrators.norms import ScaledNorm
from multistep.integrators.return_codes import IntegratorReturnCodes
from multistep.integrators.step_control import (
    BaseStepController,
    get_controller,
)
from multistep.solvers.monitors import (
    MonitorList,
    OutputMonitor,
    TimestepMonitor,
)
from multistep.solvers.solver_config import OPTION_ALIASES, SolverConfig
from multistep.solvers.solver_state import IntegratorState
from multistep.time_logger import TimeLogger

Derivative = Callable[[np.ndarray, float], ArrayLike]
StateSource = Union[ArrayLike, Callable[[], ArrayLike]]

# A step whose remainder would be shorter than this fraction of dt is
# replaced by two equal steps.
_MIN_TAIL_FRACTION = 0.1


class AdamsBashforthSolver:
    """Explicit multistep solver with exact landing on output times.

    Parameters
    ----------
    derivative
        ``derivative(state, time)`` returning ``d state / dt``. Called with
        non-decreasing times, once per accepted step.
    initial_state
        Initial state vector, or a zero-argument callable returning one.
        A callable is called again by :meth:`reset_internal_fields`.
    t0
        Initial simulated time.
    settings
        Mapping of options, see :class:`SolverConfig`. Option-file names
        such as ``dtFac`` are accepted.
    time_logger
        Event logger; one is created from ``verbosity`` when omitted.
    **kwargs
        Options overriding entries in ``settings``.

    Examples
    --------
    >>> import numpy as np
    >>> solver = AdamsBashforthSolver(lambda x, t: -x, np.ones(1),
    ...                               atol=1e-10, rtol=1e-8)
    >>> solver.init(nout=1, tstep=1.0)
    <IntegratorReturnCodes.SUCCESS: 0>
    >>> solver.run()
    <IntegratorReturnCodes.SUCCESS: 0>
    >>> bool(abs(solver.state[0] - np.exp(-1.0)) < 1e-7)
    True
    """

    name = "adams-bashforth"

    def __init__(
        self,
        derivative: Derivative,
        initial_state: StateSource,
        t0: float = 0.0,
        settings: Optional[Mapping[str, Any]] = None,
        time_logger: Optional[TimeLogger] = None,
        **kwargs: Any,
    ) -> None:
        if not callable(derivative):
            raise TypeError("derivative must be callable")
        self.config = SolverConfig.from_settings(settings, **kwargs)
        self._derivative = derivative
        self._state_source = initial_state
        self._t0 = float(t0)
        if time_logger is None:
            time_logger = TimeLogger(verbosity=self.config.verbosity)
        self.time_logger = time_logger

        self._monitors = MonitorList()
        self._timestep_monitors = MonitorList()

        self._nout = 0
        self._tstep = 0.0
        # Options that shape the controller, step and history; fixed at init.
        self._adaptive = self.config.adaptive
        self._follow_high_order = self.config.follow_high_order
        self._maximum_order = self.config.maximum_order
        self._precision = self.config.precision
        self._controller: Optional[BaseStepController] = None
        self._stepper: Optional[AdamsBashforthStep] = None
        self._integrator_state: Optional[IntegratorState] = None

    # ------------------------------------------------------------------ #
    #                              Monitors                               #
    # ------------------------------------------------------------------ #
    def add_monitor(
        self, monitor: OutputMonitor, position: str = "front"
    ) -> None:
        """Call ``monitor(time, iteration, nout)`` at every output time."""
        self._monitors.add(monitor, position)

    def remove_monitor(self, monitor: OutputMonitor) -> None:
        self._monitors.remove(monitor)

    @property
    def monitors(self) -> tuple:
        return self._monitors.as_tuple()

    def add_timestep_monitor(self, monitor: TimestepMonitor) -> None:
        """Call ``monitor(time, dt)`` after every accepted internal step."""
        self._timestep_monitors.add(monitor, "back")

    def remove_timestep_monitor(self, monitor: TimestepMonitor) -> None:
        self._timestep_monitors.remove(monitor)

    @property
    def timestep_monitors(self) -> tuple:
        return self._timestep_monitors.as_tuple()

    # ------------------------------------------------------------------ #
    #                           Setup and reset                           #
    # ------------------------------------------------------------------ #
    def init(self, nout: int, tstep: float) -> IntegratorReturnCodes:
        """Validate options, load the state and prime the history.

        Parameters
        ----------
        nout
            Number of output intervals :meth:`run` walks through.
        tstep
            Length of each output interval.

        Returns
        -------
        IntegratorReturnCodes
            ``SUCCESS``.

        Raises
        ------
        ConfigurationError
            If ``nout`` is negative or the options are inconsistent with
            ``tstep``.
        """
        if isinstance(nout, bool) or not isinstance(nout, (int, np.integer)) \
                or nout < 0:
            raise ConfigurationError(f"nout must be an int >= 0, got {nout!r}")
        config = self.config
        config.validate_for_output(tstep)
        self._nout = int(nout)
        self._tstep = float(tstep)

        self._integrator_state = None
        self._adaptive = config.adaptive
        self._follow_high_order = config.follow_high_order
        self._maximum_order = config.maximum_order
        self._precision = config.precision
        state = self._load_state()
        kind = "adaptive" if self._adaptive else "fixed"
        self._controller = get_controller(
            kind, config.controller_settings(self._tstep)
        )
        self._stepper = AdamsBashforthStep(self._maximum_order)
        history = HistoryBuffer(
            self._maximum_order, state.shape[0], self._precision
        )
        self._integrator_state = IntegratorState(
            state=state, time=self._t0, history=history
        )

        derivative = self._prime_history()
        self._controller.reset(
            dt=self._initial_timestep(state, derivative),
            order=self._initial_order(),
        )
        self.time_logger.progress(
            "init", "history primed",
            time=self._t0, dt=self._controller.dt, n=state.shape[0],
        )
        return IntegratorReturnCodes.SUCCESS

    def reset_internal_fields(
        self, state: Optional[ArrayLike] = None
    ) -> None:
        """Forget the derivative history, e.g. after a restart.

        The state is replaced by ``state`` when given, reloaded from the
        initial-state callable when there is one, and kept otherwise. The
        history stays empty until the next step primes it, so that step is
        taken at order one.
        """
        integrator_state = self._require_init()
        if state is not None:
            integrator_state.state = self._as_state(state)
        elif callable(self._state_source):
            integrator_state.state = self._load_state()
        integrator_state.history.clear()
        integrator_state.order = 1
        self._controller.reset(
            dt=self._controller.dt, order=self._initial_order()
        )
        self.time_logger.progress(
            "reset", "history cleared", time=integrator_state.time
        )

    def set_max_timestep(self, dt: float) -> None:
        """Cap the internal step at ``dt`` from now on."""
        if not dt > 0.0:
            raise ConfigurationError(f"max_timestep must be positive, got {dt}")
        self.update(max_timestep=float(dt))

    def update(
        self,
        updates_dict: Optional[Mapping[str, Any]] = None,
        silent: bool = False,
        **kwargs: Any,
    ) -> set:
        """Change solver options between runs.

        Step control options reach the live controller immediately.
        ``adaptive``, ``follow_high_order``, ``maximum_order`` and
        ``precision`` shape the controller, step and history, so they take
        effect at the next :meth:`init`. A rejected update leaves both the
        configuration and the controller unchanged.

        Parameters
        ----------
        updates_dict
            Mapping of option names, aliases accepted.
        silent
            If True, suppress errors about unrecognized options.
        **kwargs
            Options to update as keyword arguments.

        Returns
        -------
        set
            Names of the options that were recognized.

        Raises
        ------
        KeyError
            If an option is unrecognized and ``silent`` is False.
        ConfigurationError
            If a value, or the combination of values, is invalid.
        """
        updates = merge_kwargs_into_settings(
            updates_dict, aliases=OPTION_ALIASES, **kwargs
        )
        if not updates:
            return set()

        previous = self.config.settings_dict
        recognized, changed = self.config.update(updates)
        if changed and self._controller is not None:
            settings = self.config.controller_settings(self._tstep)
            for deferred in ("precision", "maximum_order"):
                settings.pop(deferred)
            try:
                self._controller.update(settings, silent=True)
            except ConfigurationError:
                self.config.update({name: previous[name] for name in changed})
                raise
            self._controller.set_dt_max(self.config.dt_max)
        if "verbosity" in changed:
            self.time_logger.set_verbosity(self.config.verbosity)

        unrecognized = set(updates) - recognized
        if not silent and unrecognized:
            raise KeyError(
                f"Unrecognized parameters in update: {unrecognized}. "
                "Recognized parameters were updated.",
            )
        return recognized

    def get_current_timestep(self) -> float:
        """Step size the next internal step will try."""
        if self._controller is None:
            return float(self.config.timestep or 0.0)
        return self._controller.dt

    # Names used by option-file driven front ends.
    resetInternalFields = reset_internal_fields
    setMaxTimestep = set_max_timestep
    getCurrentTimestep = get_current_timestep

    # ------------------------------------------------------------------ #
    #                               Running                               #
    # ------------------------------------------------------------------ #
    def run(self) -> IntegratorReturnCodes:
        """Integrate through ``nout`` output intervals.

        Returns
        -------
        IntegratorReturnCodes
            ``SUCCESS``, or ``MONITOR_REQUESTED_STOP`` when a monitor
            returned a non-zero status.

        Raises
        ------
        ConvergenceFailure
            When an interval needs more than ``mxstep`` attempts, too many
            consecutive rejections, or a step below ``dt_min``. The last
            accepted state is left in place and attached as ``snapshot``.
        """
        integrator_state = self._require_init()
        logger = self.time_logger
        logger.start_event("run", nout=self._nout, time=integrator_state.time)
        status = IntegratorReturnCodes.SUCCESS
        for index in range(self._nout):
            # Outputs sit on t0 + k * tstep.
            target = self._t0 + (
                integrator_state.iteration + 1
            ) * self._tstep
            logger.start_event("interval", index=index, target=target)
            status = self._advance_to(target)
            logger.stop_event(
                "interval",
                index=index,
                time=integrator_state.time,
                n_accepted=integrator_state.n_accepted,
                n_rejected=integrator_state.n_rejected,
            )
            if status != IntegratorReturnCodes.SUCCESS:
                break
            integrator_state.iteration += 1
            if self._monitors.call(target, index, self._nout):
                status = IntegratorReturnCodes.MONITOR_REQUESTED_STOP
                break
        logger.stop_event("run", status=int(status),
                          time=integrator_state.time)
        return status

    def _advance_to(self, target: float) -> IntegratorReturnCodes:
        """Take internal steps until the state sits exactly on ``target``."""
        integrator_state = self._integrator_state
        controller = self._controller
        config = self.config
        history = integrator_state.history
        tolerance = 1e-14 * max(1.0, abs(target))
        attempts = 0

        while target - integrator_state.time > tolerance:
            if attempts >= config.mxstep:
                raise ConvergenceFailure(
                    f"mxstep={config.mxstep} internal steps taken without "
                    f"reaching t={target} (t={integrator_state.time}).",
                    code=IntegratorReturnCodes.MAX_LOOP_ITERS_EXCEEDED,
                    snapshot=integrator_state.snapshot(),
                )
            if len(history) == 0:
                self._reprime_history()

            preferred = controller.dt
            remaining = target - integrator_state.time
            landing = preferred + tolerance >= remaining
            if landing:
                dt = remaining
            elif (self._adaptive
                  and remaining - preferred < _MIN_TAIL_FRACTION * preferred):
                dt = 0.5 * remaining
            else:
                dt = preferred

            result = self._stepper.step(
                integrator_state.state,
                history,
                dt,
                controller.order,
                adaptive=self._adaptive,
                follow_high_order=self._follow_high_order,
            )
            attempts += 1
            available = min(len(history) + 1, self._maximum_order)
            try:
                decision = controller.propose(
                    result, integrator_state.state, available
                )
            except ConvergenceFailure as exc:
                integrator_state.n_rejected += 1
                exc.snapshot = integrator_state.snapshot()
                raise

            self.time_logger.progress(
                "step",
                "accepted" if decision.accept else "rejected",
                accepted=decision.accept,
                time=integrator_state.time,
                dt=dt,
                order=result.order,
                norm=decision.norm,
            )
            if not decision.accept:
                integrator_state.n_rejected += 1
                continue

            new_time = target if landing else integrator_state.time + dt
            new_state = result.state.astype(self._precision, copy=False)
            derivative = self._evaluate(new_state, new_time)
            history.push(new_time, derivative)
            integrator_state.state = new_state
            integrator_state.time = new_time
            integrator_state.order = result.order
            integrator_state.dt = dt
            integrator_state.n_accepted += 1
            if landing and dt < preferred:
                # Scale the preferred step by the gain the short step earned.
                controller.dt = min(preferred,
                                    preferred * controller.dt / dt)

            if self._timestep_monitors.call(new_time, dt):
                return IntegratorReturnCodes.MONITOR_REQUESTED_STOP

        integrator_state.time = target
        return IntegratorReturnCodes.SUCCESS

    # ------------------------------------------------------------------ #
    #                               Helpers                               #
    # ------------------------------------------------------------------ #
    def _require_init(self) -> IntegratorState:
        if self._integrator_state is None:
            raise RuntimeError("init() must be called before this operation.")
        return self._integrator_state

    def _as_state(self, values: ArrayLike) -> np.ndarray:
        state = np.array(values, dtype=self._precision, copy=True)
        if state.ndim != 1:
            raise ValueError(
                f"state must be one-dimensional, got shape {state.shape}"
            )
        if self._integrator_state is not None and \
                state.shape != self._integrator_state.state.shape:
            raise ValueError(
                f"state shape {state.shape} != "
                f"{self._integrator_state.state.shape}"
            )
        return state

    def _load_state(self) -> np.ndarray:
        source = self._state_source
        values = source() if callable(source) else source
        return self._as_state(values)

    def _evaluate(self, state: np.ndarray, time: float) -> np.ndarray:
        """Call the derivative function once and count the call."""
        integrator_state = self._integrator_state
        view = state.view()
        view.flags.writeable = False
        derivative = np.asarray(
            self._derivative(view, time), dtype=self._precision
        )
        integrator_state.n_rhs += 1
        if derivative.shape != state.shape:
            raise ValueError(
                f"derivative returned shape {derivative.shape}, expected "
                f"{state.shape}"
            )
        return derivative

    def _prime_history(self) -> np.ndarray:
        integrator_state = self._integrator_state
        derivative = self._evaluate(
            integrator_state.state, integrator_state.time
        )
        integrator_state.history.push(integrator_state.time, derivative)
        return derivative

    def _reprime_history(self) -> None:
        """Seed an emptied history and limit the first, unchecked step."""
        derivative = self._prime_history()
        if self._adaptive:
            startup = self._startup_timestep(
                self._integrator_state.state, derivative
            )
            self._controller.dt = min(self._controller.dt, startup)

    def _initial_order(self) -> int:
        if self._adaptive and self.config.adaptive_order:
            return 1
        return self._maximum_order

    def _initial_timestep(
        self, state: np.ndarray, derivative: np.ndarray
    ) -> float:
        config = self.config
        if self._adaptive:
            return self._startup_timestep(state, derivative)
        if config.timestep is not None:
            return min(config.timestep, config.dt_max)
        return min(self._tstep, config.dt_max)

    def _startup_timestep(
        self, state: np.ndarray, derivative: np.ndarray
    ) -> float:
        """Estimate a first step whose Euler error is within tolerance.

        With one derivative sample there is no companion order, so the
        first step is accepted unchecked. Its size is chosen so that the
        Euler truncation error ``dt**2 / 2 * |y''|`` is about one tolerance
        unit, with ``|y''|`` estimated as ``|f|**2 / |y|`` in scaled norms.
        A configured ``timestep`` is an upper bound on the estimate.
        """
        config = self.config
        norm = ScaledNorm(atol=config.atol, rtol=config.rtol)
        zeros = np.zeros_like(state)
        d0 = norm(state, zeros, state)
        d1 = norm(derivative, zeros, state)
        upper = min(self._tstep, config.dt_max)
        if config.timestep is not None:
            upper = min(upper, config.timestep)
        dt_min = config.resolved_dt_min(self._tstep)
        if d1 == inf:
            dt = dt_min
        elif d1 <= 1e-15:
            dt = upper
        else:
            dt = 0.5 * sqrt(2.0 * max(d0, 1.0)) / d1
        return max(dt_min, min(dt, upper))

    # ------------------------------------------------------------------ #
    #                             Inspection                              #
    # ------------------------------------------------------------------ #
    @property
    def integrator_state(self) -> IntegratorState:
        return self._require_init()

    @property
    def state(self) -> np.ndarray:
        """Copy of the last accepted state."""
        return self._require_init().state.copy()

    @property
    def simtime(self) -> float:
        return self._require_init().time

    @property
    def iteration(self) -> int:
        return self._require_init().iteration

    @property
    def history(self) -> HistoryBuffer:
        return self._require_init().history

    @property
    def order(self) -> int:
        """Order the next step will request."""
        self._require_init()
        return self._controller.order

    @property
    def n_rhs(self) -> int:
        return self._require_init().n_rhs

    @property
    def n_accepted(self) -> int:
        return self._require_init().n_accepted

    @property
    def n_rejected(self) -> int:
        return self._require_init().n_rejected

    @property
    def controller(self) -> BaseStepController:
        self._require_init()
        return self._controller

    @property
    def nout(self) -> int:
        return self._nout

    @property
    def tstep(self) -> float:
        return self._tstep
