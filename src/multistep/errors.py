"""Exception and warning types raised by the integrator."""


class MultistepError(Exception):
    """Base class for errors raised by multistep."""


class ConfigurationError(MultistepError, ValueError):
    """Invalid option or option combination.

    Raised while building a configuration or during ``init``; the run never
    starts and the derivative function is never called.
    """


class ConvergenceFailure(MultistepError, RuntimeError):
    """The integrator could not reach the next output time.

    Attributes
    ----------
    code
        :class:`~multistep.integrators.IntegratorReturnCodes` member naming
        the cause.
    snapshot
        Copy of the last accepted
        :class:`~multistep.solvers.solver_state.IntegratorState`, or None
        when the failure happened before the first step.
    """

    def __init__(self, message, code=None, snapshot=None):
        super().__init__(message)
        self.code = code
        self.snapshot = snapshot


class ExternalFailure(MultistepError):
    """Failure reported by a derivative function or monitor.

    The integrator never raises or catches this itself; user callbacks may
    raise it to get a typed failure out of ``run``.
    """


class NumericalAnomalyWarning(RuntimeWarning):
    """A candidate state contained non-finite values and was rejected."""
