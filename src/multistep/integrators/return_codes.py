"""Integer status codes reported by the integrator."""

from enum import IntEnum


class IntegratorReturnCodes(IntEnum):
    SUCCESS = 0
    MONITOR_REQUESTED_STOP = 1      # an output or timestep monitor said stop
    NON_FINITE_STATE = 4            # NaN/inf in a fixed-step candidate
    STEP_TOO_SMALL = 8              # retry dt < dt_min
    MAX_LOOP_ITERS_EXCEEDED = 16    # mxstep reached before the output time
    MAX_REJECTIONS_EXCEEDED = 32    # too many consecutive rejections
