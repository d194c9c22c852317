"""Tests for multistep.integrators.step_control.adaptive_controller."""

from __future__ import annotations

import numpy as np
import pytest

from multistep.errors import (
    ConfigurationError,
    ConvergenceFailure,
    NumericalAnomalyWarning,
)
from multistep.integrators.algorithms import StepResult
from multistep.integrators.return_codes import IntegratorReturnCodes
from multistep.integrators.step_control import (
    AdaptiveController,
    AdaptiveStepControlConfig,
    ControllerDecision,
)


def make_result(norm, dt=0.1, order=1, companion=2):
    """StepResult whose scaled error is ``norm`` for atol=1, tiny rtol."""
    primary = np.array([norm], dtype=np.float64)
    secondary = None if companion is None else np.zeros(1)
    return StepResult(
        state=primary,
        primary=primary,
        secondary=secondary,
        order=order,
        companion_order=companion,
        dt=dt,
    )


@pytest.fixture(scope="function")
def controller_settings_override(request):
    return request.param if hasattr(request, "param") else {}


@pytest.fixture(scope="function")
def controller(controller_settings_override):
    settings = {
        "dt": 0.1,
        "order": 1,
        "maximum_order": 4,
        "dt_min": 1e-8,
        "dt_max": 1.0,
        "atol": 1.0,
        "rtol": 1e-14,
    }
    settings.update(controller_settings_override)
    return AdaptiveController(**settings)


STATE = np.zeros(1)


# ── AdaptiveStepControlConfig ───────────────────────────────── #


def test_config_defaults():
    cfg = AdaptiveStepControlConfig()
    assert cfg.is_adaptive is True
    assert cfg.dt_fac == 0.75
    assert cfg.min_gain == 0.2
    assert cfg.max_gain == 2.0
    assert cfg.order_window == 3
    assert cfg.order_increase_threshold == 0.75
    assert cfg.order_decrease_threshold == 0.95


@pytest.mark.parametrize(
    "settings",
    [
        {"order_increase_threshold": 1.0, "order_decrease_threshold": 0.5},
        {"min_gain": 0.6, "rejection_factor": 0.5},
        {"dt_min": 1.0, "dt_max": 0.1},
        {"dt_fac": 1.5},
        {"max_gain": 0.5},
    ],
    ids=[
        "thresholds_crossed",
        "rejection_below_min_gain",
        "dt_bounds_crossed",
        "dt_fac_above_one",
        "max_gain_below_one",
    ],
)
def test_config_rejects_inconsistent_settings(settings):
    with pytest.raises(ConfigurationError):
        AdaptiveStepControlConfig(**settings)


def test_config_update_revalidates():
    cfg = AdaptiveStepControlConfig()
    with pytest.raises(ConfigurationError):
        cfg.update(order_increase_threshold=2.0)


def test_config_rejected_update_keeps_values():
    cfg = AdaptiveStepControlConfig(dt_fac=0.6)
    with pytest.raises(ConfigurationError):
        cfg.update(dt_fac=0.5, min_gain=0.8)
    assert cfg.dt_fac == 0.6
    assert cfg.min_gain == 0.2


# ── gain ────────────────────────────────────────────────────── #


def test_gain_formula(controller):
    expected = 0.75 * 0.5 ** (-1.0 / 2.0)
    assert controller.gain(0.5, 1, True) == pytest.approx(expected)
    expected_p3 = 0.75 * 0.5 ** (-1.0 / 4.0)
    assert controller.gain(0.5, 3, True) == pytest.approx(expected_p3)


@pytest.mark.parametrize(
    "norm, accept, expected",
    [
        (0.0, True, 2.0),
        (1e-12, True, 2.0),
        (1e12, True, 0.2),
        (np.inf, False, 0.2),
        (0.0, False, 0.5),
        (1.2, False, 0.5),
    ],
    ids=[
        "zero_norm",
        "tiny_norm",
        "huge_norm",
        "infinite_norm",
        "rejection_cap_zero",
        "rejection_cap",
    ],
)
def test_gain_clamps(controller, norm, accept, expected):
    assert controller.gain(norm, 1, accept) == pytest.approx(expected)


# ── propose: accept / reject ────────────────────────────────── #


def test_accept_grows_step(controller):
    decision = controller.propose(make_result(0.1), STATE, 2)
    assert isinstance(decision, ControllerDecision)
    assert decision.accept is True
    assert decision.norm == pytest.approx(0.1)
    expected = 0.1 * min(2.0, 0.75 * 0.1 ** -0.5)
    assert controller.dt == pytest.approx(expected)
    assert decision.dt == controller.dt
    assert controller.n_accepted == 1


def test_accept_clipped_to_dt_max(controller):
    controller.propose(make_result(0.0, dt=0.9), STATE, 2)
    assert controller.dt == pytest.approx(1.0)


def test_reject_shrinks_step(controller):
    decision = controller.propose(make_result(4.0), STATE, 2)
    assert decision.accept is False
    assert controller.dt < 0.1
    assert controller.dt <= 0.5 * 0.1
    assert controller.n_rejected == 1
    assert controller.consecutive_rejections == 1


def test_retry_after_reject_is_strictly_smaller(controller):
    dt = 0.1
    for _ in range(5):
        controller.propose(make_result(1.0001, dt=dt), STATE, 2)
        assert controller.dt < dt
        dt = controller.dt


def test_accept_resets_consecutive_rejections(controller):
    controller.propose(make_result(4.0), STATE, 2)
    controller.propose(make_result(0.5, dt=controller.dt), STATE, 2)
    assert controller.consecutive_rejections == 0


@pytest.mark.parametrize("controller_settings_override",
                         [{"max_rejections": 2}], indirect=True)
def test_too_many_rejections_raise(controller):
    controller.propose(make_result(4.0), STATE, 2)
    controller.propose(make_result(4.0, dt=controller.dt), STATE, 2)
    with pytest.raises(ConvergenceFailure) as excinfo:
        controller.propose(make_result(4.0, dt=controller.dt), STATE, 2)
    assert excinfo.value.code == IntegratorReturnCodes.MAX_REJECTIONS_EXCEEDED


@pytest.mark.parametrize("controller_settings_override",
                         [{"dt_min": 0.04}], indirect=True)
def test_step_below_dt_min_raises(controller):
    with pytest.raises(ConvergenceFailure) as excinfo:
        controller.propose(make_result(100.0), STATE, 2)
    assert excinfo.value.code == IntegratorReturnCodes.STEP_TOO_SMALL


def test_no_estimate_accepts_unchanged(controller):
    decision = controller.propose(make_result(0.3, companion=None), STATE, 2)
    assert decision.accept is True
    assert decision.norm is None
    assert controller.dt == pytest.approx(0.1)
    assert controller.recent_norms == ()


def test_non_finite_candidate_is_rejected(controller):
    with pytest.warns(NumericalAnomalyWarning):
        decision = controller.propose(make_result(np.nan), STATE, 2)
    assert decision.accept is False
    assert decision.anomaly is True
    assert decision.norm == np.inf
    assert controller.dt < 0.1


def test_non_finite_startup_candidate_is_rejected(controller):
    with pytest.warns(NumericalAnomalyWarning):
        decision = controller.propose(
            make_result(np.inf, companion=None), STATE, 2
        )
    assert decision.accept is False


# ── order adaptation ────────────────────────────────────────── #


def test_order_increases_after_small_norms(controller):
    for _ in range(2):
        controller.propose(make_result(0.1, dt=controller.dt), STATE, 4)
        assert controller.order == 1
    controller.propose(make_result(0.1, dt=controller.dt), STATE, 4)
    assert controller.order == 2
    assert controller.recent_norms == ()


def test_order_increase_limited_by_available(controller):
    for _ in range(6):
        controller.propose(make_result(0.1, dt=controller.dt), STATE, 1)
    assert controller.order == 1


@pytest.mark.parametrize("controller_settings_override",
                         [{"order": 3}], indirect=True)
def test_order_decreases_after_large_norms(controller):
    for _ in range(3):
        result = make_result(0.97, dt=controller.dt, order=3, companion=4)
        controller.propose(result, STATE, 4)
    assert controller.order == 2


def test_mixed_norms_keep_order(controller):
    for norm in (0.1, 0.9, 0.1, 0.9, 0.1):
        controller.propose(make_result(norm, dt=controller.dt), STATE, 4)
    assert controller.order == 1


@pytest.mark.parametrize("controller_settings_override",
                         [{"adaptive_order": False, "order": 2}],
                         indirect=True)
def test_fixed_order_when_not_adaptive(controller):
    for _ in range(6):
        controller.propose(make_result(0.01, dt=controller.dt, order=2,
                                       companion=3), STATE, 4)
    assert controller.order == 2


@pytest.mark.parametrize("controller_settings_override",
                         [{"reduce_order_on_reject": True, "order": 3}],
                         indirect=True)
def test_reduce_order_on_reject(controller):
    controller.propose(make_result(4.0, order=3, companion=4), STATE, 4)
    assert controller.order == 2


def test_reset_forgets_trend(controller):
    controller.propose(make_result(0.1), STATE, 4)
    controller.propose(make_result(4.0, dt=controller.dt), STATE, 4)
    controller.reset(dt=0.05, order=2)
    assert controller.dt == pytest.approx(0.05)
    assert controller.order == 2
    assert controller.recent_norms == ()
    assert controller.consecutive_rejections == 0


def test_order_setter_clamps(controller):
    controller.order = 10
    assert controller.order == 4
    controller.order = 0
    assert controller.order == 1


def test_scaled_norm_follows_tolerances(controller):
    error = np.array([0.5])
    assert controller.scaled_norm(error, STATE, STATE) == pytest.approx(0.5)
    controller.update(atol=0.25)
    assert controller.scaled_norm(error, STATE, STATE) == pytest.approx(2.0)
    assert controller.error_norm(make_result(0.5), STATE) == \
        pytest.approx(2.0)
