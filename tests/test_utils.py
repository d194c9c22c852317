"""Tests for multistep._utils and multistep.config_base."""

from __future__ import annotations

import numpy as np
import pytest
from attrs import define, field
from numpy.testing import assert_allclose

from multistep._utils import (
    get_readonly_view,
    getype_validator,
    gttype_validator,
    inrangetype_validator,
    merge_kwargs_into_settings,
    opt_gttype_validator,
    precision_converter,
    precision_validator,
    required_parameter_names,
    split_applicable_settings,
    tol_converter,
)
from multistep.config_base import MultistepConfigBase
from multistep.errors import ConfigurationError


@define
class ExampleConfig(MultistepConfigBase):
    count: int = field(default=1, validator=getype_validator(int, 0))
    _limit: float = field(default=1.0, validator=gttype_validator(float, 0))
    fraction: float = field(
        default=0.5, validator=inrangetype_validator(float, 0.0, 1.0)
    )
    scale: float = field(default=None, validator=opt_gttype_validator(float, 0))
    precision: type = field(
        default=np.float64,
        converter=precision_converter,
        validator=precision_validator,
    )
    validations: int = field(default=0, init=False)

    def _validate_config(self):
        self.validations += 1
        if self.count > 10 and self._limit < 1.0:
            raise ConfigurationError("count > 10 needs limit >= 1")


class Target:
    def __init__(self, required, optional=1, *args, **kwargs):
        pass


# ── validators ──────────────────────────────────────────────── #


@pytest.mark.parametrize(
    "kwargs",
    [
        {"count": -1},
        {"count": 1.5},
        {"count": True},
        {"limit": 0.0},
        {"limit": "1.0"},
        {"fraction": 1.5},
        {"scale": -2.0},
        {"precision": np.int64},
    ],
    ids=[
        "count_below_min",
        "count_float",
        "count_bool",
        "limit_zero",
        "limit_string",
        "fraction_high",
        "scale_negative",
        "int_precision",
    ],
)
def test_validators_raise_configuration_error(kwargs):
    with pytest.raises(ConfigurationError):
        ExampleConfig(**kwargs)


def test_validators_accept_numpy_scalars():
    config = ExampleConfig(count=np.int64(3), limit=np.float32(2.0), scale=2)
    assert config.count == 3
    assert config.scale == 2


@pytest.mark.parametrize("value", ["float32", np.dtype(np.float32),
                                   np.float32])
def test_precision_converter(value):
    assert precision_converter(value) is np.float32


def test_tol_converter_shapes():
    assert tol_converter(1e-3).shape == (1,)
    assert_allclose(tol_converter([1e-3, 1e-4]), [1e-3, 1e-4])
    with pytest.raises(ConfigurationError):
        tol_converter(np.ones((2, 2)))


def test_readonly_view():
    array = np.arange(3.0)
    view = get_readonly_view(array)
    with pytest.raises(ValueError):
        view[0] = 1.0
    array[0] = 5.0
    assert view[0] == 5.0


# ── settings helpers ────────────────────────────────────────── #


def test_split_applicable_settings():
    with pytest.warns(UserWarning, match="extra"):
        filtered, missing, unused = split_applicable_settings(
            Target, {"optional": 2, "extra": 3}
        )
    assert filtered == {"optional": 2}
    assert missing == {"required"}
    assert unused == {"extra"}


def test_split_applicable_settings_accepted_names():
    filtered, _, unused = split_applicable_settings(
        Target, {"extra": 3}, warn_on_unused=False, accepted={"extra"}
    )
    assert filtered == {"extra": 3}
    assert unused == set()


def test_required_parameter_names():
    assert required_parameter_names(Target) == {"required"}


def test_merge_kwargs_into_settings():
    merged = merge_kwargs_into_settings(
        {"dtFac": 0.5, "atol": 1.0},
        aliases={"dtFac": "dt_fac"},
        dt_fac=0.7,
    )
    assert merged == {"dt_fac": 0.7, "atol": 1.0}
    assert merge_kwargs_into_settings() == {}


# ── MultistepConfigBase ─────────────────────────────────────── #


def test_update_by_alias_and_name():
    config = ExampleConfig()
    recognized, changed = config.update({"limit": 2.0}, count=4)
    assert recognized == {"limit", "count"}
    assert changed == {"limit", "count"}
    assert config._limit == 2.0
    assert config.count == 4


def test_update_unchanged_skips_validation():
    config = ExampleConfig()
    before = config.validations
    recognized, changed = config.update(count=1, unknown=3)
    assert recognized == {"count"}
    assert changed == set()
    assert config.validations == before


def test_update_runs_cross_field_validation():
    config = ExampleConfig(limit=0.5)
    with pytest.raises(ConfigurationError):
        config.update(count=11)


def test_update_runs_field_validators():
    config = ExampleConfig()
    with pytest.raises(ConfigurationError):
        config.update(fraction=2.0)


def test_update_ignores_non_init_fields():
    config = ExampleConfig()
    recognized, _ = config.update(validations=100)
    assert recognized == set()


def test_settings_dict_uses_aliases():
    settings = ExampleConfig(limit=3.0).settings_dict
    assert settings["limit"] == 3.0
    assert "_limit" not in settings
    assert "validations" not in settings
