"""Validators, converters and settings helpers shared across multistep."""

from inspect import signature
from typing import Any, Iterable, Mapping, Optional, Tuple, Union
from warnings import warn

import numpy as np
from numpy import float16, float32, float64
from numpy.typing import ArrayLike

from multistep.errors import ConfigurationError

PrecisionDType = Union[type[float16], type[float32], type[float64]]

ALLOWED_PRECISIONS = {float16, float32, float64}


def _check_type(attribute, value, dtype):
    if dtype is float and isinstance(value, (int, np.integer)) \
            and not isinstance(value, bool):
        return
    if dtype is float and isinstance(value, np.floating):
        return
    if dtype is int and isinstance(value, np.integer):
        return
    if not isinstance(value, dtype) or isinstance(value, bool) \
            and dtype is not bool:
        raise ConfigurationError(
            f"{attribute.name} must be of type {dtype.__name__}, "
            f"got {type(value).__name__}"
        )


def getype_validator(dtype, min_):
    """Return a validator checking ``value >= min_`` and its type."""

    def _validator(instance, attribute, value):
        _check_type(attribute, value, dtype)
        if value < min_:
            raise ConfigurationError(
                f"{attribute.name} must be >= {min_}, got {value}"
            )

    return _validator


def gttype_validator(dtype, min_):
    """Return a validator checking ``value > min_`` and its type."""

    def _validator(instance, attribute, value):
        _check_type(attribute, value, dtype)
        if value <= min_:
            raise ConfigurationError(
                f"{attribute.name} must be > {min_}, got {value}"
            )

    return _validator


def inrangetype_validator(dtype, min_, max_):
    """Return a validator checking ``min_ <= value <= max_``."""

    def _validator(instance, attribute, value):
        _check_type(attribute, value, dtype)
        if not (min_ <= value <= max_):
            raise ConfigurationError(
                f"{attribute.name} must be in [{min_}, {max_}], got {value}"
            )

    return _validator


def finitetype_validator(dtype):
    """Return a validator checking the type and that the value is finite."""

    def _validator(instance, attribute, value):
        _check_type(attribute, value, dtype)
        if not np.isfinite(value):
            raise ConfigurationError(
                f"{attribute.name} must be finite, got {value}"
            )

    return _validator


def opt_gttype_validator(dtype, min_):
    """As :func:`gttype_validator` but ``None`` passes."""
    inner = gttype_validator(dtype, min_)

    def _validator(instance, attribute, value):
        if value is None:
            return
        inner(instance, attribute, value)

    return _validator


def precision_validator(instance, attribute, value):
    """Only numpy float16, float32 and float64 are accepted."""
    if value not in ALLOWED_PRECISIONS:
        raise ConfigurationError(
            f"{attribute.name} must be one of float16, float32, float64; "
            f"got {value!r}"
        )


def precision_converter(value):
    """Coerce dtype-likes (``"float64"``, ``np.dtype``) to a scalar type."""
    return np.dtype(value).type


def tol_converter(value: ArrayLike) -> np.ndarray:
    """Return tolerances as a one-dimensional float64 array.

    Scalars become length-one arrays, broadcast against the state when the
    norm is evaluated.
    """
    array = np.atleast_1d(np.asarray(value, dtype=np.float64))
    if array.ndim != 1:
        raise ConfigurationError("Tolerances must be scalar or 1-D arrays.")
    return array


def positive_array_validator(instance, attribute, value):
    """Every entry must be finite and strictly positive."""
    if not np.all(np.isfinite(value)) or np.any(value <= 0.0):
        raise ConfigurationError(
            f"{attribute.name} must be strictly positive, got {value}"
        )


def init_parameter_names(cls) -> set[str]:
    """Return keyword names accepted by ``cls.__init__``."""
    params = signature(cls.__init__).parameters
    return {
        name
        for name, param in params.items()
        if name != "self"
        and param.kind not in (param.VAR_POSITIONAL, param.VAR_KEYWORD)
    }


def required_parameter_names(cls) -> set[str]:
    """Return keyword names ``cls.__init__`` requires."""
    params = signature(cls.__init__).parameters
    return {
        name
        for name, param in params.items()
        if name != "self"
        and param.default is param.empty
        and param.kind not in (param.VAR_POSITIONAL, param.VAR_KEYWORD)
    }


def split_applicable_settings(
    cls,
    settings: Mapping[str, Any],
    warn_on_unused: bool = True,
    accepted: Optional[Iterable[str]] = None,
) -> Tuple[dict, set, set]:
    """Split ``settings`` into what ``cls`` accepts and what it does not.

    Parameters
    ----------
    cls
        Class whose ``__init__`` signature defines accepted keywords.
    settings
        Candidate keyword arguments.
    warn_on_unused
        Emit a ``UserWarning`` listing the keys that were dropped.
    accepted
        Extra names to treat as accepted, for classes which forward
        ``**kwargs`` to a configuration object.

    Returns
    -------
    tuple[dict, set, set]
        ``(filtered, missing, unused)``; ``missing`` lists required
        parameters absent from ``settings``.
    """
    names = init_parameter_names(cls)
    if accepted is not None:
        names |= set(accepted)
    filtered = {k: v for k, v in settings.items() if k in names}
    missing = required_parameter_names(cls) - set(settings)
    unused = set(settings) - names
    if warn_on_unused and unused:
        warn(
            f"Settings {sorted(unused)} are not used by {cls.__name__} "
            "and were ignored.",
            UserWarning,
        )
    return filtered, missing, unused


def merge_kwargs_into_settings(
    settings: Optional[Mapping[str, Any]] = None,
    aliases: Optional[Mapping[str, str]] = None,
    **kwargs: Any,
) -> dict:
    """Merge ``settings`` and ``kwargs`` with keywords taking precedence.

    Keys found in ``aliases`` are renamed to their canonical name before the
    merge, so ``dtFac`` and ``dt_fac`` refer to the same option.
    """
    aliases = aliases or {}
    merged = {}
    for source in (settings or {}, kwargs):
        for key, value in source.items():
            merged[aliases.get(key, key)] = value
    return merged


def get_readonly_view(array):
    view = array.view()
    view.flags.writeable = False
    return view
