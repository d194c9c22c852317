"""Base class for attrs configuration containers with in-place updates."""

from typing import Any, Dict, Set, Tuple

from attrs import Attribute, define, field, fields
from numpy import array_equal, asarray, ndarray


@define
class MultistepConfigBase:
    """Configuration container supporting alias-aware updates.

    Fields whose names start with an underscore are addressed by their
    public alias (``_dt_max`` is updated through ``"dt_max"``). attrs runs
    converters and validators on every assignment, so an invalid update
    raises the same error as an invalid constructor argument.
    """

    _field_map: Dict[str, Attribute] = field(
        factory=dict, init=False, repr=False, eq=False
    )

    def __attrs_post_init__(self):
        field_map = {}
        for fld in fields(type(self)):
            if fld.name == "_field_map":
                continue
            field_map[fld.name] = fld
            if fld.alias is not None:
                field_map[fld.alias] = fld
        self._field_map = field_map

    def update(
        self, updates_dict: dict = None, **kwargs
    ) -> Tuple[Set[str], Set[str]]:
        """Update configuration fields with new values.

        Parameters
        ----------
        updates_dict
            Mapping of setting names to new values, by public name.
        **kwargs
            Additional settings to update.

        Returns
        -------
        tuple[set[str], set[str]]
            recognized: Names of settings that matched known fields.
            changed: Names of settings whose values were updated.

        Raises
        ------
        ConfigurationError
            If a value or the resulting combination is invalid. The
            configuration is left as it was before the call.
        """
        if updates_dict is None:
            updates_dict = {}
        updates_dict = dict(updates_dict)
        updates_dict.update(kwargs)

        recognized = set()
        changed = set()
        previous = {}
        try:
            for key, value in updates_dict.items():
                fld = self._field_map.get(key)
                if fld is None or not fld.init:
                    continue
                recognized.add(key)
                old_value = getattr(self, fld.name)
                if isinstance(old_value, ndarray) \
                        or isinstance(value, ndarray):
                    value_changed = not (
                        asarray(old_value).shape == asarray(value).shape
                        and array_equal(asarray(old_value), asarray(value))
                    )
                else:
                    value_changed = old_value != value
                if value_changed:
                    previous.setdefault(fld.name, old_value)
                    setattr(self, fld.name, value)
                    changed.add(key)

            if changed:
                self._validate_config()
        except Exception:
            # All or nothing: restore every field touched by this update.
            for name, old_value in previous.items():
                setattr(self, name, old_value)
            raise
        return recognized, changed

    def _validate_config(self) -> None:
        """Cross-field checks; subclasses raise ConfigurationError."""

    @property
    def settings_dict(self) -> Dict[str, Any]:
        """Return init-visible settings keyed by their public names."""
        return {
            (fld.alias or fld.name): getattr(self, fld.name)
            for fld in fields(type(self))
            if fld.init
        }
