"""
Schema-based validation for configuration sections.

Configuration sections arrive as XML attributes (strings) or as plain Python
dictionaries (tests, programmatic use). A ConfigSchema checks required keys,
fills defaults, converts string values to the declared types, applies
constraints and rejects unknown keys.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Type

from freehand_calib.errors import InputError

_TRUE_STRINGS = ("1", "true", "yes", "on")
_FALSE_STRINGS = ("0", "false", "no", "off")


def _coerce(key: str, value: Any, expected_type: Type) -> Any:
    """Convert value to expected_type, accepting string input from XML."""
    if isinstance(value, expected_type) and not (
        expected_type is int and isinstance(value, bool)
    ):
        return value
    if expected_type is bool and isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    elif expected_type is float and isinstance(value, int) and not isinstance(value, bool):
        return float(value)
    elif isinstance(value, str) and expected_type in (int, float):
        try:
            return expected_type(value.strip())
        except ValueError:
            pass
    raise InputError(
        f"Config key '{key}' must be {expected_type.__name__}, "
        f"got {type(value).__name__} {value!r}"
    )


@dataclass
class ConfigSchema:
    """
    Schema definition for configuration section validation.

    Attributes:
        required: Dictionary of required config keys with their expected types.
        optional: Dictionary of optional config keys with (type, default_value).
        constraints: Dictionary of key -> validation function returning bool.
    """
    required: Dict[str, Type] = field(default_factory=dict)
    optional: Dict[str, tuple] = field(default_factory=dict)  # key -> (type, default)
    constraints: Dict[str, Callable[[Any], bool]] = field(default_factory=dict)

    def validate(self, config: Dict[str, Any], section: str = "") -> Dict[str, Any]:
        """
        Validate and normalize a configuration dictionary.

        Args:
            config: Configuration dictionary to validate.
            section: Section name used in error messages.

        Returns:
            Normalized configuration with defaults filled in and values
            converted to their declared types.

        Raises:
            InputError: If required keys are missing, values cannot be
                        converted, constraints are violated or unknown keys
                        are present.
        """
        prefix = f"[{section}] " if section else ""
        validated = {}

        for key, expected_type in self.required.items():
            if key not in config:
                raise InputError(f"{prefix}Missing required config key: {key}")
            validated[key] = _coerce(key, config[key], expected_type)

        for key, (expected_type, default) in self.optional.items():
            if key in config:
                validated[key] = _coerce(key, config[key], expected_type)
            else:
                validated[key] = default

        for key, constraint_fn in self.constraints.items():
            if key in validated and not constraint_fn(validated[key]):
                raise InputError(
                    f"{prefix}Constraint violated for config key: {key}={validated[key]!r}"
                )

        # Typo detection
        valid_keys = set(self.required.keys()) | set(self.optional.keys())
        unknown_keys = set(config.keys()) - valid_keys
        if unknown_keys:
            raise InputError(
                f"{prefix}Unknown config keys: {sorted(unknown_keys)}. "
                f"Valid keys are: {sorted(valid_keys)}"
            )

        return validated
