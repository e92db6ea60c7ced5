"""
Schema checks for runtime overrides.

A schema is deliberately small: an expected type, a required flag and an
optional set of allowed values. Key-based rules mirror the guard rails the
operators rely on for budgets, durations and feature flags.
"""

from dataclasses import dataclass
from typing import Any, Optional, Union


class ConfigValidationError(ValueError):
    """Raised when a configuration value fails validation."""

    def __init__(self, key: str, message: str):
        self.key = key
        super().__init__(f"Configuration validation failed for {key}: {message}")


_TYPE_CHECKS = {
    "string": lambda v: isinstance(v, str),
    "number": lambda v: isinstance(v, (int, float)) and not isinstance(v, bool),
    "boolean": lambda v: isinstance(v, bool),
    "object": lambda v: isinstance(v, dict),
    "array": lambda v: isinstance(v, list),
}


@dataclass
class ConfigSchema:
    type: Optional[str] = None
    required: bool = False
    enum: Optional[list] = None

    def __post_init__(self):
        if self.type is not None and self.type not in _TYPE_CHECKS:
            raise ValueError(
                f"Unknown schema type '{self.type}'. Must be one of: {', '.join(_TYPE_CHECKS)}"
            )

    @classmethod
    def from_dict(cls, data: dict) -> "ConfigSchema":
        return cls(
            type=data.get("type"),
            required=bool(data.get("required", False)),
            enum=data.get("enum"),
        )


SchemaLike = Union[ConfigSchema, dict]


def validate_value(key: str, value: Any, schema: SchemaLike):
    """Check value against schema, raising ConfigValidationError."""
    if isinstance(schema, dict):
        try:
            schema = ConfigSchema.from_dict(schema)
        except ValueError as e:
            raise ConfigValidationError(key, str(e)) from e

    if value is None:
        if schema.required:
            raise ConfigValidationError(key, "value is required")
        return

    if schema.type and not _TYPE_CHECKS[schema.type](value):
        raise ConfigValidationError(
            key, f"expected {schema.type}, got {type(value).__name__}"
        )

    if schema.enum is not None and value not in schema.enum:
        allowed = ", ".join(str(v) for v in schema.enum)
        raise ConfigValidationError(key, f"value must be one of {allowed}")


def validate_key_rules(key: str, value: Any):
    """Namespace-specific rules applied by update_configuration."""
    parts = key.split(".")
    is_number = isinstance(value, (int, float)) and not isinstance(value, bool)

    if parts[:2] == ["cost", "budgets"] and len(parts) > 2:
        if not is_number or value < 0:
            raise ConfigValidationError(key, "budget values must be positive numbers")

    if parts[:2] == ["video", "defaultDuration"]:
        if not is_number or value < 1 or value > 300:
            raise ConfigValidationError(key, "video duration must be between 1 and 300 seconds")

    if parts[0] == "features" and len(parts) > 1:
        if not isinstance(value, bool):
            raise ConfigValidationError(key, "feature flags must be boolean values")
