"""
Configuration values and sources.

Raw values arrive from every source as strings (Parameter Store, Secrets
Manager, environment) or already-decoded JSON (S3 config files). They are
normalized into a closed set of kinds:

    STRING | NUMBER | BOOL | OBJECT

Parsing rules (applied to strings only):
    '{...}' / '[...]'   -> JSON object / array (left as string if invalid)
    'true' / 'false'    -> bool (case-insensitive)
    '42'                -> int
    '0.80'              -> float
    anything else       -> str
"""

import json
import re
from enum import Enum
from typing import Any, Union

ConfigValue = Union[str, int, float, bool, dict, list]

_INT_RE = re.compile(r"^\d+$")
_FLOAT_RE = re.compile(r"^\d+\.\d+$")


class ConfigSource(str, Enum):
    """Configuration sources, highest precedence first."""
    RUNTIME_OVERRIDE = "runtime_override"
    PARAMETER_STORE = "parameter_store"
    SECRET_STORE = "secret_store"
    OBJECT_STORAGE_FILE = "object_storage_file"
    ENVIRONMENT_VARIABLE = "environment_variable"
    DEFAULT = "default"


PRECEDENCE = list(ConfigSource)


class ConfigValueKind(str, Enum):
    STRING = "string"
    NUMBER = "number"
    BOOL = "bool"
    OBJECT = "object"


class _Missing:
    """Sentinel for 'no value found'."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self):
        return False

    def __repr__(self):
        return "MISSING"


MISSING = _Missing()


def parse_config_value(raw: Any) -> Any:
    """Decode a raw source value into a ConfigValue."""
    if not isinstance(raw, str):
        return raw

    if raw.startswith("{") or raw.startswith("["):
        try:
            return json.loads(raw)
        except ValueError:
            return raw

    lowered = raw.lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False

    if _INT_RE.match(raw):
        return int(raw)
    if _FLOAT_RE.match(raw):
        return float(raw)

    return raw


def encode_config_value(value: Any) -> str:
    """Encode a ConfigValue for a string-only store (inverse of parse)."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return str(value)


def value_kind(value: Any) -> ConfigValueKind:
    """Classify a parsed value."""
    # bool subclasses int
    if isinstance(value, bool):
        return ConfigValueKind.BOOL
    if isinstance(value, (int, float)):
        return ConfigValueKind.NUMBER
    if isinstance(value, (dict, list)):
        return ConfigValueKind.OBJECT
    if isinstance(value, str):
        return ConfigValueKind.STRING
    raise TypeError(f"Unsupported configuration value type: {type(value).__name__}")
