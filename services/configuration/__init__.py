"""
Configuration Service

Hierarchical configuration with runtime overrides, TTL caching and change
notification. See resolver.py for the source precedence chain.
"""

from .cache import CacheEntry, ConfigurationCache
from .factory import (
    DEFAULT_CONFIGURATION,
    ENVIRONMENT_MODEL_PROFILES,
    default_for,
    default_models_for,
    get_ai_model_config,
    get_cost_config,
    get_resolver,
    get_video_config,
    update_configuration,
)
from .resolver import ConfigurationResolver, ListenerHandle, ResolvedValue
from .sources import (
    EnvironmentSource,
    ObjectStorageFileSource,
    ParameterStoreSource,
    RuntimeOverrideStore,
    SecretStoreSource,
    SourceUnavailable,
    ValueStore,
)
from .validation import ConfigSchema, ConfigValidationError
from .values import MISSING, ConfigSource, ConfigValueKind, parse_config_value

__all__ = [
    "CacheEntry",
    "ConfigurationCache",
    "DEFAULT_CONFIGURATION",
    "ENVIRONMENT_MODEL_PROFILES",
    "default_for",
    "default_models_for",
    "get_ai_model_config",
    "get_cost_config",
    "get_resolver",
    "get_video_config",
    "update_configuration",
    "ConfigurationResolver",
    "ListenerHandle",
    "ResolvedValue",
    "EnvironmentSource",
    "ObjectStorageFileSource",
    "ParameterStoreSource",
    "RuntimeOverrideStore",
    "SecretStoreSource",
    "SourceUnavailable",
    "ValueStore",
    "ConfigSchema",
    "ConfigValidationError",
    "MISSING",
    "ConfigSource",
    "ConfigValueKind",
    "parse_config_value",
]
