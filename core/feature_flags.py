"""
Feature Flags

Flags live under features.* in configuration and are read through the
ConfigurationResolver, so they can be flipped per environment in
Parameter Store or at runtime with an override:

    await resolver.set_runtime_override("features.enableMultiLanguage", True)

Usage:
    from core.feature_flags import FeatureFlag, is_enabled

    if await is_enabled(resolver, FeatureFlag.CUSTOM_THUMBNAILS):
        ...
"""

import logging
from enum import Enum
from typing import Optional

from services.configuration import ConfigurationResolver, default_for, parse_config_value

logger = logging.getLogger(__name__)


class FeatureFlag(Enum):
    """Known flags; the value is the key under features.*"""
    GENERATIVE_AI = "enableGenerativeAI"
    ADVANCED_VIDEO_EFFECTS = "enableAdvancedVideoEffects"
    MULTI_LANGUAGE = "enableMultiLanguage"
    CUSTOM_THUMBNAILS = "enableCustomThumbnails"
    AB_TESTING = "enableABTesting"

    @property
    def key(self) -> str:
        return f"features.{self.value}"

    @property
    def default(self) -> bool:
        return bool(default_for(self.key, False))


async def is_enabled(
    resolver: ConfigurationResolver,
    flag: FeatureFlag,
    override: Optional[bool] = None,
) -> bool:
    """
    Check whether a feature is enabled.

    Args:
        resolver: Resolver for the current environment
        flag: Flag to check
        override: Optional explicit value (for testing)
    """
    if override is not None:
        return override

    value = await resolver.get(flag.key, flag.default)
    if isinstance(value, str):
        value = parse_config_value(value)
    if not isinstance(value, bool):
        logger.warning(f"Non-boolean value for {flag.key}: {value!r}, using default")
        return flag.default
    return value


async def get_feature_flags(resolver: ConfigurationResolver) -> dict[str, bool]:
    """Current value of every known flag, keyed by flag name."""
    return {flag.value: await is_enabled(resolver, flag) for flag in FeatureFlag}
