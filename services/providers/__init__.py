"""
Generation providers for content, video and audio.
"""

from .audio import AzureSpeechProvider, ElevenLabsProvider, PollyProvider
from .base import (
    AudioProvider,
    ContentProvider,
    ModelKey,
    ModelProvider,
    ProviderError,
    ServiceCategory,
    ServiceConfiguration,
    ServiceModelConfig,
    VideoProvider,
)
from .content import AnthropicProvider, BedrockContentProvider, OpenAIProvider
from .registry import PROVIDER_CLASSES, ProviderRegistry, UnsupportedProviderError, create_provider
from .video import BedrockVideoProvider, LumaProvider, RunwayProvider

__all__ = [
    "AudioProvider",
    "ContentProvider",
    "ModelKey",
    "ModelProvider",
    "ProviderError",
    "ServiceCategory",
    "ServiceConfiguration",
    "ServiceModelConfig",
    "VideoProvider",
    "AnthropicProvider",
    "BedrockContentProvider",
    "OpenAIProvider",
    "BedrockVideoProvider",
    "LumaProvider",
    "RunwayProvider",
    "AzureSpeechProvider",
    "ElevenLabsProvider",
    "PollyProvider",
    "PROVIDER_CLASSES",
    "ProviderRegistry",
    "UnsupportedProviderError",
    "create_provider",
]
