"""
Provider registry.

Maps (service, provider name) to a ModelProvider class and builds one
provider instance per model configuration. Instances are reused so
boto3/httpx clients are created once per model.
"""

import logging
import threading
from typing import Optional

import httpx

from core.config import APIConfig

from .audio import AzureSpeechProvider, ElevenLabsProvider, PollyProvider
from .base import (
    ModelKey,
    ModelProvider,
    ProviderError,
    ServiceCategory,
    ServiceModelConfig,
)
from .content import AnthropicProvider, BedrockContentProvider, OpenAIProvider
from .video import BedrockVideoProvider, LumaProvider, RunwayProvider

logger = logging.getLogger(__name__)


class UnsupportedProviderError(ProviderError):
    """No provider implementation for a (service, provider) pair."""


PROVIDER_CLASSES: dict[ServiceCategory, dict[str, type[ModelProvider]]] = {
    ServiceCategory.CONTENT: {
        "anthropic": AnthropicProvider,
        "openai": OpenAIProvider,
        "bedrock": BedrockContentProvider,
    },
    ServiceCategory.VIDEO: {
        "bedrock": BedrockVideoProvider,
        "luma": LumaProvider,
        "runway": RunwayProvider,
    },
    ServiceCategory.AUDIO: {
        "polly": PollyProvider,
        "elevenlabs": ElevenLabsProvider,
        "azure": AzureSpeechProvider,
    },
}


def create_provider(
    service: ServiceCategory,
    model_config: ServiceModelConfig,
    api: Optional[APIConfig] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> ModelProvider:
    """Instantiate the provider variant for a model configuration."""
    service = ServiceCategory(service)
    provider_class = PROVIDER_CLASSES.get(service, {}).get(model_config.provider)
    if provider_class is None:
        raise UnsupportedProviderError(
            f"Unsupported {service.value} provider: {model_config.provider}",
            error_code="UNSUPPORTED_PROVIDER",
            provider=model_config.provider,
        )
    return provider_class(model_config, api=api, http_client=http_client)


class ProviderRegistry:
    """
    Callable provider factory with per-model instance reuse.

    Usage:
        providers = ProviderRegistry()
        provider = providers(ServiceCategory.AUDIO, model_config)
        response = await provider.invoke({"text": "Hello"})
    """

    def __init__(self, api: Optional[APIConfig] = None, http_client: Optional[httpx.AsyncClient] = None):
        self.api = api
        self.http_client = http_client
        self._instances: dict[ModelKey, tuple[ServiceModelConfig, ModelProvider]] = {}
        self._lock = threading.Lock()

    def __call__(self, service: ServiceCategory, model_config: ServiceModelConfig) -> ModelProvider:
        return self.get(service, model_config)

    def get(self, service: ServiceCategory, model_config: ServiceModelConfig) -> ModelProvider:
        key = ModelKey.for_config(service, model_config)
        with self._lock:
            cached = self._instances.get(key)
            if cached is not None and cached[0] == model_config:
                return cached[1]

            # A changed config for the same key replaces the old instance
            provider = create_provider(service, model_config, api=self.api, http_client=self.http_client)
            self._instances[key] = (model_config, provider)
            logger.debug(f"Created provider for {key}")
            return provider

    @staticmethod
    def supported() -> dict[str, list[str]]:
        return {service.value: sorted(classes) for service, classes in PROVIDER_CLASSES.items()}
