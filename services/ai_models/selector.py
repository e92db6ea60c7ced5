"""
Provider selection with tiered fallback.

For each service the configured tiers are tried in order:

    primary -> fallback -> emergency

and the first healthy model wins. If none is healthy the primary is
returned anyway, flagged degraded, so the caller can still attempt it.
With `{"economy": True}` in the requirements the tiers are tried
cheapest first by their configured unit rate.
A tier whose provider cannot be built is selected without an instance.
"""

import logging
import math
from dataclasses import dataclass
from typing import Any, Optional

from services.configuration import ConfigurationResolver, default_models_for
from services.configuration.factory import validate_ai_model_config
from services.cost import CostEstimator, UnknownCostRateError
from services.providers.base import (
    ModelKey,
    ModelProvider,
    ProviderError,
    ServiceCategory,
    ServiceConfiguration,
    ServiceModelConfig,
)

from .health import HealthMonitor
from .invoker import ProviderFactory

logger = logging.getLogger(__name__)

TIERS = ("primary", "fallback", "emergency")


class ServiceConfigurationError(ValueError):
    """ai.models.<service> is missing or unusable."""


@dataclass
class ModelSelection:
    """The model chosen for one request."""
    service: ServiceCategory
    tier: str
    config: ServiceModelConfig
    provider: Optional[ModelProvider] = None
    degraded: bool = False
    economy: bool = False

    @property
    def key(self) -> ModelKey:
        return ModelKey.for_config(self.service, self.config)

    def to_dict(self) -> dict[str, Any]:
        return {
            "service": self.service.value,
            "tier": self.tier,
            "config": self.config.to_dict(),
            "degraded": self.degraded,
            "economy": self.economy,
        }


class ProviderSelector:
    """Picks the first healthy tier for a service."""

    def __init__(
        self,
        resolver: ConfigurationResolver,
        health: HealthMonitor,
        provider_factory: ProviderFactory,
        estimator: Optional[CostEstimator] = None,
    ):
        self.resolver = resolver
        self.health = health
        self.provider_factory = provider_factory
        self.estimator = estimator or CostEstimator(resolver)

    async def get_service_configuration(self, service: ServiceCategory) -> ServiceConfiguration:
        """Load ai.models.<service>, applying per-tier keys on top."""
        service = ServiceCategory(service)
        key = f"ai.models.{service.value}"

        value = await self.resolver.get(key, default_models_for(service.value, self.resolver.environment))
        value = dict(value) if isinstance(value, dict) else {}

        for tier in TIERS:
            tier_value = await self.resolver.get(f"{key}.{tier}")
            if tier_value is not None:
                value[tier] = tier_value

        try:
            validate_ai_model_config(service.value, value)
            return ServiceConfiguration.from_value(value)
        except ValueError as e:
            raise ServiceConfigurationError(f"Invalid configuration for service {service.value}: {e}") from e

    async def select_model(
        self,
        service: ServiceCategory,
        requirements: Optional[dict[str, Any]] = None,
    ) -> ModelSelection:
        service = ServiceCategory(service)
        logger.info(f"Selecting AI model for service: {service.value} {requirements or ''}".rstrip())

        configuration = await self.get_service_configuration(service)
        economy = bool((requirements or {}).get("economy"))

        tiers = configuration.tiers()
        if economy:
            tiers = await self._cheapest_first(service, tiers)

        for tier, model_config in tiers:
            if await self.health.is_healthy(service, model_config):
                if tier == "primary":
                    logger.info(f"Using primary model for {service.value}: {model_config.identifier}")
                else:
                    logger.warning(f"Using {tier} model for {service.value}: {model_config.identifier}")
                return ModelSelection(
                    service=service,
                    tier=tier,
                    config=model_config,
                    provider=self._build_provider(service, model_config),
                    economy=economy,
                )

        logger.warning(f"All models unhealthy for {service.value}, using primary in degraded mode")
        return ModelSelection(
            service=service,
            tier="primary",
            config=configuration.primary,
            provider=self._build_provider(service, configuration.primary),
            degraded=True,
            economy=economy,
        )

    def _build_provider(self, service: ServiceCategory, model_config: ServiceModelConfig) -> Optional[ModelProvider]:
        try:
            return self.provider_factory(service, model_config)
        except ProviderError as e:
            logger.warning(f"No provider instance for {service.value} {model_config.identifier}: {e}")
            return None

    async def _cheapest_first(
        self,
        service: ServiceCategory,
        tiers: list[tuple[str, ServiceModelConfig]],
    ) -> list[tuple[str, ServiceModelConfig]]:
        ranked = []
        for position, (tier, model_config) in enumerate(tiers):
            try:
                price = (await self.estimator.rate_for(service, model_config)).price_per_unit
            except UnknownCostRateError:
                price = math.inf
            ranked.append((price, position, tier, model_config))

        ranked.sort(key=lambda entry: entry[:2])
        logger.info(f"Economy order for {service.value}: {', '.join(entry[2] for entry in ranked)}")
        return [(tier, model_config) for _, _, tier, model_config in ranked]
