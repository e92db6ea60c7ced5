"""
AI Model Manager

Single entry point for generation requests. Wires together:
- ConfigurationResolver (model tiers, breaker settings, cost rates)
- ProviderSelector + HealthMonitor (which tier to use right now)
- Invoker (breaker gating, retries, performance tracking)
- CostEstimator + CostTracker (what the request cost, and whether the
  daily budget still allows it)

Usage:
    manager = AIModelManager()

    result = await manager.generate_audio("Welcome back to the channel", duration_seconds=8)
    print(result.selection.tier, result.cost.estimated_cost)

    status = await manager.get_model_health_status()
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from core.config import Config, get_config
from services.configuration import ConfigurationResolver, get_resolver
from services.cost import STATUS_CRITICAL, CostEstimate, CostEstimator, CostTracker, CostTrackingResult
from services.providers import ModelKey, ProviderRegistry, ServiceCategory, ServiceModelConfig

from .breakers import CircuitBreakerRegistry
from .health import HealthMonitor
from .invoker import Invoker, ProviderFactory
from .performance import PerformanceTracker
from .selector import TIERS, ModelSelection, ProviderSelector, ServiceConfigurationError

logger = logging.getLogger(__name__)


@dataclass
class GenerationResult:
    selection: ModelSelection
    response: Any
    cost: CostEstimate
    tracking: Optional[CostTrackingResult] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "selection": self.selection.to_dict(),
            "response": self.response,
            "cost": self.cost.model_dump(),
            "cost_status": self.tracking.status if self.tracking else None,
        }


def usage_from_response(service: ServiceCategory, selection: ModelSelection, params: dict, response: Any) -> dict:
    """Derive cost-estimation usage from a request and its response."""
    response = response if isinstance(response, dict) else {}

    if service == ServiceCategory.CONTENT:
        usage = response.get("usage") or {}
        return {
            "provider": selection.config.provider,
            "model": selection.config.model,
            "input_tokens": usage.get("input_tokens", 0),
            "output_tokens": usage.get("output_tokens", 0),
        }

    if service == ServiceCategory.VIDEO:
        return {
            "provider": selection.config.provider,
            "model": selection.config.model,
            "duration_seconds": response.get("duration", params.get("duration", 0)),
        }

    audio_usage = {
        "engine": selection.config.engine or selection.config.provider,
        "duration_seconds": params.get("duration", 0),
    }
    if response.get("characters") is not None:
        audio_usage["characters"] = response["characters"]
    return audio_usage


class AIModelManager:
    """Facade over selection, invocation, health and cost."""

    def __init__(
        self,
        resolver: Optional[ConfigurationResolver] = None,
        config: Optional[Config] = None,
        provider_factory: Optional[ProviderFactory] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or get_config()
        self.resolver = resolver or get_resolver()
        self.providers = provider_factory or ProviderRegistry(api=self.config.api)

        self.breakers = CircuitBreakerRegistry(self.resolver, clock=clock)
        self.performance = PerformanceTracker()
        self.invoker = Invoker(
            self.breakers,
            self.performance,
            self.providers,
            max_retries=self.config.retry.max_retries,
            retry_delay=self.config.retry.retry_delay_seconds,
            sleep=sleep,
            clock=clock,
        )
        self.health = HealthMonitor(
            self.breakers,
            self.invoker,
            self.providers,
            check_interval=self.config.health.check_interval_seconds,
            probe_timeout=self.config.health.probe_timeout_seconds,
            clock=clock,
        )
        self.estimator = CostEstimator(self.resolver)
        self.selector = ProviderSelector(self.resolver, self.health, self.providers, estimator=self.estimator)
        self.cost_tracker = CostTracker(self.resolver.environment)

        logger.info(f"AIModelManager initialized for environment: {self.resolver.environment}")

    # ------------------------------------------------------------
    # Selection and invocation
    # ------------------------------------------------------------

    async def select_model(
        self,
        service: ServiceCategory,
        requirements: Optional[dict[str, Any]] = None,
    ) -> ModelSelection:
        return await self.selector.select_model(service, requirements)

    async def call_model(
        self,
        service: ServiceCategory,
        model_config: ServiceModelConfig,
        params: dict[str, Any],
        **options,
    ) -> Any:
        return await self.invoker.call(service, model_config, params, **options)

    async def generate(
        self,
        service: ServiceCategory,
        params: dict[str, Any],
        requirements: Optional[dict[str, Any]] = None,
        track_cost: bool = True,
        **options,
    ) -> GenerationResult:
        """
        Select a model, call it, and estimate what the call cost.

        At critical daily spend the cheapest healthy tier is used; at the
        maximum the request is refused with BudgetExceededError before any
        provider is called.
        """
        service = ServiceCategory(service)

        status = self.cost_tracker.ensure_within_budget()
        if status == STATUS_CRITICAL:
            logger.warning(f"Daily spend is critical, selecting the cheapest {service.value} model")
            requirements = {**(requirements or {}), "economy": True}

        selection = await self.select_model(service, requirements)

        response = await self.invoker.call(
            service,
            selection.config,
            params,
            provider=selection.provider,
            **options,
        )

        usage = usage_from_response(service, selection, params, response)
        cost = await self.estimator.estimate(service, usage)

        tracking = None
        if track_cost:
            tracking = self.cost_tracker.track_cost(
                service.value,
                cost.estimated_cost,
                {"tier": selection.tier, "model": selection.config.identifier},
            )

        return GenerationResult(selection=selection, response=response, cost=cost, tracking=tracking)

    async def generate_content(self, prompt: str, **params) -> GenerationResult:
        return await self.generate(ServiceCategory.CONTENT, {"prompt": prompt, **params})

    async def generate_video(self, prompt: str, duration_seconds: float = 8, **params) -> GenerationResult:
        return await self.generate(ServiceCategory.VIDEO, {"prompt": prompt, "duration": duration_seconds, **params})

    async def generate_audio(self, text: str, duration_seconds: float = 0, **params) -> GenerationResult:
        return await self.generate(ServiceCategory.AUDIO, {"text": text, "duration": duration_seconds, **params})

    # ------------------------------------------------------------
    # Health
    # ------------------------------------------------------------

    async def configured_models(self) -> list[tuple[ServiceCategory, ServiceModelConfig]]:
        models = []
        for service in ServiceCategory:
            try:
                configuration = await self.selector.get_service_configuration(service)
            except ServiceConfigurationError as e:
                logger.error(f"Skipping {service.value}: {e}")
                continue
            models.extend((service, model_config) for _, model_config in configuration.tiers())
        return models

    async def get_model_health_status(self) -> dict[str, Any]:
        status: dict[str, Any] = {}
        for service in ServiceCategory:
            try:
                configuration = await self.selector.get_service_configuration(service)
            except ServiceConfigurationError as e:
                status[service.value] = {"error": str(e)}
                continue

            tiers = {}
            for tier, model_config in configuration.tiers():
                healthy = await self.health.is_healthy(service, model_config)
                breaker = self.breakers.peek(self._key(service, model_config))
                tiers[tier] = {
                    "provider": model_config.provider,
                    "model": model_config.identifier,
                    "healthy": healthy,
                    "circuit_breaker": breaker.state.value if breaker else "closed",
                }
            status[service.value] = tiers
        return status

    async def test_model_connectivity(self, service: ServiceCategory) -> dict[str, Any]:
        """Probe every configured tier of a service, bypassing cached health."""
        service = ServiceCategory(service)
        configuration = await self.selector.get_service_configuration(service)

        results = {}
        for tier, model_config in configuration.tiers():
            healthy = await self.health.probe(service, model_config)
            result = self.health.get_result(self._key(service, model_config))
            results[tier] = {
                "provider": model_config.provider,
                "model": model_config.identifier,
                "healthy": healthy,
                "latency": result.latency if result else None,
                "error": result.error if result else None,
            }
        return results

    def start_health_monitoring(self):
        self.health.start(self.configured_models)

    async def stop_health_monitoring(self):
        await self.health.stop()

    # ------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------

    async def update_model_configuration(
        self,
        service: ServiceCategory,
        tier: str,
        model_config: dict[str, Any],
        persist: bool = False,
    ):
        """Override one tier (primary/fallback/emergency) at runtime."""
        service = ServiceCategory(service)
        if tier not in TIERS:
            raise ValueError(f"Invalid tier: {tier}. Must be one of: {', '.join(TIERS)}")

        parsed = ServiceModelConfig.from_value(model_config)
        key = f"ai.models.{service.value}.{tier}"
        await self.resolver.set_runtime_override(
            key,
            parsed.to_dict(),
            schema={"type": "object", "required": True},
            persist=persist,
        )
        logger.info(f"Updated {tier} model for {service.value}: {parsed.provider}/{parsed.identifier}")

    # ------------------------------------------------------------
    # Metrics and cost
    # ------------------------------------------------------------

    def get_performance_metrics(self) -> dict[str, dict]:
        return self.performance.get_metrics()

    def get_circuit_breaker_states(self) -> dict[str, dict]:
        return self.breakers.get_states()

    async def estimate(self, service: ServiceCategory, usage: Optional[dict[str, Any]] = None) -> CostEstimate:
        return await self.estimator.estimate(service, usage)

    async def estimate_generation_cost(self, duration_seconds: float, **options) -> CostEstimate:
        return await self.estimator.estimate_generation_cost(duration_seconds, **options)

    @staticmethod
    def _key(service: ServiceCategory, model_config: ServiceModelConfig) -> ModelKey:
        return ModelKey.for_config(service, model_config)
