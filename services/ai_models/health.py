"""
Model health monitoring.

A model is healthy when its circuit breaker admits requests and its most
recent probe (a minimal real request, single attempt) succeeded. Probe
results are cached for the check interval. When a breaker's recovery
timeout has elapsed the cached result is discarded so the half-open trial
probe actually runs.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from core.circuit_breaker import CircuitBreakerOpen
from services.providers.base import ModelKey, ServiceCategory, ServiceModelConfig

from .breakers import CircuitBreakerRegistry
from .invoker import Invoker, ProviderFactory

logger = logging.getLogger(__name__)

HealthTargets = Callable[[], Awaitable[list[tuple[ServiceCategory, ServiceModelConfig]]]]


@dataclass
class HealthResult:
    healthy: bool
    checked_at: float
    latency: Optional[float] = None
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "healthy": self.healthy,
            "checked_at": self.checked_at,
            "latency": self.latency,
            "error": self.error,
        }


class HealthMonitor:
    """Answers "is this model usable right now?"."""

    def __init__(
        self,
        breakers: CircuitBreakerRegistry,
        invoker: Invoker,
        provider_factory: ProviderFactory,
        check_interval: float = 300.0,
        probe_timeout: float = 10.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.breakers = breakers
        self.invoker = invoker
        self.provider_factory = provider_factory
        self.check_interval = check_interval
        self.probe_timeout = probe_timeout
        self._clock = clock

        self._results: dict[ModelKey, HealthResult] = {}
        self._task: Optional[asyncio.Task] = None

    async def is_healthy(self, service: ServiceCategory, model_config: ServiceModelConfig) -> bool:
        key = ModelKey.for_config(service, model_config)

        breaker = self.breakers.peek(key)
        if breaker is not None:
            was_open = breaker.is_open
            if not await breaker.allows_request():
                logger.debug(f"Circuit breaker rejects {key}")
                return False
            if was_open and breaker.is_half_open:
                self._results.pop(key, None)

        cached = self._results.get(key)
        if cached is not None and self._clock() - cached.checked_at < self.check_interval:
            return cached.healthy

        return await self.probe(service, model_config)

    async def probe(self, service: ServiceCategory, model_config: ServiceModelConfig) -> bool:
        """Send the provider's minimal request once and cache the outcome."""
        key = ModelKey.for_config(service, model_config)
        start = self._clock()
        error = None

        try:
            provider = self.provider_factory(service, model_config)
            await self.invoker.call(
                service,
                model_config,
                provider.get_health_check_params(),
                provider=provider,
                max_retries=1,
                timeout=self.probe_timeout,
                validate=provider.validate_response,
            )
            healthy = True
        except CircuitBreakerOpen as e:
            healthy = False
            error = str(e)
        except Exception as e:
            healthy = False
            error = f"{type(e).__name__}: {e}"

        now = self._clock()
        self._results[key] = HealthResult(
            healthy=healthy,
            checked_at=now,
            latency=now - start if healthy else None,
            error=error,
        )

        if healthy:
            logger.info(f"Health check passed: {key}")
        else:
            logger.warning(f"Health check failed: {key}: {error}")
        return healthy

    def get_result(self, key: ModelKey) -> Optional[HealthResult]:
        return self._results.get(key)

    def get_health_snapshot(self) -> dict[str, dict]:
        return {str(key): result.to_dict() for key, result in self._results.items()}

    def clear(self):
        self._results.clear()

    # ------------------------------------------------------------
    # Periodic probing
    # ------------------------------------------------------------

    def start(self, targets: HealthTargets):
        """Probe every configured model once per check interval."""
        if self._task is not None and not self._task.done():
            return
        self._task = asyncio.create_task(self._loop(targets))
        logger.info(f"Health monitoring started (interval: {self.check_interval}s)")

    async def stop(self):
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Health monitoring stopped")

    async def _loop(self, targets: HealthTargets):
        while True:
            try:
                for service, model_config in await targets():
                    await self.probe(service, model_config)
            except Exception as e:
                logger.error(f"Health monitoring pass failed: {e}")
            await asyncio.sleep(self.check_interval)
