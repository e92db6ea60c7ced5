"""
Per-model circuit breakers.

One CircuitBreaker per ModelKey, created lazily the first time the model
is invoked. Threshold and recovery timeout come from configuration:

    ai.circuitBreakers.{service}.{provider}  -> {"threshold": 3, "timeout": 120}
    ai.circuitBreakers.default               -> {"threshold": 5, "timeout": 60}
"""

import logging
import time
from typing import Any, Callable, Optional

from core.circuit_breaker import CircuitBreaker, CircuitBreakerConfig
from services.configuration import ConfigurationResolver, default_for
from services.providers.base import ModelKey

logger = logging.getLogger(__name__)

DEFAULT_BREAKER_KEY = "ai.circuitBreakers.default"


def breaker_config_from_value(value: Any, base: CircuitBreakerConfig) -> CircuitBreakerConfig:
    """Build a CircuitBreakerConfig from a {"threshold", "timeout"} object."""
    if not isinstance(value, dict):
        return base
    return CircuitBreakerConfig(
        failure_threshold=int(value.get("threshold", base.failure_threshold)),
        recovery_timeout=float(value.get("timeout", base.recovery_timeout)),
    )


class CircuitBreakerRegistry:
    """Owns every model's circuit breaker."""

    def __init__(
        self,
        resolver: Optional[ConfigurationResolver] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.resolver = resolver
        self._clock = clock
        self._breakers: dict[ModelKey, CircuitBreaker] = {}

    def peek(self, key: ModelKey) -> Optional[CircuitBreaker]:
        """Return the breaker for a key without creating it."""
        return self._breakers.get(key)

    async def get_or_create(self, key: ModelKey) -> CircuitBreaker:
        breaker = self._breakers.get(key)
        if breaker is not None:
            return breaker

        config = await self._load_config(key)
        # Another task may have created it while configuration was loading
        breaker = self._breakers.setdefault(key, CircuitBreaker(str(key), config, clock=self._clock))
        if breaker.config is config:
            logger.info(
                f"Created circuit breaker for {key} "
                f"(threshold={config.failure_threshold}, timeout={config.recovery_timeout}s)"
            )
        return breaker

    async def _load_config(self, key: ModelKey) -> CircuitBreakerConfig:
        config = breaker_config_from_value(default_for(DEFAULT_BREAKER_KEY), CircuitBreakerConfig())
        if self.resolver is None:
            return config

        default_value = await self.resolver.get(DEFAULT_BREAKER_KEY, default_for(DEFAULT_BREAKER_KEY))
        config = breaker_config_from_value(default_value, config)

        specific = await self.resolver.get(f"ai.circuitBreakers.{key.service}.{key.provider}")
        return breaker_config_from_value(specific, config)

    def get_states(self) -> dict[str, dict[str, Any]]:
        return {str(key): breaker.get_status() for key, breaker in self._breakers.items()}

    def reset(self, key: Optional[ModelKey] = None):
        """Reset one breaker, or all of them."""
        if key is None:
            for breaker in self._breakers.values():
                breaker.reset()
            return
        breaker = self._breakers.get(key)
        if breaker is not None:
            breaker.reset()

    def __len__(self) -> int:
        return len(self._breakers)
