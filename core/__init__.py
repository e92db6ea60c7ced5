"""
Core Components

Process-level building blocks for provider orchestration:
- Settings loaded from the environment
- Circuit breaker for provider resilience
- Feature flags backed by the configuration resolver
"""

from .circuit_breaker import CircuitBreaker, CircuitBreakerConfig, CircuitBreakerOpen, CircuitState
from .config import Config, get_config, reload_config

__all__ = [
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerOpen",
    "CircuitState",
    "Config",
    "get_config",
    "reload_config",
]
