"""
AI Model Orchestration

Tiered provider selection, health monitoring, resilient invocation and
cost accounting for the content, video and audio services.
"""

from .breakers import CircuitBreakerRegistry
from .health import HealthMonitor, HealthResult
from .invoker import Invoker, MalformedResponseError
from .manager import AIModelManager, GenerationResult
from .performance import PerformanceMetric, PerformanceTracker
from .selector import ModelSelection, ProviderSelector, ServiceConfigurationError

__all__ = [
    "CircuitBreakerRegistry",
    "HealthMonitor",
    "HealthResult",
    "Invoker",
    "MalformedResponseError",
    "AIModelManager",
    "GenerationResult",
    "PerformanceMetric",
    "PerformanceTracker",
    "ModelSelection",
    "ProviderSelector",
    "ServiceConfigurationError",
]
