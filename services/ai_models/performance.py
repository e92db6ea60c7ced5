"""
Per-model call metrics.

Every invoker attempt is recorded here. Durations count toward the average
only for successful attempts.
"""

import threading
from dataclasses import asdict, dataclass
from typing import Optional

from services.providers.base import ModelKey


@dataclass
class PerformanceMetric:
    total_calls: int = 0
    successful_calls: int = 0
    total_duration_successful: float = 0.0  # seconds

    @property
    def failed_calls(self) -> int:
        return self.total_calls - self.successful_calls

    @property
    def success_rate(self) -> float:
        if self.total_calls == 0:
            return 0.0
        return self.successful_calls / self.total_calls

    @property
    def average_duration(self) -> float:
        if self.successful_calls == 0:
            return 0.0
        return self.total_duration_successful / self.successful_calls

    def to_dict(self) -> dict:
        data = asdict(self)
        data["failed_calls"] = self.failed_calls
        data["success_rate"] = self.success_rate
        data["average_duration"] = self.average_duration
        return data


class PerformanceTracker:
    """Thread-safe metric store keyed by ModelKey."""

    def __init__(self):
        self._metrics: dict[ModelKey, PerformanceMetric] = {}
        self._lock = threading.Lock()

    def record(self, key: ModelKey, success: bool, duration: float):
        with self._lock:
            metric = self._metrics.setdefault(key, PerformanceMetric())
            metric.total_calls += 1
            if success:
                metric.successful_calls += 1
                metric.total_duration_successful += duration

    def get(self, key: ModelKey) -> Optional[PerformanceMetric]:
        with self._lock:
            metric = self._metrics.get(key)
            if metric is None:
                return None
            return PerformanceMetric(**asdict(metric))

    def get_metrics(self) -> dict[str, dict]:
        with self._lock:
            return {str(key): metric.to_dict() for key, metric in self._metrics.items()}

    def reset(self):
        with self._lock:
            self._metrics.clear()
