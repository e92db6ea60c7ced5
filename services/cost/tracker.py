"""
Daily spend tracking with per-environment alert thresholds.

Keeps an in-memory running total per day and per service. Each threshold
level (warning, critical, maximum) raises its recommendation at most once
per day.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CostThresholds:
    warning: float
    critical: float
    maximum: float


DEFAULT_THRESHOLDS = {
    "development": CostThresholds(warning=1.00, critical=2.00, maximum=5.00),
    "staging": CostThresholds(warning=5.00, critical=10.00, maximum=20.00),
    "production": CostThresholds(warning=50.00, critical=100.00, maximum=200.00),
}

STATUS_NORMAL = "normal"
STATUS_WARNING = "warning"
STATUS_CRITICAL = "critical"
STATUS_MAXIMUM = "maximum"


class BudgetExceededError(Exception):
    """Daily spend has reached the environment maximum."""

    def __init__(self, environment: str, daily_spend: float, maximum: float):
        self.environment = environment
        self.daily_spend = daily_spend
        self.maximum = maximum
        super().__init__(
            f"Daily spend ${daily_spend:.2f} reached the {environment} maximum of ${maximum:.2f}"
        )


@dataclass
class CostTrackingResult:
    service: str
    cost: float
    daily_spend: float
    service_spend: float
    status: str
    recommendations: list[dict[str, str]] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)


class CostTracker:
    """Running daily spend for one environment."""

    def __init__(
        self,
        environment: str = "development",
        thresholds: Optional[CostThresholds] = None,
        today: Callable[[], date] = date.today,
    ):
        self.environment = environment
        self.thresholds = thresholds or DEFAULT_THRESHOLDS.get(environment, DEFAULT_THRESHOLDS["development"])
        self._today = today

        self.daily_spend = 0.0
        self.service_spend: dict[str, float] = {}
        self.history: dict[str, dict[str, Any]] = {}
        self._alerts_sent: set[str] = set()
        self._day = today()
        self._lock = threading.Lock()

        logger.info(
            f"CostTracker initialized for {environment} "
            f"(warning=${self.thresholds.warning:.2f}, critical=${self.thresholds.critical:.2f}, "
            f"maximum=${self.thresholds.maximum:.2f})"
        )

    def track_cost(self, service: str, cost: float, metadata: Optional[dict[str, Any]] = None) -> CostTrackingResult:
        """Add a cost and report the resulting threshold status."""
        if isinstance(cost, bool) or not isinstance(cost, (int, float)) or cost < 0:
            raise ValueError(f"Invalid cost value: {cost}. Must be a non-negative number.")

        with self._lock:
            self._roll_day()
            self.daily_spend += cost
            self.service_spend[service] = self.service_spend.get(service, 0.0) + cost
            status = self._status()
            recommendations = self._threshold_alerts(status)
            service_total = self.service_spend[service]
            daily_total = self.daily_spend

        logger.info(
            f"Cost tracked: {service} = ${cost:.4f} | Daily total: ${daily_total:.2f} | "
            f"Service total: ${service_total:.2f}"
        )

        return CostTrackingResult(
            service=service,
            cost=cost,
            daily_spend=daily_total,
            service_spend=service_total,
            status=status,
            recommendations=recommendations,
            metadata=metadata or {},
        )

    def _roll_day(self):
        today = self._today()
        if today != self._day:
            self._archive(self._day)
            self._day = today

    def _status(self) -> str:
        if self.daily_spend >= self.thresholds.maximum:
            return STATUS_MAXIMUM
        if self.daily_spend >= self.thresholds.critical:
            return STATUS_CRITICAL
        if self.daily_spend >= self.thresholds.warning:
            return STATUS_WARNING
        return STATUS_NORMAL

    def _threshold_alerts(self, status: str) -> list[dict[str, str]]:
        if status == STATUS_NORMAL:
            return []

        alert_key = f"{status}_{self._day.isoformat()}"
        if alert_key in self._alerts_sent:
            return []
        self._alerts_sent.add(alert_key)

        total = self.daily_spend
        if status == STATUS_WARNING:
            logger.warning(f"Daily costs reached ${total:.2f} (${self.thresholds.warning:.2f} warning threshold)")
            return [{
                "type": "warning",
                "message": f"Daily costs at ${total:.2f}. Consider using cached responses or reducing test frequency.",
                "action": "Enable aggressive caching and reduce API calls",
            }]
        if status == STATUS_CRITICAL:
            logger.error(f"Daily costs reached ${total:.2f} (${self.thresholds.critical:.2f} critical threshold)")
            return [{
                "type": "critical",
                "message": f"Daily costs exceeded ${self.thresholds.critical:.2f}. Switching to mock responses recommended.",
                "action": "Use mock responses for remaining requests today",
            }]
        logger.error(f"Daily costs reached ${total:.2f} (${self.thresholds.maximum:.2f} maximum exceeded)")
        return [{
            "type": "maximum",
            "message": f"Daily costs exceeded maximum limit of ${self.thresholds.maximum:.2f}. All API calls should be blocked.",
            "action": "Block all API calls until daily reset",
        }]

    def get_spending_status(self) -> str:
        with self._lock:
            self._roll_day()
            return self._status()

    def ensure_within_budget(self) -> str:
        """Return the spending status, raising BudgetExceededError at maximum."""
        with self._lock:
            self._roll_day()
            status = self._status()
            daily_total = self.daily_spend

        if status == STATUS_MAXIMUM:
            raise BudgetExceededError(self.environment, daily_total, self.thresholds.maximum)
        return status

    def get_service_breakdown(self) -> dict[str, dict[str, float]]:
        with self._lock:
            return {
                service: {
                    "amount": amount,
                    "percentage": (amount / self.daily_spend) * 100 if self.daily_spend > 0 else 0.0,
                }
                for service, amount in self.service_spend.items()
            }

    def get_recommendations(self) -> list[dict[str, str]]:
        status = self.get_spending_status()
        recommendations = []

        if status == STATUS_WARNING:
            recommendations.append({
                "type": "optimization",
                "message": "Consider enabling aggressive caching to reduce API calls",
                "priority": "medium",
            })
        elif status == STATUS_CRITICAL:
            recommendations.append({
                "type": "fallback",
                "message": "Switch to mock responses for remaining requests today",
                "priority": "high",
            })
        elif status == STATUS_MAXIMUM:
            recommendations.append({
                "type": "block",
                "message": "Block all API calls until daily reset",
                "priority": "critical",
            })

        if self.environment == "development" and self.daily_spend > 0.50:
            recommendations.append({
                "type": "environment",
                "message": "Use development-sized models (Claude Haiku, standard Polly engine)",
                "priority": "low",
            })

        return recommendations

    def get_cost_summary(self) -> dict[str, Any]:
        return {
            "environment": self.environment,
            "date": self._day.isoformat(),
            "daily_spend": self.daily_spend,
            "thresholds": {
                "warning": self.thresholds.warning,
                "critical": self.thresholds.critical,
                "maximum": self.thresholds.maximum,
            },
            "service_breakdown": self.get_service_breakdown(),
            "status": self.get_spending_status(),
            "recommendations": self.get_recommendations(),
        }

    def reset_daily_spend(self):
        """Archive the current day and start from zero."""
        with self._lock:
            logger.info(f"Resetting daily spend from ${self.daily_spend:.2f} to $0.00")
            self._archive(self._day)
            self._day = self._today()

    def _archive(self, day: date):
        self.history[day.isoformat()] = {
            "total_spend": self.daily_spend,
            "service_breakdown": dict(self.service_spend),
            "environment": self.environment,
        }
        self.daily_spend = 0.0
        self.service_spend.clear()
        self._alerts_sent.clear()
