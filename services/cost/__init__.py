"""
Cost estimation and daily spend tracking.
"""

from .estimator import (
    CostEstimate,
    CostEstimator,
    CostRate,
    CostUnit,
    UnknownCostRateError,
    estimate_audio_characters,
    round_half_up,
)
from .tracker import (
    DEFAULT_THRESHOLDS,
    STATUS_CRITICAL,
    STATUS_MAXIMUM,
    STATUS_NORMAL,
    STATUS_WARNING,
    BudgetExceededError,
    CostThresholds,
    CostTracker,
    CostTrackingResult,
)

__all__ = [
    "CostEstimate",
    "CostEstimator",
    "CostRate",
    "CostUnit",
    "UnknownCostRateError",
    "estimate_audio_characters",
    "round_half_up",
    "DEFAULT_THRESHOLDS",
    "STATUS_CRITICAL",
    "STATUS_MAXIMUM",
    "STATUS_NORMAL",
    "STATUS_WARNING",
    "BudgetExceededError",
    "CostThresholds",
    "CostTracker",
    "CostTrackingResult",
]
