"""
Cost estimation from configurable rate tables.

Rates live under cost.rates.<service> and are read through the
ConfigurationResolver, so operators can retune pricing at runtime:

    content: USD per million tokens, keyed by model or provider
    video:   USD per minute of video, keyed by model or provider
    audio:   USD per million characters, keyed by engine

Component estimates round to 4 decimals; a combined generation cost sums
the unrounded components and rounds once to 2 decimals. Both use half-up
rounding.
"""

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field

from services.configuration import ConfigurationResolver, default_for
from services.providers.base import ServiceCategory, ServiceModelConfig

logger = logging.getLogger(__name__)

COMPONENT_PLACES = 4
TOTAL_PLACES = 2

DEFAULT_CONTENT_TOKENS = 1000
DEFAULT_VIDEO_SECONDS = 8
MIN_AUDIO_CHARACTERS = 150
CHARACTERS_PER_SECOND = 18.75

DEFAULT_RATE_KEYS = {
    ServiceCategory.CONTENT: "anthropic",
    ServiceCategory.VIDEO: "bedrock",
    ServiceCategory.AUDIO: "generative",
}


class CostUnit(str, Enum):
    PER_MILLION_TOKENS = "per-million-tokens"
    PER_MINUTE = "per-minute"
    PER_MILLION_CHARS = "per-million-chars"


SERVICE_UNITS = {
    ServiceCategory.CONTENT: CostUnit.PER_MILLION_TOKENS,
    ServiceCategory.VIDEO: CostUnit.PER_MINUTE,
    ServiceCategory.AUDIO: CostUnit.PER_MILLION_CHARS,
}


class UnknownCostRateError(LookupError):
    """No rate configured for a (service, provider/engine) pair."""


@dataclass(frozen=True)
class CostRate:
    service: ServiceCategory
    key: str  # provider, or engine for audio
    unit: CostUnit
    price_per_unit: float


class CostEstimate(BaseModel):
    service: str
    estimated_cost: float
    details: dict[str, Any] = Field(default_factory=dict)


def round_half_up(value: float, places: int) -> float:
    """Round half up: floor(x * 10^n + 0.5) / 10^n."""
    factor = 10 ** places
    return math.floor(value * factor + 0.5) / factor


def estimate_audio_characters(duration_seconds: float) -> float:
    return max(MIN_AUDIO_CHARACTERS, duration_seconds * CHARACTERS_PER_SECOND)


class CostEstimator:
    """Computes per-request cost from the configured rate tables."""

    def __init__(self, resolver: Optional[ConfigurationResolver] = None):
        self.resolver = resolver

    async def get_rate(self, service: ServiceCategory, key: str, fallback: Optional[str] = None) -> CostRate:
        """Rate for key, or for fallback when key has none."""
        service = ServiceCategory(service)
        rates_key = f"cost.rates.{service.value}"
        defaults = default_for(rates_key, {})

        rates = defaults
        if self.resolver is not None:
            rates = await self.resolver.get(rates_key, defaults)
        if not isinstance(rates, dict):
            rates = {}

        for candidate in (key, fallback):
            if candidate is None:
                continue
            price = rates.get(candidate)
            if price is None:
                price = defaults.get(candidate)
            if price is not None:
                return CostRate(service, candidate, SERVICE_UNITS[service], float(price))

        raise UnknownCostRateError(f"No {service.value} cost rate configured for: {key}")

    async def rate_for(self, service: ServiceCategory, model_config: ServiceModelConfig) -> CostRate:
        """Unit rate of one configured tier."""
        service = ServiceCategory(service)
        if service == ServiceCategory.AUDIO:
            return await self.get_rate(service, model_config.engine or model_config.provider)
        return await self.get_rate(service, model_config.model or model_config.provider, fallback=model_config.provider)

    async def estimate(self, service: ServiceCategory, usage: Optional[dict[str, Any]] = None) -> CostEstimate:
        """
        Estimate the cost of one request.

        Usage keys:
            content: tokens (or input_tokens + output_tokens), provider, model
            video:   duration_seconds, provider, model
            audio:   characters or duration_seconds, engine
        """
        service = ServiceCategory(service)
        cost, details = await self._component(service, usage or {})
        return CostEstimate(
            service=service.value,
            estimated_cost=round_half_up(cost, COMPONENT_PLACES),
            details=details,
        )

    async def _component(self, service: ServiceCategory, usage: dict[str, Any]) -> tuple[float, dict[str, Any]]:
        if service == ServiceCategory.CONTENT:
            key = usage.get("provider") or DEFAULT_RATE_KEYS[service]
            tokens = usage.get("tokens")
            if tokens is None and ("input_tokens" in usage or "output_tokens" in usage):
                tokens = usage.get("input_tokens", 0) + usage.get("output_tokens", 0)
            if tokens is None:
                tokens = DEFAULT_CONTENT_TOKENS
            rate = await self.get_rate(service, usage.get("model") or key, fallback=key)
            cost = (tokens / 1_000_000) * rate.price_per_unit
            details = {"provider": key, "tokens": tokens}

        elif service == ServiceCategory.VIDEO:
            key = usage.get("provider") or DEFAULT_RATE_KEYS[service]
            duration = usage.get("duration_seconds", DEFAULT_VIDEO_SECONDS)
            rate = await self.get_rate(service, usage.get("model") or key, fallback=key)
            cost = rate.price_per_unit * (duration / 60)
            details = {"provider": key, "duration_seconds": duration}

        else:
            key = usage.get("engine") or DEFAULT_RATE_KEYS[service]
            duration = usage.get("duration_seconds", 0)
            characters = usage.get("characters")
            if characters is None:
                characters = estimate_audio_characters(duration)
            rate = await self.get_rate(service, key)
            cost = (characters / 1_000_000) * rate.price_per_unit
            details = {"engine": key, "characters": characters, "duration_seconds": duration}

        details.update({"unit": rate.unit.value, "price_per_unit": rate.price_per_unit})
        return cost, details

    async def estimate_generation_cost(
        self,
        duration_seconds: float,
        include_audio: bool = True,
        provider: str = DEFAULT_RATE_KEYS[ServiceCategory.VIDEO],
        engine: str = DEFAULT_RATE_KEYS[ServiceCategory.AUDIO],
        characters: Optional[int] = None,
    ) -> CostEstimate:
        """Combined video (+ narration) cost for one generated video."""
        video_cost, video_details = await self._component(
            ServiceCategory.VIDEO,
            {"provider": provider, "duration_seconds": duration_seconds},
        )
        total = video_cost
        details: dict[str, Any] = {
            "video": {**video_details, "cost": round_half_up(video_cost, COMPONENT_PLACES)},
        }

        if include_audio:
            audio_usage: dict[str, Any] = {"engine": engine, "duration_seconds": duration_seconds}
            if characters is not None:
                audio_usage["characters"] = characters
            audio_cost, audio_details = await self._component(ServiceCategory.AUDIO, audio_usage)
            total += audio_cost
            details["audio"] = {**audio_details, "cost": round_half_up(audio_cost, COMPONENT_PLACES)}

        logger.debug(f"Generation cost for {duration_seconds}s video: {total}")
        return CostEstimate(
            service="generation",
            estimated_cost=round_half_up(total, TOTAL_PLACES),
            details=details,
        )
