"""
Admin HTTP Server

FastAPI server for inspecting and tuning a running AIModelManager:
- GET /health - Liveness
- GET /config/overrides - Active runtime overrides
- PUT /config/overrides/{key} - Set a runtime override
- DELETE /config/overrides/{key} - Clear a runtime override
- GET /config/namespace/{prefix} - Bulk read from Parameter Store
- GET /config/{key} - Resolve a key and report its source
- GET /models/health - Health of every configured tier
- GET /models/{service}/selection - Which tier would serve a request now
  (?economy=true previews the cheapest-first choice)
- POST /models/{service}/test - Probe every tier of a service
- PUT /models/{service}/{tier} - Override one model tier
- GET /metrics - Performance metrics, breaker states, cache stats
- POST /cost/estimate - Estimate one request
- POST /cost/generation - Estimate a full video (+ narration)
- GET /cost/summary - Daily spend summary
- GET /features - Feature flags

Usage:
    python main.py server
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from core.feature_flags import get_feature_flags
from services.ai_models import AIModelManager, ServiceConfigurationError
from services.configuration import ConfigValidationError, update_configuration
from services.cost import UnknownCostRateError
from services.providers import ProviderError, ServiceCategory

logger = logging.getLogger(__name__)


# Request Models
class OverrideRequest(BaseModel):
    """Runtime override for one configuration key."""
    value: Any
    value_schema: Optional[dict[str, Any]] = Field(default=None, alias="schema")
    persist: bool = False
    validate_rules: bool = Field(default=True, alias="validate")


class EstimateRequest(BaseModel):
    service: str
    usage: dict[str, Any] = Field(default_factory=dict)


class GenerationEstimateRequest(BaseModel):
    duration_seconds: float
    include_audio: bool = True
    provider: str = "bedrock"
    engine: str = "generative"
    characters: Optional[int] = None


def _service(name: str) -> ServiceCategory:
    try:
        return ServiceCategory(name)
    except ValueError:
        raise HTTPException(status_code=404, detail=f"Unknown service: {name}")


def create_app(manager: Optional[AIModelManager] = None, monitor_health: bool = False) -> FastAPI:
    """Build the admin app around a manager (one is created when omitted)."""
    manager = manager or AIModelManager()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"Starting admin server for environment: {manager.resolver.environment}")
        if monitor_health:
            manager.start_health_monitoring()
        yield
        logger.info("Shutting down admin server...")
        if monitor_health:
            await manager.stop_health_monitoring()

    app = FastAPI(
        title="Provider Orchestration Admin API",
        description="Configuration overrides, model health and cost inspection",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.manager = manager
    resolver = manager.resolver

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "environment": resolver.environment,
            "timestamp": datetime.utcnow().isoformat(),
        }

    # ------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------

    @app.get("/config/overrides")
    async def list_overrides():
        return {"overrides": resolver.get_runtime_overrides()}

    @app.put("/config/overrides/{key}")
    async def set_override(key: str, request: OverrideRequest):
        try:
            await update_configuration(
                resolver,
                key,
                request.value,
                schema=request.value_schema,
                validate=request.validate_rules,
                persist=request.persist,
            )
        except ConfigValidationError as e:
            raise HTTPException(status_code=422, detail=str(e))
        return {"key": key, "value": request.value, "source": "runtime_override"}

    @app.delete("/config/overrides/{key}")
    async def clear_override(key: str):
        resolver.clear_runtime_override(key)
        return {"key": key, "cleared": True}

    @app.get("/config/namespace/{prefix:path}")
    async def get_namespace(prefix: str):
        return {"prefix": prefix, "values": await resolver.get_namespace(prefix)}

    @app.get("/config/{key}")
    async def get_config_value(key: str):
        resolved = await resolver.resolve(key)
        return {
            "key": resolved.key,
            "value": resolved.value,
            "source": resolved.source.value,
            "cached": resolved.cached,
        }

    # ------------------------------------------------------------
    # Models
    # ------------------------------------------------------------

    @app.get("/models/health")
    async def models_health():
        return await manager.get_model_health_status()

    @app.get("/models/{service}/selection")
    async def model_selection(service: str, economy: bool = False):
        try:
            selection = await manager.select_model(_service(service), {"economy": True} if economy else None)
        except (ServiceConfigurationError, ProviderError) as e:
            raise HTTPException(status_code=500, detail=str(e))
        return selection.to_dict()

    @app.post("/models/{service}/test")
    async def test_models(service: str):
        try:
            return await manager.test_model_connectivity(_service(service))
        except ServiceConfigurationError as e:
            raise HTTPException(status_code=500, detail=str(e))

    @app.put("/models/{service}/{tier}")
    async def update_model(service: str, tier: str, model_config: dict[str, Any]):
        try:
            await manager.update_model_configuration(_service(service), tier, model_config)
        except ValueError as e:
            raise HTTPException(status_code=422, detail=str(e))
        return {"service": service, "tier": tier, "updated": True}

    @app.get("/metrics")
    async def metrics():
        return {
            "performance": manager.get_performance_metrics(),
            "circuit_breakers": manager.get_circuit_breaker_states(),
            "configuration_cache": resolver.cache_stats(),
        }

    # ------------------------------------------------------------
    # Cost
    # ------------------------------------------------------------

    @app.post("/cost/estimate")
    async def estimate_cost(request: EstimateRequest):
        try:
            estimate = await manager.estimate(_service(request.service), request.usage)
        except UnknownCostRateError as e:
            raise HTTPException(status_code=422, detail=str(e))
        return estimate.model_dump()

    @app.post("/cost/generation")
    async def estimate_generation(request: GenerationEstimateRequest):
        try:
            estimate = await manager.estimate_generation_cost(
                request.duration_seconds,
                include_audio=request.include_audio,
                provider=request.provider,
                engine=request.engine,
                characters=request.characters,
            )
        except UnknownCostRateError as e:
            raise HTTPException(status_code=422, detail=str(e))
        return estimate.model_dump()

    @app.get("/cost/summary")
    async def cost_summary():
        return manager.cost_tracker.get_cost_summary()

    @app.get("/features")
    async def features():
        return await get_feature_flags(resolver)

    return app
