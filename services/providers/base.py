"""
Provider capability interface.

Every generation provider variant (Anthropic, OpenAI, Bedrock, Luma,
Runway, Polly, ElevenLabs, Azure) implements one method:

    async def invoke(self, params: dict) -> dict

plus the two pieces the health monitor needs: a minimal probe payload and a
structural check of the response. Retry, timing and circuit breaking live
in the Invoker, never here.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, NamedTuple, Optional

import boto3
import httpx
from botocore.exceptions import BotoCoreError, ClientError
from pydantic import BaseModel, ConfigDict, Field

from core.config import APIConfig, get_config

logger = logging.getLogger(__name__)


class ServiceCategory(str, Enum):
    """Independent service categories with their own fallback chains."""
    CONTENT = "content"
    VIDEO = "video"
    AUDIO = "audio"


class ProviderError(Exception):
    """Raised when a provider call fails."""

    def __init__(self, message: str, error_code: str = None, provider: str = None):
        self.error_code = error_code
        self.provider = provider
        super().__init__(message)


# ============================================================
# Models
# ============================================================

_KNOWN_FIELDS = {"provider", "model", "engine", "endpoint", "region", "voiceId", "voice_id"}


class ServiceModelConfig(BaseModel):
    """One tier (primary/fallback/emergency) of a service configuration."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, protected_namespaces=())

    provider: str
    model: Optional[str] = None
    engine: Optional[str] = None  # audio providers select an engine, not a model
    endpoint: Optional[str] = None
    region: Optional[str] = None
    voice_id: Optional[str] = Field(default=None, alias="voiceId")
    tunables: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_value(cls, value: Any) -> "ServiceModelConfig":
        """Build from the camelCase JSON shape stored in configuration."""
        if isinstance(value, ServiceModelConfig):
            return value
        if not isinstance(value, dict):
            raise ValueError(f"Model configuration must be an object, got {type(value).__name__}")

        tunables = {k: v for k, v in value.items() if k not in _KNOWN_FIELDS}
        return cls(
            provider=value.get("provider"),
            model=value.get("model"),
            engine=value.get("engine"),
            endpoint=value.get("endpoint"),
            region=value.get("region"),
            voice_id=value.get("voiceId", value.get("voice_id")),
            tunables=tunables,
        )

    @property
    def identifier(self) -> str:
        """Model name, engine name, or provider, whichever is set first."""
        return self.model or self.engine or self.provider

    def tunable(self, name: str, default: Any = None) -> Any:
        return self.tunables.get(name, default)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"provider": self.provider}
        for name in ("model", "engine", "endpoint", "region"):
            value = getattr(self, name)
            if value is not None:
                data[name] = value
        if self.voice_id is not None:
            data["voiceId"] = self.voice_id
        data.update(self.tunables)
        return data


class ServiceConfiguration(BaseModel):
    """Fallback chain for one service category."""

    model_config = ConfigDict(frozen=True)

    primary: ServiceModelConfig
    fallback: Optional[ServiceModelConfig] = None
    emergency: Optional[ServiceModelConfig] = None

    @classmethod
    def from_value(cls, value: dict) -> "ServiceConfiguration":
        return cls(
            primary=ServiceModelConfig.from_value(value["primary"]),
            fallback=ServiceModelConfig.from_value(value["fallback"]) if value.get("fallback") else None,
            emergency=ServiceModelConfig.from_value(value["emergency"]) if value.get("emergency") else None,
        )

    def tiers(self) -> list[tuple[str, ServiceModelConfig]]:
        """Configured tiers in evaluation order."""
        ordered = [("primary", self.primary), ("fallback", self.fallback), ("emergency", self.emergency)]
        return [(name, config) for name, config in ordered if config is not None]


class ModelKey(NamedTuple):
    """Identity shared by circuit breakers, health results and metrics."""
    service: str
    provider: str
    model: str

    @classmethod
    def for_config(cls, service: Any, config: ServiceModelConfig) -> "ModelKey":
        service_name = service.value if isinstance(service, ServiceCategory) else str(service)
        return cls(service_name, config.provider, config.identifier)

    def __str__(self) -> str:
        return f"{self.service}:{self.provider}:{self.model}"


# ============================================================
# Provider interface
# ============================================================

class ModelProvider(ABC):
    """A single provider variant bound to one model configuration."""

    service: ServiceCategory
    name: str = ""
    health_check_params: dict[str, Any] = {}

    def __init__(
        self,
        model_config: ServiceModelConfig,
        api: Optional[APIConfig] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.model_config = model_config
        self.api = api or get_config().api
        self._http_client = http_client
        self._aws_client = None

    @property
    def key(self) -> ModelKey:
        return ModelKey.for_config(self.service, self.model_config)

    @abstractmethod
    async def invoke(self, params: dict[str, Any]) -> dict[str, Any]:
        """Perform the provider call and return a normalized response."""

    def get_health_check_params(self) -> dict[str, Any]:
        return dict(self.health_check_params)

    def validate_response(self, response: Any) -> bool:
        """Structural check of a response (used by health probes)."""
        return bool(response)

    # ------------------------------------------------------------
    # HTTP helpers
    # ------------------------------------------------------------

    async def _post(
        self,
        url: str,
        headers: dict[str, str],
        json: Any = None,
        content: Any = None,
        timeout: float = 120.0,
    ) -> httpx.Response:
        try:
            if self._http_client is not None:
                response = await self._http_client.post(url, headers=headers, json=json, content=content)
            else:
                async with httpx.AsyncClient(timeout=timeout) as client:
                    response = await client.post(url, headers=headers, json=json, content=content)
            response.raise_for_status()
            return response
        except httpx.TimeoutException as e:
            raise ProviderError(
                f"{self.name} API timeout: {type(e).__name__}",
                error_code="TIMEOUT",
                provider=self.name,
            ) from e
        except httpx.HTTPStatusError as e:
            raise ProviderError(
                f"{self.name} API error: HTTP {e.response.status_code}",
                error_code=f"HTTP_{e.response.status_code}",
                provider=self.name,
            ) from e
        except httpx.RequestError as e:
            raise ProviderError(
                f"{self.name} API request failed: {type(e).__name__}: {e}",
                error_code="REQUEST_ERROR",
                provider=self.name,
            ) from e

    # ------------------------------------------------------------
    # AWS helpers
    # ------------------------------------------------------------

    aws_service: str = ""

    @property
    def aws_client(self):
        if self._aws_client is None:
            region = self.model_config.region or get_config().resolver.region
            self._aws_client = boto3.client(self.aws_service, region_name=region)
        return self._aws_client

    async def _aws_call(self, operation: str, **kwargs) -> dict[str, Any]:
        method = getattr(self.aws_client, operation)
        try:
            return await asyncio.to_thread(method, **kwargs)
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code", "ClientError")
            raise ProviderError(
                f"{self.name} {operation} failed: {code}: {e}",
                error_code=code,
                provider=self.name,
            ) from e
        except BotoCoreError as e:
            raise ProviderError(
                f"{self.name} {operation} failed: {type(e).__name__}: {e}",
                error_code="AWS_ERROR",
                provider=self.name,
            ) from e


class ContentProvider(ModelProvider):
    service = ServiceCategory.CONTENT
    health_check_params = {"prompt": "Health check", "max_tokens": 10}

    def validate_response(self, response: Any) -> bool:
        return isinstance(response, dict) and bool(response.get("content") or response.get("choices"))


class VideoProvider(ModelProvider):
    service = ServiceCategory.VIDEO
    health_check_params = {"prompt": "Health check video", "duration": 1}

    def validate_response(self, response: Any) -> bool:
        return isinstance(response, dict) and bool(response.get("video_url") or response.get("status"))


class AudioProvider(ModelProvider):
    service = ServiceCategory.AUDIO
    health_check_params = {"text": "Health check", "duration": 1}

    def validate_response(self, response: Any) -> bool:
        return isinstance(response, dict) and bool(
            response.get("audio_url") or response.get("task_id") or response.get("audio_base64")
        )
