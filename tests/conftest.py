"""
Shared fakes for the test suite: a controllable clock, in-memory value
stores and scripted providers.
"""

import os
import sys
from typing import Any

import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.config import APIConfig, Config, ResolverSettings  # noqa: E402
from services.configuration import (  # noqa: E402
    MISSING,
    ConfigSource,
    ConfigurationCache,
    ConfigurationResolver,
    SourceUnavailable,
    ValueStore,
)
from services.providers import ModelProvider, ServiceCategory  # noqa: E402


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class DictStore(ValueStore):
    """In-memory value store that records every lookup."""

    def __init__(self, source: ConfigSource, values: dict = None, fail: bool = False):
        self.source = source
        self.values = dict(values or {})
        self.fail = fail
        self.lookups: list[str] = []

    async def lookup(self, key: str) -> Any:
        self.lookups.append(key)
        if self.fail:
            raise SourceUnavailable(self.source, key, "simulated outage")
        return self.values.get(key, MISSING)


class ScriptedProvider(ModelProvider):
    """
    Provider whose outcomes are scripted per call.

    outcomes: list of responses or exceptions consumed in order; once
    exhausted, `default` is returned (or raised if it is an exception).
    """

    name = "scripted"

    def __init__(self, service: ServiceCategory, model_config, outcomes=None, default=None):
        super().__init__(model_config, api=APIConfig())
        self.service = service
        self.outcomes = list(outcomes or [])
        self.default = default if default is not None else self._valid_response()
        self.calls: list[dict] = []

    def _valid_response(self) -> dict:
        if self.service == ServiceCategory.CONTENT:
            return {"content": "ok", "usage": {"input_tokens": 400, "output_tokens": 600}}
        if self.service == ServiceCategory.VIDEO:
            return {"video_url": "s3://bucket/video.mp4", "status": "started", "duration": 60}
        return {"audio_url": "s3://bucket/audio.mp3", "task_id": "task-1", "characters": 150}

    @property
    def health_check_params(self):
        return {"probe": True}

    def validate_response(self, response: Any) -> bool:
        return isinstance(response, dict) and bool(response)

    async def invoke(self, params: dict) -> Any:
        self.calls.append(params)
        outcome = self.outcomes.pop(0) if self.outcomes else self.default
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


class ScriptedProviderFactory:
    """Provider factory keyed by (provider, model identifier)."""

    def __init__(self):
        self.providers: dict[tuple[str, str], ScriptedProvider] = {}

    def script(self, service: ServiceCategory, model_config, outcomes=None, default=None) -> ScriptedProvider:
        provider = ScriptedProvider(service, model_config, outcomes, default)
        self.providers[(model_config.provider, model_config.identifier)] = provider
        return provider

    def __call__(self, service: ServiceCategory, model_config) -> ScriptedProvider:
        key = (model_config.provider, model_config.identifier)
        if key not in self.providers:
            self.providers[key] = ScriptedProvider(service, model_config)
        return self.providers[key]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> ResolverSettings:
    return ResolverSettings(
        environment="test",
        region="us-east-1",
        app_namespace="youtube-automation",
        config_bucket="test-config",
        aws_account_id="",
        cache_enabled=True,
        cache_ttl_seconds=300,
    )


@pytest.fixture
def make_resolver(settings, clock):
    """Build a resolver over in-memory stores (no AWS)."""

    def _make(*stores: ValueStore, ttl: float = 300) -> ConfigurationResolver:
        return ConfigurationResolver(
            settings,
            sources=list(stores),
            cache=ConfigurationCache(ttl_seconds=ttl, clock=clock),
        )

    return _make


@pytest.fixture
def resolver(make_resolver) -> ConfigurationResolver:
    return make_resolver()


@pytest.fixture
def app_config() -> Config:
    config = Config()
    config.api = APIConfig()
    return config
