"""
Configuration defaults and convenience accessors.

DEFAULT_CONFIGURATION is the bottom of every lookup: callers pass
`default_for(key)` as the resolver default so a fresh deployment with no
Parameter Store, S3 files or environment overrides still works.
"""

import copy
import logging
from typing import Any, Optional

from core.config import ResolverSettings, get_config

from .resolver import ConfigurationResolver
from .validation import SchemaLike, validate_key_rules

logger = logging.getLogger(__name__)

VALID_AUDIO_ENGINES = ("generative", "neural", "standard")

DEFAULT_CONFIGURATION: dict[str, Any] = {
    "ai": {
        "models": {
            "content": {
                "primary": {
                    "provider": "anthropic",
                    "model": "claude-3-5-sonnet-20241022",
                    "endpoint": "https://api.anthropic.com",
                    "maxTokens": 4096,
                    "temperature": 0.7,
                },
                "fallback": {
                    "provider": "openai",
                    "model": "gpt-4o-mini",
                    "endpoint": "https://api.openai.com/v1",
                    "maxTokens": 4096,
                    "temperature": 0.7,
                },
            },
            "video": {
                "primary": {
                    "provider": "bedrock",
                    "model": "amazon.nova-reel-v1:0",
                    "region": "us-east-1",
                    "maxDuration": 300,
                },
                "fallback": {
                    "provider": "luma",
                    "model": "luma.ray-v2:0",
                    "region": "us-west-2",
                    "maxDuration": 300,
                },
            },
            "audio": {
                "primary": {
                    "provider": "polly",
                    "engine": "generative",
                    "voiceId": "Ruth",
                    "region": "us-east-1",
                },
                "fallback": {
                    "provider": "polly",
                    "engine": "neural",
                    "voiceId": "Amy",
                    "region": "us-east-1",
                },
                "emergency": {
                    "provider": "polly",
                    "engine": "standard",
                    "voiceId": "Joanna",
                    "region": "us-east-1",
                },
            },
        },
        "circuitBreakers": {
            "default": {"threshold": 5, "timeout": 60},
        },
    },
    "cost": {
        "budgets": {
            "daily": 10.00,
            "monthly": 300.00,
            "perVideo": 0.15,
        },
        "rates": {
            # USD per million tokens, keyed by model or provider
            "content": {
                "claude-3-haiku-20240307": 0.25,
                "anthropic": 3.00,
                "openai": 0.15,
                "bedrock": 3.00,
            },
            # USD per minute of video, keyed by model or provider
            "video": {
                "bedrock": 0.80,
                "luma": 1.50,
                "runway": 3.00,
            },
            # USD per million characters, keyed by engine (or provider)
            "audio": {
                "standard": 4.00,
                "neural": 16.00,
                "generative": 30.00,
                "elevenlabs": 300.00,
                "azure": 16.00,
            },
        },
        "optimization": {
            "enabled": True,
            "aggressiveness": "balanced",  # conservative, balanced, aggressive
            "fallbackThreshold": 0.8,
        },
    },
    "video": {
        "defaultDuration": 8,
        "resolution": "1920x1080",
        "framerate": 24,
        "quality": "high",
        "aspectRatio": "16:9",
        "effects": True,
    },
    "features": {
        "enableGenerativeAI": True,
        "enableAdvancedVideoEffects": False,
        "enableMultiLanguage": False,
        "enableCustomThumbnails": True,
        "enableABTesting": True,
    },
}


def default_for(key: str, fallback: Any = None) -> Any:
    """Look up a dot-delimited key in DEFAULT_CONFIGURATION (deep copy)."""
    current: Any = DEFAULT_CONFIGURATION
    for part in key.split("."):
        if isinstance(current, dict) and part in current:
            current = current[part]
        else:
            return fallback
    return copy.deepcopy(current)


# Cheaper tiers layered over ai.models outside production
ENVIRONMENT_MODEL_PROFILES: dict[str, dict[str, dict[str, Any]]] = {
    "development": {
        "content": {
            "primary": {
                "provider": "anthropic",
                "model": "claude-3-haiku-20240307",
                "endpoint": "https://api.anthropic.com",
                "maxTokens": 4096,
                "temperature": 0.7,
            },
        },
        "audio": {
            "primary": {
                "provider": "polly",
                "engine": "standard",
                "voiceId": "Joanna",
                "region": "us-east-1",
            },
        },
    },
    "staging": {
        "content": {
            "primary": {
                "provider": "anthropic",
                "model": "claude-3-haiku-20240307",
                "endpoint": "https://api.anthropic.com",
                "maxTokens": 4096,
                "temperature": 0.7,
            },
        },
        "audio": {
            "primary": {
                "provider": "polly",
                "engine": "neural",
                "voiceId": "Joanna",
                "region": "us-east-1",
            },
        },
    },
}


def default_models_for(service: str, environment: Optional[str] = None) -> dict[str, Any]:
    """Default ai.models.<service> for an environment."""
    models = default_for(f"ai.models.{service}", {})
    profile = ENVIRONMENT_MODEL_PROFILES.get(environment, {}).get(service, {})
    for tier, value in profile.items():
        models[tier] = copy.deepcopy(value)
    return models


# Resolver instances per environment
_resolvers: dict[str, ConfigurationResolver] = {}


def get_resolver(environment: Optional[str] = None) -> ConfigurationResolver:
    """Get (or create) the resolver for an environment."""
    base = get_config().resolver
    env = environment or base.environment

    if env not in _resolvers:
        settings = ResolverSettings(
            environment=env,
            region=base.region,
            app_namespace=base.app_namespace,
            config_bucket=base.config_bucket,
            aws_account_id=base.aws_account_id,
            cache_enabled=base.cache_enabled,
            cache_ttl_seconds=base.cache_ttl_seconds,
        )
        _resolvers[env] = ConfigurationResolver(settings)

    return _resolvers[env]


def clear_resolvers():
    """Drop all cached resolver instances (used by tests)."""
    _resolvers.clear()


def validate_ai_model_config(service: str, config: Any):
    """Raise ValueError if an ai.models.<service> value is unusable."""
    if not isinstance(config, dict) or not config.get("primary"):
        raise ValueError(f"Invalid AI model configuration for service: {service}")

    primary = config["primary"]
    provider = primary.get("provider")
    if not provider:
        raise ValueError("AI model configuration missing required field: provider")

    if service == "audio":
        engine = primary.get("engine")
        if provider == "polly":
            if not engine:
                raise ValueError("Audio configuration missing required field: engine")
            if engine not in VALID_AUDIO_ENGINES:
                raise ValueError(
                    f"Invalid audio engine: {engine}. Must be one of: {', '.join(VALID_AUDIO_ENGINES)}"
                )
        return

    model = primary.get("model")
    if not model:
        raise ValueError(f"{service} configuration missing required field: model")
    if provider == "anthropic" and not model.startswith("claude-"):
        raise ValueError(f"Invalid Anthropic model: {model}")
    if provider == "openai" and not model.startswith("gpt-"):
        raise ValueError(f"Invalid OpenAI model: {model}")


async def get_ai_model_config(resolver: ConfigurationResolver, service: str) -> dict:
    """Load and validate ai.models.<service>."""
    key = f"ai.models.{service}"
    config = await resolver.get(key, default_models_for(service, resolver.environment))
    validate_ai_model_config(service, config)
    return config


async def get_cost_config(resolver: ConfigurationResolver) -> dict:
    return {
        "budgets": await resolver.get("cost.budgets", default_for("cost.budgets")),
        "rates": await resolver.get("cost.rates", default_for("cost.rates")),
        "optimization": await resolver.get("cost.optimization", default_for("cost.optimization")),
    }


async def get_video_config(resolver: ConfigurationResolver) -> dict:
    video = {}
    for name in DEFAULT_CONFIGURATION["video"]:
        key = f"video.{name}"
        video[name] = await resolver.get(key, default_for(key))
    return video


async def update_configuration(
    resolver: ConfigurationResolver,
    key: str,
    value: Any,
    schema: Optional[SchemaLike] = None,
    validate: bool = True,
    persist: bool = False,
):
    """Apply namespace rules, then set a runtime override."""
    if validate:
        validate_key_rules(key, value)
    await resolver.set_runtime_override(key, value, schema=schema, persist=persist)
