"""
Process-level settings for the provider orchestration core.

Centralizes everything that is fixed for the lifetime of a process:
- Where configuration sources live (environment, region, namespace, bucket)
- Cache, health-check and retry defaults
- API keys and endpoints for the generation providers

Values that operators tune at runtime (model tiers, breaker thresholds,
cost rates, feature flags) are NOT here; they are read through the
ConfigurationResolver.
"""

import os
from dataclasses import dataclass, field
from typing import Optional


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


@dataclass
class ResolverSettings:
    """Where and how the ConfigurationResolver looks up values."""
    environment: str = field(default_factory=lambda: os.getenv("ENVIRONMENT", "production"))
    region: str = field(default_factory=lambda: os.getenv("AWS_REGION", "us-east-1"))
    app_namespace: str = field(default_factory=lambda: os.getenv("APP_NAMESPACE", "youtube-automation"))
    config_bucket: str = field(
        default_factory=lambda: os.getenv("CONFIG_BUCKET", "youtube-automation-config")
    )
    aws_account_id: str = field(default_factory=lambda: os.getenv("AWS_ACCOUNT_ID", ""))

    cache_enabled: bool = field(default_factory=lambda: _env_bool("CONFIG_CACHE_ENABLED", "true"))
    cache_ttl_seconds: float = field(
        default_factory=lambda: float(os.getenv("CONFIG_CACHE_TTL", "300"))
    )


@dataclass
class HealthSettings:
    """Health probe cadence."""
    check_interval_seconds: float = 300.0  # 5 minutes
    probe_timeout_seconds: float = 10.0


@dataclass
class RetrySettings:
    """Invoker retry policy (linear backoff: delay * attempt)."""
    max_retries: int = 3
    retry_delay_seconds: float = 1.0


@dataclass
class APIConfig:
    """API configuration for the generation providers."""

    # Content
    anthropic_api_key: str = field(default_factory=lambda: os.getenv("ANTHROPIC_API_KEY", ""))
    anthropic_api_base: str = "https://api.anthropic.com"
    openai_api_key: str = field(default_factory=lambda: os.getenv("OPENAI_API_KEY", ""))
    openai_api_base: str = "https://api.openai.com/v1"

    # Video
    runway_api_key: str = field(default_factory=lambda: os.getenv("RUNWAY_API_KEY", ""))
    runway_api_base: str = "https://api.dev.runwayml.com/v1"

    # Audio
    elevenlabs_api_key: str = field(default_factory=lambda: os.getenv("ELEVENLABS_API_KEY", ""))
    elevenlabs_api_base: str = "https://api.elevenlabs.io/v1"
    azure_speech_key: str = field(default_factory=lambda: os.getenv("AZURE_SPEECH_KEY", ""))
    azure_speech_region: str = field(
        default_factory=lambda: os.getenv("AZURE_SPEECH_REGION", "eastus")
    )

    # Media output for Bedrock / Polly async jobs
    video_bucket: str = field(default_factory=lambda: os.getenv("VIDEO_BUCKET", ""))


@dataclass
class Config:
    """Main configuration class."""

    resolver: ResolverSettings = field(default_factory=ResolverSettings)
    health: HealthSettings = field(default_factory=HealthSettings)
    retry: RetrySettings = field(default_factory=RetrySettings)
    api: APIConfig = field(default_factory=APIConfig)

    # Admin server
    admin_host: str = field(default_factory=lambda: os.getenv("ADMIN_HOST", "0.0.0.0"))
    admin_port: int = field(default_factory=lambda: int(os.getenv("ADMIN_PORT", "8780")))

    @classmethod
    def from_env(cls) -> "Config":
        """Load configuration from environment variables."""
        return cls()

    def validate(self) -> list[str]:
        """Validate configuration and return list of issues."""
        issues = []

        if self.resolver.cache_ttl_seconds <= 0 and self.resolver.cache_enabled:
            issues.append("CONFIG_CACHE_TTL must be positive when caching is enabled")

        if not self.api.anthropic_api_key and not self.api.openai_api_key:
            issues.append("No content provider key configured (ANTHROPIC_API_KEY or OPENAI_API_KEY)")

        if not self.api.video_bucket:
            issues.append("VIDEO_BUCKET not configured (needed for Bedrock video and Polly output)")

        if self.retry.max_retries < 1:
            issues.append("max_retries must be at least 1")

        return issues


# Global config instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = Config.from_env()
    return _config


def reload_config():
    """Reload configuration from environment."""
    global _config
    _config = Config.from_env()
