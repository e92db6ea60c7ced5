"""
Configuration Resolver Tests

Covers:
1. Value parsing and encoding
2. Key -> source location mapping
3. AWS-backed sources against stubbed boto3 clients
4. Precedence chain, caching and defaults
5. Runtime overrides, validation and change listeners
6. Configuration defaults and factory helpers

Run with:
    python -m pytest tests/test_configuration.py -v
"""

import asyncio
import dataclasses
import io
import json
import os
import sys
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.config import ResolverSettings
from services.configuration import (
    MISSING,
    ConfigSource,
    ConfigValidationError,
    ConfigurationResolver,
    EnvironmentSource,
    ObjectStorageFileSource,
    ParameterStoreSource,
    SecretStoreSource,
    SourceUnavailable,
    ValueStore,
    default_for,
    default_models_for,
    get_ai_model_config,
    parse_config_value,
    update_configuration,
)
from services.configuration.factory import validate_ai_model_config
from services.configuration.values import ConfigValueKind, encode_config_value, value_kind

from conftest import DictStore


def client_error(code: str, operation: str = "Operation") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


class GatedStore(DictStore):
    """DictStore whose lookups wait until released."""

    def __init__(self, source: ConfigSource, values: dict = None):
        super().__init__(source, values)
        self.entered = asyncio.Event()
        self.release = asyncio.Event()

    async def lookup(self, key: str):
        value = await super().lookup(key)
        self.entered.set()
        await self.release.wait()
        return value


class TestValueParsing:
    """Raw source strings become typed values."""

    def test_json_object_and_array(self):
        assert parse_config_value('{"threshold": 3}') == {"threshold": 3}
        assert parse_config_value("[1, 2]") == [1, 2]

    def test_invalid_json_stays_string(self):
        assert parse_config_value("{not json") == "{not json"

    def test_booleans_case_insensitive(self):
        assert parse_config_value("true") is True
        assert parse_config_value("FALSE") is False

    def test_numbers(self):
        assert parse_config_value("42") == 42
        assert isinstance(parse_config_value("42"), int)
        assert parse_config_value("0.80") == 0.8

    def test_other_strings_unchanged(self):
        assert parse_config_value("1.2.3") == "1.2.3"
        assert parse_config_value("-5") == "-5"
        assert parse_config_value("claude-3-5-sonnet-20241022") == "claude-3-5-sonnet-20241022"

    def test_non_strings_unchanged(self):
        assert parse_config_value(7) == 7
        assert parse_config_value({"a": 1}) == {"a": 1}

    def test_encode_is_inverse_of_parse(self):
        assert encode_config_value(True) == "true"
        assert encode_config_value({"a": 1}) == '{"a": 1}'
        assert parse_config_value(encode_config_value(10)) == 10

    def test_value_kind(self):
        assert value_kind(True) == ConfigValueKind.BOOL
        assert value_kind(3) == ConfigValueKind.NUMBER
        assert value_kind({"a": 1}) == ConfigValueKind.OBJECT
        assert value_kind("x") == ConfigValueKind.STRING


class TestSourceKeyMapping:
    """Key -> location conventions for each source."""

    def test_parameter_path(self, settings):
        store = ParameterStoreSource(settings, client=MagicMock())
        assert store.build_parameter_path("ai.models.content") == "/youtube-automation/test/ai/models/content"

    def test_secret_id_strips_prefix(self, settings):
        store = SecretStoreSource(settings, client=MagicMock())
        assert store.build_secret_id("secrets.youtube.api.key") == "youtube-automation-youtube-api-key"

    def test_secret_id_uses_arn_with_account(self):
        settings = ResolverSettings(environment="test", region="us-west-2", aws_account_id="123456789012")
        store = SecretStoreSource(settings, client=MagicMock())
        assert store.build_secret_id("secrets.db.password") == (
            "arn:aws:secretsmanager:us-west-2:123456789012:secret:youtube-automation-db-password"
        )

    def test_secret_store_handles_only_secret_keys(self, settings):
        store = SecretStoreSource(settings, client=MagicMock())
        assert store.handles("secrets.anything")
        assert store.handles("youtube.api.key")
        assert store.handles("auth.token")
        assert not store.handles("video.defaultDuration")

    def test_secret_field_for_long_keys(self):
        assert SecretStoreSource.extract_secret_field("secrets.youtube.api.key") == "key"
        assert SecretStoreSource.extract_secret_field("secrets.db.password") is None

    def test_object_storage_file_name(self, settings):
        store = ObjectStorageFileSource(settings, client=MagicMock())
        assert store.get_config_file_name("ai.models.content") == "test/ai-config.json"

    def test_nested_value(self):
        data = {"models": {"content": {"primary": {"model": "m"}}}}
        assert ObjectStorageFileSource.extract_nested_value(data, ["models", "content", "primary", "model"]) == "m"
        assert ObjectStorageFileSource.extract_nested_value(data, ["models", "video"]) is MISSING

    def test_environment_name(self):
        assert EnvironmentSource.env_name("video.defaultDuration") == "VIDEO_DEFAULTDURATION"


class TestAWSSources:
    """AWS sources against stubbed boto3 clients."""

    @pytest.mark.asyncio
    async def test_parameter_store_hit_is_parsed(self, settings):
        client = MagicMock()
        client.get_parameter.return_value = {"Parameter": {"Value": "42"}}
        store = ParameterStoreSource(settings, client=client)

        assert await store.lookup("video.defaultDuration") == 42
        client.get_parameter.assert_called_once_with(
            Name="/youtube-automation/test/video/defaultDuration", WithDecryption=True
        )

    @pytest.mark.asyncio
    async def test_parameter_not_found_is_missing(self, settings):
        client = MagicMock()
        client.get_parameter.side_effect = client_error("ParameterNotFound")
        store = ParameterStoreSource(settings, client=client)

        assert await store.lookup("video.defaultDuration") is MISSING

    @pytest.mark.asyncio
    async def test_parameter_store_access_denied_is_unavailable(self, settings):
        client = MagicMock()
        client.get_parameter.side_effect = client_error("AccessDeniedException")
        store = ParameterStoreSource(settings, client=client)

        with pytest.raises(SourceUnavailable):
            await store.lookup("video.defaultDuration")

    @pytest.mark.asyncio
    async def test_parameter_store_put_writes_secure_string(self, settings):
        client = MagicMock()
        store = ParameterStoreSource(settings, client=client)

        await store.put("cost.budgets.daily", 12.5)

        client.put_parameter.assert_called_once_with(
            Name="/youtube-automation/test/cost/budgets/daily",
            Value="12.5",
            Type="SecureString",
            Overwrite=True,
        )

    @pytest.mark.asyncio
    async def test_secret_field_extracted_from_json(self, settings):
        client = MagicMock()
        client.get_secret_value.return_value = {"SecretString": '{"key": "abc123"}'}
        store = SecretStoreSource(settings, client=client)

        assert await store.lookup("secrets.youtube.api.key") == "abc123"

    @pytest.mark.asyncio
    async def test_secret_not_found_is_missing(self, settings):
        client = MagicMock()
        client.get_secret_value.side_effect = client_error("ResourceNotFoundException")
        store = SecretStoreSource(settings, client=client)

        assert await store.lookup("secrets.youtube.api.key") is MISSING

    @pytest.mark.asyncio
    async def test_object_storage_nested_lookup(self, settings):
        body = json.dumps({"models": {"content": {"primary": {"model": "gpt-4o-mini"}}}}).encode()
        client = MagicMock()
        client.get_object.return_value = {"Body": io.BytesIO(body)}
        store = ObjectStorageFileSource(settings, client=client)

        assert await store.lookup("ai.models.content.primary.model") == "gpt-4o-mini"
        client.get_object.assert_called_once_with(Bucket="test-config", Key="test/ai-config.json")

    @pytest.mark.asyncio
    async def test_object_storage_missing_file(self, settings):
        client = MagicMock()
        client.get_object.side_effect = client_error("NoSuchKey")
        store = ObjectStorageFileSource(settings, client=client)

        assert await store.lookup("ai.models.content") is MISSING

    @pytest.mark.asyncio
    async def test_environment_lookup(self):
        store = EnvironmentSource(environ={"VIDEO_DEFAULTDURATION": "10"})
        assert await store.lookup("video.defaultDuration") == 10

    def test_store_must_implement_lookup(self):
        class NoLookup(ValueStore):
            source = ConfigSource.ENVIRONMENT_VARIABLE

        with pytest.raises(TypeError):
            ValueStore()
        with pytest.raises(TypeError):
            NoLookup()


class TestResolverPrecedence:
    """First source with a value wins."""

    @pytest.mark.asyncio
    async def test_parameter_store_beats_environment(self, make_resolver):
        resolver = make_resolver(
            DictStore(ConfigSource.PARAMETER_STORE, {"video.quality": "high"}),
            DictStore(ConfigSource.ENVIRONMENT_VARIABLE, {"video.quality": "low"}),
        )

        resolved = await resolver.resolve("video.quality", "medium")
        assert resolved.value == "high"
        assert resolved.source == ConfigSource.PARAMETER_STORE

    @pytest.mark.asyncio
    async def test_lower_sources_not_queried_after_hit(self, make_resolver):
        env = DictStore(ConfigSource.ENVIRONMENT_VARIABLE, {"video.quality": "low"})
        resolver = make_resolver(DictStore(ConfigSource.PARAMETER_STORE, {"video.quality": "high"}), env)

        await resolver.get("video.quality")
        assert env.lookups == []

    @pytest.mark.asyncio
    async def test_runtime_override_wins(self, make_resolver):
        resolver = make_resolver(DictStore(ConfigSource.PARAMETER_STORE, {"video.framerate": 24}))

        await resolver.set_runtime_override("video.framerate", 30)
        resolved = await resolver.resolve("video.framerate")
        assert resolved.value == 30
        assert resolved.source == ConfigSource.RUNTIME_OVERRIDE

    @pytest.mark.asyncio
    async def test_failing_source_is_skipped(self, make_resolver):
        resolver = make_resolver(
            DictStore(ConfigSource.PARAMETER_STORE, fail=True),
            DictStore(ConfigSource.ENVIRONMENT_VARIABLE, {"video.quality": "low"}),
        )

        resolved = await resolver.resolve("video.quality")
        assert resolved.value == "low"
        assert resolved.source == ConfigSource.ENVIRONMENT_VARIABLE

    @pytest.mark.asyncio
    async def test_default_when_nothing_found(self, make_resolver):
        resolver = make_resolver(DictStore(ConfigSource.PARAMETER_STORE, fail=True))

        resolved = await resolver.resolve("video.quality", "medium")
        assert resolved.value == "medium"
        assert resolved.source == ConfigSource.DEFAULT

    @pytest.mark.asyncio
    async def test_default_is_not_cached(self, make_resolver):
        store = DictStore(ConfigSource.PARAMETER_STORE)
        resolver = make_resolver(store)

        assert await resolver.get("video.quality", "medium") == "medium"
        store.values["video.quality"] = "high"
        assert await resolver.get("video.quality", "medium") == "high"

    @pytest.mark.asyncio
    async def test_secret_store_not_asked_for_plain_keys(self, settings, make_resolver):
        client = MagicMock()
        resolver = make_resolver(SecretStoreSource(settings, client=client))

        await resolver.get("video.quality", "medium")
        client.get_secret_value.assert_not_called()


class TestResolverCache:
    """Per-key TTL cache."""

    @pytest.mark.asyncio
    async def test_cache_hit_skips_sources(self, make_resolver):
        store = DictStore(ConfigSource.PARAMETER_STORE, {"video.quality": "high"})
        resolver = make_resolver(store)

        await resolver.get("video.quality")
        resolved = await resolver.resolve("video.quality")

        assert resolved.cached is True
        assert resolved.source == ConfigSource.PARAMETER_STORE
        assert store.lookups == ["video.quality"]

    @pytest.mark.asyncio
    async def test_cache_expires_after_ttl(self, make_resolver, clock):
        store = DictStore(ConfigSource.PARAMETER_STORE, {"video.quality": "high"})
        resolver = make_resolver(store, ttl=300)

        await resolver.get("video.quality")
        store.values["video.quality"] = "low"

        clock.advance(299)
        assert await resolver.get("video.quality") == "high"

        clock.advance(2)
        assert await resolver.get("video.quality") == "low"
        assert len(store.lookups) == 2

    @pytest.mark.asyncio
    async def test_use_cache_false_bypasses(self, make_resolver):
        store = DictStore(ConfigSource.PARAMETER_STORE, {"video.quality": "high"})
        resolver = make_resolver(store)

        await resolver.get("video.quality")
        await resolver.get("video.quality", use_cache=False)
        assert len(store.lookups) == 2

    @pytest.mark.asyncio
    async def test_override_invalidates_cached_value(self, make_resolver):
        resolver = make_resolver(DictStore(ConfigSource.PARAMETER_STORE, {"video.quality": "high"}))

        await resolver.get("video.quality")
        await resolver.set_runtime_override("video.quality", "ultra")
        assert await resolver.get("video.quality") == "ultra"

        resolver.clear_runtime_override("video.quality")
        assert await resolver.get("video.quality") == "high"

    @pytest.mark.asyncio
    async def test_override_during_slow_lookup_is_not_shadowed(self, make_resolver):
        store = GatedStore(ConfigSource.PARAMETER_STORE, {"video.quality": "high"})
        resolver = make_resolver(store)

        pending = asyncio.create_task(resolver.get("video.quality"))
        await store.entered.wait()

        await resolver.set_runtime_override("video.quality", "ultra")
        store.release.set()
        assert await pending == "high"

        assert await resolver.get("video.quality") == "ultra"
        assert resolver.cache_stats()["entries"] == 1

    @pytest.mark.asyncio
    async def test_invalidate_during_slow_lookup_drops_stale_value(self, make_resolver):
        store = GatedStore(ConfigSource.PARAMETER_STORE, {"video.quality": "high"})
        resolver = make_resolver(store)

        pending = asyncio.create_task(resolver.get("video.quality"))
        await store.entered.wait()

        store.values["video.quality"] = "medium"
        resolver.invalidate()
        store.release.set()
        assert await pending == "high"

        assert await resolver.get("video.quality") == "medium"
        assert store.lookups == ["video.quality", "video.quality"]

    @pytest.mark.asyncio
    async def test_cache_stats(self, make_resolver):
        resolver = make_resolver(DictStore(ConfigSource.PARAMETER_STORE, {"video.quality": "high"}))

        await resolver.get("video.quality")
        await resolver.get("video.quality")
        stats = resolver.cache_stats()
        assert stats["entries"] == 1
        assert stats["hits"] == 1


class TestOverridesAndListeners:
    """Runtime overrides and change notification."""

    @pytest.mark.asyncio
    async def test_schema_failure_leaves_no_trace(self, resolver):
        notified = []
        resolver.add_change_listener("video.framerate", lambda k, v: notified.append(v))

        with pytest.raises(ConfigValidationError):
            await resolver.set_runtime_override("video.framerate", "fast", schema={"type": "number"})

        assert resolver.get_runtime_overrides() == {}
        assert notified == []

    @pytest.mark.asyncio
    async def test_enum_schema(self, resolver):
        schema = {"type": "string", "enum": ["conservative", "balanced", "aggressive"]}
        await resolver.set_runtime_override("cost.optimization.aggressiveness", "aggressive", schema=schema)

        with pytest.raises(ConfigValidationError):
            await resolver.set_runtime_override("cost.optimization.aggressiveness", "reckless", schema=schema)

        assert await resolver.get("cost.optimization.aggressiveness") == "aggressive"

    @pytest.mark.asyncio
    async def test_unknown_schema_type_is_a_validation_error(self, resolver):
        with pytest.raises(ConfigValidationError) as exc_info:
            await resolver.set_runtime_override("cost.budgets.daily", 12.5, schema={"type": "decimal"})

        assert exc_info.value.key == "cost.budgets.daily"
        assert resolver.get_runtime_overrides() == {}

    @pytest.mark.asyncio
    async def test_listener_receives_set_and_clear(self, resolver):
        events = []
        resolver.add_change_listener("video.framerate", lambda k, v: events.append((k, v)))

        await resolver.set_runtime_override("video.framerate", 30)
        resolver.clear_runtime_override("video.framerate")

        assert events == [("video.framerate", 30), ("video.framerate", None)]

    @pytest.mark.asyncio
    async def test_throwing_listener_does_not_block_others(self, resolver):
        received = []

        def broken(key, value):
            raise RuntimeError("listener bug")

        resolver.add_change_listener("video.framerate", broken)
        resolver.add_change_listener("video.framerate", lambda k, v: received.append(v))

        await resolver.set_runtime_override("video.framerate", 60)

        assert received == [60]
        assert resolver.get_runtime_overrides() == {"video.framerate": 60}

    @pytest.mark.asyncio
    async def test_handle_remove_stops_delivery(self, resolver):
        received = []
        handle = resolver.add_change_listener("video.framerate", lambda k, v: received.append(v))

        handle.remove()
        await resolver.set_runtime_override("video.framerate", 60)

        assert received == []

    @pytest.mark.asyncio
    async def test_clear_is_idempotent(self, make_resolver):
        resolver = make_resolver(DictStore(ConfigSource.PARAMETER_STORE, {"video.framerate": 24}))

        await resolver.set_runtime_override("video.framerate", 60)
        resolver.clear_runtime_override("video.framerate")
        resolver.clear_runtime_override("video.framerate")

        assert await resolver.get("video.framerate") == 24

    @pytest.mark.asyncio
    async def test_persist_writes_through(self, settings, make_resolver):
        client = MagicMock()
        resolver = make_resolver(ParameterStoreSource(settings, client=client))

        await resolver.set_runtime_override("video.defaultDuration", 10, persist=True)

        client.put_parameter.assert_called_once()
        assert client.put_parameter.call_args.kwargs["Value"] == "10"

    @pytest.mark.asyncio
    async def test_persist_failure_keeps_override(self, settings, make_resolver):
        client = MagicMock()
        client.put_parameter.side_effect = client_error("AccessDeniedException")
        resolver = make_resolver(ParameterStoreSource(settings, client=client))

        await resolver.set_runtime_override("video.defaultDuration", 10, persist=True)
        assert resolver.get_runtime_overrides() == {"video.defaultDuration": 10}


class TestNamespace:
    """Bulk reads from Parameter Store."""

    @pytest.mark.asyncio
    async def test_namespace_values_keyed_by_suffix(self, settings, make_resolver):
        client = MagicMock()
        client.get_paginator.return_value.paginate.return_value = [
            {"Parameters": [{"Name": "/youtube-automation/test/cost/budgets/daily", "Value": "10.5"}]},
            {"Parameters": [{"Name": "/youtube-automation/test/cost/optimization/enabled", "Value": "true"}]},
        ]
        resolver = make_resolver(ParameterStoreSource(settings, client=client))

        values = await resolver.get_namespace("cost")

        assert values == {"budgets/daily": 10.5, "optimization/enabled": True}
        client.get_paginator.return_value.paginate.assert_called_once_with(
            Path="/youtube-automation/test/cost", Recursive=True, WithDecryption=True
        )

    @pytest.mark.asyncio
    async def test_namespace_error_gives_empty(self, settings, make_resolver):
        client = MagicMock()
        client.get_paginator.side_effect = client_error("ThrottlingException")
        resolver = make_resolver(ParameterStoreSource(settings, client=client))

        assert await resolver.get_namespace("cost") == {}

    @pytest.mark.asyncio
    async def test_namespace_without_parameter_store(self, resolver):
        assert await resolver.get_namespace("cost") == {}


class TestFactory:
    """Defaults and convenience helpers."""

    def test_default_for_nested_key(self):
        assert default_for("ai.models.audio.primary.engine") == "generative"
        assert default_for("ai.models.unknown", "x") == "x"

    def test_default_for_returns_copy(self):
        models = default_for("ai.models")
        models["content"]["primary"]["model"] = "changed"
        assert default_for("ai.models.content.primary.model") == "claude-3-5-sonnet-20241022"

    def test_validate_model_config(self):
        validate_ai_model_config("audio", default_for("ai.models.audio"))

        with pytest.raises(ValueError):
            validate_ai_model_config("content", {"fallback": {}})
        with pytest.raises(ValueError):
            validate_ai_model_config("audio", {"primary": {"provider": "polly", "engine": "turbo"}})
        with pytest.raises(ValueError):
            validate_ai_model_config("content", {"primary": {"provider": "anthropic", "model": "gpt-4o"}})

    @pytest.mark.asyncio
    async def test_ai_model_config_falls_back_to_defaults(self, resolver):
        config = await get_ai_model_config(resolver, "video")
        assert config["primary"]["model"] == "amazon.nova-reel-v1:0"

    def test_environment_model_profiles(self):
        staging = default_models_for("audio", "staging")

        assert default_models_for("content", "development")["primary"]["model"] == "claude-3-haiku-20240307"
        assert staging["primary"]["engine"] == "neural"
        assert staging["emergency"]["engine"] == "standard"
        assert default_models_for("video", "development") == default_for("ai.models.video")
        assert default_models_for("content", "production") == default_for("ai.models.content")

    @pytest.mark.asyncio
    async def test_ai_model_config_uses_environment_profile(self, settings):
        resolver = ConfigurationResolver(dataclasses.replace(settings, environment="staging"), sources=[])

        config = await get_ai_model_config(resolver, "content")
        assert config["primary"]["model"] == "claude-3-haiku-20240307"

    @pytest.mark.asyncio
    async def test_update_configuration_key_rules(self, resolver):
        with pytest.raises(ConfigValidationError):
            await update_configuration(resolver, "cost.budgets.daily", -1)
        with pytest.raises(ConfigValidationError):
            await update_configuration(resolver, "video.defaultDuration", 500)
        with pytest.raises(ConfigValidationError):
            await update_configuration(resolver, "features.enableABTesting", "yes")

        await update_configuration(resolver, "features.enableABTesting", False)
        assert await resolver.get("features.enableABTesting") is False

    def test_resolver_builds_default_chain(self, settings):
        resolver = ConfigurationResolver(settings)
        assert [store.source for store in resolver.sources] == [
            ConfigSource.PARAMETER_STORE,
            ConfigSource.SECRET_STORE,
            ConfigSource.OBJECT_STORAGE_FILE,
            ConfigSource.ENVIRONMENT_VARIABLE,
        ]
