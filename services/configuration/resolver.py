"""
Hierarchical Configuration Resolver

Resolves a dot-delimited key against the source chain (highest first):

    1. Runtime overrides        (set programmatically, reversible)
    2. Parameter Store          (/{namespace}/{env}/{key/as/path})
    3. Secrets Manager          (secret-looking keys only)
    4. S3 configuration files   ({env}/{namespace}-config.json)
    5. Environment variables    (KEY_AS_ENV)
    6. Caller default

The first source with a value wins. A source that fails is logged and
skipped. Resolved values are cached per key for the TTL; a valid cache
entry means no source is queried at all.

Usage:
    resolver = ConfigurationResolver(get_config().resolver)

    model = await resolver.get("ai.models.content.primary.model", "claude-3-5-sonnet-20241022")

    await resolver.set_runtime_override("video.defaultDuration", 10, schema={"type": "number"})
    resolver.clear_runtime_override("video.defaultDuration")

    handle = resolver.add_change_listener("video.defaultDuration", on_change)
    handle.remove()
"""

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Optional

from core.config import ResolverSettings

from .cache import ConfigurationCache
from .sources import (
    ParameterStoreSource,
    RuntimeOverrideStore,
    ValueStore,
    build_default_sources,
)
from .validation import SchemaLike, validate_value
from .values import MISSING, ConfigSource

logger = logging.getLogger(__name__)

ChangeListener = Callable[[str, Any], None]


@dataclass
class ResolvedValue:
    """A resolved value and where it came from."""
    key: str
    value: Any
    source: ConfigSource
    cached: bool = False


class ListenerHandle:
    """Subscription returned by add_change_listener."""

    def __init__(self, resolver: "ConfigurationResolver", key: str, callback: ChangeListener):
        self.resolver = resolver
        self.key = key
        self.callback = callback

    def remove(self):
        self.resolver.remove_change_listener(self.key, self.callback)


class ConfigurationResolver:
    """
    Resolves configuration keys through the source precedence chain.

    All state (overrides, cache, listeners) belongs to this instance.
    Separate processes never share it.
    """

    def __init__(
        self,
        settings: Optional[ResolverSettings] = None,
        sources: Optional[list[ValueStore]] = None,
        cache: Optional[ConfigurationCache] = None,
    ):
        self.settings = settings or ResolverSettings()
        self.overrides = RuntimeOverrideStore()
        self.sources = sources if sources is not None else build_default_sources(self.settings)
        self.cache = cache or ConfigurationCache(ttl_seconds=self.settings.cache_ttl_seconds)
        self.cache_enabled = self.settings.cache_enabled

        self._listeners: dict[str, list[ChangeListener]] = {}
        self._listeners_lock = threading.Lock()

        # Bumped whenever a key changes underneath an in-flight resolve
        self._generations: dict[str, int] = {}
        self._epoch = 0
        self._generations_lock = threading.Lock()

        logger.info(
            f"ConfigurationResolver initialized for environment: {self.settings.environment}, "
            f"region: {self.settings.region}"
        )

    @property
    def environment(self) -> str:
        return self.settings.environment

    # ------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------

    async def get(self, key: str, default: Any = None, use_cache: bool = True) -> Any:
        """Get a configuration value, falling back to default."""
        resolved = await self.resolve(key, default, use_cache=use_cache)
        return resolved.value

    async def resolve(self, key: str, default: Any = None, use_cache: bool = True) -> ResolvedValue:
        """Resolve a key and report which source produced the value."""
        caching = self.cache_enabled and use_cache

        if caching:
            entry = self.cache.get(key)
            if entry is not None:
                logger.debug(f"Configuration cache hit for key: {key}")
                return ResolvedValue(key, entry.value, entry.source, cached=True)

        generation = self._generation(key)
        try:
            value, source = await self._load(key)
        except Exception as e:
            logger.error(f"Failed to load configuration for key: {key}: {e}")
            return ResolvedValue(key, default, ConfigSource.DEFAULT)

        if value is MISSING:
            logger.debug(f"Using default value for key: {key}")
            return ResolvedValue(key, default, ConfigSource.DEFAULT)

        if caching and self._generation(key) == generation:
            self.cache.put(key, value, source)

        return ResolvedValue(key, value, source)

    async def _load(self, key: str) -> tuple[Any, ConfigSource]:
        for store in [self.overrides, *self.sources]:
            if not store.handles(key):
                continue
            try:
                value = await store.lookup(key)
            except Exception as e:
                logger.warning(f"Failed to load from {store.source.value}: {key} ({e})")
                continue

            if value is not MISSING:
                logger.info(f"Loaded {key} from {store.source.value}")
                return value, store.source

        return MISSING, ConfigSource.DEFAULT

    async def get_namespace(self, prefix: str) -> dict[str, Any]:
        """
        Bulk-load every key under a prefix from Parameter Store.

        Bypasses the per-key cache. Returns {suffix: value}, or {} when the
        store is unavailable.
        """
        store = self._parameter_store()
        if store is None:
            logger.warning(f"No Parameter Store source configured for namespace: {prefix}")
            return {}

        try:
            return await store.fetch_path(prefix)
        except Exception as e:
            logger.error(f"Failed to load namespace configuration: {prefix}: {e}")
            return {}

    def _generation(self, key: str) -> tuple[int, int]:
        with self._generations_lock:
            return self._epoch, self._generations.get(key, 0)

    def _changed(self, key: str):
        with self._generations_lock:
            self._generations[key] = self._generations.get(key, 0) + 1
        self.cache.invalidate(key)

    def _parameter_store(self) -> Optional[ParameterStoreSource]:
        for store in self.sources:
            if isinstance(store, ParameterStoreSource):
                return store
        return None

    # ------------------------------------------------------------
    # Runtime overrides
    # ------------------------------------------------------------

    async def set_runtime_override(
        self,
        key: str,
        value: Any,
        schema: Optional[SchemaLike] = None,
        persist: bool = False,
    ):
        """
        Set a runtime override for a key.

        Args:
            key: Configuration key
            value: New value
            schema: Optional schema; a failing check raises
                ConfigValidationError and nothing changes
            persist: Also write the value through to Parameter Store
        """
        if schema is not None:
            validate_value(key, value, schema)

        logger.info(f"Setting runtime override for key: {key}")
        self.overrides.set(key, value)
        self._changed(key)
        self._notify(key, value)

        if persist:
            store = self._parameter_store()
            if store is None:
                logger.warning(f"Cannot persist {key}: no Parameter Store source configured")
                return
            try:
                await store.put(key, value)
            except Exception as e:
                logger.error(f"Failed to persist configuration to Parameter Store: {key}: {e}")

    def clear_runtime_override(self, key: str):
        """Remove a runtime override; resolution falls back to the chain."""
        logger.info(f"Clearing runtime override for key: {key}")
        self.overrides.clear(key)
        self._changed(key)
        self._notify(key, None)

    def get_runtime_overrides(self) -> dict[str, Any]:
        return self.overrides.snapshot()

    # ------------------------------------------------------------
    # Change listeners
    # ------------------------------------------------------------

    def add_change_listener(self, key: str, callback: ChangeListener) -> ListenerHandle:
        with self._listeners_lock:
            self._listeners.setdefault(key, []).append(callback)
        return ListenerHandle(self, key, callback)

    def remove_change_listener(self, key: str, callback: ChangeListener):
        with self._listeners_lock:
            listeners = self._listeners.get(key)
            if listeners and callback in listeners:
                listeners.remove(callback)
                if not listeners:
                    del self._listeners[key]

    def _notify(self, key: str, value: Any):
        with self._listeners_lock:
            listeners = list(self._listeners.get(key, []))

        for callback in listeners:
            try:
                callback(key, value)
            except Exception as e:
                logger.error(f"Configuration change listener error for {key}: {e}")

    # ------------------------------------------------------------
    # Cache helpers
    # ------------------------------------------------------------

    def invalidate(self, key: Optional[str] = None):
        """Drop one cached key, or the whole cache."""
        if key is None:
            with self._generations_lock:
                self._epoch += 1
            self.cache.clear()
        else:
            self._changed(key)

    def cache_stats(self) -> dict:
        return self.cache.stats()
