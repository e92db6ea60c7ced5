"""
TTL cache for resolved configuration values.

An entry is valid while `now - cached_at < ttl`. Entries are dropped
explicitly when a runtime override for the key is set or cleared.
"""

import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

from .values import ConfigSource


@dataclass
class CacheEntry:
    key: str
    value: Any
    source: ConfigSource
    cached_at: float
    ttl: float

    def is_valid(self, now: float) -> bool:
        return now - self.cached_at < self.ttl


class ConfigurationCache:
    """Per-key memoization of resolved values."""

    def __init__(
        self,
        ttl_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    def get(self, key: str) -> Optional[CacheEntry]:
        """Return the valid entry for key, evicting it if expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None
            if not entry.is_valid(self._clock()):
                del self._entries[key]
                self._misses += 1
                return None
            self._hits += 1
            return entry

    def put(self, key: str, value: Any, source: ConfigSource) -> CacheEntry:
        entry = CacheEntry(
            key=key,
            value=value,
            source=source,
            cached_at=self._clock(),
            ttl=self.ttl_seconds,
        )
        with self._lock:
            self._entries[key] = entry
        return entry

    def invalidate(self, key: str):
        with self._lock:
            self._entries.pop(key, None)

    def clear(self):
        with self._lock:
            self._entries.clear()

    def stats(self) -> dict:
        with self._lock:
            return {
                "entries": len(self._entries),
                "hits": self._hits,
                "misses": self._misses,
                "ttl_seconds": self.ttl_seconds,
            }
