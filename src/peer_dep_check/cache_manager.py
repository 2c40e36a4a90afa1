"""
Cache for registry version listings with TTL-based expiration.

The re-verification loop resolves the same package names on every pass, so
version lists fetched once are reused until they expire.
"""

import time
from collections import OrderedDict
from dataclasses import dataclass
from threading import Lock
from typing import Any, Dict, Optional

from .cli_config import get_config


@dataclass(frozen=True)
class CacheKey:
    """Cache key for registry lookups."""

    package_name: str
    registry_url: str

    def __str__(self) -> str:
        return f"{self.registry_url}:{self.package_name}"


@dataclass
class CacheEntry:
    """Cache entry with TTL."""

    data: Any
    created_at: float
    ttl_seconds: int

    def is_expired(self) -> bool:
        return (time.time() - self.created_at) > self.ttl_seconds


class VersionCache:
    """In-memory LRU cache with per-entry TTL."""

    def __init__(self, max_size: int = 1000, default_ttl_seconds: int = 3600):
        self.max_size = max_size
        self.default_ttl_seconds = default_ttl_seconds
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = Lock()
        self.hits = 0
        self.misses = 0

    def get(self, package_name: str, registry_url: str) -> Optional[Any]:
        key = str(CacheKey(package_name, registry_url))
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or entry.is_expired():
                if entry is not None:
                    del self._entries[key]
                self.misses += 1
                return None

            self._entries.move_to_end(key)
            self.hits += 1
            return entry.data

    def put(
        self,
        package_name: str,
        registry_url: str,
        data: Any,
        ttl_seconds: Optional[int] = None,
    ) -> None:
        cache_key = CacheKey(package_name, registry_url)
        with self._lock:
            self._entries[str(cache_key)] = CacheEntry(
                data=data,
                created_at=time.time(),
                ttl_seconds=self.default_ttl_seconds if ttl_seconds is None else ttl_seconds,
            )
            self._entries.move_to_end(str(cache_key))
            while len(self._entries) > self.max_size:
                self._entries.popitem(last=False)

    def get_stats(self) -> Dict[str, int]:
        return {"entries": len(self._entries), "hits": self.hits, "misses": self.misses}


_global_cache: Optional[VersionCache] = None


def get_cache_manager() -> VersionCache:
    """Get the process-wide version cache, sized from configuration."""
    global _global_cache
    if _global_cache is None:
        performance = get_config().performance
        _global_cache = VersionCache(
            max_size=performance.max_cache_size,
            default_ttl_seconds=performance.cache_ttl_seconds,
        )
    return _global_cache


def reset_cache_manager() -> None:
    """Drop the process-wide cache (useful for testing)."""
    global _global_cache
    _global_cache = None
