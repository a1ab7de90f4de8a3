"""Multi-level caching layer for computed stats and promotion reads."""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Dict, Optional

from cachetools import TTLCache


class CacheLevel:
    """Cache level configuration."""
    HOT = "hot"
    WARM = "warm"
    COLD = "cold"


class MultiLevelCache:
    """TTL caches in three tiers keyed by string.

    Hot holds summaries that change with every submission, warm holds
    breakdowns, cold holds results that only change on a tally. Writers
    invalidate by key or prefix; readers fill through ``get_or_set`` with a
    per-key lock so concurrent misses load once.
    """

    def __init__(
        self,
        hot_ttl: int,
        warm_ttl: int,
        cold_ttl: int,
        hot_size: int = 1000,
        warm_size: int = 500,
        cold_size: int = 200,
    ) -> None:
        self._tiers: Dict[str, TTLCache] = {
            CacheLevel.HOT: TTLCache(maxsize=hot_size, ttl=hot_ttl),
            CacheLevel.WARM: TTLCache(maxsize=warm_size, ttl=warm_ttl),
            CacheLevel.COLD: TTLCache(maxsize=cold_size, ttl=cold_ttl),
        }
        self._locks: Dict[str, asyncio.Lock] = {}

    def _tier(self, level: str) -> TTLCache:
        try:
            return self._tiers[level]
        except KeyError:
            raise ValueError(f"Unknown cache level: {level}") from None

    def _key_lock(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    def get(self, key: str, level: str = CacheLevel.HOT) -> Optional[Any]:
        return self._tier(level).get(key)

    def set(self, key: str, value: Any, level: str = CacheLevel.HOT) -> None:
        self._tier(level)[key] = value

    async def get_or_set(
        self,
        key: str,
        loader: Callable[[], Awaitable[Any]],
        level: str = CacheLevel.HOT,
    ) -> Any:
        """Return the cached value, loading it at most once per concurrent miss."""
        cache = self._tier(level)
        if key in cache:
            return cache[key]

        async with self._key_lock(key):
            if key in cache:
                return cache[key]
            value = await loader()
            cache[key] = value
            return value

    def invalidate(self, key: str) -> None:
        for cache in self._tiers.values():
            cache.pop(key, None)

    def invalidate_prefix(self, prefix: str) -> int:
        """Drop every key starting with ``prefix``; returns how many were removed."""
        count = 0
        for cache in self._tiers.values():
            for key in [k for k in cache if k.startswith(prefix)]:
                cache.pop(key, None)
                count += 1
        return count

    def clear(self) -> None:
        for cache in self._tiers.values():
            cache.clear()
        self._locks.clear()

    def stats(self) -> Dict[str, Dict[str, Any]]:
        return {
            level: {"size": len(cache), "maxsize": cache.maxsize, "ttl": cache.ttl}
            for level, cache in self._tiers.items()
        }


_cache_instance: Optional[MultiLevelCache] = None


def init_cache(hot_ttl: int, warm_ttl: int, cold_ttl: int) -> MultiLevelCache:
    """Initialize the global cache instance."""
    global _cache_instance
    _cache_instance = MultiLevelCache(hot_ttl=hot_ttl, warm_ttl=warm_ttl, cold_ttl=cold_ttl)
    return _cache_instance


def get_cache() -> MultiLevelCache:
    """Get global cache instance.

    Raises:
        RuntimeError: If cache is not initialized
    """
    if _cache_instance is None:
        raise RuntimeError("Cache is not initialized")
    return _cache_instance
