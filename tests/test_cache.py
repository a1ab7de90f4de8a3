"""Tests for the multi-level cache."""

import asyncio

import pytest

from services.cache import CacheLevel, MultiLevelCache, get_cache, init_cache


@pytest.fixture
def cache():
    return MultiLevelCache(hot_ttl=30, warm_ttl=300, cold_ttl=3600)


def test_levels_are_separate(cache):
    cache.set("k", 1, CacheLevel.HOT)
    cache.set("k", 2, CacheLevel.COLD)
    assert cache.get("k") == 1
    assert cache.get("k", CacheLevel.COLD) == 2
    assert cache.get("k", CacheLevel.WARM) is None

    cache.invalidate("k")
    assert cache.get("k") is None
    assert cache.get("k", CacheLevel.COLD) is None


def test_invalidate_prefix(cache):
    cache.set("stats:1", "a")
    cache.set("stats:2", "b", CacheLevel.WARM)
    cache.set("promo:1", "c")

    assert cache.invalidate_prefix("stats:") == 2
    assert cache.get("promo:1") == "c"
    assert cache.stats()[CacheLevel.HOT]["size"] == 1


def test_unknown_level(cache):
    with pytest.raises(ValueError):
        cache.get("k", "lukewarm")


@pytest.mark.asyncio
async def test_get_or_set_loads_once(cache):
    calls = 0

    async def loader():
        nonlocal calls
        calls += 1
        await asyncio.sleep(0.01)
        return "value"

    values = await asyncio.gather(*(cache.get_or_set("key", loader) for _ in range(5)))

    assert values == ["value"] * 5
    assert calls == 1


def test_global_cache():
    created = init_cache(1, 2, 3)
    assert get_cache() is created
