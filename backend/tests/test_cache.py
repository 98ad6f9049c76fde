"""
Tests for the in-process caches
"""
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from cachetools import TTLCache
from integrations_hub.utils.cache import cached_function, invalidate_cache, cache_key, count_hourly_hit
from integrations_hub.services.provider_registry import get_providers, seed_providers
from integrations_hub.utils.cache import provider_cache


def test_cache_key_generation():
    """Same arguments, same key"""
    assert cache_key(1, 2, foo="bar") == cache_key(1, 2, foo="bar")
    assert cache_key(1, 2, foo="bar") != cache_key(1, 3, foo="bar")


def test_cached_function_uses_key_func():
    cache = TTLCache(maxsize=10, ttl=60)
    calls = []

    @cached_function(cache, key_func=lambda category=None: f"providers:{category or 'all'}")
    def load(category=None):
        calls.append(category)
        return [category]

    assert load("pos") == ["pos"]
    assert load("pos") == ["pos"]
    assert load() == [None]
    assert calls == ["pos", None]
    assert "providers:pos" in cache

    load.cache_clear()
    assert len(cache) == 0


def test_invalidate_cache_pattern():
    cache = TTLCache(maxsize=10, ttl=60)
    cache["providers:all"] = 1
    cache["providers:pos"] = 2
    cache["other"] = 3

    invalidate_cache(cache, pattern="providers:")

    assert list(cache.keys()) == ["other"]


def test_count_hourly_hit_buckets_by_hour():
    cache = TTLCache(maxsize=10, ttl=3600)
    ten = datetime(2026, 3, 1, 10, 5)
    ten_later = datetime(2026, 3, 1, 10, 55)
    eleven = datetime(2026, 3, 1, 11, 0)

    assert count_hourly_hit("key-a", now=ten, cache=cache) == 1
    assert count_hourly_hit("key-a", now=ten_later, cache=cache) == 2
    assert count_hourly_hit("key-b", now=ten, cache=cache) == 1
    assert count_hourly_hit("key-a", now=eleven, cache=cache) == 1


def test_count_hourly_hit_from_many_threads():
    cache = TTLCache(maxsize=10, ttl=3600)
    now = datetime(2026, 3, 1, 10, 5)

    with ThreadPoolExecutor(max_workers=16) as pool:
        counts = list(pool.map(lambda _: count_hourly_hit("key-a", now=now, cache=cache), range(2000)))

    assert sorted(counts) == list(range(1, 2001))
    assert cache["key-a:2026030110"] == 2000


def test_provider_catalog_is_cached_until_reseeded(db):
    """Catalog reads are served from cache; seeding invalidates it"""
    first = get_providers(db)
    assert "providers:all" in provider_cache

    seed_providers(db, [{
        "id": "provider-lightspeed",
        "name": "Lightspeed",
        "category": "pos",
        "supported_features": ["sales_import"],
    }])

    refreshed = get_providers(db)
    assert len(refreshed) == len(first) + 1
