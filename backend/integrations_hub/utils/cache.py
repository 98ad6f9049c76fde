"""
In-process caches for reference data and per-key request counters
"""
from cachetools import TTLCache
from datetime import datetime
from integrations_hub.utils.helpers import utcnow
from functools import wraps
from typing import Callable, Optional
import json
import hashlib
import threading


# Provider catalog (10 minutes)
provider_cache = TTLCache(maxsize=50, ttl=600)

# API key request counters, one bucket per key per clock hour
api_key_usage_cache = TTLCache(maxsize=10000, ttl=3600)

# Guards api_key_usage_cache; increments come from threadpool workers
_usage_lock = threading.Lock()


def cache_key(*args, **kwargs) -> str:
    """
    Build a cache key from call arguments
    """
    key_data = json.dumps({"args": args, "kwargs": kwargs}, sort_keys=True, default=str)
    return hashlib.md5(key_data.encode()).hexdigest()


def cached_function(cache: TTLCache, key_func: Callable = None):
    """
    Cache a function's results

    Args:
        cache: Cache to use
        key_func: Builds the cache key from the call arguments (optional)
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs):
            # Build the cache key
            if key_func:
                key = key_func(*args, **kwargs)
            else:
                key = cache_key(*args, **kwargs)

            # Cached already?
            if key in cache:
                return cache[key]

            # Run the function and keep the result
            result = func(*args, **kwargs)
            cache[key] = result
            return result

        # Let callers clear the cache
        wrapper.cache_clear = lambda: cache.clear()
        wrapper.cache = cache

        return wrapper
    return decorator


def invalidate_cache(cache: TTLCache, pattern: str = None):
    """
    Drop cached entries

    Args:
        cache: Cache to invalidate
        pattern: Only keys containing this text (optional, everything when None)
    """
    if pattern is None:
        cache.clear()
    else:
        keys_to_delete = [k for k in cache.keys() if pattern in str(k)]
        for key in keys_to_delete:
            del cache[key]


def count_hourly_hit(key_id: str, now: Optional[datetime] = None, cache: TTLCache = None) -> int:
    """Increment and return the request count of a key for the current hour"""
    cache = api_key_usage_cache if cache is None else cache
    now = now or utcnow()
    bucket = f"{key_id}:{now:%Y%m%d%H}"

    with _usage_lock:
        count = cache.get(bucket, 0) + 1
        cache[bucket] = count
    return count
