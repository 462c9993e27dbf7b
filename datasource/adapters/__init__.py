"""
Cache store adapters.

- MemoryAdapter: in-process store (default)
- RedisAdapter: Redis-backed store with tag sets

Usage:
======
    from datasource.adapters import get_cache_store

    store = get_cache_store()          # honours DATASOURCE_CACHE_STORE
    store.set("key", value, ttl=60, tags=("repo:Post",))
"""

import functools
from typing import Optional

from datasource.adapters.base import CacheStore
from datasource.adapters.memory_adapter import MemoryAdapter
from datasource.adapters.redis_adapter import RedisAdapter, get_redis_adapter
from datasource.config.settings import Settings, get_settings


@functools.lru_cache(maxsize=1)
def get_memory_adapter() -> MemoryAdapter:
    """Get or create the process-wide memory store."""
    return MemoryAdapter()


def get_cache_store(settings: Optional[Settings] = None) -> CacheStore:
    """
    Select the cache store configured by CACHE_STORE.

    Args:
        settings: Settings to read, defaults to the global settings

    Returns:
        Shared MemoryAdapter or RedisAdapter instance
    """
    settings = settings or get_settings()
    if settings.CACHE_STORE == "redis":
        if settings.REDIS_URL == get_settings().REDIS_URL:
            return get_redis_adapter()
        return RedisAdapter(settings.REDIS_URL)
    return get_memory_adapter()


__all__ = [
    "CacheStore",
    "MemoryAdapter",
    "RedisAdapter",
    "get_cache_store",
    "get_memory_adapter",
    "get_redis_adapter",
]
