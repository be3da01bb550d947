# src/cache/cache_factory.py — v3
"""Factory for cache store instantiation."""

from __future__ import annotations

from pathlib import Path

from wcagverify.cache.base_cache_store import BaseCacheStore
from wcagverify.config.settings import Settings

_DEFAULT_CACHE_ROOT = ".wcagverify/cache"


def create_cache_store(settings: Settings | None = None) -> BaseCacheStore:
    """Instantiate the configured cache backend.

    Args:
        settings: Application settings. Defaults to JSON backend.

    Returns:
        Configured BaseCacheStore implementation.
    """
    backend = "json" if settings is None else settings.cache_backend
    cache_root = Path(_DEFAULT_CACHE_ROOT if settings is None else settings.cache_root)

    if backend == "json":
        from wcagverify.cache.json_store import JsonCacheStore
        return JsonCacheStore(cache_root=cache_root)

    if backend == "sqlite":
        from wcagverify.cache.sqlite_store import DB_FILENAME, SqliteCacheStore
        return SqliteCacheStore(db_path=cache_root / DB_FILENAME)

    if backend == "redis":
        from wcagverify.cache.redis_store import RedisCacheStore
        if settings is None or not settings.cache_redis_url:
            raise ValueError(
                "CACHE_REDIS_URL must be set when CACHE_BACKEND=redis"
            )
        return RedisCacheStore(redis_url=settings.cache_redis_url)

    raise ValueError(f"Unsupported cache backend: {backend!r}")
