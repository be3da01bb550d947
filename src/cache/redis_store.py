# src/cache/redis_store.py — v2
"""Redis-based cache store (CACHE_BACKEND=redis).

Requires 'redis' package: pip install redis.
Suitable for workers on several hosts sharing one cache. Entries carry a
native Redis expiry slightly past their logical TTL so the server reclaims
memory even if cleanup() never runs.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone

from pydantic import ValidationError

from wcagverify.cache.base_cache_store import BaseCacheStore
from wcagverify.cache.models import CacheEntry
from wcagverify.verification.errors import StorageError

logger = logging.getLogger(__name__)

_KEY_PREFIX = "wcagverify:cache:"
_INDEX_KEY = "wcagverify:cache:__index__"

# Grace period beyond expires_at before Redis drops the key itself.
_EXPIRY_GRACE_S = 3600


class RedisCacheStore(BaseCacheStore):
    """Redis-backed cache store for distributed deployments."""

    def __init__(self, redis_url: str) -> None:
        try:
            import redis
        except ImportError as e:
            raise ImportError(
                "redis package required: pip install redis"
            ) from e

        self._errors: tuple[type[BaseException], ...] = (redis.RedisError,)
        self._client = redis.Redis.from_url(redis_url, decode_responses=True)

    async def get(self, key: str) -> CacheEntry | None:
        """Retrieve cache entry by key."""
        try:
            data = self._client.get(f"{_KEY_PREFIX}{key}")
        except self._errors as e:
            raise StorageError(f"Failed to read cache entry {key}: {e}") from e
        if data is None:
            return None
        try:
            return CacheEntry(**json.loads(data))
        except (json.JSONDecodeError, ValidationError, TypeError) as e:
            logger.warning("Failed to deserialize cache entry %s: %s", key, e)
            return None

    async def put(self, key: str, entry: CacheEntry) -> None:
        """Store a cache entry with a native expiry."""
        remaining = (entry.expires_at - datetime.now(timezone.utc)).total_seconds()
        ttl_s = max(1, int(remaining) + _EXPIRY_GRACE_S)
        try:
            self._client.set(f"{_KEY_PREFIX}{key}", entry.model_dump_json(), ex=ttl_s)
            # Index set backs keys(); stale members are pruned by keys().
            self._client.sadd(_INDEX_KEY, key)
        except self._errors as e:
            raise StorageError(f"Failed to write cache entry {key}: {e}") from e

    async def delete(self, key: str) -> bool:
        """Remove a cache entry."""
        try:
            removed = self._client.delete(f"{_KEY_PREFIX}{key}")
            self._client.srem(_INDEX_KEY, key)
        except self._errors as e:
            raise StorageError(f"Failed to delete cache entry {key}: {e}") from e
        return bool(removed)

    async def keys(self) -> list[str]:
        """List live key ids, dropping index members Redis already expired."""
        try:
            members = sorted(self._client.smembers(_INDEX_KEY))
            live: list[str] = []
            for key in members:
                if self._client.exists(f"{_KEY_PREFIX}{key}"):
                    live.append(key)
                else:
                    self._client.srem(_INDEX_KEY, key)
        except self._errors as e:
            raise StorageError(f"Failed to list cache entries: {e}") from e
        return live

    async def clear(self) -> None:
        try:
            for key in self._client.smembers(_INDEX_KEY):
                self._client.delete(f"{_KEY_PREFIX}{key}")
            self._client.delete(_INDEX_KEY)
        except self._errors as e:
            raise StorageError(f"Failed to clear cache: {e}") from e

    def close(self) -> None:
        """Close the Redis connection."""
        self._client.close()
