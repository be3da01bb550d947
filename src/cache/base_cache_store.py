# src/cache/base_cache_store.py — v2
"""Abstract cache store interface.

Stores are dumb key/value backends for CacheEntry records; TTL policy and
statistics live in VerificationCache. Backend failures are raised as
StorageError, an unreadable entry is reported as absent.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from wcagverify.cache.models import CacheEntry


class BaseCacheStore(ABC):
    """Unified interface for cache storage backends."""

    @abstractmethod
    async def get(self, key: str) -> CacheEntry | None:
        """Retrieve an entry by key id, or None if absent or unreadable."""

    @abstractmethod
    async def put(self, key: str, entry: CacheEntry) -> None:
        """Store an entry, replacing any previous one atomically."""

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Remove an entry. Returns True if something was removed."""

    @abstractmethod
    async def keys(self) -> list[str]:
        """List all stored key ids."""

    @abstractmethod
    async def clear(self) -> None:
        """Remove every entry."""

    def close(self) -> None:
        """Release backend resources (no-op by default)."""
