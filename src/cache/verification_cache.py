# src/cache/verification_cache.py — v2
"""Content-addressed cache of per-batch verification outcomes.

Keys combine a hash of the page content with the conformance level, the
batch index and (optionally) the instruction-set fingerprint, so two scans
of identical pages share results while any change to the content, level or
batch membership misses. Expired entries read as misses; they are only
deleted by the periodic cleanup() pass.
"""

from __future__ import annotations

import hashlib
import logging
from datetime import datetime, timedelta, timezone

from wcagverify.cache.base_cache_store import BaseCacheStore
from wcagverify.cache.models import CacheEntry, CacheKey, CacheStats
from wcagverify.core.models import VerificationOutcome, WcagLevel

logger = logging.getLogger(__name__)

DEFAULT_TTL_DAYS = 7
DEFAULT_MAX_ENTRIES = 1000
CONTENT_HASH_LENGTH = 16


class VerificationCache:
    """TTL-aware cache facade over a BaseCacheStore backend."""

    def __init__(
        self,
        store: BaseCacheStore,
        ttl_days: float = DEFAULT_TTL_DAYS,
        max_entries: int = DEFAULT_MAX_ENTRIES,
    ) -> None:
        self._store = store
        self._ttl = timedelta(days=ttl_days)
        self._ttl_days = ttl_days
        self._max_entries = max_entries
        self._stats = CacheStats()

    # --- Keys ---

    @staticmethod
    def generate_key(
        content: str,
        level: WcagLevel,
        batch_index: int,
        instructions_hash: str = "",
    ) -> CacheKey:
        """Build the deterministic key for one batch of one page."""
        digest = hashlib.sha256(content.encode("utf-8", "surrogatepass")).hexdigest()
        return CacheKey(
            content_hash=digest[:CONTENT_HASH_LENGTH],
            level=level,
            batch_index=batch_index,
            instructions_hash=instructions_hash,
        )

    # --- Read / write ---

    async def get(self, key: CacheKey) -> CacheEntry | None:
        """Return a live entry or None. StorageError propagates to the caller."""
        entry = await self._store.get(key.id)
        if entry is None or entry.is_expired():
            self._record_miss()
            return None
        self._stats.hits += 1
        self._stats.total_saved_tokens += entry.tokens_used
        self._update_hit_rate()
        return entry

    async def has(self, key: CacheKey) -> bool:
        """Check for a live entry without touching hit/miss statistics."""
        entry = await self._store.get(key.id)
        return entry is not None and not entry.is_expired()

    async def set(
        self,
        key: CacheKey,
        outcomes: list[VerificationOutcome],
        tokens_used: int,
        model: str,
    ) -> CacheEntry:
        """Store outcomes for a batch with a fresh TTL."""
        now = datetime.now(timezone.utc)
        entry = CacheEntry(
            key=key,
            outcomes=outcomes,
            tokens_used=tokens_used,
            model=model,
            created_at=now,
            expires_at=now + self._ttl,
        )
        replaces_live = await self.has(key)
        await self._store.put(key.id, entry)
        if not replaces_live:
            self._stats.entries_count += 1
        return entry

    # --- Maintenance ---

    async def warmup(self) -> int:
        """Count live entries so stats reflect the persisted cache."""
        now = datetime.now(timezone.utc)
        valid = 0
        for key_id in await self._store.keys():
            entry = await self._store.get(key_id)
            if entry is not None and not entry.is_expired(now):
                valid += 1
        self._stats.entries_count = valid
        return valid

    async def cleanup(self) -> int:
        """Delete expired and unreadable entries. Returns how many were removed."""
        now = datetime.now(timezone.utc)
        removed = 0
        live = 0
        for key_id in await self._store.keys():
            entry = await self._store.get(key_id)
            if entry is None or entry.is_expired(now):
                if await self._store.delete(key_id):
                    removed += 1
            else:
                live += 1
        self._stats.entries_count = live
        if removed:
            logger.debug("Removed %d expired cache entries", removed)
        return removed

    async def evict_overflow(self) -> int:
        """Drop the oldest entries beyond max_entries. Returns how many were removed."""
        now = datetime.now(timezone.utc)
        entries: list[tuple[datetime, str, bool]] = []
        for key_id in await self._store.keys():
            entry = await self._store.get(key_id)
            if entry is not None:
                entries.append((entry.created_at, key_id, not entry.is_expired(now)))
        overflow = len(entries) - self._max_entries
        if overflow <= 0:
            return 0
        entries.sort()
        removed = 0
        for _, key_id, _ in entries[:overflow]:
            if await self._store.delete(key_id):
                removed += 1
        self._stats.entries_count = sum(1 for _, _, live in entries[overflow:] if live)
        logger.info(
            "Evicted %d oldest cache entries (max_entries=%d)",
            removed, self._max_entries,
        )
        return removed

    async def clear_all(self) -> None:
        """Remove every entry and reset statistics."""
        await self._store.clear()
        self._stats = CacheStats()

    # --- Introspection ---

    def stats(self) -> CacheStats:
        """Snapshot of the current statistics."""
        return self._stats.model_copy()

    @property
    def store(self) -> BaseCacheStore:
        return self._store

    @property
    def ttl_days(self) -> float:
        return self._ttl_days

    @property
    def max_entries(self) -> int:
        return self._max_entries

    def _record_miss(self) -> None:
        self._stats.misses += 1
        self._update_hit_rate()

    def _update_hit_rate(self) -> None:
        total = self._stats.hits + self._stats.misses
        self._stats.hit_rate = self._stats.hits / total if total else 0.0
