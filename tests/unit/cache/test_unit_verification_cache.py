# tests/unit/cache/test_unit_verification_cache.py — v2
"""Tests for cache/verification_cache.py — keys, TTL, stats and maintenance."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from fakes import make_cache_entry
from wcagverify.cache.json_store import JsonCacheStore
from wcagverify.cache.models import CacheKey
from wcagverify.cache.verification_cache import CONTENT_HASH_LENGTH, VerificationCache
from wcagverify.core.models import VerificationOutcome


@pytest.fixture
def cache(tmp_path):
    return VerificationCache(JsonCacheStore(tmp_path), ttl_days=7, max_entries=3)


@pytest.fixture
def outcomes():
    return [VerificationOutcome(
        criterion_id="1.1.1", status="AI_VERIFIED_FAIL", confidence=80, reasoning="no alt"
    )]


class TestGenerateKey:
    def test_deterministic(self):
        a = VerificationCache.generate_key("<html>", "AA", 0)
        b = VerificationCache.generate_key("<html>", "AA", 0)
        assert a == b
        assert a.id == b.id
        assert len(a.content_hash) == CONTENT_HASH_LENGTH

    def test_components_distinguish_keys(self):
        base = VerificationCache.generate_key("<html>", "AA", 0)
        assert base.id != VerificationCache.generate_key("<html>!", "AA", 0).id
        assert base.id != VerificationCache.generate_key("<html>", "A", 0).id
        assert base.id != VerificationCache.generate_key("<html>", "AA", 1).id
        assert base.id != VerificationCache.generate_key("<html>", "AA", 0, "v2").id

    def test_content_not_in_key(self):
        key = VerificationCache.generate_key("secret page body", "AA", 0)
        assert "secret" not in key.id

    def test_id_format(self):
        key = CacheKey(content_hash="abc", level="AA", batch_index=2)
        assert key.id == "abc_AA_2"
        assert key.model_copy(update={"instructions_hash": "f00"}).id == "abc_AA_2_f00"

    def test_lone_surrogate_in_content(self):
        key = VerificationCache.generate_key("<html>\ud800</html>", "A", 0)
        assert len(key.content_hash) == CONTENT_HASH_LENGTH
        assert key.id != VerificationCache.generate_key("<html></html>", "A", 0).id


class TestGetSet:
    @pytest.mark.asyncio
    async def test_set_then_get(self, cache, outcomes):
        key = cache.generate_key("<html>", "A", 0)
        await cache.set(key, outcomes, 500, "model-x")
        entry = await cache.get(key)
        assert entry.outcomes == outcomes
        assert entry.tokens_used == 500
        assert entry.model == "model-x"
        assert entry.expires_at - entry.created_at == timedelta(days=7)

    @pytest.mark.asyncio
    async def test_stats(self, cache, outcomes):
        key = cache.generate_key("<html>", "A", 0)
        assert await cache.get(key) is None
        await cache.set(key, outcomes, 500, "m")
        await cache.get(key)
        stats = cache.stats()
        assert stats.hits == 1
        assert stats.misses == 1
        assert stats.hit_rate == 0.5
        assert stats.total_saved_tokens == 500

    @pytest.mark.asyncio
    async def test_expired_entry_is_miss_but_kept(self, cache):
        past = datetime.now(timezone.utc) - timedelta(days=10)
        entry = make_cache_entry(created_at=past)
        await cache.store.put(entry.key.id, entry)
        assert await cache.get(entry.key) is None
        assert not await cache.has(entry.key)
        assert await cache.store.keys() == [entry.key.id]

    @pytest.mark.asyncio
    async def test_overwrite_counts_once(self, cache, outcomes):
        key = cache.generate_key("<html>", "A", 0)
        await cache.set(key, outcomes, 1, "m")
        await cache.set(key, outcomes, 2, "m")
        assert cache.stats().entries_count == 1
        assert (await cache.get(key)).tokens_used == 2

    @pytest.mark.asyncio
    async def test_has_does_not_touch_stats(self, cache, outcomes):
        key = cache.generate_key("<html>", "A", 0)
        await cache.set(key, outcomes, 1, "m")
        assert await cache.has(key)
        assert cache.stats().hits == 0


class TestMaintenance:
    @pytest.mark.asyncio
    async def test_cleanup_removes_expired(self, cache):
        past = datetime.now(timezone.utc) - timedelta(days=10)
        stale = make_cache_entry(0, created_at=past)
        fresh = make_cache_entry(1)
        await cache.store.put(stale.key.id, stale)
        await cache.store.put(fresh.key.id, fresh)
        assert await cache.cleanup() == 1
        assert await cache.store.keys() == [fresh.key.id]

    @pytest.mark.asyncio
    async def test_warmup_counts_live(self, cache):
        past = datetime.now(timezone.utc) - timedelta(days=10)
        for entry in (make_cache_entry(0, created_at=past), make_cache_entry(1), make_cache_entry(2)):
            await cache.store.put(entry.key.id, entry)
        assert await cache.warmup() == 2
        assert cache.stats().entries_count == 2

    @pytest.mark.asyncio
    async def test_warmup_then_cleanup_counts_remaining(self, cache):
        past = datetime.now(timezone.utc) - timedelta(days=10)
        for i in range(5):
            await cache.store.put(f"live-{i}", make_cache_entry(i))
        for i in range(3):
            await cache.store.put(f"stale-{i}", make_cache_entry(10 + i, created_at=past))
        assert await cache.warmup() == 5
        assert await cache.cleanup() == 3
        assert cache.stats().entries_count == 5
        assert len(await cache.store.keys()) == 5

    @pytest.mark.asyncio
    async def test_evict_overflow_recounts(self, cache):
        for i in range(5):
            await cache.store.put(f"k{i}", make_cache_entry(i))
        await cache.warmup()
        assert await cache.evict_overflow() == 2
        assert cache.stats().entries_count == 3

    @pytest.mark.asyncio
    async def test_evict_overflow_drops_oldest(self, cache):
        now = datetime.now(timezone.utc)
        entries = [make_cache_entry(i, created_at=now - timedelta(hours=5 - i)) for i in range(5)]
        for entry in entries:
            await cache.store.put(entry.key.id, entry)
        assert await cache.evict_overflow() == 2
        remaining = await cache.store.keys()
        assert sorted(remaining) == sorted(e.key.id for e in entries[2:])

    @pytest.mark.asyncio
    async def test_evict_under_limit(self, cache):
        await cache.store.put("k", make_cache_entry())
        assert await cache.evict_overflow() == 0

    @pytest.mark.asyncio
    async def test_clear_all(self, cache, outcomes):
        key = cache.generate_key("<html>", "A", 0)
        await cache.set(key, outcomes, 1, "m")
        await cache.get(key)
        await cache.clear_all()
        assert await cache.store.keys() == []
        assert cache.stats().hits == 0

    def test_properties(self, cache):
        assert cache.ttl_days == 7
        assert cache.max_entries == 3
        assert isinstance(cache.store, JsonCacheStore)
