# src/cache/models.py — v2
"""Cache domain models: CacheKey, CacheEntry, CacheStats."""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict

from wcagverify.core.models import VerificationOutcome, WcagLevel


class CacheKey(BaseModel):
    """Deterministic address of one batch's verification results.

    ``content_hash`` is a one-way hash of the page content; the level, batch
    index and optional instruction-set fingerprint make keys for the same
    content distinct.
    """

    model_config = ConfigDict(frozen=True)

    content_hash: str
    level: WcagLevel
    batch_index: int
    instructions_hash: str = ""

    @property
    def id(self) -> str:
        """Filesystem- and Redis-safe identifier."""
        base = f"{self.content_hash}_{self.level}_{self.batch_index}"
        if self.instructions_hash:
            return f"{base}_{self.instructions_hash}"
        return base


class CacheEntry(BaseModel):
    """Cached outcomes for one batch."""

    key: CacheKey
    outcomes: list[VerificationOutcome]
    tokens_used: int
    model: str
    created_at: datetime
    expires_at: datetime

    def is_expired(self, now: datetime | None = None) -> bool:
        current = now or datetime.now(timezone.utc)
        return current > self.expires_at


class CacheStats(BaseModel):
    """Hit/miss counters for the lifetime of a VerificationCache."""

    hits: int = 0
    misses: int = 0
    hit_rate: float = 0.0
    entries_count: int = 0
    total_saved_tokens: int = 0
