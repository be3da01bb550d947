# src/checkpoint/models.py — v1
"""Checkpoint model: durable per-scan progress ledger."""

from __future__ import annotations

from bisect import bisect_left, insort
from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from wcagverify.core.models import VerificationOutcome, WcagLevel


class Checkpoint(BaseModel):
    """Progress of one in-flight scan.

    ``completed_batches`` is kept sorted and duplicate-free; it only grows
    during a scan's lifetime. Outcomes are stored per batch index so that a
    re-executed batch replaces its earlier outcomes instead of duplicating
    them.
    """

    scan_id: str
    url: str
    level: WcagLevel
    total_batches: int = Field(ge=0)
    completed_batches: list[int] = Field(default_factory=list)
    partial_outcomes: dict[int, list[VerificationOutcome]] = Field(default_factory=dict)
    tokens_used: int = 0
    started_at: datetime
    updated_at: datetime

    @field_validator("completed_batches")
    @classmethod
    def _normalize_completed(cls, v: list[int]) -> list[int]:
        return sorted(set(v))

    def is_batch_complete(self, batch_index: int) -> bool:
        """Binary search over the sorted completed-batch list."""
        i = bisect_left(self.completed_batches, batch_index)
        return i < len(self.completed_batches) and self.completed_batches[i] == batch_index

    def add_completed(self, batch_index: int) -> bool:
        """Insert ``batch_index`` keeping order. Returns False if already present."""
        if self.is_batch_complete(batch_index):
            return False
        insort(self.completed_batches, batch_index)
        return True

    def incomplete_batches(self) -> list[int]:
        return [i for i in range(self.total_batches) if not self.is_batch_complete(i)]

    def all_outcomes(self) -> list[VerificationOutcome]:
        """Outcomes of every completed batch, in batch order."""
        outcomes: list[VerificationOutcome] = []
        for batch_index in sorted(self.partial_outcomes):
            outcomes.extend(self.partial_outcomes[batch_index])
        return outcomes

    @property
    def is_complete(self) -> bool:
        return len(self.completed_batches) >= self.total_batches
