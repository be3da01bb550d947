# src/api/models.py — v2
"""API-level models returned by the public facade."""

from __future__ import annotations

from pydantic import BaseModel, Field

from wcagverify.core.models import (
    BatchResult,
    VerificationOutcome,
    VerificationSummary,
    WcagLevel,
)


class VerificationReport(BaseModel):
    """Per-criterion verification of one page.

    ``outcomes`` covers every criterion applicable to ``level``: verdicts
    recovered from an interrupted run's checkpoint are merged with the
    batches processed by this run.
    """

    scan_id: str
    url: str
    level: WcagLevel
    outcomes: list[VerificationOutcome] = Field(default_factory=list)
    batches: list[BatchResult] = Field(default_factory=list)
    recovered_from_checkpoint: int = 0
    summary: VerificationSummary | None = None

    @property
    def not_tested(self) -> list[VerificationOutcome]:
        return [o for o in self.outcomes if o.status == "NOT_TESTED"]
