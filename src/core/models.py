# src/core/models.py — v2
"""Core domain models shared across the verification pipeline.

Instructions describe what to check for each WCAG success criterion,
outcomes carry the per-criterion verdicts, and batch results are the unit
of progress reported by the pipeline.
"""

from __future__ import annotations

import hashlib
import json
from enum import Enum
from functools import cached_property
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

WcagLevel = Literal["A", "AA", "AAA"]

CriteriaStatus = Literal[
    "PASS", "FAIL", "AI_VERIFIED_PASS", "AI_VERIFIED_FAIL", "NOT_TESTED"
]

# Cumulative conformance: each level includes every lower level.
LEVEL_INCLUDES: dict[str, frozenset[str]] = {
    "A": frozenset({"A"}),
    "AA": frozenset({"A", "AA"}),
    "AAA": frozenset({"A", "AA", "AAA"}),
}


class ErrorType(str, Enum):
    """Structured classification of an AI invocation failure."""

    RATE_LIMIT = "rate_limit"
    TIMEOUT = "timeout"
    MALFORMED_RESPONSE = "malformed_response"
    PROCESS_CRASH = "process_crash"
    UNKNOWN = "unknown"


# === Instructions ===


class VerificationInstruction(BaseModel):
    """What the AI must check for one success criterion."""

    model_config = ConfigDict(frozen=True)

    criterion_id: str
    title: str
    description: str = ""
    what_to_check: str = ""
    pass_condition: str = ""
    fail_indicators: str = ""
    requires_manual_review: bool = False
    level: WcagLevel


class InstructionSet(BaseModel):
    """Versioned, immutable map of criterion id to instruction."""

    model_config = ConfigDict(frozen=True)

    version: str
    wcag_version: str = "2.2"
    criteria: dict[str, VerificationInstruction] = Field(default_factory=dict)

    @cached_property
    def fingerprint(self) -> str:
        """Short content hash identifying these exact instruction definitions."""
        payload = json.dumps(
            {
                "version": self.version,
                "criteria": {
                    cid: instr.model_dump()
                    for cid, instr in sorted(self.criteria.items())
                },
            },
            sort_keys=True,
        )
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()[:12]

    def __len__(self) -> int:
        return len(self.criteria)


# === Scan inputs ===


class PageContent(BaseModel):
    """A previously downloaded page awaiting verification."""

    scan_id: str
    url: str
    level: WcagLevel = "AA"
    html_content: str
    page_title: str | None = None


class ExistingIssue(BaseModel):
    """Issue found by an earlier, independent analysis pass (e.g. axe-core)."""

    id: str
    rule_id: str | None = None
    wcag_criteria: str | None = None
    impact: str | None = None
    description: str | None = None


# === Outcomes ===


class VerificationOutcome(BaseModel):
    """Verdict for a single criterion."""

    criterion_id: str
    status: CriteriaStatus
    confidence: int = Field(ge=0, le=100)
    reasoning: str
    related_issue_ids: list[str] = Field(default_factory=list)

    @classmethod
    def not_tested(cls, criterion_id: str, cause: str) -> VerificationOutcome:
        """Degraded verdict used whenever a criterion could not be verified."""
        return cls(
            criterion_id=criterion_id,
            status="NOT_TESTED",
            confidence=0,
            reasoning=f"Unable to verify: {cause}",
        )


class BatchVerificationResult(BaseModel):
    """Normalized output of the response parser."""

    criteria_verifications: list[VerificationOutcome] = Field(default_factory=list)


class BatchResult(BaseModel):
    """Result of processing one batch (batch_number is 1-indexed)."""

    batch_number: int
    criteria_verified: int = 0
    outcomes: list[VerificationOutcome] = Field(default_factory=list)
    tokens_used: int = 0
    duration_ms: int = 0
    errors: list[str] = Field(default_factory=list)
    from_cache: bool = False

    @property
    def succeeded(self) -> bool:
        return not self.errors


# === AI invocation ===


class InvocationResult(BaseModel):
    """Outcome of one AI call. Failures are values, not exceptions."""

    success: bool
    output: str | None = None
    error: str | None = None
    error_type: ErrorType | None = None
    duration_ms: int = 0


# === Run summary ===


class VerificationSummary(BaseModel):
    """Aggregate figures for one pipeline invocation."""

    scan_id: str
    level: WcagLevel
    total_batches: int
    processed_batches: int
    skipped_batches: int
    criteria_verified: int
    not_tested: int
    tokens_used: int
    duration_ms: int
    error_count: int
    cache_hits: int
    checkpoint_cleared: bool
