# src/verification/planner.py — v1
"""Select the criteria applicable to a conformance level and split them
into fixed-size, deterministically ordered batches.

Batch indices double as cache-key components and checkpoint entries, so
the same instruction set, level and batch size must always produce the
same partition.
"""

from __future__ import annotations

import logging

from wcagverify.core.models import (
    LEVEL_INCLUDES,
    InstructionSet,
    VerificationInstruction,
    WcagLevel,
)
from wcagverify.verification.errors import InstructionsNotLoadedError

logger = logging.getLogger(__name__)


def criterion_sort_key(criterion_id: str) -> tuple[int, ...]:
    """Numeric segment-wise key: 1.4.10 sorts after 1.4.9."""
    parts: list[int] = []
    for segment in criterion_id.split("."):
        try:
            parts.append(int(segment))
        except ValueError:
            parts.append(0)
    return tuple(parts)


class BatchPlanner:
    """Level filtering and batching over a loaded InstructionSet."""

    def __init__(self, instructions: InstructionSet | None = None) -> None:
        self._instructions = instructions

    @property
    def instructions(self) -> InstructionSet | None:
        return self._instructions

    def load(self, instructions: InstructionSet) -> None:
        self._instructions = instructions

    def filter_by_level(self, level: WcagLevel) -> list[VerificationInstruction]:
        """Criteria at ``level`` or below, sorted by criterion id.

        Raises:
            InstructionsNotLoadedError: If no instruction set is loaded.
        """
        if self._instructions is None:
            raise InstructionsNotLoadedError()
        included = LEVEL_INCLUDES[level]
        selected = [
            instr
            for instr in self._instructions.criteria.values()
            if instr.level in included
        ]
        selected.sort(key=lambda instr: criterion_sort_key(instr.criterion_id))
        return selected

    def create_batches(
        self, level: WcagLevel, batch_size: int
    ) -> list[list[VerificationInstruction]]:
        """Partition ``filter_by_level(level)`` into chunks of ``batch_size``.

        Every batch is full except possibly the last; an empty selection
        yields no batches.
        """
        if batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {batch_size}")
        criteria = self.filter_by_level(level)
        batches = [
            criteria[i : i + batch_size]
            for i in range(0, len(criteria), batch_size)
        ]
        logger.debug(
            "Created %d batches of %d criteria for WCAG Level %s (%d total criteria)",
            len(batches), batch_size, level, len(criteria),
        )
        return batches
