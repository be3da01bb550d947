# src/verification/orchestrator.py — v1
"""Drive the criteria verification of one scanned page.

Batches are processed strictly sequentially, paced by a configurable delay,
and recorded in a per-scan checkpoint so an interrupted run resumes with
only the batches it has not completed. The checkpoint is removed once every
batch of the scan is accounted for.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable

from wcagverify.cache.verification_cache import VerificationCache
from wcagverify.checkpoint.models import Checkpoint
from wcagverify.checkpoint.store import CheckpointStore
from wcagverify.config.settings import PipelineOptions
from wcagverify.core.models import (
    BatchResult,
    ExistingIssue,
    InstructionSet,
    PageContent,
    VerificationInstruction,
    VerificationSummary,
    WcagLevel,
)
from wcagverify.llm.retry import SleepFn
from wcagverify.logging.context import (
    clear_batch_context,
    clear_context,
    set_batch_context,
    set_scan_context,
)
from wcagverify.verification.errors import StorageError
from wcagverify.verification.executor import BatchExecutor
from wcagverify.verification.planner import BatchPlanner

logger = logging.getLogger(__name__)

InstructionLoaderFn = Callable[[], InstructionSet]


class CriteriaVerificationPipeline:
    """Resumable, cache-first batch verification pipeline.

    Collaborators are injected; see ``wcagverify.api.facade.build_pipeline``
    for the default wiring from settings.
    """

    def __init__(
        self,
        executor: BatchExecutor,
        instruction_loader: InstructionLoaderFn,
        cache: VerificationCache | None = None,
        checkpoints: CheckpointStore | None = None,
        options: PipelineOptions | None = None,
        include_instruction_version_in_cache_key: bool = True,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self._executor = executor
        self._load_instructions = instruction_loader
        self._cache = cache
        self._checkpoints = checkpoints
        self._options = options or executor.options
        self._include_instruction_version = include_instruction_version_in_cache_key
        self._sleep = sleep
        self._planner = BatchPlanner()
        self._last_summary: VerificationSummary | None = None

    # --- Lifecycle ---

    async def initialize(self) -> None:
        """Load instructions, warm the cache and purge expired entries.

        Must be called once before any batch processing.
        """
        logger.info("Initializing criteria verification pipeline")
        instructions = self._load_instructions()
        self._planner.load(instructions)
        if self._include_instruction_version:
            self._executor.instructions_hash = instructions.fingerprint
        logger.debug(
            "Loaded %d criteria instructions (version %s, fingerprint %s)",
            len(instructions), instructions.version, instructions.fingerprint,
        )

        if self._cache is not None:
            try:
                count = await self._cache.warmup()
                logger.debug("Cache warmed up with %d entries", count)
                cleaned = await self._cache.cleanup()
                if cleaned:
                    logger.debug("Cleaned up %d expired cache entries", cleaned)
                await self._cache.evict_overflow()
            except StorageError as e:
                logger.warning("Cache maintenance failed, continuing: %s", e)

        logger.info("Criteria verification pipeline initialized")

    # --- Accessors ---

    @property
    def cache(self) -> VerificationCache | None:
        return self._cache

    @property
    def checkpoints(self) -> CheckpointStore | None:
        return self._checkpoints

    @property
    def options(self) -> PipelineOptions:
        return self._options

    @property
    def instructions(self) -> InstructionSet | None:
        return self._planner.instructions

    @property
    def planner(self) -> BatchPlanner:
        return self._planner

    @property
    def last_summary(self) -> VerificationSummary | None:
        """Summary of the most recent process_criteria_batches() run."""
        return self._last_summary

    # --- Planning ---

    def create_batches(self, level: WcagLevel) -> list[list[VerificationInstruction]]:
        return self._planner.create_batches(level, self._options.batch_size)

    # --- Processing ---

    async def process_single_batch(
        self,
        batch_index: int,
        criteria: list[VerificationInstruction],
        page: PageContent,
        existing_issue_ids: list[str],
        scan_id: str,
        level: WcagLevel,
    ) -> BatchResult:
        return await self._executor.process_single_batch(
            batch_index, criteria, page, existing_issue_ids, scan_id, level
        )

    async def process_criteria_batches(
        self,
        page: PageContent,
        existing_issues: list[ExistingIssue],
        level: WcagLevel,
    ) -> list[BatchResult]:
        """Verify every criterion applicable to ``level`` for ``page``.

        Returns only the batches processed by this call; batches recovered
        from a checkpoint are skipped and their outcomes stay in the
        checkpoint.

        Raises:
            InstructionsNotLoadedError: If initialize() has not been called.
        """
        scan_id = page.scan_id
        existing_issue_ids = [issue.id for issue in existing_issues]
        set_scan_context(scan_id, level)
        try:
            logger.info(
                "Starting criteria batch processing for scan %s at WCAG Level %s",
                scan_id, level,
            )
            logger.debug("Found %d existing issues", len(existing_issue_ids))

            batches = self.create_batches(level)
            total = len(batches)
            if total == 0:
                logger.warning("No criteria batches to process")
                return []
            logger.info("Created %d batches for processing", total)

            completed = await self._load_or_init_checkpoint(page, level, total)

            results: list[BatchResult] = []
            processed = 0
            skipped = 0
            for batch_index, criteria in enumerate(batches):
                if batch_index in completed:
                    logger.debug(
                        "Skipping batch %d/%d (already completed)", batch_index + 1, total
                    )
                    skipped += 1
                    continue

                if processed > 0 and self._options.delay_between_batches_ms > 0:
                    logger.debug(
                        "Waiting %dms before next batch",
                        self._options.delay_between_batches_ms,
                    )
                    await self._sleep(self._options.delay_between_batches_ms / 1000)

                set_batch_context(batch_index + 1, total)
                logger.info(
                    "Processing batch %d/%d (%d criteria)",
                    batch_index + 1, total, len(criteria),
                )
                try:
                    result = await self._executor.process_single_batch(
                        batch_index, criteria, page, existing_issue_ids, scan_id, level
                    )
                except Exception as e:
                    logger.exception("Batch %d failed unexpectedly", batch_index + 1)
                    result = BatchResult(
                        batch_number=batch_index + 1,
                        errors=[str(e) or type(e).__name__],
                    )
                finally:
                    clear_batch_context()

                if result.errors:
                    logger.warning(
                        "Batch %d completed with %d error(s)",
                        batch_index + 1, len(result.errors),
                    )
                results.append(result)
                processed += 1

            logger.info(
                "Processed %d batches, skipped %d (of %d)", processed, skipped, total
            )
            cleared = False
            if skipped + processed == total:
                cleared = await self._clear_checkpoint(scan_id)

            summary = self.summarize(results, scan_id, level, total, skipped, cleared)
            self._last_summary = summary
            logger.info(
                "Verification finished: %d criteria, %d NOT_TESTED, %d tokens, %d errors",
                summary.criteria_verified, summary.not_tested,
                summary.tokens_used, summary.error_count,
            )
            return results
        finally:
            clear_context()

    def summarize(
        self,
        results: list[BatchResult],
        scan_id: str,
        level: WcagLevel,
        total_batches: int | None = None,
        skipped_batches: int = 0,
        checkpoint_cleared: bool = False,
    ) -> VerificationSummary:
        """Aggregate the results of one process_criteria_batches() call."""
        outcomes = [o for r in results for o in r.outcomes]
        return VerificationSummary(
            scan_id=scan_id,
            level=level,
            total_batches=(
                total_batches if total_batches is not None
                else len(results) + skipped_batches
            ),
            processed_batches=len(results),
            skipped_batches=skipped_batches,
            criteria_verified=len(outcomes),
            not_tested=sum(1 for o in outcomes if o.status == "NOT_TESTED"),
            tokens_used=sum(r.tokens_used for r in results),
            duration_ms=sum(r.duration_ms for r in results),
            error_count=sum(len(r.errors) for r in results),
            cache_hits=sum(1 for r in results if r.from_cache),
            checkpoint_cleared=checkpoint_cleared,
        )

    # --- Checkpoint helpers ---

    async def _load_or_init_checkpoint(
        self, page: PageContent, level: WcagLevel, total: int
    ) -> set[int]:
        """Completed batch indices from an existing checkpoint, or a fresh one."""
        if self._checkpoints is None:
            return set()
        scan_id = page.scan_id
        try:
            existing = await self._checkpoints.get(scan_id)
        except StorageError as e:
            logger.warning("Checkpoint lookup failed, starting fresh: %s", e)
            existing = None

        if existing is not None and self._is_compatible(existing, level, total):
            logger.info(
                "Resuming from checkpoint: %d/%d batches completed",
                len(existing.completed_batches), total,
            )
            logger.debug(
                "Batches remaining to process: %s",
                ", ".join(str(i) for i in self._checkpoints.incomplete_batches(existing)),
            )
            return set(existing.completed_batches)

        logger.info("No checkpoint found, starting fresh processing")
        checkpoint = self._checkpoints.init(scan_id, page.url, level, total)
        try:
            await self._checkpoints.save(checkpoint)
            logger.debug("Initial checkpoint saved")
        except StorageError as e:
            logger.warning("Failed to save initial checkpoint: %s", e)
        return set()

    @staticmethod
    def _is_compatible(checkpoint: Checkpoint, level: WcagLevel, total: int) -> bool:
        if checkpoint.level != level or checkpoint.total_batches != total:
            logger.warning(
                "Discarding checkpoint for scan %s: recorded level %s/%d batches, "
                "current level %s/%d batches",
                checkpoint.scan_id, checkpoint.level, checkpoint.total_batches,
                level, total,
            )
            return False
        return True

    async def _clear_checkpoint(self, scan_id: str) -> bool:
        if self._checkpoints is None:
            return False
        try:
            await self._checkpoints.clear(scan_id)
        except StorageError as e:
            logger.warning("Failed to clear checkpoint for scan %s: %s", scan_id, e)
            return False
        logger.debug("Checkpoint cleared for scan %s", scan_id)
        return True
