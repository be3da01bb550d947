# src/api/facade.py — v3
"""Public API facade — single entry point for page verification.

Usage:
    from wcagverify.api.facade import verify_page
    report = await verify_page(page, existing_issues, level="AA")
"""

from __future__ import annotations

import asyncio
import logging

from wcagverify.api.models import VerificationReport
from wcagverify.cache.cache_factory import create_cache_store
from wcagverify.cache.verification_cache import VerificationCache
from wcagverify.checkpoint.store import CheckpointStore
from wcagverify.config.settings import Settings, load_settings
from wcagverify.core.models import (
    BatchResult,
    ExistingIssue,
    PageContent,
    VerificationOutcome,
    WcagLevel,
)
from wcagverify.instructions.loader import InstructionLoader
from wcagverify.llm.client_factory import create_llm_client_from_settings
from wcagverify.llm.invoker import BaseAIInvoker, LLMInvoker
from wcagverify.llm.retry import SleepFn
from wcagverify.verification.errors import StorageError
from wcagverify.verification.executor import BatchExecutor
from wcagverify.verification.orchestrator import CriteriaVerificationPipeline
from wcagverify.verification.planner import criterion_sort_key
from wcagverify.verification.prompt_builder import CriteriaPromptBuilder

logger = logging.getLogger(__name__)


def build_cache(settings: Settings) -> VerificationCache | None:
    """VerificationCache over the configured backend, or None when disabled."""
    if not settings.cache_enabled:
        return None
    return VerificationCache(
        create_cache_store(settings),
        ttl_days=settings.cache_ttl_days,
        max_entries=settings.cache_max_entries,
    )


def build_invoker(settings: Settings) -> BaseAIInvoker:
    """LLMInvoker for the configured provider and model."""
    return LLMInvoker(
        create_llm_client_from_settings(settings),
        max_tokens=settings.llm_max_tokens,
        temperature=settings.llm_temperature,
    )


def build_pipeline(
    settings: Settings | None = None,
    invoker: BaseAIInvoker | None = None,
    sleep: SleepFn = asyncio.sleep,
) -> CriteriaVerificationPipeline:
    """Wire the default stores and collaborators from settings.

    Args:
        settings: Global settings. Loaded from .env if None.
        invoker: AI invoker override. Defaults to the configured LLM provider.
        sleep: Coroutine used for backoff and pacing delays.
    """
    settings = settings or load_settings()
    cache = build_cache(settings)
    checkpoints = CheckpointStore(settings.checkpoint_dir)
    options = settings.pipeline_options()

    executor = BatchExecutor(
        invoker=invoker or build_invoker(settings),
        prompt_builder=CriteriaPromptBuilder(max_html_chars=settings.max_html_chars),
        cache=cache,
        checkpoints=checkpoints,
        options=options,
        max_rate_limit_retries=settings.max_rate_limit_retries,
        initial_rate_limit_delay_ms=settings.initial_rate_limit_delay_ms,
        max_json_parse_retries=settings.max_json_parse_retries,
        sleep=sleep,
    )
    return CriteriaVerificationPipeline(
        executor=executor,
        instruction_loader=InstructionLoader(settings.instructions_path or None),
        cache=cache,
        checkpoints=checkpoints,
        options=options,
        include_instruction_version_in_cache_key=(
            settings.cache_key_includes_instruction_version
        ),
        sleep=sleep,
    )


async def verify_page(
    page: PageContent,
    existing_issues: list[ExistingIssue] | None = None,
    level: WcagLevel | None = None,
    settings: Settings | None = None,
    invoker: BaseAIInvoker | None = None,
    sleep: SleepFn = asyncio.sleep,
) -> VerificationReport:
    """Initialize a pipeline and verify one page end-to-end.

    Args:
        page: Downloaded page content with its scan id.
        existing_issues: Issues from an earlier automated pass, if any.
        level: Target conformance level. Defaults to ``page.level``.
        settings: Global settings. Loaded from .env if None.
        invoker: AI invoker override (tests, custom providers).
        sleep: Coroutine used for backoff and pacing delays.

    Returns:
        VerificationReport with one outcome per applicable criterion.
    """
    level = level or page.level
    pipeline = build_pipeline(settings, invoker=invoker, sleep=sleep)
    try:
        await pipeline.initialize()
        recovered = await _recovered_outcomes(pipeline, page.scan_id, level)
        results = await pipeline.process_criteria_batches(
            page, existing_issues or [], level
        )
    finally:
        if pipeline.cache is not None:
            pipeline.cache.store.close()

    merged: dict[str, VerificationOutcome] = {o.criterion_id: o for o in recovered}
    for result in results:
        for outcome in result.outcomes:
            merged[outcome.criterion_id] = outcome
    _fill_missing_outcomes(pipeline, level, results, merged)

    return VerificationReport(
        scan_id=page.scan_id,
        url=page.url,
        level=level,
        outcomes=sorted(
            merged.values(), key=lambda o: criterion_sort_key(o.criterion_id)
        ),
        batches=results,
        recovered_from_checkpoint=len(recovered),
        summary=pipeline.last_summary,
    )


def _fill_missing_outcomes(
    pipeline: CriteriaVerificationPipeline,
    level: WcagLevel,
    results: list[BatchResult],
    merged: dict[str, VerificationOutcome],
) -> None:
    """Mark applicable criteria that no batch reported on as NOT_TESTED."""
    errors = {r.batch_number: "; ".join(r.errors) for r in results if r.errors}
    missing = 0
    for batch_index, criteria in enumerate(pipeline.create_batches(level)):
        cause = errors.get(batch_index + 1, "no verdict recorded")
        for instruction in criteria:
            if instruction.criterion_id not in merged:
                merged[instruction.criterion_id] = VerificationOutcome.not_tested(
                    instruction.criterion_id, cause
                )
                missing += 1
    if missing:
        logger.warning("%d criteria had no outcome, reported as NOT_TESTED", missing)


async def _recovered_outcomes(
    pipeline: CriteriaVerificationPipeline, scan_id: str, level: WcagLevel
) -> list[VerificationOutcome]:
    """Outcomes of batches completed by an earlier, interrupted run."""
    if pipeline.checkpoints is None:
        return []
    try:
        checkpoint = await pipeline.checkpoints.get(scan_id)
    except StorageError as e:
        logger.warning("Cannot read checkpoint for scan %s: %s", scan_id, e)
        return []
    if checkpoint is None or checkpoint.level != level:
        return []
    return checkpoint.all_outcomes()
