# src/verification/executor.py — v1
"""Process one batch of criteria against one page.

States, in order: cache check, prompt build, AI invocation with rate-limit
backoff, timeout check, other invocation failure, parse with a bounded
malformed-JSON retry, then best-effort persistence to cache and checkpoint.
Any state that cannot complete degrades the whole batch to NOT_TESTED
outcomes carrying the cause, so every criterion always receives a verdict.
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from typing import Callable

from wcagverify.cache.models import CacheEntry, CacheKey
from wcagverify.cache.verification_cache import VerificationCache
from wcagverify.checkpoint.store import CheckpointStore
from wcagverify.config.settings import PipelineOptions
from wcagverify.core.models import (
    BatchResult,
    BatchVerificationResult,
    ErrorType,
    InvocationResult,
    PageContent,
    VerificationInstruction,
    VerificationOutcome,
    WcagLevel,
)
from wcagverify.llm.invoker import BaseAIInvoker
from wcagverify.llm.retry import (
    DEFAULT_PARSE_RULES,
    BackoffPolicy,
    ErrorClassifier,
    RetriesExhausted,
    SleepFn,
    retry_with_backoff,
)
from wcagverify.verification.errors import MalformedResponseError, StorageError
from wcagverify.verification.prompt_builder import CriteriaPromptBuilder
from wcagverify.verification.response_parser import parse_batch_verification_output

logger = logging.getLogger(__name__)

MAX_RATE_LIMIT_RETRIES = 3
INITIAL_RATE_LIMIT_DELAY_MS = 60_000
MAX_JSON_PARSE_RETRIES = 1

# Rough chars-per-token ratio for usage estimates.
CHARS_PER_TOKEN = 4

ResponseParser = Callable[[str], BatchVerificationResult]


def estimate_tokens(prompt: str, output: str) -> int:
    """Approximate token usage from prompt and output length."""
    return math.ceil((len(prompt) + len(output)) / CHARS_PER_TOKEN)


def reconcile_outcomes(
    parsed: list[VerificationOutcome],
    criteria: list[VerificationInstruction],
) -> list[VerificationOutcome]:
    """Align parsed verdicts with the batch's criteria, in batch order.

    The first verdict for each criterion wins and verdicts for criteria
    outside the batch are dropped. Criteria the response omitted get a
    NOT_TESTED outcome.

    Raises:
        MalformedResponseError: If no verdict matches a batch criterion.
    """
    wanted = {c.criterion_id for c in criteria}
    by_id: dict[str, VerificationOutcome] = {}
    for outcome in parsed:
        if outcome.criterion_id not in wanted:
            logger.debug("Dropping verdict for criterion outside batch: %s", outcome.criterion_id)
            continue
        by_id.setdefault(outcome.criterion_id, outcome)

    if not by_id:
        raise MalformedResponseError("No valid verifications parsed from output")

    reconciled: list[VerificationOutcome] = []
    for criterion in criteria:
        outcome = by_id.get(criterion.criterion_id)
        if outcome is None:
            outcome = VerificationOutcome.not_tested(
                criterion.criterion_id, "criterion missing from AI response"
            )
        reconciled.append(outcome)
    return reconciled


class BatchExecutor:
    """Runs the per-batch state machine. Never raises for AI or storage failures."""

    def __init__(
        self,
        invoker: BaseAIInvoker,
        prompt_builder: CriteriaPromptBuilder,
        cache: VerificationCache | None = None,
        checkpoints: CheckpointStore | None = None,
        options: PipelineOptions | None = None,
        parser: ResponseParser = parse_batch_verification_output,
        max_rate_limit_retries: int = MAX_RATE_LIMIT_RETRIES,
        initial_rate_limit_delay_ms: int = INITIAL_RATE_LIMIT_DELAY_MS,
        max_json_parse_retries: int = MAX_JSON_PARSE_RETRIES,
        classifier: ErrorClassifier | None = None,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self._invoker = invoker
        self._prompt_builder = prompt_builder
        self._cache = cache
        self._checkpoints = checkpoints
        self._options = options or PipelineOptions()
        self._parser = parser
        self._max_rate_limit_retries = max_rate_limit_retries
        self._backoff = BackoffPolicy(
            max_retries=max_rate_limit_retries,
            initial_delay_s=initial_rate_limit_delay_ms / 1000,
        )
        self._max_json_parse_retries = max_json_parse_retries
        self._classifier = classifier or ErrorClassifier()
        self._parse_classifier = ErrorClassifier(DEFAULT_PARSE_RULES)
        self._sleep = sleep
        self.instructions_hash = ""

    @property
    def options(self) -> PipelineOptions:
        return self._options

    @property
    def classifier(self) -> ErrorClassifier:
        return self._classifier

    async def process_single_batch(
        self,
        batch_index: int,
        criteria: list[VerificationInstruction],
        page: PageContent,
        existing_issue_ids: list[str],
        scan_id: str,
        level: WcagLevel,
    ) -> BatchResult:
        """Verify one batch. ``batch_index`` is 0-based; the result is 1-based."""
        start = time.monotonic()
        batch_number = batch_index + 1

        # --- Cache check ---
        key: CacheKey | None = None
        if self._cache is not None:
            key = self._cache.generate_key(
                page.html_content, level, batch_index, self.instructions_hash
            )
            cached = await self._lookup(key, batch_number)
            if cached is not None:
                logger.info("Cache hit for batch %d", batch_number)
                await self._mark_complete(scan_id, batch_index, cached.outcomes, 0)
                return BatchResult(
                    batch_number=batch_number,
                    criteria_verified=len(cached.outcomes),
                    outcomes=cached.outcomes,
                    tokens_used=0,
                    duration_ms=_elapsed_ms(start),
                    from_cache=True,
                )

        logger.info(
            "Cache miss for batch %d, invoking AI for %d criteria",
            batch_number, len(criteria),
        )

        # --- Prompt build ---
        try:
            prompt = self._prompt_builder.build(page, criteria, existing_issue_ids)
        except Exception as e:
            return self._fallback(
                batch_number, criteria, f"Prompt generation failed: {e}", start
            )

        # --- Invocation with rate-limit backoff ---
        try:
            result = await retry_with_backoff(
                lambda: self._invoke(prompt),
                is_retriable=self._is_rate_limited,
                policy=self._backoff,
                sleep=self._sleep,
                label=f"Batch {batch_number}",
            )
        except RetriesExhausted:
            return self._fallback(
                batch_number,
                criteria,
                f"Rate limit retries exhausted after {self._max_rate_limit_retries} attempts",
                start,
            )

        # --- Timeout check ---
        if not result.success and (
            self._classifier.classify(result.error, result.error_type) is ErrorType.TIMEOUT
        ):
            return self._fallback(
                batch_number,
                criteria,
                f"Timeout after {self._options.timeout_ms}ms",
                start,
                log_level=logging.WARNING,
            )

        # --- Other invocation failure ---
        if not result.success or not result.output:
            return self._fallback(
                batch_number,
                criteria,
                result.error or "Unknown error during AI invocation",
                start,
            )

        # --- Parse, with bounded retry on JSON/format errors ---
        output = result.output
        json_retries = 0
        while True:
            try:
                outcomes = reconcile_outcomes(
                    self._parser(output).criteria_verifications, criteria
                )
                break
            except Exception as e:
                message = str(e)
                if (
                    self._parse_classifier.match(message) is ErrorType.MALFORMED_RESPONSE
                    and json_retries < self._max_json_parse_retries
                ):
                    json_retries += 1
                    logger.warning(
                        "Batch %d: JSON parse error, retrying AI invocation (%d/%d): %s",
                        batch_number, json_retries, self._max_json_parse_retries, message,
                    )
                    retry = await self._invoke(prompt)
                    if retry.success and retry.output:
                        output = retry.output
                        continue
                    return self._fallback(
                        batch_number,
                        criteria,
                        f"JSON parse retry failed: {retry.error or 'No output'}",
                        start,
                    )
                return self._fallback(
                    batch_number,
                    criteria,
                    f"Failed to parse AI response after {json_retries} retry(s): {message}",
                    start,
                )

        # --- Persist (best-effort) ---
        tokens_used = estimate_tokens(prompt, output)
        if self._cache is not None and key is not None:
            try:
                await self._cache.set(key, outcomes, tokens_used, self._invoker.model_name)
                logger.debug("Cached batch %d results", batch_number)
            except (StorageError, OSError) as e:
                logger.warning("Failed to cache batch %d results: %s", batch_number, e)
        await self._mark_complete(scan_id, batch_index, outcomes, tokens_used)

        duration_ms = _elapsed_ms(start)
        logger.info(
            "Batch %d completed: %d criteria verified in %dms",
            batch_number, len(outcomes), duration_ms,
        )
        return BatchResult(
            batch_number=batch_number,
            criteria_verified=len(outcomes),
            outcomes=outcomes,
            tokens_used=tokens_used,
            duration_ms=duration_ms,
        )

    # --- Helpers ---

    async def _invoke(self, prompt: str) -> InvocationResult:
        """Call the invoker, converting a raised exception into a failed result."""
        try:
            return await self._invoker.invoke(prompt, self._options.timeout_ms)
        except Exception as e:
            return InvocationResult(
                success=False,
                error=str(e) or type(e).__name__,
                error_type=self._classifier.classify_exception(e),
            )

    def _is_rate_limited(self, result: InvocationResult) -> bool:
        if result.success:
            return False
        return (
            self._classifier.classify(result.error, result.error_type)
            is ErrorType.RATE_LIMIT
        )

    async def _lookup(self, key: CacheKey, batch_number: int) -> CacheEntry | None:
        try:
            return await self._cache.get(key)  # type: ignore[union-attr]
        except (StorageError, OSError) as e:
            logger.warning("Cache lookup failed for batch %d: %s", batch_number, e)
            return None

    async def _mark_complete(
        self,
        scan_id: str,
        batch_index: int,
        outcomes: list[VerificationOutcome],
        tokens_used: int,
    ) -> None:
        if self._checkpoints is None:
            return
        try:
            await self._checkpoints.mark_batch_complete(
                scan_id, batch_index, outcomes, tokens_used
            )
            logger.debug("Checkpoint saved for batch %d", batch_index + 1)
        except StorageError as e:
            logger.warning(
                "Failed to save checkpoint for batch %d: %s", batch_index + 1, e
            )

    @staticmethod
    def _fallback(
        batch_number: int,
        criteria: list[VerificationInstruction],
        error: str,
        start: float,
        log_level: int = logging.ERROR,
    ) -> BatchResult:
        """NOT_TESTED outcome for every criterion, carrying ``error``."""
        logger.log(
            log_level,
            "Batch %d: %s. Marking %d criteria as NOT_TESTED.",
            batch_number, error, len(criteria),
        )
        outcomes = [VerificationOutcome.not_tested(c.criterion_id, error) for c in criteria]
        return BatchResult(
            batch_number=batch_number,
            criteria_verified=len(outcomes),
            outcomes=outcomes,
            tokens_used=0,
            duration_ms=_elapsed_ms(start),
            errors=[error],
        )


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)
