# src/llm/retry.py — v2
"""Failure classification and exponential backoff for AI invocations.

Classification prefers the structured ``ErrorType`` reported by the invoker
and falls back to an ordered list of (predicate, ErrorType) rules applied to
the lower-cased error text. New provider messages are supported by adding a
rule, never by touching the executor's control flow.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Iterable, TypeVar

from wcagverify.core.models import ErrorType
from wcagverify.verification.errors import (
    InvocationTimeoutError,
    MalformedResponseError,
    RateLimitError,
    UnknownInvocationError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

Predicate = Callable[[str], bool]
Rule = tuple[Predicate, ErrorType]

SleepFn = Callable[[float], Awaitable[None]]


def contains_any(*needles: str) -> Predicate:
    """Predicate matching lower-cased text containing any of ``needles``."""
    lowered = tuple(n.lower() for n in needles)

    def _match(text: str) -> bool:
        return any(n in text for n in lowered)

    return _match


RATE_LIMIT_MARKERS = ("rate limit", "429", "too many requests", "quota exceeded")
TIMEOUT_MARKERS = ("timeout", "timed out", "etimedout")
JSON_PARSE_MARKERS = ("json", "parse", "unexpected token", "malformed")

# Order matters: the first matching rule wins.
DEFAULT_INVOCATION_RULES: tuple[Rule, ...] = (
    (contains_any(*RATE_LIMIT_MARKERS, "ratelimit", "rate_limit"), ErrorType.RATE_LIMIT),
    (contains_any(*TIMEOUT_MARKERS), ErrorType.TIMEOUT),
)

DEFAULT_PARSE_RULES: tuple[Rule, ...] = (
    (contains_any(*JSON_PARSE_MARKERS), ErrorType.MALFORMED_RESPONSE),
)

# Structured types specific enough to skip the text heuristics.
_DECISIVE_TYPES = frozenset(
    {ErrorType.RATE_LIMIT, ErrorType.TIMEOUT, ErrorType.MALFORMED_RESPONSE}
)

_EXCEPTION_TYPES: dict[type[BaseException], ErrorType] = {
    RateLimitError: ErrorType.RATE_LIMIT,
    InvocationTimeoutError: ErrorType.TIMEOUT,
    asyncio.TimeoutError: ErrorType.TIMEOUT,
    TimeoutError: ErrorType.TIMEOUT,
    MalformedResponseError: ErrorType.MALFORMED_RESPONSE,
    UnknownInvocationError: ErrorType.UNKNOWN,
}


class ErrorClassifier:
    """Ordered rule list mapping error text to an ErrorType."""

    def __init__(
        self,
        rules: Iterable[Rule] = DEFAULT_INVOCATION_RULES,
        default: ErrorType = ErrorType.UNKNOWN,
    ) -> None:
        self._rules: list[Rule] = list(rules)
        self._default = default

    def add_rule(
        self, predicate: Predicate, error_type: ErrorType, *, first: bool = False
    ) -> None:
        """Register a new rule, appended or placed ahead of all others."""
        if first:
            self._rules.insert(0, (predicate, error_type))
        else:
            self._rules.append((predicate, error_type))

    def match(self, error: str | None) -> ErrorType | None:
        """Return the first rule's type matching ``error``, if any."""
        if not error:
            return None
        text = error.lower()
        for predicate, error_type in self._rules:
            if predicate(text):
                return error_type
        return None

    def classify(
        self, error: str | None, error_type: ErrorType | None = None
    ) -> ErrorType:
        """Classify a failure, preferring a decisive structured type."""
        if error_type in _DECISIVE_TYPES:
            return error_type  # type: ignore[return-value]
        matched = self.match(error)
        if matched is not None:
            return matched
        return error_type or self._default

    def classify_exception(self, exc: BaseException) -> ErrorType:
        """Classify a raised exception by type first, then by its text."""
        for exc_type, error_type in _EXCEPTION_TYPES.items():
            if isinstance(exc, exc_type) and error_type is not ErrorType.UNKNOWN:
                return error_type
        return self.classify(f"{type(exc).__name__}: {exc}")


_invocation_classifier = ErrorClassifier()
_parse_classifier = ErrorClassifier(DEFAULT_PARSE_RULES)


def is_rate_limit(error: str | None, error_type: ErrorType | None = None) -> bool:
    return _invocation_classifier.classify(error, error_type) is ErrorType.RATE_LIMIT


def is_timeout(error: str | None, error_type: ErrorType | None = None) -> bool:
    return _invocation_classifier.classify(error, error_type) is ErrorType.TIMEOUT


def is_json_parse_error(error: str | None) -> bool:
    """True when a parse failure looks like a JSON/format problem worth a retry."""
    return _parse_classifier.match(error) is ErrorType.MALFORMED_RESPONSE


# === Backoff ===


class RetriesExhausted(Exception):
    """Every attempt returned a retriable result."""

    def __init__(self, attempts: int, last_result: object) -> None:
        self.attempts = attempts
        self.last_result = last_result
        super().__init__(f"Retries exhausted after {attempts} attempts")


@dataclass(frozen=True)
class BackoffPolicy:
    """Exponential backoff: delay = initial_delay_s * factor ** attempt."""

    max_retries: int
    initial_delay_s: float
    backoff_factor: float = 2.0

    def delay_for(self, attempt: int) -> float:
        """Delay before retry number ``attempt + 1`` (attempt is 0-based)."""
        return self.initial_delay_s * (self.backoff_factor ** attempt)


async def retry_with_backoff(
    call: Callable[[], Awaitable[T]],
    is_retriable: Callable[[T], bool],
    policy: BackoffPolicy,
    sleep: SleepFn = asyncio.sleep,
    label: str = "call",
) -> T:
    """Run ``call`` until it returns a non-retriable result.

    Makes at most ``policy.max_retries + 1`` attempts, sleeping between
    them. Results are inspected rather than exceptions caught, so failures
    the caller does not consider retriable are returned untouched.

    Raises:
        RetriesExhausted: If the final attempt is still retriable.
    """
    attempts = policy.max_retries + 1
    result: T | None = None
    for attempt in range(attempts):
        result = await call()
        if not is_retriable(result):
            return result
        if attempt < policy.max_retries:
            delay = policy.delay_for(attempt)
            logger.warning(
                "%s retriable failure, retry %d/%d in %.1fs",
                label, attempt + 1, policy.max_retries, delay,
            )
            await sleep(delay)
    raise RetriesExhausted(attempts, result)
