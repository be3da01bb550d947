# src/verification/response_parser.py — v1
"""Parse raw AI output into normalized criterion verdicts.

Models wrap their JSON in prose or markdown fences often enough that three
extraction strategies are tried in order: the whole output as JSON, a fenced
code block, then the first balanced ``{...}`` object in the text. Items that
do not validate are dropped so a partially valid response still yields
usable verdicts.
"""

from __future__ import annotations

import json
import logging
import math
import re
from typing import Any

from wcagverify.core.models import BatchVerificationResult, VerificationOutcome
from wcagverify.verification.errors import MalformedResponseError

logger = logging.getLogger(__name__)

DEFAULT_CONFIDENCE = 70

_VALID_STATUSES = frozenset(
    {"PASS", "FAIL", "AI_VERIFIED_PASS", "AI_VERIFIED_FAIL", "NOT_TESTED"}
)
_STATUS_ALIASES = {"PASS": "AI_VERIFIED_PASS", "FAIL": "AI_VERIFIED_FAIL"}

_JSON_FENCE_RE = re.compile(r"```json\s*\n(.*)", re.DOTALL)
_ANY_FENCE_RE = re.compile(r"```\s*\n?(.*?)```", re.DOTALL)


def extract_json_from_markdown(output: str) -> str | None:
    """Return the JSON text inside a markdown code fence, if any.

    A ```json block is read up to its *last* closing fence so that code
    fences embedded in string values survive. A generic fence is accepted
    only when its content looks like JSON.
    """
    match = _JSON_FENCE_RE.search(output)
    if match:
        content = match.group(1)
        end = content.rfind("\n```")
        if end != -1:
            candidate = content[:end].strip()
            try:
                json.loads(candidate)
                return candidate
            except json.JSONDecodeError:
                pass

    match = _ANY_FENCE_RE.search(output)
    if match and match.group(1):
        candidate = match.group(1).strip()
        if candidate.startswith(("{", "[")):
            return candidate
    return None


def extract_json_by_brace_matching(output: str) -> str | None:
    """Return the first balanced ``{...}`` span, ignoring braces in strings."""
    start = output.find("{")
    if start == -1:
        return None

    depth = 0
    in_string = False
    escape_next = False
    for i in range(start, len(output)):
        char = output[i]
        if escape_next:
            escape_next = False
            continue
        if char == "\\":
            escape_next = True
            continue
        if char == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return output[start : i + 1]
    return None


def _decode(output: str) -> Any:
    try:
        return json.loads(output)
    except json.JSONDecodeError:
        pass

    fenced = extract_json_from_markdown(output)
    if fenced is not None:
        try:
            return json.loads(fenced)
        except json.JSONDecodeError:
            pass

    braced = extract_json_by_brace_matching(output)
    if braced is None:
        raise MalformedResponseError(
            "Failed to extract JSON from AI output: No valid JSON found"
        )
    try:
        return json.loads(braced)
    except json.JSONDecodeError as e:
        raise MalformedResponseError(
            "Failed to parse JSON from AI output: Invalid JSON structure"
        ) from e


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def normalize_verification(raw: Any) -> VerificationOutcome | None:
    """Normalize one raw verdict, or return None when it is unusable."""
    if not isinstance(raw, dict):
        return None

    criterion_id = raw.get("criterionId")
    if not isinstance(criterion_id, str) or not criterion_id:
        return None

    status = raw.get("status")
    if status not in _VALID_STATUSES:
        return None

    confidence = DEFAULT_CONFIDENCE
    value = raw.get("confidence")
    if (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and 0 <= value <= 100
    ):
        confidence = _round_half_up(value)

    reasoning = raw.get("reasoning")
    related = raw.get("relatedIssueIds")

    return VerificationOutcome(
        criterion_id=criterion_id,
        status=_STATUS_ALIASES.get(status, status),
        confidence=confidence,
        reasoning=reasoning if isinstance(reasoning, str) else "",
        related_issue_ids=(
            [i for i in related if isinstance(i, str)]
            if isinstance(related, list)
            else []
        ),
    )


def parse_batch_verification_output(output: str) -> BatchVerificationResult:
    """Parse AI output into a BatchVerificationResult.

    Raises:
        MalformedResponseError: If no JSON object can be recovered or it
            lacks a ``criteriaVerifications`` array.
    """
    parsed = _decode(output)

    if not isinstance(parsed, dict):
        raise MalformedResponseError(
            "Invalid batch verification output: Expected an object"
        )
    raw_items = parsed.get("criteriaVerifications")
    if not isinstance(raw_items, list):
        raise MalformedResponseError(
            "Invalid batch verification output: "
            "Missing or invalid criteriaVerifications array"
        )

    outcomes: list[VerificationOutcome] = []
    for raw in raw_items:
        outcome = normalize_verification(raw)
        if outcome is None:
            logger.debug("Dropping invalid verification item: %r", raw)
            continue
        outcomes.append(outcome)

    return BatchVerificationResult(criteria_verifications=outcomes)
