# src/verification/prompt_builder.py — v1
"""Render the per-batch verification prompt from a text template."""

from __future__ import annotations

import logging
from pathlib import Path

from wcagverify.core.models import PageContent, VerificationInstruction

logger = logging.getLogger(__name__)

_PROMPT_PATH = Path(__file__).parent / "prompts" / "criteria_verification.txt"

DEFAULT_MAX_HTML_CHARS = 150_000


def format_criterion(instruction: VerificationInstruction) -> str:
    """Render one instruction as a markdown section."""
    lines = [f"### {instruction.criterion_id} {instruction.title} (Level {instruction.level})"]
    if instruction.description:
        lines.append(instruction.description)
    if instruction.what_to_check:
        lines.append("What to check:")
        lines.extend(f"- {item}" for item in instruction.what_to_check.splitlines())
    if instruction.pass_condition:
        lines.append(f"Pass condition: {instruction.pass_condition}")
    if instruction.fail_indicators:
        lines.append("Fail indicators:")
        lines.extend(f"- {item}" for item in instruction.fail_indicators.splitlines())
    if instruction.requires_manual_review:
        lines.append(
            "Note: full verification needs manual review; "
            "lower your confidence when the HTML is inconclusive."
        )
    return "\n".join(lines)


class CriteriaPromptBuilder:
    """Builds prompts for one batch of criteria against one page."""

    def __init__(
        self,
        max_html_chars: int = DEFAULT_MAX_HTML_CHARS,
        template_path: Path | str | None = None,
        wcag_version: str = "2.2",
    ) -> None:
        self._max_html_chars = max_html_chars
        self._template_path = Path(template_path) if template_path else _PROMPT_PATH
        self._wcag_version = wcag_version
        self._template: str | None = None

    def _load_template(self) -> str:
        """Load and cache the prompt template."""
        if self._template is None:
            self._template = self._template_path.read_text(encoding="utf-8")
        return self._template

    def build(
        self,
        page: PageContent,
        criteria: list[VerificationInstruction],
        existing_issue_ids: list[str],
    ) -> str:
        html = page.html_content
        truncation_note = ""
        if len(html) > self._max_html_chars:
            logger.debug(
                "Truncating HTML for %s from %d to %d chars",
                page.url, len(html), self._max_html_chars,
            )
            html = html[: self._max_html_chars]
            truncation_note = f" (truncated to the first {self._max_html_chars} characters)"

        issues = (
            "\n".join(f"- {issue_id}" for issue_id in existing_issue_ids)
            if existing_issue_ids
            else "(none)"
        )

        return self._load_template().format(
            wcag_version=self._wcag_version,
            url=page.url,
            page_title=page.page_title or "(untitled)",
            existing_issues=issues,
            criteria_count=len(criteria),
            criteria="\n\n".join(format_criterion(c) for c in criteria),
            truncation_note=truncation_note,
            html_content=html,
        )
