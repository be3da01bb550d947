# tests/conftest.py — v2
"""Shared test fixtures for all unit and integration tests.

Provides synthetic instruction sets, a scripted AI invoker, a recording
sleep coroutine and sample pages. No network access: every AI call goes
through FakeInvoker (see fakes.py).
"""

from __future__ import annotations

import pytest

from fakes import FakeInvoker, FakePromptBuilder, RecordingSleep, make_instruction_set
from wcagverify.config.settings import PipelineOptions
from wcagverify.core.models import ExistingIssue, InstructionSet, PageContent
from wcagverify.logging.context import clear_context


@pytest.fixture(autouse=True)
def _reset_log_context():
    yield
    clear_context()


@pytest.fixture
def instruction_set() -> InstructionSet:
    """23 Level A criteria."""
    return make_instruction_set(23, "A")


@pytest.fixture
def page() -> PageContent:
    return PageContent(
        scan_id="scan-001",
        url="https://example.com/",
        level="A",
        html_content=(
            "<html><head><title>Home</title></head>"
            "<body><img src='a.png'></body></html>"
        ),
        page_title="Home",
    )


@pytest.fixture
def existing_issues() -> list[ExistingIssue]:
    return [
        ExistingIssue(id="issue-1", rule_id="image-alt", wcag_criteria="1.1.1", impact="critical"),
        ExistingIssue(id="issue-2", rule_id="color-contrast", wcag_criteria="1.4.3"),
    ]


@pytest.fixture
def fake_invoker() -> FakeInvoker:
    return FakeInvoker()


@pytest.fixture
def prompt_builder() -> FakePromptBuilder:
    return FakePromptBuilder()


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def options() -> PipelineOptions:
    return PipelineOptions(batch_size=10, delay_between_batches_ms=0, timeout_ms=1000)
