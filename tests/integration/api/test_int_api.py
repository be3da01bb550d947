# tests/integration/api/test_int_api.py — v2
"""Integration tests for api.facade.verify_page over bundled instructions.

Real prompt builder, real stores under tmp_path, fake AI invoker.
"""

from __future__ import annotations

import pytest

from fakes import FakeInvoker, RecordingSleep, echo_verdicts, failed
from wcagverify.api.facade import verify_page
from wcagverify.config.settings import Settings


@pytest.fixture(params=["json", "sqlite"])
def settings(request, tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        cache_backend=request.param,
        cache_root=tmp_path / "cache",
        checkpoint_dir=tmp_path / "checkpoints",
        delay_between_batches_ms=0,
    )


class TestVerifyPageEndToEnd:
    @pytest.mark.asyncio
    async def test_aaa_then_cached(self, settings, page, existing_issues):
        first = FakeInvoker()
        report = await verify_page(
            page, existing_issues, "AAA", settings=settings,
            invoker=first, sleep=RecordingSleep(),
        )
        assert first.calls == 9
        assert len(report.outcomes) == 86
        assert report.not_tested == []
        assert report.summary.tokens_used > 0

        second = FakeInvoker()
        again = await verify_page(
            page, existing_issues, "AAA", settings=settings,
            invoker=second, sleep=RecordingSleep(),
        )
        assert second.calls == 0
        assert again.summary.cache_hits == 9
        assert again.summary.tokens_used == 0
        assert [o.criterion_id for o in again.outcomes] == [
            o.criterion_id for o in report.outcomes
        ]
        assert not list(settings.checkpoint_dir.glob("*.json"))

    @pytest.mark.asyncio
    async def test_failed_batch_reported_not_tested(self, settings, page):
        invoker = FakeInvoker(script=[failed("upstream 500"), echo_verdicts])
        report = await verify_page(
            page, level="A", settings=settings, invoker=invoker, sleep=RecordingSleep(),
        )
        assert len(report.outcomes) == 31
        assert len(report.not_tested) == 10
        assert all(o.reasoning == "Unable to verify: upstream 500" for o in report.not_tested)
        assert report.summary.error_count == 1
