# tests/unit/test_main.py — v3
"""Tests for main.py — CLI entry point."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import get_type_hints
from unittest.mock import AsyncMock, patch

import pytest

from wcagverify.api.models import VerificationReport
from wcagverify.config.settings import Settings
from wcagverify.core.models import VerificationOutcome
from wcagverify.main import (
    _build_parser,
    _cmd_checkpoints,
    _cmd_verify,
    _default_scan_id,
    _extract_title,
    _print_summary,
    _read_issues,
    main,
)


@pytest.fixture
def env(tmp_path, monkeypatch):
    """Isolated working directory with cache and checkpoints under tmp_path."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("CACHE_ROOT", str(tmp_path / "cache"))
    monkeypatch.setenv("CHECKPOINT_DIR", str(tmp_path / "checkpoints"))
    yield tmp_path
    logging.getLogger("wcagverify").handlers.clear()


# ---------------------------------------------------------------------------
# Parser tests
# ---------------------------------------------------------------------------

class TestBuildParser:
    def test_version_flag(self):
        parser = _build_parser()
        with pytest.raises(SystemExit) as exc_info:
            parser.parse_args(["--version"])
        assert exc_info.value.code == 0

    def test_verify_subcommand(self):
        args = _build_parser().parse_args(
            ["verify", "page.html", "--url", "https://x.test", "--level", "AAA", "-o", "r.json"]
        )
        assert args.command == "verify"
        assert args.html_file == Path("page.html")
        assert args.level == "AAA"
        assert args.output == Path("r.json")
        assert args.scan_id is None

    def test_verify_default_level(self):
        args = _build_parser().parse_args(["verify", "p.html", "--url", "u"])
        assert args.level == "AA"

    def test_verify_requires_url(self):
        with pytest.raises(SystemExit):
            _build_parser().parse_args(["verify", "p.html"])

    def test_invalid_level(self):
        with pytest.raises(SystemExit):
            _build_parser().parse_args(["verify", "p.html", "--url", "u", "--level", "B"])

    def test_checkpoints_subcommand(self):
        args = _build_parser().parse_args(["checkpoints", "show", "scan-1"])
        assert args.action == "show"
        assert args.scan_id == "scan-1"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

class TestHelpers:
    def test_default_scan_id(self):
        a = _default_scan_id("https://x.test", "<html/>")
        assert a == _default_scan_id("https://x.test", "<html/>")
        assert a != _default_scan_id("https://x.test", "<html></html>")
        assert a.startswith("scan-") and len(a) == 17

    def test_default_scan_id_lone_surrogate(self):
        assert _default_scan_id("https://x.test", "<p>\ud800</p>").startswith("scan-")

    def test_extract_title(self):
        assert _extract_title("<html><head><title> Home </title></head></html>") == "Home"
        assert _extract_title("<p>no title</p>") is None

    def test_read_issues_list(self, tmp_path):
        path = tmp_path / "issues.json"
        path.write_text(json.dumps([{"id": "i1", "rule_id": "image-alt"}]))
        issues = _read_issues(path)
        assert issues[0].id == "i1"

    def test_read_issues_wrapped(self, tmp_path):
        path = tmp_path / "issues.json"
        path.write_text(json.dumps({"issues": [{"id": "i1"}, {"id": "i2"}]}))
        assert [i.id for i in _read_issues(path)] == ["i1", "i2"]

    def test_annotations_resolve(self):
        names = {"Settings": Settings, "VerificationReport": VerificationReport}
        assert get_type_hints(_print_summary, localns=names)["report"] is VerificationReport
        assert get_type_hints(_cmd_verify, localns=names)["settings"] is Settings
        assert get_type_hints(_cmd_checkpoints, localns=names)["settings"] is Settings


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

class TestMain:
    def test_no_command(self, env):
        assert main([]) == 1

    def test_invalid_configuration(self, env, monkeypatch, capsys):
        monkeypatch.setenv("BATCH_TIMEOUT_MS", "0")
        assert main(["checkpoints", "list"]) == 1
        assert "Invalid configuration" in capsys.readouterr().err

    def test_verify_writes_report(self, env, capsys):
        html = env / "page.html"
        html.write_text("<html><head><title>T</title></head></html>", encoding="utf-8")
        report = VerificationReport(
            scan_id="scan-x", url="https://x.test", level="A",
            outcomes=[VerificationOutcome.not_tested("1.1.1", "boom")],
        )
        out = env / "out" / "report.json"
        with patch("wcagverify.api.facade.verify_page", AsyncMock(return_value=report)) as vp:
            code = main(["verify", str(html), "--url", "https://x.test", "--level", "A",
                         "--scan-id", "scan-x", "-o", str(out)])
        assert code == 0
        page = vp.call_args.args[0]
        assert page.scan_id == "scan-x"
        assert page.page_title == "T"
        assert json.loads(out.read_text())["scan_id"] == "scan-x"
        assert "NOT_TESTED:      1" in capsys.readouterr().out

    def test_verify_missing_file(self, env):
        assert main(["verify", str(env / "missing.html"), "--url", "u"]) == 1

    def test_checkpoints_lifecycle(self, env, capsys):
        assert main(["checkpoints", "list"]) == 0
        assert "No checkpoints" in capsys.readouterr().out

        ckpt_dir = env / "checkpoints"
        ckpt_dir.mkdir()
        (ckpt_dir / "scan-1.json").write_text(json.dumps({
            "scan_id": "scan-1", "url": "https://x.test", "level": "AA",
            "total_batches": 3, "completed_batches": [0],
            "started_at": "2026-01-01T00:00:00Z", "updated_at": "2026-01-01T00:00:00Z",
        }))

        assert main(["checkpoints", "list"]) == 0
        assert "1/3 batches" in capsys.readouterr().out

        assert main(["checkpoints", "show", "scan-1"]) == 0
        assert '"scan_id": "scan-1"' in capsys.readouterr().out

        assert main(["checkpoints", "clear", "scan-1"]) == 0
        assert main(["checkpoints", "clear", "scan-1"]) == 1
        assert main(["checkpoints", "show", "scan-1"]) == 1

    def test_checkpoints_requires_scan_id(self, env):
        assert main(["checkpoints", "show"]) == 1

    def test_cache_commands(self, env, capsys):
        assert main(["cache", "stats"]) == 0
        assert "Live entries:  0" in capsys.readouterr().out
        assert main(["cache", "cleanup"]) == 0
        assert "Removed 0" in capsys.readouterr().out
        assert main(["cache", "clear"]) == 0
        assert "Cache cleared" in capsys.readouterr().out

    def test_cache_disabled(self, env, monkeypatch, capsys):
        monkeypatch.setenv("CACHE_ENABLED", "false")
        assert main(["cache", "stats"]) == 0
        assert "disabled" in capsys.readouterr().out
