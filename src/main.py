# src/main.py — v3
"""CLI entry point — verify, cache and checkpoints commands.

Usage:
    wcagverify verify <html_file> --url URL [--scan-id ID] [--level AA]
                      [--issues FILE] [-o FILE]
    wcagverify cache stats|cleanup|clear
    wcagverify checkpoints list|show <scan_id>|clear <scan_id>
"""

from __future__ import annotations

import argparse
import asyncio
import hashlib
import json
import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from wcagverify.version import __version__

if TYPE_CHECKING:
    from wcagverify.api.models import VerificationReport
    from wcagverify.config.settings import Settings
    from wcagverify.core.models import ExistingIssue

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    try:
        settings = _load_settings()
    except Exception as exc:
        print(f"Invalid configuration: {exc}", file=sys.stderr)
        return 1
    _setup_logging(settings, args.verbose)

    try:
        return asyncio.run(args.func(args, settings))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except Exception as exc:
        logger.error("Fatal error: %s", exc, exc_info=args.verbose)
        return 1


def _build_parser() -> argparse.ArgumentParser:
    """Build CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="wcagverify",
        description=f"wcagverify v{__version__} — AI-assisted WCAG criteria verification",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command")

    # --- verify ---
    p_verify = subparsers.add_parser(
        "verify", help="Verify WCAG criteria for a downloaded HTML page",
    )
    p_verify.add_argument("html_file", type=Path, help="Path to the page HTML")
    p_verify.add_argument("--url", required=True, help="URL the page was fetched from")
    p_verify.add_argument(
        "--scan-id", default=None,
        help="Scan identifier used for checkpoints (default: derived from content)",
    )
    p_verify.add_argument(
        "--level", choices=["A", "AA", "AAA"], default="AA",
        help="Target conformance level (default: AA)",
    )
    p_verify.add_argument(
        "--issues", type=Path, default=None,
        help="JSON file with issues from an earlier automated pass",
    )
    p_verify.add_argument(
        "-o", "--output", type=Path, default=None,
        help="Write the JSON report here instead of stdout",
    )
    p_verify.set_defaults(func=_cmd_verify)

    # --- cache ---
    p_cache = subparsers.add_parser("cache", help="Inspect or maintain the cache")
    p_cache.add_argument("action", choices=["stats", "cleanup", "clear"])
    p_cache.set_defaults(func=_cmd_cache)

    # --- checkpoints ---
    p_ckpt = subparsers.add_parser("checkpoints", help="Inspect or clear checkpoints")
    p_ckpt.add_argument("action", choices=["list", "show", "clear"])
    p_ckpt.add_argument("scan_id", nargs="?", default=None)
    p_ckpt.set_defaults(func=_cmd_checkpoints)

    return parser


async def _cmd_verify(args: argparse.Namespace, settings: Settings) -> int:
    """Verify one page and emit the per-criterion report."""
    from wcagverify.api.facade import verify_page
    from wcagverify.core.models import PageContent

    html_path: Path = args.html_file
    if not html_path.is_file():
        logger.error("File not found: %s", html_path)
        return 1
    html = html_path.read_text(encoding="utf-8", errors="replace")

    issues = _read_issues(args.issues) if args.issues else []
    scan_id = args.scan_id or _default_scan_id(args.url, html)

    page = PageContent(
        scan_id=scan_id,
        url=args.url,
        level=args.level,
        html_content=html,
        page_title=_extract_title(html),
    )
    logger.info("Verifying %s (scan %s, level %s)", args.url, scan_id, args.level)
    report = await verify_page(page, issues, args.level, settings=settings)

    payload = report.model_dump_json(indent=2)
    if args.output:
        args.output.parent.mkdir(parents=True, exist_ok=True)
        args.output.write_text(payload, encoding="utf-8")
        _print_summary(report)
        print(f"  Report:          {args.output}")
    else:
        print(payload)
    return 0


async def _cmd_cache(args: argparse.Namespace, settings: Settings) -> int:
    """Cache maintenance: stats, cleanup, clear."""
    from wcagverify.api.facade import build_cache

    cache = build_cache(settings)
    if cache is None:
        print("Cache is disabled (CACHE_ENABLED=false)")
        return 0
    try:
        if args.action == "stats":
            live = await cache.warmup()
            stats = cache.stats()
            print(f"\nCache ({settings.cache_backend}):")
            print(f"  Live entries:  {live}")
            print(f"  TTL (days):    {cache.ttl_days:g}")
            print(f"  Max entries:   {cache.max_entries}")
            print(f"  Hit rate:      {stats.hit_rate:.0%}")
        elif args.action == "cleanup":
            removed = await cache.cleanup()
            print(f"Removed {removed} expired cache entries")
        else:
            await cache.clear_all()
            print("Cache cleared")
    finally:
        cache.store.close()
    return 0


async def _cmd_checkpoints(args: argparse.Namespace, settings: Settings) -> int:
    """Checkpoint inspection: list, show, clear."""
    from wcagverify.checkpoint.store import CheckpointStore

    store = CheckpointStore(settings.checkpoint_dir)
    if args.action == "list":
        scan_ids = await store.list_scan_ids()
        if not scan_ids:
            print("No checkpoints")
            return 0
        for scan_id in scan_ids:
            checkpoint = await store.get(scan_id)
            if checkpoint is None:
                print(f"  {scan_id}  (unreadable)")
                continue
            print(
                f"  {scan_id}  {checkpoint.level:3s}  "
                f"{len(checkpoint.completed_batches)}/{checkpoint.total_batches} batches  "
                f"{checkpoint.url}"
            )
        return 0

    if not args.scan_id:
        logger.error("checkpoints %s requires a scan_id", args.action)
        return 1

    if args.action == "show":
        checkpoint = await store.get(args.scan_id)
        if checkpoint is None:
            logger.error("No checkpoint found for scan %s", args.scan_id)
            return 1
        print(checkpoint.model_dump_json(indent=2))
        return 0

    if await store.clear(args.scan_id):
        print(f"Checkpoint cleared for scan {args.scan_id}")
        return 0
    logger.error("No checkpoint found for scan %s", args.scan_id)
    return 1


def _read_issues(path: Path) -> list[ExistingIssue]:
    """Load existing issues from a JSON list (or {"issues": [...]})."""
    from wcagverify.core.models import ExistingIssue

    data = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(data, dict):
        data = data.get("issues", [])
    return [ExistingIssue.model_validate(item) for item in data]


def _default_scan_id(url: str, html: str) -> str:
    """Deterministic id so re-running the same page resumes its checkpoint."""
    payload = f"{url}\n{html}".encode("utf-8", "surrogatepass")
    digest = hashlib.sha256(payload).hexdigest()
    return f"scan-{digest[:12]}"


def _extract_title(html: str) -> str | None:
    from bs4 import BeautifulSoup

    soup = BeautifulSoup(html, "html.parser")
    if soup.title is None or soup.title.string is None:
        return None
    return soup.title.string.strip() or None


def _print_summary(report: VerificationReport) -> None:
    """Print a human-readable summary of a VerificationReport."""
    summary = report.summary
    print(f"\nVerification complete:")
    print(f"  Scan ID:         {report.scan_id}")
    print(f"  Level:           {report.level}")
    print(f"  Criteria:        {len(report.outcomes)}")
    print(f"  NOT_TESTED:      {len(report.not_tested)}")
    if summary is not None:
        print(f"  Batches:         {summary.processed_batches} processed, "
              f"{summary.skipped_batches} resumed, {summary.cache_hits} from cache")
        print(f"  Tokens (est.):   {summary.tokens_used}")


def _load_settings() -> Settings:
    from wcagverify.config.settings import load_settings

    return load_settings()


def _setup_logging(settings: Settings, verbose: bool) -> None:
    """Configure logging for CLI usage."""
    from wcagverify.logging.logger import setup_logging_from_settings

    setup_logging_from_settings(settings, verbose)


if __name__ == "__main__":
    sys.exit(main())
