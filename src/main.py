# src/main.py — v2
"""CLI entry point: cache maintenance and fingerprint commands.

Usage:
    seoanalyzer cache stats
    seoanalyzer cache clear [--pattern P]
    seoanalyzer fingerprint <file>
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from seoanalyzer.version import __version__

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    _setup_logging(args.verbose)

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    try:
        return asyncio.run(args.func(args))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except Exception as exc:
        logger.error("Fatal error: %s", exc, exc_info=args.verbose)
        return 1


def _build_parser() -> argparse.ArgumentParser:
    """Build CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="seoanalyzer",
        description=f"seoanalyzer v{__version__}: cached SEO site analysis pipeline",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command")

    # --- cache ---
    p_cache = subparsers.add_parser("cache", help="Inspect or clear the result cache")
    cache_sub = p_cache.add_subparsers(dest="cache_command")

    p_stats = cache_sub.add_parser("stats", help="Show cache statistics")
    p_stats.set_defaults(func=_cmd_cache_stats)

    p_clear = cache_sub.add_parser("clear", help="Delete cache entries")
    p_clear.add_argument(
        "--pattern", default="*",
        help="Only delete keys containing this text (default: all)",
    )
    p_clear.set_defaults(func=_cmd_cache_clear)

    # --- fingerprint ---
    p_fp = subparsers.add_parser(
        "fingerprint", help="Compute the URL-set fingerprint of a file",
    )
    p_fp.add_argument("file", type=Path, help="File with one URL per line")
    p_fp.set_defaults(func=_cmd_fingerprint)

    return parser


async def _cmd_cache_stats(args: argparse.Namespace) -> int:
    """Print entry count, size and age range of the cache."""
    from seoanalyzer.api.facade import create_result_cache

    cache = create_result_cache()
    try:
        stats = await cache.stats()
        metadata = await cache.metadata()
    finally:
        await cache.aclose()

    print("\nCache statistics:")
    print(f"  Backend:       {type(cache.backend).__name__}")
    print(f"  Entries:       {stats.entry_count}")
    print(f"  Size:          {stats.total_bytes / 1024:.1f}KB")
    print(f"  Oldest entry:  {_fmt_time(stats.oldest_created_at)}")
    print(f"  Newest entry:  {_fmt_time(stats.newest_created_at)}")
    print(f"  Last cleanup:  {_fmt_time(metadata.last_cleanup_at)}")
    return 0


async def _cmd_cache_clear(args: argparse.Namespace) -> int:
    """Delete matching cache entries."""
    from seoanalyzer.api.facade import create_result_cache

    cache = create_result_cache()
    try:
        removed = await cache.clear(args.pattern)
    finally:
        await cache.aclose()

    print(f"Removed {removed} cache entries")
    return 0


async def _cmd_fingerprint(args: argparse.Namespace) -> int:
    """Print the fingerprint of the URL set listed in a file."""
    from seoanalyzer.cache.fingerprint import compute_fingerprint

    file_path: Path = args.file
    if not file_path.is_file():
        logger.error("File not found: %s", file_path)
        return 1

    urls = [
        line.strip()
        for line in file_path.read_text(encoding="utf-8").splitlines()
        if line.strip()
    ]
    print(compute_fingerprint(urls))
    return 0


def _fmt_time(value: object) -> str:
    if value is None:
        return "-"
    return value.isoformat(timespec="seconds")  # type: ignore[attr-defined]


def _setup_logging(verbose: bool) -> None:
    """Configure logging for CLI usage."""
    from seoanalyzer.logging.logger import setup_logging

    setup_logging(
        level="DEBUG" if verbose else "WARNING",
        log_format="text",
    )
    # Route our handler to stderr so command output stays clean
    for handler in logging.getLogger("seoanalyzer").handlers:
        if isinstance(handler, logging.StreamHandler) and not isinstance(
            handler, logging.FileHandler
        ):
            handler.setStream(sys.stderr)


if __name__ == "__main__":
    sys.exit(main())
