"""Command-line entry point for the clipart crawler."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
import time
from pathlib import Path
from typing import Any, Dict, Iterable, Sequence

from .config import CrawlConfig, RetryPolicy
from .crawler import run_detection
from .errors import CrawlerError
from .events import PROGRESS, EventChannel
from .fetch import RequestsFetcher
from .models import ResolutionResult
from .resolver import ResolutionService
from .store import JsonFileDetectionStore

logger = logging.getLogger("clipart_crawler.cli")


def _ensure_command_prefix(argv: Sequence[str], commands: Iterable[str]) -> Sequence[str]:
    if not argv:
        return argv
    first = argv[0]
    if first in commands or first.startswith("-"):
        return argv
    return ("resolve", *argv)


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--store",
        type=Path,
        default=None,
        help="Detection hand-off file (default: $CLIPART_CRAWLER_STORE or ~/.cache)",
    )
    parser.add_argument(
        "--wait",
        type=float,
        default=1.0,
        help="Seconds to wait after network idle before detecting",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=30.0,
        help="Navigation and request timeout in seconds",
    )
    parser.add_argument(
        "--retries",
        type=int,
        default=3,
        help="Detection attempts before giving up",
    )
    parser.add_argument(
        "--retry-interval",
        type=float,
        default=2.5,
        help="Seconds between detection attempts",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )


def _add_resolve_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("url", help="Product page URL")
    parser.add_argument(
        "--output",
        default="output",
        type=Path,
        help="Directory where the zip archive should be written",
    )
    parser.add_argument(
        "--detect",
        action="store_true",
        help="Render the page and detect the endpoint before resolving",
    )
    parser.add_argument(
        "--skip-thumbnails",
        action="store_true",
        help="Do not download separate thumbnail images",
    )
    parser.add_argument(
        "--flat",
        action="store_true",
        help="Put all images at the archive root instead of per-category folders",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print the manifest as JSON instead of downloading images",
    )


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description=(
            "Detect product personalization widgets and download their clipart images."
        ),
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    detect_parser = subparsers.add_parser(
        "detect", help="Render product pages and store the detected configuration URL"
    )
    detect_parser.add_argument("urls", nargs="+", help="One or more product page URLs")
    _add_common_arguments(detect_parser)

    resolve_parser = subparsers.add_parser(
        "resolve", help="Resolve the clipart manifest and package the images"
    )
    _add_resolve_arguments(resolve_parser)
    _add_common_arguments(resolve_parser)

    argv = list(sys.argv[1:] if argv is None else argv)
    argv = list(_ensure_command_prefix(argv, subparsers.choices.keys()))
    return parser.parse_args(argv)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        force=True,
    )


def build_config(args: argparse.Namespace) -> CrawlConfig:
    return CrawlConfig(
        output_root=Path(getattr(args, "output", "output")).resolve(),
        store_path=args.store,
        wait_after_load=args.wait,
        navigation_timeout=args.timeout,
        request_timeout=args.timeout,
        skip_thumbnails=getattr(args, "skip_thumbnails", False),
        organize_by_category=not getattr(args, "flat", False),
        detection_retry=RetryPolicy(
            max_attempts=max(1, args.retries), interval=args.retry_interval
        ),
    )


def _log_progress(event_type: str, payload: Dict[str, Any]) -> None:
    if event_type == PROGRESS:
        logger.info("[%d/%d] %s", payload["current"], payload["total"], payload["status"])


def _run_detect(args: argparse.Namespace) -> int:
    config = build_config(args)
    store = JsonFileDetectionStore(config.store_path)
    failures = 0
    for url in args.urls:
        result = asyncio.run(run_detection(url, config, store))
        if result.is_ready:
            print(f"{url}\t{result.schema_kind.value}\t{result.endpoint_url}")
        else:
            failures += 1
            state = "widget found, no configuration URL" if result.matched else "not detected"
            print(f"{url}\t{state}")
    return 1 if failures else 0


async def _resolve(args: argparse.Namespace, config: CrawlConfig) -> ResolutionResult:
    store = JsonFileDetectionStore(config.store_path)
    page_url = args.url
    if args.detect:
        detection = await run_detection(page_url, config, store)
        if detection.matched:
            page_url = detection.source_origin

    channel = EventChannel()
    channel.subscribe(_log_progress)
    fetcher = RequestsFetcher(timeout=config.request_timeout)
    service = ResolutionService(
        store,
        fetcher,
        channel,
        output_root=None if args.dry_run else config.output_root,
    )
    try:
        return await service.start_resolution(page_url, config.resolve_options())
    finally:
        fetcher.close()


def _run_resolve(args: argparse.Namespace) -> int:
    config = build_config(args)
    overall_start = time.perf_counter()
    try:
        result = asyncio.run(_resolve(args, config))
    except CrawlerError as exc:
        logger.error("%s", exc)
        return 1
    total_elapsed = time.perf_counter() - overall_start

    if args.dry_run:
        json.dump(result.summary(), sys.stdout, indent=2)
        sys.stdout.write("\n")
        sys.stdout.flush()
        return 0

    logger.info(
        "Finished in %.2fs (%d/%d images downloaded, %d failed) -> %s",
        total_elapsed,
        result.downloaded,
        result.counts.total_images,
        result.failed,
        result.archive_path,
    )
    return 0


def main(argv: Sequence[str] | None = None) -> None:
    args = parse_args(argv)
    _configure_logging(args.verbose)
    if args.command == "detect":
        status = _run_detect(args)
    else:
        status = _run_resolve(args)
    sys.exit(status)


if __name__ == "__main__":
    main()
