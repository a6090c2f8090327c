"""End-to-end resolution: locate endpoint, fetch configuration, build manifest."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Optional, Tuple

import requests

from .archive import write_archive
from .config import ResolveOptions
from .errors import DetectionFailure, FetchFailure
from .events import COMPLETE, ERROR, EventChannel, ProgressTracker
from .fetch import Fetcher
from .images import download_manifest
from .models import ResolutionResult, SchemaKind
from .normalizer import count_manifest, flatten, normalize
from .sniffer import MARKUP_URL_PATTERN, classify_endpoint
from .store import DetectionStore

logger = logging.getLogger("clipart_crawler")

INITIAL_STEPS = 3


class ResolutionOrchestrator:
    """Runs LOCATE_ENDPOINT, FETCH_CONFIG and PARSE_IMAGES strictly in order."""

    def __init__(
        self,
        store: DetectionStore,
        fetcher: Fetcher,
        channel: Optional[EventChannel] = None,
    ) -> None:
        self.store = store
        self.fetcher = fetcher
        self.channel = channel or EventChannel()

    async def resolve(
        self,
        page_url: str,
        options: Optional[ResolveOptions] = None,
        tracker: Optional[ProgressTracker] = None,
    ) -> ResolutionResult:
        options = options or ResolveOptions()
        tracker = tracker or ProgressTracker(self.channel, INITIAL_STEPS)

        tracker.report("Finding configuration...", 0, INITIAL_STEPS)
        endpoint_url, schema_kind = await self.locate_endpoint(page_url)
        logger.info("Using %s configuration at %s", schema_kind.value, endpoint_url)

        tracker.report("Fetching configuration...", 1)
        payload = await self.fetch_config(endpoint_url)

        tracker.report("Parsing images...", 2)
        manifest = flatten(normalize(payload, schema_kind, options.skip_thumbnails))
        counts = count_manifest(manifest)
        logger.info(
            "Found %d images in %d categories",
            counts.total_images,
            counts.total_categories,
        )
        return ResolutionResult(
            manifest=manifest,
            counts=counts,
            endpoint_url=endpoint_url,
            schema_kind=schema_kind,
            total_steps=INITIAL_STEPS + counts.total_images,
        )

    async def locate_endpoint(self, page_url: str) -> Tuple[str, SchemaKind]:
        cached = self.store.get()
        if cached is not None and cached.source_origin == page_url and cached.endpoint_url:
            kind = cached.schema_kind or classify_endpoint(cached.endpoint_url) or SchemaKind.LEGACY
            logger.debug("Using stored detection from strategy %s", cached.strategy)
            return cached.endpoint_url, kind
        if cached is not None and cached.source_origin != page_url:
            logger.debug("Ignoring stored detection for %s", cached.source_origin)

        found = await self._search_page_html(page_url)
        if found is None:
            logger.error("Could not find a configuration URL for %s", page_url)
            raise DetectionFailure(page_url)
        return found, SchemaKind.LEGACY

    async def _search_page_html(self, page_url: str) -> Optional[str]:
        """Re-fetch the page and look for a legacy endpoint in its markup."""
        logger.debug("No usable stored detection, fetching %s", page_url)
        try:
            response = await self.fetcher.get(page_url)
        except requests.RequestException as exc:
            logger.warning("Could not fetch %s: %s", page_url, exc)
            return None
        match = MARKUP_URL_PATTERN.search(response.text)
        return match.group(0) if match else None

    async def fetch_config(self, endpoint_url: str) -> Any:
        try:
            response = await self.fetcher.get(endpoint_url)
        except requests.RequestException as exc:
            logger.error("Fetch error for %s: %s", endpoint_url, exc)
            raise FetchFailure(endpoint_url, str(exc)) from exc

        if not response.ok:
            logger.error("Configuration request returned HTTP %s", response.status)
            raise FetchFailure(endpoint_url, response.text, status=response.status)

        try:
            return json.loads(response.content)
        except ValueError as exc:
            raise FetchFailure(
                endpoint_url, f"invalid JSON ({exc})", status=response.status
            ) from exc


class ResolutionService:
    """Entry point exposed to front ends: resolve, download and package.

    Every run ends with exactly one ``complete`` or ``error`` event.  Without an
    ``output_root`` the run stops after the manifest is built.
    """

    def __init__(
        self,
        store: DetectionStore,
        fetcher: Fetcher,
        channel: Optional[EventChannel] = None,
        output_root: Optional[Path] = None,
    ) -> None:
        self.channel = channel or EventChannel()
        self.fetcher = fetcher
        self.output_root = output_root
        self.orchestrator = ResolutionOrchestrator(store, fetcher, self.channel)

    async def start_resolution(
        self,
        page_url: str,
        options: Optional[ResolveOptions] = None,
    ) -> ResolutionResult:
        options = options or ResolveOptions()
        tracker = ProgressTracker(self.channel, INITIAL_STEPS)
        try:
            result = await self.orchestrator.resolve(page_url, options, tracker)
            tracker.total = result.total_steps
            if self.output_root is not None:
                await self._download_and_package(page_url, options, result, tracker)
            tracker.finish()
        except Exception as exc:
            self.channel.emit(ERROR, {"message": str(exc)})
            raise

        self.channel.emit(
            COMPLETE,
            {
                "total_categories": result.counts.total_categories,
                "total_images": result.counts.total_images,
                "downloaded": result.downloaded,
                "failed": result.failed,
                "archive_path": result.archive_path,
                "manifest": result.manifest,
            },
        )
        return result

    async def _download_and_package(
        self,
        page_url: str,
        options: ResolveOptions,
        result: ResolutionResult,
        tracker: ProgressTracker,
    ) -> None:
        assert self.output_root is not None
        tracker.report("Starting download...", INITIAL_STEPS)
        report = await download_manifest(result.manifest, self.fetcher, tracker, INITIAL_STEPS)
        result.downloaded = report.downloaded
        result.failed = report.failed

        tracker.report(
            f"Generating ZIP file... ({report.downloaded} images)",
            INITIAL_STEPS + report.downloaded,
        )
        archive_path = write_archive(
            report.entries,
            self.output_root,
            page_url,
            organize_by_category=options.organize_by_category,
        )
        result.archive_path = str(archive_path)
