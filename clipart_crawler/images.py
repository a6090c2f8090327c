"""Image downloading for a resolved manifest."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional

import requests
from filetype import guess

from .events import ProgressTracker
from .fetch import Fetcher
from .models import ImageRef, Manifest
from .utils import sanitize_filename

logger = logging.getLogger("clipart_crawler")


@dataclass
class ArchiveEntry:
    """Downloaded image waiting to be packaged."""

    category_path: str
    filename: str
    data: bytes


@dataclass
class DownloadReport:
    entries: List[ArchiveEntry] = field(default_factory=list)
    downloaded: int = 0
    failed: int = 0


def detect_image_extension(data: bytes) -> Optional[str]:
    """Detect image type using filetype; returns lowercase extension."""
    kind = guess(data)
    if kind and kind.mime.startswith("image/"):
        ext = kind.extension.lower()
        if ext == "jpeg":
            return "jpg"
        return ext
    return None


def infer_image_extension(content_type: Optional[str], data: bytes) -> Optional[str]:
    """Guess an image file extension from the file signature or HTTP metadata."""
    detected = detect_image_extension(data)
    if detected:
        return detected
    if not content_type:
        return None
    parts = content_type.split(";")[0].split("/")
    if len(parts) == 2 and parts[0] == "image":
        ext = parts[1].strip().lower()
        if ext == "jpeg":
            ext = "jpg"
        if ext == "svg+xml":
            ext = "svg"
        return ext
    return None


def archive_filename(index: int, image: ImageRef, extension: Optional[str] = None) -> str:
    """``NNN_<label>_<filename>``, adding an extension when the name has none."""
    filename = sanitize_filename(image.derived_filename)
    if extension and "." not in filename:
        filename = f"{filename}.{extension}"
    return f"{index:03d}_{sanitize_filename(image.display_label)}_{filename}"


async def download_manifest(
    manifest: Manifest,
    fetcher: Fetcher,
    tracker: ProgressTracker,
    initial_steps: int,
) -> DownloadReport:
    """Fetch every image in manifest order; failures are counted, not raised."""
    report = DownloadReport()
    total_images = sum(len(images) for images in manifest.values())

    for category_path, images in manifest.items():
        for index, image in enumerate(images, start=1):
            tracker.report(
                f"Downloading {category_path}...",
                initial_steps + report.downloaded,
            )
            try:
                resp = await fetcher.get(image.source_url)
            except requests.RequestException as exc:
                logger.warning("Failed to fetch image %s: %s", image.source_url, exc)
                report.failed += 1
                continue
            if not resp.ok:
                logger.warning("Failed to fetch image %s: HTTP %s", image.source_url, resp.status)
                report.failed += 1
                continue
            if not resp.content:
                logger.warning("Skipping %s: empty response", image.source_url)
                report.failed += 1
                continue

            extension = None
            if "." not in image.derived_filename:
                extension = infer_image_extension(resp.content_type, resp.content)
            report.entries.append(
                ArchiveEntry(
                    category_path=category_path,
                    filename=archive_filename(index, image, extension),
                    data=resp.content,
                )
            )
            report.downloaded += 1
            logger.debug(
                "Downloaded (%d/%d) %s (%.2f KB)",
                report.downloaded,
                total_images,
                image.source_url,
                len(resp.content) / 1024,
            )

    if report.failed:
        logger.warning("%d of %d images could not be downloaded", report.failed, total_images)
    return report
