"""Packaging of downloaded images into a single zip archive."""

from __future__ import annotations

import datetime as dt
import logging
import zipfile
from pathlib import Path
from typing import Dict, Iterable, Optional

from .images import ArchiveEntry
from .utils import extract_product_handle, sanitize_category_path, slugify

logger = logging.getLogger("clipart_crawler")

COMPRESSION_LEVEL = 6


def archive_name(page_url: str, now: Optional[dt.datetime] = None) -> str:
    """``<product handle>_<YYYY-MM-DDTHH-MM>.zip``."""
    now = now or dt.datetime.now(dt.timezone.utc)
    handle = slugify(extract_product_handle(page_url), fallback="product")
    timestamp = now.strftime("%Y-%m-%dT%H-%M")
    return f"{handle}_{timestamp}.zip"


def category_folders(category_paths: Iterable[str], organize_by_category: bool) -> Dict[str, str]:
    """Map raw category paths to distinct archive folders or filename prefixes.

    Different categories can sanitize to the same name (``A?`` and ``A*``);
    later ones get a `` (2)``, `` (3)`` ... suffix in first-seen order.
    """
    folders: Dict[str, str] = {}
    taken = set()
    for path in category_paths:
        if path in folders:
            continue
        base = sanitize_category_path(path)
        if not organize_by_category:
            base = base.replace("/", "_")
        folder = base
        counter = 2
        while folder in taken:
            folder = f"{base} ({counter})"
            counter += 1
        taken.add(folder)
        folders[path] = folder
    return folders


def entry_path(entry: ArchiveEntry, folder: str, organize_by_category: bool) -> str:
    if organize_by_category:
        return f"{folder}/{entry.filename}"
    return f"{folder}_{entry.filename}"


def write_archive(
    entries: Iterable[ArchiveEntry],
    output_root: Path,
    page_url: str,
    organize_by_category: bool = True,
    now: Optional[dt.datetime] = None,
) -> Path:
    """Write all entries into one zip file under ``output_root``."""
    output_root.mkdir(parents=True, exist_ok=True)
    destination = output_root / archive_name(page_url, now)

    entries = list(entries)
    folders = category_folders((entry.category_path for entry in entries), organize_by_category)

    count = 0
    with zipfile.ZipFile(
        destination,
        "w",
        compression=zipfile.ZIP_DEFLATED,
        compresslevel=COMPRESSION_LEVEL,
    ) as archive:
        for entry in entries:
            folder = folders[entry.category_path]
            archive.writestr(entry_path(entry, folder, organize_by_category), entry.data)
            count += 1

    size_mb = destination.stat().st_size / 1024 / 1024
    logger.info("Saved %d images to %s (%.2f MB)", count, destination, size_mb)
    return destination
