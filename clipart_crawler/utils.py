"""Utility helpers for string normalization and path handling."""

from __future__ import annotations

import re
from urllib.parse import urlparse

SLUG_PATTERN = re.compile(r"[^a-z0-9]+")
INVALID_FILENAME_CHARS = re.compile(r'[<>:"/\\|?*]')
PRODUCT_HANDLE_PATTERN = re.compile(r"/products/([^?/]+)")

DEFAULT_FILENAME = "unknown.png"
DEFAULT_PRODUCT_HANDLE = "product"


def slugify(value: str, fallback: str = "page") -> str:
    """Generate a filesystem-friendly slug using ASCII characters only."""
    normalized = value.encode("ascii", "ignore").decode("ascii")
    normalized = normalized.lower()
    normalized = SLUG_PATTERN.sub("-", normalized).strip("-")
    return normalized or fallback


def derive_filename(url: str, fallback: str = DEFAULT_FILENAME) -> str:
    """Return the last ``/`` segment of a URL, or ``fallback`` when empty."""
    if not url:
        return fallback
    return url.rsplit("/", 1)[-1] or fallback


def sanitize_filename(name: str) -> str:
    return INVALID_FILENAME_CHARS.sub("_", name).strip()


def sanitize_category_path(path: str) -> str:
    """Sanitize each segment of a ``/``-joined category path."""
    segments = [sanitize_filename(segment) or "_" for segment in path.split("/")]
    return "/".join(segments)


def product_handle_from_path(path: str) -> str | None:
    match = PRODUCT_HANDLE_PATTERN.search(path)
    return match.group(1) if match else None


def extract_product_handle(url: str) -> str:
    """Product handle from a storefront URL, truncated to 50 characters."""
    handle = product_handle_from_path(urlparse(url).path)
    if handle:
        return handle[:50]
    return DEFAULT_PRODUCT_HANDLE
