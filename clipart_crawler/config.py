"""Configuration objects and constants for the crawler."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

LEGACY_ASSET_BASE = "https://assets.medzt.com/"
PARTNER_ASSET_BASE = "https://assets.buildyou.io/"

LEGACY_HOST = "sh.medzt.com"
CDN_HOST = "cdn.medzt.com"
UNIFIED_SETTINGS_PATH = "/api/settings/unified/"

PARTNER_API_TEMPLATE = (
    "https://api.buildyou.io/v1/stores/{store}/products/{slug}/customization-form"
)
PARTNER_GLOBAL = "BuildYou"

PRESENCE_SELECTORS = (
    ".ant-form-item",
    '[class*="customily"]',
    '[id*="customily"]',
)
PRESENCE_SUBSTRINGS = ("customily", "medzt.com", "buildyou")

STORE_ENV_VAR = "CLIPART_CRAWLER_STORE"
DEFAULT_STORE_PATH = Path("~/.cache/clipart-crawler/detection.json")


@dataclass(frozen=True)
class RetryPolicy:
    """Fixed-interval bounded retry schedule."""

    max_attempts: int
    interval: float


DEFAULT_DETECTION_RETRY = RetryPolicy(max_attempts=3, interval=2.5)
DEFAULT_PARTNER_POLL = RetryPolicy(max_attempts=20, interval=0.25)


@dataclass
class ResolveOptions:
    """User-facing switches for a resolution run."""

    skip_thumbnails: bool = False
    organize_by_category: bool = True


@dataclass
class CrawlConfig:
    """Top-level settings that control detection, resolution and packaging."""

    output_root: Path
    store_path: Path | None = None
    wait_after_load: float = 1.0
    navigation_timeout: float = 30.0
    request_timeout: float = 30.0
    skip_thumbnails: bool = False
    organize_by_category: bool = True
    detection_retry: RetryPolicy = DEFAULT_DETECTION_RETRY
    partner_poll: RetryPolicy = DEFAULT_PARTNER_POLL

    def resolve_options(self) -> ResolveOptions:
        return ResolveOptions(
            skip_thumbnails=self.skip_thumbnails,
            organize_by_category=self.organize_by_category,
        )


def default_store_path() -> Path:
    """Location of the detection hand-off file, honouring the env override."""
    override = os.getenv(STORE_ENV_VAR)
    if override:
        return Path(override).expanduser()
    return DEFAULT_STORE_PATH.expanduser()
