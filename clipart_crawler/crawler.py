"""High-level orchestration for rendering pages and detecting endpoints."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, List, Optional

from playwright.async_api import (
    Page,
    TimeoutError as PlaywrightTimeoutError,
    async_playwright,
)

from .config import PARTNER_GLOBAL, CrawlConfig, RetryPolicy
from .models import DetectionResult
from .sniffer import PARTNER_PROBE_SCRIPT, LiveEndpointObserver, Sniffer
from .store import DetectionStore

logger = logging.getLogger("clipart_crawler")

RESOURCE_TIMING_SCRIPT = (
    "() => performance.getEntriesByType('resource').map((entry) => entry.name)"
)
SHOP_GLOBAL_SCRIPT = (
    "() => (window.Shopify && typeof window.Shopify.shop === 'string')"
    " ? window.Shopify.shop : null"
)


class PlaywrightProbe:
    """Page probe backed by a live Playwright page."""

    def __init__(self, page: Page) -> None:
        self.page = page

    async def url(self) -> str:
        return self.page.url

    async def html(self) -> str:
        return await self.page.content()

    async def resource_urls(self) -> List[str]:
        return list(await self.page.evaluate(RESOURCE_TIMING_SCRIPT) or [])

    async def shop_global(self) -> Optional[str]:
        return await self.page.evaluate(SHOP_GLOBAL_SCRIPT)

    async def read_partner_globals(self, policy: RetryPolicy) -> Optional[Dict[str, str]]:
        return await self.page.evaluate(
            PARTNER_PROBE_SCRIPT,
            {
                "globalName": PARTNER_GLOBAL,
                "maxAttempts": policy.max_attempts,
                "interval": int(policy.interval * 1000),
            },
        )


async def load_page(
    page: Page,
    url: str,
    config: CrawlConfig,
    observer: LiveEndpointObserver,
) -> None:
    """Navigate ``page`` with the live observer attached before the first request."""
    page.set_default_navigation_timeout(config.navigation_timeout * 1000)
    page.on("request", lambda request: observer.observe(request.url))
    logger.info("Loading %s", url)
    await page.goto(url, wait_until="networkidle")
    if config.wait_after_load:
        await page.wait_for_timeout(int(config.wait_after_load * 1000))


@asynccontextmanager
async def open_page(
    url: str,
    config: CrawlConfig,
    observer: LiveEndpointObserver,
) -> AsyncIterator[Page]:
    """Render ``url`` headless with the live observer attached before navigation."""
    async with async_playwright() as playwright:
        browser = await playwright.chromium.launch(headless=True)
        try:
            page = await browser.new_page()
            await load_page(page, url, config, observer)
            yield page
        finally:
            await browser.close()


async def run_detection(
    url: str,
    config: CrawlConfig,
    store: DetectionStore,
) -> DetectionResult:
    """Render a product page and run detection until it settles."""
    observer = LiveEndpointObserver()
    sniffer = Sniffer(
        store,
        slot=observer.slot,
        retry=config.detection_retry,
        partner_poll=config.partner_poll,
    )
    try:
        async with open_page(url, config, observer) as page:
            return await sniffer.detect_until_ready(PlaywrightProbe(page))
    except PlaywrightTimeoutError as exc:
        logger.error("Timeout while loading %s: %s", url, exc)
        return DetectionResult.not_found(url)
    except Exception:  # pylint: disable=broad-except
        logger.exception("Unexpected error loading %s", url)
        return DetectionResult.not_found(url)
