"""MCP server exposing clipart-crawler detect/resolve tools."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict

from mcp.server.fastmcp import FastMCP

from .config import CrawlConfig, ResolveOptions
from .crawler import run_detection
from .fetch import RequestsFetcher
from .resolver import ResolutionService
from .store import MemoryDetectionStore

logger = logging.getLogger("clipart_crawler.mcp")
logger.setLevel(logging.ERROR)

mcp = FastMCP(name="clipart-crawler")

_store = MemoryDetectionStore()


@mcp.tool()
async def detect(url: str) -> Dict[str, Any]:
    """Render a product page and report the personalization configuration URL."""

    config = CrawlConfig(output_root=Path.cwd())
    result = await run_detection(url, config, _store)
    return result.to_dict()


@mcp.tool()
async def resolve(url: str, skip_thumbnails: bool = False) -> Dict[str, Any]:
    """Resolve the clipart manifest for a product page without downloading images.

    Uses the endpoint from a previous ``detect`` call on the same URL when
    available, otherwise searches the page HTML for a legacy endpoint.
    """

    fetcher = RequestsFetcher()
    try:
        service = ResolutionService(_store, fetcher)
        result = await service.start_resolution(
            url, ResolveOptions(skip_thumbnails=skip_thumbnails)
        )
    finally:
        fetcher.close()
    return result.summary()


def main() -> None:
    """Entry point for running the MCP server."""
    logging.basicConfig(level=logging.ERROR)
    mcp.run()


if __name__ == "__main__":
    main()
