"""Tests for the Playwright-backed page adapter and detection runner."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from pathlib import Path
from types import SimpleNamespace
from typing import Any, Callable, Dict, List, Optional

import pytest
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from clipart_crawler import crawler
from clipart_crawler.config import PARTNER_GLOBAL, CrawlConfig, RetryPolicy
from clipart_crawler.crawler import (
    RESOURCE_TIMING_SCRIPT,
    SHOP_GLOBAL_SCRIPT,
    PlaywrightProbe,
    load_page,
    run_detection,
)
from clipart_crawler.models import DetectionResult, SchemaKind
from clipart_crawler.sniffer import PARTNER_PROBE_SCRIPT, LiveEndpointObserver
from clipart_crawler.store import MemoryDetectionStore

PAGE = "https://shop.example.com/products/custom-mug"
LEGACY_URL = "https://sh.medzt.com/shop.myshopify.com/custom-mug.json"


class FakePage:
    """Records the Playwright page calls the crawler makes."""

    def __init__(
        self,
        url: str = PAGE,
        content: str = "",
        evaluations: Optional[Dict[str, Any]] = None,
        requests: Optional[List[str]] = None,
    ) -> None:
        self.url = url
        self._content = content
        self.evaluations = evaluations or {}
        self.requests = requests or []
        self.handlers: Dict[str, List[Callable[[Any], None]]] = {}
        self.calls: List[tuple] = []

    def set_default_navigation_timeout(self, timeout: float) -> None:
        self.calls.append(("set_default_navigation_timeout", timeout))

    def on(self, event: str, handler: Callable[[Any], None]) -> None:
        self.calls.append(("on", event))
        self.handlers.setdefault(event, []).append(handler)

    async def goto(self, url: str, wait_until: str = "load") -> None:
        self.calls.append(("goto", url, wait_until))
        for request_url in self.requests:
            for handler in self.handlers.get("request", []):
                handler(SimpleNamespace(url=request_url))

    async def wait_for_timeout(self, timeout: float) -> None:
        self.calls.append(("wait_for_timeout", timeout))

    async def content(self) -> str:
        return self._content

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        self.calls.append(("evaluate", script, arg))
        return self.evaluations.get(script)


def _config(tmp_path: Path, **overrides: Any) -> CrawlConfig:
    overrides.setdefault("detection_retry", RetryPolicy(max_attempts=1, interval=0))
    return CrawlConfig(output_root=tmp_path, **overrides)


def _serve(page: FakePage):
    @asynccontextmanager
    async def fake_open_page(url, config, observer):
        await load_page(page, url, config, observer)
        yield page

    return fake_open_page


def _failing(exc: Exception):
    @asynccontextmanager
    async def fake_open_page(url, config, observer):
        raise exc
        yield  # pragma: no cover

    return fake_open_page


def test_partner_globals_are_read_with_poll_schedule() -> None:
    found = {"slug": "mug", "store": "acme"}
    page = FakePage(evaluations={PARTNER_PROBE_SCRIPT: found})

    result = asyncio.run(
        PlaywrightProbe(page).read_partner_globals(RetryPolicy(max_attempts=20, interval=0.25))
    )

    assert result == found
    assert page.calls == [
        (
            "evaluate",
            PARTNER_PROBE_SCRIPT,
            {"globalName": PARTNER_GLOBAL, "maxAttempts": 20, "interval": 250},
        )
    ]


def test_resource_urls_tolerate_missing_timing_entries() -> None:
    page = FakePage(evaluations={RESOURCE_TIMING_SCRIPT: None})
    assert asyncio.run(PlaywrightProbe(page).resource_urls()) == []

    page = FakePage(evaluations={RESOURCE_TIMING_SCRIPT: (LEGACY_URL,)})
    assert asyncio.run(PlaywrightProbe(page).resource_urls()) == [LEGACY_URL]


def test_page_reads_pass_through() -> None:
    page = FakePage(
        url="https://shop.example.com/products/final",
        content="<p>hello</p>",
        evaluations={SHOP_GLOBAL_SCRIPT: "acme.myshopify.com"},
    )
    adapter = PlaywrightProbe(page)

    assert asyncio.run(adapter.url()) == "https://shop.example.com/products/final"
    assert asyncio.run(adapter.html()) == "<p>hello</p>"
    assert asyncio.run(adapter.shop_global()) == "acme.myshopify.com"


def test_request_listener_is_attached_before_navigation(tmp_path: Path) -> None:
    page = FakePage(requests=["https://cdn.example.com/app.js", LEGACY_URL])
    observer = LiveEndpointObserver()

    asyncio.run(load_page(page, PAGE, _config(tmp_path, wait_after_load=1.5), observer))

    assert page.calls == [
        ("set_default_navigation_timeout", 30000.0),
        ("on", "request"),
        ("goto", PAGE, "networkidle"),
        ("wait_for_timeout", 1500),
    ]
    assert observer.slot.read() == (LEGACY_URL, SchemaKind.LEGACY)


def test_settle_wait_is_skipped_when_disabled(tmp_path: Path) -> None:
    page = FakePage()

    asyncio.run(load_page(page, PAGE, _config(tmp_path, wait_after_load=0), LiveEndpointObserver()))

    assert [call[0] for call in page.calls] == ["set_default_navigation_timeout", "on", "goto"]


def test_run_detection_uses_requests_seen_during_load(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    page = FakePage(content="<p>plain</p>", requests=[LEGACY_URL])
    monkeypatch.setattr(crawler, "open_page", _serve(page))
    store = MemoryDetectionStore()

    result = asyncio.run(run_detection(PAGE, _config(tmp_path), store))

    assert result.is_ready
    assert result.endpoint_url == LEGACY_URL
    assert result.strategy == "live-observer"
    assert store.get() == result


def test_run_detection_passes_configured_partner_poll(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    page = FakePage(content="<p>plain</p>")
    monkeypatch.setattr(crawler, "open_page", _serve(page))
    config = _config(tmp_path, partner_poll=RetryPolicy(max_attempts=4, interval=0.1))

    asyncio.run(run_detection(PAGE, config, MemoryDetectionStore()))

    partner_reads = [call for call in page.calls if call[:2] == ("evaluate", PARTNER_PROBE_SCRIPT)]
    assert partner_reads == [
        (
            "evaluate",
            PARTNER_PROBE_SCRIPT,
            {"globalName": PARTNER_GLOBAL, "maxAttempts": 4, "interval": 100},
        )
    ]


@pytest.mark.parametrize(
    "exc",
    [
        PlaywrightTimeoutError("Timeout 30000ms exceeded."),
        PlaywrightError("net::ERR_NAME_NOT_RESOLVED at https://shop.example.com/products/custom-mug"),
        RuntimeError("browser closed"),
    ],
)
def test_run_detection_reports_not_found_when_page_fails(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, exc: Exception
) -> None:
    monkeypatch.setattr(crawler, "open_page", _failing(exc))
    store = MemoryDetectionStore()

    result = asyncio.run(run_detection(PAGE, _config(tmp_path), store))

    assert not result.matched
    assert result == DetectionResult.not_found(PAGE)
    assert store.get() is None
