"""Shared fakes standing in for the browser page and the HTTP transport."""

from __future__ import annotations

import json
from typing import Dict, List, Optional, Union

import pytest

from clipart_crawler.config import RetryPolicy
from clipart_crawler.events import EventChannel
from clipart_crawler.fetch import FetchResponse


class FakeFetcher:
    def __init__(self, routes: Optional[Dict[str, Union[FetchResponse, Exception]]] = None) -> None:
        self.routes = dict(routes or {})
        self.calls: List[str] = []

    def add_json(self, url: str, payload: object, status: int = 200) -> None:
        self.routes[url] = FetchResponse(
            url=url,
            status=status,
            content=json.dumps(payload).encode("utf-8"),
            headers={"Content-Type": "application/json"},
        )

    def add_text(self, url: str, text: str, status: int = 200) -> None:
        self.routes[url] = FetchResponse(url=url, status=status, content=text.encode("utf-8"))

    def add_bytes(self, url: str, data: bytes, content_type: str = "image/png") -> None:
        self.routes[url] = FetchResponse(
            url=url, status=200, content=data, headers={"Content-Type": content_type}
        )

    async def get(self, url: str) -> FetchResponse:
        self.calls.append(url)
        route = self.routes.get(url)
        if route is None:
            return FetchResponse(url=url, status=404, content=b"not found")
        if isinstance(route, Exception):
            raise route
        return route


class FakeProbe:
    def __init__(
        self,
        url: str,
        html: Union[str, List[str]] = "",
        resources: Optional[List[str]] = None,
        shop: Optional[str] = None,
        partner: Optional[Dict[str, str]] = None,
    ) -> None:
        self._url = url
        self._html = [html] if isinstance(html, str) else list(html)
        self._resources = resources or []
        self._shop = shop
        self._partner = partner
        self.html_calls = 0
        self.partner_reads = 0

    async def url(self) -> str:
        return self._url

    async def html(self) -> str:
        index = min(self.html_calls, len(self._html) - 1)
        self.html_calls += 1
        return self._html[index]

    async def resource_urls(self) -> List[str]:
        return list(self._resources)

    async def shop_global(self) -> Optional[str]:
        return self._shop

    async def read_partner_globals(self, policy: RetryPolicy) -> Optional[Dict[str, str]]:
        self.partner_reads += 1
        return self._partner


class RecordingChannel(EventChannel):
    def __init__(self) -> None:
        super().__init__()
        self.events: List[tuple] = []
        self.subscribe(lambda event_type, payload: self.events.append((event_type, payload)))

    def of_type(self, event_type: str) -> List[dict]:
        return [payload for kind, payload in self.events if kind == event_type]


@pytest.fixture
def fetcher() -> FakeFetcher:
    return FakeFetcher()


@pytest.fixture
def channel() -> RecordingChannel:
    return RecordingChannel()
