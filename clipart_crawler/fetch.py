"""HTTP access shared by endpoint re-derivation, config and image fetches."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, Optional, Protocol

import requests

logger = logging.getLogger("clipart_crawler")

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/131.0.0.0 Safari/537.36"
)


@dataclass
class FetchResponse:
    """Status, headers and raw body of a completed request."""

    url: str
    status: int
    content: bytes
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def text(self) -> str:
        return self.content.decode("utf-8", errors="replace")

    @property
    def content_type(self) -> Optional[str]:
        for key, value in self.headers.items():
            if key.lower() == "content-type":
                return value
        return None


class Fetcher(Protocol):
    """Transport failures raise ``requests.RequestException``."""

    async def get(self, url: str) -> FetchResponse: ...


class RequestsFetcher:
    """``requests.Session`` calls run in a worker thread."""

    def __init__(
        self,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.timeout = timeout
        if session is None:
            session = requests.Session()
            session.headers["User-Agent"] = DEFAULT_USER_AGENT
        self.session = session

    def _get(self, url: str) -> FetchResponse:
        resp = self.session.get(url, timeout=self.timeout)
        return FetchResponse(
            url=url,
            status=resp.status_code,
            content=resp.content,
            headers=dict(resp.headers),
        )

    async def get(self, url: str) -> FetchResponse:
        logger.debug("GET %s", url)
        return await asyncio.to_thread(self._get, url)

    def close(self) -> None:
        self.session.close()
