"""Detection of the personalization configuration endpoint on a rendered page.

Detection is an ordered waterfall of independent strategies.  The first one
producing an endpoint wins; when none does, the page may still be flagged as
plausibly personalized from static markup so callers know to keep polling.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field
from typing import (
    Awaitable,
    Callable,
    Dict,
    List,
    Optional,
    Protocol,
    Sequence,
    Tuple,
    TypeVar,
)
from urllib.parse import urlparse

from bs4 import BeautifulSoup

from .config import (
    CDN_HOST,
    DEFAULT_DETECTION_RETRY,
    DEFAULT_PARTNER_POLL,
    LEGACY_HOST,
    PARTNER_API_TEMPLATE,
    PRESENCE_SELECTORS,
    PRESENCE_SUBSTRINGS,
    UNIFIED_SETTINGS_PATH,
    RetryPolicy,
)
from .models import DetectionResult, SchemaKind
from .store import DetectionStore
from .utils import product_handle_from_path

logger = logging.getLogger("clipart_crawler")

T = TypeVar("T")

_LEGACY_HOSTS = (LEGACY_HOST, CDN_HOST)
_HOST_ALTERNATION = "|".join(re.escape(host) for host in _LEGACY_HOSTS)

MARKUP_URL_PATTERN = re.compile(
    rf"https://(?:{_HOST_ALTERNATION})/[^\"'\s<>]+\.json[^\"'\s<>]*"
)
SCRIPT_URL_PATTERN = re.compile(rf"https://(?:{_HOST_ALTERNATION})/[^\s\"']+\.json")
SHOP_DOMAIN_PATTERN = re.compile(r'"shop":\s*"([^"]+\.myshopify\.com)"')

PARTNER_PROBE_SCRIPT = """
async ({globalName, maxAttempts, interval}) => {
  for (let attempt = 0; attempt < maxAttempts; attempt++) {
    const data = window[globalName];
    if (data && data.slug && data.store) {
      const found = {slug: String(data.slug), store: String(data.store)};
      window.postMessage({type: 'clipart-crawler:partner', ...found}, '*');
      return found;
    }
    await new Promise((resolve) => setTimeout(resolve, interval));
  }
  return null;
}
"""


class PageProbe(Protocol):
    """Read-only view of a live page used by the detection strategies."""

    async def url(self) -> str: ...

    async def html(self) -> str: ...

    async def resource_urls(self) -> List[str]: ...

    async def shop_global(self) -> Optional[str]: ...

    async def read_partner_globals(self, policy: RetryPolicy) -> Optional[Dict[str, str]]: ...


def classify_endpoint(url: str) -> Optional[SchemaKind]:
    """Schema kind of a URL matching one of the known endpoint signatures."""
    if not url:
        return None
    parsed = urlparse(url)
    host = parsed.netloc.lower()
    if host in _LEGACY_HOSTS and ".json" in parsed.path:
        return SchemaKind.LEGACY
    if UNIFIED_SETTINGS_PATH in parsed.path:
        return SchemaKind.UNIFIED
    return None


def build_partner_url(slug: str, store: str) -> str:
    return PARTNER_API_TEMPLATE.format(slug=slug, store=store)


def has_plausible_presence(html: str, soup: Optional[BeautifulSoup] = None) -> bool:
    """Static markup hints that the vendor widget is on the page."""
    if not html:
        return False
    if soup is None:
        soup = BeautifulSoup(html, "html.parser")
    for selector in PRESENCE_SELECTORS:
        if soup.select_one(selector) is not None:
            return True
    lowered = html.lower()
    return any(marker in lowered for marker in PRESENCE_SUBSTRINGS)


class LatestSlot:
    """Single slot holding the most recent endpoint seen on the network."""

    def __init__(self) -> None:
        self._value: Optional[Tuple[str, SchemaKind]] = None

    def write(self, url: str, kind: SchemaKind) -> None:
        self._value = (url, kind)

    def read(self) -> Optional[Tuple[str, SchemaKind]]:
        return self._value


class LiveEndpointObserver:
    """Records endpoint-shaped request URLs as the page keeps loading."""

    def __init__(self, slot: Optional[LatestSlot] = None) -> None:
        self.slot = slot or LatestSlot()

    def observe(self, url: str) -> None:
        kind = classify_endpoint(url)
        if kind is None:
            return
        self.slot.write(url, kind)
        logger.debug("Observed %s endpoint on the network: %s", kind.value, url)


@dataclass
class SniffContext:
    """Page data gathered once per detection pass and shared by strategies."""

    probe: PageProbe
    page_url: str
    html: str
    slot: LatestSlot
    partner_poll: RetryPolicy
    _soup: Optional[BeautifulSoup] = field(default=None, repr=False)

    @property
    def soup(self) -> BeautifulSoup:
        if self._soup is None:
            self._soup = BeautifulSoup(self.html, "html.parser")
        return self._soup

    def found(self, url: str, kind: SchemaKind, strategy: str) -> DetectionResult:
        return DetectionResult(
            matched=True,
            endpoint_url=url,
            schema_kind=kind,
            source_origin=self.page_url,
            strategy=strategy,
        )


class Detector(Protocol):
    name: str

    async def attempt(self, ctx: SniffContext) -> Optional[DetectionResult]: ...


class PartnerChannelDetector:
    """Reads the partner widget globals from the page's own context.

    The page is polled once per page URL; exhausting the poll is remembered
    as "not present" for later passes.
    """

    name = "partner-channel"

    def __init__(self) -> None:
        self._reads: Dict[str, Optional[Dict[str, str]]] = {}

    async def attempt(self, ctx: SniffContext) -> Optional[DetectionResult]:
        if ctx.page_url not in self._reads:
            self._reads[ctx.page_url] = await ctx.probe.read_partner_globals(ctx.partner_poll)
        data = self._reads[ctx.page_url]
        if not data:
            return None
        slug = str(data.get("slug") or "").strip()
        store = str(data.get("store") or "").strip()
        if not slug or not store:
            return None
        return ctx.found(build_partner_url(slug, store), SchemaKind.PARTNER, self.name)


class LiveObserverDetector:
    name = "live-observer"

    async def attempt(self, ctx: SniffContext) -> Optional[DetectionResult]:
        seen = ctx.slot.read()
        if seen is None:
            return None
        url, kind = seen
        return ctx.found(url, kind, self.name)


class ResourceTimingDetector:
    """Scans resource-timing entries the page has already recorded."""

    name = "resource-timing"

    async def attempt(self, ctx: SniffContext) -> Optional[DetectionResult]:
        for url in await ctx.probe.resource_urls():
            kind = classify_endpoint(url)
            if kind is not None:
                return ctx.found(url, kind, self.name)
        return None


class MarkupPatternDetector:
    name = "markup-pattern"

    async def attempt(self, ctx: SniffContext) -> Optional[DetectionResult]:
        match = MARKUP_URL_PATTERN.search(ctx.html)
        if match is None:
            return None
        return ctx.found(match.group(0), SchemaKind.LEGACY, self.name)


class MetadataSynthesisDetector:
    """Builds the legacy endpoint from the shop domain and product handle.

    Only the primary legacy host is synthesized; CDN URLs built this way
    pointed at configurations that did not exist.
    """

    name = "metadata-synthesis"

    async def attempt(self, ctx: SniffContext) -> Optional[DetectionResult]:
        handle = product_handle_from_path(urlparse(ctx.page_url).path)
        if not handle:
            return None
        shop = await self._shop_domain(ctx)
        if not shop:
            return None
        url = f"https://{LEGACY_HOST}/{shop}/{handle}.json"
        return ctx.found(url, SchemaKind.LEGACY, self.name)

    async def _shop_domain(self, ctx: SniffContext) -> Optional[str]:
        meta = ctx.soup.find("meta", attrs={"name": "shopify-shop"})
        if meta and meta.get("content"):
            return str(meta["content"]).strip()
        shop = await ctx.probe.shop_global()
        if shop:
            return shop.strip()
        match = SHOP_DOMAIN_PATTERN.search(ctx.html)
        return match.group(1) if match else None


class ScriptBodyDetector:
    """Last resort: inline script bodies, including JSON-escaped URLs."""

    name = "script-body"

    async def attempt(self, ctx: SniffContext) -> Optional[DetectionResult]:
        for script in ctx.soup.find_all("script"):
            text = script.string or script.get_text() or ""
            match = SCRIPT_URL_PATTERN.search(text.replace("\\/", "/"))
            if match:
                return ctx.found(match.group(0), SchemaKind.LEGACY, self.name)
        return None


def default_detectors() -> List[Detector]:
    return [
        PartnerChannelDetector(),
        LiveObserverDetector(),
        ResourceTimingDetector(),
        MarkupPatternDetector(),
        MetadataSynthesisDetector(),
        ScriptBodyDetector(),
    ]


async def poll(
    attempt: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    done: Callable[[T], bool],
) -> T:
    """Run ``attempt`` up to ``policy.max_attempts`` times, ``policy.interval`` apart."""
    result = await attempt()
    for _ in range(1, policy.max_attempts):
        if done(result):
            break
        await asyncio.sleep(policy.interval)
        result = await attempt()
    return result


class Sniffer:
    """Runs the detection waterfall and hands the outcome to the store."""

    def __init__(
        self,
        store: DetectionStore,
        slot: Optional[LatestSlot] = None,
        detectors: Optional[Sequence[Detector]] = None,
        retry: RetryPolicy = DEFAULT_DETECTION_RETRY,
        partner_poll: RetryPolicy = DEFAULT_PARTNER_POLL,
    ) -> None:
        self.store = store
        self.slot = slot or LatestSlot()
        self.detectors = list(detectors) if detectors is not None else default_detectors()
        self.retry = retry
        self.partner_poll = partner_poll

    async def detect(self, probe: PageProbe) -> DetectionResult:
        """Run every strategy in order once; the first endpoint found wins."""
        page_url = ""
        try:
            page_url = await probe.url()
            html = await probe.html()
        except Exception:  # pylint: disable=broad-except
            logger.exception("Could not read page %s for detection", page_url or "<unknown>")
            return DetectionResult.not_found(page_url)
        ctx = SniffContext(
            probe=probe,
            page_url=page_url,
            html=html,
            slot=self.slot,
            partner_poll=self.partner_poll,
        )
        for detector in self.detectors:
            try:
                result = await detector.attempt(ctx)
            except Exception:  # pylint: disable=broad-except
                logger.exception("Detection strategy %s failed", detector.name)
                continue
            if result is not None:
                logger.debug("Strategy %s found %s", detector.name, result.endpoint_url)
                return result

        if has_plausible_presence(html, ctx.soup):
            logger.debug("Vendor markup present on %s but no endpoint yet", page_url)
            return DetectionResult(
                matched=True,
                endpoint_url=None,
                schema_kind=None,
                source_origin=page_url,
            )
        return DetectionResult.not_found(page_url)

    async def detect_until_ready(self, probe: PageProbe) -> DetectionResult:
        """Re-run detection on the retry schedule and persist the final result."""
        result = await poll(lambda: self.detect(probe), self.retry, lambda r: r.is_ready)
        if result.is_ready:
            logger.info(
                "Detected %s configuration at %s",
                result.schema_kind.value if result.schema_kind else "unknown",
                result.endpoint_url,
            )
        elif result.matched:
            logger.warning("Vendor widget found on %s but no configuration URL", result.source_origin)
        else:
            logger.info("No personalization widget detected on %s", result.source_origin)

        if result.matched:
            self.store.put(result)
        return result
