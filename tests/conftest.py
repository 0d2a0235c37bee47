"""Shared fakes and page fixtures."""

import asyncio
import json
from datetime import datetime, timezone

import pytest

from universal_parser.ingest.base import ProbeResult, RenderedPage
from universal_parser.ingest.extraction_engine import ExtractionEngine
from universal_parser.ingest.fetch_strategies import StrategySelector
from universal_parser.ingest.image_extractor import SmartImageExtractor
from universal_parser.ingest.pattern_store import PatternStore
from universal_parser.ingest.smart_cache import ResultCache


def product_page(
    name="Linen Shirt",
    price="89.00",
    currency="USD",
    brand="Acme",
    image="https://cdn.example.com/img/shirt.jpg",
    extra_body="",
) -> str:
    """A page whose only product evidence is a JSON-LD block."""
    data = {
        "@context": "https://schema.org",
        "@type": "Product",
        "name": name,
        "image": [image],
        "offers": {"@type": "Offer", "price": price, "priceCurrency": currency},
    }
    if brand:
        data["brand"] = {"@type": "Brand", "name": brand}
    return f"""<html><head><title>{name}</title>
<script type="application/ld+json">{json.dumps(data)}</script>
</head><body>{extra_body}</body></html>"""


class FakeFetcher:
    """Direct fetcher returning canned HTML or raising a canned error per URL."""

    def __init__(self, pages=None, delay: float = 0):
        self.pages = pages or {}
        self.delay = delay
        self.calls = []
        self.closed = False

    async def fetch(self, url: str) -> str:
        self.calls.append(url)
        if self.delay:
            await asyncio.sleep(self.delay)
        result = self.pages[url]
        if isinstance(result, Exception):
            raise result
        return result

    async def close(self):
        self.closed = True


class FakeRenderer:
    """Rendered fetcher with the same canned-response behavior."""

    def __init__(self, pages=None, available: bool = True):
        self.pages = pages or {}
        self.available = available
        self.calls = []
        self.closed = False

    async def render(self, url: str) -> RenderedPage:
        self.calls.append(url)
        result = self.pages[url]
        if isinstance(result, Exception):
            raise result
        if isinstance(result, RenderedPage):
            return result
        return RenderedPage(url=url, html=result)

    async def close(self):
        self.closed = True


class FakeProbe:
    """Image probe that accepts a fixed set of URLs."""

    def __init__(self, ok_urls=()):
        self.ok_urls = set(ok_urls)
        self.calls = []

    async def probe(self, url: str) -> ProbeResult:
        self.calls.append(url)
        ok = url in self.ok_urls
        return ProbeResult(url=url, ok=ok, content_type="image/jpeg", status_code=200 if ok else 404)


class FixedClock:
    """Settable UTC clock for the pattern store."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock():
    return FixedClock(datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def pattern_store(tmp_path, clock):
    return PatternStore(tmp_path / "pattern-db.json", clock=clock)


@pytest.fixture
def make_engine(pattern_store):
    """Engine factory with fakes for everything that touches the network."""

    def factory(direct=None, rendered=None, **overrides):
        options = dict(
            direct_fetcher=direct or FakeFetcher(),
            rendered_fetcher=rendered or FakeRenderer(),
            cache=ResultCache(max_size=50, ttl_seconds=3600, rendered_ttl_seconds=7200),
            pattern_store=pattern_store,
            image_extractor=SmartImageExtractor(probe=FakeProbe(), validation_enabled=False),
            selector=StrategySelector(
                requires_rendering=["render-only.example"],
                maybe_requires_rendering=["maybe.example"],
                blocks_direct_fetch=["no-direct.example"],
                terminal_status_codes=[404, 410],
                min_confidence=0.7,
            ),
            smart_images_enabled=False,
            pattern_learning_enabled=False,
            cache_enabled=True,
        )
        options.update(overrides)
        return ExtractionEngine(**options)

    return factory
