"""Tests for smart gallery discovery and HEAD validation."""

import httpx
import pytest

from universal_parser.ingest.base import FetchStrategy, ValidationProbeFailure
from universal_parser.ingest.extractors import PageContext
from universal_parser.ingest.image_extractor import (
    HttpImageProbe,
    SmartImageExtractor,
    get_image_pattern,
    numbered_variants,
    upsize_image_url,
)

from conftest import FakeProbe

OG_IMAGE = "https://img.example.com/p/shirt/1.jpg"


def og_page(og_image=OG_IMAGE, body=""):
    html = f'<html><head><meta property="og:image" content="{og_image}"></head><body>{body}</body></html>'
    return PageContext.parse("https://shop.example/p/shirt", html, FetchStrategy.DIRECT)


def test_numbered_variants():
    assert numbered_variants(OG_IMAGE) == [f"https://img.example.com/p/shirt/{i}.jpg" for i in range(2, 7)]
    assert numbered_variants("https://img.example.com/p/shirt_1.jpg")[0] == "https://img.example.com/p/shirt_2.jpg"
    assert numbered_variants("https://img.example.com/p/front.jpg") == []


def test_upsize_image_url():
    url = "https://img.example.com/a_crop_center.jpg?w=300&h=300&v=2"
    assert upsize_image_url(url) == "https://img.example.com/a.jpg?w=1920&v=2"


def test_pattern_lookup_by_domain_or_og_host():
    assert get_image_pattern("ssense.com") is not None
    assert get_image_pattern("shop.example", "https://cdn.shopify.com/s/files/a.jpg") is not None
    assert get_image_pattern("shop.example", OG_IMAGE) is None


@pytest.mark.asyncio
async def test_guessed_urls_kept_only_when_validated():
    probe = FakeProbe(ok_urls={OG_IMAGE, "https://img.example.com/p/shirt/2.jpg", "https://img.example.com/p/shirt/3.jpg"})
    extractor = SmartImageExtractor(probe=probe, validation_enabled=True, validation_ceiling=15)

    result = await extractor.extract(og_page())

    assert result.images == [
        OG_IMAGE,
        "https://img.example.com/p/shirt/2.jpg",
        "https://img.example.com/p/shirt/3.jpg",
    ]
    assert len(probe.calls) == 6
    assert result.strategies["validation"] == 3


@pytest.mark.asyncio
async def test_no_probing_above_validation_ceiling():
    probe = FakeProbe(ok_urls={OG_IMAGE})
    extractor = SmartImageExtractor(probe=probe, validation_enabled=True, validation_ceiling=3)

    result = await extractor.extract(og_page())

    assert probe.calls == []
    # Unvalidated guesses are dropped, the observed og:image stays
    assert result.images == [OG_IMAGE]


@pytest.mark.asyncio
async def test_probe_failures_drop_only_that_url():
    class FlakyProbe(FakeProbe):
        async def probe(self, url):
            if url.endswith("/2.jpg"):
                raise ValidationProbeFailure(url, "ConnectTimeout")
            return await super().probe(url)

    probe = FlakyProbe(ok_urls={OG_IMAGE, "https://img.example.com/p/shirt/2.jpg", "https://img.example.com/p/shirt/4.jpg"})
    extractor = SmartImageExtractor(probe=probe, validation_enabled=True)

    result = await extractor.extract(og_page())

    assert result.images == [OG_IMAGE, "https://img.example.com/p/shirt/4.jpg"]


@pytest.mark.asyncio
async def test_gallery_selector_reported_and_capped():
    gallery = "".join(f'<img src="/media/shirt-{i}.jpg">' for i in range(12))
    extractor = SmartImageExtractor(probe=FakeProbe(), validation_enabled=False, max_images=10)

    result = await extractor.extract(og_page(og_image="", body=f'<div class="product-gallery">{gallery}</div>'))

    assert len(result.images) == 10
    assert result.images[0] == "https://shop.example/media/shirt-0.jpg"
    assert result.selector == ".product-gallery img"
    assert extractor.get_stats("shop.example")["extractions"] == 1


@pytest.mark.asyncio
async def test_http_probe_checks_status_and_content_type():
    def handler(request):
        if request.url.path.endswith("ok.jpg"):
            return httpx.Response(200, headers={"content-type": "image/jpeg"})
        if request.url.path.endswith("html.jpg"):
            return httpx.Response(200, headers={"content-type": "text/html"})
        if request.url.path.endswith("down.jpg"):
            raise httpx.ConnectError("connection refused")
        return httpx.Response(404)

    probe = HttpImageProbe(transport=httpx.MockTransport(handler))
    try:
        assert (await probe.probe("https://img.example.com/ok.jpg")).ok
        assert not (await probe.probe("https://img.example.com/html.jpg")).ok
        assert not (await probe.probe("https://img.example.com/missing.jpg")).ok
        with pytest.raises(ValidationProbeFailure):
            await probe.probe("https://img.example.com/down.jpg")
    finally:
        await probe.close()
