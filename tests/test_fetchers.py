"""Tests for the direct fetcher and challenge-page detection."""

import httpx
import pytest

from universal_parser.ingest.base import FetchBlocked, FetchError, FetchTimeout
from universal_parser.ingest.content_analyzer import content_analyzer
from universal_parser.ingest.fetchers.static import DirectFetcher

from conftest import product_page

CHALLENGE_PAGE = "<html><head><title>Just a moment...</title></head><body>Checking your browser</body></html>"


def fetcher_for(handler):
    return DirectFetcher(timeout=2, transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_fetch_returns_html():
    fetcher = fetcher_for(lambda request: httpx.Response(200, text=product_page()))
    try:
        html = await fetcher.fetch("https://shop.example/p/1")
    finally:
        await fetcher.close()

    assert "Linen Shirt" in html


@pytest.mark.asyncio
async def test_sends_browser_headers():
    seen = {}

    def handler(request):
        seen.update(request.headers)
        return httpx.Response(200, text=product_page())

    fetcher = fetcher_for(handler)
    try:
        await fetcher.fetch("https://shop.example/p/1")
    finally:
        await fetcher.close()

    assert seen["user-agent"].startswith("Mozilla/5.0")
    assert "text/html" in seen["accept"]


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [403, 429, 503])
async def test_blocking_status_codes(status):
    fetcher = fetcher_for(lambda request: httpx.Response(status, text="nope"))
    try:
        with pytest.raises(FetchBlocked) as exc_info:
            await fetcher.fetch("https://shop.example/p/1")
    finally:
        await fetcher.close()

    assert exc_info.value.status_code == status


@pytest.mark.asyncio
async def test_not_found_is_plain_fetch_error():
    fetcher = fetcher_for(lambda request: httpx.Response(404, text="missing"))
    try:
        with pytest.raises(FetchError) as exc_info:
            await fetcher.fetch("https://shop.example/p/1")
    finally:
        await fetcher.close()

    assert not isinstance(exc_info.value, FetchBlocked)
    assert exc_info.value.status_code == 404


@pytest.mark.asyncio
async def test_challenge_page_with_200_is_blocked():
    fetcher = fetcher_for(lambda request: httpx.Response(200, text=CHALLENGE_PAGE))
    try:
        with pytest.raises(FetchBlocked) as exc_info:
            await fetcher.fetch("https://shop.example/p/1")
    finally:
        await fetcher.close()

    assert exc_info.value.block_type == "cloudflare"


@pytest.mark.asyncio
async def test_timeout_maps_to_fetch_timeout():
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    fetcher = fetcher_for(handler)
    try:
        with pytest.raises(FetchTimeout):
            await fetcher.fetch("https://shop.example/p/1")
    finally:
        await fetcher.close()


@pytest.mark.asyncio
async def test_dns_failure_retries_without_www():
    hosts = []

    def handler(request):
        hosts.append(request.url.host)
        if request.url.host.startswith("www."):
            raise httpx.ConnectError("[Errno -2] Name or service not known", request=request)
        return httpx.Response(200, text=product_page())

    fetcher = fetcher_for(handler)
    try:
        html = await fetcher.fetch("https://www.shop.example/p/1")
    finally:
        await fetcher.close()

    assert hosts == ["www.shop.example", "shop.example"]
    assert "Linen Shirt" in html


@pytest.mark.asyncio
async def test_connection_refused_is_not_retried():
    hosts = []

    def handler(request):
        hosts.append(request.url.host)
        raise httpx.ConnectError("Connection refused", request=request)

    fetcher = fetcher_for(handler)
    try:
        with pytest.raises(FetchError):
            await fetcher.fetch("https://www.shop.example/p/1")
    finally:
        await fetcher.close()

    assert hosts == ["www.shop.example"]


def test_analyzer_flags_short_challenge_pages():
    analysis = content_analyzer.analyze(CHALLENGE_PAGE)

    assert analysis.is_blocked
    assert analysis.block_type == "cloudflare"
    assert analysis.page_title == "Just a moment..."


def test_analyzer_trusts_structured_product_pages():
    html = product_page(extra_body="<p>Access denied for returns after 30 days.</p>")

    analysis = content_analyzer.analyze(html)

    assert not analysis.is_blocked
    assert analysis.has_structured_product


def test_analyzer_ignores_body_text_on_long_pages():
    filler = "<p>" + ("Plain product copy. " * 1500) + "</p>"
    html = f"<html><head><title>Shirt</title></head><body>{filler}<p>Access denied</p></body></html>"

    assert not content_analyzer.analyze(html).is_blocked


RECAPTCHA_FOOTER_PAGE = """<html><head><title>Camp Mug</title></head><body>
<h1 class="product-title">Camp Mug</h1>
<div class="product-price">$42.00</div>
<footer>This site is protected by reCAPTCHA and the Google Privacy Policy applies.</footer>
</body></html>"""


@pytest.mark.asyncio
async def test_recaptcha_footer_on_product_page_is_not_blocked():
    fetcher = fetcher_for(lambda request: httpx.Response(200, text=RECAPTCHA_FOOTER_PAGE))
    try:
        html = await fetcher.fetch("https://shop.example/p/mug")
    finally:
        await fetcher.close()

    assert "Camp Mug" in html


def test_analyzer_word_bounds_captcha():
    recaptcha_only = "<html><body><p>Protected by reCAPTCHA</p></body></html>"
    captcha_wall = "<html><body><p>Please solve the CAPTCHA to continue</p></body></html>"

    assert not content_analyzer.analyze(recaptcha_only).is_blocked
    assert content_analyzer.analyze(captcha_wall).block_type == "captcha"


def test_analyzer_skips_body_text_when_headline_and_price_shown():
    html = "<html><body><h1>Camp Mug</h1><span class='price'>$42.00</span><p>Access denied</p></body></html>"

    assert not content_analyzer.analyze(html).is_blocked
