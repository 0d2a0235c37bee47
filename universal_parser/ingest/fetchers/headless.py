"""Headless browser fetcher for JavaScript-rendered product pages."""

import asyncio
import logging
import random
from typing import Any, Optional

from playwright.async_api import Browser, Error as PlaywrightError, async_playwright
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from universal_parser.config import settings
from universal_parser.ingest.base import FetchBlocked, FetchError, FetchTimeout, RenderedPage
from universal_parser.ingest.content_analyzer import ContentAnalyzer, content_analyzer
from universal_parser.ingest.fetchers.static import USER_AGENTS
from universal_parser.ingest.json_extractor import KNOWN_GLOBALS

logger = logging.getLogger(__name__)

# Any of these showing up means the product template has rendered
PRODUCT_HEADING_SELECTOR = (
    "h1, [data-testid*='product-name'], [data-testid*='product-title'], "
    ".product-name, .product-title, [itemprop='name']"
)

# Copies each known global through JSON so only plain data crosses over
CAPTURE_GLOBALS_JS = """
(names) => {
    const captured = {};
    for (const name of names) {
        try {
            const value = window[name];
            if (value !== undefined && value !== null) {
                captured[name] = JSON.parse(JSON.stringify(value));
            }
        } catch (e) {}
    }
    return captured;
}
"""

SCROLL_JS = "() => window.scrollTo(0, document.body ? document.body.scrollHeight : 0)"

BROWSER_ARGS = [
    "--disable-blink-features=AutomationControlled",
    "--disable-dev-shm-usage",
    "--no-sandbox",
]


class RenderedFetcher:
    """
    Renders pages in a shared headless Chromium.

    The browser is launched lazily on first use and shared by every
    request; each render gets its own context and page, closed afterwards.
    """

    def __init__(
        self,
        timeout: Optional[float] = None,
        selector_wait_ms: Optional[int] = None,
        settle_ms: Optional[int] = None,
        analyzer: Optional[ContentAnalyzer] = None,
    ):
        self.timeout = timeout if timeout is not None else settings.render_timeout_seconds
        self.selector_wait_ms = selector_wait_ms if selector_wait_ms is not None else settings.render_selector_wait_ms
        self.settle_ms = settle_ms if settle_ms is not None else settings.render_settle_ms
        self._analyzer = analyzer or content_analyzer
        self._playwright = None
        self._browser: Optional[Browser] = None
        self._browser_lock = asyncio.Lock()

    @property
    def available(self) -> bool:
        return settings.rendering_enabled

    async def _ensure_browser(self) -> Browser:
        """Ensure Playwright browser is initialized."""
        async with self._browser_lock:
            if self._browser is None or not self._browser.is_connected():
                if self._playwright is None:
                    self._playwright = await async_playwright().start()
                logger.info("Launching headless Chromium")
                self._browser = await self._playwright.chromium.launch(headless=True, args=BROWSER_ARGS)
            return self._browser

    async def close(self):
        """Close browser and cleanup."""
        if self._browser:
            try:
                await self._browser.close()
            except PlaywrightError as e:
                logger.error(f"Error closing browser: {e}")
            self._browser = None

        if self._playwright:
            await self._playwright.stop()
            self._playwright = None

    async def render(self, url: str) -> RenderedPage:
        """
        Render a page and capture its HTML plus hydration globals.

        Raises:
            FetchBlocked: Blocking status code or challenge page
            FetchTimeout: Navigation did not settle within the timeout
            FetchError: Browser unavailable or navigation failed
        """
        try:
            browser = await self._ensure_browser()
        except PlaywrightError as e:
            raise FetchError(url, f"browser unavailable: {e}")

        context = await browser.new_context(
            user_agent=random.choice(USER_AGENTS),
            viewport={"width": 1920, "height": 1080},
            locale="en-US",
        )
        try:
            page = await context.new_page()

            try:
                response = await page.goto(url, wait_until="networkidle", timeout=self.timeout * 1000)
            except PlaywrightTimeoutError:
                raise FetchTimeout(url, self.timeout)
            except PlaywrightError as e:
                raise FetchError(url, f"navigation failed: {e}")

            status = response.status if response is not None else None
            if status in settings.blocking_status_codes:
                raise FetchBlocked(url, f"HTTP {status}", status_code=status, block_type="http_status")
            if status is not None and status >= 400:
                raise FetchError(url, f"HTTP {status}", status_code=status)

            try:
                await page.wait_for_selector(PRODUCT_HEADING_SELECTOR, timeout=self.selector_wait_ms)
            except PlaywrightTimeoutError:
                logger.debug(f"No product heading on {url} after {self.selector_wait_ms}ms")

            try:
                # Lazy galleries only load once scrolled into view
                await page.evaluate(SCROLL_JS)
                await page.wait_for_timeout(self.settle_ms)
            except PlaywrightError as e:
                logger.debug(f"Scroll failed on {url}: {e}")

            html = await page.content()
            js_globals = await self._capture_globals(page, url)
        finally:
            await context.close()

        analysis = self._analyzer.analyze(html)
        if analysis.is_blocked:
            label = self._analyzer.get_block_type_label(analysis.block_type)
            raise FetchBlocked(url, label, status_code=status, block_type=analysis.block_type)

        logger.debug(f"Rendered {url} ({len(html)} bytes, globals: {sorted(js_globals)})")
        return RenderedPage(url=url, html=html, js_globals=js_globals, status_code=status)

    async def _capture_globals(self, page: Any, url: str) -> dict[str, Any]:
        try:
            captured = await page.evaluate(CAPTURE_GLOBALS_JS, list(KNOWN_GLOBALS))
        except PlaywrightError as e:
            logger.debug(f"Could not read JS globals on {url}: {e}")
            return {}
        return captured if isinstance(captured, dict) else {}
