"""Direct HTTP fetcher for server-rendered product pages."""

import logging
import random
from typing import Optional

import httpx

from universal_parser.config import settings
from universal_parser.ingest.base import FetchBlocked, FetchError, FetchTimeout
from universal_parser.ingest.content_analyzer import ContentAnalyzer, content_analyzer

logger = logging.getLogger(__name__)

# Desktop browser user agents for rotation
USER_AGENTS = [
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/121.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
]

# Headers that mimic a desktop Chrome navigation
BROWSER_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
    "Accept-Encoding": "gzip, deflate",
    "Cache-Control": "max-age=0",
    "Sec-Fetch-Dest": "document",
    "Sec-Fetch-Mode": "navigate",
    "Sec-Fetch-Site": "none",
    "Upgrade-Insecure-Requests": "1",
}

# Substrings of resolver errors across platforms
DNS_ERROR_MARKERS = (
    "name or service not known",
    "nodename nor servname",
    "getaddrinfo failed",
    "no address associated",
    "temporary failure in name resolution",
)


def _is_dns_error(error: Exception) -> bool:
    message = str(error).lower()
    return any(marker in message for marker in DNS_ERROR_MARKERS)


def _strip_www(url: str) -> Optional[str]:
    for scheme in ("https://www.", "http://www."):
        if url.startswith(scheme):
            return url.replace("www.", "", 1)
    return None


class DirectFetcher:
    """
    Single GET per page with a browser-like header set.

    Raises the extraction error taxonomy instead of returning status codes
    so the orchestrator can decide whether to escalate.
    """

    def __init__(
        self,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        analyzer: Optional[ContentAnalyzer] = None,
    ):
        self.timeout = timeout if timeout is not None else settings.direct_timeout_seconds
        self._transport = transport
        self._analyzer = analyzer or content_analyzer
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the shared HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                follow_redirects=True,
                headers={**BROWSER_HEADERS, "User-Agent": random.choice(USER_AGENTS)},
                transport=self._transport,
            )
        return self._client

    async def close(self):
        """Close HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def fetch(self, url: str) -> str:
        """
        Fetch a page's HTML.

        A DNS failure on a ``www.`` host is retried once on the bare host.

        Raises:
            FetchBlocked: Blocking status code or challenge page
            FetchTimeout: No response within the timeout
            FetchError: Any other transport or HTTP failure
        """
        try:
            return await self._fetch_once(url)
        except FetchError as e:
            fallback = _strip_www(url)
            if fallback and e.reason.startswith("dns:"):
                logger.info(f"DNS lookup failed for {url}, retrying without www")
                return await self._fetch_once(fallback)
            raise

    async def _fetch_once(self, url: str) -> str:
        client = await self._get_client()

        try:
            response = await client.get(url)
        except httpx.TimeoutException:
            raise FetchTimeout(url, self.timeout)
        except httpx.ConnectError as e:
            if _is_dns_error(e):
                raise FetchError(url, f"dns: {e}")
            raise FetchError(url, f"connection failed: {e}")
        except httpx.HTTPError as e:
            raise FetchError(url, f"{type(e).__name__}: {e}")

        status = response.status_code
        if status in settings.blocking_status_codes:
            raise FetchBlocked(url, f"HTTP {status}", status_code=status, block_type="http_status")
        if status >= 400:
            raise FetchError(url, f"HTTP {status}", status_code=status)

        html = response.text
        analysis = self._analyzer.analyze(html)
        if analysis.is_blocked:
            label = self._analyzer.get_block_type_label(analysis.block_type)
            raise FetchBlocked(url, label, status_code=status, block_type=analysis.block_type)

        logger.debug(f"Fetched {url} directly ({status}, {len(html)} bytes)")
        return html
