"""Content analyzer for bot-challenge detection on fetched product pages.

A challenge page served with HTTP 200 would otherwise look like a product
page with no evidence. Detection here turns it into a FetchBlocked so the
orchestrator escalates instead of scoring an empty record.
"""

import logging
import re
from dataclasses import dataclass
from typing import Optional

from selectolax.parser import HTMLParser

logger = logging.getLogger(__name__)

# Body text of challenge pages is short; real product pages are not
SHORT_PAGE_CHARS = 20_000

# Nodes that display a price on an ordinary product page
PRICE_NODE_SELECTOR = '[itemprop="price"], [class*="price"], [data-price]'


@dataclass
class ContentAnalysis:
    """Result of content analysis."""

    is_blocked: bool                    # Detected bot challenge or block
    block_type: Optional[str]           # captcha, cloudflare, access_denied, rate_limit, ...
    page_title: Optional[str]           # Page title for debugging
    content_length: int                 # Length of HTML content
    has_structured_product: bool        # JSON-LD Product or og:type product present


BLOCK_PATTERNS = [
    # CAPTCHA indicators
    (r"enter the characters", "captcha"),
    (r"prove you'?re not a robot", "captcha"),
    (r"\bcaptcha\b", "captcha"),
    (r"verify you are a human", "captcha"),
    (r"robot check", "captcha"),
    (r"unusual traffic", "captcha"),

    # Cloudflare
    (r"attention required", "cloudflare"),
    (r"just a moment", "cloudflare"),
    (r"checking your browser", "cloudflare"),
    (r"please wait while we verify", "cloudflare"),

    # Rate limiting / blocking
    (r"access denied", "access_denied"),
    (r"forbidden", "access_denied"),
    (r"request has been blocked", "rate_limit"),
    (r"too many requests", "rate_limit"),

    # Bot detection
    (r"automation tools", "bot_detected"),
    (r"pardon our interruption", "bot_detected"),
    (r"are you a robot", "bot_detected"),
    (r"perimeterx|px-captcha", "perimeter_x"),
    (r"incapsula incident", "incapsula"),
]


class ContentAnalyzer:
    """Detects challenge and block pages among fetched documents."""

    def __init__(self):
        self._block_patterns = [
            (re.compile(pattern, re.IGNORECASE), block_type)
            for pattern, block_type in BLOCK_PATTERNS
        ]

    def analyze(self, html: str) -> ContentAnalysis:
        """
        Analyze fetched HTML.

        The title is always checked. Visible body text is only checked on
        short pages that show no headline and price, since product pages
        mention words like "forbidden" or "reCAPTCHA" in footers and reviews.
        """
        if not html:
            return ContentAnalysis(
                is_blocked=False,
                block_type=None,
                page_title=None,
                content_length=0,
                has_structured_product=False,
            )

        parser = HTMLParser(html)

        title_elem = parser.css_first("title")
        page_title = title_elem.text(strip=True) if title_elem else None

        has_product = self._has_structured_product(parser, html)
        block_type = None
        if not has_product:
            block_type = self._detect_block(parser, page_title, len(html))

        return ContentAnalysis(
            is_blocked=block_type is not None,
            block_type=block_type,
            page_title=page_title,
            content_length=len(html),
            has_structured_product=has_product,
        )

    def _has_structured_product(self, parser: HTMLParser, html: str) -> bool:
        og_type = parser.css_first('meta[property="og:type"]')
        if og_type is not None and "product" in (og_type.attributes.get("content") or "").lower():
            return True
        return '"Product"' in html and 'application/ld+json' in html

    def _has_product_markup(self, parser: HTMLParser) -> bool:
        """A headline plus a node showing a number, as on a plain product page."""
        if parser.css_first("h1") is None:
            return False
        return any(
            re.search(r"\d", node.text(strip=True) or node.attributes.get("content") or "")
            for node in parser.css(PRICE_NODE_SELECTOR)
        )

    def _detect_block(self, parser: HTMLParser, page_title: Optional[str], length: int) -> Optional[str]:
        """
        Detect if the page is a bot challenge or block.

        Returns:
            Block type string or None
        """
        candidates = []
        if page_title:
            candidates.append(page_title)

        if length < SHORT_PAGE_CHARS and parser.body is not None and not self._has_product_markup(parser):
            body = parser.body
            for node in body.css("script, style, noscript"):
                node.decompose()
            candidates.append(body.text(separator=" ", strip=True))

        for text in candidates:
            for pattern, block_type in self._block_patterns:
                if pattern.search(text):
                    logger.debug(f"Detected block type: {block_type}")
                    return block_type

        return None

    def get_block_type_label(self, block_type: Optional[str]) -> str:
        """Human-readable label for a block type."""
        labels = {
            "captcha": "CAPTCHA Challenge",
            "cloudflare": "Cloudflare Protection",
            "access_denied": "Access Denied",
            "rate_limit": "Rate Limited",
            "bot_detected": "Bot Detection",
            "perimeter_x": "PerimeterX Protection",
            "incapsula": "Incapsula Protection",
        }
        return labels.get(block_type, block_type or "Unknown")


# Global instance
content_analyzer = ContentAnalyzer()
