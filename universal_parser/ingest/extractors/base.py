"""Page context shared by every extractor, and the extractor base class."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from selectolax.parser import HTMLParser, Node

from universal_parser.ingest.base import EvidenceBundle, FetchStrategy, ParseFailure, PatternEntry
from universal_parser.ingest.json_extractor import extract_inline_globals, extract_json_ld
from universal_parser.normalize.processor import (
    clean_text,
    currency_from_text,
    first_srcset_url,
    is_placeholder,
    normalize_availability,
    normalize_currency,
    normalize_price,
    registrable_domain,
)

logger = logging.getLogger(__name__)

# Attributes that may carry an image URL, in lookup order
IMAGE_ATTRIBUTES = ("src", "data-src", "data-original", "data-lazy", "data-lazy-src")

# Image URL fragments that are never product shots
NON_PRODUCT_IMAGE_MARKERS = ("logo", "icon", "sprite", "badge", "swatch", "payment", "flag")

# Names a learned field may carry instead of a selector
EXTRACTOR_NAMES = frozenset({
    "structured_data",
    "learned_pattern",
    "meta_tags",
    "domain_specific",
    "microdata",
    "generic_selector",
    "rendered_state",
    "smart_images",
})


@dataclass
class PageContext:
    """
    One parsed document, shared read-only by all extractors.

    Built once per fetch attempt so every extractor sees the same tree.
    """

    url: str
    domain: str
    html: str
    tree: HTMLParser
    strategy: FetchStrategy
    js_globals: dict[str, Any] = field(default_factory=dict)
    json_ld: list[Any] = field(default_factory=list)
    patterns: Optional[PatternEntry] = None

    @classmethod
    def parse(
        cls,
        url: str,
        html: str,
        strategy: FetchStrategy,
        js_globals: Optional[dict[str, Any]] = None,
        patterns: Optional[PatternEntry] = None,
    ) -> "PageContext":
        """
        Parse HTML into a page context.

        Raises:
            ParseFailure: Empty document or one with no element tree
        """
        if not html or not html.strip():
            raise ParseFailure(url, "empty document")

        tree = HTMLParser(html)
        if tree.root is None or (tree.body is None and tree.head is None):
            raise ParseFailure(url, "no element tree")

        # Inline hydration state first; globals captured by a browser win
        merged_globals = extract_inline_globals(tree)
        merged_globals.update(js_globals or {})

        return cls(
            url=url,
            domain=registrable_domain(url),
            html=html,
            tree=tree,
            strategy=strategy,
            js_globals=merged_globals,
            json_ld=extract_json_ld(tree),
            patterns=patterns,
        )

    def meta(self, *keys: str) -> Optional[str]:
        """First non-empty ``content`` of a meta tag by property or name."""
        for key in keys:
            for attr in ("property", "name"):
                node = self.tree.css_first(f'meta[{attr}="{key}"]')
                if node is None:
                    continue
                value = clean_text(node.attributes.get("content"))
                if value:
                    return value
        return None


# ---------------------------------------------------------------------------
# Node helpers
# ---------------------------------------------------------------------------

def node_text(node: Node) -> Optional[str]:
    return clean_text(node.text(separator=" ", strip=True))


def node_value(node: Node) -> Optional[str]:
    """``content`` attribute first, then visible text, then ``href``."""
    content = clean_text(node.attributes.get("content"))
    if content:
        return content
    return node_text(node) or clean_text(node.attributes.get("href"))


def node_image(node: Node) -> Optional[str]:
    """Image reference of a node: src, lazy-load attributes, then srcset."""
    attrs = node.attributes
    for attr in IMAGE_ATTRIBUTES:
        value = attrs.get(attr)
        if value and value.strip() and not is_placeholder(value):
            return value.strip()
    srcset = attrs.get("srcset") or attrs.get("data-srcset")
    if srcset:
        return first_srcset_url(srcset)
    # <meta itemprop="image" content=...>, <link itemprop="image" href=...>
    for attr in ("content", "href"):
        value = attrs.get(attr)
        if value and value.strip():
            return value.strip()
    return None


def is_product_image(src: str) -> bool:
    lowered = src.lower()
    return not any(marker in lowered for marker in NON_PRODUCT_IMAGE_MARKERS)


def select_images(root: Any, selector: str) -> list[str]:
    """Image references under ``selector``, de-duplicated in document order."""
    images: list[str] = []
    for node in root.css(selector):
        target = node if node.tag == "img" or node.tag in ("meta", "link") else node.css_first("img")
        if target is None:
            continue
        src = node_image(target)
        if src and src not in images and is_product_image(src):
            images.append(src)
    return images


def select_scalar(
    root: Any,
    selector: str,
    field_name: str,
    accept: Optional[Callable[[Node], bool]] = None,
) -> Any:
    """Normalized value of the first node under ``selector`` with usable content."""
    for node in root.css(selector):
        if accept is not None and not accept(node):
            continue
        value = coerce_field(field_name, node_value(node))
        if value is None and field_name == "price":
            value = coerce_field(field_name, node.attributes.get("data-price"))
        if value is not None:
            return value
    return None


def coerce_field(field_name: str, raw: Any) -> Any:
    """Normalize a raw scalar for a given field; None when unusable."""
    if field_name == "price":
        return normalize_price(raw)
    if field_name == "currency":
        return normalize_currency(raw)
    if field_name == "availability":
        return normalize_availability(raw)
    if field_name == "name":
        text = clean_text(raw)
        # Headline text outside this range is navigation or copy, not a title
        return text if text and 1 < len(text) <= 300 else None
    return clean_text(raw)


# ---------------------------------------------------------------------------
# Extractors
# ---------------------------------------------------------------------------

class Extractor:
    """Base extractor. Subclasses read one evidence type from a page."""

    name: str = "base"

    def extract(self, page: PageContext) -> EvidenceBundle:
        raise NotImplementedError

    def empty(self) -> EvidenceBundle:
        return EvidenceBundle(source=self.name)


class SelectorExtractor(Extractor):
    """
    Applies an ordered selector list per field; first usable match wins.

    The matching selector is recorded on the bundle so it can be learned.
    """

    def selectors_for(self, page: PageContext) -> dict[str, list[str]]:
        raise NotImplementedError

    def constants_for(self, page: PageContext) -> dict[str, Any]:
        return {}

    def extract(self, page: PageContext) -> EvidenceBundle:
        bundle = self.empty()

        for field_name, selectors in self.selectors_for(page).items():
            for selector in selectors:
                try:
                    if field_name == "images":
                        value = select_images(page.tree, selector)
                    else:
                        value = select_scalar(page.tree, selector, field_name)
                except ValueError as e:
                    # selectolax rejects selectors it cannot compile
                    logger.debug(f"{self.name}: bad selector {selector!r}: {e}")
                    continue
                if value:
                    setattr(bundle, field_name, value)
                    bundle.selectors[field_name] = selector
                    break

        if bundle.price is not None and bundle.currency is None and "price" in bundle.selectors:
            node = page.tree.css_first(bundle.selectors["price"])
            if node is not None:
                bundle.currency = currency_from_text(node_text(node))

        # Constants only decorate a page that produced evidence of its own
        if not bundle.is_empty():
            for field_name, value in self.constants_for(page).items():
                if not bundle.has(field_name):
                    setattr(bundle, field_name, value)

        return bundle
