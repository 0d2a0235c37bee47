"""Extract product data from embedded JSON in HTML pages."""

import json
import logging
import re
from typing import Any, Callable, Dict, List, Optional, Pattern, Sequence

from selectolax.parser import HTMLParser

from universal_parser.normalize.processor import is_valid_image_url

logger = logging.getLogger(__name__)

# Globals a rendered page may expose, in lookup order
KNOWN_GLOBALS = ("__NEXT_DATA__", "__INITIAL_STATE__", "__PRELOADED_STATE__", "__NUXT__", "productData")


# ---------------------------------------------------------------------------
# JSON-LD
# ---------------------------------------------------------------------------

def extract_json_ld(tree: HTMLParser) -> List[Any]:
    """
    Extract JSON-LD structured data from script tags.

    Returns list of parsed JSON-LD documents; malformed blocks are skipped.
    """
    results = []
    for script in tree.css('script[type="application/ld+json"]'):
        text = script.text()
        if not text or not text.strip():
            continue
        try:
            results.append(json.loads(text))
        except json.JSONDecodeError as e:
            logger.debug(f"Skipping malformed JSON-LD block: {e}")
    return results


def _is_product(obj: Any) -> bool:
    if not isinstance(obj, dict):
        return False
    obj_type = obj.get("@type", "")
    if isinstance(obj_type, list):
        return "Product" in obj_type
    return obj_type == "Product"


def find_json_ld_product(documents: List[Any]) -> Optional[Dict[str, Any]]:
    """
    First ``Product`` object across JSON-LD documents.

    Looks at top-level objects, top-level arrays, ``@graph`` wrappers and
    ``mainEntity`` one level down.
    """
    for document in documents:
        candidates = document if isinstance(document, list) else [document]
        for obj in candidates:
            if not isinstance(obj, dict):
                continue
            if _is_product(obj):
                return obj

            graph = obj.get("@graph")
            if isinstance(graph, list):
                for item in graph:
                    if _is_product(item):
                        return item

            main_entity = obj.get("mainEntity")
            if _is_product(main_entity):
                return main_entity
    return None


# ---------------------------------------------------------------------------
# Inline state
# ---------------------------------------------------------------------------

def extract_next_data(tree: HTMLParser) -> Optional[Dict[str, Any]]:
    """
    Extract __NEXT_DATA__ script tag content.

    Common in Next.js applications.
    """
    node = tree.css_first("script#__NEXT_DATA__")
    if node is None:
        return None
    try:
        return json.loads(node.text())
    except json.JSONDecodeError as e:
        logger.debug(f"Failed to parse __NEXT_DATA__: {e}")
    return None


_STATE_ASSIGNMENT = {
    name: re.compile(rf"{name}\s*=\s*({{.+?}})\s*;?\s*(?:$|\n)", re.DOTALL)
    for name in ("__INITIAL_STATE__", "__PRELOADED_STATE__", "productData")
}


def extract_inline_globals(tree: HTMLParser) -> Dict[str, Any]:
    """
    Collect hydration globals assigned in inline scripts.

    Covers ``__NEXT_DATA__`` plus ``window.X = {...}`` assignments of the
    React/Redux state globals. ``__NUXT__`` is usually a function call and
    only arrives through a browser render.
    """
    found: Dict[str, Any] = {}

    next_data = extract_next_data(tree)
    if next_data is not None:
        found["__NEXT_DATA__"] = next_data

    for script in tree.css("script"):
        text = script.text()
        if not text:
            continue
        for name, pattern in _STATE_ASSIGNMENT.items():
            if name in found or name not in text:
                continue
            match = pattern.search(text)
            if not match:
                continue
            try:
                found[name] = json.loads(match.group(1))
            except json.JSONDecodeError as e:
                logger.debug(f"Failed to parse {name}: {e}")
    return found


def dig(obj: Any, path: str) -> Any:
    """Follow a dotted key path, returning None on any miss."""
    for key in path.split("."):
        if not isinstance(obj, dict):
            return None
        obj = obj.get(key)
        if obj is None:
            return None
    return obj


def _first(obj: Any, paths: tuple) -> Any:
    for path in paths:
        value = dig(obj, path)
        if value not in (None, "", [], {}):
            return value
    return None


def _image_urls(value: Any) -> List[str]:
    """Flatten an images value (string, list of strings or of objects)."""
    if isinstance(value, str):
        return [value]
    urls = []
    if isinstance(value, list):
        for item in value:
            if isinstance(item, str):
                urls.append(item)
            elif isinstance(item, dict):
                url = item.get("url") or item.get("src") or item.get("contentUrl")
                if isinstance(url, str):
                    urls.append(url)
    return urls


def _next_data_product(js_globals: Dict[str, Any]) -> Dict[str, Any]:
    product = dig(js_globals.get("__NEXT_DATA__"), "props.pageProps.product")
    if not isinstance(product, dict):
        return {}

    price = None
    # priceRanges are stored in minor units
    cents = dig(product, "priceRanges.now.minPrice")
    if isinstance(cents, (int, float)) and not isinstance(cents, bool):
        price = cents / 100
    elif product.get("price") is not None:
        price = product.get("price")

    brand = product.get("brand")
    if isinstance(brand, dict):
        brand = brand.get("name")

    return {
        "name": product.get("name") or product.get("title"),
        "price": price,
        "brand": brand,
        "description": product.get("description"),
        "images": _image_urls(product.get("images") or product.get("media")),
    }


def _state_product(js_globals: Dict[str, Any]) -> Dict[str, Any]:
    for name in ("__INITIAL_STATE__", "__PRELOADED_STATE__", "productData", "__NUXT__"):
        state = js_globals.get(name)
        if not isinstance(state, dict):
            continue
        fields = {
            "name": _first(state, ("product.name", "product.title", "name", "title")),
            "price": _first(state, ("price.current", "pricing.salePrice", "product.price.current", "product.price", "price")),
            "brand": _first(state, ("brand.name", "product.brand.name", "product.brand", "brand")),
            "images": _image_urls(_first(state, ("product.images", "images", "gallery"))),
        }
        if not isinstance(fields["brand"], str):
            fields["brand"] = None
        if isinstance(fields["price"], (dict, list)):
            fields["price"] = None
        if not isinstance(fields["name"], str):
            fields["name"] = None
        if any(fields.values()):
            return fields
    return {}


# Ordered shapes of hydration state, each js_globals -> partial fields
HYDRATION_SHAPES: List[Callable[[Dict[str, Any]], Dict[str, Any]]] = [
    _next_data_product,
    _state_product,
]


# ---------------------------------------------------------------------------
# Inline script image mining
# ---------------------------------------------------------------------------

SCRIPT_IMAGE_PATTERNS = [
    re.compile(r'"images?"\s*:\s*\[(.*?)\]', re.DOTALL),
    re.compile(r"images?\s*=\s*\[(.*?)\]", re.DOTALL),
    re.compile(r'"gallery"\s*:\s*\[(.*?)\]', re.DOTALL),
    re.compile(r'"productImages"\s*:\s*\[(.*?)\]', re.DOTALL),
    re.compile(r'"image"\s*:\s*"([^"]+)"'),
    re.compile(r'"imageUrl"\s*:\s*"([^"]+)"'),
]

_QUOTED_URL = re.compile(r'"((?:https?:)?//[^"\s]+)"')
_BARE_IMAGE_URL = re.compile(r"https?://[^\s\"'<>()\\]+?\.(?:jpe?g|png|webp)(?:\?[^\s\"'<>()\\]*)?", re.IGNORECASE)


def mine_inline_scripts(text: str, extra_patterns: Sequence[Pattern] = ()) -> List[str]:
    """
    Pull candidate image URLs out of an inline script body.

    ``extra_patterns`` are site-specific regexes tried before the built-in
    set; group 1 must capture either a URL or an array body.

    Returns absolute URLs in first-seen order, unvalidated beyond a URL
    shape check.
    """
    if not text:
        return []

    text = text.replace("\\/", "/")
    found: List[str] = []

    def add(candidate: str) -> None:
        if candidate.startswith("//"):
            candidate = "https:" + candidate
        if candidate not in found and is_valid_image_url(candidate):
            found.append(candidate)

    for pattern in [*extra_patterns, *SCRIPT_IMAGE_PATTERNS]:
        for match in pattern.finditer(text):
            body = match.group(1)
            if body.startswith(("http", "//")):
                add(body)
                continue
            for url_match in _QUOTED_URL.finditer(body):
                add(url_match.group(1))

    for match in _BARE_IMAGE_URL.finditer(text):
        add(match.group(0))

    return found
