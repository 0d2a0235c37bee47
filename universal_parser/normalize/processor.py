"""Normalize raw prices, availability strings and image references."""

import logging
import re
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Iterable, Optional
from urllib.parse import parse_qsl, urlencode, urljoin, urlparse, urlunparse

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Domains
# ---------------------------------------------------------------------------

def registrable_domain(url: str) -> str:
    """Hostname without a leading ``www.``, lower-cased."""
    hostname = (urlparse(url).hostname or "").lower()
    if hostname.startswith("www."):
        hostname = hostname[4:]
    return hostname


def domain_matches(domain: str, candidates: Iterable[str]) -> bool:
    """True if ``domain`` equals or is a subdomain of any candidate."""
    for candidate in candidates:
        candidate = candidate.lower()
        if domain == candidate or domain.endswith("." + candidate):
            return True
    return False


# ---------------------------------------------------------------------------
# Prices
# ---------------------------------------------------------------------------

# First price-like run; spaces group thousands only before exactly three digits
_PRICE_TOKEN = re.compile(
    r"\d{1,3}(?:[ '\u00a0\u202f]\d{3}(?!\d))+(?:[.,]\d+)*"
    r"|\d+(?:[.,]\d+)*"
)
_GROUPING_CHARS = re.compile(r"[ '\u00a0\u202f]")


def normalize_price(value: Any) -> Optional[float]:
    """
    Parse a raw price into a float.

    Handles currency symbols and codes, US (``1,234.56``) and European
    (``1.234,56``) separator conventions, and numeric input.

    Returns:
        Positive float, or None if nothing price-like was found
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, (int, float, Decimal)):
        try:
            amount = Decimal(str(value))
        except InvalidOperation:
            return None
    else:
        text = str(value).strip()
        if not text:
            return None
        match = _PRICE_TOKEN.search(text)
        if not match:
            return None
        amount = _parse_amount(match.group(0))
        if amount is None:
            return None

    if not amount.is_finite() or amount <= 0:
        return None
    return float(amount)


def _parse_amount(token: str) -> Optional[Decimal]:
    token = token.strip().rstrip(".,").strip()
    token = _GROUPING_CHARS.sub("", token)

    last_dot = token.rfind(".")
    last_comma = token.rfind(",")

    if last_dot >= 0 and last_comma >= 0:
        if last_comma > last_dot:
            # 1.234,56
            token = token.replace(".", "").replace(",", ".")
        else:
            # 1,234.56
            token = token.replace(",", "")
    elif last_comma >= 0:
        parts = token.split(",")
        if len(parts) == 2 and len(parts[1]) in (1, 2):
            token = token.replace(",", ".")
        else:
            token = token.replace(",", "")
    elif token.count(".") > 1:
        # 1.234.567
        token = token.replace(".", "")

    try:
        return Decimal(token)
    except InvalidOperation:
        logger.debug(f"Unparseable price token: {token!r}")
        return None


def normalize_currency(value: Any) -> Optional[str]:
    """Upper-case a three-letter currency code."""
    if not isinstance(value, str):
        return None
    code = value.strip().upper()
    if re.fullmatch(r"[A-Z]{3}", code):
        return code
    return None


CURRENCY_SYMBOLS = {
    "A$": "AUD",
    "C$": "CAD",
    "$": "USD",
    "€": "EUR",
    "£": "GBP",
    "¥": "JPY",
    "₩": "KRW",
}

CURRENCY_CODES = ("USD", "EUR", "GBP", "JPY", "CAD", "AUD", "NZD", "CHF", "SEK", "NOK", "DKK", "KRW")


def currency_from_text(text: Any) -> Optional[str]:
    """Currency stated by a displayed price string, by code or symbol."""
    if not isinstance(text, str):
        return None
    upper = text.upper()
    for code in CURRENCY_CODES:
        if re.search(rf"\b{code}\b", upper):
            return code
    for symbol, code in CURRENCY_SYMBOLS.items():
        if symbol in text:
            return code
    return None


def normalize_availability(availability: Any) -> Optional[str]:
    """Normalize availability to a schema.org term: InStock, OutOfStock or PreOrder."""
    if not isinstance(availability, str) or not availability.strip():
        return None

    # https://schema.org/InStock -> instock
    avail = availability.strip().rsplit("/", 1)[-1].lower()
    avail = re.sub(r"[\s_-]", "", avail)

    if avail in ("outofstock", "soldout", "discontinued", "unavailable"):
        return "OutOfStock"
    if "preorder" in avail or "backorder" in avail:
        return "PreOrder"
    if avail in ("instock", "available", "limitedavailability", "onlineonly", "instoreonly"):
        return "InStock"
    return None


def clean_text(value: Any) -> Optional[str]:
    """Collapse whitespace. Whitespace-only and non-strings become None."""
    if not isinstance(value, str):
        return None
    collapsed = " ".join(value.split())
    return collapsed or None


# ---------------------------------------------------------------------------
# Images
# ---------------------------------------------------------------------------

IMAGE_EXTENSION_RE = re.compile(r"\.(jpe?g|png|webp|gif|avif)($|\?|#)", re.IGNORECASE)

PLACEHOLDER_MARKERS = (
    "placeholder",
    "blank.gif",
    "transparent.png",
    "spacer.gif",
    "loading.gif",
    "lazy-load",
)

CDN_MARKERS = ("cdn", "cloudfront", "cloudinary", "imgix", "akamai", "scene7")


def first_srcset_url(srcset: str) -> Optional[str]:
    """First candidate URL of a srcset attribute."""
    if not srcset:
        return None
    first = srcset.split(",")[0].strip()
    return first.split()[0] if first else None


def is_placeholder(src: str) -> bool:
    lowered = src.lower()
    return lowered.startswith("data:") or any(marker in lowered for marker in PLACEHOLDER_MARKERS)


def is_valid_image_url(url: Any) -> bool:
    """
    True if ``url`` looks like an absolute product image URL.

    Accepts a known image extension, or a CDN host whose last path segment
    is long enough to be a file name rather than a route.
    """
    if not isinstance(url, str) or len(url) > 2000:
        return False
    if not url.startswith(("http://", "https://")):
        return False

    if IMAGE_EXTENSION_RE.search(url):
        return True

    if any(marker in url for marker in CDN_MARKERS):
        segment = url.split("?")[0].split("#")[0].rstrip("/").rsplit("/", 1)[-1]
        return len(segment) >= 8

    return False


def resolve_image_url(src: Any, base_url: str) -> Optional[str]:
    """
    Resolve an image reference against the page URL.

    Handles protocol-relative URLs, root and path relative URLs, and the
    malformed ``https:files/x.jpg`` form some themes emit.
    """
    if not isinstance(src, str):
        return None
    src = src.strip()
    if not src or is_placeholder(src):
        return None

    if re.match(r"^https?:(?!//)", src, re.IGNORECASE):
        # https:files/a.jpg -> treat the remainder as a path on the page host
        path = re.sub(r"^https?:", "", src, flags=re.IGNORECASE)
        base = urlparse(base_url)
        src = f"{base.scheme}://{base.netloc}/{path.lstrip('/')}"
    elif src.startswith("//"):
        src = "https:" + src
    else:
        src = urljoin(base_url, src)

    if not src.startswith(("http://", "https://")):
        return None
    return src


# Query parameters that only resize, re-encode or cache-bust the same image
IMAGE_VARIANT_PARAMS = {
    "w", "h", "width", "height", "size", "crop", "fit", "dpr",
    "q", "quality", "format", "fm", "auto", "v", "version",
}


def canonical_image_key(url: str) -> str:
    """
    Key used for de-duplication.

    Ignores the scheme and any size or cache-busting parameters, but keeps
    query parameters that select a different image (``/img?id=2``).
    """
    if url.startswith("//"):
        url = "https:" + url
    parsed = urlparse(url)
    key = f"{parsed.netloc.lower()}{parsed.path}"
    kept = sorted(
        (k, v) for k, v in parse_qsl(parsed.query, keep_blank_values=True)
        if k.lower() not in IMAGE_VARIANT_PARAMS
    )
    if kept:
        key += "?" + urlencode(kept)
    return key


def _strip_query_params(url: str, names: set[str]) -> str:
    parsed = urlparse(url)
    kept = [(k, v) for k, v in parse_qsl(parsed.query, keep_blank_values=True) if k.lower() not in names]
    return urlunparse(parsed._replace(query=urlencode(kept)))


def _shopify_transform(url: str) -> str:
    url = _strip_query_params(url, {"width", "height", "crop"})
    return re.sub(r"_\d+x\d*(?=[._])", "_2048x2048", url)


# Host marker -> transform requesting the largest CDN variant
IMAGE_TRANSFORMS: dict[str, Callable[[str], str]] = {
    "cdn.shopify.com": _shopify_transform,
    "zara.net": lambda url: re.sub(r"([?&])w=\d+", r"\1w=1920", url),
    "zara.com": lambda url: re.sub(r"([?&])w=\d+", r"\1w=1920", url),
    "hm.com": lambda url: re.sub(r"call=url\[file:.+?\]", "call=url[file:/product/main]", url),
    "uniqlo.com": lambda url: url.replace("$prod$", "$pdp-zoom$"),
}


def apply_image_transforms(url: str) -> str:
    """Apply the first matching host transform."""
    host = (urlparse(url).hostname or "").lower()
    for marker, transform in IMAGE_TRANSFORMS.items():
        if marker in host:
            try:
                return transform(url)
            except (ValueError, re.error) as e:
                logger.debug(f"Image transform for {marker} failed on {url}: {e}")
                return url
    return url


def dedupe_images(images: Iterable[str]) -> list[str]:
    """Drop later URLs whose canonical key was already seen."""
    seen: set[str] = set()
    unique = []
    for url in images:
        key = canonical_image_key(url)
        if key in seen:
            continue
        seen.add(key)
        unique.append(url)
    return unique


def normalize_images(
    images: Iterable[Any],
    base_url: str,
    max_images: Optional[int] = 10,
    transform: bool = True,
) -> list[str]:
    """
    Resolve, de-duplicate and cap a list of raw image references.

    Args:
        images: Raw src values, possibly relative or protocol-relative
        base_url: Page URL used to resolve relative references
        max_images: Cap on the returned list (None for no cap)
        transform: Apply host-specific largest-variant rewrites

    Returns:
        Ordered list of absolute URLs
    """
    resolved = []
    for image in images:
        url = resolve_image_url(image, base_url)
        if url:
            resolved.append(apply_image_transforms(url) if transform else url)

    unique = dedupe_images(resolved)
    if max_images is not None:
        unique = unique[:max_images]
    return unique
