"""Smart image discovery for product galleries.

Combines four sources of candidate images:
- URLs mined from inline scripts (gallery arrays, image fields)
- Gallery selectors, per-site and universal
- Per-site variant rules expanded from the page's og:image
- og:image itself plus generic numbered-variant guesses

Guessed URLs are only kept when HEAD validation runs and confirms them.
"""

import asyncio
import logging
import random
import re
from collections import defaultdict, deque
from dataclasses import dataclass, field
from typing import Callable, Deque, Dict, List, Optional, Pattern, Protocol
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

import httpx

from universal_parser.config import settings
from universal_parser.ingest.base import ProbeResult, ValidationProbeFailure
from universal_parser.ingest.extractors.base import PageContext, select_images
from universal_parser.ingest.fetchers.static import USER_AGENTS
from universal_parser.ingest.json_extractor import mine_inline_scripts
from universal_parser.normalize.processor import (
    apply_image_transforms,
    domain_matches,
    normalize_images,
)
from universal_parser import metrics

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Seed patterns
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class VariantRule:
    """Expands one observed image URL into the rest of its gallery."""

    pattern: Pattern
    expand: Callable[[re.Match], List[str]]

    def apply(self, url: str) -> List[str]:
        match = self.pattern.search(url)
        if not match:
            return []
        return self.expand(match)


@dataclass(frozen=True)
class ImagePattern:
    """Per-site knowledge about where gallery images live."""

    selectors: List[str] = field(default_factory=list)
    script_patterns: List[Pattern] = field(default_factory=list)
    variants: List[VariantRule] = field(default_factory=list)


def _numbered(match: re.Match, old: str, template: str, count: int, start: int = 1) -> List[str]:
    url = match.string
    return [url.replace(old, template.format(i), 1) for i in range(start, count + 1)]


IMAGE_PATTERNS: Dict[str, ImagePattern] = {
    "wconcept.com": ImagePattern(
        selectors=[".product-gallery img", ".image-slider img", '[data-image-role="product-image"]'],
        script_patterns=[re.compile(r"productImages\s*=\s*\[(.*?)\]", re.DOTALL)],
        variants=[
            VariantRule(re.compile(r"/(\d+)_1\.jpg"), lambda m: _numbered(m, "_1.jpg", "_{}.jpg", 8)),
        ],
    ),
    "zara.com": ImagePattern(
        selectors=[".media-image img", ".product-detail-images img"],
        variants=[
            VariantRule(
                re.compile(r"/p/\d+/\d+/\d+/.*?/(\d+)\.jpg"),
                lambda m: [m.string.replace(f"/{m.group(1)}.jpg", f"/{i}.jpg", 1) for i in range(1, 7)],
            ),
        ],
    ),
    "ssense.com": ImagePattern(
        selectors=[".product-gallery img", ".carousel-item img"],
        variants=[
            VariantRule(
                re.compile(r"(.+)_1_(\d+x\d+)\.jpg"),
                lambda m: [f"{m.group(1)}_{i}_{m.group(2)}.jpg" for i in range(1, 11)],
            ),
        ],
    ),
    "net-a-porter.com": ImagePattern(
        selectors=[".product-image img", ".image-carousel img"],
        script_patterns=[re.compile(r"imageUrls\s*:\s*\[(.*?)\]", re.DOTALL)],
    ),
    "farfetch.com": ImagePattern(
        selectors=['[data-testid="product-image"] img', ".product-images img"],
        script_patterns=[re.compile(r"images\s*:\s*\[(.*?)\]", re.DOTALL)],
    ),
    # Keyed by CDN host: many independent stores share it
    "cdn.shopify.com": ImagePattern(
        variants=[
            VariantRule(
                re.compile(r"(.+?)(_\d+)?\.jpg"),
                lambda m: [f"{m.group(1)}_{i}.jpg" for i in range(2, 9)],
            ),
        ],
    ),
}

UNIVERSAL_GALLERY_SELECTORS = [
    ".product-image img",
    ".product-gallery img",
    ".gallery img",
    ".image-gallery img",
    ".product-slider img",
    ".carousel img",
    '[data-role="product-image"] img',
    '[data-testid*="image"] img',
    ".media img",
    ".product-media img",
]

# Contribution of each discovery method to image confidence
METHOD_CONFIDENCE = {
    "javascript": 0.4,
    "html": 0.3,
    "patterns": 0.5,
    "meta": 0.2,
    "validation": 0.3,
}


def get_image_pattern(domain: str, og_image: Optional[str] = None) -> Optional[ImagePattern]:
    """Pattern for the page's domain, else for the og:image host."""
    for key, pattern in IMAGE_PATTERNS.items():
        if domain_matches(domain, [key]):
            return pattern
    if og_image:
        host = (urlparse(og_image).hostname or "").lower()
        for key, pattern in IMAGE_PATTERNS.items():
            if domain_matches(host, [key]):
                return pattern
    return None


def upsize_image_url(url: str) -> str:
    """Ask for a wide rendition and drop crop instructions."""
    parsed = urlparse(url)
    params = []
    for key, value in parse_qsl(parsed.query, keep_blank_values=True):
        lowered = key.lower()
        if lowered in ("crop", "height", "h"):
            continue
        if lowered in ("width", "w"):
            value = "1920"
        params.append((key, value))
    path = re.sub(r"_crop_[a-z]+(?=\.)", "", parsed.path)
    return urlunparse(parsed._replace(path=path, query=urlencode(params)))


def numbered_variants(url: str) -> List[str]:
    """``_1.jpg`` -> ``_2..6.jpg`` and ``/1.jpg`` -> ``/2..6.jpg``."""
    path = urlparse(url).path
    if re.search(r"_1\.jpg$", path):
        return [url.replace("_1.jpg", f"_{i}.jpg") for i in range(2, 7)]
    if re.search(r"/1\.jpg$", path):
        return [url.replace("/1.jpg", f"/{i}.jpg") for i in range(2, 7)]
    return []


# ---------------------------------------------------------------------------
# Probing
# ---------------------------------------------------------------------------

class ImageProbe(Protocol):
    async def probe(self, url: str) -> ProbeResult:
        ...


class HttpImageProbe:
    """HEAD-probes image URLs with a short timeout."""

    def __init__(self, timeout: Optional[float] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.timeout = timeout if timeout is not None else settings.image_probe_timeout_seconds
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                follow_redirects=True,
                headers={"User-Agent": random.choice(USER_AGENTS)},
                transport=self._transport,
            )
        return self._client

    async def close(self):
        if self._client:
            await self._client.aclose()
            self._client = None

    async def probe(self, url: str) -> ProbeResult:
        """
        Raises:
            ValidationProbeFailure: Transport error or timeout
        """
        client = await self._get_client()
        try:
            response = await client.head(url)
        except httpx.HTTPError as e:
            raise ValidationProbeFailure(url, f"{type(e).__name__}: {e}")

        content_type = response.headers.get("content-type")
        type_ok = content_type is None or content_type.lower().startswith("image/")
        return ProbeResult(
            url=url,
            ok=response.status_code == 200 and type_ok,
            content_type=content_type,
            status_code=response.status_code,
        )


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------

@dataclass
class ImageExtraction:
    """Result of a smart image pass."""

    images: List[str]
    strategies: Dict[str, int]          # method -> candidates it contributed
    confidence: float
    selector: Optional[str] = None      # gallery selector that produced images


class SmartImageExtractor:
    """
    Discovers the full product gallery for a page.

    Args:
        probe: HEAD prober; defaults to an httpx-backed one
        max_images: Cap on returned images
        validation_enabled: Run HEAD probes at all
        validation_ceiling: Skip probing when more candidates than this
        concurrency: Maximum probes in flight
    """

    HISTORY_SIZE = 100

    def __init__(
        self,
        probe: Optional[ImageProbe] = None,
        max_images: Optional[int] = None,
        validation_enabled: Optional[bool] = None,
        validation_ceiling: Optional[int] = None,
        concurrency: Optional[int] = None,
    ):
        self.probe = probe or HttpImageProbe()
        self.max_images = max_images if max_images is not None else settings.max_images
        self.validation_enabled = (
            validation_enabled if validation_enabled is not None else settings.image_validation_enabled
        )
        self.validation_ceiling = (
            validation_ceiling if validation_ceiling is not None else settings.image_validation_ceiling
        )
        self.concurrency = concurrency if concurrency is not None else settings.image_probe_concurrency

        self._history: Dict[str, Deque[dict]] = defaultdict(lambda: deque(maxlen=self.HISTORY_SIZE))
        self._validation_stats: Dict[str, Dict[str, int]] = defaultdict(lambda: {"attempts": 0, "failures": 0})

    async def close(self):
        close = getattr(self.probe, "close", None)
        if close is not None:
            await close()

    async def extract(self, page: PageContext) -> ImageExtraction:
        og_image = page.meta("og:image", "og:image:url")
        site = get_image_pattern(page.domain, og_image)

        observed: List[str] = []
        guessed: List[str] = []
        strategies: Dict[str, int] = {}
        selector: Optional[str] = None

        script_images = self._from_scripts(page, site)
        if script_images:
            observed.extend(script_images)
            strategies["javascript"] = len(script_images)

        html_images, selector = self._from_html(page, site)
        if html_images:
            observed.extend(html_images)
            strategies["html"] = len(html_images)

        if og_image and site is not None and site.variants:
            pattern_images = []
            for rule in site.variants:
                pattern_images.extend(rule.apply(og_image))
            if pattern_images:
                guessed.extend(pattern_images)
                strategies["patterns"] = len(pattern_images)

        if og_image:
            main = upsize_image_url(og_image)
            observed.append(main)
            variants = numbered_variants(main)
            guessed.extend(variants)
            strategies["meta"] = 1 + len(variants)

        candidates = normalize_images(observed + guessed, page.url, max_images=None, transform=False)
        will_validate = self.validation_enabled and 0 < len(candidates) <= self.validation_ceiling

        if will_validate:
            candidates = await self._validate(candidates, page.domain)
            strategies["validation"] = len(candidates)
        elif guessed:
            # Unconfirmed guesses are dropped
            keep = set(normalize_images(observed, page.url, max_images=None, transform=False))
            candidates = [url for url in candidates if url in keep]

        images = [apply_image_transforms(url) for url in candidates][: self.max_images]
        confidence = self.calculate_confidence(strategies, len(images))

        if len(images) > 1:
            self._learn(page.domain, strategies, images)

        logger.debug(
            f"Smart images for {page.domain}: {len(images)} images "
            f"via {sorted(strategies)} (confidence {confidence:.2f})"
        )
        return ImageExtraction(
            images=images,
            strategies=strategies,
            confidence=confidence,
            selector=selector if html_images else None,
        )

    def _from_scripts(self, page: PageContext, site: Optional[ImagePattern]) -> List[str]:
        extra = site.script_patterns if site is not None else []
        images: List[str] = []
        for script in page.tree.css("script"):
            text = script.text()
            if not text:
                continue
            for url in mine_inline_scripts(text, extra):
                if url not in images:
                    images.append(url)
        return images

    def _from_html(self, page: PageContext, site: Optional[ImagePattern]):
        selectors = (site.selectors if site is not None else []) + UNIVERSAL_GALLERY_SELECTORS
        images: List[str] = []
        first_selector: Optional[str] = None
        for selector in selectors:
            try:
                found = select_images(page.tree, selector)
            except ValueError as e:
                logger.debug(f"Bad gallery selector {selector!r}: {e}")
                continue
            found = [src for src in found if src not in images]
            if found and first_selector is None:
                first_selector = selector
            images.extend(found)
        return images, first_selector

    async def _validate(self, urls: List[str], domain: str) -> List[str]:
        """Keep URLs whose probe succeeds; failures are dropped per URL."""
        semaphore = asyncio.Semaphore(self.concurrency)

        async def check(url: str) -> bool:
            async with semaphore:
                try:
                    result = await self.probe.probe(url)
                except ValidationProbeFailure as e:
                    logger.debug(str(e))
                    metrics.record_image_probe(False)
                    return False
                metrics.record_image_probe(result.ok)
                return result.ok

        results = await asyncio.gather(*(check(url) for url in urls))
        valid = [url for url, ok in zip(urls, results) if ok]
        self._learn_from_validation(domain, len(urls), len(valid))
        return valid

    @staticmethod
    def calculate_confidence(strategies: Dict[str, int], image_count: int) -> float:
        confidence = sum(METHOD_CONFIDENCE.get(method, 0.0) for method in strategies)
        if image_count > 3:
            confidence += 0.2
        if image_count > 6:
            confidence += 0.1
        return min(confidence, 1.0)

    def _learn(self, domain: str, strategies: Dict[str, int], images: List[str]) -> None:
        self._history[domain].append({
            "strategies": dict(strategies),
            "image_count": len(images),
            "sample_urls": images[:3],
        })

    def _learn_from_validation(self, domain: str, attempted: int, succeeded: int) -> None:
        stats = self._validation_stats[domain]
        stats["attempts"] += attempted
        stats["failures"] += attempted - succeeded
        if stats["attempts"] > 20 and stats["failures"] / stats["attempts"] > 0.7:
            logger.warning(
                f"High image validation failure rate for {domain}: "
                f"{stats['failures'] / stats['attempts']:.0%}"
            )

    def get_stats(self, domain: str) -> Dict[str, object]:
        history = list(self._history.get(domain, ()))
        return {
            "extractions": len(history),
            "validation": dict(self._validation_stats.get(domain, {"attempts": 0, "failures": 0})),
            "recent": history[-5:],
        }
