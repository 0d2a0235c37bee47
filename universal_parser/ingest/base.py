"""Core data types and error taxonomy for product extraction."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Optional


class FetchStrategy(Enum):
    """How a page is fetched, cheapest first."""
    DIRECT = "direct"
    RENDERED = "rendered"

    @property
    def other(self) -> "FetchStrategy":
        return FetchStrategy.RENDERED if self is FetchStrategy.DIRECT else FetchStrategy.DIRECT


# Fields a record can carry. Order is the serialization order.
SCALAR_FIELDS = ("name", "price", "currency", "brand", "description", "sku", "availability")
PRODUCT_FIELDS = SCALAR_FIELDS + ("images",)


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class ExtractionError(Exception):
    """Base class for extraction failures."""


class FetchError(ExtractionError):
    """Page could not be fetched."""

    def __init__(self, url: str, reason: str, status_code: Optional[int] = None):
        self.url = url
        self.reason = reason
        self.status_code = status_code
        super().__init__(f"Failed to fetch {url}: {reason}")


class FetchBlocked(FetchError):
    """HTTP 403/429 or an anti-bot challenge page."""

    def __init__(self, url: str, reason: str, status_code: Optional[int] = None, block_type: Optional[str] = None):
        self.block_type = block_type
        super().__init__(url, reason, status_code)


class FetchTimeout(FetchError):
    """Fetch did not complete within its strategy timeout."""

    def __init__(self, url: str, timeout: float):
        self.timeout = timeout
        super().__init__(url, f"timed out after {timeout:.1f}s")


class ParseFailure(ExtractionError):
    """Document could not be parsed as markup."""

    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"Could not parse {url}: {reason}")


class NoEvidence(ExtractionError):
    """Every extractor came back empty."""

    def __init__(self, url: str):
        self.url = url
        super().__init__(f"No product data found on {url}")


class ValidationProbeFailure(ExtractionError):
    """A candidate image URL failed its HEAD probe. Never fatal."""

    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"Image probe failed for {url}: {reason}")


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------

@dataclass
class EvidenceBundle:
    """Sparse output of a single extractor, before merging."""

    source: str
    name: Optional[str] = None
    price: Optional[float] = None
    currency: Optional[str] = None
    brand: Optional[str] = None
    description: Optional[str] = None
    sku: Optional[str] = None
    availability: Optional[str] = None
    images: list[str] = field(default_factory=list)
    # field -> CSS selector that produced it (feeds pattern learning)
    selectors: dict[str, str] = field(default_factory=dict)

    def has(self, field_name: str) -> bool:
        value = getattr(self, field_name, None)
        if field_name == "images":
            return bool(value)
        if isinstance(value, str):
            return bool(value.strip())
        return value is not None

    def is_empty(self) -> bool:
        return not any(self.has(f) for f in PRODUCT_FIELDS)


@dataclass(frozen=True)
class ProductRecord:
    """Merged extraction result. Never mutated once built."""

    url: str
    name: Optional[str] = None
    price: Optional[float] = None
    currency: Optional[str] = None
    brand: Optional[str] = None
    description: Optional[str] = None
    sku: Optional[str] = None
    availability: Optional[str] = None
    images: tuple[str, ...] = ()
    sources: dict[str, str] = field(default_factory=dict)
    confidence: float = 0.0
    strategy: Optional[str] = None
    hostname: Optional[str] = None
    error: Optional[str] = None
    extraction_time_ms: Optional[float] = None

    @classmethod
    def failure(cls, url: str, error: str, hostname: Optional[str] = None) -> "ProductRecord":
        """Zero-confidence record carrying an error string."""
        return cls(url=url, confidence=0.0, error=error, hostname=hostname)

    def has(self, field_name: str) -> bool:
        value = getattr(self, field_name, None)
        if field_name == "images":
            return len(value) > 0
        return value is not None

    def is_empty(self) -> bool:
        return not any(self.has(f) for f in PRODUCT_FIELDS)

    def with_updates(self, **changes: Any) -> "ProductRecord":
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        """Flat JSON-ready dict with `<field>_source` keys."""
        data: dict[str, Any] = {"url": self.url}
        for name in PRODUCT_FIELDS:
            value = getattr(self, name)
            if name == "images":
                data["images"] = list(value)
            elif value is not None:
                data[name] = value
            if name in self.sources:
                data[f"{name}_source"] = self.sources[name]
        data["confidence"] = round(self.confidence, 4)
        for name in ("strategy", "hostname", "error", "extraction_time_ms"):
            value = getattr(self, name)
            if value is not None:
                data[name] = value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ProductRecord":
        """Inverse of `to_dict`."""
        sources = {
            name: data[f"{name}_source"]
            for name in PRODUCT_FIELDS
            if f"{name}_source" in data
        }
        values = {name: data.get(name) for name in SCALAR_FIELDS}
        return cls(
            url=data["url"],
            images=tuple(data.get("images") or ()),
            sources=sources,
            confidence=float(data.get("confidence", 0.0)),
            strategy=data.get("strategy"),
            hostname=data.get("hostname"),
            error=data.get("error"),
            extraction_time_ms=data.get("extraction_time_ms"),
            **values,
        )


@dataclass(frozen=True)
class RenderedPage:
    """HTML and captured JS globals from a headless render."""

    url: str
    html: str
    js_globals: dict[str, Any] = field(default_factory=dict)
    status_code: Optional[int] = None


@dataclass(frozen=True)
class ProbeResult:
    """Outcome of a HEAD probe against an image URL."""

    url: str
    ok: bool
    content_type: Optional[str] = None
    status_code: Optional[int] = None


@dataclass(frozen=True)
class PatternEntry:
    """Selectors that worked last time for a domain."""

    domain: str
    fields: dict[str, str]
    last_success: datetime
    success_count: int = 1
