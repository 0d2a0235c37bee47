"""Merge extractor evidence into one product record and score it."""

import logging
from typing import Iterable, Optional, Sequence

from universal_parser.ingest.base import SCALAR_FIELDS, EvidenceBundle, ProductRecord
from universal_parser.normalize.processor import normalize_images, registrable_domain

logger = logging.getLogger(__name__)

# Highest priority first
PRIORITY = (
    "structured_data",
    "learned_pattern",
    "meta_tags",
    "domain_specific",
    "microdata",
    "generic_selector",
    "rendered_state",
)

# Fields that count toward confidence
FIELD_WEIGHTS = {
    "name": 0.25,
    "price": 0.25,
    "images": 0.20,
    "brand": 0.15,
    "description": 0.15,
}

# Multiplier bonus per evidence source
SOURCE_BONUS = {
    "structured_data": 0.30,
    "rendered_state": 0.25,
    "meta_tags": 0.20,
    "microdata": 0.15,
    "smart_images": 0.15,
    "domain_specific": 0.10,
    "learned_pattern": 0.10,
    "generic_selector": 0.0,
}


def _rank(bundle: EvidenceBundle) -> int:
    try:
        return PRIORITY.index(bundle.source)
    except ValueError:
        return len(PRIORITY)


def merge_bundles(
    bundles: Iterable[EvidenceBundle],
    url: str,
    max_images: Optional[int] = 10,
    strategy: Optional[str] = None,
) -> ProductRecord:
    """
    Reconcile evidence bundles field by field.

    Each field takes the first non-empty value in priority order and
    records which extractor supplied it. Images come whole from the first
    bundle whose list survives normalization; lists are never interleaved.

    Returns:
        ProductRecord with confidence already computed
    """
    ordered: Sequence[EvidenceBundle] = sorted(bundles, key=_rank)

    values = {}
    sources = {}
    for field_name in SCALAR_FIELDS:
        for bundle in ordered:
            if bundle.has(field_name):
                values[field_name] = getattr(bundle, field_name)
                sources[field_name] = bundle.source
                break

    images: list[str] = []
    for bundle in ordered:
        if not bundle.images:
            continue
        images = normalize_images(bundle.images, url, max_images)
        if images:
            sources["images"] = bundle.source
            break

    record = ProductRecord(
        url=url,
        images=tuple(images),
        sources=sources,
        strategy=strategy,
        hostname=registrable_domain(url),
        **values,
    )
    logger.debug(f"Merged fields for {url}: {sources}")
    return record.with_updates(confidence=calculate_confidence(record))


def apply_image_override(
    record: ProductRecord,
    images: Sequence[str],
    source: str = "smart_images",
) -> ProductRecord:
    """Replace the record's images when the override list is non-empty."""
    if not images:
        return record
    updated = record.with_updates(
        images=tuple(images),
        sources={**record.sources, "images": source},
    )
    return updated.with_updates(confidence=calculate_confidence(updated))


def calculate_confidence(record: ProductRecord) -> float:
    """
    Weighted completeness score in [0, 1].

    Each present weighted field contributes ``weight * (1 + bonus)`` where
    the bonus depends on the extractor that supplied it.
    """
    score = 0.0
    for field_name, weight in FIELD_WEIGHTS.items():
        if not record.has(field_name):
            continue
        bonus = SOURCE_BONUS.get(record.sources.get(field_name, ""), 0.0)
        score += weight * (1 + bonus)
    return min(score, 1.0)
