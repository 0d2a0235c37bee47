"""Evidence extractor registry."""

from __future__ import annotations

from universal_parser.ingest.extractors.base import EXTRACTOR_NAMES, Extractor, PageContext
from universal_parser.ingest.extractors.structured_data import StructuredDataExtractor
from universal_parser.ingest.extractors.learned import LearnedPatternExtractor
from universal_parser.ingest.extractors.meta_tags import MetaTagExtractor
from universal_parser.ingest.extractors.domain_specific import DomainSpecificExtractor
from universal_parser.ingest.extractors.microdata import MicrodataExtractor
from universal_parser.ingest.extractors.generic import GenericSelectorExtractor
from universal_parser.ingest.extractors.rendered_state import RenderedStateExtractor


_EXTRACTORS = [
    StructuredDataExtractor(),
    LearnedPatternExtractor(),
    MetaTagExtractor(),
    DomainSpecificExtractor(),
    MicrodataExtractor(),
    GenericSelectorExtractor(),
    RenderedStateExtractor(),
]


def get_extractors() -> list[Extractor]:
    """Return extractor instances, highest merge priority first."""
    return list(_EXTRACTORS)


__all__ = [
    "EXTRACTOR_NAMES",
    "Extractor",
    "PageContext",
    "get_extractors",
]
