"""Re-applies selectors learned from earlier successful extractions."""

from __future__ import annotations

import logging

from universal_parser.ingest.base import PRODUCT_FIELDS, EvidenceBundle
from universal_parser.ingest.extractors.base import (
    EXTRACTOR_NAMES,
    Extractor,
    PageContext,
    select_images,
    select_scalar,
)

logger = logging.getLogger(__name__)


class LearnedPatternExtractor(Extractor):
    """
    Applies the domain's learned selectors.

    Reads the PatternEntry snapshot attached to the page; entries that only
    name the extractor a field came from carry no selector and are skipped.
    """

    name = "learned_pattern"

    def extract(self, page: PageContext) -> EvidenceBundle:
        bundle = self.empty()
        if page.patterns is None:
            return bundle

        for field_name, selector in page.patterns.fields.items():
            if field_name not in PRODUCT_FIELDS or not selector or selector in EXTRACTOR_NAMES:
                continue
            try:
                if field_name == "images":
                    value = select_images(page.tree, selector)
                else:
                    value = select_scalar(page.tree, selector, field_name)
            except ValueError as e:
                logger.debug(f"Learned selector {selector!r} for {page.domain} is invalid: {e}")
                continue
            if value:
                setattr(bundle, field_name, value)
                bundle.selectors[field_name] = selector

        return bundle
