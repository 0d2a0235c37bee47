"""Product fields from JavaScript hydration state."""

from __future__ import annotations

import logging

from universal_parser.ingest.base import EvidenceBundle
from universal_parser.ingest.extractors.base import Extractor, PageContext
from universal_parser.ingest.json_extractor import HYDRATION_SHAPES
from universal_parser.normalize.processor import clean_text, normalize_price

logger = logging.getLogger(__name__)


class RenderedStateExtractor(Extractor):
    """
    Walks the hydration-state shapes over the page's JS globals.

    Each shape contributes only the fields still missing, in shape order.
    """

    name = "rendered_state"

    def extract(self, page: PageContext) -> EvidenceBundle:
        bundle = self.empty()
        if not page.js_globals:
            return bundle

        for shape in HYDRATION_SHAPES:
            fields = shape(page.js_globals)
            if not fields:
                continue
            logger.debug(f"Hydration shape {shape.__name__} matched on {page.domain}")

            if not bundle.has("name"):
                bundle.name = clean_text(fields.get("name"))
            if not bundle.has("price"):
                bundle.price = normalize_price(fields.get("price"))
            if not bundle.has("brand"):
                bundle.brand = clean_text(fields.get("brand"))
            if not bundle.has("description"):
                bundle.description = clean_text(fields.get("description"))
            if not bundle.has("images"):
                bundle.images = [url for url in fields.get("images", []) if isinstance(url, str)]

        return bundle
