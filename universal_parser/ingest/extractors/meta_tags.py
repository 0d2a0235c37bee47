"""OpenGraph and product meta tag extractor."""

from __future__ import annotations

from universal_parser.ingest.base import EvidenceBundle
from universal_parser.ingest.extractors.base import Extractor, PageContext
from universal_parser.normalize.processor import (
    normalize_availability,
    normalize_currency,
    normalize_price,
)


class MetaTagExtractor(Extractor):
    name = "meta_tags"

    def extract(self, page: PageContext) -> EvidenceBundle:
        bundle = self.empty()

        bundle.name = page.meta("og:title", "twitter:title")
        bundle.description = page.meta("og:description", "twitter:description")
        bundle.brand = page.meta("product:brand", "og:brand")
        bundle.price = normalize_price(page.meta("product:price:amount", "og:price:amount"))
        bundle.currency = normalize_currency(page.meta("product:price:currency", "og:price:currency"))
        bundle.availability = normalize_availability(page.meta("product:availability", "og:availability"))
        bundle.sku = page.meta("product:retailer_item_id")

        image = page.meta("og:image", "og:image:url", "og:image:secure_url", "twitter:image")
        if image:
            bundle.images = [image]

        return bundle
