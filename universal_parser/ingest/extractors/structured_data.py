"""JSON-LD ``Product`` extractor."""

from __future__ import annotations

from typing import Any, Optional

from universal_parser.ingest.base import EvidenceBundle
from universal_parser.ingest.extractors.base import Extractor, PageContext
from universal_parser.ingest.json_extractor import find_json_ld_product
from universal_parser.normalize.processor import (
    clean_text,
    normalize_availability,
    normalize_currency,
    normalize_price,
)


def _first_offer(offers: Any) -> Optional[dict]:
    if isinstance(offers, list):
        offers = next((o for o in offers if isinstance(o, dict)), None)
    if not isinstance(offers, dict):
        return None
    # AggregateOffer may nest concrete offers
    nested = offers.get("offers")
    if offers.get("price") is None and offers.get("lowPrice") is None and nested:
        return _first_offer(nested) or offers
    return offers


def _images(value: Any) -> list[str]:
    if isinstance(value, str):
        return [value]
    if isinstance(value, dict):
        url = value.get("url") or value.get("contentUrl")
        return [url] if isinstance(url, str) else []
    if isinstance(value, list):
        images: list[str] = []
        for item in value:
            for url in _images(item):
                if url not in images:
                    images.append(url)
        return images
    return []


class StructuredDataExtractor(Extractor):
    """Reads the first schema.org Product found in JSON-LD blocks."""

    name = "structured_data"

    def extract(self, page: PageContext) -> EvidenceBundle:
        bundle = self.empty()
        product = find_json_ld_product(page.json_ld)
        if product is None:
            return bundle

        bundle.name = clean_text(product.get("name"))
        bundle.description = clean_text(product.get("description"))
        bundle.sku = clean_text(str(product["sku"])) if product.get("sku") is not None else None

        brand = product.get("brand")
        if isinstance(brand, list):
            brand = brand[0] if brand else None
        if isinstance(brand, dict):
            brand = brand.get("name")
        bundle.brand = clean_text(brand)

        offer = _first_offer(product.get("offers"))
        if offer is not None:
            price = offer.get("price")
            if price is None:
                price = offer.get("lowPrice")
            if price is None and isinstance(offer.get("priceSpecification"), dict):
                price = offer["priceSpecification"].get("price")
            bundle.price = normalize_price(price)
            bundle.currency = normalize_currency(offer.get("priceCurrency"))
            bundle.availability = normalize_availability(offer.get("availability"))

        bundle.images = _images(product.get("image"))
        return bundle
