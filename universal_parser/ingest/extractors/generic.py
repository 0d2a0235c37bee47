"""Generic CSS heuristics, the fallback for pages with no structured evidence."""

from __future__ import annotations

from universal_parser.ingest.extractors.base import PageContext, SelectorExtractor

# Ordered per field; first non-empty match wins
GENERIC_SELECTORS: dict[str, list[str]] = {
    "name": [
        "h1.product-title",
        "h1.product-name",
        "h1.product__title",
        ".product-title h1",
        ".product-name h1",
        '[data-testid="product-name"]',
        '[data-test="product-name"]',
        ".pdp-name",
        ".product-info h1",
        "h1",
    ],
    "price": [
        ".product-price",
        ".price .money",
        ".price-item--sale",
        ".price--on-sale",
        ".sale-price",
        ".current-price",
        ".now-price",
        ".price-now",
        ".product__price",
        "[data-product-price]",
        "[data-price]",
        ".price",
        ".money",
    ],
    "brand": [
        ".product-brand",
        ".brand",
        "[data-brand]",
        ".designer",
        ".vendor",
        ".product-vendor",
    ],
    "description": [
        ".product-description",
        ".product__description",
        "[data-description]",
        ".product-details",
        ".description",
    ],
    "images": [
        ".product-image img",
        ".product-gallery img",
        ".product__media img",
        ".product-photo img",
        ".gallery img",
        ".media img",
    ],
}


class GenericSelectorExtractor(SelectorExtractor):
    name = "generic_selector"

    def selectors_for(self, page: PageContext) -> dict[str, list[str]]:
        return GENERIC_SELECTORS
