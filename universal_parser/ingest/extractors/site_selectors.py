"""
Hand-maintained selector tables for retailers whose markup defeats the
generic heuristics.

Each entry maps a registrable domain to per-field selector lists, plus
optional ``constants`` for values the page never states (a single-brand
retailer's brand, for example). Edit freely; nothing else needs to change.
"""

from typing import Any, Optional

from universal_parser.normalize.processor import domain_matches

SITE_SELECTORS: dict[str, dict[str, Any]] = {
    "zara.com": {
        "name": [".product-detail-info__header-name", "h1.product-detail-info__name"],
        "price": [".price-current__amount", ".money-amount__main"],
        "description": [".expandable-text__inner-content", ".product-detail-description"],
        "images": [".media-image img", ".product-detail-images img"],
        "constants": {"brand": "Zara"},
    },
    "ssense.com": {
        "name": [".pdp-product-title__name", "h2.product-name"],
        "brand": [".pdp-product-title__brand", "h1.product-brand a"],
        "price": [".pdp-product-title__price", ".price"],
        "images": [".product-gallery img", ".carousel-item img"],
    },
    "farfetch.com": {
        "name": ['[data-testid="product-short-description"]', '[data-tstid="productDescription"]'],
        "brand": ['[data-testid="product-brand"]', '[data-tstid="cardInfo-title"]'],
        "price": ['[data-component="PriceFinal"]', '[data-tstid="priceInfo-original"]'],
        "images": ['[data-testid="product-image"] img', ".product-images img"],
    },
    "net-a-porter.com": {
        "name": [".ProductInformation87__name", 'p[class*="ProductInformation"][class*="name"]'],
        "brand": [".ProductInformation87__designer", 'h1[class*="designer"]'],
        "price": ['[itemprop="price"]', 'span[class*="PriceWithSchema"]'],
        "images": [".product-image img", ".image-carousel img"],
    },
    "wconcept.com": {
        "name": [".pdt_title", ".product-name"],
        "brand": [".brand_name", ".product-brand"],
        "price": [".sale_price", ".normal_price"],
        "images": [".product-gallery img", ".image-slider img", '[data-image-role="product-image"]'],
    },
    "ralphlauren.com": {
        "name": [".product-name", "h1.product-name"],
        "price": [".product-price", '[data-testid="product-price"]', ".price-sales"],
        "images": [".ghosting-main img", ".product-images-main img", ".pdp-image-container img"],
        "constants": {"brand": "Ralph Lauren"},
    },
    "hm.com": {
        "name": ["h1.product-item-headline", "h1"],
        "price": [".product-item-price span", '[data-testid="white-price"]'],
        "images": [".product-detail-main-image-container img", ".pdp-image img"],
        "constants": {"brand": "H&M"},
    },
    "uniqlo.com": {
        "name": [".pdp-title", "h1.title"],
        "price": [".price-renewal", ".fr-ec-price-text"],
        "images": [".fr-ec-media-gallery img", ".image-gallery img"],
        "constants": {"brand": "Uniqlo"},
    },
}


def get_site_selectors(domain: str) -> Optional[dict[str, Any]]:
    """Selector table for ``domain`` or one of its parents."""
    if domain in SITE_SELECTORS:
        return SITE_SELECTORS[domain]
    for candidate, table in SITE_SELECTORS.items():
        if domain_matches(domain, [candidate]):
            return table
    return None
