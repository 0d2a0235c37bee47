"""schema.org microdata (``itemprop``) extractor."""

from __future__ import annotations

from typing import Optional

from selectolax.parser import Node

from universal_parser.ingest.base import EvidenceBundle
from universal_parser.ingest.extractors.base import (
    Extractor,
    PageContext,
    node_image,
    select_scalar,
)

ITEMPROP_FIELDS = {
    "name": "name",
    "price": "price",
    "currency": "priceCurrency",
    "brand": "brand",
    "description": "description",
    "availability": "availability",
    "sku": "sku",
}

# Fields a product usually states through its nested Offer
OFFER_FIELDS = {"price", "currency", "availability"}


def owning_scope(node: Node, scope: Node) -> Optional[Node]:
    """Nearest itemscope between ``node`` and ``scope``; None when ``scope`` owns the node."""
    parent = node.parent
    while parent is not None and parent.mem_id != scope.mem_id:
        if "itemscope" in parent.attributes:
            return parent
        parent = parent.parent
    return None


class MicrodataExtractor(Extractor):
    """Reads itemprop values, scoped to the first Product itemscope when present."""

    name = "microdata"

    def extract(self, page: PageContext) -> EvidenceBundle:
        bundle = self.empty()

        scope = page.tree.css_first('[itemtype*="schema.org/Product"]') or page.tree.root
        if scope is None:
            return bundle

        def owned(node: Node) -> bool:
            return owning_scope(node, scope) is None

        def owned_or_offer(node: Node) -> bool:
            owner = owning_scope(node, scope)
            return owner is None or "Offer" in (owner.attributes.get("itemtype") or "")

        for field_name, prop in ITEMPROP_FIELDS.items():
            selector = f'[itemprop="{prop}"]'
            accept = owned_or_offer if field_name in OFFER_FIELDS else owned
            value = select_scalar(scope, selector, field_name, accept)
            if value is not None:
                setattr(bundle, field_name, value)
                bundle.selectors[field_name] = selector

        images = []
        for node in scope.css('[itemprop="image"]'):
            if not owned(node):
                continue
            src = node_image(node)
            if src and src not in images:
                images.append(src)
        if images:
            bundle.images = images
            bundle.selectors["images"] = '[itemprop="image"]'

        return bundle
