"""Extractor driven by the per-domain selector tables."""

from __future__ import annotations

from typing import Any

from universal_parser.ingest.extractors.base import PageContext, SelectorExtractor
from universal_parser.ingest.extractors.site_selectors import get_site_selectors


class DomainSpecificExtractor(SelectorExtractor):
    name = "domain_specific"

    def selectors_for(self, page: PageContext) -> dict[str, list[str]]:
        table = get_site_selectors(page.domain) or {}
        return {field: selectors for field, selectors in table.items() if field != "constants"}

    def constants_for(self, page: PageContext) -> dict[str, Any]:
        table = get_site_selectors(page.domain) or {}
        return dict(table.get("constants", {}))
