"""Fetch strategy selection and escalation rules.

Decides which strategy a domain starts with and whether a finished attempt
should be retried with the other one. The orchestrator runs at most two
attempts per extraction, cheapest first unless the domain says otherwise.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from universal_parser.config import settings
from universal_parser.ingest.base import (
    EvidenceBundle,
    ExtractionError,
    FetchError,
    FetchStrategy,
    NoEvidence,
    ParseFailure,
    ProductRecord,
)
from universal_parser.ingest.extractors.base import PageContext
from universal_parser.normalize.processor import domain_matches

logger = logging.getLogger(__name__)


@dataclass
class AttemptOutcome:
    """Result of one fetch-and-extract attempt."""

    strategy: FetchStrategy
    record: Optional[ProductRecord] = None
    error: Optional[ExtractionError] = None
    bundles: List[EvidenceBundle] = field(default_factory=list)
    page: Optional[PageContext] = None
    image_selector: Optional[str] = None

    @property
    def confidence(self) -> float:
        return self.record.confidence if self.record is not None else 0.0

    @property
    def succeeded(self) -> bool:
        return self.record is not None and self.error is None


class StrategySelector:
    """
    Per-domain strategy policy.

    Domain lists come from settings unless given; each list matches the
    domain itself and any subdomain of it.
    """

    def __init__(
        self,
        requires_rendering: Optional[Iterable[str]] = None,
        maybe_requires_rendering: Optional[Iterable[str]] = None,
        blocks_direct_fetch: Optional[Iterable[str]] = None,
        terminal_status_codes: Optional[Iterable[int]] = None,
        min_confidence: Optional[float] = None,
    ):
        self.requires_rendering = list(
            requires_rendering if requires_rendering is not None else settings.requires_rendering
        )
        self.maybe_requires_rendering = list(
            maybe_requires_rendering if maybe_requires_rendering is not None else settings.maybe_requires_rendering
        )
        self.blocks_direct_fetch = list(
            blocks_direct_fetch if blocks_direct_fetch is not None else settings.blocks_direct_fetch
        )
        self.terminal_status_codes = set(
            terminal_status_codes if terminal_status_codes is not None else settings.terminal_status_codes
        )
        self.min_confidence = min_confidence if min_confidence is not None else settings.min_confidence

    def initial_strategy(
        self,
        domain: str,
        rendering_available: bool,
        force: Optional[FetchStrategy] = None,
    ) -> FetchStrategy:
        """Strategy for the first attempt."""
        if force is not None:
            return force
        if rendering_available and (
            domain_matches(domain, self.requires_rendering) or domain_matches(domain, self.blocks_direct_fetch)
        ):
            logger.debug(f"{domain} is known to need rendering")
            return FetchStrategy.RENDERED
        return FetchStrategy.DIRECT

    def next_strategy(self, domain: str, outcome: AttemptOutcome, rendering_available: bool) -> Optional[str]:
        """
        Reason to retry with the other strategy, or None to stop.

        - A failed direct attempt escalates unless the page is gone (404/410)
        - A low-confidence direct attempt escalates on maybe-render domains
        - A failed rendered attempt falls back to direct unless the domain
          blocks direct fetches
        """
        error = outcome.error

        if isinstance(error, FetchError) and error.status_code in self.terminal_status_codes:
            return None

        if outcome.strategy is FetchStrategy.DIRECT:
            if not rendering_available:
                return None
            if error is not None and not isinstance(error, NoEvidence):
                if isinstance(error, (FetchError, ParseFailure)):
                    return type(error).__name__
                return None
            if outcome.confidence < self.min_confidence and domain_matches(domain, self.maybe_requires_rendering):
                return "low_confidence"
            return None

        # Rendered first
        if error is not None and not domain_matches(domain, self.blocks_direct_fetch):
            return type(error).__name__
        return None
