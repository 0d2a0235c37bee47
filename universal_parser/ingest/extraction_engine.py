"""Extraction orchestrator.

Flow for one URL:
    cache -> fetch (strategy per domain) -> parse once -> extractors fan out
    -> merge -> smart-image override -> confidence -> maybe escalate
    -> cache + background pattern learning
"""

import asyncio
import logging
import time
from typing import Any, Coroutine, Dict, List, Optional, Protocol

from universal_parser.config import settings
from universal_parser.ingest.base import (
    EvidenceBundle,
    ExtractionError,
    FetchError,
    FetchStrategy,
    NoEvidence,
    ProductRecord,
    RenderedPage,
)
from universal_parser.ingest.extractors import Extractor, PageContext, get_extractors
from universal_parser.ingest.fetch_strategies import AttemptOutcome, StrategySelector
from universal_parser.ingest.fetchers.headless import RenderedFetcher
from universal_parser.ingest.fetchers.static import DirectFetcher
from universal_parser.ingest.image_extractor import SmartImageExtractor
from universal_parser.ingest.pattern_store import PatternStore, derive_learned_fields
from universal_parser.ingest.smart_cache import RedisResultCache, ResultCache
from universal_parser.normalize.merger import apply_image_override, merge_bundles
from universal_parser.normalize.processor import registrable_domain
from universal_parser.logging_config import get_logger
from universal_parser import metrics

logger = logging.getLogger(__name__)


class PageFetcher(Protocol):
    async def fetch(self, url: str) -> str:
        ...


class PageRenderer(Protocol):
    available: bool

    async def render(self, url: str) -> RenderedPage:
        ...


class ExtractionEngine:
    """
    Turns a product URL into a ProductRecord.

    Never raises for fetch or parse problems: the worst outcome is a
    zero-confidence record carrying an ``error`` string.

    Every collaborator is injectable; defaults are built from settings.
    """

    def __init__(
        self,
        direct_fetcher: Optional[PageFetcher] = None,
        rendered_fetcher: Optional[PageRenderer] = None,
        cache: Optional[ResultCache] = None,
        redis_cache: Optional[RedisResultCache] = None,
        pattern_store: Optional[PatternStore] = None,
        image_extractor: Optional[SmartImageExtractor] = None,
        selector: Optional[StrategySelector] = None,
        extractors: Optional[List[Extractor]] = None,
        smart_images_enabled: Optional[bool] = None,
        pattern_learning_enabled: Optional[bool] = None,
        cache_enabled: Optional[bool] = None,
    ):
        self.direct_fetcher = direct_fetcher if direct_fetcher is not None else DirectFetcher()
        self.rendered_fetcher = rendered_fetcher if rendered_fetcher is not None else RenderedFetcher()
        self.cache = cache if cache is not None else ResultCache()
        self.redis_cache = redis_cache
        if self.redis_cache is None and settings.redis_url:
            self.redis_cache = RedisResultCache()

        if pattern_store is None:
            pattern_store = PatternStore(settings.pattern_db_path)
            pattern_store.load()
        self.pattern_store = pattern_store

        self.image_extractor = image_extractor if image_extractor is not None else SmartImageExtractor()
        self.selector = selector if selector is not None else StrategySelector()
        self.extractors = extractors if extractors is not None else get_extractors()

        self.smart_images_enabled = (
            smart_images_enabled if smart_images_enabled is not None else settings.smart_images_enabled
        )
        self.pattern_learning_enabled = (
            pattern_learning_enabled if pattern_learning_enabled is not None else settings.pattern_learning_enabled
        )
        self.cache_enabled = cache_enabled if cache_enabled is not None else settings.cache_enabled

        self._tasks: set[asyncio.Task] = set()
        self._stats: Dict[str, Any] = {
            "attempts": 0,
            "successes": 0,
            "failures": 0,
            "cache_hits": 0,
            "escalations": 0,
            "byStrategy": {s.value: {"attempts": 0, "successes": 0} for s in FetchStrategy},
        }

    @property
    def rendering_available(self) -> bool:
        return bool(getattr(self.rendered_fetcher, "available", True))

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def extract(
        self,
        url: str,
        force_strategy: Optional[FetchStrategy] = None,
        timeout_ms: Optional[int] = None,
    ) -> ProductRecord:
        """
        Extract product data from a URL.

        Args:
            url: Product page URL
            force_strategy: Use only this strategy (no escalation)
            timeout_ms: Deadline for the whole call; defaults to settings

        Returns:
            ProductRecord, cached on success
        """
        domain = registrable_domain(url)
        if not domain:
            return ProductRecord.failure(url, "invalid URL: no hostname")

        cached = await self._cache_lookup(url)
        if cached is not None:
            return cached

        self._stats["attempts"] += 1
        deadline = timeout_ms / 1000 if timeout_ms else settings.extraction_deadline_seconds
        start = time.monotonic()

        try:
            outcome = await asyncio.wait_for(self._extract_uncached(url, domain, force_strategy), timeout=deadline)
        except asyncio.TimeoutError:
            logger.warning(f"Extraction of {url} exceeded its {deadline:.1f}s deadline")
            outcome = AttemptOutcome(
                strategy=force_strategy or FetchStrategy.DIRECT,
                error=ExtractionError(f"extraction deadline of {deadline:.1f}s exceeded"),
            )

        duration = time.monotonic() - start
        if outcome.record is not None:
            record = outcome.record
        else:
            record = ProductRecord.failure(url, str(outcome.error or "no product data"), domain)
        record = record.with_updates(extraction_time_ms=round(duration * 1000, 1))

        if record.confidence > settings.cache_confidence_floor:
            self._stats["successes"] += 1
            metrics.record_extraction("success", record.strategy, duration)
            await self._cache_store(url, record, outcome.strategy)
            if self.pattern_learning_enabled and record.confidence > settings.learn_confidence_threshold:
                self._schedule(self._learn(outcome, record))
        else:
            self._stats["failures"] += 1
            metrics.record_extraction("error" if record.error else "low_confidence", record.strategy, duration)

        logger.info(
            f"Extracted {domain} via {record.strategy or 'none'}: "
            f"confidence {record.confidence:.2f} in {record.extraction_time_ms:.0f}ms"
        )
        return record

    async def extract_html(
        self,
        url: str,
        html: str,
        strategy: FetchStrategy = FetchStrategy.DIRECT,
        js_globals: Optional[Dict[str, Any]] = None,
    ) -> ProductRecord:
        """Run parse, extract and merge on HTML already in hand. No fetch, no cache."""
        start = time.monotonic()
        try:
            outcome = await self._run_pipeline(url, html, strategy, js_globals)
            record = outcome.record
        except ExtractionError as e:
            record = ProductRecord.failure(url, str(e), registrable_domain(url))
        return record.with_updates(extraction_time_ms=round((time.monotonic() - start) * 1000, 1))

    def get_metrics(self) -> Dict[str, Any]:
        attempts = self._stats["attempts"]
        return {
            "attempts": attempts,
            "successes": self._stats["successes"],
            "failures": self._stats["failures"],
            "cache_hits": self._stats["cache_hits"],
            "escalations": self._stats["escalations"],
            "byStrategy": {name: dict(counts) for name, counts in self._stats["byStrategy"].items()},
            "successRate": round(self._stats["successes"] / attempts, 4) if attempts else 0.0,
        }

    async def drain(self):
        """Wait for outstanding background learning tasks."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self):
        """Drain background work and release fetchers."""
        await self.drain()
        for resource in (self.direct_fetcher, self.rendered_fetcher, self.image_extractor, self.redis_cache):
            close = getattr(resource, "close", None)
            if close is None:
                continue
            try:
                await close()
            except Exception as e:
                logger.error(f"Error closing {type(resource).__name__}: {e}")

    # ------------------------------------------------------------------
    # Cache
    # ------------------------------------------------------------------

    async def _cache_lookup(self, url: str) -> Optional[ProductRecord]:
        if not self.cache_enabled:
            return None

        record = self.cache.get(url)
        if record is None and self.redis_cache is not None:
            record = await self.redis_cache.get(url)
            if record is not None:
                strategy = FetchStrategy(record.strategy) if record.strategy else FetchStrategy.DIRECT
                self.cache.set(url, record, strategy)

        metrics.record_cache_lookup(record is not None)
        if record is not None:
            self._stats["cache_hits"] += 1
            logger.debug(f"Cache hit for {url}")
        return record

    async def _cache_store(self, url: str, record: ProductRecord, strategy: FetchStrategy):
        if not self.cache_enabled:
            return
        self.cache.set(url, record, strategy)
        if self.redis_cache is not None:
            await self.redis_cache.set(url, record, self.cache.ttl_for(strategy))

    # ------------------------------------------------------------------
    # Attempts
    # ------------------------------------------------------------------

    async def _extract_uncached(
        self,
        url: str,
        domain: str,
        force_strategy: Optional[FetchStrategy],
    ) -> AttemptOutcome:
        rendering = self.rendering_available
        strategy = self.selector.initial_strategy(domain, rendering, force_strategy)
        first = await self._attempt(url, strategy)

        if force_strategy is not None:
            return first

        reason = self.selector.next_strategy(domain, first, rendering)
        if reason is None:
            return first

        next_strategy = strategy.other
        self._stats["escalations"] += 1
        metrics.record_escalation(strategy.value, next_strategy.value, reason)
        logger.warning(f"Escalating {url} from {strategy.value} to {next_strategy.value} ({reason})")

        second = await self._attempt(url, next_strategy)
        return self._better(first, second)

    @staticmethod
    def _better(first: AttemptOutcome, second: AttemptOutcome) -> AttemptOutcome:
        if second.record is not None and (first.record is None or second.confidence > first.confidence):
            return second
        if first.record is not None:
            return first
        # Both failed: keep both reasons
        combined = ExtractionError(f"{first.strategy.value}: {first.error}; {second.strategy.value}: {second.error}")
        return AttemptOutcome(strategy=second.strategy, error=combined)

    async def _attempt(self, url: str, strategy: FetchStrategy) -> AttemptOutcome:
        counts = self._stats["byStrategy"][strategy.value]
        counts["attempts"] += 1
        metrics.record_fetch_strategy_attempt(strategy.value)

        try:
            if strategy is FetchStrategy.DIRECT:
                html = await self.direct_fetcher.fetch(url)
                js_globals = None
            else:
                if not self.rendering_available:
                    raise FetchError(url, "rendering is disabled")
                rendered = await self.rendered_fetcher.render(url)
                html, js_globals = rendered.html, rendered.js_globals

            outcome = await self._run_pipeline(url, html, strategy, js_globals)
        except ExtractionError as e:
            logger.warning(f"{strategy.value} attempt failed for {url}: {e}")
            metrics.record_fetch_strategy_error(strategy.value, type(e).__name__)
            return AttemptOutcome(strategy=strategy, error=e)
        except Exception as e:
            logger.exception(f"Unexpected error during {strategy.value} attempt for {url}: {e}")
            metrics.record_fetch_strategy_error(strategy.value, "unexpected")
            return AttemptOutcome(strategy=strategy, error=FetchError(url, f"unexpected: {e}"))

        if outcome.confidence > settings.cache_confidence_floor:
            counts["successes"] += 1
            metrics.record_fetch_strategy_success(strategy.value)
        return outcome

    async def _run_pipeline(
        self,
        url: str,
        html: str,
        strategy: FetchStrategy,
        js_globals: Optional[Dict[str, Any]],
    ) -> AttemptOutcome:
        """
        Parse once, fan extractors out, merge, then apply smart images.

        Raises:
            ParseFailure: Document could not be parsed
            NoEvidence: No extractor found anything
        """
        domain = registrable_domain(url)
        patterns = self.pattern_store.get(domain) if self.pattern_learning_enabled else None
        page = PageContext.parse(url, html, strategy, js_globals=js_globals, patterns=patterns)

        bundles = await self._run_extractors(page)
        record = merge_bundles(bundles, url, settings.max_images, strategy.value)

        image_selector = None
        if self.smart_images_enabled:
            extraction = await self.image_extractor.extract(page)
            record = apply_image_override(record, extraction.images)
            image_selector = extraction.selector

        if record.is_empty():
            raise NoEvidence(url)

        return AttemptOutcome(
            strategy=strategy,
            record=record,
            bundles=bundles,
            page=page,
            image_selector=image_selector,
        )

    async def _run_extractors(self, page: PageContext) -> List[EvidenceBundle]:
        async def run(extractor: Extractor) -> EvidenceBundle:
            try:
                return extractor.extract(page)
            except Exception as e:
                logger.warning(f"Extractor {extractor.name} failed on {page.url}: {e}")
                return extractor.empty()

        return list(await asyncio.gather(*(run(extractor) for extractor in self.extractors)))

    # ------------------------------------------------------------------
    # Learning
    # ------------------------------------------------------------------

    def _schedule(self, coro: Coroutine):
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _learn(self, outcome: AttemptOutcome, record: ProductRecord):
        domain = record.hostname or registrable_domain(record.url)
        log = get_logger(__name__, domain=domain, strategy=record.strategy)
        try:
            tree = outcome.page.tree if outcome.page is not None else None
            fields = derive_learned_fields(record, outcome.bundles, tree)
            if record.sources.get("images") == "smart_images" and outcome.image_selector:
                fields["images"] = outcome.image_selector

            entry = await self.pattern_store.record_success(domain, fields)
            if entry is None:
                metrics.record_pattern_learning("skipped")
                return
            metrics.record_pattern_learning("learned")
            log.debug(f"Learned {sorted(fields)} from {record.url}")
            if not await self.pattern_store.save():
                log.warning("Learned patterns kept in memory only")
        except Exception as e:
            metrics.record_pattern_learning("error")
            log.error(f"Pattern learning failed for {domain}: {e}")


def create_engine(**overrides: Any) -> ExtractionEngine:
    """Build an engine from settings, with optional collaborator overrides."""
    return ExtractionEngine(**overrides)
