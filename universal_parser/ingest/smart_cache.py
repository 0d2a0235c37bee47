"""Result caching for extracted product records.

Two layers:
- ResultCache: in-process, FIFO-bounded, per-strategy TTL
- RedisResultCache: optional shared layer so several workers reuse results
"""

import hashlib
import json
import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import redis.asyncio as redis

from universal_parser.config import settings
from universal_parser.ingest.base import FetchStrategy, ProductRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheEntry:
    """One cached record and when it was stored."""

    url: str
    data: ProductRecord
    timestamp: float
    strategy_used: FetchStrategy


class ResultCache:
    """
    In-memory result cache.

    Capacity is bounded FIFO: when full, the oldest inserted entry goes
    first regardless of how recently it was read. Rendered results live
    longer than direct ones because they cost more to rebuild.
    """

    def __init__(
        self,
        max_size: Optional[int] = None,
        ttl_seconds: Optional[int] = None,
        rendered_ttl_seconds: Optional[int] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.max_size = max_size if max_size is not None else settings.cache_max_size
        self.ttl = ttl_seconds if ttl_seconds is not None else settings.cache_ttl_seconds
        self.rendered_ttl = (
            rendered_ttl_seconds if rendered_ttl_seconds is not None else settings.rendered_cache_ttl_seconds
        )
        self._clock = clock or time.monotonic
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self.hits = 0
        self.misses = 0
        self.evictions = 0

    def ttl_for(self, strategy: FetchStrategy) -> int:
        return self.rendered_ttl if strategy is FetchStrategy.RENDERED else self.ttl

    def get(self, url: str) -> Optional[ProductRecord]:
        """Return the cached record, or None if absent or expired."""
        entry = self._entries.get(url)
        if entry is None:
            self.misses += 1
            return None

        age = self._clock() - entry.timestamp
        if age > self.ttl_for(entry.strategy_used):
            del self._entries[url]
            self.misses += 1
            logger.debug(f"Cache entry expired for {url} after {age:.0f}s")
            return None

        self.hits += 1
        return entry.data

    def set(self, url: str, record: ProductRecord, strategy: FetchStrategy) -> None:
        if self.max_size <= 0:
            return
        # Re-inserting a URL moves it to the back of the FIFO queue
        self._entries.pop(url, None)
        self._entries[url] = CacheEntry(url=url, data=record, timestamp=self._clock(), strategy_used=strategy)

        while len(self._entries) > self.max_size:
            evicted_url, _ = self._entries.popitem(last=False)
            self.evictions += 1
            logger.debug(f"Evicted oldest cache entry {evicted_url}")

    def __contains__(self, url: str) -> bool:
        return url in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def clear(self) -> None:
        self._entries.clear()

    def get_stats(self) -> Dict[str, Any]:
        total = self.hits + self.misses
        return {
            "size": len(self._entries),
            "max_size": self.max_size,
            "hits": self.hits,
            "misses": self.misses,
            "evictions": self.evictions,
            "hit_rate": round(self.hits / total, 4) if total else 0.0,
        }


class RedisResultCache:
    """
    Shared record cache in Redis.

    Every operation is best-effort: Redis being down degrades to a miss.
    """

    def __init__(self, redis_url: Optional[str] = None, prefix: Optional[str] = None):
        self.redis_url = redis_url or settings.redis_url
        self.prefix = prefix or settings.redis_cache_prefix
        self._redis: Optional[redis.Redis] = None

    async def _get_redis(self) -> redis.Redis:
        """Get or create Redis connection."""
        if self._redis is None:
            self._redis = await redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
            )
        return self._redis

    async def close(self):
        """Close Redis connection."""
        if self._redis:
            await self._redis.close()
            self._redis = None

    def _get_cache_key(self, url: str) -> str:
        """Generate cache key from URL."""
        url_hash = hashlib.md5(url.encode()).hexdigest()
        return f"{self.prefix}{url_hash}"

    async def get(self, url: str) -> Optional[ProductRecord]:
        try:
            redis_client = await self._get_redis()
            payload = await redis_client.get(self._get_cache_key(url))
            if not payload:
                return None
            return ProductRecord.from_dict(json.loads(payload))
        except Exception as e:
            logger.debug(f"Error reading cached record for {url}: {e}")
            return None

    async def set(self, url: str, record: ProductRecord, ttl_seconds: int) -> None:
        try:
            redis_client = await self._get_redis()
            await redis_client.setex(self._get_cache_key(url), ttl_seconds, json.dumps(record.to_dict()))
        except Exception as e:
            logger.debug(f"Error caching record for {url}: {e}")
