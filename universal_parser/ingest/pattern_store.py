"""
Per-domain store of selectors that produced successful extractions.

Entries are immutable; every update swaps in a new PatternEntry so readers
holding a snapshot never see a half-applied change. The store is persisted
as one JSON document rewritten through a temp file and ``os.replace``.
"""

import asyncio
import json
import logging
import os
import tempfile
from collections import defaultdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Optional

from selectolax.parser import HTMLParser

from universal_parser.ingest.base import EvidenceBundle, PatternEntry, ProductRecord
from universal_parser.ingest.extractors.base import EXTRACTOR_NAMES, node_value
from universal_parser.ingest.extractors.generic import GENERIC_SELECTORS
from universal_parser.ingest.extractors.site_selectors import get_site_selectors
from universal_parser.normalize.processor import normalize_price

logger = logging.getLogger(__name__)

# Fields worth remembering a selector for
LEARNABLE_FIELDS = ("name", "price", "brand", "description", "images")

# Extra candidates tried when a field came from a non-selector source
_ITEMPROP_CANDIDATES = {
    "name": ['[itemprop="name"]'],
    "price": ['[itemprop="price"]'],
    "brand": ['[itemprop="brand"]'],
    "description": ['[itemprop="description"]'],
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _is_selector(value: str) -> bool:
    return bool(value) and value not in EXTRACTOR_NAMES


class PatternStore:
    """
    Learned selectors keyed by registrable domain.

    Args:
        path: JSON document location
        clock: Returns the current UTC time; injectable for tests
    """

    def __init__(self, path: str | Path, clock: Optional[Callable[[], datetime]] = None):
        self.path = Path(path)
        self._clock = clock or _utcnow
        self._entries: dict[str, PatternEntry] = {}
        self._locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._save_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def load(self) -> int:
        """
        Load the persisted document. A missing or corrupt file leaves the
        store empty.

        Returns:
            Number of domains loaded
        """
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            logger.info(f"No pattern database at {self.path}, starting empty")
            return 0
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Could not read pattern database {self.path}: {e}")
            return 0

        if not isinstance(raw, dict):
            logger.warning(f"Pattern database {self.path} is not an object, ignoring")
            return 0

        entries = {}
        for domain, data in raw.items():
            entry = self._entry_from_json(domain, data)
            if entry is not None:
                entries[domain] = entry

        self._entries = entries
        logger.info(f"Loaded learned patterns for {len(entries)} domains")
        return len(entries)

    def _entry_from_json(self, domain: str, data: Any) -> Optional[PatternEntry]:
        if domain.startswith("_") or not isinstance(data, dict):
            return None
        fields = data.get("fields")
        if not isinstance(fields, dict):
            return None
        last_success = _parse_timestamp(data.get("lastSuccess")) or self._clock()
        try:
            success_count = int(data.get("successCount", 1))
        except (TypeError, ValueError):
            success_count = 1
        return PatternEntry(
            domain=domain,
            fields={str(k): str(v) for k, v in fields.items() if isinstance(v, str)},
            last_success=last_success,
            success_count=success_count,
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, domain: str) -> Optional[PatternEntry]:
        return self._entries.get(domain)

    def snapshot(self) -> dict[str, PatternEntry]:
        """Point-in-time copy of all entries; entries are replaced, never mutated."""
        return dict(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def record_success(self, domain: str, fields: dict[str, str]) -> Optional[PatternEntry]:
        """
        Merge newly observed field selectors into the domain's entry.

        ``success_count`` and ``last_success`` move at most once per UTC
        calendar day; later same-day successes still merge their fields. A
        bare extractor name never overwrites a learned selector.

        Returns:
            The entry now stored, or None if ``fields`` was empty
        """
        fields = {k: v for k, v in fields.items() if v}
        if not fields:
            return None

        async with self._locks[domain]:
            now = self._clock()
            existing = self._entries.get(domain)

            if existing is None:
                entry = PatternEntry(domain=domain, fields=dict(fields), last_success=now, success_count=1)
                logger.info(f"Learned first patterns for {domain}: {sorted(fields)}")
            else:
                merged = dict(existing.fields)
                for field_name, value in fields.items():
                    if not _is_selector(value) and _is_selector(merged.get(field_name, "")):
                        continue
                    merged[field_name] = value

                if existing.last_success.astimezone(timezone.utc).date() == now.astimezone(timezone.utc).date():
                    # Already counted today
                    entry = PatternEntry(
                        domain=domain,
                        fields=merged,
                        last_success=existing.last_success,
                        success_count=existing.success_count,
                    )
                    logger.debug(f"Updated patterns for {domain} (already counted today)")
                else:
                    entry = PatternEntry(
                        domain=domain,
                        fields=merged,
                        last_success=now,
                        success_count=existing.success_count + 1,
                    )
                    logger.info(f"Pattern success #{entry.success_count} for {domain}")

            self._entries[domain] = entry
            return entry

    def to_document(self) -> dict[str, Any]:
        """Serializable form: ``{domain: {fields, lastSuccess, successCount}}``."""
        return {
            domain: {
                "fields": dict(entry.fields),
                "lastSuccess": entry.last_success.isoformat(),
                "successCount": entry.success_count,
            }
            for domain, entry in sorted(self.snapshot().items())
        }

    async def save(self) -> bool:
        """
        Persist the store. Failures are logged, never raised.

        Returns:
            True if the document was written
        """
        async with self._save_lock:
            document = self.to_document()
            try:
                await asyncio.to_thread(self._write_atomic, document)
            except (OSError, TypeError, ValueError) as e:
                logger.error(f"Failed to persist pattern database to {self.path}: {e}")
                return False
        logger.debug(f"Persisted patterns for {len(document)} domains")
        return True

    def _write_atomic(self, document: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(prefix=".pattern-db-", suffix=".tmp", dir=self.path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(document, f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
        except BaseException:
            # Leave the previous document intact
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise


# ----------------------------------------------------------------------
# Deriving what to learn
# ----------------------------------------------------------------------

def candidate_selectors(domain: str, field_name: str) -> list[str]:
    site = get_site_selectors(domain) or {}
    return (
        list(site.get(field_name, []))
        + _ITEMPROP_CANDIDATES.get(field_name, [])
        + GENERIC_SELECTORS.get(field_name, [])
    )


def find_working_selector(tree: HTMLParser, domain: str, field_name: str, value: Any) -> Optional[str]:
    """
    First candidate selector whose element carries ``value``.

    Text fields match on containment, prices on the normalized amount.
    """
    if value is None:
        return None
    for selector in candidate_selectors(domain, field_name):
        try:
            node = tree.css_first(selector)
        except ValueError:
            continue
        if node is None:
            continue
        text = node_value(node)
        if not text:
            continue
        if field_name == "price":
            if normalize_price(text) == value:
                return selector
        elif str(value) in text:
            return selector
    return None


def derive_learned_fields(
    record: ProductRecord,
    bundles: list[EvidenceBundle],
    tree: Optional[HTMLParser],
) -> dict[str, str]:
    """
    Map each learnable field of a successful record to what produced it.

    Prefers the selector the winning extractor reported, then a candidate
    selector found on the page, then the extractor name.
    """
    by_source = {bundle.source: bundle for bundle in bundles}
    domain = record.hostname or ""
    learned: dict[str, str] = {}

    for field_name in LEARNABLE_FIELDS:
        source = record.sources.get(field_name)
        if not source or not record.has(field_name):
            continue

        bundle = by_source.get(source)
        selector = bundle.selectors.get(field_name) if bundle is not None else None
        if selector is None and tree is not None and field_name != "images":
            selector = find_working_selector(tree, domain, field_name, getattr(record, field_name))

        learned[field_name] = selector or source

    return learned
