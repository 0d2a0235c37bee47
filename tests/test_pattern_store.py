"""Tests for learned pattern persistence and the daily success throttle."""

import asyncio
import json
from datetime import datetime, timedelta, timezone

import pytest

from universal_parser.ingest.pattern_store import PatternStore


@pytest.mark.asyncio
async def test_success_counted_once_per_day(pattern_store, clock):
    first = await pattern_store.record_success("shop.example", {"name": "h1.title"})
    assert first.success_count == 1

    clock.now = clock.now + timedelta(hours=3)
    same_day = await pattern_store.record_success("shop.example", {"price": ".price-x"})
    assert same_day.success_count == 1
    assert same_day.last_success == first.last_success
    # Fields still merge within the day
    assert same_day.fields == {"name": "h1.title", "price": ".price-x"}

    clock.now = clock.now + timedelta(days=1)
    next_day = await pattern_store.record_success("shop.example", {"name": "h1.title"})
    assert next_day.success_count == 2
    assert next_day.last_success == clock.now


@pytest.mark.asyncio
async def test_concurrent_same_domain_successes_count_once(pattern_store):
    fields = [{"name": "h1.title"}, {"price": ".price-x"}, {"brand": ".brand"}, {"images": ".gallery img"}]

    await asyncio.gather(*(pattern_store.record_success("shop.example", f) for f in fields))

    entry = pattern_store.get("shop.example")
    assert entry.success_count == 1
    assert entry.fields == {
        "name": "h1.title",
        "price": ".price-x",
        "brand": ".brand",
        "images": ".gallery img",
    }


@pytest.mark.asyncio
async def test_snapshot_is_a_detached_copy(pattern_store):
    await pattern_store.record_success("shop.example", {"name": "h1.title"})

    snapshot = pattern_store.snapshot()
    await pattern_store.record_success("shop.example", {"price": ".price-x"})
    await pattern_store.record_success("other.example", {"name": "h1"})

    assert set(snapshot) == {"shop.example"}
    assert snapshot["shop.example"].fields == {"name": "h1.title"}
    assert pattern_store.get("shop.example").fields == {"name": "h1.title", "price": ".price-x"}


@pytest.mark.asyncio
async def test_extractor_name_does_not_overwrite_selector(pattern_store):
    await pattern_store.record_success("shop.example", {"price": ".price-x"})
    entry = await pattern_store.record_success("shop.example", {"price": "structured_data", "name": "meta_tags"})

    assert entry.fields["price"] == ".price-x"
    assert entry.fields["name"] == "meta_tags"


@pytest.mark.asyncio
async def test_empty_fields_are_ignored(pattern_store):
    assert await pattern_store.record_success("shop.example", {"name": ""}) is None
    assert pattern_store.get("shop.example") is None


@pytest.mark.asyncio
async def test_save_and_reload(tmp_path, pattern_store):
    await pattern_store.record_success("shop.example", {"name": "h1.title"})
    await pattern_store.record_success("other.example", {"price": ".amount"})

    assert await pattern_store.save() is True

    document = json.loads(pattern_store.path.read_text())
    assert set(document) == {"shop.example", "other.example"}
    assert document["shop.example"]["fields"] == {"name": "h1.title"}
    assert document["shop.example"]["successCount"] == 1
    assert document["shop.example"]["lastSuccess"].startswith("2024-03-01")
    # No temp files left next to the document
    assert [p.name for p in tmp_path.iterdir()] == ["pattern-db.json"]

    reloaded = PatternStore(pattern_store.path)
    assert reloaded.load() == 2
    assert reloaded.get("shop.example").fields == {"name": "h1.title"}
    assert reloaded.get("shop.example").last_success == datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_failed_save_keeps_previous_document(tmp_path, pattern_store):
    await pattern_store.record_success("shop.example", {"name": "h1.title"})
    assert await pattern_store.save() is True
    before = pattern_store.path.read_text()

    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory")
    broken = PatternStore(blocker / "pattern-db.json")
    await broken.record_success("shop.example", {"name": "h1.other"})

    assert await broken.save() is False
    assert pattern_store.path.read_text() == before


def test_load_tolerates_missing_and_corrupt_files(tmp_path):
    assert PatternStore(tmp_path / "missing.json").load() == 0

    corrupt = tmp_path / "corrupt.json"
    corrupt.write_text("{not json")
    store = PatternStore(corrupt)
    assert store.load() == 0
    assert len(store) == 0


def test_load_skips_metadata_and_malformed_entries(tmp_path):
    path = tmp_path / "db.json"
    path.write_text(json.dumps({
        "_version": 2,
        "shop.example": {"fields": {"name": "h1"}, "lastSuccess": "2024-01-02T00:00:00Z", "successCount": 4},
        "bad.example": {"fields": "h1"},
    }))

    store = PatternStore(path)

    assert store.load() == 1
    entry = store.get("shop.example")
    assert entry.success_count == 4
    assert entry.last_success.tzinfo is not None
