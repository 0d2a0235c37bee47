"""Tests for the extraction HTTP routes."""

from datetime import datetime, timezone

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from universal_parser.api.deps import get_engine
from universal_parser.api.routes import extract
from universal_parser.ingest.base import FetchStrategy, PatternEntry, ProductRecord


class StubPatternStore:
    def __init__(self, entries):
        self.entries = entries

    def get(self, domain):
        return self.entries.get(domain)


class StubEngine:
    def __init__(self, record):
        self.record = record
        self.calls = []
        self.pattern_store = StubPatternStore({
            "shop.example": PatternEntry(
                domain="shop.example",
                fields={"price": ".price-x"},
                last_success=datetime(2024, 3, 1, tzinfo=timezone.utc),
                success_count=3,
            ),
        })

    async def extract(self, url, force_strategy=None, timeout_ms=None):
        self.calls.append((url, force_strategy, timeout_ms))
        return self.record

    def get_metrics(self):
        return {"attempts": len(self.calls), "successes": 0, "failures": 0, "cache_hits": 0,
                "escalations": 0, "byStrategy": {}, "successRate": 0.0}


def client_for(engine):
    app = FastAPI()
    app.include_router(extract.router)
    app.dependency_overrides[get_engine] = lambda: engine
    return TestClient(app)


@pytest.fixture
def good_record():
    return ProductRecord(
        url="https://shop.example/p/1",
        name="Linen Shirt",
        price=89.0,
        currency="USD",
        images=("https://cdn.example.com/a.jpg",),
        sources={"name": "structured_data", "price": "structured_data", "images": "structured_data"},
        confidence=0.91,
        strategy="direct",
        hostname="shop.example",
    )


def test_extract_returns_record(good_record):
    engine = StubEngine(good_record)
    client = client_for(engine)

    response = client.post(
        "/api/extract",
        json={"url": "https://shop.example/p/1", "force_strategy": "rendered", "timeout_ms": 5000},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["name"] == "Linen Shirt"
    assert body["images"] == ["https://cdn.example.com/a.jpg"]
    assert body["sources"]["price"] == "structured_data"
    assert engine.calls == [("https://shop.example/p/1", FetchStrategy.RENDERED, 5000)]


def test_zero_confidence_maps_to_422():
    record = ProductRecord.failure("https://shop.example/p/1", "direct: blocked; rendered: timed out")
    client = client_for(StubEngine(record))

    response = client.post("/api/extract", json={"url": "https://shop.example/p/1"})

    assert response.status_code == 422
    detail = response.json()["detail"]
    assert detail["message"] == "could not extract product data for this URL"
    assert detail["error"] == "direct: blocked; rendered: timed out"


def test_unknown_strategy_is_rejected(good_record):
    client = client_for(StubEngine(good_record))

    response = client.post("/api/extract", json={"url": "https://shop.example/p/1", "force_strategy": "carrier-pigeon"})

    assert response.status_code == 422


def test_metrics_route(good_record):
    client = client_for(StubEngine(good_record))

    assert client.get("/api/extract/metrics").json()["attempts"] == 0


def test_pattern_route(good_record):
    client = client_for(StubEngine(good_record))

    response = client.get("/api/extract/patterns/www.shop.example")
    assert response.status_code == 200
    assert response.json()["fields"] == {"price": ".price-x"}
    assert response.json()["success_count"] == 3

    assert client.get("/api/extract/patterns/unknown.example").status_code == 404


def test_missing_engine_is_unavailable():
    app = FastAPI()
    app.include_router(extract.router)
    client = TestClient(app)

    response = client.get("/api/extract/metrics")

    assert response.status_code == 503
