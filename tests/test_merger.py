"""Tests for evidence merging and confidence scoring."""

from universal_parser.ingest.base import EvidenceBundle, ProductRecord
from universal_parser.normalize.merger import (
    apply_image_override,
    calculate_confidence,
    merge_bundles,
)

URL = "https://shop.example/p/1"


def test_higher_priority_source_wins_regardless_of_order():
    generic = EvidenceBundle(source="generic_selector", name="Page Heading", price=10.0)
    structured = EvidenceBundle(source="structured_data", name="Real Name")

    record = merge_bundles([generic, structured], URL)

    assert record.name == "Real Name"
    assert record.sources["name"] == "structured_data"
    # Fields only the lower source has still fill in
    assert record.price == 10.0
    assert record.sources["price"] == "generic_selector"


def test_images_come_whole_from_first_usable_bundle():
    structured = EvidenceBundle(source="structured_data", images=["data:image/gif;base64,AAAA"])
    meta = EvidenceBundle(source="meta_tags", images=["https://cdn.example.com/a.jpg"])
    generic = EvidenceBundle(
        source="generic_selector",
        images=["https://cdn.example.com/b.jpg", "https://cdn.example.com/c.jpg"],
    )

    record = merge_bundles([generic, meta, structured], URL)

    assert record.images == ("https://cdn.example.com/a.jpg",)
    assert record.sources["images"] == "meta_tags"


def test_empty_evidence_scores_zero():
    record = merge_bundles([EvidenceBundle(source="meta_tags"), EvidenceBundle(source="microdata")], URL)

    assert record.is_empty()
    assert record.confidence == 0.0
    assert record.hostname == "shop.example"


def test_confidence_grows_with_each_field():
    fields = [
        {"name": "Shirt"},
        {"name": "Shirt", "price": 20.0},
        {"name": "Shirt", "price": 20.0, "brand": "Acme"},
        {"name": "Shirt", "price": 20.0, "brand": "Acme", "description": "Linen"},
    ]
    scores = [merge_bundles([EvidenceBundle(source="generic_selector", **f)], URL).confidence for f in fields]

    assert scores == sorted(scores)
    assert len(set(scores)) == len(scores)


def test_source_bonus_raises_confidence():
    plain = merge_bundles([EvidenceBundle(source="generic_selector", name="Shirt")], URL)
    structured = merge_bundles([EvidenceBundle(source="structured_data", name="Shirt")], URL)

    assert plain.confidence == 0.25
    assert structured.confidence > plain.confidence


def test_confidence_is_clamped():
    record = ProductRecord(
        url=URL,
        name="Shirt",
        price=10.0,
        brand="Acme",
        description="Linen",
        images=("https://cdn.example.com/a.jpg",),
        sources={f: "structured_data" for f in ("name", "price", "brand", "description", "images")},
    )
    assert calculate_confidence(record) == 1.0


def test_image_override_replaces_images_and_source():
    record = merge_bundles(
        [EvidenceBundle(source="meta_tags", name="Shirt", images=["https://cdn.example.com/a.jpg"])],
        URL,
    )

    updated = apply_image_override(record, ["https://cdn.example.com/1.jpg", "https://cdn.example.com/2.jpg"])

    assert updated.images == ("https://cdn.example.com/1.jpg", "https://cdn.example.com/2.jpg")
    assert updated.sources["images"] == "smart_images"
    assert record.sources["images"] == "meta_tags"
    assert apply_image_override(record, []) is record


def test_record_dict_round_trip_keeps_sources():
    record = merge_bundles(
        [EvidenceBundle(source="structured_data", name="Shirt", price=12.5, currency="EUR")],
        URL,
        strategy="direct",
    )

    data = record.to_dict()
    assert data["name_source"] == "structured_data"
    assert data["strategy"] == "direct"
    assert ProductRecord.from_dict(data) == record.with_updates(confidence=round(record.confidence, 4))
