from datetime import datetime, timezone
from decimal import Decimal

from storefront_kb.compose import build_metadata, build_search_text, compose, format_price
from storefront_kb.models import LensOption, ProductRecord


def test_search_text_scenario():
    record = ProductRecord(name="Model A", description="Desc.", category="Cat", features=["F1", "F2"])
    text = build_search_text(record)
    assert text.startswith("Model A. Desc.. Category: Cat. Features: F1, F2")
    assert text.endswith("Price: $0")


def test_search_text_includes_lenses_frame_and_tags():
    record = ProductRecord(
        name="Intercept",
        description="Everyday.",
        collection="Overwatch",
        frame_type="Full Frame",
        frame_color="Onyx",
        tags=["Gaming", "Esports"],
        price=Decimal("129.99"),
        supported_lenses=[
            LensOption(
                lens_type="Amber",
                blue_light_protection="65%",
                description="Warm tint",
                recommended_uses=["Gaming", "Night"],
                benefits=["Contrast"],
            )
        ],
    )
    text = build_search_text(record)
    assert "Collection: Overwatch" in text
    assert (
        "Available lens options: Amber lenses (65% blue light protection): Warm tint. "
        "Best for: Gaming, Night. Benefits: Contrast"
    ) in text
    assert "Frame: Full Frame frame in Onyx color" in text
    assert "Tags: Gaming, Esports" in text
    assert text.endswith("Price: $129.99")


def test_format_price():
    assert format_price(Decimal("0")) == "0"
    assert format_price(Decimal("0.00")) == "0"
    assert format_price(Decimal("129.99")) == "129.99"
    assert format_price(Decimal("130.00")) == "130"


def test_metadata_values_are_strings(make_record):
    record = make_record(
        features=[f"F{i}" for i in range(12)],
        tags=["Gaming"],
        last_updated=datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc),
    )
    metadata = build_metadata(record)

    assert all(isinstance(v, str) for v in metadata.values())
    assert metadata["product_name"] == "Intercept"
    assert metadata["price"] == "69.99"
    assert metadata["is_available"] == "True"
    assert metadata["last_updated"] == "2026-03-01T12:00:00+00:00"
    assert metadata["features_count"] == "12"
    assert metadata["features"] == ", ".join(f"F{i}" for i in range(10))
    assert metadata["supported_lenses"] == "Amber"
    assert metadata["blue_light_protections"] == "65%"
    assert metadata["tags"] == "Gaming"


def test_metadata_omits_empty_optional_lists():
    metadata = build_metadata(ProductRecord(name="Bare"))
    for key in ("supported_lenses", "blue_light_protections", "tags", "features"):
        assert key not in metadata
    assert metadata["lens_options_count"] == "0"


def test_compose_returns_text_and_metadata(make_record):
    text, metadata = compose(make_record())
    assert text.startswith("Intercept. Everyday gaming glasses.")
    assert metadata["sku"] == "INT-00101"
