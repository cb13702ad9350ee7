from decimal import Decimal

import pytest

from storefront_kb.models import LensOption, ProductRecord
from storefront_kb.validator import repair, validate, validate_and_repair, validate_lens_option


def test_valid_record_has_no_errors(make_record):
    report = validate(make_record())
    assert report.is_valid
    assert report.summary() == "Validation passed"


def test_empty_record_reports_every_missing_field():
    report = validate(ProductRecord())
    assert not report.is_valid
    assert "Product name is required" in report.errors
    assert "Product SKU is required" in report.errors
    assert "Product description is required" in report.errors
    assert "Product category is required" in report.errors
    assert "Default lens type is required" in report.errors
    assert "At least one supported lens type is required" in report.errors


@pytest.mark.parametrize(
    "field, empty, message",
    [
        ("name", "", "Product name is required"),
        ("sku", "   ", "Product SKU is required"),
        ("description", "", "Product description is required"),
        ("category", "", "Product category is required"),
        ("default_lens_type", "", "Default lens type is required"),
        ("supported_lenses", [], "At least one supported lens type is required"),
    ],
)
def test_each_missing_required_field_fails_validation(make_record, field, empty, message):
    report = validate(make_record(**{field: empty}))
    assert not report.is_valid
    assert message in report.errors


def test_negative_price_and_lens_errors_are_prefixed(make_record):
    record = make_record(
        price=Decimal("-1"),
        supported_lenses=[LensOption(lens_type="Amber", blue_light_protection="", price_modifier=Decimal("-5"))],
    )
    report = validate(record)
    assert "Product price cannot be negative" in report.errors
    assert "Lens 'Amber': Blue light protection percentage is required" in report.errors
    assert "Lens 'Amber': Price modifier cannot be negative" in report.errors


def test_default_lens_must_be_supported(make_record):
    report = validate(make_record(default_lens_type="Clear"))
    assert any("not among the supported lenses" in e for e in report.errors)


def test_unknown_lens_type_is_a_warning_only():
    report = validate_lens_option(LensOption(lens_type="Rose", blue_light_protection="40%"))
    assert report.is_valid
    assert len(report.warnings) == 1
    assert report.warnings[0].startswith("Unknown lens type 'Rose' (known: Amber, Clear, Dark Amber")
    assert report.issue_count == 1


def test_repair_fills_defaults():
    record = ProductRecord(supported_lenses=[LensOption(lens_type="Clear", blue_light_protection="35%")])
    repaired = repair(record)

    assert repaired is record
    assert record.name == "Gunnar Gaming Glasses"
    assert record.sku == "GUNNAR-GAMING-GLASSE"
    assert record.description == (
        "Gunnar Gaming Glasses - Gaming glasses designed to reduce eye strain "
        "and enhance visual performance."
    )
    assert record.category == "Gaming Glasses"
    assert record.default_lens_type == "Clear"
    assert validate(record).is_valid


def test_repair_is_idempotent():
    once = repair(ProductRecord(name="Vayper"))
    snapshot = once.model_dump()
    twice = repair(once)
    assert twice.model_dump() == snapshot
    assert once.sku == "VAYPER"


def test_validate_and_repair_returns_both_reports():
    record = ProductRecord(name="Siege", supported_lenses=[LensOption(lens_type="Amber", blue_light_protection="65%")])
    out, first, final = validate_and_repair(record)
    assert out is record
    assert not first.is_valid
    assert final.is_valid


def test_unrepairable_record_is_kept():
    out, first, final = validate_and_repair(ProductRecord(name="Bare"))
    assert out.name == "Bare"
    assert not final.is_valid
    assert "At least one supported lens type is required" in final.errors
