from __future__ import annotations

"""
Validation and repair of extracted product records.

``validate`` only reports.  ``repair`` fills the gaps it can with safe
defaults and never raises.  ``validate_and_repair`` chains the two and is
what the crawler calls: a record that is still invalid after repair is
logged but kept, since partial product knowledge is better than none.
"""

from typing import List, Tuple

from loguru import logger

from .config import (
    DEFAULT_CATEGORY,
    DEFAULT_DESCRIPTION_TEMPLATE,
    DEFAULT_PRODUCT_NAME,
)
from .lens_types import DEFAULT_LENS_CATALOG, LensCatalog
from .models import LensOption, ProductRecord, ValidationReport
from .normalize import sku_from_name

MAX_LOGGED_ERRORS = 5


def validate_lens_option(lens: LensOption, catalog: LensCatalog = DEFAULT_LENS_CATALOG) -> ValidationReport:
    report = ValidationReport()
    if not lens.lens_type.strip():
        report.add_error("Lens type is required")
    elif lens.lens_type not in catalog:
        report.add_warning(
            f"Unknown lens type '{lens.lens_type}' (known: {', '.join(catalog.keys())})"
        )
    if not lens.blue_light_protection.strip():
        report.add_error("Blue light protection percentage is required")
    if lens.price_modifier < 0:
        report.add_error("Price modifier cannot be negative")
    return report


def validate(record: ProductRecord, catalog: LensCatalog = DEFAULT_LENS_CATALOG) -> ValidationReport:
    report = ValidationReport()

    if not record.name.strip():
        report.add_error("Product name is required")
    if not record.sku.strip():
        report.add_error("Product SKU is required")
    if not record.description.strip():
        report.add_error("Product description is required")
    if not record.category.strip():
        report.add_error("Product category is required")
    if record.price < 0:
        report.add_error("Product price cannot be negative")

    if not record.default_lens_type.strip():
        report.add_error("Default lens type is required")
    if not record.supported_lenses:
        report.add_error("At least one supported lens type is required")

    for lens in record.supported_lenses:
        lens_report = validate_lens_option(lens, catalog)
        prefix = f"Lens '{lens.lens_type}': "
        report.add_errors(prefix, lens_report.errors)
        for warning in lens_report.warnings:
            report.add_warning(prefix + warning)

    if record.default_lens_type and record.supported_lenses:
        supported = {lens.lens_type for lens in record.supported_lenses}
        if record.default_lens_type not in supported:
            report.add_error(
                f"Default lens type '{record.default_lens_type}' is not among the supported lenses"
            )

    return report


def repair(record: ProductRecord) -> ProductRecord:
    """Fill missing fields with defaults.  Mutates and returns ``record``."""
    if not record.name.strip():
        record.name = DEFAULT_PRODUCT_NAME
    if not record.sku.strip():
        record.sku = sku_from_name(record.name)
    if not record.description.strip():
        record.description = DEFAULT_DESCRIPTION_TEMPLATE.format(name=record.name)
    if not record.category.strip():
        record.category = DEFAULT_CATEGORY
    if not record.default_lens_type.strip() and record.supported_lenses:
        record.default_lens_type = record.supported_lenses[0].lens_type
    return record


def validate_and_repair(
    record: ProductRecord,
    catalog: LensCatalog = DEFAULT_LENS_CATALOG,
) -> Tuple[ProductRecord, ValidationReport, ValidationReport]:
    """validate -> repair -> revalidate.  Returns the record and both reports."""
    first = validate(record, catalog)
    if first.is_valid:
        return record, first, first

    shown: List[str] = first.errors[:MAX_LOGGED_ERRORS]
    logger.warning(
        "Product validation failed for {} ({} errors, {} issues): {}",
        record.source_url or record.sku or "<unknown>",
        len(first.errors),
        first.issue_count,
        "; ".join(shown),
    )

    repair(record)
    final = validate(record, catalog)
    if final.is_valid:
        logger.info("Product '{}' repaired and now valid", record.name)
    else:
        logger.warning(
            "Product '{}' still invalid after repair: {}",
            record.name,
            "; ".join(final.errors[:MAX_LOGGED_ERRORS]),
        )
    return record, first, final
