from __future__ import annotations

"""
Build the searchable text and the flat metadata payload for a product.

The text is what gets embedded, so it reads as prose: name and
description first, then category, features, lens options, frame and
tags, and always the price last.  Metadata values are all strings so the
payload stays uniform regardless of the vector store's typing.
"""

from decimal import Decimal
from typing import Dict, List, Tuple

from .config import METADATA_MAX_FEATURES
from .models import LensOption, ProductRecord


def format_price(price: Decimal) -> str:
    """``0`` for zero, otherwise a plain decimal such as ``129.99``."""
    if price == 0:
        return "0"
    return format(price.normalize(), "f")


def _lens_sentence(lens: LensOption) -> str:
    return (
        f"{lens.lens_type} lenses ({lens.blue_light_protection} blue light protection): "
        f"{lens.description}. "
        f"Best for: {', '.join(lens.recommended_uses)}. "
        f"Benefits: {', '.join(lens.benefits)}"
    )


def build_search_text(record: ProductRecord) -> str:
    parts: List[str] = [f"{record.name}. {record.description}"]
    if record.category:
        parts.append(f"Category: {record.category}")
    if record.collection:
        parts.append(f"Collection: {record.collection}")
    if record.features:
        parts.append(f"Features: {', '.join(record.features)}")
    if record.supported_lenses:
        lenses = ". ".join(_lens_sentence(lens) for lens in record.supported_lenses)
        parts.append(f"Available lens options: {lenses}")
    if record.frame_type or record.frame_color:
        parts.append(f"Frame: {record.frame_type} frame in {record.frame_color} color")
    if record.tags:
        parts.append(f"Tags: {', '.join(record.tags)}")
    parts.append(f"Price: ${format_price(record.price)}")
    return ". ".join(p for p in parts if p)


def build_metadata(record: ProductRecord) -> Dict[str, str]:
    metadata: Dict[str, str] = {
        "product_name": record.name,
        "sku": record.sku,
        "category": record.category,
        "collection": record.collection,
        "frame_color": record.frame_color,
        "default_lens_type": record.default_lens_type,
        "price": format_price(record.price),
        "is_available": str(record.is_available),
        "source_url": record.source_url,
        "last_updated": record.last_updated.isoformat(),
        "features_count": str(len(record.features)),
        "lens_options_count": str(len(record.supported_lenses)),
        "images_count": str(len(record.images)),
        "tags_count": str(len(record.tags)),
    }
    if record.supported_lenses:
        metadata["supported_lenses"] = ", ".join(l.lens_type for l in record.supported_lenses)
        metadata["blue_light_protections"] = ", ".join(
            l.blue_light_protection for l in record.supported_lenses
        )
    if record.tags:
        metadata["tags"] = ", ".join(record.tags)
    if record.features:
        metadata["features"] = ", ".join(record.features[:METADATA_MAX_FEATURES])
    return metadata


def compose(record: ProductRecord) -> Tuple[str, Dict[str, str]]:
    return build_search_text(record), build_metadata(record)
