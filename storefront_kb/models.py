from __future__ import annotations

"""
Data model shared by the crawler, validator, composer and indexer.

Records are plain pydantic models with permissive defaults; missing or
inconsistent values are reported and repaired by the validator.
"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LensOption(BaseModel):
    """One lens variant a frame can be ordered with."""

    lens_type: str = ""
    # Kept as text: the storefront mixes fixed values ("65%") and ranges ("85-98%").
    blue_light_protection: str = ""
    price_modifier: Decimal = Decimal("0")
    is_available: bool = True
    description: str = ""
    benefits: List[str] = Field(default_factory=list)
    recommended_uses: List[str] = Field(default_factory=list)
    color_enhancement: str = ""
    uv_protection: str = ""
    tint_options: List[str] = Field(default_factory=list)


class ProductRecord(BaseModel):
    """One product variant as extracted from a single product page."""

    name: str = ""
    sku: str = ""
    source_url: str = ""

    shopify_product_id: str = ""
    shopify_gid: str = ""
    vendor: str = ""
    variant_ids: List[str] = Field(default_factory=list)
    variant_skus: List[str] = Field(default_factory=list)
    selected_variant_id: str = ""

    description: str = ""
    features: List[str] = Field(default_factory=list)
    category: str = ""
    collection: str = ""
    frame_type: str = ""
    frame_color: str = ""
    fit_guide: str = ""

    price: Decimal = Decimal("0")
    is_available: bool = True
    images: List[str] = Field(default_factory=list)

    default_lens_type: str = ""
    supported_lenses: List[LensOption] = Field(default_factory=list)

    specifications: Dict[str, str] = Field(default_factory=dict)
    tags: List[str] = Field(default_factory=list)

    last_updated: datetime = Field(default_factory=utcnow)


class ValidationReport(BaseModel):
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    @property
    def issue_count(self) -> int:
        return len(self.errors) + len(self.warnings)

    def add_error(self, message: str) -> None:
        self.errors.append(message)

    def add_errors(self, prefix: str, errors: List[str]) -> None:
        self.errors.extend(prefix + e for e in errors)

    def add_warning(self, message: str) -> None:
        self.warnings.append(message)

    def summary(self) -> str:
        lines: List[str] = []
        if self.errors:
            lines.append(f"Errors ({len(self.errors)}):")
            lines.extend(f"  - {e}" for e in self.errors)
        if self.warnings:
            lines.append(f"Warnings ({len(self.warnings)}):")
            lines.extend(f"  - {w}" for w in self.warnings)
        return "\n".join(lines) if lines else "Validation passed"


class ErrorSeverity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class CrawlType(str, Enum):
    FULL = "full"
    INCREMENTAL = "incremental"


class CrawlError(BaseModel):
    url: str
    message: str
    status_code: Optional[int] = None
    severity: ErrorSeverity = ErrorSeverity.WARNING
    timestamp: datetime = Field(default_factory=utcnow)


class CrawlOutcome(BaseModel):
    """Summary of one crawl run.  Not persisted."""

    success: bool = False
    crawl_type: CrawlType = CrawlType.FULL
    started_at: datetime = Field(default_factory=utcnow)
    finished_at: Optional[datetime] = None
    attempted: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    errors: List[CrawlError] = Field(default_factory=list)
    successful_urls: List[str] = Field(default_factory=list)
    failed_urls: List[str] = Field(default_factory=list)
    records: List[ProductRecord] = Field(default_factory=list)

    @property
    def duration(self) -> float:
        if self.finished_at is None:
            return 0.0
        return (self.finished_at - self.started_at).total_seconds()

    @property
    def error_count(self) -> int:
        return len(self.errors)

    def record_success(self, url: str, record: ProductRecord) -> None:
        self.succeeded += 1
        self.successful_urls.append(url)
        self.records.append(record)

    def record_failure(
        self,
        url: str,
        message: str,
        status_code: Optional[int] = None,
        severity: ErrorSeverity = ErrorSeverity.WARNING,
    ) -> None:
        self.failed += 1
        self.failed_urls.append(url)
        self.errors.append(
            CrawlError(url=url, message=message, status_code=status_code, severity=severity)
        )
