from __future__ import annotations

"""
Crawler for storefront product pages.

``ProductCrawler`` walks the configured target URLs one at a time and
turns each page into a validated ``ProductRecord``:

    fetch -> extract -> validate / repair / revalidate -> record

A URL that cannot be fetched or parsed is logged and counted as failed;
the walk always continues with the next URL.  Validation never drops a
record: whatever cannot be repaired is only logged.

Setting ``stop_event`` ends a walk before the next URL and cuts short the
inter-request delay.

``incremental`` does the same walk but skips pages whose
``Last-Modified`` header is not newer than the previous crawl.  It
reports failure whenever any page failed, so the scheduler can fall back
to a full crawl.
"""

import threading
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Callable, List, Optional, Sequence

from loguru import logger

from .config import CrawlerSettings
from .extractor import ProductExtractor
from .fetcher import ContentQuality, FetchResult, PageFetcher
from .lens_types import DEFAULT_LENS_CATALOG, LensCatalog
from .models import CrawlOutcome, CrawlType, ErrorSeverity, ProductRecord, utcnow
from .validator import validate_and_repair


@dataclass
class CrawlStats:
    pages_requested: int = 0
    pages_succeeded: int = 0
    pages_failed: int = 0
    products_extracted: int = 0
    products_validated: int = 0
    products_repaired: int = 0
    products_failed: int = 0

    def as_dict(self) -> dict:
        return asdict(self)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class ProductCrawler:
    def __init__(
        self,
        settings: Optional[CrawlerSettings] = None,
        fetcher: Optional[PageFetcher] = None,
        extractor: Optional[ProductExtractor] = None,
        catalog: LensCatalog = DEFAULT_LENS_CATALOG,
        target_urls: Optional[Sequence[str]] = None,
        stop_event: Optional[threading.Event] = None,
        wait: Optional[Callable[[float], object]] = None,
    ):
        self.settings = settings or CrawlerSettings()
        self.fetcher = fetcher or PageFetcher(self.settings)
        self.stop_event = self.fetcher.stop_event
        if stop_event is not None:
            self.attach_stop_event(stop_event)
        self.catalog = catalog
        self.extractor = extractor or ProductExtractor(catalog=catalog, base_url=self.settings.base_url)
        self._wait = wait
        self.target_urls: List[str] = list(
            target_urls if target_urls is not None else self.settings.target_urls
        )
        self.stats = CrawlStats()

    def close(self) -> None:
        self.fetcher.close()

    def attach_stop_event(self, stop_event: threading.Event) -> None:
        """Share ``stop_event`` with the fetcher so one signal stops both."""
        self.stop_event = stop_event
        self.fetcher.stop_event = stop_event

    def stop_requested(self) -> bool:
        return self.stop_event.is_set()

    # ---------------------------
    # Single page
    # ---------------------------

    def _delay(self) -> None:
        if self.settings.request_delay_ms <= 0 or self.stop_requested():
            return
        seconds = self.settings.request_delay_ms / 1000.0
        if self._wait is not None:
            self._wait(seconds)
        else:
            self.stop_event.wait(seconds)

    def _fetch(self, url: str) -> FetchResult:
        self.stats.pages_requested += 1
        fetched = self.fetcher.fetch(url)
        if fetched.ok:
            self.stats.pages_succeeded += 1
        else:
            self.stats.pages_failed += 1
            logger.warning("Failed to fetch {}: {}", url, fetched.message)
        return fetched

    def _process(self, url: str, fetched: FetchResult) -> Optional[ProductRecord]:
        record = self.extractor.extract(fetched.content or "", url)
        if record is None:
            self.stats.products_failed += 1
            logger.warning("Failed to extract product data from {}", url)
            return None
        self.stats.products_extracted += 1

        record, first, final = validate_and_repair(record, self.catalog)
        if first.is_valid:
            self.stats.products_validated += 1
        elif final.is_valid:
            self.stats.products_repaired += 1
        for warning in final.warnings:
            logger.debug("Validation warning for {}: {}", record.sku, warning)
        return record

    def _crawl_url(self, url: str, outcome: CrawlOutcome, since: Optional[datetime] = None) -> None:
        outcome.attempted += 1
        try:
            fetched = self._fetch(url)
            if not fetched.ok:
                outcome.record_failure(url, fetched.message, fetched.status_code)
                return
            if since is not None and fetched.last_modified is not None:
                if _as_utc(fetched.last_modified) <= _as_utc(since):
                    logger.info(
                        "Skipping {} (not modified since {})", url, _as_utc(since).isoformat()
                    )
                    outcome.skipped += 1
                    return
            record = self._process(url, fetched)
            if record is None:
                outcome.record_failure(url, "no product data extracted", fetched.status_code)
                return
            outcome.record_success(url, record)
        except Exception as e:
            logger.exception("Unexpected error crawling {}", url)
            outcome.record_failure(url, str(e), severity=ErrorSeverity.ERROR)
        finally:
            self._delay()

    def crawl_one(self, url: str) -> Optional[ProductRecord]:
        """Fetch, extract and validate a single product page.  ``None`` on failure."""
        outcome = CrawlOutcome(crawl_type=CrawlType.FULL)
        self._crawl_url(url, outcome)
        return outcome.records[0] if outcome.records else None

    # ---------------------------
    # Batches
    # ---------------------------

    def _walk(self, crawl_type: CrawlType, since: Optional[datetime] = None) -> CrawlOutcome:
        outcome = CrawlOutcome(crawl_type=crawl_type)
        logger.info(
            "Starting {} crawl of {} product pages", crawl_type.value, len(self.target_urls)
        )
        for url in self.target_urls:
            if self.stop_requested():
                logger.info(
                    "Stop requested; ending {} crawl after {} of {} pages",
                    crawl_type.value,
                    outcome.attempted,
                    len(self.target_urls),
                )
                break
            self._crawl_url(url, outcome, since)
        outcome.finished_at = utcnow()

        rate = (outcome.succeeded / outcome.attempted * 100.0) if outcome.attempted else 0.0
        logger.info(
            "{} crawl finished in {:.1f}s: {} succeeded, {} failed, {} skipped ({:.1f}% success)",
            crawl_type.value.capitalize(),
            outcome.duration,
            outcome.succeeded,
            outcome.failed,
            outcome.skipped,
            rate,
        )
        logger.debug("Crawler stats: {}", self.stats.as_dict())
        return outcome

    def crawl_all_outcome(self) -> CrawlOutcome:
        outcome = self._walk(CrawlType.FULL)
        outcome.success = outcome.attempted > 0 and outcome.failed < outcome.attempted
        return outcome

    def crawl_all(self) -> List[ProductRecord]:
        return self.crawl_all_outcome().records

    def incremental(self, since: Optional[datetime]) -> CrawlOutcome:
        """
        Re-crawl pages modified after ``since``.  ``since=None`` walks every
        page.  ``success`` is false when any page failed or nothing was
        attempted.
        """
        outcome = self._walk(CrawlType.INCREMENTAL, since)
        outcome.success = outcome.attempted > 0 and outcome.failed == 0
        return outcome

    # ---------------------------
    # Configuration check
    # ---------------------------

    def _configuration_warnings(self, probe: FetchResult) -> List[str]:
        warnings: List[str] = []
        content = probe.content or ""
        if not content.strip():
            warnings.append("base URL returned no content")
        else:
            if probe.quality == ContentQuality.NOT_HTML:
                warnings.append("base URL content does not look like HTML")
            if self.settings.brand_keyword.lower() not in content.lower():
                warnings.append(
                    f"base URL content does not mention '{self.settings.brand_keyword}'"
                )
        if not self.fetcher.client.headers.get("user-agent"):
            warnings.append("HTTP client has no User-Agent header")
        timeout = self.fetcher.client.timeout.read
        if timeout is not None and timeout != self.settings.timeout_seconds:
            warnings.append(
                f"HTTP client read timeout {timeout}s differs from configured {self.settings.timeout_seconds}s"
            )
        return warnings

    def validate_configuration(self) -> bool:
        """
        Probe the storefront once.  Returns whether it was reachable;
        content and client oddities are logged as warnings only.
        """
        logger.info(
            "Crawler configuration: base_url={}, user_agent={}, delay={}ms, timeout={}s, retries={}, targets={}",
            self.settings.base_url,
            self.settings.user_agent,
            self.settings.request_delay_ms,
            self.settings.timeout_seconds,
            self.settings.max_retries,
            len(self.target_urls),
        )
        probe = self.fetcher.probe(self.settings.base_url)
        if not probe.ok:
            logger.error(
                "Connectivity check failed for {}: {}", self.settings.base_url, probe.message
            )
            return False

        for warning in self._configuration_warnings(probe):
            logger.warning("Configuration check: {}", warning)
        logger.info(
            "Connectivity check passed for {} (HTTP {}, {:.0f}ms)",
            self.settings.base_url,
            probe.status_code,
            probe.elapsed_ms,
        )
        return True

