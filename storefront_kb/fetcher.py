from __future__ import annotations

"""
HTTP fetching for storefront product pages.

``PageFetcher.fetch`` performs one GET with a bounded number of retries
and never raises for network or HTTP problems.  Instead it returns a
``FetchResult`` that says whether content is usable, why it is not, and
how trustworthy it looks:

* Hard failures (``timeout``, ``transport_error``, ``http_error``,
  ``empty_content``, ``too_large``) leave ``content`` unset.
* Soft quality flags (``suspicious_small``, ``not_html``) keep the
  content and are only logged, so a slightly odd page still reaches the
  extractor.
* Timeouts, transport errors, 429 and 5xx responses are retried with
  exponential backoff and jitter; other 4xx responses are not.  Backoff
  waits on ``stop_event`` so a shutdown request ends the retries.
"""

import random
import threading
import time
from dataclasses import dataclass
from datetime import datetime
from email.utils import parsedate_to_datetime
from enum import Enum
from typing import Callable, Optional

import httpx
from loguru import logger

from .config import HTTP_DEFAULT_HEADERS, HTTP_MAX_REDIRECTS, MIN_EXPECTED_PAGE_CHARS, CrawlerSettings

JITTER_FACTOR = 0.5


class FetchFailure(str, Enum):
    TIMEOUT = "timeout"
    TRANSPORT_ERROR = "transport_error"
    HTTP_ERROR = "http_error"
    EMPTY_CONTENT = "empty_content"
    TOO_LARGE = "too_large"


class ContentQuality(str, Enum):
    VALID = "valid"
    SUSPICIOUS_SMALL = "suspicious_small"
    NOT_HTML = "not_html"


RETRYABLE_FAILURES = {FetchFailure.TIMEOUT, FetchFailure.TRANSPORT_ERROR}


@dataclass
class FetchResult:
    url: str
    ok: bool
    content: Optional[str] = None
    status_code: Optional[int] = None
    failure: Optional[FetchFailure] = None
    message: str = ""
    quality: ContentQuality = ContentQuality.VALID
    last_modified: Optional[datetime] = None
    attempts: int = 1
    elapsed_ms: float = 0.0

    @property
    def retryable(self) -> bool:
        if self.ok:
            return False
        if self.failure in RETRYABLE_FAILURES:
            return True
        return self.failure == FetchFailure.HTTP_ERROR and (
            self.status_code == 429 or (self.status_code or 0) >= 500
        )


def build_http_client(settings: CrawlerSettings) -> httpx.Client:
    """
    Construct a configured HTTP client for crawling pages.

    ``trust_env=False`` keeps httpx from picking up proxy variables such as
    ALL_PROXY, which would otherwise require optional socks support.
    """
    headers = {"User-Agent": settings.user_agent, **HTTP_DEFAULT_HEADERS}
    return httpx.Client(
        headers=headers,
        follow_redirects=True,
        timeout=httpx.Timeout(settings.timeout_seconds),
        max_redirects=HTTP_MAX_REDIRECTS,
        trust_env=False,
    )


def classify_content(content: str) -> ContentQuality:
    if len(content) < MIN_EXPECTED_PAGE_CHARS:
        return ContentQuality.SUSPICIOUS_SMALL
    if "<html" not in content.lower():
        return ContentQuality.NOT_HTML
    return ContentQuality.VALID


def _parse_last_modified(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return parsedate_to_datetime(value)
    except (TypeError, ValueError):
        logger.debug("Unparseable Last-Modified header: {}", value)
        return None


class PageFetcher:
    """Rate-limit-friendly page fetcher around a shared ``httpx.Client``."""

    def __init__(
        self,
        settings: Optional[CrawlerSettings] = None,
        client: Optional[httpx.Client] = None,
        stop_event: Optional[threading.Event] = None,
        wait: Optional[Callable[[float], object]] = None,
    ):
        self.settings = settings or CrawlerSettings()
        self._owns_client = client is None
        self.client = client if client is not None else build_http_client(self.settings)
        self.stop_event = stop_event or threading.Event()
        # optional replacement for the backoff wait; stop_event still ends retries
        self._wait = wait

    def __enter__(self) -> "PageFetcher":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_client:
            self.client.close()

    def _pause(self, seconds: float) -> bool:
        """Wait up to ``seconds``; returns True when a stop was requested."""
        if self._wait is not None:
            self._wait(seconds)
        else:
            self.stop_event.wait(seconds)
        return self.stop_event.is_set()

    def _backoff_delay(self, attempt: int) -> float:
        ideal = self.settings.retry_backoff_seconds * (2 ** attempt)
        return ideal * random.uniform(1.0 - JITTER_FACTOR, 1.0 + JITTER_FACTOR)

    def fetch(self, url: str) -> FetchResult:
        """
        Fetch ``url`` honouring ``max_retries`` for retryable failures.

        The returned result carries the number of attempts made.  The
        caller decides what a failure means for the enclosing batch.
        """
        attempts_allowed = self.settings.max_retries + 1
        result = self._fetch_once(url)
        attempt = 1
        while result.retryable and attempt < attempts_allowed:
            delay = self._backoff_delay(attempt - 1)
            logger.warning(
                "Fetch {} failed ({}, status={}); retry {}/{} in {:.1f}s",
                url,
                result.failure.value if result.failure else "unknown",
                result.status_code,
                attempt,
                self.settings.max_retries,
                delay,
            )
            if self._pause(delay):
                logger.info("Stop requested; abandoning retries for {}", url)
                break
            result = self._fetch_once(url)
            attempt += 1
        result.attempts = attempt
        return result

    def probe(self, url: str) -> FetchResult:
        """Single attempt, no retries.  Used for connectivity checks."""
        return self._fetch_once(url)

    def _fetch_once(self, url: str) -> FetchResult:
        logger.debug("GET {}", url)
        started = time.monotonic()
        try:
            r = self.client.get(url)
        except httpx.TimeoutException:
            elapsed = (time.monotonic() - started) * 1000
            logger.error(
                "Request timed out for {} after {:.0f}ms (configured timeout: {}s)",
                url,
                elapsed,
                self.settings.timeout_seconds,
            )
            return FetchResult(
                url=url,
                ok=False,
                failure=FetchFailure.TIMEOUT,
                message="request timed out",
                elapsed_ms=elapsed,
            )
        except httpx.HTTPError as e:
            elapsed = (time.monotonic() - started) * 1000
            logger.error("HTTP request failed for {} after {:.0f}ms: {}", url, elapsed, e)
            return FetchResult(
                url=url,
                ok=False,
                failure=FetchFailure.TRANSPORT_ERROR,
                message=str(e),
                elapsed_ms=elapsed,
            )

        elapsed = (time.monotonic() - started) * 1000
        logger.debug(
            "Response {} for {}: {} bytes, content-type={}, {:.0f}ms",
            r.status_code,
            url,
            len(r.content),
            r.headers.get("content-type", "unknown"),
            elapsed,
        )

        if r.status_code >= 400:
            logger.warning("HTTP {} for {}", r.status_code, url)
            return FetchResult(
                url=url,
                ok=False,
                status_code=r.status_code,
                failure=FetchFailure.HTTP_ERROR,
                message=f"HTTP {r.status_code}",
                elapsed_ms=elapsed,
            )

        if len(r.content) > self.settings.max_bytes:
            logger.warning(
                "Page too large ({} bytes > {} limit) for {}",
                len(r.content),
                self.settings.max_bytes,
                url,
            )
            return FetchResult(
                url=url,
                ok=False,
                status_code=r.status_code,
                failure=FetchFailure.TOO_LARGE,
                message=f"{len(r.content)} bytes exceeds limit",
                elapsed_ms=elapsed,
            )

        content = r.text
        if not content or not content.strip():
            logger.warning("Received empty or whitespace-only content from {}", url)
            return FetchResult(
                url=url,
                ok=False,
                status_code=r.status_code,
                failure=FetchFailure.EMPTY_CONTENT,
                message="empty content",
                elapsed_ms=elapsed,
            )

        quality = classify_content(content)
        if quality == ContentQuality.SUSPICIOUS_SMALL:
            logger.warning("Suspiciously small content ({} chars) received from {}", len(content), url)
        elif quality == ContentQuality.NOT_HTML:
            logger.warning("Content does not appear to be HTML (missing <html tag) from {}", url)

        return FetchResult(
            url=url,
            ok=True,
            content=content,
            status_code=r.status_code,
            quality=quality,
            last_modified=_parse_last_modified(r.headers.get("last-modified")),
            elapsed_ms=elapsed,
        )
