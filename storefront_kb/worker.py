from __future__ import annotations

"""
Background worker that keeps the product index fresh.

``CrawlScheduler`` is a small synchronous state machine:

    STARTING -> VALIDATING -> INITIAL_CRAWL -> IDLE <-> PERIODIC_CRAWL
    (any state) -> SHUTTING_DOWN once stop_event is set

Every wait goes through ``stop_event.wait`` so setting the event stops
the loop promptly, and the clock is injected so tests can advance time
without sleeping.  Nothing that goes wrong inside a crawl is fatal: it is
logged, the loop backs off and tries again on the next tick.
"""

import threading
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Optional

from loguru import logger

from .config import SchedulerSettings
from .crawler import ProductCrawler
from .indexer import ProductIndexer
from .models import utcnow


class WorkerState(str, Enum):
    STARTING = "starting"
    VALIDATING = "validating"
    INITIAL_CRAWL = "initial_crawl"
    IDLE = "idle"
    PERIODIC_CRAWL = "periodic_crawl"
    SHUTTING_DOWN = "shutting_down"


class CrawlScheduler:
    def __init__(
        self,
        crawler: ProductCrawler,
        indexer: ProductIndexer,
        settings: Optional[SchedulerSettings] = None,
        clock: Callable[[], datetime] = utcnow,
        stop_event: Optional[threading.Event] = None,
        embedding_probe: Optional[Callable[[], bool]] = None,
    ):
        self.crawler = crawler
        self.indexer = indexer
        self.settings = settings or SchedulerSettings()
        self._clock = clock
        self.stop_event = stop_event or threading.Event()
        self.crawler.attach_stop_event(self.stop_event)
        self._embedding_probe = embedding_probe
        self.state = WorkerState.STARTING
        self.last_crawl: Optional[datetime] = None

    @property
    def crawl_interval(self) -> timedelta:
        return timedelta(seconds=self.settings.crawl_interval_seconds)

    def _set_state(self, state: WorkerState) -> None:
        if state != self.state:
            logger.debug("Worker state {} -> {}", self.state.value, state.value)
        self.state = state

    def _stopping(self) -> bool:
        return self.stop_event.is_set()

    def stop(self) -> None:
        self.stop_event.set()

    # ---------------------------
    # Phases
    # ---------------------------

    def validate_services(self) -> None:
        """Check crawler, embeddings and vector store.  Failures are logged only."""
        self._set_state(WorkerState.VALIDATING)
        logger.info("Validating services")
        try:
            if not self.crawler.validate_configuration():
                logger.warning("Crawler configuration check failed; crawls may not succeed")
        except Exception:
            logger.exception("Crawler configuration check raised")

        if self._embedding_probe is not None:
            try:
                if not self._embedding_probe():
                    logger.warning("Embedding service is not available; indexing will fail")
            except Exception:
                logger.exception("Embedding availability check raised")

        try:
            self.indexer.ensure_collection()
        except Exception:
            logger.exception("Vector store initialization failed")

    def _index(self, records) -> int:
        count = self.indexer.index_products(records, should_stop=self._stopping)
        logger.info("Indexed {} products", count)
        return count

    def initial_crawl(self) -> None:
        if self._stopping():
            return
        self._set_state(WorkerState.INITIAL_CRAWL)
        logger.info("Starting initial crawl")
        try:
            records = self.crawler.crawl_all()
            logger.info("Initial crawl found {} products", len(records))
            self._index(records)
            self.last_crawl = self._clock()
        except Exception:
            logger.exception("Initial crawl failed")

    def periodic_crawl(self) -> None:
        """
        Incremental crawl since ``last_crawl``; a failed incremental run
        falls back to a full crawl.  ``last_crawl`` moves forward either way.
        """
        if self._stopping():
            return
        self._set_state(WorkerState.PERIODIC_CRAWL)
        logger.info("Starting periodic crawl (last crawl: {})", self.last_crawl)
        try:
            outcome = self.crawler.incremental(self.last_crawl)
            if outcome.success:
                logger.info(
                    "Incremental crawl succeeded: {} updated, {} unchanged",
                    outcome.succeeded,
                    outcome.skipped,
                )
                self._index(outcome.records)
            else:
                logger.warning(
                    "Incremental crawl failed ({} errors); falling back to full crawl",
                    outcome.error_count,
                )
                if self._stopping():
                    return
                records = self.crawler.crawl_all()
                self._index(records)
        finally:
            self.last_crawl = self._clock()
            if self.state == WorkerState.PERIODIC_CRAWL:
                self._set_state(WorkerState.IDLE)

    def crawl_due(self) -> bool:
        if self.last_crawl is None:
            return True
        return self._clock() - self.last_crawl >= self.crawl_interval

    def tick(self) -> None:
        """One idle evaluation: run a periodic crawl when the interval has elapsed."""
        self._set_state(WorkerState.IDLE)
        if self.crawl_due():
            self.periodic_crawl()

    # ---------------------------
    # Main loop
    # ---------------------------

    def run(self) -> None:
        """Block until ``stop_event`` is set."""
        self._set_state(WorkerState.STARTING)
        logger.info("Worker starting (warm-up {}s)", self.settings.warmup_seconds)
        if self.stop_event.wait(self.settings.warmup_seconds):
            self._set_state(WorkerState.SHUTTING_DOWN)
            return

        self.validate_services()
        self.initial_crawl()

        while not self._stopping():
            self._set_state(WorkerState.IDLE)
            if self.stop_event.wait(self.settings.tick_seconds):
                break
            try:
                self.tick()
            except Exception:
                logger.exception(
                    "Worker loop error; backing off {}s", self.settings.error_backoff_seconds
                )
                if self.stop_event.wait(self.settings.error_backoff_seconds):
                    break

        self._set_state(WorkerState.SHUTTING_DOWN)
        logger.info("Worker stopped")
