import threading
from datetime import datetime, timezone

import httpx

from storefront_kb.config import CrawlerSettings
from storefront_kb.crawler import ProductCrawler
from storefront_kb.models import CrawlType
from storefront_kb.worker import CrawlScheduler

GOOD = "https://gunnar.com/collections/shop-all/products/overwatch-ultimate"
OTHER = "https://gunnar.com/products/test-product-x"
MISSING = "https://gunnar.com/products/gone"

OLD = "Mon, 05 Jan 2026 10:00:00 GMT"
NEW = "Tue, 10 Feb 2026 10:00:00 GMT"


def _site(product_html, last_modified=None):
    last_modified = last_modified or {}

    def handler(request):
        url = str(request.url)
        if url == MISSING:
            return httpx.Response(404, text="not found")
        headers = {}
        if url in last_modified:
            headers["Last-Modified"] = last_modified[url]
        if url == OTHER:
            body = "<html><body><h1>Test Product</h1></body></html>"
            return httpx.Response(200, text=body, headers=headers)
        return httpx.Response(200, text=product_html, headers=headers)

    return handler


def _crawler(make_fetcher, handler, urls, sleeps=None):
    settings = CrawlerSettings(request_delay_ms=1500, max_retries=0, target_urls=urls)
    wait = sleeps.append if sleeps is not None else (lambda s: None)
    return ProductCrawler(settings, fetcher=make_fetcher(handler, settings), wait=wait)


def test_crawl_one_returns_validated_record(make_fetcher, product_html):
    crawler = _crawler(make_fetcher, _site(product_html), [GOOD])
    record = crawler.crawl_one(GOOD)

    assert record is not None
    assert record.sku == "OWU-00101"
    assert crawler.stats.pages_succeeded == 1
    assert crawler.stats.products_validated == 1


def test_crawl_one_repairs_sparse_page(make_fetcher, product_html):
    crawler = _crawler(make_fetcher, _site(product_html), [OTHER])
    record = crawler.crawl_one(OTHER)

    assert record.sku == "TESTPRODUCTX"
    assert record.category == "Gaming Glasses"
    assert record.description.startswith("Test Product - Gaming glasses")
    assert crawler.stats.products_repaired == 1


def test_crawl_one_failure_yields_none(make_fetcher, product_html):
    crawler = _crawler(make_fetcher, _site(product_html), [MISSING])
    assert crawler.crawl_one(MISSING) is None
    assert crawler.stats.pages_failed == 1


def test_crawl_all_continues_past_failures(make_fetcher, product_html):
    sleeps = []
    crawler = _crawler(make_fetcher, _site(product_html), [GOOD, MISSING, OTHER], sleeps)
    outcome = crawler.crawl_all_outcome()

    assert outcome.crawl_type == CrawlType.FULL
    assert outcome.attempted == 3
    assert outcome.succeeded == 2
    assert outcome.failed_urls == [MISSING]
    assert outcome.errors[0].status_code == 404
    assert outcome.success
    assert sleeps == [1.5, 1.5, 1.5]
    assert outcome.duration >= 0.0
    assert [r.sku for r in crawler.crawl_all()] == ["OWU-00101", "TESTPRODUCTX"]


def test_incremental_skips_unmodified_pages(make_fetcher, product_html):
    handler = _site(product_html, {GOOD: OLD, OTHER: NEW})
    crawler = _crawler(make_fetcher, handler, [GOOD, OTHER])
    outcome = crawler.incremental(datetime(2026, 2, 1, tzinfo=timezone.utc))

    assert outcome.success
    assert outcome.crawl_type == CrawlType.INCREMENTAL
    assert outcome.skipped == 1
    assert [r.sku for r in outcome.records] == ["TESTPRODUCTX"]


def test_incremental_without_since_walks_everything(make_fetcher, product_html):
    handler = _site(product_html, {GOOD: OLD})
    crawler = _crawler(make_fetcher, handler, [GOOD, OTHER])
    outcome = crawler.incremental(None)
    assert outcome.succeeded == 2
    assert outcome.skipped == 0


def test_incremental_reports_failure_when_any_page_fails(make_fetcher, product_html):
    crawler = _crawler(make_fetcher, _site(product_html), [GOOD, MISSING])
    outcome = crawler.incremental(None)
    assert not outcome.success
    assert outcome.succeeded == 1


def test_incremental_with_no_targets_is_not_success(make_fetcher, product_html):
    crawler = _crawler(make_fetcher, _site(product_html), [])
    assert not crawler.incremental(None).success


def test_validate_configuration(make_fetcher, product_html):
    ok = _crawler(make_fetcher, _site(product_html), [GOOD])
    assert ok.validate_configuration()

    down = _crawler(make_fetcher, lambda r: httpx.Response(503), [GOOD])
    assert not down.validate_configuration()

    # reachable but odd content is only a warning
    odd = _crawler(make_fetcher, lambda r: httpx.Response(200, text="plain text"), [GOOD])
    assert odd.validate_configuration()


def test_stop_during_crawl_ends_the_walk(make_fetcher, product_html):
    urls = [f"https://gunnar.com/products/frame-{i}" for i in range(5)]
    stop = threading.Event()
    calls = []

    def handler(request):
        calls.append(str(request.url))
        stop.set()
        return httpx.Response(200, text=product_html)

    settings = CrawlerSettings(request_delay_ms=1500, max_retries=0, target_urls=urls)
    crawler = ProductCrawler(settings, fetcher=make_fetcher(handler, settings), stop_event=stop)
    outcome = crawler.crawl_all_outcome()

    assert calls == urls[:1]
    assert outcome.attempted == 1


def test_scheduler_stop_reaches_the_crawler(make_fetcher, product_html, indexer, clock):
    urls = [f"https://gunnar.com/products/frame-{i}" for i in range(5)]
    stop = threading.Event()
    calls = []

    def handler(request):
        calls.append(str(request.url))
        stop.set()
        return httpx.Response(200, text=product_html)

    # real inter-request delay: the stop event has to cut it short
    settings = CrawlerSettings(request_delay_ms=1500, max_retries=0, target_urls=urls)
    crawler = ProductCrawler(settings, fetcher=make_fetcher(handler, settings))
    scheduler = CrawlScheduler(crawler, indexer, clock=clock, stop_event=stop)
    scheduler.initial_crawl()

    assert len(calls) == 1
    assert crawler.stop_event is stop
    assert crawler.fetcher.stop_event is stop
    assert indexer.collection_info()["points_count"] == 0
