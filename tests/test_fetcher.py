import threading
from datetime import datetime, timezone

import httpx

from storefront_kb.config import CrawlerSettings
from storefront_kb.fetcher import ContentQuality, FetchFailure, PageFetcher, classify_content

URL = "https://gunnar.com/products/intercept"


def test_fetch_ok_with_last_modified(make_fetcher, product_html):
    def handler(request):
        return httpx.Response(
            200,
            text=product_html,
            headers={"Last-Modified": "Wed, 21 Oct 2026 07:28:00 GMT"},
        )

    result = make_fetcher(handler).fetch(URL)
    assert result.ok
    assert result.status_code == 200
    assert result.quality == ContentQuality.VALID
    assert result.last_modified == datetime(2026, 10, 21, 7, 28, tzinfo=timezone.utc)
    assert result.attempts == 1


def test_client_error_is_not_retried(make_fetcher):
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(404, text="not found")

    result = make_fetcher(handler).fetch(URL)
    assert not result.ok
    assert result.failure == FetchFailure.HTTP_ERROR
    assert result.status_code == 404
    assert len(calls) == 1


def test_server_errors_retry_until_success(make_fetcher, product_html):
    responses = iter([503, 500, 200])

    def handler(request):
        code = next(responses)
        return httpx.Response(code, text=product_html if code == 200 else "oops")

    result = make_fetcher(handler).fetch(URL)
    assert result.ok
    assert result.attempts == 3


def test_retries_are_bounded(make_fetcher):
    calls = []

    def handler(request):
        calls.append(request)
        raise httpx.ConnectError("refused", request=request)

    result = make_fetcher(handler).fetch(URL)
    assert not result.ok
    assert result.failure == FetchFailure.TRANSPORT_ERROR
    # max_retries=2 in the fixture settings
    assert len(calls) == 3
    assert result.attempts == 3


def test_timeout_is_reported(make_fetcher):
    def handler(request):
        raise httpx.ReadTimeout("slow", request=request)

    result = make_fetcher(handler).fetch(URL)
    assert result.failure == FetchFailure.TIMEOUT


def test_empty_body_is_a_failure(make_fetcher):
    result = make_fetcher(lambda r: httpx.Response(200, text="  \n")).fetch(URL)
    assert not result.ok
    assert result.failure == FetchFailure.EMPTY_CONTENT


def test_oversized_body_is_rejected(make_fetcher):
    settings = CrawlerSettings(max_bytes=100, max_retries=0, request_delay_ms=0)
    result = make_fetcher(lambda r: httpx.Response(200, text="x" * 500), settings).fetch(URL)
    assert result.failure == FetchFailure.TOO_LARGE


def test_small_page_is_kept_but_flagged(make_fetcher):
    result = make_fetcher(lambda r: httpx.Response(200, text="<html>tiny</html>")).fetch(URL)
    assert result.ok
    assert result.quality == ContentQuality.SUSPICIOUS_SMALL
    assert result.content == "<html>tiny</html>"


def test_classify_content():
    assert classify_content("x" * 2000) == ContentQuality.NOT_HTML
    assert classify_content("<html>" + "x" * 2000) == ContentQuality.VALID


def test_probe_makes_a_single_attempt(make_fetcher):
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(502)

    result = make_fetcher(handler).probe(URL)
    assert not result.ok
    assert len(calls) == 1


def test_stop_abandons_pending_retries(make_fetcher):
    stop = threading.Event()
    calls = []

    def handler(request):
        calls.append(request)
        stop.set()
        return httpx.Response(503)

    fetcher = make_fetcher(handler, stop_event=stop, wait=None)
    result = fetcher.fetch(URL)
    assert not result.ok
    assert result.status_code == 503
    assert len(calls) == 1
    assert result.attempts == 1


def test_external_client_is_not_closed(crawler_settings):
    client = httpx.Client(transport=httpx.MockTransport(lambda r: httpx.Response(200, text="ok")))
    with PageFetcher(crawler_settings, client=client):
        pass
    assert not client.is_closed
