import hashlib
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path
from typing import Callable, Dict, List

import httpx
import numpy as np
import pytest
from qdrant_client import QdrantClient

from storefront_kb.config import CrawlerSettings, IndexSettings
from storefront_kb.fetcher import PageFetcher
from storefront_kb.indexer import ProductIndexer
from storefront_kb.models import LensOption, ProductRecord

FIXTURES = Path(__file__).parent / "fixtures"
PRODUCT_URL = "https://gunnar.com/collections/shop-all/products/overwatch-ultimate"


class StubEmbedder:
    """Deterministic unit vectors seeded from the text hash."""

    def __init__(self, dimension: int = 768):
        self.dimension = dimension
        self.calls: List[str] = []

    def embed(self, text: str) -> List[float]:
        self.calls.append(text)
        seed = int.from_bytes(hashlib.sha256(text.encode("utf-8")).digest()[:8], "big")
        vec = np.random.default_rng(seed).standard_normal(self.dimension)
        vec = vec / np.linalg.norm(vec)
        return vec.astype("float32").tolist()


class FailingEmbedder:
    def embed(self, text: str) -> List[float]:
        raise RuntimeError("model offline")


class FakeClock:
    def __init__(self, start: datetime = datetime(2026, 1, 1, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def product_html() -> str:
    return (FIXTURES / "product_page.html").read_text(encoding="utf-8")


@pytest.fixture
def crawler_settings() -> CrawlerSettings:
    return CrawlerSettings(
        request_delay_ms=0,
        max_retries=2,
        retry_backoff_seconds=0.0,
        target_urls=[PRODUCT_URL],
    )


@pytest.fixture
def make_fetcher(crawler_settings) -> Callable[..., PageFetcher]:
    """Build a PageFetcher whose client is served by ``handler``."""

    def _make(handler: Callable[[httpx.Request], httpx.Response], settings=None, **options) -> PageFetcher:
        client = httpx.Client(transport=httpx.MockTransport(handler))
        options.setdefault("wait", lambda s: None)
        return PageFetcher(settings or crawler_settings, client=client, **options)

    return _make


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def embedder() -> StubEmbedder:
    return StubEmbedder()


@pytest.fixture
def indexer(embedder, clock) -> ProductIndexer:
    settings = IndexSettings(qdrant_url=":memory:", collection_name="test-products")
    ix = ProductIndexer(QdrantClient(":memory:"), embedder, settings, clock=clock)
    ix.ensure_collection()
    return ix


@pytest.fixture
def make_record() -> Callable[..., ProductRecord]:
    def _make(**overrides) -> ProductRecord:
        fields: Dict = dict(
            name="Intercept",
            sku="INT-00101",
            source_url="https://gunnar.com/products/intercept",
            description="Everyday gaming glasses.",
            category="Gaming Glasses",
            price=Decimal("69.99"),
            default_lens_type="Amber",
            supported_lenses=[
                LensOption(
                    lens_type="Amber",
                    blue_light_protection="65%",
                    description="Amber tint",
                    benefits=["Enhanced Contrast"],
                    recommended_uses=["Gaming"],
                )
            ],
        )
        fields.update(overrides)
        return ProductRecord(**fields)

    return _make


@pytest.fixture
def failing_indexer(clock) -> ProductIndexer:
    settings = IndexSettings(qdrant_url=":memory:", collection_name="test-products")
    ix = ProductIndexer(QdrantClient(":memory:"), FailingEmbedder(), settings, clock=clock)
    ix.ensure_collection()
    return ix
