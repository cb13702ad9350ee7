from __future__ import annotations
"""
Configuration for the storefront product knowledge base.

Deploy-time values can be overridden through environment variables; every
other module reads its defaults from here rather than hardcoding them.
"""

import os
from pathlib import Path
from typing import Dict, List

from pydantic import BaseModel, Field

# Paths
PROJECT_ROOT = Path(__file__).resolve().parents[1]
LOG_DIR = PROJECT_ROOT / "logs"
MODELS_DIR = PROJECT_ROOT / "models"

# Storefront
STOREFRONT_BASE_URL = os.getenv("STOREFRONT_BASE_URL", "https://gunnar.com")
STOREFRONT_BRAND_KEYWORD = "gunnar"

# The storefront exposes one product family at the moment; more product
# pages are added here as they are confirmed to follow the same layout.
TARGET_PRODUCT_URLS: List[str] = [
    "https://gunnar.com/collections/shop-all/products/overwatch-ultimate",
]

# HTTP hardening
HTTP_USER_AGENT = os.getenv("STOREFRONT_USER_AGENT", "Gunnar-ChatBot-DataCollector/1.0")
HTTP_TIMEOUT_SECONDS = float(os.getenv("STOREFRONT_TIMEOUT_SECONDS", "30"))
HTTP_MAX_RETRIES = int(os.getenv("STOREFRONT_MAX_RETRIES", "3"))
HTTP_RETRY_BACKOFF_SECONDS = 1.0
HTTP_MAX_REDIRECTS = 5
HTTP_MAX_BYTES = 5_000_000
HTTP_DEFAULT_HEADERS: Dict[str, str] = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
    "Cache-Control": "no-cache",
}

# Pages shorter than this are still used but flagged as suspicious
MIN_EXPECTED_PAGE_CHARS = 1000

# Respectful crawling: pause between product requests
REQUEST_DELAY_MS = int(os.getenv("STOREFRONT_REQUEST_DELAY_MS", "1500"))

# Vector store
QDRANT_URL = os.getenv("QDRANT_URL", "http://localhost:6333")
QDRANT_API_KEY = os.getenv("QDRANT_API_KEY") or None
COLLECTION_NAME = os.getenv("QDRANT_COLLECTION", "gunnar-products")
VECTOR_SIZE = 768
DEFAULT_SEARCH_LIMIT = 5
DEFAULT_SCORE_THRESHOLD = 0.7

# Embeddings
EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "BAAI/bge-base-en-v1.5")

HF_ENV_VARS = {
    "TRANSFORMERS_CACHE": str(MODELS_DIR),
    "HF_HUB_OFFLINE": os.getenv("HF_HUB_OFFLINE", "0"),
}

# Metadata limits
METADATA_MAX_FEATURES = 10

# Scheduler timings (seconds)
CRAWL_INTERVAL_SECONDS = float(os.getenv("CRAWL_INTERVAL_HOURS", "6")) * 3600
IDLE_TICK_SECONDS = 5 * 60
ERROR_BACKOFF_SECONDS = 60
WARMUP_SECONDS = 5

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_ROTATION = "10 MB"
LOG_RETENTION = "14 days"

# Repair defaults
DEFAULT_PRODUCT_NAME = "Gunnar Gaming Glasses"
DEFAULT_CATEGORY = "Gaming Glasses"
DEFAULT_DESCRIPTION_TEMPLATE = (
    "{name} - Gaming glasses designed to reduce eye strain and enhance visual performance."
)
SKU_MAX_LENGTH = 20


# Pydantic settings objects
class CrawlerSettings(BaseModel):
    base_url: str = STOREFRONT_BASE_URL
    user_agent: str = HTTP_USER_AGENT
    request_delay_ms: int = Field(default=REQUEST_DELAY_MS, ge=0)
    timeout_seconds: float = Field(default=HTTP_TIMEOUT_SECONDS, gt=0)
    max_retries: int = Field(default=HTTP_MAX_RETRIES, ge=0)
    retry_backoff_seconds: float = Field(default=HTTP_RETRY_BACKOFF_SECONDS, ge=0)
    max_bytes: int = Field(default=HTTP_MAX_BYTES, gt=0)
    brand_keyword: str = STOREFRONT_BRAND_KEYWORD
    target_urls: List[str] = Field(default_factory=lambda: list(TARGET_PRODUCT_URLS))

    @classmethod
    def from_env(cls) -> "CrawlerSettings":
        return cls(
            base_url=os.getenv("STOREFRONT_BASE_URL", STOREFRONT_BASE_URL),
            user_agent=os.getenv("STOREFRONT_USER_AGENT", HTTP_USER_AGENT),
            request_delay_ms=int(os.getenv("STOREFRONT_REQUEST_DELAY_MS", str(REQUEST_DELAY_MS))),
            timeout_seconds=float(os.getenv("STOREFRONT_TIMEOUT_SECONDS", str(HTTP_TIMEOUT_SECONDS))),
            max_retries=int(os.getenv("STOREFRONT_MAX_RETRIES", str(HTTP_MAX_RETRIES))),
        )


class IndexSettings(BaseModel):
    qdrant_url: str = QDRANT_URL
    qdrant_api_key: str | None = QDRANT_API_KEY
    collection_name: str = COLLECTION_NAME
    vector_size: int = Field(default=VECTOR_SIZE, gt=0)
    embedding_model: str = EMBEDDING_MODEL

    @classmethod
    def from_env(cls) -> "IndexSettings":
        return cls(
            qdrant_url=os.getenv("QDRANT_URL", QDRANT_URL),
            qdrant_api_key=os.getenv("QDRANT_API_KEY") or None,
            collection_name=os.getenv("QDRANT_COLLECTION", COLLECTION_NAME),
            embedding_model=os.getenv("EMBEDDING_MODEL", EMBEDDING_MODEL),
        )


class SchedulerSettings(BaseModel):
    crawl_interval_seconds: float = Field(default=CRAWL_INTERVAL_SECONDS, gt=0)
    tick_seconds: float = Field(default=IDLE_TICK_SECONDS, gt=0)
    error_backoff_seconds: float = Field(default=ERROR_BACKOFF_SECONDS, ge=0)
    warmup_seconds: float = Field(default=WARMUP_SECONDS, ge=0)

    @classmethod
    def from_env(cls) -> "SchedulerSettings":
        hours = float(os.getenv("CRAWL_INTERVAL_HOURS", str(CRAWL_INTERVAL_SECONDS / 3600)))
        return cls(crawl_interval_seconds=hours * 3600)
