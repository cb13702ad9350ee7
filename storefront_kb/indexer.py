from __future__ import annotations

"""
Qdrant-backed product index.

One point per product key (the SKU).  The point id is derived from the
key deterministically, so re-indexing a product overwrites its previous
point instead of adding a duplicate.  Indexing is all-or-nothing per
record: if embedding or the upsert fails an ``IndexingError`` is raised
and nothing is written for that record.
"""

import hashlib
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional
from urllib.parse import urlparse

from loguru import logger
from qdrant_client import QdrantClient
from qdrant_client.http.models import Distance, PointStruct, VectorParams

from .compose import compose
from .config import DEFAULT_SCORE_THRESHOLD, DEFAULT_SEARCH_LIMIT, IndexSettings
from .embedding import EmbeddingGenerator
from .errors import IndexingError
from .models import ProductRecord, utcnow


def identifier_for(key: str) -> str:
    """
    Deterministic UUID string for ``key``: the first 16 bytes of its SHA-256
    digest, laid out little-endian in the first three groups so the ids
    match points already written by earlier deployments.
    """
    digest = hashlib.sha256(key.encode("utf-8")).digest()
    return str(uuid.UUID(bytes_le=digest[:16]))


def build_qdrant_client(settings: IndexSettings) -> QdrantClient:
    """QdrantClient for ``settings.qdrant_url``; ``:memory:`` gives an in-process store."""
    if settings.qdrant_url == ":memory:":
        return QdrantClient(":memory:")
    parsed = urlparse(settings.qdrant_url)
    if parsed.scheme == "https":
        return QdrantClient(
            host=parsed.hostname,
            port=parsed.port or 443,
            https=True,
            api_key=settings.qdrant_api_key,
        )
    return QdrantClient(url=settings.qdrant_url, api_key=settings.qdrant_api_key)


@dataclass
class SearchHit:
    id: str
    score: float
    payload: Dict[str, Any]


class ProductIndexer:
    def __init__(
        self,
        client: QdrantClient,
        embedder: EmbeddingGenerator,
        settings: Optional[IndexSettings] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.client = client
        self.embedder = embedder
        self.settings = settings or IndexSettings()
        self._clock = clock

    identifier_for = staticmethod(identifier_for)

    @property
    def collection_name(self) -> str:
        return self.settings.collection_name

    def ensure_collection(self) -> None:
        """Create the collection if it does not exist yet.  Safe to call repeatedly."""
        try:
            existing = [c.name for c in self.client.get_collections().collections]
            if self.collection_name in existing:
                logger.debug("Collection '{}' already exists", self.collection_name)
                return
            logger.info(
                "Creating collection '{}' ({} dims, cosine)",
                self.collection_name,
                self.settings.vector_size,
            )
            self.client.create_collection(
                collection_name=self.collection_name,
                vectors_config=VectorParams(size=self.settings.vector_size, distance=Distance.COSINE),
            )
        except Exception as e:
            raise IndexingError(f"Failed to initialize collection '{self.collection_name}': {e}") from e

    def index_record(self, key: str, text: str, metadata: Optional[Dict[str, Any]] = None) -> str:
        """Embed ``text`` and upsert it under the id derived from ``key``.  Returns the point id."""
        point_id = identifier_for(key)
        try:
            vector = self.embedder.embed(text)
        except Exception as e:
            raise IndexingError(f"Failed to embed content for '{key}': {e}") from e
        if len(vector) != self.settings.vector_size:
            raise IndexingError(
                f"Embedding for '{key}' has {len(vector)} dims, expected {self.settings.vector_size}"
            )

        payload: Dict[str, Any] = dict(metadata or {})
        payload["product_text"] = text
        payload["product_id"] = key
        payload["indexed_at"] = self._clock().isoformat()

        try:
            self.client.upsert(
                collection_name=self.collection_name,
                points=[PointStruct(id=point_id, vector=list(vector), payload=payload)],
                wait=True,
            )
        except Exception as e:
            raise IndexingError(f"Failed to upsert point for '{key}': {e}") from e
        logger.debug("Indexed '{}' as point {} ({} payload fields)", key, point_id, len(payload))
        return point_id

    def index_product(self, record: ProductRecord) -> str:
        text, metadata = compose(record)
        point_id = self.index_record(record.sku, text, metadata)
        logger.info("Indexed product '{}' (SKU: {})", record.name, record.sku)
        return point_id

    def index_products(
        self,
        records: Iterable[ProductRecord],
        should_stop: Optional[Callable[[], bool]] = None,
    ) -> int:
        """
        Index records one by one.  Stops early (returning the count so far)
        when ``should_stop`` returns true; the first indexing failure
        propagates and points already written stay in place.
        """
        count = 0
        for record in records:
            if should_stop is not None and should_stop():
                logger.info("Indexing cancelled after {} products", count)
                break
            self.index_product(record)
            count += 1
        return count

    def search(
        self,
        query: str,
        limit: int = DEFAULT_SEARCH_LIMIT,
        score_threshold: float = DEFAULT_SCORE_THRESHOLD,
    ) -> List[SearchHit]:
        try:
            vector = self.embedder.embed(query)
            response = self.client.query_points(
                collection_name=self.collection_name,
                query=list(vector),
                limit=limit,
                score_threshold=score_threshold,
                with_payload=True,
            )
        except Exception as e:
            raise IndexingError(f"Search failed for query '{query}': {e}") from e
        hits = [
            SearchHit(id=str(p.id), score=float(p.score), payload=dict(p.payload or {}))
            for p in response.points
        ]
        logger.info("Search '{}' returned {} results", query, len(hits))
        return hits

    def collection_info(self) -> Dict[str, Any]:
        try:
            info = self.client.get_collection(self.collection_name)
        except Exception as e:
            raise IndexingError(f"Failed to read collection '{self.collection_name}': {e}") from e
        return {
            "name": self.collection_name,
            "status": str(info.status),
            "points_count": info.points_count or 0,
        }

    def clear_collection(self) -> None:
        """Drop every point by deleting the collection and creating it again."""
        logger.warning("Clearing collection '{}'", self.collection_name)
        try:
            self.client.delete_collection(self.collection_name)
        except Exception as e:
            raise IndexingError(f"Failed to delete collection '{self.collection_name}': {e}") from e
        self.ensure_collection()
