from __future__ import annotations

"""
Dense text embeddings for the product index.

The indexer only depends on the ``EmbeddingGenerator`` protocol: anything
with ``embed(text) -> list[float]`` will do.  Production uses
``SentenceTransformerEmbedder`` over BAAI/bge-base-en-v1.5 (768 dims);
tests pass a deterministic stub.
"""

import os
import threading
from typing import List, Optional, Protocol

import numpy as np
from loguru import logger
from sentence_transformers import SentenceTransformer

from .config import EMBEDDING_MODEL, HF_ENV_VARS, VECTOR_SIZE
from .errors import EmbeddingUnavailableError


class EmbeddingGenerator(Protocol):
    def embed(self, text: str) -> List[float]:
        ...


def _ensure_hf_env() -> None:
    """
    Set HuggingFace cache hints unless the environment already has them,
    so a user's own configuration always wins.
    """
    for key, val in HF_ENV_VARS.items():
        if key not in os.environ:
            os.environ[key] = val


class SentenceTransformerEmbedder:
    """Lazily loaded sentence-transformers encoder with L2-normalised output."""

    def __init__(self, model_name: str = EMBEDDING_MODEL, dimension: int = VECTOR_SIZE):
        self.model_name = model_name
        self.dimension = dimension
        self._model: Optional[SentenceTransformer] = None
        self._lock = threading.Lock()

    def _load(self) -> SentenceTransformer:
        with self._lock:
            if self._model is not None:
                return self._model
            _ensure_hf_env()
            logger.info("Loading embedding model: {}", self.model_name)
            try:
                model = SentenceTransformer(self.model_name)
            except Exception as e:
                raise EmbeddingUnavailableError(
                    f"Failed to load embedding model '{self.model_name}': {e}"
                ) from e
            dim = model.get_sentence_embedding_dimension()
            if dim is not None and dim != self.dimension:
                raise EmbeddingUnavailableError(
                    f"Model '{self.model_name}' produces {dim}-dim vectors, expected {self.dimension}"
                )
            self._model = model
            return model

    def embed(self, text: str) -> List[float]:
        model = self._load()
        vec = model.encode([text], convert_to_numpy=True, normalize_embeddings=True)[0]
        return np.asarray(vec, dtype="float32").tolist()

    def is_available(self) -> bool:
        """Load the model and embed a short probe text; ``False`` on any failure."""
        try:
            vec = self.embed("test embedding")
        except Exception as e:
            logger.error("Embedding service unavailable: {}", e)
            return False
        logger.info("Embedding service available ({} dimensions)", len(vec))
        return len(vec) == self.dimension
