"""Embedding engine for patternlife using fastembed."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING

import numpy as np

if TYPE_CHECKING:
    from fastembed import TextEmbedding

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "sentence-transformers/all-MiniLM-L6-v2"


def compute_similarity(embedding1: Sequence[float], embedding2: Sequence[float]) -> float:
    """Compute cosine similarity between two embeddings.

    Returns 0.0 when either vector is all zeros or the dimensions differ.
    """
    vec1 = np.asarray(embedding1, dtype=float)
    vec2 = np.asarray(embedding2, dtype=float)
    if vec1.shape != vec2.shape:
        return 0.0

    norm1 = np.linalg.norm(vec1)
    norm2 = np.linalg.norm(vec2)
    if norm1 == 0 or norm2 == 0:
        return 0.0

    return float(np.dot(vec1, vec2) / (norm1 * norm2))


def rank_by_similarity(
    query: Sequence[float], candidates: Sequence[Sequence[float]]
) -> list[float]:
    """Cosine similarity of ``query`` against each candidate, in order."""
    if not candidates:
        return []
    return [compute_similarity(query, candidate) for candidate in candidates]


class EmbeddingEngine:
    """Handles text embedding using fastembed.

    Uses lazy loading to avoid slow startup times.
    """

    def __init__(self, model_name: str | None = None) -> None:
        """Initialize the embedding engine.

        Args:
            model_name: Name of the embedding model.
        """
        self._model: TextEmbedding | None = None
        self._model_name = model_name or DEFAULT_MODEL
        self._dimension: int | None = None

    @property
    def model(self) -> TextEmbedding:
        """Get the embedding model, loading it lazily if needed."""
        if self._model is None:
            logger.info(f"Loading embedding model: {self._model_name}")
            from fastembed import TextEmbedding

            self._model = TextEmbedding(model_name=self._model_name)
            logger.info("Embedding model loaded successfully")
        return self._model

    @property
    def dimension(self) -> int:
        """Get the embedding dimension for the current model."""
        if self._dimension is None:
            self._dimension = len(self.embed("test"))
            logger.debug(f"Embedding dimension: {self._dimension}")
        return self._dimension

    def embed(self, text: str) -> list[float]:
        """Embed a single text string."""
        embeddings = list(self.model.embed([text]))
        return embeddings[0].tolist()

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Embed multiple texts."""
        embeddings = list(self.model.embed(texts))
        return [emb.tolist() for emb in embeddings]
