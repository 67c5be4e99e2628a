"""Infrastructure layer - Storage, embeddings and locking."""

from .database import DatabaseConnection
from .embeddings import EmbeddingEngine
from .locks import KeyedLock

__all__ = [
    "DatabaseConnection",
    "EmbeddingEngine",
    "KeyedLock",
]
