"""In-memory pattern registry and observation store.

Both stores are guarded by a lock and copy values on the way in and on
the way out, so callers can never mutate a stored record in place.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Collection
from typing import TYPE_CHECKING

from ...domain.models import GraduationCandidate, Observation, Pattern
from .base import embedding_text, rank_similar

if TYPE_CHECKING:
    from ...domain.protocols import Embedder

logger = logging.getLogger(__name__)


class InMemoryPatternRegistry:
    """Keyed pattern store held in process memory."""

    def __init__(self) -> None:
        self._patterns: dict[str, Pattern] = {}
        self._lock = threading.Lock()

    def get(self, pattern_id: str) -> Pattern | None:
        with self._lock:
            pattern = self._patterns.get(pattern_id)
            return pattern.model_copy(deep=True) if pattern is not None else None

    def put(self, pattern: Pattern) -> None:
        with self._lock:
            self._patterns[pattern.id] = pattern.model_copy(deep=True)

    def all(self) -> list[Pattern]:
        with self._lock:
            return [p.model_copy(deep=True) for p in self._patterns.values()]

    def __len__(self) -> int:
        with self._lock:
            return len(self._patterns)


class InMemoryObservationStore:
    """Keyed observation store with embedding-based similarity search."""

    def __init__(self, embedder: Embedder) -> None:
        self._embedder = embedder
        self._observations: dict[str, Observation] = {}
        self._embeddings: dict[str, list[float]] = {}
        self._texts: dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, observation_id: str) -> Observation | None:
        with self._lock:
            observation = self._observations.get(observation_id)
            return observation.model_copy(deep=True) if observation else None

    def get_by_pattern(
        self, pattern_id: str, company: str | None = None
    ) -> list[Observation]:
        with self._lock:
            return [
                o.model_copy(deep=True)
                for o in self._observations.values()
                if o.pattern_id == pattern_id and (company is None or o.company == company)
            ]

    def persist(self, observation: Observation) -> None:
        text = embedding_text(observation)
        with self._lock:
            cached = self._texts.get(observation.id) == text
        # Embed outside the lock; relinking an observation keeps its text
        embedding = None if cached else self._embedder.embed(text)

        with self._lock:
            self._observations[observation.id] = observation.model_copy(deep=True)
            if embedding is not None:
                self._embeddings[observation.id] = embedding
                self._texts[observation.id] = text

    def find_similar(
        self,
        text: str,
        company: str,
        limit: int = 10,
        pattern_ids: Collection[str] | None = None,
    ) -> list[tuple[Observation, float]]:
        query = self._embedder.embed(text)
        with self._lock:
            candidates = [
                (o.model_copy(deep=True), self._embeddings[o.id])
                for o in self._observations.values()
                if o.company == company
                and o.id in self._embeddings
                and (pattern_ids is None or o.pattern_id in pattern_ids)
            ]
        return rank_similar(query, candidates, limit)

    def companies(self) -> list[str]:
        with self._lock:
            return sorted({o.company for o in self._observations.values()})

    def __len__(self) -> int:
        with self._lock:
            return len(self._observations)


class InMemoryApprovalQueue:
    """Approval queue held in process memory."""

    def __init__(self) -> None:
        self._pending: dict[str, GraduationCandidate] = {}
        self._lock = threading.Lock()

    def get(self, pattern_id: str) -> GraduationCandidate | None:
        with self._lock:
            candidate = self._pending.get(pattern_id)
            return candidate.model_copy(deep=True) if candidate else None

    def put(self, candidate: GraduationCandidate) -> None:
        with self._lock:
            self._pending[candidate.pattern_id] = candidate.model_copy(deep=True)

    def remove(self, pattern_id: str) -> None:
        with self._lock:
            self._pending.pop(pattern_id, None)

    def all(self) -> list[GraduationCandidate]:
        with self._lock:
            return [c.model_copy(deep=True) for c in self._pending.values()]

    def clear(self) -> None:
        with self._lock:
            self._pending.clear()
