"""Collaborator interfaces consumed by the lifecycle engine.

The engine only depends on these protocols. In-memory and KùzuDB
implementations live in ``patternlife.infra.repositories``.
"""

from __future__ import annotations

from collections.abc import Collection
from typing import Protocol

from .models import GraduationCandidate, Observation, Pattern


class PatternRegistry(Protocol):
    """Keyed store of patterns.

    Implementations return copies; mutating a returned pattern never
    changes the stored record.
    """

    def get(self, pattern_id: str) -> Pattern | None: ...

    def put(self, pattern: Pattern) -> None: ...

    def all(self) -> list[Pattern]: ...


class ObservationStore(Protocol):
    """Keyed store of observations with similarity search."""

    def get(self, observation_id: str) -> Observation | None: ...

    def get_by_pattern(
        self, pattern_id: str, company: str | None = None
    ) -> list[Observation]: ...

    def persist(self, observation: Observation) -> None: ...

    def find_similar(
        self,
        text: str,
        company: str,
        limit: int = 10,
        pattern_ids: Collection[str] | None = None,
    ) -> list[tuple[Observation, float]]:
        """Return observations of ``company`` ranked by cosine similarity.

        When ``pattern_ids`` is given, only observations attributed to one
        of those ids are ranked; the limit applies after that filter.
        """
        ...

    def companies(self) -> list[str]: ...


class ApprovalQueue(Protocol):
    """Patterns waiting for an admin to approve their next graduation.

    Kept in storage so a queue filled by one process (e.g. a detached
    sweeper) is visible to another (the server).
    """

    def get(self, pattern_id: str) -> GraduationCandidate | None: ...

    def put(self, candidate: GraduationCandidate) -> None: ...

    def remove(self, pattern_id: str) -> None: ...

    def all(self) -> list[GraduationCandidate]: ...

    def clear(self) -> None: ...


class Embedder(Protocol):
    """Turns text into a vector."""

    def embed(self, text: str) -> list[float]: ...


class PatternCreatedSink(Protocol):
    """Notified once per pattern minted by the clustering engine."""

    def __call__(self, pattern: Pattern) -> None: ...
