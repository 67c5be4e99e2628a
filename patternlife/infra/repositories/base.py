"""Shared helpers for repository implementations."""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from ...domain.models import Observation
from ..embeddings import compute_similarity


def embedding_text(observation: Observation) -> str:
    """Text an observation is embedded from: its input plus any feedback."""
    if observation.feedback:
        return f"{observation.input}. {observation.feedback}"
    return observation.input


def rank_similar(
    query: Sequence[float],
    candidates: Iterable[tuple[Observation, Sequence[float]]],
    limit: int,
) -> list[tuple[Observation, float]]:
    """Rank observations by cosine similarity to ``query``, best first.

    Ties are broken by (timestamp, id) so results are reproducible.
    """
    scored = [
        (observation, compute_similarity(query, embedding))
        for observation, embedding in candidates
    ]
    scored.sort(key=lambda item: (item[0].timestamp, item[0].id))
    scored.sort(key=lambda item: item[1], reverse=True)
    return scored[:limit]
