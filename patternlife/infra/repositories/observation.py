"""KùzuDB-backed observation store."""

from __future__ import annotations

import logging
from collections.abc import Collection
from typing import TYPE_CHECKING

from ...domain.models import Observation
from ..database import DatabaseConnection
from .base import embedding_text, rank_similar

if TYPE_CHECKING:
    from ...domain.protocols import Embedder

logger = logging.getLogger(__name__)


class KuzuObservationStore:
    """Observation store persisted in KùzuDB.

    Each record keeps the observation as a JSON payload plus its
    embedding. Similarity search loads the company's embeddings and
    ranks them with cosine similarity.
    """

    def __init__(self, db: DatabaseConnection, embedder: Embedder) -> None:
        self._db = db
        self._embedder = embedder

    def get(self, observation_id: str) -> Observation | None:
        rows = self._db.fetch_all(
            """
            MATCH (o:ObservationRecord)
            WHERE o.id = $id
            RETURN o.payload
            """,
            parameters={"id": observation_id},
        )
        if not rows:
            return None
        return Observation.model_validate_json(rows[0][0])

    def get_by_pattern(
        self, pattern_id: str, company: str | None = None
    ) -> list[Observation]:
        if company is None:
            rows = self._db.fetch_all(
                """
                MATCH (o:ObservationRecord)
                WHERE o.pattern_id = $pattern_id
                RETURN o.payload
                """,
                parameters={"pattern_id": pattern_id},
            )
        else:
            rows = self._db.fetch_all(
                """
                MATCH (o:ObservationRecord)
                WHERE o.pattern_id = $pattern_id AND o.company = $company
                RETURN o.payload
                """,
                parameters={"pattern_id": pattern_id, "company": company},
            )
        return [Observation.model_validate_json(row[0]) for row in rows]

    def persist(self, observation: Observation) -> None:
        text = embedding_text(observation)
        existing = self.get(observation.id)

        with self._db.write():
            if existing is not None and embedding_text(existing) == text:
                # Same text, e.g. a relink: keep the stored embedding
                self._db.execute(
                    """
                    MATCH (o:ObservationRecord)
                    WHERE o.id = $id
                    SET o.company = $company, o.pattern_id = $pattern_id, o.payload = $payload
                    """,
                    parameters=self._params(observation),
                )
                return

            params = self._params(observation)
            params["embedding"] = [float(x) for x in self._embedder.embed(text)]
            self._db.execute(
                """
                MERGE (o:ObservationRecord {id: $id})
                ON CREATE SET o.company = $company, o.pattern_id = $pattern_id,
                              o.payload = $payload, o.embedding = $embedding
                ON MATCH SET o.company = $company, o.pattern_id = $pattern_id,
                             o.payload = $payload, o.embedding = $embedding
                """,
                parameters=params,
            )
        logger.debug(f"Stored observation {observation.id}")

    @staticmethod
    def _params(observation: Observation) -> dict:
        return {
            "id": observation.id,
            "company": observation.company,
            "pattern_id": observation.pattern_id,
            "payload": observation.model_dump_json(),
        }

    def find_similar(
        self,
        text: str,
        company: str,
        limit: int = 10,
        pattern_ids: Collection[str] | None = None,
    ) -> list[tuple[Observation, float]]:
        query = self._embedder.embed(text)
        if pattern_ids is None:
            rows = self._db.fetch_all(
                """
                MATCH (o:ObservationRecord)
                WHERE o.company = $company
                RETURN o.payload, o.embedding
                """,
                parameters={"company": company},
            )
        else:
            rows = self._db.fetch_all(
                """
                MATCH (o:ObservationRecord)
                WHERE o.company = $company AND o.pattern_id IN $pattern_ids
                RETURN o.payload, o.embedding
                """,
                parameters={"company": company, "pattern_ids": sorted(pattern_ids)},
            )
        candidates = [
            (Observation.model_validate_json(payload), embedding)
            for payload, embedding in rows
            if embedding
        ]
        return rank_similar(query, candidates, limit)

    def companies(self) -> list[str]:
        rows = self._db.fetch_all(
            """
            MATCH (o:ObservationRecord)
            RETURN DISTINCT o.company AS company
            ORDER BY company
            """
        )
        return [row[0] for row in rows]
