"""KùzuDB-backed approval queue."""

from __future__ import annotations

import logging

from ...domain.models import GraduationCandidate
from ..database import DatabaseConnection

logger = logging.getLogger(__name__)


class KuzuApprovalQueue:
    """Pending graduation approvals persisted in KùzuDB."""

    def __init__(self, db: DatabaseConnection) -> None:
        self._db = db

    def get(self, pattern_id: str) -> GraduationCandidate | None:
        rows = self._db.fetch_all(
            """
            MATCH (a:PendingApproval)
            WHERE a.pattern_id = $pattern_id
            RETURN a.payload
            """,
            parameters={"pattern_id": pattern_id},
        )
        if not rows:
            return None
        return GraduationCandidate.model_validate_json(rows[0][0])

    def put(self, candidate: GraduationCandidate) -> None:
        with self._db.write():
            self._db.execute(
                """
                MERGE (a:PendingApproval {pattern_id: $pattern_id})
                ON CREATE SET a.payload = $payload
                ON MATCH SET a.payload = $payload
                """,
                parameters={
                    "pattern_id": candidate.pattern_id,
                    "payload": candidate.model_dump_json(),
                },
            )
        logger.debug(f"Queued pattern {candidate.pattern_id} for approval")

    def remove(self, pattern_id: str) -> None:
        with self._db.write():
            self._db.execute(
                """
                MATCH (a:PendingApproval)
                WHERE a.pattern_id = $pattern_id
                DELETE a
                """,
                parameters={"pattern_id": pattern_id},
            )

    def all(self) -> list[GraduationCandidate]:
        rows = self._db.fetch_all(
            """
            MATCH (a:PendingApproval)
            RETURN a.payload
            ORDER BY a.pattern_id
            """
        )
        return [GraduationCandidate.model_validate_json(row[0]) for row in rows]

    def clear(self) -> None:
        with self._db.write():
            self._db.execute("MATCH (a:PendingApproval) DELETE a")
