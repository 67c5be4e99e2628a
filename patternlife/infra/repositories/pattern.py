"""KùzuDB-backed pattern registry."""

from __future__ import annotations

import logging

from ...domain.models import Pattern
from ..database import DatabaseConnection

logger = logging.getLogger(__name__)


class KuzuPatternRegistry:
    """Pattern registry persisted as JSON payloads in KùzuDB.

    Every read deserializes a fresh model, so returned patterns are
    always independent copies.
    """

    def __init__(self, db: DatabaseConnection) -> None:
        self._db = db

    def get(self, pattern_id: str) -> Pattern | None:
        rows = self._db.fetch_all(
            """
            MATCH (p:PatternRecord)
            WHERE p.id = $id
            RETURN p.payload
            """,
            parameters={"id": pattern_id},
        )
        if not rows:
            return None
        return Pattern.model_validate_json(rows[0][0])

    def put(self, pattern: Pattern) -> None:
        with self._db.write():
            self._db.execute(
                """
                MERGE (p:PatternRecord {id: $id})
                ON CREATE SET p.company = $company, p.level = $level, p.payload = $payload
                ON MATCH SET p.company = $company, p.level = $level, p.payload = $payload
                """,
                parameters={
                    "id": pattern.id,
                    "company": pattern.company,
                    "level": int(pattern.level),
                    "payload": pattern.model_dump_json(),
                },
            )
        logger.debug(f"Stored pattern {pattern.id} (level {pattern.level.name})")

    def all(self) -> list[Pattern]:
        rows = self._db.fetch_all(
            """
            MATCH (p:PatternRecord)
            RETURN p.payload
            ORDER BY p.id
            """
        )
        return [Pattern.model_validate_json(row[0]) for row in rows]
