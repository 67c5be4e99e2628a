"""Database connection management for KùzuDB."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Any

from ..domain.exceptions import DatabaseError

if TYPE_CHECKING:
    import kuzu

logger = logging.getLogger(__name__)

# Default retry settings for opening the database
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_DELAY = 0.5  # seconds


class DatabaseConnection:
    """Manages a KùzuDB database holding patterns and observations.

    Records are stored as JSON payloads next to the columns used for
    filtering. Queries are serialized with an in-process lock.

    KùzuDB lets only one process open a database read-write. Opening is
    retried with backoff while another process holds it; ``close()``
    releases the file lock and the next query reopens the database.
    """

    def __init__(
        self,
        db_path: Path,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay: float = DEFAULT_RETRY_DELAY,
    ) -> None:
        """Initialize the database connection.

        Args:
            db_path: Path to the database directory.
            max_retries: Attempts at opening a database held by another process.
            retry_delay: Delay before the first retry in seconds.
        """
        self._db_path = db_path
        self._max_retries = max_retries
        self._retry_delay = retry_delay
        self._db: kuzu.Database | None = None
        self._conn: kuzu.Connection | None = None
        self._initialized = False
        self._lock = threading.RLock()

    @property
    def is_open(self) -> bool:
        return self._db is not None

    @property
    def db(self) -> kuzu.Database:
        """Get the database instance, opening it if needed.

        Raises:
            DatabaseError: If the database is still locked after all retries.
        """
        if self._db is None:
            self._db = self._open()
        return self._db

    def _open(self) -> kuzu.Database:
        import kuzu

        logger.info(f"Initializing database at: {self._db_path}")
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

        last_error: Exception | None = None
        retry_delay = self._retry_delay
        for attempt in range(self._max_retries):
            try:
                return kuzu.Database(str(self._db_path))
            except RuntimeError as e:
                last_error = e
                if attempt < self._max_retries - 1:
                    logger.warning(
                        f"Failed to open database (attempt {attempt + 1}/"
                        f"{self._max_retries}): {e}. Retrying in {retry_delay}s..."
                    )
                    time.sleep(retry_delay)
                    # Exponential backoff
                    retry_delay *= 1.5

        raise DatabaseError(
            f"Failed to open database after {self._max_retries} attempts. "
            f"Another process may be using it. Last error: {last_error}"
        )

    @property
    def conn(self) -> kuzu.Connection:
        """Get a database connection, initializing schema if needed."""
        if self._conn is None:
            import kuzu

            self._conn = kuzu.Connection(self.db)
            if not self._initialized:
                self._init_schema()
                self._initialized = True
        return self._conn

    def _init_schema(self) -> None:
        """Initialize the database schema."""
        logger.info("Initializing database schema...")

        self.conn.execute("""
            CREATE NODE TABLE IF NOT EXISTS PatternRecord (
                id STRING,
                company STRING,
                level INT64,
                payload STRING,
                PRIMARY KEY (id)
            )
        """)

        # Embedding is stored per observation; similarity is computed in Python
        self.conn.execute("""
            CREATE NODE TABLE IF NOT EXISTS ObservationRecord (
                id STRING,
                company STRING,
                pattern_id STRING,
                payload STRING,
                embedding DOUBLE[],
                PRIMARY KEY (id)
            )
        """)

        self.conn.execute("""
            CREATE NODE TABLE IF NOT EXISTS PendingApproval (
                pattern_id STRING,
                payload STRING,
                PRIMARY KEY (pattern_id)
            )
        """)

        logger.info("Database schema initialized successfully")

    def execute(self, query: str, parameters: dict | None = None) -> kuzu.QueryResult:
        """Execute a query on the database.

        Raises:
            DatabaseError: If KùzuDB rejects the query.
        """
        try:
            with self._lock:
                if parameters:
                    return self.conn.execute(query, parameters=parameters)
                return self.conn.execute(query)
        except RuntimeError as e:
            raise DatabaseError(f"Query failed: {e}") from e

    def fetch_all(self, query: str, parameters: dict | None = None) -> list[list[Any]]:
        """Execute a read query and collect every row."""
        with self._lock:
            result = self.execute(query, parameters)
            rows = []
            while result.has_next():
                rows.append(result.get_next())
        return rows

    @contextmanager
    def write(self) -> Iterator[DatabaseConnection]:
        """Serialize a block of write queries."""
        with self._lock:
            yield self

    def close(self) -> None:
        """Close the database and release its file lock."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
            if self._db is not None:
                self._db.close()
                self._db = None
        logger.info("Database connection closed")
