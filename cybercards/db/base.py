"""Base storage infrastructure.

Contains KvStoreBase with connection pooling, timed query execution,
explicit transactions and migration support. The public KV operations live
in cybercards/db/kv_store.py.
"""

import sqlite3
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from yoyo import get_backend, read_migrations

from cybercards.config import Config
from cybercards.utils.connection_pool import ConnectionPool
from cybercards.utils.db_helpers import execute_with_timing, init_query_logging
from cybercards.utils.logging import get_logger

logger = get_logger(__name__)

# Path to migrations directory
MIGRATIONS_DIR = Path(__file__).parent.parent.parent / "migrations"


class KvStoreBase:
    """Connection pooling, query timing and migrations for the KV store."""

    def __init__(self, db_path: Path | None = None) -> None:
        self.db_path = db_path or Config.DATABASE_PATH
        # Query logging is only active in development/debug mode
        self._should_log_queries, self._slow_query_threshold_ms = init_query_logging()
        self._pool = ConnectionPool(self.db_path)
        self._init_db()

    def close(self) -> None:
        """Close all connections in the pool.

        Call this on application shutdown.
        """
        self._pool.close_all()

    def _execute_with_timing(
        self,
        conn: sqlite3.Connection,
        query: str,
        params: tuple[Any, ...] = (),
    ) -> sqlite3.Cursor:
        return execute_with_timing(
            conn,
            query,
            params,
            should_log=self._should_log_queries,
            slow_query_threshold_ms=self._slow_query_threshold_ms,
        )

    @contextmanager
    def _transaction(self, conn: sqlite3.Connection) -> Generator[sqlite3.Connection]:
        """Run the block inside BEGIN IMMEDIATE ... COMMIT.

        IMMEDIATE takes the write lock up front, so reads made inside the
        block (versionstamp checks) cannot be invalidated by another writer
        before the commit.
        """
        conn.execute("BEGIN IMMEDIATE")
        try:
            yield conn
        except BaseException:
            conn.execute("ROLLBACK")
            raise
        conn.execute("COMMIT")

    def check_connectivity(self) -> tuple[bool, str | None]:
        """Run a trivial query. Returns (ok, error message)."""
        try:
            with self._pool.get_connection() as conn:
                conn.execute("SELECT 1 FROM kv_versionstamp").fetchone()
        except sqlite3.Error as e:
            return False, str(e)
        return True, None

    def _init_db(self) -> None:
        """Run yoyo migrations to initialize/update the schema."""
        logger.debug("Initializing KV store", extra={"db_path": str(self.db_path)})
        backend = get_backend(f"sqlite:///{self.db_path}")
        migrations = read_migrations(str(MIGRATIONS_DIR))
        try:
            with backend.lock():
                migrations_to_apply = backend.to_apply(migrations)
                if migrations_to_apply:
                    logger.info(
                        "Applying KV store migrations", extra={"count": len(migrations_to_apply)}
                    )
                backend.apply_migrations(migrations_to_apply)
        finally:
            backend.connection.close()
