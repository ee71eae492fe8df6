"""Thread-local SQLite connection management for the KV store.

Flask serves requests from a thread pool and every open SSE stream pins a
thread, so each thread gets its own SQLite connection which is reused for all
of that thread's KV operations.

Connections are opened in autocommit mode (isolation_level=None). The KV
store issues BEGIN IMMEDIATE / COMMIT itself whenever several statements must
apply together.

Usage:
    pool = ConnectionPool("/path/to/cards.db")

    with pool.get_connection() as conn:
        conn.execute("SELECT value FROM kv_entries WHERE key = ?", (key,))

    # On shutdown
    pool.close_all()
"""

import sqlite3
import threading
import weakref
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path

from cybercards.utils.logging import get_logger

logger = get_logger(__name__)


class ConnectionPool:
    """Thread-local SQLite connection pool."""

    def __init__(self, db_path: Path | str) -> None:
        self.db_path = Path(db_path) if isinstance(db_path, str) else db_path
        self._local = threading.local()
        self._lock = threading.Lock()
        # Every live connection by owning thread id, for close_all()
        self._connections: dict[int, sqlite3.Connection] = {}
        logger.debug("Connection pool created", extra={"db_path": str(self.db_path)})

    @staticmethod
    def _release_connection(
        lock: threading.Lock,
        connections: dict[int, sqlite3.Connection],
        thread_id: int,
    ) -> None:
        """Close the connection of a thread whose Thread object was collected.

        Registered through weakref.finalize; takes no reference to the pool so
        the pool itself can still be garbage-collected.
        """
        with lock:
            conn = connections.pop(thread_id, None)
        if conn is not None:
            try:
                conn.close()
            except sqlite3.Error:
                pass

    def _reap_dead_threads(self) -> None:
        """Close connections owned by threads that have exited.

        Must be called with self._lock held.
        """
        alive_thread_ids = {t.ident for t in threading.enumerate()}
        dead_thread_ids = [tid for tid in self._connections if tid not in alive_thread_ids]
        for tid in dead_thread_ids:
            conn = self._connections.pop(tid)
            try:
                conn.close()
            except sqlite3.Error:
                pass
        if dead_thread_ids:
            logger.debug(
                "Reaped dead thread connections",
                extra={"dead_count": len(dead_thread_ids), "remaining": len(self._connections)},
            )

    def _create_connection(self) -> sqlite3.Connection:
        conn = sqlite3.connect(
            self.db_path,
            check_same_thread=False,
            timeout=30.0,
            isolation_level=None,
        )
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        return conn

    def _get_thread_connection(self) -> sqlite3.Connection:
        thread_id = threading.get_ident()
        conn: sqlite3.Connection | None = getattr(self._local, "connection", None)
        if conn is not None:
            return conn

        conn = self._create_connection()
        self._local.connection = conn
        with self._lock:
            self._reap_dead_threads()
            self._connections[thread_id] = conn

        weakref.finalize(
            threading.current_thread(),
            ConnectionPool._release_connection,
            self._lock,
            self._connections,
            thread_id,
        )
        logger.debug(
            "Created new thread connection",
            extra={"thread_id": thread_id, "total_connections": len(self._connections)},
        )
        return conn

    @contextmanager
    def get_connection(self) -> Generator[sqlite3.Connection]:
        """Yield the current thread's connection.

        The connection stays open after the block; an exception raised inside
        the block rolls back any transaction still open on it.
        """
        conn = self._get_thread_connection()
        try:
            yield conn
        except Exception:
            if conn.in_transaction:
                try:
                    conn.rollback()
                except sqlite3.Error:
                    pass
            raise

    def close_all(self) -> None:
        """Close all connections in the pool. Call this on application shutdown."""
        with self._lock:
            for conn in self._connections.values():
                try:
                    conn.close()
                except sqlite3.Error:
                    pass
            self._connections.clear()

        if hasattr(self._local, "connection"):
            self._local.connection = None

        logger.info("All pool connections closed", extra={"db_path": str(self.db_path)})

    def connection_count(self) -> int:
        """Return the number of active connections in the pool."""
        with self._lock:
            return len(self._connections)
