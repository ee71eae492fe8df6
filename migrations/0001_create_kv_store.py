"""
Create the ordered key-value store tables.

Keys are order-preserving BLOB encodings of key tuples (see
cybercards/db/keys.py); values are JSON text. Every write stamps the entry
with a monotonically increasing versionstamp taken from kv_versionstamp,
which atomic operations use for compare-and-set checks.
"""

from yoyo import step

steps = [
    step(
        """
        CREATE TABLE IF NOT EXISTS kv_entries (
            key BLOB PRIMARY KEY,
            value TEXT NOT NULL,
            versionstamp INTEGER NOT NULL,
            updated_at INTEGER NOT NULL
        ) WITHOUT ROWID
        """,
        "DROP TABLE IF EXISTS kv_entries",
    ),
    step(
        """
        CREATE TABLE IF NOT EXISTS kv_versionstamp (
            id INTEGER PRIMARY KEY CHECK (id = 1),
            value INTEGER NOT NULL
        )
        """,
        "DROP TABLE IF EXISTS kv_versionstamp",
    ),
    step(
        "INSERT INTO kv_versionstamp (id, value) VALUES (1, 0)",
        "DELETE FROM kv_versionstamp WHERE id = 1",
    ),
]
