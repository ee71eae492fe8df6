"""Ordered key-value store on top of SQLite.

This is the single source of truth for users, sessions and cards. Keys are
tuples (see cybercards/db/keys.py), values are JSON-serializable structures.
All queries are exact-key lookups or prefix scans; there is no TTL and no
secondary index.

Usage:
    store = KvStore(db_path)
    store.set(("users", user_id), {"id": user_id})
    store.get(("users", user_id))
    for entry in store.list(("users",)):
        ...

    op = store.atomic()
    op.check(("counters", "a"), entry.versionstamp).set(("counters", "a"), 2)
    result = op.commit()  # result.ok is False when a check failed
"""

from __future__ import annotations

import json
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from cybercards.config import Config
from cybercards.db.base import KvStoreBase
from cybercards.db.keys import PREFIX_END, KvKey, decode_key, encode_key
from cybercards.utils.identity import now_ms
from cybercards.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class KvEntry:
    """A key with its value and the versionstamp of its last write.

    value and versionstamp are None when the key does not exist.
    """

    key: KvKey
    value: Any
    versionstamp: str | None


@dataclass(frozen=True)
class CommitResult:
    ok: bool
    versionstamp: str | None = None


def _format_versionstamp(counter: int) -> str:
    return f"{counter:020d}"


def _dump_value(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


class AtomicOperation:
    """Check-then-mutate across several keys, applied all-or-nothing.

    Checks compare a key's current versionstamp with an expected one (None
    expects the key to be absent). If any check fails, no mutation applies.
    """

    def __init__(self, store: KvStore) -> None:
        self._store = store
        self._checks: list[tuple[bytes, str | None]] = []
        self._mutations: list[tuple[str, bytes, Any]] = []

    def check(self, key: KvKey, versionstamp: str | None) -> AtomicOperation:
        self._checks.append((encode_key(key), versionstamp))
        return self

    def set(self, key: KvKey, value: Any) -> AtomicOperation:
        self._mutations.append(("set", encode_key(key), _dump_value(value)))
        return self

    def delete(self, key: KvKey) -> AtomicOperation:
        self._mutations.append(("delete", encode_key(key), None))
        return self

    def commit(self) -> CommitResult:
        return self._store._commit_atomic(self._checks, self._mutations)


class KvStore(KvStoreBase):
    """Key-value operations: get, set, delete, prefix list, atomic."""

    def __init__(self, db_path: Path | None = None) -> None:
        super().__init__(db_path)

    def get(self, key: KvKey) -> Any:
        """Return the value stored under key, or None."""
        return self.get_entry(key).value

    def get_entry(self, key: KvKey) -> KvEntry:
        raw_key = encode_key(key)
        with self._pool.get_connection() as conn:
            row = self._execute_with_timing(
                conn,
                "SELECT value, versionstamp FROM kv_entries WHERE key = ?",
                (raw_key,),
            ).fetchone()
        if row is None:
            return KvEntry(key=key, value=None, versionstamp=None)
        return KvEntry(
            key=key,
            value=json.loads(row["value"]),
            versionstamp=_format_versionstamp(row["versionstamp"]),
        )

    def set(self, key: KvKey, value: Any) -> str:
        """Store value under key (last write wins). Returns the new versionstamp."""
        raw_key = encode_key(key)
        payload = _dump_value(value)
        with self._pool.get_connection() as conn, self._transaction(conn):
            counter = self._next_versionstamp(conn)
            self._upsert(conn, raw_key, payload, counter)
        return _format_versionstamp(counter)

    def delete(self, key: KvKey) -> None:
        """Remove key. Deleting a missing key is not an error."""
        raw_key = encode_key(key)
        with self._pool.get_connection() as conn:
            self._execute_with_timing(conn, "DELETE FROM kv_entries WHERE key = ?", (raw_key,))

    def list(
        self,
        prefix: KvKey,
        *,
        limit: int | None = None,
        reverse: bool = False,
        batch_size: int | None = None,
    ) -> Iterator[KvEntry]:
        """Lazily iterate entries whose key extends prefix, in key order.

        The prefix key itself is not included. Rows are fetched in batches,
        so entries written during iteration may or may not be seen. Calling
        list() again restarts the scan from the beginning.
        """
        lower = encode_key(prefix)
        upper = lower + PREFIX_END
        return self._scan(
            lower,
            upper,
            limit=limit,
            reverse=reverse,
            batch_size=batch_size or Config.KV_LIST_BATCH_SIZE,
        )

    def atomic(self) -> AtomicOperation:
        return AtomicOperation(self)

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _scan(
        self,
        lower: bytes,
        upper: bytes,
        *,
        limit: int | None,
        reverse: bool,
        batch_size: int,
    ) -> Iterator[KvEntry]:
        remaining = limit
        order = "DESC" if reverse else "ASC"
        while remaining is None or remaining > 0:
            fetch = batch_size if remaining is None else min(batch_size, remaining)
            with self._pool.get_connection() as conn:
                rows = self._execute_with_timing(
                    conn,
                    f"SELECT key, value, versionstamp FROM kv_entries "
                    f"WHERE key > ? AND key < ? ORDER BY key {order} LIMIT ?",
                    (lower, upper, fetch),
                ).fetchall()
            for row in rows:
                yield KvEntry(
                    key=decode_key(row["key"]),
                    value=json.loads(row["value"]),
                    versionstamp=_format_versionstamp(row["versionstamp"]),
                )
            if len(rows) < fetch:
                return
            # Resume after the last key seen
            if reverse:
                upper = rows[-1]["key"]
            else:
                lower = rows[-1]["key"]
            if remaining is not None:
                remaining -= len(rows)

    def _next_versionstamp(self, conn: Any) -> int:
        self._execute_with_timing(conn, "UPDATE kv_versionstamp SET value = value + 1 WHERE id = 1")
        row = self._execute_with_timing(
            conn, "SELECT value FROM kv_versionstamp WHERE id = 1"
        ).fetchone()
        return int(row["value"])

    def _upsert(self, conn: Any, raw_key: bytes, payload: str, counter: int) -> None:
        self._execute_with_timing(
            conn,
            """
            INSERT INTO kv_entries (key, value, versionstamp, updated_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(key)
            DO UPDATE SET value = excluded.value,
                          versionstamp = excluded.versionstamp,
                          updated_at = excluded.updated_at
            """,
            (raw_key, payload, counter, now_ms()),
        )

    def _commit_atomic(
        self,
        checks: list[tuple[bytes, str | None]],
        mutations: list[tuple[str, bytes, Any]],
    ) -> CommitResult:
        with self._pool.get_connection() as conn, self._transaction(conn):
            for raw_key, expected in checks:
                row = self._execute_with_timing(
                    conn, "SELECT versionstamp FROM kv_entries WHERE key = ?", (raw_key,)
                ).fetchone()
                current = _format_versionstamp(row["versionstamp"]) if row else None
                if current != expected:
                    logger.debug(
                        "Atomic check failed",
                        extra={"expected": expected, "current": current},
                    )
                    # Nothing written yet, the empty transaction just commits
                    return CommitResult(ok=False)

            counter = self._next_versionstamp(conn)
            for kind, raw_key, payload in mutations:
                if kind == "set":
                    self._upsert(conn, raw_key, payload, counter)
                else:
                    self._execute_with_timing(
                        conn, "DELETE FROM kv_entries WHERE key = ?", (raw_key,)
                    )
        return CommitResult(ok=True, versionstamp=_format_versionstamp(counter))
