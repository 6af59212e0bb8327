"""SQLite storage backend.

Stores the session catalog and the continuation edges in a single SQLite
database file using the standard library ``sqlite3`` module.

Tables
------
- ``session_metadata``       — one row per known session
- ``session_continuations``  — one row per child session (primary key)

Classes
-------
- SQLiteStore  — ``SessionCatalog`` and ``EdgeStore`` over one database
"""
from __future__ import annotations

import sqlite3
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path

from continuation_chains.errors import StorageError
from continuation_chains.models import ContinuationEdge, SessionRecord
from continuation_chains.storage.base import EdgeStore, SessionCatalog

_DEFAULT_DB_PATH: Path = Path.home() / ".continuation-chains" / "chains.db"

_CREATE_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS session_metadata (
    session_id   TEXT PRIMARY KEY,
    project_path TEXT,
    file_path    TEXT,
    title        TEXT
);
CREATE TABLE IF NOT EXISTS session_continuations (
    child_session_id   TEXT PRIMARY KEY,
    parent_session_id  TEXT NOT NULL,
    continuation_order INTEGER NOT NULL DEFAULT 0,
    is_active          INTEGER NOT NULL DEFAULT 0,
    is_orphaned        INTEGER NOT NULL DEFAULT 0,
    detected_at        TEXT NOT NULL,
    child_started_at   TEXT,
    split_reason       TEXT NOT NULL,
    split_at           TEXT
);
CREATE INDEX IF NOT EXISTS idx_continuations_parent
    ON session_continuations (parent_session_id);
"""
_UPSERT_EDGE_SQL = """
INSERT INTO session_continuations (
    child_session_id, parent_session_id, continuation_order, is_active,
    is_orphaned, detected_at, child_started_at, split_reason, split_at
) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
ON CONFLICT(child_session_id) DO UPDATE SET
    parent_session_id  = excluded.parent_session_id,
    continuation_order = excluded.continuation_order,
    is_active          = excluded.is_active,
    is_orphaned        = excluded.is_orphaned,
    detected_at        = excluded.detected_at,
    child_started_at   = excluded.child_started_at,
    split_reason       = excluded.split_reason,
    split_at           = excluded.split_at
"""
_UPSERT_SESSION_SQL = """
INSERT INTO session_metadata (session_id, project_path, file_path, title)
VALUES (?, ?, ?, ?)
ON CONFLICT(session_id) DO UPDATE SET
    project_path = excluded.project_path,
    file_path    = excluded.file_path,
    title        = excluded.title
"""
_SELECT_EDGE_COLUMNS = """
SELECT child_session_id, parent_session_id, continuation_order, is_active,
       is_orphaned, detected_at, child_started_at, split_reason, split_at
FROM session_continuations
"""


def _to_text(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _from_text(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _row_to_edge(row: sqlite3.Row) -> ContinuationEdge:
    return ContinuationEdge(
        child_id=row["child_session_id"],
        parent_id=row["parent_session_id"],
        order=int(row["continuation_order"]),
        is_active=bool(row["is_active"]),
        is_orphaned=bool(row["is_orphaned"]),
        detected_at=_from_text(row["detected_at"]),
        child_started_at=_from_text(row["child_started_at"]),
        split_reason=row["split_reason"],
        split_at=_from_text(row["split_at"]),
    )


def _row_to_session(row: sqlite3.Row) -> SessionRecord:
    return SessionRecord(
        session_id=row["session_id"],
        project_path=row["project_path"],
        file_path=row["file_path"],
        title=row["title"],
    )


class SQLiteStore(SessionCatalog, EdgeStore):
    """Session catalog and edge store in one local SQLite database.

    Each call opens its own connection, so the store may be shared between
    threads.  Batch edge writes run inside a single transaction.

    Parameters
    ----------
    db_path:
        Path to the SQLite file.  Defaults to
        ``~/.continuation-chains/chains.db``.  The parent directory and
        schema are created automatically on first use.
    """

    def __init__(self, db_path: str | Path | None = None) -> None:
        EdgeStore.__init__(self)
        self._db_path: Path = Path(db_path) if db_path is not None else _DEFAULT_DB_PATH

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _get_connection(self) -> sqlite3.Connection:
        """Open a connection and ensure the schema exists."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(self._db_path))
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.executescript(_CREATE_SCHEMA_SQL)
        return conn

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Yield a connection inside a transaction; commit or roll back on exit."""
        try:
            conn = self._get_connection()
        except sqlite3.Error as exc:
            raise StorageError(f"Cannot open {str(self._db_path)!r}: {exc}") from exc
        try:
            with conn:
                yield conn
        except sqlite3.Error as exc:
            raise StorageError(f"SQLite operation failed: {exc}") from exc
        finally:
            conn.close()

    # ------------------------------------------------------------------
    # SessionCatalog interface
    # ------------------------------------------------------------------

    def get(self, session_id: str) -> SessionRecord | None:
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT * FROM session_metadata WHERE session_id = ?", (session_id,)
            ).fetchone()
        return _row_to_session(row) if row is not None else None

    def list_sessions(self) -> list[SessionRecord]:
        with self._transaction() as conn:
            rows = conn.execute(
                "SELECT * FROM session_metadata ORDER BY session_id"
            ).fetchall()
        return [_row_to_session(row) for row in rows]

    def register(self, record: SessionRecord) -> None:
        with self._transaction() as conn:
            conn.execute(
                _UPSERT_SESSION_SQL,
                (record.session_id, record.project_path, record.file_path, record.title),
            )

    def register_many(self, records: Iterable[SessionRecord]) -> int:
        """Insert or replace many session records in one transaction."""
        batch = list(records)
        if not batch:
            return 0
        with self._transaction() as conn:
            conn.executemany(
                _UPSERT_SESSION_SQL,
                [(r.session_id, r.project_path, r.file_path, r.title) for r in batch],
            )
        return len(batch)

    def remove(self, session_id: str) -> None:
        with self._transaction() as conn:
            cursor = conn.execute(
                "DELETE FROM session_metadata WHERE session_id = ?", (session_id,)
            )
        if cursor.rowcount == 0:
            raise KeyError(f"Session {session_id!r} not found in SQLiteStore.")

    def existing(self, session_ids: Iterable[str]) -> set[str]:
        ids = sorted(set(session_ids))
        if not ids:
            return set()
        found: set[str] = set()
        with self._transaction() as conn:
            # Stay below SQLite's default bound-parameter limit.
            for start in range(0, len(ids), 500):
                chunk = ids[start : start + 500]
                placeholders = ",".join("?" for _ in chunk)
                rows = conn.execute(
                    f"SELECT session_id FROM session_metadata WHERE session_id IN ({placeholders})",
                    chunk,
                ).fetchall()
                found.update(str(row["session_id"]) for row in rows)
        return found

    # ------------------------------------------------------------------
    # EdgeStore reads
    # ------------------------------------------------------------------

    def get_edge(self, child_id: str) -> ContinuationEdge | None:
        with self._transaction() as conn:
            row = conn.execute(
                _SELECT_EDGE_COLUMNS + " WHERE child_session_id = ?", (child_id,)
            ).fetchone()
        return _row_to_edge(row) if row is not None else None

    def children_of(self, parent_id: str) -> list[ContinuationEdge]:
        with self._transaction() as conn:
            rows = conn.execute(
                _SELECT_EDGE_COLUMNS
                + " WHERE parent_session_id = ? ORDER BY continuation_order, child_session_id",
                (parent_id,),
            ).fetchall()
        return [_row_to_edge(row) for row in rows]

    def all_edges(self) -> list[ContinuationEdge]:
        with self._transaction() as conn:
            rows = conn.execute(_SELECT_EDGE_COLUMNS).fetchall()
        return [_row_to_edge(row) for row in rows]

    def count_children(self, parent_id: str) -> int:
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT COUNT(*) AS n FROM session_continuations WHERE parent_session_id = ?",
                (parent_id,),
            ).fetchone()
        return int(row["n"])

    # ------------------------------------------------------------------
    # EdgeStore backend hooks
    # ------------------------------------------------------------------

    def _write_edges(self, edges: list[ContinuationEdge]) -> None:
        with self._transaction() as conn:
            conn.executemany(
                _UPSERT_EDGE_SQL,
                [
                    (
                        e.child_id,
                        e.parent_id,
                        e.order,
                        int(e.is_active),
                        int(e.is_orphaned),
                        _to_text(e.detected_at),
                        _to_text(e.child_started_at),
                        e.split_reason,
                        _to_text(e.split_at),
                    )
                    for e in edges
                ],
            )

    def _remove_edge(self, child_id: str) -> bool:
        with self._transaction() as conn:
            cursor = conn.execute(
                "DELETE FROM session_continuations WHERE child_session_id = ?", (child_id,)
            )
        return cursor.rowcount > 0

    def _write_orphaned(self, child_ids: list[str], is_orphaned: bool) -> int:
        with self._transaction() as conn:
            cursor = conn.executemany(
                "UPDATE session_continuations SET is_orphaned = ? "
                "WHERE child_session_id = ? AND is_orphaned != ?",
                [(int(is_orphaned), cid, int(is_orphaned)) for cid in child_ids],
            )
        return max(cursor.rowcount, 0)

    def __repr__(self) -> str:
        return f"SQLiteStore(db_path={str(self._db_path)!r})"
