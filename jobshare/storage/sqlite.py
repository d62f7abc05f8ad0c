"""
SQLite document store.

Documents are stored as JSON text keyed by (collection, id). Transactions
open with ``BEGIN IMMEDIATE`` so that the write lock is taken up front and
concurrent writers queue behind the busy timeout instead of interleaving.
"""

import contextlib
import json
import logging
import sqlite3
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Union

from jobshare.errors import ConflictError

from .base import (
    VERSION_FIELD,
    check_version,
    matches_filters,
    new_id,
    validate_collection,
)

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS documents (
    collection TEXT NOT NULL,
    id TEXT NOT NULL,
    version INTEGER NOT NULL DEFAULT 1,
    data TEXT NOT NULL,
    PRIMARY KEY (collection, id)
);
CREATE INDEX IF NOT EXISTS idx_documents_collection ON documents(collection);
"""


def _row_to_doc(row: sqlite3.Row) -> Dict[str, Any]:
    doc = json.loads(row["data"])
    doc["id"] = row["id"]
    doc[VERSION_FIELD] = row["version"]
    return doc


class SQLiteTransaction:
    """Transaction bound to a single open connection."""

    def __init__(self, conn: sqlite3.Connection):
        self._conn = conn

    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        validate_collection(collection)
        row = self._conn.execute(
            "SELECT id, version, data FROM documents WHERE collection = ? AND id = ?",
            (collection, doc_id),
        ).fetchone()
        return _row_to_doc(row) if row else None

    def query(self, collection: str, **filters: Any) -> List[Dict[str, Any]]:
        validate_collection(collection)
        rows = self._conn.execute(
            "SELECT id, version, data FROM documents WHERE collection = ? ORDER BY id",
            (collection,),
        ).fetchall()
        # Filters are applied post-query so that None/missing semantics match
        # the in-memory store exactly
        docs = [_row_to_doc(row) for row in rows]
        return [doc for doc in docs if matches_filters(doc, filters)]

    def insert(self, collection: str, doc: Dict[str, Any]) -> str:
        validate_collection(collection)
        doc_id = doc.get("id") or new_id()
        data = {k: v for k, v in doc.items() if k not in ("id", VERSION_FIELD)}
        try:
            self._conn.execute(
                "INSERT INTO documents (collection, id, version, data) VALUES (?, ?, 1, ?)",
                (collection, doc_id, json.dumps(data, default=str)),
            )
        except sqlite3.IntegrityError:
            raise ConflictError(f"{collection}/{doc_id} already exists")
        return doc_id

    def put(self, collection: str, doc: Dict[str, Any]) -> Dict[str, Any]:
        validate_collection(collection)
        doc_id = doc.get("id")
        if not doc_id:
            raise ValueError("Document id is required for put")
        stored = self.get(collection, doc_id)
        version = check_version(collection, doc_id, stored, doc)
        data = {k: v for k, v in doc.items() if k not in ("id", VERSION_FIELD)}
        self._conn.execute(
            """INSERT INTO documents (collection, id, version, data)
               VALUES (?, ?, ?, ?)
               ON CONFLICT(collection, id) DO UPDATE SET
                   version = excluded.version,
                   data = excluded.data""",
            (collection, doc_id, version, json.dumps(data, default=str)),
        )
        result = dict(data)
        result["id"] = doc_id
        result[VERSION_FIELD] = version
        return result

    def delete(self, collection: str, doc_id: str) -> bool:
        validate_collection(collection)
        cursor = self._conn.execute(
            "DELETE FROM documents WHERE collection = ? AND id = ?",
            (collection, doc_id),
        )
        return cursor.rowcount > 0


class SQLiteStore:
    """File-backed document store.

    Connections are opened per operation; there is no persistent handle to
    close.
    """

    BUSY_TIMEOUT_MS = 5000

    def __init__(self, db_path: Union[str, Path]):
        self.db_path = Path(db_path).expanduser()
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with contextlib.closing(self._get_conn()) as conn:
            conn.executescript(SCHEMA)

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, isolation_level=None)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute(f"PRAGMA busy_timeout={self.BUSY_TIMEOUT_MS}")
        return conn

    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        with contextlib.closing(self._get_conn()) as conn:
            return SQLiteTransaction(conn).get(collection, doc_id)

    def query(self, collection: str, **filters: Any) -> List[Dict[str, Any]]:
        with contextlib.closing(self._get_conn()) as conn:
            return SQLiteTransaction(conn).query(collection, **filters)

    @contextlib.contextmanager
    def transaction(self) -> Iterator[SQLiteTransaction]:
        """Context manager that handles BEGIN/COMMIT/ROLLBACK and closes the connection."""
        conn = self._get_conn()
        try:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield SQLiteTransaction(conn)
            except Exception as e:
                logger.debug(f"Transaction failed, rolling back: {e}")
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")
        finally:
            conn.close()

    def close(self):
        pass
