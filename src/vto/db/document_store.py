"""SQLite-backed document store for task records.

Documents are stored whole as JSON. The attributes used for secondary
indexes (status, date_partition) and for ordering (created_at) are copied
into dedicated columns on every put so index queries never parse JSON.
"""

from __future__ import annotations

import json
import logging
import re
import sqlite3
import threading
from pathlib import Path
from typing import Any

from vto.core.errors import StorageError
from vto.db.connection import MEMORY_DB, open_connection
from vto.db.interface import IndexName, Page

logger = logging.getLogger(__name__)

# Index name -> column holding the indexed attribute
_INDEX_COLUMNS: dict[IndexName, str] = {
    IndexName.STATUS: "status",
    IndexName.DATE: "date_partition",
}

# Attributes mirrored into columns; anything else is filtered via json_extract
_COLUMN_ATTRIBUTES = frozenset({"status", "date_partition", "created_at"})

_ATTRIBUTE_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

_SCHEMA = """
CREATE TABLE IF NOT EXISTS {table} (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    key TEXT NOT NULL UNIQUE,
    status TEXT,
    date_partition TEXT,
    created_at TEXT NOT NULL DEFAULT '',
    body TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_{table}_status
    ON {table}(status, created_at, key);
CREATE INDEX IF NOT EXISTS idx_{table}_date
    ON {table}(date_partition, created_at, key);
"""


class SQLiteDocumentStore:
    """DocumentStore implementation on a single SQLite table.

    One connection is shared by all threads; a lock serializes access.
    Every sqlite3 error is re-raised as StorageError without retrying.
    """

    def __init__(
        self,
        db_path: Path | str = MEMORY_DB,
        table: str = "tasks",
        timeout: float = 30.0,
    ) -> None:
        """Open (and if needed create) the document table.

        Args:
            db_path: Database file path, or ":memory:".
            table: Table name for the documents.
            timeout: SQLite lock timeout in seconds.

        Raises:
            StorageError: If the database cannot be opened or initialized.
        """
        if not _ATTRIBUTE_NAME.match(table):
            raise ValueError(f"Invalid table name: {table!r}")
        self._table = table
        self._lock = threading.Lock()
        try:
            self._conn = open_connection(db_path, timeout=timeout)
            self._conn.executescript(_SCHEMA.format(table=table))
        except sqlite3.Error as e:
            raise StorageError(f"Failed to open document store: {e}") from e

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    # ------------------------------------------------------------------
    # Point operations
    # ------------------------------------------------------------------

    def get(self, key: str) -> dict[str, Any] | None:
        row = self._fetchone(
            f"SELECT body FROM {self._table} WHERE key = ?",  # nosec B608
            (key,),
        )
        if row is None:
            return None
        return json.loads(row["body"])

    def put(self, key: str, document: dict[str, Any]) -> None:
        params = (
            key,
            document.get("status"),
            document.get("date_partition"),
            document.get("created_at") or "",
            json.dumps(document),
        )
        self._execute(
            f"""
            INSERT INTO {self._table} (key, status, date_partition, created_at, body)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET
                status = excluded.status,
                date_partition = excluded.date_partition,
                created_at = excluded.created_at,
                body = excluded.body
            """,  # nosec B608
            params,
        )

    def delete(self, key: str) -> bool:
        cursor = self._execute(
            f"DELETE FROM {self._table} WHERE key = ?",  # nosec B608
            (key,),
        )
        return cursor.rowcount > 0

    # ------------------------------------------------------------------
    # List operations
    # ------------------------------------------------------------------

    def scan(
        self,
        *,
        filter: dict[str, str] | None = None,
        limit: int | None = None,
        cursor: str | None = None,
        count_only: bool = False,
    ) -> Page:
        """Read documents in storage (insertion) order.

        The cursor is the row id of the last document returned.
        """
        clauses: list[str] = []
        params: list[Any] = []
        _apply_filter(filter, clauses, params)
        if cursor is not None:
            clauses.append("id > ?")
            params.append(int(cursor))
        where = _where(clauses)

        if count_only:
            return self._count(where, params)

        rows = self._fetchall(
            f"SELECT id, body FROM {self._table}{where} "  # nosec B608
            "ORDER BY id LIMIT ?",
            (*params, _fetch_limit(limit)),
        )
        return _build_page(rows, limit, lambda row: str(row["id"]))

    def query(
        self,
        index: IndexName,
        value: str,
        *,
        filter: dict[str, str] | None = None,
        forward: bool = True,
        limit: int | None = None,
        cursor: str | None = None,
        count_only: bool = False,
    ) -> Page:
        """Read documents by secondary index ordered by created_at.

        The cursor encodes the (created_at, key) of the last document
        returned so pages stay stable when created_at values collide.
        """
        clauses = [f"{_INDEX_COLUMNS[index]} = ?"]
        params: list[Any] = [value]
        _apply_filter(filter, clauses, params)
        if cursor is not None:
            created_at, key = json.loads(cursor)
            op = ">" if forward else "<"
            clauses.append(f"(created_at, key) {op} (?, ?)")
            params.extend([created_at, key])
        where = _where(clauses)

        if count_only:
            return self._count(where, params)

        order = "ASC" if forward else "DESC"
        rows = self._fetchall(
            f"SELECT created_at, key, body FROM {self._table}{where} "  # nosec B608
            f"ORDER BY created_at {order}, key {order} LIMIT ?",
            (*params, _fetch_limit(limit)),
        )
        return _build_page(
            rows, limit, lambda row: json.dumps([row["created_at"], row["key"]])
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _count(self, where: str, params: list[Any]) -> Page:
        row = self._fetchone(
            f"SELECT COUNT(*) AS n FROM {self._table}{where}",  # nosec B608
            tuple(params),
        )
        return Page(items=[], count=row["n"] if row else 0, cursor=None)

    def _execute(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        with self._lock:
            try:
                return self._conn.execute(sql, params)
            except sqlite3.Error as e:
                logger.error("Document store write failed: %s", e)
                raise StorageError(str(e)) from e

    def _fetchone(self, sql: str, params: tuple = ()) -> sqlite3.Row | None:
        with self._lock:
            try:
                return self._conn.execute(sql, params).fetchone()
            except sqlite3.Error as e:
                raise StorageError(str(e)) from e

    def _fetchall(self, sql: str, params: tuple = ()) -> list[sqlite3.Row]:
        with self._lock:
            try:
                return self._conn.execute(sql, params).fetchall()
            except sqlite3.Error as e:
                raise StorageError(str(e)) from e


def _apply_filter(
    filter: dict[str, str] | None, clauses: list[str], params: list[Any]
) -> None:
    for attribute, value in (filter or {}).items():
        if not _ATTRIBUTE_NAME.match(attribute):
            raise ValueError(f"Invalid filter attribute: {attribute!r}")
        if attribute in _COLUMN_ATTRIBUTES:
            clauses.append(f"{attribute} = ?")
        else:
            clauses.append(f"json_extract(body, '$.{attribute}') = ?")
        params.append(value)


def _where(clauses: list[str]) -> str:
    return " WHERE " + " AND ".join(clauses) if clauses else ""


def _fetch_limit(limit: int | None) -> int:
    # One extra row tells us whether another page exists; -1 means no limit
    return -1 if limit is None else limit + 1


def _build_page(rows: list[sqlite3.Row], limit: int | None, cursor_of) -> Page:
    has_more = limit is not None and len(rows) > limit
    if has_more:
        rows = rows[:limit]
    items = [json.loads(row["body"]) for row in rows]
    cursor = cursor_of(rows[-1]) if has_more and rows else None
    return Page(items=items, count=len(items), cursor=cursor)
