"""SQLite-backed message broker with leases.

Each receive claims messages inside a BEGIN IMMEDIATE transaction so two
workers can never lease the same message at the same time. A lease sets
visible_at into the future and issues a fresh receipt handle; deleting
with an old handle after the lease moved on is a no-op.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
import time
import uuid
from collections.abc import Callable
from pathlib import Path

from vto.core.errors import QueueError
from vto.db.connection import MEMORY_DB, open_connection
from vto.queue.interface import BrokerMessage, QueueStats

logger = logging.getLogger(__name__)

# How often an idle receive re-checks for visible messages (seconds)
RECEIVE_POLL_STEP = 0.2

_SCHEMA = """
CREATE TABLE IF NOT EXISTS messages (
    id TEXT PRIMARY KEY,
    body TEXT NOT NULL,
    attributes TEXT NOT NULL DEFAULT '{}',
    enqueued_at REAL NOT NULL,
    visible_at REAL NOT NULL,
    receipt_handle TEXT,
    receive_count INTEGER NOT NULL DEFAULT 0
);
CREATE INDEX IF NOT EXISTS idx_messages_visible
    ON messages(visible_at, enqueued_at);
CREATE INDEX IF NOT EXISTS idx_messages_receipt
    ON messages(receipt_handle);
"""


class SQLiteBroker:
    """MessageBroker implementation on a SQLite table."""

    def __init__(
        self,
        db_path: Path | str = MEMORY_DB,
        timeout: float = 30.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._lock = threading.Lock()
        self._clock = clock
        try:
            self._conn = open_connection(db_path, timeout=timeout)
            self._conn.executescript(_SCHEMA)
        except sqlite3.Error as e:
            raise QueueError(f"Failed to open message broker: {e}") from e

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def send(self, body: str, attributes: dict[str, str] | None = None) -> str:
        message_id = str(uuid.uuid4())
        now = self._clock()
        with self._lock:
            try:
                self._conn.execute(
                    """
                    INSERT INTO messages (id, body, attributes, enqueued_at, visible_at)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (message_id, body, json.dumps(attributes or {}), now, now),
                )
            except sqlite3.Error as e:
                raise QueueError(f"Failed to send message: {e}") from e
        logger.debug("Sent message %s", message_id)
        return message_id

    def receive(
        self,
        max_messages: int = 1,
        wait_seconds: float = 0.0,
        visibility_timeout: float = 30.0,
        attribute_filter: dict[str, str] | None = None,
    ) -> list[BrokerMessage]:
        deadline = time.monotonic() + max(wait_seconds, 0.0)
        while True:
            messages = self._claim(max_messages, visibility_timeout, attribute_filter)
            remaining = deadline - time.monotonic()
            if messages or remaining <= 0:
                return messages
            time.sleep(min(RECEIVE_POLL_STEP, remaining))

    def delete(self, receipt_handle: str) -> bool:
        cursor = self._execute(
            "DELETE FROM messages WHERE receipt_handle = ?", (receipt_handle,)
        )
        if cursor.rowcount == 0:
            logger.debug("Delete with stale receipt handle: %s", receipt_handle)
        return cursor.rowcount > 0

    def release(self, receipt_handle: str) -> bool:
        cursor = self._execute(
            "UPDATE messages SET visible_at = ?, receipt_handle = NULL, "
            "receive_count = MAX(receive_count - 1, 0) "
            "WHERE receipt_handle = ?",
            (self._clock(), receipt_handle),
        )
        return cursor.rowcount > 0

    def purge(self) -> int:
        cursor = self._execute("DELETE FROM messages")
        logger.info("Purged %d message(s)", cursor.rowcount)
        return cursor.rowcount

    def stats(self) -> QueueStats:
        now = self._clock()
        with self._lock:
            try:
                row = self._conn.execute(
                    """
                    SELECT
                        COALESCE(SUM(CASE WHEN visible_at <= ? THEN 1 ELSE 0 END), 0)
                            AS visible,
                        COALESCE(SUM(CASE WHEN visible_at > ? THEN 1 ELSE 0 END), 0)
                            AS in_flight
                    FROM messages
                    """,
                    (now, now),
                ).fetchone()
            except sqlite3.Error as e:
                raise QueueError(f"Failed to read queue stats: {e}") from e
        return QueueStats(visible=row["visible"], in_flight=row["in_flight"])

    def _claim(
        self,
        max_messages: int,
        visibility_timeout: float,
        attribute_filter: dict[str, str] | None,
    ) -> list[BrokerMessage]:
        now = self._clock()
        clauses = ["visible_at <= ?"]
        params: list[object] = [now]
        for name, value in (attribute_filter or {}).items():
            clauses.append("json_extract(attributes, ?) = ?")
            params.extend([f'$."{name}"', value])
        params.append(max(max_messages, 1))

        with self._lock:
            try:
                self._conn.execute("BEGIN IMMEDIATE")
                rows = self._conn.execute(
                    f"""
                    SELECT id, body, attributes, receive_count FROM messages
                    WHERE {" AND ".join(clauses)}
                    ORDER BY enqueued_at ASC
                    LIMIT ?
                    """,  # nosec B608 - clauses are fixed strings
                    params,
                ).fetchall()

                claimed: list[BrokerMessage] = []
                for row in rows:
                    handle = str(uuid.uuid4())
                    self._conn.execute(
                        """
                        UPDATE messages
                        SET visible_at = ?, receipt_handle = ?,
                            receive_count = receive_count + 1
                        WHERE id = ?
                        """,
                        (now + visibility_timeout, handle, row["id"]),
                    )
                    claimed.append(
                        BrokerMessage(
                            message_id=row["id"],
                            receipt_handle=handle,
                            body=row["body"],
                            attributes=json.loads(row["attributes"]),
                            receive_count=row["receive_count"] + 1,
                        )
                    )
                self._conn.execute("COMMIT")
                return claimed
            except sqlite3.Error as e:
                try:
                    self._conn.execute("ROLLBACK")
                except sqlite3.Error:
                    pass  # Best effort rollback
                error_msg = str(e).casefold()
                if "locked" in error_msg or "busy" in error_msg:
                    logger.warning("Lock contention while receiving: %s", e)
                    return []
                raise QueueError(f"Failed to receive messages: {e}") from e

    def _execute(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        with self._lock:
            try:
                return self._conn.execute(sql, params)
            except sqlite3.Error as e:
                raise QueueError(str(e)) from e
