"""SQLite connection management for VTO.

Both the task document store and the SQLite message broker open their
connections here so every connection gets the same PRAGMAs.
"""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_DATA_DIR = Path.home() / ".vto"
MEMORY_DB = ":memory:"


def ensure_db_directory(db_path: Path) -> None:
    """Ensure the database directory exists, creating it if necessary."""
    db_path.parent.mkdir(parents=True, exist_ok=True)


def open_connection(
    db_path: Path | str = MEMORY_DB, timeout: float = 30.0
) -> sqlite3.Connection:
    """Open a SQLite connection with the standard PRAGMAs applied.

    The connection is created with check_same_thread=False; callers that
    share it across worker threads must serialize access with their own
    lock.

    Args:
        db_path: Path to the database file, or ":memory:".
        timeout: How long to wait for locks (seconds). Default 30s.

    Returns:
        A configured sqlite3 Connection using sqlite3.Row rows.

    Raises:
        sqlite3.Error: If the database cannot be opened.
    """
    if str(db_path) != MEMORY_DB:
        db_path = Path(db_path).expanduser()
        ensure_db_directory(db_path)

    conn = sqlite3.connect(
        str(db_path),
        timeout=timeout,
        check_same_thread=False,
        isolation_level=None,
    )

    # WAL for concurrent readers alongside a single writer
    conn.execute("PRAGMA journal_mode = WAL")
    conn.execute("PRAGMA synchronous = NORMAL")
    conn.execute("PRAGMA busy_timeout = 10000")
    conn.execute("PRAGMA temp_store = MEMORY")
    conn.row_factory = sqlite3.Row

    logger.debug("Opened database connection: %s", db_path)
    return conn
