"""Paginated task listing over the document store.

Three access strategies are chosen from the filters present:

- DATE: a date filter is given. Uses the date index, newest first, with
  the status (if any) applied as a filter.
- STATUS: only a status filter is given. Uses the status index, newest
  first.
- SCAN: no filters. Full scan; storage order is not guaranteed, so the
  newest offset+limit records are buffered while scanning, sorted by
  created_at descending, then sliced.

The total is always counted with the same strategy that fetches the page,
and an offset at or beyond the total short-circuits to an empty page.
"""

from __future__ import annotations

import heapq
import logging
from enum import Enum
from typing import Any

from vto.db.interface import DocumentStore, IndexName

logger = logging.getLogger(__name__)

DEFAULT_LIST_LIMIT = 10
MAX_LIST_LIMIT = 100

# Documents read per underlying store request while paging
_BATCH_SIZE = 100


class ListStrategy(Enum):
    """Access path used to count and fetch a task listing."""

    DATE = "date"
    STATUS = "status"
    SCAN = "scan"


def clamp_limit(
    limit: int | None,
    default: int = DEFAULT_LIST_LIMIT,
    maximum: int = MAX_LIST_LIMIT,
) -> int:
    """Clamp a requested page size into 1..maximum.

    Missing or non-positive limits fall back to the default.
    """
    if limit is None or limit <= 0:
        return default
    return min(limit, maximum)


def select_strategy(status: str | None, date: str | None) -> ListStrategy:
    if date:
        return ListStrategy.DATE
    if status:
        return ListStrategy.STATUS
    return ListStrategy.SCAN


def count_documents(
    store: DocumentStore, status: str | None, date: str | None
) -> int:
    """Count tasks matching the filters with a count-only projection."""
    strategy = select_strategy(status, date)

    if strategy is ListStrategy.DATE:
        page = store.query(
            IndexName.DATE,
            date,
            filter={"status": status} if status else None,
            count_only=True,
        )
        return page.count

    if strategy is ListStrategy.STATUS:
        return store.query(IndexName.STATUS, status, count_only=True).count

    return store.scan(count_only=True).count


def fetch_documents(
    store: DocumentStore,
    status: str | None,
    date: str | None,
    limit: int,
    offset: int,
) -> list[dict[str, Any]]:
    """Fetch one page of task documents, newest first."""
    strategy = select_strategy(status, date)

    if strategy is ListStrategy.DATE:
        return _skip_then_collect(
            store,
            IndexName.DATE,
            date,
            {"status": status} if status else None,
            limit,
            offset,
        )

    if strategy is ListStrategy.STATUS:
        return _skip_then_collect(
            store, IndexName.STATUS, status, None, limit, offset
        )

    return _scan_sorted(store, limit, offset)


def list_documents(
    store: DocumentStore,
    status: str | None = None,
    date: str | None = None,
    limit: int = DEFAULT_LIST_LIMIT,
    offset: int = 0,
) -> tuple[list[dict[str, Any]], int]:
    """Count then fetch a page of task documents.

    Args:
        store: Backing document store.
        status: Optional status filter value.
        date: Optional YYYY-MM-DD date-partition filter.
        limit: Page size (already clamped by the caller).
        offset: Number of matching documents to skip.

    Returns:
        Tuple of (documents on this page, total matching count).

    Raises:
        StorageError: If the store fails.
    """
    offset = max(offset, 0)
    total = count_documents(store, status, date)
    logger.debug(
        "Task listing: strategy=%s total=%d limit=%d offset=%d",
        select_strategy(status, date).value,
        total,
        limit,
        offset,
    )
    if offset >= total:
        return [], total
    return fetch_documents(store, status, date, limit, offset), total


def _skip_then_collect(
    store: DocumentStore,
    index: IndexName,
    value: str,
    filter: dict[str, str] | None,
    limit: int,
    offset: int,
) -> list[dict[str, Any]]:
    skipped = 0
    collected: list[dict[str, Any]] = []
    cursor: str | None = None

    while True:
        page = store.query(
            index,
            value,
            filter=filter,
            forward=False,
            limit=_BATCH_SIZE,
            cursor=cursor,
        )
        for item in page.items:
            if skipped < offset:
                skipped += 1
                continue
            collected.append(item)
            if len(collected) >= limit:
                return collected
        if page.cursor is None:
            return collected
        cursor = page.cursor


def _scan_sorted(
    store: DocumentStore, limit: int, offset: int
) -> list[dict[str, Any]]:
    # Visits every document, buffering only the newest offset+limit
    needed = offset + limit
    newest: list[tuple[str, int, dict[str, Any]]] = []
    seen = 0
    cursor: str | None = None

    while True:
        page = store.scan(limit=_BATCH_SIZE, cursor=cursor)
        for doc in page.items:
            entry = (doc.get("created_at") or "", seen, doc)
            seen += 1
            if len(newest) < needed:
                heapq.heappush(newest, entry)
            elif entry[:2] > newest[0][:2]:
                heapq.heapreplace(newest, entry)
        if page.cursor is None:
            break
        cursor = page.cursor

    ordered = sorted(newest, key=lambda e: e[:2], reverse=True)
    return [doc for _, _, doc in ordered[offset:needed]]
