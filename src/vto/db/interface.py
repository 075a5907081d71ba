"""Document store contract used by the task store.

The task store only needs point get/put/delete, a full scan, and two
secondary-index query paths. Each list path supports an equality filter,
a pagination cursor, and a count-only projection.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol


class IndexName(Enum):
    """Secondary indexes over task documents.

    Both indexes are ordered by the document's created_at attribute.
    """

    STATUS = "status-index"
    DATE = "date-index"


@dataclass
class Page:
    """One page of documents returned by a scan or query.

    Attributes:
        items: Documents on this page (empty in count-only mode).
        count: Number of matching documents. In count-only mode this is the
            total; otherwise it equals len(items).
        cursor: Opaque cursor to pass back for the next page, or None when
            there are no more results.
    """

    items: list[dict[str, Any]] = field(default_factory=list)
    count: int = 0
    cursor: str | None = None


class DocumentStore(Protocol):
    """Keyed JSON document storage with secondary indexes."""

    def get(self, key: str) -> dict[str, Any] | None:
        """Return the document stored under key, or None."""
        ...

    def put(self, key: str, document: dict[str, Any]) -> None:
        """Store a document, replacing any existing one."""
        ...

    def delete(self, key: str) -> bool:
        """Delete a document. Returns True if one was removed."""
        ...

    def scan(
        self,
        *,
        filter: dict[str, str] | None = None,
        limit: int | None = None,
        cursor: str | None = None,
        count_only: bool = False,
    ) -> Page:
        """Read documents in storage order. Ordering is not guaranteed."""
        ...

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
        """Read documents whose index attribute equals value.

        Results are ordered by created_at, ascending when forward is True
        and descending otherwise.
        """
        ...
