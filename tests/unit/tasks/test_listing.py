"""Unit tests for task listing (filters, paging, totals)."""

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from conftest import FakeClock
from vto.core.errors import StorageError
from vto.db import SQLiteDocumentStore
from vto.domain import TaskStatus
from vto.tasks import TaskStore
from vto.tasks.listing import (
    ListStrategy,
    clamp_limit,
    count_documents,
    select_strategy,
)


@pytest.fixture
def listing_store(document_store: SQLiteDocumentStore) -> TaskStore:
    """Five tasks on 2024-05-01 and three on 2024-05-02, one second apart."""
    store = TaskStore(
        document_store,
        clock=FakeClock(datetime(2024, 5, 1, 20, 0, tzinfo=timezone.utc)),
    )
    for i in range(5):
        store.create("inbox", f"day1-{i}.mov", ["thumbnail"])
    store._clock = FakeClock(datetime(2024, 5, 2, 8, 0, tzinfo=timezone.utc))
    for i in range(3):
        task = store.create("inbox", f"day2-{i}.mov", ["thumbnail"])
        if i < 2:
            store.update_status(task.task_id, TaskStatus.FAILED)
    return store


class TestClampLimit:
    """Tests for clamp_limit."""

    @pytest.mark.parametrize(
        ("requested", "expected"),
        [(None, 10), (0, 10), (-5, 10), (1, 1), (50, 50), (100, 100), (500, 100)],
    )
    def test_clamp(self, requested, expected) -> None:
        """Should fall back to 10 and cap at 100."""
        assert clamp_limit(requested) == expected


class TestSelectStrategy:
    """Tests for select_strategy."""

    def test_date_wins_over_status(self) -> None:
        """Should use the date index whenever a date is given."""
        assert select_strategy("failed", "2024-05-01") is ListStrategy.DATE
        assert select_strategy("failed", None) is ListStrategy.STATUS
        assert select_strategy(None, None) is ListStrategy.SCAN


class TestListTasks:
    """Tests for TaskStore.list."""

    def test_unfiltered_newest_first(self, listing_store: TaskStore) -> None:
        """Should list every task newest first with the full total."""
        result = listing_store.list(limit=3)

        assert result.total == 8
        assert [t.input_key for t in result.tasks] == [
            "day2-2.mov",
            "day2-1.mov",
            "day2-0.mov",
        ]
        assert result.has_more

    def test_status_filter_total_independent_of_page(
        self, listing_store: TaskStore
    ) -> None:
        """Should report the total matching count, not the page size."""
        result = listing_store.list(status=TaskStatus.PENDING, limit=2)

        assert result.total == 6
        assert len(result.tasks) == 2
        assert all(t.status is TaskStatus.PENDING for t in result.tasks)
        assert result.tasks[0].input_key == "day2-2.mov"

    def test_date_filter_with_offset(self, listing_store: TaskStore) -> None:
        """Should skip offset matches within the date partition."""
        result = listing_store.list(date="2024-05-01", limit=2, offset=3)

        assert result.total == 5
        assert [t.input_key for t in result.tasks] == ["day1-1.mov", "day1-0.mov"]
        assert not result.has_more

    def test_date_and_status_filters(self, listing_store: TaskStore) -> None:
        """Should combine date and status filters."""
        result = listing_store.list(status="failed", date="2024-05-02")

        assert result.total == 2
        assert {t.input_key for t in result.tasks} == {"day2-0.mov", "day2-1.mov"}

    def test_offset_past_total_is_empty(self, listing_store: TaskStore) -> None:
        """Should return an empty page when offset >= total."""
        result = listing_store.list(status="failed", offset=2)

        assert result.tasks == []
        assert result.total == 2

    def test_limit_clamped(self, listing_store: TaskStore) -> None:
        """Should clamp the page size to the configured maximum."""
        assert listing_store.list(limit=1000).limit == 100
        assert listing_store.list(limit=0).limit == 10


class TestCountErrors:
    """Tests for persistence failures while counting."""

    def test_status_count_error_propagates(self) -> None:
        """Should raise the storage error instead of counting another way."""
        store = MagicMock()
        store.query.side_effect = StorageError("index unavailable")

        with pytest.raises(StorageError, match="index unavailable"):
            count_documents(store, "pending", None)
        store.scan.assert_not_called()
