"""Authoritative store for transcode task records.

Every mutation is a read-modify-write of the whole task document. There is
no version token, so two writers updating the same task concurrently (for
example after a duplicate queue delivery) can lose one update; the last
writer wins.

Errors:
    TaskNotFoundError: the task does not exist.
    InvalidStateError: the operation is illegal for the current status.
    StorageError: the document store failed. Never retried here.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from datetime import datetime

from vto.db.interface import DocumentStore
from vto.domain import (
    DEFAULT_MAX_RETRIES,
    ErrorDetail,
    ProgressStatus,
    Task,
    TaskListResult,
    TaskStatus,
    utc_now,
)
from vto.tasks.exceptions import (
    InvalidStateError,
    RetryLimitExceededError,
    TaskNotFoundError,
)
from vto.tasks.listing import (
    DEFAULT_LIST_LIMIT,
    MAX_LIST_LIMIT,
    clamp_limit,
    list_documents,
)

logger = logging.getLogger(__name__)


class TaskStore:
    """Creates, reads, and mutates task records."""

    def __init__(
        self,
        documents: DocumentStore,
        *,
        max_retries: int = DEFAULT_MAX_RETRIES,
        enforce_max_retries: bool = False,
        list_limit_default: int = DEFAULT_LIST_LIMIT,
        list_limit_max: int = MAX_LIST_LIMIT,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Initialize the store.

        Args:
            documents: Backing document store.
            max_retries: Retry ceiling recorded on newly created tasks.
            enforce_max_retries: When True, retry() refuses tasks whose
                retry_count has reached their max_retries.
            list_limit_default: Page size used when none is requested.
            list_limit_max: Upper bound for requested page sizes.
            clock: Source of the current time (injectable for tests).
        """
        self._documents = documents
        self._max_retries = max_retries
        self._enforce_max_retries = enforce_max_retries
        self._list_limit_default = list_limit_default
        self._list_limit_max = list_limit_max
        self._clock = clock

    # ------------------------------------------------------------------
    # Creation and lookup
    # ------------------------------------------------------------------

    def create(
        self,
        input_container: str,
        input_key: str,
        transcode_types: list[str],
        output_container: str = "",
    ) -> Task:
        """Create a new pending task with a generated identifier."""
        return self._insert(
            str(uuid.uuid4()),
            input_container,
            input_key,
            transcode_types,
            output_container,
        )

    def create_with_id(
        self,
        task_id: str,
        input_container: str,
        input_key: str,
        transcode_types: list[str],
        output_container: str = "",
    ) -> Task:
        """Create a task under a caller-supplied identifier if absent.

        Used when a worker receives a message for a task it has never seen,
        such as one synthesized from a storage-creation event. If the task
        already exists it is returned unchanged.
        """
        existing = self._documents.get(task_id)
        if existing is not None:
            return Task.from_dict(existing)
        return self._insert(
            task_id, input_container, input_key, transcode_types, output_container
        )

    def get(self, task_id: str) -> Task:
        """Return a task.

        Raises:
            TaskNotFoundError: If the task does not exist.
        """
        return self._load(task_id, "get")

    def list(
        self,
        status: TaskStatus | str | None = None,
        date: str | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> TaskListResult:
        """List tasks newest first with optional status and date filters.

        Args:
            status: Only tasks with this status.
            date: Only tasks created on this YYYY-MM-DD date (UTC).
            limit: Page size, clamped to 1..list_limit_max.
            offset: Number of matching tasks to skip.

        Returns:
            TaskListResult with the page and the total matching count.
        """
        status_value = status.value if isinstance(status, TaskStatus) else status
        page_size = clamp_limit(limit, self._list_limit_default, self._list_limit_max)
        offset = max(offset, 0)
        documents, total = list_documents(
            self._documents, status_value or None, date or None, page_size, offset
        )
        return TaskListResult(
            tasks=[Task.from_dict(d) for d in documents],
            total=total,
            limit=page_size,
            offset=offset,
        )

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def update_status(
        self,
        task_id: str,
        status: TaskStatus,
        error_message: str | None = None,
    ) -> Task:
        """Set a task's status.

        Entering PROCESSING stamps started_at if it is not already set.
        Entering COMPLETED or FAILED stamps completed_at. A non-empty
        error_message replaces the stored one.
        """
        task = self._load(task_id, "update")
        now = self._now()
        task.status = status
        if status is TaskStatus.PROCESSING and task.started_at is None:
            task.started_at = now
        if status in (TaskStatus.COMPLETED, TaskStatus.FAILED):
            task.completed_at = now
        if error_message:
            task.error_message = error_message
        self._save(task, now)
        logger.debug("Task %s status -> %s", task_id, status.value)
        return task

    def update_progress(
        self, task_id: str, transcode_type: str, status: ProgressStatus
    ) -> Task:
        """Set the progress entry for one transcode type."""
        task = self._load(task_id, "update progress of")
        task.progress[transcode_type] = status
        self._save(task)
        return task

    def add_output(self, task_id: str, transcode_type: str, output_key: str) -> Task:
        """Register the output object key for a completed transcode type."""
        task = self._load(task_id, "add output to")
        task.output_files[transcode_type] = output_key
        self._save(task)
        return task

    def add_error_detail(self, task_id: str, detail: ErrorDetail) -> Task:
        """Append an error record, truncating command and output.

        The detail is timestamped here if it carries no timestamp.
        """
        task = self._load(task_id, "add error to")
        now = self._now()
        stored = detail.truncated()
        if not stored.timestamp:
            stored.timestamp = now
        task.error_details.append(stored)
        self._save(task, now)
        return task

    def retry(self, task_id: str) -> Task:
        """Reset a task so it can be processed again.

        Increments retry_count, clears the error message and history,
        clears started/completed timestamps and outputs, resets every
        progress entry to pending, and sets status to RETRYING.

        Raises:
            TaskNotFoundError: If the task does not exist.
            InvalidStateError: If the task is PROCESSING.
            RetryLimitExceededError: If the ceiling is enforced and reached.
        """
        task = self._load(task_id, "retry")
        if task.status is TaskStatus.PROCESSING:
            raise InvalidStateError(task_id, "retry", task.status)
        if self._enforce_max_retries and task.retry_count >= task.max_retries:
            raise RetryLimitExceededError(task_id, task.status, task.max_retries)

        task.retry_count += 1
        task.status = TaskStatus.RETRYING
        task.error_message = None
        task.error_details = []
        task.started_at = None
        task.completed_at = None
        task.output_files = {}
        task.progress = {t: ProgressStatus.PENDING for t in task.transcode_types}
        self._save(task)
        logger.info("Task %s reset for retry #%d", task_id, task.retry_count)
        return task

    def mark_incomplete_as_failed(self, task_id: str) -> Task:
        """Flip every progress entry that is not COMPLETED to FAILED."""
        task = self._load(task_id, "abort")
        for transcode_type, status in task.progress.items():
            if status is not ProgressStatus.COMPLETED:
                task.progress[transcode_type] = ProgressStatus.FAILED
        self._save(task)
        return task

    def is_aborted(self, task_id: str) -> bool:
        """True if a task being driven by a worker is no longer PROCESSING.

        A task that cannot be read counts as aborted so the worker stops
        launching further encodes for it.
        """
        document = self._documents.get(task_id)
        if document is None:
            return True
        return document.get("status") != TaskStatus.PROCESSING.value

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _insert(
        self,
        task_id: str,
        input_container: str,
        input_key: str,
        transcode_types: list[str],
        output_container: str,
    ) -> Task:
        task = Task.new(
            task_id=task_id,
            input_container=input_container,
            input_key=input_key,
            output_container=output_container,
            transcode_types=transcode_types,
            created=self._clock(),
            max_retries=self._max_retries,
        )
        self._documents.put(task.task_id, task.to_dict())
        logger.info(
            "Created task %s for %s/%s (%s)",
            task.task_id,
            input_container,
            input_key,
            ", ".join(transcode_types),
        )
        return task

    def _load(self, task_id: str, operation: str) -> Task:
        document = self._documents.get(task_id)
        if document is None:
            raise TaskNotFoundError(task_id, operation)
        return Task.from_dict(document)

    def _save(self, task: Task, now: str | None = None) -> None:
        task.updated_at = now or self._now()
        self._documents.put(task.task_id, task.to_dict())

    def _now(self) -> str:
        return self._clock().isoformat()
