"""Producer-side task operations.

TaskService pairs TaskStore mutations with the queue actions that must
follow them: submit creates then enqueues, retry resets then re-enqueues,
cancel removes the queued message, and abort stops a running task.

A task is persisted before its message is sent. If the send fails the
task stays PENDING with no message; retry() re-enqueues it.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from vto.core.errors import QueueError, ValidationError
from vto.domain import QueueMessage, Task, TaskStatus
from vto.tasks.exceptions import InvalidStateError
from vto.tasks.store import TaskStore

if TYPE_CHECKING:
    from vto.executor.engine import ExecutionEngine
    from vto.executor.profiles import ProfileRegistry
    from vto.queue.broker import QueueBroker

logger = logging.getLogger(__name__)

CANCELLED_MESSAGE = "cancelled by user"
ABORTED_MESSAGE = "aborted by user"


class TaskService:
    """Create, retry, cancel, and abort transcode tasks."""

    def __init__(
        self,
        store: TaskStore,
        queue: QueueBroker,
        registry: ProfileRegistry | None = None,
        engine: ExecutionEngine | None = None,
    ) -> None:
        """Initialize the service.

        Args:
            store: Task store.
            queue: Work queue.
            registry: When given, submit() rejects unknown transcode types.
            engine: When given, abort() also terminates the task's encode if
                it is running in this process. Workers in other processes
                notice the abort at their next abort check.
        """
        self.store = store
        self.queue = queue
        self.registry = registry
        self.engine = engine

    def submit(
        self,
        input_container: str,
        input_key: str,
        transcode_types: list[str],
        output_container: str | None = None,
    ) -> Task:
        """Create a pending task and enqueue it.

        Raises:
            ValidationError: If the input is incomplete or a transcode type
                is unknown.
            StorageError: If the task cannot be persisted.
            QueueError: If the message cannot be sent.
        """
        if not input_container or not input_key:
            raise ValidationError("input container and key are required")
        if not transcode_types:
            raise ValidationError("at least one transcode type is required")
        if self.registry is not None:
            unknown = [t for t in transcode_types if t not in self.registry]
            if unknown:
                raise ValidationError(
                    f"unknown transcode types: {', '.join(unknown)}"
                )

        task = self.store.create(
            input_container, input_key, list(transcode_types), output_container or ""
        )
        self.queue.send(QueueMessage.for_task(task))
        return task

    def retry(self, task_id: str) -> Task:
        """Reset a task and enqueue it again.

        Raises:
            TaskNotFoundError: If the task does not exist.
            InvalidStateError: If the task is PROCESSING (or the enforced
                retry ceiling is reached).
        """
        task = self.store.retry(task_id)
        self.queue.send(QueueMessage.for_task(task))
        return task

    def cancel(self, task_id: str) -> tuple[Task, bool]:
        """Cancel a pending task.

        Removal of its queued message is best effort; a worker that still
        receives it will find the task CANCELLED.

        Returns:
            (task, removed) where removed tells whether the queued message
            was found and deleted.

        Raises:
            TaskNotFoundError: If the task does not exist.
            InvalidStateError: If the task is not PENDING.
        """
        task = self.store.get(task_id)
        if task.status is not TaskStatus.PENDING:
            raise InvalidStateError(task_id, "cancel", task.status)

        try:
            removed = self.queue.remove_by_task_id(task_id)
        except QueueError as e:
            logger.warning("Could not remove queued message for %s: %s", task_id, e)
            removed = False

        task = self.store.update_status(
            task_id, TaskStatus.CANCELLED, error_message=CANCELLED_MESSAGE
        )
        logger.info("Cancelled task %s (queue message removed: %s)", task_id, removed)
        return task, removed

    def abort(self, task_id: str) -> Task:
        """Stop a processing task.

        Marks every per-type entry that is not COMPLETED as FAILED, sets the
        task FAILED, then terminates its running encode if this process
        owns it.

        Raises:
            TaskNotFoundError: If the task does not exist.
            InvalidStateError: If the task is not PROCESSING.
        """
        task = self.store.get(task_id)
        if task.status is not TaskStatus.PROCESSING:
            raise InvalidStateError(task_id, "abort", task.status)

        self.store.mark_incomplete_as_failed(task_id)
        task = self.store.update_status(
            task_id, TaskStatus.FAILED, error_message=ABORTED_MESSAGE
        )
        if self.engine is not None and self.engine.terminate(task_id):
            logger.info("Terminated running encode for task %s", task_id)
        logger.info("Aborted task %s", task_id)
        return task
