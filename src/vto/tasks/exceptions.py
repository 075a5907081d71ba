"""Exceptions for task lifecycle operations.

These let callers distinguish an unknown task from an operation that is
illegal for the task's current status.
"""

from __future__ import annotations

from vto.core.errors import VTOError
from vto.domain.enums import TaskStatus


class TaskError(VTOError):
    """Base exception for task lifecycle errors."""


class TaskNotFoundError(TaskError):
    """Raised when a task doesn't exist in the store.

    Attributes:
        task_id: The ID of the task that was not found.
        operation: The operation that was attempted (e.g., "retry", "cancel").
    """

    def __init__(self, task_id: str, operation: str = "get") -> None:
        self.task_id = task_id
        self.operation = operation
        super().__init__(f"Cannot {operation} task {task_id}: not found")


class InvalidStateError(TaskError):
    """Raised when an operation is illegal for the task's current status.

    Attributes:
        task_id: The ID of the task.
        operation: The operation that was attempted.
        status: The task's status at the time of the attempt.
    """

    def __init__(
        self,
        task_id: str,
        operation: str,
        status: TaskStatus,
        message: str | None = None,
    ) -> None:
        self.task_id = task_id
        self.operation = operation
        self.status = status
        default_msg = f"Cannot {operation} task {task_id} in status '{status.value}'"
        super().__init__(message or default_msg)


class RetryLimitExceededError(InvalidStateError):
    """Raised by retry when the retry ceiling is enforced and reached."""

    def __init__(self, task_id: str, status: TaskStatus, max_retries: int) -> None:
        self.max_retries = max_retries
        super().__init__(
            task_id,
            "retry",
            status,
            f"Cannot retry task {task_id}: retry limit of {max_retries} reached",
        )
