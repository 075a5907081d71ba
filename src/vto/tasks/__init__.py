"""Task lifecycle: persistence, listing, and producer-side operations."""

from vto.tasks.exceptions import (
    InvalidStateError,
    RetryLimitExceededError,
    TaskError,
    TaskNotFoundError,
)
from vto.tasks.service import TaskService
from vto.tasks.store import TaskStore

__all__ = [
    "InvalidStateError",
    "RetryLimitExceededError",
    "TaskError",
    "TaskNotFoundError",
    "TaskService",
    "TaskStore",
]
