"""Domain models and enums for the Video Transcode Orchestrator.

Usage:
    from vto.domain import Task, TaskStatus, QueueMessage
"""

from .enums import ErrorStage, ProgressStatus, TaskStatus
from .models import (
    DEFAULT_MAX_RETRIES,
    ErrorDetail,
    QueueMessage,
    Task,
    TaskListResult,
    date_partition_for,
    utc_now,
)

__all__ = [
    # Models
    "ErrorDetail",
    "QueueMessage",
    "Task",
    "TaskListResult",
    # Enums
    "ErrorStage",
    "ProgressStatus",
    "TaskStatus",
    # Helpers
    "DEFAULT_MAX_RETRIES",
    "date_partition_for",
    "utc_now",
]
