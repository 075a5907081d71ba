"""Domain enums for task tracking."""

from enum import Enum


class TaskStatus(Enum):
    """Status of a transcode task.

    State transitions:
        pending → processing        (worker starts driving the task)
        pending → cancelled         (cancel action)
        processing → completed      (every requested type succeeded)
        processing → failed         (any type failed, download/upload failed,
                                     or abort action)
        any but processing → retrying (retry action)
        retrying → processing       (worker picks up the re-sent message)
    """

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    RETRYING = "retrying"
    CANCELLED = "cancelled"


class ProgressStatus(Enum):
    """Status of one transcode type within a task."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class ErrorStage(Enum):
    """Stage of task processing at which an error was recorded."""

    DOWNLOAD = "download"
    PREPARE = "prepare"
    TRANSCODE = "transcode"
    UPLOAD = "upload"
