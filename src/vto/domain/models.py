"""Domain models for transcode tasks.

Task records are persisted as whole JSON documents. All timestamps are
ISO-8601 UTC strings, matching how they are stored.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from vto.domain.enums import ErrorStage, ProgressStatus, TaskStatus

DEFAULT_MAX_RETRIES = 3

# Bounds applied to captured command/output before persisting an ErrorDetail
MAX_ERROR_COMMAND_LENGTH = 1000
MAX_ERROR_OUTPUT_LENGTH = 5000
COMMAND_TRUNCATION_MARKER = "... [command truncated]"
OUTPUT_TRUNCATION_MARKER = "\n... [log truncated]"


def utc_now() -> datetime:
    """Return the current time in UTC."""
    return datetime.now(timezone.utc)


def date_partition_for(timestamp: datetime) -> str:
    """Return the YYYY-MM-DD partition key for a timestamp."""
    return timestamp.astimezone(timezone.utc).strftime("%Y-%m-%d")


def _truncate(value: str, limit: int, marker: str) -> str:
    if len(value) <= limit:
        return value
    return value[:limit] + marker


@dataclass
class ErrorDetail:
    """One entry in a task's error history."""

    stage: ErrorStage
    error: str
    transcode_type: str = ""  # empty for task-level failures
    command: str = ""
    output: str = ""
    timestamp: str = ""

    def truncated(self) -> ErrorDetail:
        """Return a copy with command and output bounded for storage."""
        return ErrorDetail(
            stage=self.stage,
            error=self.error,
            transcode_type=self.transcode_type,
            command=_truncate(
                self.command, MAX_ERROR_COMMAND_LENGTH, COMMAND_TRUNCATION_MARKER
            ),
            output=_truncate(
                self.output, MAX_ERROR_OUTPUT_LENGTH, OUTPUT_TRUNCATION_MARKER
            ),
            timestamp=self.timestamp,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "transcode_type": self.transcode_type,
            "stage": self.stage.value,
            "error": self.error,
            "command": self.command,
            "output": self.output,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ErrorDetail:
        return cls(
            stage=ErrorStage(data["stage"]),
            error=data.get("error", ""),
            transcode_type=data.get("transcode_type", ""),
            command=data.get("command", ""),
            output=data.get("output", ""),
            timestamp=data.get("timestamp", ""),
        )


@dataclass
class Task:
    """A durable unit of work converting one input into one or more outputs."""

    task_id: str
    date_partition: str  # YYYY-MM-DD of created_at
    input_container: str
    input_key: str
    output_container: str  # empty means "use the deployment default"
    transcode_types: list[str]
    status: TaskStatus
    created_at: str
    updated_at: str
    progress: dict[str, ProgressStatus] = field(default_factory=dict)
    output_files: dict[str, str] = field(default_factory=dict)
    error_message: str | None = None
    error_details: list[ErrorDetail] = field(default_factory=list)
    retry_count: int = 0
    max_retries: int = DEFAULT_MAX_RETRIES
    started_at: str | None = None
    completed_at: str | None = None

    @classmethod
    def new(
        cls,
        task_id: str,
        input_container: str,
        input_key: str,
        output_container: str,
        transcode_types: list[str],
        created: datetime | None = None,
        max_retries: int = DEFAULT_MAX_RETRIES,
    ) -> Task:
        """Build a fresh pending task with every type's progress at pending."""
        created = created or utc_now()
        timestamp = created.isoformat()
        return cls(
            task_id=task_id,
            date_partition=date_partition_for(created),
            input_container=input_container,
            input_key=input_key,
            output_container=output_container,
            transcode_types=list(transcode_types),
            status=TaskStatus.PENDING,
            created_at=timestamp,
            updated_at=timestamp,
            progress={t: ProgressStatus.PENDING for t in transcode_types},
            max_retries=max_retries,
        )

    @property
    def is_terminal(self) -> bool:
        return self.status in (
            TaskStatus.COMPLETED,
            TaskStatus.FAILED,
            TaskStatus.CANCELLED,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the stored document shape."""
        return {
            "task_id": self.task_id,
            "date_partition": self.date_partition,
            "input_container": self.input_container,
            "input_key": self.input_key,
            "output_container": self.output_container,
            "transcode_types": list(self.transcode_types),
            "status": self.status.value,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
            "progress": {k: v.value for k, v in self.progress.items()},
            "output_files": dict(self.output_files),
            "error_message": self.error_message,
            "error_details": [d.to_dict() for d in self.error_details],
            "retry_count": self.retry_count,
            "max_retries": self.max_retries,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Task:
        """Rebuild a Task from its stored document."""
        return cls(
            task_id=data["task_id"],
            date_partition=data["date_partition"],
            input_container=data.get("input_container", ""),
            input_key=data.get("input_key", ""),
            output_container=data.get("output_container", ""),
            transcode_types=list(data.get("transcode_types", [])),
            status=TaskStatus(data["status"]),
            created_at=data["created_at"],
            updated_at=data.get("updated_at", data["created_at"]),
            started_at=data.get("started_at"),
            completed_at=data.get("completed_at"),
            progress={
                k: ProgressStatus(v) for k, v in data.get("progress", {}).items()
            },
            output_files=dict(data.get("output_files", {})),
            error_message=data.get("error_message"),
            error_details=[
                ErrorDetail.from_dict(d) for d in data.get("error_details", [])
            ],
            retry_count=data.get("retry_count", 0),
            max_retries=data.get("max_retries", DEFAULT_MAX_RETRIES),
        )


@dataclass(frozen=True)
class QueueMessage:
    """Wire payload describing one unit of transcode work."""

    task_id: str
    input_container: str
    input_key: str
    transcode_types: tuple[str, ...]
    output_container: str = ""

    @classmethod
    def for_task(cls, task: Task) -> QueueMessage:
        return cls(
            task_id=task.task_id,
            input_container=task.input_container,
            input_key=task.input_key,
            transcode_types=tuple(task.transcode_types),
            output_container=task.output_container,
        )


@dataclass
class TaskListResult:
    """One page of a task listing plus the total matching count."""

    tasks: list[Task]
    total: int
    limit: int
    offset: int

    @property
    def has_more(self) -> bool:
        return self.offset + len(self.tasks) < self.total
