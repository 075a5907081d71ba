"""Worker context for structured logging.

Worker threads record which worker they are and which task they are
driving in contextvars; WorkerContextFilter copies both onto every log
record emitted from that thread.
"""

from __future__ import annotations

import contextvars
import logging
from contextlib import contextmanager
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Generator

_worker_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "worker_id", default=None
)
_task_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "task_id", default=None
)

# Task ids are UUIDs or synthesized event ids; the text tag shows a prefix
_TASK_TAG_LENGTH = 8


def set_worker_context(worker_id: str, task_id: str | None = None) -> None:
    """Set the current worker context.

    Args:
        worker_id: Worker identifier (e.g., "01", "02").
        task_id: Task currently being processed, or None.
    """
    _worker_id.set(worker_id)
    _task_id.set(task_id)


def clear_worker_context() -> None:
    """Clear the current worker context."""
    _worker_id.set(None)
    _task_id.set(None)


@contextmanager
def worker_context(
    worker_id: str, task_id: str | None = None
) -> Generator[None, None, None]:
    """Set worker context on entry and restore the previous one on exit.

    Example:
        with worker_context("01", task.task_id):
            logger.info("Processing task")  # Tagged [W01:1f0c2a9e]
    """
    old_worker_id = _worker_id.get()
    old_task_id = _task_id.get()
    try:
        set_worker_context(worker_id, task_id)
        yield
    finally:
        _worker_id.set(old_worker_id)
        _task_id.set(old_task_id)


@contextmanager
def task_context(task_id: str) -> Generator[None, None, None]:
    """Attach a task id to the current worker context."""
    old_task_id = _task_id.get()
    try:
        _task_id.set(task_id)
        yield
    finally:
        _task_id.set(old_task_id)


def get_worker_context() -> tuple[str | None, str | None]:
    """Return (worker_id, task_id); either may be None."""
    return _worker_id.get(), _task_id.get()


class WorkerContextFilter(logging.Filter):
    """Logging filter that injects worker context into log records.

    Adds worker_id and task_id attributes for JSON output, and a compact
    worker_tag such as "[W01:1f0c2a9e] " for text output.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        worker_id, task_id = get_worker_context()

        record.worker_id = worker_id
        record.task_id = task_id

        if worker_id and task_id:
            record.worker_tag = f"[W{worker_id}:{task_id[:_TASK_TAG_LENGTH]}] "
        elif worker_id:
            record.worker_tag = f"[W{worker_id}] "
        elif task_id:
            record.worker_tag = f"[{task_id[:_TASK_TAG_LENGTH]}] "
        else:
            record.worker_tag = ""

        return True  # Never filter out records
