"""Structured logging for VTO.

Text or JSON output, optional rotating log file, and per-thread worker
and task tags.
"""

from vto.logging.config import build_logging_config, configure_logging
from vto.logging.context import (
    WorkerContextFilter,
    clear_worker_context,
    get_worker_context,
    set_worker_context,
    task_context,
    worker_context,
)
from vto.logging.handlers import JSONFormatter

__all__ = [
    "JSONFormatter",
    "WorkerContextFilter",
    "build_logging_config",
    "clear_worker_context",
    "configure_logging",
    "get_worker_context",
    "set_worker_context",
    "task_context",
    "worker_context",
]
