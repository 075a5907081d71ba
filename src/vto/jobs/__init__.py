"""Worker side: task processing and the queue-polling worker pool."""

from vto.jobs.processor import TaskOutcome, TaskProcessor, output_filename
from vto.jobs.worker import TranscodeWorker, WorkerPool

__all__ = [
    "TaskOutcome",
    "TaskProcessor",
    "TranscodeWorker",
    "WorkerPool",
    "output_filename",
]
