"""Drives one queued task from download to final status.

For each received message the processor:

1. Loads the task, creating it under the message's id if it has never
   been seen (storage-event messages).
2. Sets it PROCESSING and downloads the input into a per-task scratch
   directory. A download failure fails the whole task.
3. Runs each requested transcode type in order. Every type checks for an
   external abort before encoding and again before uploading; an abort
   stops the loop and the pending output is discarded. While an encode
   runs, a watcher thread polls the task status and terminates the
   encoder as soon as the task stops being PROCESSING.
4. Sets the final status: aborted tasks are left as the abort left them,
   any failed type fails the task, otherwise it is COMPLETED. An encode
   killed without an abort (worker shutdown) fails the task right away,
   marking every unfinished type FAILED.

Failures of one type are recorded on the task (error detail plus FAILED
progress) and do not stop the remaining types.
"""

from __future__ import annotations

import logging
import shutil
import tempfile
import threading
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from enum import Enum
from pathlib import Path, PurePosixPath

from vto.core.errors import BlobStoreError, EncodeFailure, StorageError, VTOError
from vto.domain import (
    ErrorDetail,
    ErrorStage,
    ProgressStatus,
    QueueMessage,
    Task,
    TaskStatus,
)
from vto.executor.engine import ExecutionEngine
from vto.executor.profiles import ProfileNotFoundError
from vto.storage.blob import BlobStore
from vto.tasks.exceptions import TaskNotFoundError
from vto.tasks.store import TaskStore

logger = logging.getLogger(__name__)

PARTIAL_FAILURE_MESSAGE = "some transcode types failed"
INTERRUPTED_MESSAGE = "interrupted by worker shutdown"
DEFAULT_ABORT_CHECK_INTERVAL = 2.0


class TaskOutcome(Enum):
    """How processing of one message ended."""

    COMPLETED = "completed"
    FAILED = "failed"
    ABORTED = "aborted"
    SKIPPED = "skipped"


def output_filename(
    input_key: str, transcode_type: str, extension: str, timestamp: int
) -> str:
    """Name an output as <input-stem>_<type>_<unix-ts>.<ext>."""
    stem = PurePosixPath(input_key).stem or "output"
    return f"{stem}_{transcode_type}_{timestamp}.{extension}"


class TaskProcessor:
    """Executes queued tasks against a blob store and an execution engine."""

    def __init__(
        self,
        store: TaskStore,
        blobs: BlobStore,
        engine: ExecutionEngine,
        temp_dir: Path,
        default_output_container: str,
        abort_check_interval: float = DEFAULT_ABORT_CHECK_INTERVAL,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the processor.

        Args:
            store: Task store.
            blobs: Blob store for inputs and outputs.
            engine: Execution engine shared by all workers.
            temp_dir: Parent of the per-task scratch directories.
            default_output_container: Used when neither the message nor the
                task names an output container.
            abort_check_interval: Seconds between status checks while an
                encode is running.
            clock: Source of the unix timestamp used in output names.
        """
        self.store = store
        self.blobs = blobs
        self.engine = engine
        self.temp_dir = temp_dir
        self.default_output_container = default_output_container
        self.abort_check_interval = abort_check_interval
        self._clock = clock

    def process(self, message: QueueMessage) -> TaskOutcome:
        """Process one message. Never raises.

        Unexpected errors are logged with traceback and, when the store is
        reachable, recorded as a task-level failure.
        """
        try:
            return self._process(message)
        except Exception as e:
            logger.exception("Task %s failed with exception", message.task_id)
            self._fail_task(message.task_id, f"unexpected error: {e}")
            return TaskOutcome.FAILED

    def _process(self, message: QueueMessage) -> TaskOutcome:
        task = self._resolve_task(message)
        if task.status is TaskStatus.CANCELLED:
            logger.info("Skipping cancelled task %s", task.task_id)
            return TaskOutcome.SKIPPED

        task_id = task.task_id
        self.store.update_status(task_id, TaskStatus.PROCESSING)
        logger.info(
            "Processing task %s: %s/%s (%s)",
            task_id,
            message.input_container,
            message.input_key,
            ", ".join(message.transcode_types),
        )

        self.temp_dir.mkdir(parents=True, exist_ok=True)
        workdir = Path(tempfile.mkdtemp(prefix=f"{task_id}-", dir=self.temp_dir))
        try:
            input_path = self._download(message, workdir)
            if input_path is None:
                return TaskOutcome.FAILED
            output_container = (
                message.output_container
                or task.output_container
                or self.default_output_container
            )
            stopped, has_error = self._run_types(
                message, input_path, workdir, output_container
            )
        finally:
            shutil.rmtree(workdir, ignore_errors=True)

        if stopped is TaskOutcome.ABORTED:
            logger.info("Task %s was aborted", task_id)
            return TaskOutcome.ABORTED
        if stopped is TaskOutcome.FAILED:
            return TaskOutcome.FAILED
        if has_error:
            self.store.update_status(
                task_id, TaskStatus.FAILED, error_message=PARTIAL_FAILURE_MESSAGE
            )
            logger.error("Task %s failed: %s", task_id, PARTIAL_FAILURE_MESSAGE)
            return TaskOutcome.FAILED
        self.store.update_status(task_id, TaskStatus.COMPLETED)
        logger.info("Task %s completed successfully", task_id)
        return TaskOutcome.COMPLETED

    def _resolve_task(self, message: QueueMessage) -> Task:
        try:
            return self.store.get(message.task_id)
        except TaskNotFoundError:
            logger.info("Task %s not found, creating it", message.task_id)
            return self.store.create_with_id(
                message.task_id,
                message.input_container,
                message.input_key,
                list(message.transcode_types),
                message.output_container,
            )

    def _download(self, message: QueueMessage, workdir: Path) -> Path | None:
        name = PurePosixPath(message.input_key).name or "input"
        try:
            return self.blobs.download(
                message.input_container, message.input_key, workdir / name
            )
        except BlobStoreError as e:
            logger.error("Download failed for task %s: %s", message.task_id, e)
            self.store.add_error_detail(
                message.task_id,
                ErrorDetail(
                    stage=ErrorStage.DOWNLOAD,
                    error=str(e),
                    output=(
                        f"Bucket: {message.input_container}, "
                        f"Key: {message.input_key}"
                    ),
                ),
            )
            self.store.update_status(
                message.task_id,
                TaskStatus.FAILED,
                error_message=f"failed to download input: {e}",
            )
            return None

    def _run_types(
        self,
        message: QueueMessage,
        input_path: Path,
        workdir: Path,
        output_container: str,
    ) -> tuple[TaskOutcome | None, bool]:
        """Run every transcode type in order.

        Returns:
            (stopped, has_error). stopped is ABORTED when the task was
            aborted, FAILED when an encode was killed by shutdown (the
            task status is already written), None when every type ran.
        """
        task_id = message.task_id
        has_error = False

        for transcode_type in message.transcode_types:
            if self.store.is_aborted(task_id):
                return TaskOutcome.ABORTED, has_error

            self.store.update_progress(
                task_id, transcode_type, ProgressStatus.PROCESSING
            )

            try:
                profile = self.engine.registry.get(transcode_type)
            except ProfileNotFoundError as e:
                self._record_failure(task_id, transcode_type, ErrorStage.PREPARE, e)
                has_error = True
                continue

            output_name = output_filename(
                message.input_key,
                transcode_type,
                profile.output_ext,
                int(self._clock()),
            )
            output_path = workdir / output_name

            try:
                with self._watch_for_abort(task_id):
                    self.engine.transcode(
                        transcode_type, input_path, output_path, task_id=task_id
                    )
            except EncodeFailure as e:
                output_path.unlink(missing_ok=True)
                if self.store.is_aborted(task_id):
                    return TaskOutcome.ABORTED, has_error
                if e.result.terminated:
                    self._fail_interrupted(task_id, transcode_type, e)
                    return TaskOutcome.FAILED, True
                self._record_failure(
                    task_id,
                    transcode_type,
                    ErrorStage.TRANSCODE,
                    e,
                    command=e.result.command_line,
                    output=e.result.output,
                )
                has_error = True
                continue

            if self.store.is_aborted(task_id):
                logger.info(
                    "Task %s aborted during %s, discarding output",
                    task_id,
                    transcode_type,
                )
                output_path.unlink(missing_ok=True)
                return TaskOutcome.ABORTED, has_error

            try:
                self.blobs.upload(output_path, output_container, output_name)
            except BlobStoreError as e:
                self._record_failure(task_id, transcode_type, ErrorStage.UPLOAD, e)
                has_error = True
                continue
            finally:
                output_path.unlink(missing_ok=True)

            self.store.add_output(task_id, transcode_type, output_name)
            self.store.update_progress(
                task_id, transcode_type, ProgressStatus.COMPLETED
            )
            logger.info(
                "Uploaded %s output to %s/%s",
                transcode_type,
                output_container,
                output_name,
            )

        return None, has_error

    def _record_failure(
        self,
        task_id: str,
        transcode_type: str,
        stage: ErrorStage,
        error: Exception,
        command: str = "",
        output: str = "",
    ) -> None:
        logger.error(
            "%s failed at %s stage for task %s: %s",
            transcode_type,
            stage.value,
            task_id,
            error,
        )
        self.store.add_error_detail(
            task_id,
            ErrorDetail(
                stage=stage,
                error=str(error),
                transcode_type=transcode_type,
                command=command,
                output=output,
            ),
        )
        self.store.update_progress(task_id, transcode_type, ProgressStatus.FAILED)

    def _fail_interrupted(
        self, task_id: str, transcode_type: str, error: EncodeFailure
    ) -> None:
        self._record_failure(
            task_id,
            transcode_type,
            ErrorStage.TRANSCODE,
            error,
            command=error.result.command_line,
            output=error.result.output,
        )
        self.store.mark_incomplete_as_failed(task_id)
        self.store.update_status(
            task_id, TaskStatus.FAILED, error_message=INTERRUPTED_MESSAGE
        )
        logger.error("Task %s failed: %s", task_id, INTERRUPTED_MESSAGE)

    @contextmanager
    def _watch_for_abort(self, task_id: str) -> Iterator[None]:
        """Terminate the task's encode if the task is aborted meanwhile.

        Polling continues after an abort is seen so that a software retry
        started after a hardware failure is terminated too.
        """
        stop = threading.Event()

        def watch() -> None:
            announced = False
            while not stop.wait(self.abort_check_interval):
                try:
                    aborted = self.store.is_aborted(task_id)
                except StorageError as e:
                    logger.warning("Abort check failed for task %s: %s", task_id, e)
                    continue
                if not aborted:
                    continue
                if not announced:
                    logger.info("Task %s aborted, stopping its encode", task_id)
                    announced = True
                self.engine.terminate(task_id)

        watcher = threading.Thread(
            target=watch, daemon=True, name=f"abort-watch-{task_id[:8]}"
        )
        watcher.start()
        try:
            yield
        finally:
            stop.set()
            watcher.join(timeout=self.abort_check_interval)

    def _fail_task(self, task_id: str, error_message: str) -> None:
        try:
            self.store.update_status(
                task_id, TaskStatus.FAILED, error_message=error_message
            )
        except VTOError as e:
            logger.error("Could not record failure of task %s: %s", task_id, e)
