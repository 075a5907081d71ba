"""Unit tests for producer-side task operations."""

from unittest.mock import MagicMock

import pytest

from vto.core.errors import QueueError, ValidationError
from vto.domain import ProgressStatus, TaskStatus
from vto.executor import ProfileRegistry
from vto.queue import QueueBroker
from vto.tasks import InvalidStateError, TaskNotFoundError, TaskService, TaskStore
from vto.tasks.service import ABORTED_MESSAGE, CANCELLED_MESSAGE


@pytest.fixture
def service(task_store: TaskStore, queue: QueueBroker) -> TaskService:
    return TaskService(task_store, queue, registry=ProfileRegistry())


class TestSubmit:
    """Tests for TaskService.submit."""

    def test_submit_creates_and_enqueues(
        self, service: TaskService, queue: QueueBroker
    ) -> None:
        """Should persist a pending task and send its message."""
        task = service.submit("inbox", "a.mov", ["mp4_standard", "thumbnail"])

        assert task.status is TaskStatus.PENDING
        assert task.progress == {
            "mp4_standard": ProgressStatus.PENDING,
            "thumbnail": ProgressStatus.PENDING,
        }
        received = queue.receive()
        assert received[0].message.task_id == task.task_id
        assert received[0].message.transcode_types == ("mp4_standard", "thumbnail")

    def test_unknown_type_rejected(
        self, service: TaskService, task_store: TaskStore
    ) -> None:
        """Should refuse transcode types missing from the registry."""
        with pytest.raises(ValidationError, match="bogus"):
            service.submit("inbox", "a.mov", ["mp4_standard", "bogus"])

        assert task_store.list().total == 0

    @pytest.mark.parametrize(
        ("container", "key", "types"),
        [
            ("", "a.mov", ["thumbnail"]),
            ("inbox", "", ["thumbnail"]),
            ("inbox", "a", []),
        ],
    )
    def test_incomplete_input_rejected(
        self, service: TaskService, container: str, key: str, types: list[str]
    ) -> None:
        """Should require a container, a key, and at least one type."""
        with pytest.raises(ValidationError):
            service.submit(container, key, types)

    def test_send_failure_leaves_pending_task(self, task_store: TaskStore) -> None:
        """Should keep the persisted task when the queue send fails."""
        queue = MagicMock()
        queue.send.side_effect = QueueError("broker down")
        service = TaskService(task_store, queue)

        with pytest.raises(QueueError):
            service.submit("inbox", "a.mov", ["thumbnail"])

        listing = task_store.list()
        assert listing.total == 1
        assert listing.tasks[0].status is TaskStatus.PENDING


class TestRetry:
    """Tests for TaskService.retry."""

    def test_retry_failed_task(
        self, service: TaskService, task_store: TaskStore, queue: QueueBroker
    ) -> None:
        """Should reset a failed task and enqueue it again."""
        task = service.submit("inbox", "a.mov", ["mp4_standard"])
        queue.purge()
        task_store.update_status(task.task_id, TaskStatus.FAILED, "boom")

        retried = service.retry(task.task_id)

        assert retried.status is TaskStatus.RETRYING
        assert retried.retry_count == 1
        assert retried.error_message is None
        assert queue.receive()[0].message.task_id == task.task_id

    def test_retry_processing_rejected(
        self, service: TaskService, task_store: TaskStore, queue: QueueBroker
    ) -> None:
        """Should refuse to retry a task that is processing."""
        task = service.submit("inbox", "a.mov", ["mp4_standard"])
        queue.purge()
        task_store.update_status(task.task_id, TaskStatus.PROCESSING)

        with pytest.raises(InvalidStateError):
            service.retry(task.task_id)
        assert queue.status().total == 0


class TestCancel:
    """Tests for TaskService.cancel."""

    def test_cancel_pending_removes_message(
        self, service: TaskService, queue: QueueBroker
    ) -> None:
        """Should cancel the task and delete its queued message."""
        task = service.submit("inbox", "a.mov", ["mp4_standard"])

        cancelled, removed = service.cancel(task.task_id)

        assert removed is True
        assert cancelled.status is TaskStatus.CANCELLED
        assert cancelled.error_message == CANCELLED_MESSAGE
        assert queue.status().total == 0

    def test_cancel_when_message_leased(
        self, service: TaskService, queue: QueueBroker
    ) -> None:
        """Should still cancel when the message cannot be found."""
        task = service.submit("inbox", "a.mov", ["mp4_standard"])
        queue.receive()

        cancelled, removed = service.cancel(task.task_id)

        assert removed is False
        assert cancelled.status is TaskStatus.CANCELLED

    def test_cancel_queue_error_is_not_fatal(self, task_store: TaskStore) -> None:
        """Should cancel the task even if the queue lookup fails."""
        queue = MagicMock()
        queue.remove_by_task_id.side_effect = QueueError("broker down")
        service = TaskService(task_store, queue)
        task = service.submit("inbox", "a.mov", ["thumbnail"])

        cancelled, removed = service.cancel(task.task_id)

        assert removed is False
        assert cancelled.status is TaskStatus.CANCELLED

    @pytest.mark.parametrize(
        "status", [TaskStatus.PROCESSING, TaskStatus.COMPLETED, TaskStatus.FAILED]
    )
    def test_cancel_requires_pending(
        self, service: TaskService, task_store: TaskStore, status: TaskStatus
    ) -> None:
        """Should refuse to cancel tasks that are not pending."""
        task = service.submit("inbox", "a.mov", ["mp4_standard"])
        task_store.update_status(task.task_id, status)

        with pytest.raises(InvalidStateError):
            service.cancel(task.task_id)
        assert task_store.get(task.task_id).status is status

    def test_cancel_unknown_task(self, service: TaskService) -> None:
        """Should raise TaskNotFoundError for unknown ids."""
        with pytest.raises(TaskNotFoundError):
            service.cancel("nope")


class TestAbort:
    """Tests for TaskService.abort."""

    def test_abort_processing_task(
        self, task_store: TaskStore, queue: QueueBroker
    ) -> None:
        """Should fail incomplete types, fail the task, and stop the encode."""
        engine = MagicMock()
        engine.terminate.return_value = True
        service = TaskService(task_store, queue, engine=engine)
        task = service.submit("inbox", "a.mov", ["mp4_standard", "thumbnail"])
        task_store.update_status(task.task_id, TaskStatus.PROCESSING)
        task_store.update_progress(
            task.task_id, "mp4_standard", ProgressStatus.COMPLETED
        )
        task_store.update_progress(task.task_id, "thumbnail", ProgressStatus.PROCESSING)

        aborted = service.abort(task.task_id)

        assert aborted.status is TaskStatus.FAILED
        assert aborted.error_message == ABORTED_MESSAGE
        assert aborted.completed_at is not None
        assert aborted.progress == {
            "mp4_standard": ProgressStatus.COMPLETED,
            "thumbnail": ProgressStatus.FAILED,
        }
        engine.terminate.assert_called_once_with(task.task_id)
        assert task_store.is_aborted(task.task_id) is True

    @pytest.mark.parametrize(
        "status", [TaskStatus.PENDING, TaskStatus.COMPLETED, TaskStatus.CANCELLED]
    )
    def test_abort_requires_processing(
        self, service: TaskService, task_store: TaskStore, status: TaskStatus
    ) -> None:
        """Should refuse to abort tasks that are not processing."""
        task = service.submit("inbox", "a.mov", ["mp4_standard"])
        task_store.update_status(task.task_id, status)

        with pytest.raises(InvalidStateError):
            service.abort(task.task_id)
