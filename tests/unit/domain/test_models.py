"""Unit tests for task domain models."""

from datetime import datetime, timezone

from vto.domain import (
    ErrorDetail,
    ErrorStage,
    ProgressStatus,
    QueueMessage,
    Task,
    TaskListResult,
    TaskStatus,
    date_partition_for,
)
from vto.domain.models import (
    COMMAND_TRUNCATION_MARKER,
    MAX_ERROR_COMMAND_LENGTH,
    MAX_ERROR_OUTPUT_LENGTH,
    OUTPUT_TRUNCATION_MARKER,
)

CREATED = datetime(2024, 5, 1, 23, 30, tzinfo=timezone.utc)


def make_task(**overrides) -> Task:
    task = Task.new(
        task_id="t-1",
        input_container="inbox",
        input_key="clip.mov",
        output_container="",
        transcode_types=["mp4_standard", "thumbnail"],
        created=CREATED,
    )
    for key, value in overrides.items():
        setattr(task, key, value)
    return task


class TestTaskNew:
    """Tests for Task.new."""

    def test_new_task_is_pending(self) -> None:
        """Should start pending with every type's progress pending."""
        task = make_task()

        assert task.status is TaskStatus.PENDING
        assert task.progress == {
            "mp4_standard": ProgressStatus.PENDING,
            "thumbnail": ProgressStatus.PENDING,
        }
        assert task.output_files == {}
        assert task.retry_count == 0
        assert task.max_retries == 3

    def test_timestamps_and_partition(self) -> None:
        """Should stamp created/updated and derive the date partition."""
        task = make_task()

        assert task.created_at == CREATED.isoformat()
        assert task.updated_at == task.created_at
        assert task.date_partition == "2024-05-01"
        assert task.started_at is None
        assert task.completed_at is None

    def test_date_partition_uses_utc(self) -> None:
        """Should partition by the UTC date."""
        from datetime import timedelta

        local = datetime(2024, 5, 2, 1, 0, tzinfo=timezone(timedelta(hours=5)))
        assert date_partition_for(local) == "2024-05-01"


class TestTaskSerialization:
    """Tests for Task.to_dict / Task.from_dict."""

    def test_round_trip_preserves_fields(self) -> None:
        """Should rebuild an equal task from its document."""
        task = make_task(
            status=TaskStatus.FAILED,
            error_message="boom",
            output_files={"mp4_standard": "clip_mp4_standard_1.mp4"},
            error_details=[
                ErrorDetail(
                    stage=ErrorStage.TRANSCODE,
                    error="exit 1",
                    transcode_type="thumbnail",
                    timestamp="2024-05-01T23:31:00+00:00",
                )
            ],
        )
        task.progress["thumbnail"] = ProgressStatus.FAILED

        assert Task.from_dict(task.to_dict()) == task

    def test_document_uses_plain_values(self) -> None:
        """Should store enums as their string values."""
        doc = make_task().to_dict()

        assert doc["status"] == "pending"
        assert doc["progress"]["thumbnail"] == "pending"
        assert doc["date_partition"] == "2024-05-01"

    def test_is_terminal(self) -> None:
        """Should treat completed, failed and cancelled as terminal."""
        assert make_task(status=TaskStatus.COMPLETED).is_terminal
        assert make_task(status=TaskStatus.CANCELLED).is_terminal
        assert not make_task(status=TaskStatus.RETRYING).is_terminal


class TestErrorDetailTruncation:
    """Tests for ErrorDetail.truncated."""

    def test_long_command_and_output_are_cut(self) -> None:
        """Should cut command and output and append the markers."""
        detail = ErrorDetail(
            stage=ErrorStage.TRANSCODE,
            error="failed",
            command="x" * (MAX_ERROR_COMMAND_LENGTH + 50),
            output="y" * (MAX_ERROR_OUTPUT_LENGTH + 1),
        )

        stored = detail.truncated()

        assert stored.command == (
            "x" * MAX_ERROR_COMMAND_LENGTH + COMMAND_TRUNCATION_MARKER
        )
        assert stored.output == "y" * MAX_ERROR_OUTPUT_LENGTH + OUTPUT_TRUNCATION_MARKER

    def test_short_values_unchanged(self) -> None:
        """Should leave values within the limits alone."""
        detail = ErrorDetail(stage=ErrorStage.UPLOAD, error="e", command="ffmpeg")

        assert detail.truncated() == detail


class TestQueueMessage:
    """Tests for QueueMessage.for_task."""

    def test_for_task_copies_work_fields(self) -> None:
        """Should carry identity, input, output and types."""
        task = make_task(output_container="outbox")

        message = QueueMessage.for_task(task)

        assert message == QueueMessage(
            task_id="t-1",
            input_container="inbox",
            input_key="clip.mov",
            transcode_types=("mp4_standard", "thumbnail"),
            output_container="outbox",
        )


class TestTaskListResult:
    """Tests for TaskListResult.has_more."""

    def test_has_more(self) -> None:
        """Should report whether tasks remain past this page."""
        page = TaskListResult(tasks=[make_task()], total=3, limit=1, offset=1)
        last = TaskListResult(tasks=[make_task()], total=3, limit=1, offset=2)

        assert page.has_more
        assert not last.has_more
