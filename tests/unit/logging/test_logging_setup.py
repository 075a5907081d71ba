"""Unit tests for logging setup, context tagging, and JSON output."""

import json
import logging
import sys
import threading
from pathlib import Path

import pytest

from vto.config import LoggingConfig
from vto.logging import (
    JSONFormatter,
    WorkerContextFilter,
    build_logging_config,
    configure_logging,
    get_worker_context,
    task_context,
    worker_context,
)


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield root
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


def make_record(msg: str = "hello %s", args=("world",), **extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="vto.test",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg=msg,
        args=args,
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestWorkerContext:
    """Tests for worker and task context tagging."""

    def test_tags(self) -> None:
        """Should produce compact tags for each combination."""
        log_filter = WorkerContextFilter()

        record = make_record()
        log_filter.filter(record)
        assert record.worker_tag == ""

        with worker_context("01"):
            log_filter.filter(record)
            assert record.worker_tag == "[W01] "

            with task_context("1f0c2a9e-aaaa-bbbb"):
                log_filter.filter(record)
                assert record.worker_tag == "[W01:1f0c2a9e] "
                assert record.task_id == "1f0c2a9e-aaaa-bbbb"

        with task_context("abcdef0123"):
            log_filter.filter(record)
            assert record.worker_tag == "[abcdef01] "

    def test_context_restored(self) -> None:
        """Should restore the previous context on exit."""
        with worker_context("01", "t-1"):
            with worker_context("02"):
                assert get_worker_context() == ("02", None)
            assert get_worker_context() == ("01", "t-1")
        assert get_worker_context() == (None, None)

    def test_context_is_per_thread(self) -> None:
        """Should not leak context into other threads."""
        seen: list[tuple] = []

        with worker_context("01", "t-1"):
            thread = threading.Thread(target=lambda: seen.append(get_worker_context()))
            thread.start()
            thread.join()

        assert seen == [(None, None)]


class TestJSONFormatter:
    """Tests for JSONFormatter."""

    def test_basic_fields(self) -> None:
        """Should emit timestamp, level, logger, and message only."""
        entry = json.loads(JSONFormatter().format(make_record()))

        assert entry["level"] == "INFO"
        assert entry["message"] == "hello world"
        assert entry["logger"] == "vto.test"
        assert entry["ts"].endswith("+00:00")
        assert set(entry) == {"ts", "level", "logger", "message"}

    def test_context_fields(self) -> None:
        """Should promote worker ids and nest extra attributes."""
        record = make_record(
            command="ffmpeg", worker_id="01", task_id="t-1", worker_tag="[W01] "
        )

        entry = json.loads(JSONFormatter().format(record))

        assert entry["worker_id"] == "01"
        assert entry["task_id"] == "t-1"
        assert entry["extra"] == {"command": "ffmpeg"}

    def test_exception(self) -> None:
        """Should include the formatted traceback."""
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = make_record(msg="failed", args=())
            record.exc_info = sys.exc_info()

        entry = json.loads(JSONFormatter().format(record))

        assert "RuntimeError: boom" in entry["exc"]


@pytest.mark.usefixtures("restore_root_logger")
class TestConfigureLogging:
    """Tests for configure_logging."""

    def test_stderr_only(self) -> None:
        """Should install a single stderr handler at the configured level."""
        configure_logging(LoggingConfig(level="warning"))

        root = logging.getLogger()
        assert root.level == logging.WARNING
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0], logging.StreamHandler)

    def test_json_file(self, tmp_path: Path) -> None:
        """Should write JSON lines to a rotating file."""
        log_file = tmp_path / "logs" / "vto.log"
        configure_logging(LoggingConfig(file=log_file, format="json"))

        with worker_context("03", "task-xyz"):
            logging.getLogger("vto.test").info("encoded %d frames", 10)
        for handler in logging.getLogger().handlers:
            handler.flush()

        entry = json.loads(log_file.read_text().splitlines()[-1])
        assert entry["message"] == "encoded 10 frames"
        assert (entry["worker_id"], entry["task_id"]) == ("03", "task-xyz")
        assert "extra" not in entry

    def test_file_and_stderr(self, tmp_path: Path) -> None:
        """Should add a stderr handler when requested alongside a file."""
        configure_logging(
            LoggingConfig(file=tmp_path / "vto.log", include_stderr=True)
        )

        assert len(logging.getLogger().handlers) == 2

    def test_unwritable_file_falls_back(
        self, tmp_path: Path, capsys: pytest.CaptureFixture
    ) -> None:
        """Should warn on stderr and log to stderr when the file fails."""
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("")

        configure_logging(LoggingConfig(file=blocker / "vto.log"))

        assert "Could not open log file" in capsys.readouterr().err
        assert len(logging.getLogger().handlers) == 1


class TestBuildLoggingConfig:
    """Tests for build_logging_config."""

    def test_overrides_applied(self, tmp_path: Path) -> None:
        """Should replace only the provided fields."""
        base = LoggingConfig(level="info", format="json", backup_count=2)

        result = build_logging_config(base, level="debug", file=tmp_path / "x.log")

        assert result.level == "debug"
        assert result.format == "json"
        assert result.file == tmp_path / "x.log"
        assert result.backup_count == 2

    def test_invalid_override(self) -> None:
        """Should validate overrides."""
        with pytest.raises(ValueError):
            build_logging_config(LoggingConfig(), format="yaml")
