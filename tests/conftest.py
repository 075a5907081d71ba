"""Shared test fixtures for the Video Transcode Orchestrator."""

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from vto.db import SQLiteDocumentStore
from vto.domain import Task
from vto.queue import QueueBroker, SQLiteBroker
from vto.storage import LocalBlobStore
from vto.tasks import TaskStore
from vto.tools import PlatformCapabilities, PlatformKind


class FakeClock:
    """Deterministic clock that advances one second per call."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        current = self.now
        self.now = self.now + timedelta(seconds=1)
        return current


class FakeRunner:
    """Command runner returning canned (stdout, stderr, rc) by executable.

    Responses are keyed by argv[0]; a key of "<exe> <arg>" matches when
    that argument is also present. Unmatched commands raise OSError.
    """

    def __init__(self, responses: dict[str, tuple[str, str, int]]) -> None:
        self.responses = responses
        self.calls: list[list[str]] = []

    def __call__(self, args: list[str], timeout: int = 30, **kwargs):
        self.calls.append(list(args))
        for key, response in self.responses.items():
            exe, _, arg = key.partition(" ")
            if args[0] == exe and (not arg or arg in args):
                return response
        raise OSError(f"command not found: {args[0]}")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def document_store():
    store = SQLiteDocumentStore(":memory:")
    yield store
    store.close()


@pytest.fixture
def task_store(document_store: SQLiteDocumentStore, clock: FakeClock) -> TaskStore:
    """TaskStore on an in-memory SQLite document store."""
    return TaskStore(document_store, clock=clock)


@pytest.fixture
def message_broker():
    broker = SQLiteBroker(":memory:")
    yield broker
    broker.close()


@pytest.fixture
def queue(message_broker: SQLiteBroker) -> QueueBroker:
    """QueueBroker on an in-memory SQLite broker."""
    return QueueBroker(message_broker)


@pytest.fixture
def blob_store(tmp_path: Path) -> LocalBlobStore:
    return LocalBlobStore(tmp_path / "blobs")


@pytest.fixture
def cpu_caps() -> PlatformCapabilities:
    return PlatformCapabilities(kind=PlatformKind.CPU, os_name="linux", arch="x86_64")


@pytest.fixture
def nvidia_caps() -> PlatformCapabilities:
    return PlatformCapabilities(
        kind=PlatformKind.LINUX_NVIDIA,
        os_name="linux",
        arch="x86_64",
        hardware_available=True,
        device_name="NVIDIA T4",
        hwaccel="cuda",
        encoders={"h264": "h264_nvenc", "hevc": "hevc_nvenc"},
    )


@pytest.fixture
def apple_caps() -> PlatformCapabilities:
    return PlatformCapabilities(
        kind=PlatformKind.MACOS_APPLE,
        os_name="darwin",
        arch="arm64",
        hardware_available=True,
        device_name="Apple VideoToolbox",
        hwaccel="videotoolbox",
        encoders={"h264": "h264_videotoolbox", "hevc": "hevc_videotoolbox"},
    )


def create_test_task(
    store: TaskStore,
    input_key: str = "uploads/clip.mov",
    transcode_types: list[str] | None = None,
    input_container: str = "inbox",
    output_container: str = "",
) -> Task:
    """Create a pending task with sensible defaults."""
    return store.create(
        input_container,
        input_key,
        transcode_types or ["mp4_standard", "thumbnail"],
        output_container,
    )


@pytest.fixture
def app_context(tmp_path: Path, cpu_caps: PlatformCapabilities):
    """CLI application context on temporary paths with CPU capabilities."""
    from vto.cli.context import AppContext
    from vto.config import StorageConfig, VTOConfig, WorkerConfig

    config = VTOConfig(
        worker=WorkerConfig(
            temp_dir=tmp_path / "work", default_output_container="outbox"
        ),
        storage=StorageConfig(
            database_path=tmp_path / "tasks.db",
            queue_path=tmp_path / "queue.db",
            blob_root=tmp_path / "blobs",
            default_input_container="inbox",
        ),
    )
    app = AppContext(config)
    # Pre-populate the cached property so no probe runs
    app.capabilities = cpu_caps
    return app
