"""Configuration data models for VTO.

Each section is a dataclass validated in __post_init__; invalid values
raise ValueError. VTOConfig aggregates the sections and is what
get_config() returns.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from vto.db.connection import DEFAULT_DATA_DIR
from vto.domain import DEFAULT_MAX_RETRIES
from vto.queue.broker import DEFAULT_VISIBILITY_TIMEOUT
from vto.tasks.listing import DEFAULT_LIST_LIMIT, MAX_LIST_LIMIT


@dataclass
class WorkerConfig:
    """Configuration for the worker pool."""

    # Number of worker threads, each polling the queue independently
    concurrency: int = 2

    # Maximum seconds a receive call waits for a message
    poll_interval: float = 10.0

    # Seconds a received message stays hidden from other workers
    visibility_timeout: float = DEFAULT_VISIBILITY_TIMEOUT

    # Seconds to wait for in-flight tasks after a shutdown signal
    shutdown_grace_period: float = 30.0

    # Seconds between abort checks while an encode is running
    abort_check_interval: float = 2.0

    # Scratch space for downloads and encoder outputs
    temp_dir: Path = Path("/tmp/vto_processing")  # nosec B108

    # Output container used when a message does not name one
    default_output_container: str = ""

    # Per-encode timeout in seconds (None = unlimited)
    encode_timeout: float | None = None

    def __post_init__(self) -> None:
        """Validate configuration."""
        if self.concurrency < 1:
            raise ValueError(f"concurrency must be >= 1, got {self.concurrency}")
        if self.poll_interval <= 0:
            raise ValueError(
                f"poll_interval must be positive, got {self.poll_interval}"
            )
        if self.visibility_timeout < 1:
            raise ValueError(
                f"visibility_timeout must be >= 1, got {self.visibility_timeout}"
            )
        if self.shutdown_grace_period < 0:
            raise ValueError(
                "shutdown_grace_period must be >= 0, "
                f"got {self.shutdown_grace_period}"
            )
        if self.abort_check_interval <= 0:
            raise ValueError(
                "abort_check_interval must be positive, "
                f"got {self.abort_check_interval}"
            )
        if self.encode_timeout is not None and self.encode_timeout <= 0:
            raise ValueError(
                f"encode_timeout must be positive, got {self.encode_timeout}"
            )


@dataclass
class StorageConfig:
    """Locations of the task database, queue database and blob root."""

    database_path: Path = DEFAULT_DATA_DIR / "tasks.db"
    queue_path: Path = DEFAULT_DATA_DIR / "queue.db"
    blob_root: Path = DEFAULT_DATA_DIR / "blobs"

    # Input container used by `vto tasks submit` when none is given
    default_input_container: str = ""


@dataclass
class TaskConfig:
    """Task lifecycle policy."""

    # Retry ceiling recorded on new tasks
    max_retries: int = DEFAULT_MAX_RETRIES

    # Refuse retries once retry_count reaches max_retries
    enforce_max_retries: bool = False

    list_limit_default: int = DEFAULT_LIST_LIMIT
    list_limit_max: int = MAX_LIST_LIMIT

    def __post_init__(self) -> None:
        """Validate configuration."""
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {self.max_retries}")
        if self.list_limit_max < 1:
            raise ValueError(
                f"list_limit_max must be >= 1, got {self.list_limit_max}"
            )
        if not 1 <= self.list_limit_default <= self.list_limit_max:
            raise ValueError(
                f"list_limit_default must be between 1 and {self.list_limit_max}, "
                f"got {self.list_limit_default}"
            )


@dataclass
class EncoderConfig:
    """Encoder executable and hardware policy."""

    ffmpeg_path: str = "ffmpeg"

    # "auto" probes for hardware encoders; "none" forces software encoding
    hw_mode: str = "auto"

    # Known-good input for `vto test-encode`
    test_sample: Path | None = None

    # YAML file of additional raw-argument profiles
    profiles_file: Path | None = None

    def __post_init__(self) -> None:
        """Validate configuration."""
        valid_modes = {"auto", "none"}
        if self.hw_mode.lower() not in valid_modes:
            raise ValueError(
                f"hw_mode must be one of {valid_modes}, got {self.hw_mode}"
            )


@dataclass
class LoggingConfig:
    """Configuration for structured logging."""

    # Log level: debug, info, warning, error
    level: str = "info"

    # Log file path (None = stderr only)
    file: Path | None = None

    # Log format: text or json
    format: str = "text"

    # Also log to stderr when file is set
    include_stderr: bool = False

    # Rotation threshold in bytes (default 10MB)
    max_bytes: int = 10_485_760

    # Number of rotated files to keep
    backup_count: int = 5

    def __post_init__(self) -> None:
        """Validate configuration."""
        valid_levels = {"debug", "info", "warning", "error"}
        if self.level.lower() not in valid_levels:
            raise ValueError(f"level must be one of {valid_levels}, got {self.level}")
        valid_formats = {"text", "json"}
        if self.format.lower() not in valid_formats:
            raise ValueError(
                f"format must be one of {valid_formats}, got {self.format}"
            )


@dataclass
class VTOConfig:
    """Main configuration aggregating all sections."""

    worker: WorkerConfig = field(default_factory=WorkerConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    tasks: TaskConfig = field(default_factory=TaskConfig)
    encoder: EncoderConfig = field(default_factory=EncoderConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
