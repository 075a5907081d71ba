"""Configuration loader with precedence handling.

Configuration is loaded with the following precedence (highest to lowest):
1. CLI arguments (passed as overrides)
2. Environment variables (VTO_*)
3. Config file (~/.vto/config.toml)
4. Default values

Environment variables:
- VTO_CONFIG_PATH: Path to config file (overrides default location)
- VTO_DATA_DIR: Base directory for default data paths (overrides ~/.vto/)
- VTO_MAX_CONCURRENT_TASKS: Number of worker threads
- VTO_POLL_INTERVAL: Seconds a receive call waits for a message
- VTO_TEMP_DIR: Scratch directory for downloads and outputs
- VTO_OUTPUT_CONTAINER: Default output container
- VTO_DATABASE_PATH: Task database file
- VTO_QUEUE_PATH: Queue database file
- VTO_BLOB_ROOT: Root directory of the local blob store
- VTO_INPUT_CONTAINER: Default input container for submissions
- VTO_FFMPEG_PATH: Encoder executable
- VTO_HW_MODE: "auto" or "none"
"""

from __future__ import annotations

import logging
import threading
import tomllib
from dataclasses import fields
from pathlib import Path
from typing import Any

from vto.config.env import EnvReader
from vto.config.models import (
    EncoderConfig,
    LoggingConfig,
    StorageConfig,
    TaskConfig,
    VTOConfig,
    WorkerConfig,
)
from vto.core.errors import VTOError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_DIR = Path.home() / ".vto"
DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.toml"

_SECTIONS: dict[str, type] = {
    "worker": WorkerConfig,
    "storage": StorageConfig,
    "tasks": TaskConfig,
    "encoder": EncoderConfig,
    "logging": LoggingConfig,
}

# Fields holding paths in any section; TOML gives them as strings
_PATH_FIELDS = frozenset(
    {
        "temp_dir",
        "database_path",
        "queue_path",
        "blob_root",
        "test_sample",
        "profiles_file",
        "file",
    }
)

# Cache of parsed config files: path -> (parsed dict, mtime)
_config_cache: dict[Path, tuple[dict[str, Any], float]] = {}
_config_cache_lock = threading.Lock()


class ConfigFileError(VTOError):
    """The config file exists but could not be read or parsed."""

    def __init__(self, path: Path, message: str) -> None:
        self.path = path
        super().__init__(f"{path}: {message}")


def get_default_config_path(env_reader: EnvReader | None = None) -> Path:
    """Config file path, honouring VTO_CONFIG_PATH."""
    reader = env_reader or EnvReader()
    env_path = reader.get_path("VTO_CONFIG_PATH")
    return env_path if env_path is not None else get_data_dir(reader) / "config.toml"


def get_data_dir(env_reader: EnvReader | None = None) -> Path:
    """Base directory for the default database, queue and blob paths.

    Can be overridden by the VTO_DATA_DIR environment variable.
    """
    reader = env_reader or EnvReader()
    env_path = reader.get_path("VTO_DATA_DIR")
    return env_path if env_path is not None else DEFAULT_CONFIG_DIR


def load_config_file(path: Path | None = None, *, strict: bool = False) -> dict:
    """Load a TOML config file, cached by path and mtime.

    Thread-safe. A missing file yields an empty dict.

    Args:
        path: Path to config file. If None, uses the default location.
        strict: If True, raise ConfigFileError on unreadable or invalid
            files. If False, log a warning and use defaults.

    Raises:
        ConfigFileError: When strict=True and the file cannot be parsed.
    """
    if path is None:
        path = get_default_config_path()

    try:
        current_mtime = path.stat().st_mtime
    except FileNotFoundError:
        return {}

    with _config_cache_lock:
        cached = _config_cache.get(path)
        if cached is not None and cached[1] == current_mtime:
            return cached[0]

        try:
            with path.open("rb") as f:
                result = tomllib.load(f)
        except (OSError, tomllib.TOMLDecodeError) as e:
            if strict:
                raise ConfigFileError(path, str(e)) from e
            logger.warning("Ignoring unreadable config file %s: %s", path, e)
            result = {}

        _config_cache[path] = (result, current_mtime)
        return result


def clear_config_cache() -> None:
    """Forget every parsed config file. Primarily useful for testing."""
    with _config_cache_lock:
        _config_cache.clear()


def _values_from_file(file_config: dict[str, Any]) -> dict[str, dict[str, Any]]:
    values: dict[str, dict[str, Any]] = {}
    for section, model in _SECTIONS.items():
        raw = file_config.get(section, {})
        if not isinstance(raw, dict):
            logger.warning("Config section [%s] is not a table, ignoring", section)
            continue
        known = {f.name for f in fields(model)}
        for key in raw.keys() - known:
            logger.warning("Unknown config key %s.%s, ignoring", section, key)
        values[section] = {
            key: Path(value).expanduser()
            if key in _PATH_FIELDS and isinstance(value, str)
            else value
            for key, value in raw.items()
            if key in known
        }
    return values


def _values_from_env(reader: EnvReader) -> dict[str, dict[str, Any]]:
    candidates: dict[str, dict[str, Any]] = {
        "worker": {
            "concurrency": reader.get_int("VTO_MAX_CONCURRENT_TASKS"),
            "poll_interval": reader.get_float("VTO_POLL_INTERVAL"),
            "temp_dir": reader.get_path("VTO_TEMP_DIR"),
            "default_output_container": reader.get_str("VTO_OUTPUT_CONTAINER"),
        },
        "storage": {
            "database_path": reader.get_path("VTO_DATABASE_PATH"),
            "queue_path": reader.get_path("VTO_QUEUE_PATH"),
            "blob_root": reader.get_path("VTO_BLOB_ROOT"),
            "default_input_container": reader.get_str("VTO_INPUT_CONTAINER"),
        },
        "encoder": {
            "ffmpeg_path": reader.get_str("VTO_FFMPEG_PATH"),
            "hw_mode": reader.get_str("VTO_HW_MODE"),
        },
    }
    return {
        section: {key: value for key, value in values.items() if value is not None}
        for section, values in candidates.items()
    }


def get_config(
    config_path: Path | None = None,
    overrides: dict[str, dict[str, Any]] | None = None,
    env_reader: EnvReader | None = None,
    *,
    strict: bool = False,
) -> VTOConfig:
    """Build the effective configuration.

    Args:
        config_path: Path to config file (overrides VTO_CONFIG_PATH).
        overrides: CLI overrides as {section: {field: value}}; None values
            are ignored.
        env_reader: Optional EnvReader for testing (uses os.environ if None).
        strict: If True, raise ConfigFileError on config file parse failures.

    Returns:
        VTOConfig with merged configuration.

    Raises:
        ConfigFileError: When strict=True and the config file is invalid.
        ValueError: When a merged value fails validation.
    """
    reader = env_reader or EnvReader()
    path = config_path or get_default_config_path(reader)
    data_dir = get_data_dir(reader)

    merged: dict[str, dict[str, Any]] = {
        "storage": {
            "database_path": data_dir / "tasks.db",
            "queue_path": data_dir / "queue.db",
            "blob_root": data_dir / "blobs",
        }
    }
    layers = [
        _values_from_file(load_config_file(path, strict=strict)),
        _values_from_env(reader),
        overrides or {},
    ]
    for layer in layers:
        for section, values in layer.items():
            merged.setdefault(section, {}).update(
                {key: value for key, value in values.items() if value is not None}
            )

    return VTOConfig(
        **{
            section: model(**merged.get(section, {}))
            for section, model in _SECTIONS.items()
        }
    )

