"""Configuration for VTO.

Sections are dataclasses in vto.config.models; get_config() merges defaults,
the TOML config file, VTO_* environment variables and CLI overrides.
"""

from vto.config.env import EnvReader
from vto.config.loader import (
    DEFAULT_CONFIG_FILE,
    ConfigFileError,
    clear_config_cache,
    get_config,
    get_data_dir,
    get_default_config_path,
    load_config_file,
)
from vto.config.models import (
    EncoderConfig,
    LoggingConfig,
    StorageConfig,
    TaskConfig,
    VTOConfig,
    WorkerConfig,
)

__all__ = [
    "DEFAULT_CONFIG_FILE",
    "ConfigFileError",
    "EncoderConfig",
    "EnvReader",
    "LoggingConfig",
    "StorageConfig",
    "TaskConfig",
    "VTOConfig",
    "WorkerConfig",
    "clear_config_cache",
    "get_config",
    "get_data_dir",
    "get_default_config_path",
    "load_config_file",
]
