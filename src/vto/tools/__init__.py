"""Host capability detection for the encoder."""

from vto.tools.capabilities import (
    PlatformCapabilities,
    PlatformKind,
    detect_platform,
    get_platform,
)
from vto.tools.hardware import (
    HardwareSnapshot,
    HardwareState,
    find_hardware_failure_marker,
)

__all__ = [
    "HardwareSnapshot",
    "HardwareState",
    "PlatformCapabilities",
    "PlatformKind",
    "detect_platform",
    "find_hardware_failure_marker",
    "get_platform",
]
