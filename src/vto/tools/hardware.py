"""Shared hardware-usability state and failure detection.

Many workers share one engine. When a hardware encode fails with a
recognizable hardware error, later attempts in every worker must use the
software path. HardwareState holds that single bit behind a lock and
hands out versioned snapshots, so each encode attempt decides hardware vs
software once, up front, and the downgrade happens exactly once.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass

from vto.tools.capabilities import PlatformCapabilities, PlatformKind

logger = logging.getLogger(__name__)

# Output substrings that indicate a hardware encoder/decoder failure,
# keyed by platform. Matched case-insensitively.
HARDWARE_FAILURE_MARKERS: dict[PlatformKind, tuple[str, ...]] = {
    PlatformKind.LINUX_NVIDIA: (
        "nvenc",
        "cuda",
        "Cannot load libnvidia",
        "No NVENC capable devices found",
        "OpenEncodeSessionEx failed",
    ),
    PlatformKind.MACOS_APPLE: (
        "videotoolbox",
        "VTCompressionSession",
        "Error while opening encoder",
    ),
}

# Generic markers that apply to any hardware path
GENERIC_HARDWARE_MARKERS = (
    "No device available",
    "hwaccel initialisation returned error",
    "Failed to open encoder",
    "Device creation failed",
)


def find_hardware_failure_marker(output: str, kind: PlatformKind) -> str | None:
    """Return the first hardware failure marker found in encoder output.

    Args:
        output: Combined stdout/stderr from the encoder.
        kind: Platform whose markers apply.

    Returns:
        The matching marker, or None when the output has none (always None
        for the CPU platform).
    """
    if kind is PlatformKind.CPU:
        return None
    text = output.casefold()
    for marker in (*HARDWARE_FAILURE_MARKERS.get(kind, ()), *GENERIC_HARDWARE_MARKERS):
        if marker.casefold() in text:
            return marker
    return None


@dataclass(frozen=True)
class HardwareSnapshot:
    """Hardware usability as seen at the start of one encode attempt."""

    usable: bool
    generation: int


class HardwareState:
    """Thread-safe, one-way "hardware usable" flag.

    The flag starts from the detected capabilities and can only go from
    usable to unusable. Each change bumps the generation so callers can
    tell whether a snapshot is stale.
    """

    def __init__(self, capabilities: PlatformCapabilities) -> None:
        self._lock = threading.Lock()
        self._usable = capabilities.hardware_available
        self._generation = 0
        self._reason: str | None = None

    @property
    def usable(self) -> bool:
        with self._lock:
            return self._usable

    @property
    def downgrade_reason(self) -> str | None:
        with self._lock:
            return self._reason

    def snapshot(self) -> HardwareSnapshot:
        """Capture the current state for one encode attempt."""
        with self._lock:
            return HardwareSnapshot(usable=self._usable, generation=self._generation)

    def downgrade(self, observed: HardwareSnapshot, reason: str) -> bool:
        """Mark hardware unusable after a failure observed under a snapshot.

        Only the first caller to report a failure for the current
        generation performs the downgrade; concurrent reports from attempts
        that started under the same snapshot are no-ops.

        Args:
            observed: Snapshot the failing attempt ran under.
            reason: Marker or message explaining the failure.

        Returns:
            True if this call performed the downgrade.
        """
        with self._lock:
            if not self._usable or observed.generation != self._generation:
                return False
            self._usable = False
            self._generation += 1
            self._reason = reason
        logger.warning("Hardware encoding disabled after failure: %s", reason)
        return True
