"""Platform capability detection.

Detects, once per process, which hardware video path is usable:

- linux_nvidia: NVIDIA GPU with NVENC (h264_nvenc / hevc_nvenc, -hwaccel cuda)
- macos_apple: Apple VideoToolbox (h264_videotoolbox / hevc_videotoolbox)
- cpu: software encoders only (libx264 / libx265)

Detection probes nvidia-smi, `ffmpeg -encoders`, and a one-second lavfi
test encode. The result is frozen in a PlatformCapabilities instance and
cached for the process. Whether hardware is *currently* usable can still
change after a hardware failure; that mutable bit lives in HardwareState.
"""

from __future__ import annotations

import logging
import platform
import subprocess  # nosec B404 - only for TimeoutExpired
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from vto.core.subprocess_utils import run_command

logger = logging.getLogger(__name__)

# Software encoder per codec
SOFTWARE_ENCODERS: dict[str, str] = {
    "h264": "libx264",
    "hevc": "libx265",
}

# Presets that map to VideoToolbox realtime mode
_REALTIME_PRESETS = frozenset({"fast", "veryfast", "ultrafast"})

# Seconds allowed for each detection probe
PROBE_TIMEOUT = 30

_TEST_SOURCE = "testsrc=duration=1:size=320x240:rate=1"

Runner = Callable[..., tuple[str, str, int]]


class PlatformKind(Enum):
    """Hardware video path detected on this host."""

    LINUX_NVIDIA = "linux_nvidia"
    MACOS_APPLE = "macos_apple"
    CPU = "cpu"


@dataclass(frozen=True)
class PlatformCapabilities:
    """Immutable description of the host's encoding capabilities.

    The *_args methods take a `hardware` flag so callers can build either
    flavour from one frozen instance. Pass the flag from a HardwareState
    snapshot, never from hardware_available directly.
    """

    kind: PlatformKind
    """Detected hardware path."""

    os_name: str
    """Operating system name (e.g., "linux", "darwin")."""

    arch: str
    """Machine architecture (e.g., "x86_64", "arm64")."""

    hardware_available: bool = False
    """True if a hardware encoder passed the test encode at detection."""

    device_name: str | None = None
    """GPU or hardware path description, when known."""

    hwaccel: str | None = None
    """FFmpeg hwaccel name ("cuda", "videotoolbox") or None."""

    encoders: dict[str, str] = field(default_factory=lambda: dict(SOFTWARE_ENCODERS))
    """Hardware encoder per codec (software encoders on CPU)."""

    def video_encoder(self, codec: str, hardware: bool) -> str:
        """Encoder name for a codec ("h264" or "hevc")."""
        codec = "hevc" if codec in ("h265", "hevc") else codec
        if hardware and self.hardware_available and codec in self.encoders:
            return self.encoders[codec]
        return SOFTWARE_ENCODERS.get(codec, SOFTWARE_ENCODERS["hevc"])

    def hwaccel_args(self, hardware: bool) -> list[str]:
        """Decoder acceleration flags placed before the input."""
        if hardware and self.hardware_available and self.hwaccel:
            return ["-hwaccel", self.hwaccel]
        return []

    def quality_args(self, quality: int, hardware: bool) -> list[str]:
        """Quality flags in the active encoder's convention.

        NVENC uses -cq, VideoToolbox uses -q:v on a 1-100 scale where
        higher is better, and software encoders use -crf.
        """
        if hardware and self.hardware_available:
            if self.kind is PlatformKind.LINUX_NVIDIA:
                return ["-cq", str(quality)]
            if self.kind is PlatformKind.MACOS_APPLE:
                vt_quality = min(max(100 - quality * 3, 1), 100)
                return ["-q:v", str(vt_quality)]
        return ["-crf", str(quality)]

    def preset_args(self, preset: str, hardware: bool) -> list[str]:
        """Speed/quality preset flags in the active encoder's convention.

        VideoToolbox has no presets; fast presets enable realtime mode and
        anything else yields no flags.
        """
        if hardware and self.hardware_available and (
            self.kind is PlatformKind.MACOS_APPLE
        ):
            return ["-realtime", "1"] if preset in _REALTIME_PRESETS else []
        return ["-preset", preset]

    def to_dict(self) -> dict[str, Any]:
        return {
            "platform": self.kind.value,
            "os": self.os_name,
            "arch": self.arch,
            "hardware_available": self.hardware_available,
            "device_name": self.device_name,
            "hwaccel": self.hwaccel,
            "h264_encoder": self.video_encoder("h264", True),
            "hevc_encoder": self.video_encoder("hevc", True),
            "hwaccel_args": self.hwaccel_args(True),
        }


def cpu_capabilities(
    os_name: str | None = None, arch: str | None = None
) -> PlatformCapabilities:
    """Capabilities for software-only encoding."""
    return PlatformCapabilities(
        kind=PlatformKind.CPU,
        os_name=os_name or platform.system().lower(),
        arch=arch or platform.machine().lower(),
    )


def detect_platform(
    ffmpeg_path: str = "ffmpeg",
    hw_mode: str = "auto",
    runner: Runner = run_command,
    os_name: str | None = None,
    arch: str | None = None,
) -> PlatformCapabilities:
    """Probe the host and return its capabilities.

    Args:
        ffmpeg_path: ffmpeg executable to probe.
        hw_mode: "auto" to probe for hardware, "none" to force software.
        runner: Command runner returning (stdout, stderr, returncode).
        os_name: Override the detected OS (lowercase), mainly for tests.
        arch: Override the detected architecture, mainly for tests.

    Returns:
        Detected PlatformCapabilities. Probe failures degrade to CPU.
    """
    os_name = (os_name or platform.system()).lower()
    arch = (arch or platform.machine()).lower()
    logger.info("Detecting platform: os=%s, arch=%s", os_name, arch)

    caps: PlatformCapabilities | None = None
    if hw_mode == "none":
        logger.info("Hardware acceleration disabled by configuration")
    elif os_name == "darwin":
        caps = _detect_macos(runner, ffmpeg_path, os_name, arch)
    elif os_name == "linux":
        caps = _detect_linux(runner, ffmpeg_path, os_name, arch)
    if caps is None:
        caps = cpu_capabilities(os_name, arch)

    if caps.hardware_available:
        logger.info(
            "Platform detected: %s (%s), encoder=%s",
            caps.kind.value,
            caps.device_name,
            caps.video_encoder("hevc", True),
        )
    else:
        logger.warning("No usable hardware encoder; using software encoding")
    return caps


def _detect_macos(
    runner: Runner, ffmpeg_path: str, os_name: str, arch: str
) -> PlatformCapabilities | None:
    if not _probe_encoder(runner, ffmpeg_path, "hevc_videotoolbox"):
        return None
    return PlatformCapabilities(
        kind=PlatformKind.MACOS_APPLE,
        os_name=os_name,
        arch=arch,
        hardware_available=True,
        device_name="Apple VideoToolbox",
        hwaccel="videotoolbox",
        encoders={"h264": "h264_videotoolbox", "hevc": "hevc_videotoolbox"},
    )


def _detect_linux(
    runner: Runner, ffmpeg_path: str, os_name: str, arch: str
) -> PlatformCapabilities | None:
    gpu_name = _probe_nvidia(runner)
    if gpu_name is None:
        return None
    if not _probe_encoder(runner, ffmpeg_path, "hevc_nvenc", ["-preset", "fast"]):
        return None
    return PlatformCapabilities(
        kind=PlatformKind.LINUX_NVIDIA,
        os_name=os_name,
        arch=arch,
        hardware_available=True,
        device_name=gpu_name,
        hwaccel="cuda",
        encoders={"h264": "h264_nvenc", "hevc": "hevc_nvenc"},
    )


def _run_probe(runner: Runner, args: list[str]) -> tuple[str, int] | None:
    try:
        stdout, _stderr, rc = runner(args, timeout=PROBE_TIMEOUT)
    except (OSError, subprocess.TimeoutExpired) as e:
        logger.debug("Probe %s failed: %s", args[0], e)
        return None
    return stdout, rc


def _probe_nvidia(runner: Runner) -> str | None:
    result = _run_probe(
        runner,
        ["nvidia-smi", "--query-gpu=name,driver_version", "--format=csv,noheader"],
    )
    if result is None or result[1] != 0:
        logger.info("NVIDIA GPU not available")
        return None
    gpu_name = result[0].strip()
    logger.info("Found NVIDIA GPU: %s", gpu_name)
    return gpu_name


def _probe_encoder(
    runner: Runner,
    ffmpeg_path: str,
    encoder: str,
    extra_args: list[str] | None = None,
) -> bool:
    """Check an encoder is listed by ffmpeg and survives a test encode."""
    listing = _run_probe(runner, [ffmpeg_path, "-hide_banner", "-encoders"])
    if listing is None or listing[1] != 0:
        logger.warning("Unable to list ffmpeg encoders")
        return False
    if encoder not in listing[0]:
        logger.info("ffmpeg does not provide %s", encoder)
        return False

    test = _run_probe(
        runner,
        [
            ffmpeg_path,
            "-hide_banner",
            "-f",
            "lavfi",
            "-i",
            _TEST_SOURCE,
            "-c:v",
            encoder,
            *(extra_args or []),
            "-f",
            "null",
            "-",
        ],
    )
    if test is None or test[1] != 0:
        logger.warning("Test encode with %s failed", encoder)
        return False
    return True


# Process-wide cache: detect once, then read-only
_capabilities: PlatformCapabilities | None = None
_capabilities_lock = threading.Lock()


def get_platform(
    ffmpeg_path: str = "ffmpeg",
    hw_mode: str = "auto",
    runner: Runner = run_command,
) -> PlatformCapabilities:
    """Return the process-wide capabilities, detecting on first call.

    Later calls return the same frozen instance; arguments are only used
    by the first call.
    """
    global _capabilities
    with _capabilities_lock:
        if _capabilities is None:
            _capabilities = detect_platform(ffmpeg_path, hw_mode, runner)
        return _capabilities


def reset_platform_cache() -> None:
    """Forget the cached capabilities (for tests)."""
    global _capabilities
    with _capabilities_lock:
        _capabilities = None
