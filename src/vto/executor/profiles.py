"""Transcode profile registry.

Every transcode type name maps to one structured TranscodeProfile. The
command builder turns a profile into encoder arguments for the current
hardware path, so adding a type means adding a table entry rather than a
new code path.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from vto.core.errors import ValidationError

logger = logging.getLogger(__name__)

# Bump when any built-in profile's parameters change
PROFILE_VERSION = 1


class ProfileKind(Enum):
    """How a profile's command is assembled."""

    VIDEO = "video"  # structured video encode
    IMAGE = "image"  # single still frame
    RAW = "raw"  # caller-supplied encoder arguments


class AudioPolicy(Enum):
    """What happens to the audio stream."""

    ENCODE = "encode"  # MP3 128k, 44.1 kHz, stereo
    DROP = "drop"


class ProfileNotFoundError(ValidationError):
    """Raised when a transcode type has no registered profile."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Unknown transcode type: {name}")


@dataclass(frozen=True)
class TranscodeProfile:
    """Fixed parameter set for one transcode type."""

    name: str
    """Transcode type name (e.g., "mp4_standard")."""

    description: str = ""

    kind: ProfileKind = ProfileKind.VIDEO

    codec: str = "hevc"
    """Target video codec ("h264" or "hevc")."""

    preset: str = "fast"

    quality: int | None = None
    """CRF-style quality target (lower is better)."""

    max_bitrate: str | None = None
    buffer_size: str | None = None

    software_bitrate: str | None = None
    """Fixed -b:v used instead of quality/maxrate on the software path."""

    width: int | None = None
    height: int | None = None
    """Target frame size; the source is scaled to fit and letterboxed."""

    frame_rate: int | None = None
    gop: int | None = None

    audio: AudioPolicy = AudioPolicy.ENCODE

    audio_filter: str | None = None
    """Audio filter such as loudness normalization."""

    seek: str | None = None
    frames: int | None = None
    image_quality: int | None = None

    output_ext: str = "mp4"

    raw_args: tuple[str, ...] = ()
    """Encoder arguments for RAW profiles, placed between input and output."""

    platform: str = "all"
    """Platform the profile was written for ("all", "linux_nvidia", ...)."""

    builtin: bool = True
    version: int = PROFILE_VERSION

    @property
    def has_scale(self) -> bool:
        return self.width is not None and self.height is not None


_LOUDNORM_BROADCAST = "loudnorm=I=-17:TP=-1:LRA=11"
_LOUDNORM_LOUD = "loudnorm=I=-10"

BUILTIN_PROFILES: tuple[TranscodeProfile, ...] = (
    TranscodeProfile(
        name="mp4_standard",
        description="848x480 H.265 with MP3 audio for general playback",
        quality=23,
        max_bitrate="800k",
        buffer_size="1600k",
        width=848,
        height=480,
    ),
    TranscodeProfile(
        name="mp4_smooth",
        description="640x360 H.265 with MP3 audio for constrained networks",
        quality=25,
        max_bitrate="400k",
        buffer_size="800k",
        width=640,
        height=360,
    ),
    TranscodeProfile(
        name="hdlbr_h265",
        description="Full-resolution H.265 with broadcast loudness normalization",
        quality=20,
        max_bitrate="6000k",
        buffer_size="12000k",
        frame_rate=25,
        gop=250,
        audio_filter=_LOUDNORM_BROADCAST,
    ),
    TranscodeProfile(
        name="lcd_h265",
        description="Full-resolution H.265 for display screens, loud audio",
        quality=22,
        frame_rate=25,
        gop=250,
        audio_filter=_LOUDNORM_LOUD,
    ),
    TranscodeProfile(
        name="h265_mute",
        description="Full-resolution H.265 at about 2.8 Mbps without audio",
        quality=23,
        max_bitrate="2867k",
        buffer_size="5734k",
        software_bitrate="2867k",
        frame_rate=25,
        gop=250,
        audio=AudioPolicy.DROP,
    ),
    TranscodeProfile(
        name="custom_mute_preview",
        description="Full-resolution H.265 preview without audio",
        quality=23,
        frame_rate=25,
        gop=250,
        audio=AudioPolicy.DROP,
    ),
    TranscodeProfile(
        name="thumbnail",
        description="1280x720 JPEG still taken at 4 seconds",
        kind=ProfileKind.IMAGE,
        width=1280,
        height=720,
        seek="00:00:04",
        frames=1,
        image_quality=2,
        audio=AudioPolicy.DROP,
        output_ext="jpg",
    ),
)


class ProfileRegistry:
    """Name -> TranscodeProfile lookup table.

    Built-in profiles are always present and cannot be replaced. Custom
    profiles may be registered at startup (typically from a YAML file).
    """

    def __init__(self, profiles: Iterable[TranscodeProfile] = BUILTIN_PROFILES) -> None:
        self._lock = threading.Lock()
        self._profiles: dict[str, TranscodeProfile] = {}
        for profile in profiles:
            self._profiles[profile.name] = profile

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._profiles

    def get(self, name: str) -> TranscodeProfile:
        """Return the profile for a transcode type.

        Raises:
            ProfileNotFoundError: If no profile is registered under name.
        """
        with self._lock:
            profile = self._profiles.get(name)
        if profile is None:
            raise ProfileNotFoundError(name)
        return profile

    def names(self) -> list[str]:
        with self._lock:
            return list(self._profiles)

    def list(self, platform: str | None = None) -> list[TranscodeProfile]:
        """Profiles in registration order, optionally for one platform.

        Profiles marked "all" match every platform.
        """
        with self._lock:
            profiles = list(self._profiles.values())
        if platform is None:
            return profiles
        return [p for p in profiles if p.platform in ("all", platform)]

    def register(self, profile: TranscodeProfile, replace: bool = False) -> None:
        """Add a profile.

        Raises:
            ValidationError: If the name belongs to a built-in profile, or is
                already registered and replace is False.
        """
        with self._lock:
            existing = self._profiles.get(profile.name)
            if existing is not None and (existing.builtin or not replace):
                raise ValidationError(
                    f"Profile '{profile.name}' already exists"
                    + (" and is built in" if existing.builtin else "")
                )
            self._profiles[profile.name] = profile
        logger.debug("Registered profile %s (%s)", profile.name, profile.kind.value)

    def load_file(self, path: Path) -> int:
        """Register every custom profile in a YAML file.

        Returns:
            Number of profiles registered.

        Raises:
            ValidationError: If the file is unreadable or invalid.
        """
        from vto.executor.custom_profiles import load_custom_profiles

        profiles = load_custom_profiles(path)
        for profile in profiles:
            self.register(profile, replace=True)
        logger.info("Loaded %d custom profile(s) from %s", len(profiles), path)
        return len(profiles)
