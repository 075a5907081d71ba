"""Encoder command construction.

One generic builder turns any TranscodeProfile into an ffmpeg argument
vector for either the hardware or the software path.
"""

from __future__ import annotations

from pathlib import Path

from vto.executor.profiles import AudioPolicy, ProfileKind, TranscodeProfile
from vto.tools.capabilities import PlatformCapabilities

AUDIO_ARGS = ["-c:a", "libmp3lame", "-b:a", "128k", "-ar", "44100", "-ac", "2"]
MP4_OUTPUT_ARGS = ["-movflags", "+faststart", "-f", "mp4"]


def scale_filter(width: int, height: int) -> str:
    """Fit inside width x height, keeping aspect ratio, padded with black."""
    return (
        f"scale={width}:{height}:force_original_aspect_ratio=decrease,"
        f"pad={width}:{height}:(ow-iw)/2:(oh-ih)/2:black"
    )


def build_command(
    profile: TranscodeProfile,
    input_path: Path,
    output_path: Path,
    capabilities: PlatformCapabilities,
    hardware: bool,
    ffmpeg_path: str = "ffmpeg",
) -> list[str]:
    """Build the full encoder command for a profile.

    Args:
        profile: Profile to encode with.
        input_path: Local input file.
        output_path: Local output file (overwritten).
        capabilities: Detected platform capabilities.
        hardware: Whether this attempt uses the hardware path.
        ffmpeg_path: Encoder executable.

    Returns:
        Argument vector starting with the executable.
    """
    cmd = [ffmpeg_path, "-hide_banner"]
    cmd.extend(capabilities.hwaccel_args(hardware))
    cmd.extend(["-i", str(input_path)])

    if profile.kind is ProfileKind.RAW:
        cmd.extend(profile.raw_args)
    elif profile.kind is ProfileKind.IMAGE:
        cmd.extend(_image_args(profile))
    else:
        cmd.extend(_video_args(profile, capabilities, hardware))

    cmd.extend(["-y", str(output_path)])
    return cmd


def _video_args(
    profile: TranscodeProfile,
    capabilities: PlatformCapabilities,
    hardware: bool,
) -> list[str]:
    args = ["-c:v", capabilities.video_encoder(profile.codec, hardware)]
    args.extend(capabilities.preset_args(profile.preset, hardware))

    use_hardware = hardware and capabilities.hardware_available
    if profile.software_bitrate and not use_hardware:
        args.extend(["-b:v", profile.software_bitrate])
    else:
        if profile.quality is not None:
            args.extend(capabilities.quality_args(profile.quality, hardware))
        if profile.max_bitrate:
            args.extend(["-maxrate", profile.max_bitrate])
        if profile.buffer_size:
            args.extend(["-bufsize", profile.buffer_size])

    if profile.frame_rate is not None:
        args.extend(["-r", str(profile.frame_rate)])
    if profile.gop is not None:
        args.extend(["-g", str(profile.gop)])
    if profile.has_scale:
        args.extend(["-vf", scale_filter(profile.width, profile.height)])

    if profile.audio is AudioPolicy.DROP:
        args.append("-an")
    else:
        args.extend(AUDIO_ARGS)
        if profile.audio_filter:
            args.extend(["-af", profile.audio_filter])

    if profile.output_ext == "mp4":
        args.extend(MP4_OUTPUT_ARGS)
    return args


def _image_args(profile: TranscodeProfile) -> list[str]:
    args: list[str] = []
    if profile.seek:
        args.extend(["-ss", profile.seek])
    if profile.frames is not None:
        args.extend(["-vframes", str(profile.frames)])
    if profile.has_scale:
        args.extend(["-vf", scale_filter(profile.width, profile.height)])
    if profile.image_quality is not None:
        args.extend(["-q:v", str(profile.image_quality)])
    return args
