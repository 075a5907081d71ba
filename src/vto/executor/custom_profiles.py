"""Custom transcode profiles defined by raw encoder arguments.

Custom profiles live in a YAML file:

    profiles:
      - name: custom_vertical_720
        description: 720x1280 vertical crop
        ffmpeg_args: ["-vf", "crop=ih*9/16:ih,scale=720:1280", "-c:v", "libx264"]
        output_ext: mp4
        platform: all

Raw arguments are passed to the encoder as an argument vector (never
through a shell), but are still screened for shell metacharacters and
bounded in count and length.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from vto.core.errors import ValidationError
from vto.executor.profiles import ProfileKind, TranscodeProfile

logger = logging.getLogger(__name__)

# Forbidden shell metacharacters in raw encoder arguments
FORBIDDEN_ARG_PATTERNS = (
    ";",
    "|",
    "&",
    "$(",
    "`",
    "${",
    ">",
    "<",
    "\\n",
    "\n",
)

MAX_RAW_ARGS_COUNT = 50
MAX_RAW_ARG_LENGTH = 1024

# Arguments the engine supplies itself
_RESERVED_ARGS = frozenset({"-i", "-y"})


def check_raw_args(args: list[str]) -> list[str]:
    """Validate raw encoder arguments.

    Returns:
        The arguments unchanged.

    Raises:
        ValueError: If any argument is unsafe or the list is out of bounds.
    """
    if not args:
        raise ValueError("ffmpeg_args must not be empty")
    if len(args) > MAX_RAW_ARGS_COUNT:
        raise ValueError(
            f"ffmpeg_args count exceeds limit: {len(args)} > {MAX_RAW_ARGS_COUNT}"
        )
    for i, arg in enumerate(args):
        if not isinstance(arg, str):
            raise ValueError(f"ffmpeg_args must be strings, got {type(arg).__name__}")
        if len(arg) > MAX_RAW_ARG_LENGTH:
            raise ValueError(
                f"ffmpeg_args[{i}] exceeds length limit: "
                f"{len(arg)} > {MAX_RAW_ARG_LENGTH}"
            )
        for pattern in FORBIDDEN_ARG_PATTERNS:
            if pattern in arg:
                raise ValueError(
                    f"ffmpeg_args[{i}] contains forbidden character: "
                    f"'{pattern}' (shell metacharacters not allowed)"
                )
        if arg in _RESERVED_ARGS:
            raise ValueError(f"ffmpeg_args[{i}] '{arg}' is supplied automatically")
    return args


def validate_raw_args(args: list[str]) -> list[str]:
    """check_raw_args, raising VTO's ValidationError."""
    try:
        return check_raw_args(list(args))
    except ValueError as e:
        raise ValidationError(str(e)) from e


class CustomProfileModel(BaseModel):
    """One custom profile entry."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str = Field(pattern=r"^[a-z0-9][a-z0-9_]{0,63}$")
    description: str = ""
    ffmpeg_args: list[str]
    output_ext: str = Field(default="mp4", pattern=r"^[a-z0-9]{2,5}$")
    platform: Literal["all", "linux_nvidia", "macos_apple", "cpu"] = "all"

    @field_validator("ffmpeg_args")
    @classmethod
    def validate_ffmpeg_args(cls, v: list[str]) -> list[str]:
        """Validate raw arguments for safety."""
        return check_raw_args(v)

    def to_profile(self) -> TranscodeProfile:
        return TranscodeProfile(
            name=self.name,
            description=self.description,
            kind=ProfileKind.RAW,
            raw_args=tuple(self.ffmpeg_args),
            output_ext=self.output_ext,
            platform=self.platform,
            builtin=False,
        )


class CustomProfilesFileModel(BaseModel):
    """Top-level layout of a custom profiles file."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    profiles: list[CustomProfileModel] = Field(default_factory=list)


def load_custom_profiles(path: Path) -> list[TranscodeProfile]:
    """Read and validate a custom profiles YAML file.

    Raises:
        ValidationError: If the file cannot be read, is not valid YAML, or
            fails validation.
    """
    path = Path(path).expanduser()
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise ValidationError(f"Cannot read profiles file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ValidationError(f"Invalid YAML in profiles file {path}: {e}") from e

    try:
        model = CustomProfilesFileModel.model_validate(data or {})
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid profiles file {path}: {e}") from e

    names = [p.name for p in model.profiles]
    duplicates = sorted({n for n in names if names.count(n) > 1})
    if duplicates:
        raise ValidationError(
            f"Duplicate profile names in {path}: {', '.join(duplicates)}"
        )
    logger.debug("Parsed %d custom profile(s) from %s", len(names), path)
    return [p.to_profile() for p in model.profiles]
