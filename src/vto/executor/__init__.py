"""Transcode profiles and the execution engine."""

from vto.executor.command import build_command
from vto.executor.engine import ExecutionEngine, ExecutionResult
from vto.executor.profiles import (
    BUILTIN_PROFILES,
    PROFILE_VERSION,
    ProfileKind,
    ProfileNotFoundError,
    ProfileRegistry,
    TranscodeProfile,
)

__all__ = [
    "BUILTIN_PROFILES",
    "PROFILE_VERSION",
    "ExecutionEngine",
    "ExecutionResult",
    "ProfileKind",
    "ProfileNotFoundError",
    "ProfileRegistry",
    "TranscodeProfile",
    "build_command",
]
