"""Subprocess helper for short-lived tool probes.

Long-running encodes go through vto.executor.engine, which tracks the
process handle so it can be terminated. This helper covers quick probes
such as `ffmpeg -encoders` or `nvidia-smi` during platform detection.
"""

from __future__ import annotations

import logging
import subprocess  # nosec B404 - subprocess is required for tool probes
import time
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


def run_command(
    args: list[str | Path],
    timeout: int = 30,
    errors: str = "replace",
    **kwargs: Any,
) -> tuple[str, str, int]:
    """Run an external command and capture its output.

    Args:
        args: Command and arguments. Path objects are converted to strings.
        timeout: Timeout in seconds (default 30).
        errors: Error handling mode for text decoding (default "replace").
        **kwargs: Additional subprocess.run arguments.

    Returns:
        Tuple of (stdout, stderr, returncode).

    Raises:
        subprocess.TimeoutExpired: If the command times out.
        OSError: If the executable cannot be started.
    """
    str_args = [str(arg) for arg in args]
    command_name = str_args[0].split("/")[-1] if str_args else "unknown"

    logger.debug(
        "Executing command: %s",
        " ".join(str_args),
        extra={"command": command_name, "arg_count": len(str_args)},
    )

    start_time = time.monotonic()
    try:
        result = subprocess.run(  # nosec B603 - caller builds args
            str_args,
            capture_output=True,
            text=True,
            errors=errors,
            timeout=timeout,
            **kwargs,
        )
    except subprocess.TimeoutExpired:
        logger.warning(
            "Command timed out after %ds: %s",
            timeout,
            " ".join(str_args[:3]) + ("..." if len(str_args) > 3 else ""),
            extra={"command": command_name, "timeout_seconds": timeout},
        )
        raise

    elapsed = time.monotonic() - start_time
    logger.debug(
        "Command completed",
        extra={
            "command": command_name,
            "elapsed_seconds": round(elapsed, 3),
            "returncode": result.returncode,
        },
    )
    return result.stdout or "", result.stderr or "", result.returncode
