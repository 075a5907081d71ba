"""Execution engine for transcode profiles.

The engine resolves a transcode type to its profile, builds the encoder
command for the current hardware path, runs it as an external process,
and captures the command, combined output, and wall-clock duration.

Hardware fallback: each attempt takes a HardwareState snapshot before
building its command. If the attempt ran on the hardware path and failed
with a hardware failure marker in its output, the shared state is
downgraded (once, under a lock) and EncodeFailure(kind="hardware") is
raised. transcode() retries exactly once after such a failure; the retry
takes a fresh snapshot and so runs on the software path.

Running processes are tracked per task id so an abort can terminate an
in-flight encode. Output from a terminated process is never reported as
a success.
"""

from __future__ import annotations

import logging
import shlex
import subprocess  # nosec B404 - subprocess is required for ffmpeg invocation
import tempfile
import threading
import time
from dataclasses import dataclass
from pathlib import Path

from vto.core.errors import EncodeFailure, ValidationError
from vto.executor.command import build_command
from vto.executor.custom_profiles import validate_raw_args
from vto.executor.profiles import ProfileRegistry
from vto.tools.capabilities import PlatformCapabilities
from vto.tools.hardware import (
    HardwareSnapshot,
    HardwareState,
    find_hardware_failure_marker,
)

logger = logging.getLogger(__name__)

# Grace period between terminate() and kill() for an aborted encode
TERMINATE_GRACE_SECONDS = 5.0


@dataclass
class ExecutionResult:
    """Outcome of one encoder process."""

    command: list[str]
    output: str
    returncode: int
    duration: float
    hardware: bool
    terminated: bool = False
    timed_out: bool = False

    @property
    def success(self) -> bool:
        return self.returncode == 0 and not self.terminated and not self.timed_out

    @property
    def command_line(self) -> str:
        return shlex.join(self.command)


class ExecutionEngine:
    """Runs transcode profiles with hardware-to-software fallback.

    One instance is shared by all workers in a process.
    """

    def __init__(
        self,
        capabilities: PlatformCapabilities,
        registry: ProfileRegistry | None = None,
        hardware_state: HardwareState | None = None,
        ffmpeg_path: str = "ffmpeg",
        timeout: float | None = None,
        test_sample: Path | None = None,
        temp_dir: Path | None = None,
    ) -> None:
        """Initialize the engine.

        Args:
            capabilities: Detected platform capabilities.
            registry: Profile registry (built-ins when None).
            hardware_state: Shared hardware flag (created from capabilities
                when None).
            ffmpeg_path: Encoder executable.
            timeout: Per-process timeout in seconds (None = unlimited).
            test_sample: Known-good input used by test_transcode().
            temp_dir: Directory for test_transcode() outputs.
        """
        self.capabilities = capabilities
        self.registry = registry or ProfileRegistry()
        self.hardware_state = hardware_state or HardwareState(capabilities)
        self.ffmpeg_path = ffmpeg_path
        self.timeout = timeout
        self.test_sample = test_sample
        self.temp_dir = temp_dir

        self._processes: dict[str, subprocess.Popen] = {}
        self._terminated: set[str] = set()
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Transcoding
    # ------------------------------------------------------------------

    def transcode(
        self,
        transcode_type: str,
        input_path: Path,
        output_path: Path,
        task_id: str | None = None,
    ) -> ExecutionResult:
        """Run a profile, retrying once on the software path after a
        hardware failure.

        Raises:
            ProfileNotFoundError: If the transcode type is unknown.
            EncodeFailure: If the (final) attempt fails.
        """
        try:
            return self.run(transcode_type, input_path, output_path, task_id)
        except EncodeFailure as e:
            if not e.is_hardware:
                raise
            logger.warning(
                "%s failed on the hardware path, retrying with software encoding",
                transcode_type,
            )
        return self.run(transcode_type, input_path, output_path, task_id)

    def run(
        self,
        transcode_type: str,
        input_path: Path,
        output_path: Path,
        task_id: str | None = None,
    ) -> ExecutionResult:
        """Run a single attempt of a profile.

        Raises:
            ProfileNotFoundError: If the transcode type is unknown.
            EncodeFailure: If the process fails. kind is "hardware" when
                the attempt ran on the hardware path and its output carries
                a hardware failure marker; the shared hardware state has
                then been downgraded.
        """
        profile = self.registry.get(transcode_type)
        snapshot = self.hardware_state.snapshot()
        cmd = build_command(
            profile,
            input_path,
            output_path,
            self.capabilities,
            hardware=snapshot.usable,
            ffmpeg_path=self.ffmpeg_path,
        )
        label = f"{transcode_type}{' [hardware]' if snapshot.usable else ''}"
        logger.info("Starting %s: %s -> %s", label, input_path.name, output_path.name)

        result = self._execute(cmd, task_id, hardware=snapshot.usable)
        if result.success:
            logger.info("%s succeeded in %.1fs", label, result.duration)
            return result

        self._raise_failure(label, result, snapshot)

    def _raise_failure(
        self, label: str, result: ExecutionResult, snapshot: HardwareSnapshot
    ) -> None:
        if result.terminated:
            logger.info("%s terminated after %.1fs", label, result.duration)
            raise EncodeFailure("other", result, f"{label} was terminated")
        if result.timed_out:
            raise EncodeFailure("other", result, f"{label} timed out")

        logger.error("%s failed with exit code %d", label, result.returncode)
        logger.debug("Encoder output for %s:\n%s", label, result.output)

        if snapshot.usable:
            marker = find_hardware_failure_marker(result.output, self.capabilities.kind)
            if marker is not None:
                self.hardware_state.downgrade(snapshot, marker)
                raise EncodeFailure("hardware", result)
        raise EncodeFailure(
            "other", result, f"{label} failed with exit code {result.returncode}"
        )

    # ------------------------------------------------------------------
    # Raw-argument test entry point
    # ------------------------------------------------------------------

    def test_transcode(
        self,
        raw_args: list[str],
        output_ext: str = "mp4",
        sample: Path | None = None,
    ) -> ExecutionResult:
        """Run raw encoder arguments against a known-good sample.

        The command is hwaccel flags + input + raw args + a temporary
        output, which is removed afterwards. No task is created. Failures
        are returned in the result rather than raised.

        Raises:
            ValidationError: If the arguments are unsafe or no sample input
                is configured.
        """
        args = validate_raw_args(raw_args)
        sample = sample or self.test_sample
        if sample is None or not Path(sample).is_file():
            raise ValidationError(f"Test sample input not available: {sample}")

        snapshot = self.hardware_state.snapshot()
        handle = tempfile.NamedTemporaryFile(
            suffix=f".{output_ext}", prefix="vto-test-", dir=self.temp_dir, delete=False
        )
        handle.close()
        output_path = Path(handle.name)
        cmd = [
            self.ffmpeg_path,
            "-hide_banner",
            *self.capabilities.hwaccel_args(snapshot.usable),
            "-i",
            str(sample),
            *args,
            "-y",
            str(output_path),
        ]
        try:
            result = self._execute(cmd, None, hardware=snapshot.usable)
        finally:
            output_path.unlink(missing_ok=True)
        logger.info(
            "Test transcode %s (exit %d, %.1fs)",
            "succeeded" if result.success else "failed",
            result.returncode,
            result.duration,
        )
        return result

    # ------------------------------------------------------------------
    # Process tracking
    # ------------------------------------------------------------------

    def terminate(self, task_id: str) -> bool:
        """Terminate the encode currently running for a task.

        Returns:
            True if a running process was signalled.
        """
        with self._lock:
            process = self._processes.get(task_id)
            if process is None:
                return False
            self._terminated.add(task_id)

        logger.info("Terminating encoder process %d for task %s", process.pid, task_id)
        process.terminate()
        try:
            process.wait(timeout=TERMINATE_GRACE_SECONDS)
        except subprocess.TimeoutExpired:
            logger.warning("Encoder process %d ignored SIGTERM, killing", process.pid)
            process.kill()
        return True

    def terminate_all(self) -> int:
        """Terminate every tracked encode. Returns the number signalled."""
        with self._lock:
            task_ids = list(self._processes)
        return sum(1 for task_id in task_ids if self.terminate(task_id))

    @property
    def running_tasks(self) -> list[str]:
        with self._lock:
            return list(self._processes)

    def _execute(
        self, cmd: list[str], task_id: str | None, hardware: bool
    ) -> ExecutionResult:
        logger.debug("Encoder command: %s", shlex.join(cmd))
        start = time.monotonic()
        try:
            process = subprocess.Popen(  # nosec B603 - argument vector, no shell
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                errors="replace",
            )
        except OSError as e:
            return ExecutionResult(
                command=cmd,
                output=f"Failed to start encoder: {e}",
                returncode=-1,
                duration=time.monotonic() - start,
                hardware=hardware,
            )

        if task_id is not None:
            with self._lock:
                self._processes[task_id] = process
                self._terminated.discard(task_id)

        timed_out = False
        try:
            try:
                output, _ = process.communicate(timeout=self.timeout)
            except subprocess.TimeoutExpired:
                logger.warning("Encoder timed out after %s seconds", self.timeout)
                timed_out = True
                process.kill()
                output, _ = process.communicate()
        finally:
            terminated = False
            if task_id is not None:
                with self._lock:
                    self._processes.pop(task_id, None)
                    terminated = task_id in self._terminated
                    self._terminated.discard(task_id)

        return ExecutionResult(
            command=cmd,
            output=output or "",
            returncode=process.returncode if not timed_out else -1,
            duration=time.monotonic() - start,
            hardware=hardware,
            terminated=terminated,
            timed_out=timed_out,
        )
