"""Unit tests for the execution engine."""

import subprocess
import threading
from pathlib import Path
from unittest.mock import patch

import pytest

from vto.core.errors import EncodeFailure, ValidationError
from vto.executor import ExecutionEngine, ProfileNotFoundError
from vto.tools import HardwareState, PlatformCapabilities

POPEN = "vto.executor.engine.subprocess.Popen"


class FakeProcess:
    """Stand-in for subprocess.Popen with scripted output.

    When block is True, communicate() waits until terminate() or kill().
    """

    def __init__(self, output: str = "", returncode: int = 0, block: bool = False):
        self.output = output
        self.final_returncode = returncode
        self.returncode: int | None = None
        self.pid = 4242
        self.block = block
        self.started = threading.Event()
        self.stopped = threading.Event()
        self.terminate_calls = 0

    def communicate(self, timeout=None):
        self.started.set()
        if self.block and not self.stopped.wait(timeout=timeout or 5):
            raise subprocess.TimeoutExpired("ffmpeg", timeout)
        if self.returncode is None:
            self.returncode = self.final_returncode
        return self.output, None

    def terminate(self) -> None:
        self.terminate_calls += 1
        self.returncode = -15
        self.stopped.set()

    def kill(self) -> None:
        self.returncode = -9
        self.stopped.set()

    def wait(self, timeout=None) -> int:
        self.stopped.wait(timeout)
        return self.returncode


class PopenScript:
    """Hands out queued FakeProcess objects and records commands."""

    def __init__(self, *processes: FakeProcess) -> None:
        self.processes = list(processes)
        self.commands: list[list[str]] = []

    def __call__(self, cmd, **kwargs):
        self.commands.append(list(cmd))
        return self.processes.pop(0)


@pytest.fixture
def paths(tmp_path: Path) -> tuple[Path, Path]:
    return tmp_path / "in.mov", tmp_path / "out.mp4"


class TestRun:
    """Tests for single encode attempts."""

    def test_success(
        self, cpu_caps: PlatformCapabilities, paths: tuple[Path, Path]
    ) -> None:
        """Should return the captured command, output, and exit status."""
        script = PopenScript(FakeProcess("frame=100"))
        engine = ExecutionEngine(cpu_caps)

        with patch(POPEN, side_effect=script):
            result = engine.run("mp4_standard", *paths)

        assert result.success is True
        assert result.output == "frame=100"
        assert result.hardware is False
        assert result.command == script.commands[0]
        assert "libx265" in result.command_line

    def test_other_failure(
        self, nvidia_caps: PlatformCapabilities, paths: tuple[Path, Path]
    ) -> None:
        """Should raise an "other" failure when no hardware marker is present."""
        script = PopenScript(FakeProcess("in.mov: Invalid data found", 1))
        engine = ExecutionEngine(nvidia_caps)

        with patch(POPEN, side_effect=script):
            with pytest.raises(EncodeFailure) as exc_info:
                engine.run("mp4_standard", *paths)

        assert exc_info.value.kind == "other"
        assert exc_info.value.result.returncode == 1
        assert engine.hardware_state.usable is True

    def test_unknown_type(
        self, cpu_caps: PlatformCapabilities, paths: tuple[Path, Path]
    ) -> None:
        """Should raise before starting any process."""
        engine = ExecutionEngine(cpu_caps)

        with patch(POPEN) as popen:
            with pytest.raises(ProfileNotFoundError):
                engine.run("nope", *paths)
        popen.assert_not_called()

    def test_missing_executable(
        self, cpu_caps: PlatformCapabilities, paths: tuple[Path, Path]
    ) -> None:
        """Should report a start failure as an encode failure."""
        engine = ExecutionEngine(cpu_caps)

        with patch(POPEN, side_effect=FileNotFoundError("ffmpeg")):
            with pytest.raises(EncodeFailure) as exc_info:
                engine.run("thumbnail", *paths)

        assert exc_info.value.result.returncode == -1
        assert "Failed to start encoder" in exc_info.value.result.output

    def test_timeout(self, cpu_caps: PlatformCapabilities, paths: tuple[Path, Path]):
        """Should kill a process that exceeds the timeout."""
        process = FakeProcess(block=True)
        engine = ExecutionEngine(cpu_caps, timeout=0.05)

        with patch(POPEN, side_effect=PopenScript(process)):
            with pytest.raises(EncodeFailure, match="timed out") as exc_info:
                engine.run("mp4_smooth", *paths)

        assert exc_info.value.result.timed_out is True
        assert process.returncode == -9


class TestHardwareFallback:
    """Tests for hardware-to-software fallback."""

    def test_fallback_retries_on_software(
        self, nvidia_caps: PlatformCapabilities, paths: tuple[Path, Path]
    ) -> None:
        """Should downgrade once and succeed on the software path."""
        script = PopenScript(
            FakeProcess("[hevc_nvenc] No NVENC capable devices found", 1),
            FakeProcess("done"),
        )
        engine = ExecutionEngine(nvidia_caps)

        with patch(POPEN, side_effect=script):
            result = engine.transcode("mp4_standard", *paths)

        first, second = script.commands
        assert "hevc_nvenc" in first and "-hwaccel" in first
        assert "libx265" in second and "-hwaccel" not in second
        assert result.success is True
        assert result.hardware is False
        assert engine.hardware_state.usable is False

    def test_later_attempts_stay_on_software(
        self, nvidia_caps: PlatformCapabilities, paths: tuple[Path, Path]
    ) -> None:
        """Should build software commands for every attempt after a downgrade."""
        state = HardwareState(nvidia_caps)
        state.downgrade(state.snapshot(), "cuda")
        script = PopenScript(FakeProcess())
        engine = ExecutionEngine(nvidia_caps, hardware_state=state)

        with patch(POPEN, side_effect=script):
            engine.transcode("thumbnail", *paths)

        assert "-hwaccel" not in script.commands[0]

    def test_software_failure_after_fallback(
        self, nvidia_caps: PlatformCapabilities, paths: tuple[Path, Path]
    ) -> None:
        """Should not retry more than once."""
        script = PopenScript(
            FakeProcess("cuda error: out of memory", 1),
            FakeProcess("cuda still mentioned", 1),
        )
        engine = ExecutionEngine(nvidia_caps)

        with patch(POPEN, side_effect=script):
            with pytest.raises(EncodeFailure) as exc_info:
                engine.transcode("mp4_standard", *paths)

        assert exc_info.value.kind == "other"
        assert len(script.commands) == 2

    def test_cpu_failure_never_hardware(
        self, cpu_caps: PlatformCapabilities, paths: tuple[Path, Path]
    ) -> None:
        """Should not classify CPU failures as hardware failures."""
        script = PopenScript(FakeProcess("Failed to open encoder", 1))
        engine = ExecutionEngine(cpu_caps)

        with patch(POPEN, side_effect=script):
            with pytest.raises(EncodeFailure) as exc_info:
                engine.transcode("mp4_standard", *paths)

        assert exc_info.value.kind == "other"
        assert len(script.commands) == 1


class TestTerminate:
    """Tests for terminating in-flight encodes."""

    def test_terminate_running_task(
        self, cpu_caps: PlatformCapabilities, paths: tuple[Path, Path]
    ) -> None:
        """Should stop the process and never report success."""
        process = FakeProcess(block=True)
        engine = ExecutionEngine(cpu_caps)
        errors: list[EncodeFailure] = []

        def encode() -> None:
            try:
                engine.transcode("mp4_standard", *paths, task_id="t-1")
            except EncodeFailure as e:
                errors.append(e)

        with patch(POPEN, side_effect=PopenScript(process)):
            worker = threading.Thread(target=encode)
            worker.start()
            assert process.started.wait(2)
            assert engine.running_tasks == ["t-1"]

            assert engine.terminate("t-1") is True
            worker.join(5)

        assert process.terminate_calls == 1
        assert len(errors) == 1
        assert errors[0].result.terminated is True
        assert "terminated" in str(errors[0])
        assert engine.running_tasks == []

    def test_terminate_unknown_task(self, cpu_caps: PlatformCapabilities) -> None:
        """Should report that nothing was running."""
        engine = ExecutionEngine(cpu_caps)

        assert engine.terminate("nobody") is False
        assert engine.terminate_all() == 0


class TestTestTranscode:
    """Tests for raw argument test encodes."""

    def test_runs_against_sample(
        self, cpu_caps: PlatformCapabilities, tmp_path: Path
    ) -> None:
        """Should run raw args on the sample and remove the output."""
        sample = tmp_path / "sample.mp4"
        sample.write_bytes(b"\x00")
        script = PopenScript(FakeProcess("ok"))
        engine = ExecutionEngine(cpu_caps, test_sample=sample, temp_dir=tmp_path)

        with patch(POPEN, side_effect=script):
            result = engine.test_transcode(["-c:v", "libx264"], output_ext="mkv")

        cmd = script.commands[0]
        assert cmd[2:6] == ["-i", str(sample), "-c:v", "libx264"]
        assert cmd[-1].endswith(".mkv")
        assert not Path(cmd[-1]).exists()
        assert result.success is True

    def test_failure_returned_not_raised(
        self, cpu_caps: PlatformCapabilities, tmp_path: Path
    ) -> None:
        """Should return failing results to the caller."""
        sample = tmp_path / "sample.mp4"
        sample.write_bytes(b"\x00")
        engine = ExecutionEngine(cpu_caps, temp_dir=tmp_path)

        with patch(POPEN, side_effect=PopenScript(FakeProcess("bad", 1))):
            result = engine.test_transcode(["-c:v", "nope"], sample=sample)

        assert result.success is False
        assert result.output == "bad"

    def test_requires_sample(self, cpu_caps: PlatformCapabilities) -> None:
        """Should refuse to run without a sample input."""
        with pytest.raises(ValidationError, match="sample"):
            ExecutionEngine(cpu_caps).test_transcode(["-an"])

    def test_rejects_unsafe_args(
        self, cpu_caps: PlatformCapabilities, tmp_path: Path
    ) -> None:
        """Should validate raw args before running anything."""
        with patch(POPEN) as popen:
            with pytest.raises(ValidationError):
                ExecutionEngine(cpu_caps, test_sample=tmp_path).test_transcode(
                    ["-vf", "x|y"]
                )
        popen.assert_not_called()
