"""Unit tests for configuration models and the environment reader."""

from pathlib import Path

import pytest

from vto.config import EncoderConfig, EnvReader, LoggingConfig, TaskConfig, WorkerConfig


class TestModelValidation:
    """Tests for __post_init__ validation."""

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"concurrency": 0},
            {"poll_interval": 0},
            {"visibility_timeout": 0.5},
            {"shutdown_grace_period": -1},
            {"abort_check_interval": 0},
            {"encode_timeout": 0},
        ],
    )
    def test_worker_config_rejects(self, kwargs: dict) -> None:
        """Should reject out-of-range worker settings."""
        with pytest.raises(ValueError):
            WorkerConfig(**kwargs)

    def test_task_config_rejects_negative_retries(self) -> None:
        """Should reject a negative retry ceiling."""
        with pytest.raises(ValueError, match="max_retries"):
            TaskConfig(max_retries=-1)

    def test_encoder_hw_mode(self) -> None:
        """Should accept auto and none only."""
        assert EncoderConfig(hw_mode="NONE").hw_mode == "NONE"
        with pytest.raises(ValueError, match="hw_mode"):
            EncoderConfig(hw_mode="cuda")

    @pytest.mark.parametrize("kwargs", [{"level": "trace"}, {"format": "xml"}])
    def test_logging_config_rejects(self, kwargs: dict) -> None:
        """Should reject unknown levels and formats."""
        with pytest.raises(ValueError):
            LoggingConfig(**kwargs)


class TestEnvReader:
    """Tests for EnvReader."""

    def test_typed_values(self) -> None:
        """Should parse typed values from the injected mapping."""
        reader = EnvReader(
            env={"I": "3", "F": "2.5", "B": "Yes", "S": "x", "P": "~/data"}
        )

        assert reader.get_int("I") == 3
        assert reader.get_float("F") == 2.5
        assert reader.get_bool("B") is True
        assert reader.get_str("S") == "x"
        assert reader.get_path("P") == Path("~/data").expanduser()

    def test_defaults_when_unset(self) -> None:
        """Should return defaults for unset variables."""
        reader = EnvReader(env={})

        assert reader.get_int("I", 7) == 7
        assert reader.get_bool("B") is None
        assert reader.get_path("P") is None

    def test_invalid_int(self) -> None:
        """Should fall back to the default for unparseable integers."""
        assert EnvReader(env={"I": "many"}).get_int("I", 1) == 1

    def test_must_exist(self, tmp_path: Path) -> None:
        """Should reject paths that do not exist when required."""
        reader = EnvReader(env={"P": str(tmp_path / "missing")})

        assert reader.get_path("P", must_exist=True) is None
        assert reader.get_path("P") == tmp_path / "missing"
