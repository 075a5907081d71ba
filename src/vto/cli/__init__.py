"""CLI for the Video Transcode Orchestrator."""

import logging
from pathlib import Path

import click

from vto.cli.context import AppContext

_logging_configured: bool = False

logger = logging.getLogger(__name__)


def _configure_logging(
    config,
    log_level: str | None,
    log_file: Path | None,
    log_json: bool,
) -> None:
    """Configure logging once per process from config plus CLI overrides."""
    global _logging_configured
    if _logging_configured:
        return

    from vto.logging import build_logging_config, configure_logging

    configure_logging(
        build_logging_config(
            config.logging,
            level=log_level,
            file=log_file,
            format="json" if log_json else None,
        )
    )
    _logging_configured = True


@click.group()
@click.version_option(package_name="video-transcode-orchestrator")
@click.option(
    "--config",
    "config_path",
    type=click.Path(path_type=Path, dir_okay=False),
    default=None,
    help="Config file (default: $VTO_CONFIG_PATH or ~/.vto/config.toml).",
)
@click.option(
    "--log-level",
    type=click.Choice(["debug", "info", "warning", "error"], case_sensitive=False),
    default=None,
    help="Override log level (default: info).",
)
@click.option(
    "--log-file",
    type=click.Path(path_type=Path),
    default=None,
    help="Override log file path.",
)
@click.option(
    "--log-json",
    is_flag=True,
    default=False,
    help="Use JSON log format.",
)
@click.pass_context
def main(
    ctx: click.Context,
    config_path: Path | None,
    log_level: str | None,
    log_file: Path | None,
    log_json: bool,
) -> None:
    """Video Transcode Orchestrator - queue, run, and track transcode tasks."""
    ctx.ensure_object(dict)

    # Preserve an application context passed in by tests
    if "app" in ctx.obj:
        return

    from vto.config import ConfigFileError, get_config

    try:
        config = get_config(config_path=config_path, strict=True)
    except (ConfigFileError, ValueError) as e:
        raise click.ClickException(f"Invalid configuration: {e}") from e

    _configure_logging(config, log_level, log_file, log_json)
    ctx.obj["app"] = AppContext(config)


def get_app(ctx: click.Context) -> AppContext:
    """Return the AppContext set up by the main group."""
    return ctx.find_root().obj["app"]


# Defer import to avoid circular dependency
def _register_commands():
    from vto.cli.platform import platform_command, profiles_command, test_encode
    from vto.cli.queue import queue_group
    from vto.cli.tasks import tasks_group
    from vto.cli.worker import worker_command

    main.add_command(tasks_group)
    main.add_command(queue_group)
    main.add_command(worker_command)
    main.add_command(platform_command)
    main.add_command(profiles_command)
    main.add_command(test_encode)


_register_commands()
