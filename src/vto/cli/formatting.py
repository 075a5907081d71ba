"""Display helpers shared by CLI commands."""

import json
from typing import Any

import click

from vto.domain import ProgressStatus, Task, TaskStatus

TASK_STATUS_COLORS: dict[TaskStatus, str] = {
    TaskStatus.PENDING: "yellow",
    TaskStatus.PROCESSING: "blue",
    TaskStatus.COMPLETED: "green",
    TaskStatus.FAILED: "red",
    TaskStatus.RETRYING: "magenta",
    TaskStatus.CANCELLED: "bright_black",
}

PROGRESS_COLORS: dict[ProgressStatus, str] = {
    ProgressStatus.PENDING: "yellow",
    ProgressStatus.PROCESSING: "blue",
    ProgressStatus.COMPLETED: "green",
    ProgressStatus.FAILED: "red",
}

DEFAULT_STATUS_COLOR = "white"


def get_status_color(status: TaskStatus) -> str:
    return TASK_STATUS_COLORS.get(status, DEFAULT_STATUS_COLOR)


def styled_status(status: TaskStatus, width: int = 0, upper: bool = False) -> str:
    """Pad first, then color, so ANSI codes do not break alignment."""
    text = status.value.upper() if upper else status.value
    return click.style(f"{text:<{width}}", fg=get_status_color(status))


def echo_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2, default=str))


def echo_task(task: Task) -> None:
    """Print one task in human-readable form."""
    click.echo(f"\nTask: {task.task_id}")
    click.echo("-" * 50)
    click.echo(f"  Status:      {styled_status(task.status, upper=True)}")
    click.echo(f"  Input:       {task.input_container}/{task.input_key}")
    click.echo(f"  Output:      {task.output_container or '(default)'}")
    click.echo(f"  Retries:     {task.retry_count}/{task.max_retries}")
    click.echo("")
    click.echo(f"  Created:     {task.created_at}")
    if task.started_at:
        click.echo(f"  Started:     {task.started_at}")
    if task.completed_at:
        click.echo(f"  Completed:   {task.completed_at}")

    click.echo("")
    click.echo("  Transcode types:")
    for transcode_type in task.transcode_types:
        progress = task.progress.get(transcode_type, ProgressStatus.PENDING)
        line = f"    {transcode_type:<22} "
        line += click.style(progress.value, fg=PROGRESS_COLORS[progress])
        output = task.output_files.get(transcode_type)
        if output:
            line += f"  -> {output}"
        click.echo(line)

    if task.error_message:
        click.echo("")
        click.echo(f"  Error:       {click.style(task.error_message, fg='red')}")
    for detail in task.error_details:
        label = detail.stage.value
        if detail.transcode_type:
            label += f"/{detail.transcode_type}"
        click.echo(f"    [{label}] {detail.error}")
