"""CLI commands for transcode task management."""

import logging

import click

from vto.cli import get_app
from vto.cli.formatting import echo_json, echo_task, styled_status
from vto.core.errors import VTOError
from vto.domain import Task, TaskStatus

logger = logging.getLogger(__name__)

_STATUS_CHOICES = [s.value for s in TaskStatus] + ["all"]


@click.group("tasks")
def tasks_group() -> None:
    """Submit and manage transcode tasks.

    Examples:

        # Queue a transcode of uploads/clip.mov
        vto tasks submit clip.mov -c uploads -t mp4_standard -t thumbnail

        # List failed tasks
        vto tasks list --status failed

        # Retry a failed task
        vto tasks retry <task-id>

        # Stop a task that is being processed
        vto tasks abort <task-id>
    """
    pass


@tasks_group.command("submit")
@click.argument("input_key")
@click.option(
    "--container",
    "-c",
    "input_container",
    default=None,
    help="Input container (default: storage.default_input_container).",
)
@click.option(
    "--type",
    "-t",
    "transcode_types",
    multiple=True,
    required=True,
    help="Transcode type to produce (repeatable).",
)
@click.option(
    "--output-container",
    "-o",
    default=None,
    help="Output container (default: worker.default_output_container).",
)
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format.")
@click.pass_context
def submit_task(
    ctx: click.Context,
    input_key: str,
    input_container: str | None,
    transcode_types: tuple[str, ...],
    output_container: str | None,
    json_output: bool,
) -> None:
    """Create a task for INPUT_KEY and queue it."""
    app = get_app(ctx)
    container = input_container or app.config.storage.default_input_container
    if not container:
        raise click.ClickException(
            "No input container given and storage.default_input_container is unset."
        )

    try:
        task = app.service.submit(
            container, input_key, list(transcode_types), output_container
        )
    except VTOError as e:
        raise click.ClickException(str(e)) from e

    if json_output:
        echo_json(task.to_dict())
        return
    click.echo(f"Task {task.task_id} queued ({', '.join(task.transcode_types)}).")


@tasks_group.command("list")
@click.option(
    "--status",
    "-s",
    type=click.Choice(_STATUS_CHOICES),
    default="all",
    help="Filter by task status.",
)
@click.option("--date", "-d", default=None, help="Only tasks created on YYYY-MM-DD.")
@click.option("--limit", "-n", type=int, default=None, help="Page size (max 100).")
@click.option("--offset", type=int, default=0, help="Number of tasks to skip.")
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format.")
@click.pass_context
def list_tasks(
    ctx: click.Context,
    status: str,
    date: str | None,
    limit: int | None,
    offset: int,
    json_output: bool,
) -> None:
    """List tasks, newest first.

    Examples:

        # Second page of completed tasks from one day
        vto tasks list -s completed -d 2024-05-01 -n 20 --offset 20
    """
    app = get_app(ctx)
    try:
        result = app.task_store.list(
            status=None if status == "all" else TaskStatus(status),
            date=date,
            limit=limit,
            offset=offset,
        )
    except VTOError as e:
        raise click.ClickException(str(e)) from e

    if json_output:
        echo_json(
            {
                "tasks": [t.to_dict() for t in result.tasks],
                "total": result.total,
                "limit": result.limit,
                "offset": result.offset,
            }
        )
        return

    if not result.tasks:
        click.echo("No tasks found.")
        return

    click.echo(f"{'ID':<38} {'STATUS':<12} {'INPUT':<40} {'CREATED':<20}")
    click.echo("-" * 112)
    for task in result.tasks:
        click.echo(_format_task_row(task))
    shown_to = result.offset + len(result.tasks)
    click.echo(f"\nShowing {result.offset + 1}-{shown_to} of {result.total}")


def _format_task_row(task: Task) -> str:
    source = f"{task.input_container}/{task.input_key}"
    if len(source) > 40:
        source = "..." + source[-37:]
    created = task.created_at[:19].replace("T", " ")
    return (
        f"{task.task_id:<38} {styled_status(task.status, 12)} "
        f"{source:<40} {created:<20}"
    )


@tasks_group.command("show")
@click.argument("task_id")
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format.")
@click.pass_context
def show_task(ctx: click.Context, task_id: str, json_output: bool) -> None:
    """Show details, progress and errors of a task."""
    app = get_app(ctx)
    try:
        task = app.task_store.get(task_id)
    except VTOError as e:
        raise click.ClickException(str(e)) from e

    if json_output:
        echo_json(task.to_dict())
    else:
        echo_task(task)


@tasks_group.command("retry")
@click.argument("task_id")
@click.pass_context
def retry_task(ctx: click.Context, task_id: str) -> None:
    """Reset a task that is not processing and queue it again."""
    app = get_app(ctx)
    try:
        task = app.service.retry(task_id)
    except VTOError as e:
        raise click.ClickException(str(e)) from e
    click.echo(f"Task {task.task_id} queued for retry #{task.retry_count}.")


@tasks_group.command("cancel")
@click.argument("task_id")
@click.pass_context
def cancel_task(ctx: click.Context, task_id: str) -> None:
    """Cancel a pending task."""
    app = get_app(ctx)
    try:
        task, removed = app.service.cancel(task_id)
    except VTOError as e:
        raise click.ClickException(str(e)) from e
    click.echo(f"Task {task.task_id} cancelled.")
    if not removed:
        click.echo("Queued message not found; a worker will skip it.")


@tasks_group.command("abort")
@click.argument("task_id")
@click.pass_context
def abort_task(ctx: click.Context, task_id: str) -> None:
    """Stop a task that is being processed."""
    app = get_app(ctx)
    try:
        task = app.service.abort(task_id)
    except VTOError as e:
        raise click.ClickException(str(e)) from e
    click.echo(f"Task {task.task_id} aborted.")
