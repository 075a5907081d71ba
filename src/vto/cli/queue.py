"""CLI commands for the work queue."""

import click

from vto.cli import get_app
from vto.cli.formatting import echo_json
from vto.core.errors import VTOError


@click.group("queue")
def queue_group() -> None:
    """Inspect and manage the work queue."""
    pass


@queue_group.command("status")
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format.")
@click.pass_context
def queue_status(ctx: click.Context, json_output: bool) -> None:
    """Show approximate visible and in-flight message counts."""
    app = get_app(ctx)
    try:
        stats = app.queue.status()
    except VTOError as e:
        raise click.ClickException(str(e)) from e

    if json_output:
        echo_json(
            {
                "visible": stats.visible,
                "in_flight": stats.in_flight,
                "total": stats.total,
            }
        )
        return
    click.echo(f"Visible:    {stats.visible}")
    click.echo(f"In flight:  {stats.in_flight}")


@queue_group.command("purge")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation.")
@click.pass_context
def queue_purge(ctx: click.Context, yes: bool) -> None:
    """Delete every queued message. Task records are left untouched."""
    if not yes:
        click.confirm("Delete all queued messages?", abort=True)
    app = get_app(ctx)
    try:
        count = app.queue.purge()
    except VTOError as e:
        raise click.ClickException(str(e)) from e
    click.echo(f"Purged {count} message(s).")
