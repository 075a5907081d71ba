"""CLI command running the worker pool."""

import logging

import click

from vto.cli import get_app
from vto.core.errors import VTOError

logger = logging.getLogger(__name__)


@click.command("worker")
@click.option(
    "--concurrency",
    "-w",
    type=click.IntRange(min=1),
    default=None,
    help="Number of worker threads (default: worker.concurrency).",
)
@click.option(
    "--poll-interval",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help="Seconds each receive waits for a message.",
)
@click.option(
    "--output-container",
    "-o",
    default=None,
    help="Default output container (default: worker.default_output_container).",
)
@click.pass_context
def worker_command(
    ctx: click.Context,
    concurrency: int | None,
    poll_interval: float | None,
    output_container: str | None,
) -> None:
    """Process queued tasks until interrupted (SIGINT/SIGTERM).

    Examples:

        # Run four workers writing to the "transcoded" container
        vto worker -w 4 -o transcoded
    """
    app = get_app(ctx)
    if not (output_container or app.config.worker.default_output_container):
        raise click.ClickException(
            "No default output container: pass --output-container or set "
            "VTO_OUTPUT_CONTAINER."
        )

    try:
        pool = app.build_worker_pool(
            concurrency=concurrency,
            poll_interval=poll_interval,
            output_container=output_container,
        )
    except VTOError as e:
        raise click.ClickException(str(e)) from e

    capabilities = app.capabilities
    click.echo(
        f"Platform: {capabilities.kind.value} "
        f"(hardware: {'yes' if capabilities.hardware_available else 'no'})"
    )
    processed = pool.run()
    click.echo(f"Processed {processed} task(s).")
