"""CLI commands for encoder platform inspection and profile testing."""

from pathlib import Path

import click

from vto.cli import get_app
from vto.cli.formatting import echo_json
from vto.core.errors import VTOError
from vto.executor import PROFILE_VERSION


@click.command("platform")
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format.")
@click.pass_context
def platform_command(ctx: click.Context, json_output: bool) -> None:
    """Detect and show the host's encoding capabilities."""
    capabilities = get_app(ctx).capabilities

    if json_output:
        echo_json(capabilities.to_dict())
        return

    info = capabilities.to_dict()
    click.echo(f"Platform:     {info['platform']}")
    click.echo(f"OS / arch:    {info['os']} / {info['arch']}")
    hardware = click.style(
        "yes" if capabilities.hardware_available else "no",
        fg="green" if capabilities.hardware_available else "yellow",
    )
    click.echo(f"Hardware:     {hardware}")
    if capabilities.device_name:
        click.echo(f"Device:       {capabilities.device_name}")
    click.echo(f"H.264:        {info['h264_encoder']}")
    click.echo(f"HEVC:         {info['hevc_encoder']}")
    if info["hwaccel_args"]:
        click.echo(f"Decode flags: {' '.join(info['hwaccel_args'])}")


@click.command("profiles")
@click.option(
    "--platform",
    "platform_name",
    type=click.Choice(["linux_nvidia", "macos_apple", "cpu"]),
    default=None,
    help="Only profiles usable on this platform.",
)
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format.")
@click.pass_context
def profiles_command(
    ctx: click.Context, platform_name: str | None, json_output: bool
) -> None:
    """List transcode profiles (built-in and custom)."""
    try:
        profiles = get_app(ctx).registry.list(platform=platform_name)
    except VTOError as e:
        raise click.ClickException(str(e)) from e

    if json_output:
        echo_json(
            {
                "version": PROFILE_VERSION,
                "profiles": [
                    {
                        "name": p.name,
                        "description": p.description,
                        "kind": p.kind.value,
                        "output_ext": p.output_ext,
                        "platform": p.platform,
                        "builtin": p.builtin,
                    }
                    for p in profiles
                ],
            }
        )
        return

    click.echo(f"Profiles (version {PROFILE_VERSION}):")
    for profile in profiles:
        origin = "" if profile.builtin else click.style(" [custom]", fg="cyan")
        click.echo(
            f"  {profile.name:<22} {profile.output_ext:<5} "
            f"{profile.description}{origin}"
        )


@click.command(
    "test-encode",
    context_settings={"ignore_unknown_options": True},
)
@click.argument("ffmpeg_args", nargs=-1, type=click.UNPROCESSED, required=True)
@click.option(
    "--sample",
    type=click.Path(path_type=Path, exists=True, dir_okay=False),
    default=None,
    help="Input to encode (default: encoder.test_sample).",
)
@click.option("--ext", "output_ext", default="mp4", help="Output file extension.")
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format.")
@click.pass_context
def test_encode(
    ctx: click.Context,
    ffmpeg_args: tuple[str, ...],
    sample: Path | None,
    output_ext: str,
    json_output: bool,
) -> None:
    """Run raw encoder arguments against a sample input.

    Arguments go between the input and output; input and output are added
    automatically. No task is created.

    Examples:

        vto test-encode -- -c:v libx265 -crf 28 -an -t 2
    """
    try:
        result = get_app(ctx).engine.test_transcode(
            list(ffmpeg_args), output_ext=output_ext, sample=sample
        )
    except VTOError as e:
        raise click.ClickException(str(e)) from e

    if json_output:
        echo_json(
            {
                "success": result.success,
                "command": result.command_line,
                "output": result.output,
                "returncode": result.returncode,
                "duration": round(result.duration, 3),
            }
        )
    else:
        click.echo(f"Command: {result.command_line}")
        click.echo(result.output.rstrip())
        status = click.style(
            "succeeded" if result.success else "failed",
            fg="green" if result.success else "red",
        )
        click.echo(f"\nTest encode {status} in {result.duration:.1f}s")

    if not result.success:
        ctx.exit(1)
