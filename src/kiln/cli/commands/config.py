from __future__ import annotations

import click

from kiln.cli.context import CLIContext
from kiln.cli.output import format_json, format_yaml
from kiln.config import get_project_config_path, get_user_config_path


@click.group()
def config() -> None:
    """Inspect kiln configuration."""
    pass


@config.command("show")
@click.option(
    "-f",
    "--format",
    "fmt",
    type=click.Choice(["yaml", "json"]),
    default="yaml",
    help="Output format (yaml or json).",
)
@click.pass_context
def config_show(ctx: click.Context, fmt: str) -> None:
    """Display current configuration.

    Shows the merged configuration from all sources (defaults, user config,
    project config, environment variables).

    Examples:
        kiln config show
        kiln config show --format json
    """
    cli_ctx: CLIContext = ctx.obj["cli_ctx"]
    # mode="json" turns Path objects into strings for both formats
    config_dict = cli_ctx.config.model_dump(mode="json")
    if fmt == "json":
        click.echo(format_json(config_dict))
    else:
        click.echo(format_yaml(config_dict))


@config.command("paths")
@click.pass_context
def config_paths(ctx: click.Context) -> None:
    """Show where configuration is read from."""
    cli_ctx: CLIContext = ctx.obj["cli_ctx"]
    project = cli_ctx.config_path or get_project_config_path()
    for label, path in (("project", project), ("user", get_user_config_path())):
        state = "found" if path.exists() else "missing"
        click.echo(f"{label}: {path} ({state})")
