"""CLI entry point for kiln.

This module defines the Click-based command-line interface for kiln.
"""

from __future__ import annotations

import logging
from pathlib import Path

import click

from kiln import __version__
from kiln.cli.commands.config import config
from kiln.cli.commands.render import render
from kiln.cli.console import err_console
from kiln.cli.context import CLIContext, ExitCode
from kiln.cli.output import format_error
from kiln.config import load_config
from kiln.exceptions import ConfigError
from kiln.logging import bind_context, clear_context, configure_logging

_VERBOSITY_LEVELS = {
    "error": logging.ERROR,
    "warning": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
}


@click.group(invoke_without_command=True)
@click.version_option(version=__version__, prog_name="kiln")
@click.option(
    "-c",
    "--config",
    "config_file",
    type=click.Path(exists=False, path_type=str),
    default=None,
    help="Path to config file (overrides ./kiln.yaml).",
)
@click.option(
    "-v",
    "--verbose",
    count=True,
    help="Increase verbosity (-v for INFO, -vv for DEBUG).",
)
@click.option(
    "-q",
    "--quiet",
    is_flag=True,
    default=False,
    help="Suppress non-essential output (ERROR level only).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    config_file: str | None,
    verbose: int,
    quiet: bool,
) -> None:
    """kiln - render package recipes into build variants."""
    ctx.ensure_object(dict)

    # Load configuration first (before logging setup)
    config_path = Path(config_file) if config_file else None
    try:
        kiln_config = load_config(config_path)
    except ConfigError as e:
        details = []
        if e.field:
            details.append(f"Field: {e.field}")
        if e.value is not None:
            details.append(f"Value: {e.value}")
        err_console.print(format_error(e.message, details=details), markup=False)
        ctx.exit(ExitCode.FAILURE)

    ctx.obj["cli_ctx"] = CLIContext(
        config=kiln_config,
        config_path=config_path,
        verbosity=verbose,
        quiet=quiet,
    )

    # Priority: quiet > verbose > config
    if quiet:
        level = logging.ERROR
    elif verbose > 0:
        level = logging.INFO if verbose == 1 else logging.DEBUG
    else:
        level = _VERBOSITY_LEVELS.get(kiln_config.verbosity, logging.WARNING)

    configure_logging(level=level)
    clear_context()
    bind_context(command=ctx.invoked_subcommand)

    # If no command is given, show help
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


# Register commands
cli.add_command(render)
cli.add_command(config)

if __name__ == "__main__":
    cli()
