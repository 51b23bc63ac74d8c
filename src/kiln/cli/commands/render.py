"""``kiln render`` command."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any

import click

from kiln.cli.common import cli_error_handler
from kiln.cli.console import console, err_console
from kiln.cli.context import CLIContext, ExitCode, async_command
from kiln.cli.output import (
    OutputFormat,
    error_details,
    format_error,
    format_json,
    format_warning,
    format_yaml,
    variants_table,
)
from kiln.config import KilnConfig
from kiln.exceptions import ConfigError, RecipeError
from kiln.loader import load_yaml
from kiln.logging import get_logger
from kiln.pipeline import RecipeRenderer
from kiln.platform import PlatformTriple
from kiln.recipe import RenderedVariant
from kiln.variants import VariantConfig

logger = get_logger(__name__)


def _parse_define(value: str) -> tuple[str, Any]:
    """Split ``key=value``; the value is read as a YAML scalar."""
    key, sep, raw = value.partition("=")
    key = key.strip()
    if not sep or not key:
        raise click.BadParameter(
            f"Expected KEY=VALUE, got {value!r}", param_hint="--define"
        )
    try:
        parsed = load_yaml(raw).data if raw.strip() else ""
    except RecipeError:
        parsed = raw
    if not isinstance(parsed, (str, int, float, bool)):
        parsed = raw
    return key, parsed


def _platforms(
    config: KilnConfig,
    build: str | None,
    host: str | None,
    target: str | None,
) -> PlatformTriple:
    try:
        return PlatformTriple.from_subdirs(
            build=build or config.platform.build,
            host=host or config.platform.host,
            target=target or config.platform.target,
        )
    except ValueError as e:
        raise click.BadParameter(str(e)) from e


def load_variant_configs(
    paths: Sequence[Path], platforms: PlatformTriple
) -> VariantConfig:
    """Read and merge variant configuration files, later files winning."""
    merged = VariantConfig()
    facts = platforms.facts()
    for path in paths:
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigError(
                message=f"Cannot read variant config {path}: {e.strerror or e}",
                field="variant_config_files",
                value=str(path),
            ) from e
        merged = merged.merge(VariantConfig.from_yaml(text, lookup=facts))
        logger.debug("variant_config_loaded", path=str(path))
    return merged


def _emit(
    fmt: OutputFormat,
    rendered: Mapping[str, Sequence[RenderedVariant]],
) -> None:
    if fmt is OutputFormat.TEXT:
        for name, variants in rendered.items():
            if not variants:
                console.print(
                    format_warning(f"{name}: every variant was skipped"), markup=False
                )
                continue
            console.print(variants_table(variants, title=name))
        return

    data = [variant.to_dict() for variants in rendered.values() for variant in variants]
    text = format_json(data) if fmt is OutputFormat.JSON else format_yaml(data)
    click.echo(text)


@click.command()
@click.argument(
    "recipes",
    nargs=-1,
    required=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
)
@click.option(
    "-m",
    "--variant-config",
    "variant_configs",
    multiple=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Variant configuration file (repeatable; later files win).",
)
@click.option("--target-platform", default=None, help="Target platform subdir.")
@click.option("--host-platform", default=None, help="Host platform subdir.")
@click.option("--build-platform", default=None, help="Build platform subdir.")
@click.option(
    "-D",
    "--define",
    "defines",
    multiple=True,
    help="Override a context value (KEY=VALUE, repeatable).",
)
@click.option(
    "-f",
    "--format",
    "fmt",
    type=click.Choice([f.value for f in OutputFormat]),
    default=OutputFormat.TEXT.value,
    help="Output format.",
)
@click.option(
    "-j",
    "--jobs",
    type=click.IntRange(min=1),
    default=None,
    help="Variants assembled concurrently (defaults to render.max_workers).",
)
@click.pass_context
@async_command
async def render(
    ctx: click.Context,
    recipes: tuple[Path, ...],
    variant_configs: tuple[Path, ...],
    target_platform: str | None,
    host_platform: str | None,
    build_platform: str | None,
    defines: tuple[str, ...],
    fmt: str,
    jobs: int | None,
) -> None:
    """Render recipes into their build variants.

    Each recipe is expanded over the variant configuration and every
    variant is printed with its output filename and pinned requirements.

    Examples:
        kiln render recipe.yaml
        kiln render recipe.yaml -m variants.yaml --target-platform linux-64
        kiln render recipe.yaml -D version=1.2.0 --format json
    """
    cli_ctx: CLIContext = ctx.obj["cli_ctx"]
    config = cli_ctx.config
    overrides = dict(_parse_define(value) for value in defines)

    platforms = _platforms(config, build_platform, host_platform, target_platform)
    with cli_error_handler():
        variant_config = load_variant_configs(
            [*config.variant_config_files, *variant_configs], platforms
        )
        renderer = RecipeRenderer(
            variant_config=variant_config,
            platforms=platforms,
            overrides=overrides,
            max_workers=jobs or config.render.max_workers,
        )
        named_texts = [(str(path), path.read_text(encoding="utf-8")) for path in recipes]
        # A single recipe fails the command; a batch reports failures and keeps going
        outcomes = await renderer.render_batch_async(
            named_texts, fail_fast=len(named_texts) == 1
        )

    rendered: dict[str, tuple[RenderedVariant, ...]] = {}
    failed = 0
    for outcome in outcomes:
        if outcome.error is None:
            rendered[outcome.name] = outcome.variants
            continue
        failed += 1
        err_console.print(
            format_error(
                f"{outcome.name}: {outcome.error.message}",
                details=error_details(outcome.error),
            ),
            markup=False,
        )

    _emit(OutputFormat(fmt), rendered)
    if failed:
        raise SystemExit(ExitCode.PARTIAL if rendered else ExitCode.FAILURE)
