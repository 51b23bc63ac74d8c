"""Output formatting utilities for the kiln CLI.

This module defines output format options and formatting helpers for CLI commands.
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from enum import Enum
from typing import Any

import yaml
from rich.table import Table
from rich.text import Text

from kiln.exceptions import RecipeError
from kiln.recipe import RenderedVariant

__all__ = [
    "OutputFormat",
    "error_details",
    "format_error",
    "format_json",
    "format_warning",
    "format_yaml",
    "variants_table",
]


class OutputFormat(str, Enum):
    """Supported output formats for ``kiln render``.

    Values:
        TEXT: A table of variants for terminals.
        JSON: Machine-readable JSON, one object per variant.
        YAML: The same data as a YAML document.
    """

    TEXT = "text"
    JSON = "json"
    YAML = "yaml"


def format_error(message: str, details: list[str] | None = None) -> str:
    """Format an error message with optional detail lines.

    Example:
        >>> print(format_error("Render failed", details=["Stage: loading"]))
        Error: Render failed
          Stage: loading
    """
    lines = [f"Error: {message}"]

    if details:
        for detail in details:
            lines.append(f"  {detail}")

    return "\n".join(lines)


def format_warning(message: str) -> str:
    """Format a warning message.

    Example:
        >>> format_warning("All variants were skipped")
        'Warning: All variants were skipped'
    """
    return f"Warning: {message}"


def error_details(error: RecipeError) -> list[str]:
    """Detail lines (location and stage) for a recipe error."""
    details: list[str] = []
    if error.location is not None:
        details.append(f"Location: {error.location}")
    if error.stage is not None:
        details.append(f"Stage: {error.stage.value}")
    return details


def format_json(data: Any) -> str:
    """Format data as indented JSON."""
    return json.dumps(data, indent=2)


def format_yaml(data: Any) -> str:
    """Format data as block-style YAML, keeping key order."""
    return yaml.safe_dump(data, default_flow_style=False, sort_keys=False)


def variants_table(
    variants: Sequence[RenderedVariant], title: str | None = None
) -> Table:
    """Summarize rendered variants as a Rich table."""
    table = Table(title=title, show_header=True, header_style="bold", show_lines=False)
    table.add_column("#", style="dim", width=3)
    table.add_column("Package")
    table.add_column("Subdir")
    table.add_column("Variant")
    table.add_column("Host requirements")

    for index, variant in enumerate(variants, 1):
        host = ", ".join(str(dep) for dep in variant.recipe.requirements.host)
        table.add_row(
            str(index),
            Text(variant.filename),
            Text(variant.subdir),
            Text(str(variant.combination)),
            Text(host or "-"),
        )
    return table
