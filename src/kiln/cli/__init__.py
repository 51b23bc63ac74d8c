"""CLI utilities for kiln.

This module provides CLI-specific utilities including context management,
exit codes and output formatting.
"""

from __future__ import annotations

from kiln.cli.context import CLIContext, ExitCode, async_command
from kiln.cli.output import OutputFormat

__all__ = [
    "CLIContext",
    "ExitCode",
    "OutputFormat",
    "async_command",
]
