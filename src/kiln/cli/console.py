"""Shared Rich Console instances for kiln CLI output.

Rendered recipes go to stdout; errors and diagnostics go to stderr so that
``kiln render --format json`` can be piped.
"""

from __future__ import annotations

from rich.console import Console

__all__ = ["console", "err_console"]

console = Console()
err_console = Console(stderr=True)
