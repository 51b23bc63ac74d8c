"""CLI context and utilities for kiln.

This module provides the exit codes, the typed context shared by commands,
and the bridge from Click's synchronous interface to async rendering.
"""

from __future__ import annotations

import functools
from collections.abc import Callable
from dataclasses import dataclass
from enum import IntEnum
from pathlib import Path
from typing import Any, TypeVar

import anyio

from kiln.config import KilnConfig

__all__ = [
    "ExitCode",
    "CLIContext",
    "async_command",
]


class ExitCode(IntEnum):
    """Standard exit codes for the kiln CLI.

    - 0 for success
    - 1 for failure
    - 2 for partial success (some recipes of a batch failed)
    - 130 for keyboard interrupt (128 + SIGINT=2)
    """

    SUCCESS = 0
    FAILURE = 1
    PARTIAL = 2
    INTERRUPTED = 130


@dataclass(frozen=True, slots=True)
class CLIContext:
    """Type-safe CLI context containing global options and configuration.

    Attributes:
        config: Loaded kiln configuration.
        config_path: Path to config file (if specified via --config).
        verbosity: Verbosity level (0=default, 1=INFO, 2+=DEBUG).
        quiet: Suppress non-essential output.
    """

    config: KilnConfig
    config_path: Path | None = None
    verbosity: int = 0
    quiet: bool = False


F = TypeVar("F", bound=Callable[..., Any])


def async_command(f: F) -> F:
    """Decorator to run async Click commands with ``anyio.run()``.

    Example:
        >>> @cli.command()
        >>> @async_command
        >>> async def render(path: str) -> None:
        >>>     await renderer.render_async(text)
    """

    @functools.wraps(f)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        return anyio.run(functools.partial(f, *args, **kwargs))

    return wrapper  # type: ignore[return-value]
