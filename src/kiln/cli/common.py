from __future__ import annotations

import contextlib
from collections.abc import Generator

from kiln.cli.console import err_console
from kiln.cli.context import ExitCode
from kiln.cli.output import error_details, format_error
from kiln.exceptions import ConfigError, KilnError, RecipeError
from kiln.logging import get_logger


@contextlib.contextmanager
def cli_error_handler() -> Generator[None, None, None]:
    """Context manager for common CLI error handling.

    Handles common error patterns across CLI commands:
    - KeyboardInterrupt: Exit with code 130
    - RecipeError: Format error with location and stage
    - ConfigError: Format error with the offending field
    - KilnError: Format error with message
    - Generic exceptions: Log and format error

    Example:
        >>> with cli_error_handler():
        >>>     renderer.render(text)
    """
    logger = get_logger(__name__)

    try:
        yield
    except KeyboardInterrupt:
        err_console.print("\n\nInterrupted by user.")
        raise SystemExit(ExitCode.INTERRUPTED) from None
    except RecipeError as e:
        err_console.print(format_error(e.message, details=error_details(e)), markup=False)
        raise SystemExit(ExitCode.FAILURE) from e
    except ConfigError as e:
        details = [f"Field: {e.field}"] if e.field else None
        err_console.print(format_error(e.message, details=details), markup=False)
        raise SystemExit(ExitCode.FAILURE) from e
    except KilnError as e:
        err_console.print(format_error(e.message), markup=False)
        raise SystemExit(ExitCode.FAILURE) from e
    except Exception as e:
        logger.exception("unexpected_error")
        err_console.print(f"Error: {e!s}", markup=False)
        raise SystemExit(ExitCode.FAILURE) from e
