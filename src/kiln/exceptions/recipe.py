"""Recipe-level error types.

Every error raised while turning recipe text into build plans derives from
RecipeError, which carries the pipeline stage and the source location of the
failing node so callers can report it without re-parsing the recipe.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from kiln.exceptions.base import KilnError

if TYPE_CHECKING:
    from kiln.types import PipelineStage


@dataclass(frozen=True, slots=True)
class SourceLocation:
    """Position of a node in the recipe document.

    Attributes:
        path: Dotted node path (e.g. ``requirements.host[0]``).
        line: 1-indexed line number, when known.
        column: 1-indexed column number, when known.
    """

    path: str = ""
    line: int | None = None
    column: int | None = None

    def __str__(self) -> str:
        if self.line is None:
            return self.path or "<recipe>"
        where = f"line {self.line}, column {self.column}"
        return f"{self.path} ({where})" if self.path else where


class RecipeError(KilnError):
    """Base exception for all errors raised while rendering a recipe.

    Attributes:
        message: Human-readable error message.
        location: Where in the recipe the error occurred (if known).
        stage: Pipeline stage that was running (set by the pipeline).
    """

    def __init__(
        self,
        message: str,
        location: SourceLocation | None = None,
        stage: PipelineStage | None = None,
    ) -> None:
        self.location = location
        self.stage = stage
        super().__init__(message)

    def __str__(self) -> str:
        parts = [self.message]
        if self.location is not None:
            parts.append(f"at {self.location}")
        if self.stage is not None:
            parts.append(f"[{self.stage.value}]")
        return " ".join(parts)

    def located(self, location: SourceLocation | None) -> RecipeError:
        """Attach a location unless one is already recorded.

        Returns:
            The same exception, for use in ``raise err.located(loc)``.
        """
        if self.location is None and location is not None:
            self.location = location
        return self


class RecipeParseError(RecipeError):
    """Raised when the recipe document has the wrong shape.

    Covers invalid YAML, missing required fields such as ``package.name``
    and values of the wrong type.

    Examples:
        ```python
        raise RecipeParseError(
            "Missing required field 'package.version'",
            location=SourceLocation(path="package"),
        )
        ```
    """
