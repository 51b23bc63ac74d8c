"""Template rendering error types."""

from __future__ import annotations

from enum import Enum

from kiln.exceptions.recipe import RecipeError, SourceLocation


class RenderErrorKind(str, Enum):
    """Why a template could not be rendered."""

    SYNTAX = "syntax"
    UNDEFINED_VARIABLE = "undefined_variable"
    UNKNOWN_HELPER = "unknown_helper"
    CYCLE = "cycle"
    TYPE_ERROR = "type_error"


class RenderError(RecipeError):
    """Exception raised when a ${{ }} expression cannot be rendered.

    Attributes:
        kind: Tagged reason for the failure.
        expression: The expression text that failed (if known).
        position: Character offset inside the expression (0 if unknown).
    """

    def __init__(
        self,
        kind: RenderErrorKind,
        message: str,
        expression: str | None = None,
        position: int = 0,
        location: SourceLocation | None = None,
    ) -> None:
        self.kind = kind
        self.expression = expression
        self.position = position
        if expression and position > 0:
            message = f"{message} at position {position}:\n{expression}\n{' ' * position}^"
        elif expression:
            message = f"{message} in expression: {expression}"
        super().__init__(message, location=location)
