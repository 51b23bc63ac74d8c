"""Selector evaluation error types."""

from __future__ import annotations

from enum import Enum

from kiln.exceptions.recipe import RecipeError, SourceLocation


class SelectorErrorKind(str, Enum):
    """Why a selector could not be evaluated."""

    SYNTAX = "syntax"
    UNKNOWN_VARIABLE = "unknown_variable"
    TYPE_MISMATCH = "type_mismatch"


class SelectorError(RecipeError):
    """Exception raised for malformed selectors or unknown identifiers.

    Unknown identifiers are errors rather than silently false so that typos
    such as ``if: linx`` surface immediately.

    Attributes:
        kind: Tagged reason for the failure.
        selector: The selector text.
        identifier: The offending identifier, for UNKNOWN_VARIABLE and
            TYPE_MISMATCH errors.
    """

    def __init__(
        self,
        kind: SelectorErrorKind,
        message: str,
        selector: str,
        identifier: str | None = None,
        location: SourceLocation | None = None,
    ) -> None:
        self.kind = kind
        self.selector = selector
        self.identifier = identifier
        super().__init__(f"{message} in selector: {selector}", location=location)
