"""Version, constraint and MatchSpec parsing error types."""

from __future__ import annotations

from kiln.exceptions.recipe import RecipeError, SourceLocation


class VersionParseError(RecipeError):
    """Raised when a version string contains disallowed characters or is empty.

    Attributes:
        version: The offending version string.
    """

    def __init__(
        self,
        message: str,
        version: str,
        location: SourceLocation | None = None,
    ) -> None:
        self.version = version
        super().__init__(f"{message}: {version!r}", location=location)


class ConstraintParseError(RecipeError):
    """Raised when a version constraint has a malformed operator or version.

    Attributes:
        constraint: The offending constraint string.
    """

    def __init__(
        self,
        message: str,
        constraint: str,
        location: SourceLocation | None = None,
    ) -> None:
        self.constraint = constraint
        super().__init__(f"{message}: {constraint!r}", location=location)


class MatchSpecParseError(RecipeError):
    """Raised when a dependency string cannot be parsed into a MatchSpec.

    Attributes:
        spec: The offending dependency string.
    """

    def __init__(
        self,
        message: str,
        spec: str,
        location: SourceLocation | None = None,
    ) -> None:
        self.spec = spec
        super().__init__(f"{message}: {spec!r}", location=location)
