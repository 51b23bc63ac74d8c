"""Variant configuration and expansion error types."""

from __future__ import annotations

from kiln.exceptions.recipe import RecipeError, SourceLocation


class VariantConfigError(RecipeError):
    """Raised when a variant configuration document is malformed.

    Examples include a non-mapping document, nested values, or a key listed
    in more than one ``zip_keys`` group.
    """


class ZipLengthMismatch(RecipeError):
    """Raised when zipped variant keys have candidate lists of unequal length.

    Attributes:
        lengths: Candidate list length per key of the offending group.
    """

    def __init__(self, lengths: dict[str, int]) -> None:
        self.lengths = dict(lengths)
        detail = ", ".join(f"{key}={length}" for key, length in lengths.items())
        super().__init__(f"Zipped variant keys have different lengths ({detail})")


class VariantConflict(RecipeError):
    """Raised when a variant value violates a dependency's explicit constraint.

    Attributes:
        dependency: The dependency string as written in the recipe.
        key: The variant key.
        value: The variant value chosen for this combination.
    """

    def __init__(
        self,
        dependency: str,
        key: str,
        value: str,
        location: SourceLocation | None = None,
    ) -> None:
        self.dependency = dependency
        self.key = key
        self.value = value
        super().__init__(
            f"Variant {key}={value} does not satisfy dependency '{dependency}'",
            location=location,
        )
