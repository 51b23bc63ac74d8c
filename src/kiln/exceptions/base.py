from __future__ import annotations


class KilnError(Exception):
    """Base exception class for all kiln-specific errors.

    This is the root of the kiln exception hierarchy. All custom exceptions
    in kiln inherit from this class. This allows callers to catch every
    kiln-specific error at a boundary (CLI, batch driver) while letting
    system exceptions propagate naturally.

    Attributes:
        message: Human-readable error message describing what went wrong.

    Example:
        ```python
        try:
            variants = renderer.render(recipe_text)
        except KilnError as e:
            logger.error("render_failed", error=e.message)
            sys.exit(1)
        ```
    """

    def __init__(self, message: str) -> None:
        """Initialize the KilnError.

        Args:
            message: Human-readable error message.
        """
        self.message = message
        super().__init__(message)
