"""kiln exception hierarchy.

This package organizes all kiln exceptions into domain-specific modules.
All exceptions can be imported from this package:
    from kiln.exceptions import RenderError, SelectorError, VariantConflict
"""

from __future__ import annotations

# Base exception
from kiln.exceptions.base import KilnError

# Settings exceptions
from kiln.exceptions.config import ConfigError

# Recipe exceptions
from kiln.exceptions.recipe import RecipeError, RecipeParseError, SourceLocation

# Template exceptions
from kiln.exceptions.render import RenderError, RenderErrorKind

# Selector exceptions
from kiln.exceptions.selector import SelectorError, SelectorErrorKind

# Variant exceptions
from kiln.exceptions.variant import (
    VariantConfigError,
    VariantConflict,
    ZipLengthMismatch,
)

# Version exceptions
from kiln.exceptions.version import (
    ConstraintParseError,
    MatchSpecParseError,
    VersionParseError,
)

__all__ = [
    # Base
    "KilnError",
    # Config
    "ConfigError",
    # Recipe
    "RecipeError",
    "RecipeParseError",
    "SourceLocation",
    # Render
    "RenderError",
    "RenderErrorKind",
    # Selector
    "SelectorError",
    "SelectorErrorKind",
    # Variant
    "VariantConfigError",
    "VariantConflict",
    "ZipLengthMismatch",
    # Version
    "ConstraintParseError",
    "MatchSpecParseError",
    "VersionParseError",
]
