"""kiln - recipe rendering and variant expansion for package builds.

kiln turns a declarative recipe plus a variant configuration into the
ordered set of fully resolved build plans, one per variant combination.

Usage:
    from kiln import RecipeRenderer, VariantConfig, PlatformTriple

    renderer = RecipeRenderer(
        variant_config=VariantConfig.from_yaml(variants_text),
        platforms=PlatformTriple.native("linux-64"),
    )
    for variant in renderer.render(recipe_text):
        print(variant.filename)
"""

from __future__ import annotations

__version__ = "0.1.0"

from kiln.context import RenderContext, build_context
from kiln.exceptions import (
    ConfigError,
    ConstraintParseError,
    KilnError,
    MatchSpecParseError,
    RecipeError,
    RecipeParseError,
    RenderError,
    RenderErrorKind,
    SelectorError,
    SelectorErrorKind,
    SourceLocation,
    VariantConfigError,
    VariantConflict,
    VersionParseError,
    ZipLengthMismatch,
)
from kiln.pipeline import RecipeRenderer, RenderOutcome, RenderPlan, render_recipe
from kiln.platform import Platform, PlatformTriple
from kiln.recipe import Recipe, RenderedVariant
from kiln.types import PipelineStage
from kiln.variants import VariantCombination, VariantConfig
from kiln.versions import (
    MatchSpec,
    PackageCandidate,
    Version,
    compare_versions,
    parse_constraint,
    parse_version,
    satisfies,
)

__all__ = [
    "__version__",
    # Pipeline
    "PipelineStage",
    "RecipeRenderer",
    "RenderOutcome",
    "RenderPlan",
    "RenderedVariant",
    "Recipe",
    "render_recipe",
    # Inputs
    "Platform",
    "PlatformTriple",
    "RenderContext",
    "VariantCombination",
    "VariantConfig",
    "build_context",
    # Versions
    "MatchSpec",
    "PackageCandidate",
    "Version",
    "compare_versions",
    "parse_constraint",
    "parse_version",
    "satisfies",
    # Errors
    "ConfigError",
    "ConstraintParseError",
    "KilnError",
    "MatchSpecParseError",
    "RecipeError",
    "RecipeParseError",
    "RenderError",
    "RenderErrorKind",
    "SelectorError",
    "SelectorErrorKind",
    "SourceLocation",
    "VariantConfigError",
    "VariantConflict",
    "VersionParseError",
    "ZipLengthMismatch",
]
