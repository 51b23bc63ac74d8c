"""Recipe rendering and assembly.

This package turns a raw recipe tree into typed, immutable Recipe models:

- render: template substitution and selector pruning
- schema: pydantic records validating the rendered tree's shape
- models: the frozen dataclasses handed to callers
- assembler: dependency parsing, pin resolution and variant pinning

Usage:
    from kiln.recipe import assemble, render_tree

    tree = render_tree(raw, lookup, document)
    recipe = assemble(tree, combination, platforms, context, document)
"""

from __future__ import annotations

from kiln.recipe.assembler import RenderedVariant, assemble, parse_dependency
from kiln.recipe.models import (
    About,
    Build,
    Dependency,
    GitSource,
    IgnoreRunExports,
    NoArchKind,
    Package,
    PackageContents,
    PathSource,
    Recipe,
    Requirements,
    RunExports,
    Script,
    ScriptKind,
    Source,
    Test,
    UrlSource,
    to_dict,
)
from kiln.recipe.render import is_conditional, render_tree
from kiln.recipe.schema import RecipeRecord, validate_recipe, validate_source

__all__ = [
    # Models
    "About",
    "Build",
    "Dependency",
    "GitSource",
    "IgnoreRunExports",
    "NoArchKind",
    "Package",
    "PackageContents",
    "PathSource",
    "Recipe",
    "Requirements",
    "RunExports",
    "Script",
    "ScriptKind",
    "Source",
    "Test",
    "UrlSource",
    "to_dict",
    # Rendering
    "is_conditional",
    "render_tree",
    # Schema
    "RecipeRecord",
    "validate_recipe",
    "validate_source",
    # Assembly
    "RenderedVariant",
    "assemble",
    "parse_dependency",
]
