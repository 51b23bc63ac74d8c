"""Core type definitions for kiln.

This module defines foundational types shared by every rendering stage,
including the pipeline stage enumeration and aliases for the untyped value
tree a recipe is parsed into before it is assembled.
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
from typing import Any


class PipelineStage(str, Enum):
    """Stages a single recipe passes through, strictly in order."""

    LOADING = "loading"
    CONTEXT_BUILT = "context_built"
    RENDERING = "rendering"
    VERSION_NORMALIZING = "version_normalizing"
    VARIANT_EXPANDING = "variant_expanding"
    ASSEMBLING = "assembling"
    DONE = "done"


# Scalars allowed in a render context
Scalar = str | int | float | bool

# Untyped recipe tree: str, int, float, bool, None, list or dict of the same
RawValue = Any

# Read-only name lookup used by templates and selectors
Lookup = Mapping[str, Any]

# Path to a node in the raw tree, e.g. ("requirements", "host", 0)
NodePath = tuple[str | int, ...]


def format_node_path(path: NodePath) -> str:
    """Render a node path as ``requirements.host[0]``."""
    parts: list[str] = []
    for element in path:
        if isinstance(element, int):
            parts.append(f"[{element}]")
        elif parts:
            parts.append(f".{element}")
        else:
            parts.append(str(element))
    return "".join(parts)
