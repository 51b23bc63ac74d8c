"""YAML loading with source locations.

Recipes and variant configurations are loaded with a SafeLoader subclass
that keeps floats as their source text, so ``version: 1.10`` stays
``"1.10"`` instead of becoming ``1.1``. Integers and booleans are resolved
as usual.

While loading, the start mark of every node is recorded by its path in the
document so that later stages can report ``line``/``column`` positions for
errors found long after parsing.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

import yaml

from kiln.exceptions import RecipeParseError, SourceLocation
from kiln.types import NodePath, format_node_path

__all__ = ["LoadedDocument", "load_yaml"]


class _KeepFloatsLoader(yaml.SafeLoader):
    """SafeLoader that leaves float-looking scalars as strings."""

    @classmethod
    def remove_implicit_resolver(cls, tag: str) -> None:
        if "yaml_implicit_resolvers" not in cls.__dict__:
            cls.yaml_implicit_resolvers = {
                k: v[:] for k, v in cls.yaml_implicit_resolvers.items()
            }
        for ch in tuple(cls.yaml_implicit_resolvers):
            resolvers = [(t, r) for t, r in cls.yaml_implicit_resolvers[ch] if t != tag]
            if resolvers:
                cls.yaml_implicit_resolvers[ch] = resolvers
            else:
                del cls.yaml_implicit_resolvers[ch]


_KeepFloatsLoader.remove_implicit_resolver("tag:yaml.org,2002:float")


@dataclass(frozen=True, slots=True)
class LoadedDocument:
    """A parsed YAML document plus the position of each node.

    Attributes:
        data: The constructed Python value.
        marks: Path -> (line, column), both 1-indexed.
    """

    data: Any
    marks: Mapping[NodePath, tuple[int, int]] = field(default_factory=dict)

    def location(self, path: NodePath) -> SourceLocation:
        """Location of a node, falling back to its nearest recorded ancestor."""
        for end in range(len(path), -1, -1):
            mark = self.marks.get(path[:end])
            if mark is not None:
                return SourceLocation(
                    path=format_node_path(path),
                    line=mark[0],
                    column=mark[1],
                )
        return SourceLocation(path=format_node_path(path))


def _record_marks(
    node: yaml.Node,
    path: NodePath,
    marks: dict[NodePath, tuple[int, int]],
) -> None:
    marks[path] = (node.start_mark.line + 1, node.start_mark.column + 1)
    if isinstance(node, yaml.MappingNode):
        for key_node, value_node in node.value:
            if isinstance(key_node, yaml.ScalarNode):
                _record_marks(value_node, (*path, key_node.value), marks)
    elif isinstance(node, yaml.SequenceNode):
        for index, item in enumerate(node.value):
            _record_marks(item, (*path, index), marks)


def load_yaml(text: str) -> LoadedDocument:
    """Parse YAML text, recording node marks.

    Args:
        text: YAML document.

    Returns:
        The loaded document; ``data`` is None for an empty document.

    Raises:
        RecipeParseError: On YAML syntax errors, with the line and column
            of the problem.
    """
    loader = _KeepFloatsLoader(text)
    try:
        node = loader.get_single_node()
        if node is None:
            return LoadedDocument(data=None)
        marks: dict[NodePath, tuple[int, int]] = {}
        _record_marks(node, (), marks)
        data = loader.construct_document(node)
    except yaml.MarkedYAMLError as e:
        mark = e.problem_mark or e.context_mark
        location = (
            SourceLocation(line=mark.line + 1, column=mark.column + 1) if mark else None
        )
        raise RecipeParseError(
            f"YAML syntax error: {e.problem or e}",
            location=location,
        ) from e
    except yaml.YAMLError as e:
        raise RecipeParseError(f"YAML syntax error: {e}") from e
    finally:
        loader.dispose()
    return LoadedDocument(data=data, marks=marks)
