"""Template substitution and selector pruning over a raw recipe tree.

A mapping that carries an ``if`` key is a conditional node::

    - if: win
      then: vs2019_win-64
      else: ${{ compiler("c") }}

Inside a list, a chosen branch that is itself a list is spliced in place and
a false selector without ``else`` removes the item. As a mapping value, a
false selector without ``else`` removes the key. Pruned subtrees are never
rendered, so templates inside them may reference names that are undefined on
the current platform.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from kiln.exceptions import RecipeParseError, RenderError, SelectorError
from kiln.expressions import ExpressionEvaluator
from kiln.loader import LoadedDocument
from kiln.selectors import evaluate_selector
from kiln.types import Lookup, NodePath

__all__ = ["CONDITIONAL_KEYS", "is_conditional", "render_tree"]

CONDITIONAL_KEYS = frozenset({"if", "then", "else"})

# Sentinel for a pruned node
_DROPPED = object()


def is_conditional(value: Any) -> bool:
    return isinstance(value, Mapping) and "if" in value


class _TreeRenderer:
    def __init__(self, lookup: Lookup, document: LoadedDocument) -> None:
        self._lookup = lookup
        self._document = document
        self._evaluator = ExpressionEvaluator(lookup)

    def _choose(self, node: Mapping[str, Any], path: NodePath) -> Any:
        unknown = set(node) - CONDITIONAL_KEYS
        if unknown:
            names = ", ".join(sorted(map(str, unknown)))
            raise RecipeParseError(
                f"Conditional node has unexpected keys: {names}",
                location=self._document.location(path),
            )
        if "then" not in node:
            raise RecipeParseError(
                "Conditional node is missing 'then'",
                location=self._document.location(path),
            )
        try:
            selected = evaluate_selector(node["if"], self._lookup)
        except SelectorError as e:
            raise e.located(self._document.location((*path, "if"))) from None
        if selected:
            return node["then"], (*path, "then")
        if "else" in node:
            return node["else"], (*path, "else")
        return _DROPPED, path

    def render(self, value: Any, path: NodePath) -> Any:
        if is_conditional(value):
            branch, branch_path = self._choose(value, path)
            if branch is _DROPPED:
                return _DROPPED
            return self.render(branch, branch_path)
        if isinstance(value, Mapping):
            rendered: dict[str, Any] = {}
            for key, item in value.items():
                result = self.render(item, (*path, key))
                if result is not _DROPPED:
                    rendered[key] = result
            return rendered
        if isinstance(value, list):
            return self._render_list(value, path)
        if isinstance(value, str):
            try:
                return self._evaluator.evaluate_string(value)
            except RenderError as e:
                raise e.located(self._document.location(path)) from None
        return value

    def _render_list(self, items: list[Any], path: NodePath) -> list[Any]:
        rendered: list[Any] = []
        for index, item in enumerate(items):
            item_path = (*path, index)
            if not is_conditional(item):
                rendered.append(self.render(item, item_path))
                continue
            branch, branch_path = self._choose(item, item_path)
            if branch is _DROPPED:
                continue
            if isinstance(branch, list):
                rendered.extend(self._render_list(branch, branch_path))
                continue
            result = self.render(branch, branch_path)
            if result is not _DROPPED:
                rendered.append(result)
        return rendered


def render_tree(
    raw: Mapping[str, Any],
    lookup: Lookup,
    document: LoadedDocument | None = None,
) -> dict[str, Any]:
    """Render a raw recipe tree for one lookup.

    Every string leaf is passed through the expression evaluator and every
    conditional node is resolved. The top-level ``context`` section is
    consumed when the context is built and is not part of the result.

    Args:
        raw: Raw recipe mapping as loaded from YAML.
        lookup: Context, variant values and platform facts.
        document: Loaded document used to locate errors; optional.

    Returns:
        A new tree containing only plain values, with pruned nodes removed.

    Raises:
        RecipeParseError: For malformed conditional nodes.
        RenderError: For template errors, located at the failing leaf.
        SelectorError: For selector errors, located at the ``if`` key.

    Examples:
        >>> render_tree(
        ...     {"build": [{"if": "win", "then": "vs"}, "${{ name }}"]},
        ...     {"win": False, "name": "make"},
        ... )
        {'build': ['make']}
    """
    renderer = _TreeRenderer(lookup, document or LoadedDocument(data=raw))
    rendered: dict[str, Any] = {}
    for key, value in raw.items():
        if key == "context":
            continue
        result = renderer.render(value, (key,))
        if result is not _DROPPED:
            rendered[key] = result
    return rendered
