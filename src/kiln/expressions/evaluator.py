"""Expression evaluator for recipe templates.

This module provides the ExpressionEvaluator class for evaluating parsed
expressions against a read-only lookup of context values, variant keys and
platform facts.

Template rendering:
- A string that is exactly one expression keeps the evaluated type:
  "${{ number }}" -> 3, "${{ pin_subpackage('x') }}" -> PinSubpackage
- Any other string is interpolated as text:
  "${{ name }}-${{ version }}" -> "xtensor-0.24.6"
- Strings without ${{ }} are returned unchanged.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from kiln.exceptions import (
    ConstraintParseError,
    RenderError,
    RenderErrorKind,
    SourceLocation,
    VersionParseError,
)
from kiln.expressions.functions import FILTERS, HELPERS, to_text
from kiln.expressions.parser import (
    Attribute,
    BinaryOp,
    BoolOp,
    Call,
    Conditional,
    Filter,
    Index,
    ListLiteral,
    Literal,
    Name,
    Node,
    Not,
    find_spans,
    has_template,
)
from kiln.types import Lookup, NodePath, format_node_path

__all__ = ["ExpressionEvaluator", "render_value"]


class ExpressionEvaluator:
    """Evaluates parsed expressions against a read-only lookup.

    Attributes:
        lookup: Names visible to expressions (never mutated).

    Example:
        ```python
        evaluator = ExpressionEvaluator({"name": "XTensor", "version": "0.24.6"})

        evaluator.evaluate_string("${{ name | lower }}")  # "xtensor"
        evaluator.evaluate_string("v${{ version }}")  # "v0.24.6"
        ```
    """

    def __init__(
        self,
        lookup: Lookup,
        filters: Mapping[str, Any] | None = None,
        helpers: Mapping[str, Any] | None = None,
    ) -> None:
        self._lookup = lookup
        self._filters = FILTERS if filters is None else filters
        self._helpers = HELPERS if helpers is None else helpers

    @property
    def lookup(self) -> Lookup:
        return self._lookup

    def evaluate(self, node: Node, source: str | None = None) -> Any:
        """Evaluate a single expression node.

        Args:
            node: Parsed expression.
            source: Expression text, used in error messages.

        Returns:
            The evaluated value.

        Raises:
            RenderError: UNDEFINED_VARIABLE for unknown names, UNKNOWN_HELPER
                for unknown filters or helpers, TYPE_ERROR for operations on
                values of the wrong type.
        """
        if isinstance(node, Literal):
            return node.value
        if isinstance(node, Name):
            if node.name not in self._lookup:
                raise RenderError(
                    RenderErrorKind.UNDEFINED_VARIABLE,
                    f"Undefined variable '{node.name}'",
                    expression=source,
                )
            return self._lookup[node.name]
        if isinstance(node, Attribute):
            return self._attribute(self.evaluate(node.target, source), node.name, source)
        if isinstance(node, Index):
            return self._index(
                self.evaluate(node.target, source),
                self.evaluate(node.index, source),
                source,
            )
        if isinstance(node, Call):
            return self._call(node, source)
        if isinstance(node, Filter):
            return self._filter(node, source)
        if isinstance(node, BinaryOp):
            return self._binary(node, source)
        if isinstance(node, BoolOp):
            # Python-style short circuit: return the deciding operand
            left = self.evaluate(node.left, source)
            if node.operator == "and":
                return self.evaluate(node.right, source) if left else left
            return left if left else self.evaluate(node.right, source)
        if isinstance(node, Not):
            return not self.evaluate(node.operand, source)
        if isinstance(node, Conditional):
            if self.evaluate(node.condition, source):
                return self.evaluate(node.if_true, source)
            return self.evaluate(node.if_false, source)
        if isinstance(node, ListLiteral):
            return [self.evaluate(item, source) for item in node.items]
        raise RenderError(
            RenderErrorKind.SYNTAX,
            f"Unknown expression node: {type(node).__name__}",
            expression=source,
        )

    def _attribute(self, value: Any, name: str, source: str | None) -> Any:
        if isinstance(value, Mapping):
            if name in value:
                return value[name]
        elif not name.startswith("_") and hasattr(value, name):
            attr = getattr(value, name)
            if not callable(attr):
                return attr
        raise RenderError(
            RenderErrorKind.UNDEFINED_VARIABLE,
            f"'{type(value).__name__}' value has no attribute '{name}'",
            expression=source,
        )

    def _index(self, value: Any, index: Any, source: str | None) -> Any:
        try:
            return value[index]
        except (KeyError, IndexError) as e:
            raise RenderError(
                RenderErrorKind.UNDEFINED_VARIABLE,
                f"Index {index!r} not found",
                expression=source,
            ) from e
        except TypeError as e:
            raise RenderError(
                RenderErrorKind.TYPE_ERROR,
                f"Cannot index {type(value).__name__} with {type(index).__name__}",
                expression=source,
            ) from e

    def _arguments(
        self,
        args: Sequence[Node],
        kwargs: Sequence[tuple[str, Node]],
        source: str | None,
    ) -> tuple[list[Any], dict[str, Any]]:
        return (
            [self.evaluate(arg, source) for arg in args],
            {key: self.evaluate(value, source) for key, value in kwargs},
        )

    def _call(self, node: Call, source: str | None) -> Any:
        helper = self._helpers.get(node.function)
        if helper is None:
            raise RenderError(
                RenderErrorKind.UNKNOWN_HELPER,
                f"Unknown function '{node.function}'",
                expression=source,
            )
        args, kwargs = self._arguments(node.args, node.kwargs, source)
        try:
            return helper(self._lookup, *args, **kwargs)
        except (TypeError, ValueError, VersionParseError, ConstraintParseError) as e:
            if isinstance(e, (VersionParseError, ConstraintParseError)):
                message = e.message
            else:
                message = str(e)
            raise RenderError(
                RenderErrorKind.TYPE_ERROR,
                f"{node.function}(): {message}",
                expression=source,
            ) from e

    def _filter(self, node: Filter, source: str | None) -> Any:
        function = self._filters.get(node.name)
        if function is None:
            raise RenderError(
                RenderErrorKind.UNKNOWN_HELPER,
                f"Unknown filter '{node.name}'",
                expression=source,
            )
        try:
            value = self.evaluate(node.value, source)
        except RenderError as e:
            # An undefined value piped into `default` takes the default
            if node.name != "default" or e.kind is not RenderErrorKind.UNDEFINED_VARIABLE:
                raise
            value = None
        args, kwargs = self._arguments(node.args, node.kwargs, source)
        try:
            return function(value, *args, **kwargs)
        except (TypeError, ValueError, IndexError) as e:
            raise RenderError(
                RenderErrorKind.TYPE_ERROR,
                f"Filter '{node.name}' failed: {e}",
                expression=source,
            ) from e

    def _binary(self, node: BinaryOp, source: str | None) -> Any:
        left = self.evaluate(node.left, source)
        right = self.evaluate(node.right, source)
        operator = node.operator
        if operator == "~":
            return to_text(left) + to_text(right)
        try:
            if operator == "+":
                if _is_number(left) and _is_number(right):
                    return left + right
                if isinstance(left, list) and isinstance(right, list):
                    return left + right
                return to_text(left) + to_text(right)
            if operator == "in":
                return left in right
            if operator == "==":
                return left == right
            if operator == "!=":
                return left != right
            if operator == "<":
                return left < right
            if operator == "<=":
                return left <= right
            if operator == ">":
                return left > right
            if operator == ">=":
                return left >= right
        except TypeError as e:
            raise RenderError(
                RenderErrorKind.TYPE_ERROR,
                f"Cannot apply '{operator}' to {type(left).__name__} "
                f"and {type(right).__name__}",
                expression=source,
            ) from e
        raise RenderError(
            RenderErrorKind.SYNTAX,
            f"Unknown operator '{operator}'",
            expression=source,
        )

    def evaluate_string(self, text: str) -> Any:
        """Render all expressions in a string.

        Returns:
            The evaluated value when the string is exactly one expression,
            otherwise the string with every expression replaced by its text.

        Examples:
            >>> evaluator = ExpressionEvaluator({"number": 3, "name": "foo"})
            >>> evaluator.evaluate_string("${{ number }}")
            3
            >>> evaluator.evaluate_string("${{ name }}-${{ number }}")
            'foo-3'
        """
        if not has_template(text):
            return text
        spans = find_spans(text)
        if len(spans) == 1 and text.strip() == spans[0].raw:
            return self.evaluate(spans[0].node, spans[0].source)

        parts: list[str] = []
        position = 0
        for span in spans:
            parts.append(text[position : span.start])
            parts.append(to_text(self.evaluate(span.node, span.source)))
            position = span.end
        parts.append(text[position:])
        return "".join(parts)

    def render_value(self, value: Any, path: NodePath = ()) -> Any:
        """Recursively render every string leaf of a nested value.

        Mapping keys are left untouched. Errors are annotated with the path
        of the failing leaf.
        """
        if isinstance(value, str):
            try:
                return self.evaluate_string(value)
            except RenderError as e:
                raise e.located(SourceLocation(path=format_node_path(path))) from None
        if isinstance(value, Mapping):
            return {key: self.render_value(item, (*path, key)) for key, item in value.items()}
        if isinstance(value, list):
            return [self.render_value(item, (*path, i)) for i, item in enumerate(value)]
        return value


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def render_value(value: Any, lookup: Lookup, path: NodePath = ()) -> Any:
    """Render a nested value against a lookup.

    Examples:
        >>> render_value({"name": "${{ name | upper }}"}, {"name": "xtl"})
        {'name': 'XTL'}
    """
    return ExpressionEvaluator(lookup).render_value(value, path)
