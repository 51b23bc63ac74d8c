"""Selector evaluation against platform facts and context values."""

from __future__ import annotations

from typing import Any

from kiln.exceptions import (
    ConstraintParseError,
    SelectorError,
    SelectorErrorKind,
    VersionParseError,
)
from kiln.selectors.parser import (
    And,
    Compare,
    Constant,
    Identifier,
    Match,
    Not,
    Or,
    SelectorNode,
    parse_selector,
)
from kiln.types import Lookup
from kiln.versions import constraint_matches, parse_constraint

__all__ = ["evaluate_selector"]


def _as_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class _SelectorEvaluation:
    def __init__(self, selector: str, lookup: Lookup) -> None:
        self._selector = selector
        self._lookup = lookup

    def _resolve(self, node: Identifier | Constant) -> Any:
        if isinstance(node, Constant):
            return node.value
        if node.name not in self._lookup:
            raise SelectorError(
                SelectorErrorKind.UNKNOWN_VARIABLE,
                f"Unknown identifier '{node.name}'",
                self._selector,
                identifier=node.name,
            )
        return self._lookup[node.name]

    def evaluate(self, node: SelectorNode) -> bool:
        if isinstance(node, (Identifier, Constant)):
            value = self._resolve(node)
            if not isinstance(value, bool):
                name = node.name if isinstance(node, Identifier) else None
                raise SelectorError(
                    SelectorErrorKind.TYPE_MISMATCH,
                    f"Expected a boolean but '{name or value}' is "
                    f"{type(value).__name__} {value!r}; compare it with == instead",
                    self._selector,
                    identifier=name,
                )
            return value
        if isinstance(node, Compare):
            left = self._resolve(node.left)
            right = self._resolve(node.right)
            equal = _as_text(left) == _as_text(right)
            return equal if node.operator == "==" else not equal
        if isinstance(node, Match):
            value = self._resolve(node.value)
            spec = self._resolve(node.spec)
            if value is None:
                return False
            try:
                return constraint_matches(parse_constraint(_as_text(spec)), _as_text(value))
            except (ConstraintParseError, VersionParseError) as e:
                raise SelectorError(
                    SelectorErrorKind.TYPE_MISMATCH,
                    f"match() failed: {e.message}",
                    self._selector,
                ) from e
        if isinstance(node, Not):
            return not self.evaluate(node.operand)
        if isinstance(node, And):
            return self.evaluate(node.left) and self.evaluate(node.right)
        if isinstance(node, Or):
            return self.evaluate(node.left) or self.evaluate(node.right)
        raise SelectorError(
            SelectorErrorKind.SYNTAX,
            f"Unknown selector node {type(node).__name__}",
            self._selector,
        )


def evaluate_selector(selector: str | bool, lookup: Lookup) -> bool:
    """Evaluate a selector.

    Evaluation is pure: the lookup is only read.

    Args:
        selector: Selector text (bare or wrapped in ``${{ }}``). A YAML
            boolean (``if: true``) is returned as is.
        lookup: Platform facts, context values and variant keys.

    Returns:
        The selector's truth value.

    Raises:
        SelectorError: SYNTAX for malformed selectors, UNKNOWN_VARIABLE for
            names missing from the lookup, TYPE_MISMATCH when a bare
            identifier is not a boolean.

    Examples:
        >>> evaluate_selector("win and x86_64", {"win": False, "x86_64": True})
        False
        >>> evaluate_selector('target_platform == "linux-64"', {"target_platform": "linux-64"})
        True
    """
    if isinstance(selector, bool):
        return selector
    if not isinstance(selector, str):
        raise SelectorError(
            SelectorErrorKind.SYNTAX,
            f"Selector must be a string, got {type(selector).__name__}",
            repr(selector),
        )
    return _SelectorEvaluation(selector, lookup).evaluate(parse_selector(selector))
