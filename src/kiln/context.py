"""Render context built from a recipe's ``context:`` section.

The context is resolved once per recipe: every value may be a template that
references other context keys or platform facts. Keys are resolved depth
first so declaration order does not matter, and self-referential values are
reported with the full cycle path.

Usage:
    from kiln.context import build_context

    ctx = build_context(
        {"name": "XTensor", "lower_name": "${{ name | lower }}"},
        facts=platforms.facts(),
    )
    ctx["lower_name"]  # "xtensor"
"""

from __future__ import annotations

from collections import ChainMap
from collections.abc import Iterator, Mapping
from types import MappingProxyType
from typing import Any

from kiln.exceptions import (
    RecipeParseError,
    RenderError,
    RenderErrorKind,
    SourceLocation,
)
from kiln.expressions import (
    ExpressionEvaluator,
    extract_all,
    has_template,
    referenced_names,
)
from kiln.logging import get_logger
from kiln.types import Lookup, Scalar

__all__ = ["RenderContext", "build_context", "render_lookup"]

logger = get_logger(__name__)


class RenderContext(Mapping[str, Scalar]):
    """Read-only mapping of resolved context values.

    Iteration follows declaration order (overrides for undeclared keys come
    last). Instances are never mutated after construction and may be shared
    between threads.
    """

    __slots__ = ("_values",)

    def __init__(self, values: Mapping[str, Scalar] | None = None) -> None:
        self._values: Mapping[str, Scalar] = MappingProxyType(dict(values or {}))

    def __getitem__(self, key: str) -> Scalar:
        return self._values[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"RenderContext({dict(self._values)!r})"

    def to_dict(self) -> dict[str, Scalar]:
        return dict(self._values)


def render_lookup(
    context: Mapping[str, Any],
    combination: Mapping[str, Any] | None = None,
    facts: Mapping[str, Any] | None = None,
) -> Lookup:
    """Combined lookup for templates and selectors.

    Context keys shadow variant keys, which shadow platform facts.
    """
    return ChainMap(dict(context), dict(combination or {}), dict(facts or {}))


def _is_scalar(value: Any) -> bool:
    return isinstance(value, (str, int, float, bool))


class _ContextResolver:
    def __init__(self, raw: Mapping[str, Any], facts: Lookup) -> None:
        self._raw = raw
        self._facts = facts
        self._resolved: dict[str, Scalar] = {}
        self._stack: list[str] = []

    def resolve_all(self) -> dict[str, Scalar]:
        for key in self._raw:
            self._resolve(key)
        return {key: self._resolved[key] for key in self._raw}

    def _resolve(self, key: str) -> None:
        if key in self._resolved:
            return
        location = SourceLocation(path=f"context.{key}")
        if key in self._stack:
            cycle = [*self._stack[self._stack.index(key) :], key]
            raise RenderError(
                RenderErrorKind.CYCLE,
                f"Context values form a cycle: {' -> '.join(cycle)}",
                location=location,
            )

        value = self._raw[key]
        if not _is_scalar(value):
            raise RecipeParseError(
                f"Context value '{key}' must be a string, number or boolean",
                location=location,
            )

        self._stack.append(key)
        try:
            if has_template(value):
                for node in extract_all(value):
                    for name in sorted(referenced_names(node)):
                        if name in self._raw:
                            self._resolve(name)
                evaluator = ExpressionEvaluator(ChainMap(self._resolved, dict(self._facts)))
                value = evaluator.evaluate_string(value)
        except RenderError as e:
            raise e.located(location) from None
        finally:
            self._stack.pop()

        if not _is_scalar(value):
            raise RenderError(
                RenderErrorKind.TYPE_ERROR,
                f"Context value '{key}' must render to a scalar, "
                f"got {type(value).__name__}",
                location=location,
            )
        self._resolved[key] = value


def build_context(
    declared: Mapping[str, Any] | None,
    overrides: Mapping[str, Any] | None = None,
    facts: Lookup | None = None,
) -> RenderContext:
    """Resolve a recipe's ``context:`` section.

    Args:
        declared: Raw ``context:`` mapping from the recipe (may be None).
        overrides: Caller-supplied values replacing or extending declared keys.
        facts: Platform facts visible to context templates.

    Returns:
        The resolved, immutable context.

    Raises:
        RecipeParseError: If ``context`` is not a mapping or holds non-scalar values.
        RenderError: For template errors, including CYCLE for self-references.
    """
    if declared is None:
        declared = {}
    if not isinstance(declared, Mapping):
        raise RecipeParseError(
            "'context' must be a mapping",
            location=SourceLocation(path="context"),
        )
    raw: dict[str, Any] = {str(key): value for key, value in declared.items()}
    for key, value in (overrides or {}).items():
        raw[str(key)] = value

    values = _ContextResolver(raw, facts or {}).resolve_all()
    logger.debug("context_built", keys=list(values))
    return RenderContext(values)
