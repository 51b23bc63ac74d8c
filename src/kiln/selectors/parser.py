"""Selector parser models and functions.

Selectors are the boolean conditions of ``if:`` nodes in a recipe:

- win                                - platform fact
- linux and not aarch64              - boolean logic
- target_platform == "osx-arm64"     - string comparison
- match(python, ">=3.10")            - version constraint on a variant key
- ${{ unix }}                        - the template wrapper is accepted too
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from lark import Lark, Token, Transformer, UnexpectedInput

from kiln.constants import EXPRESSION_CLOSE, EXPRESSION_OPEN
from kiln.exceptions import SelectorError, SelectorErrorKind

__all__ = [
    "And",
    "Compare",
    "Constant",
    "Identifier",
    "Match",
    "Not",
    "Or",
    "SelectorNode",
    "parse_selector",
    "selector_identifiers",
]


@dataclass(frozen=True, slots=True)
class Identifier:
    """A platform fact, context value or variant key."""

    name: str


@dataclass(frozen=True, slots=True)
class Constant:
    """A string, number (kept as text) or boolean literal."""

    value: str | bool


@dataclass(frozen=True, slots=True)
class Compare:
    """``left == right`` or ``left != right``."""

    operator: str
    left: Identifier | Constant
    right: Identifier | Constant


@dataclass(frozen=True, slots=True)
class Match:
    """``match(value, "constraint")``."""

    value: Identifier | Constant
    spec: Identifier | Constant


@dataclass(frozen=True, slots=True)
class Not:
    operand: SelectorNode


@dataclass(frozen=True, slots=True)
class And:
    left: SelectorNode
    right: SelectorNode


@dataclass(frozen=True, slots=True)
class Or:
    left: SelectorNode
    right: SelectorNode


# Closed set of selector node kinds
SelectorNode = Identifier | Constant | Compare | Match | Not | And | Or

_parser = Lark(
    (Path(__file__).parent / "grammar.lark").read_text(),
    parser="lalr",
    start="start",
)


class _SelectorTransformer(Transformer[Token, SelectorNode]):
    def identifier(self, items: list[Token]) -> Identifier:
        return Identifier(str(items[0]))

    def string(self, items: list[Token]) -> Constant:
        return Constant(str(items[0])[1:-1])

    def number(self, items: list[Token]) -> Constant:
        return Constant(str(items[0]))

    def true(self, items: list[Token]) -> Constant:
        return Constant(True)

    def false(self, items: list[Token]) -> Constant:
        return Constant(False)

    def compare(self, items: list[object]) -> Compare:
        left, operator, right = items
        return Compare(str(operator), left, right)  # type: ignore[arg-type]

    def match_call(self, items: list[object]) -> Match:
        return Match(items[0], items[1])  # type: ignore[arg-type]

    def not_op(self, items: list[SelectorNode]) -> Not:
        return Not(items[0])

    def and_op(self, items: list[SelectorNode]) -> And:
        return And(items[0], items[1])

    def or_op(self, items: list[SelectorNode]) -> Or:
        return Or(items[0], items[1])


_transformer = _SelectorTransformer()


def _strip_wrapper(selector: str) -> str:
    stripped = selector.strip()
    if stripped.startswith(EXPRESSION_OPEN) and stripped.endswith(EXPRESSION_CLOSE):
        return stripped[len(EXPRESSION_OPEN) : -len(EXPRESSION_CLOSE)].strip()
    return stripped


@lru_cache(maxsize=1024)
def parse_selector(selector: str) -> SelectorNode:
    """Parse selector text (bare or wrapped in ``${{ }}``).

    Raises:
        SelectorError: With kind SYNTAX for empty or malformed selectors.

    Examples:
        >>> parse_selector("win and x86_64")
        And(left=Identifier(name='win'), right=Identifier(name='x86_64'))
    """
    inner = _strip_wrapper(selector)
    if not inner:
        raise SelectorError(SelectorErrorKind.SYNTAX, "Empty selector", selector)
    try:
        return _transformer.transform(_parser.parse(inner))
    except UnexpectedInput as e:
        column = getattr(e, "column", None)
        where = f" at column {column}" if isinstance(column, int) and column > 0 else ""
        raise SelectorError(
            SelectorErrorKind.SYNTAX,
            f"Invalid selector syntax{where}",
            selector,
        ) from e


def _walk(node: SelectorNode) -> Iterator[SelectorNode]:
    yield node
    if isinstance(node, Compare):
        yield node.left
        yield node.right
    elif isinstance(node, Match):
        yield node.value
        yield node.spec
    elif isinstance(node, Not):
        yield from _walk(node.operand)
    elif isinstance(node, (And, Or)):
        yield from _walk(node.left)
        yield from _walk(node.right)


def selector_identifiers(selector: str) -> frozenset[str]:
    """Names a selector reads.

    Examples:
        >>> sorted(selector_identifiers("linux and match(python, '>=3.10')"))
        ['linux', 'python']
    """
    return frozenset(
        node.name for node in _walk(parse_selector(selector)) if isinstance(node, Identifier)
    )
