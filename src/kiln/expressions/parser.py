"""Expression parser models and functions.

This module provides the AST for template expressions in the ``${{ ... }}``
syntax used throughout recipes, and the functions that find and parse them.

Expression syntax:
- ${{ name }} - Reference to a context value, variant key or platform fact
- ${{ name | lower }} - Filter application (with optional arguments)
- ${{ version.split(".") }} is NOT supported; use ${{ version | split(".") }}
- ${{ "lib" ~ name }} - String concatenation (``+`` also works)
- ${{ compiler("c") }} - Helper call with positional and keyword arguments
- ${{ a if b else c }} - Ternary conditional expression
- ${{ values[0] }}, ${{ about.license }} - Index and attribute access
- ${{ a == "b" and not c }} - Comparisons and boolean logic

Implementation:
This module uses a Lark-based parser with an EBNF grammar (grammar.lark).
Parsed expressions are cached since the same expressions are rendered once
per variant combination.
"""

from __future__ import annotations

import re
from collections.abc import Iterator
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any

from lark import (
    Lark,
    Token,
    Transformer,
    UnexpectedCharacters,
    UnexpectedEOF,
    UnexpectedInput,
)
from lark.exceptions import VisitError

from kiln.constants import EXPRESSION_CLOSE, EXPRESSION_OPEN
from kiln.exceptions import RenderError, RenderErrorKind

__all__ = [
    "Attribute",
    "BinaryOp",
    "BoolOp",
    "Call",
    "Conditional",
    "Filter",
    "Index",
    "ListLiteral",
    "Literal",
    "Name",
    "Node",
    "Not",
    "TemplateSpan",
    "extract_all",
    "find_spans",
    "has_template",
    "parse_expression",
    "referenced_names",
    "walk",
]


@dataclass(frozen=True, slots=True)
class Literal:
    """A string, number, boolean or none literal."""

    value: Any


@dataclass(frozen=True, slots=True)
class Name:
    """A bare identifier looked up in the render context."""

    name: str


@dataclass(frozen=True, slots=True)
class Attribute:
    """``target.name`` access."""

    target: Node
    name: str


@dataclass(frozen=True, slots=True)
class Index:
    """``target[index]`` access."""

    target: Node
    index: Node


@dataclass(frozen=True, slots=True)
class Call:
    """Helper call such as ``compiler("c")`` or ``pin_subpackage("x", exact=true)``."""

    function: str
    args: tuple[Node, ...] = ()
    kwargs: tuple[tuple[str, Node], ...] = ()


@dataclass(frozen=True, slots=True)
class Filter:
    """``value | name(args)`` filter application."""

    value: Node
    name: str
    args: tuple[Node, ...] = ()
    kwargs: tuple[tuple[str, Node], ...] = ()


@dataclass(frozen=True, slots=True)
class BinaryOp:
    """Concatenation, addition, comparison or containment."""

    operator: str
    left: Node
    right: Node


@dataclass(frozen=True, slots=True)
class BoolOp:
    """Short-circuit ``and`` / ``or``."""

    operator: str
    left: Node
    right: Node


@dataclass(frozen=True, slots=True)
class Not:
    """Boolean negation."""

    operand: Node


@dataclass(frozen=True, slots=True)
class Conditional:
    """``if_true if condition else if_false``."""

    condition: Node
    if_true: Node
    if_false: Node


@dataclass(frozen=True, slots=True)
class ListLiteral:
    """``[a, b, c]``."""

    items: tuple[Node, ...] = ()


# Closed set of expression node kinds
Node = (
    Literal
    | Name
    | Attribute
    | Index
    | Call
    | Filter
    | BinaryOp
    | BoolOp
    | Not
    | Conditional
    | ListLiteral
)


@dataclass(frozen=True, slots=True)
class TemplateSpan:
    """One ``${{ ... }}`` occurrence inside a string.

    Attributes:
        raw: The full occurrence including delimiters.
        source: The expression text between the delimiters.
        start: Offset of the opening delimiter in the containing string.
        end: Offset just past the closing delimiter.
    """

    raw: str
    source: str
    start: int
    end: int
    node: Node | None = field(default=None, compare=False)


_GRAMMAR_PATH = Path(__file__).parent / "grammar.lark"

_parser = Lark(
    _GRAMMAR_PATH.read_text(),
    parser="lalr",
    start="start",
    propagate_positions=True,
)

_EXPRESSION_PATTERN = re.compile(
    re.escape(EXPRESSION_OPEN) + r"\s*(.*?)\s*" + re.escape(EXPRESSION_CLOSE),
    re.DOTALL,
)

_ESCAPES = {"n": "\n", "t": "\t", "\\": "\\", '"': '"', "'": "'"}


def _unescape(literal: str) -> str:
    body = literal[1:-1]
    return re.sub(r"\\(.)", lambda m: _ESCAPES.get(m.group(1), m.group(0)), body)


def _split_arguments(
    items: list[Any],
) -> tuple[tuple[Node, ...], tuple[tuple[str, Node], ...]]:
    args: list[Node] = []
    kwargs: list[tuple[str, Node]] = []
    for item in items:
        if item is None:
            continue
        if isinstance(item, tuple):
            kwargs.append(item)
        else:
            if kwargs:
                raise ValueError("Positional argument follows keyword argument")
            args.append(item)
    return tuple(args), tuple(kwargs)


class _ExpressionTransformer(Transformer[Token, Node]):
    """Transform the parse tree into expression nodes."""

    def string(self, items: list[Token]) -> Literal:
        return Literal(_unescape(str(items[0])))

    def int(self, items: list[Token]) -> Literal:
        return Literal(int(items[0]))

    def float(self, items: list[Token]) -> Literal:
        return Literal(float(items[0]))

    def true(self, items: list[Token]) -> Literal:
        return Literal(True)

    def false(self, items: list[Token]) -> Literal:
        return Literal(False)

    def none(self, items: list[Token]) -> Literal:
        return Literal(None)

    def name(self, items: list[Token]) -> Name:
        return Name(str(items[0]))

    def list_literal(self, items: list[Node | None]) -> ListLiteral:
        return ListLiteral(tuple(item for item in items if item is not None))

    def attribute(self, items: list[Any]) -> Attribute:
        return Attribute(target=items[0], name=str(items[1]))

    def index(self, items: list[Node]) -> Index:
        return Index(target=items[0], index=items[1])

    def call_args(self, items: list[Any]) -> list[Any]:
        return [item for item in items if item is not None]

    def keyword(self, items: list[Any]) -> tuple[str, Node]:
        return (str(items[0]), items[1])

    def call(self, items: list[Any]) -> Call:
        target, arguments = items
        if not isinstance(target, Name):
            raise ValueError("Only helper functions can be called")
        args, kwargs = _split_arguments(arguments)
        return Call(function=target.name, args=args, kwargs=kwargs)

    def filter(self, items: list[Any]) -> Filter:
        value, name = items[0], str(items[1])
        arguments = items[2] if len(items) > 2 else []
        args, kwargs = _split_arguments(arguments)
        return Filter(value=value, name=name, args=args, kwargs=kwargs)

    def concat(self, items: list[Node]) -> BinaryOp:
        return BinaryOp("~", items[0], items[1])

    def add(self, items: list[Node]) -> BinaryOp:
        return BinaryOp("+", items[0], items[1])

    def compare(self, items: list[Any]) -> BinaryOp:
        return BinaryOp(str(items[1]), items[0], items[2])

    def contains(self, items: list[Node]) -> BinaryOp:
        return BinaryOp("in", items[0], items[1])

    def not_op(self, items: list[Node]) -> Not:
        return Not(items[0])

    def and_op(self, items: list[Node]) -> BoolOp:
        return BoolOp("and", items[0], items[1])

    def or_op(self, items: list[Node]) -> BoolOp:
        return BoolOp("or", items[0], items[1])

    def conditional(self, items: list[Node]) -> Conditional:
        return Conditional(condition=items[1], if_true=items[0], if_false=items[2])


_transformer = _ExpressionTransformer()


def _strip_wrapper(expression: str) -> str:
    stripped = expression.strip()
    if stripped.startswith(EXPRESSION_OPEN) and stripped.endswith(EXPRESSION_CLOSE):
        return stripped[len(EXPRESSION_OPEN) : -len(EXPRESSION_CLOSE)].strip()
    return stripped


@lru_cache(maxsize=2048)
def parse_expression(expression: str) -> Node:
    """Parse an expression (with or without the ``${{ }}`` wrapper).

    Args:
        expression: Expression text.

    Returns:
        The root node of the expression AST.

    Raises:
        RenderError: With kind SYNTAX for empty or malformed expressions.

    Examples:
        >>> parse_expression("${{ name | lower }}")
        Filter(value=Name(name='name'), name='lower', args=(), kwargs=())
    """
    inner = _strip_wrapper(expression)
    if not inner:
        raise RenderError(RenderErrorKind.SYNTAX, "Empty expression", expression=expression)

    try:
        tree = _parser.parse(inner)
        return _transformer.transform(tree)
    except (UnexpectedCharacters, UnexpectedEOF) as e:
        position = (e.column - 1) if getattr(e, "column", None) and e.column > 0 else 0
        raise RenderError(
            RenderErrorKind.SYNTAX,
            "Invalid expression syntax",
            expression=inner,
            position=position,
        ) from e
    except UnexpectedInput as e:
        position = (e.column - 1) if getattr(e, "column", None) and e.column > 0 else 0
        token = getattr(e, "token", None)
        message = f"Unexpected token '{token}'" if token else "Unexpected end of expression"
        raise RenderError(
            RenderErrorKind.SYNTAX,
            message,
            expression=inner,
            position=position,
        ) from e
    except VisitError as e:
        raise RenderError(
            RenderErrorKind.SYNTAX,
            str(e.orig_exc),
            expression=inner,
        ) from e


def has_template(text: Any) -> bool:
    """Whether a value is a string containing at least one ``${{ }}`` block."""
    return isinstance(text, str) and EXPRESSION_OPEN in text


def find_spans(text: str) -> list[TemplateSpan]:
    """Locate all ``${{ ... }}`` blocks in a string, in order.

    Raises:
        RenderError: With kind SYNTAX for an unterminated block or an
            expression that does not parse.
    """
    spans: list[TemplateSpan] = []
    for match in _EXPRESSION_PATTERN.finditer(text):
        spans.append(
            TemplateSpan(
                raw=match.group(0),
                source=match.group(1),
                start=match.start(),
                end=match.end(),
                node=parse_expression(match.group(1)),
            )
        )
    consumed = _EXPRESSION_PATTERN.sub("", text)
    if EXPRESSION_OPEN in consumed:
        raise RenderError(
            RenderErrorKind.SYNTAX,
            "Unterminated template block",
            expression=text,
            position=text.rfind(EXPRESSION_OPEN),
        )
    return spans


def extract_all(text: str) -> list[Node]:
    """Find and parse all expressions in a string.

    Examples:
        >>> extract_all("${{ name }}-${{ version }}")
        [Name(name='name'), Name(name='version')]
        >>> extract_all("No expressions here")
        []
    """
    if not has_template(text):
        return []
    return [span.node for span in find_spans(text) if span.node is not None]


def walk(node: Node) -> Iterator[Node]:
    """Yield a node and all of its descendants, depth first."""
    yield node
    if isinstance(node, Attribute):
        yield from walk(node.target)
    elif isinstance(node, Index):
        yield from walk(node.target)
        yield from walk(node.index)
    elif isinstance(node, (Call, Filter)):
        if isinstance(node, Filter):
            yield from walk(node.value)
        for arg in node.args:
            yield from walk(arg)
        for _, value in node.kwargs:
            yield from walk(value)
    elif isinstance(node, (BinaryOp, BoolOp)):
        yield from walk(node.left)
        yield from walk(node.right)
    elif isinstance(node, Not):
        yield from walk(node.operand)
    elif isinstance(node, Conditional):
        yield from walk(node.condition)
        yield from walk(node.if_true)
        yield from walk(node.if_false)
    elif isinstance(node, ListLiteral):
        for item in node.items:
            yield from walk(item)


def referenced_names(node: Node) -> frozenset[str]:
    """Collect every identifier an expression looks up.

    Examples:
        >>> sorted(referenced_names(parse_expression("name ~ '-' ~ version")))
        ['name', 'version']
    """
    return frozenset(n.name for n in walk(node) if isinstance(n, Name))
