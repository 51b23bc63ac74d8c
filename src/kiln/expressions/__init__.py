"""Template expressions for recipe values.

This package provides parsing and evaluation of ``${{ ... }}`` expressions.

Usage:
    from kiln.expressions import ExpressionEvaluator, parse_expression

    node = parse_expression("${{ name | lower }}")
    evaluator = ExpressionEvaluator({"name": "XTL"})
    evaluator.evaluate(node)  # "xtl"
"""

from __future__ import annotations

from kiln.expressions.evaluator import ExpressionEvaluator, render_value
from kiln.expressions.functions import FILTERS, HELPERS, implied_variant_keys, to_text
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
    TemplateSpan,
    extract_all,
    find_spans,
    has_template,
    parse_expression,
    referenced_names,
    walk,
)

__all__ = [
    # Parser
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
    # Evaluator
    "ExpressionEvaluator",
    "render_value",
    # Functions
    "FILTERS",
    "HELPERS",
    "implied_variant_keys",
    "to_text",
]
