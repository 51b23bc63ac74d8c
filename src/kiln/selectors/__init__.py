"""Selector parsing and evaluation for ``if:`` recipe nodes."""

from __future__ import annotations

from kiln.selectors.evaluator import evaluate_selector
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
    selector_identifiers,
)

__all__ = [
    "And",
    "Compare",
    "Constant",
    "Identifier",
    "Match",
    "Not",
    "Or",
    "SelectorNode",
    "evaluate_selector",
    "parse_selector",
    "selector_identifiers",
]
