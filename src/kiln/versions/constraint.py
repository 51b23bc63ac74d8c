"""Version constraint trees.

A constraint string is parsed into a small closed set of node kinds:

- ``AnyVersion``: ``*`` or an empty version field
- ``VersionConstraint``: one operator applied to one version
- ``AllOf``: terms separated by ``,`` or whitespace (implicit AND)
- ``AnyOf``: branches separated by ``|`` (explicit OR)

Examples:
    ">=1.0,<2.0"      -> AllOf(>=1.0, <2.0)
    "1.2.*|>=2"       -> AnyOf(1.2.*, >=2)
    "~=1.4.2"         -> VersionConstraint(~=, 1.4.2)
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum

from kiln.exceptions import ConstraintParseError, VersionParseError
from kiln.versions.version import Version, parse_version

__all__ = [
    "AllOf",
    "AnyOf",
    "AnyVersion",
    "Constraint",
    "Operator",
    "VersionConstraint",
    "constraint_matches",
    "parse_constraint",
]


class Operator(str, Enum):
    """Comparison operator of a single constraint term."""

    EQ = "=="
    NE = "!="
    GT = ">"
    GE = ">="
    LT = "<"
    LE = "<="
    COMPATIBLE = "~="
    STARTS_WITH = "=*"
    NOT_STARTS_WITH = "!=*"


@dataclass(frozen=True, slots=True)
class AnyVersion:
    """Matches every version."""

    def __str__(self) -> str:
        return "*"


@dataclass(frozen=True, slots=True)
class VersionConstraint:
    """A single ``<operator><version>`` term."""

    operator: Operator
    version: Version

    def __str__(self) -> str:
        if self.operator is Operator.STARTS_WITH:
            return f"{self.version}.*"
        if self.operator is Operator.NOT_STARTS_WITH:
            return f"!={self.version}.*"
        return f"{self.operator.value}{self.version}"


@dataclass(frozen=True, slots=True)
class AllOf:
    """All terms must match (implicit AND)."""

    terms: tuple[Constraint, ...]

    def __str__(self) -> str:
        return ",".join(str(term) for term in self.terms)


@dataclass(frozen=True, slots=True)
class AnyOf:
    """At least one branch must match (explicit OR)."""

    branches: tuple[Constraint, ...]

    def __str__(self) -> str:
        return "|".join(str(branch) for branch in self.branches)


# Closed set of constraint node kinds
Constraint = AnyVersion | VersionConstraint | AllOf | AnyOf

_OPERATORS = ("==", "!=", "~=", ">=", "<=", ">", "<", "=")
_TERM = re.compile(r"^(==|!=|~=|>=|<=|>|<|=)?(.*)$")
_SPLIT_TERMS = re.compile(r"[,\s]+")


def constraint_matches(constraint: Constraint, version: Version | str) -> bool:
    """Check whether a version satisfies a constraint tree.

    Args:
        constraint: Parsed constraint.
        version: Candidate version (parsed or text).

    Returns:
        True if the version satisfies the constraint.

    Examples:
        >>> constraint_matches(parse_constraint(">=1.0,<2.0"), "1.5")
        True
    """
    candidate = parse_version(version) if isinstance(version, str) else version
    if isinstance(constraint, AnyVersion):
        return True
    if isinstance(constraint, AllOf):
        return all(constraint_matches(term, candidate) for term in constraint.terms)
    if isinstance(constraint, AnyOf):
        return any(
            constraint_matches(branch, candidate) for branch in constraint.branches
        )
    if isinstance(constraint, VersionConstraint):
        return _term_matches(constraint.operator, constraint.version, candidate)
    raise TypeError(f"Unknown constraint node: {constraint!r}")


def _term_matches(operator: Operator, bound: Version, candidate: Version) -> bool:
    if operator is Operator.EQ:
        return candidate == bound
    if operator is Operator.NE:
        return candidate != bound
    if operator is Operator.GT:
        return candidate > bound
    if operator is Operator.GE:
        return candidate >= bound
    if operator is Operator.LT:
        return candidate < bound
    if operator is Operator.LE:
        return candidate <= bound
    if operator is Operator.STARTS_WITH:
        return candidate.starts_with(bound)
    if operator is Operator.NOT_STARTS_WITH:
        return not candidate.starts_with(bound)
    if operator is Operator.COMPATIBLE:
        prefix = parse_version(".".join(bound.segment_texts[:-1]))
        prefix = Version(
            source=prefix.source,
            epoch=bound.epoch,
            segments=prefix.segments,
        )
        return candidate >= bound and candidate.starts_with(prefix)
    raise TypeError(f"Unknown operator: {operator!r}")


def _tokenize_terms(branch: str) -> list[str]:
    """Split a branch into terms, re-attaching detached operators (``>= 1.0``)."""
    raw = [token for token in _SPLIT_TERMS.split(branch) if token]
    terms: list[str] = []
    pending = ""
    for token in raw:
        if token in _OPERATORS:
            if pending:
                raise ConstraintParseError("Operator without a version", branch)
            pending = token
            continue
        terms.append(pending + token)
        pending = ""
    if pending:
        raise ConstraintParseError("Operator without a version", branch)
    return terms


def _parse_version_text(text: str, original: str) -> Version:
    try:
        return parse_version(text)
    except VersionParseError as e:
        raise ConstraintParseError(f"Invalid version '{text}'", original) from e


def _parse_term(term: str, original: str) -> Constraint:
    match = _TERM.match(term)
    if match is None:  # pragma: no cover - the pattern accepts any text
        raise ConstraintParseError("Malformed constraint term", original)
    op_text, version_text = match.group(1), match.group(2)

    if version_text in ("", "*"):
        if op_text is None or op_text in ("=", "=="):
            return AnyVersion()
        raise ConstraintParseError(f"Operator '{op_text}' requires a version", original)

    wildcard = version_text.endswith("*")
    if wildcard:
        version_text = version_text.rstrip("*").rstrip(".")
        if not version_text:
            raise ConstraintParseError("Wildcard without a version", original)
    if "*" in version_text:
        raise ConstraintParseError("Wildcards are only allowed at the end", original)

    version = _parse_version_text(version_text, original)

    if op_text is None or op_text == "==":
        operator = Operator.STARTS_WITH if wildcard else Operator.EQ
    elif op_text == "=":
        operator = Operator.STARTS_WITH
    elif op_text == "!=":
        operator = Operator.NOT_STARTS_WITH if wildcard else Operator.NE
    elif op_text == "~=":
        if wildcard:
            raise ConstraintParseError("'~=' cannot be combined with '*'", original)
        if len(version.segments) < 2:
            raise ConstraintParseError(
                "'~=' requires at least two version segments", original
            )
        operator = Operator.COMPATIBLE
    else:
        # Range operators ignore a trailing wildcard (>=1.2.* means >=1.2)
        operator = Operator(op_text)
    return VersionConstraint(operator=operator, version=version)


def parse_constraint(text: str) -> Constraint:
    """Parse a version constraint string into a constraint tree.

    Args:
        text: Constraint text, e.g. ``>=0.7,<0.8`` or ``1.2.*|>=2``.

    Returns:
        The constraint tree. A single term is returned unwrapped.

    Raises:
        ConstraintParseError: For empty input, dangling operators,
            misplaced wildcards or invalid versions.

    Examples:
        >>> str(parse_constraint(">= 0.7, <0.8"))
        '>=0.7,<0.8'
    """
    source = text.strip()
    if not source:
        raise ConstraintParseError("Empty constraint", text)

    branches: list[Constraint] = []
    for branch_text in source.split("|"):
        if not branch_text.strip():
            raise ConstraintParseError("Empty alternative in constraint", text)
        terms = [_parse_term(term, text) for term in _tokenize_terms(branch_text)]
        if not terms:
            raise ConstraintParseError("Empty alternative in constraint", text)
        branches.append(terms[0] if len(terms) == 1 else AllOf(tuple(terms)))

    if len(branches) == 1:
        return branches[0]
    return AnyOf(tuple(branches))
