"""Tests for version constraint parsing and matching."""

from __future__ import annotations

import pytest

from kiln.exceptions import ConstraintParseError
from kiln.versions import (
    AllOf,
    AnyOf,
    AnyVersion,
    Operator,
    VersionConstraint,
    constraint_matches,
    parse_constraint,
)


class TestParseConstraint:
    """Tests for parse_constraint."""

    def test_single_term_is_unwrapped(self) -> None:
        """Test a single term is returned as a VersionConstraint."""
        constraint = parse_constraint(">=1.0")

        assert isinstance(constraint, VersionConstraint)
        assert constraint.operator is Operator.GE

    def test_comma_is_and(self) -> None:
        """Test comma separated terms form an AllOf."""
        constraint = parse_constraint(">=0.7,<0.8")

        assert isinstance(constraint, AllOf)
        assert len(constraint.terms) == 2

    def test_pipe_is_or(self) -> None:
        """Test pipe separated branches form an AnyOf."""
        constraint = parse_constraint("1.2.*|>=2")

        assert isinstance(constraint, AnyOf)
        assert str(constraint) == "1.2.*|>=2"

    def test_detached_operator(self) -> None:
        """Test an operator separated from its version by a space."""
        assert str(parse_constraint(">= 0.7, <0.8")) == ">=0.7,<0.8"

    @pytest.mark.parametrize("text", ["*", "=*", "==*"])
    def test_any_version(self, text: str) -> None:
        """Test wildcard-only terms match everything."""
        assert isinstance(parse_constraint(text), AnyVersion)

    def test_single_equals_is_prefix_match(self) -> None:
        """Test ``=1.2`` means ``1.2.*``."""
        constraint = parse_constraint("=1.2")

        assert isinstance(constraint, VersionConstraint)
        assert constraint.operator is Operator.STARTS_WITH

    @pytest.mark.parametrize(
        "text",
        ["", ">=", "|>=2", "1.*.2", "~=1", "~=1.2.*", ">=1.0 <=", ">*"],
    )
    def test_invalid_constraints(self, text: str) -> None:
        """Test malformed constraints raise ConstraintParseError."""
        with pytest.raises(ConstraintParseError):
            parse_constraint(text)


class TestConstraintMatches:
    """Tests for constraint_matches."""

    @pytest.mark.parametrize(
        ("constraint", "version", "expected"),
        [
            (">=0.7,<0.8", "0.7.5", True),
            (">=0.7,<0.8", "0.8", False),
            (">=0.7,<0.8", "0.6.9", False),
            ("1.2.*", "1.2.7", True),
            ("1.2.*", "1.20", False),
            ("!=1.2.*", "1.3", True),
            ("==1.0", "1.0.0", True),
            ("!=1.0", "1.0.1", True),
            ("~=1.4.2", "1.4.9", True),
            ("~=1.4.2", "1.5.0", False),
            ("~=1.4.2", "1.4.1", False),
            ("<2|>=3", "3.1", True),
            ("<2|>=3", "2.5", False),
            ("*", "0.0.1", True),
            (">1.0a1", "1.0", True),
        ],
    )
    def test_matches(self, constraint: str, version: str, expected: bool) -> None:
        """Test constraint evaluation against concrete versions."""
        assert constraint_matches(parse_constraint(constraint), version) is expected
