"""Tests for pin expressions."""

from __future__ import annotations

import pytest

from kiln.exceptions import VersionParseError
from kiln.versions import Pin, PinCompatible, PinSubpackage


class TestPin:
    """Tests for Pin.apply and Pin.constraint_for."""

    def test_default_pin(self) -> None:
        """Test the default pin keeps the full version and bumps the major."""
        assert str(Pin("foo").apply("1.2.3")) == "foo >=1.2.3,<2.0a0"

    def test_max_pin(self) -> None:
        """Test ``max_pin="x.x"`` bumps the minor segment."""
        assert str(Pin("foo", max_pin="x.x").apply("1.2.3")) == "foo >=1.2.3,<1.3.0a0"

    def test_min_pin_truncates(self) -> None:
        """Test ``min_pin="x.x"`` keeps two segments of the lower bound."""
        pin = Pin("foo", min_pin="x.x", max_pin="x.x")

        assert str(pin.apply("1.2.3")) == "foo >=1.2,<1.3.0a0"

    def test_only_upper_bound(self) -> None:
        """Test a pin without a lower bound."""
        assert str(Pin("foo", min_pin=None).apply("1.2.3")) == "foo <2.0a0"

    def test_no_bounds(self) -> None:
        """Test a pin without any bound leaves the name unconstrained."""
        spec = Pin("foo", min_pin=None, max_pin=None).apply("1.2.3")

        assert spec.is_unconstrained

    def test_explicit_bounds(self) -> None:
        """Test explicit bounds override pin expressions."""
        pin = Pin("foo", lower_bound="1.0", upper_bound="3")

        assert str(pin.apply("1.2.3")) == "foo >=1.0,<3"

    def test_exact_pin_keeps_build(self) -> None:
        """Test exact pins use ``==`` and the given build string."""
        spec = Pin("foo", exact=True).apply("1.2.3", build="h1234567_0")

        assert str(spec) == "foo ==1.2.3 h1234567_0"

    def test_epoch_is_preserved(self) -> None:
        """Test bounds keep the epoch of the pinned version."""
        assert str(Pin("foo", max_pin="x").apply("1!2.0")) == "foo >=1!2.0,<1!3.0a0"

    def test_invalid_expression(self) -> None:
        """Test pin expressions must look like ``x.x``."""
        with pytest.raises(ValueError, match="Invalid pin expression"):
            Pin("foo", max_pin="y.y")

    def test_non_numeric_upper_bound(self) -> None:
        """Test an upper bound cannot bump an alphabetic segment."""
        with pytest.raises(VersionParseError):
            Pin("foo", max_pin="x.x").apply("1.a")


class TestPinWrappers:
    """Tests for PinSubpackage and PinCompatible."""

    def test_pin_subpackage_str(self) -> None:
        """Test the readable form of an unresolved pin_subpackage."""
        pin = PinSubpackage(Pin("Foo", max_pin="x.x"))

        assert pin.name == "foo"
        assert str(pin) == "pin_subpackage(Foo, min_pin=x.x.x.x.x.x, max_pin=x.x)"

    def test_pin_compatible_exact_str(self) -> None:
        """Test the readable form of an exact pin_compatible."""
        assert str(PinCompatible(Pin("numpy", exact=True))) == (
            "pin_compatible(numpy, exact=True)"
        )
