"""Pin expressions that turn a concrete version into a range.

A pin expression counts how many leading segments to keep:
``"x.x"`` keeps two. Given version ``1.2.3``:

    min_pin="x.x.x"  ->  >=1.2.3
    max_pin="x.x"    ->  <1.3.0a0

The upper bound bumps the last kept segment and appends ``0a0`` so that
pre-releases of the next version are excluded as well.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from kiln.constants import DEFAULT_MAX_PIN, DEFAULT_MIN_PIN
from kiln.exceptions import VersionParseError
from kiln.versions.constraint import (
    AllOf,
    Constraint,
    Operator,
    VersionConstraint,
)
from kiln.versions.matchspec import MatchSpec
from kiln.versions.version import Version, parse_version

__all__ = [
    "Pin",
    "PinCompatible",
    "PinSubpackage",
]

_PIN_EXPRESSION = re.compile(r"^x(\.x)*$")
_LEADING_NUMBER = re.compile(r"^(\d+)")


def _pin_length(expression: str) -> int:
    if not _PIN_EXPRESSION.match(expression):
        raise ValueError(f"Invalid pin expression {expression!r} (expected e.g. 'x.x')")
    return expression.count("x")


def _leading_segments(version: Version, count: int) -> list[str]:
    return list(version.segment_texts[:count])


def _with_epoch(version: Version, text: str) -> str:
    return f"{version.epoch}!{text}" if version.epoch else text


def _bump(version: Version, count: int) -> str:
    texts = _leading_segments(version, count)
    match = _LEADING_NUMBER.match(texts[-1])
    if match is None:
        raise VersionParseError(
            f"Cannot compute an upper bound from non-numeric segment {texts[-1]!r}",
            str(version),
        )
    texts[-1] = str(int(match.group(1)) + 1)
    return _with_epoch(version, ".".join([*texts, "0a0"]))


@dataclass(frozen=True, slots=True)
class Pin:
    """Bounds derived from a concrete version.

    Attributes:
        name: Package the pin applies to.
        min_pin: Segments kept for the lower bound, or None for no lower bound.
        max_pin: Segments kept for the upper bound, or None for no upper bound.
        exact: Pin to ``==version`` (and the build string, when known).
        lower_bound: Explicit lower bound overriding ``min_pin``.
        upper_bound: Explicit upper bound overriding ``max_pin``.
    """

    name: str
    min_pin: str | None = DEFAULT_MIN_PIN
    max_pin: str | None = DEFAULT_MAX_PIN
    exact: bool = False
    lower_bound: str | None = None
    upper_bound: str | None = None

    def __post_init__(self) -> None:
        if self.min_pin is not None:
            _pin_length(self.min_pin)
        if self.max_pin is not None:
            _pin_length(self.max_pin)

    def constraint_for(self, version: Version | str) -> Constraint | None:
        """Compute the ``>=lower,<upper`` constraint for a version."""
        concrete = parse_version(version) if isinstance(version, str) else version
        if self.exact:
            return VersionConstraint(Operator.EQ, concrete)

        terms: list[Constraint] = []
        if self.lower_bound is not None:
            terms.append(VersionConstraint(Operator.GE, parse_version(self.lower_bound)))
        elif self.min_pin is not None:
            lower = ".".join(_leading_segments(concrete, _pin_length(self.min_pin)))
            terms.append(
                VersionConstraint(Operator.GE, parse_version(_with_epoch(concrete, lower)))
            )
        if self.upper_bound is not None:
            terms.append(VersionConstraint(Operator.LT, parse_version(self.upper_bound)))
        elif self.max_pin is not None:
            upper = _bump(concrete, _pin_length(self.max_pin))
            terms.append(VersionConstraint(Operator.LT, parse_version(upper)))

        if not terms:
            return None
        return terms[0] if len(terms) == 1 else AllOf(tuple(terms))

    def apply(self, version: Version | str, build: str | None = None) -> MatchSpec:
        """Turn the pin into a concrete MatchSpec for ``version``.

        Examples:
            >>> str(Pin("foo", max_pin="x.x").apply("1.2.3"))
            'foo >=1.2.3,<1.3.0a0'
        """
        return MatchSpec(
            name=self.name.lower(),
            constraint=self.constraint_for(version),
            build=build if self.exact else None,
        )

    def describe(self) -> str:
        args = [self.name]
        if self.exact:
            args.append("exact=True")
        else:
            if self.lower_bound is not None:
                args.append(f"lower_bound={self.lower_bound}")
            elif self.min_pin is not None:
                args.append(f"min_pin={self.min_pin}")
            if self.upper_bound is not None:
                args.append(f"upper_bound={self.upper_bound}")
            elif self.max_pin is not None:
                args.append(f"max_pin={self.max_pin}")
        return ", ".join(args)


@dataclass(frozen=True, slots=True)
class PinSubpackage:
    """Dependency on another output of the same recipe, pinned to its version."""

    pin: Pin

    @property
    def name(self) -> str:
        return self.pin.name.lower()

    def __str__(self) -> str:
        return f"pin_subpackage({self.pin.describe()})"


@dataclass(frozen=True, slots=True)
class PinCompatible:
    """Run dependency pinned to the version resolved for a host dependency."""

    pin: Pin

    @property
    def name(self) -> str:
        return self.pin.name.lower()

    def __str__(self) -> str:
        return f"pin_compatible({self.pin.describe()})"
