"""Version, constraint and MatchSpec model.

Usage:
    from kiln.versions import MatchSpec, PackageCandidate, satisfies

    spec = MatchSpec.parse("xtl >=0.7,<0.8")
    satisfies(spec, PackageCandidate(name="xtl", version="0.7.5"))  # True
"""

from __future__ import annotations

from kiln.versions.constraint import (
    AllOf,
    AnyOf,
    AnyVersion,
    Constraint,
    Operator,
    VersionConstraint,
    constraint_matches,
    parse_constraint,
)
from kiln.versions.matchspec import MatchSpec, PackageCandidate, satisfies
from kiln.versions.pin import Pin, PinCompatible, PinSubpackage
from kiln.versions.version import (
    Component,
    SegmentKind,
    Version,
    compare_versions,
    parse_version,
)

__all__ = [
    # Versions
    "Component",
    "SegmentKind",
    "Version",
    "compare_versions",
    "parse_version",
    # Constraints
    "AllOf",
    "AnyOf",
    "AnyVersion",
    "Constraint",
    "Operator",
    "VersionConstraint",
    "constraint_matches",
    "parse_constraint",
    # MatchSpec
    "MatchSpec",
    "PackageCandidate",
    "satisfies",
    # Pins
    "Pin",
    "PinCompatible",
    "PinSubpackage",
]
