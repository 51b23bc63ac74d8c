"""MatchSpec: a package query of name, version constraint and build filters.

Accepted text form::

    [channel[/subdir]::]name [version [build]][key=value,...]

Examples:
    "xtl >=0.7,<0.8"
    "conda-forge::numpy 1.26.* py311*"
    "python[version='>=3.10',build_number=1]"
    "numpy=1.26=py311_0"
"""

from __future__ import annotations

import fnmatch
import re
from dataclasses import dataclass, replace

from kiln.exceptions import ConstraintParseError, MatchSpecParseError
from kiln.platform import Platform
from kiln.versions.constraint import (
    AnyVersion,
    Constraint,
    constraint_matches,
    parse_constraint,
)
from kiln.versions.version import Version

__all__ = [
    "MatchSpec",
    "PackageCandidate",
    "satisfies",
]

_NAME = re.compile(r"^[a-z0-9_.\-]+$")
_NAME_AND_REST = re.compile(r"^([^\s=<>!~|,*\[]+)(.*)$", re.DOTALL)
_BRACKET_PAIR = re.compile(
    r"""\s*([A-Za-z_]+)\s*=\s*("[^"]*"|'[^']*'|[^,]*)\s*(?:,|$)"""
)
_EQUALS_FORM = re.compile(r"^=([^=<>!~\s]+)=([^=\s]+)$")
_VERSION_START = ("=", "<", ">", "!", "~", ",", "|")
_BRACKET_KEYS = frozenset(
    {"version", "build", "build_number", "channel", "subdir", "md5", "sha256"}
)


@dataclass(frozen=True, slots=True)
class MatchSpec:
    """A parsed package query.

    Attributes:
        name: Lowercased package name.
        constraint: Version constraint, None when unconstrained.
        build: Build string glob, None when unconstrained.
        build_number: Exact build number, if required.
        channel: Channel name or URL, if required.
        subdir: Platform subdir, if required.
        md5: Expected MD5 of the package archive.
        sha256: Expected SHA-256 of the package archive.
    """

    name: str
    constraint: Constraint | None = None
    build: str | None = None
    build_number: int | None = None
    channel: str | None = None
    subdir: str | None = None
    md5: str | None = None
    sha256: str | None = None

    @classmethod
    def parse(cls, text: str) -> MatchSpec:
        """Parse MatchSpec text.

        Raises:
            MatchSpecParseError: For empty input, invalid names, stray tokens,
                unknown bracket keys or malformed version constraints.

        Examples:
            >>> str(MatchSpec.parse("XTL >=0.7, <0.8"))
            'xtl >=0.7,<0.8'
        """
        return _parse_matchspec(text)

    @property
    def is_unconstrained(self) -> bool:
        """True when only a name is given (no version and no build)."""
        return (
            self.constraint is None or isinstance(self.constraint, AnyVersion)
        ) and self.build is None

    def with_version(self, constraint: Constraint, build: str | None = None) -> MatchSpec:
        """Return a copy with the given constraint (and build, if set)."""
        return replace(self, constraint=constraint, build=build or self.build)

    def __str__(self) -> str:
        text = self.name
        if self.channel:
            prefix = f"{self.channel}/{self.subdir}" if self.subdir else self.channel
            text = f"{prefix}::{text}"
        if self.constraint is not None:
            text = f"{text} {self.constraint}"
        if self.build is not None:
            if self.constraint is None:
                text = f"{text} *"
            text = f"{text} {self.build}"
        extras: list[str] = []
        if self.subdir and not self.channel:
            extras.append(f"subdir={self.subdir}")
        if self.build_number is not None:
            extras.append(f"build_number={self.build_number}")
        if self.md5:
            extras.append(f"md5={self.md5}")
        if self.sha256:
            extras.append(f"sha256={self.sha256}")
        if extras:
            text = f"{text}[{','.join(extras)}]"
        return text


@dataclass(frozen=True, slots=True)
class PackageCandidate:
    """A concrete package record a MatchSpec can be checked against."""

    name: str
    version: Version | str
    build: str = ""
    build_number: int = 0
    channel: str | None = None
    subdir: str | None = None
    md5: str | None = None
    sha256: str | None = None


def satisfies(spec: MatchSpec, candidate: PackageCandidate) -> bool:
    """Check whether a candidate package satisfies a MatchSpec.

    Names are compared case-insensitively, the build filter is a glob
    (``py311*``) and hashes are compared case-insensitively.

    Examples:
        >>> spec = MatchSpec.parse("foo >=1.0,<2.0")
        >>> satisfies(spec, PackageCandidate("foo", "1.5"))
        True
        >>> satisfies(spec, PackageCandidate("foo", "2.0"))
        False
    """
    if spec.name != candidate.name.lower():
        return False
    if spec.constraint is not None and not constraint_matches(
        spec.constraint, candidate.version
    ):
        return False
    if spec.build is not None and not fnmatch.fnmatchcase(candidate.build, spec.build):
        return False
    if spec.build_number is not None and spec.build_number != candidate.build_number:
        return False
    if spec.channel is not None and (
        candidate.channel is None
        or _channel_name(spec.channel) != _channel_name(candidate.channel)
    ):
        return False
    if spec.subdir is not None and spec.subdir != candidate.subdir:
        return False
    if spec.md5 is not None and spec.md5.lower() != (candidate.md5 or "").lower():
        return False
    if spec.sha256 is not None and spec.sha256.lower() != (candidate.sha256 or "").lower():
        return False
    return True


def _channel_name(channel: str) -> str:
    return channel.rstrip("/").rsplit("/", 1)[-1].lower()


def _unquote(value: str) -> str:
    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
        return value[1:-1]
    return value


def _parse_brackets(body: str, text: str) -> dict[str, str]:
    values: dict[str, str] = {}
    position = 0
    body = body.strip()
    while position < len(body):
        match = _BRACKET_PAIR.match(body, position)
        if match is None or match.end() == position:
            raise MatchSpecParseError("Malformed bracket expression", text)
        key = match.group(1).lower()
        if key not in _BRACKET_KEYS:
            raise MatchSpecParseError(f"Unknown bracket key '{key}'", text)
        values[key] = _unquote(match.group(2))
        position = match.end()
    return values


def _split_channel(prefix: str, text: str) -> tuple[str, str | None]:
    if not prefix:
        raise MatchSpecParseError("Empty channel", text)
    head, sep, tail = prefix.rpartition("/")
    if sep and head:
        try:
            Platform.parse(tail)
        except ValueError:
            return prefix, None
        return head, tail
    return prefix, None


def _split_version_and_build(rest: str, text: str) -> tuple[str | None, str | None]:
    equals = _EQUALS_FORM.match(rest)
    if equals:
        version = equals.group(1)
        if not version.endswith("*"):
            version = f"{version}.*"
        return version, equals.group(2)

    tokens = rest.split()
    if not tokens:
        return None, None
    version_tokens = [tokens[0]]
    build: str | None = None
    for index, token in enumerate(tokens[1:], start=1):
        previous = version_tokens[-1]
        continues = (
            token.startswith(_VERSION_START)
            or previous.endswith((",", "|"))
            or previous in ("==", "!=", "~=", ">=", "<=", ">", "<", "=")
        )
        if continues and build is None:
            version_tokens.append(token)
            continue
        if build is not None or index != len(tokens) - 1:
            raise MatchSpecParseError(f"Unexpected token '{token}'", text)
        build = token
    return " ".join(version_tokens), build


def _to_constraint(version_text: str, text: str) -> Constraint:
    try:
        return parse_constraint(version_text)
    except ConstraintParseError as e:
        raise MatchSpecParseError(f"Invalid version constraint: {e.message}", text) from e


def _parse_matchspec(text: str) -> MatchSpec:
    if not isinstance(text, str):
        raise MatchSpecParseError("MatchSpec must be a string", repr(text))
    source = text.strip()
    if not source:
        raise MatchSpecParseError("Empty MatchSpec", text)

    brackets: dict[str, str] = {}
    if source.endswith("]"):
        start = source.find("[")
        if start == -1:
            raise MatchSpecParseError("Unbalanced ']'", text)
        brackets = _parse_brackets(source[start + 1 : -1], text)
        source = source[:start].strip()
    elif "[" in source:
        raise MatchSpecParseError("Unbalanced '['", text)

    channel: str | None = None
    subdir: str | None = None
    if "::" in source:
        prefix, _, source = source.rpartition("::")
        channel, subdir = _split_channel(prefix.strip(), text)
        source = source.strip()

    match = _NAME_AND_REST.match(source)
    if match is None:
        raise MatchSpecParseError("Missing package name", text)
    name = match.group(1).lower()
    if not _NAME.match(name):
        raise MatchSpecParseError(f"Invalid package name '{match.group(1)}'", text)

    version_text, build = _split_version_and_build(match.group(2).strip(), text)
    constraint = _to_constraint(version_text, text) if version_text else None

    if "version" in brackets:
        constraint = _to_constraint(brackets["version"], text)
    if "build" in brackets:
        build = brackets["build"]
    build_number: int | None = None
    if "build_number" in brackets:
        try:
            build_number = int(brackets["build_number"])
        except ValueError as e:
            raise MatchSpecParseError("build_number must be an integer", text) from e
    if "channel" in brackets:
        channel = brackets["channel"]
    if "subdir" in brackets:
        subdir = brackets["subdir"]

    return MatchSpec(
        name=name,
        constraint=constraint,
        build=build,
        build_number=build_number,
        channel=channel,
        subdir=subdir,
        md5=brackets.get("md5"),
        sha256=brackets.get("sha256"),
    )

