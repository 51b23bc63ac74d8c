"""Typed, immutable recipe models.

These are the output of assembly: every dependency is parsed, every pin on
the recipe's own package is resolved and every optional section has its
default. Instances are frozen and may be shared between threads.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, fields, is_dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any

from kiln.constants import DEFAULT_BUILD_NUMBER
from kiln.versions import MatchSpec, PinCompatible, PinSubpackage, Version

__all__ = [
    "About",
    "Build",
    "Dependency",
    "GitSource",
    "IgnoreRunExports",
    "NoArchKind",
    "Package",
    "PackageContents",
    "PathSource",
    "Recipe",
    "Requirements",
    "RunExports",
    "Script",
    "ScriptKind",
    "Source",
    "Test",
    "UrlSource",
    "to_dict",
]

# A requirement entry after assembly
Dependency = MatchSpec | PinSubpackage | PinCompatible


def _frozen_mapping(value: Mapping[str, Any] | None) -> Mapping[str, Any]:
    return MappingProxyType(dict(value or {}))


# =============================================================================
# Package & sources
# =============================================================================


@dataclass(frozen=True, slots=True)
class Package:
    name: str
    version: Version


@dataclass(frozen=True, slots=True)
class UrlSource:
    """Archive downloaded from one of ``urls`` (mirrors tried in order)."""

    urls: tuple[str, ...]
    sha256: str | None = None
    md5: str | None = None
    file_name: str | None = None
    folder: str | None = None
    patches: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class GitSource:
    """Git checkout; at most one of ``rev``, ``tag`` and ``branch`` is set."""

    url: str
    rev: str | None = None
    tag: str | None = None
    branch: str | None = None
    depth: int | None = None
    lfs: bool = False
    folder: str | None = None
    patches: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class PathSource:
    """Local directory or file, relative to the recipe."""

    path: str
    file_name: str | None = None
    folder: str | None = None
    use_gitignore: bool = True
    patches: tuple[str, ...] = ()


Source = UrlSource | GitSource | PathSource


# =============================================================================
# Build
# =============================================================================


class ScriptKind(str, Enum):
    """How the build script was written in the recipe.

    DEFAULT: no script given (``build.sh`` / ``build.bat`` next to the recipe).
    COMMAND: a multi-line string of commands.
    COMMAND_OR_PATH: a single-line string, either a command or a script path.
    COMMANDS: a list of commands.
    FILE: ``{file: ...}``.
    CONTENT: ``{content: ...}``.
    """

    DEFAULT = "default"
    COMMAND = "command"
    COMMAND_OR_PATH = "command_or_path"
    COMMANDS = "commands"
    FILE = "file"
    CONTENT = "content"


@dataclass(frozen=True, slots=True)
class Script:
    kind: ScriptKind = ScriptKind.DEFAULT
    commands: tuple[str, ...] = ()
    file: str | None = None
    interpreter: str | None = None
    env: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "env", _frozen_mapping(self.env))


class NoArchKind(str, Enum):
    NONE = "none"
    PYTHON = "python"
    GENERIC = "generic"


@dataclass(frozen=True, slots=True)
class Build:
    number: int = DEFAULT_BUILD_NUMBER
    string: str | None = None
    script: Script = field(default_factory=Script)
    noarch: NoArchKind = NoArchKind.NONE
    entry_points: tuple[str, ...] = ()
    merge_build_and_host_envs: bool = False

    @property
    def is_noarch(self) -> bool:
        return self.noarch is not NoArchKind.NONE


# =============================================================================
# Requirements
# =============================================================================


@dataclass(frozen=True, slots=True)
class RunExports:
    """Dependencies a package imposes on packages built against it."""

    weak: tuple[Dependency, ...] = ()
    strong: tuple[Dependency, ...] = ()
    noarch: tuple[Dependency, ...] = ()
    weak_constrained: tuple[Dependency, ...] = ()
    strong_constrained: tuple[Dependency, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not any(getattr(self, f.name) for f in fields(self))


@dataclass(frozen=True, slots=True)
class IgnoreRunExports:
    by_name: tuple[str, ...] = ()
    from_package: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class Requirements:
    build: tuple[Dependency, ...] = ()
    host: tuple[Dependency, ...] = ()
    run: tuple[Dependency, ...] = ()
    run_constrained: tuple[Dependency, ...] = ()
    run_exports: RunExports = field(default_factory=RunExports)
    ignore_run_exports: IgnoreRunExports = field(default_factory=IgnoreRunExports)


# =============================================================================
# Test & about
# =============================================================================


@dataclass(frozen=True, slots=True)
class PackageContents:
    files: tuple[str, ...] = ()
    lib: tuple[str, ...] = ()
    bin: tuple[str, ...] = ()
    include: tuple[str, ...] = ()
    site_packages: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class Test:
    commands: tuple[str, ...] = ()
    imports: tuple[str, ...] = ()
    requires: tuple[MatchSpec, ...] = ()
    files: tuple[str, ...] = ()
    source_files: tuple[str, ...] = ()
    package_contents: PackageContents = field(default_factory=PackageContents)


@dataclass(frozen=True, slots=True)
class About:
    homepage: str | None = None
    repository: str | None = None
    documentation: str | None = None
    license: str | None = None
    license_family: str | None = None
    license_file: tuple[str, ...] = ()
    summary: str | None = None
    description: str | None = None


@dataclass(frozen=True, slots=True)
class Recipe:
    """A fully rendered recipe for one variant combination."""

    package: Package
    source: tuple[Source, ...] = ()
    build: Build = field(default_factory=Build)
    requirements: Requirements = field(default_factory=Requirements)
    test: Test = field(default_factory=Test)
    about: About = field(default_factory=About)
    extra: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "extra", _frozen_mapping(self.extra))


# =============================================================================
# Serialization
# =============================================================================


def _is_empty(value: Any) -> bool:
    return value is None or value == () or value == {} or value == []


def to_dict(value: Any) -> Any:
    """Convert models into plain values for JSON/YAML output.

    Empty values are omitted; versions, MatchSpecs and pins become their
    string form and enums their value.

    Examples:
        >>> from kiln.versions import parse_version
        >>> to_dict(Package(name="xtl", version=parse_version("0.7.7")))
        {'name': 'xtl', 'version': '0.7.7'}
    """
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (Version, MatchSpec, PinSubpackage, PinCompatible)):
        return str(value)
    if is_dataclass(value) and not isinstance(value, type):
        result: dict[str, Any] = {}
        for f in fields(value):
            item = to_dict(getattr(value, f.name))
            if not _is_empty(item):
                result[f.name] = item
        return result
    if isinstance(value, Mapping):
        return {str(k): to_dict(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_dict(item) for item in value]
    return value
