"""Platform descriptors for build, host and target roles.

A platform is identified by its subdir string (``linux-64``, ``osx-arm64``,
``win-64``, ``noarch``...). Selectors and helper functions read the facts
derived here; nothing in this module inspects the running machine except
``Platform.current()``.
"""

from __future__ import annotations

import platform as _platform
from dataclasses import dataclass
from typing import Any

__all__ = [
    "KNOWN_ARCHES",
    "KNOWN_OSES",
    "Platform",
    "PlatformTriple",
]

KNOWN_OSES: tuple[str, ...] = ("linux", "osx", "win", "emscripten", "wasi")

# Architecture facts exposed to selectors
KNOWN_ARCHES: tuple[str, ...] = (
    "x86",
    "x86_64",
    "aarch64",
    "arm64",
    "armv6l",
    "armv7l",
    "ppc64le",
    "ppc64",
    "s390x",
    "wasm32",
    "riscv64",
)

# Subdir architecture suffix -> canonical architecture name
_ARCH_ALIASES: dict[str, str] = {"64": "x86_64", "32": "x86"}

_MACHINE_TO_SUBDIR_ARCH: dict[str, str] = {
    "x86_64": "64",
    "amd64": "64",
    "i386": "32",
    "i686": "32",
    "aarch64": "aarch64",
    "arm64": "arm64",
    "ppc64le": "ppc64le",
    "s390x": "s390x",
    "armv7l": "armv7l",
    "armv6l": "armv6l",
}

_SYSTEM_TO_OS: dict[str, str] = {"linux": "linux", "darwin": "osx", "windows": "win"}


@dataclass(frozen=True, slots=True)
class Platform:
    """A single platform identified by its subdir.

    Attributes:
        subdir: Platform subdir, e.g. ``linux-64`` or ``noarch``.

    Examples:
        >>> Platform.parse("osx-arm64").arch
        'arm64'
        >>> Platform.parse("linux-64").arch
        'x86_64'
    """

    subdir: str

    @classmethod
    def parse(cls, subdir: str) -> Platform:
        """Validate and build a Platform from a subdir string.

        Raises:
            ValueError: If the subdir is not ``noarch`` or ``<os>-<arch>``
                with a known operating system.
        """
        value = subdir.strip().lower()
        if value == "noarch":
            return cls(value)
        os_name, sep, arch = value.partition("-")
        if not sep or not arch or os_name not in KNOWN_OSES:
            raise ValueError(f"Unknown platform: {subdir!r}")
        return cls(value)

    @classmethod
    def current(cls) -> Platform:
        """Return the platform of the running interpreter."""
        os_name = _SYSTEM_TO_OS.get(_platform.system().lower(), "linux")
        machine = _platform.machine().lower()
        arch = _MACHINE_TO_SUBDIR_ARCH.get(machine, machine or "64")
        return cls(f"{os_name}-{arch}")

    @property
    def is_noarch(self) -> bool:
        return self.subdir == "noarch"

    @property
    def os(self) -> str | None:
        if self.is_noarch:
            return None
        return self.subdir.split("-", 1)[0]

    @property
    def arch(self) -> str | None:
        if self.is_noarch:
            return None
        suffix = self.subdir.split("-", 1)[1]
        return _ARCH_ALIASES.get(suffix, suffix)

    @property
    def is_unix(self) -> bool:
        return self.os in ("linux", "osx", "emscripten")

    def facts(self) -> dict[str, bool]:
        """Boolean facts exposed to selectors (``linux``, ``unix``, ``x86_64``...)."""
        facts: dict[str, bool] = {name: self.os == name for name in KNOWN_OSES}
        facts["unix"] = self.is_unix
        arch = self.arch
        for name in KNOWN_ARCHES:
            facts[name] = arch == name
        # x86 covers both 32 and 64 bit intel
        facts["x86"] = arch in ("x86", "x86_64")
        return facts

    def __str__(self) -> str:
        return self.subdir


@dataclass(frozen=True, slots=True)
class PlatformTriple:
    """Platforms for the build, host and target roles.

    Boolean OS/architecture facts follow the target platform; the three
    subdirs are also available as ``build_platform``, ``host_platform`` and
    ``target_platform``.
    """

    build: Platform
    host: Platform
    target: Platform

    @classmethod
    def native(cls, subdir: str | None = None) -> PlatformTriple:
        """Use one platform for all three roles (the running one by default)."""
        plat = Platform.parse(subdir) if subdir else Platform.current()
        return cls(build=plat, host=plat, target=plat)

    @classmethod
    def from_subdirs(
        cls,
        build: str | None = None,
        host: str | None = None,
        target: str | None = None,
    ) -> PlatformTriple:
        """Build a triple, defaulting host to build and target to host."""
        build_platform = Platform.parse(build) if build else Platform.current()
        host_platform = Platform.parse(host) if host else build_platform
        target_platform = Platform.parse(target) if target else host_platform
        return cls(build=build_platform, host=host_platform, target=target_platform)

    def facts(self) -> dict[str, Any]:
        """All names a selector or template can use to ask about platforms."""
        facts: dict[str, Any] = dict(self.target.facts())
        facts["build_platform"] = self.build.subdir
        facts["host_platform"] = self.host.subdir
        facts["target_platform"] = self.target.subdir
        return facts
