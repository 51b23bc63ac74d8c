"""Filters and helper functions available inside ``${{ }}`` expressions.

Filters receive the piped value first (``name | replace("-", "_")``).
Helpers receive the render context first so that build-time concepts such
as the target platform and compiler variant keys are visible to them.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import Any

from kiln.constants import (
    DEFAULT_CDT_NAME,
    DEFAULT_COMPILERS,
    DEFAULT_MAX_PIN,
    DEFAULT_MIN_PIN,
)
from kiln.platform import Platform
from kiln.types import Lookup
from kiln.versions import (
    Pin,
    PinCompatible,
    PinSubpackage,
    constraint_matches,
    parse_constraint,
)

__all__ = [
    "FILTERS",
    "HELPERS",
    "implied_variant_keys",
    "to_text",
]

FilterFunction = Callable[..., Any]
HelperFunction = Callable[..., Any]

# Core-dependency-tree architecture per canonical architecture name
_CDT_ARCHES: dict[str, str] = {
    "x86_64": "x86_64",
    "x86": "i686",
    "aarch64": "aarch64",
    "ppc64le": "ppc64le",
    "s390x": "s390x",
}


def to_text(value: Any) -> str:
    """Convert an evaluated value to the text spliced into a template."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "none"
    if isinstance(value, (list, tuple)):
        return ", ".join(to_text(item) for item in value)
    return str(value)


# =============================================================================
# Filters
# =============================================================================


def _replace(value: Any, old: str, new: str, count: int | None = None) -> str:
    text = to_text(value)
    if count is None:
        return text.replace(old, new)
    return text.replace(old, new, count)


def _default(value: Any, default_value: Any = "", boolean: bool = False) -> Any:
    if value is None or (boolean and not value):
        return default_value
    return value


def _join(value: Sequence[Any], separator: str = "") -> str:
    return separator.join(to_text(item) for item in value)


def _split(value: Any, separator: str | None = None, maxsplit: int = -1) -> list[str]:
    return to_text(value).split(separator, maxsplit)


def _int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        try:
            return int(float(value))
        except (TypeError, ValueError):
            return default


def _version_to_buildstring(value: Any) -> str:
    """``3.11.4`` -> ``311``: major and minor segments concatenated."""
    if value is None:
        return ""
    return "".join(to_text(value).split(".")[:2])


FILTERS: dict[str, FilterFunction] = {
    "lower": lambda value: to_text(value).lower(),
    "upper": lambda value: to_text(value).upper(),
    "title": lambda value: to_text(value).title(),
    "capitalize": lambda value: to_text(value).capitalize(),
    "trim": lambda value, chars=None: to_text(value).strip(chars),
    "replace": _replace,
    "default": _default,
    "join": _join,
    "split": _split,
    "length": len,
    "first": lambda value: value[0],
    "last": lambda value: value[-1],
    "int": _int,
    "string": to_text,
    "version_to_buildstring": _version_to_buildstring,
}


# =============================================================================
# Helpers
# =============================================================================


def _target(ctx: Lookup) -> Platform:
    subdir = ctx.get("target_platform")
    if not subdir:
        raise ValueError("target_platform is not defined")
    return Platform.parse(str(subdir))


def compiler(ctx: Lookup, language: str) -> str:
    """Resolve ``compiler("c")`` to ``<compiler>_<target_platform> <version>.*``.

    The compiler name comes from the ``<language>_compiler`` variant key, or
    from the per-platform defaults. The version comes from the
    ``<language>_compiler_version`` variant key and is omitted when unset.

    Examples:
        >>> compiler({"target_platform": "linux-64", "c_compiler_version": "13"}, "c")
        'gcc_linux-64 13.*'
    """
    if not isinstance(language, str) or not language:
        raise TypeError("compiler() expects a language name")
    platform = _target(ctx)
    name = ctx.get(f"{language}_compiler")
    if not name:
        defaults = DEFAULT_COMPILERS.get(platform.os or "", {})
        name = defaults.get(language, language)
    result = f"{name}_{platform.subdir}"
    version = ctx.get(f"{language}_compiler_version")
    if version is not None and str(version):
        version_text = str(version)
        if not version_text.endswith("*"):
            version_text = f"{version_text}.*"
        result = f"{result} {version_text}"
    return result


def cdt(ctx: Lookup, name: str) -> str:
    """Resolve ``cdt("libx11")`` to ``libx11-cos7-x86_64``."""
    if not isinstance(name, str) or not name:
        raise TypeError("cdt() expects a package name")
    cdt_name = ctx.get("cdt_name") or DEFAULT_CDT_NAME
    cdt_arch = ctx.get("cdt_arch")
    if not cdt_arch:
        arch = _target(ctx).arch or "noarch"
        cdt_arch = _CDT_ARCHES.get(arch, arch)
    return f"{name}-{cdt_name}-{cdt_arch}"


def _pin(
    name: str,
    min_pin: str | None = DEFAULT_MIN_PIN,
    max_pin: str | None = DEFAULT_MAX_PIN,
    exact: bool = False,
    lower_bound: str | None = None,
    upper_bound: str | None = None,
) -> Pin:
    if not isinstance(name, str) or not name:
        raise TypeError("pin helpers expect a package name")
    return Pin(
        name=name,
        min_pin=min_pin,
        max_pin=max_pin,
        exact=bool(exact),
        lower_bound=None if lower_bound is None else str(lower_bound),
        upper_bound=None if upper_bound is None else str(upper_bound),
    )


def pin_subpackage(ctx: Lookup, name: str, **kwargs: Any) -> PinSubpackage:
    return PinSubpackage(_pin(name, **kwargs))


def pin_compatible(ctx: Lookup, name: str, **kwargs: Any) -> PinCompatible:
    return PinCompatible(_pin(name, **kwargs))


def match(ctx: Lookup, value: Any, spec: str) -> bool:
    """Whether a version value satisfies a constraint (``match(python, ">=3.10")``)."""
    if value is None:
        return False
    return constraint_matches(parse_constraint(str(spec)), str(value))


HELPERS: dict[str, HelperFunction] = {
    "compiler": compiler,
    "cdt": cdt,
    "pin_subpackage": pin_subpackage,
    "pin_compatible": pin_compatible,
    "match": match,
}


def implied_variant_keys(function: str, literal_args: Sequence[Any]) -> tuple[str, ...]:
    """Variant keys a helper call reads implicitly.

    Args:
        function: Helper name.
        literal_args: Positional arguments that are literals (others are None).

    Examples:
        >>> implied_variant_keys("compiler", ["cxx"])
        ('cxx_compiler', 'cxx_compiler_version')
    """
    if function == "compiler" and literal_args and isinstance(literal_args[0], str):
        language = literal_args[0]
        return (f"{language}_compiler", f"{language}_compiler_version")
    if function == "cdt":
        return ("cdt_name", "cdt_arch")
    return ()
