"""Variant discovery and expansion.

Expansion runs in three steps:

1. ``used_variant_keys`` scans the raw recipe (pruned with the base
   context) for the variant keys it references.
2. ``expand`` builds the ordered matrix of combinations over those keys.
3. ``apply_variant_pins`` pins unconstrained dependencies named after a
   variant key to the value chosen for a combination.

Ordering: keys follow the variant configuration's declaration order and the
cartesian product varies the last key fastest. A zip group forms a single
axis at the position of its first used key.
"""

from __future__ import annotations

import itertools
import json
from collections.abc import Iterator, Mapping, Sequence
from types import MappingProxyType
from typing import Any

from kiln.context import render_lookup
from kiln.exceptions import (
    MatchSpecParseError,
    SourceLocation,
    VariantConflict,
    VersionParseError,
    ZipLengthMismatch,
)
from kiln.expressions import (
    Call,
    Literal,
    extract_all,
    has_template,
    implied_variant_keys,
    referenced_names,
    walk,
)
from kiln.logging import get_logger
from kiln.selectors import evaluate_selector, selector_identifiers
from kiln.types import Lookup, NodePath, format_node_path
from kiln.variants.config import VariantConfig
from kiln.versions import MatchSpec, constraint_matches, parse_constraint

__all__ = [
    "PINNED_SECTIONS",
    "VariantCombination",
    "apply_variant_pins",
    "expand",
    "used_variant_keys",
]

logger = get_logger(__name__)

#: Requirement sections whose unconstrained dependencies follow the variant
PINNED_SECTIONS: tuple[str, ...] = ("build", "host", "run", "run_constrained")


class VariantCombination(Mapping[str, str]):
    """One concrete assignment of values to the used variant keys.

    Immutable and hashable; iteration follows the variant configuration's
    key order.
    """

    __slots__ = ("_items", "_values")

    def __init__(self, values: Mapping[str, str] | None = None) -> None:
        items = tuple((str(k), str(v)) for k, v in (values or {}).items())
        self._items = items
        self._values = MappingProxyType(dict(items))

    def __getitem__(self, key: str) -> str:
        return self._values[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __hash__(self) -> int:
        return hash(frozenset(self._items))

    def __eq__(self, other: object) -> bool:
        if isinstance(other, VariantCombination):
            return dict(self._items) == dict(other._items)
        if isinstance(other, Mapping):
            return dict(self._items) == dict(other)
        return NotImplemented

    def __repr__(self) -> str:
        return f"VariantCombination({dict(self._items)!r})"

    def __str__(self) -> str:
        return ", ".join(f"{key}={value}" for key, value in self._items) or "<no variant>"

    def hash_input(self) -> str:
        """Canonical JSON of the combination, the input of build-string hashes."""
        return json.dumps(dict(sorted(self._items)), separators=(",", ":"))

    def to_dict(self) -> dict[str, str]:
        return dict(self._items)


# =============================================================================
# Discovery
# =============================================================================


class _KeyScanner:
    """Walks a raw recipe tree collecting referenced variant keys."""

    def __init__(self, lookup: Lookup, variant_keys: frozenset[str]) -> None:
        self._lookup = lookup
        self._variant_keys = variant_keys
        self.used: set[str] = set()

    def _note_template(self, text: str) -> None:
        for node in extract_all(text):
            self.used.update(referenced_names(node) & self._variant_keys)
            for sub in walk(node):
                if isinstance(sub, Call):
                    literals = [a.value if isinstance(a, Literal) else None for a in sub.args]
                    implied = implied_variant_keys(sub.function, literals)
                    self.used.update(set(implied) & self._variant_keys)

    def note_selector(self, selector: Any) -> bool:
        """Record a selector's keys; True when it depends on a variant key."""
        if not isinstance(selector, str):
            return False
        identifiers = selector_identifiers(selector) & self._variant_keys
        self.used.update(identifiers)
        return bool(identifiers)

    def _branches(self, node: Mapping[str, Any]) -> list[Any]:
        if self.note_selector(node["if"]):
            return [node.get("then"), node.get("else")]
        if evaluate_selector(node["if"], self._lookup):
            return [node.get("then")]
        return [node.get("else")]

    def scan(self, value: Any, path: NodePath) -> None:
        if isinstance(value, Mapping):
            if "if" in value:
                for branch in self._branches(value):
                    if branch is not None:
                        self.scan(branch, path)
                return
            for key, item in value.items():
                self.scan(item, (*path, key))
        elif isinstance(value, list):
            for item in value:
                self.scan(item, path)
        elif isinstance(value, str):
            if has_template(value):
                self._note_template(value)
            elif self._is_pinned_dependency(path):
                self._note_dependency(value)

    @staticmethod
    def _is_pinned_dependency(path: NodePath) -> bool:
        return len(path) == 2 and path[0] == "requirements" and path[1] in PINNED_SECTIONS

    def _note_dependency(self, text: str) -> None:
        try:
            spec = MatchSpec.parse(text)
        except MatchSpecParseError:
            # Reported with a location during rendering
            return
        if spec.is_unconstrained and spec.name in self._variant_keys:
            self.used.add(spec.name)


def _variant_section(tree: Mapping[str, Any]) -> Mapping[str, Any]:
    build = tree.get("build")
    if isinstance(build, Mapping):
        variant = build.get("variant")
        if isinstance(variant, Mapping):
            return variant
    return {}


def _string_list(value: Any) -> list[str]:
    if isinstance(value, str):
        return [value]
    if isinstance(value, list):
        return [str(item) for item in value if isinstance(item, (str, int, float))]
    return []


def used_variant_keys(
    raw_tree: Mapping[str, Any],
    context: Mapping[str, Any],
    variant_config: VariantConfig,
    facts: Lookup | None = None,
) -> frozenset[str]:
    """Variant keys a recipe references.

    Collects template variables, keys implied by helpers (``compiler("c")``
    reads ``c_compiler`` and ``c_compiler_version``), selector identifiers,
    unconstrained dependencies named after a variant key and
    ``build.variant.use_keys``; then removes ``build.variant.ignore_keys``.
    Only keys present in the variant configuration and not shadowed by a
    context key are returned.

    Selectors that depend on a variant key keep both branches in the scan.
    """
    variant_keys = frozenset(k for k in variant_config.keys() if k not in context)
    scanner = _KeyScanner(render_lookup(context, None, facts), variant_keys)
    for key, value in raw_tree.items():
        if key == "context":
            continue
        scanner.scan(value, (key,))

    build = raw_tree.get("build")
    if isinstance(build, Mapping):
        skip = build.get("skip")
        for selector in skip if isinstance(skip, list) else [skip]:
            scanner.note_selector(selector)

    variant = _variant_section(raw_tree)
    used = set(scanner.used)
    used.update(k for k in _string_list(variant.get("use_keys")) if k in variant_keys)
    used.difference_update(_string_list(variant.get("ignore_keys")))
    return frozenset(used)


# =============================================================================
# Expansion
# =============================================================================


def _axes(
    used_keys: frozenset[str] | set[str],
    variant_config: VariantConfig,
) -> list[tuple[tuple[str, ...], list[tuple[str, ...]]]]:
    """Axes of the product: (keys, rows) with one value per key in each row."""
    axes: list[tuple[tuple[str, ...], list[tuple[str, ...]]]] = []
    placed: set[str] = set()
    for key in variant_config.keys():
        if key not in used_keys or key in placed:
            continue
        group = variant_config.zip_group(key)
        if group is None:
            unique = list(dict.fromkeys(variant_config[key]))
            axes.append(((key,), [(value,) for value in unique]))
            placed.add(key)
            continue

        # Lengths are checked over the whole group, used or not
        configured = tuple(k for k in variant_config.keys() if k in group)
        lengths = {k: len(variant_config[k]) for k in configured}
        if len(set(lengths.values())) > 1:
            raise ZipLengthMismatch(lengths)
        members = tuple(k for k in configured if k in used_keys)
        rows = list(zip(*(variant_config[k] for k in members)))
        axes.append((members, rows))
        placed.update(members)
    return axes


def expand(
    used_keys: frozenset[str] | set[str],
    variant_config: VariantConfig,
) -> tuple[VariantCombination, ...]:
    """Build the ordered variant matrix over the used keys.

    Returns:
        Combinations in deterministic order; a single empty combination when
        no key is used.

    Raises:
        ZipLengthMismatch: If the keys of a used zip group have candidate
            lists of different lengths.

    Examples:
        >>> config = VariantConfig.from_mapping({"a": ["1", "2"], "b": ["x", "y"]})
        >>> [str(c) for c in expand({"a", "b"}, config)]
        ['a=1, b=x', 'a=1, b=y', 'a=2, b=x', 'a=2, b=y']
    """
    axes = _axes(used_keys, variant_config)
    if not axes:
        return (VariantCombination(),)

    key_order = [key for keys, _ in axes for key in keys]
    position = {key: index for index, key in enumerate(variant_config.keys())}
    key_order.sort(key=position.__getitem__)

    seen: set[VariantCombination] = set()
    combinations: list[VariantCombination] = []
    for rows in itertools.product(*(axis_rows for _, axis_rows in axes)):
        assignment: dict[str, str] = {}
        for (keys, _), row in zip(axes, rows):
            assignment.update(zip(keys, row))
        combination = VariantCombination({key: assignment[key] for key in key_order})
        if combination in seen:
            continue
        seen.add(combination)
        combinations.append(combination)
    logger.debug("variant_matrix_built", keys=key_order, count=len(combinations))
    return tuple(combinations)


# =============================================================================
# Pinning
# =============================================================================


def _split_variant_value(value: str) -> tuple[str, str | None]:
    version, _, build = value.strip().partition(" ")
    return version, (build.strip() or None)


def apply_variant_pins(
    deps: Sequence[Any],
    combination: Mapping[str, str],
    path: NodePath = (),
) -> tuple[Any, ...]:
    """Pin dependencies named after variant keys to the combination's values.

    An unconstrained ``MatchSpec`` whose name is a key of the combination
    becomes ``name <value>.*``; a value containing a space is split into a
    version and a build string. A constrained ``MatchSpec`` is left as is but
    must admit the variant value. Other dependency kinds pass through.

    Raises:
        VariantConflict: When an explicit constraint excludes the variant value.

    Examples:
        >>> deps = apply_variant_pins([MatchSpec.parse("python")], {"python": "3.11"})
        >>> str(deps[0])
        'python 3.11.*'
    """
    pinned: list[Any] = []
    for index, dep in enumerate(deps):
        if not isinstance(dep, MatchSpec) or dep.name not in combination:
            pinned.append(dep)
            continue
        value = combination[dep.name]
        version, build = _split_variant_value(value)
        if dep.is_unconstrained:
            pattern = version if version.endswith("*") else f"{version}.*"
            pinned.append(dep.with_version(parse_constraint(pattern), build))
            continue

        location = SourceLocation(path=format_node_path((*path, index))) if path else None
        if dep.constraint is not None:
            try:
                admitted = constraint_matches(dep.constraint, version)
            except VersionParseError:
                admitted = False
            if not admitted:
                raise VariantConflict(str(dep), dep.name, value, location=location)
        pinned.append(dep)
    return tuple(pinned)
