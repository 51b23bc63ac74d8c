"""Variant configuration: candidate values per key plus zip groups.

A variant configuration document looks like::

    python:
      - "3.11"
      - "3.12"
    numpy:
      - "1.26"
      - "2.0"
    c_compiler_version:
      - if: linux
        then: "13"
      - if: osx
        then: "17"
    zip_keys:
      - [python, numpy]

Scalars are promoted to one-element lists and every value is stringified.
``if``/``then``/``else`` items are resolved against the lookup passed in
(usually platform facts) when the configuration is loaded.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from kiln.exceptions import SelectorError, VariantConfigError
from kiln.loader import load_yaml
from kiln.selectors import evaluate_selector
from kiln.types import Lookup

__all__ = ["ZIP_KEYS", "VariantConfig"]

#: Reserved key holding the zip groups
ZIP_KEYS = "zip_keys"


def _stringify(value: Any, key: str) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (str, int, float)):
        return str(value)
    raise VariantConfigError(
        f"Variant values for '{key}' must be scalars, got {type(value).__name__}"
    )


def _is_conditional(item: Any) -> bool:
    return isinstance(item, Mapping) and "if" in item


def _candidates(key: str, raw: Any, lookup: Lookup) -> tuple[str, ...]:
    items = raw if isinstance(raw, list) else [raw]
    values: list[str] = []
    for item in items:
        if _is_conditional(item):
            unknown = set(item) - {"if", "then", "else"}
            if unknown or "then" not in item:
                raise VariantConfigError(
                    f"Conditional value for '{key}' needs 'if' and 'then' "
                    f"(unexpected keys: {sorted(unknown)})"
                )
            try:
                selected = evaluate_selector(item["if"], lookup)
            except SelectorError as e:
                raise VariantConfigError(f"Variant '{key}': {e.message}") from e
            chosen = item["then"] if selected else item.get("else")
            if chosen is None:
                continue
            branch = chosen if isinstance(chosen, list) else [chosen]
            values.extend(_stringify(value, key) for value in branch)
        elif item is None:
            raise VariantConfigError(f"Variant '{key}' contains an empty value")
        else:
            values.append(_stringify(item, key))
    return tuple(values)


def _zip_groups(raw: Any) -> tuple[tuple[str, ...], ...]:
    if raw is None:
        return ()
    if not isinstance(raw, list):
        raise VariantConfigError("'zip_keys' must be a list of key groups")
    # A flat list of names is a single group
    if all(isinstance(item, str) for item in raw):
        groups = [raw] if raw else []
    else:
        groups = raw
    result: list[tuple[str, ...]] = []
    for group in groups:
        if not isinstance(group, list) or not all(isinstance(k, str) for k in group):
            raise VariantConfigError("Each 'zip_keys' group must be a list of key names")
        result.append(tuple(group))
    return tuple(result)


def _check_zip_groups(groups: Sequence[tuple[str, ...]]) -> None:
    seen: dict[str, int] = {}
    for index, group in enumerate(groups):
        for key in group:
            if key in seen:
                raise VariantConfigError(
                    f"Variant key '{key}' appears in more than one zip_keys group"
                )
            seen[key] = index


@dataclass(frozen=True, slots=True)
class VariantConfig:
    """Immutable variant configuration.

    Attributes:
        values: Key -> candidate values, in declaration order.
        zip_keys: Groups of keys that vary together positionally.

    Examples:
        >>> config = VariantConfig.from_mapping({"python": ["3.11"], "numpy": "1.26"})
        >>> config["numpy"]
        ('1.26',)
    """

    values: Mapping[str, tuple[str, ...]] = field(default_factory=dict)
    zip_keys: tuple[tuple[str, ...], ...] = ()

    def __post_init__(self) -> None:
        _check_zip_groups(self.zip_keys)
        object.__setattr__(self, "values", MappingProxyType(dict(self.values)))

    @classmethod
    def from_mapping(
        cls,
        data: Mapping[str, Any] | None,
        lookup: Lookup | None = None,
    ) -> VariantConfig:
        """Build a configuration from a plain mapping.

        Args:
            data: Key -> value(s), plus optional ``zip_keys``.
            lookup: Facts used to resolve ``if``/``then`` items.

        Raises:
            VariantConfigError: For non-mapping input, nested values, bad
                conditionals or overlapping zip groups.
        """
        if data is None:
            return cls()
        if not isinstance(data, Mapping):
            raise VariantConfigError(
                f"Variant configuration must be a mapping, got {type(data).__name__}"
            )
        facts = lookup or {}
        values: dict[str, tuple[str, ...]] = {}
        for key, raw in data.items():
            key = str(key)
            if key == ZIP_KEYS:
                continue
            if isinstance(raw, Mapping) and not _is_conditional(raw):
                raise VariantConfigError(f"Variant '{key}' must be a value or a list")
            values[key] = _candidates(key, raw, facts)
        return cls(values=values, zip_keys=_zip_groups(data.get(ZIP_KEYS)))

    @classmethod
    def from_yaml(cls, text: str, lookup: Lookup | None = None) -> VariantConfig:
        """Parse a YAML variant configuration document."""
        document = load_yaml(text)
        return cls.from_mapping(document.data, lookup)

    def merge(self, other: VariantConfig) -> VariantConfig:
        """Combine two configurations; ``other`` wins key by key.

        Zip groups of ``self`` that share a key with a group of ``other``
        are dropped in favor of ``other``'s groups.
        """
        values = dict(self.values)
        for key, candidates in other.values.items():
            values[key] = candidates
        overridden = {key for group in other.zip_keys for key in group}
        groups = [group for group in self.zip_keys if not overridden.intersection(group)]
        groups.extend(other.zip_keys)
        return VariantConfig(values=values, zip_keys=tuple(groups))

    def zip_group(self, key: str) -> tuple[str, ...] | None:
        for group in self.zip_keys:
            if key in group:
                return group
        return None

    def keys(self) -> Iterator[str]:
        return iter(self.values)

    def get(
        self, key: str, default: tuple[str, ...] | None = None
    ) -> tuple[str, ...] | None:
        return self.values.get(key, default)

    def __getitem__(self, key: str) -> tuple[str, ...]:
        return self.values[key]

    def __contains__(self, key: object) -> bool:
        return key in self.values

    def __len__(self) -> int:
        return len(self.values)
