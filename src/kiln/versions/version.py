"""Version parsing and total ordering.

A version string is split into an optional epoch (``2!``), base segments
separated by ``.`` or ``_``, and an optional local part after ``+``. Each
segment is split further into alternating numeric and alphabetic sub-runs:

    "1.0a1+cuda11" -> epoch 0, segments [[1], [0, "a", 1]], local [["cuda", 11]]

Ordering rules:
- Numeric sub-runs compare as integers, alphabetic ones lexicographically.
- An alphabetic sub-run sorts before a numeric one at the same position,
  so ``1.0a1 < 1.0``.
- Missing sub-runs and segments compare as ``0``, so ``1.0 == 1.0.0`` and
  ``1.0 < 1.0.1 < 1.1``.
- The local part is only consulted when everything else is equal; a version
  without one sorts first.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum

from kiln.exceptions import VersionParseError

__all__ = [
    "Component",
    "SegmentKind",
    "Version",
    "compare_versions",
    "parse_version",
]

_ALLOWED = re.compile(r"^[a-z0-9._+!]+$")
_SUB_RUN = re.compile(r"\d+|[a-z]+")
_SEPARATORS = re.compile(r"[._]")


class SegmentKind(str, Enum):
    """Kind of a sub-run inside a version segment."""

    ALPHA = "alpha"
    NUMERIC = "numeric"


@dataclass(frozen=True, slots=True)
class Component:
    """One numeric or alphabetic sub-run of a version segment."""

    kind: SegmentKind
    value: int | str

    def sort_key(self) -> tuple[int, int | str]:
        # Alphabetic runs rank below numeric runs
        if self.kind is SegmentKind.NUMERIC:
            return (1, self.value)
        return (0, self.value)

    def __str__(self) -> str:
        return str(self.value)


Segment = tuple[Component, ...]

_ZERO = Component(SegmentKind.NUMERIC, 0)
_ZERO_KEY = _ZERO.sort_key()


def _split_segment(text: str) -> Segment:
    return tuple(
        Component(SegmentKind.NUMERIC, int(run))
        if run.isdigit()
        else Component(SegmentKind.ALPHA, run)
        for run in _SUB_RUN.findall(text)
    )


def _parse_segments(text: str, original: str) -> tuple[Segment, ...]:
    parts = _SEPARATORS.split(text)
    if any(not part for part in parts):
        raise VersionParseError("Version contains an empty segment", original)
    return tuple(_split_segment(part) for part in parts)


def _compare_segments(
    left: tuple[Segment, ...],
    right: tuple[Segment, ...],
) -> int:
    for i in range(max(len(left), len(right))):
        seg_a = left[i] if i < len(left) else ()
        seg_b = right[i] if i < len(right) else ()
        for j in range(max(len(seg_a), len(seg_b))):
            key_a = seg_a[j].sort_key() if j < len(seg_a) else _ZERO_KEY
            key_b = seg_b[j].sort_key() if j < len(seg_b) else _ZERO_KEY
            if key_a != key_b:
                return -1 if key_a < key_b else 1
    return 0


def _normalized(segments: tuple[Segment, ...]) -> tuple[Segment, ...]:
    """Strip trailing zero sub-runs and empty segments (hash key)."""
    trimmed: list[Segment] = []
    for segment in segments:
        end = len(segment)
        while end and segment[end - 1] == _ZERO:
            end -= 1
        trimmed.append(segment[:end])
    while trimmed and not trimmed[-1]:
        trimmed.pop()
    return tuple(trimmed)


@dataclass(frozen=True, slots=True, eq=False)
class Version:
    """A parsed, totally ordered version.

    Attributes:
        source: Normalized (lowercased, stripped) version text.
        epoch: Epoch number, 0 when absent.
        segments: Base segments as tuples of components.
        local: Local segments, or None when the version has no ``+local``.

    Examples:
        >>> parse_version("1.0a1") < parse_version("1.0")
        True
        >>> parse_version("1.0") == parse_version("1.0.0")
        True
    """

    source: str
    epoch: int
    segments: tuple[Segment, ...]
    local: tuple[Segment, ...] | None = None
    _hash_key: tuple[object, ...] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        local_key = None if self.local is None else _normalized(self.local)
        object.__setattr__(
            self,
            "_hash_key",
            (self.epoch, _normalized(self.segments), local_key),
        )

    @property
    def segment_texts(self) -> tuple[str, ...]:
        """Base segments as text, e.g. ``("1", "0a1")``."""
        return tuple("".join(str(c) for c in segment) for segment in self.segments)

    def starts_with(self, prefix: Version) -> bool:
        """Whether this version matches ``prefix.*``.

        All prefix segments but the last must be equal; the last prefix
        segment must be a leading run of the corresponding segment.

        Examples:
            >>> parse_version("1.2.3").starts_with(parse_version("1.2"))
            True
            >>> parse_version("1.20").starts_with(parse_version("1.2"))
            False
        """
        if self.epoch != prefix.epoch:
            return False
        count = len(prefix.segments)
        if count == 0:
            return True
        if _compare_segments(self.segments[: count - 1], prefix.segments[: count - 1]):
            return False
        head = prefix.segments[count - 1]
        own = self.segments[count - 1] if count - 1 < len(self.segments) else ()
        for j, component in enumerate(head):
            other = own[j] if j < len(own) else _ZERO
            if other.sort_key() != component.sort_key():
                return False
        if prefix.local is not None:
            return self.local is not None and not _compare_segments(
                self.local, prefix.local
            )
        return True

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return compare_versions(self, other) == 0

    def __lt__(self, other: Version) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return compare_versions(self, other) < 0

    def __le__(self, other: Version) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return compare_versions(self, other) <= 0

    def __gt__(self, other: Version) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return compare_versions(self, other) > 0

    def __ge__(self, other: Version) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return compare_versions(self, other) >= 0

    def __hash__(self) -> int:
        return hash(self._hash_key)

    def __str__(self) -> str:
        return self.source


def compare_versions(a: Version, b: Version) -> int:
    """Compare two versions.

    Returns:
        -1 if ``a < b``, 0 if they are equal, 1 if ``a > b``.
    """
    if a.epoch != b.epoch:
        return -1 if a.epoch < b.epoch else 1
    result = _compare_segments(a.segments, b.segments)
    if result:
        return result
    if a.local is None or b.local is None:
        if a.local is None and b.local is None:
            return 0
        return -1 if a.local is None else 1
    return _compare_segments(a.local, b.local)


def parse_version(text: str) -> Version:
    """Parse a version string.

    Args:
        text: Version text such as ``1.2.3``, ``1!2.0`` or ``1.0+local``.

    Returns:
        The parsed Version.

    Raises:
        VersionParseError: If the text is empty or contains characters
            outside ``[A-Za-z0-9._+!]``.

    Examples:
        >>> parse_version("1.0") < parse_version("1.0.1") < parse_version("1.1")
        True
    """
    if not isinstance(text, str):
        raise VersionParseError("Version must be a string", repr(text))
    source = text.strip().lower()
    if not source:
        raise VersionParseError("Empty version", text)
    if not _ALLOWED.match(source):
        raise VersionParseError("Version contains disallowed characters", text)

    epoch = 0
    rest = source
    if "!" in rest:
        epoch_text, _, rest = rest.partition("!")
        if not epoch_text.isdigit() or "!" in rest:
            raise VersionParseError("Epoch must be a single integer", text)
        epoch = int(epoch_text)

    local: tuple[Segment, ...] | None = None
    if "+" in rest:
        rest, _, local_text = rest.partition("+")
        if not local_text or "+" in local_text:
            raise VersionParseError("Malformed local version", text)
        local = _parse_segments(local_text, text)

    if not rest:
        raise VersionParseError("Version has no base segments", text)

    return Version(
        source=source,
        epoch=epoch,
        segments=_parse_segments(rest, text),
        local=local,
    )
