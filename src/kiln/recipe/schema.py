"""Pydantic schema records for rendered recipe trees.

The records mirror the recipe document one section at a time and reject
unknown keys. They validate shape only; dependency strings, scripts and
versions are interpreted by the assembler.

Validation errors are converted into RecipeParseError with the dotted path
and, when a loaded document is available, the line and column of the
offending node.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Literal, TypeVar

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from kiln.constants import DEFAULT_BUILD_NUMBER
from kiln.exceptions import RecipeParseError, SourceLocation
from kiln.loader import LoadedDocument
from kiln.types import NodePath, format_node_path

__all__ = [
    # Sections
    "PackageRecord",
    "UrlSourceRecord",
    "GitSourceRecord",
    "PathSourceRecord",
    "BuildRecord",
    "RequirementsRecord",
    "RunExportsRecord",
    "IgnoreRunExportsRecord",
    "TestRecord",
    "AboutRecord",
    # Top-level
    "RecipeRecord",
    # Validation
    "validate_recipe",
    "validate_source",
]

RecordT = TypeVar("RecordT", bound=BaseModel)


def _as_list(value: Any) -> Any:
    """Promote a scalar to a one-element list; None becomes empty."""
    if value is None:
        return []
    if isinstance(value, (str, int, float, bool)):
        return [value]
    return value


class _Record(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)


# =============================================================================
# Package & sources
# =============================================================================


class PackageRecord(_Record):
    name: str = Field(..., min_length=1)
    version: str = Field(..., min_length=1)

    @field_validator("name", "version", mode="before")
    @classmethod
    def stringify_numbers(cls, v: Any) -> Any:
        """Versions such as ``1`` or names rendered from numbers become text."""
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        return v


class _SourceRecord(_Record):
    folder: str | None = None
    patches: list[str] = Field(default_factory=list)

    @field_validator("patches", mode="before")
    @classmethod
    def promote_patches(cls, v: Any) -> Any:
        return _as_list(v)


class UrlSourceRecord(_SourceRecord):
    """Archive source. A checksum is mandatory."""

    url: list[str] = Field(..., min_length=1)
    sha256: str | None = None
    md5: str | None = None
    file_name: str | None = None

    @field_validator("url", mode="before")
    @classmethod
    def promote_url(cls, v: Any) -> Any:
        return _as_list(v)

    @model_validator(mode="after")
    def require_checksum(self) -> UrlSourceRecord:
        if self.sha256 is None and self.md5 is None:
            raise ValueError("URL sources need a sha256 or md5 checksum")
        return self


class GitSourceRecord(_SourceRecord):
    git: str = Field(..., min_length=1)
    rev: str | None = None
    tag: str | None = None
    branch: str | None = None
    depth: int | None = Field(None, ge=1)
    lfs: bool = False

    @model_validator(mode="after")
    def single_reference(self) -> GitSourceRecord:
        given = [name for name in ("rev", "tag", "branch") if getattr(self, name)]
        if len(given) > 1:
            names = ", ".join(given)
            raise ValueError(f"Only one of rev, tag or branch may be set (got {names})")
        return self


class PathSourceRecord(_SourceRecord):
    path: str = Field(..., min_length=1)
    file_name: str | None = None
    use_gitignore: bool = True


# Key that selects each source record, in priority order
_SOURCE_KINDS: tuple[tuple[str, type[_SourceRecord]], ...] = (
    ("url", UrlSourceRecord),
    ("git", GitSourceRecord),
    ("path", PathSourceRecord),
)


# =============================================================================
# Build
# =============================================================================


class PythonRecord(_Record):
    entry_points: list[str] = Field(default_factory=list)


class VariantRecord(_Record):
    use_keys: list[str] = Field(default_factory=list)
    ignore_keys: list[str] = Field(default_factory=list)


class BuildRecord(_Record):
    """``build:`` section.

    ``script`` is kept untyped here; its several accepted forms are decided
    by the assembler.
    """

    number: int = Field(DEFAULT_BUILD_NUMBER, ge=0)
    string: str | None = None
    script: Any = None
    noarch: Literal["python", "generic"] | None = None
    python: PythonRecord = Field(default_factory=PythonRecord)
    skip: list[bool | str] = Field(default_factory=list)
    variant: VariantRecord = Field(default_factory=VariantRecord)
    merge_build_and_host_envs: bool = False

    @field_validator("skip", mode="before")
    @classmethod
    def promote_skip(cls, v: Any) -> Any:
        return _as_list(v)


# =============================================================================
# Requirements
# =============================================================================


class RunExportsRecord(_Record):
    weak: list[Any] = Field(default_factory=list)
    strong: list[Any] = Field(default_factory=list)
    noarch: list[Any] = Field(default_factory=list)
    weak_constrained: list[Any] = Field(default_factory=list)
    strong_constrained: list[Any] = Field(default_factory=list)

    @field_validator("*", mode="before")
    @classmethod
    def none_is_empty(cls, v: Any) -> Any:
        return [] if v is None else v


class IgnoreRunExportsRecord(_Record):
    by_name: list[str] = Field(default_factory=list)
    from_package: list[str] = Field(default_factory=list)

    @field_validator("*", mode="before")
    @classmethod
    def none_is_empty(cls, v: Any) -> Any:
        return [] if v is None else v


class RequirementsRecord(_Record):
    build: list[Any] = Field(default_factory=list)
    host: list[Any] = Field(default_factory=list)
    run: list[Any] = Field(default_factory=list)
    run_constrained: list[Any] = Field(default_factory=list)
    run_exports: RunExportsRecord = Field(default_factory=RunExportsRecord)
    ignore_run_exports: IgnoreRunExportsRecord = Field(
        default_factory=IgnoreRunExportsRecord
    )

    @field_validator("build", "host", "run", "run_constrained", mode="before")
    @classmethod
    def none_is_empty(cls, v: Any) -> Any:
        return [] if v is None else v

    @field_validator("run_exports", mode="before")
    @classmethod
    def list_means_weak(cls, v: Any) -> Any:
        """A bare list of run exports is the ``weak`` set."""
        if v is None:
            return {}
        if isinstance(v, list):
            return {"weak": v}
        return v

    @field_validator("ignore_run_exports", mode="before")
    @classmethod
    def none_is_default(cls, v: Any) -> Any:
        return {} if v is None else v


# =============================================================================
# Test & about
# =============================================================================


class PackageContentsRecord(_Record):
    files: list[str] = Field(default_factory=list)
    lib: list[str] = Field(default_factory=list)
    bin: list[str] = Field(default_factory=list)
    include: list[str] = Field(default_factory=list)
    site_packages: list[str] = Field(default_factory=list)

    @field_validator("*", mode="before")
    @classmethod
    def promote(cls, v: Any) -> Any:
        return _as_list(v)


class TestRecord(_Record):
    commands: list[str] = Field(default_factory=list)
    imports: list[str] = Field(default_factory=list)
    requires: list[str] = Field(default_factory=list)
    files: list[str] = Field(default_factory=list)
    source_files: list[str] = Field(default_factory=list)
    package_contents: PackageContentsRecord = Field(default_factory=PackageContentsRecord)

    @field_validator(
        "commands", "imports", "requires", "files", "source_files", mode="before"
    )
    @classmethod
    def promote(cls, v: Any) -> Any:
        return _as_list(v)

    @field_validator("package_contents", mode="before")
    @classmethod
    def none_is_default(cls, v: Any) -> Any:
        return {} if v is None else v


class AboutRecord(_Record):
    homepage: str | None = None
    repository: str | None = None
    documentation: str | None = None
    license: str | None = None
    license_family: str | None = None
    license_file: list[str] = Field(default_factory=list)
    summary: str | None = None
    description: str | None = None

    @field_validator("license_file", mode="before")
    @classmethod
    def promote_license_file(cls, v: Any) -> Any:
        return _as_list(v)


# =============================================================================
# Recipe
# =============================================================================


class RecipeRecord(_Record):
    """A rendered recipe document.

    Validation Rules:
        - ``package.name`` and ``package.version`` are required
        - Unknown keys are rejected at every level
        - Empty sections (``about:`` with no body) take their defaults
    """

    package: PackageRecord
    source: list[dict[str, Any]] = Field(default_factory=list)
    build: BuildRecord = Field(default_factory=BuildRecord)
    requirements: RequirementsRecord = Field(default_factory=RequirementsRecord)
    test: TestRecord = Field(default_factory=TestRecord)
    about: AboutRecord = Field(default_factory=AboutRecord)
    extra: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def drop_empty_sections(cls, data: Any) -> Any:
        if isinstance(data, Mapping):
            return {k: v for k, v in data.items() if v is not None or k == "package"}
        return data

    @field_validator("source", mode="before")
    @classmethod
    def promote_source(cls, v: Any) -> Any:
        """A single source mapping is a one-element list."""
        if isinstance(v, Mapping):
            return [v]
        return v


# =============================================================================
# Error conversion
# =============================================================================


def _error_path(loc: tuple[Any, ...], data: Any, error_type: str) -> NodePath:
    """Project a pydantic ``loc`` onto the data, dropping union tags."""
    path: list[str | int] = []
    current = data
    for index, element in enumerate(loc):
        last = index == len(loc) - 1
        if isinstance(current, Mapping) and element in current:
            path.append(element)
            current = current[element]
        elif (
            isinstance(current, list)
            and isinstance(element, int)
            and 0 <= element < len(current)
        ):
            path.append(element)
            current = current[element]
        elif last and error_type == "missing" and isinstance(element, str):
            path.append(element)
    return tuple(path)


def _locate(path: NodePath, document: LoadedDocument | None) -> SourceLocation:
    if document is not None:
        return document.location(path)
    return SourceLocation(path=format_node_path(path))


def _error_message(error: Mapping[str, Any], path: NodePath) -> str:
    name = format_node_path(path)
    if error["type"] == "missing":
        return f"Missing required field '{name}'"
    if error["type"] == "extra_forbidden":
        return f"Unknown field '{name}'"
    message = str(error["msg"]).removeprefix("Value error, ")
    return f"Invalid value for '{name}': {message}" if name else message


def _to_parse_error(
    exc: ValidationError,
    data: Any,
    document: LoadedDocument | None,
    prefix: NodePath = (),
) -> RecipeParseError:
    errors = exc.errors()
    first = errors[0]
    relative = _error_path(tuple(first["loc"]), data, first["type"])
    path = (*prefix, *relative)
    message = _error_message(first, path)
    if len(errors) > 1:
        message = f"{message} (and {len(errors) - 1} more)"
    return RecipeParseError(message, location=_locate(path, document))


def _validate(
    model: type[RecordT],
    data: Any,
    document: LoadedDocument | None,
    prefix: NodePath = (),
) -> RecordT:
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise _to_parse_error(e, data, document, prefix) from e


def validate_recipe(tree: Any, document: LoadedDocument | None = None) -> RecipeRecord:
    """Validate a rendered recipe tree.

    Raises:
        RecipeParseError: If the tree is not a mapping, a required field is
            missing, an unknown key is present or a value has the wrong type.

    Examples:
        >>> record = validate_recipe({"package": {"name": "xtl", "version": "0.7.7"}})
        >>> record.build.number
        0
    """
    if not isinstance(tree, Mapping):
        raise RecipeParseError("Recipe must be a mapping")
    return _validate(RecipeRecord, tree, document)


def validate_source(
    data: Any,
    index: int,
    document: LoadedDocument | None = None,
) -> UrlSourceRecord | GitSourceRecord | PathSourceRecord:
    """Validate one entry of ``source:``; the kind is chosen by its key."""
    prefix: NodePath = ("source", index)
    for key, model in _SOURCE_KINDS:
        if isinstance(data, Mapping) and key in data:
            return _validate(model, data, document, prefix)  # type: ignore[return-value]
    raise RecipeParseError(
        "Source must have one of 'url', 'git' or 'path'",
        location=_locate(prefix, document),
    )
