"""Recipe assembly: rendered tree to typed Recipe.

Assembly is the last stage of rendering a single variant combination. The
tree it receives has already been through template substitution and
selector pruning; assembly validates its shape, parses every dependency,
resolves pins on the recipe's own package and applies variant pins to every
requirement section.
"""

from __future__ import annotations

import hashlib
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from kiln.constants import BUILD_STRING_HASH_LENGTH, PACKAGE_EXTENSION
from kiln.context import render_lookup
from kiln.exceptions import RecipeError, RecipeParseError, SourceLocation
from kiln.loader import LoadedDocument
from kiln.logging import get_logger
from kiln.platform import PlatformTriple
from kiln.recipe.models import (
    About,
    Build,
    Dependency,
    GitSource,
    IgnoreRunExports,
    NoArchKind,
    Package,
    PackageContents,
    PathSource,
    Recipe,
    Requirements,
    RunExports,
    Script,
    ScriptKind,
    Source,
    Test,
    UrlSource,
    to_dict,
)
from kiln.recipe.schema import (
    GitSourceRecord,
    PathSourceRecord,
    RecipeRecord,
    RunExportsRecord,
    UrlSourceRecord,
    validate_recipe,
    validate_source,
)
from kiln.selectors import evaluate_selector
from kiln.types import Lookup, NodePath, format_node_path
from kiln.variants import PINNED_SECTIONS, VariantCombination, apply_variant_pins
from kiln.versions import (
    MatchSpec,
    PinCompatible,
    PinSubpackage,
    Version,
    parse_version,
)

__all__ = ["RenderedVariant", "assemble", "parse_dependency"]

logger = get_logger(__name__)

_SCRIPT_KEYS = frozenset({"file", "content", "interpreter", "env"})


class _Locator:
    """Maps node paths to source locations for error reporting."""

    def __init__(self, document: LoadedDocument | None) -> None:
        self._document = document

    def __call__(self, path: NodePath) -> SourceLocation:
        if self._document is not None:
            return self._document.location(path)
        return SourceLocation(path=format_node_path(path))


# =============================================================================
# Dependencies
# =============================================================================


def parse_dependency(item: Any, package: Package | None = None) -> Dependency:
    """Turn one rendered requirement entry into a typed dependency.

    Strings are parsed as MatchSpecs. A ``pin_subpackage`` on the recipe's
    own package is resolved against its version; other pins pass through.

    Raises:
        MatchSpecParseError: For malformed dependency strings.
        RecipeParseError: For entries that are neither strings nor pins.
    """
    if isinstance(item, MatchSpec):
        return item
    if isinstance(item, str):
        return MatchSpec.parse(item)
    if isinstance(item, PinSubpackage):
        if package is not None and item.name == package.name.lower():
            return item.pin.apply(package.version)
        return item
    if isinstance(item, PinCompatible):
        return item
    raise RecipeParseError(
        f"Dependency must be a string or a pin, got {type(item).__name__}"
    )


def _dependencies(
    items: Sequence[Any],
    path: NodePath,
    package: Package,
    locate: _Locator,
) -> tuple[Dependency, ...]:
    deps: list[Dependency] = []
    for index, item in enumerate(items):
        try:
            deps.append(parse_dependency(item, package))
        except RecipeError as e:
            raise e.located(locate((*path, index))) from None
    return tuple(deps)


def _requirements(
    record: RecipeRecord,
    combination: Mapping[str, str],
    package: Package,
    locate: _Locator,
) -> Requirements:
    section = record.requirements
    parsed: dict[str, tuple[Dependency, ...]] = {}
    for name in PINNED_SECTIONS:
        path: NodePath = ("requirements", name)
        deps = _dependencies(getattr(section, name), path, package, locate)
        try:
            parsed[name] = apply_variant_pins(deps, combination, path)
        except RecipeError as e:
            raise e.located(locate(path)) from None
    return Requirements(
        **parsed,
        run_exports=_run_exports(section.run_exports, package, locate),
        ignore_run_exports=IgnoreRunExports(
            by_name=tuple(section.ignore_run_exports.by_name),
            from_package=tuple(section.ignore_run_exports.from_package),
        ),
    )


def _run_exports(
    record: RunExportsRecord,
    package: Package,
    locate: _Locator,
) -> RunExports:
    values: dict[str, tuple[Dependency, ...]] = {}
    for name in RunExportsRecord.model_fields:
        path: NodePath = ("requirements", "run_exports", name)
        values[name] = _dependencies(getattr(record, name), path, package, locate)
    return RunExports(**values)


# =============================================================================
# Script
# =============================================================================


def _text_list(value: Any, path: NodePath, locate: _Locator) -> tuple[str, ...]:
    items = value if isinstance(value, list) else [value]
    if not all(isinstance(item, str) for item in items):
        raise RecipeParseError("Script commands must be strings", location=locate(path))
    return tuple(items)


def _script(raw: Any, locate: _Locator) -> Script:
    """Interpret the accepted forms of ``build.script``.

    - absent: the default script next to the recipe
    - a multi-line string: commands
    - a single-line string: a command or a path to a script file
    - a list of strings: commands
    - a mapping with ``file`` or ``content`` plus ``interpreter``/``env``
    """
    path: NodePath = ("build", "script")
    if raw is None:
        return Script()
    if isinstance(raw, str):
        text = raw.strip()
        if "\n" in text:
            lines = tuple(line for line in text.splitlines() if line.strip())
            return Script(kind=ScriptKind.COMMAND, commands=lines)
        return Script(kind=ScriptKind.COMMAND_OR_PATH, commands=(text,))
    if isinstance(raw, list):
        return Script(kind=ScriptKind.COMMANDS, commands=_text_list(raw, path, locate))
    if not isinstance(raw, Mapping):
        raise RecipeParseError(
            f"Script must be a string, a list or a mapping, got {type(raw).__name__}",
            location=locate(path),
        )

    unknown = sorted(str(key) for key in set(raw) - _SCRIPT_KEYS)
    if unknown:
        raise RecipeParseError(
            f"Unknown field 'build.script.{unknown[0]}'",
            location=locate((*path, unknown[0])),
        )
    if "file" in raw and "content" in raw:
        raise RecipeParseError(
            "Script may have 'file' or 'content', not both", location=locate(path)
        )

    env = raw.get("env") or {}
    if not isinstance(env, Mapping):
        raise RecipeParseError(
            "Script 'env' must be a mapping", location=locate((*path, "env"))
        )
    interpreter = raw.get("interpreter")
    options: dict[str, Any] = {
        "interpreter": None if interpreter is None else str(interpreter),
        "env": {str(k): "" if v is None else str(v) for k, v in env.items()},
    }
    if "file" in raw:
        return Script(kind=ScriptKind.FILE, file=str(raw["file"]), **options)
    if "content" in raw:
        commands = _text_list(raw["content"], (*path, "content"), locate)
        return Script(kind=ScriptKind.CONTENT, commands=commands, **options)
    return Script(**options)


# =============================================================================
# Sections
# =============================================================================


def _source(
    record: UrlSourceRecord | GitSourceRecord | PathSourceRecord,
) -> Source:
    patches = tuple(record.patches)
    if isinstance(record, UrlSourceRecord):
        return UrlSource(
            urls=tuple(record.url),
            sha256=record.sha256,
            md5=record.md5,
            file_name=record.file_name,
            folder=record.folder,
            patches=patches,
        )
    if isinstance(record, GitSourceRecord):
        return GitSource(
            url=record.git,
            rev=record.rev,
            tag=record.tag,
            branch=record.branch,
            depth=record.depth,
            lfs=record.lfs,
            folder=record.folder,
            patches=patches,
        )
    return PathSource(
        path=record.path,
        file_name=record.file_name,
        folder=record.folder,
        use_gitignore=record.use_gitignore,
        patches=patches,
    )


def _test(record: RecipeRecord, locate: _Locator) -> Test:
    section = record.test
    requires: list[MatchSpec] = []
    for index, item in enumerate(section.requires):
        try:
            requires.append(MatchSpec.parse(item))
        except RecipeError as e:
            raise e.located(locate(("test", "requires", index))) from None
    contents = section.package_contents
    return Test(
        commands=tuple(section.commands),
        imports=tuple(section.imports),
        requires=tuple(requires),
        files=tuple(section.files),
        source_files=tuple(section.source_files),
        package_contents=PackageContents(
            files=tuple(contents.files),
            lib=tuple(contents.lib),
            bin=tuple(contents.bin),
            include=tuple(contents.include),
            site_packages=tuple(contents.site_packages),
        ),
    )


def _about(record: RecipeRecord) -> About:
    about = record.about
    return About(
        homepage=about.homepage,
        repository=about.repository,
        documentation=about.documentation,
        license=about.license,
        license_family=about.license_family,
        license_file=tuple(about.license_file),
        summary=about.summary,
        description=about.description,
    )


def _skip_selectors(tree: Mapping[str, Any]) -> list[Any]:
    build = tree.get("build")
    if not isinstance(build, Mapping) or build.get("skip") is None:
        return []
    skip = build["skip"]
    return skip if isinstance(skip, list) else [skip]


def _is_skipped(tree: Mapping[str, Any], lookup: Lookup, locate: _Locator) -> bool:
    for index, selector in enumerate(_skip_selectors(tree)):
        try:
            if evaluate_selector(selector, lookup):
                return True
        except RecipeError as e:
            raise e.located(locate(("build", "skip", index))) from None
    return False


def assemble(
    rendered_tree: Mapping[str, Any],
    combination: Mapping[str, str],
    platforms: PlatformTriple,
    context: Mapping[str, Any] | None = None,
    document: LoadedDocument | None = None,
) -> Recipe | None:
    """Validate a rendered tree and build the typed Recipe.

    Args:
        rendered_tree: Tree after template substitution and selector pruning.
        combination: Variant values chosen for this render.
        platforms: Build, host and target platforms.
        context: Resolved recipe context, visible to ``build.skip`` selectors.
        document: Loaded recipe document, used to locate errors.

    Returns:
        The assembled Recipe, or None when ``build.skip`` is true. Skipped
        variants are not validated further.

    Raises:
        RecipeParseError: For a malformed tree, located at the failing node.
        MatchSpecParseError: For malformed dependency strings.
        VersionParseError: For an invalid ``package.version``.
        VariantConflict: When a constraint excludes the chosen variant value.
    """
    locate = _Locator(document)
    lookup = render_lookup(context or {}, combination, platforms.facts())
    if isinstance(rendered_tree, Mapping) and _is_skipped(rendered_tree, lookup, locate):
        return None
    record = validate_recipe(rendered_tree, document)

    try:
        version = parse_version(record.package.version)
    except RecipeError as e:
        raise e.located(locate(("package", "version"))) from None
    package = Package(name=record.package.name, version=version)

    sources = tuple(
        _source(validate_source(raw, index, document))
        for index, raw in enumerate(record.source)
    )
    build = Build(
        number=record.build.number,
        string=record.build.string,
        script=_script(record.build.script, locate),
        noarch=NoArchKind(record.build.noarch or NoArchKind.NONE.value),
        entry_points=tuple(record.build.python.entry_points),
        merge_build_and_host_envs=record.build.merge_build_and_host_envs,
    )
    recipe = Recipe(
        package=package,
        source=sources,
        build=build,
        requirements=_requirements(record, combination, package, locate),
        test=_test(record, locate),
        about=_about(record),
        extra=record.extra,
    )
    logger.debug("recipe_assembled", package=package.name, variant=dict(combination))
    return recipe


# =============================================================================
# Rendered variant
# =============================================================================


@dataclass(frozen=True, slots=True)
class RenderedVariant:
    """One assembled recipe together with the variant it was rendered for.

    Attributes:
        combination: Variant values used by this render.
        recipe: The assembled recipe.
        platforms: Platforms the recipe was rendered for.
    """

    combination: VariantCombination
    recipe: Recipe
    platforms: PlatformTriple

    @property
    def name(self) -> str:
        return self.recipe.package.name

    @property
    def version(self) -> Version:
        return self.recipe.package.version

    @property
    def build_string(self) -> str:
        """``build.string`` if set, else ``h<variant hash>_<build number>``."""
        if self.recipe.build.string:
            return self.recipe.build.string
        digest = hashlib.sha1(self.combination.hash_input().encode("utf-8")).hexdigest()
        return f"h{digest[:BUILD_STRING_HASH_LENGTH]}_{self.recipe.build.number}"

    @property
    def subdir(self) -> str:
        if self.recipe.build.is_noarch:
            return "noarch"
        return self.platforms.target.subdir

    @property
    def filename(self) -> str:
        return f"{self.name}-{self.version}-{self.build_string}{PACKAGE_EXTENSION}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "version": str(self.version),
            "build_string": self.build_string,
            "subdir": self.subdir,
            "filename": self.filename,
            "variant": self.combination.to_dict(),
            "recipe": to_dict(self.recipe),
        }
