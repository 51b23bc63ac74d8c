"""Recipe rendering pipeline.

A recipe passes through the stages of ``PipelineStage`` strictly in order:

    LOADING -> CONTEXT_BUILT -> RENDERING -> VERSION_NORMALIZING
        -> VARIANT_EXPANDING -> ASSEMBLING (once per combination) -> DONE

``RecipeRenderer.plan`` runs every stage up to and including variant
expansion and returns a ``RenderPlan``. ``RenderPlan.assemble`` is one
ASSEMBLING unit: it renders the tree for a single combination and builds the
typed recipe. Assembling units share nothing mutable, so
``RecipeRenderer.render_async`` runs them on worker threads.

Any failure aborts the whole recipe; errors carry the stage that was running.

Usage:
    from kiln.pipeline import RecipeRenderer

    renderer = RecipeRenderer(variant_config=config, platforms=platforms)
    for variant in renderer.render(recipe_text, name="xtensor"):
        print(variant.filename)
"""

from __future__ import annotations

import functools
from collections.abc import Iterable, Iterator, Mapping, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any

import anyio
import structlog

from kiln.constants import DEFAULT_MAX_WORKERS
from kiln.context import RenderContext, build_context, render_lookup
from kiln.exceptions import RecipeError, RecipeParseError, SourceLocation
from kiln.expressions import has_template
from kiln.loader import LoadedDocument, load_yaml
from kiln.logging import get_logger
from kiln.platform import PlatformTriple
from kiln.recipe import RenderedVariant, assemble, render_tree
from kiln.types import PipelineStage
from kiln.variants import VariantCombination, VariantConfig, expand, used_variant_keys
from kiln.versions import MatchSpec, parse_version

__all__ = [
    "RecipeRenderer",
    "RenderOutcome",
    "RenderPlan",
    "render_recipe",
]

logger = get_logger(__name__)

DEFAULT_RECIPE_NAME = "<recipe>"

# Requirement sections whose static entries are parsed before expansion
_REQUIREMENT_SECTIONS: tuple[str, ...] = ("build", "host", "run", "run_constrained")


@contextmanager
def _stage(stage: PipelineStage, log: structlog.stdlib.BoundLogger) -> Iterator[None]:
    """Run a block as ``stage``; errors escaping it are tagged with the stage."""
    log.debug("stage_entered", stage=stage.value)
    try:
        yield
    except RecipeError as e:
        if e.stage is None:
            e.stage = stage
        raise


def _check_static_values(tree: Mapping[str, Any], document: LoadedDocument) -> None:
    """Parse the version and dependency strings that contain no template.

    Errors in hand-written values surface before the variant matrix is built,
    with their exact location.
    """
    package = tree.get("package")
    if isinstance(package, Mapping):
        version = package.get("version")
        if isinstance(version, str) and not has_template(version):
            try:
                parse_version(version)
            except RecipeError as e:
                raise e.located(document.location(("package", "version"))) from None

    requirements = tree.get("requirements")
    if not isinstance(requirements, Mapping):
        return
    for section in _REQUIREMENT_SECTIONS:
        items = requirements.get(section)
        if not isinstance(items, list):
            continue
        for index, item in enumerate(items):
            if isinstance(item, str) and not has_template(item):
                try:
                    MatchSpec.parse(item)
                except RecipeError as e:
                    path = ("requirements", section, index)
                    raise e.located(document.location(path)) from None


# =============================================================================
# Plan
# =============================================================================


@dataclass(frozen=True, slots=True)
class RenderPlan:
    """A recipe taken through variant expansion, ready to assemble.

    Attributes:
        name: Name used in logs and batch outcomes.
        document: The loaded recipe with source marks.
        context: Resolved recipe context (with overrides).
        combinations: Variant combinations in render order.
        used_keys: Variant keys the recipe references.
        platforms: Build, host and target platforms.
    """

    name: str
    document: LoadedDocument
    context: RenderContext
    combinations: tuple[VariantCombination, ...]
    used_keys: frozenset[str]
    platforms: PlatformTriple

    @property
    def log(self) -> structlog.stdlib.BoundLogger:
        return logger.bind(recipe=self.name)

    def assemble(self, combination: VariantCombination) -> RenderedVariant | None:
        """Render and assemble one combination.

        Returns:
            The rendered variant, or None when ``build.skip`` applies.

        Raises:
            RecipeError: Any rendering or assembly error, tagged ASSEMBLING.
        """
        with _stage(PipelineStage.ASSEMBLING, self.log):
            lookup = render_lookup(self.context, combination, self.platforms.facts())
            tree = render_tree(self.document.data, lookup, self.document)
            recipe = assemble(
                tree,
                combination,
                self.platforms,
                context=self.context,
                document=self.document,
            )
        if recipe is None:
            return None
        return RenderedVariant(
            combination=combination, recipe=recipe, platforms=self.platforms
        )


@dataclass(frozen=True, slots=True)
class RenderOutcome:
    """Result of rendering one recipe in a batch.

    Exactly one of ``variants`` (possibly empty when every variant is
    skipped) and ``error`` is meaningful.
    """

    name: str
    variants: tuple[RenderedVariant, ...] = ()
    error: RecipeError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


# =============================================================================
# Renderer
# =============================================================================


class RecipeRenderer:
    """Renders recipe text into the ordered set of build variants.

    The renderer holds only immutable inputs and may be reused for any
    number of recipes, from any number of threads.

    Args:
        variant_config: Candidate values per variant key.
        platforms: Build, host and target platforms (native by default).
        overrides: Values replacing or extending each recipe's context.
        max_workers: Worker threads used by ``render_async``.

    Example:
        ```python
        renderer = RecipeRenderer(
            variant_config=VariantConfig.from_mapping({"python": ["3.11", "3.12"]}),
            platforms=PlatformTriple.native("linux-64"),
        )
        variants = renderer.render(text)
        ```
    """

    def __init__(
        self,
        variant_config: VariantConfig | None = None,
        platforms: PlatformTriple | None = None,
        overrides: Mapping[str, Any] | None = None,
        max_workers: int = DEFAULT_MAX_WORKERS,
    ) -> None:
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self.variant_config = variant_config or VariantConfig()
        self.platforms = platforms or PlatformTriple.native()
        self.overrides: Mapping[str, Any] = dict(overrides or {})
        self.max_workers = max_workers

    def plan(self, text: str, name: str | None = None) -> RenderPlan:
        """Run LOADING through VARIANT_EXPANDING.

        Raises:
            RecipeError: Tagged with the failing stage.
        """
        recipe_name = name or DEFAULT_RECIPE_NAME
        log = logger.bind(recipe=recipe_name)
        log.info("render_started", platform=self.platforms.target.subdir)
        facts = self.platforms.facts()

        with _stage(PipelineStage.LOADING, log):
            document = load_yaml(text)
            if not isinstance(document.data, Mapping):
                raise RecipeParseError(
                    "Recipe must be a mapping",
                    location=SourceLocation(line=1, column=1),
                )
            tree: Mapping[str, Any] = document.data

        with _stage(PipelineStage.CONTEXT_BUILT, log):
            context = build_context(tree.get("context"), self.overrides, facts)

        with _stage(PipelineStage.RENDERING, log):
            used_keys = used_variant_keys(tree, context, self.variant_config, facts)

        with _stage(PipelineStage.VERSION_NORMALIZING, log):
            _check_static_values(tree, document)

        with _stage(PipelineStage.VARIANT_EXPANDING, log):
            combinations = expand(used_keys, self.variant_config)
        log.info(
            "variant_expanded",
            keys=sorted(used_keys),
            combinations=len(combinations),
        )

        return RenderPlan(
            name=recipe_name,
            document=document,
            context=context,
            combinations=combinations,
            used_keys=used_keys,
            platforms=self.platforms,
        )

    def _finish(
        self,
        plan: RenderPlan,
        results: Sequence[RenderedVariant | None],
    ) -> tuple[RenderedVariant, ...]:
        log = plan.log
        variants: list[RenderedVariant] = []
        for combination, result in zip(plan.combinations, results):
            if result is None:
                log.info("variant_skipped", variant=str(combination))
                continue
            variants.append(result)
        log.debug("stage_entered", stage=PipelineStage.DONE.value)
        log.info("render_completed", variants=len(variants))
        return tuple(variants)

    def render(self, text: str, name: str | None = None) -> tuple[RenderedVariant, ...]:
        """Render every variant of a recipe, in combination order.

        All-or-nothing: the first failing combination aborts the render.

        Raises:
            RecipeError: Tagged with the failing stage.
        """
        plan = self.plan(text, name)
        results = [plan.assemble(combination) for combination in plan.combinations]
        return self._finish(plan, results)

    async def render_async(
        self, text: str, name: str | None = None
    ) -> tuple[RenderedVariant, ...]:
        """Render like ``render``, assembling combinations on worker threads.

        At most ``max_workers`` combinations are assembled at once. Results
        keep combination order. When several combinations fail, the error of
        the earliest one is raised.
        """
        plan = self.plan(text, name)
        count = len(plan.combinations)
        results: list[RenderedVariant | None] = [None] * count
        errors: dict[int, RecipeError] = {}
        limiter = anyio.CapacityLimiter(self.max_workers)

        async def run_assembly(index: int, combination: VariantCombination) -> None:
            """Assemble one combination on a worker thread."""
            try:
                results[index] = await anyio.to_thread.run_sync(
                    plan.assemble, combination, limiter=limiter
                )
            except RecipeError as exc:
                errors[index] = exc

        async with anyio.create_task_group() as tg:
            for index, combination in enumerate(plan.combinations):
                tg.start_soon(run_assembly, index, combination)

        if errors:
            raise errors[min(errors)]
        return self._finish(plan, results)

    async def render_batch_async(
        self,
        named_texts: Mapping[str, str] | Iterable[tuple[str, str]],
        fail_fast: bool = False,
    ) -> list[RenderOutcome]:
        """Render several independent recipes, each through ``render_async``.

        Args:
            named_texts: Recipe name -> recipe text (or pairs of them).
            fail_fast: Re-raise the first error instead of recording it.

        Returns:
            One outcome per recipe, in input order.
        """
        items = named_texts.items() if isinstance(named_texts, Mapping) else named_texts
        outcomes: list[RenderOutcome] = []
        for name, text in items:
            try:
                variants = await self.render_async(text, name=name)
            except RecipeError as e:
                if fail_fast:
                    raise
                logger.info(
                    "recipe_failed",
                    recipe=name,
                    stage=e.stage.value if e.stage else None,
                    error=str(e),
                )
                outcomes.append(RenderOutcome(name=name, error=e))
                continue
            outcomes.append(RenderOutcome(name=name, variants=variants))
        return outcomes

    def render_batch(
        self,
        named_texts: Mapping[str, str] | Iterable[tuple[str, str]],
        fail_fast: bool = False,
    ) -> list[RenderOutcome]:
        """Blocking form of ``render_batch_async``; must not run inside an event loop."""
        return anyio.run(
            functools.partial(self.render_batch_async, named_texts, fail_fast=fail_fast)
        )


def render_recipe(
    text: str,
    variant_config: VariantConfig | None = None,
    platforms: PlatformTriple | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> tuple[RenderedVariant, ...]:
    """Render a recipe with a one-off renderer.

    Examples:
        >>> variants = render_recipe(
        ...     "package: {name: xtl, version: 0.7.7}",
        ...     platforms=PlatformTriple.native("linux-64"),
        ... )
        >>> variants[0].build_string.endswith("_0")
        True
    """
    return RecipeRenderer(variant_config, platforms, overrides).render(text)
