"""End-to-end tests for the rendering pipeline."""

from __future__ import annotations

import pytest

from kiln.exceptions import (
    RecipeError,
    RecipeParseError,
    RenderError,
    RenderErrorKind,
    VariantConflict,
    VersionParseError,
    ZipLengthMismatch,
)
from kiln.pipeline import RecipeRenderer, render_recipe
from kiln.platform import PlatformTriple
from kiln.recipe import ScriptKind, UrlSource
from kiln.types import PipelineStage
from kiln.variants import VariantCombination, VariantConfig

pytestmark = pytest.mark.integration

MATRIX_RECIPE = """\
package:
  name: pyxtl
  version: 1.0.0
build:
  number: 1
requirements:
  host:
    - python
    - numpy
  run:
    - python
"""

MATRIX_CONFIG = {
    "python": ["3.11", "3.12"],
    "numpy": ["1.26", "2.0"],
    "zlib": ["1.3"],
}


def _renderer(
    platforms: PlatformTriple, config: dict[str, object] | None = None
) -> RecipeRenderer:
    return RecipeRenderer(
        variant_config=VariantConfig.from_mapping(config or {}),
        platforms=platforms,
    )


class TestXtensor:
    """Rendering a complete single-output recipe."""

    def test_linux(self, xtensor_recipe: str, linux: PlatformTriple) -> None:
        """Test context, helpers and selectors on linux-64."""
        (variant,) = render_recipe(xtensor_recipe, platforms=linux)
        recipe = variant.recipe

        assert variant.name == "xtensor"
        assert str(variant.version) == "0.24.6"
        assert variant.combination == VariantCombination()
        assert variant.subdir == "linux-64"
        assert variant.filename.startswith("xtensor-0.24.6-h")
        assert [str(d) for d in recipe.requirements.build] == [
            "gxx_linux-64",
            "cmake",
            "make",
        ]
        assert [str(d) for d in recipe.requirements.host] == ["xtl >=0.7,<0.8"]
        assert [str(d) for d in recipe.requirements.run_constrained] == [
            "xsimd >=8.0.3,<10"
        ]
        assert recipe.test.commands == ("test -d ${PREFIX}/include/xtensor",)
        assert recipe.build.script.kind is ScriptKind.DEFAULT
        assert recipe.about.license == "BSD-3-Clause"

        (source,) = recipe.source
        assert isinstance(source, UrlSource)
        assert source.urls == (
            "https://github.com/xtensor-stack/xtensor/archive/0.24.6.tar.gz",
        )

    def test_windows(self, xtensor_recipe: str, windows: PlatformTriple) -> None:
        """Test unix-only entries are pruned on win-64."""
        (variant,) = render_recipe(xtensor_recipe, platforms=windows)
        recipe = variant.recipe

        assert variant.subdir == "win-64"
        assert [str(d) for d in recipe.requirements.build] == ["vs2017_win-64", "cmake"]
        assert len(recipe.test.commands) == 1
        assert recipe.test.commands[0].startswith("if not exist")

    def test_context_override(self, xtensor_recipe: str, linux: PlatformTriple) -> None:
        """Test overrides replace context values everywhere they are used."""
        (variant,) = render_recipe(
            xtensor_recipe, platforms=linux, overrides={"version": "0.25.0"}
        )

        assert str(variant.version) == "0.25.0"
        (source,) = variant.recipe.source
        assert isinstance(source, UrlSource)
        assert source.urls[0].endswith("/0.25.0.tar.gz")

    def test_deterministic(self, xtensor_recipe: str, linux: PlatformTriple) -> None:
        """Test rendering twice gives identical output."""
        first = render_recipe(xtensor_recipe, platforms=linux)
        second = render_recipe(xtensor_recipe, platforms=linux)

        assert [v.to_dict() for v in first] == [v.to_dict() for v in second]


class TestVariantMatrix:
    """Rendering a recipe over several variant keys."""

    def test_product_order(self, linux: PlatformTriple) -> None:
        """Test combinations follow config order, last key fastest."""
        variants = _renderer(linux, MATRIX_CONFIG).render(MATRIX_RECIPE)

        assert [str(v.combination) for v in variants] == [
            "python=3.11, numpy=1.26",
            "python=3.11, numpy=2.0",
            "python=3.12, numpy=1.26",
            "python=3.12, numpy=2.0",
        ]
        assert [str(d) for d in variants[1].recipe.requirements.host] == [
            "python 3.11.*",
            "numpy 2.0.*",
        ]
        assert [str(d) for d in variants[1].recipe.requirements.run] == ["python 3.11.*"]

    def test_bare_run_dependency(self, linux: PlatformTriple) -> None:
        """Test a dependency only listed under run still expands and pins."""
        recipe = "package: {name: foo, version: '1.0'}\nrequirements:\n  run:\n    - python\n"
        config = {"python": ["3.9", "3.10"]}

        variants = _renderer(linux, config).render(recipe)

        assert [str(v.recipe.requirements.run[0]) for v in variants] == [
            "python 3.9.*",
            "python 3.10.*",
        ]

    def test_build_strings_differ_per_variant(self, linux: PlatformTriple) -> None:
        """Test each variant gets its own hash."""
        variants = _renderer(linux, MATRIX_CONFIG).render(MATRIX_RECIPE)

        build_strings = {v.build_string for v in variants}
        assert len(build_strings) == 4
        assert all(s.endswith("_1") for s in build_strings)

    def test_zip_keys(self, linux: PlatformTriple) -> None:
        """Test zipped keys vary together."""
        config = {**MATRIX_CONFIG, "zip_keys": [["python", "numpy"]]}

        variants = _renderer(linux, config).render(MATRIX_RECIPE)

        assert [v.combination.to_dict() for v in variants] == [
            {"python": "3.11", "numpy": "1.26"},
            {"python": "3.12", "numpy": "2.0"},
        ]

    def test_zip_length_mismatch(self, linux: PlatformTriple) -> None:
        """Test unequal zipped lists fail at expansion."""
        config = {
            "python": ["3.10", "3.11", "3.12"],
            "numpy": ["1.26", "2.0"],
            "zip_keys": [["python", "numpy"]],
        }

        with pytest.raises(ZipLengthMismatch) as exc_info:
            _renderer(linux, config).render(MATRIX_RECIPE)

        assert exc_info.value.stage is PipelineStage.VARIANT_EXPANDING

    def test_skip(self, linux: PlatformTriple) -> None:
        """Test skipped variants are left out of the result."""
        recipe = MATRIX_RECIPE.replace(
            "  number: 1\n", '  number: 1\n  skip:\n    - match(python, "<3.12")\n'
        )

        variants = _renderer(linux, MATRIX_CONFIG).render(recipe)

        assert [v.combination["python"] for v in variants] == ["3.12", "3.12"]

    def test_every_variant_skipped(self, linux: PlatformTriple) -> None:
        """Test a fully skipped recipe renders to nothing."""
        recipe = MATRIX_RECIPE.replace("  number: 1\n", "  number: 1\n  skip: linux\n")

        assert _renderer(linux, MATRIX_CONFIG).render(recipe) == ()

    def test_variant_conflict(self, linux: PlatformTriple) -> None:
        """Test a constraint excluding a variant value aborts the recipe."""
        recipe = MATRIX_RECIPE.replace("    - numpy\n", "    - numpy <2\n    - zlib\n")
        config = {"python": ["3.12"], "zlib": ["1.3"], "numpy": ["2.0"]}

        renderer = _renderer(linux, config)
        # numpy is constrained, so it is not a variant key of this recipe
        assert renderer.plan(recipe).used_keys == frozenset({"python", "zlib"})

        conflicting = recipe.replace("    - zlib\n", "    - zlib <1.3\n    - numpy\n")
        with pytest.raises(VariantConflict) as exc_info:
            renderer.render(conflicting)

        assert exc_info.value.stage is PipelineStage.ASSEMBLING


class TestStages:
    """Errors are tagged with the stage that raised them."""

    def test_loading(self, linux: PlatformTriple) -> None:
        """Test YAML syntax errors fail while loading."""
        with pytest.raises(RecipeParseError) as exc_info:
            render_recipe("package: [\n", platforms=linux)

        assert exc_info.value.stage is PipelineStage.LOADING

    def test_not_a_mapping(self, linux: PlatformTriple) -> None:
        """Test a recipe must be a mapping."""
        with pytest.raises(RecipeParseError, match="Recipe must be a mapping") as exc_info:
            render_recipe("- a\n- b\n", platforms=linux)

        error = exc_info.value
        assert error.stage is PipelineStage.LOADING
        assert error.location is not None
        assert (error.location.line, error.location.column) == (1, 1)

    def test_context_cycle(self, linux: PlatformTriple) -> None:
        """Test context cycles fail while building the context."""
        text = "context:\n  a: ${{ b }}\n  b: ${{ a }}\npackage: {name: x, version: 1}\n"

        with pytest.raises(RenderError) as exc_info:
            render_recipe(text, platforms=linux)

        assert exc_info.value.kind is RenderErrorKind.CYCLE
        assert exc_info.value.stage is PipelineStage.CONTEXT_BUILT

    def test_static_version(self, linux: PlatformTriple) -> None:
        """Test hand-written versions are checked before expansion."""
        text = "package:\n  name: x\n  version: 1..2\n"

        with pytest.raises(VersionParseError) as exc_info:
            render_recipe(text, platforms=linux)

        error = exc_info.value
        assert error.stage is PipelineStage.VERSION_NORMALIZING
        assert error.location is not None
        assert error.location.line == 3

    def test_undefined_variable(self, linux: PlatformTriple) -> None:
        """Test template errors fail while assembling."""
        text = "package:\n  name: x\n  version: ${{ verison }}\n"

        with pytest.raises(RenderError) as exc_info:
            render_recipe(text, platforms=linux)

        error = exc_info.value
        assert error.kind is RenderErrorKind.UNDEFINED_VARIABLE
        assert error.stage is PipelineStage.ASSEMBLING
        assert error.location is not None
        assert error.location.path == "package.version"

    def test_stage_is_in_message(self, linux: PlatformTriple) -> None:
        """Test the string form names the stage."""
        with pytest.raises(RecipeError) as exc_info:
            render_recipe("package: [\n", platforms=linux)

        assert str(exc_info.value).endswith("[loading]")


class TestRenderer:
    """Tests for RecipeRenderer entry points."""

    def test_max_workers_must_be_positive(self) -> None:
        """Test at least one worker is required."""
        with pytest.raises(ValueError, match="max_workers"):
            RecipeRenderer(max_workers=0)

    def test_plan(self, linux: PlatformTriple) -> None:
        """Test planning stops after expansion."""
        plan = _renderer(linux, MATRIX_CONFIG).plan(MATRIX_RECIPE, name="pyxtl")

        assert plan.name == "pyxtl"
        assert plan.used_keys == frozenset({"python", "numpy"})
        assert len(plan.combinations) == 4

    @pytest.mark.anyio
    async def test_render_async_matches_render(self, linux: PlatformTriple) -> None:
        """Test threaded assembly keeps combination order."""
        renderer = RecipeRenderer(
            variant_config=VariantConfig.from_mapping(MATRIX_CONFIG),
            platforms=linux,
            max_workers=2,
        )

        threaded = await renderer.render_async(MATRIX_RECIPE)

        assert threaded == renderer.render(MATRIX_RECIPE)

    @pytest.mark.anyio
    async def test_render_async_raises_earliest_error(
        self, linux: PlatformTriple
    ) -> None:
        """Test the first failing combination's error is raised."""
        recipe = MATRIX_RECIPE.replace(
            "  version: 1.0.0\n", "  version: ${{ python }}${{ undefined_name }}\n"
        )

        with pytest.raises(RenderError) as exc_info:
            await _renderer(linux, MATRIX_CONFIG).render_async(recipe)

        assert exc_info.value.stage is PipelineStage.ASSEMBLING

    def test_render_batch(self, xtensor_recipe: str, linux: PlatformTriple) -> None:
        """Test batch rendering records failures and keeps going."""
        renderer = _renderer(linux)

        outcomes = renderer.render_batch(
            {"broken": "package: [\n", "xtensor": xtensor_recipe}
        )

        assert [o.name for o in outcomes] == ["broken", "xtensor"]
        assert not outcomes[0].ok
        assert outcomes[0].error is not None
        assert outcomes[0].error.stage is PipelineStage.LOADING
        assert outcomes[1].ok
        assert outcomes[1].variants[0].name == "xtensor"

    def test_render_batch_fail_fast(self, linux: PlatformTriple) -> None:
        """Test fail_fast re-raises the first error."""
        with pytest.raises(RecipeParseError):
            _renderer(linux).render_batch([("broken", "package: [\n")], fail_fast=True)

    @pytest.mark.anyio
    async def test_render_batch_async(
        self, xtensor_recipe: str, linux: PlatformTriple
    ) -> None:
        """Test the async batch keeps input order and records failures."""
        renderer = _renderer(linux, MATRIX_CONFIG)

        outcomes = await renderer.render_batch_async(
            [("pyxtl", MATRIX_RECIPE), ("broken", "package: [\n"), ("xtensor", xtensor_recipe)]
        )

        assert [o.name for o in outcomes] == ["pyxtl", "broken", "xtensor"]
        assert [o.ok for o in outcomes] == [True, False, True]
        assert outcomes[0].variants == renderer.render(MATRIX_RECIPE)
