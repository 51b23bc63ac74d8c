"""Tests for template substitution and selector pruning."""

from __future__ import annotations

from typing import Any

import pytest

from kiln.exceptions import RecipeParseError, RenderError, SelectorError
from kiln.loader import load_yaml
from kiln.platform import PlatformTriple
from kiln.recipe import is_conditional, render_tree


@pytest.fixture
def lookup() -> dict[str, Any]:
    facts: dict[str, Any] = PlatformTriple.native("linux-64").facts()
    facts.update(name="xtensor", version="0.24.6")
    return facts


class TestRenderTree:
    """Tests for render_tree."""

    def test_templates_are_substituted(self, lookup: dict[str, Any]) -> None:
        """Test string leaves are rendered and other values kept."""
        raw = {
            "package": {"name": "${{ name }}", "version": "${{ version }}"},
            "build": {"number": 3},
        }

        assert render_tree(raw, lookup) == {
            "package": {"name": "xtensor", "version": "0.24.6"},
            "build": {"number": 3},
        }

    def test_context_section_is_dropped(self, lookup: dict[str, Any]) -> None:
        """Test the context section is not part of the rendered tree."""
        raw = {"context": {"name": "${{ undefined }}"}, "about": {"summary": "x"}}

        assert render_tree(raw, lookup) == {"about": {"summary": "x"}}

    def test_false_selector_removes_list_item(self, lookup: dict[str, Any]) -> None:
        """Test ``if: win`` items disappear on linux."""
        raw = {"requirements": {"build": ["cmake", {"if": "win", "then": "vs2019"}]}}

        assert render_tree(raw, lookup) == {"requirements": {"build": ["cmake"]}}

    def test_list_branch_is_spliced(self, lookup: dict[str, Any]) -> None:
        """Test a chosen list branch is spliced into the parent list."""
        raw = {
            "test": {
                "commands": [
                    {"if": "unix", "then": ["echo a", "echo b"], "else": "dir"},
                    "echo c",
                ]
            }
        }

        assert render_tree(raw, lookup)["test"]["commands"] == ["echo a", "echo b", "echo c"]

    def test_else_branch(self, lookup: dict[str, Any]) -> None:
        """Test the else branch is used when the selector is false."""
        raw = {"build": {"script": {"if": "win", "then": "bld.bat", "else": "build.sh"}}}

        assert render_tree(raw, lookup) == {"build": {"script": "build.sh"}}

    def test_false_selector_removes_mapping_key(self, lookup: dict[str, Any]) -> None:
        """Test a conditional mapping value without else drops the key."""
        raw = {"build": {"number": 0, "noarch": {"if": "win", "then": "generic"}}}

        assert render_tree(raw, lookup) == {"build": {"number": 0}}

    def test_nested_conditionals(self, lookup: dict[str, Any]) -> None:
        """Test a branch may itself be conditional."""
        raw = {
            "host": [
                {
                    "if": "unix",
                    "then": [{"if": "osx", "then": "libcxx", "else": "libstdcxx"}],
                }
            ]
        }

        assert render_tree(raw, lookup) == {"host": ["libstdcxx"]}

    def test_pruned_branches_are_not_rendered(self, lookup: dict[str, Any]) -> None:
        """Test templates in pruned subtrees may reference unknown names."""
        raw = {"build": [{"if": "win", "then": "${{ win_only_key }}"}, "make"]}

        assert render_tree(raw, lookup) == {"build": ["make"]}

    def test_input_is_not_mutated(self, lookup: dict[str, Any]) -> None:
        """Test the raw tree is left untouched."""
        raw = {"build": ["${{ name }}", {"if": "win", "then": "x"}]}

        render_tree(raw, lookup)

        assert raw == {"build": ["${{ name }}", {"if": "win", "then": "x"}]}

    def test_is_conditional(self) -> None:
        """Test conditional node detection."""
        assert is_conditional({"if": "win", "then": "x"})
        assert not is_conditional({"then": "x"})
        assert not is_conditional("if")


class TestRenderTreeErrors:
    """Tests for errors raised while rendering a tree."""

    def test_undefined_variable_is_located(self, lookup: dict[str, Any]) -> None:
        """Test render errors carry the line and column of the failing leaf."""
        document = load_yaml("package:\n  name: foo\n  version: ${{ verison }}\n")

        with pytest.raises(RenderError) as exc_info:
            render_tree(document.data, lookup, document)

        location = exc_info.value.location
        assert location is not None
        assert location.path == "package.version"
        assert location.line == 3

    def test_unknown_selector_identifier(self, lookup: dict[str, Any]) -> None:
        """Test selector errors are located at the ``if`` key."""
        document = load_yaml("build:\n  - if: linx\n    then: make\n")

        with pytest.raises(SelectorError) as exc_info:
            render_tree(document.data, lookup, document)

        location = exc_info.value.location
        assert location is not None
        assert location.path == "build[0].if"
        assert location.line == 2

    def test_unexpected_conditional_keys(self, lookup: dict[str, Any]) -> None:
        """Test conditional nodes only allow if, then and else."""
        raw = {"build": [{"if": "unix", "then": "make", "elif": "x"}]}

        with pytest.raises(RecipeParseError, match="unexpected keys: elif"):
            render_tree(raw, lookup)

    def test_missing_then(self, lookup: dict[str, Any]) -> None:
        """Test a conditional node needs a then branch."""
        with pytest.raises(RecipeParseError, match="missing 'then'"):
            render_tree({"build": [{"if": "unix"}]}, lookup)
