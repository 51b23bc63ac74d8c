"""Tests for rendered recipe validation."""

from __future__ import annotations

from typing import Any

import pytest

from kiln.exceptions import RecipeParseError
from kiln.loader import load_yaml
from kiln.recipe import schema
from kiln.recipe.schema import validate_recipe, validate_source


def _minimal(**sections: Any) -> dict[str, Any]:
    return {"package": {"name": "xtl", "version": "0.7.7"}, **sections}


class TestValidateRecipe:
    """Tests for validate_recipe."""

    def test_defaults(self) -> None:
        """Test optional sections take their defaults."""
        record = validate_recipe(_minimal())

        assert record.build.number == 0
        assert record.build.skip == []
        assert record.requirements.host == []
        assert record.about.license_file == []
        assert record.source == []

    def test_empty_sections_are_defaults(self) -> None:
        """Test ``about:`` without a body is accepted."""
        record = validate_recipe(_minimal(about=None, requirements={"host": None}))

        assert record.about.summary is None
        assert record.requirements.host == []

    def test_numeric_version_is_text(self) -> None:
        """Test a number rendered into package.version becomes a string."""
        record = validate_recipe({"package": {"name": "foo", "version": 2}})

        assert record.package.version == "2"

    def test_scalars_are_promoted(self) -> None:
        """Test single values where lists are expected."""
        record = validate_recipe(
            _minimal(
                build={"skip": "win"},
                test={"imports": "xtl", "package_contents": {"include": "xtl/*.hpp"}},
                about={"license_file": "LICENSE"},
            )
        )

        assert record.build.skip == ["win"]
        assert record.test.imports == ["xtl"]
        assert record.test.package_contents.include == ["xtl/*.hpp"]
        assert record.about.license_file == ["LICENSE"]

    def test_run_exports_list_is_weak(self) -> None:
        """Test a bare run_exports list is the weak set."""
        record = validate_recipe(_minimal(requirements={"run_exports": ["xtl"]}))

        assert record.requirements.run_exports.weak == ["xtl"]
        assert record.requirements.run_exports.strong == []

    def test_single_source_is_promoted(self) -> None:
        """Test a single source mapping becomes a one-element list."""
        record = validate_recipe(_minimal(source={"path": "../src"}))

        assert record.source == [{"path": "../src"}]

    def test_not_a_mapping(self) -> None:
        """Test a non-mapping tree is rejected."""
        with pytest.raises(RecipeParseError, match="must be a mapping"):
            validate_recipe(["package"])

    def test_missing_package_version(self) -> None:
        """Test missing required fields name the dotted path."""
        with pytest.raises(RecipeParseError) as exc_info:
            validate_recipe({"package": {"name": "xtl"}})

        assert exc_info.value.message == "Missing required field 'package.version'"
        assert exc_info.value.location is not None
        assert exc_info.value.location.path == "package.version"

    def test_unknown_field(self) -> None:
        """Test unknown keys are rejected at every level."""
        with pytest.raises(RecipeParseError, match="Unknown field 'build.numbr'"):
            validate_recipe(_minimal(build={"numbr": 1}))

    def test_wrong_type_is_located(self) -> None:
        """Test value errors carry the line of the offending node."""
        document = load_yaml(
            "package:\n  name: xtl\n  version: 0.7.7\nbuild:\n  number: -1\n"
        )

        with pytest.raises(RecipeParseError) as exc_info:
            validate_recipe(document.data, document)

        error = exc_info.value
        assert error.message.startswith("Invalid value for 'build.number'")
        assert error.location is not None
        assert error.location.line == 5

    def test_multiple_errors_are_counted(self) -> None:
        """Test additional errors are summarized in the message."""
        with pytest.raises(RecipeParseError, match=r"\(and 1 more\)"):
            validate_recipe(_minimal(build={"numbr": 1, "strng": "x"}))


class TestValidateSource:
    """Tests for validate_source."""

    def test_url_source(self) -> None:
        """Test URL sources accept a single URL and a checksum."""
        record = validate_source({"url": "https://x/a.tar.gz", "sha256": "abc"}, 0)

        assert isinstance(record, schema.UrlSourceRecord)
        assert record.url == ["https://x/a.tar.gz"]

    def test_url_source_needs_checksum(self) -> None:
        """Test a URL source without sha256 or md5 is rejected."""
        with pytest.raises(RecipeParseError, match="checksum") as exc_info:
            validate_source({"url": "https://x/a.tar.gz"}, 1)

        assert exc_info.value.location is not None
        assert exc_info.value.location.path.startswith("source[1]")

    def test_git_source_single_reference(self) -> None:
        """Test only one of rev, tag and branch may be given."""
        with pytest.raises(RecipeParseError, match="Only one of rev, tag or branch"):
            validate_source({"git": "https://x/repo.git", "tag": "v1", "branch": "main"}, 0)

    def test_path_source(self) -> None:
        """Test path sources and their defaults."""
        record = validate_source({"path": "../src", "patches": "fix.patch"}, 0)

        assert isinstance(record, schema.PathSourceRecord)
        assert record.use_gitignore is True
        assert record.patches == ["fix.patch"]

    def test_unknown_kind(self) -> None:
        """Test a source must name its kind."""
        with pytest.raises(RecipeParseError, match="one of 'url', 'git' or 'path'"):
            validate_source({"svn": "https://x"}, 0)
