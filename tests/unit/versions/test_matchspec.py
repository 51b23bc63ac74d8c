"""Tests for MatchSpec parsing and candidate matching."""

from __future__ import annotations

import pytest

from kiln.exceptions import MatchSpecParseError
from kiln.versions import MatchSpec, PackageCandidate, satisfies


class TestMatchSpecParse:
    """Tests for MatchSpec.parse."""

    def test_name_and_range(self) -> None:
        """Test the common ``name lower,upper`` form."""
        spec = MatchSpec.parse("xtl >=0.7,<0.8")

        assert spec.name == "xtl"
        assert str(spec.constraint) == ">=0.7,<0.8"
        assert spec.build is None
        assert str(spec) == "xtl >=0.7,<0.8"

    def test_name_is_lowercased_and_spaces_normalized(self) -> None:
        """Test whitespace inside the version is normalized."""
        assert str(MatchSpec.parse("XTL >=0.7, <0.8")) == "xtl >=0.7,<0.8"

    def test_bare_name_is_unconstrained(self) -> None:
        """Test a bare name has no constraint and no build."""
        spec = MatchSpec.parse("cmake")

        assert spec.is_unconstrained
        assert str(spec) == "cmake"

    def test_channel_version_and_build(self) -> None:
        """Test a channel prefix and a build glob."""
        spec = MatchSpec.parse("conda-forge::numpy 1.26.* py311*")

        assert spec.channel == "conda-forge"
        assert spec.name == "numpy"
        assert str(spec.constraint) == "1.26.*"
        assert spec.build == "py311*"
        assert not spec.is_unconstrained

    def test_channel_with_subdir(self) -> None:
        """Test ``channel/subdir::name`` splits out a known subdir."""
        spec = MatchSpec.parse("conda-forge/linux-64::numpy")

        assert spec.channel == "conda-forge"
        assert spec.subdir == "linux-64"

    def test_bracket_keys(self) -> None:
        """Test bracketed version and build number."""
        spec = MatchSpec.parse("python[version='>=3.10',build_number=1]")

        assert spec.name == "python"
        assert str(spec.constraint) == ">=3.10"
        assert spec.build_number == 1

    def test_equals_form(self) -> None:
        """Test ``name=version=build`` pins a version prefix and a build."""
        spec = MatchSpec.parse("numpy=1.26=py311_0")

        assert str(spec.constraint) == "1.26.*"
        assert spec.build == "py311_0"

    @pytest.mark.parametrize(
        "text",
        [
            "",
            "   ",
            "numpy 1.0 py3 extra",
            "numpy[foo=1]",
            "numpy[version='1.0'",
            "numpy >=1.0$",
            "@bad",
            "numpy[build_number=x]",
        ],
    )
    def test_invalid_specs(self, text: str) -> None:
        """Test malformed specs raise MatchSpecParseError."""
        with pytest.raises(MatchSpecParseError):
            MatchSpec.parse(text)

    def test_error_keeps_spec_text(self) -> None:
        """Test the offending text is kept on the error."""
        with pytest.raises(MatchSpecParseError) as exc_info:
            MatchSpec.parse("numpy >=1.0$")

        assert exc_info.value.spec == "numpy >=1.0$"
        assert "Invalid version constraint" in exc_info.value.message


class TestSatisfies:
    """Tests for satisfies."""

    def test_version_range(self) -> None:
        """Test a range admits versions inside it only."""
        spec = MatchSpec.parse("foo >=1.0,<2.0")

        assert satisfies(spec, PackageCandidate("foo", "1.5"))
        assert satisfies(spec, PackageCandidate("FOO", "1.0"))
        assert not satisfies(spec, PackageCandidate("foo", "2.0"))
        assert not satisfies(spec, PackageCandidate("bar", "1.5"))

    def test_build_glob(self) -> None:
        """Test the build filter is a glob."""
        spec = MatchSpec.parse("numpy 1.26.* py311*")

        assert satisfies(spec, PackageCandidate("numpy", "1.26.4", build="py311h64a7726_0"))
        assert not satisfies(spec, PackageCandidate("numpy", "1.26.4", build="py312h_0"))

    def test_channel_compared_by_name(self) -> None:
        """Test a channel URL matches the channel name."""
        spec = MatchSpec.parse("conda-forge::numpy")
        candidate = PackageCandidate(
            "numpy", "2.0", channel="https://conda.anaconda.org/conda-forge/"
        )

        assert satisfies(spec, candidate)
        assert not satisfies(spec, PackageCandidate("numpy", "2.0"))

    def test_build_number_and_hash(self) -> None:
        """Test exact build number and case-insensitive hashes."""
        spec = MatchSpec.parse("zlib[build_number=2,md5=ABCDEF]")

        assert satisfies(spec, PackageCandidate("zlib", "1.3", build_number=2, md5="abcdef"))
        assert not satisfies(spec, PackageCandidate("zlib", "1.3", build_number=1, md5="abcdef"))
