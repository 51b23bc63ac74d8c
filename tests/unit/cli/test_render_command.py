"""Tests for the ``kiln render`` command."""

from __future__ import annotations

import json
import os
from pathlib import Path

import pytest
from click.testing import CliRunner

from kiln.cli.context import ExitCode
from kiln.main import cli

XTL_RECIPE = """\
package:
  name: xtl
  version: 0.7.7
requirements:
  host:
    - python
    - cmake
"""

BROKEN_RECIPE = """\
package:
  name: broken
  version: ${{ verison }}
"""

VARIANTS = """\
python:
  - 3.11
  - 3.12
"""


@pytest.fixture
def workdir(temp_dir: Path, clean_env: None, monkeypatch: pytest.MonkeyPatch) -> Path:
    """An empty project directory with no user config."""
    monkeypatch.setattr("kiln.config.Path.home", lambda: temp_dir)
    os.chdir(temp_dir)
    (temp_dir / "xtl.yaml").write_text(XTL_RECIPE)
    (temp_dir / "broken.yaml").write_text(BROKEN_RECIPE)
    (temp_dir / "variants.yaml").write_text(VARIANTS)
    return temp_dir


class TestRenderCommand:
    """Tests for kiln render."""

    def test_json_output(self, cli_runner: CliRunner, workdir: Path) -> None:
        """Test JSON output lists one object per variant."""
        result = cli_runner.invoke(
            cli,
            [
                "render",
                "xtl.yaml",
                "-m",
                "variants.yaml",
                "--target-platform",
                "linux-64",
                "--format",
                "json",
            ],
        )

        assert result.exit_code == ExitCode.SUCCESS, result.output
        data = json.loads(result.output)
        assert [item["variant"] for item in data] == [
            {"python": "3.11"},
            {"python": "3.12"},
        ]
        assert data[0]["subdir"] == "linux-64"
        assert data[0]["recipe"]["requirements"]["host"] == ["python 3.11.*", "cmake"]
        assert data[0]["filename"].endswith(".conda")

    def test_yaml_output(self, cli_runner: CliRunner, workdir: Path) -> None:
        """Test YAML output."""
        result = cli_runner.invoke(cli, ["render", "xtl.yaml", "-f", "yaml"])

        assert result.exit_code == ExitCode.SUCCESS, result.output
        assert "name: xtl" in result.output

    def test_text_output(self, cli_runner: CliRunner, workdir: Path) -> None:
        """Test the default table output names the recipe."""
        result = cli_runner.invoke(
            cli, ["render", "xtl.yaml", "--target-platform", "linux-64"]
        )

        assert result.exit_code == ExitCode.SUCCESS, result.output
        assert "xtl.yaml" in result.output
        assert "linux-64" in result.output

    def test_define_overrides_context(
        self, cli_runner: CliRunner, workdir: Path
    ) -> None:
        """Test -D replaces a context value."""
        (workdir / "ctx.yaml").write_text(
            "context:\n  version: 1.0\npackage:\n  name: foo\n  version: ${{ version }}\n"
        )

        result = cli_runner.invoke(
            cli, ["render", "ctx.yaml", "-D", "version=2.0", "-f", "json"]
        )

        assert result.exit_code == ExitCode.SUCCESS, result.output
        assert json.loads(result.output)[0]["version"] == "2.0"

    def test_invalid_define(self, cli_runner: CliRunner, workdir: Path) -> None:
        """Test -D needs KEY=VALUE."""
        result = cli_runner.invoke(cli, ["render", "xtl.yaml", "-D", "version"])

        assert result.exit_code == 2
        assert "Expected KEY=VALUE" in result.output

    def test_unknown_platform(self, cli_runner: CliRunner, workdir: Path) -> None:
        """Test platform options are validated."""
        result = cli_runner.invoke(
            cli, ["render", "xtl.yaml", "--target-platform", "amiga-68k"]
        )

        assert result.exit_code == 2
        assert "Unknown platform" in result.output

    def test_recipe_error(self, cli_runner: CliRunner, workdir: Path) -> None:
        """Test a failing recipe reports its location and stage."""
        result = cli_runner.invoke(cli, ["render", "broken.yaml"])

        assert result.exit_code == ExitCode.FAILURE
        assert "Error:" in result.output
        assert "package.version" in result.output
        assert "Stage: assembling" in result.output

    def test_batch_partial_failure(self, cli_runner: CliRunner, workdir: Path) -> None:
        """Test a batch with a failing recipe renders the others."""
        result = cli_runner.invoke(
            cli, ["render", "xtl.yaml", "broken.yaml", "-f", "yaml"]
        )

        assert result.exit_code == ExitCode.PARTIAL
        assert "broken.yaml" in result.output
        assert "name: xtl" in result.output

    def test_batch_all_failed(self, cli_runner: CliRunner, workdir: Path) -> None:
        """Test a batch where nothing renders fails."""
        result = cli_runner.invoke(cli, ["render", "broken.yaml", "broken.yaml"])

        assert result.exit_code == ExitCode.FAILURE

    def test_missing_recipe(self, cli_runner: CliRunner, workdir: Path) -> None:
        """Test recipe paths must exist."""
        result = cli_runner.invoke(cli, ["render", "missing.yaml"])

        assert result.exit_code == 2

    def test_variant_config_from_settings(
        self, cli_runner: CliRunner, workdir: Path
    ) -> None:
        """Test variant_config_files from kiln.yaml are used."""
        (workdir / "kiln.yaml").write_text("variant_config_files:\n  - variants.yaml\n")

        result = cli_runner.invoke(cli, ["render", "xtl.yaml", "-f", "json"])

        assert result.exit_code == ExitCode.SUCCESS, result.output
        assert len(json.loads(result.output)) == 2
