"""Tests for the kiln command group and ``kiln config``."""

from __future__ import annotations

import json
import os
from pathlib import Path

import pytest
import structlog
from click.testing import CliRunner

from kiln import __version__
from kiln.cli.context import ExitCode
from kiln.logging import bind_context, clear_context
from kiln.main import cli


@pytest.fixture
def workdir(temp_dir: Path, clean_env: None, monkeypatch: pytest.MonkeyPatch) -> Path:
    """An empty project directory with no user config."""
    monkeypatch.setattr("kiln.config.Path.home", lambda: temp_dir)
    os.chdir(temp_dir)
    return temp_dir


class TestCliGroup:
    """Tests for the top-level command group."""

    def test_version(self, cli_runner: CliRunner, workdir: Path) -> None:
        """Test --version prints the package version."""
        result = cli_runner.invoke(cli, ["--version"])

        assert result.exit_code == 0
        assert __version__ in result.output

    def test_help_without_command(self, cli_runner: CliRunner, workdir: Path) -> None:
        """Test running without a command shows help."""
        result = cli_runner.invoke(cli, [])

        assert result.exit_code == 0
        assert "render" in result.output
        assert "config" in result.output

    def test_missing_config_file(self, cli_runner: CliRunner, workdir: Path) -> None:
        """Test --config must point to an existing file."""
        result = cli_runner.invoke(cli, ["--config", "nope.yaml", "config", "show"])

        assert result.exit_code == ExitCode.FAILURE
        assert "Config file not found" in result.output

    def test_invalid_config(self, cli_runner: CliRunner, workdir: Path) -> None:
        """Test invalid settings name the field."""
        (workdir / "kiln.yaml").write_text("render:\n  max_workers: 0\n")

        result = cli_runner.invoke(cli, ["config", "show"])

        assert result.exit_code == ExitCode.FAILURE
        assert "Field: render.max_workers" in result.output

    def test_command_is_bound_to_log_context(
        self, cli_runner: CliRunner, workdir: Path
    ) -> None:
        """Test each invocation binds its subcommand for log records."""
        bind_context(command="stale", recipe="left-over")

        result = cli_runner.invoke(cli, ["config", "paths"])

        assert result.exit_code == 0, result.output
        assert structlog.contextvars.get_contextvars() == {"command": "config"}
        clear_context()


class TestConfigCommand:
    """Tests for kiln config."""

    def test_show_json(self, cli_runner: CliRunner, workdir: Path) -> None:
        """Test the merged configuration as JSON."""
        (workdir / "kiln.yaml").write_text("render:\n  max_workers: 3\n")

        result = cli_runner.invoke(cli, ["config", "show", "--format", "json"])

        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["render"]["max_workers"] == 3
        assert data["verbosity"] == "warning"

    def test_show_yaml(self, cli_runner: CliRunner, workdir: Path) -> None:
        """Test YAML is the default format."""
        result = cli_runner.invoke(cli, ["config", "show"])

        assert result.exit_code == 0, result.output
        assert "max_workers:" in result.output

    def test_explicit_config_file(self, cli_runner: CliRunner, workdir: Path) -> None:
        """Test --config selects the project file."""
        (workdir / "custom.yaml").write_text("verbosity: info\n")

        result = cli_runner.invoke(
            cli, ["--config", "custom.yaml", "config", "show", "-f", "json"]
        )

        assert result.exit_code == 0, result.output
        assert json.loads(result.output)["verbosity"] == "info"

    def test_paths(self, cli_runner: CliRunner, workdir: Path) -> None:
        """Test the project and user paths are listed."""
        (workdir / "kiln.yaml").write_text("{}\n")

        result = cli_runner.invoke(cli, ["config", "paths"])

        assert result.exit_code == 0, result.output
        lines = result.output.splitlines()
        assert lines[0].startswith("project: ")
        assert lines[0].endswith("(found)")
        assert lines[1].endswith("(missing)")
