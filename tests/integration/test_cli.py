"""Integration tests for CLI commands.

This module tests the Typer-based CLI against a YAML state tree in a
temporary directory: project creation, status and the four advance modes.
"""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml
from typer.testing import CliRunner

from sowflow.main import app


@pytest.fixture
def cli_runner():
    """Create a Typer CLI runner.

    Returns:
        CliRunner instance for invoking CLI commands
    """
    return CliRunner()


@pytest.fixture
def state_root(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point the CLI at a temporary state root.

    Args:
        tmp_path: Pytest temporary directory
        monkeypatch: Pytest monkeypatch fixture

    Returns:
        The state root directory
    """
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path))
    root = tmp_path / ".sow"
    monkeypatch.setenv("SOWFLOW_STATE__ROOT", str(root))
    return root


def _create(cli_runner: CliRunner, branch: str, description: str) -> None:
    result = cli_runner.invoke(app, ["create", "--branch", branch, "--description", description])
    assert result.exit_code == 0, result.output


def _edit_state(state_root: Path, edit) -> None:
    path = state_root / "project" / "state.yaml"
    document = yaml.safe_load(path.read_text(encoding="utf-8"))
    edit(document)
    path.write_text(yaml.safe_dump(document, sort_keys=False), encoding="utf-8")


@pytest.mark.integration
class TestProjectCLI:
    """Integration tests for create and status."""

    def test_create(self, cli_runner, state_root):
        """Test creating an exploration project from its branch prefix."""
        result = cli_runner.invoke(
            app, ["create", "-b", "explore/spike-cache", "-d", "Spike caching layer"]
        )

        assert result.exit_code == 0, result.output
        assert "Project created successfully" in result.output
        assert "spike-caching-layer" in result.output
        assert "exploration" in result.output
        assert (state_root / "project" / "state.yaml").is_file()

    def test_create_with_type(self, cli_runner, state_root):
        result = cli_runner.invoke(
            app, ["create", "-b", "feat/epic", "-d", "Split the epic", "--type", "breakdown"]
        )
        assert result.exit_code == 0, result.output
        assert "Discovery" in result.output

    def test_create_twice_fails(self, cli_runner, state_root):
        _create(cli_runner, "feat/one", "First project")

        result = cli_runner.invoke(app, ["create", "-b", "feat/two", "-d", "Second project"])

        assert result.exit_code == 1
        assert "Error creating project" in result.output
        assert "already exists" in result.output

    def test_create_unknown_type(self, cli_runner, state_root):
        result = cli_runner.invoke(app, ["create", "-b", "feat/x", "-d", "X", "-t", "legacy"])
        assert result.exit_code == 1
        assert "unknown project type" in result.output

    def test_status(self, cli_runner, state_root):
        _create(cli_runner, "feat/login", "Add login")

        result = cli_runner.invoke(app, ["status"])

        assert result.exit_code == 0, result.output
        assert "add-login" in result.output
        assert "ImplementationPlanning" in result.output
        assert "implementation" in result.output
        assert "in_progress" in result.output

    def test_status_without_project(self, cli_runner, state_root):
        result = cli_runner.invoke(app, ["status"])
        assert result.exit_code == 1
        assert "project state not found" in result.output


@pytest.mark.integration
class TestAdvanceCLI:
    """Integration tests for the advance command."""

    def test_list(self, cli_runner, state_root):
        _create(cli_runner, "explore/x", "Explore x")

        result = cli_runner.invoke(app, ["advance", "--list"])

        assert result.exit_code == 0, result.output
        assert "Current state: Active" in result.output
        assert "sowflow advance begin_summarizing" in result.output
        assert "[BLOCKED]" in result.output
        assert "All configured transitions" in result.output

    def test_dry_run_blocked(self, cli_runner, state_root):
        _create(cli_runner, "explore/x", "Explore x")

        result = cli_runner.invoke(app, ["advance", "--dry-run", "begin_summarizing"])

        assert result.exit_code == 1
        assert "Transition blocked by guard condition" in result.output
        assert "all research tasks" in result.output

    def test_unconfigured_event(self, cli_runner, state_root):
        _create(cli_runner, "explore/x", "Explore x")

        result = cli_runner.invoke(app, ["advance", "review_pass"])

        assert result.exit_code == 1
        assert "Event 'review_pass' is not configured" in result.output

    def test_dry_run_then_explicit(self, cli_runner, state_root):
        _create(cli_runner, "feat/login", "Add login")
        _edit_state(
            state_root,
            lambda doc: doc["phases"]["implementation"]["metadata"].update(planning_approved=True),
        )

        result = cli_runner.invoke(app, ["advance", "-n", "planning_complete"])
        assert result.exit_code == 0, result.output
        assert "Transition is valid" in result.output
        assert "ImplementationDraftPRCreation" in result.output

        result = cli_runner.invoke(app, ["advance", "planning_complete"])
        assert result.exit_code == 0, result.output
        assert "Advanced to: ImplementationDraftPRCreation" in result.output

        document = yaml.safe_load((state_root / "project" / "state.yaml").read_text())
        assert document["statechart"]["current_state"] == "ImplementationDraftPRCreation"

    def test_auto_advance(self, cli_runner, state_root):
        _create(cli_runner, "feat/login", "Add login")
        _edit_state(
            state_root,
            lambda doc: doc["phases"]["implementation"]["metadata"].update(planning_approved=True),
        )

        result = cli_runner.invoke(app, ["advance"])

        assert result.exit_code == 0, result.output
        assert "Advanced to: ImplementationDraftPRCreation" in result.output

    @pytest.mark.parametrize(
        "args",
        [
            ["advance", "--list", "--dry-run"],
            ["advance", "--list", "go"],
            ["advance", "--dry-run"],
        ],
    )
    def test_invalid_flags(self, cli_runner, state_root, args):
        result = cli_runner.invoke(app, args)
        assert result.exit_code == 2
