"""Tests for the awc compile and version commands."""

from collections.abc import Callable
from pathlib import Path

import pytest
from typer.testing import CliRunner

from aw_compiler import __version__
from aw_compiler.cli import app
from aw_compiler.cli_utils import EXIT_CONFIG_ERROR, EXIT_ERROR, EXIT_SUCCESS

runner = CliRunner()

WriteWorkflow = Callable[..., Path]

INVALID_GUARD_POLICY = """
on: workflow_dispatch
tools:
  github:
    repos: ["Owner/Repo"]
    min-integrity: reader
"""


def lock_for(path: Path) -> Path:
    return path.with_name(f"{path.stem}.lock.yml")


class TestCompileCommand:
    """Tests for `awc compile`."""

    def test_single_file(self, write_workflow: WriteWorkflow) -> None:
        """A valid workflow compiles and its lock file is written."""
        path = write_workflow("on: workflow_dispatch")
        result = runner.invoke(app, ["compile", str(path)])
        assert result.exit_code == EXIT_SUCCESS, result.output
        assert lock_for(path).exists()
        assert "Compiled 1/1 workflow(s) with 0 error(s) and 0 warning(s)" in result.output

    def test_default_directory(
        self, write_workflow: WriteWorkflow, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Without arguments every workflow in .github/workflows compiles."""
        first = write_workflow("on: workflow_dispatch", name="first")
        second = write_workflow("on: workflow_dispatch\nengine: claude", name="second")
        monkeypatch.chdir(tmp_path)
        result = runner.invoke(app, ["compile"])
        assert result.exit_code == EXIT_SUCCESS, result.output
        assert lock_for(first).exists()
        assert lock_for(second).exists()
        assert "Compiled 2/2" in result.output

    def test_no_write(self, write_workflow: WriteWorkflow) -> None:
        """--no-write validates without producing lock files."""
        path = write_workflow("on: workflow_dispatch")
        result = runner.invoke(app, ["compile", "--no-write", str(path)])
        assert result.exit_code == EXIT_SUCCESS, result.output
        assert not lock_for(path).exists()
        assert "(not written)" in result.output

    def test_failure_continues_with_remaining(self, write_workflow: WriteWorkflow) -> None:
        """One failing workflow does not stop the others but fails the run."""
        bad = write_workflow(INVALID_GUARD_POLICY, name="bad")
        good = write_workflow("on: workflow_dispatch", name="good")
        result = runner.invoke(app, ["compile", str(bad), str(good)])
        assert result.exit_code == EXIT_ERROR
        assert not lock_for(bad).exists()
        assert lock_for(good).exists()
        assert "Compiled 1/2 workflow(s) with 1 error(s)" in result.output

    def test_undecodable_source_continues(self, write_workflow: WriteWorkflow) -> None:
        """A source with invalid UTF-8 is reported and the others still compile."""
        bad = write_workflow("on: workflow_dispatch", name="bad")
        bad.write_bytes(b"---\non: push\n---\n\xff\xfe bad\n")
        good = write_workflow("on: workflow_dispatch", name="good")
        result = runner.invoke(app, ["compile", str(bad), str(good)])
        assert result.exit_code == EXIT_ERROR
        assert result.exception is None or isinstance(result.exception, SystemExit)
        assert lock_for(good).exists()
        assert "Compiled 1/2 workflow(s) with 1 error(s)" in result.output

    def test_warnings_counted(self, write_workflow: WriteWorkflow) -> None:
        """Warnings are printed and counted without failing the run."""
        path = write_workflow("on: workflow_dispatch\nengine: gemini")
        result = runner.invoke(app, ["compile", str(path)])
        assert result.exit_code == EXIT_SUCCESS, result.output
        assert "Using experimental feature" in result.output
        assert "with 0 error(s) and 1 warning(s)" in result.output

    def test_strict_flag(self, write_workflow: WriteWorkflow) -> None:
        """--strict turns agent write permissions into errors."""
        path = write_workflow("on: workflow_dispatch\npermissions:\n  issues: write")
        assert runner.invoke(app, ["compile", "--no-write", str(path)]).exit_code == EXIT_SUCCESS
        result = runner.invoke(app, ["compile", "--strict", "--no-write", str(path)])
        assert result.exit_code == EXIT_ERROR

    def test_trial_repo(self, write_workflow: WriteWorkflow) -> None:
        """--trial-repo checks out the trial repository."""
        path = write_workflow("on: workflow_dispatch")
        result = runner.invoke(app, ["compile", "--trial-repo", "octo/trial", str(path)])
        assert result.exit_code == EXIT_SUCCESS, result.output
        assert "repository: octo/trial" in lock_for(path).read_text(encoding="utf-8")

    def test_invalid_trial_repo(self, write_workflow: WriteWorkflow) -> None:
        """A malformed trial repository is a usage error."""
        path = write_workflow("on: workflow_dispatch")
        result = runner.invoke(app, ["compile", "--trial-repo", "not-a-slug", str(path)])
        assert result.exit_code == EXIT_CONFIG_ERROR
        assert not lock_for(path).exists()

    def test_invalid_action_mode(self, write_workflow: WriteWorkflow) -> None:
        """Unknown action modes are rejected before compiling."""
        path = write_workflow("on: workflow_dispatch")
        result = runner.invoke(app, ["compile", "--action-mode", "turbo", str(path)])
        assert result.exit_code == EXIT_CONFIG_ERROR
        assert "Invalid --action-mode 'turbo'" in result.output

    def test_release_action_mode(self, write_workflow: WriteWorkflow) -> None:
        """--action-mode release stops using the local setup action."""
        path = write_workflow("on: workflow_dispatch")
        result = runner.invoke(app, ["compile", "--action-mode", "release", str(path)])
        assert result.exit_code == EXIT_SUCCESS, result.output
        assert "uses: ./actions/setup" not in lock_for(path).read_text(encoding="utf-8")

    def test_missing_path(self, tmp_path: Path) -> None:
        """A path that does not exist is a usage error."""
        result = runner.invoke(app, ["compile", str(tmp_path / "missing.md")])
        assert result.exit_code == EXIT_CONFIG_ERROR

    def test_empty_directory(self, tmp_path: Path) -> None:
        """A directory without workflows fails."""
        result = runner.invoke(app, ["compile", str(tmp_path)])
        assert result.exit_code == EXIT_ERROR
        assert "No workflow files found" in result.output


class TestVersionCommand:
    """Tests for `awc version`."""

    def test_prints_version(self) -> None:
        """The installed version is printed."""
        result = runner.invoke(app, ["version"])
        assert result.exit_code == EXIT_SUCCESS
        assert result.output.strip() == f"awc {__version__}"
