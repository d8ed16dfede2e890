"""Compile command for the awc CLI.

Compiles agentic workflow Markdown files into `.lock.yml` files.
"""

from pathlib import Path
from typing import Optional

import typer
from pydantic import ValidationError as ConfigValidationError

from aw_compiler import __version__
from aw_compiler.cli_utils import (
    EXIT_CONFIG_ERROR,
    EXIT_ERROR,
    _error,
    _info,
    _setup_logging,
    _success,
    _warning,
    console,
)
from aw_compiler.compiler.pipeline import compile_workflow, find_workflow_files
from aw_compiler.compiler.types import ActionMode
from aw_compiler.core.config import CompilerConfig, get_config
from aw_compiler.core.exceptions import AwCompilerError, CompilerIOError


def _build_config(strict: bool, trial_repo: str | None, action_mode: str | None) -> CompilerConfig:
    """Layer CLI flags over the user config file.

    Raises:
        typer.Exit: With EXIT_CONFIG_ERROR on invalid flag values.

    """
    if action_mode is not None and not ActionMode.is_valid(action_mode):
        _error(f"Invalid --action-mode '{action_mode}'\n  Valid modes: dev, release, script")
        raise typer.Exit(code=EXIT_CONFIG_ERROR)

    base = get_config()
    values = base.model_dump()
    values["cli_version"] = __version__
    if strict:
        values["strict"] = True
    if trial_repo:
        values["trial_mode"] = True
        values["trial_logical_repo"] = trial_repo
    if action_mode is not None:
        values["action_mode"] = action_mode
    try:
        # Re-validate so flag values pass the same checks as the config file
        return CompilerConfig(**values)
    except ConfigValidationError as e:
        message = e.errors()[0]["msg"] if e.errors() else str(e)
        _error(f"Invalid option: {message}")
        raise typer.Exit(code=EXIT_CONFIG_ERROR) from None


def compile_command(
    paths: Optional[list[Path]] = typer.Argument(
        None,
        help="Workflow files or directories (default: .github/workflows)",
        show_default=False,
    ),
    strict: bool = typer.Option(
        False,
        "--strict",
        help="Enable strict validation for every workflow",
    ),
    trial_repo: Optional[str] = typer.Option(
        None,
        "--trial-repo",
        help="Check out OWNER/REPO in place of the workflow repository (trial mode)",
        metavar="OWNER/REPO",
    ),
    action_mode: Optional[str] = typer.Option(
        None,
        "--action-mode",
        help="Action mode override: dev, release or script",
    ),
    no_write: bool = typer.Option(
        False,
        "--no-write",
        help="Compile and validate without writing lock files",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose (DEBUG) logging",
    ),
) -> None:
    """Compile agentic workflows into GitHub Actions lock files.

    Each `<name>.md` source produces `<name>.lock.yml` in the same
    directory. A directory argument compiles every `*.md` file directly
    inside it.

    Examples:
        awc compile                                   # All of .github/workflows
        awc compile .github/workflows/triage.md       # One workflow
        awc compile --strict --no-write               # Validate only

    """
    _setup_logging(verbose=verbose)
    config = _build_config(strict, trial_repo, action_mode)

    try:
        sources = find_workflow_files(list(paths or []))
    except CompilerIOError as e:
        _error(str(e))
        raise typer.Exit(code=EXIT_CONFIG_ERROR) from None

    if not sources:
        _error("No workflow files found")
        raise typer.Exit(code=EXIT_ERROR)

    failures = 0
    warnings = 0
    for source in sources:
        try:
            result = compile_workflow(source, config, write=not no_write)
        except AwCompilerError as e:
            failures += 1
            _error(f"{source}: {e}")
            continue
        for message in result.warnings:
            _warning(message)
        warnings += result.warning_count
        if result.written:
            _success(f"{source} -> {result.lock_path}")
        else:
            _success(f"{source} (not written)")

    console.print()
    _info(
        f"Compiled {len(sources) - failures}/{len(sources)} workflow(s) "
        f"with {failures} error(s) and {warnings} warning(s)"
    )
    if failures:
        raise typer.Exit(code=EXIT_ERROR)
