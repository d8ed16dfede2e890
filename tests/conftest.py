"""Pytest configuration and fixtures for aw_compiler tests.

Fixture Organization:
- reset_config: Auto-reset of the cached compiler config (autouse=True)
- clean_action_env: Auto-removal of env vars that steer action-mode detection
- restore_root_logging: Auto-restore of the root log level after CLI runs
- write_workflow: Factory writing a workflow Markdown file under tmp_path
- make_data: Factory building WorkflowData from a front-matter mapping
- ctx: Default CompileContext
"""

import logging
from collections.abc import Callable, Iterator
from pathlib import Path

import pytest
from rich.logging import RichHandler

from aw_compiler.compiler.context import CompileContext
from aw_compiler.compiler.imports import ImportResult
from aw_compiler.compiler.model import build_workflow_data
from aw_compiler.compiler.types import WorkflowData
from aw_compiler.core import config as config_module


@pytest.fixture(autouse=True)
def reset_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Reset the cached config before and after each test.

    The default config path points into tmp_path so a developer's
    ~/.aw-compiler/config.yaml never leaks into the tests.
    """
    monkeypatch.setattr(config_module, "DEFAULT_CONFIG_PATH", tmp_path / "no-config.yaml")
    config_module.reset_config()
    yield
    config_module.reset_config()


@pytest.fixture(autouse=True)
def clean_action_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove CI variables that would switch the action mode or log level."""
    for name in ("GH_AW_ACTION_MODE", "GITHUB_REF", "GITHUB_EVENT_NAME", "DEBUG"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture(autouse=True)
def restore_root_logging() -> Iterator[None]:
    """Undo the root logger level and RichHandler installed by CLI runs."""
    root = logging.getLogger()
    level = root.level
    yield
    for handler in root.handlers[:]:
        if isinstance(handler, RichHandler):
            root.removeHandler(handler)
    root.setLevel(level)


@pytest.fixture
def write_workflow(tmp_path: Path) -> Callable[..., Path]:
    """Factory writing `.github/workflows/<name>.md` under tmp_path.

    Usage:
        def test_something(write_workflow):
            path = write_workflow("on: issues\\nengine: copilot", "# Triage")
    """

    def _write(frontmatter: str, body: str = "Do the task.\n", name: str = "test-workflow") -> Path:
        directory = tmp_path / ".github" / "workflows"
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / f"{name}.md"
        path.write_text(f"---\n{frontmatter.strip()}\n---\n{body}", encoding="utf-8")
        return path

    return _write


@pytest.fixture
def ctx() -> CompileContext:
    """CompileContext with default configuration."""
    return CompileContext()


@pytest.fixture
def make_data() -> Callable[..., WorkflowData]:
    """Factory building WorkflowData without touching the filesystem.

    `on` defaults to workflow_dispatch when the mapping has no trigger.
    """

    def _make(
        frontmatter: dict | None = None,
        markdown: str = "Do the task.\n",
        imports: ImportResult | None = None,
        name: str = "test-workflow",
    ) -> WorkflowData:
        values = {"on": "workflow_dispatch", **(frontmatter or {})}
        return build_workflow_data(
            values, markdown, Path(f".github/workflows/{name}.md"), imports or ImportResult()
        )

    return _make
