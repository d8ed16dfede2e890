"""Tests for shared step builders and the compile context."""

import threading

import pytest

from aw_compiler.compiler.context import (
    CompileContext,
    ScriptRegistry,
    ValidationCollector,
    WarningCollector,
)
from aw_compiler.compiler.steps import (
    ACTIONS_DIR,
    app_token_step,
    download_agent_output_steps,
    github_script_step,
    quote_heredoc,
    setup_steps,
    upload_artifact_step,
)
from aw_compiler.compiler.types import ActionMode, GitHubAppConfig
from aw_compiler.core.config import CompilerConfig
from aw_compiler.core.exceptions import ErrorKind, ValidationError


def fake_pin(repo: str) -> str:
    return f"{repo}@pinned"


class TestSetupSteps:
    """Tests for setup_steps() per action mode."""

    def test_dev_uses_local_action(self) -> None:
        """dev references ./actions/setup."""
        (step,) = setup_steps(CompileContext(pin=fake_pin))
        assert step["uses"] == "./actions/setup"
        assert step["with"] == {"destination": ACTIONS_DIR}

    def test_release_uses_versioned_action(self) -> None:
        """release references the published action at the compiler version."""
        ctx = CompileContext(
            config=CompilerConfig(cli_version="v1.4.0"), action_mode=ActionMode.RELEASE, pin=fake_pin
        )
        (step,) = setup_steps(ctx)
        assert step["uses"] == "github/gh-aw/actions/setup@v1.4.0"

    def test_script_runs_shell(self) -> None:
        """script mode checks out the actions folder and runs setup.sh."""
        checkout, run = setup_steps(CompileContext(action_mode=ActionMode.SCRIPT, pin=fake_pin))
        assert checkout["uses"] == "actions/checkout@pinned"
        assert checkout["with"]["sparse-checkout"] == "actions"
        assert "uses" not in run
        assert run["run"].endswith("setup.sh")


class TestGithubScriptStep:
    """Tests for github_script_step()."""

    def test_key_order_and_script(self) -> None:
        """Keys follow name, id, if, uses, env, with; env is sorted."""
        step = github_script_step(
            CompileContext(pin=fake_pin),
            "Run handler",
            "noop",
            step_id="noop",
            env={"B": "2", "A": "1"},
            github_token="${{ secrets.T }}",
            condition="always()",
        )
        assert list(step) == ["name", "id", "if", "uses", "env", "with"]
        assert list(step["env"]) == ["A", "B"]
        assert step["with"]["github-token"] == "${{ secrets.T }}"
        assert f"require('{ACTIONS_DIR}/noop.cjs')" in step["with"]["script"]
        assert step["with"]["script"].endswith("await main();\n")

    def test_registered_custom_action(self) -> None:
        """A registered custom action replaces the script."""
        ctx = CompileContext(pin=fake_pin)
        ctx.scripts.register("noop", "./actions/noop")
        step = github_script_step(ctx, "Run handler", "noop")
        assert step["uses"] == "./actions/noop"
        assert "with" not in step


class TestArtifactSteps:
    """Tests for artifact helpers."""

    def test_upload_single_path(self) -> None:
        """One path is a plain string and the step runs always()."""
        step = upload_artifact_step(CompileContext(pin=fake_pin), "Upload", "logs", ["/tmp/a.log"])
        assert step["if"] == "always()"
        assert step["with"] == {"name": "logs", "path": "/tmp/a.log", "if-no-files-found": "warn"}

    def test_upload_multiple_paths(self) -> None:
        """Several paths become a newline list."""
        step = upload_artifact_step(
            CompileContext(pin=fake_pin), "Upload", "logs", ["/a", "/b"], condition=""
        )
        assert "if" not in step
        assert step["with"]["path"] == "/a\n/b\n"

    def test_download_agent_output(self) -> None:
        """The agent output is downloaded and exported as GH_AW_AGENT_OUTPUT."""
        download, export = download_agent_output_steps(CompileContext(pin=fake_pin))
        assert download["with"]["name"] == "agent-output"
        assert "GH_AW_AGENT_OUTPUT=" in export["run"]

    def test_app_token_step(self) -> None:
        """App token steps default owner and repositories to the current repository."""
        app = GitHubAppConfig(app_id="${{ vars.APP_ID }}", private_key="${{ secrets.KEY }}")
        step = app_token_step(CompileContext(pin=fake_pin), app, "app-token")
        assert step["id"] == "app-token"
        assert step["with"]["owner"] == "${{ github.repository_owner }}"
        assert step["with"]["repositories"] == "${{ github.event.repository.name }}"


class TestQuoteHeredoc:
    """Tests for quote_heredoc()."""

    def test_quoted_delimiter(self) -> None:
        """The delimiter is quoted so the shell does not expand the body."""
        assert quote_heredoc("/tmp/p.txt", "Hello $USER", "EOF") == (
            "cat << 'EOF' > \"/tmp/p.txt\"\nHello $USER\nEOF\n"
        )


class TestScriptRegistry:
    """Tests for the thread-safe script registry."""

    def test_names_sorted(self) -> None:
        """names() is sorted and membership works."""
        registry = ScriptRegistry()
        registry.register("b")
        registry.register("a", "./actions/a")
        assert registry.names() == ["a", "b"]
        assert "a" in registry
        assert registry.get_action_path("b") == ""

    def test_concurrent_registration(self) -> None:
        """Parallel registration loses no entries."""
        registry = ScriptRegistry()
        threads = [
            threading.Thread(target=lambda i=i: registry.register(f"s{i:03d}")) for i in range(50)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        assert len(registry.names()) == 50


class TestCollectors:
    """Tests for warning and validation collectors."""

    def test_warning_count(self) -> None:
        """Warnings are recorded in order and counted."""
        warnings = WarningCollector()
        warnings.warn("first")
        warnings.experimental("Gemini engine")
        assert warnings.messages == ["first", "Using experimental feature: Gemini engine"]
        assert warnings.count == 2

    def test_validation_collector_raises_all(self) -> None:
        """All collected messages are raised together."""
        collector = ValidationCollector()
        collector.add("one")
        collector.add("two", kind=ErrorKind.INVALID_CHECKOUT)
        with pytest.raises(ValidationError) as exc_info:
            collector.raise_if_errors()
        assert exc_info.value.messages == ["one", "two"]
        assert exc_info.value.kind is ErrorKind.INVALID_CHECKOUT

    def test_empty_collector_does_not_raise(self) -> None:
        """No messages, no error."""
        collector = ValidationCollector()
        assert not collector
        collector.raise_if_errors()

    def test_strict_follows_config(self) -> None:
        """ctx.strict mirrors the config flag."""
        assert CompileContext(config=CompilerConfig(strict=True)).strict is True
        assert CompileContext().strict is False
