"""Tests for firewall domain expansion and step rendering."""

from aw_compiler.compiler.context import CompileContext
from aw_compiler.compiler.firewall import (
    ECOSYSTEM_DOMAINS,
    FIREWALL_LOGS_DIR,
    expand_allowed_domains,
    firewall_log_steps,
    is_firewall_enabled,
    sanitize_workflow_name,
    wrap_command,
)
from aw_compiler.compiler.types import FirewallConfig, NetworkPermissions


def fake_pin(repo: str) -> str:
    return f"{repo}@pinned"


class TestExpandAllowedDomains:
    """Tests for expand_allowed_domains()."""

    def test_ecosystems_expand(self) -> None:
        """Ecosystem identifiers expand to their domain lists."""
        domains = expand_allowed_domains(["python"])
        assert domains == sorted(ECOSYSTEM_DOMAINS["python"])

    def test_literal_domains_and_engine_domains(self) -> None:
        """Unknown entries are literal; the result is sorted and deduplicated."""
        assert expand_allowed_domains(["z.example.com", "api.github.com"], ["api.github.com", "a.io"]) == [
            "a.io",
            "api.github.com",
            "z.example.com",
        ]


class TestIsFirewallEnabled:
    """Tests for is_firewall_enabled()."""

    def test_default_on(self) -> None:
        """The firewall is on for engines that support it."""
        assert is_firewall_enabled(NetworkPermissions(), True)

    def test_unsupported_engine(self) -> None:
        """Engines without support never run it."""
        assert not is_firewall_enabled(NetworkPermissions(), False)

    def test_sandbox_none(self) -> None:
        """A disabled sandbox disables the firewall."""
        assert not is_firewall_enabled(NetworkPermissions(), True, sandbox="none")

    def test_explicit_setting(self) -> None:
        """network.firewall decides when set."""
        network = NetworkPermissions(firewall=FirewallConfig(enabled=False))
        assert not is_firewall_enabled(network, True)


class TestSteps:
    """Tests for the emitted firewall snippets."""

    def test_sanitize_name(self) -> None:
        """Names become lowercase artifact-safe slugs."""
        assert sanitize_workflow_name("  Issue Triage (v2)! ") == "issue-triage-v2"

    def test_wrap_command(self) -> None:
        """The agent command runs under sudo -E awf with the allow-list."""
        wrapped = wrap_command("copilot --prompt x", ["a.io", "b.io"], "debug")
        assert wrapped.startswith("sudo -E awf --env-all")
        assert "--allow-domains a.io,b.io" in wrapped
        assert "--log-level debug" in wrapped
        assert wrapped.endswith("-- 'copilot --prompt x'")

    def test_log_steps(self) -> None:
        """Logs are uploaded per workflow and summarized."""
        upload, summary = firewall_log_steps(CompileContext(pin=fake_pin), "Issue Triage")
        assert upload["with"]["name"] == "firewall-logs-issue-triage"
        assert upload["with"]["path"] == f"{FIREWALL_LOGS_DIR}/"
        assert summary["env"] == {"AWF_LOGS_DIR": FIREWALL_LOGS_DIR}
        assert upload["if"] == summary["if"] == "always()"
