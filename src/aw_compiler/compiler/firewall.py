"""Agent workflow firewall (AWF) support.

The firewall restricts egress of the agent step to an allow-list of
domains. Ecosystem identifiers such as "defaults" or "python" expand to
domain lists; the engine adds the endpoints its CLI must reach.

Public API:
    ECOSYSTEM_DOMAINS: Domains per ecosystem identifier
    expand_allowed_domains: Sorted, deduplicated domain list
    is_firewall_enabled: Firewall decision for a workflow and engine
    check_firewall_disable: Warn (or fail in strict mode) on a disabled firewall
    sanitize_workflow_name: Artifact-safe workflow name
    firewall_install_step, wrap_command, firewall_log_steps: Emitted steps
"""

from __future__ import annotations

import logging
import re
import shlex
from collections.abc import Iterable
from typing import Any

from aw_compiler.compiler.context import CompileContext
from aw_compiler.compiler.types import NetworkPermissions
from aw_compiler.core.exceptions import ValidationError

logger = logging.getLogger(__name__)

FIREWALL_LOGS_DIR = "/tmp/gh-aw/sandbox/firewall/logs"

ECOSYSTEM_DOMAINS: dict[str, tuple[str, ...]] = {
    "defaults": (
        "crl3.digicert.com",
        "crl4.digicert.com",
        "ocsp.digicert.com",
        "crl.geotrust.com",
        "ocsp.geotrust.com",
        "json-schema.org",
        "json.schemastore.org",
        "archive.ubuntu.com",
        "security.ubuntu.com",
        "ppa.launchpad.net",
        "keyserver.ubuntu.com",
        "azure.archive.ubuntu.com",
        "api.snapcraft.io",
        "packagecloud.io",
        "packages.cloud.google.com",
        "packages.microsoft.com",
    ),
    "github": (
        "github.com",
        "api.github.com",
        "raw.githubusercontent.com",
        "objects.githubusercontent.com",
        "codeload.github.com",
        "uploads.github.com",
        "ghcr.io",
    ),
    "python": (
        "pypi.org",
        "pypi.python.org",
        "files.pythonhosted.org",
        "bootstrap.pypa.io",
        "conda.anaconda.org",
        "repo.anaconda.com",
    ),
    "node": (
        "registry.npmjs.org",
        "npmjs.org",
        "npmjs.com",
        "registry.yarnpkg.com",
        "nodejs.org",
    ),
    "go": ("proxy.golang.org", "sum.golang.org", "go.dev", "golang.org", "pkg.go.dev"),
    "containers": (
        "registry.hub.docker.com",
        "auth.docker.io",
        "production.cloudflare.docker.com",
        "ghcr.io",
        "mcr.microsoft.com",
    ),
    "rust": ("crates.io", "index.crates.io", "static.crates.io", "static.rust-lang.org"),
    "java": ("repo.maven.apache.org", "repo1.maven.org", "plugins.gradle.org", "services.gradle.org"),
}

_SANITIZE_PATTERN = re.compile(r"[^a-z0-9._-]+")


def expand_allowed_domains(allowed: Iterable[str], engine_domains: Iterable[str] = ()) -> list[str]:
    """Expand ecosystem identifiers and merge engine domains.

    Unknown identifiers are treated as literal domains.

    Returns:
        Sorted list without duplicates.

    """
    domains: set[str] = set(engine_domains)
    for entry in allowed:
        domains.update(ECOSYSTEM_DOMAINS.get(entry, (entry,)))
    return sorted(domains)


def is_firewall_enabled(network: NetworkPermissions, supports_firewall: bool, sandbox: str = "awf") -> bool:
    """Return True when the agent step runs inside the firewall.

    The firewall is on by default for engines that support it, unless the
    sandbox is disabled or `network.firewall` turns it off.
    """
    if not supports_firewall or sandbox == "none":
        return False
    if network.firewall.enabled is not None:
        return network.firewall.enabled
    return True


def check_firewall_disable(network: NetworkPermissions, ctx: CompileContext) -> None:
    """Warn when the firewall is disabled while network.allowed is set.

    Raises:
        ValidationError: In strict mode instead of warning.

    """
    if network.firewall.enabled is not False:
        return
    if not (network.explicitly_defined and network.allowed):
        return
    if ctx.strict:
        raise ValidationError(
            "strict mode: cannot disable firewall when network restrictions "
            "(network.allowed) are set"
        )
    ctx.warnings.warn(
        "Firewall is disabled but network restrictions are specified (network.allowed). "
        "Network may not be properly sandboxed."
    )


def sanitize_workflow_name(name: str) -> str:
    """Lowercase name and replace runs of unsafe characters with '-'.

    Examples:
        >>> sanitize_workflow_name("Daily Report: PRs")
        'daily-report-prs'

    """
    return _SANITIZE_PATTERN.sub("-", name.lower()).strip("-")


def firewall_install_step(version: str) -> dict[str, Any]:
    return {
        "name": "Install awf binary",
        "run": f"bash /opt/gh-aw/actions/install_awf_binary.sh {version}",
    }


def wrap_command(command: str, domains: list[str], log_level: str = "") -> str:
    """Wrap an agent command line in `sudo -E awf`."""
    parts = [
        "sudo -E awf",
        "--env-all",
        "--container-workdir \"${GITHUB_WORKSPACE}\"",
        "--mount /tmp:/tmp:rw",
        "--mount \"${GITHUB_WORKSPACE}:${GITHUB_WORKSPACE}:rw\"",
        f"--allow-domains {','.join(domains)}",
        f"--log-level {log_level or 'info'}",
        f"--proxy-logs-dir {FIREWALL_LOGS_DIR}",
    ]
    return " ".join(parts) + " \\\n  -- " + shlex.quote(command)


def firewall_log_steps(ctx: CompileContext, workflow_name: str) -> list[dict[str, Any]]:
    """Steps uploading and summarizing the firewall logs after the agent run."""
    artifact = f"firewall-logs-{sanitize_workflow_name(workflow_name)}"
    return [
        {
            "name": "Upload Firewall Logs",
            "if": "always()",
            "continue-on-error": True,
            "uses": ctx.pin("actions/upload-artifact"),
            "with": {
                "name": artifact,
                "path": f"{FIREWALL_LOGS_DIR}/",
                "if-no-files-found": "ignore",
            },
        },
        {
            "name": "Print firewall logs",
            "if": "always()",
            "continue-on-error": True,
            "env": {"AWF_LOGS_DIR": FIREWALL_LOGS_DIR},
            "run": (
                "# AWF runs with sudo, so its log files are owned by root\n"
                f"sudo chmod -R a+r {FIREWALL_LOGS_DIR} 2>/dev/null || true\n"
                "if command -v awf &> /dev/null; then\n"
                '  awf logs summary | tee -a "$GITHUB_STEP_SUMMARY"\n'
                "else\n"
                "  echo 'AWF binary not installed, skipping firewall log summary'\n"
                "fi\n"
            ),
        },
    ]
