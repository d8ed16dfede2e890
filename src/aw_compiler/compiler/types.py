"""Semantic model types for compiled workflows.

The front-matter mapping is untyped until aw_compiler.compiler.model
turns it into the frozen records below. Every derivation pass reads
these records and never re-parses text.

Public API:
    ActionMode: dev / release / script
    GitHubAppConfig: GitHub App credentials for token minting
    GuardPolicy: repos / min-integrity restriction of the GitHub tool
    GitHubToolConfig, PlaywrightToolConfig, SerenaToolConfig
    CacheMemoryEntry, RepoMemoryConfig, McpServerConfig, ToolsConfig
    SafeInputTool: One `safe-inputs` tool
    FirewallConfig, NetworkPermissions
    SandboxConfig, EngineConfig
    WorkflowData: The complete semantic model of one workflow
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any

from aw_compiler.compiler.permissions import Permissions

if TYPE_CHECKING:
    from aw_compiler.compiler.checkout import CheckoutConfig
    from aw_compiler.compiler.imports import ImportResult
    from aw_compiler.compiler.safe_outputs.config import SafeOutputsConfig


class ActionMode(str, Enum):
    """How the emitted workflow references the compiler's own actions.

    dev: local `./actions/...` paths for development in this repository.
    release: pinned remote references for published workflows.
    script: setup scripts run directly instead of `uses:`.
    """

    DEV = "dev"
    RELEASE = "release"
    SCRIPT = "script"

    @classmethod
    def is_valid(cls, value: str) -> bool:
        """Return True if value names a known mode."""
        return value in {mode.value for mode in cls}

    @property
    def is_release(self) -> bool:
        return self is ActionMode.RELEASE

    @property
    def is_script(self) -> bool:
        return self is ActionMode.SCRIPT


@dataclass(frozen=True)
class GitHubAppConfig:
    """GitHub App used to mint an installation token at run time.

    Attributes:
        app_id: App ID expression (e.g. `${{ vars.APP_ID }}`).
        private_key: Private key expression (e.g. `${{ secrets.APP_KEY }}`).
        owner: Installation owner; defaults to the current repository owner.
        repositories: Repositories the token is scoped to.

    """

    app_id: str
    private_key: str
    owner: str = ""
    repositories: tuple[str, ...] = ()


@dataclass(frozen=True)
class GuardPolicy:
    """Scope restriction of the GitHub MCP server.

    Values are kept as parsed so the validator can report shape errors.
    """

    repos: Any = None
    min_integrity: Any = None

    @property
    def is_set(self) -> bool:
        return self.repos is not None or self.min_integrity is not None


@dataclass(frozen=True)
class GitHubToolConfig:
    """Configuration of the built-in GitHub MCP server.

    Attributes:
        mode: "local" (Docker) or "remote" (hosted endpoint).
        toolsets: Enabled toolsets.
        allowed: Allowed tool names (empty means all).
        github_token: Custom token expression.
        app: GitHub App used instead of a token.
        read_only: Restrict to read operations.
        guard_policy: Optional repos / min-integrity restriction.
        version: Server image version.

    """

    mode: str = "local"
    toolsets: tuple[str, ...] = ("default",)
    allowed: tuple[str, ...] = ()
    github_token: str = ""
    app: GitHubAppConfig | None = None
    read_only: bool = True
    guard_policy: GuardPolicy = field(default_factory=GuardPolicy)
    version: str = ""


@dataclass(frozen=True)
class PlaywrightToolConfig:
    allowed_domains: tuple[str, ...] = ()
    version: str = ""


@dataclass(frozen=True)
class SerenaToolConfig:
    languages: tuple[str, ...] = ()
    mode: str = "docker"


@dataclass(frozen=True)
class CacheMemoryEntry:
    """One `cache-memory` cache.

    Attributes:
        id: Cache id ("default" for the single-cache form).
        key: Cache key; derived from the workflow when empty.
        retention_days: Artifact retention, 1..90 when set.
        restore_only: Restore without saving.

    """

    id: str = "default"
    key: str = ""
    retention_days: Any = None
    restore_only: bool = False


@dataclass(frozen=True)
class RepoMemoryConfig:
    """`repo-memory`: agent memory persisted to a git branch."""

    branch_name: str = "memory/default"
    target_repo: str = ""
    max_file_size: Any = None
    max_file_count: Any = None


@dataclass(frozen=True)
class McpServerConfig:
    """A user-declared MCP server.

    Attributes:
        name: Tool name (mapping key under `tools:` / `mcp-servers:`).
        type: "stdio" or "http".
        container: Docker image for containerized stdio servers.
        command: Executable for stdio servers.
        args: Command (or container) arguments.
        env: Environment passed to the server.
        url: Endpoint of http servers.
        headers: HTTP headers of http servers.
        allowed: Allowed tool names (empty means all).
        mounts: Container mounts as "source:dest:ro|rw".
        port: Port of http servers started locally.

    """

    name: str
    type: str = "stdio"
    container: str = ""
    command: str = ""
    args: tuple[str, ...] = ()
    env: dict[str, str] = field(default_factory=dict)
    url: str = ""
    headers: dict[str, str] = field(default_factory=dict)
    allowed: tuple[str, ...] = ()
    mounts: tuple[Any, ...] = ()
    port: Any = None


@dataclass(frozen=True)
class SafeInputTool:
    """A `safe-inputs` tool served to the agent over MCP.

    Attributes:
        name: Tool name the agent calls.
        description: Tool description shown to the agent.
        handler: Implementation kind: "script" (JavaScript), "run" (shell) or "py".
        code: Source of the implementation.
        inputs: Input parameter schema, keyed by parameter name.
        env: Environment exported to the implementation.

    """

    name: str
    description: str
    handler: str
    code: str
    inputs: dict[str, Any] = field(default_factory=dict)
    env: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        entry: dict[str, Any] = {"description": self.description, "handler": self.handler}
        if self.inputs:
            entry["inputs"] = self.inputs
        entry["code"] = self.code
        if self.env:
            entry["env"] = sorted(self.env)
        return entry


@dataclass(frozen=True)
class ToolsConfig:
    """Typed view of the merged `tools:` section.

    Attributes:
        github: GitHub MCP server, None when disabled with `github: false`.
        bash: Allowed commands; ("*",) for all, None when bash is absent.
        edit: File editing enabled.
        web_fetch: Web fetch tool enabled.
        web_search: Web search tool enabled.
        playwright: Playwright browser automation.
        serena: Serena language server.
        cache_memory: Cache-memory entries (empty when disabled).
        repo_memory: Repo-memory configuration.
        agentic_workflows: The workflow introspection MCP server.
        custom: User MCP servers in declaration order.
        raw: The merged mapping as declared, for validation.

    """

    github: GitHubToolConfig | None = field(default_factory=GitHubToolConfig)
    bash: tuple[str, ...] | None = None
    edit: bool = False
    web_fetch: bool = False
    web_search: bool = False
    playwright: PlaywrightToolConfig | None = None
    serena: SerenaToolConfig | None = None
    cache_memory: tuple[CacheMemoryEntry, ...] = ()
    repo_memory: RepoMemoryConfig | None = None
    agentic_workflows: bool = False
    custom: dict[str, McpServerConfig] = field(default_factory=dict)
    raw: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class FirewallConfig:
    """Agent workflow firewall settings.

    Attributes:
        enabled: True/False when set explicitly, None for the engine default.
        version: Firewall release to install.
        log_level: Firewall log level.

    """

    enabled: bool | None = None
    version: str = ""
    log_level: str = ""


@dataclass(frozen=True)
class NetworkPermissions:
    """Network egress policy of the agent job.

    Attributes:
        allowed: Allowed domains or ecosystem identifiers ("defaults", "python").
        blocked: Blocked domains.
        firewall: Firewall settings.
        explicitly_defined: True when the workflow declared `network:`.

    """

    allowed: tuple[str, ...] = ("defaults",)
    blocked: tuple[str, ...] = ()
    firewall: FirewallConfig = field(default_factory=FirewallConfig)
    explicitly_defined: bool = False

    @property
    def has_restrictions(self) -> bool:
        """True when egress is narrowed beyond the default ecosystem list."""
        if self.blocked:
            return True
        if not self.explicitly_defined:
            return False
        return not self.allowed or list(self.allowed) != ["defaults"]


@dataclass(frozen=True)
class SandboxConfig:
    """Agent sandbox settings.

    Attributes:
        agent: Sandbox kind ("awf" or "none").
        mounts: Extra mounts as "source:dest:ro|rw".

    """

    agent: str = "awf"
    mounts: tuple[Any, ...] = ()


@dataclass(frozen=True)
class EngineConfig:
    """Engine selection and overrides.

    Attributes:
        id: Engine id (copilot, claude, codex, gemini, custom).
        version: CLI version; the configured default when empty.
        model: Model override.
        env: Extra environment for the invocation step.
        max_turns: Turn limit (templatable).
        command: Custom executable replacing the installed CLI.
        args: Extra CLI arguments.
        agent: Custom agent name (Copilot).
        steps: Custom engine steps.
        sandbox: Sandbox settings.

    """

    id: str = "copilot"
    version: str = ""
    model: str = ""
    env: dict[str, str] = field(default_factory=dict)
    max_turns: str | None = None
    command: str = ""
    args: tuple[str, ...] = ()
    agent: str = ""
    steps: tuple[Any, ...] = ()
    sandbox: SandboxConfig = field(default_factory=SandboxConfig)


@dataclass(frozen=True)
class WorkflowData:
    """The semantic model of one workflow.

    Constructed once per compile by build_workflow_data() and read by
    every derivation pass.
    """

    name: str
    source_path: Path
    markdown: str
    on: dict[str, Any]
    engine: EngineConfig
    tools: ToolsConfig
    network: NetworkPermissions
    permissions: Permissions
    checkouts: tuple[CheckoutConfig, ...]
    safe_outputs: SafeOutputsConfig | None
    imports: ImportResult
    action_mode: ActionMode = ActionMode.DEV
    on_source: Any = None
    frontmatter_hash: str = ""
    description: str = ""
    tracker_id: str = ""
    version: str = ""
    strict: bool = False
    inlined_imports: bool = False
    features: dict[str, Any] = field(default_factory=dict)
    env: dict[str, Any] = field(default_factory=dict)
    steps: tuple[Any, ...] = ()
    post_steps: tuple[Any, ...] = ()
    runs_on: Any = "ubuntu-latest"
    timeout_minutes: int = 20
    concurrency: Any = None
    if_condition: str = ""
    safe_inputs: tuple[SafeInputTool, ...] = ()

    @property
    def uses_workflow_call(self) -> bool:
        """True when the `on:` section declares a workflow_call trigger."""
        return "workflow_call" in self.on

    def emitted_on(self, on: dict[str, Any]) -> Any:
        """Return the `on:` value to emit for the derived mapping on.

        A scalar or list trigger is written back as declared unless the
        compiler changed it.
        """
        if isinstance(self.on_source, (str, list)) and on == self.on:
            return self.on_source
        return on

    @property
    def import_paths(self) -> list[str]:
        """Resolved absolute paths of all imports, in traversal order."""
        return list(self.imports.import_paths)

    @property
    def agent_file(self) -> str | None:
        return self.imports.agent_file

    @property
    def workflow_id(self) -> str:
        """Filename stem of the source document."""
        return self.source_path.stem

    def is_feature_enabled(self, flag: str) -> bool:
        """Return True if features.<flag> is truthy."""
        value = self.features.get(flag)
        if isinstance(value, str):
            return value.strip().lower() not in ("", "false", "0", "no", "off")
        return bool(value)
