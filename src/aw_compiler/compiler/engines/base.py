"""Coding agent engine protocol, shared engine behavior and dynamic loading.

Each engine lives in its own module `aw_compiler.compiler.engines.<id>`
and defines a class named `<Id>Engine` implementing CodingAgentEngine.
Most engines are npm-distributed CLIs and derive from NpmEngine, which
supplies installation, secret validation, MCP setup and the invocation
step; subclasses only describe their CLI and build its command line.

Public API:
    CodingAgentEngine: Protocol every engine implements
    NpmEngine: Base class for npm-installed CLIs
    get_engine: Load an engine by id
    npm_install_steps: setup-node + `npm install -g` steps
    npm_bin_path_setup: Shell snippet putting tool-cache bin dirs on PATH
    format_run_step: Step with a run command and sorted env
    resolve_agent_file_path: Quoted workspace path of an agent file
    PROMPT_PATH: Where the activation job writes the prompt
"""

from __future__ import annotations

import importlib
import logging
import re
import shlex
from typing import Any, ClassVar, Protocol, runtime_checkable

from aw_compiler.compiler.context import CompileContext
from aw_compiler.compiler.engines.mcp import (
    McpFormat,
    filter_env_for_secrets,
    mcp_config_steps,
    mcp_secret_env,
)
from aw_compiler.compiler.firewall import (
    expand_allowed_domains,
    firewall_install_step,
    firewall_log_steps,
    is_firewall_enabled,
    wrap_command,
)
from aw_compiler.compiler.types import WorkflowData
from aw_compiler.core.exceptions import SchemaError
from aw_compiler.core.types import sorted_mapping

logger = logging.getLogger(__name__)

PROMPT_PATH = "/tmp/gh-aw/aw-prompts/prompt.txt"
AGENT_LOGS_DIR = "/tmp/gh-aw/sandbox/agent/logs/"
AGENT_STDIO_LOG = "/tmp/gh-aw/agent-stdio.log"
NODE_VERSION = "24"

# Engine ids: lowercase letters, digits, hyphens, underscores; no dots
_ENGINE_ID_PATTERN = re.compile(r"^[a-z][a-z0-9_-]*$")


@runtime_checkable
class CodingAgentEngine(Protocol):
    """Protocol for AI coding agent engines.

    Attributes:
        id: Engine id used in `engine:` (e.g. 'copilot').
        display_name: Human-readable name.

    """

    @property
    def id(self) -> str: ...

    @property
    def display_name(self) -> str: ...

    @property
    def supports_firewall(self) -> bool: ...

    @property
    def supports_web_fetch(self) -> bool: ...

    @property
    def supports_tools_allowlist(self) -> bool: ...

    @property
    def experimental(self) -> bool: ...

    def resolved_version(self, data: WorkflowData, ctx: CompileContext) -> str:
        """CLI version to install."""
        ...

    def firewall_enabled(self, data: WorkflowData) -> bool:
        """True when the invocation runs inside the firewall."""
        ...

    def allowed_domains(self, data: WorkflowData) -> list[str]:
        """Domains the agent may reach when the firewall is enabled."""
        ...

    def installation_steps(self, data: WorkflowData, ctx: CompileContext) -> list[dict[str, Any]]:
        """Steps installing the CLI (and firewall) in the agent job."""
        ...

    def secret_validation_step(
        self, data: WorkflowData, ctx: CompileContext
    ) -> dict[str, Any] | None:
        """Activation step failing early when no credential secret is set."""
        ...

    def mcp_config_steps(self, data: WorkflowData, ctx: CompileContext) -> list[dict[str, Any]]:
        """Steps writing the engine's MCP config file."""
        ...

    def execution_steps(self, data: WorkflowData, ctx: CompileContext) -> list[dict[str, Any]]:
        """Steps running the agent, followed by firewall log steps."""
        ...


def npm_bin_path_setup() -> str:
    """Shell snippet putting hosted tool-cache bin directories on PATH.

    `$GOROOT/bin` is re-prepended because the find order is alphabetic
    and an older Go can shadow the one selected by setup-go.
    """
    return (
        "export PATH=\"$(find /opt/hostedtoolcache -maxdepth 4 -type d -name bin 2>/dev/null "
        "| tr '\\n' ':')$PATH\"; [ -n \"$GOROOT\" ] && export PATH=\"$GOROOT/bin:$PATH\" || true"
    )


def npm_install_steps(
    ctx: CompileContext, package: str, version: str, step_name: str
) -> list[dict[str, Any]]:
    """Return setup-node plus a global npm install of package@version."""
    return [
        {
            "name": "Setup Node.js",
            "uses": ctx.pin("actions/setup-node"),
            "with": {"node-version": NODE_VERSION, "package-manager-cache": False},
        },
        {"name": step_name, "run": f"npm install -g --silent {package}@{version}"},
    ]


def format_run_step(
    name: str, command: str, env: dict[str, str], step_id: str = "", **extra: Any
) -> dict[str, Any]:
    """Return a run step with env keys sorted for reproducible output."""
    step: dict[str, Any] = {"name": name}
    if step_id:
        step["id"] = step_id
    step.update(extra)
    step["run"] = command if command.endswith("\n") else command + "\n"
    if env:
        step["env"] = sorted_mapping(env)
    return step


def resolve_agent_file_path(agent_file: str) -> str:
    """Return the quoted workspace path of an imported agent file.

    Examples:
        >>> resolve_agent_file_path(".github/agents/reviewer.md")
        '"${GITHUB_WORKSPACE}/.github/agents/reviewer.md"'

    """
    return f'"${{GITHUB_WORKSPACE}}/{agent_file}"'


class NpmEngine:
    """Shared behavior of npm-distributed agent CLIs.

    Subclasses set the class attributes and implement build_command().
    """

    engine_id: ClassVar[str] = ""
    name: ClassVar[str] = ""
    npm_package: ClassVar[str] = ""
    cli_name: ClassVar[str] = ""
    secrets: ClassVar[tuple[str, ...]] = ()
    docs_url: ClassVar[str] = ""
    mcp_format: ClassVar[McpFormat] = "json"
    copilot_mcp_fields: ClassVar[bool] = False
    engine_domains: ClassVar[tuple[str, ...]] = ()
    firewall_support: ClassVar[bool] = True
    web_fetch_support: ClassVar[bool] = False
    tools_allowlist_support: ClassVar[bool] = True
    is_experimental: ClassVar[bool] = False

    @property
    def id(self) -> str:
        return self.engine_id

    @property
    def display_name(self) -> str:
        return self.name

    @property
    def execution_step_name(self) -> str:
        label = self.display_name
        return f"Execute {label}" if label.endswith(" CLI") else f"Execute {label} CLI"

    @property
    def supports_firewall(self) -> bool:
        return self.firewall_support

    @property
    def supports_web_fetch(self) -> bool:
        return self.web_fetch_support

    @property
    def supports_tools_allowlist(self) -> bool:
        return self.tools_allowlist_support

    @property
    def experimental(self) -> bool:
        return self.is_experimental

    @property
    def model_env_var(self) -> str:
        """Repository variable consulted when no model is configured."""
        return f"GH_AW_MODEL_AGENT_{self.engine_id.upper()}"

    def resolved_version(self, data: WorkflowData, ctx: CompileContext) -> str:
        return data.engine.version or ctx.config.engine_version(self.engine_id)

    def firewall_enabled(self, data: WorkflowData) -> bool:
        return is_firewall_enabled(data.network, self.supports_firewall, data.engine.sandbox.agent)

    def allowed_domains(self, data: WorkflowData) -> list[str]:
        return expand_allowed_domains(data.network.allowed, self.engine_domains)

    def install_command_steps(self, data: WorkflowData, ctx: CompileContext) -> list[dict[str, Any]]:
        """CLI installation; npm by default."""
        return npm_install_steps(
            ctx, self.npm_package, self.resolved_version(data, ctx), f"Install {self.name} CLI"
        )

    def installation_steps(self, data: WorkflowData, ctx: CompileContext) -> list[dict[str, Any]]:
        steps = []
        if data.engine.command:
            logger.debug("Custom command set for %s, skipping CLI installation", self.engine_id)
        else:
            steps.extend(self.install_command_steps(data, ctx))
        if self.firewall_enabled(data):
            version = data.network.firewall.version or ctx.config.firewall_version
            steps.append(firewall_install_step(version))
        return steps

    def secret_validation_step(
        self, data: WorkflowData, ctx: CompileContext
    ) -> dict[str, Any] | None:
        if not self.secrets:
            return None
        args = " ".join(self.secrets)
        return format_run_step(
            f"Validate {' or '.join(self.secrets)} secret",
            f"/opt/gh-aw/actions/validate_multi_secret.sh {args} '{self.name}' {self.docs_url}",
            {name: f"${{{{ secrets.{name} }}}}" for name in self.secrets},
            step_id="validate-secret",
        )

    def mcp_config_steps(self, data: WorkflowData, ctx: CompileContext) -> list[dict[str, Any]]:
        return mcp_config_steps(
            data,
            ctx,
            mcp_format=self.mcp_format,
            copilot_fields=self.copilot_mcp_fields,
            supports_web_fetch=self.supports_web_fetch,
        )

    def model_argument(self, data: WorkflowData, flag: str = "--model ") -> str:
        """Model flag with the literal model, or expanded from the repository variable.

        flag includes its separator ("--model " or "-c model=").
        """
        if data.engine.model:
            return f"{flag}{shlex.quote(data.engine.model)}"
        return f'${{{self.model_env_var}:+{flag}"${self.model_env_var}"}}'

    def build_command(self, data: WorkflowData, ctx: CompileContext) -> str:
        """Return the agent command line."""
        raise NotImplementedError

    def engine_env(self, data: WorkflowData, ctx: CompileContext) -> dict[str, str]:
        """Engine-specific env of the invocation step."""
        return {}

    def execution_env(self, data: WorkflowData, ctx: CompileContext) -> dict[str, str]:
        env: dict[str, str] = {
            "GH_AW_PROMPT": PROMPT_PATH,
            "GITHUB_WORKSPACE": "${{ github.workspace }}",
            "GITHUB_STEP_SUMMARY": "${{ env.GITHUB_STEP_SUMMARY }}",
        }
        if data.safe_outputs is not None:
            env["GH_AW_SAFE_OUTPUTS"] = "${{ env.GH_AW_SAFE_OUTPUTS }}"
        if not data.engine.model:
            env[self.model_env_var] = f"${{{{ vars.{self.model_env_var} || '' }}}}"
        env.update(self.engine_env(data, ctx))
        env.update(mcp_secret_env(data))
        env.update(data.engine.env)
        allowed = list(self.secrets) + list(mcp_secret_env(data)) + list(data.engine.env)
        return filter_env_for_secrets(env, allowed)

    def execution_steps(self, data: WorkflowData, ctx: CompileContext) -> list[dict[str, Any]]:
        command = self.build_command(data, ctx)
        firewall = self.firewall_enabled(data)
        if firewall:
            command = wrap_command(
                command, self.allowed_domains(data), data.network.firewall.log_level
            )
        run = (
            "set -o pipefail\n"
            f"{npm_bin_path_setup()}\n"
            f"{command} 2>&1 | tee {AGENT_STDIO_LOG}\n"
        )
        timeout = data.timeout_minutes
        steps = [
            format_run_step(
                self.execution_step_name,
                run,
                self.execution_env(data, ctx),
                step_id="agentic_execution",
                **{"timeout-minutes": timeout},
            )
        ]
        if firewall:
            steps.extend(firewall_log_steps(ctx, data.name))
        logger.debug(
            "Built %s execution step (firewall=%s, timeout=%d)", self.engine_id, firewall, timeout
        )
        return steps


def get_engine(engine_id: str) -> CodingAgentEngine:
    """Load an engine by id.

    Imports `aw_compiler.compiler.engines.<id>` (hyphens become
    underscores) and instantiates its `<Id>Engine` class.

    Raises:
        SchemaError: If the id is invalid or no engine module exists.

    """
    normalized = (engine_id or "").strip()
    if not _ENGINE_ID_PATTERN.fullmatch(normalized):
        raise SchemaError(
            f"Invalid engine id: '{engine_id}'\n"
            f"  Why it's needed: The engine id selects the engine module to load\n"
            f"  How to fix: Use lowercase letters, digits, hyphens, underscores only",
            field="engine",
        )
    module_name = normalized.replace("-", "_")
    module_path = f"aw_compiler.compiler.engines.{module_name}"
    try:
        module = importlib.import_module(module_path)
    except ModuleNotFoundError as e:
        if getattr(e, "name", None) in (module_path, module_name):
            raise SchemaError(
                f"Unknown engine: '{normalized}'\n"
                f"  Suggestion: Use one of copilot, claude, codex, gemini, custom",
                field="engine",
            ) from e
        raise

    class_name = "".join(word.capitalize() for word in module_name.split("_")) + "Engine"
    engine_class = getattr(module, class_name, None)
    if engine_class is None:
        raise SchemaError(
            f"Engine module missing engine class\n"
            f"  Module: {module_path}\n"
            f"  Expected class: {class_name}",
            field="engine",
        )
    engine: CodingAgentEngine = engine_class()
    logger.debug("Loaded engine %s from %s", normalized, module_path)
    return engine
