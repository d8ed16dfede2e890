"""MCP server configuration rendering.

collect_mcp_servers() builds one ordered mapping of server name to
server settings: built-in servers first in a fixed order (github,
playwright, serena, agentic-workflows, safeoutputs, safeinputs,
web-fetch), then user servers in declaration order. The mapping is
serialized as JSON (`{"mcpServers": {...}}`) for Copilot, Claude and
Gemini, and as TOML (`[mcp_servers."name"]` tables) for Codex.

Secrets are never written into the config file. A server env value that
references `${{ secrets.X }}` is replaced with `${KEY}` and KEY is
exported on the agent step instead.

Public API:
    McpFormat: "json" or "toml"
    extract_secret_name: Secret name referenced by an expression
    filter_env_for_secrets: Drop env entries referencing unapproved secrets
    github_mcp_token: Token expression of the GitHub MCP server
    collect_mcp_servers: Ordered server mapping for an engine
    mcp_secret_env: Env the agent step must export for the servers
    render_mcp_json, render_mcp_toml: Serializers
    mcp_config_steps: Steps that write the config file
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Iterable
from typing import Any, Literal

from aw_compiler.compiler.context import CompileContext
from aw_compiler.compiler.steps import app_token_step, quote_heredoc
from aw_compiler.compiler.types import GitHubToolConfig, McpServerConfig, WorkflowData
from aw_compiler.core.types import sorted_mapping

logger = logging.getLogger(__name__)

McpFormat = Literal["json", "toml"]

MCP_CONFIG_DIR = "/tmp/gh-aw/mcp-config"
JSON_CONFIG_PATH = f"{MCP_CONFIG_DIR}/mcp-servers.json"
TOML_CONFIG_PATH = f"{MCP_CONFIG_DIR}/config.toml"
MCP_LOGS_DIR = "/tmp/gh-aw/mcp-logs"

GITHUB_MCP_IMAGE = "ghcr.io/github/github-mcp-server"
DEFAULT_GITHUB_MCP_VERSION = "v0.26.3"
GITHUB_REMOTE_URL = "https://api.githubcopilot.com/mcp/"
GITHUB_TOKEN_ENV = "GITHUB_MCP_SERVER_TOKEN"
GITHUB_APP_TOKEN_STEP_ID = "github-mcp-app-token"
DEFAULT_GITHUB_MCP_TOKEN = (
    "${{ secrets.GH_AW_GITHUB_MCP_SERVER_TOKEN || secrets.GH_AW_GITHUB_TOKEN || secrets.GITHUB_TOKEN }}"
)
PLAYWRIGHT_IMAGE = "mcr.microsoft.com/playwright/mcp"
SERENA_IMAGE = "ghcr.io/oraios/serena:latest"
SAFE_OUTPUTS_SERVER = "safeoutputs"
SAFE_OUTPUTS_DIR = "/opt/gh-aw/safeoutputs"
SAFE_INPUTS_SERVER = "safeinputs"
SAFE_INPUTS_DIR = "/opt/gh-aw/safe-inputs"
SAFE_INPUTS_TOOLS_PATH = f"{SAFE_INPUTS_DIR}/tools.json"

_SECRET_PATTERN = re.compile(r"\$\{\{\s*secrets\.([A-Za-z_][A-Za-z0-9_]*)")
_ENV_KEY_PATTERN = re.compile(r"[^A-Z0-9_]")


def extract_secret_name(value: str) -> str:
    """Return the first secret referenced by an expression, or "".

    Examples:
        >>> extract_secret_name("${{ secrets.CODEX_API_KEY || secrets.OPENAI_API_KEY }}")
        'CODEX_API_KEY'
        >>> extract_secret_name("plain")
        ''

    """
    match = _SECRET_PATTERN.search(value)
    return match.group(1) if match else ""


def filter_env_for_secrets(env: dict[str, str], allowed: Iterable[str]) -> dict[str, str]:
    """Drop env entries whose value references a secret that is not allowed.

    An entry is kept when it references no secret, or when either its
    secret name or its env key is in allowed.
    """
    allowed_set = set(allowed)
    filtered: dict[str, str] = {}
    removed = 0
    for key, value in env.items():
        if "${{ secrets." in value:
            secret = extract_secret_name(value)
            if secret and secret not in allowed_set and key not in allowed_set:
                logger.debug("Removing unauthorized secret from env: %s (secret: %s)", key, secret)
                removed += 1
                continue
        filtered[key] = value
    logger.debug("Filtered environment variables: kept=%d, removed=%d", len(filtered), removed)
    return filtered


def github_mcp_token(data: WorkflowData) -> str:
    """Token expression the GitHub MCP server authenticates with."""
    github = data.tools.github
    if github is None:
        return ""
    if github.app is not None:
        return f"${{{{ steps.{GITHUB_APP_TOKEN_STEP_ID}.outputs.token }}}}"
    return github.github_token or DEFAULT_GITHUB_MCP_TOKEN


def _secret_env_key(server: str, key: str) -> str:
    return _ENV_KEY_PATTERN.sub("_", f"MCP_{server}_{key}".upper())


def _server_env(server: McpServerConfig) -> dict[str, str]:
    env: dict[str, str] = {}
    for key, value in server.env.items():
        if "${{" in value:
            env[key] = f"${{{_secret_env_key(server.name, key)}}}"
        else:
            env[key] = value
    return env


def mcp_secret_env(data: WorkflowData) -> dict[str, str]:
    """Env the agent step exports so the servers can expand `${KEY}` references."""
    env: dict[str, str] = {}
    if data.tools.github is not None:
        env[GITHUB_TOKEN_ENV] = github_mcp_token(data)
    for server in data.tools.custom.values():
        for key, value in server.env.items():
            if "${{" in value:
                env[_secret_env_key(server.name, key)] = value
    for tool in data.safe_inputs:
        env.update(tool.env)
    return env


def _github_server(github: GitHubToolConfig, copilot_fields: bool) -> dict[str, Any]:
    toolsets = ",".join(github.toolsets)
    if github.mode == "remote":
        headers = {"Authorization": f"Bearer ${{{GITHUB_TOKEN_ENV}}}", "X-MCP-Toolsets": toolsets}
        if github.read_only:
            headers["X-MCP-Readonly"] = "true"
        server: dict[str, Any] = {"type": "http", "url": GITHUB_REMOTE_URL, "headers": headers}
    else:
        args = ["run", "-i", "--rm", "-e", "GITHUB_PERSONAL_ACCESS_TOKEN"]
        if github.read_only:
            args += ["-e", "GITHUB_READ_ONLY=1"]
        args += ["-e", f"GITHUB_TOOLSETS={toolsets}"]
        args.append(f"{GITHUB_MCP_IMAGE}:{github.version or DEFAULT_GITHUB_MCP_VERSION}")
        server = {}
        if copilot_fields:
            server["type"] = "local"
        server["command"] = "docker"
        server["args"] = args
        server["env"] = {"GITHUB_PERSONAL_ACCESS_TOKEN": f"${{{GITHUB_TOKEN_ENV}}}"}
    if github.guard_policy.is_set:
        server["guard-policies"] = {
            "allow-only": {
                "repos": github.guard_policy.repos,
                "min-integrity": github.guard_policy.min_integrity,
            }
        }
    if copilot_fields:
        server["tools"] = list(github.allowed) or ["*"]
    return server


def _stdio_server(
    command: str, args: list[str], copilot_fields: bool, env: dict[str, str] | None = None
) -> dict[str, Any]:
    server: dict[str, Any] = {}
    if copilot_fields:
        server["type"] = "local"
    server["command"] = command
    server["args"] = args
    if env:
        server["env"] = env
    if copilot_fields:
        server["tools"] = ["*"]
    return server


def _custom_server(server: McpServerConfig, copilot_fields: bool) -> dict[str, Any]:
    entry: dict[str, Any] = {}
    if copilot_fields:
        entry["type"] = "http" if server.type == "http" else "local"
    if server.type == "http":
        entry["url"] = server.url
        if server.headers:
            entry["headers"] = sorted_mapping(server.headers)
    else:
        if server.container:
            entry["container"] = server.container
        if server.command:
            entry["command"] = server.command
        if server.args:
            entry["args"] = list(server.args)
        if server.mounts:
            entry["mounts"] = list(server.mounts)
        env = _server_env(server)
        if env:
            entry["env"] = sorted_mapping(env)
    if copilot_fields:
        entry["tools"] = list(server.allowed) or ["*"]
    elif server.allowed:
        entry["allowed"] = list(server.allowed)
    return entry


def collect_mcp_servers(
    data: WorkflowData,
    copilot_fields: bool = False,
    supports_web_fetch: bool = False,
) -> dict[str, dict[str, Any]]:
    """Return the ordered server mapping for data.

    Args:
        data: Workflow model.
        copilot_fields: Add `type` and `tools` fields (Copilot CLI format).
        supports_web_fetch: The engine fetches URLs itself; no fetch server.

    """
    tools = data.tools
    servers: dict[str, dict[str, Any]] = {}
    if tools.github is not None:
        servers["github"] = _github_server(tools.github, copilot_fields)
    if tools.playwright is not None:
        image = PLAYWRIGHT_IMAGE
        if tools.playwright.version:
            image += f":{tools.playwright.version}"
        args = ["run", "-i", "--rm", "--init", image]
        args += ["--output-dir", f"{MCP_LOGS_DIR}/playwright"]
        if tools.playwright.allowed_domains:
            args += ["--allowed-hosts", ";".join(tools.playwright.allowed_domains)]
        servers["playwright"] = _stdio_server("docker", args, copilot_fields)
    if tools.serena is not None:
        if tools.serena.mode == "local":
            command = "uvx"
            args = ["--from", "git+https://github.com/oraios/serena", "serena"]
        else:
            command = "docker"
            args = [
                "run",
                "-i",
                "--rm",
                "-v",
                "${GITHUB_WORKSPACE}:${GITHUB_WORKSPACE}:rw",
                SERENA_IMAGE,
                "serena",
            ]
        args += ["start-mcp-server", "--context", "codex", "--project", "${GITHUB_WORKSPACE}"]
        servers["serena"] = _stdio_server(command, args, copilot_fields)
    if tools.agentic_workflows:
        servers["agentic_workflows"] = _stdio_server(
            "gh", ["aw", "mcp-server"], copilot_fields, {"GITHUB_TOKEN": f"${{{GITHUB_TOKEN_ENV}}}"}
        )
    if data.safe_outputs is not None and data.safe_outputs.configured_types():
        servers[SAFE_OUTPUTS_SERVER] = _stdio_server(
            "node",
            [f"{SAFE_OUTPUTS_DIR}/mcp-server.cjs"],
            copilot_fields,
            {
                "GH_AW_SAFE_OUTPUTS": "${GH_AW_SAFE_OUTPUTS}",
                "GH_AW_SAFE_OUTPUTS_CONFIG_PATH": f"{SAFE_OUTPUTS_DIR}/config.json",
            },
        )
    if data.safe_inputs:
        inputs_env = {"GH_AW_SAFE_INPUTS_TOOLS_PATH": SAFE_INPUTS_TOOLS_PATH}
        for tool in data.safe_inputs:
            inputs_env.update({key: f"${{{key}}}" for key in tool.env})
        servers[SAFE_INPUTS_SERVER] = _stdio_server(
            "node", [f"{SAFE_INPUTS_DIR}/mcp-server.cjs"], copilot_fields, sorted_mapping(inputs_env)
        )
    if tools.web_fetch and not supports_web_fetch:
        fetch: dict[str, Any] = {"container": "mcp/fetch"}
        if copilot_fields:
            fetch = {"type": "local", "container": "mcp/fetch", "tools": ["*"]}
        servers["web-fetch"] = fetch
    for name, server in tools.custom.items():
        if name in servers:
            logger.debug("Skipping MCP server %s: name already used by a built-in server", name)
            continue
        servers[name] = _custom_server(server, copilot_fields)
    logger.debug("Collected %d MCP server(s): %s", len(servers), ", ".join(servers))
    return servers


def render_mcp_json(servers: dict[str, dict[str, Any]]) -> str:
    """Serialize servers as `{"mcpServers": {...}}` with insertion order kept."""
    return json.dumps({"mcpServers": servers}, indent=2)


def _toml_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, (list, tuple)):
        if not value:
            return "[]"
        items = "".join(f"  {_toml_value(item)},\n" for item in value)
        return f"[\n{items}]"
    if isinstance(value, dict):
        inner = ", ".join(f"{json.dumps(str(k))} = {_toml_value(v)}" for k, v in value.items())
        return f"{{ {inner} }}"
    return json.dumps(str(value))


def _toml_key(key: str) -> str:
    return key if re.fullmatch(r"[A-Za-z0-9_-]+", key) else json.dumps(key)


def render_mcp_toml(servers: dict[str, dict[str, Any]]) -> str:
    """Serialize servers as Codex `[mcp_servers."name"]` tables.

    Nested mappings (env, headers) become sub-tables so keys stay readable.
    """
    lines = ["[history]", 'persistence = "none"']
    for name, server in servers.items():
        lines.append("")
        lines.append(f'[mcp_servers."{name}"]')
        nested: list[tuple[str, dict[str, Any]]] = []
        for key, value in server.items():
            if isinstance(value, dict) and key in ("env", "headers"):
                nested.append((key, value))
                continue
            lines.append(f"{key} = {_toml_value(value)}")
        for key, table in nested:
            lines.append("")
            lines.append(f'[mcp_servers."{name}".{key}]')
            for env_key, env_value in table.items():
                lines.append(f"{_toml_key(env_key)} = {_toml_value(env_value)}")
    return "\n".join(lines) + "\n"


def mcp_config_steps(
    data: WorkflowData,
    ctx: CompileContext,
    mcp_format: McpFormat = "json",
    copilot_fields: bool = False,
    supports_web_fetch: bool = False,
) -> list[dict[str, Any]]:
    """Return the steps that write the MCP config file for the agent.

    A GitHub App configured on the GitHub tool adds a token minting step
    before the config is written. Safe-input tool definitions are written
    to their own file for the safeinputs server.
    """
    steps: list[dict[str, Any]] = []
    github = data.tools.github
    if github is not None and github.app is not None:
        steps.append(
            app_token_step(
                ctx, github.app, GITHUB_APP_TOKEN_STEP_ID, name="Generate GitHub App token for MCP"
            )
        )
    if data.safe_inputs:
        tools_json = json.dumps({tool.name: tool.to_dict() for tool in data.safe_inputs}, indent=2)
        steps.append(
            {
                "name": "Setup Safe Inputs",
                "run": f"mkdir -p {SAFE_INPUTS_DIR}\n"
                + quote_heredoc(SAFE_INPUTS_TOOLS_PATH, tools_json, "GH_AW_SAFE_INPUTS_EOF"),
            }
        )
    servers = collect_mcp_servers(data, copilot_fields, supports_web_fetch)
    if mcp_format == "toml":
        path, content = TOML_CONFIG_PATH, render_mcp_toml(servers)
    else:
        path, content = JSON_CONFIG_PATH, render_mcp_json(servers)
    steps.append(
        {
            "name": "Setup MCPs",
            "run": f"mkdir -p {MCP_CONFIG_DIR}\n" + quote_heredoc(path, content, "GH_AW_MCP_CONFIG_EOF"),
        }
    )
    return steps
