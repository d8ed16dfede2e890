"""Claude Code engine."""

from __future__ import annotations

from aw_compiler.compiler.context import CompileContext
from aw_compiler.compiler.engines.base import (
    AGENT_STDIO_LOG,
    PROMPT_PATH,
    NpmEngine,
    resolve_agent_file_path,
)
from aw_compiler.compiler.engines.mcp import JSON_CONFIG_PATH, SAFE_OUTPUTS_SERVER
from aw_compiler.compiler.types import WorkflowData

# Read-only tools Claude Code always gets
_DEFAULT_TOOLS = ("ExitPlanMode", "Glob", "Grep", "LS", "NotebookRead", "Read", "Task", "TodoWrite")
_EDIT_TOOLS = ("Edit", "MultiEdit", "NotebookEdit", "Write")


class ClaudeEngine(NpmEngine):
    """Anthropic Claude Code CLI."""

    engine_id = "claude"
    name = "Claude Code"
    npm_package = "@anthropic-ai/claude-code"
    cli_name = "claude"
    secrets = ("CLAUDE_CODE_OAUTH_TOKEN", "ANTHROPIC_API_KEY")
    docs_url = "https://githubnext.github.io/gh-aw/reference/engines/#anthropic-claude-code"
    engine_domains = (
        "anthropic.com",
        "api.anthropic.com",
        "api.github.com",
        "github.com",
        "registry.npmjs.org",
        "sentry.io",
        "statsig.anthropic.com",
    )
    web_fetch_support = True

    def allowed_tools(self, data: WorkflowData) -> list[str]:
        """Return the sorted --allowed-tools entries for data."""
        tools = data.tools
        allowed: set[str] = set(_DEFAULT_TOOLS)
        if tools.bash is not None:
            if "*" in tools.bash:
                allowed.add("Bash")
            else:
                allowed.update(f"Bash({command})" for command in tools.bash)
        if tools.edit:
            allowed.update(_EDIT_TOOLS)
        if tools.web_fetch:
            allowed.add("WebFetch")
        if tools.web_search:
            allowed.add("WebSearch")
        if tools.github is not None:
            if tools.github.allowed:
                allowed.update(f"mcp__github__{name}" for name in tools.github.allowed)
            else:
                allowed.add("mcp__github")
        for name in ("playwright", "serena"):
            if getattr(tools, name) is not None:
                allowed.add(f"mcp__{name}")
        if data.safe_outputs is not None and data.safe_outputs.configured_types():
            allowed.add(f"mcp__{SAFE_OUTPUTS_SERVER}")
        for name, server in tools.custom.items():
            if server.allowed and "*" not in server.allowed:
                allowed.update(f"mcp__{name}__{tool}" for tool in server.allowed)
            else:
                allowed.add(f"mcp__{name}")
        return sorted(allowed)

    def build_command(self, data: WorkflowData, ctx: CompileContext) -> str:
        executable = data.engine.command or "claude"
        parts = [
            executable,
            "--print",
            "--disable-slash-commands",
            "--no-chrome",
        ]
        if data.engine.max_turns:
            parts.append(f"--max-turns {data.engine.max_turns}")
        parts += [
            f"--mcp-config {JSON_CONFIG_PATH}",
            f"--allowed-tools '{','.join(self.allowed_tools(data))}'",
            f"--debug-file {AGENT_STDIO_LOG}",
            "--verbose",
            "--permission-mode bypassPermissions",
            "--output-format stream-json",
            self.model_argument(data),
        ]
        parts.extend(data.engine.args)
        if data.agent_file:
            agent = resolve_agent_file_path(data.agent_file)
            parts.append(f'"$(cat {agent}; echo; cat {PROMPT_PATH})"')
        else:
            parts.append(f'"$(cat {PROMPT_PATH})"')
        return " ".join(parts)

    def engine_env(self, data: WorkflowData, ctx: CompileContext) -> dict[str, str]:
        env: dict[str, str] = {
            "ANTHROPIC_API_KEY": "${{ secrets.ANTHROPIC_API_KEY }}",
            "CLAUDE_CODE_OAUTH_TOKEN": "${{ secrets.CLAUDE_CODE_OAUTH_TOKEN }}",
            "DISABLE_BUG_COMMAND": "1",
            "DISABLE_ERROR_REPORTING": "1",
            "DISABLE_TELEMETRY": "1",
            "MCP_TIMEOUT": "120000",
            "MCP_TOOL_TIMEOUT": "60000",
        }
        if data.engine.max_turns:
            env["GH_AW_MAX_TURNS"] = str(data.engine.max_turns)
        return env
