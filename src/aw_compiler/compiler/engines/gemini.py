"""Google Gemini CLI engine."""

from __future__ import annotations

from aw_compiler.compiler.context import CompileContext
from aw_compiler.compiler.engines.base import PROMPT_PATH, NpmEngine, resolve_agent_file_path
from aw_compiler.compiler.engines.mcp import JSON_CONFIG_PATH
from aw_compiler.compiler.types import WorkflowData


class GeminiEngine(NpmEngine):
    """Google Gemini CLI.

    The MCP config file doubles as Gemini system settings, since both use
    an `mcpServers` mapping.
    """

    engine_id = "gemini"
    name = "Google Gemini CLI"
    npm_package = "@google/gemini-cli"
    cli_name = "gemini"
    secrets = ("GEMINI_API_KEY",)
    docs_url = "https://githubnext.github.io/gh-aw/reference/engines/#google-gemini-cli"
    engine_domains = (
        "api.github.com",
        "generativelanguage.googleapis.com",
        "github.com",
        "registry.npmjs.org",
    )
    is_experimental = True

    def build_command(self, data: WorkflowData, ctx: CompileContext) -> str:
        executable = data.engine.command or "gemini"
        parts = [executable, "--yolo", "--output-format stream-json", self.model_argument(data)]
        parts.extend(data.engine.args)
        if data.agent_file:
            agent = resolve_agent_file_path(data.agent_file)
            parts.append(f'--prompt "$(cat {agent}; echo; cat {PROMPT_PATH})"')
        else:
            parts.append(f'--prompt "$(cat {PROMPT_PATH})"')
        return " ".join(parts)

    def engine_env(self, data: WorkflowData, ctx: CompileContext) -> dict[str, str]:
        return {
            "GEMINI_API_KEY": "${{ secrets.GEMINI_API_KEY }}",
            "GEMINI_CLI_SYSTEM_SETTINGS_PATH": JSON_CONFIG_PATH,
        }
