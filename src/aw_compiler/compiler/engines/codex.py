"""OpenAI Codex CLI engine.

Codex reads its MCP servers from `$CODEX_HOME/config.toml`, so this is
the only engine rendering TOML.
"""

from __future__ import annotations

from aw_compiler.compiler.context import CompileContext
from aw_compiler.compiler.engines.base import PROMPT_PATH, NpmEngine, resolve_agent_file_path
from aw_compiler.compiler.engines.mcp import MCP_CONFIG_DIR
from aw_compiler.compiler.types import WorkflowData

_API_KEY = "${{ secrets.CODEX_API_KEY || secrets.OPENAI_API_KEY }}"


class CodexEngine(NpmEngine):
    """OpenAI Codex CLI."""

    engine_id = "codex"
    name = "Codex"
    npm_package = "@openai/codex"
    cli_name = "codex"
    secrets = ("CODEX_API_KEY", "OPENAI_API_KEY")
    docs_url = "https://githubnext.github.io/gh-aw/reference/engines/#openai-codex"
    mcp_format = "toml"
    engine_domains = (
        "api.github.com",
        "api.openai.com",
        "github.com",
        "openai.com",
        "registry.npmjs.org",
    )

    def build_command(self, data: WorkflowData, ctx: CompileContext) -> str:
        executable = data.engine.command or "codex"
        parts = [executable, self.model_argument(data, flag="-c model="), "exec", "--full-auto"]
        parts.append("--skip-git-repo-check")
        parts.extend(data.engine.args)
        if data.agent_file:
            agent = resolve_agent_file_path(data.agent_file)
            parts.append(f'"$(cat {agent}; echo; cat {PROMPT_PATH})"')
        else:
            parts.append(f'"$(cat {PROMPT_PATH})"')
        return " ".join(parts)

    def engine_env(self, data: WorkflowData, ctx: CompileContext) -> dict[str, str]:
        return {
            "CODEX_API_KEY": _API_KEY,
            "CODEX_HOME": MCP_CONFIG_DIR,
            "OPENAI_API_KEY": _API_KEY,
            "RUST_LOG": "trace,hyper_util=info,mio=info,reqwest=info,os_info=info,codex_otel=warn",
        }
