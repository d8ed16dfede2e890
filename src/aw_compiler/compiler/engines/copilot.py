"""GitHub Copilot CLI engine.

Copilot is installed with the official installer script rather than npm,
reads the MCP config passed with --additional-mcp-config, and runs
imported agent files natively with --agent.
"""

from __future__ import annotations

import logging
from pathlib import PurePosixPath
from typing import Any

from aw_compiler.compiler.context import CompileContext
from aw_compiler.compiler.engines.base import (
    AGENT_LOGS_DIR,
    PROMPT_PATH,
    NpmEngine,
)
from aw_compiler.compiler.engines.mcp import JSON_CONFIG_PATH
from aw_compiler.compiler.types import WorkflowData

logger = logging.getLogger(__name__)


class CopilotEngine(NpmEngine):
    """GitHub Copilot CLI."""

    engine_id = "copilot"
    name = "GitHub Copilot CLI"
    npm_package = "@github/copilot"
    cli_name = "copilot"
    secrets = ("COPILOT_GITHUB_TOKEN",)
    docs_url = "https://githubnext.github.io/gh-aw/reference/engines/#github-copilot-default"
    copilot_mcp_fields = True
    engine_domains = (
        "api.business.githubcopilot.com",
        "api.enterprise.githubcopilot.com",
        "api.github.com",
        "api.githubcopilot.com",
        "api.individual.githubcopilot.com",
        "github.com",
        "host.docker.internal",
        "raw.githubusercontent.com",
        "registry.npmjs.org",
    )
    web_fetch_support = True

    def install_command_steps(self, data: WorkflowData, ctx: CompileContext) -> list[dict[str, Any]]:
        version = self.resolved_version(data, ctx)
        logger.debug("Copilot CLI installer version: %s", version)
        return [
            {
                "name": "Install GitHub Copilot CLI",
                "run": f"/opt/gh-aw/actions/install_copilot_cli.sh {version}",
            }
        ]

    def tool_arguments(self, data: WorkflowData) -> list[str]:
        """Return --allow-tool flags, or --allow-all-tools when bash is unrestricted."""
        tools = data.tools
        if tools.bash is not None and "*" in tools.bash:
            return ["--allow-all-tools"]
        args: list[str] = []
        for command in tools.bash or ():
            args.append(f"--allow-tool 'shell({command})'")
        if tools.edit:
            args.append("--allow-tool write")
        if tools.github is not None:
            if tools.github.allowed:
                args.extend(f"--allow-tool 'github({name})'" for name in tools.github.allowed)
            else:
                args.append("--allow-tool github")
        if data.safe_outputs is not None and data.safe_outputs.configured_types():
            args.append("--allow-tool safeoutputs")
        for name, server in tools.custom.items():
            if server.allowed and "*" not in server.allowed:
                args.extend(f"--allow-tool '{name}({tool})'" for tool in server.allowed)
            else:
                args.append(f"--allow-tool {name}")
        for name in ("playwright", "serena"):
            if getattr(tools, name) is not None:
                args.append(f"--allow-tool {name}")
        if tools.web_fetch:
            args.append("--allow-tool web_fetch")
        return args

    def build_command(self, data: WorkflowData, ctx: CompileContext) -> str:
        executable = data.engine.command or "/usr/local/bin/copilot"
        parts = [
            executable,
            "--add-dir /tmp/gh-aw/",
            "--log-level all",
            f"--log-dir {AGENT_LOGS_DIR}",
            "--disable-builtin-mcps",
            '--add-dir "${GITHUB_WORKSPACE}"',
            f"--additional-mcp-config @{JSON_CONFIG_PATH}",
            self.model_argument(data),
        ]
        if data.agent_file:
            parts.append(f"--agent {PurePosixPath(data.agent_file).stem}")
        parts.extend(self.tool_arguments(data))
        parts.extend(data.engine.args)
        parts.append(f'--prompt "$(cat {PROMPT_PATH})"')
        return " ".join(parts)

    def engine_env(self, data: WorkflowData, ctx: CompileContext) -> dict[str, str]:
        return {
            "COPILOT_AGENT_RUNNER_TYPE": "STANDALONE",
            "COPILOT_GITHUB_TOKEN": "${{ secrets.COPILOT_GITHUB_TOKEN }}",
            "XDG_CONFIG_HOME": "/home/runner",
        }
