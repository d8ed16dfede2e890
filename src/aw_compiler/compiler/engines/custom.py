"""Custom engine: the workflow supplies its own agent steps.

Nothing is installed and no secret is validated. Each user step from
`engine.steps` runs with the prompt and MCP config paths in its env.
"""

from __future__ import annotations

import copy
import logging
from typing import Any

from aw_compiler.compiler.context import CompileContext
from aw_compiler.compiler.engines.base import PROMPT_PATH
from aw_compiler.compiler.engines.mcp import JSON_CONFIG_PATH, mcp_config_steps
from aw_compiler.compiler.firewall import expand_allowed_domains
from aw_compiler.compiler.types import WorkflowData
from aw_compiler.core.types import sorted_mapping

logger = logging.getLogger(__name__)


class CustomEngine:
    """User-defined agent steps."""

    @property
    def id(self) -> str:
        return "custom"

    @property
    def display_name(self) -> str:
        return "Custom Steps"

    @property
    def supports_firewall(self) -> bool:
        return False

    @property
    def supports_web_fetch(self) -> bool:
        return False

    @property
    def supports_tools_allowlist(self) -> bool:
        return False

    @property
    def experimental(self) -> bool:
        return False

    def required_secrets(self, data: WorkflowData) -> list[str]:
        return []

    def resolved_version(self, data: WorkflowData, ctx: CompileContext) -> str:
        return data.engine.version

    def firewall_enabled(self, data: WorkflowData) -> bool:
        return False

    def allowed_domains(self, data: WorkflowData) -> list[str]:
        return expand_allowed_domains(data.network.allowed)

    def installation_steps(self, data: WorkflowData, ctx: CompileContext) -> list[dict[str, Any]]:
        return []

    def secret_validation_step(
        self, data: WorkflowData, ctx: CompileContext
    ) -> dict[str, Any] | None:
        return None

    def mcp_config_steps(self, data: WorkflowData, ctx: CompileContext) -> list[dict[str, Any]]:
        return mcp_config_steps(data, ctx, mcp_format="json")

    def execution_steps(self, data: WorkflowData, ctx: CompileContext) -> list[dict[str, Any]]:
        base_env: dict[str, str] = {
            "GH_AW_MCP_CONFIG": JSON_CONFIG_PATH,
            "GH_AW_PROMPT": PROMPT_PATH,
        }
        if data.safe_outputs is not None:
            base_env["GH_AW_SAFE_OUTPUTS"] = "${{ env.GH_AW_SAFE_OUTPUTS }}"
        if data.engine.max_turns:
            base_env["GH_AW_MAX_TURNS"] = str(data.engine.max_turns)
        base_env.update(data.engine.env)

        steps: list[dict[str, Any]] = []
        for raw in data.engine.steps:
            if not isinstance(raw, dict):
                continue
            step = copy.deepcopy(raw)
            env = dict(base_env)
            user_env = step.pop("env", None)
            if isinstance(user_env, dict):
                env.update({str(k): v for k, v in user_env.items()})
            step["env"] = sorted_mapping(env)
            steps.append(step)
        if not steps:
            ctx.warnings.warn("Custom engine has no steps; the agent job runs no agent")
        logger.debug("Custom engine emitted %d step(s)", len(steps))
        return steps
