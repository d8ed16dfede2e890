"""Coding agent engines.

Engines are loaded by id with get_engine(); each lives in its own module
so adding an engine needs no registry change.
"""

from aw_compiler.compiler.engines.base import (
    PROMPT_PATH,
    CodingAgentEngine,
    NpmEngine,
    get_engine,
    npm_bin_path_setup,
    resolve_agent_file_path,
)
from aw_compiler.compiler.engines.mcp import (
    collect_mcp_servers,
    filter_env_for_secrets,
    render_mcp_json,
    render_mcp_toml,
)

__all__ = [
    "PROMPT_PATH",
    "CodingAgentEngine",
    "NpmEngine",
    "collect_mcp_servers",
    "filter_env_for_secrets",
    "get_engine",
    "npm_bin_path_setup",
    "render_mcp_json",
    "render_mcp_toml",
    "resolve_agent_file_path",
]
