"""Construction of the typed workflow model from front-matter.

build_workflow_data() is the only place where the dynamic front-matter
mapping is interpreted. Every later pass reads the WorkflowData record it
returns. Parse functions raise SchemaError for values of the wrong shape;
semantic checks (ranges, mutual exclusion, guard policies) are left to
aw_compiler.compiler.validation so that they can be aggregated.

Public API:
    build_workflow_data: Front-matter + imports -> WorkflowData
    parse_engine_config: `engine:` -> EngineConfig
    parse_tools_config: merged `tools:` + `mcp-servers:` -> ToolsConfig
    parse_safe_inputs: `safe-inputs:` -> SafeInputTool records
    parse_network_permissions: `network:` -> NetworkPermissions
    parse_on_section: `on:` -> trigger mapping
    resolve_workflow_name: name key, first H1, or filename stem
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from aw_compiler.compiler.checkout import parse_checkout_configs
from aw_compiler.compiler.frontmatter import extract_workflow_name
from aw_compiler.compiler.imports import ImportResult, merge_tool_configs
from aw_compiler.compiler.permissions import parse_permissions
from aw_compiler.compiler.safe_outputs.config import parse_safe_outputs_config
from aw_compiler.compiler.safe_outputs.parsing import parse_app_config
from aw_compiler.compiler.types import (
    ActionMode,
    CacheMemoryEntry,
    EngineConfig,
    FirewallConfig,
    GitHubToolConfig,
    GuardPolicy,
    McpServerConfig,
    NetworkPermissions,
    PlaywrightToolConfig,
    RepoMemoryConfig,
    SafeInputTool,
    SandboxConfig,
    SerenaToolConfig,
    ToolsConfig,
    WorkflowData,
)
from aw_compiler.core.exceptions import SchemaError
from aw_compiler.core.types import as_string_list, normalize_templatable

logger = logging.getLogger(__name__)

DEFAULT_ENGINE = "copilot"
DEFAULT_TIMEOUT_MINUTES = 20

# Tool keys with built-in handling; every other key is a custom MCP server
BUILTIN_TOOLS = frozenset(
    {
        "github",
        "bash",
        "edit",
        "web-fetch",
        "web-search",
        "playwright",
        "serena",
        "cache-memory",
        "repo-memory",
        "agentic-workflows",
        "timeout",
        "startup-timeout",
    }
)


def _expect_mapping(value: Any, field_name: str) -> dict[str, Any]:
    if not isinstance(value, dict):
        raise SchemaError(
            f"{field_name} must be an object, got {type(value).__name__}", field=field_name
        )
    return value


def _string(value: Any, field_name: str, default: str = "") -> str:
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, (str, int, float)):
        raise SchemaError(f"{field_name} must be a string", field=field_name)
    return str(value)


def _string_tuple(value: Any, field_name: str) -> tuple[str, ...]:
    if value is None:
        return ()
    items = as_string_list(value)
    if items is None:
        raise SchemaError(f"{field_name} must be a string or an array of strings", field=field_name)
    return tuple(items)


def _env_mapping(value: Any, field_name: str) -> dict[str, str]:
    if value is None:
        return {}
    env = _expect_mapping(value, field_name)
    result: dict[str, str] = {}
    for key, item in env.items():
        if isinstance(item, bool):
            result[str(key)] = "true" if item else "false"
        elif item is None:
            result[str(key)] = ""
        else:
            result[str(key)] = str(item)
    return result


# =============================================================================
# Triggers and identity
# =============================================================================


def parse_on_section(value: Any) -> dict[str, Any]:
    """Normalize `on:` to a mapping of event name to configuration.

    A single event name or a list of names becomes a mapping whose
    values are None.

    Raises:
        SchemaError: When `on:` is missing or of an unsupported type.

    """
    if value is None:
        raise SchemaError(
            "missing required 'on' field\n"
            "  Suggestion: Add a trigger, e.g. 'on: workflow_dispatch'",
            field="on",
        )
    if isinstance(value, str):
        return {value: None}
    if isinstance(value, list):
        events: dict[str, Any] = {}
        for item in value:
            if not isinstance(item, str):
                raise SchemaError("on: event list must contain only strings", field="on")
            events[item] = None
        return events
    if isinstance(value, dict):
        return {str(key): item for key, item in value.items()}
    raise SchemaError(f"on must be a string, array or object, got {type(value).__name__}", field="on")


def resolve_workflow_name(frontmatter: dict[str, Any], markdown: str, source_path: Path) -> str:
    """Return the `name` key, else the first H1 of the body, else the filename stem."""
    name = frontmatter.get("name")
    if isinstance(name, str) and name.strip():
        return name.strip()
    heading = extract_workflow_name(markdown)
    if heading:
        return heading
    return source_path.stem


# =============================================================================
# Engine
# =============================================================================


def _parse_sandbox(value: Any) -> SandboxConfig:
    if value is None:
        return SandboxConfig()
    sandbox = _expect_mapping(value, "sandbox")
    agent = sandbox.get("agent", "awf")
    mounts: tuple[Any, ...] = ()
    if agent is False:
        agent = "none"
    elif isinstance(agent, dict):
        mounts = tuple(agent.get("mounts") or ())
        agent = _string(agent.get("id"), "sandbox.agent.id", "awf")
    elif not isinstance(agent, str):
        raise SchemaError("sandbox.agent must be a string, false or an object", field="sandbox.agent")
    if agent not in ("awf", "none"):
        raise SchemaError(
            f"sandbox.agent must be 'awf' or 'none', got '{agent}'", field="sandbox.agent"
        )
    return SandboxConfig(agent=agent, mounts=mounts)


def parse_engine_config(value: Any, sandbox: Any = None) -> EngineConfig:
    """Convert an `engine:` value (id string or mapping).

    Raises:
        SchemaError: On malformed values.

    """
    sandbox_config = _parse_sandbox(sandbox)
    if value is None:
        return EngineConfig(id=DEFAULT_ENGINE, sandbox=sandbox_config)
    if isinstance(value, str):
        return EngineConfig(id=value.strip(), sandbox=sandbox_config)
    engine = _expect_mapping(value, "engine")
    engine_id = engine.get("id")
    if not isinstance(engine_id, str) or not engine_id.strip():
        raise SchemaError("engine.id is required when engine is an object", field="engine.id")

    max_turns = engine.get("max-turns")
    normalized_turns = normalize_templatable(max_turns) if max_turns is not None else None
    if max_turns is not None and normalized_turns is None:
        raise SchemaError(
            "engine.max-turns must be an integer or an expression", field="engine.max-turns"
        )

    steps = engine.get("steps") or []
    if not isinstance(steps, list):
        raise SchemaError("engine.steps must be an array", field="engine.steps")

    return EngineConfig(
        id=engine_id.strip(),
        version=_string(engine.get("version"), "engine.version"),
        model=_string(engine.get("model"), "engine.model"),
        env=_env_mapping(engine.get("env"), "engine.env"),
        max_turns=normalized_turns,
        command=_string(engine.get("command"), "engine.command"),
        args=_string_tuple(engine.get("args"), "engine.args"),
        agent=_string(engine.get("agent"), "engine.agent"),
        steps=tuple(steps),
        sandbox=sandbox_config,
    )


# =============================================================================
# Tools
# =============================================================================


def _parse_github_tool(value: Any) -> GitHubToolConfig | None:
    if value is False:
        return None
    if value is None or value is True:
        return GitHubToolConfig()
    github = _expect_mapping(value, "tools.github")
    toolsets = _string_tuple(github.get("toolsets"), "tools.github.toolsets") or ("default",)
    mode = _string(github.get("mode"), "tools.github.mode", "local")
    if mode not in ("local", "remote"):
        raise SchemaError(
            f"tools.github.mode must be 'local' or 'remote', got '{mode}'", field="tools.github.mode"
        )
    read_only = github.get("read-only", True)
    if not isinstance(read_only, bool):
        raise SchemaError("tools.github.read-only must be a boolean", field="tools.github.read-only")
    return GitHubToolConfig(
        mode=mode,
        toolsets=toolsets,
        allowed=_string_tuple(github.get("allowed"), "tools.github.allowed"),
        github_token=_string(github.get("github-token"), "tools.github.github-token"),
        app=parse_app_config(github.get("app"), "tools.github.app"),
        read_only=read_only,
        guard_policy=GuardPolicy(repos=github.get("repos"), min_integrity=github.get("min-integrity")),
        version=_string(github.get("version"), "tools.github.version"),
    )


def _parse_bash(value: Any) -> tuple[str, ...] | None:
    # `bash:` with no value is rejected by the validator
    if value is None or value is True:
        return ("*",)
    if value is False:
        return None
    return _string_tuple(value, "tools.bash")


def _parse_cache_memory(value: Any) -> tuple[CacheMemoryEntry, ...]:
    if value is False:
        return ()
    if value is None or value is True:
        return (CacheMemoryEntry(),)
    entries = value if isinstance(value, list) else [value]
    result = []
    for index, item in enumerate(entries):
        entry = _expect_mapping(item, f"tools.cache-memory[{index}]")
        restore_only = entry.get("restore-only", False)
        if not isinstance(restore_only, bool):
            raise SchemaError(
                "tools.cache-memory.restore-only must be a boolean",
                field="tools.cache-memory.restore-only",
            )
        result.append(
            CacheMemoryEntry(
                id=_string(entry.get("id"), "tools.cache-memory.id", "default"),
                key=_string(entry.get("key"), "tools.cache-memory.key"),
                retention_days=entry.get("retention-days"),
                restore_only=restore_only,
            )
        )
    ids = [entry.id for entry in result]
    if len(ids) != len(set(ids)):
        raise SchemaError("tools.cache-memory ids must be unique", field="tools.cache-memory")
    return tuple(result)


def _parse_repo_memory(value: Any) -> RepoMemoryConfig | None:
    if value is False:
        return None
    if value is None or value is True:
        return RepoMemoryConfig()
    memory = _expect_mapping(value, "tools.repo-memory")
    return RepoMemoryConfig(
        branch_name=_string(memory.get("branch-name"), "tools.repo-memory.branch-name", "memory/default"),
        target_repo=_string(memory.get("target-repo"), "tools.repo-memory.target-repo"),
        max_file_size=memory.get("max-file-size"),
        max_file_count=memory.get("max-file-count"),
    )


def _parse_serena(value: Any) -> SerenaToolConfig | None:
    if value is False:
        return None
    if value is None or value is True:
        return SerenaToolConfig()
    if isinstance(value, list):
        return SerenaToolConfig(languages=_string_tuple(value, "tools.serena"))
    serena = _expect_mapping(value, "tools.serena")
    languages = serena.get("languages")
    if isinstance(languages, dict):
        language_names: tuple[str, ...] = tuple(str(key) for key in languages)
    else:
        language_names = _string_tuple(languages, "tools.serena.languages")
    return SerenaToolConfig(
        languages=language_names,
        mode=_string(serena.get("mode"), "tools.serena.mode", "docker"),
    )


def _parse_playwright(value: Any) -> PlaywrightToolConfig | None:
    if value is False:
        return None
    if value is None or value is True:
        return PlaywrightToolConfig()
    playwright = _expect_mapping(value, "tools.playwright")
    return PlaywrightToolConfig(
        allowed_domains=_string_tuple(
            playwright.get("allowed_domains", playwright.get("allowed-domains")),
            "tools.playwright.allowed_domains",
        ),
        version=_string(playwright.get("version"), "tools.playwright.version"),
    )


def _parse_mcp_server(name: str, value: Any) -> McpServerConfig:
    field_name = f"tools.{name}"
    server = _expect_mapping(value, field_name)
    url = _string(server.get("url"), f"{field_name}.url")
    server_type = _string(server.get("type"), f"{field_name}.type", "http" if url else "stdio")
    if server_type == "local":
        server_type = "stdio"
    if server_type not in ("stdio", "http"):
        raise SchemaError(
            f"{field_name}.type must be 'stdio' or 'http', got '{server_type}'",
            field=f"{field_name}.type",
        )
    container = _string(server.get("container"), f"{field_name}.container")
    command = _string(server.get("command"), f"{field_name}.command")
    if server_type == "stdio" and not container and not command:
        raise SchemaError(
            f"{field_name}: stdio MCP server requires 'command' or 'container'",
            field=field_name,
        )
    if server_type == "http" and not url:
        raise SchemaError(f"{field_name}: http MCP server requires 'url'", field=f"{field_name}.url")
    mounts = server.get("mounts") or ()
    if not isinstance(mounts, (list, tuple)):
        raise SchemaError(f"{field_name}.mounts must be an array", field=f"{field_name}.mounts")
    return McpServerConfig(
        name=name,
        type=server_type,
        container=container,
        command=command,
        args=_string_tuple(server.get("args"), f"{field_name}.args"),
        env=_env_mapping(server.get("env"), f"{field_name}.env"),
        url=url,
        headers=_env_mapping(server.get("headers"), f"{field_name}.headers"),
        allowed=_string_tuple(server.get("allowed"), f"{field_name}.allowed"),
        mounts=tuple(mounts),
        port=server.get("port"),
    )


def parse_tools_config(
    tools: Any,
    mcp_servers: Any = None,
    imported_tools: dict[str, Any] | None = None,
    imported_servers: dict[str, Any] | None = None,
) -> ToolsConfig:
    """Build the typed tools view.

    The main workflow's `tools:` wins over imported tools; custom MCP
    servers keep declaration order, main workflow first.

    Raises:
        SchemaError: On malformed tool entries.

    """
    raw: dict[str, Any] = dict(_expect_mapping(tools, "tools")) if tools is not None else {}
    if imported_tools:
        raw = merge_tool_configs(raw, imported_tools)

    custom: dict[str, McpServerConfig] = {}
    for name, value in raw.items():
        if name in BUILTIN_TOOLS:
            continue
        custom[str(name)] = _parse_mcp_server(str(name), value)
    servers: dict[str, Any] = {}
    if mcp_servers is not None:
        servers.update(_expect_mapping(mcp_servers, "mcp-servers"))
    for name, value in (imported_servers or {}).items():
        servers.setdefault(name, value)
    for name, value in servers.items():
        if name not in custom:
            custom[str(name)] = _parse_mcp_server(str(name), value)

    config = ToolsConfig(
        github=_parse_github_tool(raw.get("github")),
        bash=_parse_bash(raw["bash"]) if "bash" in raw else None,
        edit="edit" in raw and raw["edit"] is not False,
        web_fetch="web-fetch" in raw and raw["web-fetch"] is not False,
        web_search="web-search" in raw and raw["web-search"] is not False,
        playwright=_parse_playwright(raw["playwright"]) if "playwright" in raw else None,
        serena=_parse_serena(raw["serena"]) if "serena" in raw else None,
        cache_memory=_parse_cache_memory(raw["cache-memory"]) if "cache-memory" in raw else (),
        repo_memory=_parse_repo_memory(raw["repo-memory"]) if "repo-memory" in raw else None,
        agentic_workflows="agentic-workflows" in raw and raw["agentic-workflows"] is not False,
        custom=custom,
        raw=raw,
    )
    logger.debug("Parsed tools: %s", ", ".join(raw) or "(none)")
    return config


SAFE_INPUT_HANDLERS = ("script", "run", "py")


def parse_safe_inputs(value: Any) -> tuple[SafeInputTool, ...]:
    """Parse `safe-inputs:` into tools in declaration order.

    Each tool needs exactly one of `script`, `run` or `py`.

    Raises:
        SchemaError: On a malformed tool entry.

    """
    if value is None:
        return ()
    tools: list[SafeInputTool] = []
    for name, entry in _expect_mapping(value, "safe-inputs").items():
        field_name = f"safe-inputs.{name}"
        entry = _expect_mapping(entry, field_name)
        handlers = [key for key in SAFE_INPUT_HANDLERS if key in entry]
        if len(handlers) != 1:
            raise SchemaError(
                f"{field_name} must define exactly one of 'script', 'run' or 'py'",
                field=field_name,
            )
        inputs = entry.get("inputs") or {}
        tools.append(
            SafeInputTool(
                name=str(name),
                description=_string(entry.get("description"), f"{field_name}.description"),
                handler=handlers[0],
                code=_string(entry[handlers[0]], f"{field_name}.{handlers[0]}"),
                inputs=_expect_mapping(inputs, f"{field_name}.inputs"),
                env=_env_mapping(entry.get("env"), f"{field_name}.env"),
            )
        )
    return tuple(tools)


# =============================================================================
# Network
# =============================================================================


def _parse_firewall(value: Any) -> FirewallConfig:
    if value is None:
        return FirewallConfig()
    if isinstance(value, bool):
        return FirewallConfig(enabled=value)
    if value == "disable":
        return FirewallConfig(enabled=False)
    firewall = _expect_mapping(value, "network.firewall")
    return FirewallConfig(
        enabled=True,
        version=_string(firewall.get("version"), "network.firewall.version"),
        log_level=_string(firewall.get("log-level"), "network.firewall.log-level"),
    )


def parse_network_permissions(value: Any, imported_allowed: list[str] | None = None) -> NetworkPermissions:
    """Convert a `network:` value.

    `network: defaults` and an absent section both select the default
    ecosystem list. Domains allowed by imports are appended.

    Raises:
        SchemaError: On malformed values.

    """
    extra = list(imported_allowed or [])
    if value is None or value == "defaults":
        allowed = ["defaults", *[d for d in extra if d != "defaults"]]
        return NetworkPermissions(allowed=tuple(allowed), explicitly_defined=bool(extra))
    network = _expect_mapping(value, "network")
    allowed_value = network.get("allowed", ["defaults"] if network else [])
    allowed = list(_string_tuple(allowed_value, "network.allowed"))
    for domain in extra:
        if domain not in allowed:
            allowed.append(domain)
    return NetworkPermissions(
        allowed=tuple(allowed),
        blocked=_string_tuple(network.get("blocked"), "network.blocked"),
        firewall=_parse_firewall(network.get("firewall")),
        explicitly_defined=True,
    )


# =============================================================================
# Workflow
# =============================================================================


def _parse_timeout(frontmatter: dict[str, Any]) -> int:
    value = frontmatter.get("timeout-minutes", DEFAULT_TIMEOUT_MINUTES)
    if isinstance(value, bool) or not isinstance(value, int):
        raise SchemaError("timeout-minutes must be an integer", field="timeout-minutes")
    return value


def _parse_steps(value: Any, field_name: str) -> tuple[Any, ...]:
    if value is None:
        return ()
    if isinstance(value, dict):
        value = [value]
    if not isinstance(value, list):
        raise SchemaError(f"{field_name} must be an array of steps", field=field_name)
    for index, step in enumerate(value):
        if not isinstance(step, dict):
            raise SchemaError(f"{field_name}[{index}] must be an object", field=field_name)
    return tuple(value)


def build_workflow_data(
    frontmatter: dict[str, Any],
    markdown: str,
    source_path: Path,
    imports: ImportResult,
    action_mode: ActionMode = ActionMode.DEV,
    frontmatter_hash: str = "",
) -> WorkflowData:
    """Construct the WorkflowData record for one compile.

    Args:
        frontmatter: Parsed front-matter of the main workflow.
        markdown: Prompt body of the main workflow.
        source_path: Path of the source document.
        imports: Result of import resolution.
        action_mode: Resolved action mode.
        frontmatter_hash: Hash recorded in the lock-file header.

    Raises:
        SchemaError: On malformed front-matter values.

    """
    engine_value = frontmatter.get("engine")
    if engine_value is None and imports.engines:
        engine_value = imports.engines[0]

    permissions = parse_permissions(frontmatter.get("permissions"))
    if imports.permissions:
        permissions.merge(parse_permissions(imports.permissions))

    features: dict[str, Any] = dict(imports.features)
    if frontmatter.get("features") is not None:
        features.update(_expect_mapping(frontmatter["features"], "features"))

    inlined = frontmatter.get("inlined-imports", False)
    strict = frontmatter.get("strict", False)
    for key, flag in (("inlined-imports", inlined), ("strict", strict)):
        if not isinstance(flag, bool):
            raise SchemaError(f"{key} must be a boolean", field=key)

    steps = _parse_steps(frontmatter.get("steps"), "steps") + tuple(imports.steps)

    data = WorkflowData(
        name=resolve_workflow_name(frontmatter, markdown, source_path),
        source_path=source_path,
        markdown=markdown,
        on=parse_on_section(frontmatter.get("on")),
        on_source=frontmatter.get("on"),
        engine=parse_engine_config(engine_value, frontmatter.get("sandbox")),
        tools=parse_tools_config(
            frontmatter.get("tools"),
            frontmatter.get("mcp-servers"),
            imports.tools,
            imports.mcp_servers,
        ),
        network=parse_network_permissions(frontmatter.get("network"), imports.network_allowed),
        permissions=permissions,
        checkouts=tuple(parse_checkout_configs(frontmatter.get("checkout"))),
        safe_outputs=parse_safe_outputs_config(
            frontmatter.get("safe-outputs"), imports.safe_outputs
        ),
        imports=imports,
        action_mode=action_mode,
        frontmatter_hash=frontmatter_hash,
        description=_string(frontmatter.get("description"), "description"),
        tracker_id=_string(frontmatter.get("tracker-id"), "tracker-id"),
        version=_string(frontmatter.get("version"), "version"),
        strict=strict,
        inlined_imports=inlined,
        features=features,
        env=_env_mapping(frontmatter.get("env"), "env"),
        steps=steps,
        post_steps=_parse_steps(frontmatter.get("post-steps"), "post-steps"),
        runs_on=frontmatter.get("runs-on", "ubuntu-latest"),
        timeout_minutes=_parse_timeout(frontmatter),
        concurrency=frontmatter.get("concurrency"),
        if_condition=_string(frontmatter.get("if"), "if"),
        safe_inputs=parse_safe_inputs(frontmatter.get("safe-inputs")),
    )
    logger.debug(
        "Built workflow model %r: engine=%s, %d checkout(s), safe-outputs=%s",
        data.name,
        data.engine.id,
        len(data.checkouts),
        ", ".join(data.safe_outputs.configured_types()) if data.safe_outputs else "(none)",
    )
    return data
