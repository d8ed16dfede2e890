"""Semantic validation of a workflow model.

Checks run after the model is built and before any job is rendered.
Failures are collected and raised together as one ValidationError;
experimental or weakly sandboxed settings only warn, except in strict
mode where some of them fail.

Public API:
    validate_workflow: Run every check for a workflow and engine
    validate_int_range: "<field> must be between <min> and <max>, got <value>"
    validate_mount_string: source:destination:mode mount check
    validate_guard_policy: repos / min-integrity shape checks
    validate_repository_pattern: One guard-policy repository pattern
"""

from __future__ import annotations

import logging
import re
from typing import Any

from aw_compiler.compiler.context import CompileContext, ValidationCollector
from aw_compiler.compiler.engines.base import CodingAgentEngine
from aw_compiler.compiler.firewall import check_firewall_disable
from aw_compiler.compiler.permissions import PermissionLevel, PermissionScope
from aw_compiler.compiler.safe_outputs.types import DispatchWorkflowConfig
from aw_compiler.compiler.types import GitHubToolConfig, GuardPolicy, WorkflowData
from aw_compiler.core.exceptions import ValidationError

logger = logging.getLogger(__name__)

MAX_PORT = 65535
MAX_FILE_SIZE = 104857600
MAX_RETENTION_DAYS = 90
MIN_INTEGRITY_LEVELS = ("none", "reader", "writer", "merged")

_OWNER_PATTERN = re.compile(r"^[a-z0-9_-]+$")
_REPO_NAME_PATTERN = re.compile(r"^[a-z0-9._-]+$")

_BASH_ANONYMOUS_MESSAGE = (
    "invalid bash tool configuration: anonymous syntax 'bash:' is not supported. "
    "Use 'bash: true' (enable all commands), 'bash: false' (disable), or "
    "'bash: [\"cmd1\", \"cmd2\"]' (specific commands). "
    "Run 'gh aw fix' to automatically migrate"
)


def validate_int_range(value: int, minimum: int, maximum: int, field_name: str) -> str | None:
    """Return an error message when value is outside [minimum, maximum].

    Examples:
        >>> validate_int_range(0, 1, 65535, "port")
        'port must be between 1 and 65535, got 0'
        >>> validate_int_range(8080, 1, 65535, "port") is None
        True

    """
    if value < minimum or value > maximum:
        return f"{field_name} must be between {minimum} and {maximum}, got {value}"
    return None


def _check_int_field(
    value: Any, minimum: int, maximum: int, field_name: str, collector: ValidationCollector
) -> None:
    if value is None:
        return
    if isinstance(value, bool) or not isinstance(value, int):
        collector.add(f"{field_name} must be an integer, got {value!r}")
        return
    message = validate_int_range(value, minimum, maximum, field_name)
    if message:
        collector.add(message)


def validate_mount_string(mount: Any, field_name: str) -> str | None:
    """Return an error message unless mount is "source:destination:ro|rw"."""
    if not isinstance(mount, str):
        return f"invalid mount in {field_name}: must be a string, got {type(mount).__name__}"
    parts = mount.split(":")
    if len(parts) != 3:
        return (
            f"invalid mount '{mount}' in {field_name}: must follow 'source:destination:mode' "
            "format with exactly 3 colon-separated parts"
        )
    source, dest, mode = parts
    if not source or not dest:
        return f"invalid mount '{mount}' in {field_name}: source and destination must not be empty"
    if mode not in ("ro", "rw"):
        return f"invalid mount '{mount}' in {field_name}: mode must be 'ro' or 'rw', got '{mode}'"
    return None


def validate_repository_pattern(pattern: str) -> str | None:
    """Return an error message for an invalid guard-policy repository pattern.

    Accepted forms are `owner/repo`, `owner/*` and `owner/prefix*`, all
    lowercase.

    Examples:
        >>> validate_repository_pattern("octo/*") is None
        True
        >>> validate_repository_pattern("Owner/Repo")
        "invalid guard policy: repository pattern 'Owner/Repo' must be lowercase"

    """
    prefix = f"invalid guard policy: repository pattern '{pattern}'"
    if pattern != pattern.lower():
        return f"{prefix} must be lowercase"
    parts = pattern.split("/")
    if len(parts) != 2:
        return f"{prefix} must be in format 'owner/repo', 'owner/*', or 'owner/prefix*'"
    owner, repo = parts
    if not owner:
        return f"{prefix} has empty owner"
    if not _OWNER_PATTERN.match(owner):
        return (
            f"{prefix} has invalid owner. Must contain only lowercase letters, numbers, "
            "hyphens, and underscores"
        )
    if not repo:
        return f"{prefix} has empty repository name"
    if "*" in repo[:-1]:
        return f"{prefix} has wildcard in the middle. Wildcards only allowed at the end (e.g., 'prefix*')"
    name = repo[:-1] if repo.endswith("*") else repo
    if name and not _REPO_NAME_PATTERN.match(name):
        return (
            f"{prefix} has invalid repository name. Must contain only lowercase letters, "
            "numbers, hyphens, underscores, or be '*' or 'prefix*'"
        )
    return None


def validate_guard_policy(policy: GuardPolicy, collector: ValidationCollector) -> None:
    """Check the repos / min-integrity pair of the GitHub tool."""
    repos = policy.repos
    if repos is None:
        collector.add(
            "invalid guard policy: 'github.repos' is required. Use 'all', 'public', or an "
            "array of repository patterns (e.g., ['owner/repo', 'owner/*'])"
        )
    elif isinstance(repos, str):
        if repos not in ("all", "public"):
            collector.add(
                f"invalid guard policy: 'github.repos' string must be 'all' or 'public'. Got: '{repos}'"
            )
    elif isinstance(repos, list):
        if not repos:
            collector.add(
                "invalid guard policy: 'github.repos' array cannot be empty. "
                "Provide at least one repository pattern"
            )
        for item in repos:
            if not isinstance(item, str):
                collector.add("invalid guard policy: 'github.repos' array must contain only strings")
                break
            message = validate_repository_pattern(item)
            if message:
                collector.add(message)
    else:
        collector.add(
            "invalid guard policy: 'github.repos' must be 'all', 'public', or an array of "
            "repository patterns"
        )

    integrity = policy.min_integrity
    if integrity is None:
        collector.add(
            "invalid guard policy: 'github.min-integrity' is required. "
            "Valid values: 'none', 'reader', 'writer', 'merged'"
        )
    elif integrity not in MIN_INTEGRITY_LEVELS:
        collector.add(
            "invalid guard policy: 'github.min-integrity' must be one of: "
            f"'none', 'reader', 'writer', 'merged'. Got: '{integrity}'"
        )


def _validate_github_tool(
    github: GitHubToolConfig, ctx: CompileContext, collector: ValidationCollector
) -> None:
    if github.app is not None and github.github_token:
        collector.add(
            "invalid GitHub tool configuration: 'tools.github.app' and 'tools.github.github-token' "
            "cannot both be set. Use one authentication method: either 'app' (GitHub App) or "
            "'github-token' (personal access token)"
        )
    if github.guard_policy.is_set:
        ctx.warnings.experimental("GitHub guard policy")
        validate_guard_policy(github.guard_policy, collector)


def _validate_tools(data: WorkflowData, ctx: CompileContext, collector: ValidationCollector) -> None:
    tools = data.tools
    bash = tools.raw.get("bash", False)
    if bash is None or bash == {}:
        collector.add(_BASH_ANONYMOUS_MESSAGE)
    if tools.github is not None:
        _validate_github_tool(tools.github, ctx, collector)
    for entry in tools.cache_memory:
        _check_int_field(
            entry.retention_days, 1, MAX_RETENTION_DAYS, "cache-memory retention-days", collector
        )
    if tools.repo_memory is not None:
        _check_int_field(
            tools.repo_memory.max_file_size, 1, MAX_FILE_SIZE, "repo-memory max-file-size", collector
        )
    for name, server in tools.custom.items():
        _check_int_field(server.port, 1, MAX_PORT, f"{name} port", collector)
        for mount in server.mounts:
            message = validate_mount_string(mount, f"tools.{name}.mounts")
            if message:
                collector.add(message)
    for mount in data.engine.sandbox.mounts:
        message = validate_mount_string(mount, "sandbox.agent.mounts")
        if message:
            collector.add(message)


def _validate_safe_outputs(data: WorkflowData, collector: ValidationCollector) -> None:
    config = data.safe_outputs
    if config is None:
        return
    for key, output in config.outputs.items():
        if output.target.target_repo == "*" and not output.allow_wildcard_target_repo:
            collector.add(
                f"safe-outputs.{key}: target-repo \"*\" is not allowed; "
                "use an explicit 'owner/repo' or 'allowed-repos'"
            )
        if isinstance(output, DispatchWorkflowConfig) and not output.workflows:
            collector.add(
                "safe-outputs.dispatch-workflow: 'workflows' must list at least one workflow to dispatch"
            )


def _check_network_support(data: WorkflowData, engine: CodingAgentEngine, ctx: CompileContext) -> None:
    check_firewall_disable(data.network, ctx)
    if not data.network.has_restrictions or engine.supports_firewall:
        return
    if ctx.strict:
        raise ValidationError(
            f"strict mode: engine '{engine.id}' does not support the network firewall; "
            "network restrictions cannot be enforced"
        )
    ctx.warnings.warn(
        f"Selected engine '{engine.id}' does not support network firewalling; "
        "network restrictions will not be enforced"
    )


def _validate_strict(data: WorkflowData, collector: ValidationCollector) -> None:
    for scope in data.permissions.scopes():
        level = data.permissions.get(scope)
        if scope is PermissionScope.ID_TOKEN or level not in (PermissionLevel.WRITE, PermissionLevel.ADMIN):
            continue
        collector.add(
            f"strict mode: write permission '{scope.value}: {level.value}' is not allowed for the agent job. "
            "Use safe-outputs to perform write operations instead"
        )
    if "*" in data.network.allowed:
        collector.add("strict mode: wildcard '*' is not allowed in network.allowed")


def validate_workflow(data: WorkflowData, engine: CodingAgentEngine, ctx: CompileContext) -> None:
    """Run every semantic check on data.

    Args:
        data: Workflow model.
        engine: Engine selected for the workflow.
        ctx: Compile context (strict flag and warning collector).

    Raises:
        ValidationError: Listing every failed check.

    """
    collector = ValidationCollector()
    if engine.experimental:
        ctx.warnings.experimental(f"{engine.display_name} engine")

    _validate_tools(data, ctx, collector)
    _validate_safe_outputs(data, collector)
    if ctx.strict:
        _validate_strict(data, collector)
    try:
        _check_network_support(data, engine, ctx)
    except ValidationError as e:
        collector.extend(e)

    if collector:
        logger.debug("Validation failed with %d message(s)", len(collector.messages))
    collector.raise_if_errors()
