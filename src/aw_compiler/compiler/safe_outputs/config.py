"""The `safe-outputs:` section as a sparse record of typed variants.

SafeOutputsConfig holds one optional record per configured type plus the
section-wide keys (`github-token`, `app`, `staged`, `env`, `steps`,
`max-patch-size`, `footer`, `id-token`, `runs-on`). Records are stored in
registry order, never in declaration order.

Public API:
    SafeOutputsConfig: Parsed safe-outputs section
    parse_safe_outputs_config: Build SafeOutputsConfig from front-matter
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from aw_compiler.compiler.safe_outputs.parsing import parse_app_config
from aw_compiler.compiler.safe_outputs.registry import (
    PROJECT_TYPES,
    REPORTING_TYPES,
    SAFE_OUTPUT_TYPES,
    get_type,
)
from aw_compiler.compiler.safe_outputs.types import IssueReportingConfig, SafeOutputConfig
from aw_compiler.compiler.types import GitHubAppConfig
from aw_compiler.core.exceptions import SchemaError
from aw_compiler.core.types import as_string_list, is_expression, normalize_templatable

logger = logging.getLogger(__name__)

# Section-wide keys that are not safe-output types
GLOBAL_KEYS = frozenset(
    {
        "github-token",
        "app",
        "staged",
        "env",
        "steps",
        "max-patch-size",
        "footer",
        "id-token",
        "runs-on",
        "allowed-domains",
        "messages",
        "jobs",
    }
)

DEFAULT_MAX_PATCH_SIZE_KB = 1024

# Templates accepted under safe-outputs.messages
MESSAGE_KEYS = (
    "footer",
    "footer-install",
    "staged-title",
    "staged-description",
    "run-started",
    "run-success",
    "run-failure",
)


@dataclass(frozen=True)
class SafeOutputsConfig:
    """Parsed `safe-outputs:` section.

    Attributes:
        outputs: Configured type records keyed by type key, in registry order.
        github_token: Section-wide token for the processing step.
        app: GitHub App used to mint the processing token.
        staged: Preview mode; handlers render instead of writing.
        env: Extra environment for the safe_outputs job.
        steps: User steps run before the processing step.
        max_patch_size: Maximum patch size in KB.
        footer: Section-wide footer switch (templatable bool).
        id_token: Explicit id-token setting ("write" / "none").
        runs_on: Runner of the safe-output jobs.
        messages: Message templates, camelCase keys.
        allowed_domains: Domains URLs in handler output may point to.

    """

    outputs: dict[str, SafeOutputConfig] = field(default_factory=dict)
    github_token: str = ""
    app: GitHubAppConfig | None = None
    staged: bool = False
    env: dict[str, str] = field(default_factory=dict)
    steps: tuple[Any, ...] = ()
    max_patch_size: int = DEFAULT_MAX_PATCH_SIZE_KB
    footer: str | None = None
    id_token: str | None = None
    runs_on: str = "ubuntu-slim"
    messages: dict[str, str] = field(default_factory=dict)
    allowed_domains: tuple[str, ...] = ()

    def get(self, type_key: str) -> SafeOutputConfig | None:
        """Return the record for type_key, or None when not configured."""
        return self.outputs.get(type_key)

    def has(self, type_key: str) -> bool:
        return type_key in self.outputs

    def configured_types(self) -> list[str]:
        """Configured type keys in registry order."""
        return list(self.outputs)

    def handler_outputs(self) -> list[SafeOutputConfig]:
        """Records dispatched by the consolidated safe_outputs job."""
        return [cfg for key, cfg in self.outputs.items() if key not in REPORTING_TYPES]

    def reporting_outputs(self) -> list[IssueReportingConfig]:
        """missing-tool / missing-data records, which build their own jobs."""
        return [
            cfg
            for key, cfg in self.outputs.items()
            if key in REPORTING_TYPES and isinstance(cfg, IssueReportingConfig)
        ]

    def uses_project_token(self) -> bool:
        return any(key in PROJECT_TYPES for key in self.outputs)

    @property
    def has_handler_outputs(self) -> bool:
        return bool(self.handler_outputs())


def _parse_env(value: Any) -> dict[str, str]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise SchemaError("safe-outputs.env must be a mapping", field="safe-outputs.env")
    env: dict[str, str] = {}
    for key, item in value.items():
        if isinstance(item, bool):
            env[str(key)] = "true" if item else "false"
        else:
            env[str(key)] = str(item)
    return env


def _parse_id_token(value: Any) -> str | None:
    if value is None:
        return None
    if value not in ("write", "none"):
        raise SchemaError(
            f"safe-outputs.id-token must be 'write' or 'none', got {value!r}",
            field="safe-outputs.id-token",
        )
    return str(value)


def _parse_messages(value: Any) -> dict[str, str]:
    """Return message templates keyed in camelCase (`footer-install` -> `footerInstall`)."""
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise SchemaError("safe-outputs.messages must be a mapping", field="safe-outputs.messages")
    messages: dict[str, str] = {}
    for key, template in value.items():
        field_name = f"safe-outputs.messages.{key}"
        if key not in MESSAGE_KEYS:
            raise SchemaError(
                f"Unknown message '{key}' in safe-outputs.messages. "
                f"Valid messages: {', '.join(MESSAGE_KEYS)}",
                field=field_name,
            )
        if not isinstance(template, str):
            raise SchemaError(f"{field_name} must be a string", field=field_name)
        head, *rest = str(key).split("-")
        messages[head + "".join(part.capitalize() for part in rest)] = template
    return messages


def _parse_allowed_domains(value: Any) -> tuple[str, ...]:
    if value is None:
        return ()
    domains = as_string_list(value)
    if domains is None:
        raise SchemaError(
            "safe-outputs.allowed-domains must be a string or an array of strings",
            field="safe-outputs.allowed-domains",
        )
    return tuple(domains)


def _parse_footer(value: Any) -> str | None:
    if value is None:
        return None
    footer = normalize_templatable(value)
    if footer in ("true", "false") or (footer is not None and is_expression(footer)):
        return footer
    raise SchemaError(
        f"safe-outputs.footer must be a boolean or a GitHub Actions expression, got {value!r}",
        field="safe-outputs.footer",
    )


def parse_safe_outputs_config(
    section: Any,
    imported: dict[str, Any] | None = None,
) -> SafeOutputsConfig | None:
    """Build SafeOutputsConfig from the `safe-outputs:` value.

    Types declared by imports are added when the main workflow does not
    declare them itself. A type set to `false` is disabled.

    Args:
        section: Raw `safe-outputs:` value of the main workflow.
        imported: Safe-output types merged from imports.

    Returns:
        SafeOutputsConfig, or None when no section and no imported types exist.

    Raises:
        SchemaError: On unknown types or malformed values.

    """
    if section is None and not imported:
        return None
    if section is None:
        section = {}
    if not isinstance(section, dict):
        raise SchemaError(
            f"safe-outputs must be a mapping, got {type(section).__name__}",
            field="safe-outputs",
        )

    declared: dict[str, Any] = {}
    for key, value in section.items():
        if key in GLOBAL_KEYS:
            continue
        get_type(str(key))
        declared[str(key)] = value
    for key, value in (imported or {}).items():
        if key in GLOBAL_KEYS or key in declared:
            continue
        get_type(key)
        declared[key] = value

    outputs: dict[str, SafeOutputConfig] = {}
    for key, cls in SAFE_OUTPUT_TYPES.items():
        if key not in declared or declared[key] is False:
            continue
        outputs[key] = cls.parse(declared[key])

    staged = section.get("staged", False)
    if not isinstance(staged, bool):
        raise SchemaError("safe-outputs.staged must be a boolean", field="safe-outputs.staged")
    max_patch_size = section.get("max-patch-size", DEFAULT_MAX_PATCH_SIZE_KB)
    if isinstance(max_patch_size, bool) or not isinstance(max_patch_size, int):
        raise SchemaError(
            "safe-outputs.max-patch-size must be an integer (KB)",
            field="safe-outputs.max-patch-size",
        )
    steps = section.get("steps") or []
    if not isinstance(steps, list):
        raise SchemaError("safe-outputs.steps must be an array", field="safe-outputs.steps")
    github_token = section.get("github-token", "")
    if not isinstance(github_token, str):
        raise SchemaError(
            "safe-outputs.github-token must be a string", field="safe-outputs.github-token"
        )
    runs_on = section.get("runs-on", "ubuntu-slim")
    if not isinstance(runs_on, str):
        raise SchemaError("safe-outputs.runs-on must be a string", field="safe-outputs.runs-on")
    if "jobs" in section:
        raise SchemaError(
            "safe-outputs.jobs (custom safe-output jobs) is not supported\n"
            "  Suggestion: Run the extra work as safe-outputs.steps instead",
            field="safe-outputs.jobs",
        )

    config = SafeOutputsConfig(
        outputs=outputs,
        github_token=github_token,
        app=parse_app_config(section.get("app"), "safe-outputs.app"),
        staged=staged,
        env=_parse_env(section.get("env")),
        steps=tuple(steps),
        max_patch_size=max_patch_size,
        footer=_parse_footer(section.get("footer")),
        id_token=_parse_id_token(section.get("id-token")),
        runs_on=runs_on,
        messages=_parse_messages(section.get("messages")),
        allowed_domains=_parse_allowed_domains(section.get("allowed-domains")),
    )
    logger.debug("Parsed safe-outputs: %s", ", ".join(config.configured_types()) or "(none)")
    return config
