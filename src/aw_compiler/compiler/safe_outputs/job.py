"""Synthesis of the jobs that process agent safe outputs.

All handler types are processed by a single consolidated `safe_outputs`
job, which reads the agent's JSONL output and dispatches each record to
the handler for its type. The handler settings of every configured type
travel in one JSON env var, GH_AW_SAFE_OUTPUTS_HANDLER_CONFIG.

missing-tool and missing-data are reporting types: each builds its own
job that records what the agent could not do and optionally opens a
tracking issue.

Public API:
    SAFE_OUTPUTS_JOB: Name of the consolidated job
    build_handler_config: Handler config mapping (snake_case type keys)
    processing_step_token: Step-level github-token of the processing step
    ci_trigger_token: Render github-token-for-extra-empty-commit
    build_safe_outputs_job: The consolidated job, or None
    build_reporting_job: The missing_tool / missing_data job
    workflow_metadata_env: Workflow name, id and tracker-id env
    messages_env: Message templates env
"""

from __future__ import annotations

import json
import logging
from typing import Any

from aw_compiler.compiler.context import CompileContext
from aw_compiler.compiler.job_manager import Job
from aw_compiler.compiler.safe_outputs.config import SafeOutputsConfig
from aw_compiler.compiler.safe_outputs.permissions import compute_safe_outputs_job_permissions
from aw_compiler.compiler.safe_outputs.types import (
    CreatePullRequestConfig,
    IssueReportingConfig,
    PushToPullRequestBranchConfig,
    templatable_json,
)
from aw_compiler.compiler.steps import (
    app_token_step,
    download_agent_output_steps,
    download_artifact_step,
    github_script_step,
    setup_steps,
)

logger = logging.getLogger(__name__)

SAFE_OUTPUTS_JOB = "safe_outputs"
PROCESS_STEP_ID = "process_safe_outputs"
APP_TOKEN_STEP_ID = "safe-outputs-app-token"

MAGIC_TOKEN = "${{ secrets.GH_AW_GITHUB_TOKEN || secrets.GITHUB_TOKEN }}"
PROJECT_TOKEN = "${{ secrets.GH_AW_PROJECT_GITHUB_TOKEN }}"
APP_TOKEN = f"${{{{ steps.{APP_TOKEN_STEP_ID}.outputs.token }}}}"
DEFAULT_CI_TRIGGER_TOKEN = "${{ secrets.GH_AW_CI_TRIGGER_TOKEN }}"
APP_CI_TRIGGER_TOKEN = f"${{{{ steps.{APP_TOKEN_STEP_ID}.outputs.token || '' }}}}"
PATCH_ARTIFACT = "aw.patch"
GIT_CONFIG_SCRIPT = (
    'git config --global user.email "github-actions[bot]@users.noreply.github.com"\n'
    'git config --global user.name "github-actions[bot]"\n'
)


def build_handler_config(config: SafeOutputsConfig) -> dict[str, Any]:
    """Return the handler config: snake_case type key -> per-type settings.

    Types appear in registry order; reporting types are excluded. The
    section-wide `footer` is the default for types that carry a footer.
    """
    handlers: dict[str, Any] = {}
    for output in config.handler_outputs():
        settings = output.handler_settings()
        if config.footer is not None and hasattr(output, "footer") and "footer" not in settings:
            settings["footer"] = templatable_json(config.footer, "bool")
        handlers[output.handler_key] = settings
    return handlers


def processing_step_token(config: SafeOutputsConfig) -> str:
    """Return the github-token of the processing step.

    Precedence: section-wide safe-outputs token, App token, the projects
    token when a project type is configured, then the default secrets.
    Per-output tokens never appear here; they live in the handler config.
    """
    if config.github_token:
        return config.github_token
    if config.app is not None:
        return APP_TOKEN
    if config.uses_project_token():
        return PROJECT_TOKEN
    return MAGIC_TOKEN


def ci_trigger_token(value: str) -> str:
    """Render the token used to push the extra empty commit that triggers CI.

    Examples:
        >>> ci_trigger_token("")
        '${{ secrets.GH_AW_CI_TRIGGER_TOKEN }}'
        >>> ci_trigger_token("app")
        "${{ steps.safe-outputs-app-token.outputs.token || '' }}"
        >>> ci_trigger_token("${{ secrets.MY_PAT }}")
        '${{ secrets.MY_PAT }}'

    """
    if not value:
        return DEFAULT_CI_TRIGGER_TOKEN
    if value == "app":
        return APP_CI_TRIGGER_TOKEN
    return value


def _ci_trigger_source(config: SafeOutputsConfig) -> str | None:
    """Return the extra-empty-commit token setting, or None when no push type is set."""
    for output in config.handler_outputs():
        if isinstance(output, (CreatePullRequestConfig, PushToPullRequestBranchConfig)):
            return output.github_token_for_extra_empty_commit
    return None


def _condition(config: SafeOutputsConfig) -> str:
    checks = " || ".join(
        f"contains(needs.agent.outputs.output_types, '{output.handler_key}')"
        for output in config.handler_outputs()
    )
    return f"(!cancelled()) && needs.agent.result != 'skipped' && ({checks})"


def _outputs(config: SafeOutputsConfig) -> dict[str, str]:
    outputs: dict[str, str] = {}
    for output in config.handler_outputs():
        for spec in output.outputs:
            outputs[spec.key] = f"${{{{ steps.{PROCESS_STEP_ID}.outputs.{spec.key} }}}}"
    return outputs


def _processing_env(config: SafeOutputsConfig) -> dict[str, Any]:
    env: dict[str, Any] = {
        "GH_AW_SAFE_OUTPUTS_HANDLER_CONFIG": json.dumps(
            build_handler_config(config), separators=(",", ":")
        ),
    }
    trigger = _ci_trigger_source(config)
    if trigger is not None:
        env["GH_AW_CI_TRIGGER_TOKEN"] = ci_trigger_token(trigger)
    if config.staged:
        env["GH_AW_SAFE_OUTPUTS_STAGED"] = "true"
    if config.max_patch_size:
        env["GH_AW_MAX_PATCH_SIZE"] = str(config.max_patch_size)
    if config.allowed_domains:
        env["GH_AW_ALLOWED_DOMAINS"] = ",".join(config.allowed_domains)
    env.update(messages_env(config))
    for output in config.handler_outputs():
        env.update(output.env_vars())
    return env


def _patch_steps(config: SafeOutputsConfig, ctx: CompileContext) -> list[dict[str, Any]]:
    """Download the agent's git patch and check out the repository to apply it."""
    if _ci_trigger_source(config) is None:
        return []
    return [
        download_artifact_step(ctx, "Download patch artifact", PATCH_ARTIFACT, "/tmp/gh-aw/"),
        {
            "name": "Checkout repository",
            "uses": ctx.pin("actions/checkout"),
            "with": {"persist-credentials": False, "fetch-depth": 1},
        },
        {
            "name": "Configure Git credentials",
            "run": GIT_CONFIG_SCRIPT,
        },
    ]


def messages_env(config: SafeOutputsConfig) -> dict[str, str]:
    """Return GH_AW_SAFE_OUTPUT_MESSAGES when message templates are configured."""
    if not config.messages:
        return {}
    return {"GH_AW_SAFE_OUTPUT_MESSAGES": json.dumps(config.messages, separators=(",", ":"))}


def workflow_metadata_env(workflow_name: str, workflow_id: str, tracker_id: str = "") -> dict[str, str]:
    """Return the workflow identity env shared by every safe-output handler."""
    env = {"GH_AW_WORKFLOW_NAME": workflow_name, "GH_AW_WORKFLOW_ID": workflow_id}
    if tracker_id:
        env["GH_AW_TRACKER_ID"] = tracker_id
    return env


def build_safe_outputs_job(
    config: SafeOutputsConfig | None,
    ctx: CompileContext,
    workflow_name: str,
    workflow_id: str,
    tracker_id: str = "",
) -> Job | None:
    """Build the consolidated safe_outputs job.

    Args:
        config: Parsed safe-outputs section.
        ctx: Compile context.
        workflow_name: Display name, exported to handlers.
        workflow_id: Workflow filename stem, exported to handlers.
        tracker_id: Optional tracker-id, exported to handlers when set.

    Returns:
        The job, or None when no handler type is configured.

    """
    if config is None or not config.has_handler_outputs:
        logger.debug("No handler safe outputs configured, skipping %s job", SAFE_OUTPUTS_JOB)
        return None

    steps: list[dict[str, Any]] = list(setup_steps(ctx))
    if config.app is not None:
        steps.append(app_token_step(ctx, config.app, APP_TOKEN_STEP_ID))
    steps.extend(download_agent_output_steps(ctx))
    steps.extend(_patch_steps(config, ctx))
    steps.extend(config.steps)

    env = _processing_env(config)
    env.update(workflow_metadata_env(workflow_name, workflow_id, tracker_id))
    steps.append(
        github_script_step(
            ctx,
            name="Process Safe Outputs",
            module="safe_output_handler_manager",
            step_id=PROCESS_STEP_ID,
            env=env,
            github_token=processing_step_token(config),
        )
    )

    job = Job(
        name=SAFE_OUTPUTS_JOB,
        needs=["activation", "agent"],
        if_condition=_condition(config),
        runs_on=config.runs_on,
        permissions=compute_safe_outputs_job_permissions(config),
        timeout_minutes=15,
        env=dict(config.env),
        outputs=_outputs(config),
        steps=steps,
    )
    logger.debug(
        "Built %s job for %d type(s) with %d step(s)",
        SAFE_OUTPUTS_JOB,
        len(config.handler_outputs()),
        len(steps),
    )
    return job


def _reporting_env(output: IssueReportingConfig) -> dict[str, str]:
    prefix = output.env_prefix
    env: dict[str, str] = {}
    if output.max is not None:
        env[f"{prefix}_MAX"] = output.max
    if output.create_issue:
        env[f"{prefix}_CREATE_ISSUE"] = "true"
        env[f"{prefix}_TITLE_PREFIX"] = output.title_prefix
        env[f"{prefix}_LABELS"] = json.dumps(list(output.labels))
    return env


def build_reporting_job(
    output: IssueReportingConfig,
    config: SafeOutputsConfig,
    ctx: CompileContext,
    workflow_name: str,
    workflow_id: str,
    tracker_id: str = "",
) -> Job:
    """Build the missing_tool or missing_data job for output.

    The job runs when the agent emitted at least one record of the type,
    exposes `<output_key>` and `total_count`, and gets `issues: write`
    only when it may open a tracking issue.
    """
    env = _reporting_env(output)
    env.update(workflow_metadata_env(workflow_name, workflow_id, tracker_id))
    steps: list[dict[str, Any]] = list(setup_steps(ctx))
    steps.extend(download_agent_output_steps(ctx))
    steps.append(
        github_script_step(
            ctx,
            name=output.step_name,
            module=output.job_name,
            step_id=output.job_name,
            env=env,
            github_token=output.github_token or processing_step_token(config),
        )
    )
    job = Job(
        name=output.job_name,
        needs=["agent"],
        if_condition=(
            f"(!cancelled()) && contains(needs.agent.outputs.output_types, '{output.handler_key}')"
        ),
        runs_on=config.runs_on,
        permissions=output.permissions(),
        timeout_minutes=5,
        outputs={
            output.output_key: f"${{{{ steps.{output.job_name}.outputs.{output.output_key} }}}}",
            "total_count": f"${{{{ steps.{output.job_name}.outputs.total_count }}}}",
        },
        steps=steps,
    )
    logger.debug("Built %s job (create_issue=%s)", output.job_name, output.create_issue)
    return job
