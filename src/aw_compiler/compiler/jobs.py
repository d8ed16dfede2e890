"""Job graph assembly.

Builds the jobs of a lock file in topological order:

    activation -> agent -> safe_outputs? -> missing_tool? / missing_data?
        -> push_repo_memory? -> conclusion?

and the top-level workflow mapping around them.

Public API:
    ACTIVATION_JOB, AGENT_JOB, CONCLUSION_JOB: Job names
    build_activation_job: Run info, secret validation, artifact upload
    build_agent_job: Checkout, engine install, MCP setup, prompt, run
    build_conclusion_job: Final reporting after every other job
    build_jobs: JobManager holding every job of the workflow
    build_workflow: Top-level lock-file mapping
"""

from __future__ import annotations

import json
import logging
from typing import Any

from aw_compiler.compiler.checkout import CheckoutManager
from aw_compiler.compiler.context import CompileContext
from aw_compiler.compiler.engines.base import AGENT_STDIO_LOG, CodingAgentEngine
from aw_compiler.compiler.engines.mcp import SAFE_OUTPUTS_DIR
from aw_compiler.compiler.job_manager import Job, JobManager
from aw_compiler.compiler.memory import (
    build_push_repo_memory_job,
    cache_memory_steps,
    cache_memory_upload_steps,
    repo_memory_steps,
    repo_memory_upload_steps,
)
from aw_compiler.compiler.permissions import Permissions
from aw_compiler.compiler.prompt import prompt_steps
from aw_compiler.compiler.safe_outputs.job import (
    GIT_CONFIG_SCRIPT,
    MAGIC_TOKEN,
    PATCH_ARTIFACT,
    build_reporting_job,
    build_safe_outputs_job,
    messages_env,
    workflow_metadata_env,
)
from aw_compiler.compiler.safe_outputs.permissions import compute_safe_outputs_job_permissions
from aw_compiler.compiler.steps import (
    AGENT_OUTPUT_ARTIFACT,
    AGENT_OUTPUT_DIR,
    AGENT_OUTPUT_FILE,
    download_agent_output_steps,
    download_artifact_step,
    github_script_step,
    quote_heredoc,
    setup_steps,
    upload_artifact_step,
)
from aw_compiler.compiler.types import WorkflowData
from aw_compiler.compiler.workflow_call import inject_workflow_call_outputs
from aw_compiler.core.types import sorted_mapping

logger = logging.getLogger(__name__)

ACTIVATION_JOB = "activation"
AGENT_JOB = "agent"
CONCLUSION_JOB = "conclusion"

AW_INFO_PATH = "/tmp/gh-aw/aw_info.json"
ACTIVATION_ARTIFACT = "activation"
SAFE_OUTPUTS_FILE = "/tmp/gh-aw/safeoutputs/outputs.jsonl"
PATCH_PATH = "/tmp/gh-aw/aw.patch"
COLLECT_OUTPUT_STEP_ID = "collect_output"

# Scopes the conclusion job may hold; contents:read is always granted
_CONCLUSION_SCOPES = Permissions(
    {
        "contents": "read",
        "discussions": "write",
        "issues": "write",
        "pull-requests": "write",
    }
)


def _bool(value: bool) -> str:
    return "true" if value else "false"


def aw_info_step(data: WorkflowData, engine: CodingAgentEngine, ctx: CompileContext) -> dict[str, Any]:
    """Step writing aw_info.json, the run metadata of the workflow."""
    firewall = engine.firewall_enabled(data)
    model = data.engine.model
    if not model and engine.id != "custom":
        variable = f"GH_AW_MODEL_AGENT_{engine.id.upper()}"
        model = f"${{{{ vars.{variable} || '' }}}}"
    env: dict[str, Any] = {
        "GH_AW_INFO_ENGINE_ID": engine.id,
        "GH_AW_INFO_ENGINE_NAME": engine.display_name,
        "GH_AW_INFO_MODEL": model,
        "GH_AW_INFO_VERSION": data.engine.version,
        "GH_AW_INFO_AGENT_VERSION": engine.resolved_version(data, ctx),
        "GH_AW_INFO_WORKFLOW_NAME": data.name,
        "GH_AW_INFO_EXPERIMENTAL": _bool(engine.experimental),
        "GH_AW_INFO_SUPPORTS_TOOLS_ALLOWLIST": _bool(engine.supports_tools_allowlist),
        "GH_AW_INFO_STAGED": _bool(data.safe_outputs is not None and data.safe_outputs.staged),
        "GH_AW_INFO_ALLOWED_DOMAINS": json.dumps(list(data.network.allowed)),
        "GH_AW_INFO_FIREWALL_ENABLED": _bool(firewall),
        "GH_AW_INFO_AWF_VERSION": (
            data.network.firewall.version or ctx.config.firewall_version if firewall else ""
        ),
        "GH_AW_INFO_FIREWALL_TYPE": "squid" if firewall else "",
        "GH_AW_INFO_CLI_VERSION": ctx.config.cli_version,
    }
    return github_script_step(
        ctx,
        "Generate agentic run info",
        "generate_aw_info",
        step_id="generate_aw_info",
        env=env,
        call="await main(core, context);",
    )


def build_activation_job(
    data: WorkflowData, engine: CodingAgentEngine, ctx: CompileContext
) -> Job:
    """Build the activation job.

    aw_info.json is generated before the secret is validated so the run
    metadata survives an early failure.
    """
    steps: list[dict[str, Any]] = list(setup_steps(ctx))
    steps.append(
        {
            "name": "Checkout .github and .agents folders",
            "uses": ctx.pin("actions/checkout"),
            "with": {
                "persist-credentials": False,
                "sparse-checkout": ".github\n.agents\n",
                "fetch-depth": 1,
            },
        }
    )
    steps.append(
        github_script_step(
            ctx,
            "Check workflow file timestamps",
            "check_workflow_timestamp_api",
            env={"GH_AW_WORKFLOW_FILE": f"{data.workflow_id}.lock.yml"},
        )
    )
    steps.append(aw_info_step(data, engine, ctx))
    validate = engine.secret_validation_step(data, ctx)
    if validate is not None:
        steps.append(validate)
    steps.append(
        upload_artifact_step(
            ctx, "Upload activation artifact", ACTIVATION_ARTIFACT, [AW_INFO_PATH], condition=""
        )
    )
    return Job(
        name=ACTIVATION_JOB,
        if_condition=data.if_condition,
        runs_on="ubuntu-slim",
        permissions=Permissions({"contents": "read"}),
        timeout_minutes=5,
        steps=steps,
    )


def _safe_outputs_config_step(data: WorkflowData) -> dict[str, Any] | None:
    config = data.safe_outputs
    if config is None or not config.configured_types():
        return None
    limits = {
        output.handler_key: {"max": output.max_count} for output in config.outputs.values()
    }
    return {
        "name": "Write Safe Outputs Config",
        "run": f"mkdir -p {SAFE_OUTPUTS_DIR}\n"
        + quote_heredoc(
            f"{SAFE_OUTPUTS_DIR}/config.json",
            json.dumps(limits, separators=(",", ":")),
            "GH_AW_SAFE_OUTPUTS_CONFIG_EOF",
        ),
    }


def _collect_output_steps(
    data: WorkflowData, engine: CodingAgentEngine, ctx: CompileContext
) -> list[dict[str, Any]]:
    config = data.safe_outputs
    if config is None or not config.configured_types():
        return []
    steps = [
        upload_artifact_step(
            ctx, "Upload Safe Outputs", "safe-output", [SAFE_OUTPUTS_FILE], if_no_files_found="warn"
        ),
        github_script_step(
            ctx,
            "Ingest agent output",
            "collect_ndjson_output",
            step_id=COLLECT_OUTPUT_STEP_ID,
            condition="always()",
            env={
                "GH_AW_ALLOWED_DOMAINS": ",".join(engine.allowed_domains(data)),
                "GH_AW_SAFE_OUTPUTS": "${{ env.GH_AW_SAFE_OUTPUTS }}",
                "GITHUB_API_URL": "${{ github.api_url }}",
                "GITHUB_SERVER_URL": "${{ github.server_url }}",
            },
        ),
        upload_artifact_step(
            ctx,
            "Upload sanitized agent output",
            AGENT_OUTPUT_ARTIFACT,
            [f"{AGENT_OUTPUT_DIR}{AGENT_OUTPUT_FILE}"],
        ),
    ]
    if any(key in config.outputs for key in ("create-pull-request", "push-to-pull-request-branch")):
        steps.append(
            upload_artifact_step(
                ctx, "Upload git patch", PATCH_ARTIFACT, [PATCH_PATH], if_no_files_found="ignore"
            )
        )
    return steps


def build_agent_job(data: WorkflowData, engine: CodingAgentEngine, ctx: CompileContext) -> Job:
    """Build the agent job that runs the engine on the prompt."""
    checkouts = CheckoutManager(data.checkouts)
    steps: list[dict[str, Any]] = list(setup_steps(ctx))
    steps.append(
        checkouts.default_checkout_step(
            ctx.pin, trial_mode=ctx.config.trial_mode, trial_repo=ctx.config.trial_logical_repo
        )
    )
    steps.extend(checkouts.additional_checkout_steps(ctx.pin))
    steps.append(
        {
            "name": "Create gh-aw temp directory",
            "run": "mkdir -p /tmp/gh-aw/agent /tmp/gh-aw/sandbox/agent/logs /tmp/gh-aw/safeoutputs\n",
        }
    )
    steps.append(
        download_artifact_step(ctx, "Download activation artifact", ACTIVATION_ARTIFACT, "/tmp/gh-aw")
    )
    steps.extend(cache_memory_steps(data, ctx))
    steps.extend(repo_memory_steps(data, ctx))
    steps.append({"name": "Configure Git credentials", "run": GIT_CONFIG_SCRIPT})
    steps.extend(data.steps)
    steps.extend(engine.installation_steps(data, ctx))
    config_step = _safe_outputs_config_step(data)
    if config_step is not None:
        steps.append(config_step)
    steps.extend(engine.mcp_config_steps(data, ctx))
    steps.extend(prompt_steps(data, ctx))
    steps.extend(engine.execution_steps(data, ctx))
    steps.extend(data.post_steps)
    steps.extend(_collect_output_steps(data, engine, ctx))
    steps.append(
        upload_artifact_step(ctx, "Upload agent logs", "agent-stdio.log", [AGENT_STDIO_LOG])
    )
    steps.extend(cache_memory_upload_steps(data, ctx))
    steps.extend(repo_memory_upload_steps(data, ctx))

    permissions = data.permissions.copy()
    if permissions.is_empty():
        permissions.set("contents", "read")

    env: dict[str, Any] = {}
    outputs: dict[str, str] = {}
    if data.safe_outputs is not None and data.safe_outputs.configured_types():
        env["GH_AW_SAFE_OUTPUTS"] = SAFE_OUTPUTS_FILE
        outputs = {
            "output": f"${{{{ steps.{COLLECT_OUTPUT_STEP_ID}.outputs.output }}}}",
            "output_types": f"${{{{ steps.{COLLECT_OUTPUT_STEP_ID}.outputs.output_types }}}}",
        }
    return Job(
        name=AGENT_JOB,
        needs=[ACTIVATION_JOB],
        runs_on=data.runs_on,
        permissions=permissions,
        env=env,
        outputs=outputs,
        steps=steps,
    )


def conclusion_permissions(data: WorkflowData) -> Permissions:
    """Safe-output permissions narrowed to the reporting scopes, plus contents:read."""
    permissions = Permissions({"contents": "read"})
    if data.safe_outputs is not None:
        permissions.merge(
            compute_safe_outputs_job_permissions(data.safe_outputs).intersect(_CONCLUSION_SCOPES)
        )
    return permissions


def build_conclusion_job(data: WorkflowData, ctx: CompileContext, needs: list[str]) -> Job | None:
    """Build the conclusion job, or None when no safe output is configured."""
    config = data.safe_outputs
    if config is None or not config.configured_types():
        return None
    metadata = workflow_metadata_env(data.name, data.workflow_id, data.tracker_id)
    steps: list[dict[str, Any]] = list(setup_steps(ctx))
    steps.extend(download_agent_output_steps(ctx))
    noop = config.get("noop")
    if noop is not None:
        steps.append(
            github_script_step(
                ctx,
                "Process No-Op Messages",
                "noop",
                step_id="noop",
                env={"GH_AW_NOOP_MAX": noop.max or "1", **metadata},
                github_token=MAGIC_TOKEN,
            )
        )
    steps.append(
        github_script_step(
            ctx,
            "Handle Agent Failure",
            "handle_agent_failure",
            step_id="handle_agent_failure",
            env={
                "GH_AW_AGENT_CONCLUSION": "${{ needs.agent.result }}",
                "GH_AW_RUN_URL": "${{ github.server_url }}/${{ github.repository }}/actions/runs/${{ github.run_id }}",
                **metadata,
                **messages_env(config),
            },
            github_token=MAGIC_TOKEN,
        )
    )
    return Job(
        name=CONCLUSION_JOB,
        needs=needs,
        if_condition=f"(always()) && (needs.{AGENT_JOB}.result != 'skipped')",
        runs_on=config.runs_on,
        permissions=conclusion_permissions(data),
        timeout_minutes=10,
        steps=steps,
    )


def build_jobs(data: WorkflowData, engine: CodingAgentEngine, ctx: CompileContext) -> JobManager:
    """Assemble every job of the workflow in emission order."""
    manager = JobManager()
    manager.add(build_activation_job(data, engine, ctx))
    manager.add(build_agent_job(data, engine, ctx))

    config = data.safe_outputs
    if config is not None:
        job = build_safe_outputs_job(config, ctx, data.name, data.workflow_id, data.tracker_id)
        if job is not None:
            manager.add(job)
        for output in config.reporting_outputs():
            manager.add(
                build_reporting_job(output, config, ctx, data.name, data.workflow_id, data.tracker_id)
            )

    memory_job = build_push_repo_memory_job(data, ctx)
    if memory_job is not None:
        manager.add(memory_job)

    conclusion = build_conclusion_job(data, ctx, needs=[job.name for job in manager.jobs])
    if conclusion is not None:
        manager.add(conclusion)
    manager.validate()
    logger.debug("Assembled %d job(s): %s", len(manager), ", ".join(j.name for j in manager.jobs))
    return manager


def build_workflow(data: WorkflowData, engine: CodingAgentEngine, ctx: CompileContext) -> dict[str, Any]:
    """Return the top-level lock-file mapping in emission order.

    Top-level permissions are the union of the job permissions.
    """
    manager = build_jobs(data, engine, ctx)
    workflow: dict[str, Any] = {"name": data.name}
    workflow["on"] = data.emitted_on(inject_workflow_call_outputs(data.on, data.safe_outputs))
    workflow["permissions"] = manager.union_permissions().to_dict()
    workflow["concurrency"] = (
        data.concurrency
        if data.concurrency is not None
        else {"group": "gh-aw-${{ github.workflow }}"}
    )
    workflow["run-name"] = data.name
    if data.env:
        workflow["env"] = sorted_mapping(data.env)
    workflow["jobs"] = manager.to_dict()
    return workflow
