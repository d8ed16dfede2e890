"""Agent memory: cache-memory folders and the repo-memory branch.

cache-memory restores a folder from the Actions cache before the agent
runs and saves it afterwards (actions/cache saves in its post step).
repo-memory clones a git branch into a folder; the push_repo_memory job
commits the folder back after the agent finished.

Public API:
    cache_memory_steps: Restore (and save) steps for every cache
    cache_memory_upload_steps: Artifact uploads for caches with retention-days
    repo_memory_steps: Clone step of the memory branch
    repo_memory_upload_steps: Artifact upload of the memory folder
    build_push_repo_memory_job: Job committing the memory folder
"""

from __future__ import annotations

import logging
from typing import Any

from aw_compiler.compiler.context import CompileContext
from aw_compiler.compiler.job_manager import Job
from aw_compiler.compiler.permissions import Permissions
from aw_compiler.compiler.prompt import CACHE_MEMORY_DIR, REPO_MEMORY_DIR
from aw_compiler.compiler.steps import (
    ACTIONS_DIR,
    download_artifact_step,
    github_script_step,
    setup_steps,
    upload_artifact_step,
)
from aw_compiler.compiler.types import CacheMemoryEntry, WorkflowData

logger = logging.getLogger(__name__)

PUSH_REPO_MEMORY_JOB = "push_repo_memory"
REPO_MEMORY_ARTIFACT = "repo-memory-default"
_RUN_ID = "${{ github.run_id }}"


def _cache_folder(entry: CacheMemoryEntry) -> str:
    return CACHE_MEMORY_DIR if entry.id == "default" else f"{CACHE_MEMORY_DIR}-{entry.id}"


def cache_key(entry: CacheMemoryEntry) -> str:
    """Cache key of entry, always ending with the run id.

    Examples:
        >>> cache_key(CacheMemoryEntry())
        'memory-${{ github.workflow }}-${{ github.run_id }}'
        >>> cache_key(CacheMemoryEntry(id="notes", key="notes-v1"))
        'notes-v1-${{ github.run_id }}'

    """
    if entry.key:
        key = entry.key
    elif entry.id == "default":
        key = "memory-${{ github.workflow }}"
    else:
        key = f"memory-{entry.id}-${{{{ github.workflow }}}}"
    if not key.endswith(_RUN_ID):
        key = f"{key}-{_RUN_ID}"
    return key


def _restore_keys(key: str) -> str:
    # Drop the run id so earlier runs' caches match by prefix
    prefix = key[: -len(_RUN_ID)]
    return prefix if prefix.endswith("-") else prefix + "-"


def cache_memory_steps(data: WorkflowData, ctx: CompileContext) -> list[dict[str, Any]]:
    """Return the steps preparing every cache-memory folder."""
    steps: list[dict[str, Any]] = []
    for entry in data.tools.cache_memory:
        folder = _cache_folder(entry)
        label = "cache-memory" if entry.id == "default" else f"cache-memory ({entry.id})"
        key = cache_key(entry)
        steps.append(
            {
                "name": f"Create {label} directory",
                "run": f"mkdir -p {folder}\necho \"Cache memory directory: {folder}\"\n",
            }
        )
        action = "actions/cache/restore" if entry.restore_only else "actions/cache"
        steps.append(
            {
                "name": f"{'Restore' if entry.restore_only else 'Cache'} {label} file share data",
                "uses": ctx.pin(action),
                "with": {
                    "key": key,
                    "path": folder,
                    "restore-keys": _restore_keys(key),
                },
            }
        )
    logger.debug("Generated cache-memory steps for %d cache(s)", len(data.tools.cache_memory))
    return steps


def cache_memory_upload_steps(data: WorkflowData, ctx: CompileContext) -> list[dict[str, Any]]:
    """Upload caches that set retention-days as artifacts."""
    steps = []
    for entry in data.tools.cache_memory:
        if entry.retention_days is None or entry.restore_only:
            continue
        artifact = "cache-memory" if entry.id == "default" else f"cache-memory-{entry.id}"
        step = upload_artifact_step(
            ctx, f"Upload {artifact} data as artifact", artifact, [_cache_folder(entry)]
        )
        step["with"]["retention-days"] = entry.retention_days
        steps.append(step)
    return steps


def repo_memory_steps(data: WorkflowData, ctx: CompileContext) -> list[dict[str, Any]]:
    """Clone the memory branch into the repo-memory folder (empty when missing)."""
    memory = data.tools.repo_memory
    if memory is None:
        return []
    folder = f"{REPO_MEMORY_DIR}/default"
    repository = memory.target_repo or "${{ github.repository }}"
    return [
        {
            "name": "Clone repo-memory branch (default)",
            "env": {
                "BRANCH_NAME": memory.branch_name,
                "GH_TOKEN": "${{ github.token }}",
                "MEMORY_DIR": folder,
                "TARGET_REPO": repository,
            },
            "run": f"bash {ACTIONS_DIR}/clone_repo_memory_branch.sh\n",
        }
    ]


def repo_memory_upload_steps(data: WorkflowData, ctx: CompileContext) -> list[dict[str, Any]]:
    """Hand the memory folder to the push job."""
    if data.tools.repo_memory is None:
        return []
    return [
        upload_artifact_step(
            ctx,
            "Upload repo-memory artifact (default)",
            REPO_MEMORY_ARTIFACT,
            [f"{REPO_MEMORY_DIR}/default"],
            if_no_files_found="ignore",
        )
    ]


def build_push_repo_memory_job(data: WorkflowData, ctx: CompileContext) -> Job | None:
    """Return the job committing repo-memory back to its branch, or None."""
    memory = data.tools.repo_memory
    if memory is None:
        return None
    env: dict[str, Any] = {
        "BRANCH_NAME": memory.branch_name,
        "MEMORY_DIR": f"{REPO_MEMORY_DIR}/default",
        "TARGET_REPO": memory.target_repo or "${{ github.repository }}",
    }
    if memory.max_file_size is not None:
        env["MAX_FILE_SIZE"] = str(memory.max_file_size)
    if memory.max_file_count is not None:
        env["MAX_FILE_COUNT"] = str(memory.max_file_count)
    steps: list[dict[str, Any]] = list(setup_steps(ctx))
    steps.append(
        {
            "name": "Checkout repository",
            "uses": ctx.pin("actions/checkout"),
            "with": {"persist-credentials": False, "sparse-checkout": ".\n"},
        }
    )
    steps.append(
        download_artifact_step(
            ctx, "Download repo-memory artifact (default)", REPO_MEMORY_ARTIFACT, env["MEMORY_DIR"]
        )
    )
    steps.append(
        github_script_step(
            ctx,
            "Push repo-memory changes (default)",
            "push_repo_memory",
            env=env,
            github_token="${{ github.token }}",
        )
    )
    return Job(
        name=PUSH_REPO_MEMORY_JOB,
        needs=["agent"],
        if_condition="always() && needs.agent.result == 'success'",
        runs_on="ubuntu-latest",
        permissions=Permissions({"contents": "write"}),
        timeout_minutes=10,
        steps=steps,
    )
