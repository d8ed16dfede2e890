"""Step builders shared by several jobs.

Steps are plain insertion-ordered mappings, rendered by the emitter as
they are built.

Public API:
    ACTIONS_DIR: Runtime directory of the handler scripts
    setup_steps: Steps that install the handler scripts for the action mode
    github_script_step: actions/github-script step requiring a handler module
    download_artifact_step / upload_artifact_step: Artifact transfer steps
    app_token_step: GitHub App token minting step
    quote_heredoc: Write text to a file through a quoted heredoc
"""

from __future__ import annotations

import logging
from typing import Any

from aw_compiler.compiler.action_mode import SETUP_ACTION_REPO
from aw_compiler.compiler.context import CompileContext
from aw_compiler.compiler.types import ActionMode, GitHubAppConfig
from aw_compiler.core.types import sorted_mapping

logger = logging.getLogger(__name__)

ACTIONS_DIR = "/opt/gh-aw/actions"
ACTIONS_SOURCE_DIR = "/tmp/gh-aw/actions-source"
AGENT_OUTPUT_ARTIFACT = "agent-output"
AGENT_OUTPUT_DIR = "/tmp/gh-aw/safeoutputs/"
AGENT_OUTPUT_FILE = "agent_output.json"


def setup_steps(ctx: CompileContext) -> list[dict[str, Any]]:
    """Return the steps installing the handler scripts into ACTIONS_DIR.

    dev references the local setup action, release the published one at
    the compiler version, and script mode sparse-checks-out the actions
    folder and runs setup.sh directly.
    """
    mode = ctx.action_mode
    if mode is ActionMode.SCRIPT:
        return [
            {
                "name": "Checkout actions folder",
                "uses": ctx.pin("actions/checkout"),
                "with": {
                    "repository": SETUP_ACTION_REPO,
                    "sparse-checkout": "actions",
                    "path": ACTIONS_SOURCE_DIR,
                    "fetch-depth": 1,
                    "persist-credentials": False,
                },
            },
            {
                "name": "Setup Scripts",
                "run": f"bash {ACTIONS_SOURCE_DIR}/actions/setup/setup.sh",
                "env": {"INPUT_DESTINATION": ACTIONS_DIR},
            },
        ]
    if mode is ActionMode.RELEASE:
        uses = f"{SETUP_ACTION_REPO}/actions/setup@{ctx.config.cli_version}"
    else:
        uses = "./actions/setup"
    return [{"name": "Setup Scripts", "uses": uses, "with": {"destination": ACTIONS_DIR}}]


def github_script_step(
    ctx: CompileContext,
    name: str,
    module: str,
    step_id: str = "",
    env: dict[str, Any] | None = None,
    github_token: str = "",
    call: str = "await main();",
    condition: str = "",
) -> dict[str, Any]:
    """Return an actions/github-script step that runs a handler module.

    A custom action registered for the module replaces the script step.

    Args:
        ctx: Compile context (pin resolver and script registry).
        name: Step name.
        module: Handler module name without the `.cjs` suffix.
        step_id: Step id, omitted when empty.
        env: Step environment; keys are emitted sorted.
        github_token: Step-level token, omitted when empty.
        call: Statement invoking the module's main function.
        condition: Step-level `if:` expression, omitted when empty.

    """
    step: dict[str, Any] = {"name": name}
    if step_id:
        step["id"] = step_id
    if condition:
        step["if"] = condition
    action_path = ctx.scripts.get_action_path(module)
    step["uses"] = action_path or ctx.pin("actions/github-script")
    if env:
        step["env"] = sorted_mapping(env)
    with_: dict[str, Any] = {}
    if github_token:
        with_["github-token"] = github_token
    if not action_path:
        with_["script"] = (
            f"const {{ setupGlobals }} = require('{ACTIONS_DIR}/setup_globals.cjs');\n"
            "setupGlobals(core, github, context, exec, io);\n"
            f"const {{ main }} = require('{ACTIONS_DIR}/{module}.cjs');\n"
            f"{call}\n"
        )
    if with_:
        step["with"] = with_
    return step


def download_artifact_step(
    ctx: CompileContext, name: str, artifact: str, path: str
) -> dict[str, Any]:
    return {
        "name": name,
        "continue-on-error": True,
        "uses": ctx.pin("actions/download-artifact"),
        "with": {"name": artifact, "path": path},
    }


def upload_artifact_step(
    ctx: CompileContext,
    name: str,
    artifact: str,
    paths: list[str],
    if_no_files_found: str = "warn",
    condition: str = "always()",
) -> dict[str, Any]:
    """Return an upload-artifact step for one or more paths."""
    step: dict[str, Any] = {"name": name}
    if condition:
        step["if"] = condition
    step["uses"] = ctx.pin("actions/upload-artifact")
    step["with"] = {
        "name": artifact,
        "path": "\n".join(paths) + "\n" if len(paths) > 1 else paths[0],
        "if-no-files-found": if_no_files_found,
    }
    return step


def download_agent_output_steps(ctx: CompileContext) -> list[dict[str, Any]]:
    """Download the agent-output artifact and export its path."""
    return [
        download_artifact_step(
            ctx, "Download agent output artifact", AGENT_OUTPUT_ARTIFACT, AGENT_OUTPUT_DIR
        ),
        {
            "name": "Setup agent output environment variable",
            "run": (
                f"mkdir -p {AGENT_OUTPUT_DIR}\n"
                f'find "{AGENT_OUTPUT_DIR}" -type f -print\n'
                f'echo "GH_AW_AGENT_OUTPUT={AGENT_OUTPUT_DIR}{AGENT_OUTPUT_FILE}" >> "$GITHUB_ENV"\n'
            ),
        },
    ]


def app_token_step(
    ctx: CompileContext,
    app: GitHubAppConfig,
    step_id: str,
    name: str = "Generate GitHub App token",
) -> dict[str, Any]:
    """Return a create-github-app-token step minting an installation token."""
    with_: dict[str, Any] = {"app-id": app.app_id, "private-key": app.private_key}
    with_["owner"] = app.owner or "${{ github.repository_owner }}"
    if app.repositories:
        with_["repositories"] = ",".join(app.repositories)
    else:
        with_["repositories"] = "${{ github.event.repository.name }}"
    with_["github-api-url"] = "${{ github.api_url }}"
    return {
        "name": name,
        "id": step_id,
        "uses": ctx.pin("actions/create-github-app-token"),
        "with": with_,
    }


def quote_heredoc(path: str, text: str, delimiter: str = "GH_AW_EOF") -> str:
    """Return a shell snippet writing text to path through a quoted heredoc.

    The quoted delimiter disables shell expansion inside text.
    """
    body = text if text.endswith("\n") else text + "\n"
    return f"cat << '{delimiter}' > \"{path}\"\n{body}{delimiter}\n"
