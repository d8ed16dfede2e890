"""Agent prompt assembly.

The prompt is the workflow body plus imported fragments and generated
context sections. It is written to PROMPT_PATH by a quoted heredoc, so
`${{ ... }}` expressions never reach the shell: each one is replaced by
a `__GH_AW_<NAME>__` placeholder whose value travels in the step env
and is substituted at run time by a handler script.

Public API:
    build_prompt: Prompt text with expressions still in place
    extract_expressions: Replace expressions with placeholders
    prompt_steps: Steps writing and rendering the prompt file
"""

from __future__ import annotations

import hashlib
import logging
import re
from typing import Any

from aw_compiler.compiler.checkout import build_checkouts_prompt
from aw_compiler.compiler.context import CompileContext
from aw_compiler.compiler.engines.base import PROMPT_PATH
from aw_compiler.compiler.steps import github_script_step, quote_heredoc
from aw_compiler.compiler.types import WorkflowData

logger = logging.getLogger(__name__)

CACHE_MEMORY_DIR = "/tmp/gh-aw/cache-memory"
REPO_MEMORY_DIR = "/tmp/gh-aw/repo-memory"
PROMPT_DELIMITER = "GH_AW_PROMPT_EOF"

_EXPRESSION_PATTERN = re.compile(r"\$\{\{\s*(.*?)\s*\}\}", re.DOTALL)
_SIMPLE_PATH_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_.-]*$")


def _runtime_import_lines(data: WorkflowData) -> list[str]:
    entries = [path for path in data.imports.runtime_imports if path != data.agent_file]
    entries += data.imports.repository_imports
    return [f"{{{{#runtime-import {entry}}}}}" for entry in entries]


def _cache_memory_section(data: WorkflowData) -> str:
    entries = data.tools.cache_memory
    if not entries:
        return ""
    lines = ["## Cache Memory", ""]
    for entry in entries:
        folder = CACHE_MEMORY_DIR if entry.id == "default" else f"{CACHE_MEMORY_DIR}-{entry.id}"
        mode = "read-only, restored from cache" if entry.restore_only else "persisted across runs"
        lines.append(f"- `{folder}/` ({mode})")
    lines += [
        "",
        "Store notes and intermediate results as files in these folders to reuse them "
        "in later runs of this workflow.",
    ]
    return "\n".join(lines) + "\n"


def _repo_memory_section(data: WorkflowData) -> str:
    memory = data.tools.repo_memory
    if memory is None:
        return ""
    return (
        "## Repo Memory\n\n"
        f"Files written to `{REPO_MEMORY_DIR}/default/` are committed to the "
        f"`{memory.branch_name}` branch after the run and restored on the next run.\n"
    )


def _safe_outputs_section(data: WorkflowData) -> str:
    config = data.safe_outputs
    if config is None or not config.configured_types():
        return ""
    tools = ", ".join(f"`{key.replace('-', '_')}`" for key in config.configured_types())
    return (
        "## Safe Outputs\n\n"
        "You do not have write access to GitHub. To create or modify GitHub resources, "
        "call the tools of the `safeoutputs` MCP server; each call is recorded and "
        "applied after you finish.\n\n"
        f"Available tools: {tools}\n"
    )


def build_prompt(data: WorkflowData) -> str:
    """Return the full prompt for data.

    Sections, in order: inlined imports, runtime-import macros, the
    workflow body, the checkout overview (more than one checkout only),
    memory folders and safe-output tools.
    """
    sections: list[str] = []
    if data.imports.inlined_markdown:
        sections.append(data.imports.inlined_markdown.strip("\n") + "\n")
    macros = _runtime_import_lines(data)
    if macros:
        sections.append("\n".join(macros) + "\n")
    body = data.markdown.strip("\n")
    if body:
        sections.append(body + "\n")

    context: list[str] = []
    if len(data.checkouts) > 1:
        context.append(build_checkouts_prompt(data.checkouts))
    context.append(_cache_memory_section(data))
    context.append(_repo_memory_section(data))
    context.append(_safe_outputs_section(data))
    context = [section for section in context if section]
    if context:
        sections.append("---\n")
        sections.extend(context)
    prompt = "\n".join(sections)
    logger.debug("Built prompt: %d section(s), %d runtime import(s)", len(sections), len(macros))
    return prompt


def _placeholder_name(expression: str) -> str:
    """Env var name for an expression.

    Examples:
        >>> _placeholder_name("github.event.issue.number")
        'GH_AW_GITHUB_EVENT_ISSUE_NUMBER'

    """
    if _SIMPLE_PATH_PATTERN.match(expression):
        return "GH_AW_" + re.sub(r"[^A-Z0-9]", "_", expression.upper())
    digest = hashlib.sha256(expression.encode("utf-8")).hexdigest()[:8].upper()
    return f"GH_AW_EXPR_{digest}"


def extract_expressions(text: str) -> tuple[str, dict[str, str]]:
    """Replace `${{ expr }}` occurrences with `__NAME__` placeholders.

    Returns:
        The rewritten text and a NAME -> expression mapping in order of
        first appearance.

    """
    mapping: dict[str, str] = {}

    def replace(match: re.Match[str]) -> str:
        expression = match.group(1)
        name = _placeholder_name(expression)
        mapping.setdefault(name, f"${{{{ {expression} }}}}")
        return f"__{name}__"

    return _EXPRESSION_PATTERN.sub(replace, text), mapping


def prompt_steps(data: WorkflowData, ctx: CompileContext) -> list[dict[str, Any]]:
    """Steps that write the prompt and render its placeholders and imports."""
    text, expressions = extract_expressions(build_prompt(data))
    directory = PROMPT_PATH.rsplit("/", 1)[0]
    steps: list[dict[str, Any]] = [
        {
            "name": "Create prompt",
            "env": {"GH_AW_PROMPT": PROMPT_PATH},
            "run": f"mkdir -p {directory}\n" + quote_heredoc(PROMPT_PATH, text, PROMPT_DELIMITER),
        }
    ]
    if expressions:
        env: dict[str, Any] = {"GH_AW_PROMPT": PROMPT_PATH}
        env.update(expressions)
        steps.append(
            github_script_step(
                ctx,
                "Substitute placeholders",
                "substitute_placeholders",
                env=env,
            )
        )
    if _runtime_import_lines(data):
        steps.append(
            github_script_step(
                ctx,
                "Interpolate variables and render templates",
                "interpolate_prompt",
                env={"GH_AW_PROMPT": PROMPT_PATH},
            )
        )
    steps.append(
        {
            "name": "Print prompt",
            "env": {"GH_AW_PROMPT": PROMPT_PATH},
            "run": 'cat "$GH_AW_PROMPT" >> "$GITHUB_STEP_SUMMARY"\n',
        }
    )
    logger.debug("Prompt uses %d expression placeholder(s)", len(expressions))
    return steps
