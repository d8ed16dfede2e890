"""Injection of `on.workflow_call.outputs` for reusable workflows.

When a workflow can be called by other workflows, the outputs of its
safe_outputs job (created issue number, comment URL, ...) are exposed to
the caller. User-declared outputs are preserved and win on key collision.

Public API:
    build_workflow_call_outputs: Generated output entries for a config
    inject_workflow_call_outputs: Return `on:` with outputs injected
"""

from __future__ import annotations

import copy
import logging
from typing import Any

from aw_compiler.compiler.safe_outputs.config import SafeOutputsConfig
from aw_compiler.compiler.safe_outputs.job import SAFE_OUTPUTS_JOB

logger = logging.getLogger(__name__)


def build_workflow_call_outputs(config: SafeOutputsConfig | None) -> dict[str, dict[str, str]]:
    """Return generated outputs for every configured type that exposes any.

    Entries follow registry order.
    """
    outputs: dict[str, dict[str, str]] = {}
    if config is None:
        return outputs
    for output in config.handler_outputs():
        for spec in output.outputs:
            outputs[spec.key] = {
                "description": spec.description,
                "value": f"${{{{ jobs.{SAFE_OUTPUTS_JOB}.outputs.{spec.key} }}}}",
            }
    return outputs


def inject_workflow_call_outputs(
    on: dict[str, Any],
    config: SafeOutputsConfig | None,
) -> dict[str, Any]:
    """Return a copy of the `on:` mapping with workflow_call outputs added.

    The mapping is returned unchanged when it has no `workflow_call` key
    or when no configured type exposes outputs. A null or scalar
    `workflow_call` value becomes a mapping holding only the outputs.

    Args:
        on: Parsed `on:` mapping.
        config: Parsed safe-outputs section.

    Returns:
        The `on:` mapping to emit.

    """
    if "workflow_call" not in on:
        return on
    generated = build_workflow_call_outputs(config)
    if not generated:
        logger.debug("workflow_call present but no safe output exposes outputs")
        return on

    result = copy.deepcopy(on)
    current = result["workflow_call"]
    workflow_call: dict[str, Any] = current if isinstance(current, dict) else {}

    merged: dict[str, Any] = dict(generated)
    existing = workflow_call.get("outputs")
    if isinstance(existing, dict):
        for key, value in existing.items():
            if isinstance(value, dict):
                merged[key] = value
    workflow_call["outputs"] = merged
    result["workflow_call"] = workflow_call
    logger.debug("Injected %d workflow_call output(s)", len(merged))
    return result
