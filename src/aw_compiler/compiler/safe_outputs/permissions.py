"""Least-privilege permissions for the safe-output jobs.

Public API:
    compute_safe_outputs_permissions: Fold of the per-type bundles
    compute_safe_outputs_job_permissions: Fold plus the id-token rule
"""

from __future__ import annotations

import logging

from aw_compiler.compiler.permissions import Permissions, apply_id_token_rule
from aw_compiler.compiler.safe_outputs.config import SafeOutputsConfig

logger = logging.getLogger(__name__)


def compute_safe_outputs_permissions(config: SafeOutputsConfig | None) -> Permissions:
    """Merge the minimal bundle of every type handled by the safe_outputs job.

    missing-tool and missing-data are excluded; their jobs carry their
    own permissions.
    """
    permissions = Permissions()
    if config is None:
        logger.debug("No safe outputs configured, returning empty permissions")
        return permissions
    for output in config.handler_outputs():
        logger.debug("Adding permissions for %s", output.type_key)
        permissions.merge(output.permissions())
    logger.debug("Computed safe-outputs permissions with %d scopes", len(permissions.scopes()))
    return permissions


def compute_safe_outputs_job_permissions(config: SafeOutputsConfig) -> Permissions:
    """Return the safe_outputs job permissions including the id-token rule.

    `id-token: write` is added when a user step in `safe-outputs.steps`
    uses a known OIDC action or `safe-outputs.id-token` is "write";
    `id-token: none` suppresses it.
    """
    permissions = compute_safe_outputs_permissions(config)
    apply_id_token_rule(permissions, config.steps, config.id_token)
    return permissions
