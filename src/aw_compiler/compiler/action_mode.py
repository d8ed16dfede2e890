"""Action mode detection.

The action mode decides how emitted jobs reference the compiler's own
setup action: a local path (dev), a released reference (release), or a
shell script run from a sparse checkout (script).

Public API:
    detect_action_mode: Resolve the mode from overrides and the environment
    SETUP_ACTION_REPO: Repository that hosts the setup action
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from typing import Any

from aw_compiler.compiler.types import ActionMode
from aw_compiler.core.exceptions import SchemaError

logger = logging.getLogger(__name__)

SETUP_ACTION_REPO = "github/gh-aw"


def _explicit_mode(value: Any, source: str) -> ActionMode:
    if not isinstance(value, str) or not ActionMode.is_valid(value):
        raise SchemaError(
            f"Invalid action mode '{value}' in {source}\n"
            f"  Valid modes: dev, release, script",
            field=source,
        )
    return ActionMode(value)


def detect_action_mode(
    override: str | None = None,
    features: Mapping[str, Any] | None = None,
    environ: Mapping[str, str] | None = None,
) -> ActionMode:
    """Resolve the action mode.

    Precedence: a valid GH_AW_ACTION_MODE, then the explicit override
    (config file or CLI), then `features.action-mode`, then detection
    from GITHUB_REF / GITHUB_EVENT_NAME. Release tags, `release*`
    branches and release events select release; everything else is dev.

    Args:
        override: Mode from the compiler configuration.
        features: Workflow `features:` mapping.
        environ: Environment (defaults to os.environ).

    Raises:
        SchemaError: If override or features.action-mode is not a valid mode.

    """
    env = os.environ if environ is None else environ

    env_mode = env.get("GH_AW_ACTION_MODE", "")
    if env_mode:
        if ActionMode.is_valid(env_mode):
            logger.debug("Action mode %s from GH_AW_ACTION_MODE", env_mode)
            return ActionMode(env_mode)
        logger.debug("Ignoring invalid GH_AW_ACTION_MODE=%s", env_mode)

    if override:
        return _explicit_mode(override, "action-mode")

    if features and features.get("action-mode") is not None:
        return _explicit_mode(features["action-mode"], "features.action-mode")

    ref = env.get("GITHUB_REF", "")
    event = env.get("GITHUB_EVENT_NAME", "")
    if ref.startswith("refs/tags/") or ref.startswith("refs/heads/release") or event == "release":
        logger.debug("Release mode detected (ref=%s, event=%s)", ref, event)
        return ActionMode.RELEASE
    return ActionMode.DEV
