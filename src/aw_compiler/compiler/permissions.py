"""GitHub Actions permission model.

Permissions is a small wrapper around a scope -> level mapping. Levels
are ordered none < read < write < admin and merge() keeps the highest
level per scope, so folding bundles yields the least privilege that
covers every contributor.

Public API:
    PermissionLevel: Enumeration of permission levels
    PermissionScope: Enumeration of GitHub token scopes
    Permissions: Scope -> level mapping with max-merge
    parse_permissions: Convert a front-matter `permissions:` value
    steps_require_id_token: Detect OIDC/vault actions in user steps
    apply_id_token_rule: Add or suppress id-token for a job
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from enum import Enum
from typing import Any

from aw_compiler.core.exceptions import SchemaError

logger = logging.getLogger(__name__)


class PermissionLevel(str, Enum):
    """Access level granted to the job token for one scope."""

    NONE = "none"
    READ = "read"
    WRITE = "write"
    ADMIN = "admin"

    @property
    def rank(self) -> int:
        """Ordering used by Permissions.merge()."""
        return _LEVEL_RANK[self]


_LEVEL_RANK = {
    PermissionLevel.NONE: 0,
    PermissionLevel.READ: 1,
    PermissionLevel.WRITE: 2,
    PermissionLevel.ADMIN: 3,
}


class PermissionScope(str, Enum):
    """Token scopes accepted in a workflow `permissions:` block."""

    ACTIONS = "actions"
    ATTESTATIONS = "attestations"
    CHECKS = "checks"
    CONTENTS = "contents"
    DEPLOYMENTS = "deployments"
    DISCUSSIONS = "discussions"
    ID_TOKEN = "id-token"
    ISSUES = "issues"
    METADATA = "metadata"
    MODELS = "models"
    PACKAGES = "packages"
    PAGES = "pages"
    PULL_REQUESTS = "pull-requests"
    REPOSITORY_PROJECTS = "repository-projects"
    ORGANIZATION_PROJECTS = "organization-projects"
    SECURITY_EVENTS = "security-events"
    STATUSES = "statuses"


_VALID_SCOPES = {scope.value for scope in PermissionScope}
_VALID_LEVELS = {level.value for level in PermissionLevel}

# Scopes expanded by the read-all / write-all shorthands
_SHORTHAND_SCOPES = tuple(
    scope
    for scope in PermissionScope
    if scope not in (PermissionScope.ID_TOKEN, PermissionScope.ORGANIZATION_PROJECTS)
)


class Permissions:
    """Mapping of permission scope to level with max-merge semantics.

    Example:
        >>> p = Permissions({"contents": "read"})
        >>> p.merge(Permissions({"contents": "write", "issues": "write"}))
        >>> p.to_dict()
        {'contents': 'write', 'issues': 'write'}

    """

    def __init__(self, scopes: Mapping[str, str | PermissionLevel] | None = None) -> None:
        self._scopes: dict[PermissionScope, PermissionLevel] = {}
        for scope, level in (scopes or {}).items():
            self.set(scope, level)

    def set(self, scope: str | PermissionScope, level: str | PermissionLevel) -> None:
        """Set scope to level, replacing any previous value."""
        self._scopes[_as_scope(scope)] = _as_level(level)

    def get(self, scope: str | PermissionScope) -> PermissionLevel | None:
        """Return the level for scope, or None when unset."""
        return self._scopes.get(_as_scope(scope))

    def remove(self, scope: str | PermissionScope) -> None:
        """Drop scope if present."""
        self._scopes.pop(_as_scope(scope), None)

    def merge(self, other: Permissions) -> None:
        """Merge other into self keeping the highest level per scope."""
        for scope, level in other._scopes.items():
            current = self._scopes.get(scope)
            if current is None or level.rank > current.rank:
                self._scopes[scope] = level

    def intersect(self, other: Permissions) -> Permissions:
        """Return scopes present in both, each at the lower of the two levels."""
        result = Permissions()
        for scope, level in self._scopes.items():
            theirs = other._scopes.get(scope)
            if theirs is not None:
                result._scopes[scope] = level if level.rank <= theirs.rank else theirs
        return result

    def copy(self) -> Permissions:
        """Return an independent copy."""
        clone = Permissions()
        clone._scopes = dict(self._scopes)
        return clone

    def scopes(self) -> list[PermissionScope]:
        """Return configured scopes in sorted order."""
        return sorted(self._scopes, key=lambda s: s.value)

    def to_dict(self) -> dict[str, str]:
        """Return a plain mapping with scopes in sorted order."""
        return {scope.value: self._scopes[scope].value for scope in self.scopes()}

    def is_empty(self) -> bool:
        """True when no scope is configured."""
        return not self._scopes

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Permissions):
            return NotImplemented
        return self._scopes == other._scopes

    def __contains__(self, scope: object) -> bool:
        if isinstance(scope, (str, PermissionScope)):
            try:
                return _as_scope(scope) in self._scopes
            except SchemaError:
                return False
        return False

    def __repr__(self) -> str:
        return f"Permissions({self.to_dict()!r})"

    @classmethod
    def from_bundle(cls, bundle: Iterable[tuple[str, str]]) -> Permissions:
        """Build Permissions from (scope, level) pairs."""
        return cls(dict(bundle))


def _as_scope(scope: str | PermissionScope) -> PermissionScope:
    if isinstance(scope, PermissionScope):
        return scope
    if scope not in _VALID_SCOPES:
        raise SchemaError(
            f"Unknown permission scope: '{scope}'\n"
            f"  Valid scopes: {', '.join(sorted(_VALID_SCOPES))}",
            field="permissions",
        )
    return PermissionScope(scope)


def _as_level(level: str | PermissionLevel) -> PermissionLevel:
    if isinstance(level, PermissionLevel):
        return level
    if level not in _VALID_LEVELS:
        raise SchemaError(
            f"Unknown permission level: '{level}'\n"
            f"  Valid levels: none, read, write, admin",
            field="permissions",
        )
    return PermissionLevel(level)


def parse_permissions(value: Any) -> Permissions:
    """Convert a front-matter `permissions:` value into Permissions.

    Accepts a scope mapping, the shorthands "read-all" / "write-all", or
    an empty mapping.

    Raises:
        SchemaError: On unknown scopes, levels or value types.

    """
    if value is None:
        return Permissions()
    if isinstance(value, str):
        if value in ("read-all", "write-all"):
            level = PermissionLevel.READ if value == "read-all" else PermissionLevel.WRITE
            return Permissions({scope.value: level for scope in _SHORTHAND_SCOPES})
        raise SchemaError(
            f"permissions must be a mapping or one of 'read-all', 'write-all', got '{value}'",
            field="permissions",
        )
    if not isinstance(value, dict):
        raise SchemaError(
            f"permissions must be a mapping, got {type(value).__name__}",
            field="permissions",
        )
    permissions = Permissions()
    for scope, level in value.items():
        if not isinstance(level, str):
            raise SchemaError(
                f"permissions.{scope} must be a string level, got {type(level).__name__}",
                field=f"permissions.{scope}",
            )
        permissions.set(str(scope), level)
    return permissions


# Actions that exchange the job's OIDC token for cloud or vault credentials
OIDC_ACTIONS: tuple[str, ...] = (
    "aws-actions/configure-aws-credentials",
    "azure/login",
    "google-github-actions/auth",
    "hashicorp/vault-action",
    "cyberark/conjur-action",
)


def steps_require_id_token(steps: Iterable[Any] | None) -> bool:
    """Return True if any step `uses:` a known OIDC/vault action."""
    for step in steps or ():
        if not isinstance(step, dict):
            continue
        uses = step.get("uses")
        if not isinstance(uses, str):
            continue
        action = uses.split("@", 1)[0].strip()
        if action in OIDC_ACTIONS:
            logger.debug("Step uses OIDC action %s", action)
            return True
    return False


def apply_id_token_rule(
    permissions: Permissions,
    steps: Iterable[Any] | None,
    id_token: str | None,
) -> None:
    """Apply the id-token rule to a job's permissions in place.

    `id-token: write` is added when the user asked for it or when a step
    uses a known OIDC action; an explicit `none` suppresses it.

    Args:
        permissions: Job permissions to update.
        steps: User-supplied steps of the job.
        id_token: Explicit user setting ("write", "none" or None).

    """
    if id_token == PermissionLevel.NONE.value:
        permissions.remove(PermissionScope.ID_TOKEN)
        return
    if id_token == PermissionLevel.WRITE.value or steps_require_id_token(steps):
        permissions.set(PermissionScope.ID_TOKEN, PermissionLevel.WRITE)
