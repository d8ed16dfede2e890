"""Typed records for every safe-output type.

Each safe-output type is one frozen dataclass deriving from
SafeOutputConfig. The base carries the fields every type shares (`max`,
`github-token` and the target group); subclasses add type-specific
fields and declare, as class attributes, the type key, default max,
exposed job outputs and whether `target-repo: "*"` is accepted.

Handler settings for the safe-outputs JSON config are derived from the
dataclass fields: field names become snake_case keys, values equal to
the field default are omitted.

Public API:
    OutputSpec: A job output exposed by a safe-output type
    SafeOutputConfig: Shared base of all type records
    IssueReportingConfig: Base for missing-tool / missing-data
    (one subclass per type, e.g. CreateIssueConfig, AddCommentConfig)
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass, field
from typing import Any, ClassVar, TypeVar

from aw_compiler.compiler.permissions import Permissions
from aw_compiler.compiler.safe_outputs.parsing import (
    FilterConfig,
    ListConfig,
    TargetConfig,
    bool_field,
    parse_expires,
    parse_filter_config,
    parse_list_config,
    parse_target_config,
    string_field,
    string_list_field,
    templatable_field,
)
from aw_compiler.core.exceptions import SchemaError
from aw_compiler.core.types import TemplatableStr, is_expression, templatable_int

logger = logging.getLogger(__name__)

_T = TypeVar("_T", bound="SafeOutputConfig")

# Field metadata marking templatable values and their literal kind
_TEMPLATABLE_BOOL = {"templatable": "bool"}

_BASE_FIELDS = ("max", "github_token", "target")

# Permission bundles
CONTENTS_READ_ISSUES_WRITE = (("contents", "read"), ("issues", "write"))
CONTENTS_READ_ISSUES_DISCUSSIONS_WRITE = (
    ("contents", "read"),
    ("issues", "write"),
    ("discussions", "write"),
)
CONTENTS_READ_DISCUSSIONS_WRITE = (("contents", "read"), ("discussions", "write"))
CONTENTS_READ_ISSUES_PRS_WRITE = (
    ("contents", "read"),
    ("issues", "write"),
    ("pull-requests", "write"),
)
CONTENTS_READ_PRS_WRITE = (("contents", "read"), ("pull-requests", "write"))
CONTENTS_WRITE = (("contents", "write"),)
CONTENTS_WRITE_PRS_WRITE = (("contents", "write"), ("pull-requests", "write"))
CONTENTS_WRITE_ISSUES_PRS_WRITE = (
    ("contents", "write"),
    ("issues", "write"),
    ("pull-requests", "write"),
)
ACTIONS_WRITE = (("actions", "write"),)
CONTENTS_READ_PROJECTS_WRITE = (("contents", "read"), ("repository-projects", "write"))
CONTENTS_READ_SECURITY_EVENTS_WRITE = (("contents", "read"), ("security-events", "write"))
CONTENTS_READ_SECURITY_EVENTS_WRITE_ACTIONS_READ = (
    ("contents", "read"),
    ("security-events", "write"),
    ("actions", "read"),
)
CONTENTS_READ = (("contents", "read"),)


@dataclass(frozen=True)
class OutputSpec:
    """A job output exposed by a safe-output type.

    Attributes:
        key: Output name on the safe_outputs job.
        description: Human-readable description for workflow_call outputs.

    """

    key: str
    description: str


@dataclass(frozen=True)
class SafeOutputConfig:
    """Fields shared by every safe-output type.

    Attributes:
        max: Maximum number of items (templatable; "0" means unlimited).
        github_token: Per-output token, written only to the handler config.
        target: Target group (target, target-repo, allowed-repos).

    """

    type_key: ClassVar[str] = ""
    default_max: ClassVar[int] = 1
    outputs: ClassVar[tuple[OutputSpec, ...]] = ()
    allow_wildcard_target_repo: ClassVar[bool] = False
    bundle: ClassVar[tuple[tuple[str, str], ...]] = CONTENTS_READ_ISSUES_WRITE
    env_prefix: ClassVar[str] = ""

    max: TemplatableStr | None = None
    github_token: str = ""
    target: TargetConfig = field(default_factory=TargetConfig)

    @classmethod
    def parse(cls: type[_T], raw: Any) -> _T:
        """Build the record from a raw front-matter value.

        `null` or `true` enable the type with defaults.

        Raises:
            SchemaError: On malformed values.

        """
        if raw is None or raw is True:
            config: dict[str, Any] = {}
        elif isinstance(raw, dict):
            config = raw
        else:
            raise SchemaError(
                f"safe-outputs.{cls.type_key} must be a mapping, got {type(raw).__name__}",
                field=f"safe-outputs.{cls.type_key}",
            )
        max_value = templatable_field(config, "max", cls.type_key)
        values: dict[str, Any] = {
            "max": max_value if max_value is not None else str(cls.default_max),
            "github_token": string_field(config, "github-token", cls.type_key),
            "target": parse_target_config(config, cls.type_key),
        }
        values.update(cls.parse_fields(config))
        logger.debug("Parsed safe-output %s (max=%s)", cls.type_key, values["max"])
        return cls(**values)

    @classmethod
    def parse_fields(cls, config: dict[str, Any]) -> dict[str, Any]:
        """Parse type-specific fields; subclasses override."""
        return {}

    @property
    def handler_key(self) -> str:
        """snake_case key of this type in the handler config."""
        return self.type_key.replace("-", "_")

    @property
    def max_count(self) -> int:
        """Literal max, or the default when max is an expression."""
        return templatable_int(self.max, self.default_max)

    def permissions(self) -> Permissions:
        """Minimal permission bundle for this type."""
        return Permissions.from_bundle(self.bundle)

    def handler_settings(self) -> dict[str, Any]:
        """Per-type settings for GH_AW_SAFE_OUTPUTS_HANDLER_CONFIG."""
        settings: dict[str, Any] = {}
        if self.max is not None:
            settings["max"] = templatable_json(self.max, "int")
        if self.github_token:
            settings["github-token"] = self.github_token
        if self.target.target:
            settings["target"] = self.target.target
        if self.target.target_repo:
            settings["target-repo"] = self.target.target_repo
        if self.target.allowed_repos:
            settings["allowed_repos"] = list(self.target.allowed_repos)
        for item in dataclasses.fields(self):
            if item.name in _BASE_FIELDS:
                continue
            value = getattr(self, item.name)
            if _is_default(item, value):
                continue
            if isinstance(value, (FilterConfig, ListConfig)):
                for name, nested in dataclasses.asdict(value).items():
                    if nested:
                        settings[name] = list(nested) if isinstance(nested, tuple) else nested
                continue
            kind = item.metadata.get("templatable")
            if kind:
                settings[item.name] = templatable_json(value, kind)
            elif isinstance(value, tuple):
                settings[item.name] = list(value)
            else:
                settings[item.name] = value
        return settings

    def env_vars(self) -> dict[str, str]:
        """Environment variables this type contributes to the processing step."""
        return {}


def _is_default(item: dataclasses.Field[Any], value: Any) -> bool:
    if item.default is not dataclasses.MISSING:
        return value == item.default
    if item.default_factory is not dataclasses.MISSING:
        return value == item.default_factory()
    return False


def templatable_json(value: str, kind: str) -> Any:
    if is_expression(value):
        return value
    if kind == "bool":
        return value == "true"
    return templatable_int(value)


def _choice(config: dict[str, Any], key: str, type_key: str, choices: tuple[str, ...]) -> str:
    value = string_field(config, key, type_key)
    if value and value not in choices:
        raise SchemaError(
            f"safe-outputs.{type_key}.{key} must be one of {', '.join(choices)}, got '{value}'",
            field=f"safe-outputs.{type_key}.{key}",
        )
    return value


def _allows(config: dict[str, Any], key: str) -> bool:
    """True when an update flag is present and not explicitly false."""
    return key in config and config[key] is not False


def _target_env(prefix: str, target: TargetConfig) -> dict[str, str]:
    return {f"{prefix}_TARGET": target.target} if target.target else {}


def _filter_env(prefix: str, filters: FilterConfig) -> dict[str, str]:
    env: dict[str, str] = {}
    if filters.required_labels:
        env[f"{prefix}_REQUIRED_LABELS"] = ",".join(filters.required_labels)
    if filters.required_title_prefix:
        env[f"{prefix}_REQUIRED_TITLE_PREFIX"] = filters.required_title_prefix
    if filters.required_category:
        env[f"{prefix}_REQUIRED_CATEGORY"] = filters.required_category
    return env


# =============================================================================
# Issues
# =============================================================================


@dataclass(frozen=True)
class CreateIssueConfig(SafeOutputConfig):
    """create-issue: open new issues, optionally in another repository."""

    type_key: ClassVar[str] = "create-issue"
    outputs: ClassVar[tuple[OutputSpec, ...]] = (
        OutputSpec("created_issue_number", "Number of the first created issue"),
        OutputSpec("created_issue_url", "URL of the first created issue"),
    )

    title_prefix: str = ""
    labels: tuple[str, ...] = ()
    allowed_labels: tuple[str, ...] = ()
    assignees: tuple[str, ...] = ()
    close_older_issues: TemplatableStr | None = field(default=None, metadata=_TEMPLATABLE_BOOL)
    expires: int = 0
    group: TemplatableStr | None = field(default=None, metadata=_TEMPLATABLE_BOOL)
    footer: TemplatableStr | None = field(default=None, metadata=_TEMPLATABLE_BOOL)

    @classmethod
    def parse_fields(cls, config: dict[str, Any]) -> dict[str, Any]:
        key = cls.type_key
        return {
            "title_prefix": string_field(config, "title-prefix", key),
            "labels": string_list_field(config, "labels", key),
            "allowed_labels": string_list_field(config, "allowed-labels", key),
            "assignees": string_list_field(config, "assignees", key),
            "close_older_issues": templatable_field(config, "close-older-issues", key, "bool"),
            "expires": parse_expires(config.get("expires"), key),
            "group": templatable_field(config, "group", key, "bool"),
            "footer": templatable_field(config, "footer", key, "bool"),
        }


@dataclass(frozen=True)
class CloseIssueConfig(SafeOutputConfig):
    """close-issue: close issues matching the filters."""

    type_key: ClassVar[str] = "close-issue"
    env_prefix: ClassVar[str] = "GH_AW_CLOSE_ISSUE"

    filters: FilterConfig = field(default_factory=FilterConfig)
    state_reason: str = ""

    @classmethod
    def parse_fields(cls, config: dict[str, Any]) -> dict[str, Any]:
        return {
            "filters": parse_filter_config(config, cls.type_key),
            "state_reason": _choice(
                config, "state-reason", cls.type_key, ("completed", "not_planned", "duplicate")
            ),
        }

    def env_vars(self) -> dict[str, str]:
        env = _target_env(self.env_prefix, self.target)
        env.update(_filter_env(self.env_prefix, self.filters))
        return env


@dataclass(frozen=True)
class UpdateIssueConfig(SafeOutputConfig):
    """update-issue: edit status, title or body of an issue."""

    type_key: ClassVar[str] = "update-issue"

    allow_status: bool = False
    allow_title: bool = False
    allow_body: bool = False
    footer: TemplatableStr | None = field(default=None, metadata=_TEMPLATABLE_BOOL)

    @classmethod
    def parse_fields(cls, config: dict[str, Any]) -> dict[str, Any]:
        return {
            "allow_status": _allows(config, "status"),
            "allow_title": _allows(config, "title"),
            "allow_body": _allows(config, "body"),
            "footer": templatable_field(config, "footer", cls.type_key, "bool"),
        }


@dataclass(frozen=True)
class LinkSubIssueConfig(SafeOutputConfig):
    """link-sub-issue: attach an issue as a sub-issue of a parent."""

    type_key: ClassVar[str] = "link-sub-issue"

    parent_required_labels: tuple[str, ...] = ()
    parent_title_prefix: str = ""
    sub_required_labels: tuple[str, ...] = ()
    sub_title_prefix: str = ""

    @classmethod
    def parse_fields(cls, config: dict[str, Any]) -> dict[str, Any]:
        key = cls.type_key
        return {
            "parent_required_labels": string_list_field(config, "parent-required-labels", key),
            "parent_title_prefix": string_field(config, "parent-title-prefix", key),
            "sub_required_labels": string_list_field(config, "sub-required-labels", key),
            "sub_title_prefix": string_field(config, "sub-title-prefix", key),
        }


@dataclass(frozen=True)
class _ListOutputConfig(SafeOutputConfig):
    """Base for operations with allowed / blocked value lists."""

    allowed_key: ClassVar[str] = "allowed"

    values: ListConfig = field(default_factory=ListConfig)

    @classmethod
    def parse_fields(cls, config: dict[str, Any]) -> dict[str, Any]:
        return {"values": parse_list_config(config, cls.type_key, cls.allowed_key)}

    def env_vars(self) -> dict[str, str]:
        env = {
            f"{self.env_prefix}_ALLOWED": ",".join(self.values.allowed),
            f"{self.env_prefix}_BLOCKED": ",".join(self.values.blocked),
            f"{self.env_prefix}_MAX_COUNT": (
                self.max if self.max is not None and is_expression(self.max) else str(self.max_count)
            ),
        }
        env.update(_target_env(self.env_prefix, self.target))
        return env


@dataclass(frozen=True)
class AddLabelsConfig(_ListOutputConfig):
    """add-labels: add labels to issues or pull requests."""

    type_key: ClassVar[str] = "add-labels"
    default_max: ClassVar[int] = 3
    bundle: ClassVar[tuple[tuple[str, str], ...]] = CONTENTS_READ_ISSUES_PRS_WRITE
    env_prefix: ClassVar[str] = "GH_AW_LABELS"


@dataclass(frozen=True)
class RemoveLabelsConfig(_ListOutputConfig):
    """remove-labels: remove labels from issues or pull requests."""

    type_key: ClassVar[str] = "remove-labels"
    default_max: ClassVar[int] = 3
    bundle: ClassVar[tuple[tuple[str, str], ...]] = CONTENTS_READ_ISSUES_PRS_WRITE
    env_prefix: ClassVar[str] = "GH_AW_REMOVE_LABELS"


@dataclass(frozen=True)
class AssignMilestoneConfig(_ListOutputConfig):
    type_key: ClassVar[str] = "assign-milestone"
    env_prefix: ClassVar[str] = "GH_AW_MILESTONE"


@dataclass(frozen=True)
class AssignToUserConfig(_ListOutputConfig):
    type_key: ClassVar[str] = "assign-to-user"
    env_prefix: ClassVar[str] = "GH_AW_ASSIGNEES"


@dataclass(frozen=True)
class UnassignFromUserConfig(_ListOutputConfig):
    type_key: ClassVar[str] = "unassign-from-user"
    env_prefix: ClassVar[str] = "GH_AW_UNASSIGNEES"


@dataclass(frozen=True)
class SetIssueTypeConfig(_ListOutputConfig):
    """set-issue-type: set the issue type; target-repo may be "*"."""

    type_key: ClassVar[str] = "set-issue-type"
    allow_wildcard_target_repo: ClassVar[bool] = True
    env_prefix: ClassVar[str] = "GH_AW_ISSUE_TYPE"


@dataclass(frozen=True)
class AssignToAgentConfig(_ListOutputConfig):
    """assign-to-agent: hand an issue to a coding agent."""

    type_key: ClassVar[str] = "assign-to-agent"
    env_prefix: ClassVar[str] = "GH_AW_AGENT"

    name: str = "copilot"

    @classmethod
    def parse_fields(cls, config: dict[str, Any]) -> dict[str, Any]:
        values = super().parse_fields(config)
        values["name"] = string_field(config, "name", cls.type_key, default="copilot")
        return values


@dataclass(frozen=True)
class CreateAgentSessionConfig(SafeOutputConfig):
    type_key: ClassVar[str] = "create-agent-session"

    base: str = ""

    @classmethod
    def parse_fields(cls, config: dict[str, Any]) -> dict[str, Any]:
        return {"base": string_field(config, "base", cls.type_key)}


# =============================================================================
# Comments and discussions
# =============================================================================


@dataclass(frozen=True)
class AddCommentConfig(SafeOutputConfig):
    """add-comment: comment on the triggering issue, PR or discussion."""

    type_key: ClassVar[str] = "add-comment"
    outputs: ClassVar[tuple[OutputSpec, ...]] = (
        OutputSpec("comment_id", "ID of the first added comment"),
        OutputSpec("comment_url", "URL of the first added comment"),
    )

    discussions: bool = True
    hide_older_comments: TemplatableStr | None = field(default=None, metadata=_TEMPLATABLE_BOOL)
    footer: TemplatableStr | None = field(default=None, metadata=_TEMPLATABLE_BOOL)

    @classmethod
    def parse_fields(cls, config: dict[str, Any]) -> dict[str, Any]:
        key = cls.type_key
        return {
            "discussions": bool_field(config, "discussions", key, default=True),
            "hide_older_comments": templatable_field(config, "hide-older-comments", key, "bool"),
            "footer": templatable_field(config, "footer", key, "bool"),
        }

    def permissions(self) -> Permissions:
        if self.discussions:
            return Permissions.from_bundle(CONTENTS_READ_ISSUES_DISCUSSIONS_WRITE)
        return Permissions.from_bundle(CONTENTS_READ_ISSUES_WRITE)


@dataclass(frozen=True)
class HideCommentConfig(SafeOutputConfig):
    """hide-comment: minimize comments."""

    type_key: ClassVar[str] = "hide-comment"
    default_max: ClassVar[int] = 5

    discussions: bool = True
    allowed_reasons: tuple[str, ...] = ()

    @classmethod
    def parse_fields(cls, config: dict[str, Any]) -> dict[str, Any]:
        return {
            "discussions": bool_field(config, "discussions", cls.type_key, default=True),
            "allowed_reasons": string_list_field(config, "allowed-reasons", cls.type_key),
        }

    def permissions(self) -> Permissions:
        if self.discussions:
            return Permissions.from_bundle(CONTENTS_READ_ISSUES_DISCUSSIONS_WRITE)
        return Permissions.from_bundle(CONTENTS_READ_ISSUES_WRITE)


@dataclass(frozen=True)
class CreateDiscussionConfig(SafeOutputConfig):
    """create-discussion: open discussions, falling back to issues."""

    type_key: ClassVar[str] = "create-discussion"
    bundle: ClassVar[tuple[tuple[str, str], ...]] = CONTENTS_READ_ISSUES_DISCUSSIONS_WRITE

    title_prefix: str = ""
    category: str = ""
    labels: tuple[str, ...] = ()
    allowed_labels: tuple[str, ...] = ()
    close_older_discussions: TemplatableStr | None = field(
        default=None, metadata=_TEMPLATABLE_BOOL
    )
    expires: int = 0
    footer: TemplatableStr | None = field(default=None, metadata=_TEMPLATABLE_BOOL)
    fallback_to_issue: bool = True

    @classmethod
    def parse_fields(cls, config: dict[str, Any]) -> dict[str, Any]:
        key = cls.type_key
        category = config.get("category")
        if isinstance(category, int) and not isinstance(category, bool):
            category = str(category)
            config = {**config, "category": category}
        return {
            "title_prefix": string_field(config, "title-prefix", key),
            "category": string_field(config, "category", key),
            "labels": string_list_field(config, "labels", key),
            "allowed_labels": string_list_field(config, "allowed-labels", key),
            "close_older_discussions": templatable_field(
                config, "close-older-discussions", key, "bool"
            ),
            "expires": parse_expires(config.get("expires"), key),
            "footer": templatable_field(config, "footer", key, "bool"),
            "fallback_to_issue": bool_field(config, "fallback-to-issue", key, default=True),
        }


@dataclass(frozen=True)
class CloseDiscussionConfig(SafeOutputConfig):
    type_key: ClassVar[str] = "close-discussion"
    bundle: ClassVar[tuple[tuple[str, str], ...]] = CONTENTS_READ_DISCUSSIONS_WRITE
    env_prefix: ClassVar[str] = "GH_AW_CLOSE_DISCUSSION"

    filters: FilterConfig = field(default_factory=FilterConfig)

    @classmethod
    def parse_fields(cls, config: dict[str, Any]) -> dict[str, Any]:
        return {"filters": parse_filter_config(config, cls.type_key, discussions=True)}

    def env_vars(self) -> dict[str, str]:
        env = _target_env(self.env_prefix, self.target)
        env.update(_filter_env(self.env_prefix, self.filters))
        return env


@dataclass(frozen=True)
class UpdateDiscussionConfig(SafeOutputConfig):
    type_key: ClassVar[str] = "update-discussion"
    bundle: ClassVar[tuple[tuple[str, str], ...]] = CONTENTS_READ_DISCUSSIONS_WRITE

    allow_title: bool = False
    allow_body: bool = False
    allow_labels: bool = False
    allowed_labels: tuple[str, ...] = ()

    @classmethod
    def parse_fields(cls, config: dict[str, Any]) -> dict[str, Any]:
        return {
            "allow_title": _allows(config, "title"),
            "allow_body": _allows(config, "body"),
            "allow_labels": _allows(config, "labels"),
            "allowed_labels": string_list_field(config, "allowed-labels", cls.type_key),
        }


# =============================================================================
# Pull requests
# =============================================================================


@dataclass(frozen=True)
class CreatePullRequestConfig(SafeOutputConfig):
    """create-pull-request: push the agent's patch and open a pull request.

    `fallback-as-issue` (default true) opens an issue when the pull
    request cannot be created, which adds `issues: write`.
    """

    type_key: ClassVar[str] = "create-pull-request"
    outputs: ClassVar[tuple[OutputSpec, ...]] = (
        OutputSpec("created_pr_number", "Number of the created pull request"),
        OutputSpec("created_pr_url", "URL of the created pull request"),
    )

    title_prefix: str = ""
    labels: tuple[str, ...] = ()
    allowed_labels: tuple[str, ...] = ()
    reviewers: tuple[str, ...] = ()
    draft: TemplatableStr | None = field(default=None, metadata=_TEMPLATABLE_BOOL)
    if_no_changes: str = ""
    allow_empty: TemplatableStr | None = field(default=None, metadata=_TEMPLATABLE_BOOL)
    expires: int = 0
    auto_merge: TemplatableStr | None = field(default=None, metadata=_TEMPLATABLE_BOOL)
    base_branch: str = ""
    footer: TemplatableStr | None = field(default=None, metadata=_TEMPLATABLE_BOOL)
    fallback_as_issue: bool = True
    github_token_for_extra_empty_commit: str = ""

    @classmethod
    def parse_fields(cls, config: dict[str, Any]) -> dict[str, Any]:
        key = cls.type_key
        return {
            "title_prefix": string_field(config, "title-prefix", key),
            "labels": string_list_field(config, "labels", key),
            "allowed_labels": string_list_field(config, "allowed-labels", key),
            "reviewers": string_list_field(config, "reviewers", key),
            "draft": templatable_field(config, "draft", key, "bool"),
            "if_no_changes": _choice(config, "if-no-changes", key, ("warn", "error", "ignore")),
            "allow_empty": templatable_field(config, "allow-empty", key, "bool"),
            "expires": parse_expires(config.get("expires"), key),
            "auto_merge": templatable_field(config, "auto-merge", key, "bool"),
            "base_branch": string_field(config, "base-branch", key),
            "footer": templatable_field(config, "footer", key, "bool"),
            "fallback_as_issue": bool_field(config, "fallback-as-issue", key, default=True),
            "github_token_for_extra_empty_commit": string_field(
                config, "github-token-for-extra-empty-commit", key
            ),
        }

    def permissions(self) -> Permissions:
        if self.fallback_as_issue:
            return Permissions.from_bundle(CONTENTS_WRITE_ISSUES_PRS_WRITE)
        return Permissions.from_bundle(CONTENTS_WRITE_PRS_WRITE)

    def handler_settings(self) -> dict[str, Any]:
        settings = super().handler_settings()
        # The extra-commit token travels as GH_AW_CI_TRIGGER_TOKEN instead
        settings.pop("github_token_for_extra_empty_commit", None)
        return settings


@dataclass(frozen=True)
class PushToPullRequestBranchConfig(SafeOutputConfig):
    type_key: ClassVar[str] = "push-to-pull-request-branch"
    outputs: ClassVar[tuple[OutputSpec, ...]] = (
        OutputSpec("push_commit_sha", "SHA of the pushed commit"),
        OutputSpec("push_commit_url", "URL of the pushed commit"),
    )
    bundle: ClassVar[tuple[tuple[str, str], ...]] = CONTENTS_WRITE_PRS_WRITE

    title_prefix: str = ""
    labels: tuple[str, ...] = ()
    if_no_changes: str = ""
    commit_title_suffix: str = ""
    github_token_for_extra_empty_commit: str = ""

    @classmethod
    def parse_fields(cls, config: dict[str, Any]) -> dict[str, Any]:
        key = cls.type_key
        return {
            "title_prefix": string_field(config, "title-prefix", key),
            "labels": string_list_field(config, "labels", key),
            "if_no_changes": _choice(config, "if-no-changes", key, ("warn", "error", "ignore")),
            "commit_title_suffix": string_field(config, "commit-title-suffix", key),
            "github_token_for_extra_empty_commit": string_field(
                config, "github-token-for-extra-empty-commit", key
            ),
        }

    def handler_settings(self) -> dict[str, Any]:
        settings = super().handler_settings()
        settings.pop("github_token_for_extra_empty_commit", None)
        return settings


@dataclass(frozen=True)
class UpdatePullRequestConfig(SafeOutputConfig):
    type_key: ClassVar[str] = "update-pull-request"
    bundle: ClassVar[tuple[tuple[str, str], ...]] = CONTENTS_READ_PRS_WRITE

    allow_title: bool = True
    allow_body: bool = True
    operation: str = ""

    @classmethod
    def parse_fields(cls, config: dict[str, Any]) -> dict[str, Any]:
        key = cls.type_key
        return {
            "allow_title": bool_field(config, "title", key, default=True),
            "allow_body": bool_field(config, "body", key, default=True),
            "operation": _choice(config, "operation", key, ("append", "prepend", "replace")),
        }


@dataclass(frozen=True)
class ClosePullRequestConfig(SafeOutputConfig):
    type_key: ClassVar[str] = "close-pull-request"
    bundle: ClassVar[tuple[tuple[str, str], ...]] = CONTENTS_READ_PRS_WRITE
    env_prefix: ClassVar[str] = "GH_AW_CLOSE_PR"

    filters: FilterConfig = field(default_factory=FilterConfig)

    @classmethod
    def parse_fields(cls, config: dict[str, Any]) -> dict[str, Any]:
        return {"filters": parse_filter_config(config, cls.type_key)}

    def env_vars(self) -> dict[str, str]:
        env = _target_env(self.env_prefix, self.target)
        env.update(_filter_env(self.env_prefix, self.filters))
        return env


@dataclass(frozen=True)
class MarkPullRequestAsReadyForReviewConfig(SafeOutputConfig):
    type_key: ClassVar[str] = "mark-pull-request-as-ready-for-review"
    bundle: ClassVar[tuple[tuple[str, str], ...]] = CONTENTS_READ_PRS_WRITE

    filters: FilterConfig = field(default_factory=FilterConfig)

    @classmethod
    def parse_fields(cls, config: dict[str, Any]) -> dict[str, Any]:
        return {"filters": parse_filter_config(config, cls.type_key)}


@dataclass(frozen=True)
class AddReviewerConfig(_ListOutputConfig):
    type_key: ClassVar[str] = "add-reviewer"
    default_max: ClassVar[int] = 3
    bundle: ClassVar[tuple[tuple[str, str], ...]] = CONTENTS_READ_PRS_WRITE
    env_prefix: ClassVar[str] = "GH_AW_REVIEWERS"
    allowed_key: ClassVar[str] = "reviewers"


@dataclass(frozen=True)
class CreatePullRequestReviewCommentConfig(SafeOutputConfig):
    type_key: ClassVar[str] = "create-pull-request-review-comment"
    default_max: ClassVar[int] = 10
    bundle: ClassVar[tuple[tuple[str, str], ...]] = CONTENTS_READ_PRS_WRITE

    side: str = "RIGHT"

    @classmethod
    def parse_fields(cls, config: dict[str, Any]) -> dict[str, Any]:
        return {"side": _choice(config, "side", cls.type_key, ("LEFT", "RIGHT")) or "RIGHT"}


@dataclass(frozen=True)
class SubmitPullRequestReviewConfig(SafeOutputConfig):
    type_key: ClassVar[str] = "submit-pull-request-review"
    bundle: ClassVar[tuple[tuple[str, str], ...]] = CONTENTS_READ_PRS_WRITE

    footer: TemplatableStr | None = field(default=None, metadata=_TEMPLATABLE_BOOL)

    @classmethod
    def parse_fields(cls, config: dict[str, Any]) -> dict[str, Any]:
        return {"footer": templatable_field(config, "footer", cls.type_key, "bool")}


@dataclass(frozen=True)
class ReplyToPullRequestReviewCommentConfig(SafeOutputConfig):
    type_key: ClassVar[str] = "reply-to-pull-request-review-comment"
    default_max: ClassVar[int] = 10
    bundle: ClassVar[tuple[tuple[str, str], ...]] = CONTENTS_READ_PRS_WRITE


@dataclass(frozen=True)
class ResolvePullRequestReviewThreadConfig(SafeOutputConfig):
    """resolve-pull-request-review-thread: target-repo may be "*"."""

    type_key: ClassVar[str] = "resolve-pull-request-review-thread"
    default_max: ClassVar[int] = 10
    bundle: ClassVar[tuple[tuple[str, str], ...]] = CONTENTS_READ_PRS_WRITE
    allow_wildcard_target_repo: ClassVar[bool] = True


# =============================================================================
# Repository, actions, projects and security
# =============================================================================


@dataclass(frozen=True)
class UpdateReleaseConfig(SafeOutputConfig):
    type_key: ClassVar[str] = "update-release"
    bundle: ClassVar[tuple[tuple[str, str], ...]] = CONTENTS_WRITE


@dataclass(frozen=True)
class UploadAssetConfig(SafeOutputConfig):
    """upload-asset: publish files to an orphaned assets branch."""

    type_key: ClassVar[str] = "upload-asset"
    default_max: ClassVar[int] = 10
    bundle: ClassVar[tuple[tuple[str, str], ...]] = CONTENTS_WRITE

    branch: str = "assets/${{ github.workflow }}"
    max_size_kb: int = 10240
    allowed_exts: tuple[str, ...] = (".png", ".jpg", ".jpeg")

    @classmethod
    def parse_fields(cls, config: dict[str, Any]) -> dict[str, Any]:
        key = cls.type_key
        max_size = config.get("max-size", 10240)
        if isinstance(max_size, bool) or not isinstance(max_size, int):
            raise SchemaError(
                f"safe-outputs.{key}.max-size must be an integer (KB), got {max_size!r}",
                field=f"safe-outputs.{key}.max-size",
            )
        return {
            "branch": string_field(config, "branch", key, default="assets/${{ github.workflow }}"),
            "max_size_kb": max_size,
            "allowed_exts": string_list_field(config, "allowed-exts", key)
            or (".png", ".jpg", ".jpeg"),
        }


@dataclass(frozen=True)
class DispatchWorkflowConfig(SafeOutputConfig):
    type_key: ClassVar[str] = "dispatch-workflow"
    bundle: ClassVar[tuple[tuple[str, str], ...]] = ACTIONS_WRITE

    workflows: tuple[str, ...] = ()

    @classmethod
    def parse_fields(cls, config: dict[str, Any]) -> dict[str, Any]:
        return {"workflows": string_list_field(config, "workflows", cls.type_key)}


@dataclass(frozen=True)
class CreateProjectConfig(SafeOutputConfig):
    type_key: ClassVar[str] = "create-project"
    bundle: ClassVar[tuple[tuple[str, str], ...]] = CONTENTS_READ_PROJECTS_WRITE

    target_owner: str = ""

    @classmethod
    def parse_fields(cls, config: dict[str, Any]) -> dict[str, Any]:
        return {"target_owner": string_field(config, "target-owner", cls.type_key)}


@dataclass(frozen=True)
class UpdateProjectConfig(SafeOutputConfig):
    type_key: ClassVar[str] = "update-project"
    default_max: ClassVar[int] = 10
    bundle: ClassVar[tuple[tuple[str, str], ...]] = CONTENTS_READ_PROJECTS_WRITE

    project: str = ""

    @classmethod
    def parse_fields(cls, config: dict[str, Any]) -> dict[str, Any]:
        return {"project": string_field(config, "project", cls.type_key)}


@dataclass(frozen=True)
class CreateProjectStatusUpdateConfig(SafeOutputConfig):
    type_key: ClassVar[str] = "create-project-status-update"
    bundle: ClassVar[tuple[tuple[str, str], ...]] = CONTENTS_READ_PROJECTS_WRITE

    project: str = ""

    @classmethod
    def parse_fields(cls, config: dict[str, Any]) -> dict[str, Any]:
        return {"project": string_field(config, "project", cls.type_key)}


@dataclass(frozen=True)
class CreateCodeScanningAlertConfig(SafeOutputConfig):
    """create-code-scanning-alert: upload SARIF findings; unlimited by default."""

    type_key: ClassVar[str] = "create-code-scanning-alert"
    default_max: ClassVar[int] = 0
    bundle: ClassVar[tuple[tuple[str, str], ...]] = CONTENTS_READ_SECURITY_EVENTS_WRITE

    driver: str = ""

    @classmethod
    def parse_fields(cls, config: dict[str, Any]) -> dict[str, Any]:
        return {"driver": string_field(config, "driver", cls.type_key)}


@dataclass(frozen=True)
class AutofixCodeScanningAlertConfig(SafeOutputConfig):
    type_key: ClassVar[str] = "autofix-code-scanning-alert"
    default_max: ClassVar[int] = 10
    bundle: ClassVar[tuple[tuple[str, str], ...]] = (
        CONTENTS_READ_SECURITY_EVENTS_WRITE_ACTIONS_READ
    )


# =============================================================================
# Reporting types (own jobs or the conclusion job)
# =============================================================================


@dataclass(frozen=True)
class NoopConfig(SafeOutputConfig):
    """noop: the agent reports that no action was needed."""

    type_key: ClassVar[str] = "noop"
    bundle: ClassVar[tuple[tuple[str, str], ...]] = ()

    def permissions(self) -> Permissions:
        return Permissions()


@dataclass(frozen=True)
class IssueReportingConfig(SafeOutputConfig):
    """Shared record for missing-tool and missing-data.

    Attributes:
        create_issue: Open or update a tracking issue (default true).
        title_prefix: Title prefix of the tracking issue.
        labels: Labels of the tracking issue.

    """

    default_max: ClassVar[int] = 0
    bundle: ClassVar[tuple[tuple[str, str], ...]] = CONTENTS_READ
    default_title: ClassVar[str] = ""
    job_name: ClassVar[str] = ""
    output_key: ClassVar[str] = ""
    step_name: ClassVar[str] = ""

    create_issue: bool = True
    title_prefix: str = ""
    labels: tuple[str, ...] = ()

    @classmethod
    def parse(cls: type[_T], raw: Any) -> _T:
        config = raw if isinstance(raw, dict) else {}
        if raw is not None and raw is not True and not isinstance(raw, dict):
            raise SchemaError(
                f"safe-outputs.{cls.type_key} must be a mapping, null or false",
                field=f"safe-outputs.{cls.type_key}",
            )
        values = cls.parse_fields(config)
        # Unlike handler types, max stays unset (unlimited) unless declared
        values["max"] = templatable_field(config, "max", cls.type_key)
        values["github_token"] = string_field(config, "github-token", cls.type_key)
        return cls(**values)

    @classmethod
    def parse_fields(cls, config: dict[str, Any]) -> dict[str, Any]:
        key = cls.type_key
        return {
            "create_issue": bool_field(config, "create-issue", key, default=True),
            "title_prefix": string_field(config, "title-prefix", key, default=cls.default_title),
            "labels": string_list_field(config, "labels", key),
        }

    def permissions(self) -> Permissions:
        permissions = Permissions.from_bundle(CONTENTS_READ)
        if self.create_issue:
            permissions.set("issues", "write")
        return permissions


@dataclass(frozen=True)
class MissingToolConfig(IssueReportingConfig):
    type_key: ClassVar[str] = "missing-tool"
    default_title: ClassVar[str] = "[missing tool]"
    job_name: ClassVar[str] = "missing_tool"
    env_prefix: ClassVar[str] = "GH_AW_MISSING_TOOL"
    output_key: ClassVar[str] = "tools_reported"
    step_name: ClassVar[str] = "Record Missing Tool"


@dataclass(frozen=True)
class MissingDataConfig(IssueReportingConfig):
    type_key: ClassVar[str] = "missing-data"
    default_title: ClassVar[str] = "[missing data]"
    job_name: ClassVar[str] = "missing_data"
    env_prefix: ClassVar[str] = "GH_AW_MISSING_DATA"
    output_key: ClassVar[str] = "data_reported"
    step_name: ClassVar[str] = "Record Missing Data"
