"""Registry of safe-output types.

Maps each front-matter key (`create-issue`, `add-comment`, ...) to its
record class. Iteration order of SAFE_OUTPUT_TYPES is the canonical
order used for every output-contributing container (handler config,
job outputs, conditions), so emission never depends on declaration order.

Public API:
    SAFE_OUTPUT_TYPES: Ordered mapping of type key -> record class
    REPORTING_TYPES: Types processed by their own jobs
    get_type: Look up a record class by type key
"""

from __future__ import annotations

import difflib

from aw_compiler.compiler.safe_outputs.types import (
    AddCommentConfig,
    AddLabelsConfig,
    AddReviewerConfig,
    AssignMilestoneConfig,
    AssignToAgentConfig,
    AssignToUserConfig,
    AutofixCodeScanningAlertConfig,
    CloseDiscussionConfig,
    CloseIssueConfig,
    ClosePullRequestConfig,
    CreateAgentSessionConfig,
    CreateCodeScanningAlertConfig,
    CreateDiscussionConfig,
    CreateIssueConfig,
    CreateProjectConfig,
    CreateProjectStatusUpdateConfig,
    CreatePullRequestConfig,
    CreatePullRequestReviewCommentConfig,
    DispatchWorkflowConfig,
    HideCommentConfig,
    LinkSubIssueConfig,
    MarkPullRequestAsReadyForReviewConfig,
    MissingDataConfig,
    MissingToolConfig,
    NoopConfig,
    PushToPullRequestBranchConfig,
    RemoveLabelsConfig,
    ReplyToPullRequestReviewCommentConfig,
    ResolvePullRequestReviewThreadConfig,
    SafeOutputConfig,
    SetIssueTypeConfig,
    SubmitPullRequestReviewConfig,
    UnassignFromUserConfig,
    UpdateDiscussionConfig,
    UpdateIssueConfig,
    UpdateProjectConfig,
    UpdatePullRequestConfig,
    UpdateReleaseConfig,
    UploadAssetConfig,
)
from aw_compiler.core.exceptions import SchemaError

_TYPES: tuple[type[SafeOutputConfig], ...] = (
    CreateIssueConfig,
    CreateDiscussionConfig,
    AddCommentConfig,
    HideCommentConfig,
    CloseIssueConfig,
    CloseDiscussionConfig,
    ClosePullRequestConfig,
    UpdateIssueConfig,
    UpdateDiscussionConfig,
    UpdatePullRequestConfig,
    UpdateReleaseConfig,
    UploadAssetConfig,
    AddLabelsConfig,
    RemoveLabelsConfig,
    AddReviewerConfig,
    AssignMilestoneConfig,
    AssignToAgentConfig,
    AssignToUserConfig,
    UnassignFromUserConfig,
    LinkSubIssueConfig,
    SetIssueTypeConfig,
    CreatePullRequestConfig,
    PushToPullRequestBranchConfig,
    CreatePullRequestReviewCommentConfig,
    SubmitPullRequestReviewConfig,
    ReplyToPullRequestReviewCommentConfig,
    ResolvePullRequestReviewThreadConfig,
    MarkPullRequestAsReadyForReviewConfig,
    DispatchWorkflowConfig,
    CreateProjectConfig,
    UpdateProjectConfig,
    CreateProjectStatusUpdateConfig,
    CreateCodeScanningAlertConfig,
    AutofixCodeScanningAlertConfig,
    CreateAgentSessionConfig,
    NoopConfig,
    MissingToolConfig,
    MissingDataConfig,
)

SAFE_OUTPUT_TYPES: dict[str, type[SafeOutputConfig]] = {cls.type_key: cls for cls in _TYPES}

REPORTING_TYPES: frozenset[str] = frozenset({"missing-tool", "missing-data"})

# Types whose handlers use the projects token
PROJECT_TYPES: frozenset[str] = frozenset(
    {"create-project", "update-project", "create-project-status-update"}
)


def get_type(type_key: str) -> type[SafeOutputConfig]:
    """Return the record class for type_key.

    Raises:
        SchemaError: For unknown types, with a close-match suggestion.

    """
    try:
        return SAFE_OUTPUT_TYPES[type_key]
    except KeyError:
        suggestion = difflib.get_close_matches(type_key, SAFE_OUTPUT_TYPES, n=1)
        hint = f"\n  Suggestion: Did you mean '{suggestion[0]}'?" if suggestion else ""
        raise SchemaError(
            f"Unknown safe-output type: '{type_key}'{hint}",
            field=f"safe-outputs.{type_key}",
        ) from None
