"""Tests for the safe_outputs and reporting job synthesis."""

import json

import pytest

from aw_compiler.compiler.context import CompileContext
from aw_compiler.compiler.safe_outputs.config import parse_safe_outputs_config
from aw_compiler.compiler.safe_outputs.job import (
    APP_TOKEN_STEP_ID,
    MAGIC_TOKEN,
    PROCESS_STEP_ID,
    PROJECT_TOKEN,
    SAFE_OUTPUTS_JOB,
    build_handler_config,
    build_reporting_job,
    build_safe_outputs_job,
    ci_trigger_token,
    processing_step_token,
)

APP = {"app-id": "${{ vars.APP_ID }}", "private-key": "${{ secrets.APP_KEY }}"}


def pinned_ctx() -> CompileContext:
    return CompileContext(pin=lambda repo: f"{repo}@pinned")


def build(section: dict):
    config = parse_safe_outputs_config(section)
    return build_safe_outputs_job(config, pinned_ctx(), "Issue Triage", "issue-triage")


def process_step(job) -> dict:
    return next(step for step in job.steps if step.get("id") == PROCESS_STEP_ID)


class TestHandlerConfig:
    """Tests for build_handler_config()."""

    def test_snake_case_keys_in_registry_order(self) -> None:
        """Keys are snake_case and follow registry order."""
        config = parse_safe_outputs_config(
            {"add-comment": {"max": 2}, "create-issue": {"title-prefix": "[ai] "}, "missing-tool": None}
        )
        handler = build_handler_config(config)
        assert list(handler) == ["create_issue", "add_comment"]
        assert handler["create_issue"] == {"max": 1, "title_prefix": "[ai] "}
        assert handler["add_comment"] == {"max": 2}

    def test_per_output_token_stays_in_handler_config(self) -> None:
        """A per-output token is a handler setting, never the step token."""
        config = parse_safe_outputs_config(
            {"create-issue": {"github-token": "${{ secrets.ISSUES_PAT }}"}}
        )
        assert build_handler_config(config)["create_issue"]["github-token"] == (
            "${{ secrets.ISSUES_PAT }}"
        )
        assert processing_step_token(config) == MAGIC_TOKEN

    def test_section_footer_is_default(self) -> None:
        """The section-wide footer fills types that carry one, without overriding."""
        config = parse_safe_outputs_config(
            {
                "footer": False,
                "create-issue": None,
                "add-comment": {"footer": True},
                "add-labels": None,
            }
        )
        handler = build_handler_config(config)
        assert handler["create_issue"]["footer"] is False
        assert handler["add_comment"]["footer"] is True
        assert "footer" not in handler["add_labels"]


class TestTokens:
    """Tests for token precedence and the CI trigger token."""

    def test_section_token_first(self) -> None:
        """The section-wide token beats the App."""
        config = parse_safe_outputs_config(
            {"create-issue": None, "github-token": "${{ secrets.BOT }}", "app": APP}
        )
        assert processing_step_token(config) == "${{ secrets.BOT }}"

    def test_app_token(self) -> None:
        """An App mints the processing token."""
        config = parse_safe_outputs_config({"create-issue": None, "app": APP})
        assert processing_step_token(config) == (
            f"${{{{ steps.{APP_TOKEN_STEP_ID}.outputs.token }}}}"
        )

    def test_project_token(self) -> None:
        """Project types fall back to the projects token."""
        config = parse_safe_outputs_config({"update-project": None})
        assert processing_step_token(config) == PROJECT_TOKEN

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("", "${{ secrets.GH_AW_CI_TRIGGER_TOKEN }}"),
            ("app", "${{ steps.safe-outputs-app-token.outputs.token || '' }}"),
            ("${{ secrets.MY_PAT }}", "${{ secrets.MY_PAT }}"),
        ],
    )
    def test_ci_trigger_token(self, value: str, expected: str) -> None:
        """Empty, app and explicit values render as documented."""
        assert ci_trigger_token(value) == expected


class TestSafeOutputsJob:
    """Tests for build_safe_outputs_job()."""

    def test_none_without_handler_types(self) -> None:
        """Reporting-only configs do not build the job."""
        assert build({"missing-tool": None}) is None
        assert build_safe_outputs_job(None, pinned_ctx(), "n", "n") is None

    def test_job_shape(self) -> None:
        """Dependencies, runner, timeout and outputs."""
        job = build({"create-issue": None, "add-comment": None})
        assert job.name == SAFE_OUTPUTS_JOB
        assert job.needs == ["activation", "agent"]
        assert job.runs_on == "ubuntu-slim"
        assert job.timeout_minutes == 15
        assert job.outputs == {
            "created_issue_number": "${{ steps.process_safe_outputs.outputs.created_issue_number }}",
            "created_issue_url": "${{ steps.process_safe_outputs.outputs.created_issue_url }}",
            "comment_id": "${{ steps.process_safe_outputs.outputs.comment_id }}",
            "comment_url": "${{ steps.process_safe_outputs.outputs.comment_url }}",
        }
        assert job.if_condition == (
            "(!cancelled()) && needs.agent.result != 'skipped' && "
            "(contains(needs.agent.outputs.output_types, 'create_issue') || "
            "contains(needs.agent.outputs.output_types, 'add_comment'))"
        )

    def test_processing_step_env(self) -> None:
        """Handler config, patch size and workflow metadata reach the step."""
        job = build({"create-issue": {"max": 3}, "staged": True})
        step = process_step(job)
        env = step["env"]
        assert json.loads(env["GH_AW_SAFE_OUTPUTS_HANDLER_CONFIG"]) == {"create_issue": {"max": 3}}
        assert env["GH_AW_MAX_PATCH_SIZE"] == "1024"
        assert env["GH_AW_SAFE_OUTPUTS_STAGED"] == "true"
        assert env["GH_AW_WORKFLOW_NAME"] == "Issue Triage"
        assert env["GH_AW_WORKFLOW_ID"] == "issue-triage"
        assert "GH_AW_CI_TRIGGER_TOKEN" not in env
        assert step["with"]["github-token"] == MAGIC_TOKEN
        assert step["uses"] == "actions/github-script@pinned"

    def test_tracker_id_messages_and_domains(self) -> None:
        """tracker-id, message templates and allowed domains reach the step."""
        config = parse_safe_outputs_config(
            {
                "create-issue": None,
                "messages": {"footer": "> by {workflow_name}", "run-failure": "failed"},
                "allowed-domains": ["example.com", "docs.example.com"],
            }
        )
        job = build_safe_outputs_job(config, pinned_ctx(), "Issue Triage", "issue-triage", "triage-bot-01")
        env = process_step(job)["env"]
        assert env["GH_AW_TRACKER_ID"] == "triage-bot-01"
        assert json.loads(env["GH_AW_SAFE_OUTPUT_MESSAGES"]) == {
            "footer": "> by {workflow_name}",
            "runFailure": "failed",
        }
        assert env["GH_AW_ALLOWED_DOMAINS"] == "example.com,docs.example.com"

    def test_no_tracker_id_by_default(self) -> None:
        """Without tracker-id the variable is omitted."""
        env = process_step(build({"create-issue": None}))["env"]
        assert "GH_AW_TRACKER_ID" not in env
        assert "GH_AW_SAFE_OUTPUT_MESSAGES" not in env

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("", "${{ secrets.GH_AW_CI_TRIGGER_TOKEN }}"),
            ("app", "${{ steps.safe-outputs-app-token.outputs.token || '' }}"),
            ("${{ secrets.MY_PAT }}", "${{ secrets.MY_PAT }}"),
        ],
    )
    def test_ci_trigger_env(self, value: str, expected: str) -> None:
        """create-pull-request renders GH_AW_CI_TRIGGER_TOKEN."""
        job = build({"create-pull-request": {"github-token-for-extra-empty-commit": value}})
        assert process_step(job)["env"]["GH_AW_CI_TRIGGER_TOKEN"] == expected

    def test_pull_request_patch_steps(self) -> None:
        """PR types download the patch and check out the repository."""
        job = build({"create-pull-request": None})
        names = [step.get("name") for step in job.steps]
        assert names.index("Download patch artifact") < names.index("Process Safe Outputs")
        assert "Checkout repository" in names
        assert job.permissions.to_dict() == {
            "contents": "write",
            "issues": "write",
            "pull-requests": "write",
        }

    def test_app_token_step(self) -> None:
        """An App adds the token step before processing."""
        job = build({"create-issue": None, "app": APP})
        ids = [step.get("id") for step in job.steps]
        assert ids.index(APP_TOKEN_STEP_ID) < ids.index(PROCESS_STEP_ID)

    def test_user_steps_and_id_token(self) -> None:
        """User steps run before processing and OIDC adds id-token."""
        step = {"name": "Cloud login", "uses": "aws-actions/configure-aws-credentials@v4"}
        job = build({"create-issue": None, "steps": [step]})
        assert job.steps[-2] == step
        assert job.permissions.get("id-token") == "write"

    def test_section_env_on_job(self) -> None:
        """safe-outputs.env becomes job-level env."""
        assert build({"noop": None, "env": {"MODE": "ci"}}).env == {"MODE": "ci"}


class TestReportingJob:
    """Tests for build_reporting_job()."""

    def test_missing_tool_job(self) -> None:
        """The job needs the agent and may open a tracking issue."""
        config = parse_safe_outputs_config({"missing-tool": {"max": 5}})
        (output,) = config.reporting_outputs()
        job = build_reporting_job(output, config, pinned_ctx(), "Triage", "triage")
        assert job.name == "missing_tool"
        assert job.needs == ["agent"]
        assert job.permissions.to_dict() == {"contents": "read", "issues": "write"}
        assert job.outputs == {
            "tools_reported": "${{ steps.missing_tool.outputs.tools_reported }}",
            "total_count": "${{ steps.missing_tool.outputs.total_count }}",
        }
        env = job.steps[-1]["env"]
        assert env["GH_AW_MISSING_TOOL_MAX"] == "5"
        assert env["GH_AW_MISSING_TOOL_TITLE_PREFIX"] == "[missing tool]"
        assert env["GH_AW_MISSING_TOOL_LABELS"] == "[]"

    def test_missing_data_without_issue(self) -> None:
        """create-issue: false drops issues: write and the issue env."""
        config = parse_safe_outputs_config({"missing-data": {"create-issue": False}})
        (output,) = config.reporting_outputs()
        job = build_reporting_job(output, config, pinned_ctx(), "Triage", "triage")
        assert job.name == "missing_data"
        assert job.permissions.to_dict() == {"contents": "read"}
        assert "GH_AW_MISSING_DATA_CREATE_ISSUE" not in job.steps[-1]["env"]
        assert "data_reported" in job.outputs

    def test_tracker_id(self) -> None:
        """Reporting jobs carry the tracker-id too."""
        config = parse_safe_outputs_config({"missing-tool": None})
        (output,) = config.reporting_outputs()
        job = build_reporting_job(output, config, pinned_ctx(), "Triage", "triage", "triage-bot-01")
        assert job.steps[-1]["env"]["GH_AW_TRACKER_ID"] == "triage-bot-01"
