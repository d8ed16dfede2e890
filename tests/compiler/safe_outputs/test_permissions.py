"""Tests for safe-output permission computation."""

from aw_compiler.compiler.safe_outputs.config import parse_safe_outputs_config
from aw_compiler.compiler.safe_outputs.permissions import (
    compute_safe_outputs_job_permissions,
    compute_safe_outputs_permissions,
)

OIDC_STEP = {"uses": "aws-actions/configure-aws-credentials@v4"}


class TestComputeSafeOutputsPermissions:
    """Tests for compute_safe_outputs_permissions()."""

    def test_none(self) -> None:
        """No config means no permissions."""
        assert compute_safe_outputs_permissions(None).is_empty()

    def test_union_of_bundles(self) -> None:
        """The result is the max-merge of every type's bundle."""
        config = parse_safe_outputs_config(
            {"create-issue": None, "add-comment": {"discussions": False}, "add-reviewer": None}
        )
        assert compute_safe_outputs_permissions(config).to_dict() == {
            "contents": "read",
            "issues": "write",
            "pull-requests": "write",
        }

    def test_write_beats_read(self) -> None:
        """contents: write from a PR type wins over contents: read."""
        config = parse_safe_outputs_config({"create-issue": None, "create-pull-request": None})
        assert compute_safe_outputs_permissions(config).to_dict()["contents"] == "write"

    def test_reporting_types_excluded(self) -> None:
        """missing-tool contributes nothing to the consolidated job."""
        config = parse_safe_outputs_config({"missing-tool": None, "noop": None})
        assert compute_safe_outputs_permissions(config).is_empty()


class TestIdTokenRule:
    """Tests for the id-token handling of the safe_outputs job."""

    def test_oidc_step_adds_id_token(self) -> None:
        """A known OIDC action in safe-outputs.steps adds id-token: write."""
        config = parse_safe_outputs_config({"create-issue": None, "steps": [OIDC_STEP]})
        assert compute_safe_outputs_job_permissions(config).to_dict() == {
            "contents": "read",
            "id-token": "write",
            "issues": "write",
        }

    def test_explicit_none_suppresses(self) -> None:
        """id-token: none removes the scope even with an OIDC step."""
        config = parse_safe_outputs_config(
            {"create-issue": None, "steps": [OIDC_STEP], "id-token": "none"}
        )
        assert "id-token" not in compute_safe_outputs_job_permissions(config)

    def test_explicit_write(self) -> None:
        """id-token: write is honored without OIDC steps."""
        config = parse_safe_outputs_config({"create-issue": None, "id-token": "write"})
        assert compute_safe_outputs_job_permissions(config).get("id-token") == "write"

    def test_other_steps_do_not_add(self) -> None:
        """Ordinary steps leave id-token unset."""
        config = parse_safe_outputs_config(
            {"create-issue": None, "steps": [{"uses": "actions/setup-node@v4"}, {"run": "ls"}]}
        )
        assert "id-token" not in compute_safe_outputs_job_permissions(config)
