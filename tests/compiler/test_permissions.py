"""Tests for the permission model and the id-token rule."""

import pytest

from aw_compiler.compiler.permissions import (
    PermissionLevel,
    Permissions,
    PermissionScope,
    apply_id_token_rule,
    parse_permissions,
    steps_require_id_token,
)
from aw_compiler.core.exceptions import SchemaError


class TestPermissionsMerge:
    """Tests for max-merge semantics."""

    def test_merge_keeps_highest_level(self) -> None:
        """write beats read, read never downgrades write."""
        permissions = Permissions({"contents": "write", "issues": "read"})
        permissions.merge(Permissions({"contents": "read", "issues": "write"}))
        assert permissions.to_dict() == {"contents": "write", "issues": "write"}

    def test_merge_is_idempotent(self) -> None:
        """Merging the same bundle twice changes nothing."""
        bundle = Permissions({"contents": "read", "pull-requests": "write"})
        permissions = bundle.copy()
        permissions.merge(bundle)
        assert permissions == bundle

    def test_merge_commutes(self) -> None:
        """The fold result does not depend on order."""
        a = Permissions({"contents": "write"})
        b = Permissions({"contents": "read", "discussions": "write"})
        left = a.copy()
        left.merge(b)
        right = b.copy()
        right.merge(a)
        assert left == right

    def test_level_rank(self) -> None:
        """Levels are ordered none < read < write < admin."""
        ranks = [level.rank for level in PermissionLevel]
        assert ranks == sorted(ranks)


class TestPermissionsAccessors:
    """Tests for set/get/remove/intersect and rendering."""

    def test_to_dict_sorted(self) -> None:
        """Scopes render in alphabetical order regardless of insertion."""
        permissions = Permissions({"pull-requests": "write", "contents": "read", "issues": "write"})
        assert list(permissions.to_dict()) == ["contents", "issues", "pull-requests"]

    def test_get_and_remove(self) -> None:
        """get returns enum levels and remove drops the scope."""
        permissions = Permissions({"issues": "write"})
        assert permissions.get("issues") is PermissionLevel.WRITE
        permissions.remove(PermissionScope.ISSUES)
        assert permissions.get("issues") is None
        assert permissions.is_empty()

    def test_intersect_takes_lower_level(self) -> None:
        """intersect keeps shared scopes at the lower level."""
        mine = Permissions({"contents": "write", "issues": "write", "actions": "write"})
        limit = Permissions({"contents": "read", "issues": "write"})
        assert mine.intersect(limit).to_dict() == {"contents": "read", "issues": "write"}

    def test_copy_is_independent(self) -> None:
        """Changing a copy leaves the original alone."""
        original = Permissions({"contents": "read"})
        clone = original.copy()
        clone.set("issues", "write")
        assert "issues" not in original
        assert "issues" in clone

    def test_contains_unknown_scope(self) -> None:
        """Unknown scope names are simply not contained."""
        assert "bogus" not in Permissions({"contents": "read"})

    def test_unknown_scope_rejected(self) -> None:
        """Setting an unknown scope is a schema error."""
        with pytest.raises(SchemaError, match="Unknown permission scope: 'bogus'"):
            Permissions({"bogus": "read"})

    def test_unknown_level_rejected(self) -> None:
        """Setting an unknown level is a schema error."""
        with pytest.raises(SchemaError, match="Unknown permission level: 'full'"):
            Permissions({"contents": "full"})


class TestParsePermissions:
    """Tests for parse_permissions()."""

    def test_none_is_empty(self) -> None:
        """Absent permissions parse to an empty set."""
        assert parse_permissions(None).is_empty()

    def test_mapping(self) -> None:
        """Mappings parse scope by scope."""
        assert parse_permissions({"contents": "read", "id-token": "write"}).to_dict() == {
            "contents": "read",
            "id-token": "write",
        }

    def test_read_all_shorthand(self) -> None:
        """read-all grants read on every shorthand scope but not id-token."""
        permissions = parse_permissions("read-all")
        assert permissions.get("contents") is PermissionLevel.READ
        assert permissions.get("issues") is PermissionLevel.READ
        assert "id-token" not in permissions

    def test_write_all_shorthand(self) -> None:
        """write-all grants write."""
        assert parse_permissions("write-all").get("pull-requests") is PermissionLevel.WRITE

    @pytest.mark.parametrize("value", ["everything", ["contents"], 3])
    def test_invalid_values(self, value: object) -> None:
        """Other strings and non-mappings are rejected."""
        with pytest.raises(SchemaError):
            parse_permissions(value)

    def test_non_string_level(self) -> None:
        """Levels must be strings."""
        with pytest.raises(SchemaError, match="permissions.contents must be a string level"):
            parse_permissions({"contents": True})


class TestIdTokenRule:
    """Tests for OIDC auto-detection."""

    @pytest.mark.parametrize(
        "uses",
        [
            "aws-actions/configure-aws-credentials@v4",
            "azure/login@v2",
            "google-github-actions/auth@v2",
            "hashicorp/vault-action@v3",
        ],
    )
    def test_oidc_actions_detected(self, uses: str) -> None:
        """Known OIDC actions require id-token."""
        assert steps_require_id_token([{"uses": uses}]) is True

    def test_other_steps_ignored(self) -> None:
        """run steps and other actions do not."""
        assert steps_require_id_token([{"run": "echo"}, {"uses": "actions/checkout@v5"}, "x"]) is False

    def test_auto_detect_adds_id_token(self) -> None:
        """An OIDC step adds id-token: write."""
        permissions = Permissions({"contents": "read"})
        apply_id_token_rule(permissions, [{"uses": "aws-actions/configure-aws-credentials@v4"}], None)
        assert permissions.get("id-token") is PermissionLevel.WRITE

    def test_explicit_write(self) -> None:
        """An explicit write adds id-token without OIDC steps."""
        permissions = Permissions()
        apply_id_token_rule(permissions, [], "write")
        assert permissions.to_dict() == {"id-token": "write"}

    def test_explicit_none_suppresses(self) -> None:
        """none wins over auto-detection and removes an existing grant."""
        permissions = Permissions({"id-token": "write"})
        apply_id_token_rule(permissions, [{"uses": "azure/login@v2"}], "none")
        assert "id-token" not in permissions

    def test_no_steps_no_setting(self) -> None:
        """Nothing is added by default."""
        permissions = Permissions({"contents": "read"})
        apply_id_token_rule(permissions, None, None)
        assert permissions.to_dict() == {"contents": "read"}
