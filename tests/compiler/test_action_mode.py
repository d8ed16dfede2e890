"""Tests for action mode detection and action pins."""

import pytest

from aw_compiler.compiler.action_mode import detect_action_mode
from aw_compiler.compiler.action_pins import ACTION_PINS, resolve_pin
from aw_compiler.compiler.types import ActionMode
from aw_compiler.core.exceptions import SchemaError


class TestActionModeEnum:
    """Tests for ActionMode helpers."""

    def test_is_valid(self) -> None:
        """Only dev, release and script are valid."""
        assert [m for m in ("dev", "release", "script", "prod") if ActionMode.is_valid(m)] == [
            "dev",
            "release",
            "script",
        ]

    def test_flags(self) -> None:
        """is_release / is_script match their modes."""
        assert ActionMode.RELEASE.is_release and not ActionMode.RELEASE.is_script
        assert ActionMode.SCRIPT.is_script and not ActionMode.DEV.is_release


class TestDetectActionMode:
    """Tests for detect_action_mode() precedence."""

    def test_default_is_dev(self) -> None:
        """Nothing set means dev."""
        assert detect_action_mode(environ={}) is ActionMode.DEV

    def test_env_wins(self) -> None:
        """A valid GH_AW_ACTION_MODE beats override and features."""
        mode = detect_action_mode(
            "release", {"action-mode": "dev"}, environ={"GH_AW_ACTION_MODE": "script"}
        )
        assert mode is ActionMode.SCRIPT

    def test_invalid_env_ignored(self) -> None:
        """An invalid env value falls through to the override."""
        assert detect_action_mode("release", environ={"GH_AW_ACTION_MODE": "bogus"}) is ActionMode.RELEASE

    def test_override_beats_features(self) -> None:
        """The config/CLI override beats features.action-mode."""
        assert detect_action_mode("dev", {"action-mode": "script"}, environ={}) is ActionMode.DEV

    def test_features(self) -> None:
        """features.action-mode selects the mode."""
        assert detect_action_mode(None, {"action-mode": "script"}, environ={}) is ActionMode.SCRIPT

    def test_invalid_override(self) -> None:
        """Invalid overrides are schema errors."""
        with pytest.raises(SchemaError, match="Invalid action mode 'prod'"):
            detect_action_mode("prod", environ={})

    def test_invalid_feature(self) -> None:
        """Invalid feature values are schema errors naming the field."""
        with pytest.raises(SchemaError) as exc_info:
            detect_action_mode(None, {"action-mode": 3}, environ={})
        assert exc_info.value.field == "features.action-mode"

    @pytest.mark.parametrize(
        "environ",
        [
            {"GITHUB_REF": "refs/tags/v1.2.0"},
            {"GITHUB_REF": "refs/heads/release-2024"},
            {"GITHUB_EVENT_NAME": "release"},
        ],
    )
    def test_release_detection(self, environ: dict[str, str]) -> None:
        """Tags, release branches and release events select release."""
        assert detect_action_mode(environ=environ) is ActionMode.RELEASE

    def test_main_branch_is_dev(self) -> None:
        """Ordinary branches stay in dev."""
        assert detect_action_mode(environ={"GITHUB_REF": "refs/heads/main"}) is ActionMode.DEV


class TestResolvePin:
    """Tests for the default pin resolver."""

    def test_reference_format(self) -> None:
        """References are owner/repo@sha # version."""
        pin = ACTION_PINS["actions/checkout"]
        assert resolve_pin("actions/checkout") == f"actions/checkout@{pin.sha} # {pin.version}"

    def test_all_pins_are_full_shas(self) -> None:
        """Every pin is a 40-character hex SHA."""
        for pin in ACTION_PINS.values():
            assert len(pin.sha) == 40
            int(pin.sha, 16)

    def test_unknown_action(self) -> None:
        """Unknown actions cannot be pinned."""
        with pytest.raises(SchemaError, match="No pinned version known for action 'acme/thing'"):
            resolve_pin("acme/thing")
