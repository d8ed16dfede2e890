"""Tests for templatable scalar helpers."""

import pytest

from aw_compiler.core.types import (
    as_string_list,
    is_expression,
    normalize_templatable,
    sorted_mapping,
    templatable_int,
)


class TestIsExpression:
    """Tests for is_expression()."""

    @pytest.mark.parametrize("value", ["${{ inputs.max }}", "  ${{ github.run_id }}  "])
    def test_expressions(self, value: str) -> None:
        """Whole-string ${{ }} values are expressions."""
        assert is_expression(value) is True

    @pytest.mark.parametrize("value", ["3", "prefix ${{ x }}", 3, None])
    def test_non_expressions(self, value: object) -> None:
        """Literals and partial expressions are not."""
        assert is_expression(value) is False


class TestNormalizeTemplatable:
    """Tests for normalize_templatable()."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            (True, "true"),
            (False, "false"),
            (5, "5"),
            (2.0, "2"),
            (" 7 ", "7"),
            ("false", "false"),
            ("${{ inputs.n }}", "${{ inputs.n }}"),
        ],
    )
    def test_accepted(self, value: object, expected: str) -> None:
        """Literals and expressions normalize to strings."""
        assert normalize_templatable(value) == expected

    @pytest.mark.parametrize("value", ["many", 1.5, [1], None])
    def test_rejected(self, value: object) -> None:
        """Anything else yields None."""
        assert normalize_templatable(value) is None


class TestTemplatableInt:
    """Tests for templatable_int()."""

    def test_literal(self) -> None:
        """Numeric strings convert to int."""
        assert templatable_int("12") == 12

    def test_expression_uses_default(self) -> None:
        """Expressions fall back to the default."""
        assert templatable_int("${{ inputs.max }}", default=3) == 3

    def test_none_uses_default(self) -> None:
        """None falls back to the default."""
        assert templatable_int(None, default=1) == 1


class TestCollections:
    """Tests for list and mapping helpers."""

    def test_single_string_becomes_list(self) -> None:
        """A lone string is wrapped."""
        assert as_string_list("bug") == ["bug"]

    def test_non_strings_dropped(self) -> None:
        """Non-string items are dropped from lists."""
        assert as_string_list(["a", 1, "b"]) == ["a", "b"]

    def test_other_types(self) -> None:
        """Mappings and numbers are not lists."""
        assert as_string_list({"a": 1}) is None

    def test_sorted_mapping(self) -> None:
        """Keys come back sorted."""
        assert list(sorted_mapping({"b": 1, "a": 2, "C": 3})) == ["C", "a", "b"]
