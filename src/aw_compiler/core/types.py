"""Core type definitions for the agentic workflow compiler.

This module provides type aliases for the dynamic front-matter values
produced by the YAML parser, plus helpers for "templatable" scalars:
fields that accept either a literal (int or bool) or a GitHub Actions
expression string. Templatable values are normalized to strings once and
converted back to literals only where a number is required.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any, TypeAlias

# Dynamic front-matter value: str, int, float, bool, None, list or dict
FrontmatterValue: TypeAlias = Any

# Front-matter mapping after YAML parsing (insertion order preserved)
Frontmatter: TypeAlias = dict[str, Any]

# Templatable scalar after normalization ("3", "true", "${{ inputs.max }}")
TemplatableStr: TypeAlias = str

_EXPRESSION_PATTERN = re.compile(r"^\$\{\{.*\}\}$", re.DOTALL)


def is_expression(value: object) -> bool:
    """Return True if value is a GitHub Actions ${{ ... }} expression string.

    Examples:
        >>> is_expression("${{ inputs.max }}")
        True
        >>> is_expression("3")
        False

    """
    return isinstance(value, str) and bool(_EXPRESSION_PATTERN.match(value.strip()))


def normalize_templatable(value: FrontmatterValue) -> TemplatableStr | None:
    """Normalize a templatable literal or expression to its string form.

    Args:
        value: Raw front-matter value.

    Returns:
        "true"/"false" for booleans, decimal text for integers, the stripped
        string for expressions or numeric strings, None for anything else.

    Examples:
        >>> normalize_templatable(True)
        'true'
        >>> normalize_templatable(5)
        '5'
        >>> normalize_templatable("${{ inputs.n }}")
        '${{ inputs.n }}'

    """
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, str):
        stripped = value.strip()
        if is_expression(stripped) or stripped.lstrip("-").isdigit():
            return stripped
        if stripped in ("true", "false"):
            return stripped
    return None


def templatable_int(value: TemplatableStr | None, default: int = 0) -> int:
    """Return the integer literal of a templatable value, or default.

    Examples:
        >>> templatable_int("3")
        3
        >>> templatable_int("${{ inputs.n }}", default=1)
        1

    """
    if value is None:
        return default
    stripped = value.strip()
    if stripped.lstrip("-").isdigit():
        return int(stripped)
    return default


def as_string_list(value: FrontmatterValue) -> list[str] | None:
    """Coerce a single string or a list of strings into a list.

    Non-string list items are dropped. Returns None when value is neither
    a string nor a list.

    """
    if isinstance(value, str):
        return [value]
    if isinstance(value, list):
        return [item for item in value if isinstance(item, str)]
    return None


def sorted_mapping(mapping: Mapping[str, Any]) -> dict[str, Any]:
    """Return a new dict with keys in sorted order.

    Used for every output-contributing container whose natural order is
    a hash order (environment variables, permission scopes).
    """
    return {key: mapping[key] for key in sorted(mapping)}
