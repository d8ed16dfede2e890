"""Shared field parsers for safe-output configuration blocks.

Safe-output types reuse a handful of field groups: a target group
(`target`, `target-repo`, `allowed-repos`), a filter group
(`required-labels`, `required-title-prefix`, `required-category`) and a
list group (`allowed`, `blocked`). The helpers here parse those groups
plus the templatable scalars (`max`, `draft`, `footer`, ...) that accept
either a literal or a GitHub Actions expression.

Public API:
    TargetConfig: target / target-repo / allowed-repos
    FilterConfig: required-labels / required-title-prefix / required-category
    ListConfig: allowed / blocked lists
    parse_target_config: Parse the target group
    parse_filter_config: Parse the filter group
    parse_list_config: Parse the list group
    string_field: Read an optional string field
    string_list_field: Read a string or list-of-strings field
    bool_field: Read an optional literal boolean field
    templatable_field: Read a templatable int/bool field as a string
    parse_expires: Convert `expires` to hours
    parse_app_config: Parse a GitHub App credentials block
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any

from aw_compiler.compiler.types import GitHubAppConfig
from aw_compiler.core.exceptions import SchemaError
from aw_compiler.core.types import TemplatableStr, as_string_list, is_expression, normalize_templatable

logger = logging.getLogger(__name__)

_EXPIRES_PATTERN = re.compile(r"^(\d+)\s*([hdwmy])$")
_EXPIRES_UNIT_HOURS = {"h": 1, "d": 24, "w": 24 * 7, "m": 24 * 30, "y": 24 * 365}


@dataclass(frozen=True)
class TargetConfig:
    """Where a safe output may act.

    Attributes:
        target: "triggering" (default), "*" (any item) or an explicit number.
        target_repo: owner/repo for cross-repository operations.
        allowed_repos: Additional repositories the agent may address.

    """

    target: str = ""
    target_repo: str = ""
    allowed_repos: tuple[str, ...] = ()


@dataclass(frozen=True)
class FilterConfig:
    """Identity filters the target item must satisfy."""

    required_labels: tuple[str, ...] = ()
    required_title_prefix: str = ""
    required_category: str = ""


@dataclass(frozen=True)
class ListConfig:
    """Allowed and blocked values for list-style operations."""

    allowed: tuple[str, ...] = ()
    blocked: tuple[str, ...] = ()


def _field_name(type_key: str, key: str) -> str:
    return f"safe-outputs.{type_key}.{key}"


def string_field(config: dict[str, Any], key: str, type_key: str, default: str = "") -> str:
    """Return a string field, default when absent.

    Raises:
        SchemaError: If the value is present but not a string.

    """
    if key not in config or config[key] is None:
        return default
    value = config[key]
    if not isinstance(value, str):
        raise SchemaError(
            f"{_field_name(type_key, key)} must be a string, got {type(value).__name__}",
            field=_field_name(type_key, key),
        )
    return value


def string_list_field(config: dict[str, Any], key: str, type_key: str) -> tuple[str, ...]:
    """Return a list-of-strings field; a single string becomes a one-item list.

    Raises:
        SchemaError: If the value is neither a string nor a list.

    """
    if key not in config or config[key] is None:
        return ()
    values = as_string_list(config[key])
    if values is None:
        raise SchemaError(
            f"{_field_name(type_key, key)} must be a string or an array of strings",
            field=_field_name(type_key, key),
        )
    return tuple(values)


def bool_field(
    config: dict[str, Any], key: str, type_key: str, default: bool | None = None
) -> bool | None:
    """Return a literal boolean field, default when absent.

    Raises:
        SchemaError: If the value is present but not a boolean.

    """
    if key not in config or config[key] is None:
        return default
    value = config[key]
    if not isinstance(value, bool):
        raise SchemaError(
            f"{_field_name(type_key, key)} must be a boolean, got {type(value).__name__}",
            field=_field_name(type_key, key),
        )
    return value


def templatable_field(
    config: dict[str, Any], key: str, type_key: str, kind: str = "int"
) -> TemplatableStr | None:
    """Return a templatable field normalized to its string form.

    Args:
        config: Type configuration mapping.
        key: Field name.
        type_key: Safe-output type (for error messages).
        kind: "int" or "bool"; selects which literals are accepted.

    Returns:
        Normalized string, or None when the field is absent.

    Raises:
        SchemaError: If the value is neither a matching literal nor an
            expression.

    """
    if key not in config or config[key] is None:
        return None
    value = config[key]
    normalized = normalize_templatable(value)
    if normalized is not None and (is_expression(normalized) or _matches_kind(normalized, kind)):
        return normalized
    expected = "a boolean" if kind == "bool" else "an integer"
    raise SchemaError(
        f"{_field_name(type_key, key)} must be {expected} or a GitHub Actions expression, "
        f"got {value!r}",
        field=_field_name(type_key, key),
    )


def _matches_kind(normalized: str, kind: str) -> bool:
    if kind == "bool":
        return normalized in ("true", "false")
    return normalized.lstrip("-").isdigit()


def parse_target_config(config: dict[str, Any], type_key: str) -> TargetConfig:
    """Parse `target`, `target-repo` and `allowed-repos`.

    A `target-repo` of "*" is accepted here; whether the type allows it
    is decided by the validator.
    """
    target = config.get("target")
    if isinstance(target, int) and not isinstance(target, bool):
        target = str(target)
    elif target is not None and not isinstance(target, str):
        raise SchemaError(
            f"{_field_name(type_key, 'target')} must be a string or an issue number",
            field=_field_name(type_key, "target"),
        )
    return TargetConfig(
        target=(target or "").strip(),
        target_repo=string_field(config, "target-repo", type_key).strip(),
        allowed_repos=string_list_field(config, "allowed-repos", type_key),
    )


def parse_filter_config(
    config: dict[str, Any], type_key: str, discussions: bool = False
) -> FilterConfig:
    """Parse required-labels and required-title-prefix (and required-category)."""
    return FilterConfig(
        required_labels=string_list_field(config, "required-labels", type_key),
        required_title_prefix=string_field(config, "required-title-prefix", type_key),
        required_category=(
            string_field(config, "required-category", type_key) if discussions else ""
        ),
    )


def parse_list_config(
    config: dict[str, Any], type_key: str, allowed_key: str = "allowed"
) -> ListConfig:
    """Parse the allowed list (under allowed_key) and the blocked list."""
    return ListConfig(
        allowed=string_list_field(config, allowed_key, type_key),
        blocked=string_list_field(config, "blocked", type_key),
    )


def parse_expires(value: Any, type_key: str) -> int:
    """Convert an `expires` value to hours.

    Integers are days. Strings use a count and a unit: `h`, `d`, `w`,
    `m` (30 days) or `y`. `false` disables expiration.

    Returns:
        Expiration in hours, 0 when disabled or absent.

    Raises:
        SchemaError: On unrecognized values.

    """
    if value is None or value is False:
        return 0
    if isinstance(value, int) and not isinstance(value, bool):
        if value < 0:
            raise SchemaError(
                f"{_field_name(type_key, 'expires')} must not be negative, got {value}",
                field=_field_name(type_key, "expires"),
            )
        return value * 24
    if isinstance(value, str):
        match = _EXPIRES_PATTERN.match(value.strip().lower())
        if match:
            hours = int(match.group(1)) * _EXPIRES_UNIT_HOURS[match.group(2)]
            logger.debug("Converted expires %r to %d hours", value, hours)
            return hours
    raise SchemaError(
        f"{_field_name(type_key, 'expires')} must be a number of days or a duration "
        f"like '24h', '7d', '2w', got {value!r}",
        field=_field_name(type_key, "expires"),
    )


def parse_app_config(raw: Any, field_name: str) -> GitHubAppConfig | None:
    """Parse a GitHub App block (`app-id`, `private-key`, `owner`, `repositories`).

    Raises:
        SchemaError: If the block is not a mapping or lacks app-id / private-key.

    """
    if raw is None:
        return None
    if not isinstance(raw, dict):
        raise SchemaError(f"{field_name} must be a mapping", field=field_name)
    app_id = raw.get("app-id")
    private_key = raw.get("private-key")
    if not isinstance(app_id, (str, int)) or isinstance(app_id, bool) or not private_key:
        raise SchemaError(
            f"{field_name} requires 'app-id' and 'private-key'\n"
            f"  Suggestion: Use app-id: ${{{{ vars.APP_ID }}}} and "
            f"private-key: ${{{{ secrets.APP_PRIVATE_KEY }}}}",
            field=field_name,
        )
    if not isinstance(private_key, str):
        raise SchemaError(f"{field_name}.private-key must be a string", field=field_name)
    owner = raw.get("owner", "")
    repositories = as_string_list(raw.get("repositories")) or []
    return GitHubAppConfig(
        app_id=str(app_id),
        private_key=private_key,
        owner=owner if isinstance(owner, str) else "",
        repositories=tuple(repositories),
    )
