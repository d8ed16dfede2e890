"""Checkout manager for the agent job.

Collects the `checkout:` requests of a workflow, merges requests that
target the same (repository, path) and emits the default workspace
checkout plus one step per additional checkout.

Merging rules for requests sharing a key:
- fetch-depth: the deeper value wins (0 = full history beats any depth).
- ref, github-token, submodules: first non-empty value wins.
- lfs, current: logical OR.
- sparse-checkout: patterns unioned in first-seen order, trimmed, deduplicated.

Public API:
    CheckoutConfig: One raw checkout request
    ResolvedCheckout: A merged checkout target
    CheckoutManager: Merges requests and renders steps
    parse_checkout_configs: Convert the `checkout:` value
    deeper_fetch_depth: Fetch-depth merge rule
    merge_sparse_patterns: Sparse-checkout merge rule
    build_checkouts_prompt: Markdown overview of the checkouts for the prompt
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from aw_compiler.compiler.action_pins import PinResolver
from aw_compiler.core.exceptions import CheckoutError, SchemaError

logger = logging.getLogger(__name__)

# Token used by trial-mode checkouts
TRIAL_TOKEN = "${{ secrets.GH_AW_GITHUB_TOKEN || secrets.GITHUB_TOKEN }}"


@dataclass(frozen=True)
class CheckoutConfig:
    """One checkout request as declared in front-matter.

    Attributes:
        repository: owner/repo; the current repository when empty.
        ref: Branch, tag or SHA.
        path: Workspace-relative path; "" is the workspace root.
        github_token: Token for the checkout (emitted as `token:`).
        fetch_depth: Commits to fetch; 0 for full history, None for default.
        sparse_checkout: Newline-separated sparse patterns.
        submodules: "recursive", "true" or "false".
        lfs: Fetch Git LFS objects.
        current: Marks the repository the agent works on.

    """

    repository: str = ""
    ref: str = ""
    path: str = ""
    github_token: str = ""
    fetch_depth: int | None = None
    sparse_checkout: str = ""
    submodules: str = ""
    lfs: bool = False
    current: bool = False


@dataclass
class ResolvedCheckout:
    """A checkout target after merging every request with the same key."""

    repository: str
    path: str
    ref: str = ""
    token: str = ""
    fetch_depth: int | None = None
    sparse_patterns: list[str] = field(default_factory=list)
    submodules: str = ""
    lfs: bool = False
    current: bool = False

    @property
    def key(self) -> tuple[str, str]:
        return (self.repository, self.path)

    @property
    def is_default(self) -> bool:
        return not self.repository and not self.path


def deeper_fetch_depth(a: int | None, b: int | None) -> int | None:
    """Return the deeper of two fetch depths.

    0 (full history) is deepest; otherwise the larger depth wins; None
    means "use the default" and loses to any value.

    Examples:
        >>> deeper_fetch_depth(1, 0)
        0
        >>> deeper_fetch_depth(5, 20)
        20
        >>> deeper_fetch_depth(None, 3)
        3

    """
    if a is None:
        return b
    if b is None:
        return a
    if a == 0 or b == 0:
        return 0
    return max(a, b)


def merge_sparse_patterns(existing: list[str], patterns: str) -> list[str]:
    """Union newline-separated patterns into existing, keeping first-seen order."""
    result: list[str] = []
    seen: set[str] = set()
    for pattern in [*existing, *patterns.split("\n")]:
        pattern = pattern.strip()
        if pattern and pattern not in seen:
            seen.add(pattern)
            result.append(pattern)
    return result


class CheckoutManager:
    """Merges checkout requests and renders checkout steps.

    Entries keep insertion order so emitted steps are deterministic.
    """

    def __init__(self, checkouts: list[CheckoutConfig] | tuple[CheckoutConfig, ...] = ()) -> None:
        self._ordered: list[ResolvedCheckout] = []
        self._index: dict[tuple[str, str], int] = {}
        logger.debug("Creating checkout manager with %d checkout config(s)", len(checkouts))
        for config in checkouts:
            self.add(config)

    def add(self, config: CheckoutConfig) -> None:
        """Add a request, merging it into an existing entry with the same key."""
        path = "" if config.path == "." else config.path
        key = (config.repository, path)
        if key in self._index:
            entry = self._ordered[self._index[key]]
            entry.fetch_depth = deeper_fetch_depth(entry.fetch_depth, config.fetch_depth)
            entry.ref = entry.ref or config.ref
            entry.token = entry.token or config.github_token
            entry.submodules = entry.submodules or config.submodules
            if config.sparse_checkout:
                entry.sparse_patterns = merge_sparse_patterns(
                    entry.sparse_patterns, config.sparse_checkout
                )
            entry.lfs = entry.lfs or config.lfs
            entry.current = entry.current or config.current
            logger.debug("Merged checkout for path=%r repository=%r", path, config.repository)
            return
        entry = ResolvedCheckout(
            repository=config.repository,
            path=path,
            ref=config.ref,
            token=config.github_token,
            fetch_depth=config.fetch_depth,
            sparse_patterns=(
                merge_sparse_patterns([], config.sparse_checkout) if config.sparse_checkout else []
            ),
            submodules=config.submodules,
            lfs=config.lfs,
            current=config.current,
        )
        self._index[key] = len(self._ordered)
        self._ordered.append(entry)
        logger.debug("Added checkout for path=%r repository=%r", path, config.repository)

    @property
    def entries(self) -> list[ResolvedCheckout]:
        return list(self._ordered)

    def default_override(self) -> ResolvedCheckout | None:
        """Return the merged entry for the workspace root of the current repository."""
        index = self._index.get(("", ""))
        return self._ordered[index] if index is not None else None

    def current_repository(self) -> str:
        """Repository of the checkout marked current ("" when none or default)."""
        for entry in self._ordered:
            if entry.current:
                return entry.repository
        return ""

    def default_checkout_step(
        self,
        pin: PinResolver,
        trial_mode: bool = False,
        trial_repo: str = "",
    ) -> dict[str, Any]:
        """Render the default workspace checkout.

        `persist-credentials: false` is always set. In trial mode the
        trial repository and token replace any user override.
        """
        override = self.default_override()
        with_: dict[str, Any] = {"persist-credentials": False}
        if trial_mode:
            if trial_repo:
                with_["repository"] = trial_repo
            with_["token"] = TRIAL_TOKEN
        elif override is not None:
            if override.repository:
                with_["repository"] = override.repository
            if override.ref:
                with_["ref"] = override.ref
            if override.token:
                with_["token"] = override.token
            if override.fetch_depth is not None:
                with_["fetch-depth"] = override.fetch_depth
            if override.sparse_patterns:
                with_["sparse-checkout"] = "\n".join(override.sparse_patterns) + "\n"
            if override.submodules:
                with_["submodules"] = override.submodules
            if override.lfs:
                with_["lfs"] = True
        return {"name": "Checkout repository", "uses": pin("actions/checkout"), "with": with_}

    def additional_checkout_steps(self, pin: PinResolver) -> list[dict[str, Any]]:
        """Render one step per non-default checkout, in insertion order."""
        steps = []
        for entry in self._ordered:
            if entry.is_default:
                continue
            with_: dict[str, Any] = {"persist-credentials": False}
            if entry.repository:
                with_["repository"] = entry.repository
            if entry.path:
                with_["path"] = entry.path
            if entry.ref:
                with_["ref"] = entry.ref
            if entry.token:
                with_["token"] = entry.token
            if entry.fetch_depth is not None:
                with_["fetch-depth"] = entry.fetch_depth
            if entry.sparse_patterns:
                with_["sparse-checkout"] = "\n".join(entry.sparse_patterns) + "\n"
            if entry.submodules:
                with_["submodules"] = entry.submodules
            if entry.lfs:
                with_["lfs"] = True
            steps.append(
                {
                    "name": f"Checkout {_step_label(entry)}",
                    "uses": pin("actions/checkout"),
                    "with": with_,
                }
            )
        logger.debug("Generated %d additional checkout step(s)", len(steps))
        return steps


def _step_label(entry: ResolvedCheckout) -> str:
    if entry.repository and entry.path:
        return f"{entry.repository} into {entry.path}"
    return entry.repository or entry.path or "repository"


def _string(item: dict[str, Any], key: str) -> str:
    value = item.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise SchemaError(f"checkout.{key} must be a string", field=f"checkout.{key}")
    return value


def _checkout_from_mapping(item: dict[str, Any]) -> CheckoutConfig:
    fetch_depth = item.get("fetch-depth")
    if fetch_depth is not None:
        if isinstance(fetch_depth, float) and fetch_depth.is_integer():
            fetch_depth = int(fetch_depth)
        if isinstance(fetch_depth, bool) or not isinstance(fetch_depth, int):
            raise SchemaError(
                "checkout.fetch-depth must be an integer", field="checkout.fetch-depth"
            )

    submodules = item.get("submodules")
    if isinstance(submodules, bool):
        submodules = "true" if submodules else "false"
    elif submodules is not None and not isinstance(submodules, str):
        raise SchemaError(
            "checkout.submodules must be a string or boolean", field="checkout.submodules"
        )

    for key in ("lfs", "current"):
        if key in item and not isinstance(item[key], bool):
            raise SchemaError(f"checkout.{key} must be a boolean", field=f"checkout.{key}")

    path = _string(item, "path")
    return CheckoutConfig(
        repository=_string(item, "repository"),
        ref=_string(item, "ref"),
        path="" if path == "." else path,
        github_token=_string(item, "github-token"),
        fetch_depth=fetch_depth,
        sparse_checkout=_string(item, "sparse-checkout"),
        submodules=submodules or "",
        lfs=bool(item.get("lfs", False)),
        current=bool(item.get("current", False)),
    )


def parse_checkout_configs(raw: Any) -> list[CheckoutConfig]:
    """Convert a `checkout:` value (mapping or list of mappings).

    Raises:
        SchemaError: On malformed entries.
        CheckoutError: When more than one (repository, path) pair is current.

    """
    if raw is None:
        return []
    if isinstance(raw, dict):
        configs = [_checkout_from_mapping(raw)]
    elif isinstance(raw, list):
        configs = []
        for index, item in enumerate(raw):
            if not isinstance(item, dict):
                raise SchemaError(
                    f"checkout[{index}]: expected object, got {type(item).__name__}",
                    field="checkout",
                )
            try:
                configs.append(_checkout_from_mapping(item))
            except SchemaError as e:
                raise SchemaError(f"checkout[{index}]: {e}", field=e.field) from e
    else:
        raise SchemaError(
            f"checkout must be an object or an array of objects, got {type(raw).__name__}",
            field="checkout",
        )

    current = {(c.repository.strip(), c.path.strip()) for c in configs if c.current}
    if len(current) > 1:
        raise CheckoutError(
            f"only one checkout target may have current: true, found {len(current)}"
        )
    logger.debug("Parsed %d checkout config(s)", len(configs))
    return configs


def build_checkouts_prompt(checkouts: list[CheckoutConfig] | tuple[CheckoutConfig, ...]) -> str:
    """Return a Markdown bullet list describing the checked-out repositories.

    The root checkout is marked "(cwd)"; the current checkout is marked
    "(**current** ...)". Returns "" when there are no checkouts.
    """
    if not checkouts:
        return ""
    lines = [
        "- **checkouts**: The following repositories have been checked out "
        "and are available in the workspace:"
    ]
    for config in checkouts:
        relative = config.path.removeprefix("./")
        if relative == ".":
            relative = ""
        location = "$GITHUB_WORKSPACE" + (f"/{relative}" if relative else "")
        repository = config.repository or "${{ github.repository }}"
        line = f"  - `{location}` → `{repository}`"
        if not relative:
            line += " (cwd)"
        if config.current:
            line += (
                " (**current** - this is the repository you are working on; use this as "
                "the target for all GitHub operations unless otherwise specified)"
            )
        lines.append(line)
    return "\n".join(lines) + "\n"
