"""Tests for checkout merging and checkout step rendering."""

import itertools

import pytest

from aw_compiler.compiler.checkout import (
    TRIAL_TOKEN,
    CheckoutConfig,
    CheckoutManager,
    build_checkouts_prompt,
    deeper_fetch_depth,
    merge_sparse_patterns,
    parse_checkout_configs,
)
from aw_compiler.core.exceptions import CheckoutError, ErrorKind, SchemaError


def fake_pin(repo: str) -> str:
    return f"{repo}@pinned"


class TestDeeperFetchDepth:
    """Tests for the fetch-depth merge rule."""

    @pytest.mark.parametrize(
        ("a", "b", "expected"),
        [(None, None, None), (None, 3, 3), (3, None, 3), (1, 0, 0), (0, 50, 0), (5, 20, 20)],
    )
    def test_pairs(self, a: int | None, b: int | None, expected: int | None) -> None:
        """0 beats any depth, larger beats smaller, anything beats None."""
        assert deeper_fetch_depth(a, b) == expected

    def test_monotone(self) -> None:
        """The result is at least as deep as either input."""

        def depth_rank(value: int | None) -> float:
            if value is None:
                return -1
            return float("inf") if value == 0 else value

        values = [None, 0, 1, 3, 10]
        for a, b in itertools.product(values, repeat=2):
            result = deeper_fetch_depth(a, b)
            assert depth_rank(result) >= depth_rank(a)
            assert depth_rank(result) >= depth_rank(b)


class TestSparsePatterns:
    """Tests for sparse-checkout pattern merging."""

    def test_union_keeps_first_seen_order(self) -> None:
        """Patterns are trimmed, deduplicated and keep first-seen order."""
        assert merge_sparse_patterns(["src/", "docs/"], " docs/\n.github/\n\nsrc/") == [
            "src/",
            "docs/",
            ".github/",
        ]


class TestCheckoutManager:
    """Tests for request merging."""

    def test_dot_and_empty_path_merge(self) -> None:
        """`.` and "" are the same workspace root; deeper fetch-depth wins."""
        manager = CheckoutManager([CheckoutConfig(path="."), CheckoutConfig(path="", fetch_depth=0)])
        assert len(manager.entries) == 1
        step = manager.default_checkout_step(fake_pin)
        assert step["with"] == {"persist-credentials": False, "fetch-depth": 0}
        assert manager.additional_checkout_steps(fake_pin) == []

    def test_first_non_empty_wins(self) -> None:
        """ref and token come from the first request that sets them."""
        manager = CheckoutManager(
            [
                CheckoutConfig(repository="o/r", path="lib"),
                CheckoutConfig(repository="o/r", path="lib", ref="main", github_token="${{ secrets.A }}"),
                CheckoutConfig(repository="o/r", path="lib", ref="dev", lfs=True),
            ]
        )
        (entry,) = manager.entries
        assert entry.ref == "main"
        assert entry.token == "${{ secrets.A }}"
        assert entry.lfs is True

    def test_merge_is_idempotent(self) -> None:
        """Feeding the merged entries back in yields the same entries."""
        requests = [
            CheckoutConfig(repository="o/a", path="a", fetch_depth=5, sparse_checkout="x/\ny/"),
            CheckoutConfig(repository="o/a", path="a", fetch_depth=10, sparse_checkout="y/\nz/"),
            CheckoutConfig(path="", fetch_depth=1),
        ]
        once = CheckoutManager(requests).entries
        replayed = [
            CheckoutConfig(
                repository=e.repository,
                path=e.path,
                ref=e.ref,
                github_token=e.token,
                fetch_depth=e.fetch_depth,
                sparse_checkout="\n".join(e.sparse_patterns),
                submodules=e.submodules,
                lfs=e.lfs,
                current=e.current,
            )
            for e in once
        ]
        twice = CheckoutManager(replayed + replayed).entries
        assert twice == once

    def test_additional_steps_in_insertion_order(self) -> None:
        """Additional checkouts render in declaration order with ordered keys."""
        manager = CheckoutManager(
            [
                CheckoutConfig(repository="o/b", path="b", ref="v1", fetch_depth=2),
                CheckoutConfig(repository="o/a", path="a", sparse_checkout="docs/"),
            ]
        )
        steps = manager.additional_checkout_steps(fake_pin)
        assert [s["name"] for s in steps] == ["Checkout o/b into b", "Checkout o/a into a"]
        assert list(steps[0]["with"]) == ["persist-credentials", "repository", "path", "ref", "fetch-depth"]
        assert steps[1]["with"]["sparse-checkout"] == "docs/\n"
        assert steps[0]["uses"] == "actions/checkout@pinned"

    def test_default_checkout_without_override(self) -> None:
        """Without requests only persist-credentials is set."""
        step = CheckoutManager().default_checkout_step(fake_pin)
        assert step == {
            "name": "Checkout repository",
            "uses": "actions/checkout@pinned",
            "with": {"persist-credentials": False},
        }

    def test_trial_mode_ignores_override(self) -> None:
        """Trial mode replaces the user override with the trial repository."""
        manager = CheckoutManager([CheckoutConfig(fetch_depth=0, ref="main")])
        step = manager.default_checkout_step(fake_pin, trial_mode=True, trial_repo="octo/trial")
        assert step["with"] == {
            "persist-credentials": False,
            "repository": "octo/trial",
            "token": TRIAL_TOKEN,
        }

    def test_current_repository(self) -> None:
        """The checkout marked current is reported."""
        manager = CheckoutManager([CheckoutConfig(repository="o/x", path="x", current=True)])
        assert manager.current_repository() == "o/x"


class TestParseCheckoutConfigs:
    """Tests for parse_checkout_configs()."""

    def test_single_mapping(self) -> None:
        """A mapping is one request."""
        (config,) = parse_checkout_configs({"fetch-depth": 0, "submodules": True})
        assert config.fetch_depth == 0
        assert config.submodules == "true"

    def test_list(self) -> None:
        """A list yields one request per entry; `.` normalizes to ""."""
        configs = parse_checkout_configs([{"path": "."}, {"repository": "o/r", "path": "r"}])
        assert [c.path for c in configs] == ["", "r"]

    def test_bad_fetch_depth(self) -> None:
        """fetch-depth must be an integer."""
        with pytest.raises(SchemaError, match="checkout\\[0\\]: checkout.fetch-depth must be an integer"):
            parse_checkout_configs([{"fetch-depth": "deep"}])

    def test_bad_entry_type(self) -> None:
        """List entries must be mappings."""
        with pytest.raises(SchemaError, match="expected object"):
            parse_checkout_configs(["o/r"])

    def test_two_current_targets_rejected(self) -> None:
        """At most one (repository, path) may be current."""
        with pytest.raises(CheckoutError) as exc_info:
            parse_checkout_configs(
                [
                    {"repository": "o/a", "path": "a", "current": True},
                    {"repository": "o/b", "path": "b", "current": True},
                ]
            )
        assert exc_info.value.kind is ErrorKind.INVALID_CHECKOUT

    def test_same_current_target_twice_allowed(self) -> None:
        """Repeating the same current target is not a conflict."""
        configs = parse_checkout_configs(
            [
                {"repository": "o/a", "path": "a", "current": True},
                {"repository": "o/a", "path": "a", "current": True, "fetch-depth": 0},
            ]
        )
        assert len(configs) == 2


class TestCheckoutsPrompt:
    """Tests for the checkout overview in the prompt."""

    def test_empty(self) -> None:
        """No checkouts, no section."""
        assert build_checkouts_prompt([]) == ""

    def test_markers(self) -> None:
        """The root is (cwd) and the current checkout is marked."""
        text = build_checkouts_prompt(
            [CheckoutConfig(), CheckoutConfig(repository="o/lib", path="./lib", current=True)]
        )
        lines = text.splitlines()
        assert lines[1] == "  - `$GITHUB_WORKSPACE` → `${{ github.repository }}` (cwd)"
        assert lines[2].startswith("  - `$GITHUB_WORKSPACE/lib` → `o/lib` (**current**")
