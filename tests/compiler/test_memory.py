"""Tests for cache-memory and repo-memory steps."""

from collections.abc import Callable

from aw_compiler.compiler.context import CompileContext
from aw_compiler.compiler.memory import (
    PUSH_REPO_MEMORY_JOB,
    build_push_repo_memory_job,
    cache_key,
    cache_memory_steps,
    cache_memory_upload_steps,
    repo_memory_steps,
    repo_memory_upload_steps,
)
from aw_compiler.compiler.types import CacheMemoryEntry, WorkflowData

MakeData = Callable[..., WorkflowData]


def pinned_ctx() -> CompileContext:
    return CompileContext(pin=lambda repo: f"{repo}@pinned")


class TestCacheMemory:
    """Tests for cache-memory steps."""

    def test_key_keeps_run_id_suffix(self) -> None:
        """A key already ending with the run id is not extended."""
        entry = CacheMemoryEntry(key="k-${{ github.run_id }}")
        assert cache_key(entry) == "k-${{ github.run_id }}"

    def test_default_cache(self, make_data: MakeData) -> None:
        """One directory step and one cache step per entry."""
        steps = cache_memory_steps(make_data({"tools": {"cache-memory": True}}), pinned_ctx())
        create, cache = steps
        assert create["name"] == "Create cache-memory directory"
        assert cache["uses"] == "actions/cache@pinned"
        assert cache["with"] == {
            "key": "memory-${{ github.workflow }}-${{ github.run_id }}",
            "path": "/tmp/gh-aw/cache-memory",
            "restore-keys": "memory-${{ github.workflow }}-",
        }

    def test_restore_only(self, make_data: MakeData) -> None:
        """restore-only caches use actions/cache/restore."""
        data = make_data({"tools": {"cache-memory": [{"id": "notes", "restore-only": True}]}})
        _, cache = cache_memory_steps(data, pinned_ctx())
        assert cache["uses"] == "actions/cache/restore@pinned"
        assert cache["with"]["path"] == "/tmp/gh-aw/cache-memory-notes"

    def test_upload_with_retention(self, make_data: MakeData) -> None:
        """Only caches with retention-days are uploaded."""
        data = make_data(
            {"tools": {"cache-memory": [{"id": "a", "retention-days": 7}, {"id": "b"}]}}
        )
        (step,) = cache_memory_upload_steps(data, pinned_ctx())
        assert step["with"]["name"] == "cache-memory-a"
        assert step["with"]["retention-days"] == 7


class TestRepoMemory:
    """Tests for repo-memory steps and the push job."""

    def test_disabled(self, make_data: MakeData) -> None:
        """Without repo-memory nothing is emitted."""
        data = make_data()
        assert repo_memory_steps(data, pinned_ctx()) == []
        assert repo_memory_upload_steps(data, pinned_ctx()) == []
        assert build_push_repo_memory_job(data, pinned_ctx()) is None

    def test_clone_step(self, make_data: MakeData) -> None:
        """The branch is cloned into the memory folder."""
        data = make_data({"tools": {"repo-memory": {"branch-name": "memory/notes"}}})
        (step,) = repo_memory_steps(data, pinned_ctx())
        assert step["env"]["BRANCH_NAME"] == "memory/notes"
        assert step["env"]["TARGET_REPO"] == "${{ github.repository }}"

    def test_push_job(self, make_data: MakeData) -> None:
        """The push job depends on a successful agent run and writes contents."""
        data = make_data({"tools": {"repo-memory": {"max-file-size": 1024}}})
        job = build_push_repo_memory_job(data, pinned_ctx())
        assert job is not None
        assert job.name == PUSH_REPO_MEMORY_JOB
        assert job.needs == ["agent"]
        assert job.permissions.to_dict() == {"contents": "write"}
        push = job.steps[-1]
        assert push["env"]["MAX_FILE_SIZE"] == "1024"
