"""Job records and the ordered job graph.

Jobs are kept in insertion order, which is also emission order. The
manager rejects duplicate names, unknown `needs:` targets and cycles, so
the emitted graph is always a DAG whose order is topological.

Public API:
    Job: One emitted job
    JobManager: Ordered, validated collection of jobs
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from aw_compiler.compiler.permissions import Permissions
from aw_compiler.core.exceptions import ValidationError
from aw_compiler.core.types import sorted_mapping

logger = logging.getLogger(__name__)


@dataclass
class Job:
    """One job of the lock file.

    Attributes:
        name: Job id (mapping key under `jobs:`).
        needs: Jobs this one depends on.
        if_condition: Job-level `if:` expression without the `${{ }}`.
        runs_on: Runner label.
        permissions: Job permissions; empty renders `permissions: {}`.
        timeout_minutes: Job timeout, omitted when None.
        concurrency: Job concurrency block.
        env: Job-level environment.
        outputs: Job outputs, in insertion order.
        steps: Step mappings.

    """

    name: str
    needs: list[str] = field(default_factory=list)
    if_condition: str = ""
    runs_on: Any = "ubuntu-latest"
    permissions: Permissions = field(default_factory=Permissions)
    timeout_minutes: int | None = None
    concurrency: Any = None
    env: dict[str, Any] = field(default_factory=dict)
    outputs: dict[str, str] = field(default_factory=dict)
    steps: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Render the job mapping with keys in lock-file order."""
        data: dict[str, Any] = {}
        if self.needs:
            data["needs"] = self.needs[0] if len(self.needs) == 1 else list(self.needs)
        if self.if_condition:
            data["if"] = self.if_condition
        data["runs-on"] = self.runs_on
        data["permissions"] = self.permissions.to_dict()
        if self.concurrency is not None:
            data["concurrency"] = self.concurrency
        if self.env:
            data["env"] = sorted_mapping(self.env)
        if self.timeout_minutes is not None:
            data["timeout-minutes"] = self.timeout_minutes
        if self.outputs:
            data["outputs"] = dict(self.outputs)
        data["steps"] = list(self.steps)
        return data


class JobManager:
    """Ordered job collection with dependency checks."""

    def __init__(self) -> None:
        self._jobs: dict[str, Job] = {}

    def add(self, job: Job) -> None:
        """Append a job.

        Raises:
            ValidationError: When a job with the same name exists.

        """
        if job.name in self._jobs:
            raise ValidationError(f"duplicate job name: {job.name}")
        self._jobs[job.name] = job
        logger.debug("Added job %s (needs=%s)", job.name, job.needs)

    def get(self, name: str) -> Job | None:
        return self._jobs.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._jobs

    def __len__(self) -> int:
        return len(self._jobs)

    @property
    def jobs(self) -> list[Job]:
        return list(self._jobs.values())

    def validate(self) -> None:
        """Check every dependency exists and precedes its dependent.

        Insertion order is emission order, so a dependency declared after
        its dependent means either a cycle or a mis-ordered build.

        Raises:
            ValidationError: On unknown dependencies or ordering violations.

        """
        seen: set[str] = set()
        errors: list[str] = []
        for job in self._jobs.values():
            for dependency in job.needs:
                if dependency not in self._jobs:
                    errors.append(f"job '{job.name}' depends on unknown job '{dependency}'")
                elif dependency not in seen:
                    errors.append(
                        f"job '{job.name}' depends on '{dependency}', which is not emitted before it"
                    )
            seen.add(job.name)
        if errors:
            raise ValidationError(errors)

    def to_dict(self) -> dict[str, Any]:
        """Render `jobs:` as an insertion-ordered mapping."""
        self.validate()
        return {name: job.to_dict() for name, job in self._jobs.items()}

    def union_permissions(self) -> Permissions:
        """Union of every job's permissions (the top-level block)."""
        permissions = Permissions()
        for job in self._jobs.values():
            permissions.merge(job.permissions)
        return permissions
