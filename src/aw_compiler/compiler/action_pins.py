"""Pinned references for the third-party actions the emitter uses.

Every `uses:` in a lock file is pinned to a commit SHA with the release
tag kept as a trailing comment, e.g.
`actions/checkout@08c6903cd8c0fde910a37f88322edcfb5dd907a8 # v5.0.0`.

Public API:
    ActionPin: Version and SHA of one action
    ACTION_PINS: Known pins keyed by owner/repo
    PinResolver: Callable type of the pin-resolution hook
    resolve_pin: Default hook backed by ACTION_PINS
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from aw_compiler.core.exceptions import SchemaError


@dataclass(frozen=True)
class ActionPin:
    """A released action pinned to its commit."""

    repo: str
    version: str
    sha: str

    @property
    def reference(self) -> str:
        return f"{self.repo}@{self.sha} # {self.version}"


ACTION_PINS: dict[str, ActionPin] = {
    pin.repo: pin
    for pin in (
        ActionPin("actions/checkout", "v5.0.0", "08c6903cd8c0fde910a37f88322edcfb5dd907a8"),
        ActionPin("actions/cache", "v4.2.4", "0400d5f644dc74513175e3cd8d07132dd4860809"),
        ActionPin("actions/cache/restore", "v4.2.4", "0400d5f644dc74513175e3cd8d07132dd4860809"),
        ActionPin("actions/upload-artifact", "v4.6.2", "ea165f8d65b6e75b540449e92b4886f43607fa02"),
        ActionPin("actions/download-artifact", "v5.0.0", "634f93cb2916e3fdff6788551b99b062d0335ce0"),
        ActionPin("actions/setup-node", "v4.4.0", "49933ea5288caeca8642d1e84afbd3f7d6820020"),
        ActionPin("actions/github-script", "v8.0.0", "ed597411d8f924073f98dfc5c65a23a2325f34cd"),
        ActionPin(
            "actions/create-github-app-token", "v2.1.4", "67018539274d69449ef7c02e8e71183d1719ab42"
        ),
    )
}

PinResolver = Callable[[str], str]


def resolve_pin(repo: str) -> str:
    """Return the pinned `uses:` reference for an owner/repo action.

    Raises:
        SchemaError: If the action has no known pin.

    """
    pin = ACTION_PINS.get(repo)
    if pin is None:
        raise SchemaError(
            f"No pinned version known for action '{repo}'\n"
            f"  Known actions: {', '.join(sorted(ACTION_PINS))}",
            field="uses",
        )
    return pin.reference
