"""Explicit compile context passed to every pass.

Nothing that influences the lock file lives in module-level state: the
configuration, action mode, pin resolver, script registry and warning
collector of one compile travel together in a CompileContext.

Public API:
    ScriptRegistry: Thread-safe name -> custom action path registry
    WarningCollector: Counts and records compile warnings
    ValidationCollector: Aggregates validation messages
    CompileContext: Per-compile bundle of the above
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field

from aw_compiler.compiler.action_pins import PinResolver, resolve_pin
from aw_compiler.compiler.types import ActionMode
from aw_compiler.core.config import CompilerConfig
from aw_compiler.core.exceptions import ErrorKind, ValidationError

logger = logging.getLogger(__name__)


class ScriptRegistry:
    """Registry of handler scripts and their optional custom action paths.

    Guarded by a lock because tests may run several compilers in
    parallel threads against one registry.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._scripts: dict[str, str] = {}

    def register(self, name: str, action_path: str = "") -> None:
        """Register a script, optionally backed by a custom action."""
        with self._lock:
            self._scripts[name] = action_path

    def get_action_path(self, name: str) -> str:
        """Return the custom action path for name, or "" when none is registered."""
        with self._lock:
            path = self._scripts.get(name, "")
        if path:
            logger.debug("Custom action path for %s: %s", name, path)
        return path

    def names(self) -> list[str]:
        """Registered script names in sorted order."""
        with self._lock:
            return sorted(self._scripts)

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._scripts


class WarningCollector:
    """Collects compile warnings in order and counts them."""

    def __init__(self) -> None:
        self.messages: list[str] = []

    def warn(self, message: str) -> None:
        """Record and log a warning."""
        self.messages.append(message)
        logger.warning(message)

    def experimental(self, feature: str) -> None:
        """Record use of an experimental feature."""
        self.warn(f"Using experimental feature: {feature}")

    @property
    def count(self) -> int:
        return len(self.messages)


class ValidationCollector:
    """Aggregates validation failures and raises them together.

    Example:
        >>> collector = ValidationCollector()
        >>> collector.add("port must be between 1 and 65535, got 0")
        >>> collector.raise_if_errors()
        Traceback (most recent call last):
        ...
        aw_compiler.core.exceptions.ValidationError: port must be between 1 and 65535, got 0

    """

    def __init__(self) -> None:
        self.messages: list[str] = []
        self._kind: ErrorKind | None = None

    def add(self, message: str, kind: ErrorKind | None = None) -> None:
        """Record one failure; the first specific kind wins."""
        self.messages.append(message)
        if kind is not None and self._kind is None:
            self._kind = kind

    def extend(self, error: ValidationError) -> None:
        """Merge the messages of an already raised ValidationError."""
        for message in error.messages:
            self.add(message, error.kind if error.kind != ErrorKind.VALIDATION_ERROR else None)

    def __bool__(self) -> bool:
        return bool(self.messages)

    def raise_if_errors(self) -> None:
        """Raise one ValidationError listing every collected message.

        Raises:
            ValidationError: When at least one message was collected.

        """
        if self.messages:
            raise ValidationError(self.messages, kind=self._kind)


@dataclass
class CompileContext:
    """Everything a compile pass may consult besides the workflow itself.

    Attributes:
        config: Compiler configuration (CLI flags already applied).
        action_mode: Resolved action mode.
        pin: Action pin resolver hook.
        scripts: Script registry.
        warnings: Warning collector.

    """

    config: CompilerConfig = field(default_factory=CompilerConfig)
    action_mode: ActionMode = ActionMode.DEV
    pin: PinResolver = resolve_pin
    scripts: ScriptRegistry = field(default_factory=ScriptRegistry)
    warnings: WarningCollector = field(default_factory=WarningCollector)

    @property
    def strict(self) -> bool:
        return self.config.strict
