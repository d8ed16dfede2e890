"""Exception hierarchy for the agentic workflow compiler.

Every error raised by a compile pass derives from AwCompilerError and
carries an ErrorKind so callers (CLI, tests) can branch on the failure
category without parsing messages.

Public API:
    ErrorKind: Enumeration of failure categories
    AwCompilerError: Base exception
    FrontmatterError: Missing or malformed front-matter
    ImportResolutionError: Import not found, cycle, or agent/inlined conflict
    SchemaError: Type coercion failure or unknown enum value
    ValidationError: Aggregated semantic invariant failures
    CheckoutError: Conflicting checkout configuration
    CompilerIOError: Read/write failure around source or lock file
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Failure categories surfaced by the compiler."""

    FRONTMATTER_MISSING = "FrontmatterMissing"
    FRONTMATTER_MALFORMED = "FrontmatterMalformed"
    IMPORT_NOT_FOUND = "ImportNotFound"
    IMPORT_CYCLE = "ImportCycle"
    IMPORT_AGENT_WITH_INLINED = "ImportAgentWithInlined"
    SCHEMA_ERROR = "SchemaError"
    VALIDATION_ERROR = "ValidationError"
    INVALID_CHECKOUT = "InvalidCheckout"
    IO_ERROR = "IOError"


class AwCompilerError(Exception):
    """Base exception for all compiler errors.

    Attributes:
        kind: Failure category.

    """

    kind: ErrorKind = ErrorKind.VALIDATION_ERROR

    def __init__(self, message: str, kind: ErrorKind | None = None) -> None:
        super().__init__(message)
        if kind is not None:
            self.kind = kind


class FrontmatterError(AwCompilerError):
    """Front-matter could not be located or parsed.

    Attributes:
        file: Source file path (if known).
        line: 1-based line in the source file (if known).
        column: 1-based column (if known).
        snippet: Verbatim offending line (if known).

    """

    kind = ErrorKind.FRONTMATTER_MALFORMED

    def __init__(
        self,
        message: str,
        kind: ErrorKind | None = None,
        file: str | None = None,
        line: int | None = None,
        column: int | None = None,
        snippet: str | None = None,
    ) -> None:
        super().__init__(message, kind)
        self.file = file
        self.line = line
        self.column = column
        self.snippet = snippet


class ImportResolutionError(AwCompilerError):
    """An import could not be resolved.

    Attributes:
        chain: Files leading to the failing import, outermost first.

    """

    kind = ErrorKind.IMPORT_NOT_FOUND

    def __init__(
        self,
        message: str,
        kind: ErrorKind | None = None,
        chain: list[str] | None = None,
    ) -> None:
        super().__init__(message, kind)
        self.chain = list(chain or [])


class SchemaError(AwCompilerError):
    """A front-matter value has the wrong type or an unknown enum value."""

    kind = ErrorKind.SCHEMA_ERROR

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class ValidationError(AwCompilerError):
    """One or more semantic invariants failed.

    Attributes:
        messages: Every collected failure message, in discovery order.

    """

    kind = ErrorKind.VALIDATION_ERROR

    def __init__(self, messages: list[str] | str, kind: ErrorKind | None = None) -> None:
        if isinstance(messages, str):
            messages = [messages]
        self.messages = list(messages)
        if len(self.messages) == 1:
            text = self.messages[0]
        else:
            text = f"{len(self.messages)} validation errors:\n" + "\n".join(
                f"  - {m}" for m in self.messages
            )
        super().__init__(text, kind)


class CheckoutError(ValidationError):
    """Checkout configuration is contradictory."""

    kind = ErrorKind.INVALID_CHECKOUT


class CompilerIOError(AwCompilerError):
    """Reading the source or writing the lock file failed."""

    kind = ErrorKind.IO_ERROR

    def __init__(self, message: str, path: str | None = None) -> None:
        super().__init__(message)
        self.path = path
