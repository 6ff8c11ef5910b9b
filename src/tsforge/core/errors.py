"""
Structured error types for tsforge.

Every failure the build can raise carries a category, structured context
(grammar, platform, command) and an optional chained cause. The
orchestrator uses the category to decide whether a failure is localized
to one grammar or fatal for the whole run.

Manifesto:
    - **Typed Error Hierarchy:** One error type per failure domain
    - **Rich Context:** Errors carry the grammar/platform they belong to
    - **Error Chaining:** Preserve original exceptions while adding context

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────┐
        │                        ForgeError                            │
        │              (category, context, cause)                      │
        ├─────────────────────────────────────────────────────────────┤
        │  Fatal (abort the run)      │  Localized (collected)         │
        │  ─────────────────────      │  ─────────────────────         │
        │  ManifestError              │  GenerationError               │
        │  ConfigError                │  ArchiveError                  │
        │  ToolchainError             │                                │
        │                             │                                │
        │  CommandError               │                                │
        │    CommandTimeoutError      │                                │
        │    CommandNotFoundError     │                                │
        └─────────────────────────────────────────────────────────────┘

Examples:
    >>> error = ArchiveError("merge failed").with_context(grammar="json")
    >>> error.context.grammar
    'json'
    >>> error.category.value
    'ARCHIVE'

Tags:
    error-handling, exception-hierarchy, error-context, tsforge
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Error categories for classification and reporting."""

    # Fatal for the run
    MANIFEST = "MANIFEST"         # Missing or malformed grammar manifest
    CONFIG = "CONFIG"             # Invalid run options or settings
    TOOLCHAIN = "TOOLCHAIN"       # Cross-compiler absent when required

    # Localized to one grammar / platform
    GENERATION = "GENERATION"     # Parser generator missing or erroring
    ARCHIVE = "ARCHIVE"           # Archiver / merge failure

    # External process plumbing
    COMMAND = "COMMAND"

    INTERNAL = "INTERNAL"


@dataclass
class ErrorContext:
    """Structured metadata attached to an error.

    Attributes:
        grammar: Grammar name the error belongs to
        platform: Target platform name
        command: Full command line that failed
        metadata: Additional key-value pairs
    """

    grammar: str | None = None
    platform: str | None = None
    command: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["grammar", "platform", "command"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class ForgeError(Exception):
    """Base exception for all tsforge errors.

    Subclasses set ``default_category``; callers may override it per
    instance. ``cause`` keeps the underlying exception for diagnosis.
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        context: ErrorContext | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.context = context or ErrorContext()
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> ForgeError:
        """Add context fields and return self for chaining.

        Known fields (grammar, platform, command) are set directly;
        anything else lands in ``context.metadata``.
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Serialize error for logging and build summaries."""
        result: dict[str, Any] = {
            "error_type": type(self).__name__,
            "message": self.message,
            "category": self.category.value,
        }
        ctx = self.context.to_dict()
        if ctx:
            result["context"] = ctx
        if self.cause is not None:
            result["cause"] = f"{type(self.cause).__name__}: {self.cause}"
        return result

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# FATAL ERRORS
# =============================================================================


class ManifestError(ForgeError):
    """Grammar manifest missing or malformed. Aborts before any work."""

    default_category = ErrorCategory.MANIFEST

    def __init__(self, message: str, *, field_path: str | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.field_path = field_path
        if field_path:
            self.context.metadata["field"] = field_path


class ConfigError(ForgeError):
    """Invalid run options (unknown platform, conflicting modes)."""

    default_category = ErrorCategory.CONFIG


class ToolchainError(ForgeError):
    """Cross toolchain required but not installed."""

    default_category = ErrorCategory.TOOLCHAIN


# =============================================================================
# LOCALIZED ERRORS
# =============================================================================


class GenerationError(ForgeError):
    """Parser generator unavailable or failed."""

    default_category = ErrorCategory.GENERATION


class ArchiveError(ForgeError):
    """Archiving or merging object files failed."""

    default_category = ErrorCategory.ARCHIVE


# =============================================================================
# EXTERNAL COMMANDS
# =============================================================================


class CommandError(ForgeError):
    """External command exited non-zero.

    Keeps the exit code and both captured streams so callers can surface
    the full diagnostic.
    """

    default_category = ErrorCategory.COMMAND

    def __init__(
        self,
        message: str,
        *,
        args: list[str] | None = None,
        returncode: int | None = None,
        stdout: str = "",
        stderr: str = "",
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.args_list = list(args or [])
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        if self.args_list:
            self.context.command = " ".join(self.args_list)

    @property
    def output(self) -> str:
        """Best available diagnostic text: stderr, then stdout, then message."""
        return self.stderr or self.stdout or self.message


class CommandTimeoutError(CommandError):
    """External command exceeded its timeout and was killed."""

    def __init__(self, message: str, *, timeout: float | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.timeout = timeout


class CommandNotFoundError(CommandError):
    """Executable not found on PATH."""


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "ForgeError",
    "ManifestError",
    "ConfigError",
    "ToolchainError",
    "GenerationError",
    "ArchiveError",
    "CommandError",
    "CommandTimeoutError",
    "CommandNotFoundError",
]
