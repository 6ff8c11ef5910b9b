"""
tsforge.core - shared primitives: errors, structured logging, settings.
"""

from tsforge.core.errors import (
    ArchiveError,
    CommandError,
    CommandNotFoundError,
    CommandTimeoutError,
    ConfigError,
    ErrorCategory,
    ErrorContext,
    ForgeError,
    GenerationError,
    ManifestError,
    ToolchainError,
)
from tsforge.core.logging import LogContext, configure_logging, get_logger

__all__ = [
    "ArchiveError",
    "CommandError",
    "CommandNotFoundError",
    "CommandTimeoutError",
    "ConfigError",
    "ErrorCategory",
    "ErrorContext",
    "ForgeError",
    "GenerationError",
    "LogContext",
    "ManifestError",
    "ToolchainError",
    "configure_logging",
    "get_logger",
]
