"""Centralized exception hierarchy for gitlayer.

This module defines all custom exceptions used throughout gitlayer,
organized in a hierarchy so callers can catch as broadly or as narrowly
as they need.
"""

from __future__ import annotations

from typing import Any, Optional


class GitLayerError(Exception):
    """Base exception for all gitlayer errors.

    Attributes:
        message: Human-readable error message.
        code: Optional error code for programmatic handling.
        details: Optional dictionary with additional error context.
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.code:
            return f"[{self.code}] {self.message}"
        return self.message

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "code": self.code,
            "details": self.details,
        }


# =============================================================================
# Configuration Errors
# =============================================================================

class ConfigurationError(GitLayerError):
    """Raised when there's a configuration problem."""
    pass


class InvalidConfigError(ConfigurationError):
    """Raised when configuration values are invalid."""

    def __init__(self, field: str, value: Any, reason: str):
        super().__init__(
            message=f"Invalid configuration for '{field}': {reason}",
            code="INVALID_CONFIG",
            details={"field": field, "value": str(value)[:100], "reason": reason},
        )


# =============================================================================
# Git Errors
# =============================================================================

class GitError(GitLayerError):
    """Raised when a git operation fails."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = "GIT_ERROR",
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message, code, details)


class RunError(GitError):
    """Raised when a spawned git process exits unsuccessfully.

    The message is the process's stderr (or a generic exit-code message), so
    diagnostics can be matched against it directly.
    """

    def __init__(
        self,
        message: str,
        *,
        command: str = "",
        exit_code: Optional[int] = None,
        stdout: str = "",
        stderr: str = "",
        os_code: Optional[str] = None,
    ):
        details: dict[str, Any] = {}
        if command:
            details["command"] = command
        if exit_code is not None:
            details["exit_code"] = exit_code
        if stderr:
            # Truncate for safety
            details["stderr"] = stderr[:500]
        super().__init__(message, os_code or "RUN_ERROR", details)
        self.command = command
        self.exit_code = exit_code
        self.stdout = stdout
        self.stderr = stderr


class GitNotFoundError(GitError):
    """Raised when no usable git executable can be located."""

    def __init__(self, searched: list[str]):
        super().__init__(
            message="Unable to find git",
            code="GIT_NOT_FOUND",
            details={"searched": searched},
        )


class NotARepositoryError(GitError):
    """Raised when path is not a git repository."""

    def __init__(self, path: str):
        super().__init__(
            message=f"Not a git repository: {path}",
            code="NOT_A_REPOSITORY",
            details={"path": path},
        )


class GitVersionError(GitError):
    """Raised when an operation needs a newer git than the one installed."""

    def __init__(self, feature: str, current: str, required: str):
        super().__init__(
            message=(
                f"{feature} requires a newer version of Git ({required} or later)"
                f" than is currently installed ({current})"
            ),
            code="GIT_VERSION",
            details={"feature": feature, "current": current, "required": required},
        )
        self.current = current
        self.required = required


class StashMismatchError(GitError):
    """Raised when a stash ref no longer points at the expected commit."""

    def __init__(self, stash_name: str, expected: str, actual: Optional[str]):
        super().__init__(
            message="Unable to delete stash; mismatch with stash number",
            code="STASH_MISMATCH",
            details={"stash": stash_name, "expected": expected, "actual": actual},
        )


# =============================================================================
# Cancellation
# =============================================================================

class CancellationError(GitLayerError):
    """Raised to a caller whose wait was abandoned because of a timeout.

    The underlying operation keeps running for any other awaiters.
    """

    def __init__(self, operation: str, timeout: float):
        super().__init__(
            message=f"{operation} timed out after {timeout}s",
            code="CANCELLED",
            details={"operation": operation, "timeout_seconds": timeout},
        )
        self.timeout = timeout


__all__ = [
    "GitLayerError",
    "ConfigurationError",
    "InvalidConfigError",
    "GitError",
    "RunError",
    "GitNotFoundError",
    "NotARepositoryError",
    "GitVersionError",
    "StashMismatchError",
    "CancellationError",
]
