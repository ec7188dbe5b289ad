"""Exceptions shared by the trust, approval and context subsystems."""

from pathlib import Path


class AICliError(Exception):
    """Base exception for ai-cli errors."""

    pass


class ConfigError(AICliError):
    """Raised when configuration or the trust store is unreadable or corrupt.

    Never recovered into a permissive default: the invocation aborts.
    """

    def __init__(self, message: str, path: Path | None = None):
        """Initialize with a message and the offending file.

        Args:
            message: Human readable description
            path: File that could not be read or parsed
        """
        self.path = path
        if path is not None:
            message = f"{message} ({path})"
        super().__init__(message)


class ClassificationError(AICliError):
    """Raised when a command string cannot be parsed into words."""

    def __init__(self, command: str, detail: str):
        self.command = command
        super().__init__(f"Cannot classify command {command!r}: {detail}")


class TrustViolationError(AICliError):
    """Raised for a mutating action in (or trust of) a disallowed directory."""

    def __init__(self, path: Path, message: str | None = None):
        self.path = path
        super().__init__(message or f"Directory is not trusted: {path}")


class UserDeclined(AICliError):
    """Raised when the user refuses a confirmation prompt."""

    def __init__(self, command: str):
        self.command = command
        super().__init__(f"User declined: {command}")
