#!/usr/bin/env python3
"""
Exception hierarchy for lrm.

Every error raised by the codec, the backup store and the mutating
operations derives from LrmError so callers (the CLI, the chain runner)
can report them uniformly. Errors carry the file path and the operation
they relate to whenever one is known.
"""

from typing import Optional


class LrmError(Exception):
    """Base class for all lrm errors."""

    def __init__(
        self,
        message: str,
        path: Optional[str] = None,
        operation: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.path = str(path) if path is not None else None
        self.operation = operation

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON error output."""
        data = {
            "error": self.message,
            "error_type": type(self).__name__,
        }
        if self.path:
            data["path"] = self.path
        if self.operation:
            data["operation"] = self.operation
        return data


class UnsupportedFormatError(LrmError, ValueError):
    """Requested resource format has no registered handler."""


class ConfigurationError(LrmError):
    """lrm.json could not be read or holds invalid values."""


class ResourceNotFoundError(LrmError):
    """A resource file to read does not exist."""


class ResourceParseError(LrmError):
    """A resource file is malformed."""

    def __init__(
        self,
        message: str,
        path: Optional[str] = None,
        line: Optional[int] = None,
        column: Optional[int] = None,
    ):
        location = ""
        if line is not None:
            location = f" (line {line}" + (f", column {column})" if column is not None else ")")
        where = f"{path}: " if path else ""
        super().__init__(f"{where}{message}{location}", path=path, operation="read")
        self.reason = message
        self.line = line
        self.column = column

    def to_dict(self) -> dict:
        data = super().to_dict()
        if self.line is not None:
            data["line"] = self.line
        if self.column is not None:
            data["column"] = self.column
        return data


class SourceNotFoundError(LrmError):
    """File to snapshot does not exist."""


class BackupWriteError(LrmError):
    """Snapshot or manifest could not be written."""


class BackupNotFoundError(LrmError):
    """Requested backup version is not in the store."""


class DefaultLanguageProtectedError(LrmError):
    """Attempt to delete the default language file."""


class InvalidCultureCodeError(LrmError, ValueError):
    """Culture code failed validation in an operation that requires one."""


class LanguageExistsError(LrmError):
    """Language file already exists for the requested culture."""


class LanguageNotFoundError(LrmError):
    """No language file matches the requested culture."""


class AmbiguousResourceSetError(LrmError):
    """Several resource sets found and no base name given."""


class KeyAlreadyExistsError(LrmError):
    """Key is already present in a resource file."""


class KeyNotFoundError(LrmError, KeyError):
    """Key is not present in a resource file."""

    def __str__(self) -> str:
        return self.message


class FatalEnvironmentError(LrmError):
    """Unrecoverable environment failure; aborts a whole command chain."""


class InvalidKeyError(LrmError, ValueError):
    """Key cannot be stored in the target format."""
