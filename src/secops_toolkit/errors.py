"""
Error taxonomy for SecOps Toolkit.

Fatal errors are raised and abort the command with exit status 1.
Non-fatal errors (``AmbiguousResult``, ``PartialCollectionFailure``) are
never raised; they are carried as values inside result objects and
rendered as warnings.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any


class SecOpsError(Exception):
    """Base class for all toolkit errors."""

    fatal = True


class InvalidArgument(SecOpsError):
    """Bad or unsupported input, detected before any side effect."""

    def __init__(self, field: str, message: str):
        self.field = field
        self.message = message
        super().__init__(f"Invalid value for '{field}': {message}")


class PathUnavailable(SecOpsError):
    """An output location could not be created or used."""

    def __init__(self, path: str | Path, cause: Exception | None = None):
        self.path = Path(path)
        self.cause = cause
        detail = f": {cause}" if cause else ""
        super().__init__(f"Path unavailable: {self.path}{detail}")


class InsufficientPrivilege(SecOpsError):
    """The caller does not hold the elevated privilege an operation needs."""

    def __init__(self, message: str = "Elevated privileges (root/Administrator) are required"):
        super().__init__(message)


class RemoteCallFailed(SecOpsError):
    """Transport, authentication or remote-side failure of an API call."""

    def __init__(self, operation: str, cause: Exception | str):
        self.operation = operation
        self.cause = cause
        super().__init__(f"{operation} failed: {cause}")


class OutputWriteFailed(SecOpsError):
    """A result file could not be written."""

    def __init__(self, path: str | Path, cause: Exception | None = None):
        self.path = Path(path)
        self.cause = cause
        detail = f": {cause}" if cause else ""
        super().__init__(f"Could not write {self.path}{detail}")


class AmbiguousResult(SecOpsError):
    """The remote call returned, but not in the expected shape."""

    fatal = False

    def __init__(self, message: str, payload: Any = None):
        self.message = message
        self.payload = payload
        super().__init__(message)


class PartialCollectionFailure(SecOpsError):
    """One category or rule among many could not be collected."""

    fatal = False

    def __init__(self, item: str, cause: Exception | str):
        self.item = item
        self.cause = cause
        super().__init__(f"{item}: {cause}")
