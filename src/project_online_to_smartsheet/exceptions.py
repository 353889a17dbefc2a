"""
Custom exception classes for the Project Online to Smartsheet migration tool.
"""

from __future__ import annotations

import re
from typing import Final

# Smartsheet error codes reported when a sheet or column name is not unique
_DUPLICATE_NAME_ERROR_CODES: Final[frozenset[int]] = frozenset({1018, 1133, 1134})
_DUPLICATE_NAME_MESSAGE: Final[re.Pattern[str]] = re.compile(r"already exists|must be unique|duplicate", re.IGNORECASE)


class MigrationError(Exception):
    """Base exception for migration errors."""


class ConfigurationError(MigrationError):
    """Raised when a required setting or credential is missing or invalid."""


class RemoteError(MigrationError):
    """Error reported by a remote API.

    Carries the HTTP status as the discriminator used for retry classification.
    `status` is None when the remote side could not be reached at all.
    """

    status: int | None
    error_code: int | None

    def __init__(self, status: int | None, message: str, error_code: int | None = None) -> None:
        super().__init__(message)
        self.status = status
        self.error_code = error_code

    @property
    def message(self) -> str:
        return str(self.args[0]) if self.args else ""

    @property
    def is_duplicate_name(self) -> bool:
        """Check if the remote rejected a create because the name is already taken."""
        if self.status not in (400, 409):
            return False
        if self.error_code in _DUPLICATE_NAME_ERROR_CODES:
            return True
        return bool(_DUPLICATE_NAME_MESSAGE.search(self.message))

    def __str__(self) -> str:
        status = self.status if self.status is not None else "no status"
        if self.error_code is not None:
            return f"{self.message} (HTTP {status}, errorCode {self.error_code})"
        return f"{self.message} (HTTP {status})"


class RetryExhaustedError(MigrationError):
    """Raised when a retryable operation kept failing until no attempts remained."""

    operation: str
    attempts: int
    last_error: BaseException

    def __init__(self, operation: str, attempts: int, last_error: BaseException) -> None:
        super().__init__(f"{operation} failed after {attempts} attempts: {last_error}")
        self.operation = operation
        self.attempts = attempts
        self.last_error = last_error


class OperationCancelledError(MigrationError):
    """Raised when a run is cancelled or its deadline passes."""


class ReconciliationError(MigrationError):
    """Raised when a named resource can neither be found nor created."""

    kind: str
    name: str
    container: str

    def __init__(self, kind: str, name: str, container: str, reason: BaseException | str) -> None:
        super().__init__(f"Failed to get or create {kind} '{name}' in {container}: {reason}")
        self.kind = kind
        self.name = name
        self.container = container
