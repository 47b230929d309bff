"""Error taxonomy and exception hierarchy for the governance core."""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Machine-readable rejection codes returned to API clients."""

    UNAUTHORIZED = "UNAUTHORIZED"
    MISSING_REQUIRED_FIELD = "MISSING_REQUIRED_FIELD"
    INSUFFICIENT_PERMISSIONS = "INSUFFICIENT_PERMISSIONS"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    ORG_NOT_FOUND = "ORG_NOT_FOUND"
    QUOTA_EXCEEDED = "QUOTA_EXCEEDED"
    CONFLICT = "CONFLICT"
    INVALID_LABEL = "INVALID_LABEL"
    DATABASE_ERROR = "DATABASE_ERROR"


ERROR_CODE_STATUS: dict[ErrorCode, int] = {
    ErrorCode.UNAUTHORIZED: 401,
    ErrorCode.MISSING_REQUIRED_FIELD: 400,
    ErrorCode.INSUFFICIENT_PERMISSIONS: 403,
    ErrorCode.VALIDATION_ERROR: 400,
    ErrorCode.ORG_NOT_FOUND: 404,
    ErrorCode.QUOTA_EXCEEDED: 409,
    ErrorCode.CONFLICT: 409,
    ErrorCode.INVALID_LABEL: 400,
    ErrorCode.DATABASE_ERROR: 500,
}


def status_for(code: ErrorCode) -> int:
    """HTTP status for an error code (500 when unmapped)."""
    return ERROR_CODE_STATUS.get(code, 500)


class GovernanceError(Exception):
    """Base exception for all governance errors."""

    error_code: ErrorCode = ErrorCode.VALIDATION_ERROR

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message: str = message
        self.context: dict[str, Any] = context or {}

    @property
    def status_code(self) -> int:
        return status_for(self.error_code)


# ── Caller Errors ────────────────────────────────────────────────

class MissingFieldError(GovernanceError):
    """A required identifier (org id, quota type, ...) was not supplied."""

    error_code = ErrorCode.MISSING_REQUIRED_FIELD


class ValidationFailedError(GovernanceError):
    """Schema validation rejected the input; ``violations`` lists each failure."""

    error_code = ErrorCode.VALIDATION_ERROR

    def __init__(
        self,
        message: str,
        violations: list[Any] | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, context)
        self.violations: list[Any] = violations or []


class InvalidLabelError(GovernanceError):
    """Sequential ID label was empty or not a string."""

    error_code = ErrorCode.INVALID_LABEL


# ── Authorization Errors ─────────────────────────────────────────

class UnauthorizedError(GovernanceError):
    """No caller organization could be established."""

    error_code = ErrorCode.UNAUTHORIZED


class InsufficientPermissionsError(GovernanceError):
    """Caller is authenticated but may not act on the target organization."""

    error_code = ErrorCode.INSUFFICIENT_PERMISSIONS


class OrgNotFoundError(GovernanceError):
    """Target organization does not exist in the store."""

    error_code = ErrorCode.ORG_NOT_FOUND


# ── Quota ────────────────────────────────────────────────────────

class QuotaExceededError(GovernanceError):
    """Increment would push usage past the limit. Deterministic, never retried."""

    error_code = ErrorCode.QUOTA_EXCEEDED


# ── Infrastructure ───────────────────────────────────────────────

class ConflictError(GovernanceError):
    """Storage refused a write that conflicts with existing data. Never retried."""

    error_code = ErrorCode.CONFLICT


class StorageError(GovernanceError):
    """Storage collaborator failed after the retry budget was spent."""

    error_code = ErrorCode.DATABASE_ERROR
