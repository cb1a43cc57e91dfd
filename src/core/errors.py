"""Typed errors for care task operations and their classification."""

from collections.abc import Iterator
from contextlib import contextmanager
from enum import Enum

from pydantic import BaseModel

from src.core import db_client


class ErrorSeverity(Enum):
    """Severity levels for errors."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCode:
    """Error codes for specific error conditions."""

    ERR_VALIDATION = "ERR_VALIDATION"
    ERR_NOT_FOUND = "ERR_NOT_FOUND"
    ERR_PERMISSION_DENIED = "ERR_PERMISSION_DENIED"
    ERR_CONFLICT = "ERR_CONFLICT"
    ERR_INSUFFICIENT_BUDGET = "ERR_INSUFFICIENT_BUDGET"
    ERR_INTERNAL = "ERR_INTERNAL"
    ERR_UNKNOWN = "ERR_UNKNOWN"


class CareTaskError(Exception):
    """Base class for errors surfaced to callers of the care task core."""

    code: str = ErrorCode.ERR_UNKNOWN
    status_code: int = 500
    severity: ErrorSeverity = ErrorSeverity.MEDIUM

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(CareTaskError):
    """Malformed or out-of-range input, or a missing required field."""

    code = ErrorCode.ERR_VALIDATION
    status_code = 400
    severity = ErrorSeverity.LOW


class NotFoundError(CareTaskError):
    """Referenced task, execution or category does not exist."""

    code = ErrorCode.ERR_NOT_FOUND
    status_code = 404
    severity = ErrorSeverity.LOW


class OwnershipError(CareTaskError):
    """Entity belongs to a different owner."""

    code = ErrorCode.ERR_PERMISSION_DENIED
    status_code = 403


class ConflictError(CareTaskError):
    """Business rule violation against the current persisted state."""

    code = ErrorCode.ERR_CONFLICT
    status_code = 409
    severity = ErrorSeverity.LOW


class InsufficientBudgetError(ConflictError):
    """Transfer amount exceeds the source task's available budget."""

    code = ErrorCode.ERR_INSUFFICIENT_BUDGET


class InternalError(CareTaskError):
    """Store failure or other unexpected condition."""

    code = ErrorCode.ERR_INTERNAL
    status_code = 500
    severity = ErrorSeverity.HIGH


class ErrorResponse(BaseModel):
    """Structured error response with user-friendly messaging."""

    code: str
    message: str
    suggestion: str
    severity: ErrorSeverity
    status_code: int


_SUGGESTIONS: dict[str, str] = {
    ErrorCode.ERR_VALIDATION: "Check the submitted values and try again.",
    ErrorCode.ERR_NOT_FOUND: "Refresh the task list and make sure the item still exists.",
    ErrorCode.ERR_PERMISSION_DENIED: "You can only manage your own care tasks.",
    ErrorCode.ERR_CONFLICT: "Reload the task to see its current state and try again.",
    ErrorCode.ERR_INSUFFICIENT_BUDGET: "Transfer a smaller amount or raise the source task's budget first.",
    ErrorCode.ERR_INTERNAL: "Please try again later. If the problem persists, contact support.",
}


def classify_error_with_response(exception: Exception) -> ErrorResponse:
    """Classify an error and return a structured response with recovery suggestions.

    Args:
        exception: The exception raised during execution

    Returns:
        ErrorResponse with code, message, suggestion, severity and status code
    """
    if isinstance(exception, CareTaskError):
        return ErrorResponse(
            code=exception.code,
            message=exception.message,
            suggestion=_SUGGESTIONS.get(exception.code, _SUGGESTIONS[ErrorCode.ERR_INTERNAL]),
            severity=exception.severity,
            status_code=exception.status_code,
        )

    if isinstance(exception, db_client.TransactionConflictError):
        return ErrorResponse(
            code=ErrorCode.ERR_CONFLICT,
            message="The data changed while the operation was running.",
            suggestion=_SUGGESTIONS[ErrorCode.ERR_CONFLICT],
            severity=ErrorSeverity.MEDIUM,
            status_code=ConflictError.status_code,
        )

    if isinstance(exception, db_client.DatabaseError):
        return ErrorResponse(
            code=ErrorCode.ERR_INTERNAL,
            message="The data store is unavailable.",
            suggestion=_SUGGESTIONS[ErrorCode.ERR_INTERNAL],
            severity=ErrorSeverity.HIGH,
            status_code=InternalError.status_code,
        )

    return ErrorResponse(
        code=ErrorCode.ERR_UNKNOWN,
        message="An unexpected error occurred.",
        suggestion=_SUGGESTIONS[ErrorCode.ERR_INTERNAL],
        severity=ErrorSeverity.MEDIUM,
        status_code=500,
    )


@contextmanager
def store_errors() -> Iterator[None]:
    """Translate store failures into typed care task errors.

    Usage:
        with store_errors():
            await db_client.run_in_transaction(_apply)
    """
    try:
        yield
    except db_client.TransactionConflictError as e:
        raise ConflictError(f"Concurrent update detected, please retry: {e}") from e
    except db_client.DatabaseError as e:
        raise InternalError(f"Store operation failed: {e}") from e
