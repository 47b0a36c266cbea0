"""Domain error taxonomy and user-facing error classification."""

from enum import Enum

from pydantic import BaseModel


class TaskmateError(Exception):
    """Base class for errors raised by the service layer."""


class ValidationFailure(TaskmateError, ValueError):
    """Bad input (e.g. empty task name). Recoverable by re-prompting the user."""


class NotFoundFailure(TaskmateError):
    """A referenced entity does not exist."""


class PermissionDenied(TaskmateError, PermissionError):
    """The actor is not the owner of the resource."""


class FetchFailure(TaskmateError):
    """The store could not be read."""


class WriteFailure(TaskmateError):
    """The store rejected or aborted a write."""


class LookupDegraded(TaskmateError):
    """Best-effort display-name resolution failed. Never surfaced to the user."""


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
    ERR_FETCH_FAILED = "ERR_FETCH_FAILED"
    ERR_WRITE_FAILED = "ERR_WRITE_FAILED"
    ERR_UNKNOWN = "ERR_UNKNOWN"


class ErrorResponse(BaseModel):
    """Structured error response with user-friendly messaging."""

    code: str
    message: str
    suggestion: str
    severity: ErrorSeverity


def classify_error_with_response(exception: Exception) -> ErrorResponse:
    """Classify an error and return a structured response with recovery suggestions.

    Store and network failures collapse into a generic advisory; the caller
    decides whether to retry.

    Args:
        exception: The exception raised during execution

    Returns:
        ErrorResponse with code, message, suggestion, and severity
    """
    if isinstance(exception, ValidationFailure):
        return ErrorResponse(
            code=ErrorCode.ERR_VALIDATION,
            message=str(exception) or "Some of the provided values are invalid.",
            suggestion="Check the highlighted fields and try again.",
            severity=ErrorSeverity.LOW,
        )

    if isinstance(exception, NotFoundFailure):
        return ErrorResponse(
            code=ErrorCode.ERR_NOT_FOUND,
            message=str(exception) or "The requested item no longer exists.",
            suggestion="Refresh your task list and try again.",
            severity=ErrorSeverity.LOW,
        )

    if isinstance(exception, PermissionError):
        return ErrorResponse(
            code=ErrorCode.ERR_PERMISSION_DENIED,
            message="You don't have permission for this action.",
            suggestion="Only the owner of a task can share or change it.",
            severity=ErrorSeverity.MEDIUM,
        )

    if isinstance(exception, FetchFailure):
        return ErrorResponse(
            code=ErrorCode.ERR_FETCH_FAILED,
            message="Your tasks could not be loaded.",
            suggestion="Please check your connection and try again.",
            severity=ErrorSeverity.MEDIUM,
        )

    if isinstance(exception, WriteFailure):
        return ErrorResponse(
            code=ErrorCode.ERR_WRITE_FAILED,
            message="Your changes could not be saved.",
            suggestion="Please check your connection and try again.",
            severity=ErrorSeverity.MEDIUM,
        )

    return ErrorResponse(
        code=ErrorCode.ERR_UNKNOWN,
        message="An unexpected error occurred.",
        suggestion="Please try again later. If the problem persists, contact support.",
        severity=ErrorSeverity.MEDIUM,
    )
