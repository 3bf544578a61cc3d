"""
Base exception classes for application-wide error handling.

Exception Hierarchy:
    BaseApplicationError (base)
    ├── ValidationError - Input validation failures
    ├── NotFoundError - Resource not found
    ├── PermissionDeniedError - Authorization failures
    ├── ConflictError - State conflicts (duplicates, concurrent modifications)
    └── OperationTimeoutError - An operation exceeded its time budget

Usage:
    from core.exceptions import OperationTimeoutError

    raise OperationTimeoutError(
        "Sending the message timed out",
        details={"operation": "send_message", "budget_seconds": 15},
    )

Note:
    Expected business failures are returned as ServiceResult failures by
    the services. These exceptions are raised for conditions a service
    cannot turn into a normal result, and are rendered by
    core.exception_handler.api_exception_handler using status_code.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Any


class BaseApplicationError(Exception):
    """
    Base exception for all application-specific errors.

    Attributes:
        message: Human-readable error description
        error_code: Machine-readable code for client-side handling
        details: Additional error context (field errors, metadata, etc.)
        status_code: HTTP status used when the error reaches the API layer
    """

    default_error_code: str = "APPLICATION_ERROR"
    status_code: int = 500

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert exception to dictionary for API response.

        Example:
            {
                "error": "Message not found",
                "error_code": "MESSAGE_NOT_FOUND",
                "details": {"message_id": "..."}
            }
        """
        result: dict[str, Any] = {
            "error": self.message,
            "error_code": self.error_code,
        }
        if self.details:
            result["details"] = self.details
        return result

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code!r}, "
            f"details={self.details!r})"
        )


class ValidationError(BaseApplicationError):
    """Raised when input is malformed or missing."""

    default_error_code: str = "VALIDATION_ERROR"
    status_code: int = 400


class NotFoundError(BaseApplicationError):
    """Raised when a referenced resource does not exist or is soft-deleted."""

    default_error_code: str = "NOT_FOUND"
    status_code: int = 404


class PermissionDeniedError(BaseApplicationError):
    """
    Raised when the caller may not perform an operation.

    Note:
        For authentication failures (missing/invalid token), DRF's
        AuthenticationFailed applies. Use this for authorization failures.
    """

    default_error_code: str = "PERMISSION_DENIED"
    status_code: int = 403


class ConflictError(BaseApplicationError):
    """Raised when an operation conflicts with the current resource state."""

    default_error_code: str = "CONFLICT"
    status_code: int = 409


class OperationTimeoutError(BaseApplicationError):
    """
    Raised when an operation exceeds its time budget.

    The outcome of a timed out write is unknown: the write may have
    committed before the budget ran out. Clients may retry reads freely
    but should surface the ambiguity before retrying a write.

    Example:
        with time_budget("send_message", 15):
            ...
        # raises OperationTimeoutError(error_code="OPERATION_TIMEOUT")
    """

    default_error_code: str = "OPERATION_TIMEOUT"
    status_code: int = 504

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["retryable"] = True
        return result
